"""Token issuing/verification, password hashing and the auth middleware.

Tokens are flask-jwt-extended access tokens read from the ``auth-token``
header. Each carries the user's id as ``sub`` and as ``user.id``.
"""

from functools import wraps
from typing import Optional

import bcrypt
from flask import current_app, jsonify
from flask_jwt_extended import (
    JWTManager,
    create_access_token,
    current_user,
    decode_token,
    verify_jwt_in_request,
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from .errors import Forbidden, Unauthenticated

TOKEN_HEADER = "auth-token"
# bcrypt only hashes the first 72 bytes; newer releases reject longer input.
MAX_PASSWORD_BYTES = 72
ALLOWED_USER_ROLES = {"user", "admin"}


def hash_password(password: str) -> bytes:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())


def check_password(password: str, hashed) -> bool:
    if not hashed:
        return False
    if isinstance(hashed, str):
        hashed = hashed.encode("utf-8")
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed)
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def issue_token(user_id) -> str:
    identity = str(user_id)
    return create_access_token(
        identity=identity, additional_claims={"user": {"id": identity}}
    )


def verify_token(token: Optional[str]) -> str:
    """Return the user id carried by ``token`` or raise ``Unauthenticated``."""
    if not token:
        raise Unauthenticated()

    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException) as exc:
        raise Unauthenticated() from exc

    user_id = user_id_from_claims(claims)
    if user_id is None:
        raise Unauthenticated()
    return user_id


def user_id_from_claims(claims) -> Optional[str]:
    """Return the id in the ``user`` claim, or None when the claim is missing."""
    user_claim = claims.get("user")
    if not isinstance(user_claim, dict) or not user_claim.get("id"):
        return None
    return str(user_claim["id"])


def normalize_role(value: Optional[str]) -> str:
    normalized = str(value or "").strip().lower()
    return normalized if normalized in ALLOWED_USER_ROLES else "user"


def get_user_role(user_document) -> str:
    if not user_document:
        return "user"
    return normalize_role(user_document.get("role"))


def _auth_failed(*_args):
    return jsonify({"success": False, "errors": Unauthenticated.message}), 401


def init_jwt(app, users) -> JWTManager:
    """Configure flask-jwt-extended so protected routes resolve ``current_user``."""
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_NAME"] = TOKEN_HEADER
    app.config["JWT_HEADER_TYPE"] = ""

    jwt = JWTManager(app)

    @jwt.user_lookup_loader
    def load_user(_jwt_header, jwt_data):
        user_id = user_id_from_claims(jwt_data)
        if user_id is None:
            return None
        return users.find_by_id(user_id)

    @jwt.user_lookup_error_loader
    def missing_user(_jwt_header, jwt_data):
        current_app.logger.info(
            "Rejected token for unknown user %s", jwt_data.get("sub")
        )
        return _auth_failed()

    jwt.unauthorized_loader(_auth_failed)
    jwt.invalid_token_loader(_auth_failed)
    jwt.expired_token_loader(_auth_failed)
    jwt.revoked_token_loader(_auth_failed)

    return jwt


def role_required(*roles: str):
    """Require a valid token whose user holds one of ``roles``."""
    allowed = {normalize_role(role) for role in roles if role}

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            user_role = get_user_role(current_user)
            if allowed and user_role not in allowed:
                current_app.logger.warning(
                    "User %s with role %s denied access to %s",
                    current_user.get("_id"),
                    user_role,
                    view.__name__,
                )
                raise Forbidden()
            return view(*args, **kwargs)

        return wrapper

    return decorator


admin_required = role_required("admin")
