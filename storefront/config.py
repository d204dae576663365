import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

# Secrets that ship in tutorials and sample .env files.
PLACEHOLDER_SECRETS = {
    "secret",
    "secret_ecom",
    "change-me",
    "change-me-in-production",
    "changeme",
    "jwt-secret",
}
MIN_SECRET_LENGTH = 16
IMAGE_STORAGE_BACKENDS = {"cloudinary", "local"}


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


@dataclass
class Config:
    """Process-wide settings, built once at startup and passed to the app."""

    jwt_secret_key: str
    mongo_uri: str = "mongodb://localhost:27017/storefront"
    token_ttl: Optional[timedelta] = None
    image_storage: str = "local"
    upload_folder: str = ""
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_folder: str = "products"
    allowed_image_extensions: List[str] = field(
        default_factory=lambda: ["jpg", "jpeg", "png"]
    )
    max_upload_mb: int = 16
    default_admin_email: str = ""
    cors_allowed_origins: List[str] = field(default_factory=list)
    trusted_proxy_hops: int = 1
    log_level: str = "INFO"
    port: int = 4000
    testing: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self):
        secret = (self.jwt_secret_key or "").strip()
        if not secret:
            raise ConfigurationError(
                "JWT_SECRET_KEY must be set to sign authentication tokens."
            )
        if secret.lower() in PLACEHOLDER_SECRETS or len(secret) < MIN_SECRET_LENGTH:
            raise ConfigurationError(
                "JWT_SECRET_KEY is a placeholder or too short; "
                f"use a random value of at least {MIN_SECRET_LENGTH} characters."
            )

        if self.image_storage not in IMAGE_STORAGE_BACKENDS:
            raise ConfigurationError(
                f"IMAGE_STORAGE must be one of {sorted(IMAGE_STORAGE_BACKENDS)}."
            )
        if self.image_storage == "cloudinary" and not (
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        ):
            raise ConfigurationError(
                "Cloudinary storage needs CLOUDINARY_CLOUD_NAME, "
                "CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET."
            )

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Config":
        if dotenv:
            load_dotenv()

        ttl_hours = _env_int("TOKEN_TTL_HOURS", 0)
        cloud_name = _env("CLOUDINARY_CLOUD_NAME")
        image_storage = _env(
            "IMAGE_STORAGE", default="cloudinary" if cloud_name else "local"
        ).lower()

        origins = [
            origin.strip()
            for origin in _env("CORS_ALLOWED_ORIGINS").split(",")
            if origin.strip()
        ]

        return cls(
            jwt_secret_key=_env("JWT_SECRET_KEY", "JWT_SECRET"),
            mongo_uri=_env(
                "MONGO_URI", "DB_URL", default="mongodb://localhost:27017/storefront"
            ),
            token_ttl=timedelta(hours=ttl_hours) if ttl_hours > 0 else None,
            image_storage=image_storage,
            upload_folder=_env("UPLOAD_FOLDER"),
            cloudinary_cloud_name=cloud_name,
            cloudinary_api_key=_env("CLOUDINARY_API_KEY"),
            cloudinary_api_secret=_env("CLOUDINARY_API_SECRET"),
            cloudinary_folder=_env("CLOUDINARY_FOLDER", default="products"),
            max_upload_mb=_env_int("MAX_UPLOAD_SIZE_MB", 16),
            default_admin_email=_env("DEFAULT_ADMIN_EMAIL").lower(),
            cors_allowed_origins=origins,
            trusted_proxy_hops=max(0, _env_int("TRUSTED_PROXY_HOPS", 1)),
            log_level=_env("LOG_LEVEL", default="INFO").upper(),
            port=_env_int("PORT", 4000),
        )
