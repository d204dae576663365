import math
import re
from typing import Optional

from flask import Flask, jsonify, request, send_from_directory
from flask_cors import CORS
from flask_jwt_extended import current_user, jwt_required
from flask_pymongo import PyMongo
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth import (
    MAX_PASSWORD_BYTES,
    admin_required,
    check_password,
    hash_password,
    init_jwt,
    issue_token,
)
from .config import Config
from .errors import ApiError, InvalidCredentials, ValidationError
from .images import LocalImageStorage, build_image_storage
from .serializers import serialize_order, serialize_product
from .stores import CART_SLOTS, OrderStore, ProductStore, UserStore, ensure_indexes

NEW_COLLECTION_SIZE = 8
CURATED_CATEGORY_SIZE = 4
FEATURED_CATEGORY = "women"

email_regex = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def required_text(payload, key: str, label: str) -> str:
    value = str(payload.get(key) or "").strip()
    if not value:
        raise ValidationError(f"{label} is required.")
    return value


def parse_number(value, label: str) -> float:
    """Validate a numeric field; numbers are returned unchanged, strings are parsed."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a valid number.")
    if isinstance(value, (int, float)):
        numeric = value
    else:
        try:
            numeric = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{label} must be a valid number.")
    if not math.isfinite(numeric):
        raise ValidationError(f"{label} must be a valid number.")
    return numeric


def parse_int(value, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer.")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer.")


def create_app(config: Optional[Config] = None, db=None, image_storage=None) -> Flask:
    """Create and configure the Flask application.

    ``db`` and ``image_storage`` replace the MongoDB connection and the image
    host, which lets tests run without external services.
    """
    config = config or Config.from_env()
    app = Flask(__name__)
    app.logger.setLevel(config.log_level)

    if config.trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=config.trusted_proxy_hops,
            x_proto=config.trusted_proxy_hops,
            x_host=config.trusted_proxy_hops,
            x_port=config.trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["TESTING"] = config.testing
    app.config["JWT_SECRET_KEY"] = config.jwt_secret_key
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = config.token_ttl or False
    app.config["MONGO_URI"] = config.mongo_uri
    app.config["MAX_CONTENT_LENGTH"] = config.max_upload_mb * 1024 * 1024
    app.config["STOREFRONT"] = config

    # --- Initialize extensions ---
    CORS(app, origins=config.cors_allowed_origins or "*")

    if db is None:
        mongo = PyMongo(app)
        db = mongo.db

    users = UserStore(db)
    products = ProductStore(db)
    orders = OrderStore(db)
    ensure_indexes(db, app.logger)

    init_jwt(app, users)

    if image_storage is None:
        image_storage = build_image_storage(config, app.root_path)

    # --- Error handling ---

    @app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"success": False, "errors": error.description}), error.code
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False}), 500

    # --- Helpers ---

    def request_payload():
        return request.get_json(silent=True) or {}

    def cart_slot(payload) -> int:
        slot = parse_int(payload.get("itemId"), "itemId")
        if not 0 <= slot < CART_SLOTS:
            raise ValidationError(f"itemId must be between 0 and {CART_SLOTS - 1}.")
        return slot

    def serialize_products(documents):
        return jsonify([serialize_product(document) for document in documents])

    # --- ROUTES ---

    @app.route("/")
    def index():
        return "API Running"

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    if isinstance(image_storage, LocalImageStorage):

        @app.route("/uploads/<path:filename>")
        def serve_uploaded_file(filename: str):
            return send_from_directory(image_storage.folder, filename)

    # Catalog

    @app.route("/allproducts", methods=["GET"])
    def list_products():
        category = request.args.get("category")
        return serialize_products(products.all(category=category))

    @app.route("/newcollections", methods=["GET"])
    def new_collections():
        return serialize_products(products.newest(NEW_COLLECTION_SIZE))

    @app.route("/popularinwomen", methods=["GET"])
    def popular_in_women():
        return serialize_products(
            products.first_in_category(FEATURED_CATEGORY, CURATED_CATEGORY_SIZE)
        )

    @app.route("/relatedproducts", methods=["POST"])
    def related_products():
        category = str(request_payload().get("category") or "").strip()
        if not category:
            return jsonify([])
        return serialize_products(
            products.first_in_category(category, CURATED_CATEGORY_SIZE)
        )

    @app.route("/addproduct", methods=["POST"])
    @admin_required
    def add_product():
        payload = request.form.to_dict() if request.form else {}

        fields = {
            "name": required_text(payload, "name", "Product name"),
            "description": str(payload.get("description") or "").strip(),
            "category": required_text(payload, "category", "Category"),
            "new_price": round(parse_number(payload.get("new_price"), "New price"), 2),
            "old_price": round(parse_number(payload.get("old_price"), "Old price"), 2),
        }

        image_url, image_key = image_storage.save(request.files.get("product"))
        fields["image"] = image_url
        fields["image_key"] = image_key

        try:
            product_document = products.create(fields)
        except ApiError:
            try:
                image_storage.delete(image_key)
            except ApiError as cleanup_error:
                app.logger.warning(
                    "Unable to remove orphaned image %s: %s", image_key, cleanup_error
                )
            raise

        app.logger.info(
            "Product %s (%s) added by %s",
            product_document["id"],
            product_document["name"],
            current_user.get("email"),
        )
        return jsonify({"success": True, "product": serialize_product(product_document)})

    @app.route("/removeproduct", methods=["POST"])
    @admin_required
    def remove_product():
        catalog_id = parse_int(request_payload().get("id"), "Product id")
        removed = products.delete(catalog_id)

        try:
            image_storage.delete(removed.get("image_key"))
        except ApiError as exc:
            app.logger.warning(
                "Unable to remove image for product %s: %s", catalog_id, exc
            )

        app.logger.info(
            "Product %s removed by %s", catalog_id, current_user.get("email")
        )
        return jsonify({"success": True, "message": "Product removed successfully"})

    # Accounts

    @app.route("/signup", methods=["POST"])
    def signup():
        payload = request_payload()
        name = required_text(payload, "username", "Username")
        email = normalize_email(payload.get("email"))
        password = str(payload.get("password") or "")

        if not email or not password:
            raise ValidationError("Email and password are required.")
        if not email_regex.match(email):
            raise ValidationError("Please enter a valid email address.")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes long."
            )

        role = "admin" if email == config.default_admin_email else "user"
        user_document = users.create(name, email, hash_password(password), role=role)

        app.logger.info("Registered user %s", user_document["_id"])
        return jsonify({"success": True, "token": issue_token(user_document["_id"])})

    @app.route("/login", methods=["POST"])
    def login():
        payload = request_payload()
        email = normalize_email(payload.get("email"))
        password = str(payload.get("password") or "")

        if not email or not password:
            raise InvalidCredentials()

        user_document = users.find_by_email(email)
        if not user_document or not check_password(
            password, user_document.get("password")
        ):
            raise InvalidCredentials()

        return jsonify({"success": True, "token": issue_token(user_document["_id"])})

    # Cart

    @app.route("/addtocart", methods=["POST"])
    @jwt_required()
    def add_to_cart():
        slot = cart_slot(request_payload())
        cart = users.adjust_cart(current_user["_id"], slot, 1)
        return jsonify({"success": True, "cartData": cart})

    @app.route("/removefromcart", methods=["POST"])
    @jwt_required()
    def remove_from_cart():
        slot = cart_slot(request_payload())
        cart = users.adjust_cart(current_user["_id"], slot, -1)
        return jsonify({"success": True, "cartData": cart})

    @app.route("/getcart", methods=["POST"])
    @jwt_required()
    def get_cart():
        return jsonify(current_user.get("cartData") or {})

    # Orders

    @app.route("/createorder", methods=["POST"])
    @jwt_required()
    def create_order():
        payload = request_payload()
        items = payload.get("items")
        if not isinstance(items, list) or not items:
            raise ValidationError("Include at least one item to place the order.")

        total_amount = parse_number(payload.get("totalAmount"), "Total amount")
        payment_method = required_text(payload, "paymentMethod", "Payment method")

        order_document = orders.create(
            current_user["_id"], items, total_amount, payment_method
        )
        app.logger.info(
            "Order %s placed by %s", order_document["orderId"], current_user["_id"]
        )
        return jsonify({"success": True, "order": serialize_order(order_document)})

    @app.route("/myorders", methods=["GET"])
    @jwt_required()
    def my_orders():
        return jsonify(
            [serialize_order(document) for document in orders.for_user(current_user["_id"])]
        )

    # --- Admin Routes ---

    @app.route("/admin/orders", methods=["GET"])
    @admin_required
    def list_all_orders():
        order_documents = orders.all()
        owners = users.find_many({document.get("userId") for document in order_documents})
        return jsonify(
            [serialize_order(document, owners=owners) for document in order_documents]
        )

    @app.route("/admin/updateorder/<order_reference>", methods=["PUT"])
    @admin_required
    def update_order_status(order_reference: str):
        status = request_payload().get("status")
        if not isinstance(status, str) or not status.strip():
            raise ValidationError("Status is required.")
        order_document = orders.update_status(order_reference, status)

        app.logger.info(
            "Order %s set to %s by %s",
            order_document.get("orderId"),
            status,
            current_user.get("email"),
        )
        return jsonify({"success": True, "order": serialize_order(order_document)})

    return app
