from datetime import datetime
from typing import Dict, Optional


def isoformat(value) -> Optional[str]:
    if isinstance(value, datetime):
        return f"{value.isoformat()}Z"
    return None


def serialize_product(product_document) -> Dict:
    return {
        "_id": str(product_document.get("_id", "")),
        "id": product_document.get("id"),
        "name": product_document.get("name", ""),
        "description": product_document.get("description", ""),
        "image": product_document.get("image", ""),
        "category": product_document.get("category", ""),
        "new_price": product_document.get("new_price"),
        "old_price": product_document.get("old_price"),
        "available": bool(product_document.get("available", True)),
        "date": isoformat(product_document.get("date")),
    }


def serialize_order(order_document, owners: Optional[Dict] = None) -> Dict:
    """Render an order.

    With ``owners`` (user documents keyed by id) the ``userId`` reference is
    replaced by the owner's id, name and email, or ``None`` when the owner no
    longer exists.
    """
    user_reference = order_document.get("userId")
    if owners is not None:
        user_reference = serialize_order_owner(owners.get(str(user_reference)))

    return {
        "_id": str(order_document.get("_id", "")),
        "orderId": order_document.get("orderId", ""),
        "userId": user_reference,
        "items": order_document.get("items") or [],
        "totalAmount": order_document.get("totalAmount"),
        "paymentMethod": order_document.get("paymentMethod", ""),
        "status": order_document.get("status", ""),
        "date": isoformat(order_document.get("date")),
    }


def serialize_order_owner(user_document) -> Optional[Dict]:
    if not user_document:
        return None
    return {
        "_id": str(user_document.get("_id", "")),
        "name": user_document.get("name", ""),
        "email": user_document.get("email", ""),
    }
