"""MongoDB-backed stores for users, products and orders."""

import secrets
import time
from datetime import datetime
from typing import Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .errors import Conflict, NotFound, StorageError

CART_SLOTS = 300
CATALOG_ID_ATTEMPTS = 5
PENDING_STATUS = "Pending"


def to_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def empty_cart() -> Dict[str, int]:
    return {str(slot): 0 for slot in range(CART_SLOTS)}


def ensure_indexes(db, logger) -> None:
    try:
        db.users.create_index("email", unique=True)
        db.products.create_index("id", unique=True)
        db.products.create_index("category")
        db.orders.create_index("orderId", unique=True)
        db.orders.create_index([("userId", ASCENDING), ("date", ASCENDING)])
    except PyMongoError as exc:
        logger.warning("Unable to ensure indexes: %s", exc)


class UserStore:
    def __init__(self, db):
        self.collection = db.users

    def find_by_email(self, email: str):
        try:
            return self.collection.find_one({"email": email})
        except PyMongoError as exc:
            raise StorageError() from exc

    def find_by_id(self, user_id):
        object_id = to_object_id(user_id)
        if object_id is None:
            return None
        try:
            return self.collection.find_one({"_id": object_id})
        except PyMongoError as exc:
            raise StorageError() from exc

    def find_many(self, user_ids) -> Dict[str, Dict]:
        object_ids = [oid for oid in map(to_object_id, user_ids) if oid]
        if not object_ids:
            return {}
        try:
            cursor = self.collection.find(
                {"_id": {"$in": object_ids}}, {"name": 1, "email": 1}
            )
            return {str(document["_id"]): document for document in cursor}
        except PyMongoError as exc:
            raise StorageError() from exc

    def create(self, name: str, email: str, password_hash: bytes, role: str = "user"):
        if self.find_by_email(email):
            raise Conflict()

        user_document = {
            "name": name,
            "email": email,
            "password": password_hash,
            "role": role,
            "cartData": empty_cart(),
            "date": datetime.utcnow(),
        }
        try:
            result = self.collection.insert_one(user_document)
        except DuplicateKeyError as exc:
            raise Conflict() from exc
        except PyMongoError as exc:
            raise StorageError() from exc

        user_document["_id"] = result.inserted_id
        return user_document

    def adjust_cart(self, user_id, slot: int, delta: int) -> Dict[str, int]:
        """Atomically add ``delta`` to one cart slot; quantities never drop below zero."""
        field = f"cartData.{slot}"
        query = {"_id": to_object_id(user_id)}
        if delta < 0:
            query[field] = {"$gte": -delta}

        try:
            updated = self.collection.find_one_and_update(
                query,
                {"$inc": {field: delta}},
                projection={"cartData": 1},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                updated = self.collection.find_one(
                    {"_id": to_object_id(user_id)}, {"cartData": 1}
                )
        except PyMongoError as exc:
            raise StorageError() from exc

        if updated is None:
            raise NotFound("User not found.")
        return updated.get("cartData") or {}


class ProductStore:
    def __init__(self, db):
        self.collection = db.products

    def _find(self, query=None, limit: int = 0) -> List[Dict]:
        try:
            cursor = self.collection.find(query or {}).sort("_id", ASCENDING)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as exc:
            raise StorageError() from exc

    def all(self, category: Optional[str] = None) -> List[Dict]:
        if category is None:
            return self._find()
        return self._find({"category": category})

    def newest(self, count: int = 8) -> List[Dict]:
        try:
            cursor = self.collection.find().sort("_id", -1).limit(count)
            documents = list(cursor)
        except PyMongoError as exc:
            raise StorageError() from exc
        documents.reverse()
        return documents

    def first_in_category(self, category: str, count: int = 4) -> List[Dict]:
        return self._find({"category": category}, limit=count)

    def find_by_catalog_id(self, catalog_id: int):
        try:
            return self.collection.find_one({"id": catalog_id})
        except PyMongoError as exc:
            raise StorageError() from exc

    def _max_catalog_id(self) -> int:
        try:
            latest = self.collection.find_one({}, {"id": 1}, sort=[("id", -1)])
        except PyMongoError as exc:
            raise StorageError() from exc
        if not latest:
            return 0
        return int(latest.get("id") or 0)

    def create(self, fields: Dict) -> Dict:
        """Insert a product under the next catalog id.

        The id is ``max(existing) + 1``. A concurrent insert that claims the
        same id trips the unique index and the loop reads the maximum again.
        """
        for _ in range(CATALOG_ID_ATTEMPTS):
            product_document = dict(fields)
            product_document.setdefault("available", True)
            product_document["id"] = self._max_catalog_id() + 1
            product_document["date"] = datetime.utcnow()
            try:
                result = self.collection.insert_one(product_document)
            except DuplicateKeyError:
                continue
            except PyMongoError as exc:
                raise StorageError() from exc
            product_document["_id"] = result.inserted_id
            return product_document

        raise StorageError("Could not allocate a product id. Please try again.")

    def delete(self, catalog_id: int) -> Dict:
        try:
            removed = self.collection.find_one_and_delete({"id": catalog_id})
        except PyMongoError as exc:
            raise StorageError() from exc
        if removed is None:
            raise NotFound("Product not found")
        return removed


def generate_order_reference() -> str:
    return f"ORD{int(time.time() * 1000)}{secrets.token_hex(3).upper()}"


class OrderStore:
    def __init__(self, db):
        self.collection = db.orders

    def create(self, user_id: str, items: List, total_amount: float, payment_method: str):
        order_document = {
            "orderId": generate_order_reference(),
            "userId": str(user_id),
            "items": items,
            "totalAmount": total_amount,
            "paymentMethod": payment_method,
            "status": PENDING_STATUS,
            "date": datetime.utcnow(),
        }
        try:
            result = self.collection.insert_one(order_document)
        except PyMongoError as exc:
            raise StorageError() from exc
        order_document["_id"] = result.inserted_id
        return order_document

    def for_user(self, user_id: str) -> List[Dict]:
        try:
            cursor = self.collection.find({"userId": str(user_id)}).sort(
                [("date", ASCENDING), ("_id", ASCENDING)]
            )
            return list(cursor)
        except PyMongoError as exc:
            raise StorageError() from exc

    def all(self) -> List[Dict]:
        try:
            cursor = self.collection.find().sort([("date", ASCENDING), ("_id", ASCENDING)])
            return list(cursor)
        except PyMongoError as exc:
            raise StorageError() from exc

    def update_status(self, reference: str, status: str) -> Dict:
        query = {"orderId": reference}
        try:
            updated = self.collection.find_one_and_update(
                query,
                {"$set": {"status": status}},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                object_id = to_object_id(reference)
                if object_id is not None:
                    updated = self.collection.find_one_and_update(
                        {"_id": object_id},
                        {"$set": {"status": status}},
                        return_document=ReturnDocument.AFTER,
                    )
        except PyMongoError as exc:
            raise StorageError() from exc

        if updated is None:
            raise NotFound("Order not found")
        return updated
