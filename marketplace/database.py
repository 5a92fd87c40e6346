import logging
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from flask import current_app

logger = logging.getLogger(__name__)


def get_db():
    return current_app.extensions["marketplace"]["db"]


def get_service(name: str):
    return current_app.extensions["marketplace"][name]


def users_by_id(user_ids):
    ids = [user_id for user_id in set(user_ids) if user_id is not None]
    if not ids:
        return {}
    return {user["_id"]: user for user in get_db().users.find({"_id": {"$in": ids}})}


def parse_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value or "").strip())
    except (InvalidId, TypeError):
        return None


def ensure_indexes(db) -> None:
    """Create the indexes the routes rely on.

    Index creation failures are not fatal; the app keeps serving and the
    warning tells the operator which index is missing.
    """
    index_specs = [
        ("users", [("email", 1)], {"unique": True}),
        ("products", [("seller_id", 1), ("created_at", -1)], {}),
        ("products", [("status", 1), ("created_at", -1)], {}),
        ("orders", [("seller_id", 1), ("created_at", -1)], {}),
        ("orders", [("buyer_id", 1), ("product_id", 1)], {}),
        ("notifications", [("seller_id", 1), ("type", 1), ("created_at", -1)], {}),
        ("commission_history", [("created_at", -1)], {}),
        ("wishlist_items", [("user_id", 1), ("product_id", 1)], {"unique": True}),
        ("reviews", [("product_id", 1), ("user_id", 1)], {"unique": True}),
        ("blogs", [("status", 1), ("created_at", -1)], {}),
        ("blogs", [("author_id", 1), ("created_at", -1)], {}),
        ("blog_comments", [("blog_id", 1), ("created_at", -1)], {}),
        ("blog_feedback", [("blog_id", 1), ("user_id", 1)], {"unique": True}),
        ("complaints", [("user_id", 1), ("created_at", -1)], {}),
    ]
    for collection_name, keys, options in index_specs:
        try:
            db[collection_name].create_index(keys, **options)
        except Exception as exc:
            logger.warning(
                "Unable to ensure index %s on %s: %s", keys, collection_name, exc
            )
