from datetime import datetime

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import jwt_required
from pymongo.errors import DuplicateKeyError

from .auth import require_active_user, require_user
from .database import get_db, parse_object_id
from .serializers import isoformat, serialize_product

bp = Blueprint("wishlist", __name__, url_prefix="/api/wishlist")


def serialize_item(item_document, product_document):
    return {
        "id": str(item_document["_id"]),
        "productId": str(item_document["product_id"]),
        "product": serialize_product(product_document),
        "createdAt": isoformat(item_document.get("created_at")),
    }


@bp.route("", methods=["GET"])
@jwt_required()
def list_wishlist():
    user, user_error = require_user()
    if user_error:
        return user_error

    db = get_db()
    items = list(db.wishlist_items.find({"user_id": user["_id"]}).sort("created_at", -1))
    products = {
        product["_id"]: product
        for product in db.products.find(
            {
                "_id": {"$in": [item["product_id"] for item in items]},
                "status": "approved",
            }
        )
    }

    visible = [
        serialize_item(item, products[item["product_id"]])
        for item in items
        if item["product_id"] in products
    ]
    return jsonify({"items": visible, "count": len(visible)})


@bp.route("/<product_id>", methods=["POST"])
@jwt_required()
def add_to_wishlist(product_id: str):
    user, user_error = require_active_user()
    if user_error:
        return user_error

    object_id = parse_object_id(product_id)
    if object_id is None:
        return jsonify({"message": "Invalid product id"}), 400

    db = get_db()
    product = db.products.find_one({"_id": object_id, "status": "approved"})
    if not product:
        return jsonify({"message": "Product not found"}), 404

    query = {"user_id": user["_id"], "product_id": object_id}
    existing = db.wishlist_items.find_one(query)
    if existing:
        return jsonify({"item": serialize_item(existing, product), "added": False})

    item = {**query, "created_at": datetime.utcnow()}
    try:
        result = db.wishlist_items.insert_one(item)
    except DuplicateKeyError:
        # Lost a race with an identical request.
        existing = db.wishlist_items.find_one(query)
        if existing:
            return jsonify({"item": serialize_item(existing, product), "added": False})
        current_app.logger.error("Add wishlist failed for product %s", object_id)
        return jsonify({"message": "Failed to update wishlist"}), 500

    item["_id"] = result.inserted_id
    return jsonify({"item": serialize_item(item, product), "added": True}), 201


@bp.route("/<product_id>", methods=["DELETE"])
@jwt_required()
def remove_from_wishlist(product_id: str):
    user, user_error = require_active_user()
    if user_error:
        return user_error

    object_id = parse_object_id(product_id)
    if object_id is None:
        return jsonify({"message": "Invalid product id"}), 400

    removed = get_db().wishlist_items.find_one_and_delete(
        {"user_id": user["_id"], "product_id": object_id}
    )
    if not removed:
        return jsonify({"message": "Wishlist item not found"}), 404

    return jsonify({"removed": True})
