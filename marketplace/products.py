from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from .auth import require_active_user, require_user
from .database import get_db, get_service, parse_object_id
from .errors import ValidationError
from .serializers import serialize_product
from .validation import parse_product_payload

bp = Blueprint("products", __name__, url_prefix="/api/products")

PUBLIC_PRODUCT_STATUSES = ["approved", "sold"]


@bp.route("", methods=["POST"])
@jwt_required()
def create_product():
    seller, user_error = require_active_user()
    if user_error:
        return user_error

    try:
        product_document = parse_product_payload(request.get_json(silent=True))
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code

    now = datetime.utcnow()
    product_document.update(
        {"seller_id": seller["_id"], "created_at": now, "updated_at": now}
    )
    result = get_db().products.insert_one(product_document)
    product_document["_id"] = result.inserted_id

    if product_document["status"] == "pending":
        get_service("notifier").notify_listing_submitted(product_document)

    current_app.logger.info(
        "Seller %s created product %s (%s)",
        seller["_id"],
        result.inserted_id,
        product_document["status"],
    )
    return jsonify({"product": serialize_product(product_document)}), 201


@bp.route("/mine", methods=["GET"])
@jwt_required()
def list_my_products():
    seller, user_error = require_user()
    if user_error:
        return user_error

    cursor = get_db().products.find({"seller_id": seller["_id"]}).sort("created_at", -1)
    return jsonify({"products": [serialize_product(document) for document in cursor]})


@bp.route("", methods=["GET"])
def list_products():
    query = {"status": "approved"}
    category = (request.args.get("category") or "").strip()
    if category:
        query["category"] = category

    cursor = get_db().products.find(query).sort("created_at", -1)
    return jsonify({"products": [serialize_product(document) for document in cursor]})


@bp.route("/<product_id>", methods=["GET"])
def get_product(product_id: str):
    object_id = parse_object_id(product_id)
    if object_id is None:
        return jsonify({"message": "Invalid product identifier."}), 400

    db = get_db()
    product_document = db.products.find_one(
        {"_id": object_id, "status": {"$in": PUBLIC_PRODUCT_STATUSES}}
    )
    if not product_document:
        return jsonify({"message": "Product not found."}), 404

    seller = db.users.find_one({"_id": product_document.get("seller_id")})
    return jsonify({"product": serialize_product(product_document, seller=seller or {})})
