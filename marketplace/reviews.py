from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from .auth import require_active_user, require_user
from .database import get_db, parse_object_id
from .errors import ValidationError
from .serializers import isoformat, serialize_author
from .validation import parse_comment, parse_rating

bp = Blueprint("reviews", __name__, url_prefix="/api/reviews")

RECENT_REVIEWS_LIMIT = 50
REVIEWABLE_STATUSES = ["approved", "sold"]
REVIEW_FIELDS = {"rating", "comment"}


def serialize_review(review_document, author=None):
    serialized = {
        "id": str(review_document["_id"]),
        "rating": review_document.get("rating"),
        "comment": review_document.get("comment", ""),
        "createdAt": isoformat(review_document.get("created_at")),
        "updatedAt": isoformat(review_document.get("updated_at")),
    }
    if author is not None:
        serialized["user"] = serialize_author(author)
    return serialized


def has_purchased(user_id, product_id) -> bool:
    return (
        get_db().orders.find_one({"buyer_id": user_id, "product_id": product_id})
        is not None
    )


@bp.route("/product/<product_id>", methods=["GET"])
def list_product_reviews(product_id: str):
    object_id = parse_object_id(product_id)
    if object_id is None:
        return jsonify({"message": "Invalid product id"}), 400

    db = get_db()
    summary_rows = list(
        db.reviews.aggregate(
            [
                {"$match": {"product_id": object_id}},
                {
                    "$group": {
                        "_id": "$product_id",
                        "avgRating": {"$avg": "$rating"},
                        "count": {"$sum": 1},
                    }
                },
            ]
        )
    )
    summary = summary_rows[0] if summary_rows else {}

    reviews = list(
        db.reviews.find({"product_id": object_id})
        .sort("created_at", -1)
        .limit(RECENT_REVIEWS_LIMIT)
    )
    authors = {
        user["_id"]: user
        for user in db.users.find({"_id": {"$in": [r["user_id"] for r in reviews]}})
    }

    return jsonify(
        {
            "summary": {
                "avgRating": summary.get("avgRating") or 0,
                "count": summary.get("count") or 0,
            },
            "reviews": [
                serialize_review(review, authors.get(review["user_id"], {}))
                for review in reviews
            ],
        }
    )


@bp.route("/product/<product_id>/me", methods=["GET"])
@jwt_required()
def get_my_review(product_id: str):
    user, user_error = require_user()
    if user_error:
        return user_error

    object_id = parse_object_id(product_id)
    if object_id is None:
        return jsonify({"message": "Invalid product id"}), 400

    if not has_purchased(user["_id"], object_id):
        return jsonify({"canReview": False, "review": None})

    review = get_db().reviews.find_one({"product_id": object_id, "user_id": user["_id"]})
    return jsonify(
        {"canReview": True, "review": serialize_review(review) if review else None}
    )


@bp.route("/product/<product_id>", methods=["POST"])
@jwt_required()
def create_review(product_id: str):
    user, user_error = require_active_user()
    if user_error:
        return user_error

    object_id = parse_object_id(product_id)
    if object_id is None:
        return jsonify({"message": "Invalid product id"}), 400

    payload = request.get_json(silent=True) or {}
    if set(payload) - REVIEW_FIELDS:
        return jsonify({"message": "Only rating and comment can be submitted"}), 400
    try:
        rating = parse_rating(payload.get("rating"))
        comment = parse_comment(payload.get("comment"))
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code

    db = get_db()
    product = db.products.find_one(
        {"_id": object_id, "status": {"$in": REVIEWABLE_STATUSES}}
    )
    if not product:
        return jsonify({"message": "Product not found"}), 404

    if not has_purchased(user["_id"], object_id):
        return jsonify({"message": "Purchase required to review"}), 403

    query = {"product_id": object_id, "user_id": user["_id"]}
    if db.reviews.find_one(query):
        return jsonify({"message": "Review already exists"}), 409

    now = datetime.utcnow()
    review = {**query, "rating": rating, "comment": comment, "created_at": now, "updated_at": now}
    try:
        result = db.reviews.insert_one(review)
    except DuplicateKeyError:
        return jsonify({"message": "Review already exists"}), 409
    review["_id"] = result.inserted_id

    return jsonify({"review": serialize_review(review)}), 201


@bp.route("/<review_id>", methods=["PATCH"])
@jwt_required()
def update_review(review_id: str):
    user, user_error = require_active_user()
    if user_error:
        return user_error

    object_id = parse_object_id(review_id)
    if object_id is None:
        return jsonify({"message": "Invalid review id"}), 400

    payload = request.get_json(silent=True) or {}
    if set(payload) - REVIEW_FIELDS:
        return jsonify({"message": "Only rating and comment can be updated"}), 400

    updates = {}
    try:
        if "rating" in payload:
            updates["rating"] = parse_rating(payload.get("rating"))
        if "comment" in payload:
            updates["comment"] = parse_comment(payload.get("comment"))
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code

    if not updates:
        return jsonify({"message": "No updates provided"}), 400

    updates["updated_at"] = datetime.utcnow()
    review = get_db().reviews.find_one_and_update(
        {"_id": object_id, "user_id": user["_id"]},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not review:
        return jsonify({"message": "Review not found"}), 404

    return jsonify({"review": serialize_review(review)})


@bp.route("/<review_id>", methods=["DELETE"])
@jwt_required()
def delete_review(review_id: str):
    user, user_error = require_active_user()
    if user_error:
        return user_error

    object_id = parse_object_id(review_id)
    if object_id is None:
        return jsonify({"message": "Invalid review id"}), 400

    removed = get_db().reviews.find_one_and_delete(
        {"_id": object_id, "user_id": user["_id"]}
    )
    if not removed:
        return jsonify({"message": "Review not found"}), 404

    return jsonify({"success": True})
