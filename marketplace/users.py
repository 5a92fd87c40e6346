from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from pymongo import ReturnDocument

from .auth import require_user
from .database import get_db
from .notifications import ORDER_PLACED
from .serializers import isoformat, safe_float, serialize_notification, serialize_user
from .validation import clean_string, is_valid_url

bp = Blueprint("users", __name__, url_prefix="/api/users")

PROFILE_FIELDS = {
    # payload key: (stored field, label)
    "firstName": ("first_name", "First name"),
    "lastName": ("last_name", "Last name"),
    "gender": ("gender", "Gender"),
    "address": ("address", "Address"),
    "avatarUrl": ("avatar_url", "Profile image"),
}
IMMUTABLE_PROFILE_FIELDS = ("email", "phone")
RECENT_NOTIFICATIONS_LIMIT = 5
RECENT_TRANSACTIONS_LIMIT = 8


@bp.route("/me", methods=["GET"])
@jwt_required()
def get_profile():
    user, user_error = require_user()
    if user_error:
        return user_error
    return jsonify({"user": serialize_user(user)})


@bp.route("/me", methods=["PATCH"])
@jwt_required()
def update_profile():
    user, user_error = require_user()
    if user_error:
        return user_error

    payload = request.get_json(silent=True) or {}
    if any(field in payload for field in IMMUTABLE_PROFILE_FIELDS):
        return jsonify({"message": "Email and phone cannot be updated."}), 400

    unknown = sorted(set(payload) - set(PROFILE_FIELDS))
    if unknown:
        return jsonify({"message": f"Unrecognized field: {unknown[0]}"}), 400

    updates = {}
    for key, (field, label) in PROFILE_FIELDS.items():
        if key not in payload:
            continue
        value = clean_string(payload.get(key))
        if not value:
            return jsonify({"message": f"{label} is required"}), 400
        if field == "avatar_url" and not is_valid_url(value):
            return jsonify({"message": "Profile image must be a valid URL"}), 400
        updates[field] = value

    if not updates:
        return jsonify({"message": "No updates provided"}), 400

    updates["updated_at"] = datetime.utcnow()
    updated = get_db().users.find_one_and_update(
        {"_id": user["_id"]},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        return jsonify({"message": "User not found"}), 404

    return jsonify({"user": serialize_user(updated)})


@bp.route("/notifications", methods=["GET"])
@jwt_required()
def list_seller_notifications():
    user, user_error = require_user()
    if user_error:
        return user_error

    db = get_db()
    query = {"seller_id": user["_id"], "type": ORDER_PLACED}
    unread_count = db.notifications.count_documents({**query, "is_read": False})
    cursor = (
        db.notifications.find(query)
        .sort("created_at", -1)
        .limit(RECENT_NOTIFICATIONS_LIMIT)
    )
    return jsonify(
        {
            "unreadCount": unread_count,
            "notifications": [serialize_notification(document) for document in cursor],
        }
    )


@bp.route("/transactions", methods=["GET"])
@jwt_required()
def list_seller_transactions():
    user, user_error = require_user()
    if user_error:
        return user_error

    db = get_db()
    summary_rows = list(
        db.orders.aggregate(
            [
                {"$match": {"seller_id": user["_id"]}},
                {
                    "$group": {
                        "_id": None,
                        "totalOrders": {"$sum": 1},
                        "totalSales": {"$sum": "$price"},
                        "totalCommission": {"$sum": "$commission_amount"},
                        "totalGross": {"$sum": "$total_amount"},
                    }
                },
            ]
        )
    )
    summary = {
        "totalOrders": 0,
        "totalSales": 0.0,
        "totalCommission": 0.0,
        "totalGross": 0.0,
    }
    if summary_rows:
        row = summary_rows[0]
        summary = {
            "totalOrders": int(row.get("totalOrders") or 0),
            "totalSales": round(safe_float(row.get("totalSales")), 2),
            "totalCommission": round(safe_float(row.get("totalCommission")), 2),
            "totalGross": round(safe_float(row.get("totalGross")), 2),
        }

    orders = list(
        db.orders.find({"seller_id": user["_id"]})
        .sort("created_at", -1)
        .limit(RECENT_TRANSACTIONS_LIMIT)
    )
    product_ids = list({order.get("product_id") for order in orders})
    titles = {
        product["_id"]: product.get("title", "")
        for product in db.products.find({"_id": {"$in": product_ids}})
    }

    transactions = [
        {
            "id": str(order["_id"]),
            "productTitle": titles.get(order.get("product_id")) or "Unknown item",
            "buyerName": (order.get("delivery") or {}).get("name") or "Buyer",
            "price": safe_float(order.get("price")),
            "commissionAmount": safe_float(order.get("commission_amount")),
            "totalAmount": safe_float(order.get("total_amount")),
            "createdAt": isoformat(order.get("created_at")),
        }
        for order in orders
    ]
    return jsonify({"summary": summary, "transactions": transactions})
