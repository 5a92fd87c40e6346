from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from pymongo import ReturnDocument

from .auth import require_admin_user
from .commission import normalize_commission_rate
from .database import get_db, get_service, parse_object_id, users_by_id
from .inventory import PRODUCT_STATUSES
from .serializers import (
    full_name,
    isoformat,
    serialize_blog,
    serialize_complaint,
    serialize_notification,
    serialize_product,
    serialize_user,
)
from .validation import clean_string, parse_page_args

bp = Blueprint("admin", __name__, url_prefix="/api/admin")

RECENT_NOTIFICATIONS_LIMIT = 5
MAX_FREEZE_DAYS = 365
BLOG_STATUSES = ("draft", "pending", "approved", "rejected")
COMPLAINT_STATUSES = ("open", "replied", "closed")


@bp.route("/notifications", methods=["GET"])
@jwt_required()
def list_notifications():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    db = get_db()
    unread_count = db.notifications.count_documents({"is_read": False})
    documents = list(
        db.notifications.find({})
        .sort("created_at", -1)
        .limit(RECENT_NOTIFICATIONS_LIMIT)
    )
    sellers = users_by_id(document.get("seller_id") for document in documents)

    notifications = []
    for document in documents:
        serialized = serialize_notification(document)
        serialized["sellerName"] = (
            full_name(sellers.get(document.get("seller_id"))) or "Unknown"
        )
        notifications.append(serialized)

    return jsonify({"unreadCount": unread_count, "notifications": notifications})


@bp.route("/listings", methods=["GET"])
@jwt_required()
def list_listings():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    status = (request.args.get("status") or "").strip().lower()
    query = {}
    if status and status != "all":
        if status not in PRODUCT_STATUSES:
            return jsonify({"message": "Unknown listing status."}), 400
        query["status"] = status

    documents = list(get_db().products.find(query).sort("created_at", -1))
    sellers = users_by_id(document.get("seller_id") for document in documents)
    products = [
        serialize_product(document, seller=sellers.get(document.get("seller_id"), {}))
        for document in documents
    ]
    return jsonify({"products": products})


def load_listing(product_id: str):
    object_id = parse_object_id(product_id)
    if object_id is None:
        return None, (jsonify({"message": "Listing not found"}), 404)

    product_document = get_db().products.find_one({"_id": object_id})
    if not product_document:
        return None, (jsonify({"message": "Listing not found"}), 404)

    return product_document, None


@bp.route("/listings/<product_id>", methods=["GET"])
@jwt_required()
def get_listing(product_id: str):
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    product_document, load_error = load_listing(product_id)
    if load_error:
        return load_error

    seller = get_db().users.find_one({"_id": product_document.get("seller_id")})
    return jsonify({"product": serialize_product(product_document, seller=seller or {})})


def moderate_listing(product_id: str, status: str, condition=None):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    product_document, load_error = load_listing(product_id)
    if load_error:
        return load_error

    query = {"_id": product_document["_id"]}
    if condition:
        query.update(condition)

    updated = get_db().products.find_one_and_update(
        query,
        {"$set": {"status": status, "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        return jsonify({"message": "Listing has no units left to sell."}), 400

    current_app.logger.info(
        "Admin %s set listing %s to %s", admin_user["_id"], updated["_id"], status
    )
    return jsonify({"product": serialize_product(updated)})


@bp.route("/listings/<product_id>/approve", methods=["PATCH"])
@jwt_required()
def approve_listing(product_id: str):
    # An exhausted listing stays sold.
    return moderate_listing(product_id, "approved", {"quantity": {"$gte": 1}})


@bp.route("/listings/<product_id>/reject", methods=["PATCH"])
@jwt_required()
def reject_listing(product_id: str):
    return moderate_listing(product_id, "rejected")


@bp.route("/commission", methods=["GET"])
@jwt_required()
def get_commission():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    history = [
        {
            "rate": entry.get("rate"),
            "createdBy": str(entry["created_by"]) if entry.get("created_by") else None,
            "createdAt": isoformat(entry.get("created_at")),
        }
        for entry in get_db().commission_history.find({}).sort("created_at", -1).limit(10)
    ]
    return jsonify(
        {"commissionRate": get_service("commission").current_rate(), "history": history}
    )


@bp.route("/commission", methods=["PUT"])
@jwt_required()
def update_commission():
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    raw_rate = payload.get("rate", payload.get("commissionRate"))
    if normalize_commission_rate(raw_rate) is None:
        return (
            jsonify(
                {"message": "Rate must be a fraction between 0 and 1 or a percentage up to 100."}
            ),
            400,
        )

    rate = get_service("commission").set_rate(raw_rate, created_by=admin_user["_id"])
    return jsonify({"commissionRate": rate})


@bp.route("/users/<user_id>/freeze", methods=["PATCH"])
@jwt_required()
def freeze_user(user_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    target_id = parse_object_id(user_id)
    if target_id is None:
        return jsonify({"message": "Invalid user identifier."}), 400

    payload = request.get_json(silent=True) or {}
    raw_days = payload.get("days", 0)
    if isinstance(raw_days, bool) or not isinstance(raw_days, int) or not 0 <= raw_days <= MAX_FREEZE_DAYS:
        return (
            jsonify({"message": f"Days must be a whole number between 0 and {MAX_FREEZE_DAYS}."}),
            400,
        )

    frozen_until = datetime.utcnow() + timedelta(days=raw_days) if raw_days else None
    updated = get_db().users.find_one_and_update(
        {"_id": target_id},
        {"$set": {"frozen_until": frozen_until, "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        return jsonify({"message": "User not found."}), 404

    current_app.logger.info(
        "Admin %s set frozen_until=%s for user %s", admin_user["_id"], frozen_until, target_id
    )
    return jsonify({"user": serialize_user(updated)})


@bp.route("/blogs", methods=["GET"])
@jwt_required()
def list_blogs():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    page, limit = parse_page_args(request.args)
    status = (request.args.get("status") or "").strip().lower()
    query = {}
    if status and status != "all":
        if status not in BLOG_STATUSES:
            return jsonify({"message": "Unknown blog status."}), 400
        query["status"] = status

    db = get_db()
    total = db.blogs.count_documents(query)
    documents = list(
        db.blogs.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    )
    authors = users_by_id(document.get("author_id") for document in documents)
    return jsonify(
        {
            "blogs": [
                serialize_blog(document, author=authors.get(document.get("author_id"), {}))
                for document in documents
            ],
            "total": total,
            "page": page,
            "pageSize": limit,
        }
    )


def moderate_blog(blog_id: str, status: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    object_id = parse_object_id(blog_id)
    updated = None
    if object_id is not None:
        updated = get_db().blogs.find_one_and_update(
            {"_id": object_id},
            {"$set": {"status": status, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    if updated is None:
        return jsonify({"message": "Blog not found"}), 404

    current_app.logger.info("Admin %s set blog %s to %s", admin_user["_id"], object_id, status)
    author = get_db().users.find_one({"_id": updated.get("author_id")})
    return jsonify({"blog": serialize_blog(updated, author=author or {})})


@bp.route("/blogs/<blog_id>/approve", methods=["PATCH"])
@jwt_required()
def approve_blog(blog_id: str):
    return moderate_blog(blog_id, "approved")


@bp.route("/blogs/<blog_id>/reject", methods=["PATCH"])
@jwt_required()
def reject_blog(blog_id: str):
    return moderate_blog(blog_id, "rejected")


@bp.route("/complaints", methods=["GET"])
@jwt_required()
def list_complaints():
    _, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    status = (request.args.get("status") or "").strip().lower()
    query = {}
    if status and status != "all":
        if status not in COMPLAINT_STATUSES:
            return jsonify({"message": "Unknown complaint status."}), 400
        query["status"] = status

    db = get_db()
    documents = list(db.complaints.find(query).sort("created_at", -1))
    products = {
        product["_id"]: product
        for product in db.products.find(
            {"_id": {"$in": [d["product_id"] for d in documents if d.get("product_id")]}}
        )
    }
    users = users_by_id(document.get("user_id") for document in documents)

    complaints = []
    for document in documents:
        serialized = serialize_complaint(document, products.get(document.get("product_id")))
        serialized["userName"] = full_name(users.get(document.get("user_id"))) or "Unknown"
        complaints.append(serialized)
    return jsonify({"complaints": complaints})


@bp.route("/complaints/<complaint_id>/reply", methods=["PATCH"])
@jwt_required()
def reply_to_complaint(complaint_id: str):
    admin_user, admin_error = require_admin_user()
    if admin_error:
        return admin_error

    payload = request.get_json(silent=True) or {}
    message = clean_string(payload.get("message"))
    if not message:
        return jsonify({"message": "Reply message is required"}), 400

    object_id = parse_object_id(complaint_id)
    updated = None
    if object_id is not None:
        now = datetime.utcnow()
        updated = get_db().complaints.find_one_and_update(
            {"_id": object_id},
            {
                "$set": {
                    "status": "replied",
                    "admin_reply": {
                        "message": message,
                        "replied_by": admin_user["_id"],
                        "replied_at": now,
                    },
                    "updated_at": now,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
    if updated is None:
        return jsonify({"message": "Complaint not found"}), 404

    return jsonify({"complaint": serialize_complaint(updated)})
