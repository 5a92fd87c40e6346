from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from .auth import require_active_user, require_user
from .database import get_db, parse_object_id
from .errors import ValidationError
from .serializers import serialize_complaint
from .validation import parse_complaint_payload

bp = Blueprint("complaints", __name__, url_prefix="/api/complaints")


@bp.route("", methods=["POST"])
@jwt_required()
def create_complaint():
    user, user_error = require_active_user()
    if user_error:
        return user_error

    try:
        fields = parse_complaint_payload(request.get_json(silent=True))
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code

    db = get_db()
    product = None
    if fields["product_id"]:
        product_id = parse_object_id(fields["product_id"])
        if product_id is None:
            return jsonify({"message": "Invalid product id"}), 400
        product = db.products.find_one({"_id": product_id})
        if not product:
            return jsonify({"message": "Product not found"}), 404

    now = datetime.utcnow()
    complaint = {
        "user_id": user["_id"],
        "product_id": product["_id"] if product else None,
        "subject": fields["subject"],
        "message": fields["message"],
        "image_url": fields["image_url"],
        "status": "open",
        "admin_reply": None,
        "created_at": now,
        "updated_at": now,
    }
    complaint["_id"] = db.complaints.insert_one(complaint).inserted_id

    current_app.logger.info("User %s opened complaint %s", user["_id"], complaint["_id"])
    return jsonify({"complaint": serialize_complaint(complaint, product)}), 201


@bp.route("/mine", methods=["GET"])
@jwt_required()
def list_my_complaints():
    user, user_error = require_user()
    if user_error:
        return user_error

    db = get_db()
    complaints = list(db.complaints.find({"user_id": user["_id"]}).sort("created_at", -1))
    product_ids = [c["product_id"] for c in complaints if c.get("product_id")]
    products = {
        product["_id"]: product
        for product in db.products.find({"_id": {"$in": product_ids}})
    }

    return jsonify(
        {
            "complaints": [
                serialize_complaint(complaint, products.get(complaint.get("product_id")))
                for complaint in complaints
            ]
        }
    )
