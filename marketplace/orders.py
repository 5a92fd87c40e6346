from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from .auth import require_active_user, require_user
from .database import get_db, get_service, parse_object_id
from .errors import NotFoundError
from .serializers import serialize_order, serialize_product
from .validation import parse_order_payload

bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@bp.route("", methods=["POST"])
@jwt_required()
def place_order():
    buyer, user_error = require_active_user()
    if user_error:
        return user_error

    fields = parse_order_payload(request.get_json(silent=True))
    product_id = parse_object_id(fields["product_id"])
    if product_id is None:
        raise NotFoundError("Product is not available")

    result = get_service("placement").place_order(
        buyer["_id"], product_id, fields["quantity"], fields["delivery"]
    )

    return (
        jsonify(
            {
                "order": serialize_order(result.order),
                "product": serialize_product(result.product),
                "commissionRate": result.commission_rate,
            }
        ),
        201,
    )


@bp.route("/mine", methods=["GET"])
@jwt_required()
def list_my_orders():
    buyer, user_error = require_user()
    if user_error:
        return user_error

    cursor = get_db().orders.find({"buyer_id": buyer["_id"]}).sort("created_at", -1)
    return jsonify({"orders": [serialize_order(document) for document in cursor]})
