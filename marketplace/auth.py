from datetime import datetime

import bcrypt
from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import create_access_token, get_jwt_identity
from pymongo.errors import DuplicateKeyError

from .database import get_db, parse_object_id
from .serializers import serialize_user
from .validation import clean_string, is_valid_email, normalize_email

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

ALLOWED_USER_ROLES = {"user", "admin"}
MIN_PASSWORD_LENGTH = 6
REGISTRATION_FIELDS = (
    "firstName",
    "lastName",
    "email",
    "phone",
    "gender",
    "address",
    "password",
)


def normalize_role(value) -> str:
    normalized = str(value or "").strip().lower()
    return normalized if normalized in ALLOWED_USER_ROLES else "user"


def get_user_role(user_document) -> str:
    if not user_document:
        return "user"

    email = normalize_email(user_document.get("email"))
    if email and email == current_app.config["DEFAULT_ADMIN_EMAIL"]:
        return "admin"

    return normalize_role(user_document.get("role"))


def load_current_user():
    user_id = parse_object_id(get_jwt_identity())
    if user_id is None:
        return None
    return get_db().users.find_one({"_id": user_id})


def require_user():
    current_user = load_current_user()
    if not current_user:
        return None, (jsonify({"message": "User not found"}), 404)
    return current_user, None


def require_role(*roles: str):
    allowed = {normalize_role(role) for role in roles if role}

    current_user = load_current_user()
    user_role = get_user_role(current_user)

    if current_user and (user_role == "admin" or not allowed or user_role in allowed):
        return current_user, None

    return (
        None,
        (
            jsonify({"message": "You need additional permissions to perform this action."}),
            403,
        ),
    )


def require_admin_user():
    return require_role("admin")


def frozen_account_error(user_document):
    frozen_until = (user_document or {}).get("frozen_until")
    if isinstance(frozen_until, datetime) and frozen_until > datetime.utcnow():
        formatted = frozen_until.strftime("%d %b %Y")
        return jsonify({"message": f"Your account is frozen until {formatted}."}), 403
    return None


def require_active_user():
    current_user, load_error = require_user()
    if load_error:
        return None, load_error

    frozen_error = frozen_account_error(current_user)
    if frozen_error:
        return None, frozen_error

    return current_user, None


def issue_token(user_document) -> str:
    return create_access_token(
        identity=str(user_document["_id"]),
        additional_claims={"role": get_user_role(user_document)},
    )


@bp.route("/register", methods=["POST"])
def register():
    payload = request.get_json(silent=True) or {}
    values = {field: clean_string(payload.get(field)) for field in REGISTRATION_FIELDS}
    password = str(payload.get("password") or "")

    if not all(values.values()) or not password:
        return jsonify({"message": "Missing required fields"}), 400

    email = normalize_email(values["email"])
    if not is_valid_email(email):
        return jsonify({"message": "Please provide a valid email address."}), 400

    if len(password) < MIN_PASSWORD_LENGTH:
        return (
            jsonify(
                {"message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"}
            ),
            400,
        )

    db = get_db()
    if db.users.find_one({"email": email}):
        return jsonify({"message": "Email already registered"}), 409

    now = datetime.utcnow()
    user_document = {
        "first_name": values["firstName"],
        "last_name": values["lastName"],
        "email": email,
        "phone": values["phone"],
        "gender": values["gender"],
        "address": values["address"],
        "password": bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()),
        "role": "admin" if email == current_app.config["DEFAULT_ADMIN_EMAIL"] else "user",
        "created_at": now,
        "updated_at": now,
    }

    try:
        result = db.users.insert_one(user_document)
    except DuplicateKeyError:
        return jsonify({"message": "Email already registered"}), 409
    user_document["_id"] = result.inserted_id

    current_app.logger.info("Registered user %s", result.inserted_id)
    return jsonify({"token": issue_token(user_document), "user": serialize_user(user_document)}), 201


@bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    email = normalize_email(payload.get("email"))
    password = str(payload.get("password") or "")

    if not email or not password:
        return jsonify({"message": "Email and password are required"}), 400

    db = get_db()
    user = db.users.find_one({"email": email})
    if not user or not bcrypt.checkpw(password.encode("utf-8"), user["password"]):
        return jsonify({"message": "Invalid email or password"}), 401

    db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"last_login_at": datetime.utcnow()}},
    )
    user = db.users.find_one({"_id": user["_id"]})

    return jsonify({"token": issue_token(user), "user": serialize_user(user)})
