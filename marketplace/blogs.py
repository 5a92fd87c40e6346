import re
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from pymongo import ReturnDocument

from .auth import require_active_user, require_user
from .database import get_db, get_service, parse_object_id, users_by_id
from .errors import ValidationError
from .serializers import isoformat, serialize_author, serialize_blog
from .validation import (
    parse_blog_payload,
    parse_comment,
    parse_helpful,
    parse_page_args,
    reject_unknown_fields,
)

bp = Blueprint("blogs", __name__, url_prefix="/api/blogs")

RECENT_COMMENTS_LIMIT = 50


def feedback_summary(blog_id):
    counts = {"helpfulCount": 0, "notHelpfulCount": 0}
    rows = get_db().blog_feedback.aggregate(
        [
            {"$match": {"blog_id": blog_id}},
            {"$group": {"_id": "$helpful", "count": {"$sum": 1}}},
        ]
    )
    for row in rows:
        key = "helpfulCount" if row["_id"] is True else "notHelpfulCount"
        counts[key] = row["count"]
    return counts


def blog_counts(blog_id):
    counts = feedback_summary(blog_id)
    counts["commentCount"] = get_db().blog_comments.count_documents({"blog_id": blog_id})
    return counts


def load_approved_blog(blog_id: str):
    object_id = parse_object_id(blog_id)
    if object_id is None:
        return None, (jsonify({"message": "Invalid blog id"}), 400)

    blog = get_db().blogs.find_one({"_id": object_id, "status": "approved"})
    if not blog:
        return None, (jsonify({"message": "Blog not found"}), 404)

    return blog, None


def serialize_comment(comment_document, author):
    return {
        "id": str(comment_document["_id"]),
        "comment": comment_document.get("comment", ""),
        "createdAt": isoformat(comment_document.get("created_at")),
        "user": serialize_author(author),
    }


@bp.route("", methods=["POST"])
@jwt_required()
def create_blog():
    author, user_error = require_active_user()
    if user_error:
        return user_error

    try:
        blog = parse_blog_payload(request.get_json(silent=True))
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code

    now = datetime.utcnow()
    blog.update({"author_id": author["_id"], "created_at": now, "updated_at": now})
    blog["_id"] = get_db().blogs.insert_one(blog).inserted_id

    if blog["status"] == "pending":
        get_service("notifier").notify_blog_submitted(blog)

    current_app.logger.info(
        "User %s created blog %s (%s)", author["_id"], blog["_id"], blog["status"]
    )
    return jsonify({"blog": serialize_blog(blog)}), 201


@bp.route("", methods=["GET"])
def list_blogs():
    page, limit = parse_page_args(request.args)
    query = {"status": "approved"}
    search = (request.args.get("search") or "").strip()
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"title": pattern}, {"description": pattern}, {"tags": pattern}]

    db = get_db()
    total = db.blogs.count_documents(query)
    blogs = list(
        db.blogs.find(query)
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    authors = users_by_id(blog.get("author_id") for blog in blogs)

    return jsonify(
        {
            "blogs": [
                serialize_blog(
                    blog,
                    author=authors.get(blog.get("author_id"), {}),
                    counts=blog_counts(blog["_id"]),
                )
                for blog in blogs
            ],
            "total": total,
            "page": page,
            "pageSize": limit,
        }
    )


@bp.route("/mine", methods=["GET"])
@jwt_required()
def list_my_blogs():
    author, user_error = require_user()
    if user_error:
        return user_error

    cursor = get_db().blogs.find({"author_id": author["_id"]}).sort("created_at", -1)
    return jsonify({"blogs": [serialize_blog(blog) for blog in cursor]})


@bp.route("/<blog_id>", methods=["GET"])
def get_blog(blog_id: str):
    blog, load_error = load_approved_blog(blog_id)
    if load_error:
        return load_error

    author = get_db().users.find_one({"_id": blog.get("author_id")})
    return jsonify(
        {"blog": serialize_blog(blog, author=author or {}, counts=blog_counts(blog["_id"]))}
    )


@bp.route("/<blog_id>/comments", methods=["GET"])
def list_comments(blog_id: str):
    blog, load_error = load_approved_blog(blog_id)
    if load_error:
        return load_error

    comments = list(
        get_db().blog_comments.find({"blog_id": blog["_id"]})
        .sort("created_at", -1)
        .limit(RECENT_COMMENTS_LIMIT)
    )
    authors = users_by_id(comment.get("user_id") for comment in comments)
    return jsonify(
        {
            "comments": [
                serialize_comment(comment, authors.get(comment.get("user_id")))
                for comment in comments
            ]
        }
    )


@bp.route("/<blog_id>/comments", methods=["POST"])
@jwt_required()
def add_comment(blog_id: str):
    user, user_error = require_active_user()
    if user_error:
        return user_error

    payload = request.get_json(silent=True) or {}
    try:
        reject_unknown_fields(payload, {"comment"})
        text = parse_comment(payload.get("comment"))
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code

    blog, load_error = load_approved_blog(blog_id)
    if load_error:
        return load_error

    comment = {
        "blog_id": blog["_id"],
        "user_id": user["_id"],
        "comment": text,
        "created_at": datetime.utcnow(),
    }
    comment["_id"] = get_db().blog_comments.insert_one(comment).inserted_id
    return jsonify({"comment": serialize_comment(comment, user)}), 201


@bp.route("/<blog_id>/feedback/me", methods=["GET"])
@jwt_required()
def get_my_feedback(blog_id: str):
    user, user_error = require_user()
    if user_error:
        return user_error

    object_id = parse_object_id(blog_id)
    if object_id is None:
        return jsonify({"message": "Invalid blog id"}), 400

    feedback = get_db().blog_feedback.find_one(
        {"blog_id": object_id, "user_id": user["_id"]}
    )
    return jsonify({"feedback": {"helpful": feedback["helpful"]} if feedback else None})


@bp.route("/<blog_id>/feedback", methods=["POST"])
@jwt_required()
def submit_feedback(blog_id: str):
    user, user_error = require_active_user()
    if user_error:
        return user_error

    try:
        helpful = parse_helpful(request.get_json(silent=True))
    except ValidationError as exc:
        return jsonify(exc.to_dict()), exc.status_code

    blog, load_error = load_approved_blog(blog_id)
    if load_error:
        return load_error

    now = datetime.utcnow()
    # One vote per reader; voting again replaces the earlier answer.
    feedback = get_db().blog_feedback.find_one_and_update(
        {"blog_id": blog["_id"], "user_id": user["_id"]},
        {"$set": {"helpful": helpful, "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )

    return jsonify(
        {"feedback": {"helpful": feedback["helpful"]}, **feedback_summary(blog["_id"])}
    )
