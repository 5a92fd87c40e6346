import math
from datetime import datetime
from typing import Dict, List, Optional

from bson import ObjectId


def isoformat(value) -> Optional[str]:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is not None:
        return value.isoformat()
    return f"{value.isoformat()}Z"


def stringify_id(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, ObjectId):
        return str(value)
    return str(value).strip() or None


def safe_float(value, default=0.0):
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return default
    if math.isfinite(numeric):
        return numeric
    return default


def safe_int(value, default=0):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def full_name(user_document) -> str:
    if not user_document:
        return ""
    first = str(user_document.get("first_name") or "").strip()
    last = str(user_document.get("last_name") or "").strip()
    return f"{first} {last}".strip()


def serialize_user(user_document) -> Dict[str, object]:
    if not user_document:
        return {}

    return {
        "id": stringify_id(user_document.get("_id")),
        "firstName": user_document.get("first_name", "") or "",
        "lastName": user_document.get("last_name", "") or "",
        "email": user_document.get("email", "") or "",
        "phone": user_document.get("phone", "") or "",
        "gender": user_document.get("gender", "") or "",
        "address": user_document.get("address", "") or "",
        "avatarUrl": user_document.get("avatar_url", "") or "",
        "role": user_document.get("role", "user") or "user",
        "frozenUntil": isoformat(user_document.get("frozen_until")),
        "createdAt": isoformat(user_document.get("created_at")),
        "updatedAt": isoformat(user_document.get("updated_at")),
    }


def serialize_seller_contact(user_document) -> Optional[Dict[str, str]]:
    if not user_document:
        return None
    return {
        "id": stringify_id(user_document.get("_id")),
        "firstName": user_document.get("first_name", "") or "",
        "lastName": user_document.get("last_name", "") or "",
        "email": user_document.get("email", "") or "",
        "phone": user_document.get("phone", "") or "",
    }


def serialize_product(product_document, seller=None) -> Optional[Dict[str, object]]:
    if not product_document:
        return None

    attributes: List[Dict[str, str]] = []
    for entry in product_document.get("attributes") or []:
        if isinstance(entry, dict) and entry.get("key"):
            attributes.append(
                {"key": str(entry["key"]), "value": str(entry.get("value") or "")}
            )

    images: List[Dict[str, str]] = []
    for entry in product_document.get("images") or []:
        if isinstance(entry, dict) and entry.get("url"):
            images.append({"url": str(entry["url"])})

    serialized = {
        "id": stringify_id(product_document.get("_id")),
        "sellerId": stringify_id(product_document.get("seller_id")),
        "title": product_document.get("title", "") or "",
        "category": product_document.get("category", "") or "",
        "condition": product_document.get("condition", "") or "",
        "price": round(safe_float(product_document.get("price")), 2),
        "negotiable": bool(product_document.get("negotiable")),
        "quantity": safe_int(product_document.get("quantity")),
        "location": product_document.get("location", "") or "",
        "description": product_document.get("description", "") or "",
        "tags": [str(tag) for tag in product_document.get("tags") or []],
        "attributes": attributes,
        "images": images,
        "status": product_document.get("status", "draft") or "draft",
        "createdAt": isoformat(product_document.get("created_at")),
        "updatedAt": isoformat(product_document.get("updated_at")),
    }
    if seller is not None:
        serialized["seller"] = serialize_seller_contact(seller)
    return serialized


def serialize_delivery(delivery) -> Dict[str, str]:
    delivery = delivery if isinstance(delivery, dict) else {}
    serialized = {
        "name": delivery.get("name", "") or "",
        "email": delivery.get("email", "") or "",
        "phone": delivery.get("phone", "") or "",
        "address": delivery.get("address", "") or "",
        "city": delivery.get("city", "") or "",
        "postalCode": delivery.get("postal_code", "") or "",
    }
    if delivery.get("professional_website"):
        serialized["professionalWebsite"] = delivery["professional_website"]
    if delivery.get("additional_details"):
        serialized["additionalDetails"] = delivery["additional_details"]
    return serialized


def serialize_order(order_document) -> Optional[Dict[str, object]]:
    if not order_document:
        return None

    return {
        "id": stringify_id(order_document.get("_id")),
        "productId": stringify_id(order_document.get("product_id")),
        "buyerId": stringify_id(order_document.get("buyer_id")),
        "sellerId": stringify_id(order_document.get("seller_id")),
        "quantity": safe_int(order_document.get("quantity")),
        "price": safe_float(order_document.get("price")),
        "commissionRate": safe_float(order_document.get("commission_rate")),
        "commissionAmount": safe_float(order_document.get("commission_amount")),
        "totalAmount": safe_float(order_document.get("total_amount")),
        "delivery": serialize_delivery(order_document.get("delivery")),
        "createdAt": isoformat(order_document.get("created_at")),
    }


def serialize_notification(notification_document) -> Dict[str, object]:
    return {
        "id": stringify_id(notification_document.get("_id")),
        "type": notification_document.get("type", "") or "",
        "message": notification_document.get("message", "") or "",
        "isRead": bool(notification_document.get("is_read")),
        "createdAt": isoformat(notification_document.get("created_at")),
        "productId": stringify_id(notification_document.get("product_id")),
        "blogId": stringify_id(notification_document.get("blog_id")),
    }


def serialize_author(user_document) -> Optional[Dict[str, str]]:
    if not user_document:
        return None
    return {
        "id": stringify_id(user_document.get("_id")),
        "name": full_name(user_document),
        "avatarUrl": user_document.get("avatar_url", "") or "",
    }


def serialize_blog(blog_document, author=None, counts=None) -> Optional[Dict[str, object]]:
    if not blog_document:
        return None

    serialized = {
        "id": stringify_id(blog_document.get("_id")),
        "authorId": stringify_id(blog_document.get("author_id")),
        "title": blog_document.get("title", "") or "",
        "description": blog_document.get("description", "") or "",
        "tags": [str(tag) for tag in blog_document.get("tags") or []],
        "images": [
            {"url": str(entry["url"])}
            for entry in blog_document.get("images") or []
            if isinstance(entry, dict) and entry.get("url")
        ],
        "status": blog_document.get("status", "pending") or "pending",
        "createdAt": isoformat(blog_document.get("created_at")),
        "updatedAt": isoformat(blog_document.get("updated_at")),
    }
    if author is not None:
        serialized["author"] = serialize_author(author)
    if counts is not None:
        serialized.update(counts)
    return serialized


def serialize_complaint(complaint_document, product=None) -> Dict[str, object]:
    reply = complaint_document.get("admin_reply") or {}
    return {
        "id": stringify_id(complaint_document.get("_id")),
        "subject": complaint_document.get("subject", "") or "",
        "message": complaint_document.get("message", "") or "",
        "imageUrl": complaint_document.get("image_url", "") or "",
        "status": complaint_document.get("status", "open") or "open",
        "createdAt": isoformat(complaint_document.get("created_at")),
        "adminReply": (
            {
                "message": reply.get("message", "") or "",
                "repliedAt": isoformat(reply.get("replied_at")),
            }
            if reply
            else None
        ),
        "product": (
            {"id": stringify_id(product.get("_id")), "title": product.get("title", "") or ""}
            if product
            else None
        ),
    }
