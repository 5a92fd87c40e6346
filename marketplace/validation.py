import math
import re
from typing import Dict, Optional
from urllib.parse import urlparse

from .errors import ValidationError

email_regex = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PRODUCT_CONDITIONS = ("new", "like_new", "good", "fair")
SUBMITTABLE_PRODUCT_STATUSES = ("draft", "pending")
MAX_ADDITIONAL_DETAILS_LENGTH = 500
MAX_COMMENT_LENGTH = 1000

DELIVERY_FIELDS = (
    # (stored field, accepted payload keys, required, label)
    ("name", ("name",), True, "Name"),
    ("email", ("email",), True, "Email"),
    ("phone", ("phone",), True, "Phone"),
    ("address", ("address",), True, "Address"),
    ("city", ("city",), True, "City"),
    ("postal_code", ("postalCode", "postal_code"), True, "Postal code"),
    (
        "professional_website",
        ("professionalWebsite", "professional_website"),
        False,
        "Professional website",
    ),
    (
        "additional_details",
        ("additionalDetails", "additional_details"),
        False,
        "Additional details",
    ),
)

ORDER_PAYLOAD_KEYS = {"productId", "product_id", "quantity", "delivery"}
BLOG_PAYLOAD_KEYS = {"title", "description", "tags", "images", "status"}
SUBMITTABLE_BLOG_STATUSES = ("draft", "pending")
COMPLAINT_PAYLOAD_KEYS = {"subject", "message", "productId", "imageUrl"}
MIN_COMPLAINT_SUBJECT_LENGTH = 3
MIN_COMPLAINT_MESSAGE_LENGTH = 10


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: Optional[str]) -> bool:
    normalized = normalize_email(value)
    return bool(normalized and email_regex.match(normalized))


def is_valid_url(value: Optional[str]) -> bool:
    parsed = urlparse(str(value or "").strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def clean_string(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def first_present(payload: Dict, keys):
    for key in keys:
        if key in payload:
            return payload.get(key)
    return None


def reject_unknown_fields(payload: Dict, allowed) -> None:
    unknown = sorted(set(payload) - set(allowed))
    if unknown:
        raise ValidationError(f"Unrecognized field: {unknown[0]}")


def parse_positive_int(value, message: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(message)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(message)
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        raise ValidationError(message)
    if not numeric.is_integer() or numeric < 1:
        raise ValidationError(message)
    return int(numeric)


def parse_delivery(payload) -> Dict[str, str]:
    if not isinstance(payload, dict):
        raise ValidationError("Delivery details are required")

    delivery: Dict[str, str] = {}
    for field, aliases, required, label in DELIVERY_FIELDS:
        value = clean_string(first_present(payload, aliases))
        if not value:
            if required:
                raise ValidationError(f"{label} is required")
            continue
        delivery[field] = value

    if not is_valid_email(delivery["email"]):
        raise ValidationError("Email must be valid")

    website = delivery.get("professional_website")
    if website and not is_valid_url(website):
        raise ValidationError("Professional website must be a valid URL")

    details = delivery.get("additional_details")
    if details and len(details) > MAX_ADDITIONAL_DETAILS_LENGTH:
        raise ValidationError(
            f"Additional details must be at most {MAX_ADDITIONAL_DETAILS_LENGTH} characters"
        )

    return delivery


def parse_order_payload(payload) -> Dict[str, object]:
    """Validate an order request body and return the normalized fields."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid data")

    reject_unknown_fields(payload, ORDER_PAYLOAD_KEYS)

    product_id = clean_string(first_present(payload, ("productId", "product_id")))
    if not product_id:
        raise ValidationError("Product is required")

    quantity = parse_positive_int(payload.get("quantity"), "Quantity must be at least 1")
    delivery = parse_delivery(payload.get("delivery"))

    return {"product_id": product_id, "quantity": quantity, "delivery": delivery}


def parse_tags(value):
    tags = value or []
    if not isinstance(tags, list):
        raise ValidationError("Tags must be a list")
    return [clean_string(tag) for tag in tags if clean_string(tag)]


def parse_images(value):
    images = value or []
    if not isinstance(images, list):
        raise ValidationError("Images must be a list")
    parsed = []
    for entry in images:
        url = clean_string(entry.get("url")) if isinstance(entry, dict) else ""
        if not is_valid_url(url):
            raise ValidationError("Image URL must be valid")
        parsed.append({"url": url})
    return parsed


def parse_product_payload(payload) -> Dict[str, object]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid data")

    document: Dict[str, object] = {}
    for field, label in (
        ("title", "Title"),
        ("category", "Category"),
        ("location", "Location"),
        ("description", "Description"),
    ):
        value = clean_string(payload.get(field))
        if not value:
            raise ValidationError(f"{label} is required")
        document[field] = value

    condition = clean_string(payload.get("condition"))
    if condition not in PRODUCT_CONDITIONS:
        raise ValidationError("Condition is required")
    document["condition"] = condition

    price = payload.get("price")
    if (
        isinstance(price, bool)
        or not isinstance(price, (int, float))
        or not math.isfinite(price)
        or price < 0
    ):
        raise ValidationError("Price must be a non-negative number")
    document["price"] = round(float(price), 2)

    quantity = payload.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Quantity must be a positive whole number")
    document["quantity"] = quantity

    negotiable = payload.get("negotiable", False)
    if not isinstance(negotiable, bool):
        raise ValidationError("Negotiable must be true or false")
    document["negotiable"] = negotiable

    document["tags"] = parse_tags(payload.get("tags"))

    attributes = payload.get("attributes") or []
    if not isinstance(attributes, list):
        raise ValidationError("Attributes must be a list")
    document["attributes"] = []
    for entry in attributes:
        key = clean_string((entry or {}).get("key")) if isinstance(entry, dict) else ""
        value = clean_string((entry or {}).get("value")) if isinstance(entry, dict) else ""
        if not key or not value:
            raise ValidationError("Attributes need a key and a value")
        document["attributes"].append({"key": key, "value": value})

    document["images"] = parse_images(payload.get("images"))

    status = clean_string(payload.get("status")) or "draft"
    if status not in SUBMITTABLE_PRODUCT_STATUSES:
        raise ValidationError("Status must be 'draft' or 'pending'")
    document["status"] = status

    return document


def parse_rating(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError("Rating must be a whole number between 1 and 5")
    return value


def parse_comment(value) -> str:
    comment = clean_string(value)
    if not comment:
        raise ValidationError("Comment is required")
    if len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            f"Comment must be at most {MAX_COMMENT_LENGTH} characters"
        )
    return comment


def parse_blog_payload(payload) -> Dict[str, object]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid data")
    reject_unknown_fields(payload, BLOG_PAYLOAD_KEYS)

    document: Dict[str, object] = {}
    for field, label in (("title", "Title"), ("description", "Description")):
        value = clean_string(payload.get(field))
        if not value:
            raise ValidationError(f"{label} is required")
        document[field] = value

    document["tags"] = parse_tags(payload.get("tags"))
    document["images"] = parse_images(payload.get("images"))

    status = clean_string(payload.get("status")) or "pending"
    if status not in SUBMITTABLE_BLOG_STATUSES:
        raise ValidationError("Status must be 'draft' or 'pending'")
    document["status"] = status

    return document


def parse_helpful(payload) -> bool:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid data")
    reject_unknown_fields(payload, {"helpful"})
    helpful = payload.get("helpful")
    if not isinstance(helpful, bool):
        raise ValidationError("Helpful must be true or false")
    return helpful


def parse_complaint_payload(payload) -> Dict[str, str]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid data")
    reject_unknown_fields(payload, COMPLAINT_PAYLOAD_KEYS)

    subject = clean_string(payload.get("subject"))
    if len(subject) < MIN_COMPLAINT_SUBJECT_LENGTH:
        raise ValidationError("Subject is required")

    message = clean_string(payload.get("message"))
    if len(message) < MIN_COMPLAINT_MESSAGE_LENGTH:
        raise ValidationError("Message is required")

    image_url = clean_string(payload.get("imageUrl"))
    if image_url and not is_valid_url(image_url):
        raise ValidationError("Image URL must be valid")

    return {
        "subject": subject,
        "message": message,
        "product_id": clean_string(payload.get("productId")),
        "image_url": image_url,
    }


def parse_page_args(args, default_limit: int = 6, max_limit: int = 50):
    """Return ``(page, limit)`` from query args, clamped to sane bounds."""
    try:
        page = int(args.get("page") or 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit") or default_limit)
    except (TypeError, ValueError):
        limit = default_limit
    return max(page, 1), min(max(limit, 1), max_limit)
