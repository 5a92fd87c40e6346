"""Seller and admin notifications.

Notifications leave the request path through :class:`NotificationDispatcher`.
With a Redis connection configured the delivery runs in an rq worker with
its own retry policy; without one it runs inline. Either way a failed
hand-off is logged and never reaches the request that triggered it.
"""
import logging
import os
from datetime import datetime
from functools import lru_cache
from typing import Dict, Optional, Tuple

import resend
from pymongo import MongoClient
from redis import Redis
from rq import Queue, Retry

from .database import parse_object_id

logger = logging.getLogger(__name__)

ORDER_PLACED = "order_placed"
LISTING_SUBMITTED = "listing_submitted"
BLOG_SUBMITTED = "blog_submitted"

DEFAULT_MONGO_URI = "mongodb://localhost:27017/marketplace"
DEFAULT_SENDER = "orders@marketplace.local"


@lru_cache(maxsize=1)
def _worker_database():
    client = MongoClient(os.getenv("MONGO_URI", DEFAULT_MONGO_URI))
    return client.get_default_database("marketplace")


def build_queue(redis_url: str, name: str = "notifications") -> Queue:
    return Queue(name, connection=Redis.from_url(redis_url))


def send_email_via_resend(payload: Dict[str, object], api_key: str) -> Tuple[bool, Optional[str]]:
    configured_api_key = (api_key or "").strip()
    if not configured_api_key:
        return False, "Resend API key is not configured."

    previous_api_key = getattr(resend, "api_key", None)
    resend.api_key = configured_api_key
    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        return False, str(exc)
    finally:
        resend.api_key = previous_api_key

    if not isinstance(response, dict) or not response.get("id"):
        return False, str(response)

    return True, None


def email_seller_copy(database, notification: Dict[str, object]) -> None:
    api_key = (os.getenv("RESEND_API_KEY") or "").strip()
    if not api_key or notification.get("type") != ORDER_PLACED:
        return

    seller = database.users.find_one({"_id": notification.get("seller_id")})
    seller_email = (seller or {}).get("email")
    if not seller_email:
        return

    sender = (os.getenv("ORDER_NOTIFICATION_SENDER") or DEFAULT_SENDER).strip()
    sent, error = send_email_via_resend(
        {
            "from": f"Marketplace <{sender}>",
            "to": [seller_email],
            "subject": "You have a new order",
            "text": notification.get("message", ""),
        },
        api_key,
    )
    if not sent:
        logger.warning("Seller email for %s failed: %s", notification.get("product_id"), error)


def deliver_notification(payload: Dict[str, object], database=None):
    """Store a notification document. This is the rq job entry point."""
    if database is None:
        database = _worker_database()

    document = {
        "type": payload["type"],
        "message": payload["message"],
        "product_id": parse_object_id(payload.get("product_id")),
        "seller_id": parse_object_id(payload.get("seller_id")),
        "blog_id": parse_object_id(payload.get("blog_id")),
        "is_read": False,
        "created_at": datetime.utcnow(),
    }
    result = database.notifications.insert_one(document)
    document["_id"] = result.inserted_id

    email_seller_copy(database, document)
    return str(result.inserted_id)


class NotificationDispatcher:
    def __init__(self, database=None, queue: Optional[Queue] = None, max_retries: int = 3):
        self._database = database
        self._queue = queue
        self._max_retries = max_retries

    @property
    def is_queued(self) -> bool:
        return self._queue is not None

    def dispatch(self, payload: Dict[str, object]) -> bool:
        try:
            if self._queue is not None:
                self._queue.enqueue(
                    deliver_notification,
                    payload,
                    retry=Retry(max=self._max_retries),
                )
            else:
                deliver_notification(payload, database=self._database)
        except Exception:
            logger.exception(
                "Notification %s for product %s failed",
                payload.get("type"),
                payload.get("product_id"),
            )
            return False
        return True

    def notify_order_placed(self, order, product, delivery) -> bool:
        quantity = order.get("quantity")
        title = product.get("title", "")
        buyer_name = (delivery or {}).get("name", "")
        return self.dispatch(
            {
                "type": ORDER_PLACED,
                "message": (
                    f'New order ({quantity}) for "{title}" from {buyer_name}. '
                    "Review delivery details and contact the buyer to arrange handoff."
                ),
                "product_id": str(product.get("_id")),
                "seller_id": str(product.get("seller_id")),
            }
        )

    def notify_listing_submitted(self, product) -> bool:
        return self.dispatch(
            {
                "type": LISTING_SUBMITTED,
                "message": f"New listing submitted: {product.get('title', '')}",
                "product_id": str(product.get("_id")),
                "seller_id": str(product.get("seller_id")),
            }
        )

    def notify_blog_submitted(self, blog) -> bool:
        return self.dispatch(
            {
                "type": BLOG_SUBMITTED,
                "message": f"New blog submitted: {blog.get('title', '')}",
                "blog_id": str(blog.get("_id")),
                "seller_id": str(blog.get("author_id")),
            }
        )
