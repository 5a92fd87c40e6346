"""Inventory reservation against the ``products`` collection.

The only serialization point between concurrent buyers is the conditional
``find_one_and_update`` in :func:`reserve_inventory`. The pre-check read
gives callers precise error messages; it never decides on its own whether
units are taken.
"""
import logging
from datetime import datetime
from typing import NamedTuple

from pymongo import ReturnDocument

from .errors import BusinessRuleError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

PRODUCT_STATUSES = ("draft", "pending", "approved", "rejected", "sold")


class Reservation(NamedTuple):
    product: dict
    snapshot: dict
    quantity: int


def units_label(count: int) -> str:
    return f"{count} unit{'' if count == 1 else 's'}"


def reserve_inventory(products, product_id, quantity: int, buyer_id) -> Reservation:
    """Take ``quantity`` units of an approved product for ``buyer_id``.

    ``product`` on the returned reservation is the document right after the
    decrement, ``snapshot`` is the same document after the sold transition
    when the last unit went.
    """
    return settle_sold_out(
        products, claim_units(products, product_id, quantity, buyer_id)
    )


def claim_units(products, product_id, quantity: int, buyer_id) -> Reservation:
    """Decrement stock without touching the listing status.

    Callers that run further writes after the claim settle the sold flip
    themselves, so a failure there can still release the units.
    """
    if quantity < 1:
        raise BusinessRuleError("Quantity must be at least 1")

    current = products.find_one({"_id": product_id})
    available = int(current.get("quantity") or 0) if current else 0
    if not current or current.get("status") != "approved" or available < 1:
        raise NotFoundError("Product is not available")

    seller_id = current.get("seller_id")
    if seller_id is not None and str(seller_id) == str(buyer_id):
        raise BusinessRuleError("You cannot buy your own listing")

    if quantity > available:
        raise BusinessRuleError(
            f"Only {units_label(available)} available", available=available
        )

    updated = products.find_one_and_update(
        {"_id": product_id, "status": "approved", "quantity": {"$gte": quantity}},
        {"$inc": {"quantity": -quantity}, "$set": {"updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        logger.info(
            "Reservation of %s for product %s lost to a concurrent buyer",
            quantity,
            product_id,
        )
        raise ConflictError("Product is no longer available")

    return Reservation(product=updated, snapshot=updated, quantity=quantity)


def settle_sold_out(products, reservation: Reservation) -> Reservation:
    if int(reservation.product.get("quantity") or 0) > 0:
        return reservation
    sold = mark_sold(products, reservation.product["_id"])
    return reservation._replace(snapshot=sold or reservation.product)


def mark_sold(products, product_id):
    # Conditioned on quantity so a restock that lands first is never
    # hidden behind a sold flag.
    return products.find_one_and_update(
        {"_id": product_id, "quantity": {"$lte": 0}},
        {"$set": {"status": "sold", "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


def release_reservation(products, reservation: Reservation):
    """Give the reserved units back and reopen the listing."""
    return products.find_one_and_update(
        {"_id": reservation.product["_id"]},
        {
            "$inc": {"quantity": reservation.quantity},
            "$set": {"status": "approved", "updated_at": datetime.utcnow()},
        },
        return_document=ReturnDocument.AFTER,
    )
