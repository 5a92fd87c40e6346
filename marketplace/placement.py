"""Order placement: reserve, charge, persist, compensate, notify.

Reservation and order creation are two writes on two collections. Once
units are claimed, any failure up to and including the order insert
releases them again before the failure is reported. If the release fails
too the product stays short of units; that case is logged at CRITICAL and
left for an operator.
"""
import logging
from datetime import datetime
from typing import Dict, NamedTuple

from .commission import compute_charges
from .errors import PersistenceError
from .inventory import claim_units, release_reservation, settle_sold_out

logger = logging.getLogger(__name__)


class PlacementResult(NamedTuple):
    order: dict
    product: dict
    commission_rate: float


class OrderPlacementService:
    def __init__(self, products, orders, rate_provider, notifier):
        self.products = products
        self.orders = orders
        self.rate_provider = rate_provider
        self.notifier = notifier

    def place_order(self, buyer_id, product_id, quantity: int, delivery: Dict[str, str]) -> PlacementResult:
        reservation = claim_units(self.products, product_id, quantity, buyer_id)
        reserved = reservation.product

        try:
            reservation = settle_sold_out(self.products, reservation)

            commission_rate = self.rate_provider.current_rate()
            charges = compute_charges(reserved.get("price", 0), quantity, commission_rate)

            order_document = {
                "product_id": reserved["_id"],
                "buyer_id": buyer_id,
                "seller_id": reserved.get("seller_id"),
                "quantity": quantity,
                "price": charges.subtotal,
                "commission_rate": commission_rate,
                "commission_amount": charges.commission_amount,
                "total_amount": charges.total,
                "delivery": dict(delivery),
                "created_at": datetime.utcnow(),
            }
            result = self.orders.insert_one(order_document)
        except Exception as exc:
            logger.error(
                "Create order for product %s failed, releasing %s reserved units",
                product_id,
                quantity,
                exc_info=True,
            )
            self._compensate(reservation)
            raise PersistenceError("Failed to place order") from exc

        order_document["_id"] = result.inserted_id
        logger.info(
            "Order %s placed for product %s (quantity=%s, total=%.2f)",
            result.inserted_id,
            product_id,
            quantity,
            charges.total,
        )

        try:
            self.notifier.notify_order_placed(order_document, reserved, delivery)
        except Exception:
            logger.error("Create order notification failed", exc_info=True)

        return PlacementResult(order_document, reservation.snapshot, commission_rate)

    def _compensate(self, reservation) -> None:
        try:
            release_reservation(self.products, reservation)
        except Exception:
            logger.critical(
                "Compensation failed: product %s is missing %s units and may be stuck as sold",
                reservation.product.get("_id"),
                reservation.quantity,
                exc_info=True,
            )
