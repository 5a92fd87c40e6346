"""Commission math and the commission rate provider.

Every order stores the rate that applied when it was placed, so the
provider is read exactly once per placement. Rates live in the
``commission_history`` collection; each placement re-reads the latest
entry, so every worker process picks up an admin change on its next order.
"""
import logging
import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Optional

from pymongo.errors import PyMongoError

DEFAULT_COMMISSION_RATE = 0.05

_CENT = Decimal("0.01")

logger = logging.getLogger(__name__)


class Charges(NamedTuple):
    subtotal: float
    commission_amount: float
    total: float


def _to_decimal(value) -> Decimal:
    # str() keeps 19.99 as 19.99 instead of its binary expansion.
    return Decimal(str(value))


def round_currency(value) -> Decimal:
    return _to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def compute_charges(unit_price, quantity: int, rate) -> Charges:
    subtotal = round_currency(_to_decimal(unit_price) * int(quantity))
    commission_amount = round_currency(subtotal * _to_decimal(rate))
    total = round_currency(subtotal + commission_amount)
    return Charges(float(subtotal), float(commission_amount), float(total))


def normalize_commission_rate(value) -> Optional[float]:
    """Return a fraction in [0, 1], or None when the value is unusable.

    Values above 1 are read as percentages, so ``5`` means ``0.05``.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        raw = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(raw):
        return None

    normalized = raw / 100 if raw > 1 else raw
    if normalized < 0 or normalized > 1:
        return None
    return normalized


class CommissionRateProvider:
    """Holds the platform commission rate.

    The configured value is the fallback; ``hydrate`` and ``set_rate``
    overlay it with the latest entry of the ``commission_history``
    collection.
    """

    def __init__(self, history_collection=None, configured_rate=None):
        self._history = history_collection
        normalized = normalize_commission_rate(configured_rate)
        if configured_rate is not None and normalized is None:
            logger.warning(
                "Ignoring invalid commission rate %r, using default %.2f",
                configured_rate,
                DEFAULT_COMMISSION_RATE,
            )
        self._configured_rate = (
            normalized if normalized is not None else DEFAULT_COMMISSION_RATE
        )
        self._stored_rate: Optional[float] = None

    def get_rate(self) -> float:
        if self._stored_rate is not None:
            return self._stored_rate
        return self._configured_rate

    def set_rate(self, value, created_by=None) -> float:
        normalized = normalize_commission_rate(value)
        if normalized is None:
            return self.get_rate()

        if self._history is not None:
            self._history.insert_one(
                {
                    "rate": normalized,
                    "created_by": created_by,
                    "created_at": datetime.utcnow(),
                }
            )
        self._stored_rate = normalized
        logger.info("Commission rate set to %.4f", normalized)
        return normalized

    def current_rate(self) -> float:
        """Re-read the latest stored rate so changes made by another worker
        apply to the next order. Falls back to the last known rate when the
        history cannot be read.
        """
        try:
            return self.hydrate()
        except PyMongoError as exc:
            logger.warning(
                "Unable to refresh commission rate, keeping %.4f: %s", self.get_rate(), exc
            )
            return self.get_rate()

    def hydrate(self) -> float:
        if self._history is None:
            return self.get_rate()

        latest = self._history.find_one({}, sort=[("created_at", -1), ("_id", -1)])
        if latest is not None:
            stored = normalize_commission_rate(latest.get("rate"))
            if stored is not None:
                self._stored_rate = stored
        return self.get_rate()
