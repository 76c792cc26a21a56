"""Order records as handed over by the data layer, normalized for the rollups."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

logger = logging.getLogger(__name__)

ORDER_STATUSES: Tuple[str, ...] = (
    "pending",
    "confirmed",
    "preparing",
    "ready",
    "out_for_delivery",
    "delivered",
    "cancelled",
    "unknown",
)
TERMINAL_SUCCESS_STATUSES = frozenset({"delivered"})
TERMINAL_FAILURE_STATUSES = frozenset({"cancelled"})
ACTIVE_STATUSES = frozenset(
    status
    for status in ORDER_STATUSES
    if status not in TERMINAL_SUCCESS_STATUSES | TERMINAL_FAILURE_STATUSES | {"unknown"}
)

STATUS_ALIASES = {
    "placed": "pending",
    "new": "pending",
    "accepted": "confirmed",
    "on_the_way": "out_for_delivery",
    "in_transit": "out_for_delivery",
    "picked_up": "out_for_delivery",
    "completed": "delivered",
    "canceled": "cancelled",
}

# Values above this are epoch milliseconds rather than seconds.
_EPOCH_MILLIS_THRESHOLD = 1e11
_LEADING_NUMBER = re.compile(r"\d+(?:[.,]\d+)?")


class LineItem(BaseModel):
    """One line of an order."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    quantity: int = 1
    unit_price: float = 0.0
    line_subtotal: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _coerce_raw(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        name = _pick(value, "name", "title", "menuItemName")
        quantity = _to_quantity(_pick(value, "quantity", "qty"))
        unit_price = _to_amount(_pick(value, "unit_price", "unitPrice", "price"))
        subtotal = _pick(value, "line_subtotal", "lineSubtotal", "subtotal")
        return {
            "name": str(name).strip() if name is not None else "",
            "quantity": quantity,
            "unit_price": unit_price,
            "line_subtotal": _to_amount(subtotal) if subtotal is not None else quantity * unit_price,
        }


class OrderRecord(BaseModel):
    """A placed food order.

    Accepts the camelCase documents stored by the mobile apps as well as
    snake_case keyword arguments. Malformed values never raise: amounts fall
    back to 0, grouping keys to ``None`` and timestamps to ``None``.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    created_at: Optional[datetime] = None
    status: str = "unknown"
    total: float = 0.0
    delivery_fee: float = 0.0
    restaurant_id: Optional[str] = None
    restaurant_name: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    cuisine: Optional[str] = None
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    region: Optional[str] = None
    items: Tuple[LineItem, ...] = ()
    confirmed_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    rating: Optional[float] = None
    estimated_delivery_minutes: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_raw(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        raw_items = _pick(value, "items", "line_items", "lineItems")
        email = _clean_key(_pick(value, "customer_email", "customerEmail", "userEmail", "user_email"))
        return {
            "id": _clean_key(_pick(value, "id", "order_id", "orderId", "orderNumber")),
            "created_at": normalize_timestamp(_pick(value, "created_at", "createdAt")),
            "status": normalize_status(_pick(value, "status")),
            "total": _to_amount(_pick(value, "total", "pricing.total")),
            "delivery_fee": _to_amount(_pick(value, "delivery_fee", "deliveryFee", "pricing.deliveryFee")),
            "restaurant_id": _clean_key(_pick(value, "restaurant_id", "restaurantId")),
            "restaurant_name": _clean_key(_pick(value, "restaurant_name", "restaurantName")),
            "customer_id": _clean_key(_pick(value, "customer_id", "customerId", "userId", "user_id")),
            "customer_email": email.lower() if email else None,
            "cuisine": _clean_key(_pick(value, "cuisine", "category", "restaurantCuisine")),
            "driver_id": _clean_key(_pick(value, "driver_id", "driverId", "deliveryPartnerId")),
            "driver_name": _clean_key(_pick(value, "driver_name", "driverName")),
            "region": _clean_key(_pick(value, "region", "deliveryAddress.city", "delivery_address.city")),
            "items": _coerce_items(raw_items),
            "confirmed_at": normalize_timestamp(_pick(value, "confirmed_at", "confirmedAt")),
            "picked_up_at": normalize_timestamp(_pick(value, "picked_up_at", "pickedUpAt")),
            "delivered_at": normalize_timestamp(_pick(value, "delivered_at", "deliveredAt")),
            "cancelled_at": normalize_timestamp(_pick(value, "cancelled_at", "cancelledAt")),
            "rating": _to_rating(_pick(value, "rating", "deliveryRating")),
            "estimated_delivery_minutes": _to_minutes(
                _pick(value, "estimated_delivery_minutes", "estimatedDeliveryTime")
            ),
        }

    @property
    def is_delivered(self) -> bool:
        return self.status in TERMINAL_SUCCESS_STATUSES

    @property
    def is_cancelled(self) -> bool:
        return self.status in TERMINAL_FAILURE_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def customer_key(self) -> Optional[str]:
        return self.customer_id or self.customer_email

    @property
    def restaurant_key(self) -> Optional[str]:
        return self.restaurant_id or self.restaurant_name


def normalize_records(raw_records: Optional[Iterable[Any]]) -> List[OrderRecord]:
    """Convert a batch handed over by the data layer into ``OrderRecord`` objects."""

    if raw_records is None:
        raise ValueError("A record batch is required (got None).")

    records: List[OrderRecord] = []
    for index, raw in enumerate(raw_records):
        if isinstance(raw, OrderRecord):
            records.append(raw)
            continue
        if not isinstance(raw, Mapping):
            logger.warning("Skipping record #%s: expected a mapping, got %s", index, type(raw).__name__)
            continue
        try:
            records.append(OrderRecord.model_validate(raw))
        except ValidationError as exc:
            logger.warning("Skipping malformed record #%s: %s", index, exc)
    return records


def normalize_timestamp(value: Any) -> Optional[datetime]:
    """Return ``value`` as an aware UTC datetime, or ``None`` when it cannot be read.

    Supported shapes: ``datetime``/``date`` objects, ISO-8601 strings, epoch
    seconds or milliseconds, Firestore ``{"seconds", "nanoseconds"}`` mappings
    and objects exposing ``to_datetime()`` or ``seconds``/``nanoseconds``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        parsed = _from_epoch(float(value))
    elif isinstance(value, str):
        parsed = _parse_iso(value)
    elif isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
        parsed = _from_firestore(seconds, nanos)
    elif callable(getattr(value, "to_datetime", None)):
        return normalize_timestamp(value.to_datetime())
    elif hasattr(value, "seconds"):
        parsed = _from_firestore(getattr(value, "seconds"), getattr(value, "nanoseconds", 0) or 0)
    else:
        parsed = None

    if parsed is None:
        logger.debug("Unreadable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_status(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        return "unknown"
    key = re.sub(r"[\s\-]+", "_", value.strip().lower())
    key = STATUS_ALIASES.get(key, key)
    if key not in ORDER_STATUSES:
        logger.debug("Unrecognised order status %r", value)
        return "unknown"
    return key


def _parse_iso(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _from_epoch(value: float) -> Optional[datetime]:
    if value != value:
        return None
    if abs(value) > _EPOCH_MILLIS_THRESHOLD:
        value = value / 1000.0
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _from_firestore(seconds: Any, nanos: Any) -> Optional[datetime]:
    try:
        total = float(seconds) + float(nanos) / 1e9
    except (TypeError, ValueError):
        return None
    try:
        return datetime.fromtimestamp(total, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        current: Any = data
        for part in key.split("."):
            if not isinstance(current, Mapping):
                current = None
                break
            current = current.get(part)
        if current is not None:
            return current
    return None


def _clean_key(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _to_amount(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if amount != amount or amount < 0 or amount == float("inf"):
        return 0.0
    return amount


def _to_quantity(value: Any) -> int:
    try:
        quantity = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 1
    return max(quantity, 1)


def _to_rating(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return None
    if rating != rating or not 0 <= rating <= 5:
        return None
    return rating


def _to_minutes(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None
    match = _LEADING_NUMBER.search(str(value))
    if not match:
        return None
    minutes = float(match.group(0).replace(",", "."))
    return minutes if minutes > 0 else None


def _coerce_items(value: Any) -> Tuple[Any, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item for item in value if isinstance(item, (Mapping, LineItem)))


__all__ = [
    "ACTIVE_STATUSES",
    "LineItem",
    "ORDER_STATUSES",
    "OrderRecord",
    "TERMINAL_FAILURE_STATUSES",
    "TERMINAL_SUCCESS_STATUSES",
    "normalize_records",
    "normalize_status",
    "normalize_timestamp",
]
