"""
Status resolver — maps a stored order to its canonical bucket.

Orders written by older console releases use the legacy vocabulary
(pending / processing / confirmed / shipped / delivered); newer writers use
the current one (to_pay / to_ship / ...). A legacy "pending" is ambiguous on
its own: it means "awaiting payment" for prepaid methods but "ready to ship"
once paid or when payment is collected on delivery.

Every consumer (list filters, counters, detail views, bulk repair) goes
through resolve(); nothing else compares raw status strings to decide what
state an order is in.
"""
from collections import Counter
from typing import Iterable, Union

from domain.enums import OrderStatus, PaymentMethod, PaymentStatus, StatusBucket

Resolved = Union[StatusBucket, str]

_CURRENT = {
    OrderStatus.TO_PAY: StatusBucket.TO_PAY,
    OrderStatus.TO_SHIP: StatusBucket.TO_SHIP,
    OrderStatus.TO_RECEIVE: StatusBucket.TO_RECEIVE,
    OrderStatus.COMPLETED: StatusBucket.COMPLETED,
    OrderStatus.RETURNED: StatusBucket.RETURNED,
    OrderStatus.CANCELLED: StatusBucket.CANCELLED,
}

# pending is absent: it depends on payment, see resolve()
_LEGACY = {
    OrderStatus.CONFIRMED: StatusBucket.TO_SHIP,
    OrderStatus.PROCESSING: StatusBucket.TO_SHIP,
    OrderStatus.SHIPPED: StatusBucket.TO_RECEIVE,
    OrderStatus.DELIVERED: StatusBucket.COMPLETED,
    OrderStatus.CANCELLED: StatusBucket.CANCELLED,
}


def _value(raw) -> str | None:
    if raw is None:
        return None
    return raw.value if hasattr(raw, "value") else str(raw)


def resolve(raw_status, payment_status, payment_method) -> Resolved:
    """
    Resolve (stored status, payment status, payment method) to a bucket.

    Accepts enum members or raw strings. An unrecognised raw status is
    returned unchanged so callers can surface it as unknown.
    """
    raw = _value(raw_status)
    try:
        status = OrderStatus(raw)
    except ValueError:
        return raw

    if status in _CURRENT:
        return _CURRENT[status]

    if status is OrderStatus.PENDING:
        if (
            _value(payment_status) == PaymentStatus.PAID.value
            or _value(payment_method) == PaymentMethod.CASH_ON_DELIVERY.value
        ):
            return StatusBucket.TO_SHIP
        return StatusBucket.TO_PAY

    return _LEGACY[status]


def resolve_order(order) -> Resolved:
    """resolve() applied to anything with the Order column attributes."""
    return resolve(order.order_status, order.payment_status, order.payment_method)


def is_known(resolved: Resolved) -> bool:
    return isinstance(resolved, StatusBucket)


def bucket_key(resolved: Resolved) -> str:
    """Stable string key for a resolution (bucket value, or the raw status)."""
    return resolved.value if isinstance(resolved, StatusBucket) else str(resolved)


def matches_bucket(order, bucket: StatusBucket) -> bool:
    return resolve_order(order) == bucket


def count_by_bucket(orders: Iterable) -> dict[str, int]:
    """
    Count orders per bucket. Every bucket appears (possibly 0); unknown raw
    statuses get their own key so they stay visible.
    """
    counts = Counter(bucket_key(resolve_order(o)) for o in orders)
    result = {b.value: 0 for b in StatusBucket}
    result.update(counts)
    return result
