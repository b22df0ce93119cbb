"""
Order service — guarded transitions of an order's status and payment fields.

Each transition reads the order, computes the new field values, commits,
and then emits a best-effort audit entry. Reads and writes are not wrapped
in a transaction spanning the read: a concurrent writer may land between
them and the last write wins.

Status rules:
    - COD payment is collected at delivery, so moving a COD order to
      completed/delivered also marks it paid.
    - Paying a still-pending order advances it to confirmed (ready to ship).
    - Only cancelled orders may be erased.
"""
import logging
from collections import Counter

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, utcnow
from domain.actor import Actor
from domain.constants import AUDIT_ACTION_DELETE, AUDIT_ACTION_UPDATE, RESOURCE_ORDER
from domain.enums import OrderStatus, PaymentMethod, PaymentStatus, StatusBucket
from domain.errors import InvalidStateError, NotFoundError, ValidationError
from services import audit_service, status_resolver
from services.store_guard import store_call

logger = logging.getLogger(__name__)

_COMPLETION_STATUSES = (OrderStatus.COMPLETED.value, OrderStatus.DELIVERED.value)
_SHIP_READY_STATUSES = (OrderStatus.CONFIRMED.value, OrderStatus.PROCESSING.value)


def _require_confirmation(confirmed: bool, operation: str) -> None:
    if not confirmed:
        raise ValidationError(f"{operation} requires explicit confirmation", field="confirm")


# ════════════════════════════════════════════════════════════════════
# Reads
# ════════════════════════════════════════════════════════════════════


async def get_order(db: AsyncSession, order_id: str) -> Order:
    res = await db.execute(select(Order).where(Order.id == order_id))
    order = res.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", order_id)
    return order


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def list_orders(
    db: AsyncSession,
    *,
    bucket: StatusBucket | None = None,
    search: str | None = None,
) -> list[Order]:
    """All orders newest first, optionally narrowed to one resolved bucket."""
    q = select(Order).order_by(Order.created_at.desc())
    if search:
        term = f"%{_escape_like(search.strip().lower())}%"
        q = q.where(
            or_(
                Order.order_number.ilike(term, escape="\\"),
                Order.customer_name.ilike(term, escape="\\"),
                Order.customer_email.ilike(term, escape="\\"),
            )
        )
    res = await db.execute(q)
    orders = list(res.scalars().all())
    if bucket is not None:
        orders = [o for o in orders if status_resolver.matches_bucket(o, bucket)]
    return orders


async def list_orders_for_customer(db: AsyncSession, *, customer_email: str) -> list[Order]:
    res = await db.execute(
        select(Order)
        .where(Order.customer_email == customer_email)
        .order_by(Order.created_at.desc())
    )
    return list(res.scalars().all())


def summarize(orders: list[Order]) -> dict:
    """Dashboard figures over an already-loaded order list."""
    method_counts = {m.value: 0 for m in PaymentMethod}
    product_qty: Counter = Counter()
    product_revenue: Counter = Counter()
    total_revenue = paid_revenue = pending_revenue = 0.0

    for o in orders:
        amount = o.total or 0.0
        total_revenue += amount
        if o.payment_status == PaymentStatus.PAID.value:
            paid_revenue += amount
        else:
            pending_revenue += amount
        if o.payment_method in method_counts:
            method_counts[o.payment_method] += 1
        for item in o.items:
            name = item.product_name or "Unknown Product"
            product_qty[name] += item.quantity or 1
            line = item.total_price if item.total_price is not None else (item.unit_price or 0.0) * (item.quantity or 1)
            product_revenue[name] += line

    top_products = [
        {"name": name, "count": count, "revenue": round(product_revenue[name], 2)}
        for name, count in product_qty.most_common(5)
    ]

    return {
        "total_orders": len(orders),
        "buckets": status_resolver.count_by_bucket(orders),
        "total_revenue": round(total_revenue, 2),
        "paid_revenue": round(paid_revenue, 2),
        "pending_revenue": round(pending_revenue, 2),
        "average_order_value": round(total_revenue / len(orders), 2) if orders else 0.0,
        "payment_methods": method_counts,
        "top_products": top_products,
    }


# ════════════════════════════════════════════════════════════════════
# Transitions
# ════════════════════════════════════════════════════════════════════


async def _audit_change(db: AsyncSession, actor: Actor | None, order: Order, changes: dict) -> None:
    await audit_service.record(
        db,
        action=AUDIT_ACTION_UPDATE,
        actor=actor,
        resource_type=RESOURCE_ORDER,
        resource_id=order.id,
        details={"orderNumber": order.order_number, "changes": changes},
    )


def _diff(order: Order, updates: dict) -> dict:
    return {
        field: {"oldValue": getattr(order, field), "newValue": value}
        for field, value in updates.items()
        if getattr(order, field) != value
    }


async def _apply(
    db: AsyncSession,
    order: Order,
    updates: dict,
    *,
    operation: str,
    actor: Actor | None,
) -> Order:
    changes = _diff(order, updates)
    async with store_call(db, operation):
        for field, value in updates.items():
            setattr(order, field, value)
        order.updated_at = utcnow()
        await db.commit()
    logger.info(f"Order {order.order_number} ({order.id}): {operation} {changes}")
    await _audit_change(db, actor, order, changes)
    return order


async def set_status(
    db: AsyncSession,
    order_id: str,
    new_status: str,
    *,
    actor: Actor | None = None,
) -> Order:
    """
    Write a raw order status (either vocabulary).

    A COD order still awaiting payment is marked paid when it reaches
    completed/delivered.
    """
    try:
        status = OrderStatus(new_status)
    except ValueError:
        raise ValidationError(f"Unknown order status '{new_status}'", field="orderStatus")

    order = await get_order(db, order_id)
    updates = {"order_status": status.value}
    if (
        order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value
        and order.payment_status == PaymentStatus.PENDING.value
        and status.value in _COMPLETION_STATUSES
    ):
        updates["payment_status"] = PaymentStatus.PAID.value

    return await _apply(db, order, updates, operation="set status", actor=actor)


async def mark_paid(
    db: AsyncSession,
    order_id: str,
    *,
    confirmed: bool,
    actor: Actor | None = None,
) -> Order:
    """Mark paid; a still-pending order advances to confirmed."""
    _require_confirmation(confirmed, "Marking an order as paid")
    order = await get_order(db, order_id)
    updates = {"payment_status": PaymentStatus.PAID.value}
    if order.order_status == OrderStatus.PENDING.value:
        updates["order_status"] = OrderStatus.CONFIRMED.value
    return await _apply(db, order, updates, operation="mark paid", actor=actor)


async def mark_unpaid(
    db: AsyncSession,
    order_id: str,
    *,
    confirmed: bool,
    actor: Actor | None = None,
) -> Order:
    """
    Revert payment to pending. Refused once the order is delivered/completed.
    A prepaid order that was promoted to ship-ready drops back to pending.
    """
    _require_confirmation(confirmed, "Marking an order as unpaid")
    order = await get_order(db, order_id)
    if order.order_status in _COMPLETION_STATUSES:
        raise InvalidStateError(
            f"Cannot mark a {order.order_status} order as unpaid",
            details={"orderId": order.id, "orderStatus": order.order_status},
        )
    updates = {"payment_status": PaymentStatus.PENDING.value}
    if (
        order.payment_method != PaymentMethod.CASH_ON_DELIVERY.value
        and order.order_status in _SHIP_READY_STATUSES
    ):
        updates["order_status"] = OrderStatus.PENDING.value
    return await _apply(db, order, updates, operation="mark unpaid", actor=actor)


async def set_payment_status_bulk(
    db: AsyncSession,
    order_ids: list[str],
    *,
    paid: bool,
    confirmed: bool,
    actor: Actor | None = None,
) -> dict:
    """
    mark_paid / mark_unpaid over many orders. Orders that are missing or in
    a state that refuses the change are skipped and reported.
    """
    _require_confirmation(confirmed, "Changing payment status")
    updated: list[str] = []
    skipped: list[dict] = []
    for order_id in order_ids:
        try:
            if paid:
                await mark_paid(db, order_id, confirmed=True, actor=actor)
            else:
                await mark_unpaid(db, order_id, confirmed=True, actor=actor)
            updated.append(order_id)
        except (NotFoundError, InvalidStateError) as e:
            skipped.append({"orderId": order_id, "reason": e.message})
    return {"updated": updated, "skipped": skipped}


async def set_admin_done(
    db: AsyncSession,
    order_ids: list[str],
    *,
    done: bool,
    actor: Actor | None = None,
) -> int:
    """Set the operator review flag on many orders. Returns the number flagged."""
    if not order_ids:
        return 0
    res = await db.execute(select(Order).where(Order.id.in_(order_ids)))
    orders = list(res.scalars().all())
    async with store_call(db, "set admin flag"):
        now = utcnow()
        for order in orders:
            order.admin_done = done
            order.admin_updated_at = now
        await db.commit()
    await audit_service.record(
        db,
        action=AUDIT_ACTION_UPDATE,
        actor=actor,
        resource_type=RESOURCE_ORDER,
        resource_id="*",
        details={
            "field": "adminDone",
            "newValue": done,
            "count": len(orders),
            "orderIds": [o.id for o in orders],
        },
    )
    return len(orders)


async def cancel(
    db: AsyncSession,
    order_id: str,
    *,
    confirmed: bool,
    actor: Actor | None = None,
) -> Order:
    """Cancel any order that has not reached a terminal bucket."""
    _require_confirmation(confirmed, "Cancelling an order")
    order = await get_order(db, order_id)
    resolved = status_resolver.resolve_order(order)
    if status_resolver.is_known(resolved) and resolved.is_terminal:
        raise InvalidStateError(
            f"Order {order.order_number} is already {resolved.label.lower()} and cannot be cancelled",
            details={"orderId": order.id, "orderStatus": order.order_status},
        )
    return await _apply(
        db, order, {"order_status": OrderStatus.CANCELLED.value}, operation="cancel", actor=actor
    )


async def delete_order(
    db: AsyncSession,
    order_id: str,
    *,
    actor: Actor | None = None,
) -> None:
    """
    Erase a cancelled order. Any other status is refused regardless of the
    confirmations the caller collected.
    """
    order = await get_order(db, order_id)
    if order.order_status != OrderStatus.CANCELLED.value:
        raise InvalidStateError(
            "Only cancelled orders can be deleted",
            details={"orderId": order.id, "orderStatus": order.order_status},
        )

    snapshot = {
        "orderNumber": order.order_number,
        "customerEmail": order.customer_email,
        "total": order.total,
        "paymentStatus": order.payment_status,
    }
    async with store_call(db, "delete order"):
        await db.delete(order)
        await db.commit()
    logger.info(f"Order {snapshot['orderNumber']} ({order_id}) permanently deleted")

    await audit_service.record(
        db,
        action=AUDIT_ACTION_DELETE,
        actor=actor,
        resource_type=RESOURCE_ORDER,
        resource_id=order_id,
        details=snapshot,
    )


def serialize(order: Order) -> dict:
    resolved = status_resolver.resolve_order(order)
    known = status_resolver.is_known(resolved)
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "customerName": order.customer_name,
        "customerEmail": order.customer_email,
        "customerPhone": order.customer_phone,
        "userId": order.user_id,
        "total": order.total,
        "paymentMethod": order.payment_method,
        "paymentStatus": order.payment_status,
        "orderStatus": order.order_status,
        "bucket": resolved.value if known else None,
        "bucketLabel": resolved.label if known else f"Unknown ({resolved})",
        "adminDone": bool(order.admin_done),
        "items": [
            {
                "productName": i.product_name,
                "size": i.size,
                "color": i.color,
                "quantity": i.quantity,
                "unitPrice": i.unit_price,
                "totalPrice": i.total_price,
            }
            for i in order.items
        ],
        "createdAt": order.created_at.isoformat() if order.created_at else None,
        "updatedAt": order.updated_at.isoformat() if order.updated_at else None,
    }
