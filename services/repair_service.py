"""
Bulk consistency repair — brings orders written under older status rules
into line with the current ones.

The order set is not snapshotted: ids are listed once, then each order is
re-read just before it is corrected, so edits made by other sessions while
the repair runs are respected. Every order commits on its own; a failure on
one order is logged and counted, and the run moves on. Nothing is rolled
back across orders.

Corrections (first match wins, each idempotent):
    1. prepaid order still pending/to_pay but already paid → confirmed
    2. COD order still pending                              → confirmed
    3. COD order delivered/completed but unpaid             → paid
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, utcnow
from domain.actor import Actor
from domain.constants import AUDIT_ACTION_REPAIR, RESOURCE_ORDER
from domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from services import audit_service

logger = logging.getLogger(__name__)


@dataclass
class RepairReport:
    scanned: int = 0
    touched: int = 0
    failed: int = 0
    changes: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "touched": self.touched,
            "failed": self.failed,
            "changes": self.changes,
        }


def correction_for(order: Order) -> dict | None:
    """The field updates the first matching rule asks for, or None."""
    is_cod = order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value

    if (
        not is_cod
        and order.payment_status == PaymentStatus.PAID.value
        and order.order_status in (OrderStatus.PENDING.value, OrderStatus.TO_PAY.value)
    ):
        return {"order_status": OrderStatus.CONFIRMED.value}

    if is_cod and order.order_status == OrderStatus.PENDING.value:
        return {"order_status": OrderStatus.CONFIRMED.value}

    if (
        is_cod
        and order.payment_status == PaymentStatus.PENDING.value
        and order.order_status in (OrderStatus.DELIVERED.value, OrderStatus.COMPLETED.value)
    ):
        return {"payment_status": PaymentStatus.PAID.value}

    return None


async def _repair_one(db: AsyncSession, order_id: str) -> dict | None:
    res = await db.execute(select(Order).where(Order.id == order_id))
    order = res.scalar_one_or_none()
    if order is None:
        # Deleted by another session since the scan started
        return None

    updates = correction_for(order)
    if not updates:
        return None

    change = {
        "orderId": order.id,
        "orderNumber": order.order_number,
        **{f: {"oldValue": getattr(order, f), "newValue": v} for f, v in updates.items()},
    }
    for f, v in updates.items():
        setattr(order, f, v)
    order.updated_at = utcnow()
    await db.commit()
    return change


async def repair_orders(db: AsyncSession, *, actor: Actor | None = None) -> RepairReport:
    """Run every correction over the full order set. Safe to re-run."""
    res = await db.execute(select(Order.id).order_by(Order.created_at.desc()))
    order_ids = list(res.scalars().all())

    report = RepairReport(scanned=len(order_ids))
    logger.info(f"🔧 Starting bulk order repair over {len(order_ids)} orders")

    for order_id in order_ids:
        try:
            change = await _repair_one(db, order_id)
        except Exception as e:
            await db.rollback()
            report.failed += 1
            logger.warning(f"Repair failed for order {order_id} (continuing): {e}")
            continue
        if change:
            report.touched += 1
            report.changes.append(change)
            logger.info(f"✅ Repaired order {change['orderNumber']}: {change}")

    logger.info(
        f"Bulk repair complete: scanned={report.scanned} touched={report.touched} failed={report.failed}"
    )

    if report.touched:
        await audit_service.record(
            db,
            action=AUDIT_ACTION_REPAIR,
            actor=actor,
            resource_type=RESOURCE_ORDER,
            resource_id="*",
            details={"touched": report.touched, "failed": report.failed, "changes": report.changes},
        )
    return report
