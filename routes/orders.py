"""
Order endpoints — listing, statistics and guarded lifecycle transitions.

Money-affecting and destructive transitions require an explicit `confirm`
flag from the client. Erasing an order additionally needs a second
confirmation and the literal confirmation phrase.
"""

import logging
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import require_admin
from domain.actor import Actor
from domain.enums import OrderStatus, StatusBucket
from domain.errors import ValidationError
from domain.responses import ADMIN_ERROR_RESPONSES, success_response
from middleware.rate_limit import rate_limit
from services import order_service, repair_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"], responses=ADMIN_ERROR_RESPONSES)


class StatusUpdateRequest(BaseModel):
    order_status: OrderStatus = Field(..., alias="orderStatus")


class ConfirmRequest(BaseModel):
    confirm: bool = False


class DeleteRequest(BaseModel):
    confirm: bool = False
    final_confirm: bool = Field(False, alias="finalConfirm")
    confirmation_phrase: str = Field("", alias="confirmationPhrase")


class BulkPaymentRequest(BaseModel):
    order_ids: list[str] = Field(..., alias="orderIds", min_length=1, max_length=500)
    paid: bool
    confirm: bool = False


class AdminDoneRequest(BaseModel):
    order_ids: list[str] = Field(..., alias="orderIds", min_length=1, max_length=500)
    done: bool = True


@router.get("")
async def list_orders(
    bucket: StatusBucket | None = Query(None, description="Resolved status bucket"),
    search: str | None = Query(None, max_length=200),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    orders = await order_service.list_orders(db, bucket=bucket, search=search)
    return success_response(
        data=[order_service.serialize(o) for o in orders],
        meta={"total": len(orders)},
    )


@router.get("/stats")
async def order_stats(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    orders = await order_service.list_orders(db)
    return success_response(data=order_service.summarize(orders))


@router.post("/repair")
async def repair_orders(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=settings.repair_rate_limit_per_hour, window_seconds=3600)),
):
    report = await repair_service.repair_orders(db, actor=actor)
    return success_response(data=report.as_dict())


@router.post("/payment-status")
async def bulk_payment_status(
    request: BulkPaymentRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await order_service.set_payment_status_bulk(
        db,
        request.order_ids,
        paid=request.paid,
        confirmed=request.confirm,
        actor=actor,
    )
    return success_response(data=result)


@router.post("/admin-done")
async def set_admin_done(
    request: AdminDoneRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    count = await order_service.set_admin_done(db, request.order_ids, done=request.done, actor=actor)
    return success_response(data={"updated": count, "adminDone": request.done})


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    return success_response(data=order_service.serialize(order))


@router.patch("/{order_id}/status")
async def set_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.set_status(db, order_id, request.order_status.value, actor=actor)
    return success_response(data=order_service.serialize(order))


@router.post("/{order_id}/mark-paid")
async def mark_paid(
    order_id: str,
    request: ConfirmRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.mark_paid(db, order_id, confirmed=request.confirm, actor=actor)
    return success_response(data=order_service.serialize(order))


@router.post("/{order_id}/mark-unpaid")
async def mark_unpaid(
    order_id: str,
    request: ConfirmRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.mark_unpaid(db, order_id, confirmed=request.confirm, actor=actor)
    return success_response(data=order_service.serialize(order))


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    request: ConfirmRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.cancel(db, order_id, confirmed=request.confirm, actor=actor)
    return success_response(data=order_service.serialize(order))


@router.delete("/{order_id}")
async def delete_order(
    order_id: str,
    request: DeleteRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if not (request.confirm and request.final_confirm):
        raise ValidationError("Deleting an order requires both confirmations", field="confirm")
    if request.confirmation_phrase != settings.delete_confirmation_phrase:
        raise ValidationError(
            f'Type "{settings.delete_confirmation_phrase}" exactly to delete this order',
            field="confirmationPhrase",
        )

    await order_service.delete_order(db, order_id, actor=actor)
    return success_response(data={"id": order_id, "deleted": True})
