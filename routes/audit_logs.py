"""
Audit log endpoints — browse the trail and maintain it.

Listing is cursor paginated, newest first. Edits and deletes are
administrative maintenance of the log itself and fail loudly; deletions
leave an entry of their own behind.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import CursorPage, cursor_params, require_admin
from domain.actor import Actor
from domain.responses import ADMIN_ERROR_RESPONSES, paginated_response, success_response
from services import audit_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/audit-logs", tags=["audit-logs"], responses=ADMIN_ERROR_RESPONSES)


class CreateLogRequest(BaseModel):
    action: str = Field(..., min_length=1, max_length=64)
    resource_type: str | None = Field(None, alias="resourceType", max_length=64)
    resource_id: str | None = Field(None, alias="resourceId", max_length=128)
    details: Any = None
    metadata: Any = None


class UpdateLogRequest(BaseModel):
    action: str | None = Field(None, min_length=1, max_length=64)
    user_email: str | None = Field(None, alias="userEmail", max_length=255)
    resource_type: str | None = Field(None, alias="resourceType", max_length=64)
    resource_id: str | None = Field(None, alias="resourceId", max_length=128)
    details: Any = None
    metadata: Any = None


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(..., min_length=1, max_length=500)


@router.get("")
async def list_logs(
    page: CursorPage = Depends(cursor_params),
    action: str | None = Query(None),
    user_id: str | None = Query(None, alias="userId"),
    resource_type: str | None = Query(None, alias="resourceType"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    entries, next_cursor = await audit_service.list_logs(
        db,
        limit=page["limit"],
        start_after=page["start_after"],
        action=action,
        user_id=user_id,
        resource_type=resource_type,
        start_date=_naive_utc(start_date),
        end_date=_naive_utc(end_date),
    )
    return paginated_response(
        [audit_service.serialize(e) for e in entries],
        limit=page["limit"],
        next_cursor=next_cursor,
    )


@router.post("", status_code=201)
async def create_log(
    request: CreateLogRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    entry = await audit_service.create_entry(
        db,
        action=request.action,
        actor=actor,
        resource_type=request.resource_type,
        resource_id=request.resource_id,
        details=request.details,
        metadata=request.metadata,
    )
    return success_response(data=audit_service.serialize(entry))


@router.post("/bulk-delete")
async def bulk_delete_logs(
    request: BulkDeleteRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    removed = await audit_service.delete_logs(db, request.ids, actor=actor)
    logger.info(f"{actor.uid} removed {removed} audit log(s)")
    return success_response(data={"deleted": removed, "requested": len(request.ids)})


@router.patch("/{log_id}")
async def update_log(
    log_id: str,
    request: UpdateLogRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    entry = await audit_service.update_log(
        db,
        log_id,
        action=request.action,
        user_email=request.user_email,
        resource_type=request.resource_type,
        resource_id=request.resource_id,
        details=request.details,
        metadata=request.metadata,
    )
    logger.info(f"{actor.uid} edited audit log {log_id}")
    return success_response(data=audit_service.serialize(entry))


@router.delete("/{log_id}")
async def delete_log(
    log_id: str,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await audit_service.delete_log(db, log_id, actor=actor)
    return success_response(data={"id": log_id, "deleted": True})


def _naive_utc(value: datetime | None) -> datetime | None:
    # Stored timestamps are naive UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
