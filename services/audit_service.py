"""
Audit service — append-only record of privileged mutations.

record() is the mutation-path entry point and is best-effort: the primary
change has already been committed by the caller, so a Log Store failure is
logged as a warning and swallowed. The entry is written through its own
session so a failed append can never roll back or expire the caller's
objects.

The remaining functions (listing, edit, delete) are administrative
maintenance of the log itself; they raise on failure like any other store
call.
"""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select, delete as sa_delete
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import AuditLog, utcnow
from domain.actor import Actor
from domain.constants import AUDIT_ACTION_DELETE, RESOURCE_AUDIT_LOG, SYSTEM_ACTOR, UNKNOWN_CLIENT
from domain.errors import NotFoundError
from services.store_guard import store_call

logger = logging.getLogger(__name__)


def _entry_fields(
    *,
    action: str,
    actor: Actor | None,
    resource_type: str | None,
    resource_id: str | None,
    details: Any,
    metadata: Any,
) -> dict:
    return {
        "action": action,
        "user_id": actor.uid if actor else SYSTEM_ACTOR,
        "user_email": (actor.email or SYSTEM_ACTOR) if actor else SYSTEM_ACTOR,
        "resource_type": resource_type,
        "resource_id": resource_id,
        "details": details,
        "extra_metadata": metadata,
        "ip_address": actor.ip_address if actor else UNKNOWN_CLIENT,
        "user_agent": actor.user_agent if actor else UNKNOWN_CLIENT,
        "created_at": utcnow(),
    }


async def _append(bind, fields: dict) -> str:
    async with AsyncSession(bind, expire_on_commit=False) as log_db:
        entry = AuditLog(**fields)
        log_db.add(entry)
        await log_db.commit()
        return entry.id


async def record(
    db: AsyncSession,
    *,
    action: str,
    actor: Actor | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    details: Any = None,
    metadata: Any = None,
) -> str | None:
    """
    Append one audit entry. Returns its id, or None if the write failed.

    Must be called after the triggering change is committed.
    """
    fields = _entry_fields(
        action=action,
        actor=actor,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        metadata=metadata,
    )
    try:
        entry_id = await _append(db.bind, fields)
    except Exception as e:
        logger.warning(
            f"Failed to create audit log for {action} {resource_type}:{resource_id} (non-fatal): {e}"
        )
        return None
    logger.info(f"Audit log created: {entry_id} ({action} {resource_type}:{resource_id})")
    return entry_id


async def create_entry(
    db: AsyncSession,
    *,
    action: str,
    actor: Actor | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    details: Any = None,
    metadata: Any = None,
) -> AuditLog:
    """Manually create an entry (annotations, connectivity checks). Raises on failure."""
    entry = AuditLog(
        **_entry_fields(
            action=action,
            actor=actor,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            metadata=metadata,
        )
    )
    async with store_call(db, "create audit log"):
        db.add(entry)
        await db.commit()
    return entry


async def get_log(db: AsyncSession, log_id: str) -> AuditLog:
    res = await db.execute(select(AuditLog).where(AuditLog.id == log_id))
    entry = res.scalar_one_or_none()
    if not entry:
        raise NotFoundError("Audit log", log_id)
    return entry


async def list_logs(
    db: AsyncSession,
    *,
    limit: int = 50,
    start_after: str | None = None,
    action: str | None = None,
    user_id: str | None = None,
    resource_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> tuple[list[AuditLog], str | None]:
    """
    One page of entries, newest first.

    start_after is the id of the last entry of the previous page. Returns
    (entries, cursor for the next page).
    """
    q = select(AuditLog)

    if start_after:
        cursor = await get_log(db, start_after)
        q = q.where(
            or_(
                AuditLog.created_at < cursor.created_at,
                and_(AuditLog.created_at == cursor.created_at, AuditLog.id < cursor.id),
            )
        )
    if action:
        q = q.where(AuditLog.action == action)
    if user_id:
        q = q.where(AuditLog.user_id == user_id)
    if resource_type:
        q = q.where(AuditLog.resource_type == resource_type)
    if start_date:
        q = q.where(AuditLog.created_at >= start_date)
    if end_date:
        q = q.where(AuditLog.created_at <= end_date)

    res = await db.execute(
        q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    )
    entries = list(res.scalars().all())
    next_cursor = entries[-1].id if entries else None
    return entries, next_cursor


async def update_log(
    db: AsyncSession,
    log_id: str,
    *,
    action: str | None = None,
    user_email: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    details: Any = None,
    metadata: Any = None,
) -> AuditLog:
    """Administrative edit. Only provided fields are updated."""
    entry = await get_log(db, log_id)

    if action is not None:
        entry.action = action
    if user_email is not None:
        entry.user_email = user_email
    if resource_type is not None:
        entry.resource_type = resource_type
    if resource_id is not None:
        entry.resource_id = resource_id
    if details is not None:
        entry.details = details
    if metadata is not None:
        entry.extra_metadata = metadata

    async with store_call(db, "update audit log"):
        await db.commit()
    return entry


async def delete_log(db: AsyncSession, log_id: str, *, actor: Actor | None = None) -> None:
    entry = await get_log(db, log_id)
    snapshot = serialize(entry)
    async with store_call(db, "delete audit log"):
        await db.delete(entry)
        await db.commit()

    await record(
        db,
        action=AUDIT_ACTION_DELETE,
        actor=actor,
        resource_type=RESOURCE_AUDIT_LOG,
        resource_id=log_id,
        details={"deletedEntry": snapshot},
    )


async def delete_logs(db: AsyncSession, log_ids: list[str], *, actor: Actor | None = None) -> int:
    """Delete many entries; ids that do not exist are ignored. Returns rows removed."""
    if not log_ids:
        return 0
    async with store_call(db, "bulk delete audit logs"):
        res = await db.execute(sa_delete(AuditLog).where(AuditLog.id.in_(log_ids)))
        await db.commit()
    removed = res.rowcount or 0

    await record(
        db,
        action=AUDIT_ACTION_DELETE,
        actor=actor,
        resource_type=RESOURCE_AUDIT_LOG,
        details={"ids": log_ids, "removed": removed},
    )
    return removed


def serialize(entry: AuditLog) -> dict:
    return {
        "id": entry.id,
        "action": entry.action,
        "userId": entry.user_id,
        "userEmail": entry.user_email,
        "resourceType": entry.resource_type,
        "resourceId": entry.resource_id,
        "details": entry.details,
        "metadata": entry.extra_metadata,
        "ipAddress": entry.ip_address,
        "userAgent": entry.user_agent,
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }
