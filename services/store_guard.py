"""
Translate backing-store failures on the primary mutation path.

Services wrap each read-then-write sequence in store_call(); a driver or
SQLAlchemy failure rolls the session back and surfaces as
TransientStoreError. Nothing here retries.
"""
import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.errors import TransientStoreError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def store_call(db: AsyncSession, operation: str):
    try:
        yield
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Store failure during {operation}: {e}")
        raise TransientStoreError(
            f"Backing store unavailable during {operation}. No change was applied; retry the operation.",
            details={"operation": operation},
        ) from e
