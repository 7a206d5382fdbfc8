"""
Shipment persistence helpers.

Every lifecycle change is one read-modify-write of a single shipment:
load with the current version, mutate in memory, commit. The UPDATE is
guarded by the version column and ledger positions are unique, so a
concurrent writer makes the commit fail instead of losing an event; the
whole cycle is then retried on a fresh copy.
"""

import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException,
    ConcurrentUpdateError,
    ResourceNotFoundError,
    UpstreamServiceError,
)
from backend.app.models.shipment import Shipment

logger = logging.getLogger(__name__)


def _is_ledger_collision(exc: IntegrityError) -> bool:
    # PostgreSQL names the constraint; SQLite names the columns.
    message = str(exc.orig)
    return "uq_tracking_events_shipment_sequence" in message or "tracking_events.sequence" in message


async def load_shipment(db: AsyncSession, shipment_id: int) -> Optional[Shipment]:
    """Fresh copy of a shipment and its ledger, bypassing the identity map."""
    result = await db.execute(
        select(Shipment)
        .options(selectinload(Shipment.tracking))
        .where(Shipment.id == shipment_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_by_tracking_number(db: AsyncSession, tracking_number: str) -> Optional[Shipment]:
    result = await db.execute(
        select(Shipment)
        .options(selectinload(Shipment.tracking))
        .where(Shipment.tracking_number == tracking_number)
    )
    return result.scalar_one_or_none()


async def apply_atomically(
    db: AsyncSession,
    shipment_id: int,
    mutate: Callable[[Shipment], Awaitable[None]],
    max_attempts: Optional[int] = None,
) -> Shipment:
    """
    Run `mutate` against the latest copy of a shipment and commit it.
    
    `mutate` performs authorization and precondition checks before changing
    anything; any AppException it raises rolls the attempt back untouched.
    
    Args:
        db: Database session
        shipment_id: Shipment to change
        mutate: Async callback receiving the loaded shipment
        max_attempts: Retries on write contention (defaults to settings)
        
    Returns:
        The committed shipment, reloaded
        
    Raises:
        ResourceNotFoundError: shipment does not exist
        ConcurrentUpdateError: contention persisted for every attempt
        UpstreamServiceError: the store failed or rejected the change
    """
    max_attempts = max_attempts or settings.shipment_update_max_attempts
    
    for attempt in range(1, max_attempts + 1):
        try:
            shipment = await load_shipment(db, shipment_id)
            if shipment is None:
                raise ResourceNotFoundError("Shipment", shipment_id)
            await mutate(shipment)
            await db.commit()
        except AppException:
            await db.rollback()
            raise
        except (StaleDataError, IntegrityError) as exc:
            await db.rollback()
            if isinstance(exc, IntegrityError) and not _is_ledger_collision(exc):
                logger.exception("Shipment %s update rejected by the store", shipment_id)
                raise UpstreamServiceError("Shipment store rejected the update")
            logger.info(
                "Concurrent update on shipment %s (attempt %d/%d): %s",
                shipment_id, attempt, max_attempts, type(exc).__name__,
            )
            continue
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Store failure while updating shipment %s", shipment_id)
            raise UpstreamServiceError("Shipment store unavailable")
        
        return await load_shipment(db, shipment_id)
    
    logger.warning("Giving up on shipment %s after %d conflicting attempts", shipment_id, max_attempts)
    raise ConcurrentUpdateError("Shipment", shipment_id)
