"""
Shipment Service (Domain Logic).

Orchestrates quoting, tracking number minting, lifecycle transitions,
authorization, persistence and audit for shipments.
"""

import logging
import math
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import ResourceNotFoundError, UpstreamServiceError, ValidationFailedError
from backend.app.core.guards import shipment_guard
from backend.app.domain.pricing import rate_engine
from backend.app.domain.shipments import lifecycle, repository
from backend.app.domain.tracking import ledger
from backend.app.domain.tracking.tracking_number import TrackingNumberGenerator, TrackingNumbersExhaustedError
from backend.app.models.shipment import Shipment
from backend.app.models.enums import ShipmentStatus
from backend.app.schemas.shipment import (
    ShipmentCreate,
    ShipmentUpdate,
    StatusUpdate,
    TrackingResponse,
    TrackingEventResponse,
    LocationSummary,
)
from backend.app.services import tracking_cache
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger(__name__)

tracking_numbers = TrackingNumberGenerator(prefix=settings.tracking_number_prefix)


def _is_tracking_number_collision(exc: IntegrityError) -> bool:
    return "tracking_number" in str(exc.orig)


def _location_summary(contact: dict) -> LocationSummary:
    address = contact["address"]
    return LocationSummary(city=address["city"], state=address["state"], country=address["country"])


def build_tracking_snapshot(shipment: Shipment) -> TrackingResponse:
    return TrackingResponse(
        tracking_number=shipment.tracking_number,
        status=shipment.status,
        service_class=shipment.service_class,
        origin=_location_summary(shipment.sender),
        destination=_location_summary(shipment.recipient),
        estimated_delivery=shipment.estimated_delivery,
        actual_delivery=shipment.actual_delivery,
        events=[TrackingEventResponse.model_validate(event) for event in ledger.chronological(shipment)],
    )


class ShipmentService:
    
    @staticmethod
    async def create_shipment(db: AsyncSession, current_user: dict, data: ShipmentCreate) -> Shipment:
        """
        Create a shipment for the caller.
        
        Flow:
        1. Price the package (Rate Engine)
        2. Mint a tracking number
        3. Build the PENDING shipment with its first ledger event
        4. Commit; on a tracking number collision, mint again and retry
        
        Returns:
            Created Shipment
            
        Raises:
            UpstreamServiceError: store failure, or no free tracking number
                after settings.tracking_number_max_attempts or
                left for the day
        """
        rate_quote = rate_engine.quote(
            data.package.weight_kg,
            data.service_class,
            data.package.declared_value,
            currency=settings.default_currency,
        )
        sender = data.sender.model_dump()
        recipient = data.recipient.model_dump()
        package = data.package.model_dump()
        
        max_attempts = settings.tracking_number_max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                tracking_number = tracking_numbers.generate()
            except TrackingNumbersExhaustedError:
                logger.exception("Tracking number space exhausted")
                raise UpstreamServiceError("Could not allocate a tracking number")
            shipment = lifecycle.open_shipment(
                tracking_number=tracking_number,
                owner_id=current_user["user_id"],
                sender=sender,
                recipient=recipient,
                package=package,
                rate_quote=rate_quote,
                notes=data.notes,
            )
            db.add(shipment)
            try:
                await db.flush()
                await log_event(
                    db,
                    AuditAction.SHIPMENT_CREATED,
                    actor=current_user,
                    shipment_id=shipment.id,
                    tracking_number=shipment.tracking_number,
                    metadata={
                        "service_class": shipment.service_class.value,
                        "total": shipment.total_amount,
                        "currency": shipment.currency,
                    },
                )
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                if not _is_tracking_number_collision(exc):
                    logger.exception("Shipment insert rejected by the store")
                    raise UpstreamServiceError("Shipment store rejected the new shipment")
                logger.info(
                    "Tracking number %s already taken (attempt %d/%d), minting a new one",
                    tracking_number, attempt, max_attempts,
                )
                continue
            except SQLAlchemyError:
                await db.rollback()
                logger.exception("Store failure while creating shipment")
                raise UpstreamServiceError("Shipment store unavailable")
            
            logger.info(
                "Shipment %s created for user %s (%s, total %s %s)",
                shipment.tracking_number, shipment.owner_id,
                shipment.service_class.value, shipment.total_amount, shipment.currency,
            )
            return await repository.load_shipment(db, shipment.id)
        
        logger.error("No free tracking number after %d attempts", max_attempts)
        raise UpstreamServiceError("Could not allocate a tracking number")
    
    @staticmethod
    async def get_shipment(db: AsyncSession, shipment_id: int, current_user: dict) -> Shipment:
        """Owner or admin view. Not-found is reported before ownership."""
        shipment = await repository.load_shipment(db, shipment_id)
        if not shipment:
            raise ResourceNotFoundError("Shipment", shipment_id)
        shipment_guard.enforce_read(shipment.owner_id, current_user)
        return shipment
    
    @staticmethod
    async def track(db: AsyncSession, tracking_number: str) -> TrackingResponse:
        """Public lookup by tracking number; no identity required."""
        cached = await tracking_cache.get_snapshot(tracking_number)
        if cached is not None:
            return cached
        
        shipment = await repository.get_by_tracking_number(db, tracking_number)
        if not shipment:
            raise ResourceNotFoundError("Shipment", tracking_number)
        
        read_version = shipment.version
        snapshot = build_tracking_snapshot(shipment)
        await tracking_cache.store_snapshot(snapshot)
        # A writer that committed after our read may have invalidated before
        # the store above; drop the snapshot rather than serve it until expiry.
        current_version = await db.scalar(select(Shipment.version).where(Shipment.id == shipment.id))
        if current_version != read_version:
            await tracking_cache.invalidate(tracking_number)
        return snapshot
    
    @staticmethod
    async def list_shipments(
        db: AsyncSession,
        owner_id: Optional[int] = None,
        status: Optional[ShipmentStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[Shipment], int, int]:
        """
        Paginated shipments, newest first.
        
        Args:
            owner_id: Restrict to one owner (None lists all, admin only)
            status: Equality filter on status
            search: Case-insensitive tracking number substring
            
        Returns:
            (shipments, total, total_pages)
        """
        conditions = []
        if owner_id is not None:
            conditions.append(Shipment.owner_id == owner_id)
        if status is not None:
            conditions.append(Shipment.status == status)
        if search:
            conditions.append(Shipment.tracking_number.icontains(search, autoescape=True))
        
        total = await db.scalar(select(func.count(Shipment.id)).where(*conditions))
        
        offset = (page - 1) * page_size
        result = await db.execute(
            select(Shipment)
            .where(*conditions)
            .order_by(Shipment.created_at.desc(), Shipment.id.desc())
            .offset(offset)
            .limit(page_size)
        )
        return result.scalars().all(), total, math.ceil(total / page_size)
    
    @staticmethod
    async def update_shipment(
        db: AsyncSession, shipment_id: int, current_user: dict, data: ShipmentUpdate
    ) -> Shipment:
        """Customer edit: owner only, pending only."""
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationFailedError(
                "No editable fields supplied",
                details={"editable_fields": list(lifecycle.EDITABLE_FIELDS)},
            )
        
        async def mutate(shipment: Shipment):
            shipment_guard.enforce_modify(shipment.owner_id, current_user)
            updated_fields = lifecycle.apply_edit(shipment, changes)
            await log_event(
                db,
                AuditAction.SHIPMENT_UPDATED,
                actor=current_user,
                shipment_id=shipment.id,
                tracking_number=shipment.tracking_number,
                metadata={"updated_fields": updated_fields},
            )
        
        shipment = await repository.apply_atomically(db, shipment_id, mutate)
        await tracking_cache.invalidate(shipment.tracking_number)
        return shipment
    
    @staticmethod
    async def cancel_shipment(db: AsyncSession, shipment_id: int, current_user: dict) -> Shipment:
        """Customer cancellation: owner only, pending or picked_up only."""
        
        async def mutate(shipment: Shipment):
            shipment_guard.enforce_modify(shipment.owner_id, current_user)
            previous_status = shipment.status
            lifecycle.cancel(shipment)
            await log_event(
                db,
                AuditAction.SHIPMENT_CANCELLED,
                actor=current_user,
                shipment_id=shipment.id,
                tracking_number=shipment.tracking_number,
                metadata={"previous_status": previous_status.value},
            )
        
        shipment = await repository.apply_atomically(db, shipment_id, mutate)
        await tracking_cache.invalidate(shipment.tracking_number)
        return shipment
    
    @staticmethod
    async def advance_status(
        db: AsyncSession, shipment_id: int, current_user: dict, update: StatusUpdate
    ) -> Shipment:
        """Admin/agent status update with its ledger entry."""
        shipment_guard.enforce_status_update(current_user)
        coordinates = update.coordinates.model_dump() if update.coordinates else None
        
        async def mutate(shipment: Shipment):
            previous_status = shipment.status
            lifecycle.advance_status(
                shipment,
                update.status,
                update.location,
                update.description,
                coordinates=coordinates,
                strict=settings.enforce_strict_transitions,
            )
            await log_event(
                db,
                AuditAction.SHIPMENT_STATUS_UPDATED,
                actor=current_user,
                shipment_id=shipment.id,
                tracking_number=shipment.tracking_number,
                metadata={
                    "previous_status": previous_status.value,
                    "new_status": update.status.value,
                    "location": update.location,
                },
            )
        
        shipment = await repository.apply_atomically(db, shipment_id, mutate)
        await tracking_cache.invalidate(shipment.tracking_number)
        return shipment
    
    @staticmethod
    async def assign_agent(db: AsyncSession, shipment_id: int, current_user: dict, agent_id: int) -> Shipment:
        """Admin only. No status change, no ledger entry."""
        shipment_guard.enforce_manage(current_user)
        
        async def mutate(shipment: Shipment):
            previous_agent_id = shipment.assigned_agent_id
            lifecycle.assign_agent(shipment, agent_id)
            await log_event(
                db,
                AuditAction.SHIPMENT_AGENT_ASSIGNED,
                actor=current_user,
                shipment_id=shipment.id,
                tracking_number=shipment.tracking_number,
                metadata={"previous_agent_id": previous_agent_id, "agent_id": agent_id},
            )
        
        return await repository.apply_atomically(db, shipment_id, mutate)
