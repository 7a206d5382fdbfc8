"""
Payment Service (Domain Logic).

Issues settlement intents for shipments and applies the gateway's
confirmation to the shipment's payment sub-record. Payment never moves the
shipment through its delivery lifecycle.
"""

import logging
import math
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    PreconditionFailedError,
    ResourceNotFoundError,
    UpstreamServiceError,
)
from backend.app.core.guards import shipment_guard
from backend.app.domain.payments.settlement import SettlementIntent, IntentHandle
from backend.app.domain.shipments import lifecycle, repository
from backend.app.models.payment import Payment
from backend.app.models.shipment import Shipment
from backend.app.models.enums import ShipmentStatus, PaymentStatus, PaymentRecordStatus
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


class PaymentService:
    
    @staticmethod
    async def create_intent(
        db: AsyncSession, current_user: dict, shipment_id: int, gateway: PaymentGateway
    ) -> tuple[Payment, IntentHandle]:
        """
        Issue a settlement intent for the shipment's stored total.
        
        Flow:
        1. Shipment exists (404) and caller owns it (403)
        2. Shipment is neither paid nor cancelled
        3. Gateway intent with correlation metadata
        4. Persist PENDING Payment record keyed by the intent id
        
        Raises:
            PreconditionFailedError: already paid or cancelled
            UpstreamServiceError: gateway or store failure
        """
        shipment = await repository.load_shipment(db, shipment_id)
        if not shipment:
            raise ResourceNotFoundError("Shipment", shipment_id)
        shipment_guard.enforce_payment(shipment.owner_id, current_user)
        
        if shipment.payment_status == PaymentStatus.PAID:
            raise PreconditionFailedError("Shipment is already paid")
        if shipment.status == ShipmentStatus.CANCELLED:
            raise PreconditionFailedError("Cannot pay for a cancelled shipment")
        
        handle = await gateway.create_intent(
            SettlementIntent(
                amount=Decimal(str(shipment.total_amount)),
                currency=shipment.currency,
                metadata={
                    "shipment_id": str(shipment.id),
                    "tracking_number": shipment.tracking_number,
                    "user_id": str(current_user["user_id"]),
                },
            )
        )
        
        payment = Payment(
            user_id=current_user["user_id"],
            shipment_id=shipment.id,
            amount=shipment.total_amount,
            currency=shipment.currency,
            status=PaymentRecordStatus.PENDING,
            payment_method=gateway.method,
            gateway_intent_id=handle.intent_id,
            meta_data={"tracking_number": shipment.tracking_number},
        )
        db.add(payment)
        try:
            await db.flush()
            await log_event(
                db,
                AuditAction.PAYMENT_INTENT_CREATED,
                actor=current_user,
                shipment_id=shipment.id,
                tracking_number=shipment.tracking_number,
                metadata={"payment_id": payment.id, "intent_id": handle.intent_id, "amount": payment.amount},
            )
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Could not record payment intent %s", handle.intent_id)
            raise UpstreamServiceError("Payment store unavailable")
        await db.refresh(payment)
        
        logger.info(
            "Payment intent %s issued for shipment %s (%s %s)",
            handle.intent_id, shipment.tracking_number, payment.amount, payment.currency,
        )
        return payment, handle
    
    @staticmethod
    async def confirm(
        db: AsyncSession,
        current_user: dict,
        intent_id: str,
        shipment_id: int,
        gateway: PaymentGateway,
    ) -> tuple[Payment, Shipment]:
        """
        Apply the gateway's verdict on an intent.
        
        succeeded -> Payment COMPLETED, shipment payment PAID
        failed    -> Payment FAILED, shipment payment FAILED
        otherwise -> PreconditionFailedError("Payment not completed"), nothing changes
        
        An intent that is already settled is returned as is.
        """
        shipment = await repository.load_shipment(db, shipment_id)
        if not shipment:
            raise ResourceNotFoundError("Shipment", shipment_id)
        shipment_guard.enforce_payment(shipment.owner_id, current_user)
        
        payment = await db.scalar(select(Payment).where(Payment.gateway_intent_id == intent_id))
        if not payment or payment.shipment_id != shipment.id:
            raise ResourceNotFoundError("Payment", intent_id)
        
        if payment.status == PaymentRecordStatus.COMPLETED:
            return payment, shipment
        
        confirmation = await gateway.retrieve_confirmation(intent_id)
        payment_id = payment.id
        
        async def mutate(locked: Shipment):
            payment_status = lifecycle.apply_settlement(locked, confirmation)
            payment.status = (
                PaymentRecordStatus.COMPLETED if payment_status == PaymentStatus.PAID
                else PaymentRecordStatus.FAILED
            )
            await log_event(
                db,
                AuditAction.PAYMENT_SETTLED if payment_status == PaymentStatus.PAID else AuditAction.PAYMENT_FAILED,
                actor=current_user,
                shipment_id=locked.id,
                tracking_number=locked.tracking_number,
                metadata={"payment_id": payment_id, "intent_id": intent_id, "transaction_id": confirmation.transaction_id},
            )
        
        shipment = await repository.apply_atomically(db, shipment_id, mutate)
        await db.refresh(payment)
        logger.info(
            "Payment intent %s for shipment %s settled as %s",
            intent_id, shipment.tracking_number, shipment.payment_status.value,
        )
        return payment, shipment
    
    @staticmethod
    async def history(
        db: AsyncSession, current_user: dict, page: int = 1, page_size: int = 10
    ) -> tuple[list[Payment], int, int]:
        """Caller's payment records, newest first."""
        user_id = current_user["user_id"]
        total = await db.scalar(select(func.count(Payment.id)).where(Payment.user_id == user_id))
        result = await db.execute(
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return result.scalars().all(), total, math.ceil(total / page_size)
