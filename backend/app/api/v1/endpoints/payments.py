"""
Payment API Endpoints.

Settlement intents and confirmations for the caller's shipments.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.core.identity import get_current_user
from backend.app.domain.payments.payment_service import PaymentService
from backend.app.schemas.payment import (
    PaymentIntentRequest, PaymentIntentResponse, PaymentConfirmRequest,
    PaymentConfirmResponse, PaymentResponse, PaymentListResponse
)
from backend.app.models.enums import PaymentStatus
from backend.app.schemas.shipment import PaymentInfo
from backend.app.services.payment_gateway import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    request: PaymentIntentRequest,
    current_user: dict = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db)
):
    """Issue a settlement intent for the shipment's stored total (owner only)."""
    payment, handle = await PaymentService.create_intent(db, current_user, request.shipment_id, gateway)
    return PaymentIntentResponse(
        payment_id=payment.id,
        client_secret=handle.client_secret,
        payment_intent_id=handle.intent_id,
        amount=payment.amount,
        currency=payment.currency
    )


@router.post("/confirm", response_model=PaymentConfirmResponse)
async def confirm_payment(
    request: PaymentConfirmRequest,
    current_user: dict = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db)
):
    """
    Confirm a settlement intent with the gateway (owner only).
    
    Updates the shipment's payment record; shipment status is unaffected.
    """
    payment, shipment = await PaymentService.confirm(
        db, current_user, request.payment_intent_id, request.shipment_id, gateway
    )
    message = "Payment successful" if shipment.payment_status == PaymentStatus.PAID else "Payment failed"
    return PaymentConfirmResponse(
        message=message,
        payment=PaymentResponse.model_validate(payment),
        shipment_id=shipment.id,
        shipment_payment=PaymentInfo(**shipment.payment)
    )


@router.get("/history", response_model=PaymentListResponse)
async def get_payment_history(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Caller's payment records, newest first."""
    payments, total, total_pages = await PaymentService.history(db, current_user, page, page_size)
    return PaymentListResponse(
        payments=[PaymentResponse.model_validate(p) for p in payments],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages
    )
