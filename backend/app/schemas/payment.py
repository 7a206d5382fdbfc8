"""
Payment schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List
from backend.app.models.enums import PaymentRecordStatus
from backend.app.schemas.shipment import PaymentInfo


class PaymentIntentRequest(BaseModel):
    """Schema for requesting a settlement intent for a shipment."""
    shipment_id: int = Field(..., gt=0)


class PaymentIntentResponse(BaseModel):
    """Intent handle returned to the client."""
    payment_id: int
    client_secret: str
    payment_intent_id: str
    amount: float
    currency: str


class PaymentConfirmRequest(BaseModel):
    """Schema for confirming a settlement intent."""
    payment_intent_id: str = Field(..., min_length=1, max_length=255)
    shipment_id: int = Field(..., gt=0)


class PaymentResponse(BaseModel):
    """Schema for a payment record."""
    id: int
    user_id: int
    shipment_id: int
    amount: float
    currency: str
    status: PaymentRecordStatus
    payment_method: str
    gateway_intent_id: str
    created_at: datetime
    
    class Config:
        from_attributes = True


class PaymentConfirmResponse(BaseModel):
    """Outcome of a settlement confirmation."""
    message: str
    payment: PaymentResponse
    shipment_id: int
    shipment_payment: PaymentInfo


class PaymentListResponse(BaseModel):
    """Schema for paginated payment history."""
    payments: List[PaymentResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
