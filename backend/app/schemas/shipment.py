"""
Shipment Pydantic schemas.

Defines request and response models for shipment management and tracking.
"""

from pydantic import BaseModel, Field, EmailStr, field_validator
from datetime import datetime
from typing import Optional, List
from backend.app.models.enums import ShipmentStatus, ServiceClass, PaymentStatus


class Address(BaseModel):
    """Postal address."""
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field("United States", min_length=1, max_length=100)


class Contact(BaseModel):
    """Sender or recipient contact with postal address."""
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str = Field(..., min_length=3, max_length=30)
    address: Address


class PackageDetails(BaseModel):
    """Physical package attributes and declared value."""
    weight_kg: float = Field(..., gt=0, allow_inf_nan=False, description="Weight in kilograms")
    length_cm: float = Field(..., gt=0, allow_inf_nan=False, description="Length in centimeters")
    width_cm: float = Field(..., gt=0, allow_inf_nan=False, description="Width in centimeters")
    height_cm: float = Field(..., gt=0, allow_inf_nan=False, description="Height in centimeters")
    description: str = Field(..., min_length=1, max_length=500)
    declared_value: float = Field(..., ge=0, allow_inf_nan=False, description="Declared monetary value")


class Coordinates(BaseModel):
    """GPS fix attached to a tracking event."""
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)


class ShipmentCreate(BaseModel):
    """Schema for creating a new shipment. Pricing is computed server-side."""
    sender: Contact
    recipient: Contact
    package: PackageDetails
    service_class: ServiceClass
    notes: Optional[str] = Field(None, max_length=2000)


class ShipmentUpdate(BaseModel):
    """
    Schema for a customer edit (pending shipments only).
    
    Package physical attributes, declared value and service class are fixed
    once priced and are rejected as unknown fields.
    """
    sender: Optional[Contact] = None
    recipient: Optional[Contact] = None
    package_description: Optional[str] = Field(None, min_length=1, max_length=500)
    notes: Optional[str] = Field(None, max_length=2000)
    
    class Config:
        extra = "forbid"
    
    @field_validator("sender", "recipient", "package_description")
    @classmethod
    def reject_null(cls, v):
        # Omit a field to leave it unchanged; null would clear a required value.
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class StatusUpdate(BaseModel):
    """Schema for an admin/agent status update with its ledger entry."""
    status: ShipmentStatus
    location: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1, max_length=500)
    coordinates: Optional[Coordinates] = None


class AgentAssignment(BaseModel):
    """Schema for assigning an agent to a shipment."""
    agent_id: int = Field(..., gt=0)


class TrackingEventResponse(BaseModel):
    """Schema for a single ledger entry."""
    sequence: int
    status: ShipmentStatus
    location: str
    description: str
    timestamp: datetime
    coordinates: Optional[Coordinates] = None
    
    class Config:
        from_attributes = True


class PricingResponse(BaseModel):
    """Stored price breakdown."""
    base_rate: float
    weight_charge: float
    insurance: float
    tax: float
    total: float
    currency: str


class PaymentInfo(BaseModel):
    """Payment sub-record."""
    status: PaymentStatus
    method: Optional[str] = None
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None


class ShipmentResponse(BaseModel):
    """Schema for full shipment response (owner/admin view)."""
    id: int
    tracking_number: str
    owner_id: int
    assigned_agent_id: Optional[int]
    sender: Contact
    recipient: Contact
    package: PackageDetails
    service_class: ServiceClass
    estimated_days: int
    pricing: PricingResponse
    status: ShipmentStatus
    tracking: List[TrackingEventResponse]
    estimated_delivery: datetime
    actual_delivery: Optional[datetime]
    payment: PaymentInfo
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime
    
    class Config:
        from_attributes = True


class ShipmentListResponse(BaseModel):
    """Schema for paginated shipment list."""
    shipments: List[ShipmentResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class CancelResponse(BaseModel):
    """Response after cancelling a shipment."""
    message: str
    shipment_id: int
    tracking_number: str
    status: ShipmentStatus


class LocationSummary(BaseModel):
    """Coarse origin/destination shown on the public tracking page."""
    city: str
    state: str
    country: str


class TrackingResponse(BaseModel):
    """Public tracking snapshot (no contact details)."""
    tracking_number: str
    status: ShipmentStatus
    service_class: ServiceClass
    origin: LocationSummary
    destination: LocationSummary
    estimated_delivery: datetime
    actual_delivery: Optional[datetime]
    events: List[TrackingEventResponse]
