"""
Rate quoting schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List


class QuoteRequest(BaseModel):
    """
    Schema for a rate quote.
    
    `service_class` is a free string: unknown classes are priced as standard.
    """
    weight_kg: float = Field(..., gt=0, allow_inf_nan=False, description="Weight in kilograms")
    service_class: str = Field(..., min_length=1, max_length=50)
    declared_value: float = Field(0, allow_inf_nan=False, description="Declared monetary value")


class QuoteResponse(BaseModel):
    """Price breakdown."""
    service_class: str
    base_rate: float
    weight_charge: float
    insurance: float
    tax: float
    total: float
    currency: str
    estimated_days: int


class ServiceInfo(BaseModel):
    """Catalogue entry for a service class."""
    service_class: str
    name: str
    description: str
    estimated_days: int
    features: List[str]


class TransitTimeRequest(BaseModel):
    """Schema for a transit time estimate."""
    service_class: str = Field(..., min_length=1, max_length=50)


class TransitTimeResponse(BaseModel):
    """Transit window for a service class."""
    service_class: str
    estimated_min_days: int
    estimated_max_days: int
    estimated_delivery: datetime
