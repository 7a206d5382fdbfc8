"""
Rate API Endpoints.

Public quoting and service catalogue. Nothing here is persisted.
"""

from datetime import datetime, timezone
from typing import List
from fastapi import APIRouter
from backend.app.core.config import settings
from backend.app.domain.pricing import rate_engine
from backend.app.schemas.rates import (
    QuoteRequest, QuoteResponse, ServiceInfo, TransitTimeRequest, TransitTimeResponse
)

router = APIRouter(prefix="/rates", tags=["Rates"])


@router.post("/calculate", response_model=QuoteResponse)
async def calculate_rate(request: QuoteRequest):
    """
    Quote a package.
    
    Unknown service classes are quoted as standard.
    """
    rate_quote = rate_engine.quote(
        request.weight_kg,
        request.service_class,
        request.declared_value,
        currency=settings.default_currency,
    )
    return QuoteResponse(
        service_class=rate_quote.service_class.value,
        base_rate=float(rate_quote.base_rate),
        weight_charge=float(rate_quote.weight_charge),
        insurance=float(rate_quote.insurance),
        tax=float(rate_quote.tax),
        total=float(rate_quote.total),
        currency=rate_quote.currency,
        estimated_days=rate_quote.estimated_days
    )


@router.get("/services", response_model=List[ServiceInfo])
async def get_services():
    """Available service classes."""
    return [ServiceInfo(**service) for service in rate_engine.list_services()]


@router.post("/transit-time", response_model=TransitTimeResponse)
async def get_transit_time(request: TransitTimeRequest):
    """Transit window and estimated delivery for a service class."""
    window = rate_engine.transit_window(request.service_class, datetime.now(timezone.utc))
    return TransitTimeResponse(
        service_class=window.service_class.value,
        estimated_min_days=window.min_days,
        estimated_max_days=window.max_days,
        estimated_delivery=window.estimated_delivery
    )
