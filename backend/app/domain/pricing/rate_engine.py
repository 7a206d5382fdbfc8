"""
Rate Engine (Domain Logic).

Prices a shipment from its weight, service class and declared value.
Pure and deterministic: identical inputs always produce the identical quote,
so a quote shown before creation matches the price stored at creation.

Unknown service classes are priced as STANDARD. This is an intentional,
named fallback (DEFAULT_SERVICE_CLASS), not a failed lookup.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Union

from backend.app.models.enums import ServiceClass

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_CLASS = ServiceClass.STANDARD

BASE_RATES: Dict[ServiceClass, Decimal] = {
    ServiceClass.EXPRESS: Decimal("25"),
    ServiceClass.STANDARD: Decimal("15"),
    ServiceClass.FREIGHT: Decimal("50"),
    ServiceClass.INTERNATIONAL: Decimal("75"),
}

RATE_PER_KG: Dict[ServiceClass, Decimal] = {
    ServiceClass.EXPRESS: Decimal("5"),
    ServiceClass.STANDARD: Decimal("3"),
    ServiceClass.FREIGHT: Decimal("8"),
    ServiceClass.INTERNATIONAL: Decimal("12"),
}

ESTIMATED_DAYS: Dict[ServiceClass, int] = {
    ServiceClass.EXPRESS: 1,
    ServiceClass.STANDARD: 3,
    ServiceClass.FREIGHT: 5,
    ServiceClass.INTERNATIONAL: 10,
}

# (min, max) days
TRANSIT_WINDOWS: Dict[ServiceClass, tuple] = {
    ServiceClass.EXPRESS: (1, 1),
    ServiceClass.STANDARD: (2, 4),
    ServiceClass.FREIGHT: (4, 7),
    ServiceClass.INTERNATIONAL: (7, 14),
}

SERVICE_CATALOGUE: Dict[ServiceClass, dict] = {
    ServiceClass.EXPRESS: {
        "name": "Express Delivery",
        "description": "Next-day delivery for urgent shipments",
        "features": ["Next-day delivery", "Real-time tracking", "Priority handling"],
    },
    ServiceClass.STANDARD: {
        "name": "Standard Delivery",
        "description": "Reliable delivery at an affordable price",
        "features": ["3-day delivery", "Real-time tracking", "Signature on delivery"],
    },
    ServiceClass.FREIGHT: {
        "name": "Freight Service",
        "description": "For large and heavy shipments",
        "features": ["Large item handling", "Specialized equipment", "White glove service"],
    },
    ServiceClass.INTERNATIONAL: {
        "name": "International Shipping",
        "description": "Worldwide delivery with customs clearance",
        "features": ["Global coverage", "Customs assistance", "Insurance included"],
    },
}

INSURANCE_RATE = Decimal("0.01")
INSURANCE_MINIMUM = Decimal("2.00")
TAX_RATE = Decimal("0.08")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class RateQuote:
    """Price breakdown. `total` is the exact sum of the rounded components."""
    service_class: ServiceClass
    base_rate: Decimal
    weight_charge: Decimal
    insurance: Decimal
    tax: Decimal
    total: Decimal
    currency: str
    estimated_days: int


@dataclass(frozen=True)
class TransitWindow:
    service_class: ServiceClass
    min_days: int
    max_days: int
    estimated_delivery: datetime


def resolve_service_class(service_class: Union[ServiceClass, str, None]) -> ServiceClass:
    """Map a requested class onto the pricing tables, degrading to DEFAULT_SERVICE_CLASS."""
    if isinstance(service_class, ServiceClass):
        return service_class
    try:
        return ServiceClass(str(service_class).strip().lower())
    except ValueError:
        logger.debug("Unknown service class %r priced as %s", service_class, DEFAULT_SERVICE_CLASS.value)
        return DEFAULT_SERVICE_CLASS


def _to_decimal(value) -> Decimal:
    # str() keeps 1.2 as 1.2 rather than its binary expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _round(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def quote(weight, service_class, declared_value, currency: str = "USD") -> RateQuote:
    """
    Compute the price breakdown for a package.
    
    Steps:
    1. base rate and per-kg rate from the service class tables
    2. insurance = max(INSURANCE_MINIMUM, declared value x INSURANCE_RATE)
    3. tax on the unrounded subtotal (base + weight charge + insurance)
    4. round each component to cents, total = sum of rounded components
    
    Args:
        weight: Package weight in kilograms
        service_class: ServiceClass or its string value (unknown -> standard)
        declared_value: Declared monetary value (zero/negative clamp to the floor)
        currency: ISO currency code carried on the quote
        
    Returns:
        RateQuote
    """
    resolved = resolve_service_class(service_class)
    weight = _to_decimal(weight)
    declared_value = _to_decimal(declared_value or 0)
    
    base_rate = BASE_RATES[resolved]
    weight_charge = RATE_PER_KG[resolved] * weight
    insurance = max(INSURANCE_MINIMUM, declared_value * INSURANCE_RATE)
    tax = (base_rate + weight_charge + insurance) * TAX_RATE
    
    base_rate, weight_charge, insurance, tax = (
        _round(base_rate), _round(weight_charge), _round(insurance), _round(tax)
    )
    
    return RateQuote(
        service_class=resolved,
        base_rate=base_rate,
        weight_charge=weight_charge,
        insurance=insurance,
        tax=tax,
        total=base_rate + weight_charge + insurance + tax,
        currency=currency,
        estimated_days=ESTIMATED_DAYS[resolved],
    )


def transit_window(service_class, now: datetime) -> TransitWindow:
    """Min/max transit days for a class; estimated delivery assumes the max."""
    resolved = resolve_service_class(service_class)
    min_days, max_days = TRANSIT_WINDOWS[resolved]
    return TransitWindow(
        service_class=resolved,
        min_days=min_days,
        max_days=max_days,
        estimated_delivery=now + timedelta(days=max_days),
    )


def list_services() -> List[dict]:
    """Service catalogue in display order."""
    return [
        {"service_class": service_class.value, "estimated_days": ESTIMATED_DAYS[service_class], **entry}
        for service_class, entry in SERVICE_CATALOGUE.items()
    ]
