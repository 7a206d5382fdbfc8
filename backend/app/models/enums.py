"""
Enumerations shared by models, schemas and the domain layer.

All values are lowercase strings; they are stored and serialized as-is.
"""

import enum


class UserRole(str, enum.Enum):
    """
    Caller role, as asserted by the identity provider.
    
    Roles:
        CUSTOMER: Creates, edits, cancels and pays for their own shipments
        AGENT: Operational staff posting tracking updates
        ADMIN: Full operational access to all shipments
    """
    CUSTOMER = "customer"
    AGENT = "agent"
    ADMIN = "admin"


class ShipmentStatus(str, enum.Enum):
    """
    Shipment lifecycle status.
    
    Status flow:
        PENDING → PICKED_UP → IN_TRANSIT → OUT_FOR_DELIVERY → DELIVERED
        DELAYED reachable from any in-flight state
        CANCELLED reachable only from PENDING or PICKED_UP
    """
    PENDING = "pending"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    DELAYED = "delayed"
    CANCELLED = "cancelled"


class ServiceClass(str, enum.Enum):
    """Delivery tier, determines the pricing table and nominal transit time."""
    EXPRESS = "express"
    STANDARD = "standard"
    FREIGHT = "freight"
    INTERNATIONAL = "international"


class PaymentStatus(str, enum.Enum):
    """Settlement status of the shipment's payment sub-record."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentRecordStatus(str, enum.Enum):
    """Status of a settlement intent record."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
