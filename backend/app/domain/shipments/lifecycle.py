"""
Shipment Lifecycle (Domain Logic).

State machine for shipment status and the side effects of each transition.
Functions here mutate an in-memory Shipment only; loading, committing and
retrying belong to the shipment service.

Status flow:
    pending → picked_up → in_transit → out_for_delivery → delivered
    delayed reachable from any in-flight state
    cancelled reachable only from pending or picked_up (customer)

Admin/agent status updates are not checked against the transition graph
unless strict mode is requested; operational staff choose the transition.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from backend.app.core.exceptions import PreconditionFailedError, ValidationFailedError
from backend.app.domain.payments.settlement import SettlementConfirmation
from backend.app.domain.pricing.rate_engine import RateQuote
from backend.app.domain.tracking import ledger
from backend.app.models.shipment import Shipment
from backend.app.models.enums import ShipmentStatus, PaymentStatus
from backend.app.models.tracking_event import TrackingEvent

logger = logging.getLogger(__name__)

IN_FLIGHT_STATUSES: Set[ShipmentStatus] = {
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELAYED,
}

CANCELLABLE_STATUSES: Set[ShipmentStatus] = {ShipmentStatus.PENDING, ShipmentStatus.PICKED_UP}
EDITABLE_STATUSES: Set[ShipmentStatus] = {ShipmentStatus.PENDING}
TERMINAL_STATUSES: Set[ShipmentStatus] = {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED}

# Only consulted in strict mode. Repeating the current status is always allowed.
STRICT_TRANSITIONS: Dict[ShipmentStatus, Set[ShipmentStatus]] = {
    ShipmentStatus.PENDING: {ShipmentStatus.PICKED_UP, ShipmentStatus.CANCELLED},
    ShipmentStatus.PICKED_UP: {ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELAYED, ShipmentStatus.CANCELLED},
    ShipmentStatus.IN_TRANSIT: {ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.DELAYED},
    ShipmentStatus.OUT_FOR_DELIVERY: {ShipmentStatus.DELIVERED, ShipmentStatus.DELAYED},
    ShipmentStatus.DELAYED: {
        ShipmentStatus.PICKED_UP,
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.OUT_FOR_DELIVERY,
        ShipmentStatus.DELIVERED,
    },
    ShipmentStatus.DELIVERED: set(),
    ShipmentStatus.CANCELLED: set(),
}

EDITABLE_FIELDS = ("sender", "recipient", "package_description", "notes")
# Editable but never cleared; only `notes` may be set to null.
REQUIRED_FIELDS = ("sender", "recipient", "package_description")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_allowed_transition(current: ShipmentStatus, new: ShipmentStatus) -> bool:
    return new == current or new in STRICT_TRANSITIONS[current]


def open_shipment(
    tracking_number: str,
    owner_id: int,
    sender: dict,
    recipient: dict,
    package: dict,
    rate_quote: RateQuote,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Shipment:
    """
    Build a new shipment in PENDING with its first ledger event.
    
    The first event is always status pending, located at the sender's city.
    Pricing is copied from the quote and never recomputed afterwards.
    """
    now = now or _now()
    shipment = Shipment(
        tracking_number=tracking_number,
        owner_id=owner_id,
        sender=sender,
        recipient=recipient,
        weight_kg=package["weight_kg"],
        length_cm=package["length_cm"],
        width_cm=package["width_cm"],
        height_cm=package["height_cm"],
        package_description=package["description"],
        declared_value=package["declared_value"],
        service_class=rate_quote.service_class,
        estimated_days=rate_quote.estimated_days,
        base_rate=float(rate_quote.base_rate),
        weight_charge=float(rate_quote.weight_charge),
        insurance=float(rate_quote.insurance),
        tax=float(rate_quote.tax),
        total_amount=float(rate_quote.total),
        currency=rate_quote.currency,
        status=ShipmentStatus.PENDING,
        estimated_delivery=now + timedelta(days=rate_quote.estimated_days),
        actual_delivery=None,
        payment_status=PaymentStatus.PENDING,
        notes=notes,
        created_at=now,
        updated_at=now,
        tracking=[],
    )
    ledger.append_event(
        shipment,
        status=ShipmentStatus.PENDING,
        location=sender["address"]["city"],
        description=ledger.CREATED_DESCRIPTION,
        timestamp=now,
    )
    return shipment


def advance_status(
    shipment: Shipment,
    new_status: ShipmentStatus,
    location: str,
    description: str,
    coordinates: Optional[dict] = None,
    now: Optional[datetime] = None,
    strict: bool = False,
) -> TrackingEvent:
    """
    Admin/agent transition: append a ledger event and move to `new_status`.
    
    Reaching DELIVERED stamps actual_delivery once; a repeated DELIVERED
    still appends its event but keeps the first stamp.
    
    Raises:
        PreconditionFailedError: strict mode and the transition is not in STRICT_TRANSITIONS
    """
    now = now or _now()
    previous = shipment.status
    if strict and not is_allowed_transition(previous, new_status):
        raise PreconditionFailedError(
            f"Cannot move shipment from {previous.value} to {new_status.value}",
            details={"current_status": previous.value, "requested_status": new_status.value},
        )
    
    event = ledger.append_event(shipment, new_status, location, description, now, coordinates)
    shipment.status = new_status
    if new_status == ShipmentStatus.DELIVERED and shipment.actual_delivery is None:
        shipment.actual_delivery = now
    shipment.updated_at = now
    
    logger.info(
        "Shipment %s moved %s -> %s at %s",
        shipment.tracking_number, previous.value, new_status.value, location,
    )
    return event


def cancel(shipment: Shipment, now: Optional[datetime] = None) -> TrackingEvent:
    """
    Customer cancellation, only from pending or picked_up.
    
    Raises:
        PreconditionFailedError: shipment is past pickup
    """
    if shipment.status not in CANCELLABLE_STATUSES:
        raise PreconditionFailedError(
            "Cannot cancel shipment at this stage",
            details={"current_status": shipment.status.value},
        )
    now = now or _now()
    event = ledger.append_event(
        shipment,
        status=ShipmentStatus.CANCELLED,
        location=shipment.sender_city,
        description=ledger.CANCELLED_DESCRIPTION,
        timestamp=now,
    )
    shipment.status = ShipmentStatus.CANCELLED
    shipment.updated_at = now
    logger.info("Shipment %s cancelled by customer", shipment.tracking_number)
    return event


def apply_edit(shipment: Shipment, changes: dict, now: Optional[datetime] = None) -> List[str]:
    """
    Customer edit, only while pending. Never touches status or the ledger.
    
    Returns:
        Names of the fields written
        
    Raises:
        PreconditionFailedError: shipment has left pending
        ValidationFailedError: a required field would be cleared
    """
    if shipment.status not in EDITABLE_STATUSES:
        raise PreconditionFailedError(
            "Cannot update shipment after pickup",
            details={"current_status": shipment.status.value},
        )
    cleared = [field for field in REQUIRED_FIELDS if field in changes and changes[field] is None]
    if cleared:
        raise ValidationFailedError(
            "Required fields cannot be cleared",
            details={"fields": cleared},
        )
    updated = []
    for field, value in changes.items():
        if field not in EDITABLE_FIELDS:
            continue
        setattr(shipment, field, value)
        updated.append(field)
    if updated:
        shipment.updated_at = now or _now()
    return updated


def assign_agent(shipment: Shipment, agent_id: int, now: Optional[datetime] = None) -> None:
    shipment.assigned_agent_id = agent_id
    shipment.updated_at = now or _now()


def apply_settlement(
    shipment: Shipment,
    confirmation: SettlementConfirmation,
    now: Optional[datetime] = None,
) -> PaymentStatus:
    """
    Record a gateway verdict on the payment sub-record.
    
    Shipment status and the ledger are untouched: delivery progress is
    independent of payment.
    """
    now = now or _now()
    if confirmation.succeeded:
        shipment.payment_status = PaymentStatus.PAID
        shipment.paid_at = now
    elif confirmation.failed:
        shipment.payment_status = PaymentStatus.FAILED
    else:
        raise PreconditionFailedError(
            "Payment not completed",
            details={"intent_id": confirmation.intent_id, "gateway_status": confirmation.status},
        )
    shipment.payment_method = confirmation.method
    shipment.payment_transaction_id = confirmation.transaction_id or confirmation.intent_id
    shipment.updated_at = now
    return shipment.payment_status
