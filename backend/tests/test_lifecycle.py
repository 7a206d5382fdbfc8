"""
Shipment lifecycle and tracking ledger tests.

Exercise the state machine on in-memory shipments, without a database.
"""

import pytest
from datetime import datetime, timedelta, timezone

from backend.app.core.exceptions import PreconditionFailedError, ValidationFailedError
from backend.app.domain.payments.settlement import (
    SettlementConfirmation, SETTLEMENT_SUCCEEDED, SETTLEMENT_FAILED, SETTLEMENT_PENDING
)
from backend.app.domain.pricing import rate_engine
from backend.app.domain.shipments import lifecycle
from backend.app.domain.tracking import ledger
from backend.app.models.enums import ShipmentStatus, PaymentStatus

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


def contact(name: str, city: str) -> dict:
    return {
        "name": name,
        "email": f"{name.lower()}@example.com",
        "phone": "+1-555-0100",
        "address": {
            "street": "1 Main St",
            "city": city,
            "state": "CA",
            "postal_code": "94105",
            "country": "United States",
        },
    }


def make_shipment():
    return lifecycle.open_shipment(
        tracking_number="EHE-20261019-12345",
        owner_id=101,
        sender=contact("Ada", "San Francisco"),
        recipient=contact("Grace", "Los Angeles"),
        package={
            "weight_kg": 1.2,
            "length_cm": 30,
            "width_cm": 20,
            "height_cm": 15,
            "description": "Books",
            "declared_value": 150,
        },
        rate_quote=rate_engine.quote(1.2, "standard", 150),
        notes="Leave at the door",
        now=NOW,
    )


def test_open_shipment_starts_pending_with_one_event():
    shipment = make_shipment()
    
    assert shipment.status == ShipmentStatus.PENDING
    assert shipment.payment_status == PaymentStatus.PENDING
    assert shipment.actual_delivery is None
    assert shipment.estimated_delivery == NOW + timedelta(days=3)
    assert shipment.total_amount == 22.25
    assert len(shipment.tracking) == 1
    
    first = shipment.tracking[0]
    assert first.sequence == 0
    assert first.status == ShipmentStatus.PENDING
    assert first.location == "San Francisco"
    assert first.description == ledger.CREATED_DESCRIPTION
    assert first.timestamp == NOW


def test_each_status_update_appends_one_event_in_order():
    shipment = make_shipment()
    updates = [
        ShipmentStatus.PICKED_UP,
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.DELAYED,
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.OUT_FOR_DELIVERY,
    ]
    
    for index, status in enumerate(updates):
        lifecycle.advance_status(shipment, status, f"Stop {index}", "Scanned", now=NOW + timedelta(hours=index + 1))
    
    assert len(shipment.tracking) == len(updates) + 1
    assert [e.status for e in ledger.chronological(shipment)][1:] == updates
    assert [e.sequence for e in shipment.tracking] == list(range(len(updates) + 1))
    assert shipment.status == ShipmentStatus.OUT_FOR_DELIVERY
    assert ledger.latest_event(shipment).location == "Stop 4"
    assert ledger.most_recent_first(shipment)[0].location == "Stop 4"


def test_status_update_keeps_coordinates():
    shipment = make_shipment()
    event = lifecycle.advance_status(
        shipment, ShipmentStatus.IN_TRANSIT, "I-5", "On the road",
        coordinates={"lat": 36.77, "lng": -119.41}, now=NOW,
    )
    
    assert event.coordinates == {"lat": 36.77, "lng": -119.41}
    assert shipment.tracking[0].coordinates is None


def test_actual_delivery_is_set_only_on_first_delivery():
    shipment = make_shipment()
    lifecycle.advance_status(shipment, ShipmentStatus.IN_TRANSIT, "Hub", "Departed", now=NOW)
    assert shipment.actual_delivery is None
    
    delivered_at = NOW + timedelta(days=2)
    lifecycle.advance_status(shipment, ShipmentStatus.DELIVERED, "Los Angeles", "Delivered", now=delivered_at)
    lifecycle.advance_status(
        shipment, ShipmentStatus.DELIVERED, "Los Angeles", "Delivery confirmed", now=delivered_at + timedelta(hours=1)
    )
    
    assert shipment.actual_delivery == delivered_at
    assert len(shipment.tracking) == 4


def test_permissive_mode_accepts_any_transition():
    shipment = make_shipment()
    lifecycle.advance_status(shipment, ShipmentStatus.DELIVERED, "Los Angeles", "Delivered", now=NOW)
    lifecycle.advance_status(shipment, ShipmentStatus.IN_TRANSIT, "Hub", "Returned to network", now=NOW)
    
    assert shipment.status == ShipmentStatus.IN_TRANSIT
    assert shipment.actual_delivery == NOW


def test_strict_mode_rejects_skipped_steps():
    shipment = make_shipment()
    
    with pytest.raises(PreconditionFailedError):
        lifecycle.advance_status(shipment, ShipmentStatus.DELIVERED, "Los Angeles", "Delivered", strict=True)
    
    assert shipment.status == ShipmentStatus.PENDING
    assert len(shipment.tracking) == 1
    
    lifecycle.advance_status(shipment, ShipmentStatus.PICKED_UP, "San Francisco", "Picked up", strict=True)
    assert shipment.status == ShipmentStatus.PICKED_UP


@pytest.mark.parametrize("status", [ShipmentStatus.PENDING, ShipmentStatus.PICKED_UP])
def test_cancel_from_cancellable_status(status):
    shipment = make_shipment()
    shipment.status = status
    
    event = lifecycle.cancel(shipment, now=NOW)
    
    assert shipment.status == ShipmentStatus.CANCELLED
    assert event.status == ShipmentStatus.CANCELLED
    assert event.location == "San Francisco"
    assert event.description == ledger.CANCELLED_DESCRIPTION
    assert len(shipment.tracking) == 2


@pytest.mark.parametrize("status", [
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELAYED,
    ShipmentStatus.DELIVERED,
    ShipmentStatus.CANCELLED,
])
def test_cancel_rejected_after_pickup(status):
    shipment = make_shipment()
    shipment.status = status
    
    with pytest.raises(PreconditionFailedError, match="Cannot cancel shipment at this stage"):
        lifecycle.cancel(shipment)
    
    assert shipment.status == status
    assert len(shipment.tracking) == 1


def test_edit_while_pending_changes_fields_only():
    shipment = make_shipment()
    new_recipient = contact("Linus", "Portland")
    
    updated = lifecycle.apply_edit(
        shipment,
        {"recipient": new_recipient, "notes": "Ring twice", "weight_kg": 99},
        now=NOW,
    )
    
    assert sorted(updated) == ["notes", "recipient"]
    assert shipment.recipient == new_recipient
    assert shipment.notes == "Ring twice"
    assert shipment.weight_kg == 1.2
    assert shipment.status == ShipmentStatus.PENDING
    assert len(shipment.tracking) == 1


@pytest.mark.parametrize("field", ["sender", "recipient", "package_description"])
def test_edit_never_clears_required_fields(field):
    shipment = make_shipment()
    before = (shipment.sender, shipment.recipient, shipment.package_description)
    
    with pytest.raises(ValidationFailedError, match="Required fields cannot be cleared"):
        lifecycle.apply_edit(shipment, {field: None, "notes": "Ring twice"}, now=NOW)
    
    assert (shipment.sender, shipment.recipient, shipment.package_description) == before
    assert shipment.notes == "Leave at the door"


@pytest.mark.parametrize("status", [s for s in ShipmentStatus if s != ShipmentStatus.PENDING])
def test_edit_rejected_after_pending(status):
    shipment = make_shipment()
    shipment.status = status
    
    with pytest.raises(PreconditionFailedError, match="Cannot update shipment after pickup"):
        lifecycle.apply_edit(shipment, {"notes": "too late"})
    
    assert shipment.notes == "Leave at the door"


def test_assign_agent_does_not_touch_ledger():
    shipment = make_shipment()
    lifecycle.assign_agent(shipment, 303, now=NOW)
    
    assert shipment.assigned_agent_id == 303
    assert shipment.status == ShipmentStatus.PENDING
    assert len(shipment.tracking) == 1


def test_successful_settlement_marks_paid_without_moving_status():
    shipment = make_shipment()
    confirmation = SettlementConfirmation(intent_id="pi_1", status=SETTLEMENT_SUCCEEDED, transaction_id="ch_1")
    
    assert lifecycle.apply_settlement(shipment, confirmation, now=NOW) == PaymentStatus.PAID
    assert shipment.paid_at == NOW
    assert shipment.payment_transaction_id == "ch_1"
    assert shipment.payment_method == "card"
    assert shipment.status == ShipmentStatus.PENDING
    assert len(shipment.tracking) == 1


def test_failed_settlement_marks_failed():
    shipment = make_shipment()
    confirmation = SettlementConfirmation(intent_id="pi_2", status=SETTLEMENT_FAILED)
    
    assert lifecycle.apply_settlement(shipment, confirmation, now=NOW) == PaymentStatus.FAILED
    assert shipment.paid_at is None
    assert shipment.payment_transaction_id == "pi_2"


def test_pending_settlement_is_rejected():
    shipment = make_shipment()
    confirmation = SettlementConfirmation(intent_id="pi_3", status=SETTLEMENT_PENDING)
    
    with pytest.raises(PreconditionFailedError, match="Payment not completed"):
        lifecycle.apply_settlement(shipment, confirmation)
    
    assert shipment.payment_status == PaymentStatus.PENDING
    assert shipment.payment_method is None
