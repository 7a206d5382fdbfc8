"""
Tracking Ledger.

Append-only, creation-ordered sequence of events owned by a shipment.
Events are never edited or removed.
"""

from datetime import datetime
from typing import Optional, List

from backend.app.models.shipment import Shipment
from backend.app.models.tracking_event import TrackingEvent
from backend.app.models.enums import ShipmentStatus

CREATED_DESCRIPTION = "Shipment created and awaiting pickup"
CANCELLED_DESCRIPTION = "Shipment cancelled by customer"


def append_event(
    shipment: Shipment,
    status: ShipmentStatus,
    location: str,
    description: str,
    timestamp: datetime,
    coordinates: Optional[dict] = None,
) -> TrackingEvent:
    """
    Append one event at the next ledger position.
    
    Args:
        shipment: Owning shipment (its `tracking` collection must be loaded)
        status: Status carried by the event
        location: Free-text location
        description: Human readable description
        timestamp: Event time
        coordinates: Optional {"lat", "lng"}
        
    Returns:
        The new TrackingEvent (added to shipment.tracking)
    """
    event = TrackingEvent(
        sequence=len(shipment.tracking),
        status=status,
        location=location,
        description=description,
        timestamp=timestamp,
        latitude=coordinates["lat"] if coordinates else None,
        longitude=coordinates["lng"] if coordinates else None,
    )
    shipment.tracking.append(event)
    return event


def chronological(shipment: Shipment) -> List[TrackingEvent]:
    """Stored order, oldest first."""
    return sorted(shipment.tracking, key=lambda event: event.sequence)


def most_recent_first(shipment: Shipment) -> List[TrackingEvent]:
    return list(reversed(chronological(shipment)))


def latest_event(shipment: Shipment) -> Optional[TrackingEvent]:
    events = chronological(shipment)
    return events[-1] if events else None
