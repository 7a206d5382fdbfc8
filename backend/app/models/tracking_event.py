"""
Tracking Event database model.

One row per ledger entry. Rows are only ever inserted.
"""

from sqlalchemy import Column, Integer, Float, String, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from backend.app.db.session import Base
from backend.app.models.enums import ShipmentStatus


class TrackingEvent(Base):
    """
    Tracking Event model.
    
    `sequence` is the 0-based position in the shipment's ledger. The unique
    (shipment_id, sequence) pair makes two concurrent appends collide
    instead of both landing at the same position.
    """
    __tablename__ = "tracking_events"
    __table_args__ = (
        UniqueConstraint("shipment_id", "sequence", name="uq_tracking_events_shipment_sequence"),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    shipment_id = Column(Integer, ForeignKey('shipments.id'), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    
    status = Column(Enum(ShipmentStatus), nullable=False)
    location = Column(String(255), nullable=False)
    description = Column(String(500), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    
    # Optional GPS fix
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    
    shipment = relationship("Shipment", back_populates="tracking")
    
    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {"lat": self.latitude, "lng": self.longitude}
    
    def __repr__(self):
        return f"<TrackingEvent(shipment_id={self.shipment_id}, seq={self.sequence}, status='{self.status.value}')>"
