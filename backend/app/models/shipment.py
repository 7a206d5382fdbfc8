"""
Shipment database model.

The shipment is the aggregate root: contacts, package, immutable pricing,
lifecycle status, payment sub-record and the tracking ledger.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, JSON, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import ShipmentStatus, ServiceClass, PaymentStatus


class Shipment(Base):
    """
    Shipment model.
    
    `version` is the optimistic concurrency token: every UPDATE is issued as
    `WHERE version = :loaded_version`, so a concurrent writer fails with
    StaleDataError instead of silently overwriting.
    """
    __tablename__ = "shipments"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tracking_number = Column(String(32), unique=True, nullable=False, index=True)
    
    # Ownership (immutable)
    owner_id = Column(Integer, nullable=False, index=True)
    assigned_agent_id = Column(Integer, nullable=True, index=True)
    
    # Contacts: {name, email, phone, address: {street, city, state, postal_code, country}}
    sender = Column(JSON, nullable=False)
    recipient = Column(JSON, nullable=False)
    
    # Package
    weight_kg = Column(Float, nullable=False)
    length_cm = Column(Float, nullable=False)
    width_cm = Column(Float, nullable=False)
    height_cm = Column(Float, nullable=False)
    package_description = Column(String(500), nullable=False)
    declared_value = Column(Float, nullable=False)
    
    # Service
    service_class = Column(Enum(ServiceClass), nullable=False)
    estimated_days = Column(Integer, nullable=False)
    
    # Pricing (computed once at creation)
    base_rate = Column(Float, nullable=False)
    weight_charge = Column(Float, nullable=False)
    insurance = Column(Float, nullable=False)
    tax = Column(Float, nullable=False)
    total_amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    
    # Lifecycle
    status = Column(Enum(ShipmentStatus), default=ShipmentStatus.PENDING, nullable=False, index=True)
    estimated_delivery = Column(DateTime(timezone=True), nullable=False)
    actual_delivery = Column(DateTime(timezone=True), nullable=True)
    
    # Payment sub-record
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    payment_method = Column(String(50), nullable=True)
    payment_transaction_id = Column(String(255), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    
    notes = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    # Ledger, creation order
    tracking = relationship(
        "TrackingEvent",
        back_populates="shipment",
        order_by="TrackingEvent.sequence",
        lazy="selectin",
    )
    
    __mapper_args__ = {"version_id_col": version}
    
    @property
    def package(self) -> dict:
        return {
            "weight_kg": self.weight_kg,
            "length_cm": self.length_cm,
            "width_cm": self.width_cm,
            "height_cm": self.height_cm,
            "description": self.package_description,
            "declared_value": self.declared_value,
        }
    
    @property
    def pricing(self) -> dict:
        return {
            "base_rate": self.base_rate,
            "weight_charge": self.weight_charge,
            "insurance": self.insurance,
            "tax": self.tax,
            "total": self.total_amount,
            "currency": self.currency,
        }
    
    @property
    def payment(self) -> dict:
        return {
            "status": self.payment_status,
            "method": self.payment_method,
            "transaction_id": self.payment_transaction_id,
            "paid_at": self.paid_at,
        }
    
    @property
    def sender_city(self) -> str:
        return self.sender["address"]["city"]
    
    def __repr__(self):
        return f"<Shipment(id={self.id}, tracking='{self.tracking_number}', status='{self.status.value}')>"
