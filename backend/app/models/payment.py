"""
Payment database model.

Records each settlement intent issued to the payment gateway.
"""

from sqlalchemy import Column, Integer, Float, String, ForeignKey, DateTime, Enum, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import PaymentRecordStatus


class Payment(Base):
    """
    Payment model.
    
    Created PENDING when an intent is issued; moved to COMPLETED or FAILED
    by the settlement confirmation.
    """
    __tablename__ = "payments"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    user_id = Column(Integer, nullable=False, index=True)
    shipment_id = Column(Integer, ForeignKey('shipments.id'), nullable=False, index=True)
    
    # Financials
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    
    # Status
    status = Column(Enum(PaymentRecordStatus), default=PaymentRecordStatus.PENDING, nullable=False, index=True)
    payment_method = Column(String(50), nullable=False)
    gateway_intent_id = Column(String(255), unique=True, nullable=False, index=True)
    meta_data = Column(JSON, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Payment(id={self.id}, shipment_id={self.shipment_id}, status='{self.status.value}')>"
