"""
Audit Log Database Model.

Tracks every mutating shipment and payment operation for compliance.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking shipment operations.
    
    Events logged:
    - SHIPMENT_CREATED / SHIPMENT_UPDATED / SHIPMENT_CANCELLED
    - SHIPMENT_STATUS_UPDATED / SHIPMENT_AGENT_ASSIGNED
    - PAYMENT_INTENT_CREATED / PAYMENT_SETTLED / PAYMENT_FAILED
    """
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)
    actor_role = Column(String(20), nullable=True)
    
    # What action was performed
    action = Column(String(100), nullable=False, index=True)
    
    # Which shipment was acted upon
    shipment_id = Column(Integer, index=True, nullable=True)
    tracking_number = Column(String(32), nullable=True)
    
    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)
    
    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, shipment={self.tracking_number})>"
