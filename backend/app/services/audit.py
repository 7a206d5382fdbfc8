"""
Audit logging service for shipment and payment operations.

Entries are added to the caller's session and committed together with the
change they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    SHIPMENT_CREATED = "SHIPMENT_CREATED"
    SHIPMENT_UPDATED = "SHIPMENT_UPDATED"
    SHIPMENT_CANCELLED = "SHIPMENT_CANCELLED"
    SHIPMENT_STATUS_UPDATED = "SHIPMENT_STATUS_UPDATED"
    SHIPMENT_AGENT_ASSIGNED = "SHIPMENT_AGENT_ASSIGNED"
    
    PAYMENT_INTENT_CREATED = "PAYMENT_INTENT_CREATED"
    PAYMENT_SETTLED = "PAYMENT_SETTLED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor: Optional[dict] = None,
    shipment_id: Optional[int] = None,
    tracking_number: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Record an audit event in the current transaction.
    
    Args:
        db: Database session (caller commits)
        action: Action being performed (use AuditAction constants)
        actor: Caller identity {"user_id", "sub", "role"}, None for system actions
        shipment_id: Shipment acted upon
        tracking_number: Tracking number of that shipment
        metadata: Additional context as JSON
        
    Returns:
        Pending AuditLog instance
    """
    actor = actor or {}
    audit_log = AuditLog(
        actor_id=actor.get("user_id"),
        actor_username=actor.get("sub"),
        actor_role=actor.get("role"),
        action=action,
        shipment_id=shipment_id,
        tracking_number=tracking_number,
        meta_data=metadata,
    )
    
    db.add(audit_log)
    return audit_log


async def get_shipment_audit_trail(
    db: AsyncSession,
    shipment_id: int,
    limit: int = 100
) -> tuple[list[AuditLog], int]:
    """
    Audit history of one shipment, most recent first.
    
    Returns:
        (entries, total count)
    """
    total = await db.scalar(
        select(func.count(AuditLog.id)).where(AuditLog.shipment_id == shipment_id)
    )
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.shipment_id == shipment_id)
        .order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
        .limit(limit)
    )
    return result.scalars().all(), total
