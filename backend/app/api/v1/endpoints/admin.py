"""
Admin API Endpoints.

Fleet-wide shipment listing and search, status updates, agent assignment
and the per-shipment audit trail.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.models.enums import UserRole, ShipmentStatus
from backend.app.schemas.shipment import (
    ShipmentResponse, ShipmentListResponse, StatusUpdate, AgentAssignment
)
from backend.app.schemas.audit import AuditTrailResponse, AuditLogResponse
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_role
from backend.app.domain.shipments import repository
from backend.app.domain.shipments.shipment_service import ShipmentService
from backend.app.services.audit import get_shipment_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/shipments", response_model=ShipmentListResponse)
async def list_all_shipments(
    status_filter: Optional[ShipmentStatus] = Query(None, alias="status", description="Filter by status"),
    search: Optional[str] = Query(None, max_length=32, description="Tracking number contains (case-insensitive)"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    admin: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """List all shipments (admin-only), newest first."""
    shipments, total, total_pages = await ShipmentService.list_shipments(
        db,
        status=status_filter,
        search=search,
        page=page,
        page_size=page_size,
    )
    return ShipmentListResponse(
        shipments=[ShipmentResponse.model_validate(s) for s in shipments],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages
    )


@router.put("/shipments/{shipment_id}/status", response_model=ShipmentResponse)
async def update_shipment_status(
    shipment_id: int = Path(..., description="Shipment ID"),
    update: StatusUpdate = ...,
    current_user: dict = Depends(require_role([UserRole.ADMIN, UserRole.AGENT])),
    db: AsyncSession = Depends(get_db)
):
    """
    Set a shipment's status (admin/agent).
    
    Appends the matching ledger event; DELIVERED stamps the delivery time once.
    """
    shipment = await ShipmentService.advance_status(db, shipment_id, current_user, update)
    return ShipmentResponse.model_validate(shipment)


@router.put("/shipments/{shipment_id}/agent", response_model=ShipmentResponse)
async def assign_agent(
    shipment_id: int = Path(..., description="Shipment ID"),
    assignment: AgentAssignment = ...,
    admin: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Assign an agent to a shipment (admin-only)."""
    shipment = await ShipmentService.assign_agent(db, shipment_id, admin, assignment.agent_id)
    return ShipmentResponse.model_validate(shipment)


@router.get("/shipments/{shipment_id}/audit", response_model=AuditTrailResponse)
async def get_shipment_audit(
    shipment_id: int = Path(..., description="Shipment ID"),
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail for one shipment, most recent first (admin-only)."""
    if not await repository.load_shipment(db, shipment_id):
        raise ResourceNotFoundError("Shipment", shipment_id)
    
    logs, total = await get_shipment_audit_trail(db, shipment_id, limit=limit)
    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total
    )
