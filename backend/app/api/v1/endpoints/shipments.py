"""
Shipment API Endpoints.

Customers create, view, edit and cancel their own shipments; anyone can
track a shipment by tracking number; admins and agents post tracking updates.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.models.enums import ShipmentStatus, UserRole
from backend.app.schemas.shipment import (
    ShipmentCreate, ShipmentUpdate, StatusUpdate, ShipmentResponse,
    ShipmentListResponse, CancelResponse, TrackingResponse
)
from backend.app.core.guards import require_role
from backend.app.core.identity import get_current_user
from backend.app.domain.shipments.shipment_service import ShipmentService

router = APIRouter(prefix="/shipments", tags=["Shipments"])


@router.post("", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment(
    shipment_data: ShipmentCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new shipment owned by the caller.
    
    Pricing is computed server-side and the shipment starts PENDING with a
    single ledger entry.
    """
    shipment = await ShipmentService.create_shipment(db, current_user, shipment_data)
    return ShipmentResponse.model_validate(shipment)


@router.get("", response_model=ShipmentListResponse)
async def list_my_shipments(
    status_filter: Optional[ShipmentStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the caller's own shipments, newest first."""
    shipments, total, total_pages = await ShipmentService.list_shipments(
        db,
        owner_id=current_user["user_id"],
        status=status_filter,
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


@router.get("/track/{tracking_number}", response_model=TrackingResponse)
async def track_shipment(
    tracking_number: str = Path(..., min_length=1, max_length=32, description="Tracking number"),
    newest_first: bool = Query(False, description="Return events most recent first"),
    db: AsyncSession = Depends(get_db)
):
    """
    Public tracking lookup.
    
    Events are stored and returned in creation order; `newest_first`
    reverses the presentation only.
    """
    snapshot = await ShipmentService.track(db, tracking_number)
    if newest_first:
        snapshot = snapshot.model_copy(update={"events": list(reversed(snapshot.events))})
    return snapshot


@router.get("/{shipment_id}", response_model=ShipmentResponse)
async def get_shipment(
    shipment_id: int = Path(..., description="Shipment ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Shipment details (owner or admin)."""
    shipment = await ShipmentService.get_shipment(db, shipment_id, current_user)
    return ShipmentResponse.model_validate(shipment)


@router.patch("/{shipment_id}", response_model=ShipmentResponse)
async def update_shipment(
    shipment_id: int = Path(..., description="Shipment ID"),
    shipment_data: ShipmentUpdate = ...,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit contacts, package description or notes (owner only).
    
    Only allowed while the shipment is still PENDING.
    """
    shipment = await ShipmentService.update_shipment(db, shipment_id, current_user, shipment_data)
    return ShipmentResponse.model_validate(shipment)


@router.delete("/{shipment_id}", response_model=CancelResponse)
async def cancel_shipment(
    shipment_id: int = Path(..., description="Shipment ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel a shipment (owner only, status-based soft cancel).
    
    Only allowed while PENDING or PICKED_UP. The shipment is kept.
    """
    shipment = await ShipmentService.cancel_shipment(db, shipment_id, current_user)
    return CancelResponse(
        message="Shipment cancelled successfully",
        shipment_id=shipment.id,
        tracking_number=shipment.tracking_number,
        status=shipment.status
    )


@router.post("/{shipment_id}/tracking", response_model=ShipmentResponse)
async def add_tracking_update(
    shipment_id: int = Path(..., description="Shipment ID"),
    update: StatusUpdate = ...,
    current_user: dict = Depends(require_role([UserRole.ADMIN, UserRole.AGENT])),
    db: AsyncSession = Depends(get_db)
):
    """Append a tracking event and move the shipment to its status (admin/agent)."""
    shipment = await ShipmentService.advance_status(db, shipment_id, current_user, update)
    return ShipmentResponse.model_validate(shipment)
