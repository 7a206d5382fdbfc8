"""
Security guards for role-based and ownership-based access control.

Each shipment operation has one explicit permission predicate so the
authorization matrix can be tested exhaustively:

    operation                 customer(owner)  customer(other)  agent  admin
    read shipment             yes              no               no     yes
    edit / cancel / pay       yes              no               no     no
    status update / tracking  no               no               yes    yes
    list all / assign agent   no               no               no     yes
    public tracking           anyone, no identity required
"""

from typing import List
from fastapi import Depends, HTTPException, status
from backend.app.core.exceptions import InsufficientPermissionsError
from backend.app.models.enums import UserRole
from backend.app.core.identity import get_current_user

STATUS_UPDATE_ROLES = (UserRole.ADMIN, UserRole.AGENT)


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.
    
    Usage:
        @router.get("/admin/shipments")
        async def list_shipments(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...
    
    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint
        
    Returns:
        FastAPI dependency function that validates user role
        
    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        if _role_of(current_user) not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )
        
        return current_user
    
    return role_checker


def _role_of(current_user: dict):
    try:
        return UserRole(current_user.get("role"))
    except ValueError:
        return None


def is_owner(resource_owner_id: int, current_user: dict) -> bool:
    return current_user.get("user_id") == resource_owner_id


def can_read_shipment(resource_owner_id: int, current_user: dict) -> bool:
    """Owner or admin."""
    return is_owner(resource_owner_id, current_user) or _role_of(current_user) == UserRole.ADMIN


def can_modify_shipment(resource_owner_id: int, current_user: dict) -> bool:
    """Customer edit/cancel: owner only, admin role does not bypass."""
    return is_owner(resource_owner_id, current_user)


def can_pay_for_shipment(resource_owner_id: int, current_user: dict) -> bool:
    return is_owner(resource_owner_id, current_user)


def can_update_shipment_status(current_user: dict) -> bool:
    """Admin or agent; ownership is not considered."""
    return _role_of(current_user) in STATUS_UPDATE_ROLES


def can_manage_shipments(current_user: dict) -> bool:
    """Fleet-wide listing, agent assignment and audit trail."""
    return _role_of(current_user) == UserRole.ADMIN


class ShipmentAccessGuard:
    """
    Raises InsufficientPermissionsError when a predicate fails.
    
    Callers look the shipment up first so that a missing shipment is
    reported as not-found before ownership is considered.
    
    Usage:
        shipment = await load_shipment(db, shipment_id)
        if not shipment:
            raise ResourceNotFoundError("Shipment", shipment_id)
        shipment_guard.enforce_read(shipment.owner_id, current_user)
    """
    
    def enforce_read(self, resource_owner_id: int, current_user: dict):
        if not can_read_shipment(resource_owner_id, current_user):
            raise InsufficientPermissionsError("Not authorized to view this shipment")
    
    def enforce_modify(self, resource_owner_id: int, current_user: dict):
        if not can_modify_shipment(resource_owner_id, current_user):
            raise InsufficientPermissionsError("Not authorized to modify this shipment")
    
    def enforce_payment(self, resource_owner_id: int, current_user: dict):
        if not can_pay_for_shipment(resource_owner_id, current_user):
            raise InsufficientPermissionsError("Not authorized to pay for this shipment")
    
    def enforce_status_update(self, current_user: dict):
        if not can_update_shipment_status(current_user):
            raise InsufficientPermissionsError("Admin or agent role required to update shipment status")
    
    def enforce_manage(self, current_user: dict):
        if not can_manage_shipments(current_user):
            raise InsufficientPermissionsError("Admin access required")


shipment_guard = ShipmentAccessGuard()
