"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import shipments, admin, rates, payments

router = APIRouter()

# Customer shipment endpoints + public tracking
router.include_router(shipments.router)

# Admin / agent operations
router.include_router(admin.router)

# Public quoting
router.include_router(rates.router)

# Settlement
router.include_router(payments.router)
