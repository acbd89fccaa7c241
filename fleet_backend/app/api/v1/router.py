"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from fleet_backend.app.api.v1.endpoints import trips, fleet, ops

router = APIRouter()

# Trip allocation, lifecycle and lookups
router.include_router(trips.router)

# Fleet registration and availability
router.include_router(fleet.truck_router)
router.include_router(fleet.driver_router)
router.include_router(fleet.client_router)

# Operations
router.include_router(ops.router)
