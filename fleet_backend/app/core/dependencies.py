"""
Service dependencies for FastAPI.

Every request shares the process-wide lock manager, so allocations made
through different requests still serialize per truck, driver and trip.
"""

from fleet_backend.app.core.locks import get_lock_manager
from fleet_backend.app.domain.trips.allocation_coordinator import AllocationCoordinator
from fleet_backend.app.services.fleet_registry import FleetRegistry


def get_coordinator() -> AllocationCoordinator:
    """FastAPI dependency returning the allocation coordinator."""
    return AllocationCoordinator(get_lock_manager())


def get_fleet_registry() -> FleetRegistry:
    """FastAPI dependency returning the fleet registry."""
    return FleetRegistry(get_lock_manager())
