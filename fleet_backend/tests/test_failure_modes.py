"""
Failure Injection Tests.

Validates that a failed or interrupted allocation leaves no partial state.
"""

import asyncio

import pytest

from fleet_backend.app.core.exceptions import (
    ResourceUnavailableError, ConsistencyFaultError
)
from fleet_backend.app.core.locks import truck_key
from fleet_backend.app.domain.trips.allocation_coordinator import AllocationCoordinator
from fleet_backend.app.models.enums import ResourceKind, TruckStatus, DriverStatus
from fleet_backend.app.models.trip_enums import TripStatus
from fleet_backend.app.services.audit import get_trip_history
from fleet_backend.app.services.consistency import find_violations
from fleet_backend.app.services.resource_registry import ResourceRegistry
from fleet_backend.app.services.trip_store import TripStore

registry = ResourceRegistry()


class ExplodingTripStore(TripStore):
    """Fails while persisting, after both resources were reserved."""

    def __init__(self, error):
        self.error = error

    async def add(self, db, trip):
        raise self.error


class RacedRegistry(ResourceRegistry):
    """Loses the reservation compare-and-swap a fixed number of times."""

    def __init__(self, losses):
        self.losses = losses
        self.calls = 0

    async def reserve(self, db, resource_id, kind):
        if ResourceKind(kind) == ResourceKind.TRUCK:
            self.calls += 1
            if self.calls <= self.losses:
                raise ResourceUnavailableError("Truck", resource_id, TruckStatus.IN_USE)
        return await super().reserve(db, resource_id, kind)


@pytest.fixture
async def fleet_data(make_truck, make_driver, make_client):
    return await make_truck(), await make_driver(), await make_client()


async def assert_untouched(db, truck_id, driver_id):
    assert await registry.get_status(db, truck_id, ResourceKind.TRUCK) == TruckStatus.AVAILABLE
    assert await registry.get_status(db, driver_id, ResourceKind.DRIVER) == DriverStatus.ACTIVE
    assert await TripStore().list(db) == []


@pytest.mark.asyncio
async def test_persist_failure_rolls_back_reservations(db_session, lock_manager, fleet_data, trip_payload):
    truck, driver, client = fleet_data
    coordinator = AllocationCoordinator(lock_manager, trips=ExplodingTripStore(RuntimeError("disk full")))

    with pytest.raises(RuntimeError):
        await coordinator.create_trip(db_session, trip_payload(truck.id, driver.id, client.id))

    await assert_untouched(db_session, truck.id, driver.id)
    assert not lock_manager.is_locked(truck_key(truck.id))


@pytest.mark.asyncio
async def test_cancellation_rolls_back_reservations(db_session, lock_manager, fleet_data, trip_payload):
    truck, driver, client = fleet_data
    coordinator = AllocationCoordinator(lock_manager, trips=ExplodingTripStore(asyncio.CancelledError()))

    with pytest.raises(asyncio.CancelledError):
        await coordinator.create_trip(db_session, trip_payload(truck.id, driver.id, client.id))

    await assert_untouched(db_session, truck.id, driver.id)
    assert not lock_manager.is_locked(truck_key(truck.id))


@pytest.mark.asyncio
async def test_conflict_is_retried_once(db_session, lock_manager, fleet_data, trip_payload):
    truck, driver, client = fleet_data
    raced = RacedRegistry(losses=1)
    coordinator = AllocationCoordinator(lock_manager, registry=raced, max_retries=1)

    trip = await coordinator.create_trip(db_session, trip_payload(truck.id, driver.id, client.id))

    assert trip.status == TripStatus.PLANNED
    assert raced.calls == 2
    assert await registry.get_status(db_session, driver.id, ResourceKind.DRIVER) == DriverStatus.BUSY


@pytest.mark.asyncio
async def test_exhausted_retries_surface_unavailable(db_session, lock_manager, fleet_data, trip_payload):
    truck, driver, client = fleet_data
    coordinator = AllocationCoordinator(lock_manager, registry=RacedRegistry(losses=5), max_retries=1)

    with pytest.raises(ResourceUnavailableError) as exc_info:
        await coordinator.create_trip(db_session, trip_payload(truck.id, driver.id, client.id))

    assert exc_info.value.details["reason"] == "conflict_retries_exhausted"
    await assert_untouched(db_session, truck.id, driver.id)


@pytest.mark.asyncio
async def test_lock_timeout_surfaces_unavailable(db_session, fleet_data, trip_payload):
    from fleet_backend.app.core.locks import InProcessLockManager

    truck, driver, client = fleet_data
    locks = InProcessLockManager(timeout=0.05)
    coordinator = AllocationCoordinator(locks)

    async with locks.hold(truck_key(truck.id)):
        with pytest.raises(ResourceUnavailableError) as exc_info:
            await coordinator.create_trip(db_session, trip_payload(truck.id, driver.id, client.id))

    assert exc_info.value.details["reason"] == "lock_timeout"
    await assert_untouched(db_session, truck.id, driver.id)


@pytest.mark.asyncio
async def test_release_of_unengaged_resource_is_a_fault(db_session, coordinator, fleet_data, trip_payload):
    truck, driver, client = fleet_data
    trip = await coordinator.create_trip(db_session, trip_payload(truck.id, driver.id, client.id))
    await coordinator.start_trip(db_session, trip.id)

    # Corrupt the registry behind the coordinator's back
    await registry.cas_status(db_session, truck.id, ResourceKind.TRUCK, TruckStatus.IN_USE, TruckStatus.AVAILABLE)
    await db_session.commit()

    with pytest.raises(ConsistencyFaultError) as exc_info:
        await coordinator.complete_trip(db_session, trip.id)

    assert exc_info.value.status_code == 500
    assert exc_info.value.details["trip_id"] == trip.id

    # Nothing was applied: trip still running, driver still engaged
    assert (await TripStore().get(db_session, trip.id)).status == TripStatus.IN_PROGRESS
    assert await registry.get_status(db_session, driver.id, ResourceKind.DRIVER) == DriverStatus.BUSY
    assert [e.action for e in await get_trip_history(db_session, trip.id)][-1] == "TRIP_STARTED"

    violations = await find_violations(db_session)
    assert [(v.kind, v.resource_id) for v in violations] == [(ResourceKind.TRUCK, truck.id)]
