"""
Allocation Coordinator (Domain Logic).

Pairs every trip creation, transition and deletion with the resource status
changes it implies, as one atomic unit:

1. Lock the ids involved (per resource, never globally)
2. Open a transaction
3. Check, compare-and-swap, persist, audit
4. Commit, or roll back on any other exit

A compare-and-swap that loses a race raises AllocationConflictError, and the
whole attempt is retried from scratch a bounded number of times.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from fleet_backend.app.core.config import settings
from fleet_backend.app.core.exceptions import (
    AllocationConflictError, ConsistencyFaultError, InvalidResourceStateError, InvalidTransitionError,
    ResourceNotFoundError, ResourceUnavailableError, TripFinalizedError
)
from fleet_backend.app.core.locks import truck_key, driver_key, client_key, trip_key
from fleet_backend.app.db.session import unit_of_work
from fleet_backend.app.domain.trips.trip_state_machine import (
    plan_transition, plan_deletion, ensure_mutable
)
from fleet_backend.app.models.client import Client
from fleet_backend.app.models.enums import ResourceKind, TruckStatus, DriverStatus
from fleet_backend.app.models.trip import Trip
from fleet_backend.app.models.trip_enums import TripStatus
from fleet_backend.app.schemas.trip import TripCreate, TripUpdate
from fleet_backend.app.services.audit import log_event, AuditAction
from fleet_backend.app.services.resource_registry import ResourceRegistry, resource_label
from fleet_backend.app.services.trip_store import TripStore

logger = logging.getLogger(__name__)

TRANSITION_ACTIONS = {
    TripStatus.IN_PROGRESS: AuditAction.TRIP_STARTED,
    TripStatus.COMPLETED: AuditAction.TRIP_COMPLETED,
    TripStatus.CANCELLED: AuditAction.TRIP_CANCELLED,
}

# Trip detail columns that accept NULL
NULLABLE_DETAIL_FIELDS = {"estimated_cost", "actual_cost"}


class AllocationCoordinator:
    """
    Atomic trip allocation and lifecycle operations.

    The lock manager, registry and trip store are injected so every caller
    in a process shares the same per-resource serialization.

    Returned trips are detached from the session, so a later rollback on
    the same session leaves them readable.
    """

    def __init__(
        self,
        lock_manager,
        registry: Optional[ResourceRegistry] = None,
        trips: Optional[TripStore] = None,
        max_retries: Optional[int] = None
    ):
        self.locks = lock_manager
        self.registry = registry or ResourceRegistry()
        self.trips = trips or TripStore()
        self.max_retries = settings.allocation_max_retries if max_retries is None else max_retries

    # Creation

    async def create_trip(self, db: AsyncSession, trip_data: TripCreate) -> Trip:
        """
        Allocate a truck and a driver and create a PLANNED trip.

        Raises:
            ResourceNotFoundError: If the truck, driver or client does not exist
            ResourceUnavailableError: If the truck is not AVAILABLE, the driver
                is not ACTIVE, a lock times out, or conflict retries run out
        """
        last_conflict = None
        for attempt in range(1, self.max_retries + 2):
            try:
                trip = await self._create_once(db, trip_data)
            except AllocationConflictError as exc:
                last_conflict = exc
                logger.warning(
                    "Allocation conflict",
                    extra={
                        "attempt": attempt,
                        "truck_id": trip_data.truck_id,
                        "driver_id": trip_data.driver_id,
                        "conflict": exc.details,
                    }
                )
                continue

            logger.info(
                "Trip allocated",
                extra={"trip_id": trip.id, "truck_id": trip.truck_id, "driver_id": trip.driver_id}
            )
            return trip

        details = last_conflict.details if last_conflict else {}
        raise ResourceUnavailableError(
            details.get("resource", "Truck"),
            details.get("id", trip_data.truck_id),
            details.get("status"),
            reason="conflict_retries_exhausted"
        )

    async def _create_once(self, db: AsyncSession, trip_data: TripCreate) -> Trip:
        keys = (
            truck_key(trip_data.truck_id),
            driver_key(trip_data.driver_id),
            client_key(trip_data.client_id),
        )
        async with self.locks.hold(*keys):
            async with unit_of_work(db):
                await self._ensure_client(db, trip_data.client_id)

                truck_status = await self.registry.get_status(db, trip_data.truck_id, ResourceKind.TRUCK)
                if truck_status != TruckStatus.AVAILABLE:
                    raise ResourceUnavailableError("Truck", trip_data.truck_id, truck_status)

                driver_status = await self.registry.get_status(db, trip_data.driver_id, ResourceKind.DRIVER)
                if driver_status != DriverStatus.ACTIVE:
                    raise ResourceUnavailableError("Driver", trip_data.driver_id, driver_status)

                await self._reserve(db, trip_data.truck_id, ResourceKind.TRUCK)
                await self._reserve(db, trip_data.driver_id, ResourceKind.DRIVER)

                trip = await self.trips.add(
                    db, Trip(**trip_data.model_dump(), status=TripStatus.PLANNED)
                )

                await log_event(
                    db=db,
                    action=AuditAction.TRIP_CREATED,
                    trip_id=trip.id,
                    truck_id=trip.truck_id,
                    driver_id=trip.driver_id,
                    client_id=trip.client_id,
                    metadata={"origin": trip.origin, "destination": trip.destination}
                )

            await db.refresh(trip)
            db.expunge(trip)
        return trip

    async def _ensure_client(self, db: AsyncSession, client_id: int) -> None:
        result = await db.execute(select(Client.id).where(Client.id == client_id))
        if result.scalar_one_or_none() is None:
            raise ResourceNotFoundError("Client", client_id)

    async def _reserve(self, db: AsyncSession, resource_id: int, kind: ResourceKind) -> None:
        try:
            await self.registry.reserve(db, resource_id, kind)
        except ResourceUnavailableError as exc:
            # Seen available a moment ago: another writer got there first
            raise AllocationConflictError(
                f"{resource_label(kind)} {resource_id} changed state during allocation",
                details=exc.details
            ) from exc

    # Lifecycle

    async def transition(self, db: AsyncSession, trip_id: int, target: TripStatus) -> Trip:
        """
        Move a trip to `target` and apply the transition's resource effects.

        Raises:
            ResourceNotFoundError: If the trip does not exist
            InvalidTransitionError: If the transition is not in the lifecycle
            TripFinalizedError: If the trip is already COMPLETED or CANCELLED
            ConsistencyFaultError: If a bound resource is not engaged
        """
        try:
            target = TripStatus(target)
        except ValueError:
            raise InvalidTransitionError(None, target, message=f"Unknown trip status: {target}")
        return await self._with_retries(self._transition_once, db, trip_id, target)

    async def start_trip(self, db: AsyncSession, trip_id: int) -> Trip:
        return await self.transition(db, trip_id, TripStatus.IN_PROGRESS)

    async def complete_trip(self, db: AsyncSession, trip_id: int) -> Trip:
        return await self.transition(db, trip_id, TripStatus.COMPLETED)

    async def cancel_trip(self, db: AsyncSession, trip_id: int) -> Trip:
        return await self.transition(db, trip_id, TripStatus.CANCELLED)

    async def _transition_once(self, db: AsyncSession, trip_id: int, target: TripStatus) -> Trip:
        async with self.locks.hold(trip_key(trip_id)):
            async with unit_of_work(db):
                trip = await self.trips.get(db, trip_id)
                plan = plan_transition(trip, target)

                updated = await self.trips.update_status(
                    db, trip.id, plan.source, plan.target,
                    start_date=plan.start_date, end_date=plan.end_date
                )
                if not updated:
                    raise AllocationConflictError(
                        f"Trip {trip.id} changed state during transition",
                        details={"trip_id": trip.id, "expected": plan.source.value}
                    )

                if plan.release_resources:
                    await self._release_bound_resources(db, trip)

                await log_event(
                    db=db,
                    action=TRANSITION_ACTIONS[plan.target],
                    trip_id=trip.id,
                    truck_id=trip.truck_id,
                    driver_id=trip.driver_id,
                    metadata={
                        "from": plan.source.value,
                        "to": plan.target.value,
                        "resources_released": plan.release_resources
                    }
                )

            await db.refresh(trip)
            db.expunge(trip)

        logger.info(
            "Trip transitioned",
            extra={"trip_id": trip.id, "from": plan.source.value, "to": plan.target.value}
        )
        return trip

    async def update_trip(self, db: AsyncSession, trip_id: int, update_data: TripUpdate) -> Trip:
        """
        Edit route and cost details of a non-terminal trip.

        Raises:
            ResourceNotFoundError: If the trip does not exist
            TripFinalizedError: If the trip is COMPLETED or CANCELLED
        """
        changes = {
            field: value
            for field, value in update_data.model_dump(exclude_unset=True).items()
            if value is not None or field in NULLABLE_DETAIL_FIELDS
        }
        return await self._with_retries(self._update_once, db, trip_id, changes)

    async def _update_once(self, db: AsyncSession, trip_id: int, changes: dict) -> Trip:
        async with self.locks.hold(trip_key(trip_id)):
            async with unit_of_work(db):
                trip = await self.trips.get(db, trip_id)
                ensure_mutable(trip)

                if changes:
                    if not await self.trips.update_details(db, trip.id, changes):
                        current = await self.trips.get(db, trip.id)
                        raise TripFinalizedError(current.id, current.status)

                    await log_event(
                        db=db,
                        action=AuditAction.TRIP_UPDATED,
                        trip_id=trip.id,
                        metadata={"fields": sorted(changes)}
                    )

            await db.refresh(trip)
            db.expunge(trip)
        return trip

    # Deletion

    async def delete_trip(self, db: AsyncSession, trip_id: int) -> None:
        """
        Delete a PLANNED or terminal trip, releasing resources a PLANNED trip holds.

        Raises:
            ResourceNotFoundError: If the trip does not exist
            TripActiveError: If the trip is IN_PROGRESS
        """
        await self._with_retries(self._delete_once, db, trip_id)

    async def _delete_once(self, db: AsyncSession, trip_id: int) -> None:
        async with self.locks.hold(trip_key(trip_id)):
            async with unit_of_work(db):
                trip = await self.trips.get(db, trip_id)
                release = plan_deletion(trip)

                if not await self.trips.delete(db, trip.id, trip.status):
                    raise AllocationConflictError(
                        f"Trip {trip.id} changed state during deletion",
                        details={"trip_id": trip.id, "expected": trip.status.value}
                    )

                if release:
                    await self._release_bound_resources(db, trip)

                await log_event(
                    db=db,
                    action=AuditAction.TRIP_DELETED,
                    trip_id=trip.id,
                    truck_id=trip.truck_id,
                    driver_id=trip.driver_id,
                    client_id=trip.client_id,
                    metadata={"status": trip.status.value, "resources_released": release}
                )
                db.expunge(trip)

        logger.info("Trip deleted", extra={"trip_id": trip_id, "resources_released": release})

    # Helpers

    async def _with_retries(self, operation, db: AsyncSession, *args):
        last_conflict = None
        for attempt in range(1, self.max_retries + 2):
            try:
                return await operation(db, *args)
            except AllocationConflictError as exc:
                last_conflict = exc
                logger.warning("Trip update conflict", extra={"attempt": attempt, "conflict": exc.details})
        raise last_conflict

    async def _release_bound_resources(self, db: AsyncSession, trip: Trip) -> None:
        for kind, resource_id in (
            (ResourceKind.TRUCK, trip.truck_id),
            (ResourceKind.DRIVER, trip.driver_id),
        ):
            if resource_id is None:
                raise self._consistency_fault(trip, kind, None, "open trip has no bound resource")
            try:
                await self.registry.release(db, resource_id, kind)
            except (InvalidResourceStateError, ResourceNotFoundError) as exc:
                raise self._consistency_fault(trip, kind, resource_id, exc.message) from exc

    def _consistency_fault(self, trip: Trip, kind: ResourceKind, resource_id, reason: str) -> ConsistencyFaultError:
        details = {
            "trip_id": trip.id,
            "trip_status": trip.status.value,
            "kind": kind.value,
            "resource_id": resource_id,
            "reason": reason,
        }
        logger.critical("Resource state disagrees with trip; manual reconciliation required", extra=details)
        return ConsistencyFaultError(
            f"{resource_label(kind)} {resource_id} is not engaged by trip {trip.id}",
            details=details
        )
