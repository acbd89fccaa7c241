"""
Fleet registry service.

Registration and upkeep of trucks, drivers and clients. Service status
changes and deletions take the same per-resource locks as trip allocation,
so they never interleave with a reservation of the same truck or driver.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError

from fleet_backend.app.core.exceptions import (
    DuplicateResourceError, InvalidResourceStateError, ResourceInUseError,
    ResourceNotFoundError, ValidationFailedError
)
from fleet_backend.app.core.locks import truck_key, driver_key, client_key
from fleet_backend.app.db.session import unit_of_work
from fleet_backend.app.models.client import Client
from fleet_backend.app.models.driver import Driver
from fleet_backend.app.models.enums import (
    ResourceKind, TruckStatus, DriverStatus,
    AVAILABLE_STATUS, ENGAGED_STATUS, OUT_OF_SERVICE_STATUSES
)
from fleet_backend.app.models.trip import Trip
from fleet_backend.app.models.truck import Truck
from fleet_backend.app.schemas.fleet import TruckCreate, DriverCreate, ClientCreate
from fleet_backend.app.services.audit import log_event, AuditAction
from fleet_backend.app.services.resource_registry import ResourceRegistry, resource_label
from fleet_backend.app.services.trip_store import TripStore

logger = logging.getLogger(__name__)

_KEYS = {
    ResourceKind.TRUCK: truck_key,
    ResourceKind.DRIVER: driver_key,
}

_STATUS_ACTIONS = {
    ResourceKind.TRUCK: AuditAction.TRUCK_STATUS_CHANGED,
    ResourceKind.DRIVER: AuditAction.DRIVER_STATUS_CHANGED,
}

_DELETE_ACTIONS = {
    ResourceKind.TRUCK: AuditAction.TRUCK_DELETED,
    ResourceKind.DRIVER: AuditAction.DRIVER_DELETED,
}


async def _load(db: AsyncSession, model, record_id: int, label: str):
    result = await db.execute(
        select(model)
        .where(model.id == record_id)
        .execution_options(populate_existing=True)
    )
    record = result.scalar_one_or_none()
    if not record:
        raise ResourceNotFoundError(label, record_id)
    return record


async def _ensure_unique(db: AsyncSession, model, label: str, field: str, value) -> None:
    result = await db.execute(select(model.id).where(getattr(model, field) == value))
    if result.scalar_one_or_none() is not None:
        raise DuplicateResourceError(label, field, value)


class FleetRegistry:
    """
    Registration, service status and removal of fleet records.

    Returned records are detached from the session.
    """

    def __init__(self, lock_manager, registry: Optional[ResourceRegistry] = None, trips: Optional[TripStore] = None):
        self.locks = lock_manager
        self.registry = registry or ResourceRegistry()
        self.trips = trips or TripStore()

    # Registration

    async def register_truck(self, db: AsyncSession, truck_data: TruckCreate) -> Truck:
        """
        Register a truck in an available or out-of-service state.

        Raises:
            ValidationFailedError: If the initial status is IN_USE
            DuplicateResourceError: If the license plate is taken
        """
        if truck_data.status == TruckStatus.IN_USE:
            raise ValidationFailedError(
                "A truck cannot be registered as IN_USE",
                details={"status": truck_data.status.value}
            )

        async with unit_of_work(db):
            await _ensure_unique(db, Truck, "Truck", "license_plate", truck_data.license_plate)
            truck = Truck(**truck_data.model_dump())
            await self._insert(db, truck, "Truck", "license_plate", truck_data.license_plate)
            await log_event(
                db=db,
                action=AuditAction.TRUCK_REGISTERED,
                truck_id=truck.id,
                metadata={"license_plate": truck.license_plate, "status": truck.status.value}
            )

        await db.refresh(truck)
        db.expunge(truck)
        logger.info("Truck registered", extra={"truck_id": truck.id})
        return truck

    async def register_driver(self, db: AsyncSession, driver_data: DriverCreate) -> Driver:
        """
        Register a driver in an available or off-duty state.

        Raises:
            ValidationFailedError: If the initial status is BUSY
            DuplicateResourceError: If the email or license number is taken
        """
        if driver_data.status == DriverStatus.BUSY:
            raise ValidationFailedError(
                "A driver cannot be registered as BUSY",
                details={"status": driver_data.status.value}
            )

        async with unit_of_work(db):
            await _ensure_unique(db, Driver, "Driver", "email", driver_data.email)
            await _ensure_unique(db, Driver, "Driver", "license_number", driver_data.license_number)
            driver = Driver(**driver_data.model_dump())
            await self._insert(db, driver, "Driver", "license_number", driver_data.license_number)
            await log_event(
                db=db,
                action=AuditAction.DRIVER_REGISTERED,
                driver_id=driver.id,
                metadata={"license_number": driver.license_number, "status": driver.status.value}
            )

        await db.refresh(driver)
        db.expunge(driver)
        logger.info("Driver registered", extra={"driver_id": driver.id})
        return driver

    async def register_client(self, db: AsyncSession, client_data: ClientCreate) -> Client:
        """
        Raises:
            DuplicateResourceError: If the email is taken
        """
        async with unit_of_work(db):
            await _ensure_unique(db, Client, "Client", "email", client_data.email)
            client = Client(**client_data.model_dump())
            await self._insert(db, client, "Client", "email", client_data.email)
            await log_event(
                db=db,
                action=AuditAction.CLIENT_REGISTERED,
                client_id=client.id,
                metadata={"name": client.name}
            )

        await db.refresh(client)
        db.expunge(client)
        return client

    async def _insert(self, db: AsyncSession, record, label: str, field: str, value) -> None:
        db.add(record)
        try:
            await db.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration of the same value
            raise DuplicateResourceError(label, field, value) from exc

    # Upkeep

    async def record_odometer(self, db: AsyncSession, truck_id: int, total_mileage: float) -> Truck:
        """
        Record a new odometer reading.

        Raises:
            ResourceNotFoundError: If the truck does not exist
            ValidationFailedError: If the reading is lower than the stored one
        """
        async with self.locks.hold(truck_key(truck_id)):
            async with unit_of_work(db):
                truck = await _load(db, Truck, truck_id, "Truck")
                previous = truck.total_mileage or 0
                if total_mileage < previous:
                    raise ValidationFailedError(
                        "Odometer reading cannot decrease",
                        details={"truck_id": truck_id, "current": previous, "requested": total_mileage}
                    )

                await db.execute(
                    update(Truck)
                    .where(Truck.id == truck_id, Truck.total_mileage <= total_mileage)
                    .values(total_mileage=total_mileage, updated_at=func.now())
                    .execution_options(synchronize_session=False)
                )
                await log_event(
                    db=db,
                    action=AuditAction.ODOMETER_RECORDED,
                    truck_id=truck_id,
                    metadata={"from": previous, "to": total_mileage}
                )

            await db.refresh(truck)
            db.expunge(truck)
        return truck

    async def set_truck_service_status(self, db: AsyncSession, truck_id: int, new_status: TruckStatus) -> Truck:
        return await self._set_service_status(db, ResourceKind.TRUCK, truck_id, TruckStatus.normalize(new_status))

    async def set_driver_service_status(self, db: AsyncSession, driver_id: int, new_status: DriverStatus) -> Driver:
        return await self._set_service_status(db, ResourceKind.DRIVER, driver_id, DriverStatus(new_status))

    async def _set_service_status(self, db: AsyncSession, kind: ResourceKind, resource_id: int, new_status):
        """
        Move a resource between its available and out-of-service states.

        Raises:
            ValidationFailedError: If the target is the engaged state
            ResourceNotFoundError: If the resource does not exist
            InvalidResourceStateError: If the resource is engaged by a trip
        """
        engaged = ENGAGED_STATUS[kind]
        label = resource_label(kind)
        if new_status not in {AVAILABLE_STATUS[kind]} | OUT_OF_SERVICE_STATUSES[kind]:
            raise ValidationFailedError(
                f"{label} status {new_status.value} is set by trip allocation only",
                details={"status": new_status.value}
            )

        async with self.locks.hold(_KEYS[kind](resource_id)):
            async with unit_of_work(db):
                current = await self.registry.get_status(db, resource_id, kind)
                if current == engaged:
                    raise InvalidResourceStateError(label, resource_id, current)

                if current != new_status:
                    if not await self.registry.cas_status(db, resource_id, kind, current, new_status):
                        latest = await self.registry.get_status(db, resource_id, kind)
                        raise InvalidResourceStateError(label, resource_id, latest, expected=current)

                    await log_event(
                        db=db,
                        action=_STATUS_ACTIONS[kind],
                        truck_id=resource_id if kind == ResourceKind.TRUCK else None,
                        driver_id=resource_id if kind == ResourceKind.DRIVER else None,
                        metadata={"from": current.value, "to": new_status.value}
                    )

            record = await _load(db, self.registry.model_for(kind), resource_id, label)
            db.expunge(record)

        logger.info(
            "Service status changed",
            extra={"kind": kind.value, "resource_id": resource_id, "status": new_status.value}
        )
        return record

    # Removal

    async def delete_truck(self, db: AsyncSession, truck_id: int) -> None:
        await self._delete_resource(db, ResourceKind.TRUCK, truck_id)

    async def delete_driver(self, db: AsyncSession, driver_id: int) -> None:
        await self._delete_resource(db, ResourceKind.DRIVER, driver_id)

    async def _delete_resource(self, db: AsyncSession, kind: ResourceKind, resource_id: int) -> None:
        """
        Remove a truck or driver no open trip references.

        Terminal trips keep their history with the reference cleared.

        Raises:
            ResourceNotFoundError: If the resource does not exist
            ResourceInUseError: If a PLANNED or IN_PROGRESS trip references it
            InvalidResourceStateError: If it is engaged without an open trip
        """
        model = self.registry.model_for(kind)
        label = resource_label(kind)
        engaged = ENGAGED_STATUS[kind]
        trip_column = Trip.truck_id if kind == ResourceKind.TRUCK else Trip.driver_id

        async with self.locks.hold(_KEYS[kind](resource_id)):
            async with unit_of_work(db):
                current = await self.registry.get_status(db, resource_id, kind)
                open_trip_ids = await self.trips.open_trip_ids(db, kind, resource_id)
                if open_trip_ids:
                    raise ResourceInUseError(label, resource_id, open_trip_ids)
                if current == engaged:
                    raise InvalidResourceStateError(label, resource_id, current)

                await db.execute(
                    update(Trip)
                    .where(trip_column == resource_id)
                    .values({trip_column.key: None})
                    .execution_options(synchronize_session=False)
                )
                result = await db.execute(
                    delete(model)
                    .where(model.id == resource_id, model.status != engaged)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    latest = await self.registry.get_status(db, resource_id, kind)
                    raise InvalidResourceStateError(label, resource_id, latest)

                await log_event(
                    db=db,
                    action=_DELETE_ACTIONS[kind],
                    truck_id=resource_id if kind == ResourceKind.TRUCK else None,
                    driver_id=resource_id if kind == ResourceKind.DRIVER else None,
                    metadata={"status": current.value}
                )

        logger.info("Resource deleted", extra={"kind": kind.value, "resource_id": resource_id})

    async def delete_client(self, db: AsyncSession, client_id: int) -> None:
        """
        Raises:
            ResourceNotFoundError: If the client does not exist
            ResourceInUseError: If a PLANNED or IN_PROGRESS trip references it
        """
        async with self.locks.hold(client_key(client_id)):
            async with unit_of_work(db):
                client = await _load(db, Client, client_id, "Client")
                open_trip_ids = await self.trips.open_trip_ids_for_client(db, client_id)
                if open_trip_ids:
                    raise ResourceInUseError("Client", client_id, open_trip_ids)

                await db.execute(
                    update(Trip)
                    .where(Trip.client_id == client_id)
                    .values(client_id=None)
                    .execution_options(synchronize_session=False)
                )
                await db.execute(
                    delete(Client)
                    .where(Client.id == client_id)
                    .execution_options(synchronize_session=False)
                )
                db.expunge(client)
                await log_event(db=db, action=AuditAction.CLIENT_DELETED, client_id=client_id)

        logger.info("Client deleted", extra={"client_id": client_id})
