"""
Trip Query Service.

Lookups over trips and fleet availability.
Focused on READ-ONLY operations.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List

from fleet_backend.app.models.driver import Driver
from fleet_backend.app.models.enums import TruckStatus, DriverStatus
from fleet_backend.app.models.trip import Trip
from fleet_backend.app.models.trip_enums import TripStatus
from fleet_backend.app.models.truck import Truck
from fleet_backend.app.schemas.trip import TripFilter
from fleet_backend.app.services.trip_store import TripStore

_store = TripStore()


class TripQueryService:

    @staticmethod
    async def get_trip(db: AsyncSession, trip_id: int) -> Trip:
        """Raises ResourceNotFoundError for an unknown id."""
        return await _store.get(db, trip_id)

    @staticmethod
    async def list_trips(db: AsyncSession, trip_filter: TripFilter = None) -> List[Trip]:
        return await _store.list(db, trip_filter)

    @staticmethod
    async def trips_by_driver(db: AsyncSession, driver_id: int) -> List[Trip]:
        return await _store.list(db, TripFilter(driver_id=driver_id))

    @staticmethod
    async def trips_by_truck(db: AsyncSession, truck_id: int) -> List[Trip]:
        return await _store.list(db, TripFilter(truck_id=truck_id))

    @staticmethod
    async def trips_by_status(db: AsyncSession, status: TripStatus) -> List[Trip]:
        return await _store.list(db, TripFilter(status=status))

    @staticmethod
    async def active_trips(db: AsyncSession) -> List[Trip]:
        """Trips currently on the road."""
        return await _store.list(db, TripFilter(status=TripStatus.IN_PROGRESS))

    @staticmethod
    async def available_trucks(db: AsyncSession) -> List[Truck]:
        result = await db.execute(
            select(Truck)
            .where(Truck.status == TruckStatus.AVAILABLE)
            .order_by(Truck.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def available_drivers(db: AsyncSession) -> List[Driver]:
        result = await db.execute(
            select(Driver)
            .where(Driver.status == DriverStatus.ACTIVE)
            .order_by(Driver.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
