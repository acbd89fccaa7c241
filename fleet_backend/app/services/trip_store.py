"""
Trip persistence.

Data access for the trips table. Status changes and deletions are
conditional on the status the caller last observed.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func

from fleet_backend.app.core.exceptions import ResourceNotFoundError
from fleet_backend.app.models.trip import Trip
from fleet_backend.app.models.trip_enums import TripStatus, OPEN_TRIP_STATUSES
from fleet_backend.app.models.enums import ResourceKind
from fleet_backend.app.schemas.trip import TripFilter


class TripStore:
    """Record store for trips."""

    async def add(self, db: AsyncSession, trip: Trip) -> Trip:
        db.add(trip)
        await db.flush()
        return trip

    async def find(self, db: AsyncSession, trip_id: int) -> Optional[Trip]:
        result = await db.execute(
            select(Trip)
            .where(Trip.id == trip_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, db: AsyncSession, trip_id: int) -> Trip:
        """
        Load a trip with fresh column values.

        Raises:
            ResourceNotFoundError: If the trip does not exist
        """
        trip = await self.find(db, trip_id)
        if not trip:
            raise ResourceNotFoundError("Trip", trip_id)
        return trip

    async def update_status(
        self,
        db: AsyncSession,
        trip_id: int,
        expected: TripStatus,
        new: TripStatus,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> bool:
        """
        Change status only if the trip is still in `expected`.

        Timestamps left as None are not touched.
        """
        values: Dict[str, Any] = {"status": new, "updated_at": func.now()}
        if start_date is not None:
            values["start_date"] = start_date
        if end_date is not None:
            values["end_date"] = end_date

        result = await db.execute(
            update(Trip)
            .where(Trip.id == trip_id, Trip.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_details(self, db: AsyncSession, trip_id: int, changes: Dict[str, Any]) -> bool:
        """Apply field changes only while the trip is non-terminal."""
        result = await db.execute(
            update(Trip)
            .where(Trip.id == trip_id, Trip.status.in_(OPEN_TRIP_STATUSES))
            .values(**changes, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete(self, db: AsyncSession, trip_id: int, expected: TripStatus) -> bool:
        result = await db.execute(
            delete(Trip)
            .where(Trip.id == trip_id, Trip.status == expected)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list(self, db: AsyncSession, trip_filter: Optional[TripFilter] = None) -> List[Trip]:
        """List trips matching the filter, newest first."""
        query = select(Trip)

        if trip_filter is not None:
            if trip_filter.status is not None:
                query = query.where(Trip.status == trip_filter.status)
            if trip_filter.driver_id is not None:
                query = query.where(Trip.driver_id == trip_filter.driver_id)
            if trip_filter.truck_id is not None:
                query = query.where(Trip.truck_id == trip_filter.truck_id)
            if trip_filter.client_id is not None:
                query = query.where(Trip.client_id == trip_filter.client_id)
            if trip_filter.start_date is not None:
                query = query.where(Trip.start_date >= trip_filter.start_date)
            if trip_filter.end_date is not None:
                query = query.where(Trip.end_date <= trip_filter.end_date)

        query = query.order_by(Trip.created_at.desc(), Trip.id.desc())
        result = await db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def open_trip_ids(self, db: AsyncSession, kind: ResourceKind, resource_id: int) -> List[int]:
        """Ids of PLANNED or IN_PROGRESS trips bound to a truck or driver."""
        column = Trip.truck_id if ResourceKind(kind) == ResourceKind.TRUCK else Trip.driver_id
        result = await db.execute(
            select(Trip.id)
            .where(column == resource_id, Trip.status.in_(OPEN_TRIP_STATUSES))
            .order_by(Trip.id)
        )
        return list(result.scalars().all())

    async def open_trip_ids_for_client(self, db: AsyncSession, client_id: int) -> List[int]:
        result = await db.execute(
            select(Trip.id)
            .where(Trip.client_id == client_id, Trip.status.in_(OPEN_TRIP_STATUSES))
            .order_by(Trip.id)
        )
        return list(result.scalars().all())
