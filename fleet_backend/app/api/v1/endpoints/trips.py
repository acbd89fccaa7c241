"""
Trip API Endpoints.

Trip allocation, lifecycle transitions, deletion and lookups.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status, Path, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_backend.app.db.session import get_db
from fleet_backend.app.core.dependencies import get_coordinator
from fleet_backend.app.domain.trips.allocation_coordinator import AllocationCoordinator
from fleet_backend.app.models.trip_enums import TripStatus
from fleet_backend.app.schemas.trip import (
    TripCreate, TripUpdate, TripTransition, TripFilter,
    TripResponse, TripListResponse, TripEventResponse
)
from fleet_backend.app.services.audit import get_trip_history
from fleet_backend.app.services.trip_queries import TripQueryService

router = APIRouter(prefix="/trips", tags=["Trips"])


def _trip_list(trips) -> TripListResponse:
    return TripListResponse(
        trips=[TripResponse.model_validate(trip) for trip in trips],
        total=len(trips)
    )


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    coordinator: AllocationCoordinator = Depends(get_coordinator),
    db: AsyncSession = Depends(get_db)
):
    """
    Allocate a truck and a driver to a new PLANNED trip.

    The truck must be AVAILABLE and the driver ACTIVE. Both are reserved
    in the same transaction that creates the trip.
    """
    trip = await coordinator.create_trip(db, trip_data)
    return TripResponse.model_validate(trip)


@router.get("", response_model=TripListResponse)
async def list_trips(
    trip_status: Optional[TripStatus] = Query(None, alias="status"),
    driver_id: Optional[int] = Query(None),
    truck_id: Optional[int] = Query(None),
    client_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None, description="Trips starting at or after"),
    end_date: Optional[datetime] = Query(None, description="Trips ending at or before"),
    db: AsyncSession = Depends(get_db)
):
    """List trips, newest first. Filters are combined with AND."""
    trip_filter = TripFilter(
        status=trip_status,
        driver_id=driver_id,
        truck_id=truck_id,
        client_id=client_id,
        start_date=start_date,
        end_date=end_date
    )
    return _trip_list(await TripQueryService.list_trips(db, trip_filter))


@router.get("/active", response_model=TripListResponse)
async def list_active_trips(db: AsyncSession = Depends(get_db)):
    """List trips currently IN_PROGRESS."""
    return _trip_list(await TripQueryService.active_trips(db))


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    db: AsyncSession = Depends(get_db)
):
    trip = await TripQueryService.get_trip(db, trip_id)
    return TripResponse.model_validate(trip)


@router.get("/{trip_id}/history", response_model=list[TripEventResponse])
async def get_trip_events(
    trip_id: int = Path(..., description="Trip ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Audit trail of a trip, oldest first.

    Still available after the trip itself is deleted.
    """
    events = await get_trip_history(db, trip_id)
    return [TripEventResponse.model_validate(event) for event in events]


@router.patch("/{trip_id}", response_model=TripResponse)
async def update_trip(
    update_data: TripUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    coordinator: AllocationCoordinator = Depends(get_coordinator),
    db: AsyncSession = Depends(get_db)
):
    """Edit route and cost details. COMPLETED and CANCELLED trips are frozen."""
    trip = await coordinator.update_trip(db, trip_id, update_data)
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/transition", response_model=TripResponse)
async def transition_trip(
    transition: TripTransition,
    trip_id: int = Path(..., description="Trip ID"),
    coordinator: AllocationCoordinator = Depends(get_coordinator),
    db: AsyncSession = Depends(get_db)
):
    """
    Move a trip along its lifecycle.

    - PLANNED -> IN_PROGRESS
    - IN_PROGRESS -> COMPLETED (releases truck and driver)
    - PLANNED or IN_PROGRESS -> CANCELLED (releases truck and driver)
    """
    trip = await coordinator.transition(db, trip_id, transition.status)
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/start", response_model=TripResponse)
async def start_trip(
    trip_id: int = Path(..., description="Trip ID"),
    coordinator: AllocationCoordinator = Depends(get_coordinator),
    db: AsyncSession = Depends(get_db)
):
    trip = await coordinator.start_trip(db, trip_id)
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/complete", response_model=TripResponse)
async def complete_trip(
    trip_id: int = Path(..., description="Trip ID"),
    coordinator: AllocationCoordinator = Depends(get_coordinator),
    db: AsyncSession = Depends(get_db)
):
    trip = await coordinator.complete_trip(db, trip_id)
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/cancel", response_model=TripResponse)
async def cancel_trip(
    trip_id: int = Path(..., description="Trip ID"),
    coordinator: AllocationCoordinator = Depends(get_coordinator),
    db: AsyncSession = Depends(get_db)
):
    trip = await coordinator.cancel_trip(db, trip_id)
    return TripResponse.model_validate(trip)


@router.delete("/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trip(
    trip_id: int = Path(..., description="Trip ID"),
    coordinator: AllocationCoordinator = Depends(get_coordinator),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a trip.

    PLANNED trips give back their truck and driver. IN_PROGRESS trips
    cannot be deleted; cancel them first.
    """
    await coordinator.delete_trip(db, trip_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
