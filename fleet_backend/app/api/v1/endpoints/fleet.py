"""
Fleet API Endpoints.

Registration and upkeep of trucks, drivers and clients, plus availability
and per-resource trip lookups.
"""

from fastapi import APIRouter, Depends, status, Path, Response
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_backend.app.db.session import get_db
from fleet_backend.app.core.dependencies import get_fleet_registry
from fleet_backend.app.schemas.fleet import (
    TruckCreate, TruckResponse, TruckListResponse, OdometerUpdate, TruckServiceStatusUpdate,
    DriverCreate, DriverResponse, DriverListResponse, DriverServiceStatusUpdate,
    ClientCreate, ClientResponse
)
from fleet_backend.app.schemas.trip import TripResponse, TripListResponse
from fleet_backend.app.services.fleet_registry import FleetRegistry
from fleet_backend.app.services.trip_queries import TripQueryService

truck_router = APIRouter(prefix="/trucks", tags=["Fleet - Trucks"])
driver_router = APIRouter(prefix="/drivers", tags=["Fleet - Drivers"])
client_router = APIRouter(prefix="/clients", tags=["Fleet - Clients"])


# Trucks

@truck_router.post("", response_model=TruckResponse, status_code=status.HTTP_201_CREATED)
async def register_truck(
    truck_data: TruckCreate,
    fleet: FleetRegistry = Depends(get_fleet_registry),
    db: AsyncSession = Depends(get_db)
):
    """Register a truck. License plates are unique."""
    truck = await fleet.register_truck(db, truck_data)
    return TruckResponse.model_validate(truck)


@truck_router.get("/available", response_model=TruckListResponse)
async def list_available_trucks(db: AsyncSession = Depends(get_db)):
    trucks = await TripQueryService.available_trucks(db)
    return TruckListResponse(
        trucks=[TruckResponse.model_validate(truck) for truck in trucks],
        total=len(trucks)
    )


@truck_router.get("/{truck_id}/trips", response_model=TripListResponse)
async def list_truck_trips(
    truck_id: int = Path(..., description="Truck ID"),
    db: AsyncSession = Depends(get_db)
):
    trips = await TripQueryService.trips_by_truck(db, truck_id)
    return TripListResponse(trips=[TripResponse.model_validate(t) for t in trips], total=len(trips))


@truck_router.patch("/{truck_id}/odometer", response_model=TruckResponse)
async def record_odometer(
    reading: OdometerUpdate,
    truck_id: int = Path(..., description="Truck ID"),
    fleet: FleetRegistry = Depends(get_fleet_registry),
    db: AsyncSession = Depends(get_db)
):
    """Record an odometer reading. Readings never go backwards."""
    truck = await fleet.record_odometer(db, truck_id, reading.total_mileage)
    return TruckResponse.model_validate(truck)


@truck_router.patch("/{truck_id}/service-status", response_model=TruckResponse)
async def set_truck_service_status(
    update: TruckServiceStatusUpdate,
    truck_id: int = Path(..., description="Truck ID"),
    fleet: FleetRegistry = Depends(get_fleet_registry),
    db: AsyncSession = Depends(get_db)
):
    """
    Move a truck between AVAILABLE, MAINTENANCE and INACTIVE.

    Trucks IN_USE cannot be changed here.
    """
    truck = await fleet.set_truck_service_status(db, truck_id, update.status)
    return TruckResponse.model_validate(truck)


@truck_router.delete("/{truck_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_truck(
    truck_id: int = Path(..., description="Truck ID"),
    fleet: FleetRegistry = Depends(get_fleet_registry),
    db: AsyncSession = Depends(get_db)
):
    await fleet.delete_truck(db, truck_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Drivers

@driver_router.post("", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
async def register_driver(
    driver_data: DriverCreate,
    fleet: FleetRegistry = Depends(get_fleet_registry),
    db: AsyncSession = Depends(get_db)
):
    """Register a driver. Email and license number are unique."""
    driver = await fleet.register_driver(db, driver_data)
    return DriverResponse.model_validate(driver)


@driver_router.get("/available", response_model=DriverListResponse)
async def list_available_drivers(db: AsyncSession = Depends(get_db)):
    drivers = await TripQueryService.available_drivers(db)
    return DriverListResponse(
        drivers=[DriverResponse.model_validate(driver) for driver in drivers],
        total=len(drivers)
    )


@driver_router.get("/{driver_id}/trips", response_model=TripListResponse)
async def list_driver_trips(
    driver_id: int = Path(..., description="Driver ID"),
    db: AsyncSession = Depends(get_db)
):
    trips = await TripQueryService.trips_by_driver(db, driver_id)
    return TripListResponse(trips=[TripResponse.model_validate(t) for t in trips], total=len(trips))


@driver_router.patch("/{driver_id}/service-status", response_model=DriverResponse)
async def set_driver_service_status(
    update: DriverServiceStatusUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    fleet: FleetRegistry = Depends(get_fleet_registry),
    db: AsyncSession = Depends(get_db)
):
    """Move a driver between ACTIVE, ON_LEAVE and INACTIVE."""
    driver = await fleet.set_driver_service_status(db, driver_id, update.status)
    return DriverResponse.model_validate(driver)


@driver_router.delete("/{driver_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_driver(
    driver_id: int = Path(..., description="Driver ID"),
    fleet: FleetRegistry = Depends(get_fleet_registry),
    db: AsyncSession = Depends(get_db)
):
    await fleet.delete_driver(db, driver_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Clients

@client_router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def register_client(
    client_data: ClientCreate,
    fleet: FleetRegistry = Depends(get_fleet_registry),
    db: AsyncSession = Depends(get_db)
):
    client = await fleet.register_client(db, client_data)
    return ClientResponse.model_validate(client)


@client_router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    client_id: int = Path(..., description="Client ID"),
    fleet: FleetRegistry = Depends(get_fleet_registry),
    db: AsyncSession = Depends(get_db)
):
    await fleet.delete_client(db, client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
