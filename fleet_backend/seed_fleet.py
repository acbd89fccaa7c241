"""
Database seeding script for a demo fleet.

Registers a few trucks, drivers and clients for testing and development.
Run this script after the database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fleet_backend.app.core.locks import get_lock_manager
from fleet_backend.app.db.session import AsyncSessionLocal, engine, Base
from fleet_backend.app.models.truck import Truck
from fleet_backend.app.models.enums import TruckStatus
from fleet_backend.app.schemas.fleet import TruckCreate, DriverCreate, ClientCreate
from fleet_backend.app.services.fleet_registry import FleetRegistry
from sqlalchemy import select

TRUCKS = [
    TruckCreate(license_plate="FL-001", model="Volvo FH16", year=2022),
    TruckCreate(license_plate="FL-002", model="Scania R500", year=2021),
    TruckCreate(license_plate="FL-003", model="DAF XF", year=2019, status=TruckStatus.MAINTENANCE),
]

DRIVERS = [
    DriverCreate(name="Robin Meyer", email="robin@example.com", phone="555-0101", license_number="DL-1001"),
    DriverCreate(name="Kai Novak", email="kai@example.com", phone="555-0102", license_number="DL-1002"),
]

CLIENTS = [
    ClientCreate(name="Northwind Traders", email="northwind-ops@example.com", phone="555-0200", address="12 Harbour Way"),
]


async def seed_fleet():
    """
    Seed the demo fleet.

    Creates:
    - 3 trucks (one in MAINTENANCE)
    - 2 drivers
    - 1 client
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    fleet = FleetRegistry(get_lock_manager())

    async with AsyncSessionLocal() as db:
        print("🌱 Starting fleet seeding...")

        # Skip if the fleet was already seeded
        result = await db.execute(
            select(Truck.id).where(Truck.license_plate == TRUCKS[0].license_plate)
        )
        if result.scalar_one_or_none() is not None:
            print("ℹ️  Demo fleet already exists, skipping seeding")
            return

        for truck_data in TRUCKS:
            truck = await fleet.register_truck(db, truck_data)
            print(f"✅ Created truck {truck.license_plate} (id: {truck.id}, status: {truck.status.value})")

        for driver_data in DRIVERS:
            driver = await fleet.register_driver(db, driver_data)
            print(f"✅ Created driver {driver.name} (id: {driver.id})")

        for client_data in CLIENTS:
            client = await fleet.register_client(db, client_data)
            print(f"✅ Created client {client.name} (id: {client.id})")

        print("\n🎉 Fleet seeding completed successfully!")
        print("\nNote: allocate trips via POST /v1/trips")


if __name__ == "__main__":
    asyncio.run(seed_fleet())
