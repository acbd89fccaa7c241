"""
Integration tests for the trip and fleet HTTP endpoints.

Client and DB setup are in conftest.py.
"""

import pytest


@pytest.fixture
async def fleet_ids(client):
    """Register one truck, one driver and one client over the API."""
    truck = await client.post("/v1/trucks", json={
        "license_plate": "BE-1-XYZ",
        "model": "MAN TGX",
        "year": 2020,
        "status": "ACTIVE"
    })
    assert truck.status_code == 201
    assert truck.json()["status"] == "AVAILABLE"

    driver = await client.post("/v1/drivers", json={
        "name": "Alex Peeters",
        "email": "alex@example.com",
        "phone": "555-0142",
        "license_number": "B-442211"
    })
    assert driver.status_code == 201

    customer = await client.post("/v1/clients", json={
        "name": "Harbor Foods",
        "email": "harbor-logistics@example.com",
        "phone": "555-0199",
        "address": "Quay 12"
    })
    assert customer.status_code == 201

    return truck.json()["id"], driver.json()["id"], customer.json()["id"]


def trip_body(truck_id, driver_id, client_id):
    return {
        "truck_id": truck_id,
        "driver_id": driver_id,
        "client_id": client_id,
        "origin": "Liege",
        "destination": "Lille",
        "distance": 210,
        "revenue": 1200
    }


@pytest.mark.asyncio
async def test_trip_lifecycle_over_http(client, fleet_ids):
    truck_id, driver_id, client_id = fleet_ids

    response = await client.post("/v1/trips", json=trip_body(*fleet_ids))
    assert response.status_code == 201
    trip = response.json()
    assert trip["status"] == "PLANNED"

    available = await client.get("/v1/trucks/available")
    assert available.json()["total"] == 0

    response = await client.post("/v1/trips", json=trip_body(*fleet_ids))
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_ALLOC_001"

    response = await client.post(f"/v1/trips/{trip['id']}/start")
    assert response.status_code == 200
    assert response.json()["status"] == "IN_PROGRESS"

    active = await client.get("/v1/trips/active")
    assert [t["id"] for t in active.json()["trips"]] == [trip["id"]]

    response = await client.delete(f"/v1/trips/{trip['id']}")
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRIP_003"

    response = await client.post(f"/v1/trips/{trip['id']}/transition", json={"status": "COMPLETED"})
    assert response.status_code == 200
    assert response.json()["end_date"] is not None

    drivers = await client.get("/v1/drivers/available")
    assert [d["id"] for d in drivers.json()["drivers"]] == [driver_id]

    history = await client.get(f"/v1/trips/{trip['id']}/history")
    assert [e["action"] for e in history.json()] == ["TRIP_CREATED", "TRIP_STARTED", "TRIP_COMPLETED"]

    report = await client.get("/v1/ops/consistency")
    assert report.json()["consistent"] is True


@pytest.mark.asyncio
async def test_transition_errors(client, fleet_ids):
    trip = (await client.post("/v1/trips", json=trip_body(*fleet_ids))).json()

    response = await client.post(f"/v1/trips/{trip['id']}/complete")
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_TRIP_001"
    assert response.json()["details"] == {"from": "PLANNED", "to": "COMPLETED"}

    await client.post(f"/v1/trips/{trip['id']}/cancel")

    response = await client.patch(f"/v1/trips/{trip['id']}", json={"destination": "Paris"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRIP_002"

    response = await client.post("/v1/trips/999/start")
    assert response.status_code == 404

    response = await client.post(f"/v1/trips/{trip['id']}/transition", json={"status": "ARCHIVED"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_trip_filters(client, fleet_ids):
    truck_id, driver_id, client_id = fleet_ids
    first = (await client.post("/v1/trips", json=trip_body(*fleet_ids))).json()
    await client.post(f"/v1/trips/{first['id']}/cancel")
    second = (await client.post("/v1/trips", json=trip_body(*fleet_ids))).json()

    everything = (await client.get("/v1/trips")).json()
    assert [t["id"] for t in everything["trips"]] == [second["id"], first["id"]]

    cancelled = (await client.get("/v1/trips", params={"status": "CANCELLED"})).json()
    assert [t["id"] for t in cancelled["trips"]] == [first["id"]]

    by_truck = (await client.get(f"/v1/trucks/{truck_id}/trips")).json()
    by_driver = (await client.get(f"/v1/drivers/{driver_id}/trips")).json()
    assert by_truck["total"] == by_driver["total"] == 2

    none = (await client.get("/v1/trips", params={"client_id": client_id + 1})).json()
    assert none["total"] == 0


@pytest.mark.asyncio
async def test_fleet_upkeep_endpoints(client, fleet_ids):
    truck_id, driver_id, client_id = fleet_ids

    response = await client.patch(f"/v1/trucks/{truck_id}/odometer", json={"total_mileage": 500})
    assert response.status_code == 200
    response = await client.patch(f"/v1/trucks/{truck_id}/odometer", json={"total_mileage": 100})
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION_002"

    response = await client.patch(f"/v1/trucks/{truck_id}/service-status", json={"status": "MAINTENANCE"})
    assert response.json()["status"] == "MAINTENANCE"

    response = await client.post("/v1/trips", json=trip_body(*fleet_ids))
    assert response.status_code == 409

    response = await client.patch(f"/v1/drivers/{driver_id}/service-status", json={"status": "BUSY"})
    assert response.status_code == 400

    response = await client.post("/v1/trucks", json={"license_plate": "BE-1-XYZ", "model": "X", "year": 2020})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_DUPLICATE_001"

    assert (await client.delete(f"/v1/trucks/{truck_id}")).status_code == 204
    assert (await client.delete(f"/v1/drivers/{driver_id}")).status_code == 204
    assert (await client.delete(f"/v1/clients/{client_id}")).status_code == 204
    assert (await client.delete(f"/v1/clients/{client_id}")).status_code == 404


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_health_pings_redis_lock_backend(client, monkeypatch):
    from fleet_backend.app.core.config import settings

    monkeypatch.setattr(settings, "lock_backend", "redis")
    response = await client.get("/health")

    assert response.json()["redis"] is True
    assert response.json()["status"] == "healthy"
