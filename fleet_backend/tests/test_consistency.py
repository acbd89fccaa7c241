"""
Consistency auditor.
"""

import logging

import pytest

from fleet_backend.app.core.exceptions import ConsistencyFaultError
from fleet_backend.app.models.enums import ResourceKind, TruckStatus, DriverStatus
from fleet_backend.app.services.consistency import find_violations, build_report, assert_consistent
from fleet_backend.app.services.resource_registry import ResourceRegistry


@pytest.mark.asyncio
async def test_clean_fleet_is_consistent(
    db_session, coordinator, make_truck, make_driver, make_client, trip_payload
):
    truck, driver, client = await make_truck(), await make_driver(), await make_client()
    await make_truck(status=TruckStatus.MAINTENANCE)
    await coordinator.create_trip(db_session, trip_payload(truck.id, driver.id, client.id))

    report = await build_report(db_session)

    assert report.consistent is True
    assert report.trucks_checked == 2
    assert report.drivers_checked == 1
    await assert_consistent(db_session)


@pytest.mark.asyncio
async def test_engaged_without_trip_is_reported(db_session, make_truck, make_driver, caplog):
    truck = await make_truck(status=TruckStatus.IN_USE)
    await make_driver(status=DriverStatus.ACTIVE)

    with caplog.at_level(logging.CRITICAL):
        violations = await find_violations(db_session)

    assert len(violations) == 1
    assert violations[0].kind == ResourceKind.TRUCK
    assert violations[0].resource_id == truck.id
    assert violations[0].open_trip_ids == []
    assert any(record.levelno == logging.CRITICAL for record in caplog.records)

    with pytest.raises(ConsistencyFaultError):
        await assert_consistent(db_session)


@pytest.mark.asyncio
async def test_auditor_never_repairs(db_session, make_driver):
    driver = await make_driver(status=DriverStatus.BUSY)

    await find_violations(db_session)

    assert await ResourceRegistry().get_status(db_session, driver.id, ResourceKind.DRIVER) == DriverStatus.BUSY
