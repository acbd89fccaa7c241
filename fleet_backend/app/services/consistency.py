"""
Consistency auditor.

Checks the fleet-wide invariant between resource status and open trips:

- an engaged truck or driver is bound to exactly one PLANNED or IN_PROGRESS trip
- an available or out-of-service one is bound to none

Violations are reported and logged at CRITICAL. Nothing is corrected
automatically; repairs are a manual operation.
"""

import logging
from collections import defaultdict
from typing import Dict, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from fleet_backend.app.core.exceptions import ConsistencyFaultError
from fleet_backend.app.models.enums import ResourceKind, ENGAGED_STATUS
from fleet_backend.app.models.trip import Trip
from fleet_backend.app.models.trip_enums import OPEN_TRIP_STATUSES
from fleet_backend.app.schemas.consistency import ConsistencyViolation, ConsistencyReport
from fleet_backend.app.services.resource_registry import ResourceRegistry

logger = logging.getLogger(__name__)


async def _open_trips_by_resource(db: AsyncSession) -> Dict[ResourceKind, Dict[int, List[int]]]:
    result = await db.execute(
        select(Trip.id, Trip.truck_id, Trip.driver_id)
        .where(Trip.status.in_(OPEN_TRIP_STATUSES))
        .order_by(Trip.id)
    )
    bound = {ResourceKind.TRUCK: defaultdict(list), ResourceKind.DRIVER: defaultdict(list)}
    for trip_id, truck_id, driver_id in result.all():
        bound[ResourceKind.TRUCK][truck_id].append(trip_id)
        bound[ResourceKind.DRIVER][driver_id].append(trip_id)
    return bound


def _check(kind: ResourceKind, resource_id: int, status, trip_ids: List[int]):
    engaged = status == ENGAGED_STATUS[kind]
    if engaged and not trip_ids:
        reason = "engaged without an open trip"
    elif not engaged and trip_ids:
        reason = "not engaged but bound to an open trip"
    elif len(trip_ids) > 1:
        reason = "bound to more than one open trip"
    else:
        return None
    return ConsistencyViolation(
        kind=kind,
        resource_id=resource_id,
        status=status.value,
        open_trip_ids=trip_ids,
        reason=reason
    )


async def find_violations(db: AsyncSession) -> List[ConsistencyViolation]:
    """Compare every truck and driver with the open trips referencing it."""
    report = await build_report(db)
    return report.violations


async def build_report(db: AsyncSession) -> ConsistencyReport:
    bound = await _open_trips_by_resource(db)
    violations: List[ConsistencyViolation] = []
    checked = {}

    for kind in (ResourceKind.TRUCK, ResourceKind.DRIVER):
        model = ResourceRegistry.model_for(kind)
        result = await db.execute(select(model.id, model.status).order_by(model.id))
        rows = result.all()
        checked[kind] = len(rows)
        known_ids = set()

        for resource_id, status in rows:
            known_ids.add(resource_id)
            violation = _check(kind, resource_id, status, bound[kind].get(resource_id, []))
            if violation:
                violations.append(violation)

        # Open trips whose resource row is gone
        for resource_id, trip_ids in bound[kind].items():
            if resource_id is None or resource_id not in known_ids:
                violations.append(ConsistencyViolation(
                    kind=kind,
                    resource_id=resource_id or 0,
                    status="MISSING",
                    open_trip_ids=trip_ids,
                    reason="open trip references a missing resource"
                ))

    for violation in violations:
        logger.critical(
            "Fleet consistency violation",
            extra={
                "kind": violation.kind.value,
                "resource_id": violation.resource_id,
                "status": violation.status,
                "open_trip_ids": violation.open_trip_ids,
                "reason": violation.reason,
            }
        )

    return ConsistencyReport(
        consistent=not violations,
        trucks_checked=checked[ResourceKind.TRUCK],
        drivers_checked=checked[ResourceKind.DRIVER],
        violations=violations
    )


async def assert_consistent(db: AsyncSession) -> None:
    """
    Raises:
        ConsistencyFaultError: If any violation is found
    """
    violations = await find_violations(db)
    if violations:
        raise ConsistencyFaultError(
            f"{len(violations)} fleet consistency violation(s) found",
            details={"violations": [v.model_dump(mode="json") for v in violations]}
        )
