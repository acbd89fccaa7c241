"""
Audit logging service for fleet allocation and lifecycle events.

Entries are flushed inside the caller's transaction so an event is recorded
if and only if the state change it describes is committed.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from fleet_backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""

    # Trip allocation and lifecycle
    TRIP_CREATED = "TRIP_CREATED"
    TRIP_UPDATED = "TRIP_UPDATED"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    TRIP_CANCELLED = "TRIP_CANCELLED"
    TRIP_DELETED = "TRIP_DELETED"

    # Fleet registration
    TRUCK_REGISTERED = "TRUCK_REGISTERED"
    DRIVER_REGISTERED = "DRIVER_REGISTERED"
    CLIENT_REGISTERED = "CLIENT_REGISTERED"

    # Fleet maintenance
    TRUCK_STATUS_CHANGED = "TRUCK_STATUS_CHANGED"
    DRIVER_STATUS_CHANGED = "DRIVER_STATUS_CHANGED"
    ODOMETER_RECORDED = "ODOMETER_RECORDED"
    TRUCK_DELETED = "TRUCK_DELETED"
    DRIVER_DELETED = "DRIVER_DELETED"
    CLIENT_DELETED = "CLIENT_DELETED"


async def log_event(
    db: AsyncSession,
    action: str,
    trip_id: Optional[int] = None,
    truck_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    client_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record a fleet event in the audit log.

    Args:
        db: Database session (transaction managed by caller)
        action: Action being performed (use AuditAction constants)
        trip_id: Trip the event concerns
        truck_id: Truck the event concerns
        driver_id: Driver the event concerns
        client_id: Client the event concerns
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        action=action,
        trip_id=trip_id,
        truck_id=truck_id,
        driver_id=driver_id,
        client_id=client_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_trip_history(db: AsyncSession, trip_id: int) -> List[AuditLog]:
    """Return every audit entry recorded for a trip, oldest first."""
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.trip_id == trip_id)
        .order_by(AuditLog.id)
    )
    return list(result.scalars().all())
