"""
Audit Log Database Model.

Records every allocation and lifecycle event so resource history can be
reconstructed during manual reconciliation.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from fleet_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for fleet events.

    Events logged:
    - TRIP_CREATED / TRIP_UPDATED / TRIP_DELETED
    - TRIP_STARTED / TRIP_COMPLETED / TRIP_CANCELLED
    - TRUCK_REGISTERED / DRIVER_REGISTERED / CLIENT_REGISTERED
    - service status, odometer and deletion events

    Ids are not foreign keys: entries outlive the rows they describe.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Subjects of the action
    trip_id = Column(Integer, index=True, nullable=True)
    truck_id = Column(Integer, index=True, nullable=True)
    driver_id = Column(Integer, index=True, nullable=True)
    client_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', trip_id={self.trip_id})>"
