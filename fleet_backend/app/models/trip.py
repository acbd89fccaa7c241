"""
Trip database model.

A trip binds one truck, one driver and one client. Status changes only go
through the trip state machine.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from fleet_backend.app.db.session import Base
from fleet_backend.app.models.trip_enums import TripStatus


class Trip(Base):
    """
    Trip model.

    References are plain foreign-key ids. They are nullable only so that
    history survives the deletion of a truck, driver or client once all of
    their trips are terminal.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Bound resources
    truck_id = Column(Integer, ForeignKey('trucks.id', ondelete='SET NULL'), nullable=True, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id', ondelete='SET NULL'), nullable=True, index=True)
    client_id = Column(Integer, ForeignKey('clients.id', ondelete='SET NULL'), nullable=True, index=True)

    # Route
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    distance = Column(Numeric(10, 2, asdecimal=False), nullable=False)

    # Financials
    estimated_cost = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    actual_cost = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    fuel_cost = Column(Numeric(10, 2, asdecimal=False), default=0, nullable=False)
    maintenance_cost = Column(Numeric(10, 2, asdecimal=False), default=0, nullable=False)
    other_expenses = Column(Numeric(10, 2, asdecimal=False), default=0, nullable=False)
    revenue = Column(Numeric(10, 2, asdecimal=False), default=0, nullable=False)

    # Status
    status = Column(Enum(TripStatus), default=TripStatus.PLANNED, nullable=False, index=True)

    # Timestamps
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Trip(id={self.id}, truck_id={self.truck_id}, driver_id={self.driver_id}, status='{self.status.value}')>"
