"""
Truck database model.

Trucks are registered by fleet operators and allocated to trips.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum
from sqlalchemy.sql import func
from fleet_backend.app.db.session import Base
from fleet_backend.app.models.enums import TruckStatus


class Truck(Base):
    """
    Truck model.

    `status` is only flipped between AVAILABLE and IN_USE by the allocation
    coordinator. `total_mileage` only moves forward through odometer updates.
    """
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification
    license_plate = Column(String(50), unique=True, nullable=False, index=True)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)

    # Availability
    status = Column(Enum(TruckStatus), default=TruckStatus.AVAILABLE, nullable=False, index=True)

    # Odometer
    total_mileage = Column(Numeric(10, 2, asdecimal=False), default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Truck(id={self.id}, plate='{self.license_plate}', status='{self.status.value}')>"
