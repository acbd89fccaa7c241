"""
Trip schemas.

Schemas for trip allocation, lifecycle transitions and lookups.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime

from fleet_backend.app.models.trip_enums import TripStatus


class TripCreate(BaseModel):
    """Schema for allocating a new trip."""
    truck_id: int = Field(..., gt=0, description="Truck to assign (must be AVAILABLE)")
    driver_id: int = Field(..., gt=0, description="Driver to assign (must be ACTIVE)")
    client_id: int = Field(..., gt=0, description="Client the trip is for")

    origin: str = Field(..., min_length=1, max_length=255, description="Trip starting location")
    destination: str = Field(..., min_length=1, max_length=255, description="Trip destination")
    distance: float = Field(..., ge=0, description="Distance in kilometers")

    estimated_cost: Optional[float] = Field(None, ge=0)
    actual_cost: Optional[float] = Field(None, ge=0)
    fuel_cost: float = Field(0, ge=0)
    maintenance_cost: float = Field(0, ge=0)
    other_expenses: float = Field(0, ge=0)
    revenue: float = Field(0, ge=0)

    # Planned schedule (start_date is kept when the trip starts)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class TripUpdate(BaseModel):
    """
    Schema for editing the details of a non-terminal trip.

    Status and the bound truck, driver and client cannot be changed here.
    """
    origin: Optional[str] = Field(None, min_length=1, max_length=255)
    destination: Optional[str] = Field(None, min_length=1, max_length=255)
    distance: Optional[float] = Field(None, ge=0)
    estimated_cost: Optional[float] = Field(None, ge=0)
    actual_cost: Optional[float] = Field(None, ge=0)
    fuel_cost: Optional[float] = Field(None, ge=0)
    maintenance_cost: Optional[float] = Field(None, ge=0)
    other_expenses: Optional[float] = Field(None, ge=0)
    revenue: Optional[float] = Field(None, ge=0)


class TripTransition(BaseModel):
    """Schema for a lifecycle transition request."""
    status: TripStatus = Field(..., description="Target status")


class TripFilter(BaseModel):
    """Filter for trip lookups. All fields are combined with AND."""
    status: Optional[TripStatus] = None
    driver_id: Optional[int] = None
    truck_id: Optional[int] = None
    client_id: Optional[int] = None
    start_date: Optional[datetime] = Field(None, description="Trips starting at or after")
    end_date: Optional[datetime] = Field(None, description="Trips ending at or before")


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    truck_id: Optional[int]
    driver_id: Optional[int]
    client_id: Optional[int]
    origin: str
    destination: str
    distance: float
    estimated_cost: Optional[float]
    actual_cost: Optional[float]
    fuel_cost: float
    maintenance_cost: float
    other_expenses: float
    revenue: float
    status: TripStatus
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TripListResponse(BaseModel):
    """Schema for trip list."""
    trips: List[TripResponse]
    total: int


class TripEventResponse(BaseModel):
    """Schema for one audit entry of a trip."""
    id: int
    action: str
    trip_id: Optional[int]
    truck_id: Optional[int]
    driver_id: Optional[int]
    meta_data: Optional[Dict[str, Any]]
    timestamp: datetime

    class Config:
        from_attributes = True
