"""
Fleet registration Pydantic schemas.

Defines request and response models for trucks, drivers and clients.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from typing import List

from fleet_backend.app.models.enums import TruckStatus, DriverStatus


class TruckCreate(BaseModel):
    """Schema for registering a truck."""
    license_plate: str = Field(..., min_length=1, max_length=50, description="Unique license plate")
    model: str = Field(..., min_length=1, max_length=100)
    year: int = Field(..., ge=1900, le=datetime.now().year + 1)
    status: TruckStatus = Field(TruckStatus.AVAILABLE, description="Initial status (ACTIVE is read as AVAILABLE)")
    total_mileage: float = Field(0, ge=0)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return TruckStatus.normalize(value)


class TruckResponse(BaseModel):
    """Schema for truck response."""
    id: int
    license_plate: str
    model: str
    year: int
    status: TruckStatus
    total_mileage: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TruckListResponse(BaseModel):
    trucks: List[TruckResponse]
    total: int


class OdometerUpdate(BaseModel):
    """Schema for an odometer reading."""
    total_mileage: float = Field(..., ge=0, description="New odometer reading (never lower than the current one)")


class TruckServiceStatusUpdate(BaseModel):
    """Schema for moving a truck in or out of service."""
    status: TruckStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return TruckStatus.normalize(value)


class DriverCreate(BaseModel):
    """Schema for registering a driver."""
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=50)
    license_number: str = Field(..., min_length=1, max_length=100, description="Unique driver license number")
    status: DriverStatus = DriverStatus.ACTIVE


class DriverResponse(BaseModel):
    """Schema for driver response."""
    id: int
    name: str
    email: str
    phone: str
    license_number: str
    status: DriverStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DriverListResponse(BaseModel):
    drivers: List[DriverResponse]
    total: int


class DriverServiceStatusUpdate(BaseModel):
    """Schema for moving a driver on or off duty."""
    status: DriverStatus


class ClientCreate(BaseModel):
    """Schema for registering a client."""
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=50)
    address: str = Field(..., min_length=1, max_length=500)


class ClientResponse(BaseModel):
    """Schema for client response."""
    id: int
    name: str
    email: str
    phone: str
    address: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
