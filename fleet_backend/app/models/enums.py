"""
Fleet resource enumerations.

Trucks and drivers are the two allocatable resource kinds. Each kind has one
"available" state, one "engaged" state and a set of out-of-service states.
"""

import enum


class ResourceKind(str, enum.Enum):
    """Allocatable resource kinds."""
    TRUCK = "TRUCK"
    DRIVER = "DRIVER"


class TruckStatus(str, enum.Enum):
    """
    Truck availability enumeration.

    Statuses:
        AVAILABLE: Free to be assigned to a trip
        IN_USE: Bound to exactly one PLANNED or IN_PROGRESS trip
        MAINTENANCE: Out of service for repairs
        INACTIVE: Retired or parked

    The legacy value "ACTIVE" is read as AVAILABLE.
    """
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"
    INACTIVE = "INACTIVE"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.upper() == "ACTIVE":
            return cls.AVAILABLE
        return None

    @classmethod
    def normalize(cls, value):
        """Coerce raw input (including the legacy alias) to a member."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            value = value.upper()
        return cls(value)


class DriverStatus(str, enum.Enum):
    """
    Driver availability enumeration.

    Statuses:
        ACTIVE: On duty and free to be assigned
        BUSY: Bound to exactly one PLANNED or IN_PROGRESS trip
        ON_LEAVE: Temporarily off duty
        INACTIVE: No longer driving for the fleet
    """
    ACTIVE = "ACTIVE"
    BUSY = "BUSY"
    ON_LEAVE = "ON_LEAVE"
    INACTIVE = "INACTIVE"


# Available / engaged pair per resource kind
AVAILABLE_STATUS = {
    ResourceKind.TRUCK: TruckStatus.AVAILABLE,
    ResourceKind.DRIVER: DriverStatus.ACTIVE,
}

ENGAGED_STATUS = {
    ResourceKind.TRUCK: TruckStatus.IN_USE,
    ResourceKind.DRIVER: DriverStatus.BUSY,
}

OUT_OF_SERVICE_STATUSES = {
    ResourceKind.TRUCK: {TruckStatus.MAINTENANCE, TruckStatus.INACTIVE},
    ResourceKind.DRIVER: {DriverStatus.ON_LEAVE, DriverStatus.INACTIVE},
}
