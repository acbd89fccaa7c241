"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    PLANNED = "PLANNED"  # Created, truck and driver already engaged
    IN_PROGRESS = "IN_PROGRESS"  # Driver has started
    COMPLETED = "COMPLETED"  # Delivered, resources released
    CANCELLED = "CANCELLED"  # Abandoned, resources released


OPEN_TRIP_STATUSES = (TripStatus.PLANNED, TripStatus.IN_PROGRESS)
TERMINAL_TRIP_STATUSES = (TripStatus.COMPLETED, TripStatus.CANCELLED)
