"""
Trip State Machine.

Governs the legal lifecycle of a single trip:

    PLANNED -> IN_PROGRESS -> COMPLETED
    PLANNED -> CANCELLED
    IN_PROGRESS -> CANCELLED

COMPLETED and CANCELLED are terminal. The machine only decides; applying a
plan to the database is the allocation coordinator's job.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fleet_backend.app.core.exceptions import (
    InvalidTransitionError, TripFinalizedError, TripActiveError
)
from fleet_backend.app.models.trip_enums import TripStatus, TERMINAL_TRIP_STATUSES


ALLOWED_TRANSITIONS = {
    TripStatus.PLANNED: frozenset({TripStatus.IN_PROGRESS, TripStatus.CANCELLED}),
    TripStatus.IN_PROGRESS: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class TransitionPlan:
    """Side effects of one legal transition."""
    trip_id: int
    source: TripStatus
    target: TripStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    release_resources: bool = False


def is_terminal(status: TripStatus) -> bool:
    return TripStatus(status) in TERMINAL_TRIP_STATUSES


def can_transition(current: TripStatus, target: TripStatus) -> bool:
    return TripStatus(target) in ALLOWED_TRANSITIONS[TripStatus(current)]


def ensure_mutable(trip) -> None:
    """
    Raises:
        TripFinalizedError: If the trip is COMPLETED or CANCELLED
    """
    if is_terminal(trip.status):
        raise TripFinalizedError(trip.id, trip.status)


def plan_transition(trip, target: TripStatus, now: Optional[datetime] = None) -> TransitionPlan:
    """
    Validate a transition and describe its side effects.

    Raises:
        TripFinalizedError: If the trip is already terminal
        InvalidTransitionError: For any other illegal (current, target) pair
    """
    current = TripStatus(trip.status)
    target = TripStatus(target)
    now = now or datetime.now(timezone.utc)

    if is_terminal(current):
        raise TripFinalizedError(trip.id, current, target)
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)

    if target == TripStatus.IN_PROGRESS:
        # Resources were engaged at creation; a planned start date is kept
        return TransitionPlan(
            trip_id=trip.id,
            source=current,
            target=target,
            start_date=None if trip.start_date else now,
        )

    if target == TripStatus.COMPLETED:
        return TransitionPlan(
            trip_id=trip.id,
            source=current,
            target=target,
            end_date=now,
            release_resources=True,
        )

    # CANCELLED from PLANNED or IN_PROGRESS
    return TransitionPlan(
        trip_id=trip.id,
        source=current,
        target=target,
        release_resources=True,
    )


def plan_deletion(trip) -> bool:
    """
    Decide whether a trip may be deleted.

    Returns:
        True if the deletion must release the trip's truck and driver

    Raises:
        TripActiveError: If the trip is IN_PROGRESS
    """
    status = TripStatus(trip.status)
    if status == TripStatus.IN_PROGRESS:
        raise TripActiveError(trip.id)
    # Terminal trips released their resources when they got there
    return status == TripStatus.PLANNED
