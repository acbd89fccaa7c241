"""
Consistency report schemas.
"""

from pydantic import BaseModel
from typing import List

from fleet_backend.app.models.enums import ResourceKind


class ConsistencyViolation(BaseModel):
    """A resource whose status disagrees with its non-terminal trips."""
    kind: ResourceKind
    resource_id: int
    status: str
    open_trip_ids: List[int]
    reason: str


class ConsistencyReport(BaseModel):
    consistent: bool
    trucks_checked: int
    drivers_checked: int
    violations: List[ConsistencyViolation]
