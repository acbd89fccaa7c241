"""
Resource registry.

Tracks the availability of trucks and drivers. Every status change is a
conditional update on the stored status (compare-and-swap), so two sessions
can never both move the same resource out of its available state.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func

from fleet_backend.app.core.exceptions import (
    ResourceNotFoundError, ResourceUnavailableError, InvalidResourceStateError
)
from fleet_backend.app.models.driver import Driver
from fleet_backend.app.models.enums import (
    ResourceKind, AVAILABLE_STATUS, ENGAGED_STATUS
)
from fleet_backend.app.models.truck import Truck


_MODELS = {
    ResourceKind.TRUCK: Truck,
    ResourceKind.DRIVER: Driver,
}


def resource_label(kind: ResourceKind) -> str:
    return kind.value.capitalize()


class ResourceRegistry:
    """
    Availability store for trucks and drivers.

    Changes are flushed into the caller's transaction and become visible
    to other sessions when that transaction commits.
    """

    @staticmethod
    def model_for(kind: ResourceKind):
        return _MODELS[ResourceKind(kind)]

    async def get_status(self, db: AsyncSession, resource_id: int, kind: ResourceKind):
        """
        Read the stored status of a resource.

        Raises:
            ResourceNotFoundError: If the id is unknown
        """
        status = await self.find_status(db, resource_id, kind)
        if status is None:
            raise ResourceNotFoundError(resource_label(kind), resource_id)
        return status

    async def find_status(self, db: AsyncSession, resource_id: int, kind: ResourceKind) -> Optional[object]:
        model = self.model_for(kind)
        result = await db.execute(
            select(model.status).where(model.id == resource_id)
        )
        return result.scalar_one_or_none()

    async def cas_status(self, db: AsyncSession, resource_id: int, kind: ResourceKind, expected, new) -> bool:
        """
        Set status to `new` only if it is currently `expected`.

        Returns:
            True if the row was updated, False if the precondition failed
        """
        model = self.model_for(kind)
        result = await db.execute(
            update(model)
            .where(model.id == resource_id, model.status == expected)
            .values(status=new, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def reserve(self, db: AsyncSession, resource_id: int, kind: ResourceKind) -> bool:
        """
        Move a resource from its available state to its engaged state.

        Raises:
            ResourceNotFoundError: If the id is unknown
            ResourceUnavailableError: If the resource is not available
        """
        kind = ResourceKind(kind)
        if await self.cas_status(db, resource_id, kind, AVAILABLE_STATUS[kind], ENGAGED_STATUS[kind]):
            return True

        current = await self.get_status(db, resource_id, kind)
        raise ResourceUnavailableError(resource_label(kind), resource_id, current)

    async def release(self, db: AsyncSession, resource_id: int, kind: ResourceKind) -> bool:
        """
        Move an engaged resource back to its available state.

        Raises:
            ResourceNotFoundError: If the id is unknown
            InvalidResourceStateError: If the resource is not engaged
        """
        kind = ResourceKind(kind)
        if await self.cas_status(db, resource_id, kind, ENGAGED_STATUS[kind], AVAILABLE_STATUS[kind]):
            return True

        current = await self.get_status(db, resource_id, kind)
        raise InvalidResourceStateError(resource_label(kind), resource_id, current, expected=ENGAGED_STATUS[kind])

