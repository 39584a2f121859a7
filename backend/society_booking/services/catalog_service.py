"""
Resource catalog: reference data for everything bookable.

No booking logic lives here. Writes are administrator-only and never delete
rows; deactivation is an update of `is_active`.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from society_booking.core.exceptions import InvalidRequest, NotFound, PermissionDenied
from society_booking.core.logging import get_logger
from society_booking.models.resource import Resource, ResourceCategory
from society_booking.schemas.resource import ResourceCreate, ResourceUpdate
from society_booking.services.directory import Actor

logger = get_logger(__name__)

# Guest parking: one slot per resident per day, at most two days in a row
CATEGORY_DEFAULTS = {
    ResourceCategory.GUEST_PARKING: {"single_booking_per_user_per_day": True, "max_consecutive_days": 2},
}

# Optional in ResourceUpdate only so they can be left out, never cleared
NON_NULLABLE_FIELDS = ("name", "capacity", "single_booking_per_user_per_day", "is_active")


def _require_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        logger.warning("catalog_write_denied", user_id=actor.user_id, action=action)
        raise PermissionDenied("Only administrators can manage resources")


class ResourceCatalog:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_active(self) -> list[Resource]:
        result = await self.session.execute(
            select(Resource).where(Resource.is_active.is_(True)).order_by(Resource.category, Resource.name)
        )
        return list(result.scalars().all())

    async def list_all(self) -> list[Resource]:
        result = await self.session.execute(select(Resource).order_by(Resource.category, Resource.name))
        return list(result.scalars().all())

    async def find(self, resource_id: int) -> Optional[Resource]:
        return await self.session.get(Resource, resource_id)

    async def get(self, resource_id: int) -> Resource:
        resource = await self.find(resource_id)
        if resource is None:
            raise NotFound(f"Resource {resource_id} not found")
        return resource

    async def create(self, data: ResourceCreate, actor: Actor) -> Resource:
        _require_admin(actor, "create")

        fields = data.model_dump()
        defaults = CATEGORY_DEFAULTS.get(data.category, {})
        if fields["single_booking_per_user_per_day"] is None:
            fields["single_booking_per_user_per_day"] = defaults.get("single_booking_per_user_per_day", False)
        if fields["max_consecutive_days"] is None:
            fields["max_consecutive_days"] = defaults.get("max_consecutive_days")
        fields["category"] = data.category.value

        resource = Resource(**fields, is_active=True)
        self.session.add(resource)
        await self._flush_unique_name(data.name)
        await self.session.refresh(resource)

        logger.info(
            "resource_created",
            resource_id=resource.id,
            name=resource.name,
            category=resource.category,
            capacity=resource.capacity,
            by=actor.user_id,
        )
        return resource

    async def update(self, resource_id: int, data: ResourceUpdate, actor: Actor) -> Resource:
        _require_admin(actor, "update")
        resource = await self.get(resource_id)

        changes = data.model_dump(exclude_unset=True)
        for field in NON_NULLABLE_FIELDS:
            if field in changes and changes[field] is None:
                raise InvalidRequest(f"{field} cannot be null")

        for field, value in changes.items():
            setattr(resource, field, value)
        await self._flush_unique_name(changes.get("name", resource.name))
        await self.session.refresh(resource)

        logger.info("resource_updated", resource_id=resource.id, fields=sorted(changes), by=actor.user_id)
        return resource

    async def _flush_unique_name(self, name: str) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            if _is_unique_violation(e):
                raise InvalidRequest(f"A resource named '{name}' already exists") from e
            logger.warning("catalog_constraint_violation", name=name, error=str(e.orig))
            raise InvalidRequest("The resource violates a catalog constraint") from e


def _is_unique_violation(error: IntegrityError) -> bool:
    # asyncpg: "duplicate key value violates unique constraint", SQLite: "UNIQUE constraint failed"
    return "unique" in str(error.orig).lower()
