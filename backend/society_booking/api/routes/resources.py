"""
Resource catalog endpoints, with Redis caching on the active listing.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status

from society_booking.api.deps import get_availability_service, get_catalog
from society_booking.core.exceptions import PermissionDenied
from society_booking.core.logging import get_logger
from society_booking.core.security import get_current_actor
from society_booking.schemas.resource import (
    AvailabilityResponse,
    ResourceCreate,
    ResourceListResponse,
    ResourceResponse,
    ResourceUpdate,
)
from society_booking.services.availability_service import AvailabilityService
from society_booking.services.cache_service import (
    get_cached_resources,
    invalidate_resource_cache,
    set_cached_resources,
)
from society_booking.services.catalog_service import ResourceCatalog
from society_booking.services.directory import Actor

logger = get_logger(__name__)
router = APIRouter(prefix="/resources", tags=["Resources"])


@router.get("/", response_model=ResourceListResponse)
async def list_resources(
    include_inactive: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    catalog: ResourceCatalog = Depends(get_catalog),
):
    """
    List bookable resources.
    The active listing is cached in Redis and invalidated on every catalog edit.
    Administrators may include deactivated resources (never cached).
    """
    if include_inactive:
        if not actor.is_admin:
            raise PermissionDenied("Only administrators can list inactive resources")
        resources = [ResourceResponse.model_validate(r) for r in await catalog.list_all()]
        return ResourceListResponse(resources=resources, total=len(resources))

    cached = await get_cached_resources()
    if cached is not None:
        return ResourceListResponse(resources=cached, total=len(cached), cached=True)

    resources = [ResourceResponse.model_validate(r) for r in await catalog.list_active()]
    await set_cached_resources([r.model_dump(mode="json") for r in resources])
    return ResourceListResponse(resources=resources, total=len(resources))


@router.post("/", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_resource(
    data: ResourceCreate,
    actor: Actor = Depends(get_current_actor),
    catalog: ResourceCatalog = Depends(get_catalog),
):
    """Add a bookable resource. Administrators only."""
    resource = await catalog.create(data, actor)
    await catalog.session.commit()
    await invalidate_resource_cache()
    return resource


@router.get("/{resource_id}", response_model=ResourceResponse)
async def get_resource(
    resource_id: int,
    actor: Actor = Depends(get_current_actor),
    catalog: ResourceCatalog = Depends(get_catalog),
):
    return await catalog.get(resource_id)


@router.patch("/{resource_id}", response_model=ResourceResponse)
async def update_resource(
    resource_id: int,
    data: ResourceUpdate,
    actor: Actor = Depends(get_current_actor),
    catalog: ResourceCatalog = Depends(get_catalog),
):
    """
    Edit a resource. Setting is_active=false deactivates it: existing
    reservations stay, new ones are refused.
    """
    resource = await catalog.update(resource_id, data, actor)
    await catalog.session.commit()
    await invalidate_resource_cache()
    return resource


@router.get("/{resource_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    resource_id: int,
    booking_date: date = Query(..., alias="date"),
    actor: Actor = Depends(get_current_actor),
    availability: AvailabilityService = Depends(get_availability_service),
):
    """Category slot template for the date, each slot marked free or taken."""
    return await availability.for_date(resource_id, booking_date)
