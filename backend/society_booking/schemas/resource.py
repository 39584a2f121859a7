"""
Pydantic schemas for the resource catalog.
"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field

from society_booking.models.resource import ResourceCategory


class ResourceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: ResourceCategory
    location: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    capacity: int = Field(default=1, gt=0, le=500)
    # None means "use the category default"
    single_booking_per_user_per_day: Optional[bool] = None
    max_consecutive_days: Optional[int] = Field(None, gt=0, le=365)


class ResourceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    capacity: Optional[int] = Field(None, gt=0, le=500)
    single_booking_per_user_per_day: Optional[bool] = None
    max_consecutive_days: Optional[int] = Field(None, gt=0, le=365)
    is_active: Optional[bool] = None


class ResourceResponse(BaseModel):
    id: int
    name: str
    category: ResourceCategory
    location: Optional[str]
    description: Optional[str]
    capacity: int
    single_booking_per_user_per_day: bool
    max_consecutive_days: Optional[int]
    is_active: bool

    model_config = {"from_attributes": True}


class ResourceListResponse(BaseModel):
    resources: list[ResourceResponse]
    total: int
    cached: bool = False


class SlotAvailability(BaseModel):
    label: str
    start_time: time
    end_time: time
    available: bool


class BookedInterval(BaseModel):
    reservation_id: int
    user_id: int
    start_time: time
    end_time: time
    status: str


class AvailabilityResponse(BaseModel):
    resource: ResourceResponse
    booking_date: date
    slots: list[SlotAvailability]
    booked: list[BookedInterval]
    generated_at: datetime
