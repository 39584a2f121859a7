"""
Pydantic schemas for reservation requests, lifecycle actions and reports.

Field presence and types are enforced here (422 on failure). Business checks
such as interval ordering are left to the admission controller so they map
to InvalidRequest like every other admission rule.
"""

import enum
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field

from society_booking.models.reservation import ReservationStatus


class ReservationCreate(BaseModel):
    resource_id: int = Field(..., gt=0)
    booking_date: date
    start_time: time
    end_time: time
    # Administrators may book on a resident's behalf
    requester_id: Optional[int] = Field(None, gt=0)


class ReservationResponse(BaseModel):
    id: int
    resource_id: int
    user_id: int
    booking_date: date
    start_time: time
    end_time: time
    status: ReservationStatus
    admin_note: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class TransitionAction(str, enum.Enum):
    CONFIRM = "confirm"
    REJECT = "reject"
    CANCEL = "cancel"


class ReservationTransition(BaseModel):
    action: TransitionAction
    reason: Optional[str] = Field(None, max_length=500)


class ConflictCheckResponse(BaseModel):
    conflict: bool
    reason: Optional[str] = None
    conflicting_reservation_id: Optional[int] = None


class ResourceUsage(BaseModel):
    resource_id: int
    resource_name: str
    reservation_count: int


class MonthlyCount(BaseModel):
    month: str
    count: int


class ReservationReport(BaseModel):
    total: int
    by_status: dict[str, int]
    popular_resources: list[ResourceUsage]
    by_month: list[MonthlyCount]
    recent: list[ReservationResponse]
