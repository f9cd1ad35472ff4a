"""
Pydantic schemas for appointment requests and responses
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import date, datetime
import uuid

from bookwell.models import AppointmentStatus, ParticipantStatus


class AppointmentCreate(BaseModel):
    """Booking request"""
    customer_id: Optional[uuid.UUID] = Field(
        None, description="Customer to book for; defaults to the caller"
    )
    service_id: uuid.UUID
    worker_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime
    status: Optional[str] = Field(
        None, description="Requested status; unknown values become pending"
    )
    notes: Optional[str] = Field(None, max_length=2000)


class AppointmentReschedule(BaseModel):
    starts_at: datetime
    ends_at: datetime
    worker_id: Optional[uuid.UUID] = None
    version: Optional[int] = Field(None, description="Expected version for optimistic concurrency")


class AppointmentConfirm(BaseModel):
    version: Optional[int] = Field(None, description="Expected version for optimistic concurrency")


class AppointmentResponse(BaseModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    service_id: uuid.UUID
    worker_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime
    status: AppointmentStatus
    is_group_appointment: bool
    current_participants: int
    max_participants: int
    version: int
    customer_name: Optional[str] = None
    service_name: Optional[str] = None
    worker_name: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None
    participant_id: Optional[uuid.UUID] = None
    participant_status: Optional[ParticipantStatus] = None

    model_config = {"from_attributes": True}


class ParticipantJoin(BaseModel):
    customer_id: Optional[uuid.UUID] = Field(
        None, description="Customer joining; defaults to the caller"
    )


class ParticipantResponse(BaseModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    customer_name: Optional[str] = None
    status: ParticipantStatus
    joined_at: datetime

    model_config = {"from_attributes": True}


class GroupSessionResponse(BaseModel):
    appointment_id: uuid.UUID
    worker_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime
    current: int
    max: int
    available: int
    is_full: bool
    waitlist: bool


class ConflictCheckRequest(BaseModel):
    worker_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime
    exclude_appointment_id: Optional[uuid.UUID] = None
    service_id: Optional[uuid.UUID] = None


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    conflicting_appointment: Optional[Dict[str, Any]] = None


class AppointmentList(BaseModel):
    items: List[AppointmentResponse]
    count: int


class AvailableSlotResponse(BaseModel):
    starts_at: datetime
    ends_at: datetime
    worker_id: uuid.UUID
    worker_name: str

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    day: date
    service_id: uuid.UUID
    slots: List[AvailableSlotResponse]
    count: int
