"""
Schemas module
"""

from bookwell.schemas.appointment import (
    AppointmentConfirm,
    AppointmentCreate,
    AppointmentList,
    AppointmentReschedule,
    AppointmentResponse,
    AvailabilityResponse,
    AvailableSlotResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    GroupSessionResponse,
    ParticipantJoin,
    ParticipantResponse,
)
from bookwell.schemas.quota import QuotaCheckRequest, QuotaResponse

__all__ = [
    "AppointmentConfirm",
    "AppointmentCreate",
    "AppointmentList",
    "AppointmentReschedule",
    "AppointmentResponse",
    "AvailabilityResponse",
    "AvailableSlotResponse",
    "ConflictCheckRequest",
    "ConflictCheckResponse",
    "GroupSessionResponse",
    "ParticipantJoin",
    "ParticipantResponse",
    "QuotaCheckRequest",
    "QuotaResponse",
]
