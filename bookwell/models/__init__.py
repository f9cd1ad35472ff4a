"""
Database models
"""

from bookwell.models.tenant import Tenant, SubscriptionStatus
from bookwell.models.plan import Plan, PlanFeature
from bookwell.models.customer import Customer
from bookwell.models.service import Service
from bookwell.models.worker import Worker, WorkerService
from bookwell.models.appointment import (
    Appointment, AppointmentStatus, BLOCKING_STATUSES, normalize_status
)
from bookwell.models.participant import AppointmentParticipant, ParticipantStatus

__all__ = [
    "Tenant",
    "SubscriptionStatus",
    "Plan",
    "PlanFeature",
    "Customer",
    "Service",
    "Worker",
    "WorkerService",
    "Appointment",
    "AppointmentStatus",
    "BLOCKING_STATUSES",
    "normalize_status",
    "AppointmentParticipant",
    "ParticipantStatus",
]
