"""
Appointment model with status state machine
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Index
from datetime import datetime, timezone
from typing import Optional, Union
from enum import Enum
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    """Status of an appointment"""
    PENDING = "pending"             # Booked, awaiting confirmation
    CONFIRMED = "confirmed"         # Accepted; reminders and calendar sync apply
    CANCELLED = "cancelled"         # Terminal


# Statuses that occupy a worker's calendar
BLOCKING_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


def normalize_status(value: Union[str, AppointmentStatus, None]) -> AppointmentStatus:
    """Map a requested status onto a known one, defaulting to pending"""
    if isinstance(value, AppointmentStatus):
        return value
    if isinstance(value, str):
        try:
            return AppointmentStatus(value.strip().lower())
        except ValueError:
            pass
    return AppointmentStatus.PENDING


class Appointment(SQLModel, table=True):
    """One scheduled occupation of a worker's time"""

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointment_worker_window", "tenant_id", "worker_id", "starts_at", "ends_at"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    tenant_id: uuid.UUID = Field(
        foreign_key="tenants.id",
        index=True,
        description="Tenant ID for multi-tenant isolation"
    )
    customer_id: uuid.UUID = Field(
        foreign_key="customers.id",
        index=True,
        description="Customer who created the booking"
    )
    service_id: uuid.UUID = Field(foreign_key="services.id", index=True)
    worker_id: uuid.UUID = Field(foreign_key="workers.id", index=True)

    starts_at: datetime = Field(description="Start of the slot (UTC)")
    ends_at: datetime = Field(description="End of the slot, exclusive (UTC)")

    status: AppointmentStatus = Field(
        default=AppointmentStatus.PENDING,
        index=True,
        description="Current status of the appointment"
    )

    # Group sessions
    is_group_appointment: bool = Field(default=False)
    current_participants: int = Field(
        default=1,
        description="Confirmed participants holding a seat"
    )

    notes: Optional[str] = Field(default=None, max_length=2000, nullable=True)

    # Optimistic concurrency control
    version: int = Field(
        default=1,
        description="Version number for optimistic concurrency control"
    )

    confirmed_at: Optional[datetime] = Field(default=None, nullable=True)
    cancelled_at: Optional[datetime] = Field(default=None, nullable=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: Optional[datetime] = Field(default=None, nullable=True)

    class Config:
        indexes = [
            {"name": "idx_appointment_tenant_id", "columns": ["tenant_id"]},
            {"name": "idx_appointment_status", "columns": ["status"]},
            {"name": "idx_appointment_starts_at", "columns": ["starts_at"]},
        ]

    # State machine methods
    def is_blocking(self) -> bool:
        """Check if the appointment occupies its worker's calendar"""
        return self.status in BLOCKING_STATUSES

    def can_confirm(self) -> tuple[bool, str]:
        """Check if appointment can be confirmed"""
        if self.status == AppointmentStatus.CONFIRMED:
            return False, "Appointment is already confirmed"
        if self.status == AppointmentStatus.CANCELLED:
            return False, "Cancelled appointments cannot be confirmed"
        return True, "Can confirm appointment"

    def can_reschedule(self) -> tuple[bool, str]:
        """Check if appointment can move to a new slot"""
        if self.status == AppointmentStatus.CANCELLED:
            return False, "Cancelled appointments cannot be rescheduled"
        return True, "Can reschedule appointment"

    def transition_to_confirmed(self) -> None:
        """Transition appointment to confirmed status"""
        can_confirm, reason = self.can_confirm()
        if not can_confirm:
            raise ValueError(f"Cannot confirm appointment: {reason}")

        now = _utcnow()
        self.status = AppointmentStatus.CONFIRMED
        self.confirmed_at = now
        self.updated_at = now
        self.version += 1

    def transition_to_cancelled(self) -> bool:
        """Transition appointment to cancelled status

        Returns False without touching the row when it is already cancelled.
        """
        if self.status == AppointmentStatus.CANCELLED:
            return False

        now = _utcnow()
        self.status = AppointmentStatus.CANCELLED
        self.cancelled_at = now
        self.updated_at = now
        self.version += 1
        return True

    def move_to(self, starts_at: datetime, ends_at: datetime, worker_id: uuid.UUID) -> None:
        """Move the appointment to a new slot"""
        can_move, reason = self.can_reschedule()
        if not can_move:
            raise ValueError(f"Cannot reschedule appointment: {reason}")
        if starts_at >= ends_at:
            raise ValueError("Cannot reschedule appointment: start must be before end")

        self.starts_at = starts_at
        self.ends_at = ends_at
        self.worker_id = worker_id
        self.updated_at = _utcnow()
        self.version += 1
