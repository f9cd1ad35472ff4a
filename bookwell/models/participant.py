"""
Group appointment participants
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime, timezone
from enum import Enum
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ParticipantStatus(str, Enum):
    """Enrollment state of a customer in a group appointment"""
    CONFIRMED = "confirmed"
    WAITLIST = "waitlist"
    CANCELLED = "cancelled"


class AppointmentParticipant(SQLModel, table=True):
    """A customer's seat (or waitlist place) in a group appointment

    One row per (appointment, customer); a cancelled row is revived on
    rejoin instead of inserting a duplicate.
    """

    __tablename__ = "appointment_participants"
    __table_args__ = (
        UniqueConstraint("appointment_id", "customer_id", name="uq_participant_appointment_customer"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    appointment_id: uuid.UUID = Field(foreign_key="appointments.id", index=True)
    customer_id: uuid.UUID = Field(foreign_key="customers.id", index=True)
    status: ParticipantStatus = Field(default=ParticipantStatus.CONFIRMED, index=True)
    joined_at: datetime = Field(
        default_factory=_utcnow,
        description="Join time; waitlist promotion is FIFO on this column"
    )
    created_at: datetime = Field(default_factory=_utcnow)

    def holds_seat(self) -> bool:
        return self.status == ParticipantStatus.CONFIRMED
