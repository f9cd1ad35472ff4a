"""
Worker calendar conflict detection
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import uuid

from sqlmodel import Session, select
import structlog

from bookwell.models import Appointment, BLOCKING_STATUSES, Service

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ConflictResult:
    """Outcome of a conflict check"""
    has_conflict: bool
    conflicting_appointment: Optional[Appointment] = None

    def to_dict(self) -> dict:
        data = {"has_conflict": self.has_conflict, "conflicting_appointment": None}
        if self.conflicting_appointment is not None:
            data["conflicting_appointment"] = {
                "id": str(self.conflicting_appointment.id),
                "starts_at": self.conflicting_appointment.starts_at.isoformat(),
                "ends_at": self.conflicting_appointment.ends_at.isoformat(),
                "service_id": str(self.conflicting_appointment.service_id),
            }
        return data


def overlapping_appointments(
    session: Session,
    tenant_id: uuid.UUID,
    worker_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_appointment_id: Optional[uuid.UUID] = None,
) -> List[Appointment]:
    """Pending or confirmed appointments of the worker overlapping [start, end)"""
    query = select(Appointment).where(
        Appointment.tenant_id == tenant_id,
        Appointment.worker_id == worker_id,
        Appointment.status.in_(BLOCKING_STATUSES),
        Appointment.starts_at < end,
        Appointment.ends_at > start
    )
    if exclude_appointment_id is not None:
        query = query.where(Appointment.id != exclude_appointment_id)

    return list(session.exec(query.order_by(Appointment.starts_at)).all())


def check_conflict(
    session: Session,
    tenant_id: uuid.UUID,
    worker_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_appointment_id: Optional[uuid.UUID] = None,
    service_id: Optional[uuid.UUID] = None,
) -> ConflictResult:
    """Check whether an existing appointment blocks [start, end) for a worker

    Group sessions of the same group-capable service are joinable rather
    than blocking, so they are excluded from the result.
    """
    overlapping = overlapping_appointments(
        session, tenant_id, worker_id, start, end, exclude_appointment_id
    )
    if not overlapping:
        return ConflictResult(has_conflict=False)

    if service_id is not None:
        service = session.exec(
            select(Service).where(
                Service.id == service_id,
                Service.tenant_id == tenant_id
            )
        ).first()
        if service is not None and service.is_group_capable():
            overlapping = [
                appointment for appointment in overlapping
                if not (appointment.is_group_appointment and appointment.service_id == service_id)
            ]

    if not overlapping:
        return ConflictResult(has_conflict=False)

    conflicting = overlapping[0]
    logger.info(
        f"Conflict for worker {worker_id} at {start.isoformat()}: "
        f"appointment {conflicting.id}"
    )
    return ConflictResult(has_conflict=True, conflicting_appointment=conflicting)
