"""
Free slot search

Walks a tenant's opening hours for one local day in fixed steps and keeps
every slot a qualified, active worker could still take.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple
import uuid

from sqlmodel import Session, select
import structlog

from bookwell.core.errors import BookingFailure
from bookwell.models import Appointment, Service, Tenant, Worker, WorkerService
from bookwell.services.conflicts import overlapping_appointments
from bookwell.services.time_ranges import (
    local_to_utc, opening_window, ranges_overlap, to_local, within_working_hours
)

logger = structlog.get_logger(__name__)

DEFAULT_OPENING_WINDOW = (9 * 60, 18 * 60)


@dataclass(frozen=True)
class AvailableSlot:
    starts_at: datetime
    ends_at: datetime
    worker_id: uuid.UUID
    worker_name: str

    def to_dict(self) -> dict:
        return {
            "starts_at": self.starts_at.isoformat(),
            "ends_at": self.ends_at.isoformat(),
            "worker_id": str(self.worker_id),
            "worker_name": self.worker_name,
        }


def is_working_day(day: date, hours: Optional[dict]) -> bool:
    """Whether ``day`` is open; ``days`` lists weekdays with 0 as Sunday"""
    days = hours.get("days") if isinstance(hours, dict) else None
    if not isinstance(days, list):
        return True
    return (day.weekday() + 1) % 7 in days


def _qualified_workers(
    session: Session,
    tenant_id: uuid.UUID,
    service_id: uuid.UUID,
    worker_id: Optional[uuid.UUID],
) -> List[Worker]:
    query = (
        select(Worker)
        .join(WorkerService, WorkerService.worker_id == Worker.id)
        .where(
            Worker.tenant_id == tenant_id,
            Worker.active == True,  # noqa: E712
            WorkerService.service_id == service_id
        )
    )
    if worker_id is not None:
        query = query.where(Worker.id == worker_id)
    return list(session.exec(query.order_by(Worker.name)).all())


def _blocks(appointment: Appointment, service: Service) -> bool:
    # Same-service group sessions are joined rather than blocking
    if service.is_group_capable() and appointment.is_group_appointment:
        return appointment.service_id != service.id
    return True


def find_available_slots(
    session: Session,
    tenant_id: uuid.UUID,
    service_id: uuid.UUID,
    day: date,
    worker_id: Optional[uuid.UUID] = None,
    slot_gap: int = 30,
    now: Optional[datetime] = None,
) -> Tuple[Optional[BookingFailure], List[AvailableSlot]]:
    """Free slots for a service on a tenant-local day, soonest first

    Slots start every ``slot_gap`` minutes from opening and must end by
    closing. Opening hours default to 09:00-18:00 when the tenant has none.
    Slots starting before ``now`` are left out.
    """
    if slot_gap <= 0:
        return BookingFailure.validation("invalid_slot_gap", "slot_gap must be positive", "slot_gap"), []

    service = session.exec(
        select(Service).where(
            Service.id == service_id,
            Service.tenant_id == tenant_id,
            Service.active == True  # noqa: E712
        )
    ).first()
    if service is None:
        return BookingFailure.not_found("service_not_found", "Service not found or inactive"), []

    workers = _qualified_workers(session, tenant_id, service.id, worker_id)
    if not workers:
        return BookingFailure.not_found("worker_not_found", "No active worker can perform this service"), []

    tenant = session.get(Tenant, tenant_id)
    hours = tenant.working_hours if tenant is not None else None
    tz_name = tenant.timezone if tenant is not None else None
    if not is_working_day(day, hours):
        logger.info(f"{day.isoformat()} is not a working day for tenant {tenant_id}")
        return None, []

    opens, closes = opening_window(hours) or DEFAULT_OPENING_WINDOW
    length = timedelta(minutes=service.duration)
    candidates = []
    minute = opens
    while minute + service.duration <= closes:
        start = local_to_utc(day, minute, tz_name)
        end = start + length
        if within_working_hours(to_local(start, tz_name), to_local(end, tz_name), hours):
            candidates.append((start, end))
        minute += slot_gap

    if not candidates:
        return None, []

    window_start = candidates[0][0]
    window_end = candidates[-1][1]
    slots = []
    for worker in workers:
        blockers = [
            appointment
            for appointment in overlapping_appointments(
                session, tenant_id, worker.id, window_start, window_end
            )
            if _blocks(appointment, service)
        ]
        for start, end in candidates:
            if now is not None and start < now:
                continue
            if any(ranges_overlap(start, end, b.starts_at, b.ends_at) for b in blockers):
                continue
            slots.append(AvailableSlot(start, end, worker.id, worker.name))

    slots.sort(key=lambda slot: (slot.starts_at, slot.worker_name))
    logger.info(
        f"Found {len(slots)} free slots for service {service.id} on {day.isoformat()}"
    )
    return None, slots
