"""
Group appointment capacity and waitlist management

Seat counts change only through conditional UPDATE statements so that two
concurrent joins can never both take the last seat. None of these helpers
commit; the caller owns the transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple, Union
import uuid

from sqlalchemy import update
from sqlmodel import Session, select
import structlog

from bookwell.models import (
    Appointment, AppointmentParticipant, AppointmentStatus, Customer,
    ParticipantStatus, Service
)
from bookwell.services.time_ranges import utcnow

logger = structlog.get_logger(__name__)

# can_join reasons
APPOINTMENT_NOT_FOUND = "appointment_not_found"
APPOINTMENT_CANCELLED = "appointment_cancelled"
NOT_GROUP_APPOINTMENT = "not_group_appointment"
ALREADY_PARTICIPANT = "already_participant"
APPOINTMENT_FULL = "appointment_full"


@dataclass(frozen=True)
class CapacityInfo:
    current: int
    max: int
    available: int
    is_full: bool

    def to_dict(self) -> dict:
        return {
            "current": self.current,
            "max": self.max,
            "available": self.available,
            "is_full": self.is_full,
        }


@dataclass(frozen=True)
class JoinCheck:
    """Whether a customer may join a group appointment"""
    can_join: bool
    reason: Optional[str] = None
    available_spots: Optional[int] = None
    waitlist: bool = False


@dataclass(frozen=True)
class ParticipantResult:
    success: bool
    participant_id: Optional[uuid.UUID] = None
    status: Optional[ParticipantStatus] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RemovedParticipant:
    participant_id: uuid.UUID
    customer_id: uuid.UUID
    previous_status: ParticipantStatus
    held_seat: bool


@dataclass(frozen=True)
class ParticipantView:
    id: uuid.UUID
    customer_id: uuid.UUID
    customer_name: Optional[str]
    status: ParticipantStatus
    joined_at: datetime


def capacity_of(appointment: Appointment, service: Optional[Service]) -> CapacityInfo:
    """Capacity state of an appointment given its service"""
    if service is None or not appointment.is_group_appointment or not service.is_group_capable():
        return CapacityInfo(current=1, max=1, available=0, is_full=True)

    maximum = service.max_capacity
    current = appointment.current_participants or 0
    available = max(0, maximum - current)
    return CapacityInfo(current=current, max=maximum, available=available, is_full=available <= 0)


def _load_appointment(
    session: Session,
    tenant_id: uuid.UUID,
    appointment_id: uuid.UUID,
) -> Tuple[Optional[Appointment], Optional[Service]]:
    appointment = session.exec(
        select(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.tenant_id == tenant_id
        ).execution_options(populate_existing=True)
    ).first()
    if appointment is None:
        return None, None

    service = session.exec(
        select(Service).where(
            Service.id == appointment.service_id,
            Service.tenant_id == tenant_id
        )
    ).first()
    return appointment, service


def get_capacity(
    session: Session,
    tenant_id: uuid.UUID,
    appointment_id: uuid.UUID,
) -> Optional[CapacityInfo]:
    """Capacity of an appointment, or None when it is not in the tenant"""
    appointment, service = _load_appointment(session, tenant_id, appointment_id)
    if appointment is None:
        return None
    return capacity_of(appointment, service)


def _slot_sessions(
    tenant_id: uuid.UUID,
    service_id: uuid.UUID,
    worker_id: uuid.UUID,
    start: datetime,
    end: datetime,
):
    return select(Appointment).where(
        Appointment.tenant_id == tenant_id,
        Appointment.service_id == service_id,
        Appointment.worker_id == worker_id,
        Appointment.starts_at == start,
        Appointment.ends_at == end,
        Appointment.is_group_appointment == True,  # noqa: E712
        Appointment.status != AppointmentStatus.CANCELLED
    ).order_by(Appointment.created_at)


def find_group_session(
    session: Session,
    tenant_id: uuid.UUID,
    service_id: uuid.UUID,
    worker_id: uuid.UUID,
    start: datetime,
    end: datetime,
) -> Optional[Appointment]:
    """Oldest live group session for the exact slot, full or not"""
    return session.exec(_slot_sessions(tenant_id, service_id, worker_id, start, end)).first()


def find_existing_group_appointment(
    session: Session,
    tenant_id: uuid.UUID,
    service_id: uuid.UUID,
    worker_id: uuid.UUID,
    start: datetime,
    end: datetime,
) -> Optional[Appointment]:
    """Oldest live group session for the exact slot that still has a free seat"""
    service = session.exec(
        select(Service).where(
            Service.id == service_id,
            Service.tenant_id == tenant_id
        )
    ).first()
    if service is None or not service.is_group_capable():
        return None

    return session.exec(
        _slot_sessions(tenant_id, service_id, worker_id, start, end)
        .where(Appointment.current_participants < service.max_capacity)
    ).first()


def _participant_row(
    session: Session,
    appointment_id: uuid.UUID,
    customer_id: uuid.UUID,
) -> Optional[AppointmentParticipant]:
    return session.exec(
        select(AppointmentParticipant).where(
            AppointmentParticipant.appointment_id == appointment_id,
            AppointmentParticipant.customer_id == customer_id
        )
    ).first()


def _evaluate_join(
    session: Session,
    appointment: Optional[Appointment],
    service: Optional[Service],
    customer_id: uuid.UUID,
) -> JoinCheck:
    if appointment is None:
        return JoinCheck(can_join=False, reason=APPOINTMENT_NOT_FOUND)

    if appointment.status == AppointmentStatus.CANCELLED:
        return JoinCheck(can_join=False, reason=APPOINTMENT_CANCELLED)

    capacity = capacity_of(appointment, service)
    if capacity.max <= 1:
        return JoinCheck(can_join=False, reason=NOT_GROUP_APPOINTMENT)

    existing = _participant_row(session, appointment.id, customer_id)
    if existing is not None and existing.status != ParticipantStatus.CANCELLED:
        return JoinCheck(can_join=False, reason=ALREADY_PARTICIPANT)

    if capacity.is_full:
        if service.waitlist_enabled():
            return JoinCheck(can_join=True, available_spots=0, waitlist=True)
        return JoinCheck(can_join=False, reason=APPOINTMENT_FULL, available_spots=0)

    return JoinCheck(can_join=True, available_spots=capacity.available)


def can_join(
    session: Session,
    tenant_id: uuid.UUID,
    appointment_id: uuid.UUID,
    customer_id: uuid.UUID,
) -> JoinCheck:
    """Check whether a customer may join a group appointment

    A full session with a waitlist still accepts joins; ``waitlist`` is
    set so the caller records the participant as waitlisted.
    """
    appointment, service = _load_appointment(session, tenant_id, appointment_id)
    return _evaluate_join(session, appointment, service, customer_id)


def claim_seat(
    session: Session,
    tenant_id: uuid.UUID,
    appointment_id: uuid.UUID,
    max_capacity: int,
) -> bool:
    """Atomically take one seat; False when the session is already full"""
    result = session.exec(
        update(Appointment)
        .where(
            Appointment.id == appointment_id,
            Appointment.tenant_id == tenant_id,
            Appointment.current_participants < max_capacity
        )
        .values(
            current_participants=Appointment.current_participants + 1,
            version=Appointment.version + 1,
            updated_at=utcnow()
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def release_seat(session: Session, tenant_id: uuid.UUID, appointment_id: uuid.UUID) -> bool:
    """Atomically give back one seat of a live session, never going below zero"""
    result = session.exec(
        update(Appointment)
        .where(
            Appointment.id == appointment_id,
            Appointment.tenant_id == tenant_id,
            Appointment.status != AppointmentStatus.CANCELLED,
            Appointment.current_participants > 0
        )
        .values(
            current_participants=Appointment.current_participants - 1,
            version=Appointment.version + 1,
            updated_at=utcnow()
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def add_participant(
    session: Session,
    tenant_id: uuid.UUID,
    appointment_id: uuid.UUID,
    customer_id: uuid.UUID,
    desired_status: Union[ParticipantStatus, str] = ParticipantStatus.CONFIRMED,
) -> ParticipantResult:
    """Enroll a customer in a group appointment

    Re-validates eligibility, falls back to the waitlist when the session
    is full and the service allows it, and revives a previously cancelled
    row instead of inserting a duplicate. The seat increment and the
    participant write share the caller's transaction.
    """
    appointment, service = _load_appointment(session, tenant_id, appointment_id)
    check = _evaluate_join(session, appointment, service, customer_id)
    if not check.can_join:
        return ParticipantResult(success=False, error=check.reason)

    status = ParticipantStatus.CONFIRMED
    if check.waitlist or desired_status == ParticipantStatus.WAITLIST:
        status = ParticipantStatus.WAITLIST

    if status == ParticipantStatus.CONFIRMED:
        if not claim_seat(session, tenant_id, appointment.id, service.max_capacity):
            if not service.waitlist_enabled():
                logger.info(f"Last seat of appointment {appointment.id} taken concurrently")
                return ParticipantResult(success=False, error=APPOINTMENT_FULL)
            status = ParticipantStatus.WAITLIST

    participant = _participant_row(session, appointment.id, customer_id)
    if participant is not None:
        participant.status = status
        participant.joined_at = utcnow()
        logger.info(f"Revived participant {participant.id} on appointment {appointment.id}")
    else:
        participant = AppointmentParticipant(
            appointment_id=appointment.id,
            customer_id=customer_id,
            status=status
        )
    session.add(participant)
    session.flush()
    session.refresh(appointment)

    logger.info(
        f"Customer {customer_id} joined appointment {appointment.id} as {status.value} "
        f"({appointment.current_participants}/{service.max_capacity})"
    )
    return ParticipantResult(success=True, participant_id=participant.id, status=status)


def remove_participant(
    session: Session,
    tenant_id: uuid.UUID,
    appointment_id: uuid.UUID,
    customer_id: uuid.UUID,
) -> Optional[RemovedParticipant]:
    """Delete a customer's participant row

    The seat count is left untouched; callers release the seat and promote
    from the waitlist when the removed row held a seat.
    """
    appointment = session.exec(
        select(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.tenant_id == tenant_id
        )
    ).first()
    if appointment is None:
        return None

    participant = _participant_row(session, appointment.id, customer_id)
    if participant is None:
        return None

    removed = RemovedParticipant(
        participant_id=participant.id,
        customer_id=participant.customer_id,
        previous_status=participant.status,
        held_seat=participant.holds_seat(),
    )
    session.delete(participant)
    session.flush()
    logger.info(f"Removed participant {participant.id} from appointment {appointment.id}")
    return removed


def promote_waitlisted(
    session: Session,
    tenant_id: uuid.UUID,
    appointment_id: uuid.UUID,
) -> Optional[AppointmentParticipant]:
    """Move the earliest-joined waitlisted participant into a free seat

    Cancelled sessions never promote.
    """
    appointment, service = _load_appointment(session, tenant_id, appointment_id)
    if appointment is None or service is None or not service.is_group_capable():
        return None
    if appointment.status == AppointmentStatus.CANCELLED:
        return None

    candidate = session.exec(
        select(AppointmentParticipant).where(
            AppointmentParticipant.appointment_id == appointment.id,
            AppointmentParticipant.status == ParticipantStatus.WAITLIST
        ).order_by(AppointmentParticipant.joined_at, AppointmentParticipant.created_at)
    ).first()
    if candidate is None:
        return None

    if not claim_seat(session, tenant_id, appointment.id, service.max_capacity):
        return None

    candidate.status = ParticipantStatus.CONFIRMED
    session.add(candidate)
    session.flush()
    session.refresh(appointment)
    logger.info(f"Promoted waitlisted participant {candidate.id} on appointment {appointment.id}")
    return candidate


def list_participants(
    session: Session,
    tenant_id: uuid.UUID,
    appointment_id: uuid.UUID,
) -> List[ParticipantView]:
    rows = session.exec(
        select(AppointmentParticipant, Customer)
        .join(Appointment, Appointment.id == AppointmentParticipant.appointment_id)
        .join(Customer, Customer.id == AppointmentParticipant.customer_id, isouter=True)
        .where(
            Appointment.id == appointment_id,
            Appointment.tenant_id == tenant_id
        )
        .order_by(AppointmentParticipant.joined_at)
    ).all()

    return [
        ParticipantView(
            id=participant.id,
            customer_id=participant.customer_id,
            customer_name=customer.name if customer is not None else None,
            status=participant.status,
            joined_at=participant.joined_at,
        )
        for participant, customer in rows
    ]


def list_open_group_sessions(
    session: Session,
    tenant_id: uuid.UUID,
    service_id: uuid.UUID,
    worker_id: Optional[uuid.UUID] = None,
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
) -> List[Tuple[Appointment, CapacityInfo]]:
    """Group sessions customers can still join, soonest first

    Full sessions are listed only when the service keeps a waitlist.
    """
    service = session.exec(
        select(Service).where(
            Service.id == service_id,
            Service.tenant_id == tenant_id
        )
    ).first()
    if service is None or not service.is_group_capable():
        return []

    query = select(Appointment).where(
        Appointment.tenant_id == tenant_id,
        Appointment.service_id == service_id,
        Appointment.is_group_appointment == True,  # noqa: E712
        Appointment.status != AppointmentStatus.CANCELLED
    )
    if worker_id is not None:
        query = query.where(Appointment.worker_id == worker_id)
    if start_from is not None:
        query = query.where(Appointment.starts_at >= start_from)
    if start_to is not None:
        query = query.where(Appointment.starts_at < start_to)

    sessions = []
    for appointment in session.exec(query.order_by(Appointment.starts_at)).all():
        capacity = capacity_of(appointment, service)
        if capacity.is_full and not service.waitlist_enabled():
            continue
        sessions.append((appointment, capacity))
    return sessions
