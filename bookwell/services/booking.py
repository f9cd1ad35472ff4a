"""
Booking orchestration

``BookingService`` sequences validation, plan checks, the worker schedule
lock, group joins or conflict detection, persistence and post-commit
events. Every operation returns a ``BookingOutcome``; expected business
rejections never raise.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple, Union
import uuid

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select
import structlog

from bookwell.core.config import Settings, get_settings
from bookwell.core.errors import BookingFailure
from bookwell.core.events import (
    AppointmentCancelled, AppointmentConfirmed, AppointmentCreated,
    AppointmentRescheduled, DomainEvent, EventBus, ParticipantJoined,
    ParticipantPromoted, ParticipantRemoved, event_bus
)
from bookwell.models import (
    Appointment, AppointmentStatus, BLOCKING_STATUSES, Customer, ParticipantStatus, Service,
    Tenant, Worker, WorkerService, normalize_status
)
from bookwell.services import group_capacity
from bookwell.services.conflicts import ConflictResult, check_conflict
from bookwell.services.quota import (
    FEATURE_CREATE_APPOINTMENTS, MAX_BOOKINGS_PER_MONTH, check_limit,
    count_bookings_this_month, load_plan_context
)
from bookwell.services.time_ranges import (
    duration_matches, duration_minutes, parse_datetime, to_local, utcnow,
    within_working_hours
)
from bookwell.services.views import (
    AppointmentView, build_appointment_view, list_appointment_views,
    load_appointment_view
)

logger = structlog.get_logger(__name__)

# Columns written by status transitions and by moves
TRANSITION_FIELDS = ("status", "confirmed_at", "cancelled_at", "updated_at")
MOVE_FIELDS = ("starts_at", "ends_at", "worker_id", "updated_at")


@dataclass
class BookingRequest:
    """A request to book a slot with a worker"""
    customer_id: Any
    service_id: Any
    worker_id: Any
    starts_at: Any
    ends_at: Any
    status: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class BookingOutcome:
    """Result of a booking operation: an appointment or a failure"""
    appointment: Optional[AppointmentView] = None
    failure: Optional[BookingFailure] = None
    participant_id: Optional[uuid.UUID] = None
    participant_status: Optional[ParticipantStatus] = None
    joined_existing: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def rejected(cls, failure: BookingFailure) -> "BookingOutcome":
        return cls(failure=failure)


# Participant errors mapped onto failures
_JOIN_FAILURES = {
    group_capacity.APPOINTMENT_NOT_FOUND: lambda: BookingFailure.not_found(
        "appointment_not_found", "Appointment not found"
    ),
    group_capacity.APPOINTMENT_CANCELLED: lambda: BookingFailure.conflict(
        "appointment_cancelled", "Appointment has been cancelled"
    ),
    group_capacity.NOT_GROUP_APPOINTMENT: lambda: BookingFailure.validation(
        "not_group_appointment", "This is not a group appointment"
    ),
    group_capacity.ALREADY_PARTICIPANT: lambda: BookingFailure.conflict(
        "already_participant", "Customer is already a participant"
    ),
    group_capacity.APPOINTMENT_FULL: lambda: BookingFailure.conflict(
        "group_full", "Appointment is full"
    ),
}


def _join_failure(error: Optional[str]) -> BookingFailure:
    factory = _JOIN_FAILURES.get(error)
    if factory is None:
        return BookingFailure.internal(f"Could not add participant: {error}")
    return factory()


def _coerce_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        try:
            return uuid.UUID(value)
        except ValueError:
            return None
    return None


def _appointment_event(event_class, appointment: Appointment, **extra) -> DomainEvent:
    return event_class(
        appointment_id=appointment.id,
        tenant_id=appointment.tenant_id,
        worker_id=appointment.worker_id,
        starts_at=appointment.starts_at,
        ends_at=appointment.ends_at,
        status=appointment.status.value,
        **extra
    )


class BookingService:
    """Appointment booking operations for a single database session"""

    def __init__(
        self,
        session: Session,
        bus: EventBus = event_bus,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.bus = bus
        self.settings = settings or get_settings()
        self.clock = clock

    # Transaction helpers

    def _run(self, operation: str, func, *args) -> BookingOutcome:
        """Run an operation, rolling back on rejection or store error"""
        try:
            outcome = func(*args)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Store error during {operation}: {e}", exc_info=True)
            return BookingOutcome.rejected(BookingFailure.internal())

        if not outcome.ok:
            self.session.rollback()
            logger.info(f"{operation} rejected: {outcome.failure.code}")
        return outcome

    def _commit_and_publish(self, events: List[DomainEvent]) -> None:
        self.session.commit()
        self.bus.publish_all(events)

    def _lock_worker_schedule(self, tenant_id: uuid.UUID, worker_id: uuid.UUID) -> bool:
        """Serialise booking writes for one worker until the transaction ends

        The write takes a row lock on PostgreSQL and the database write lock
        on SQLite, so a concurrent check-and-insert for the same worker waits
        and then sees this transaction's rows.
        """
        result = self.session.exec(
            update(Worker)
            .where(Worker.id == worker_id, Worker.tenant_id == tenant_id)
            .values(schedule_version=Worker.schedule_version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _write_guarded(self, appointment: Appointment, fields: Tuple[str, ...], *conditions) -> bool:
        """Persist a transitioned appointment only while ``conditions`` hold

        The in-memory change is discarded before the UPDATE runs so that an
        autoflush can never write it unconditionally. Returns False when the
        stored row no longer matches, leaving the appointment expired.
        """
        values = {name: getattr(appointment, name) for name in fields}
        appointment_id, tenant_id = appointment.id, appointment.tenant_id
        self.session.expire(appointment)

        result = self.session.exec(
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.tenant_id == tenant_id,
                *conditions
            )
            .values(version=Appointment.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _stale_failure(
        self,
        tenant_id: uuid.UUID,
        appointment_id: uuid.UUID,
        allowed: Tuple[AppointmentStatus, ...],
    ) -> BookingFailure:
        """Describe why a guarded write matched no row"""
        self.session.rollback()
        current = self._load_appointment(tenant_id, appointment_id)
        if current is None:
            return BookingFailure.not_found("appointment_not_found", "Appointment not found")
        if current.status not in allowed:
            return BookingFailure.conflict(
                "invalid_transition",
                f"Appointment is already {current.status.value}",
                status=current.status.value,
            )
        return BookingFailure.conflict(
            "version_mismatch",
            "Appointment was modified by another request",
            current_version=current.version,
        )

    # Validation and lookups

    def _parse_window(
        self,
        starts_at: Any,
        ends_at: Any,
        now: datetime,
    ) -> Tuple[Optional[BookingFailure], Optional[datetime], Optional[datetime]]:
        if starts_at is None or (isinstance(starts_at, str) and not starts_at.strip()):
            return BookingFailure.validation("missing_field", "Start time is required", "starts_at"), None, None
        if ends_at is None or (isinstance(ends_at, str) and not ends_at.strip()):
            return BookingFailure.validation("missing_field", "End time is required", "ends_at"), None, None

        start = parse_datetime(starts_at)
        if start is None:
            return BookingFailure.validation("invalid_datetime", "Invalid start time", "starts_at"), None, None
        end = parse_datetime(ends_at)
        if end is None:
            return BookingFailure.validation("invalid_datetime", "Invalid end time", "ends_at"), None, None

        if start >= end:
            return BookingFailure.validation(
                "invalid_time_range", "End time must be after start time", "ends_at"
            ), None, None
        if start < now:
            return BookingFailure.validation(
                "start_in_past", "Cannot book appointments in the past", "starts_at"
            ), None, None
        return None, start, end

    def _validate_request(
        self,
        request: BookingRequest,
        now: datetime,
    ) -> Tuple[Optional[BookingFailure], Optional[dict]]:
        ids = {}
        for name in ("customer_id", "service_id", "worker_id"):
            raw = getattr(request, name)
            if raw is None or raw == "":
                return BookingFailure.validation("missing_field", f"{name} is required", name), None
            value = _coerce_uuid(raw)
            if value is None:
                return BookingFailure.validation("invalid_id", f"{name} is not a valid id", name), None
            ids[name] = value

        failure, start, end = self._parse_window(request.starts_at, request.ends_at, now)
        if failure is not None:
            return failure, None

        ids.update(starts_at=start, ends_at=end)
        return None, ids

    def _resolve_customer(self, tenant_id: uuid.UUID, customer_id: uuid.UUID):
        customer = self.session.exec(
            select(Customer).where(
                Customer.id == customer_id,
                Customer.tenant_id == tenant_id
            )
        ).first()
        if customer is None:
            return None, BookingFailure.not_found("customer_not_found", "Customer not found")
        if customer.blocked:
            return None, BookingFailure.policy(
                "customer_blocked", "Customer is blocked from booking", customer_id=str(customer_id)
            )
        return customer, None

    def _resolve_service(self, tenant_id: uuid.UUID, service_id: uuid.UUID, require_active: bool = True):
        service = self.session.exec(
            select(Service).where(
                Service.id == service_id,
                Service.tenant_id == tenant_id
            )
        ).first()
        if service is None or (require_active and not service.active):
            return None, BookingFailure.not_found("service_not_found", "Service not found or inactive")
        return service, None

    def _resolve_worker(self, tenant_id: uuid.UUID, worker_id: uuid.UUID, service_id: uuid.UUID):
        worker = self.session.exec(
            select(Worker).where(
                Worker.id == worker_id,
                Worker.tenant_id == tenant_id,
                Worker.active == True  # noqa: E712
            )
        ).first()
        if worker is None:
            return None, BookingFailure.not_found("worker_not_found", "Worker not found or inactive")

        qualified = self.session.exec(
            select(WorkerService).where(
                WorkerService.worker_id == worker.id,
                WorkerService.service_id == service_id
            )
        ).first()
        if qualified is None:
            return None, BookingFailure.policy(
                "worker_not_qualified",
                "Worker cannot perform this service",
                worker_id=str(worker_id),
                service_id=str(service_id),
            )
        return worker, None

    def _check_duration(self, service: Service, start: datetime, end: datetime) -> Optional[BookingFailure]:
        tolerance = self.settings.DURATION_TOLERANCE_MINUTES
        if duration_matches(service.duration, start, end, tolerance):
            return None
        return BookingFailure.policy(
            "duration_mismatch",
            f"Appointment duration must match the service duration of {service.duration} minutes",
            expected_minutes=service.duration,
            actual_minutes=duration_minutes(start, end),
            tolerance_minutes=tolerance,
        )

    def _check_working_hours(self, tenant: Optional[Tenant], start: datetime, end: datetime) -> Optional[BookingFailure]:
        if tenant is None:
            return None
        local_start = to_local(start, tenant.timezone)
        local_end = to_local(end, tenant.timezone)
        if within_working_hours(local_start, local_end, tenant.working_hours):
            return None
        return BookingFailure.policy(
            "outside_working_hours",
            "Appointment is outside working hours",
            working_hours=tenant.working_hours,
        )

    def _load_appointment(self, tenant_id: uuid.UUID, appointment_id: uuid.UUID) -> Optional[Appointment]:
        return self.session.exec(
            select(Appointment).where(
                Appointment.id == appointment_id,
                Appointment.tenant_id == tenant_id
            ).execution_options(populate_existing=True)
        ).first()

    def _view(self, tenant_id: uuid.UUID, appointment_id: uuid.UUID) -> AppointmentView:
        return load_appointment_view(self.session, tenant_id, appointment_id)

    @staticmethod
    def _conflict_failure(conflict: ConflictResult) -> BookingFailure:
        other = conflict.conflicting_appointment
        return BookingFailure.conflict(
            "time_conflict",
            "Worker already has an appointment at this time",
            appointment_id=str(other.id),
            starts_at=other.starts_at.isoformat(),
            ends_at=other.ends_at.isoformat(),
        )

    # Operations

    def create_booking(self, tenant_id: uuid.UUID, request: BookingRequest) -> BookingOutcome:
        """Book a slot, joining a live group session when one matches"""
        now = self.clock()
        failure, fields = self._validate_request(request, now)
        if failure is not None:
            logger.info(f"Booking request rejected: {failure.code}")
            return BookingOutcome.rejected(failure)

        return self._run("create_booking", self._create_booking, tenant_id, request, fields, now)

    def _create_booking(
        self,
        tenant_id: uuid.UUID,
        request: BookingRequest,
        fields: dict,
        now: datetime,
    ) -> BookingOutcome:
        start, end = fields["starts_at"], fields["ends_at"]

        customer, failure = self._resolve_customer(tenant_id, fields["customer_id"])
        if failure:
            return BookingOutcome.rejected(failure)
        service, failure = self._resolve_service(tenant_id, fields["service_id"])
        if failure:
            return BookingOutcome.rejected(failure)
        worker, failure = self._resolve_worker(tenant_id, fields["worker_id"], service.id)
        if failure:
            return BookingOutcome.rejected(failure)

        failure = self._check_duration(service, start, end)
        if failure:
            return BookingOutcome.rejected(failure)

        context = load_plan_context(self.session, tenant_id, now)
        if context.subscription_lapsed:
            return BookingOutcome.rejected(BookingFailure.policy(
                "subscription_lapsed", "Subscription or trial has expired"
            ))
        if not context.feature_enabled(FEATURE_CREATE_APPOINTMENTS):
            return BookingOutcome.rejected(BookingFailure.policy(
                "feature_disabled",
                "Your plan does not include booking appointments",
                feature=FEATURE_CREATE_APPOINTMENTS,
            ))
        booked = count_bookings_this_month(self.session, tenant_id, now)
        quota = check_limit(context, MAX_BOOKINGS_PER_MONTH, booked)
        if not quota.can_proceed:
            return BookingOutcome.rejected(BookingFailure.policy(
                "quota_exceeded",
                "Monthly booking limit reached",
                limit_name=MAX_BOOKINGS_PER_MONTH,
                limit=quota.limit,
                current=booked,
            ))

        if not self._lock_worker_schedule(tenant_id, worker.id):
            return BookingOutcome.rejected(
                BookingFailure.not_found("worker_not_found", "Worker not found or inactive")
            )

        if service.is_group_capable():
            outcome = self._join_matching_session(tenant_id, service, worker, customer, start, end)
            if outcome is not None:
                return outcome

        conflict = check_conflict(
            self.session, tenant_id, worker.id, start, end, service_id=service.id
        )
        if conflict.has_conflict:
            return BookingOutcome.rejected(self._conflict_failure(conflict))

        tenant = self.session.exec(select(Tenant).where(Tenant.id == tenant_id)).first()
        failure = self._check_working_hours(tenant, start, end)
        if failure:
            return BookingOutcome.rejected(failure)

        status = normalize_status(request.status)
        is_group = service.is_group_capable()
        appointment = Appointment(
            tenant_id=tenant_id,
            customer_id=customer.id,
            service_id=service.id,
            worker_id=worker.id,
            starts_at=start,
            ends_at=end,
            status=status,
            is_group_appointment=is_group,
            current_participants=0 if is_group else 1,
            notes=request.notes,
            confirmed_at=now if status == AppointmentStatus.CONFIRMED else None,
            cancelled_at=now if status == AppointmentStatus.CANCELLED else None,
        )
        self.session.add(appointment)
        self.session.flush()

        events: List[DomainEvent] = [_appointment_event(AppointmentCreated, appointment)]
        participant_id = None
        participant_status = None

        if is_group and status != AppointmentStatus.CANCELLED:
            result = group_capacity.add_participant(
                self.session, tenant_id, appointment.id, customer.id, ParticipantStatus.CONFIRMED
            )
            if not result.success:
                return BookingOutcome.rejected(_join_failure(result.error))
            participant_id, participant_status = result.participant_id, result.status
            events.append(ParticipantJoined(
                appointment_id=appointment.id,
                tenant_id=tenant_id,
                customer_id=customer.id,
                participant_status=result.status.value,
            ))

        if status == AppointmentStatus.CONFIRMED:
            events.append(_appointment_event(AppointmentConfirmed, appointment))

        self._commit_and_publish(events)
        logger.info(
            f"Booked appointment {appointment.id} for worker {worker.id} "
            f"{start.isoformat()}-{end.isoformat()} ({status.value})"
        )
        return BookingOutcome(
            appointment=build_appointment_view(appointment, service, customer, worker),
            participant_id=participant_id,
            participant_status=participant_status,
        )

    def _join_matching_session(
        self,
        tenant_id: uuid.UUID,
        service: Service,
        worker: Worker,
        customer: Customer,
        start: datetime,
        end: datetime,
    ) -> Optional[BookingOutcome]:
        """Join a live group session for the exact slot, if one exists"""
        target = group_capacity.find_existing_group_appointment(
            self.session, tenant_id, service.id, worker.id, start, end
        )
        if target is None:
            target = group_capacity.find_group_session(
                self.session, tenant_id, service.id, worker.id, start, end
            )
            if target is None:
                return None
            if not service.waitlist_enabled():
                return BookingOutcome.rejected(BookingFailure.conflict(
                    "group_full",
                    "Group session is full",
                    appointment_id=str(target.id),
                    max_capacity=service.max_capacity,
                ))

        result = group_capacity.add_participant(
            self.session, tenant_id, target.id, customer.id, ParticipantStatus.CONFIRMED
        )
        if not result.success:
            return BookingOutcome.rejected(_join_failure(result.error))

        self._commit_and_publish([ParticipantJoined(
            appointment_id=target.id,
            tenant_id=tenant_id,
            customer_id=customer.id,
            participant_status=result.status.value,
        )])
        logger.info(f"Customer {customer.id} joined group session {target.id} as {result.status.value}")
        return BookingOutcome(
            appointment=self._view(tenant_id, target.id),
            participant_id=result.participant_id,
            participant_status=result.status,
            joined_existing=True,
        )

    def join_group(
        self,
        tenant_id: uuid.UUID,
        appointment_id: uuid.UUID,
        customer_id: uuid.UUID,
    ) -> BookingOutcome:
        """Add a customer to an existing group appointment"""
        return self._run("join_group", self._join_group, tenant_id, appointment_id, customer_id)

    def _join_group(
        self,
        tenant_id: uuid.UUID,
        appointment_id: uuid.UUID,
        customer_id: uuid.UUID,
    ) -> BookingOutcome:
        customer, failure = self._resolve_customer(tenant_id, customer_id)
        if failure:
            return BookingOutcome.rejected(failure)

        result = group_capacity.add_participant(
            self.session, tenant_id, appointment_id, customer.id, ParticipantStatus.CONFIRMED
        )
        if not result.success:
            return BookingOutcome.rejected(_join_failure(result.error))

        self._commit_and_publish([ParticipantJoined(
            appointment_id=appointment_id,
            tenant_id=tenant_id,
            customer_id=customer.id,
            participant_status=result.status.value,
        )])
        return BookingOutcome(
            appointment=self._view(tenant_id, appointment_id),
            participant_id=result.participant_id,
            participant_status=result.status,
            joined_existing=True,
        )

    def leave_group(
        self,
        tenant_id: uuid.UUID,
        appointment_id: uuid.UUID,
        customer_id: uuid.UUID,
    ) -> BookingOutcome:
        """Remove a customer from a group appointment

        A freed confirmed seat goes to the earliest waitlisted participant.
        """
        return self._run("leave_group", self._leave_group, tenant_id, appointment_id, customer_id)

    def _leave_group(
        self,
        tenant_id: uuid.UUID,
        appointment_id: uuid.UUID,
        customer_id: uuid.UUID,
    ) -> BookingOutcome:
        if self._load_appointment(tenant_id, appointment_id) is None:
            return BookingOutcome.rejected(
                BookingFailure.not_found("appointment_not_found", "Appointment not found")
            )

        removed = group_capacity.remove_participant(self.session, tenant_id, appointment_id, customer_id)
        if removed is None:
            return BookingOutcome.rejected(
                BookingFailure.not_found("participant_not_found", "Customer is not a participant")
            )

        events: List[DomainEvent] = [ParticipantRemoved(
            appointment_id=appointment_id,
            tenant_id=tenant_id,
            customer_id=removed.customer_id,
            participant_status=removed.previous_status.value,
        )]

        # A cancelled session releases nothing, so nobody is promoted into it
        if removed.held_seat and group_capacity.release_seat(self.session, tenant_id, appointment_id):
            promoted = group_capacity.promote_waitlisted(self.session, tenant_id, appointment_id)
            if promoted is not None:
                events.append(ParticipantPromoted(
                    appointment_id=appointment_id,
                    tenant_id=tenant_id,
                    customer_id=promoted.customer_id,
                    participant_status=promoted.status.value,
                ))

        self._commit_and_publish(events)
        return BookingOutcome(appointment=self._view(tenant_id, appointment_id))

    def confirm_appointment(
        self,
        tenant_id: uuid.UUID,
        appointment_id: uuid.UUID,
        expected_version: Optional[int] = None,
    ) -> BookingOutcome:
        """Move a pending appointment to confirmed"""
        return self._run("confirm_appointment", self._confirm, tenant_id, appointment_id, expected_version)

    def _confirm(
        self,
        tenant_id: uuid.UUID,
        appointment_id: uuid.UUID,
        expected_version: Optional[int],
    ) -> BookingOutcome:
        appointment = self._load_appointment(tenant_id, appointment_id)
        if appointment is None:
            return BookingOutcome.rejected(
                BookingFailure.not_found("appointment_not_found", "Appointment not found")
            )
        if expected_version is not None and appointment.version != expected_version:
            return BookingOutcome.rejected(BookingFailure.conflict(
                "version_mismatch",
                "Appointment was modified by another request",
                current_version=appointment.version,
            ))

        loaded_version = appointment.version
        try:
            appointment.transition_to_confirmed()
        except ValueError as e:
            return BookingOutcome.rejected(BookingFailure.conflict(
                "invalid_transition", str(e), status=appointment.status.value
            ))

        written = self._write_guarded(
            appointment, TRANSITION_FIELDS,
            Appointment.status == AppointmentStatus.PENDING,
            Appointment.version == loaded_version,
        )
        if not written:
            return BookingOutcome.rejected(
                self._stale_failure(tenant_id, appointment_id, (AppointmentStatus.PENDING,))
            )

        self._commit_and_publish([_appointment_event(AppointmentConfirmed, appointment)])
        logger.info(f"Confirmed appointment {appointment_id}")
        return BookingOutcome(appointment=self._view(tenant_id, appointment_id))

    def cancel_appointment(self, tenant_id: uuid.UUID, appointment_id: uuid.UUID) -> BookingOutcome:
        """Cancel an appointment; cancelling twice is a no-op"""
        return self._run("cancel_appointment", self._cancel, tenant_id, appointment_id)

    def _cancel(self, tenant_id: uuid.UUID, appointment_id: uuid.UUID) -> BookingOutcome:
        appointment = self._load_appointment(tenant_id, appointment_id)
        if appointment is None:
            return BookingOutcome.rejected(
                BookingFailure.not_found("appointment_not_found", "Appointment not found")
            )

        if not appointment.transition_to_cancelled():
            logger.debug(f"Appointment {appointment_id} already cancelled")
            return BookingOutcome(appointment=self._view(tenant_id, appointment_id))

        written = self._write_guarded(
            appointment, TRANSITION_FIELDS, Appointment.status.in_(BLOCKING_STATUSES)
        )
        if not written:
            # Cancelled concurrently; the other request published the event
            self.session.rollback()
            logger.debug(f"Appointment {appointment_id} cancelled by another request")
            view = self._view(tenant_id, appointment_id)
            if view is None:
                return BookingOutcome.rejected(
                    BookingFailure.not_found("appointment_not_found", "Appointment not found")
                )
            return BookingOutcome(appointment=view)

        self._commit_and_publish([_appointment_event(AppointmentCancelled, appointment)])
        logger.info(f"Cancelled appointment {appointment_id}")
        return BookingOutcome(appointment=self._view(tenant_id, appointment_id))

    def reschedule_appointment(
        self,
        tenant_id: uuid.UUID,
        appointment_id: uuid.UUID,
        starts_at: Any,
        ends_at: Any,
        worker_id: Optional[Union[uuid.UUID, str]] = None,
        expected_version: Optional[int] = None,
    ) -> BookingOutcome:
        """Move an appointment to a new slot, optionally with another worker"""
        failure, start, end = self._parse_window(starts_at, ends_at, self.clock())
        if failure is not None:
            return BookingOutcome.rejected(failure)

        new_worker_id = None
        if worker_id is not None:
            new_worker_id = _coerce_uuid(worker_id)
            if new_worker_id is None:
                return BookingOutcome.rejected(
                    BookingFailure.validation("invalid_id", "worker_id is not a valid id", "worker_id")
                )

        return self._run(
            "reschedule_appointment", self._reschedule,
            tenant_id, appointment_id, start, end, new_worker_id, expected_version
        )

    def _reschedule(
        self,
        tenant_id: uuid.UUID,
        appointment_id: uuid.UUID,
        start: datetime,
        end: datetime,
        worker_id: Optional[uuid.UUID],
        expected_version: Optional[int],
    ) -> BookingOutcome:
        appointment = self._load_appointment(tenant_id, appointment_id)
        if appointment is None:
            return BookingOutcome.rejected(
                BookingFailure.not_found("appointment_not_found", "Appointment not found")
            )
        if expected_version is not None and appointment.version != expected_version:
            return BookingOutcome.rejected(BookingFailure.conflict(
                "version_mismatch",
                "Appointment was modified by another request",
                current_version=appointment.version,
            ))
        can_move, reason = appointment.can_reschedule()
        if not can_move:
            return BookingOutcome.rejected(BookingFailure.conflict(
                "invalid_transition", reason, status=appointment.status.value
            ))

        service, failure = self._resolve_service(tenant_id, appointment.service_id, require_active=False)
        if failure:
            return BookingOutcome.rejected(failure)
        worker, failure = self._resolve_worker(tenant_id, worker_id or appointment.worker_id, service.id)
        if failure:
            return BookingOutcome.rejected(failure)

        failure = self._check_duration(service, start, end)
        if failure:
            return BookingOutcome.rejected(failure)

        if not self._lock_worker_schedule(tenant_id, worker.id):
            return BookingOutcome.rejected(
                BookingFailure.not_found("worker_not_found", "Worker not found or inactive")
            )

        conflict = check_conflict(
            self.session, tenant_id, worker.id, start, end,
            exclude_appointment_id=appointment.id, service_id=service.id
        )
        if conflict.has_conflict:
            return BookingOutcome.rejected(self._conflict_failure(conflict))

        tenant = self.session.exec(select(Tenant).where(Tenant.id == tenant_id)).first()
        failure = self._check_working_hours(tenant, start, end)
        if failure:
            return BookingOutcome.rejected(failure)

        previous_start, previous_end = appointment.starts_at, appointment.ends_at
        loaded_version = appointment.version
        appointment.move_to(start, end, worker.id)
        written = self._write_guarded(
            appointment, MOVE_FIELDS,
            Appointment.status.in_(BLOCKING_STATUSES),
            Appointment.version == loaded_version,
        )
        if not written:
            return BookingOutcome.rejected(
                self._stale_failure(tenant_id, appointment_id, BLOCKING_STATUSES)
            )

        self._commit_and_publish([_appointment_event(
            AppointmentRescheduled, appointment,
            previous_starts_at=previous_start,
            previous_ends_at=previous_end,
        )])
        logger.info(f"Rescheduled appointment {appointment_id} to {start.isoformat()}")
        return BookingOutcome(appointment=self._view(tenant_id, appointment_id))

    # Reads

    def get_appointment(self, tenant_id: uuid.UUID, appointment_id: uuid.UUID) -> Optional[AppointmentView]:
        return load_appointment_view(self.session, tenant_id, appointment_id)

    def list_appointments(self, tenant_id: uuid.UUID, **filters) -> List[AppointmentView]:
        return list_appointment_views(self.session, tenant_id, **filters)
