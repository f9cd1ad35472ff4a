"""
Post-commit notification hooks

Reminder delivery and external calendar sync live outside this service.
The hooks here translate committed appointment events into calls on those
collaborators; a failing collaborator is logged by the event bus and never
affects the booking that triggered it.
"""

from datetime import datetime, time, timedelta
from typing import Callable, List, Optional, Protocol
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
import structlog

from bookwell.core.config import get_settings
from bookwell.core.database import engine
from bookwell.core.events import (
    AppointmentCancelled, AppointmentConfirmed, AppointmentEvent,
    AppointmentRescheduled, EventBus
)
from bookwell.models import AppointmentStatus, Tenant
from bookwell.services.time_ranges import to_local, to_utc_naive, utcnow

logger = structlog.get_logger(__name__)


def reminder_times(
    starts_at: datetime,
    days_before: List[int],
    default_time: str,
    now: datetime,
    tz_name: Optional[str] = None,
) -> List[datetime]:
    """Times to send reminders for an appointment, future ones only

    ``default_time`` is a wall-clock time in the tenant's timezone; the
    returned times are naive UTC like ``starts_at`` and ``now``.
    """
    try:
        hours, minutes = (int(part) for part in default_time.split(":")[:2])
        remind_at = time(hours, minutes)
    except ValueError:
        remind_at = time(9, 0)

    local_start = to_local(starts_at, tz_name)
    times = []
    for days in sorted(set(days_before), reverse=True):
        local = (local_start - timedelta(days=days)).replace(
            hour=remind_at.hour, minute=remind_at.minute, second=0, microsecond=0
        )
        scheduled = to_utc_naive(local)
        if now < scheduled < starts_at:
            times.append(scheduled)
    return times


def tenant_timezone(tenant_id: uuid.UUID) -> Optional[str]:
    """Stored timezone of a tenant, read in a session of its own"""
    try:
        with Session(engine) as session:
            tenant = session.get(Tenant, tenant_id)
    except SQLAlchemyError as e:
        logger.warning(f"Could not load timezone of tenant {tenant_id}: {e}")
        return None
    return tenant.timezone if tenant is not None else None


class ReminderQueue(Protocol):
    def schedule(self, appointment_id: uuid.UUID, send_at: datetime) -> None: ...

    def cancel(self, appointment_id: uuid.UUID) -> None: ...


class CalendarSync(Protocol):
    def upsert(self, event: AppointmentEvent) -> None: ...

    def remove(self, appointment_id: uuid.UUID) -> None: ...


class LoggingReminderQueue:
    """Reminder queue that only records what would be sent"""

    def schedule(self, appointment_id: uuid.UUID, send_at: datetime) -> None:
        logger.info(f"Reminder for appointment {appointment_id} scheduled at {send_at.isoformat()}")

    def cancel(self, appointment_id: uuid.UUID) -> None:
        logger.info(f"Pending reminders cancelled for appointment {appointment_id}")


class LoggingCalendarSync:
    def upsert(self, event: AppointmentEvent) -> None:
        logger.info(f"Calendar sync for appointment {event.appointment_id}", **event.to_dict())

    def remove(self, appointment_id: uuid.UUID) -> None:
        logger.info(f"Calendar entry removed for appointment {appointment_id}")


class NotificationHooks:
    """Subscribes reminder scheduling and calendar sync to appointment events"""

    def __init__(
        self,
        reminders: Optional[ReminderQueue] = None,
        calendar: Optional[CalendarSync] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timezone_for: Optional[Callable[[uuid.UUID], Optional[str]]] = None,
    ):
        settings = get_settings()
        self.reminders = reminders or LoggingReminderQueue()
        self.calendar = calendar or LoggingCalendarSync()
        self.days_before = settings.REMINDER_DAYS_BEFORE
        self.default_time = settings.REMINDER_DEFAULT_TIME
        self.clock = clock or utcnow
        self.timezone_for = timezone_for or tenant_timezone

    def register(self, bus: EventBus) -> None:
        bus.subscribe(AppointmentConfirmed.__name__, self.on_confirmed)
        bus.subscribe(AppointmentCancelled.__name__, self.on_cancelled)
        bus.subscribe(AppointmentRescheduled.__name__, self.on_rescheduled)

    def unregister(self, bus: EventBus) -> None:
        bus.unsubscribe(AppointmentConfirmed.__name__, self.on_confirmed)
        bus.unsubscribe(AppointmentCancelled.__name__, self.on_cancelled)
        bus.unsubscribe(AppointmentRescheduled.__name__, self.on_rescheduled)

    def _schedule_reminders(self, event: AppointmentEvent) -> None:
        self.reminders.cancel(event.appointment_id)
        tz_name = self.timezone_for(event.tenant_id)
        send_times = reminder_times(
            event.starts_at, self.days_before, self.default_time, self.clock(), tz_name
        )
        for send_at in send_times:
            self.reminders.schedule(event.appointment_id, send_at)

    def on_confirmed(self, event: AppointmentConfirmed) -> None:
        self._schedule_reminders(event)
        self.calendar.upsert(event)

    def on_cancelled(self, event: AppointmentCancelled) -> None:
        self.reminders.cancel(event.appointment_id)
        self.calendar.remove(event.appointment_id)

    def on_rescheduled(self, event: AppointmentRescheduled) -> None:
        # Only confirmed appointments carry reminders and calendar entries
        if event.status != AppointmentStatus.CONFIRMED.value:
            return
        self._schedule_reminders(event)
        self.calendar.upsert(event)
