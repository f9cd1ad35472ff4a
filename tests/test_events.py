"""
Tests for the event bus and the notification hooks
"""

from datetime import datetime
from unittest.mock import Mock
import uuid

from bookwell.core.events import (
    AppointmentCancelled, AppointmentConfirmed, AppointmentCreated,
    AppointmentRescheduled, EventBus, ParticipantJoined
)
from bookwell.services import notifications
from bookwell.services.notifications import NotificationHooks, reminder_times
from conftest import test_engine

STARTS = datetime(2030, 3, 14, 15, 0)
NOW = datetime(2030, 3, 11, 8, 0)
BUENOS_AIRES = "America/Argentina/Buenos_Aires"


def appointment_event(event_class, status="confirmed", **extra):
    return event_class(
        appointment_id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        worker_id=uuid.uuid4(),
        starts_at=STARTS,
        ends_at=datetime(2030, 3, 14, 15, 30),
        status=status,
        **extra
    )


class TestEventBus:

    def test_publish_to_subscribers_of_type(self):
        bus = EventBus()
        created, confirmed = Mock(), Mock()
        bus.subscribe("AppointmentCreated", created)
        bus.subscribe("AppointmentConfirmed", confirmed)

        event = appointment_event(AppointmentCreated)
        bus.publish(event)

        created.assert_called_once_with(event)
        confirmed.assert_not_called()

    def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        after = Mock()
        bus.subscribe("AppointmentCreated", Mock(side_effect=RuntimeError("boom")))
        bus.subscribe("AppointmentCreated", after)

        bus.publish(appointment_event(AppointmentCreated))

        after.assert_called_once()

    def test_publish_all_keeps_order(self):
        bus = EventBus()
        seen = []
        for name in ("AppointmentCreated", "ParticipantJoined", "AppointmentConfirmed"):
            bus.subscribe(name, lambda event: seen.append(type(event).__name__))

        bus.publish_all([
            appointment_event(AppointmentCreated),
            ParticipantJoined(uuid.uuid4(), uuid.uuid4(), uuid.uuid4(), "confirmed"),
            appointment_event(AppointmentConfirmed),
        ])

        assert seen == ["AppointmentCreated", "ParticipantJoined", "AppointmentConfirmed"]

    def test_unsubscribe(self):
        bus = EventBus()
        handler = Mock()
        bus.subscribe("AppointmentCancelled", handler)
        bus.unsubscribe("AppointmentCancelled", handler)

        bus.publish(appointment_event(AppointmentCancelled))

        handler.assert_not_called()

    def test_event_to_dict(self):
        event = appointment_event(
            AppointmentRescheduled,
            previous_starts_at=datetime(2030, 3, 13, 15, 0),
            previous_ends_at=datetime(2030, 3, 13, 15, 30),
        )

        data = event.to_dict()

        assert data["event_type"] == "AppointmentRescheduled"
        assert data["starts_at"] == "2030-03-14T15:00:00"
        assert data["previous_starts_at"] == "2030-03-13T15:00:00"
        assert data["status"] == "confirmed"


class TestReminderTimes:

    def test_one_day_before_at_default_time(self):
        assert reminder_times(STARTS, [1], "09:00", NOW) == [datetime(2030, 3, 13, 9, 0)]

    def test_multiple_days_earliest_first(self):
        times = reminder_times(STARTS, [1, 2, 1], "10:30", NOW)
        assert times == [datetime(2030, 3, 12, 10, 30), datetime(2030, 3, 13, 10, 30)]

    def test_past_reminders_dropped(self):
        assert reminder_times(STARTS, [7, 1], "09:00", NOW) == [datetime(2030, 3, 13, 9, 0)]

    def test_same_day_reminder_after_start_dropped(self):
        assert reminder_times(datetime(2030, 3, 14, 8, 0), [0], "09:00", NOW) == []

    def test_malformed_default_time(self):
        assert reminder_times(STARTS, [1], "soon", NOW) == [datetime(2030, 3, 13, 9, 0)]
        assert reminder_times(STARTS, [1], "25:00", NOW) == [datetime(2030, 3, 13, 9, 0)]

    def test_default_time_is_local_to_the_tenant(self):
        # 09:00 in Buenos Aires (UTC-3) is 12:00 UTC
        assert reminder_times(STARTS, [1], "09:00", NOW, BUENOS_AIRES) == [datetime(2030, 3, 13, 12, 0)]

    def test_days_count_from_the_local_date(self):
        # 01:00 UTC on the 14th is still the evening of the 13th in Buenos Aires
        starts = datetime(2030, 3, 14, 1, 0)

        assert reminder_times(starts, [1], "09:00", NOW) == [datetime(2030, 3, 13, 9, 0)]
        assert reminder_times(starts, [1], "09:00", NOW, BUENOS_AIRES) == [datetime(2030, 3, 12, 12, 0)]


class TestNotificationHooks:

    def make_hooks(self, tz_name=None):
        reminders, calendar = Mock(), Mock()
        hooks = NotificationHooks(
            reminders=reminders, calendar=calendar, clock=lambda: NOW,
            timezone_for=lambda tenant_id: tz_name,
        )
        hooks.days_before = [1]
        hooks.default_time = "09:00"
        bus = EventBus()
        hooks.register(bus)
        return hooks, bus, reminders, calendar

    def test_confirmation_schedules_reminder_and_syncs(self):
        hooks, bus, reminders, calendar = self.make_hooks()
        event = appointment_event(AppointmentConfirmed)

        bus.publish(event)

        reminders.schedule.assert_called_once_with(event.appointment_id, datetime(2030, 3, 13, 9, 0))
        calendar.upsert.assert_called_once_with(event)

    def test_reminders_follow_the_tenant_timezone(self):
        hooks, bus, reminders, calendar = self.make_hooks(BUENOS_AIRES)
        event = appointment_event(AppointmentConfirmed)

        bus.publish(event)

        reminders.schedule.assert_called_once_with(event.appointment_id, datetime(2030, 3, 13, 12, 0))

    def test_cancellation_clears_reminders(self):
        hooks, bus, reminders, calendar = self.make_hooks()
        event = appointment_event(AppointmentCancelled, status="cancelled")

        bus.publish(event)

        reminders.cancel.assert_called_once_with(event.appointment_id)
        calendar.remove.assert_called_once_with(event.appointment_id)

    def test_pending_reschedule_is_ignored(self):
        hooks, bus, reminders, calendar = self.make_hooks()

        bus.publish(appointment_event(
            AppointmentRescheduled, status="pending",
            previous_starts_at=NOW, previous_ends_at=NOW,
        ))

        reminders.schedule.assert_not_called()
        calendar.upsert.assert_not_called()

    def test_confirmed_reschedule_moves_reminders(self):
        hooks, bus, reminders, calendar = self.make_hooks()
        event = appointment_event(
            AppointmentRescheduled,
            previous_starts_at=datetime(2030, 3, 13, 15, 0),
            previous_ends_at=datetime(2030, 3, 13, 15, 30),
        )

        bus.publish(event)

        reminders.cancel.assert_called_once_with(event.appointment_id)
        reminders.schedule.assert_called_once()
        calendar.upsert.assert_called_once_with(event)

    def test_unregister(self):
        hooks, bus, reminders, calendar = self.make_hooks()
        hooks.unregister(bus)

        bus.publish(appointment_event(AppointmentConfirmed))

        calendar.upsert.assert_not_called()

    def test_calendar_failure_is_contained(self):
        hooks, bus, reminders, calendar = self.make_hooks()
        calendar.upsert.side_effect = ConnectionError("calendar unreachable")

        bus.publish(appointment_event(AppointmentConfirmed))

        reminders.schedule.assert_called_once()


def test_tenant_timezone_reads_stored_zone(db, tenant, monkeypatch):
    monkeypatch.setattr(notifications, "engine", test_engine)
    tenant.timezone = BUENOS_AIRES
    db.add(tenant)
    db.commit()

    assert notifications.tenant_timezone(tenant.id) == BUENOS_AIRES
    assert notifications.tenant_timezone(uuid.uuid4()) is None
