"""
Concurrent booking tests against a file-backed SQLite database

Each thread books through its own session, the way separate API
requests would.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
import threading

import pytest
from sqlmodel import SQLModel, Session, select

from bookwell.core.database import build_engine
from bookwell.core.events import EventBus
from bookwell.models import (
    Appointment, AppointmentParticipant, AppointmentStatus, ParticipantStatus, Tenant
)
from bookwell.services.booking import BookingRequest, BookingService
from bookwell.services.time_ranges import ranges_overlap
from conftest import NOW, at, make_customer, make_service, make_worker

THREADS = 6


@pytest.fixture
def shared_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seeded(shared_engine):
    """Tenant with one worker, a haircut, a 3-seat class and several customers"""
    with Session(shared_engine, expire_on_commit=False) as session:
        tenant = Tenant(name="Race Studio", slug="race-studio")
        session.add(tenant)
        session.commit()
        service = make_service(session, tenant)
        group_service = make_service(
            session, tenant, name="Spin class", is_group_service=True, max_capacity=3
        )
        worker = make_worker(session, tenant, services=(service, group_service))
        customers = [make_customer(session, tenant, f"Rider {i}") for i in range(THREADS)]
        return {
            "tenant_id": tenant.id,
            "service_id": service.id,
            "group_service_id": group_service.id,
            "worker_id": worker.id,
            "customer_ids": [c.id for c in customers],
        }


def run_concurrently(engine, action):
    """Run ``action(service, index)`` on THREADS threads released together"""
    barrier = threading.Barrier(THREADS)

    def worker(index):
        with Session(engine, expire_on_commit=False) as session:
            service = BookingService(session, bus=EventBus(), clock=lambda: NOW)
            barrier.wait()
            return action(service, index)

    with ThreadPoolExecutor(max_workers=THREADS) as pool:
        return list(pool.map(worker, range(THREADS)))


def test_same_slot_booked_once(shared_engine, seeded):
    def book(service, index):
        return service.create_booking(seeded["tenant_id"], BookingRequest(
            customer_id=seeded["customer_ids"][index],
            service_id=seeded["service_id"],
            worker_id=seeded["worker_id"],
            starts_at=at(10),
            ends_at=at(10, 30),
        ))

    outcomes = run_concurrently(shared_engine, book)

    assert sum(1 for outcome in outcomes if outcome.ok) == 1
    assert {o.failure.code for o in outcomes if not o.ok} == {"time_conflict"}

    with Session(shared_engine) as session:
        rows = session.exec(select(Appointment)).all()
    assert len(rows) == 1


def test_overlapping_slots_never_both_stored(shared_engine, seeded):
    starts = [at(10), at(10, 10), at(10, 20), at(10, 25), at(9, 45), at(10, 5)]

    def book(service, index):
        start = starts[index]
        return service.create_booking(seeded["tenant_id"], BookingRequest(
            customer_id=seeded["customer_ids"][index],
            service_id=seeded["service_id"],
            worker_id=seeded["worker_id"],
            starts_at=start,
            ends_at=start + timedelta(minutes=30),
        ))

    run_concurrently(shared_engine, book)

    with Session(shared_engine) as session:
        rows = session.exec(select(Appointment)).all()
    assert rows
    for i, a in enumerate(rows):
        for b in rows[i + 1:]:
            assert not ranges_overlap(a.starts_at, a.ends_at, b.starts_at, b.ends_at)


def test_group_seats_never_oversold(shared_engine, seeded):
    def book(service, index):
        return service.create_booking(seeded["tenant_id"], BookingRequest(
            customer_id=seeded["customer_ids"][index],
            service_id=seeded["group_service_id"],
            worker_id=seeded["worker_id"],
            starts_at=at(14),
            ends_at=at(14, 30),
            status="confirmed",
        ))

    outcomes = run_concurrently(shared_engine, book)

    assert sum(1 for outcome in outcomes if outcome.ok) == 3
    assert {o.failure.code for o in outcomes if not o.ok} == {"group_full"}

    with Session(shared_engine) as session:
        sessions = session.exec(select(Appointment)).all()
        participants = session.exec(
            select(AppointmentParticipant).where(
                AppointmentParticipant.status == ParticipantStatus.CONFIRMED
            )
        ).all()
    assert len(sessions) == 1
    assert sessions[0].current_participants == 3
    assert len(participants) == 3


def test_last_seat_race_on_direct_join(shared_engine, seeded):
    owner = seeded["customer_ids"][0]
    with Session(shared_engine, expire_on_commit=False) as session:
        created = BookingService(session, bus=EventBus(), clock=lambda: NOW).create_booking(
            seeded["tenant_id"], BookingRequest(
                customer_id=owner,
                service_id=seeded["group_service_id"],
                worker_id=seeded["worker_id"],
                starts_at=at(16),
                ends_at=at(16, 30),
            )
        )
    appointment_id = created.appointment.id

    def join(service, index):
        if index == 0:
            return None
        return service.join_group(seeded["tenant_id"], appointment_id, seeded["customer_ids"][index])

    outcomes = [o for o in run_concurrently(shared_engine, join) if o is not None]

    assert sum(1 for outcome in outcomes if outcome.ok) == 2
    assert {o.failure.code for o in outcomes if not o.ok} == {"group_full"}

    with Session(shared_engine) as session:
        appointment = session.get(Appointment, appointment_id)
    assert appointment.current_participants == 3


def book_pending(engine, seeded):
    with Session(engine, expire_on_commit=False) as session:
        created = BookingService(session, bus=EventBus(), clock=lambda: NOW).create_booking(
            seeded["tenant_id"], BookingRequest(
                customer_id=seeded["customer_ids"][0],
                service_id=seeded["service_id"],
                worker_id=seeded["worker_id"],
                starts_at=at(11),
                ends_at=at(11, 30),
            )
        )
    return created.appointment.id


def interleaved(engine, monkeypatch, bus, first_call, second_call):
    """Run ``first_call`` with ``second_call`` committing right after its load

    Returns (first outcome, second outcome), each from its own session.
    """
    with Session(engine, expire_on_commit=False) as session_a, \
            Session(engine, expire_on_commit=False) as session_b:
        first = BookingService(session_a, bus=bus, clock=lambda: NOW)
        second = BookingService(session_b, bus=bus, clock=lambda: NOW)
        load = first._load_appointment
        done = []

        def load_then_interleave(tenant_id, appointment_id):
            appointment = load(tenant_id, appointment_id)
            if not done:
                done.append(second_call(second))
            return appointment

        monkeypatch.setattr(first, "_load_appointment", load_then_interleave)
        outcome = first_call(first)
    return outcome, done[0]


def test_racing_cancels_publish_once(shared_engine, seeded, monkeypatch):
    appointment_id = book_pending(shared_engine, seeded)
    tenant_id = seeded["tenant_id"]
    bus = EventBus()
    cancelled = []
    bus.subscribe("AppointmentCancelled", cancelled.append)

    first, second = interleaved(
        shared_engine, monkeypatch, bus,
        lambda service: service.cancel_appointment(tenant_id, appointment_id),
        lambda service: service.cancel_appointment(tenant_id, appointment_id),
    )

    assert first.ok and second.ok
    assert first.appointment.status == AppointmentStatus.CANCELLED
    assert first.appointment.cancelled_at == second.appointment.cancelled_at
    assert len(cancelled) == 1

    with Session(shared_engine) as session:
        stored = session.get(Appointment, appointment_id)
    assert stored.version == second.appointment.version


def test_racing_confirms_publish_once(shared_engine, seeded, monkeypatch):
    appointment_id = book_pending(shared_engine, seeded)
    tenant_id = seeded["tenant_id"]
    bus = EventBus()
    confirmed = []
    bus.subscribe("AppointmentConfirmed", confirmed.append)

    first, second = interleaved(
        shared_engine, monkeypatch, bus,
        lambda service: service.confirm_appointment(tenant_id, appointment_id),
        lambda service: service.confirm_appointment(tenant_id, appointment_id),
    )

    assert second.ok
    assert first.failure.code == "invalid_transition"
    assert len(confirmed) == 1


def test_confirm_loses_to_concurrent_cancel(shared_engine, seeded, monkeypatch):
    appointment_id = book_pending(shared_engine, seeded)
    tenant_id = seeded["tenant_id"]
    bus = EventBus()
    confirmed = []
    bus.subscribe("AppointmentConfirmed", confirmed.append)

    first, second = interleaved(
        shared_engine, monkeypatch, bus,
        lambda service: service.confirm_appointment(tenant_id, appointment_id),
        lambda service: service.cancel_appointment(tenant_id, appointment_id),
    )

    assert second.ok
    assert first.failure.code == "invalid_transition"
    assert first.failure.details["status"] == "cancelled"
    assert confirmed == []

    with Session(shared_engine) as session:
        stored = session.get(Appointment, appointment_id)
    assert stored.status == AppointmentStatus.CANCELLED
    assert stored.confirmed_at is None


def test_reschedule_loses_to_concurrent_cancel(shared_engine, seeded, monkeypatch):
    appointment_id = book_pending(shared_engine, seeded)
    tenant_id = seeded["tenant_id"]
    bus = EventBus()
    moved = []
    bus.subscribe("AppointmentRescheduled", moved.append)

    first, second = interleaved(
        shared_engine, monkeypatch, bus,
        lambda service: service.reschedule_appointment(tenant_id, appointment_id, at(12), at(12, 30)),
        lambda service: service.cancel_appointment(tenant_id, appointment_id),
    )

    assert second.ok
    assert first.failure.code == "invalid_transition"
    assert moved == []

    with Session(shared_engine) as session:
        stored = session.get(Appointment, appointment_id)
    assert stored.status == AppointmentStatus.CANCELLED
    assert stored.starts_at == at(11)
