"""
Test configuration for pytest
"""

import os
from datetime import datetime
from typing import Generator

import pytest

# Test environment variables
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["DEBUG"] = "false"

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session

import bookwell.models  # noqa: F401
from bookwell.core.events import EventBus
from bookwell.models import Customer, Service, Tenant, Worker, WorkerService
from bookwell.services.booking import BookingService

# Fixed clock for service tests: 2030-03-11 08:00 UTC
NOW = datetime(2030, 3, 11, 8, 0)


def at(hour: int, minute: int = 0, day: int = 11) -> datetime:
    """A time on the test calendar (March 2030, UTC)"""
    return datetime(2030, 3, day, hour, minute)


# Create test engine using in-memory SQLite shared across threads
test_engine = create_engine(
    "sqlite://",
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a clean database session for each test"""
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def bus() -> EventBus:
    """Isolated event bus"""
    return EventBus()


@pytest.fixture
def booking(db: Session, bus: EventBus) -> BookingService:
    """Booking service on the fixed test clock"""
    return BookingService(db, bus=bus, clock=lambda: NOW)


@pytest.fixture
def tenant(db: Session) -> Tenant:
    tenant = Tenant(name="Studio One", slug="studio-one")
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


@pytest.fixture
def other_tenant(db: Session) -> Tenant:
    tenant = Tenant(name="Other Studio", slug="other-studio")
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


def make_customer(db: Session, tenant: Tenant, name: str = "Ana", blocked: bool = False) -> Customer:
    customer = Customer(tenant_id=tenant.id, name=name, blocked=blocked)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def make_service(db: Session, tenant: Tenant, **overrides) -> Service:
    values = {"tenant_id": tenant.id, "name": "Haircut", "duration": 30}
    values.update(overrides)
    service = Service(**values)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def make_worker(db: Session, tenant: Tenant, services=(), name: str = "Bruno", active: bool = True) -> Worker:
    worker = Worker(tenant_id=tenant.id, name=name, active=active)
    db.add(worker)
    db.commit()
    db.refresh(worker)
    for service in services:
        db.add(WorkerService(worker_id=worker.id, service_id=service.id))
    db.commit()
    return worker


@pytest.fixture
def customer(db: Session, tenant: Tenant) -> Customer:
    return make_customer(db, tenant)


@pytest.fixture
def service(db: Session, tenant: Tenant) -> Service:
    return make_service(db, tenant)


@pytest.fixture
def group_service(db: Session, tenant: Tenant) -> Service:
    return make_service(
        db, tenant, name="Yoga class", duration=30,
        is_group_service=True, max_capacity=3
    )


@pytest.fixture
def worker(db: Session, tenant: Tenant, service: Service, group_service: Service) -> Worker:
    return make_worker(db, tenant, services=(service, group_service))
