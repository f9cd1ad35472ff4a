"""
Read projections of appointments with denormalised display fields
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

from sqlmodel import Session, select

from bookwell.models import Appointment, AppointmentStatus, Customer, Service, Worker
from bookwell.services.group_capacity import capacity_of


@dataclass(frozen=True)
class AppointmentView:
    """An appointment joined with the names of its customer, service and worker

    Name fields are None when the referenced row is missing. Capacity
    fields describe the session: individual appointments report 1/1.
    """
    id: uuid.UUID
    tenant_id: uuid.UUID
    customer_id: uuid.UUID
    service_id: uuid.UUID
    worker_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime
    status: AppointmentStatus
    is_group_appointment: bool
    current_participants: int
    max_participants: int
    version: int
    created_at: datetime
    customer_name: Optional[str] = None
    service_name: Optional[str] = None
    worker_name: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "customer_id": str(self.customer_id),
            "service_id": str(self.service_id),
            "worker_id": str(self.worker_id),
            "starts_at": self.starts_at.isoformat(),
            "ends_at": self.ends_at.isoformat(),
            "status": self.status.value,
            "is_group_appointment": self.is_group_appointment,
            "current_participants": self.current_participants,
            "max_participants": self.max_participants,
            "customer_name": self.customer_name,
            "service_name": self.service_name,
            "worker_name": self.worker_name,
        }


def build_appointment_view(
    appointment: Appointment,
    service: Optional[Service] = None,
    customer: Optional[Customer] = None,
    worker: Optional[Worker] = None,
) -> AppointmentView:
    capacity = capacity_of(appointment, service)
    return AppointmentView(
        id=appointment.id,
        tenant_id=appointment.tenant_id,
        customer_id=appointment.customer_id,
        service_id=appointment.service_id,
        worker_id=appointment.worker_id,
        starts_at=appointment.starts_at,
        ends_at=appointment.ends_at,
        status=appointment.status,
        is_group_appointment=bool(appointment.is_group_appointment),
        current_participants=capacity.current,
        max_participants=capacity.max,
        version=appointment.version,
        created_at=appointment.created_at,
        customer_name=customer.name if customer is not None else None,
        service_name=service.name if service is not None else None,
        worker_name=worker.name if worker is not None else None,
        confirmed_at=appointment.confirmed_at,
        cancelled_at=appointment.cancelled_at,
        notes=appointment.notes,
    )


def _view_query(tenant_id: uuid.UUID):
    return (
        select(Appointment, Service, Customer, Worker)
        .join(Service, Service.id == Appointment.service_id, isouter=True)
        .join(Customer, Customer.id == Appointment.customer_id, isouter=True)
        .join(Worker, Worker.id == Appointment.worker_id, isouter=True)
        .where(Appointment.tenant_id == tenant_id)
    )


def load_appointment_view(
    session: Session,
    tenant_id: uuid.UUID,
    appointment_id: uuid.UUID,
) -> Optional[AppointmentView]:
    row = session.exec(
        _view_query(tenant_id)
        .where(Appointment.id == appointment_id)
        .execution_options(populate_existing=True)
    ).first()
    if row is None:
        return None
    return build_appointment_view(*row)


def list_appointment_views(
    session: Session,
    tenant_id: uuid.UUID,
    worker_id: Optional[uuid.UUID] = None,
    customer_id: Optional[uuid.UUID] = None,
    status: Optional[AppointmentStatus] = None,
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[AppointmentView]:
    query = _view_query(tenant_id)
    if worker_id is not None:
        query = query.where(Appointment.worker_id == worker_id)
    if customer_id is not None:
        query = query.where(Appointment.customer_id == customer_id)
    if status is not None:
        query = query.where(Appointment.status == status)
    if start_from is not None:
        query = query.where(Appointment.starts_at >= start_from)
    if start_to is not None:
        query = query.where(Appointment.starts_at < start_to)

    rows = session.exec(
        query.order_by(Appointment.starts_at).offset(offset).limit(limit)
    ).all()
    return [build_appointment_view(*row) for row in rows]
