"""
Appointment API endpoints: booking, lifecycle transitions and group sessions
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session
from typing import List, Optional
from datetime import date, datetime
import structlog
import uuid

from bookwell.core.database import get_session
from bookwell.core.dependencies import Identity, require_permission
from bookwell.core.errors import BookingFailure
from bookwell.core.permissions import Permission
from bookwell.models import AppointmentStatus
from bookwell.schemas import (
    AppointmentConfirm, AppointmentCreate, AppointmentList, AppointmentReschedule,
    AppointmentResponse, AvailabilityResponse, AvailableSlotResponse,
    ConflictCheckRequest, ConflictCheckResponse,
    GroupSessionResponse, ParticipantJoin, ParticipantResponse
)
from bookwell.services import group_capacity
from bookwell.services.availability import find_available_slots
from bookwell.services.booking import BookingOutcome, BookingRequest, BookingService
from bookwell.services.conflicts import check_conflict
from bookwell.services.time_ranges import to_utc_naive, utcnow

logger = structlog.get_logger(__name__)
router = APIRouter()


def _raise_failure(failure: BookingFailure):
    raise HTTPException(status_code=failure.http_status, detail=failure.to_dict())


def _to_response(outcome: BookingOutcome) -> AppointmentResponse:
    if not outcome.ok:
        _raise_failure(outcome.failure)
    response = AppointmentResponse.model_validate(outcome.appointment)
    return response.model_copy(update={
        "participant_id": outcome.participant_id,
        "participant_status": outcome.participant_status,
    })


def _customer_for(identity: Identity, requested: Optional[uuid.UUID]) -> uuid.UUID:
    """Customers act only for themselves; staff act for anyone in the tenant"""
    if identity.role == "customer":
        if requested is not None and requested != identity.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Customers can only book for themselves"
            )
        return identity.user_id
    if requested is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "missing_field", "message": "customer_id is required", "field": "customer_id"}
        )
    return requested


@router.post("/", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: AppointmentCreate,
    identity: Identity = Depends(require_permission(Permission.APPOINTMENT_BOOK)),
    session: Session = Depends(get_session)
):
    """Book an appointment

    Group services join a live session for the same slot when one exists.
    """
    customer_id = _customer_for(identity, data.customer_id)
    request = BookingRequest(
        customer_id=customer_id,
        service_id=data.service_id,
        worker_id=data.worker_id,
        starts_at=data.starts_at,
        ends_at=data.ends_at,
        status=data.status,
        notes=data.notes,
    )
    # Customers cannot self-confirm
    if identity.role == "customer":
        request.status = None

    outcome = BookingService(session).create_booking(identity.tenant_id, request)
    return _to_response(outcome)


@router.get("/", response_model=AppointmentList)
def list_appointments(
    worker_id: Optional[uuid.UUID] = None,
    customer_id: Optional[uuid.UUID] = None,
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(require_permission(Permission.APPOINTMENT_VIEW)),
    session: Session = Depends(get_session)
):
    """List appointments in the caller's tenant"""
    if identity.role == "customer":
        customer_id = identity.user_id

    views = BookingService(session).list_appointments(
        identity.tenant_id,
        worker_id=worker_id,
        customer_id=customer_id,
        status=status_filter,
        start_from=to_utc_naive(start_from) if start_from else None,
        start_to=to_utc_naive(start_to) if start_to else None,
        limit=limit,
        offset=offset,
    )
    items = [AppointmentResponse.model_validate(view) for view in views]
    return AppointmentList(items=items, count=len(items))


@router.get("/group/available", response_model=List[GroupSessionResponse])
def list_available_group_sessions(
    service_id: uuid.UUID,
    worker_id: Optional[uuid.UUID] = None,
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    identity: Identity = Depends(require_permission(Permission.APPOINTMENT_VIEW)),
    session: Session = Depends(get_session)
):
    """Upcoming group sessions of a service that can still be joined"""
    start_from = to_utc_naive(start_from) if start_from else utcnow()
    sessions = group_capacity.list_open_group_sessions(
        session,
        identity.tenant_id,
        service_id,
        worker_id=worker_id,
        start_from=start_from,
        start_to=to_utc_naive(start_to) if start_to else None,
    )
    return [
        GroupSessionResponse(
            appointment_id=appointment.id,
            worker_id=appointment.worker_id,
            starts_at=appointment.starts_at,
            ends_at=appointment.ends_at,
            current=capacity.current,
            max=capacity.max,
            available=capacity.available,
            is_full=capacity.is_full,
            waitlist=capacity.is_full,
        )
        for appointment, capacity in sessions
    ]


@router.get("/available", response_model=AvailabilityResponse)
def list_available_slots(
    day: date = Query(..., alias="date"),
    service_id: uuid.UUID = Query(...),
    worker_id: Optional[uuid.UUID] = None,
    slot_gap: int = Query(30, ge=5, le=240),
    identity: Identity = Depends(require_permission(Permission.APPOINTMENT_VIEW)),
    session: Session = Depends(get_session)
):
    """Free slots for a service on a given day of the tenant's calendar"""
    failure, slots = find_available_slots(
        session,
        identity.tenant_id,
        service_id,
        day,
        worker_id=worker_id,
        slot_gap=slot_gap,
        now=utcnow(),
    )
    if failure is not None:
        _raise_failure(failure)
    return AvailabilityResponse(
        day=day,
        service_id=service_id,
        slots=[AvailableSlotResponse.model_validate(slot) for slot in slots],
        count=len(slots),
    )


@router.post("/conflicts/check", response_model=ConflictCheckResponse)
def check_appointment_conflict(
    data: ConflictCheckRequest,
    identity: Identity = Depends(require_permission(Permission.APPOINTMENT_BOOK)),
    session: Session = Depends(get_session)
):
    """Report whether a worker is free for a time range"""
    start, end = to_utc_naive(data.starts_at), to_utc_naive(data.ends_at)
    if start >= end:
        _raise_failure(BookingFailure.validation(
            "invalid_time_range", "End time must be after start time", "ends_at"
        ))

    result = check_conflict(
        session,
        identity.tenant_id,
        data.worker_id,
        start,
        end,
        exclude_appointment_id=data.exclude_appointment_id,
        service_id=data.service_id,
    )
    return ConflictCheckResponse(**result.to_dict())


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: uuid.UUID,
    identity: Identity = Depends(require_permission(Permission.APPOINTMENT_VIEW)),
    session: Session = Depends(get_session)
):
    view = BookingService(session).get_appointment(identity.tenant_id, appointment_id)
    if view is None or (identity.role == "customer" and view.customer_id != identity.user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Appointment not found"
        )
    return AppointmentResponse.model_validate(view)


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: uuid.UUID,
    data: AppointmentReschedule,
    identity: Identity = Depends(require_permission(Permission.APPOINTMENT_RESCHEDULE)),
    session: Session = Depends(get_session)
):
    """Move an appointment to a new slot"""
    outcome = BookingService(session).reschedule_appointment(
        identity.tenant_id,
        appointment_id,
        data.starts_at,
        data.ends_at,
        worker_id=data.worker_id,
        expected_version=data.version,
    )
    return _to_response(outcome)


@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: uuid.UUID,
    data: Optional[AppointmentConfirm] = None,
    identity: Identity = Depends(require_permission(Permission.APPOINTMENT_CONFIRM)),
    session: Session = Depends(get_session)
):
    """Confirm a pending appointment"""
    outcome = BookingService(session).confirm_appointment(
        identity.tenant_id,
        appointment_id,
        expected_version=data.version if data else None,
    )
    return _to_response(outcome)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: uuid.UUID,
    identity: Identity = Depends(require_permission(Permission.APPOINTMENT_CANCEL)),
    session: Session = Depends(get_session)
):
    """Cancel an appointment; repeating the call returns the cancelled appointment"""
    service = BookingService(session)
    if identity.role == "customer":
        view = service.get_appointment(identity.tenant_id, appointment_id)
        if view is None or view.customer_id != identity.user_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )

    return _to_response(service.cancel_appointment(identity.tenant_id, appointment_id))


@router.get("/{appointment_id}/participants", response_model=List[ParticipantResponse])
def list_participants(
    appointment_id: uuid.UUID,
    identity: Identity = Depends(require_permission(Permission.GROUP_MANAGE_PARTICIPANTS)),
    session: Session = Depends(get_session)
):
    if BookingService(session).get_appointment(identity.tenant_id, appointment_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Appointment not found"
        )
    participants = group_capacity.list_participants(session, identity.tenant_id, appointment_id)
    return [ParticipantResponse.model_validate(participant) for participant in participants]


@router.post(
    "/{appointment_id}/participants",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED
)
def join_group_appointment(
    appointment_id: uuid.UUID,
    data: Optional[ParticipantJoin] = None,
    identity: Identity = Depends(require_permission(Permission.GROUP_JOIN)),
    session: Session = Depends(get_session)
):
    """Join a group appointment, or its waitlist when full"""
    customer_id = _customer_for(identity, data.customer_id if data else None)
    outcome = BookingService(session).join_group(identity.tenant_id, appointment_id, customer_id)
    return _to_response(outcome)


@router.delete("/{appointment_id}/participants/{customer_id}", response_model=AppointmentResponse)
def leave_group_appointment(
    appointment_id: uuid.UUID,
    customer_id: uuid.UUID,
    identity: Identity = Depends(require_permission(Permission.GROUP_JOIN)),
    session: Session = Depends(get_session)
):
    """Remove a participant; the earliest waitlisted customer takes the seat"""
    _customer_for(identity, customer_id)
    outcome = BookingService(session).leave_group(identity.tenant_id, appointment_id, customer_id)
    return _to_response(outcome)
