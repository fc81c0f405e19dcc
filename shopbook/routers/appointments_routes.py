# shopbook/routers/appointments_routes.py

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from shopbook.auth import StaffContext, get_current_staff
from shopbook.booking import BookingGuard, BookingRequest, ConflictPolicy
from shopbook.core import to_utc_naive
from shopbook.db import get_session
from shopbook.deps import get_booking_guard, get_lifecycle, require_role
from shopbook.lifecycle import KEEP_STAFF, AppointmentLifecycle, AppointmentStatus
from shopbook.models import Appointment
from shopbook.schemas import (
    AppointmentCreate,
    AppointmentEnvelope,
    AppointmentPublic,
    BookingResponse,
    DeleteResponse,
    RescheduleRequest,
    StaffRole,
    StatusUpdate,
)

router = APIRouter(
    prefix="/appointments",
    tags=["appointments"],
)


@router.get("", response_model=List[AppointmentPublic])
def list_appointments(
    start: datetime,
    end: datetime,
    staff_id: Optional[str] = None,
    status: Optional[str] = None,
    session: Session = Depends(get_session),
    staff: StaffContext = Depends(get_current_staff),
):
    start, end = to_utc_naive(start), to_utc_naive(end)
    if start >= end:
        raise HTTPException(status_code=422, detail="start must be before end")

    stmt = (
        select(Appointment)
        .where(Appointment.shop_id == staff.shop_id)
        .where(Appointment.deleted_at.is_(None))
        .where(Appointment.start_time >= start)
        .where(Appointment.start_time < end)
    )
    if staff_id is not None:
        stmt = stmt.where(Appointment.staff_id == staff_id)
    if status is not None:
        if status not in {s.value for s in AppointmentStatus}:
            raise HTTPException(status_code=422, detail=f"Unknown status '{status}'")
        stmt = stmt.where(Appointment.status == status)

    stmt = stmt.order_by(Appointment.start_time)
    return session.exec(stmt).all()


# Staff bookings are never blocked by a conflict, the staff member sees it instead
@router.post("", response_model=BookingResponse, status_code=201)
def create_appointment(
    appt: AppointmentCreate,
    guard: BookingGuard = Depends(get_booking_guard),
    staff: StaffContext = Depends(get_current_staff),
):
    request = BookingRequest(
        shop_id=staff.shop_id,
        service_id=appt.service_id,
        start=appt.start,
        duration_minutes=appt.duration_minutes,
        staff_id=appt.staff_id,
        client_id=appt.client_id,
        notes=appt.notes,
    )
    result = guard.create_appointment(request, ConflictPolicy.warn)
    return {
        "appointment": result.appointment,
        "has_conflicts": result.has_conflicts,
        "conflicts": result.conflicts,
    }


@router.patch("/{appointment_id}/status", response_model=AppointmentEnvelope)
def update_status(
    appointment_id: str,
    update: StatusUpdate,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    staff: StaffContext = Depends(get_current_staff),
):
    appointment = lifecycle.transition(appointment_id, update.status, notes=update.notes, shop_id=staff.shop_id)
    return {"appointment": appointment}


@router.patch("/{appointment_id}/reschedule", response_model=BookingResponse)
def reschedule(
    appointment_id: str,
    body: RescheduleRequest,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    staff: StaffContext = Depends(get_current_staff),
):
    result = lifecycle.reschedule(
        appointment_id,
        body.start,
        duration_minutes=body.duration_minutes,
        staff_id=KEEP_STAFF if body.keep_staff else body.staff_id,
        policy=ConflictPolicy.warn,
        shop_id=staff.shop_id,
    )
    return {
        "appointment": result.appointment,
        "has_conflicts": result.has_conflicts,
        "conflicts": result.conflicts,
    }


@router.delete("/{appointment_id}", response_model=DeleteResponse)
def delete_appointment(
    appointment_id: str,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    staff: StaffContext = Depends(get_current_staff),
):
    require_role(staff, StaffRole.owner.value, StaffRole.manager.value)
    appointment = lifecycle.soft_delete(appointment_id, shop_id=staff.shop_id)
    return {"success": True, "message": "Appointment deleted successfully", "appointment": appointment}
