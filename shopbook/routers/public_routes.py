# shopbook/routers/public_routes.py

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends

from shopbook.availability import AvailabilityService
from shopbook.booking import BookingGuard, BookingRequest, ConflictPolicy
from shopbook.deps import get_availability_service, get_booking_guard, get_lifecycle
from shopbook.lifecycle import AppointmentLifecycle
from shopbook.schemas import (
    AppointmentEnvelope,
    AvailabilityResponse,
    GuestAppointmentCreate,
    GuestBookingResponse,
    SmsCancelRequest,
)

router = APIRouter(
    prefix="/public",
    tags=["public"],
)


@router.get("/shops/{shop_id}/availability", response_model=AvailabilityResponse)
def public_availability(
    shop_id: str,
    date: date,
    service_id: Optional[str] = None,
    staff_id: Optional[str] = None,
    availability: AvailabilityService = Depends(get_availability_service),
):
    result = availability.get_availability(shop_id, date, service_id=service_id, staff_id=staff_id)
    return AvailabilityResponse.model_validate(result, from_attributes=True)


# Guests can never book over an existing appointment
@router.post("/appointments", response_model=GuestBookingResponse, status_code=201)
def guest_create_appointment(
    appt: GuestAppointmentCreate,
    guard: BookingGuard = Depends(get_booking_guard),
):
    request = BookingRequest(
        shop_id=appt.shop_id,
        service_id=appt.service_id,
        start=appt.start,
        duration_minutes=appt.duration_minutes,
        staff_id=appt.staff_id,
        guest_name=appt.guest_name,
        guest_email=appt.guest_email,
        guest_phone=appt.guest_phone,
        notes=appt.notes,
    )
    result = guard.create_appointment(request, ConflictPolicy.reject, enforce_hours=True)
    return {"appointment": result.appointment}


@router.post("/appointments/cancel", response_model=AppointmentEnvelope)
def sms_cancel(
    body: SmsCancelRequest,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    appointment = lifecycle.cancel_by_reference(body.phone, body.reference)
    return {"appointment": appointment}
