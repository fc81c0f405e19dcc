# shopbook/routers/availability_routes.py

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends

from shopbook.auth import StaffContext, get_current_staff
from shopbook.availability import AvailabilityService
from shopbook.deps import get_availability_service
from shopbook.schemas import AvailabilityResponse, SlotCheckRequest, SlotCheckResponse

router = APIRouter(
    prefix="/availability",
    tags=["availability"],
)


@router.get("", response_model=AvailabilityResponse)
def shop_availability(
    date: date,
    service_id: Optional[str] = None,
    staff_id: Optional[str] = None,
    exclude_appointment_id: Optional[str] = None,
    availability: AvailabilityService = Depends(get_availability_service),
    staff: StaffContext = Depends(get_current_staff),
):
    result = availability.get_availability(
        staff.shop_id,
        date,
        service_id=service_id,
        staff_id=staff_id,
        exclude_appointment_id=exclude_appointment_id,
    )
    return AvailabilityResponse.model_validate(result, from_attributes=True)


@router.post("/check", response_model=SlotCheckResponse)
def check_slot(
    body: SlotCheckRequest,
    availability: AvailabilityService = Depends(get_availability_service),
    staff: StaffContext = Depends(get_current_staff),
):
    result = availability.check_slot(
        staff.shop_id,
        body.start,
        body.end,
        staff_id=body.staff_id,
        exclude_appointment_id=body.exclude_appointment_id,
        capacity=body.capacity,
    )
    return SlotCheckResponse.model_validate(result, from_attributes=True)
