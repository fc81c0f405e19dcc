# shopbook/schemas.py

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core import to_utc_naive


class StaffRole(str, Enum):
    owner = "owner"
    manager = "manager"
    barber = "barber"


class ConflictPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    staff_id: Optional[str] = None
    start: datetime
    end: datetime


class SlotPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: datetime
    end: datetime
    is_available: bool
    conflict_count: int
    capacity: int
    conflicts: List[ConflictPublic] = []


class AvailabilitySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_slots: int
    available_slots: int
    booked_slots: int
    utilization_rate: int


class AvailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    shop_id: str
    date: date
    staff_id: Optional[str] = None
    service_duration: int
    slots: List[SlotPublic]
    summary: AvailabilitySummary


class SlotCheckRequest(BaseModel):
    start: datetime
    end: datetime
    staff_id: Optional[str] = None
    exclude_appointment_id: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1)

    @field_validator("start", "end")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return to_utc_naive(value)


class SlotCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_available: bool
    conflict_count: int
    capacity: int
    conflicts: List[ConflictPublic] = []


class AppointmentCreate(BaseModel):
    client_id: str
    service_id: str
    start: datetime
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    staff_id: Optional[str] = None
    notes: Optional[str] = None


class GuestAppointmentCreate(BaseModel):
    shop_id: str
    service_id: str
    start: datetime
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    staff_id: Optional[str] = None
    guest_name: str = Field(min_length=1)
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    notes: Optional[str] = None


class AppointmentPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    shop_id: str
    service_id: str
    staff_id: Optional[str] = None
    client_id: Optional[str] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int
    price: Decimal
    status: str
    payment_status: str
    notes: Optional[str] = None
    reminder_24h_sent_at: Optional[datetime] = None
    reminder_2h_sent_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class BookingResponse(BaseModel):
    appointment: AppointmentPublic
    has_conflicts: bool
    conflicts: List[ConflictPublic] = []


class GuestBookingResponse(BaseModel):
    appointment: AppointmentPublic


class StatusUpdate(BaseModel):
    # plain str so unknown values reach the lifecycle and get its error message
    status: str
    notes: Optional[str] = None


class RescheduleRequest(BaseModel):
    start: datetime
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    staff_id: Optional[str] = None
    keep_staff: bool = True


class AppointmentEnvelope(BaseModel):
    appointment: AppointmentPublic


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    appointment: AppointmentPublic


class SmsCancelRequest(BaseModel):
    phone: str
    reference: str


class ReminderRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    processed: int
    sent_24_hour: int
    sent_2_hour: int
    failed: int
    skipped: int
    truncated: bool
    errors: List[str]
