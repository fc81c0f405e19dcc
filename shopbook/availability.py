# shopbook/availability.py

"""
Availability Service

Builds the bookable slot grid for a shop's business day and answers point
checks for a single proposed interval, considering:
- business hours per weekday in the shop's timezone
- existing appointments that are neither cancelled nor soft-deleted
- the "any available" staff policy and per-slot capacity
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import or_
from sqlmodel import Session, select

from . import config
from .core import generate_slots, overlaps, resolve_business_day
from .errors import NotFoundError, ValidationError
from .models import Appointment, Service, Shop

logger = logging.getLogger(__name__)


class AnyStaffPolicy(str, Enum):
    # unassigned bookings take capacity from every staff member,
    # and an "any staff" query sees the whole shop
    shared = "shared"
    # unassigned bookings only compete with other unassigned bookings
    isolated = "isolated"


@dataclass
class ConflictRef:
    id: str
    staff_id: Optional[str]
    start: datetime
    end: datetime


@dataclass
class Slot:
    start: datetime
    end: datetime
    is_available: bool
    conflict_count: int
    capacity: int
    conflicts: List[ConflictRef] = field(default_factory=list)


@dataclass
class AvailabilitySummary:
    total_slots: int
    available_slots: int
    booked_slots: int
    utilization_rate: int


@dataclass
class Availability:
    shop_id: str
    date: date
    staff_id: Optional[str]
    service_duration: int
    slots: List[Slot]
    summary: AvailabilitySummary


@dataclass
class SlotCheck:
    is_available: bool
    conflict_count: int
    capacity: int
    conflicts: List[ConflictRef] = field(default_factory=list)


def summarize(slots: List[Slot]) -> AvailabilitySummary:
    total = len(slots)
    available = sum(1 for s in slots if s.is_available)
    booked = total - available
    rate = round(booked / total * 100) if total else 0
    return AvailabilitySummary(
        total_slots=total,
        available_slots=available,
        booked_slots=booked,
        utilization_rate=rate,
    )


class AvailabilityService:
    def __init__(
        self,
        session: Session,
        any_staff_policy: AnyStaffPolicy = AnyStaffPolicy.shared,
        granularity_minutes: Optional[int] = None,
        default_duration_minutes: Optional[int] = None,
        capacity: Optional[int] = None,
    ):
        self.session = session
        self.any_staff_policy = AnyStaffPolicy(any_staff_policy)
        self.granularity_minutes = granularity_minutes or config.SLOT_GRANULARITY_MINUTES
        self.default_duration_minutes = default_duration_minutes or config.DEFAULT_SERVICE_DURATION_MINUTES
        self.capacity = capacity or config.SLOT_CAPACITY

    def get_shop(self, shop_id: Optional[str]) -> Shop:
        if not shop_id:
            raise ValidationError("shop_id is required", field="shop_id")
        shop = self.session.get(Shop, shop_id)
        if shop is None:
            raise NotFoundError("Shop not found")
        return shop

    def service_duration(self, shop_id: str, service_id: Optional[str]) -> int:
        if not service_id:
            return self.default_duration_minutes
        service = self.session.get(Service, service_id)
        if service is None or service.shop_id != shop_id:
            raise NotFoundError("Service not found")
        return service.duration

    def load_appointments(
        self,
        shop_id: str,
        window_start: datetime,
        window_end: datetime,
        staff_id: Optional[str] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[Appointment]:
        """Live appointments of the shop touching the window, narrowed by the staff policy."""
        stmt = (
            select(Appointment)
            .where(Appointment.shop_id == shop_id)
            .where(Appointment.status != "cancelled")
            .where(Appointment.deleted_at.is_(None))
            # index pre-filter only; overlaps() makes the per-slot decision
            .where(Appointment.start_time < window_end)
            .where(Appointment.end_time > window_start)
        )

        if self.any_staff_policy == AnyStaffPolicy.shared:
            if staff_id:
                stmt = stmt.where(or_(Appointment.staff_id == staff_id, Appointment.staff_id.is_(None)))
        else:
            if staff_id:
                stmt = stmt.where(Appointment.staff_id == staff_id)
            else:
                stmt = stmt.where(Appointment.staff_id.is_(None))

        if exclude_appointment_id:
            stmt = stmt.where(Appointment.id != exclude_appointment_id)

        stmt = stmt.order_by(Appointment.start_time, Appointment.id)
        return list(self.session.exec(stmt).all())

    def get_availability(
        self,
        shop_id: Optional[str],
        day: date,
        service_id: Optional[str] = None,
        staff_id: Optional[str] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> Availability:
        # 1) Validate scope before touching anything else
        if day is None:
            raise ValidationError("date is required", field="date")
        shop = self.get_shop(shop_id)

        # 2) Size slots from the service
        duration = self.service_duration(shop.id, service_id)

        # 3) Resolve opening hours for that local date
        window = resolve_business_day(
            shop.timezone, shop.business_hours, day, config.DEFAULT_OPEN_TIME, config.DEFAULT_CLOSE_TIME
        )
        if window is None:
            return Availability(shop.id, day, staff_id, duration, [], summarize([]))
        day_open, day_close = window

        # 4) Existing bookings for the day
        appointments = self.load_appointments(shop.id, day_open, day_close, staff_id, exclude_appointment_id)

        # 5) Annotate every candidate slot
        slots = []
        for start, end in generate_slots(day_open, day_close, duration, self.granularity_minutes):
            conflicts = [
                ConflictRef(a.id, a.staff_id, a.start_time, a.end_time)
                for a in appointments
                if overlaps(start, end, a.start_time, a.end_time)
            ]
            slots.append(
                Slot(
                    start=start,
                    end=end,
                    is_available=len(conflicts) < self.capacity,
                    conflict_count=len(conflicts),
                    capacity=self.capacity,
                    conflicts=conflicts,
                )
            )

        summary = summarize(slots)
        logger.debug(
            "Availability shop=%s date=%s staff=%s: %s/%s slots free",
            shop.id, day, staff_id, summary.available_slots, summary.total_slots,
        )
        return Availability(shop.id, day, staff_id, duration, slots, summary)

    def check_slot(
        self,
        shop_id: Optional[str],
        start: datetime,
        end: datetime,
        staff_id: Optional[str] = None,
        exclude_appointment_id: Optional[str] = None,
        capacity: Optional[int] = None,
    ) -> SlotCheck:
        if not shop_id:
            raise ValidationError("shop_id is required", field="shop_id")
        if start is None or end is None:
            raise ValidationError("start and end are required", field="start")
        if not start < end:
            raise ValidationError("start must be before end", field="end")
        if capacity is None:
            capacity = self.capacity
        if capacity < 1:
            raise ValidationError("capacity must be at least 1", field="capacity")

        appointments = self.load_appointments(shop_id, start, end, staff_id, exclude_appointment_id)
        conflicts = [
            ConflictRef(a.id, a.staff_id, a.start_time, a.end_time)
            for a in appointments
            if overlaps(start, end, a.start_time, a.end_time)
        ]
        return SlotCheck(
            is_available=len(conflicts) < capacity,
            conflict_count=len(conflicts),
            capacity=capacity,
            conflicts=conflicts,
        )
