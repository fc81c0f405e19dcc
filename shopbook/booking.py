# shopbook/booking.py

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .availability import AvailabilityService, ConflictRef
from . import config
from .core import local_date, resolve_business_day, to_utc_naive, utcnow
from .errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from .models import Appointment, Client, Service, Shop, Staff
from .notifications import BOOKING_CONFIRMATION, notify_safely
from .notifier import Notifier

logger = logging.getLogger(__name__)


class ConflictPolicy(str, Enum):
    warn = "warn"  # book anyway, report the conflict
    reject = "reject"  # refuse to book over an existing appointment


@dataclass
class BookingRequest:
    shop_id: Optional[str]
    service_id: Optional[str]
    start: Optional[datetime]
    duration_minutes: Optional[int] = None
    staff_id: Optional[str] = None
    client_id: Optional[str] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    notes: Optional[str] = None
    price: Optional[Decimal] = None

    def validate(self):
        if not self.shop_id:
            raise ValidationError("shop_id is required", field="shop_id")
        if not self.service_id:
            raise ValidationError("service_id is required", field="service_id")
        if self.start is None:
            raise ValidationError("start is required", field="start")
        if self.duration_minutes is not None and self.duration_minutes <= 0:
            raise ValidationError("duration_minutes must be positive", field="duration_minutes")

        has_guest = any([self.guest_name, self.guest_email, self.guest_phone])
        if self.client_id and has_guest:
            raise ValidationError("Provide either client_id or guest details, not both", field="client_id")
        if not self.client_id:
            if not self.guest_name:
                raise ValidationError("guest_name is required for guest bookings", field="guest_name")
            if not (self.guest_email or self.guest_phone):
                raise ValidationError("guest_email or guest_phone is required for guest bookings", field="guest_email")


@dataclass
class BookingResult:
    appointment: Appointment
    has_conflicts: bool
    conflicts: List[ConflictRef] = field(default_factory=list)
    notifications: Optional[dict] = None


class BookingGuard:
    """The only path that inserts appointments."""

    def __init__(self, session: Session, notifier: Notifier, availability: Optional[AvailabilityService] = None):
        self.session = session
        self.notifier = notifier
        self.availability = availability or AvailabilityService(session)

    def create_appointment(
        self,
        request: BookingRequest,
        policy: ConflictPolicy,
        enforce_hours: bool = False,
        notify: bool = True,
    ) -> BookingResult:
        policy = ConflictPolicy(policy)

        # 1) Validate request shape
        request.validate()

        # 2) Resolve scope records
        shop = self.session.get(Shop, request.shop_id)
        if shop is None:
            raise NotFoundError("Shop not found")

        service = self.session.get(Service, request.service_id)
        if service is None or service.shop_id != shop.id or not service.is_active:
            raise NotFoundError("Service not found")

        if request.staff_id:
            staff = self.session.get(Staff, request.staff_id)
            if staff is None or staff.shop_id != shop.id or not staff.is_active:
                raise NotFoundError("Staff member not found")

        if request.client_id:
            client = self.session.get(Client, request.client_id)
            if client is None or client.shop_id != shop.id:
                raise NotFoundError("Client not found")

        # 3) Build appointment interval
        start = to_utc_naive(request.start)
        duration = request.duration_minutes or service.duration
        end = start + timedelta(minutes=duration)

        if enforce_hours:
            self._check_bookable_time(shop, start, end)

        # 4) Serialize competing REJECT bookings of this shop until commit
        if policy == ConflictPolicy.reject:
            self.session.exec(select(Shop).where(Shop.id == shop.id).with_for_update()).first()

        # 5) Final conflict check right before insertion
        check = self.availability.check_slot(shop.id, start, end, staff_id=request.staff_id)
        has_conflicts = check.conflict_count > 0

        if policy == ConflictPolicy.reject and not check.is_available:
            self.session.rollback()
            first = check.conflicts[0]
            logger.info(
                "Booking rejected for shop %s at %s: conflicts with appointment %s", shop.id, start, first.id
            )
            raise ConflictError(
                "Requested time conflicts with an existing appointment",
                appointment_id=first.id,
                start=first.start,
                end=first.end,
            )

        # 6) Create and save appointment
        price = request.price if request.price is not None else service.price
        now = utcnow()
        appointment = Appointment(
            shop_id=shop.id,
            service_id=service.id,
            staff_id=request.staff_id or None,
            client_id=request.client_id or None,
            guest_name=None if request.client_id else request.guest_name,
            guest_email=None if request.client_id else request.guest_email,
            guest_phone=None if request.client_id else request.guest_phone,
            start_time=start,
            end_time=end,
            duration=duration,
            price=price,
            status="scheduled",
            payment_status="pending",
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )

        self.session.add(appointment)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"❌ Failed to store appointment for shop {shop.id}: {e}")
            raise PersistenceError("Failed to store appointment") from e
        self.session.refresh(appointment)

        logger.info(
            "Appointment %s booked (shop=%s staff=%s start=%s policy=%s conflicts=%s)",
            appointment.id, shop.id, appointment.staff_id, start, policy.value, check.conflict_count,
        )

        # 7) Confirmation is best effort
        notifications = None
        if notify:
            notifications = notify_safely(self.session, self.notifier, appointment, BOOKING_CONFIRMATION)

        return BookingResult(
            appointment=appointment,
            has_conflicts=has_conflicts,
            conflicts=check.conflicts,
            notifications=notifications,
        )

    def _check_bookable_time(self, shop: Shop, start: datetime, end: datetime):
        if start < utcnow():
            raise ValidationError("Cannot book an appointment in the past", field="start")

        # hours of the local day the appointment starts on
        window = resolve_business_day(
            shop.timezone,
            shop.business_hours,
            local_date(start, shop.timezone),
            config.DEFAULT_OPEN_TIME,
            config.DEFAULT_CLOSE_TIME,
        )
        if window is None:
            raise ValidationError("The shop is closed that day", field="start")
        day_open, day_close = window
        if start < day_open or end > day_close:
            raise ValidationError("Appointment must be within business hours", field="start")
