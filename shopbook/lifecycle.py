# shopbook/lifecycle.py

r"""
Appointment status lifecycle.

    scheduled -> confirmed -> in_progress -> completed
         \            \            \
          +------------+------------+--> cancelled | no_show

Forward moves may skip states; completed, cancelled and no_show are final.
Status writes are conditional on the status that was read, so two racing
requests cannot both apply a transition (and its side effects).
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .availability import AvailabilityService
from .booking import BookingResult, ConflictPolicy
from .core import local_date, to_utc_naive, utcnow
from .errors import ConflictError, NotFoundError, PersistenceError, TransitionError, ValidationError
from .models import Appointment, Client, DailyAnalytics, Shop, Staff
from .notifications import STATUS_CHANGED, notify_safely
from .notifier import Notifier

logger = logging.getLogger(__name__)


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"


FORWARD_PATH = (
    AppointmentStatus.scheduled,
    AppointmentStatus.confirmed,
    AppointmentStatus.in_progress,
    AppointmentStatus.completed,
)
TERMINAL = {AppointmentStatus.completed, AppointmentStatus.cancelled, AppointmentStatus.no_show}
NOTIFY_ON = {AppointmentStatus.confirmed, AppointmentStatus.cancelled}

KEEP_STAFF = object()


def parse_status(value) -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in AppointmentStatus)
        raise ValidationError(f"Unknown status '{value}' (expected one of: {allowed})", field="status")


def can_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    if current in TERMINAL:
        return False
    if new in (AppointmentStatus.cancelled, AppointmentStatus.no_show):
        return True
    return FORWARD_PATH.index(new) > FORWARD_PATH.index(current)


class AppointmentLifecycle:
    def __init__(self, session: Session, notifier: Notifier, availability: Optional[AvailabilityService] = None):
        self.session = session
        self.notifier = notifier
        self.availability = availability or AvailabilityService(session)

    def get(self, appointment_id: str, shop_id: Optional[str] = None, include_deleted: bool = False) -> Appointment:
        appointment = self.session.get(Appointment, appointment_id)
        if appointment is None or (shop_id and appointment.shop_id != shop_id):
            raise NotFoundError("Appointment not found")
        if appointment.deleted_at is not None and not include_deleted:
            raise NotFoundError("Appointment not found")
        return appointment

    def transition(
        self,
        appointment_id: str,
        new_status,
        notes: Optional[str] = None,
        shop_id: Optional[str] = None,
    ) -> Appointment:
        new_status = parse_status(new_status)
        appointment = self.get(appointment_id, shop_id)
        current = parse_status(appointment.status)

        # Re-applying the current status is a retry: nothing to redo
        if new_status == current:
            if notes is not None and notes != appointment.notes:
                self._write(appointment, current, {"notes": notes})
                self._commit(appointment)
            return appointment

        if not can_transition(current, new_status):
            raise TransitionError(
                f"Cannot change status from '{current.value}' to '{new_status.value}'", field="status"
            )

        values = {"status": new_status.value}
        if notes is not None:
            values["notes"] = notes
        if new_status == AppointmentStatus.completed and appointment.payment_status == "pending":
            values["payment_status"] = "paid"

        self._write(appointment, current, values)
        if new_status == AppointmentStatus.completed:
            self._record_completion(appointment)
        self._commit(appointment)

        logger.info("Appointment %s: %s -> %s", appointment.id, current.value, new_status.value)

        if new_status in NOTIFY_ON:
            notify_safely(
                self.session, self.notifier, appointment, STATUS_CHANGED, {"previous_status": current.value}
            )
        return appointment

    def soft_delete(self, appointment_id: str, shop_id: Optional[str] = None) -> Appointment:
        appointment = self.get(appointment_id, shop_id, include_deleted=True)
        if appointment.deleted_at is not None:
            return appointment

        current = parse_status(appointment.status)
        if current in (AppointmentStatus.completed, AppointmentStatus.no_show):
            raise TransitionError(f"Cannot delete a {current.value} appointment", field="status")

        self._write(
            appointment,
            current,
            {"status": AppointmentStatus.cancelled.value, "deleted_at": utcnow()},
        )
        self._commit(appointment)
        logger.info("Appointment %s soft-deleted", appointment.id)

        if current != AppointmentStatus.cancelled:
            notify_safely(
                self.session, self.notifier, appointment, STATUS_CHANGED, {"previous_status": current.value}
            )
        return appointment

    def reschedule(
        self,
        appointment_id: str,
        start: datetime,
        duration_minutes: Optional[int] = None,
        staff_id=KEEP_STAFF,
        policy: ConflictPolicy = ConflictPolicy.warn,
        shop_id: Optional[str] = None,
    ) -> BookingResult:
        policy = ConflictPolicy(policy)
        appointment = self.get(appointment_id, shop_id)
        current = parse_status(appointment.status)
        if current in TERMINAL:
            raise TransitionError(f"Cannot reschedule a {current.value} appointment", field="status")
        if start is None:
            raise ValidationError("start is required", field="start")
        if duration_minutes is not None and duration_minutes <= 0:
            raise ValidationError("duration_minutes must be positive", field="duration_minutes")

        new_staff = appointment.staff_id if staff_id is KEEP_STAFF else (staff_id or None)
        if new_staff:
            staff = self.session.get(Staff, new_staff)
            if staff is None or staff.shop_id != appointment.shop_id or not staff.is_active:
                raise NotFoundError("Staff member not found")

        new_start = to_utc_naive(start)
        duration = duration_minutes or appointment.duration
        new_end = new_start + timedelta(minutes=duration)

        if policy == ConflictPolicy.reject:
            self.session.exec(select(Shop).where(Shop.id == appointment.shop_id).with_for_update()).first()

        check = self.availability.check_slot(
            appointment.shop_id, new_start, new_end, staff_id=new_staff, exclude_appointment_id=appointment.id
        )
        if policy == ConflictPolicy.reject and not check.is_available:
            self.session.rollback()
            first = check.conflicts[0]
            raise ConflictError(
                "Requested time conflicts with an existing appointment",
                appointment_id=first.id,
                start=first.start,
                end=first.end,
            )

        # reminders belong to the old time
        self._write(
            appointment,
            current,
            {
                "start_time": new_start,
                "end_time": new_end,
                "duration": duration,
                "staff_id": new_staff,
                "reminder_24h_sent_at": None,
                "reminder_2h_sent_at": None,
                "reminder_24h_claimed_at": None,
                "reminder_2h_claimed_at": None,
            },
        )
        self._commit(appointment)
        logger.info("Appointment %s rescheduled to %s (staff=%s)", appointment.id, new_start, new_staff)

        return BookingResult(
            appointment=appointment,
            has_conflicts=check.conflict_count > 0,
            conflicts=check.conflicts,
        )

    def cancel_by_reference(self, phone: str, reference: str) -> Appointment:
        """Cancel a scheduled guest appointment from an SMS reply ("CANCEL <reference>")."""
        reference = (reference or "").strip().lower()
        if len(reference) < 6:
            raise ValidationError("reference must be at least 6 characters", field="reference")
        if not phone:
            raise ValidationError("phone is required", field="phone")

        candidates = self.session.exec(
            select(Appointment)
            .where(Appointment.guest_phone == phone)
            .where(Appointment.status == AppointmentStatus.scheduled.value)
            .where(Appointment.deleted_at.is_(None))
        ).all()
        matches = [a for a in candidates if a.id.lower().startswith(reference)]

        if not matches:
            raise NotFoundError("Appointment not found or already cancelled")
        if len(matches) > 1:
            raise ValidationError("reference matches more than one appointment", field="reference")

        return self.transition(matches[0].id, AppointmentStatus.cancelled)

    def _write(self, appointment: Appointment, expected: AppointmentStatus, values: dict):
        values = dict(values, updated_at=utcnow())
        result = self.session.exec(
            update(Appointment)
            .where(Appointment.id == appointment.id)
            .where(Appointment.status == expected.value)
            .values(**values)
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise TransitionError("Appointment was changed by another request, reload and retry", field="status")

    def _record_completion(self, appointment: Appointment):
        price = appointment.price

        # 1) Client stats, registered clients only
        if appointment.client_id:
            self.session.exec(
                update(Client)
                .where(Client.id == appointment.client_id)
                .values(
                    total_visits=Client.total_visits + 1,
                    total_spent=Client.total_spent + price,
                    last_visit=appointment.end_time,
                )
            )

        # 2) Daily analytics upsert, keyed by the shop's local date
        shop = self.session.get(Shop, appointment.shop_id)
        day = local_date(appointment.start_time, shop.timezone if shop else None)
        row = self.session.exec(
            select(DailyAnalytics)
            .where(DailyAnalytics.shop_id == appointment.shop_id)
            .where(DailyAnalytics.date == day)
            .with_for_update()
        ).first()

        if row is None:
            self.session.add(
                DailyAnalytics(
                    shop_id=appointment.shop_id,
                    date=day,
                    total_revenue=price,
                    completed_appointments=1,
                    total_appointments=1,
                )
            )
        else:
            self.session.exec(
                update(DailyAnalytics)
                .where(DailyAnalytics.id == row.id)
                .values(
                    total_revenue=DailyAnalytics.total_revenue + price,
                    completed_appointments=DailyAnalytics.completed_appointments + 1,
                    total_appointments=DailyAnalytics.total_appointments + 1,
                )
            )

    def _commit(self, appointment: Appointment):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"❌ Failed to update appointment {appointment.id}: {e}")
            raise PersistenceError("Failed to update appointment") from e
        self.session.refresh(appointment)
