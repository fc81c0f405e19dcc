# shopbook/deps.py

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlmodel import Session

from . import config
from .auth import StaffContext
from .availability import AnyStaffPolicy, AvailabilityService
from .booking import BookingGuard
from .db import get_session
from .lifecycle import AppointmentLifecycle
from .notifier import Notifier
from .reminders import ReminderScheduler


def require_role(staff: StaffContext, *roles: str):
    if staff.role.value not in roles:
        raise HTTPException(status_code=403, detail="Forbidden")


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_availability_service(request: Request, session: Session = Depends(get_session)) -> AvailabilityService:
    return AvailabilityService(session, any_staff_policy=AnyStaffPolicy(request.app.state.any_staff_policy))


def get_booking_guard(
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
    availability: AvailabilityService = Depends(get_availability_service),
) -> BookingGuard:
    return BookingGuard(session, notifier, availability)


def get_lifecycle(
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
    availability: AvailabilityService = Depends(get_availability_service),
) -> AppointmentLifecycle:
    return AppointmentLifecycle(session, notifier, availability)


def get_reminder_scheduler(
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
) -> ReminderScheduler:
    return ReminderScheduler(session, notifier)


def require_cron_secret(authorization: Optional[str] = Header(default=None)):
    secret = config.CRON_SECRET
    if not secret:
        raise HTTPException(status_code=503, detail="Reminder trigger is not configured")
    expected = f"Bearer {secret}"
    if authorization is None or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")
