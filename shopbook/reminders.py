# shopbook/reminders.py

"""
Reminder Scheduler

Batch job run by an external periodic trigger. Finds scheduled appointments
entering a reminder window and sends one reminder per window:
- 24-hour window: start between 23 and 24 hours from now
- 2-hour window: start between 1.5 and 2 hours from now

Each appointment is claimed with a conditional update before anything is
sent, so overlapping runs cannot both pick it. The "sent" marker is only
written after a channel accepted the message; a failed send releases the
claim for the next run. Claims left behind by a run that died mid-way expire
after the claim TTL.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import or_, update
from sqlmodel import Session, select

from . import config
from .core import utcnow
from .errors import NotificationDispatchError
from .models import Appointment
from .notifications import REMINDER_2_HOUR, REMINDER_24_HOUR, notify_appointment, resolve_contact
from .notifier import Notifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderWindow:
    name: str
    notification: str
    after: timedelta  # exclusive
    until: timedelta  # inclusive
    sent_column: str
    claim_column: str

    @property
    def sent(self):
        return getattr(Appointment, self.sent_column)

    @property
    def claim(self):
        return getattr(Appointment, self.claim_column)


WINDOW_24_HOUR = ReminderWindow(
    "24_hour", REMINDER_24_HOUR, timedelta(hours=23), timedelta(hours=24),
    "reminder_24h_sent_at", "reminder_24h_claimed_at",
)
WINDOW_2_HOUR = ReminderWindow(
    "2_hour", REMINDER_2_HOUR, timedelta(hours=1, minutes=30), timedelta(hours=2),
    "reminder_2h_sent_at", "reminder_2h_claimed_at",
)
WINDOWS = (WINDOW_24_HOUR, WINDOW_2_HOUR)


@dataclass
class ReminderRunResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    sent_24_hour: int = 0
    sent_2_hour: int = 0
    skipped: int = 0
    truncated: bool = False
    errors: List[str] = field(default_factory=list)


class ReminderScheduler:
    def __init__(
        self,
        session: Session,
        notifier: Notifier,
        send_delay_seconds: Optional[float] = None,
        time_budget_seconds: Optional[float] = None,
        claim_ttl_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.session = session
        self.notifier = notifier
        self.send_delay_seconds = (
            config.REMINDER_SEND_DELAY_SECONDS if send_delay_seconds is None else send_delay_seconds
        )
        self.time_budget_seconds = (
            config.REMINDER_TIME_BUDGET_SECONDS if time_budget_seconds is None else time_budget_seconds
        )
        self.claim_ttl = timedelta(
            minutes=config.REMINDER_CLAIM_TTL_MINUTES if claim_ttl_minutes is None else claim_ttl_minutes
        )
        self.clock = clock
        self.sleep = sleep
        self.monotonic = monotonic

    def run(self, now: Optional[datetime] = None) -> ReminderRunResult:
        now = now or self.clock()
        result = ReminderRunResult()
        started = self.monotonic()
        dispatched = 0

        logger.info("🔔 Starting reminder run at %s", now.isoformat())

        for window in WINDOWS:
            for appointment_id in self.due(window, now):
                if self.monotonic() - started >= self.time_budget_seconds:
                    result.truncated = True
                    logger.warning("Reminder run stopped early: time budget of %ss used", self.time_budget_seconds)
                    break

                if not self.claim(appointment_id, window, now):
                    result.skipped += 1
                    continue

                # throttle between outbound calls
                if dispatched and self.send_delay_seconds > 0:
                    self.sleep(self.send_delay_seconds)
                dispatched += 1

                result.processed += 1
                self._send(appointment_id, window, result)

            if result.truncated:
                break

        logger.info(
            "🔔 Reminder run finished: processed=%s sent_24_hour=%s sent_2_hour=%s failed=%s",
            result.processed, result.sent_24_hour, result.sent_2_hour, result.failed,
        )
        return result

    def due(self, window: ReminderWindow, now: datetime) -> List[str]:
        stale_before = now - self.claim_ttl
        stmt = (
            select(Appointment.id)
            .where(Appointment.status == "scheduled")
            .where(Appointment.deleted_at.is_(None))
            .where(Appointment.start_time > now + window.after)
            .where(Appointment.start_time <= now + window.until)
            .where(window.sent.is_(None))
            .where(or_(window.claim.is_(None), window.claim < stale_before))
            .order_by(Appointment.start_time)
        )
        ids = list(self.session.exec(stmt).all())
        logger.info("Found %s appointments needing %s reminders", len(ids), window.name)
        return ids

    def claim(self, appointment_id: str, window: ReminderWindow, now: datetime) -> bool:
        stale_before = now - self.claim_ttl
        claimed = self.session.exec(
            update(Appointment)
            .where(Appointment.id == appointment_id)
            .where(Appointment.status == "scheduled")
            .where(Appointment.deleted_at.is_(None))
            .where(window.sent.is_(None))
            .where(or_(window.claim.is_(None), window.claim < stale_before))
            .values({window.claim_column: self.clock()})
        ).rowcount == 1
        self.session.commit()
        if not claimed:
            logger.info("Appointment %s %s reminder already claimed elsewhere", appointment_id, window.name)
        return claimed

    def _send(self, appointment_id: str, window: ReminderWindow, result: ReminderRunResult):
        try:
            appointment = self.session.get(Appointment, appointment_id)
            contact = resolve_contact(self.session, appointment)
            if not contact.email and not contact.phone:
                raise NotificationDispatchError("no email or phone number")

            outcome = notify_appointment(self.notifier, appointment, contact, window.notification)
            if not (outcome["email_sent"] or outcome["sms_sent"]):
                reasons = "; ".join(e for e in (outcome["email_error"], outcome["sms_error"]) if e)
                raise NotificationDispatchError(reasons or "no channel accepted the reminder")

            self._finish(appointment_id, window, {window.sent_column: self.clock(), window.claim_column: None})
            result.sent += 1
            if window is WINDOW_24_HOUR:
                result.sent_24_hour += 1
            else:
                result.sent_2_hour += 1

            # delivered on one channel, note the other one
            for channel in ("email", "sms"):
                if outcome[f"{channel}_error"]:
                    result.errors.append(f"{window.name}-{appointment_id}: {channel} failed: {outcome[f'{channel}_error']}")

            logger.info(f"✅ {window.name} reminder sent for appointment {appointment_id}")

        except Exception as e:  # noqa: BLE001 - one bad appointment must not stop the batch
            self.session.rollback()
            result.failed += 1
            result.errors.append(f"{window.name}-{appointment_id}: {e}")
            logger.error(f"❌ Failed to send {window.name} reminder for appointment {appointment_id}: {e}")
            try:
                self._finish(appointment_id, window, {window.claim_column: None})
            except Exception as release_error:  # noqa: BLE001
                self.session.rollback()
                logger.error(f"❌ Could not release claim on appointment {appointment_id}: {release_error}")

    def _finish(self, appointment_id: str, window: ReminderWindow, values: dict):
        self.session.exec(
            update(Appointment)
            .where(Appointment.id == appointment_id)
            .values(dict(values, updated_at=self.clock()))
        )
        self.session.commit()
