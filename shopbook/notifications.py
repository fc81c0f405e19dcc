# shopbook/notifications.py

"""
Appointment notifications over email and SMS.

Both channels are attempted from the same event; a failure on one channel
never prevents the other and never propagates to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlmodel import Session

from .errors import NotificationDispatchError
from .models import Appointment, Client
from .notifier import Notifier

logger = logging.getLogger(__name__)

BOOKING_CONFIRMATION = "booking_confirmation"
STATUS_CHANGED = "status_changed"
REMINDER_24_HOUR = "reminder_24_hour"
REMINDER_2_HOUR = "reminder_2_hour"


@dataclass
class Contact:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


def resolve_contact(session: Session, appointment: Appointment) -> Contact:
    if appointment.client_id:
        client = session.get(Client, appointment.client_id)
        if client is not None:
            return Contact(
                name=f"{client.first_name} {client.last_name}".strip(),
                email=client.email,
                phone=client.phone,
            )
    return Contact(
        name=appointment.guest_name or "Customer",
        email=appointment.guest_email,
        phone=appointment.guest_phone,
    )


def appointment_context(appointment: Appointment, contact: Contact) -> dict:
    return {
        "appointment_id": appointment.id,
        "shop_id": appointment.shop_id,
        "service_id": appointment.service_id,
        "staff_id": appointment.staff_id,
        "customer_name": contact.name,
        "start": appointment.start_time.isoformat(),
        "end": appointment.end_time.isoformat(),
        "duration": appointment.duration,
        "price": str(appointment.price),
        "status": appointment.status,
    }


def notify_appointment(
    notifier: Notifier,
    appointment: Appointment,
    contact: Contact,
    kind: str,
    extra: Optional[dict] = None,
) -> dict:
    """
    Send `kind` to the contact's email and phone.

    Returns a dict with email_sent / sms_sent flags and the per-channel error
    message, if any.
    """
    result = {"email_sent": False, "sms_sent": False, "email_error": None, "sms_error": None}
    context = appointment_context(appointment, contact)
    if extra:
        context.update(extra)

    # Send Email
    if contact.email:
        try:
            notifier.send_email(contact.email, kind, context)
            result["email_sent"] = True
            logger.info(f"✅ {kind} email sent for appointment {appointment.id}")
        except NotificationDispatchError as e:
            result["email_error"] = e.message
            logger.error(f"❌ Failed to send {kind} email for appointment {appointment.id}: {e}")
    else:
        logger.debug(f"⚠️ No email address for {kind} notification to {contact.name}")

    # Send SMS
    if contact.phone:
        try:
            notifier.send_sms(contact.phone, kind, context)
            result["sms_sent"] = True
            logger.info(f"✅ {kind} SMS sent for appointment {appointment.id}")
        except NotificationDispatchError as e:
            result["sms_error"] = e.message
            logger.error(f"❌ Failed to send {kind} SMS for appointment {appointment.id}: {e}")
    else:
        logger.debug(f"⚠️ No phone number for {kind} notification to {contact.name}")

    return result


def notify_safely(session: Session, notifier: Notifier, appointment: Appointment, kind: str, extra=None) -> dict:
    """Fire-and-forget variant for booking and status flows."""
    try:
        contact = resolve_contact(session, appointment)
        return notify_appointment(notifier, appointment, contact, kind, extra)
    except Exception as e:  # noqa: BLE001 - a notification must never undo the operation
        logger.error(f"❌ {kind} notification for appointment {appointment.id} aborted: {e}")
        return {"email_sent": False, "sms_sent": False, "email_error": str(e), "sms_error": str(e)}
