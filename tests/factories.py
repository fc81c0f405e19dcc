"""
Shared test setup: in-memory database, seed records and a notifier that
records instead of sending.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from sqlmodel import Session

from shopbook.db import create_db_and_tables, make_engine
from shopbook.errors import NotificationDispatchError
from shopbook.models import Appointment, Client, Service, Shop, Staff
from shopbook.notifier import Notifier

# Tuesday, far enough ahead that nothing is "in the past"
DAY = datetime(2030, 1, 15)


def at(hour, minute=0, day=DAY):
    return day + timedelta(hours=hour, minutes=minute)


def make_session():
    engine = make_engine("sqlite://")
    create_db_and_tables(engine)
    return Session(engine)


def _save(session, record):
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def seed_shop(session, slug="test-shop", timezone="UTC", business_hours=None):
    return _save(session, Shop(name="Test Shop", slug=slug, timezone=timezone, business_hours=business_hours))


def seed_service(session, shop, duration=30, price="25.00", name="Haircut"):
    return _save(session, Service(shop_id=shop.id, name=name, duration=duration, price=Decimal(price)))


def seed_staff(session, shop, name="Alex", role="barber"):
    return _save(session, Staff(shop_id=shop.id, name=name, role=role))


def seed_client(session, shop, email="jamie@example.com", phone="+15550100"):
    return _save(session, Client(shop_id=shop.id, first_name="Jamie", last_name="Doe", email=email, phone=phone))


def seed_appointment(
    session,
    shop,
    service,
    start,
    duration=30,
    staff=None,
    client=None,
    status="scheduled",
    guest_name="Guest",
    guest_email="guest@example.com",
    guest_phone="+15550199",
    **extra,
):
    appointment = Appointment(
        shop_id=shop.id,
        service_id=service.id,
        staff_id=staff.id if staff else None,
        client_id=client.id if client else None,
        guest_name=None if client else guest_name,
        guest_email=None if client else guest_email,
        guest_phone=None if client else guest_phone,
        start_time=start,
        end_time=start + timedelta(minutes=duration),
        duration=duration,
        price=service.price,
        status=status,
        **extra,
    )
    return _save(session, appointment)


class RecordingNotifier(Notifier):
    def __init__(self, fail_email=False, fail_sms=False, crash=False):
        self.sent = []
        self.fail_email = fail_email
        self.fail_sms = fail_sms
        self.crash = crash
        self.closed = False

    def send_email(self, to, kind, context):
        if self.crash:
            raise RuntimeError("notifier exploded")
        if self.fail_email:
            raise NotificationDispatchError("mailbox unavailable")
        self.sent.append(("email", to, kind, context))

    def send_sms(self, to, kind, context):
        if self.crash:
            raise RuntimeError("notifier exploded")
        if self.fail_sms:
            raise NotificationDispatchError("carrier rejected message")
        self.sent.append(("sms", to, kind, context))

    def close(self):
        self.closed = True

    def kinds(self):
        return [kind for _, _, kind, _ in self.sent]
