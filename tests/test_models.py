"""
Tests for models.py column types.

Instants are stored as naive UTC values in plain DateTime columns.
"""

import unittest

from sqlalchemy import DateTime

from factories import at, make_session, seed_appointment, seed_service, seed_shop
from shopbook.models import Appointment, Client, Shop

INSTANT_COLUMNS = {
    Shop: ["created_at"],
    Client: ["last_visit", "created_at"],
    Appointment: [
        "start_time",
        "end_time",
        "reminder_24h_sent_at",
        "reminder_2h_sent_at",
        "reminder_24h_claimed_at",
        "reminder_2h_claimed_at",
        "deleted_at",
        "created_at",
        "updated_at",
    ],
}


class TestInstantColumns(unittest.TestCase):
    def test_columns_are_plain_naive_datetime(self):
        for model, names in INSTANT_COLUMNS.items():
            for name in names:
                column = model.__table__.columns[name]
                self.assertIs(type(column.type), DateTime, f"{model.__name__}.{name}")
                self.assertFalse(column.type.timezone, f"{model.__name__}.{name}")

    def test_naive_instants_round_trip(self):
        session = make_session()
        try:
            shop = seed_shop(session)
            service = seed_service(session, shop)
            appt = seed_appointment(session, shop, service, at(10), reminder_24h_claimed_at=at(9))

            session.expire_all()
            stored = session.get(Appointment, appt.id)
            self.assertEqual(stored.start_time, at(10))
            self.assertEqual(stored.reminder_24h_claimed_at, at(9))
            self.assertIsNone(stored.start_time.tzinfo)
            self.assertIsNotNone(stored.created_at)
        finally:
            session.close()
