"""
Tests for lifecycle.py
"""

import unittest
import warnings
from datetime import date
from decimal import Decimal
from pathlib import Path

from sqlmodel import select

from factories import (
    RecordingNotifier,
    at,
    make_session,
    seed_appointment,
    seed_client,
    seed_service,
    seed_shop,
    seed_staff,
)
from shopbook.booking import ConflictPolicy
from shopbook.errors import ConflictError, NotFoundError, TransitionError, ValidationError
from shopbook import lifecycle as lifecycle_module
from shopbook.lifecycle import AppointmentLifecycle, AppointmentStatus, can_transition
from shopbook.models import Client, DailyAnalytics
from shopbook.notifications import STATUS_CHANGED


class TestCanTransition(unittest.TestCase):
    def test_forward_moves(self):
        S = AppointmentStatus
        self.assertTrue(can_transition(S.scheduled, S.confirmed))
        self.assertTrue(can_transition(S.scheduled, S.completed))
        self.assertTrue(can_transition(S.confirmed, S.in_progress))

    def test_backward_moves(self):
        S = AppointmentStatus
        self.assertFalse(can_transition(S.in_progress, S.scheduled))
        self.assertFalse(can_transition(S.confirmed, S.scheduled))

    def test_cancel_and_no_show_from_any_open_state(self):
        S = AppointmentStatus
        for current in (S.scheduled, S.confirmed, S.in_progress):
            self.assertTrue(can_transition(current, S.cancelled))
            self.assertTrue(can_transition(current, S.no_show))

    def test_terminal_states(self):
        S = AppointmentStatus
        for current in (S.completed, S.cancelled, S.no_show):
            for new in S:
                self.assertFalse(can_transition(current, new))


class LifecycleTestCase(unittest.TestCase):
    def setUp(self):
        self.session = make_session()
        self.shop = seed_shop(self.session)
        self.service = seed_service(self.session, self.shop, price="40.00")
        self.staff = seed_staff(self.session, self.shop)
        self.client = seed_client(self.session, self.shop)
        self.notifier = RecordingNotifier()
        self.lifecycle = AppointmentLifecycle(self.session, self.notifier)
        self.appt = seed_appointment(self.session, self.shop, self.service, at(10), staff=self.staff, client=self.client)

    def tearDown(self):
        self.session.close()


class TestTransition(LifecycleTestCase):
    def test_confirm_notifies(self):
        appt = self.lifecycle.transition(self.appt.id, "confirmed")

        self.assertEqual(appt.status, "confirmed")
        self.assertEqual(self.notifier.kinds(), [STATUS_CHANGED, STATUS_CHANGED])
        self.assertEqual(self.notifier.sent[0][3]["previous_status"], "scheduled")

    def test_in_progress_does_not_notify(self):
        self.lifecycle.transition(self.appt.id, "in_progress")
        self.assertEqual(self.notifier.sent, [])

    def test_notes_are_saved(self):
        appt = self.lifecycle.transition(self.appt.id, "confirmed", notes="Prefers scissors")
        self.assertEqual(appt.notes, "Prefers scissors")

    def test_unknown_status(self):
        with self.assertRaises(ValidationError) as ctx:
            self.lifecycle.transition(self.appt.id, "teleported")
        self.assertEqual(ctx.exception.field, "status")

    def test_backward_transition_refused(self):
        self.lifecycle.transition(self.appt.id, "in_progress")

        with self.assertRaises(TransitionError):
            self.lifecycle.transition(self.appt.id, "scheduled")

    def test_terminal_state_is_final(self):
        self.lifecycle.transition(self.appt.id, "cancelled")

        with self.assertRaises(TransitionError):
            self.lifecycle.transition(self.appt.id, "confirmed")

    def test_unknown_appointment(self):
        with self.assertRaises(NotFoundError):
            self.lifecycle.transition("missing", "confirmed")

    def test_other_shop_cannot_see_appointment(self):
        with self.assertRaises(NotFoundError):
            self.lifecycle.transition(self.appt.id, "confirmed", shop_id="another-shop")

    def test_stale_status_write_is_refused(self):
        with self.assertRaises(TransitionError):
            self.lifecycle._write(self.appt, AppointmentStatus.confirmed, {"status": "in_progress"})

        self.assertEqual(self.lifecycle.get(self.appt.id).status, "scheduled")


class TestCompletion(LifecycleTestCase):
    def analytics(self):
        return self.session.exec(select(DailyAnalytics).where(DailyAnalytics.shop_id == self.shop.id)).all()

    def test_completion_updates_client_and_analytics(self):
        appt = self.lifecycle.transition(self.appt.id, "completed")

        self.assertEqual(appt.payment_status, "paid")
        client = self.session.get(Client, self.client.id)
        self.assertEqual(client.total_visits, 1)
        self.assertEqual(client.total_spent, Decimal("40.00"))
        self.assertEqual(client.last_visit, at(10, 30))

        rows = self.analytics()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].date, date(2030, 1, 15))
        self.assertEqual(rows[0].completed_appointments, 1)
        self.assertEqual(rows[0].total_revenue, Decimal("40.00"))

    def test_completing_twice_counts_once(self):
        self.lifecycle.transition(self.appt.id, "completed")
        self.lifecycle.transition(self.appt.id, "completed")

        self.assertEqual(self.session.get(Client, self.client.id).total_visits, 1)
        self.assertEqual(self.analytics()[0].completed_appointments, 1)

    def test_second_completion_same_day_adds_up(self):
        other = seed_appointment(self.session, self.shop, self.service, at(14), client=self.client)

        self.lifecycle.transition(self.appt.id, "completed")
        self.lifecycle.transition(other.id, "completed")

        rows = self.analytics()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].completed_appointments, 2)
        self.assertEqual(rows[0].total_revenue, Decimal("80.00"))
        self.assertEqual(self.session.get(Client, self.client.id).total_visits, 2)

    def test_guest_completion_only_counts_analytics(self):
        guest = seed_appointment(self.session, self.shop, self.service, at(15))

        self.lifecycle.transition(guest.id, "completed")

        self.assertEqual(self.session.get(Client, self.client.id).total_visits, 0)
        self.assertEqual(self.analytics()[0].completed_appointments, 1)

    def test_analytics_use_shop_local_date(self):
        shop = seed_shop(self.session, slug="nyc", timezone="America/New_York")
        service = seed_service(self.session, shop)
        # 02:00 UTC on the 16th is the evening of the 15th in New York
        late = seed_appointment(self.session, shop, service, at(26))

        self.lifecycle.transition(late.id, "completed")

        row = self.session.exec(select(DailyAnalytics).where(DailyAnalytics.shop_id == shop.id)).one()
        self.assertEqual(row.date, date(2030, 1, 15))


class TestSoftDelete(LifecycleTestCase):
    def test_soft_delete_cancels_and_hides(self):
        appt = self.lifecycle.soft_delete(self.appt.id, shop_id=self.shop.id)

        self.assertEqual(appt.status, "cancelled")
        self.assertIsNotNone(appt.deleted_at)
        self.assertIn(STATUS_CHANGED, self.notifier.kinds())
        with self.assertRaises(NotFoundError):
            self.lifecycle.get(self.appt.id)

    def test_soft_delete_is_idempotent(self):
        first = self.lifecycle.soft_delete(self.appt.id)
        deleted_at = first.deleted_at
        sent = len(self.notifier.sent)

        again = self.lifecycle.soft_delete(self.appt.id)
        self.assertEqual(again.deleted_at, deleted_at)
        self.assertEqual(len(self.notifier.sent), sent)

    def test_completed_cannot_be_deleted(self):
        self.lifecycle.transition(self.appt.id, "completed")

        with self.assertRaises(TransitionError):
            self.lifecycle.soft_delete(self.appt.id)


class TestReschedule(LifecycleTestCase):
    def test_move_to_free_time(self):
        self.appt.reminder_24h_sent_at = at(0)
        self.session.add(self.appt)
        self.session.commit()

        result = self.lifecycle.reschedule(self.appt.id, at(14))

        self.assertFalse(result.has_conflicts)
        self.assertEqual(result.appointment.start_time, at(14))
        self.assertEqual(result.appointment.end_time, at(14, 30))
        self.assertIsNone(result.appointment.reminder_24h_sent_at)

    def test_overlapping_own_old_slot_is_not_a_conflict(self):
        result = self.lifecycle.reschedule(self.appt.id, at(10, 15), policy=ConflictPolicy.reject)
        self.assertFalse(result.has_conflicts)

    def test_warn_reports_conflict(self):
        blocker = seed_appointment(self.session, self.shop, self.service, at(14), staff=self.staff)

        result = self.lifecycle.reschedule(self.appt.id, at(14))
        self.assertTrue(result.has_conflicts)
        self.assertEqual(result.conflicts[0].id, blocker.id)

    def test_reject_keeps_old_time(self):
        seed_appointment(self.session, self.shop, self.service, at(14), staff=self.staff)

        with self.assertRaises(ConflictError):
            self.lifecycle.reschedule(self.appt.id, at(14), policy=ConflictPolicy.reject)
        self.assertEqual(self.lifecycle.get(self.appt.id).start_time, at(10))

    def test_change_staff(self):
        other = seed_staff(self.session, self.shop, name="Sam")

        result = self.lifecycle.reschedule(self.appt.id, at(10), staff_id=other.id)
        self.assertEqual(result.appointment.staff_id, other.id)

    def test_closed_appointment_cannot_move(self):
        self.lifecycle.transition(self.appt.id, "cancelled")

        with self.assertRaises(TransitionError):
            self.lifecycle.reschedule(self.appt.id, at(14))


class TestCancelByReference(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.guest = seed_appointment(self.session, self.shop, self.service, at(12), guest_phone="+15550142")

    def test_cancel_with_reference_prefix(self):
        appt = self.lifecycle.cancel_by_reference("+15550142", self.guest.id[:8].upper())
        self.assertEqual(appt.status, "cancelled")

    def test_wrong_phone(self):
        with self.assertRaises(NotFoundError):
            self.lifecycle.cancel_by_reference("+15550000", self.guest.id[:8])

    def test_reference_too_short(self):
        with self.assertRaises(ValidationError):
            self.lifecycle.cancel_by_reference("+15550142", self.guest.id[:3])

    def test_already_cancelled(self):
        self.lifecycle.cancel_by_reference("+15550142", self.guest.id[:8])

        with self.assertRaises(NotFoundError):
            self.lifecycle.cancel_by_reference("+15550142", self.guest.id[:8])


class TestModuleSource(unittest.TestCase):
    def test_compiles_without_warnings(self):
        path = Path(lifecycle_module.__file__)

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(path.read_text(), str(path), "exec")
