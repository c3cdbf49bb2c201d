"""Tests for the Django ORM reservation store."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from itertools import count

from django.db.models import F
from django.test import TestCase

from shared.application.message_bus import message_bus
from apps.reservations import models
from apps.reservations.application.service import ReservationService
from apps.reservations.domain.conflicts import committed_dates
from apps.reservations.domain.events import ReservationAccepted, ReservationCreated
from apps.reservations.domain.exceptions import ConcurrencyConflict, DateConflict
from apps.reservations.domain.status_machine import ReservationStatus
from apps.reservations.infrastructure.django_store import DjangoReservationStore
from apps.reservations.payments import SandboxPaymentGateway


def fake_clock():
    ticks = count()
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)
    return lambda: start + timedelta(seconds=next(ticks))


class DjangoStoreTests(TestCase):
    def setUp(self) -> None:
        self.store = DjangoReservationStore()
        self.gateway = SandboxPaymentGateway()
        self.service = ReservationService(self.store, self.gateway, clock=fake_clock())

    def _book(self, dates, renter="renter-1", screen="screen-1"):
        return self.service.create_reservation(
            screen_id=screen,
            owner_id="owner-1",
            renter_id=renter,
            dates=dates,
            amount_total=2500,
            currency="usd",
        )

    def test_create_persists_row(self) -> None:
        reservation = self._book(["2025-03-11", "2025-03-10"])

        row = models.Reservation.objects.get(pk=reservation.id)
        self.assertEqual(row.dates, ["2025-03-10", "2025-03-11"])
        self.assertEqual(row.status, models.Reservation.Status.REQUESTED)
        self.assertEqual(row.version, 1)
        self.assertEqual(row.charge_ref, reservation.charge_ref)
        self.assertFalse(row.claimed_dates.exists())

    def test_accept_claims_days_and_bumps_calendar(self) -> None:
        reservation = self._book(["2025-03-10", "2025-03-11"])

        accepted = self.service.accept_booking(reservation.id, "owner-1")

        self.assertEqual(accepted.version, 2)
        self.assertEqual(
            sorted(models.ReservationDate.objects.values_list("day", flat=True)),
            [date(2025, 3, 10), date(2025, 3, 11)],
        )
        self.assertEqual(models.ScreenCalendar.objects.get(pk="screen-1").version, 1)

    def test_cancel_releases_days(self) -> None:
        reservation = self._book(["2025-03-10"])
        self.service.accept_booking(reservation.id, "owner-1")

        self.service.cancel_booking(reservation.id, "owner-1", "owner", reason="maintenance")

        self.assertFalse(models.ReservationDate.objects.exists())
        self.assertEqual(models.ScreenCalendar.objects.get(pk="screen-1").version, 2)
        row = models.Reservation.objects.get(pk=reservation.id)
        self.assertEqual(row.cancelled_by, "owner")
        self.assertEqual(row.cancellation_reason, "maintenance")
        self.assertIn(reservation.charge_ref, self.gateway.refunds)

    def test_conflict_example(self) -> None:
        a = self._book(["2025-03-10", "2025-03-11"])
        b = self._book(["2025-03-11", "2025-03-12"], renter="renter-2")
        c = self._book(["2025-03-12", "2025-03-13"], renter="renter-3")

        self.service.accept_booking(a.id, "owner-1")
        with self.assertRaises(DateConflict) as ctx:
            self.service.accept_booking(b.id, "owner-1")
        self.service.accept_booking(c.id, "owner-1")

        self.assertEqual(ctx.exception.dates, {"2025-03-11"})
        self.assertEqual(self.store.get(b.id).status, ReservationStatus.REQUESTED)
        self.assertEqual(models.ReservationDate.objects.count(), 4)

    def test_stale_record_version_rejects_write(self) -> None:
        reservation = self._book(["2025-03-10"])

        def accept_after_concurrent_write(txn):
            current = txn.get(reservation.id)
            models.Reservation.objects.filter(pk=reservation.id).update(version=F("version") + 1)
            current.accept()
            txn.save(current)

        with self.assertRaises(ConcurrencyConflict):
            self.store.transact(accept_after_concurrent_write)

        self.assertEqual(self.store.get(reservation.id).status, ReservationStatus.REQUESTED)
        self.assertFalse(models.ReservationDate.objects.exists())

    def test_moved_calendar_rejects_accept(self) -> None:
        reservation = self._book(["2025-03-10"])

        def accept_after_calendar_moved(txn):
            current = txn.get(reservation.id)
            self.assertEqual(committed_dates(txn, "screen-1"), frozenset())
            models.ScreenCalendar.objects.filter(pk="screen-1").update(version=F("version") + 1)
            current.accept()
            txn.save(current)

        with self.assertRaises(ConcurrencyConflict):
            self.store.transact(accept_after_calendar_moved)

        self.assertEqual(self.store.get(reservation.id).status, ReservationStatus.REQUESTED)

    def test_unique_day_claim_is_a_safety_net(self) -> None:
        a = self._book(["2025-03-10"])
        b = self._book(["2025-03-10"], renter="renter-2")
        self.service.accept_booking(a.id, "owner-1")

        def accept_without_checking(txn):
            current = txn.get(b.id)
            current.accept()
            txn.save(current)

        with self.assertRaises(ConcurrencyConflict):
            self.store.transact(accept_without_checking)

        self.assertEqual(self.store.get(b.id).status, ReservationStatus.REQUESTED)
        self.assertEqual(models.ReservationDate.objects.get().reservation_id, a.id)

    def test_save_requires_prior_read(self) -> None:
        reservation = self._book(["2025-03-10"])
        detached = self.store.get(reservation.id)
        detached.accept()

        with self.assertRaises(ValueError):
            self.store.transact(lambda txn: txn.save(detached))

    def test_listing_order(self) -> None:
        first = self._book(["2025-03-10"])
        second = self._book(["2025-03-11"], renter="renter-2")

        self.assertEqual(
            [r.id for r in self.store.query_by_party("owner_id", "owner-1")],
            [second.id, first.id],
        )
        self.assertEqual(
            [r.id for r in self.store.query_by_screen("screen-1", [ReservationStatus.REQUESTED])],
            [second.id, first.id],
        )
        with self.assertRaises(ValueError):
            self.store.query_by_party("status", "requested")

    def test_events_are_published_after_commit(self) -> None:
        received = []
        message_bus.register_event_handler(ReservationCreated, received.append)
        message_bus.register_event_handler(ReservationAccepted, received.append)
        self.addCleanup(message_bus.unregister_event_handler, ReservationCreated, received.append)
        self.addCleanup(message_bus.unregister_event_handler, ReservationAccepted, received.append)

        with self.captureOnCommitCallbacks(execute=True):
            reservation = self._book(["2025-03-10"])
            self.assertEqual(received, [])
        with self.captureOnCommitCallbacks(execute=True):
            self.service.accept_booking(reservation.id, "owner-1")

        self.assertEqual([type(e) for e in received], [ReservationCreated, ReservationAccepted])
        self.assertEqual(received[1].dates, ("2025-03-10",))

    def test_rolled_back_transaction_publishes_nothing(self) -> None:
        a = self._book(["2025-03-10"])
        b = self._book(["2025-03-10"], renter="renter-2")
        self.service.accept_booking(a.id, "owner-1")
        received = []
        message_bus.register_event_handler(ReservationAccepted, received.append)
        self.addCleanup(message_bus.unregister_event_handler, ReservationAccepted, received.append)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(DateConflict):
                self.service.accept_booking(b.id, "owner-1")

        self.assertEqual(callbacks, [])
        self.assertEqual(received, [])

    def test_failed_refund_opens_incident(self) -> None:
        reservation = self._book(["2025-03-10"])
        self.gateway.failing_refunds.add(reservation.charge_ref)

        self.service.decline_booking(reservation.id, "owner-1")

        incident = models.RefundIncident.objects.get()
        self.assertEqual(incident.reservation_id, reservation.id)
        self.assertEqual(incident.charge_ref, reservation.charge_ref)
        self.assertEqual(incident.amount_total, 2500)
        self.assertEqual(incident.status, models.RefundIncident.Status.OPEN)
        self.assertEqual(
            models.Reservation.objects.get(pk=reservation.id).status,
            models.Reservation.Status.DECLINED,
        )
