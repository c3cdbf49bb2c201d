from types import SimpleNamespace

import pytest
import stripe
from django.utils import timezone

from apps.reservations import tasks
from apps.reservations.application.service import ReservationService
from apps.reservations.infrastructure.memory import InMemoryReservationStore
from apps.reservations.models import RefundIncident, Reservation
from apps.reservations.payments import StripePaymentGateway
from apps.reservations.services import get_payment_gateway, get_reservation_service
from apps.reservations.tasks import (
    complete_finished_reservations,
    retry_failed_refunds,
    start_live_reservations,
)


@pytest.fixture
def service():
    get_payment_gateway.cache_clear()
    return get_reservation_service()


def _days(*offsets):
    today = timezone.localdate()
    return [(today + timezone.timedelta(days=offset)).isoformat() for offset in offsets]


def _book(service, dates, renter="renter-1", screen="screen-1"):
    return service.create_reservation(
        screen_id=screen,
        owner_id="owner-1",
        renter_id=renter,
        dates=dates,
        amount_total=3000,
        currency="usd",
    )


@pytest.mark.django_db
def test_start_live_only_touches_reservations_booked_today(service):
    running = _book(service, _days(0, 1))
    upcoming = _book(service, _days(3), renter="renter-2")
    pending = _book(service, _days(5), renter="renter-3")
    service.accept_booking(running.id, "owner-1")
    service.accept_booking(upcoming.id, "owner-1")

    result = start_live_reservations()

    assert result == {"started": 1, "failed": 0}
    assert Reservation.objects.get(pk=running.id).status == Reservation.Status.LIVE
    assert Reservation.objects.get(pk=upcoming.id).status == Reservation.Status.ACCEPTED
    assert Reservation.objects.get(pk=pending.id).status == Reservation.Status.REQUESTED


@pytest.mark.django_db
def test_complete_waits_for_the_last_booked_day(service):
    finished = _book(service, _days(-1, 0))
    ongoing = _book(service, _days(0, 1), renter="renter-2", screen="screen-2")
    today = _days(0)[0]
    for reservation in (finished, ongoing):
        service.accept_booking(reservation.id, "owner-1")
        service.start_live(reservation.id, today)

    result = complete_finished_reservations()

    assert result == {"completed": 1, "failed": 0}
    assert Reservation.objects.get(pk=finished.id).status == Reservation.Status.COMPLETED
    assert Reservation.objects.get(pk=ongoing.id).status == Reservation.Status.LIVE


@pytest.mark.django_db
def test_retry_failed_refunds_resolves_incidents(service):
    gateway = get_payment_gateway()
    reservation = _book(service, _days(2))
    gateway.failing_refunds.add(reservation.charge_ref)
    service.cancel_booking(reservation.id, "renter-1", "renter")
    incident = RefundIncident.objects.get()

    assert retry_failed_refunds() == {"resolved": 0, "still_open": 1}
    incident.refresh_from_db()
    assert incident.attempts == 2
    assert incident.status == RefundIncident.Status.OPEN

    gateway.failing_refunds.clear()
    assert retry_failed_refunds() == {"resolved": 1, "still_open": 0}
    incident.refresh_from_db()
    assert incident.status == RefundIncident.Status.RESOLVED
    assert incident.resolved_at is not None
    assert reservation.charge_ref in gateway.refunds


@pytest.mark.django_db
def test_retry_sends_the_next_attempt_to_stripe(service, monkeypatch):
    gateway = get_payment_gateway()
    reservation = _book(service, _days(2))
    gateway.failing_refunds.add(reservation.charge_ref)
    service.cancel_booking(reservation.id, "renter-1", "renter")

    keys = []

    def create(**kwargs):
        keys.append(kwargs["idempotency_key"])
        return SimpleNamespace(id="re_live_1", status="succeeded")

    monkeypatch.setattr(stripe, "api_key", None)
    monkeypatch.setattr(stripe.Refund, "create", create)
    monkeypatch.setattr(tasks, "get_payment_gateway", lambda: StripePaymentGateway(api_key="sk_test_123"))

    assert retry_failed_refunds() == {"resolved": 1, "still_open": 0}
    assert keys == [f"refund-{reservation.id}-2"]


class UnavailableStore(InMemoryReservationStore):
    def transact(self, fn):
        raise RuntimeError("store unavailable")


@pytest.mark.django_db
def test_orphaned_charge_is_recorded_and_refunded_later(service):
    gateway = get_payment_gateway()
    gateway.failing_refunds.add(f"ch_sandbox_{len(gateway.charges) + 1}")
    broken = ReservationService(UnavailableStore(), gateway)

    with pytest.raises(RuntimeError):
        _book(broken, _days(2))

    incident = RefundIncident.objects.get()
    assert incident.reservation_id is None
    assert incident.charge_ref in gateway.charges
    assert not Reservation.objects.exists()

    gateway.failing_refunds.clear()
    assert retry_failed_refunds() == {"resolved": 1, "still_open": 0}
    assert incident.charge_ref in gateway.refunds
