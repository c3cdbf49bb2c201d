"""Wiring of the reservation service for the Django project."""

from __future__ import annotations

from functools import lru_cache

from django.conf import settings  # type: ignore
from django.utils.module_loading import import_string  # type: ignore

from .application.service import DEFAULT_MAX_ATTEMPTS, ReservationService
from .infrastructure.django_store import DjangoReservationStore
from .payments import PaymentGateway

DEFAULTS = {
    "ACCEPT_MAX_ATTEMPTS": DEFAULT_MAX_ATTEMPTS,
    "SUPPORTED_CURRENCIES": ("usd",),
    "PAYMENT_GATEWAY": "apps.reservations.payments.SandboxPaymentGateway",
}


def reservation_settings() -> dict:
    """RESERVATIONS settings merged over the defaults."""

    merged = dict(DEFAULTS)
    merged.update(getattr(settings, "RESERVATIONS", {}) or {})
    return merged


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    gateway_class = import_string(reservation_settings()["PAYMENT_GATEWAY"])
    return gateway_class()


def get_reservation_service() -> ReservationService:
    conf = reservation_settings()
    return ReservationService(
        DjangoReservationStore(),
        get_payment_gateway(),
        max_attempts=int(conf["ACCEPT_MAX_ATTEMPTS"]),
        supported_currencies=conf["SUPPORTED_CURRENCIES"],
    )
