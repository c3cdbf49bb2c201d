"""Celery tasks for the reservations domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore
from django.utils import timezone  # type: ignore

from .domain.exceptions import RefundFailed, ReservationError
from .models import RefundIncident, Reservation
from .services import get_payment_gateway, get_reservation_service

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="reservations.start_live_reservations")
def start_live_reservations() -> dict[str, int]:
    """
    Move accepted reservations to live on their booked days.

    Runs hourly.

    Returns:
        dict: {"started": count, "failed": count}
    """
    today = timezone.localdate()
    service = get_reservation_service()
    started = failed = 0

    due = (
        Reservation.objects.filter(
            status=Reservation.Status.ACCEPTED,
            claimed_dates__day=today,
        )
        .values_list("id", flat=True)
        .distinct()
    )

    for reservation_id in due:
        try:
            service.start_live(reservation_id, today.isoformat())
            started += 1
        except ReservationError as e:
            failed += 1
            logger.warning(f"Could not start reservation {reservation_id}: {e}")

    if started:
        logger.info(f"Started {started} reservations for {today}")
    return {"started": started, "failed": failed}


@shared_task(name="reservations.complete_finished_reservations")
def complete_finished_reservations() -> dict[str, int]:
    """
    Complete live reservations whose last booked day has passed or is today.

    Runs hourly.

    Returns:
        dict: {"completed": count, "failed": count}
    """
    today = timezone.localdate()
    service = get_reservation_service()
    completed = failed = 0

    due = (
        Reservation.objects.filter(status=Reservation.Status.LIVE)
        .exclude(claimed_dates__day__gt=today)
        .values_list("id", flat=True)
    )

    for reservation_id in due:
        try:
            service.complete(reservation_id, today.isoformat())
            completed += 1
        except ReservationError as e:
            failed += 1
            logger.warning(f"Could not complete reservation {reservation_id}: {e}")

    if completed:
        logger.info(f"Completed {completed} reservations as of {today}")
    return {"completed": completed, "failed": failed}


@shared_task(name="reservations.retry_failed_refunds")
def retry_failed_refunds() -> dict[str, int]:
    """
    Retry refunds recorded as open incidents.

    Runs every 30 minutes.

    Returns:
        dict: {"resolved": count, "still_open": count}
    """
    gateway = get_payment_gateway()
    resolved = still_open = 0

    for incident in RefundIncident.objects.filter(status=RefundIncident.Status.OPEN):
        try:
            ack = gateway.refund(incident.charge_ref, incident.booking_ref, attempt=incident.attempts + 1)
        except RefundFailed as e:
            still_open += 1
            incident.attempts += 1
            incident.error = str(e)
            incident.save(update_fields=["attempts", "error"])
            logger.error(
                f"Refund retry {incident.attempts} for booking {incident.booking_ref} failed: {e}"
            )
            continue

        incident.mark_resolved()
        resolved += 1
        logger.info(f"Refund {ack.refund_ref} issued for booking {incident.booking_ref} on retry")

    return {"resolved": resolved, "still_open": still_open}
