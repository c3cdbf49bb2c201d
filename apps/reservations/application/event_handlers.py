"""
Reservation event handlers

Subscribed to the message bus in ReservationsConfig.ready().
"""

import logging

from shared.application.message_bus import message_bus
from apps.reservations.domain.events import RefundAttemptFailed

logger = logging.getLogger(__name__)


def record_refund_incident(event: RefundAttemptFailed):
    """
    A compensating refund failed: keep it for the retry job and alert

    The reservation stays cancelled/declined; money is owed to the renter.
    Orphaned charges have no stored reservation to point at.
    """
    from apps.reservations.models import RefundIncident

    incident = RefundIncident.objects.create(
        reservation_id=None if event.orphaned else event.reservation_id,
        booking_ref=event.reservation_id,
        charge_ref=event.charge_ref,
        amount_total=event.amount_total,
        currency=event.currency,
        error=event.error,
    )
    logger.error(
        f"Refund of charge {event.charge_ref} for reservation {event.reservation_id} "
        f"failed ({event.amount_total} {event.currency}): {event.error}; incident {incident.pk} opened",
        extra={"domain_event": event.to_dict()},
    )


def register_event_handlers():
    message_bus.register_event_handler(RefundAttemptFailed, record_refund_incident)
