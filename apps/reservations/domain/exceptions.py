"""
Reservation Failure Taxonomy

Every failure the reservation service can surface is a distinct exception
type with a stable machine-readable ``code``. Callers branch on the type
(or on ``code`` once serialized), never on the message text.

Client errors:      NotFound, Forbidden, InvalidTransition,
                    AlreadyCancelledByRenter, InvalidReservation
Contention errors:  DateConflict (business outcome), Conflict (retries exhausted)
Collaborator:       PaymentFailed

ConcurrencyConflict and RefundFailed are internal signals raised by the
store and the payment gateway; they never reach API callers.
"""

from __future__ import annotations

from typing import Iterable


class ReservationError(Exception):
    """Base class for every error the reservation service surfaces"""

    code = 'reservation_error'
    http_status = 400
    user_message = 'The reservation request could not be completed.'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.user_message)

    def to_dict(self) -> dict:
        return {'code': self.code, 'detail': self.user_message}


class NotFound(ReservationError):
    code = 'not_found'
    http_status = 404
    user_message = 'This booking no longer exists.'

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} not found")


class Forbidden(ReservationError):
    code = 'forbidden'
    http_status = 403
    user_message = 'You are not allowed to change this booking.'

    def __init__(self, reservation_id: str, user_id: str):
        self.reservation_id = reservation_id
        self.user_id = user_id
        super().__init__(f"User {user_id} may not act on reservation {reservation_id}")


class InvalidTransition(ReservationError):
    """Event does not match any transition for the current status. Not retryable."""

    code = 'invalid_transition'
    http_status = 409
    user_message = 'This booking can no longer be changed this way.'

    def __init__(self, current_status, event, detail: str = ''):
        self.current_status = current_status
        self.event = event
        status_value = getattr(current_status, 'value', current_status)
        event_value = getattr(event, 'value', event)
        message = f"Cannot {event_value} a reservation in status {status_value}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['status'] = getattr(self.current_status, 'value', self.current_status)
        data['event'] = getattr(self.event, 'value', self.event)
        return data


class AlreadyCancelledByRenter(ReservationError):
    """
    Accept attempted on a cancelled reservation.

    Not an InvalidTransition subclass, so ``except InvalidTransition`` never
    swallows it.
    """

    code = 'already_cancelled'
    http_status = 409
    user_message = 'This booking has been cancelled by the customer.'

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} was cancelled by the renter")


class DateConflict(ReservationError):
    """Requested dates are already committed to another reservation of the screen"""

    code = 'date_conflict'
    http_status = 409
    user_message = 'Some of these dates are already reserved for this screen.'

    def __init__(self, dates: Iterable[str]):
        self.dates = frozenset(dates)
        super().__init__(
            f"Dates already reserved: {', '.join(sorted(self.dates))}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['dates'] = sorted(self.dates)
        return data


class Conflict(ReservationError):
    """Optimistic transaction kept losing races; the caller should re-read and retry"""

    code = 'conflict'
    http_status = 409
    user_message = 'This booking was changed by someone else. Refresh and try again.'

    def __init__(self, reservation_id: str, attempts: int):
        self.reservation_id = reservation_id
        self.attempts = attempts
        super().__init__(
            f"Reservation {reservation_id} kept changing concurrently "
            f"({attempts} attempts)"
        )


class PaymentFailed(ReservationError):
    code = 'payment_failed'
    http_status = 402
    user_message = 'Your payment could not be processed. No booking was made.'

    def __init__(self, message: str = '', decline_code: str | None = None):
        self.decline_code = decline_code
        super().__init__(message or self.user_message)


class InvalidReservation(ReservationError):
    """Malformed create request (empty or malformed dates, bad amount, ...)"""

    code = 'invalid_input'
    http_status = 400
    user_message = 'The booking request is invalid.'

    def __init__(self, message: str):
        super().__init__(message)
        self.user_message = message


class ConcurrencyConflict(Exception):
    """Raised by a store transaction whose reads went stale before commit"""


class RefundFailed(Exception):
    """Raised by the payment gateway when a refund cannot be issued"""
