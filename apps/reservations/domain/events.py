"""
Reservation Domain Events

Events that represent things that have happened to a reservation.
These are published after successful transaction commits.
"""

from dataclasses import dataclass

from shared.domain.base import DomainEvent


@dataclass(kw_only=True)
class ReservationCreated(DomainEvent):
    """
    Event: A renter requested a screen for some dates (status requested)

    Triggers:
    - Notify screen owner of the new request
    """
    reservation_id: str
    screen_id: str
    owner_id: str
    renter_id: str
    dates: tuple[str, ...]
    amount_total: int
    currency: str


@dataclass(kw_only=True)
class ReservationAccepted(DomainEvent):
    """
    Event: Owner accepted the request (requested -> accepted)

    The dates are now committed for the screen.
    """
    reservation_id: str
    screen_id: str
    dates: tuple[str, ...]


@dataclass(kw_only=True)
class ReservationDeclined(DomainEvent):
    """Event: Owner declined the request (requested -> declined)"""
    reservation_id: str
    screen_id: str


@dataclass(kw_only=True)
class ReservationCancelled(DomainEvent):
    """
    Event: Reservation was cancelled by the renter or the owner

    Triggers:
    - Refund of the original charge
    - Free up committed dates (if it was accepted)
    """
    reservation_id: str
    screen_id: str
    cancelled_by: str
    reason: str
    old_status: str


@dataclass(kw_only=True)
class ReservationWentLive(DomainEvent):
    """Event: First booked day reached (accepted -> live)"""
    reservation_id: str
    screen_id: str


@dataclass(kw_only=True)
class ReservationCompleted(DomainEvent):
    """Event: Every booked day has passed (live -> completed)"""
    reservation_id: str
    screen_id: str
    owner_id: str
    amount_total: int
    currency: str


@dataclass(kw_only=True)
class RefundSettled(DomainEvent):
    """Event: Payment provider confirmed the refund (cancelled -> refunded)"""
    reservation_id: str


@dataclass(kw_only=True)
class RefundAttemptFailed(DomainEvent):
    """
    Event: Compensating refund could not be issued

    The status transition that triggered the refund stays in place.
    Handled by the operational alerting path (RefundIncident).
    ``orphaned`` marks a charge whose reservation was never stored.
    """
    reservation_id: str
    charge_ref: str
    amount_total: int
    currency: str
    error: str
    orphaned: bool = False
