"""
Reservation Domain Entities

Core business entity for the screen booking domain:
- Reservation: Aggregate representing a renter's request for a screen on
  one or more calendar days
"""

from dataclasses import dataclass, replace
from datetime import datetime

from shared.domain.base import Aggregate, utcnow
from shared.domain.value_objects import DateSet
from apps.reservations.domain.status_machine import (
    Actor,
    ReservationEvent,
    ReservationStatus,
    completion_due,
    go_live_due,
    is_committed,
    next_status,
)
from apps.reservations.domain.exceptions import InvalidTransition


@dataclass(eq=False, kw_only=True)
class Reservation(Aggregate):
    """
    Reservation Aggregate Root

    Key invariants:
    - dates is never empty
    - identity, parties, dates and price never change after creation
    - status only moves along the status machine table
    - updated_at moves on every transition

    The cross-reservation invariant (one committed reservation per screen
    and day) is enforced by the service inside a store transaction.
    """

    # References
    screen_id: str
    owner_id: str
    renter_id: str

    # Booked days
    dates: DateSet

    # Pricing (minor units)
    amount_total: int
    currency: str

    # Display-only payload
    content_id: str | None = None
    special_instructions: str | None = None

    # Status tracking
    status: ReservationStatus = ReservationStatus.REQUESTED
    charge_ref: str | None = None

    # Cancellation details
    cancelled_by: str = ''
    cancellation_reason: str = ''

    # Optimistic concurrency counter, owned by the store
    version: int = 0

    def __post_init__(self):
        if not isinstance(self.dates, DateSet):
            self.dates = DateSet.from_iterable(self.dates)
        self.status = ReservationStatus(self.status)

    def _apply(self, event: ReservationEvent, actor: Actor, now: datetime | None) -> ReservationStatus:
        old_status = self.status
        self.status = next_status(self.status, event, actor)
        self.updated_at = now or utcnow()
        return old_status

    def accept(self, now: datetime | None = None):
        """
        Accept request (REQUESTED -> ACCEPTED)

        Caller must have verified the committed-date guard in the same
        transaction.
        Events: ReservationAccepted
        """
        from apps.reservations.domain.events import ReservationAccepted

        self._apply(ReservationEvent.ACCEPT, Actor.OWNER, now)
        self.add_event(ReservationAccepted(
            aggregate_id=self.id,
            reservation_id=self.id,
            screen_id=self.screen_id,
            dates=self.dates.days,
        ))

    def decline(self, now: datetime | None = None):
        """Decline request (REQUESTED -> DECLINED)"""
        from apps.reservations.domain.events import ReservationDeclined

        self._apply(ReservationEvent.DECLINE, Actor.OWNER, now)
        self.add_event(ReservationDeclined(
            aggregate_id=self.id,
            reservation_id=self.id,
            screen_id=self.screen_id,
        ))

    def cancel(self, actor: Actor, reason: str = '', now: datetime | None = None):
        """
        Cancel reservation

        Renter: from REQUESTED or ACCEPTED. Owner: from ACCEPTED only.
        Events: ReservationCancelled
        """
        from apps.reservations.domain.events import ReservationCancelled

        actor = Actor(actor)
        old_status = self._apply(ReservationEvent.CANCEL, actor, now)
        self.cancelled_by = actor.value
        self.cancellation_reason = reason or ''

        self.add_event(ReservationCancelled(
            aggregate_id=self.id,
            reservation_id=self.id,
            screen_id=self.screen_id,
            cancelled_by=actor.value,
            reason=self.cancellation_reason,
            old_status=old_status.value,
        ))

    def go_live(self, today: str, now: datetime | None = None):
        """
        Start showing (ACCEPTED -> LIVE)

        Guard: today is one of the booked days.
        """
        from apps.reservations.domain.events import ReservationWentLive

        if self.status == ReservationStatus.ACCEPTED and not go_live_due(self.dates, today):
            raise InvalidTransition(self.status, ReservationEvent.GO_LIVE, f"{today} is not a booked day")

        self._apply(ReservationEvent.GO_LIVE, Actor.SYSTEM, now)
        self.add_event(ReservationWentLive(
            aggregate_id=self.id,
            reservation_id=self.id,
            screen_id=self.screen_id,
        ))

    def complete(self, today: str, now: datetime | None = None):
        """
        Finish (LIVE -> COMPLETED)

        Guard: every booked day is today or earlier.
        """
        from apps.reservations.domain.events import ReservationCompleted

        if self.status == ReservationStatus.LIVE and not completion_due(self.dates, today):
            raise InvalidTransition(self.status, ReservationEvent.COMPLETE, f"last day {self.dates.last} is after {today}")

        self._apply(ReservationEvent.COMPLETE, Actor.SYSTEM, now)
        self.add_event(ReservationCompleted(
            aggregate_id=self.id,
            reservation_id=self.id,
            screen_id=self.screen_id,
            owner_id=self.owner_id,
            amount_total=self.amount_total,
            currency=self.currency,
        ))

    def settle_refund(self, now: datetime | None = None):
        """Payment provider confirmed the refund (CANCELLED -> REFUNDED)"""
        from apps.reservations.domain.events import RefundSettled

        self._apply(ReservationEvent.REFUND_SETTLED, Actor.PAYMENT, now)
        self.add_event(RefundSettled(
            aggregate_id=self.id,
            reservation_id=self.id,
        ))

    @property
    def is_committed(self) -> bool:
        """Holds its dates exclusively for the screen"""
        return is_committed(self.status)

    def copy(self) -> 'Reservation':
        """Detached copy (stores hand out copies, never shared instances)"""
        clone = replace(self)
        clone.clear_events()
        return clone

    def __str__(self):
        return f"Reservation {self.id} ({self.status.value})"

    def __repr__(self):
        return (
            f"Reservation(id={self.id}, screen_id={self.screen_id}, "
            f"status={self.status.value}, dates={self.dates!r}, version={self.version})"
        )
