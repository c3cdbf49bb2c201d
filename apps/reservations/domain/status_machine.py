"""
Reservation Status Machine

Pure decision table for the reservation lifecycle. No I/O, no clock: the
caller passes ``today`` for the time-driven guards.

    requested --accept(owner)--------> accepted
    requested --decline(owner)-------> declined        (terminal)
    requested --cancel(renter)-------> cancelled
    accepted  --cancel(renter|owner)-> cancelled       (refund)
    accepted  --go_live(system)------> live            [today in dates]
    live      --complete(system)-----> completed       [all dates <= today] (terminal)
    cancelled --refund_settled(payment)-> refunded     (terminal)

The accept guard (no committed-date overlap) needs store reads and is
evaluated by the service inside its transaction.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, Tuple

from apps.reservations.domain.exceptions import InvalidTransition


class ReservationStatus(str, Enum):
    REQUESTED = 'requested'
    ACCEPTED = 'accepted'
    LIVE = 'live'
    COMPLETED = 'completed'
    DECLINED = 'declined'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


class ReservationEvent(str, Enum):
    ACCEPT = 'accept'
    DECLINE = 'decline'
    CANCEL = 'cancel'
    GO_LIVE = 'go_live'
    COMPLETE = 'complete'
    REFUND_SETTLED = 'refund_settled'


class Actor(str, Enum):
    OWNER = 'owner'
    RENTER = 'renter'
    SYSTEM = 'system'
    PAYMENT = 'payment'


# Statuses that hold calendar dates exclusively
COMMITTED_STATUSES: FrozenSet[ReservationStatus] = frozenset({
    ReservationStatus.ACCEPTED,
    ReservationStatus.LIVE,
    ReservationStatus.COMPLETED,
})

TERMINAL_STATUSES: FrozenSet[ReservationStatus] = frozenset({
    ReservationStatus.COMPLETED,
    ReservationStatus.DECLINED,
    ReservationStatus.CANCELLED,
    ReservationStatus.REFUNDED,
})

_S = ReservationStatus
_E = ReservationEvent
_A = Actor

TRANSITIONS: Dict[Tuple[ReservationStatus, ReservationEvent, Actor], ReservationStatus] = {
    (_S.REQUESTED, _E.ACCEPT, _A.OWNER): _S.ACCEPTED,
    (_S.REQUESTED, _E.DECLINE, _A.OWNER): _S.DECLINED,
    (_S.REQUESTED, _E.CANCEL, _A.RENTER): _S.CANCELLED,
    (_S.ACCEPTED, _E.CANCEL, _A.RENTER): _S.CANCELLED,
    (_S.ACCEPTED, _E.CANCEL, _A.OWNER): _S.CANCELLED,
    (_S.ACCEPTED, _E.GO_LIVE, _A.SYSTEM): _S.LIVE,
    (_S.LIVE, _E.COMPLETE, _A.SYSTEM): _S.COMPLETED,
    (_S.CANCELLED, _E.REFUND_SETTLED, _A.PAYMENT): _S.REFUNDED,
}


def next_status(
    status: ReservationStatus,
    event: ReservationEvent,
    actor: Actor,
) -> ReservationStatus:
    """
    Resolve the target status of ``event`` performed by ``actor``

    Raises:
        InvalidTransition: no row of the table matches
    """
    target = TRANSITIONS.get((ReservationStatus(status), ReservationEvent(event), Actor(actor)))
    if target is None:
        raise InvalidTransition(ReservationStatus(status), ReservationEvent(event))
    return target


def can_transition(status: ReservationStatus, event: ReservationEvent, actor: Actor) -> bool:
    return (status, event, actor) in TRANSITIONS


def allowed_events(status: ReservationStatus) -> FrozenSet[Tuple[ReservationEvent, Actor]]:
    """Events (with their actor) legal from ``status``"""
    return frozenset((e, a) for (s, e, a) in TRANSITIONS if s == status)


def is_terminal(status: ReservationStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_committed(status: ReservationStatus) -> bool:
    return status in COMMITTED_STATUSES


def go_live_due(dates: Iterable[str], today: str) -> bool:
    """Guard for go_live: today is one of the booked days"""
    return today in set(dates)


def completion_due(dates: Iterable[str], today: str) -> bool:
    """Guard for complete: every booked day is today or earlier"""
    return all(day <= today for day in dates)
