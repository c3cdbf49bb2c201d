"""
Reservation Service

Use cases of the screen booking lifecycle. Every state change runs as one
optimistic store transaction:

1. Read the reservation (and, for accept, the screen's committed dates)
   through the transaction
2. Check ownership and the status machine
3. Write the new status
4. Commit; the store rejects the commit if anything read went stale

A rejected commit is retried from step 1 a bounded number of times, then
surfaced as Conflict. Business outcomes (DateConflict, InvalidTransition,
...) are never retried.

Payments happen outside the transaction: the renter is charged before the
reservation is written, and refunded after decline/cancel commits.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List

from shared.domain.base import DomainEvent, new_id, utcnow
from shared.domain.value_objects import DateSet, Money
from apps.reservations.application.store import ReservationStore, StoreTransaction, T
from apps.reservations.domain.conflicts import committed_dates, format_dates, overlap
from apps.reservations.domain.entities import Reservation
from apps.reservations.domain.events import RefundAttemptFailed, ReservationCreated
from apps.reservations.domain.exceptions import (
    AlreadyCancelledByRenter,
    ConcurrencyConflict,
    Conflict,
    DateConflict,
    Forbidden,
    InvalidReservation,
    InvalidTransition,
    NotFound,
    RefundFailed,
)
from apps.reservations.domain.status_machine import (
    Actor,
    ReservationEvent,
    ReservationStatus,
    can_transition,
)
from apps.reservations.payments import PaymentGateway

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


def _publish_on_bus(events: List[DomainEvent]):
    from shared.application.message_bus import message_bus

    message_bus.publish_events(events)


class ReservationService:
    """
    Orchestrates reservations against a store and a payment gateway

    Args:
        store: Transactional reservation store
        gateway: Payment gateway charged at creation, refunded on decline/cancel
        max_attempts: Optimistic transaction attempts before Conflict
        supported_currencies: Lower-case currency codes accepted at creation
        clock: Source of timestamps for updated_at
        publish: Sink for events raised outside a store transaction
    """

    def __init__(
        self,
        store: ReservationStore,
        gateway: PaymentGateway,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        supported_currencies: Iterable[str] = ('usd',),
        clock: Callable[[], datetime] = utcnow,
        publish: Callable[[List[DomainEvent]], None] = _publish_on_bus,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.gateway = gateway
        self.max_attempts = max_attempts
        self.supported_currencies = frozenset(c.lower() for c in supported_currencies)
        self.clock = clock
        self.publish = publish

    # ===== Commands =====

    def create_reservation(
        self,
        screen_id: str,
        owner_id: str,
        renter_id: str,
        dates: Iterable[str],
        amount_total: int,
        currency: str = 'usd',
        content_id: str | None = None,
        special_instructions: str | None = None,
        payer_ref: str | None = None,
    ) -> Reservation:
        """
        Charge the renter and record a new reservation in status requested

        No conflict check happens here: overlapping requests may coexist
        until an owner accepts one of them. Without ``payer_ref`` the renter id
        is charged, which only the sandbox gateway accepts.

        Raises:
            InvalidReservation: malformed input, nothing charged
            PaymentFailed: charge declined, nothing persisted
        """
        for name, value in (('screen_id', screen_id), ('owner_id', owner_id), ('renter_id', renter_id)):
            if not isinstance(value, str) or not value.strip():
                raise InvalidReservation(f"{name} is required")

        try:
            day_set = DateSet.from_iterable(dates)
            price = Money(amount_total, currency or '')
        except (AttributeError, TypeError, ValueError) as e:
            raise InvalidReservation(str(e))

        if price.amount <= 0:
            raise InvalidReservation("amount_total must be greater than 0")
        if price.currency not in self.supported_currencies:
            raise InvalidReservation(f"Unsupported currency {price.currency}")
        if self.gateway.requires_payer_ref and not (payer_ref or '').strip():
            raise InvalidReservation("payer_ref is required")

        instructions = (special_instructions or '').strip() or None
        reservation_id = new_id()

        logger.info(
            f"Creating reservation {reservation_id} for screen {screen_id}, "
            f"renter {renter_id}, dates {format_dates(day_set)}"
        )

        charge = self.gateway.authorize_and_capture(
            price.amount,
            price.currency,
            payer_ref or renter_id,
            reservation_id,
        )
        now = self.clock()

        def insert(txn: StoreTransaction) -> Reservation:
            reservation = Reservation(
                id=reservation_id,
                created_at=now,
                updated_at=now,
                screen_id=screen_id,
                owner_id=owner_id,
                renter_id=renter_id,
                dates=day_set,
                amount_total=price.amount,
                currency=price.currency,
                content_id=content_id,
                special_instructions=instructions,
                charge_ref=charge.charge_ref,
            )
            reservation.add_event(ReservationCreated(
                aggregate_id=reservation_id,
                reservation_id=reservation_id,
                screen_id=screen_id,
                owner_id=owner_id,
                renter_id=renter_id,
                dates=day_set.days,
                amount_total=price.amount,
                currency=price.currency,
            ))
            txn.add(reservation)
            return reservation

        try:
            reservation = self._transact(reservation_id, insert)
        except Exception:
            logger.error(
                f"Could not store reservation {reservation_id} after charging {charge.charge_ref}; refunding",
                exc_info=True,
            )
            try:
                self.gateway.refund(charge.charge_ref, reservation_id)
            except RefundFailed as e:
                logger.critical(
                    f"Refund of orphan charge {charge.charge_ref} for {reservation_id} failed",
                    exc_info=True,
                )
                self.publish([RefundAttemptFailed(
                    aggregate_id=reservation_id,
                    reservation_id=reservation_id,
                    charge_ref=charge.charge_ref,
                    amount_total=price.amount,
                    currency=price.currency,
                    error=str(e),
                    orphaned=True,
                )])
            raise

        logger.info(f"Reservation {reservation_id} created, charge {charge.charge_ref}")
        return reservation

    def accept_booking(self, reservation_id: str, acting_owner_id: str) -> Reservation:
        """
        Accept a request, committing its dates for the screen

        Checks run in this order inside one transaction: existence,
        ownership, cancellation, status machine, committed-date overlap.

        Raises:
            NotFound, Forbidden, AlreadyCancelledByRenter, InvalidTransition
            DateConflict: some dates are held by another committed reservation
            Conflict: the transaction kept losing races
        """

        def accept(txn: StoreTransaction) -> Reservation:
            reservation = self._load(txn, reservation_id)
            if reservation.owner_id != acting_owner_id:
                raise Forbidden(reservation_id, acting_owner_id)
            if reservation.status == ReservationStatus.CANCELLED:
                raise AlreadyCancelledByRenter(reservation_id)
            if not can_transition(reservation.status, ReservationEvent.ACCEPT, Actor.OWNER):
                raise InvalidTransition(reservation.status, ReservationEvent.ACCEPT)

            taken = overlap(
                reservation.dates,
                committed_dates(txn, reservation.screen_id, exclude_id=reservation.id),
            )
            if taken:
                logger.info(
                    f"Reservation {reservation_id} conflicts on screen {reservation.screen_id}: "
                    f"{format_dates(taken)}"
                )
                raise DateConflict(taken)

            reservation.accept(now=self.clock())
            txn.save(reservation)
            return reservation

        reservation = self._transact(reservation_id, accept)
        logger.info(f"Reservation {reservation_id} accepted by owner {acting_owner_id}")
        return reservation

    def decline_booking(self, reservation_id: str, acting_owner_id: str) -> Reservation:
        """
        Decline a request and refund the renter's charge

        A failed refund does not undo the decline; it is reported through
        a RefundAttemptFailed event.
        """

        def decline(txn: StoreTransaction) -> Reservation:
            reservation = self._load(txn, reservation_id)
            if reservation.owner_id != acting_owner_id:
                raise Forbidden(reservation_id, acting_owner_id)
            reservation.decline(now=self.clock())
            txn.save(reservation)
            return reservation

        reservation = self._transact(reservation_id, decline)
        logger.info(f"Reservation {reservation_id} declined by owner {acting_owner_id}")
        self._refund(reservation)
        return reservation

    def cancel_booking(
        self,
        reservation_id: str,
        acting_user_id: str,
        role: str,
        reason: str | None = None,
    ) -> Reservation:
        """
        Cancel on behalf of the renter or the owner, then refund

        Renters may cancel requested or accepted reservations, owners only
        accepted ones.
        """
        try:
            actor = Actor(role)
        except ValueError:
            raise InvalidReservation(f"Unknown role {role!r}")
        if actor not in (Actor.OWNER, Actor.RENTER):
            raise InvalidReservation(f"Role {role!r} cannot cancel reservations")

        def cancel(txn: StoreTransaction) -> Reservation:
            reservation = self._load(txn, reservation_id)
            party = reservation.owner_id if actor == Actor.OWNER else reservation.renter_id
            if party != acting_user_id:
                raise Forbidden(reservation_id, acting_user_id)
            reservation.cancel(actor, reason=(reason or '').strip(), now=self.clock())
            txn.save(reservation)
            return reservation

        reservation = self._transact(reservation_id, cancel)
        logger.info(f"Reservation {reservation_id} cancelled by {actor.value} {acting_user_id}")
        self._refund(reservation)
        return reservation

    def start_live(self, reservation_id: str, today: str) -> Reservation:
        """System transition accepted -> live on a booked day"""

        def go_live(txn: StoreTransaction) -> Reservation:
            reservation = self._load(txn, reservation_id)
            reservation.go_live(today, now=self.clock())
            txn.save(reservation)
            return reservation

        reservation = self._transact(reservation_id, go_live)
        logger.info(f"Reservation {reservation_id} is live ({today})")
        return reservation

    def complete(self, reservation_id: str, today: str) -> Reservation:
        """System transition live -> completed once every day has passed"""

        def finish(txn: StoreTransaction) -> Reservation:
            reservation = self._load(txn, reservation_id)
            reservation.complete(today, now=self.clock())
            txn.save(reservation)
            return reservation

        reservation = self._transact(reservation_id, finish)
        logger.info(f"Reservation {reservation_id} completed ({today})")
        return reservation

    def settle_refund(self, reservation_id: str) -> Reservation:
        """Payment provider confirmed the refund of a cancelled reservation"""

        def settle(txn: StoreTransaction) -> Reservation:
            reservation = self._load(txn, reservation_id)
            reservation.settle_refund(now=self.clock())
            txn.save(reservation)
            return reservation

        reservation = self._transact(reservation_id, settle)
        logger.info(f"Refund settled for reservation {reservation_id}")
        return reservation

    # ===== Queries =====

    def get(self, reservation_id: str) -> Reservation:
        reservation = self.store.get(reservation_id)
        if reservation is None:
            raise NotFound(reservation_id)
        return reservation

    def list_for_screen(self, screen_id: str) -> List[Reservation]:
        return self.store.query_by_party('screen_id', screen_id)

    def list_for_owner(self, owner_id: str) -> List[Reservation]:
        return self.store.query_by_party('owner_id', owner_id)

    def list_for_renter(self, renter_id: str) -> List[Reservation]:
        return self.store.query_by_party('renter_id', renter_id)

    # ===== Internals =====

    @staticmethod
    def _load(txn: StoreTransaction, reservation_id: str) -> Reservation:
        reservation = txn.get(reservation_id)
        if reservation is None:
            raise NotFound(reservation_id)
        return reservation

    def _transact(self, reservation_id: str, fn: Callable[[StoreTransaction], T]) -> T:
        """Run ``fn`` in a store transaction, retrying stale commits"""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.store.transact(fn)
            except ConcurrencyConflict as e:
                logger.warning(
                    f"Concurrent update on reservation {reservation_id} "
                    f"(attempt {attempt}/{self.max_attempts}, stale: {e})"
                )
        raise Conflict(reservation_id, self.max_attempts)

    def _refund(self, reservation: Reservation):
        """Compensating refund after decline/cancel; never raises RefundFailed"""
        if not reservation.charge_ref:
            return

        try:
            ack = self.gateway.refund(reservation.charge_ref, reservation.id)
        except RefundFailed as e:
            logger.error(
                f"Refund failed for reservation {reservation.id}, charge {reservation.charge_ref}",
                exc_info=True,
            )
            self.publish([RefundAttemptFailed(
                aggregate_id=reservation.id,
                reservation_id=reservation.id,
                charge_ref=reservation.charge_ref,
                amount_total=reservation.amount_total,
                currency=reservation.currency,
                error=str(e),
            )])
            return

        logger.info(f"Refund {ack.refund_ref} issued for reservation {reservation.id} ({ack.status})")
