"""
Reservation Store Interface

The store is the only persistence seam of the reservation service. It is a
transactional document store with optimistic concurrency:

    result = store.transact(fn)

runs ``fn(txn)`` once. Everything ``fn`` reads through ``txn`` joins the
transaction's read set; everything it writes is buffered until commit. At
commit the store rejects the whole transaction with ConcurrencyConflict if
any record it read (or wrote) changed underneath it, or if it read a screen's
committed calendar and then changed that calendar after someone else did.
Retrying is the caller's decision.

Version rules every implementation follows:
- each reservation record carries ``version``; every committed write bumps it
- each screen carries a calendar version, bumped whenever one of its
  reservations enters or leaves a committed status
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, TypeVar

from shared.application.uow import AbstractUnitOfWork
from apps.reservations.domain.entities import Reservation
from apps.reservations.domain.status_machine import ReservationStatus

T = TypeVar('T')

# Fields listing projections may filter on
PARTY_FIELDS = ('screen_id', 'owner_id', 'renter_id')


def newest_first(reservations: Iterable[Reservation]) -> List[Reservation]:
    """Stable sort by created_at descending (ties keep id order)"""
    ordered = sorted(reservations, key=lambda r: r.id)
    return sorted(ordered, key=lambda r: r.created_at, reverse=True)


class StoreTransaction(AbstractUnitOfWork):
    """
    One optimistic transaction against the store

    Also a unit of work: aggregates' domain events collected here are
    published only once the transaction commits.
    """

    @abstractmethod
    def get(self, reservation_id: str) -> Reservation | None:
        """Read one reservation, or None when absent"""

    @abstractmethod
    def query_by_screen(
        self,
        screen_id: str,
        statuses: Iterable[ReservationStatus],
    ) -> List[Reservation]:
        """Reservations of a screen whose status is in ``statuses``"""

    @abstractmethod
    def add(self, reservation: Reservation) -> None:
        """Insert a new reservation (version 0)"""

    @abstractmethod
    def save(self, reservation: Reservation) -> None:
        """
        Write back a reservation read in this transaction

        The write is conditional on the version that was read.
        """


class ReservationStore(ABC):
    """Transactional key-value/document store for reservations"""

    @abstractmethod
    def get(self, reservation_id: str) -> Reservation | None:
        """Non-transactional read of the latest committed state"""

    @abstractmethod
    def query_by_screen(
        self,
        screen_id: str,
        statuses: Iterable[ReservationStatus] | None = None,
    ) -> List[Reservation]:
        """Committed reservations of a screen, optionally filtered by status"""

    @abstractmethod
    def query_by_party(self, field: str, value: str) -> List[Reservation]:
        """Committed reservations whose ``field`` (see PARTY_FIELDS) equals ``value``"""

    @abstractmethod
    def transact(self, fn: Callable[[StoreTransaction], T]) -> T:
        """
        Run ``fn`` inside one optimistic transaction

        Raises:
            ConcurrencyConflict: a concurrent commit invalidated the reads
            Any exception raised by ``fn`` (nothing is written in that case)
        """
