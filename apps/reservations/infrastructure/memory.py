"""
In-memory reservation store

Reference implementation of the optimistic store contract. Used by the
domain/service test suite and usable as a development backend. Thread-safe:
commits are validated and applied under one lock, reads take consistent
snapshots under the same lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterable, List

from apps.reservations.application.store import (
    PARTY_FIELDS,
    ReservationStore,
    StoreTransaction,
    T,
    newest_first,
)
from apps.reservations.domain.entities import Reservation
from apps.reservations.domain.exceptions import ConcurrencyConflict
from apps.reservations.domain.status_machine import ReservationStatus

logger = logging.getLogger(__name__)


class InMemoryTransaction(StoreTransaction):
    """Buffers writes and remembers every version it observed"""

    def __init__(self, store: 'InMemoryReservationStore'):
        super().__init__()
        self._store = store
        self.read_versions: Dict[str, int | None] = {}
        self.screen_versions: Dict[str, int] = {}
        self.inserts: Dict[str, Reservation] = {}
        self.writes: Dict[str, Reservation] = {}
        self._originals: Dict[str, Reservation] = {}

    def get(self, reservation_id: str) -> Reservation | None:
        pending = self.writes.get(reservation_id) or self.inserts.get(reservation_id)
        if pending is not None:
            return pending.copy()

        record = self._store._snapshot(reservation_id)
        self.read_versions.setdefault(reservation_id, record.version if record else None)
        return record

    def query_by_screen(
        self,
        screen_id: str,
        statuses: Iterable[ReservationStatus],
    ) -> List[Reservation]:
        wanted = {ReservationStatus(s) for s in statuses}
        calendar_version, records = self._store._screen_snapshot(screen_id)
        self.screen_versions.setdefault(screen_id, calendar_version)

        merged = {r.id: r for r in records}
        for pending in list(self.writes.values()) + list(self.inserts.values()):
            if pending.screen_id == screen_id:
                merged[pending.id] = pending.copy()
        return [r for r in merged.values() if r.status in wanted]

    def add(self, reservation: Reservation) -> None:
        if reservation.id in self.inserts or self._store._snapshot(reservation.id) is not None:
            raise ValueError(f"Reservation {reservation.id} already exists")
        self.inserts[reservation.id] = reservation.copy()
        self._originals[reservation.id] = reservation
        self.collect_events(reservation)

    def save(self, reservation: Reservation) -> None:
        if reservation.id in self.inserts:
            self.inserts[reservation.id] = reservation.copy()
        elif reservation.id in self.read_versions:
            self.writes[reservation.id] = reservation.copy()
        else:
            raise ValueError(f"Reservation {reservation.id} must be read in this transaction before saving")
        self._originals[reservation.id] = reservation
        self.collect_events(reservation)

    def commit(self):
        try:
            versions = self._store._commit(self)
        except ConcurrencyConflict:
            self.rollback()
            raise

        for reservation_id, version in versions.items():
            self._originals[reservation_id].version = version

        events = self._take_events()
        if events:
            self._publish_events(events)


class InMemoryReservationStore(ReservationStore):
    """Dictionary backed store with per-record and per-screen versions"""

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, Reservation] = {}
        self._calendar_versions: Dict[str, int] = {}

    # ----- non-transactional reads -----

    def get(self, reservation_id: str) -> Reservation | None:
        return self._snapshot(reservation_id)

    def query_by_screen(
        self,
        screen_id: str,
        statuses: Iterable[ReservationStatus] | None = None,
    ) -> List[Reservation]:
        _, records = self._screen_snapshot(screen_id)
        if statuses is not None:
            wanted = {ReservationStatus(s) for s in statuses}
            records = [r for r in records if r.status in wanted]
        return records

    def query_by_party(self, field: str, value: str) -> List[Reservation]:
        if field not in PARTY_FIELDS:
            raise ValueError(f"Cannot query reservations by {field}")
        with self._lock:
            matches = [r.copy() for r in self._records.values() if getattr(r, field) == value]
        return newest_first(matches)

    # ----- transactions -----

    def transact(self, fn: Callable[[StoreTransaction], T]) -> T:
        txn = InMemoryTransaction(self)
        with txn:
            result = fn(txn)
        return result

    def _snapshot(self, reservation_id: str) -> Reservation | None:
        with self._lock:
            record = self._records.get(reservation_id)
            return record.copy() if record else None

    def _screen_snapshot(self, screen_id: str) -> tuple[int, List[Reservation]]:
        with self._lock:
            version = self._calendar_versions.get(screen_id, 0)
            records = [r.copy() for r in self._records.values() if r.screen_id == screen_id]
        return version, records

    def _commit(self, txn: InMemoryTransaction) -> Dict[str, int]:
        """
        Validate the transaction's reads and apply its writes atomically

        Returns the new version of every written reservation.
        """
        with self._lock:
            for reservation_id, seen in txn.read_versions.items():
                current = self._records.get(reservation_id)
                current_version = current.version if current else None
                if current_version != seen:
                    logger.warning(
                        f"Rejecting commit: reservation {reservation_id} moved "
                        f"from version {seen} to {current_version}"
                    )
                    raise ConcurrencyConflict(reservation_id)

            for reservation_id in txn.inserts:
                if reservation_id in self._records:
                    raise ConcurrencyConflict(reservation_id)

            touched_screens = set()
            for reservation_id, new in txn.writes.items():
                old = self._records[reservation_id]
                if old.is_committed != new.is_committed:
                    touched_screens.add(new.screen_id)
            for new in txn.inserts.values():
                if new.is_committed:
                    touched_screens.add(new.screen_id)

            for screen_id in touched_screens:
                seen = txn.screen_versions.get(screen_id)
                current = self._calendar_versions.get(screen_id, 0)
                if seen is not None and seen != current:
                    logger.warning(
                        f"Rejecting commit: calendar of screen {screen_id} moved "
                        f"from version {seen} to {current}"
                    )
                    raise ConcurrencyConflict(screen_id)

            versions: Dict[str, int] = {}
            for reservation_id, new in txn.writes.items():
                stored = new.copy()
                stored.version = self._records[reservation_id].version + 1
                self._records[reservation_id] = stored
                versions[reservation_id] = stored.version
            for reservation_id, new in txn.inserts.items():
                stored = new.copy()
                stored.version = 1
                self._records[reservation_id] = stored
                versions[reservation_id] = stored.version

            for screen_id in touched_screens:
                self._calendar_versions[screen_id] = self._calendar_versions.get(screen_id, 0) + 1

            return versions
