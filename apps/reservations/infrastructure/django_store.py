"""
Django ORM reservation store

Optimistic concurrency on top of transaction.atomic():
- every write is a conditional UPDATE on the version that was read; zero
  affected rows means someone else committed first
- a change of a reservation's committed membership bumps its ScreenCalendar
  row, conditionally on the version observed when the screen's committed
  set was read in the same transaction
- committed days are also claimed as ReservationDate rows under a unique
  (screen_id, day) constraint

Conflicts are detected eagerly while ``fn`` runs; the exception aborts the
atomic block, so nothing of the transaction is written.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict, Iterable, List

from django.db import IntegrityError, transaction  # type: ignore
from django.db.models import F  # type: ignore

from shared.application.uow import DjangoUnitOfWork
from apps.reservations import models
from apps.reservations.application.store import (
    PARTY_FIELDS,
    ReservationStore,
    StoreTransaction,
    T,
)
from apps.reservations.domain.entities import Reservation
from apps.reservations.domain.exceptions import ConcurrencyConflict
from apps.reservations.domain.status_machine import ReservationStatus, is_committed

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = ("status", "charge_ref", "cancelled_by", "cancellation_reason", "updated_at")


def to_domain(row: models.Reservation) -> Reservation:
    return Reservation(
        id=row.id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        screen_id=row.screen_id,
        owner_id=row.owner_id,
        renter_id=row.renter_id,
        dates=row.dates,
        amount_total=row.amount_total,
        currency=row.currency,
        content_id=row.content_id,
        special_instructions=row.special_instructions,
        status=ReservationStatus(row.status),
        charge_ref=row.charge_ref,
        cancelled_by=row.cancelled_by,
        cancellation_reason=row.cancellation_reason,
        version=row.version,
    )


def _mutable_values(reservation: Reservation) -> dict:
    return {
        "status": reservation.status.value,
        "charge_ref": reservation.charge_ref,
        "cancelled_by": reservation.cancelled_by,
        "cancellation_reason": reservation.cancellation_reason,
        "updated_at": reservation.updated_at,
    }


class DjangoStoreTransaction(DjangoUnitOfWork, StoreTransaction):
    """One atomic block with version checks on every write"""

    def __init__(self):
        super().__init__()
        self._versions: Dict[str, int] = {}
        self._committed: Dict[str, bool] = {}
        self._screen_versions: Dict[str, int] = {}
        self._pending: Dict[str, Reservation] = {}

    def get(self, reservation_id: str) -> Reservation | None:
        if reservation_id in self._pending:
            return self._pending[reservation_id].copy()

        row = models.Reservation.objects.filter(pk=reservation_id).first()
        if row is None:
            return None
        self._remember(row.id, row.version, ReservationStatus(row.status))
        return to_domain(row)

    def query_by_screen(
        self,
        screen_id: str,
        statuses: Iterable[ReservationStatus],
    ) -> List[Reservation]:
        wanted = {ReservationStatus(s) for s in statuses}

        # Calendar version first: anything committed after it is caught at write time
        calendar, _ = models.ScreenCalendar.objects.get_or_create(screen_id=screen_id)
        self._screen_versions.setdefault(screen_id, calendar.version)

        merged: Dict[str, Reservation] = {}
        rows = models.Reservation.objects.filter(
            screen_id=screen_id,
            status__in=[s.value for s in wanted],
        )
        for row in rows:
            self._remember(row.id, row.version, ReservationStatus(row.status))
            merged[row.id] = to_domain(row)
        for pending in self._pending.values():
            if pending.screen_id == screen_id:
                merged[pending.id] = pending.copy()
        return [r for r in merged.values() if r.status in wanted]

    def add(self, reservation: Reservation) -> None:
        if reservation.id in self._pending or models.Reservation.objects.filter(pk=reservation.id).exists():
            raise ValueError(f"Reservation {reservation.id} already exists")

        models.Reservation.objects.create(
            id=reservation.id,
            created_at=reservation.created_at,
            screen_id=reservation.screen_id,
            owner_id=reservation.owner_id,
            renter_id=reservation.renter_id,
            dates=list(reservation.dates),
            amount_total=reservation.amount_total,
            currency=reservation.currency,
            content_id=reservation.content_id,
            special_instructions=reservation.special_instructions,
            version=1,
            **_mutable_values(reservation),
        )
        reservation.version = 1
        self._versions[reservation.id] = 1
        self._committed[reservation.id] = False
        if reservation.is_committed:
            self._move_calendar(reservation)
            self._committed[reservation.id] = True

        self._pending[reservation.id] = reservation.copy()
        self.collect_events(reservation)

    def save(self, reservation: Reservation) -> None:
        if reservation.id not in self._versions:
            raise ValueError(f"Reservation {reservation.id} must be read in this transaction before saving")

        expected = self._versions[reservation.id]
        updated = models.Reservation.objects.filter(
            pk=reservation.id,
            version=expected,
        ).update(version=expected + 1, **_mutable_values(reservation))
        if updated == 0:
            logger.warning(f"Rejecting write: reservation {reservation.id} moved past version {expected}")
            raise ConcurrencyConflict(reservation.id)

        reservation.version = expected + 1
        self._versions[reservation.id] = expected + 1

        if self._committed[reservation.id] != reservation.is_committed:
            self._move_calendar(reservation)
            self._committed[reservation.id] = reservation.is_committed

        self._pending[reservation.id] = reservation.copy()
        self.collect_events(reservation)

    def _remember(self, reservation_id: str, version: int, status: ReservationStatus):
        if reservation_id not in self._versions:
            self._versions[reservation_id] = version
            self._committed[reservation_id] = is_committed(status)

    def _move_calendar(self, reservation: Reservation):
        """Reservation entered or left a committed status"""
        screen_id = reservation.screen_id
        seen = self._screen_versions.get(screen_id)

        if seen is None:
            models.ScreenCalendar.objects.get_or_create(screen_id=screen_id)
            models.ScreenCalendar.objects.filter(pk=screen_id).update(version=F("version") + 1)
        else:
            updated = models.ScreenCalendar.objects.filter(
                pk=screen_id,
                version=seen,
            ).update(version=seen + 1)
            if updated == 0:
                logger.warning(f"Rejecting write: calendar of screen {screen_id} moved past version {seen}")
                raise ConcurrencyConflict(screen_id)
            self._screen_versions[screen_id] = seen + 1

        if reservation.is_committed:
            claims = [
                models.ReservationDate(
                    reservation_id=reservation.id,
                    screen_id=screen_id,
                    day=date.fromisoformat(day),
                )
                for day in reservation.dates
            ]
            try:
                with transaction.atomic():
                    models.ReservationDate.objects.bulk_create(claims)
            except IntegrityError as e:
                logger.warning(f"Day already claimed on screen {screen_id}: {e}")
                raise ConcurrencyConflict(screen_id) from e
        else:
            models.ReservationDate.objects.filter(reservation_id=reservation.id).delete()


class DjangoReservationStore(ReservationStore):
    """Store backed by the default database"""

    def get(self, reservation_id: str) -> Reservation | None:
        row = models.Reservation.objects.filter(pk=reservation_id).first()
        return to_domain(row) if row else None

    def query_by_screen(
        self,
        screen_id: str,
        statuses: Iterable[ReservationStatus] | None = None,
    ) -> List[Reservation]:
        qs = models.Reservation.objects.filter(screen_id=screen_id)
        if statuses is not None:
            qs = qs.filter(status__in=[ReservationStatus(s).value for s in statuses])
        return [to_domain(row) for row in qs]

    def query_by_party(self, field: str, value: str) -> List[Reservation]:
        if field not in PARTY_FIELDS:
            raise ValueError(f"Cannot query reservations by {field}")
        qs = models.Reservation.objects.filter(**{field: value}).order_by("-created_at", "id")
        return [to_domain(row) for row in qs]

    def transact(self, fn: Callable[[StoreTransaction], T]) -> T:
        with DjangoStoreTransaction() as txn:
            return fn(txn)
