"""
Conflict Checker

Computes which calendar days a screen has already committed and reports
overlap against a candidate set of days.

The committed set is derived, never stored: it is recomputed from the
committed reservations visible to the *current* store transaction on every
call. Reading it through a separate round trip, or caching it across calls,
reopens the check-then-act race the accept transaction exists to close.
"""

from __future__ import annotations

from typing import Iterable, TYPE_CHECKING

from apps.reservations.domain.status_machine import COMMITTED_STATUSES

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from apps.reservations.application.store import StoreTransaction


def committed_dates(
    txn: "StoreTransaction",
    screen_id: str,
    *,
    exclude_id: str | None = None,
) -> frozenset[str]:
    """
    Union of dates across the screen's reservations in a committed status

    Args:
        txn: Open store transaction; the read becomes part of its read set
        screen_id: Screen whose calendar is inspected
        exclude_id: Reservation whose own dates must not count against itself
    """
    days: set[str] = set()
    for reservation in txn.query_by_screen(screen_id, COMMITTED_STATUSES):
        if exclude_id is not None and reservation.id == exclude_id:
            continue
        days.update(reservation.dates)
    return frozenset(days)


def overlap(candidate: Iterable[str], committed: Iterable[str]) -> frozenset[str]:
    """Days present in both sets, in no particular order"""
    return frozenset(candidate) & frozenset(committed)


def format_dates(days: Iterable[str]) -> str:
    """Sorted, comma separated rendering for messages"""
    return ', '.join(sorted(days))
