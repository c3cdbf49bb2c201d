"""
Common Value Objects

Value objects used across the reservation domain:
- Money: Monetary amount in integer minor units with a currency code
- DateSet: A non-empty set of calendar days (ISO YYYY-MM-DD labels)
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Iterator

from shared.domain.base import ValueObject

ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def is_iso_date(value: str) -> bool:
    """Accepts real calendar dates written as YYYY-MM-DD only"""
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Amount is kept in minor currency units (cents), so no rounding ever
    happens inside the domain.
    """
    amount: int
    currency: str = 'usd'

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError("Amount must be an integer number of minor units")
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")
        if not self.currency:
            raise ValueError("Currency is required")
        object.__setattr__(self, 'currency', self.currency.strip().lower())

    def __str__(self):
        return f"{self.amount / 100:,.2f} {self.currency.upper()}"

    def __repr__(self):
        return f"Money({self.amount}, '{self.currency}')"


@dataclass(frozen=True)
class DateSet(ValueObject):
    """
    Set of booked calendar days

    Days are opaque labels compared for equality; no timezone arithmetic is
    performed on them. ISO formatting makes string order equal to calendar
    order, which the time-driven transitions rely on.
    """
    days: tuple[str, ...]

    def __post_init__(self):
        if not self.days:
            raise ValueError("Reservation must include at least one date")
        bad = [d for d in self.days if not is_iso_date(d)]
        if bad:
            raise ValueError(f"All reservation dates must be ISO YYYY-MM-DD, got {bad}")

    @classmethod
    def from_iterable(cls, values: Iterable[str]) -> 'DateSet':
        """Trim, de-duplicate and sort the incoming labels"""
        if isinstance(values, str):
            raise ValueError("Dates must be a list of ISO strings, not a single string")
        cleaned = {v.strip() if isinstance(v, str) else v for v in values}
        try:
            ordered = tuple(sorted(cleaned))
        except TypeError:
            raise ValueError("All reservation dates must be ISO YYYY-MM-DD strings")
        return cls(ordered)

    def as_set(self) -> frozenset[str]:
        return frozenset(self.days)

    def overlap(self, other: Iterable[str]) -> frozenset[str]:
        return self.as_set() & frozenset(other)

    def __contains__(self, day: object) -> bool:
        return day in self.days

    def __iter__(self) -> Iterator[str]:
        return iter(self.days)

    def __len__(self) -> int:
        return len(self.days)

    @property
    def first(self) -> str:
        return self.days[0]

    @property
    def last(self) -> str:
        return self.days[-1]

    def __str__(self):
        return ', '.join(self.days)

    def __repr__(self):
        return f"DateSet({list(self.days)})"
