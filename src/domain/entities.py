"""
Domain value objects and state-machine helpers.

Patterns used
-------------
- **State Pattern** via ``transition``: every status change on a ride
  request, ride or payment is checked against its transition table in
  ``enums`` before it is applied.
- ``Principal`` is the authenticated caller handed out by the identity
  provider; services only ever see this, never the raw token.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, TypeVar

from .enums import UserType
from .errors import InvalidState

S = TypeVar("S")


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def as_text(self) -> str:
        return f"{self.latitude:.6f},{self.longitude:.6f}"


@dataclass(frozen=True)
class Principal:
    user_id: int
    user_type: UserType

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserType.ADMIN

    @property
    def is_driver(self) -> bool:
        return self.user_type == UserType.DRIVER


# ── State machine ─────────────────────────────────────────────────────


def transition(current: S, new: S, table: Mapping[S, set[S]]) -> S:
    """Return *new* if ``current -> new`` is legal in *table*, else raise."""
    if new not in table.get(current, set()):
        raise InvalidState(f"Cannot transition from {_label(current)} to {_label(new)}")
    return new


def _label(status) -> str:
    return getattr(status, "value", str(status))


# ── Ratings ───────────────────────────────────────────────────────────

MIN_RATING = 1.0
MAX_RATING = 5.0


def mean_rating(ratings: Iterable[float]) -> float:
    """Mean of all ratings received; 0.0 for a user with no reviews."""
    values = list(ratings)
    if not values:
        return 0.0
    return sum(values) / len(values)
