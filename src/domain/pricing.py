"""
Fare Engine  (Strategy Pattern)
===============================

Standard formula
----------------
Fare = Base_Fare + Distance x Rate_Per_KM            (KES 50 + KES 25 / km)

Time-based formula
------------------
Fare = (Base_Fare + Distance x Rate_Per_KM + Minutes x Rate_Per_Minute)
       x Surge_Multiplier (rush hour only), floored at Minimum_Fare

* **Rush hour**: 07:00-09:59 and 17:00-19:59, Nairobi local time.
* **Duration**: a linear 3 minutes per km.  Not validated against real
  traffic data, so every duration here is approximate.

Complexity: O(1) per fare calculation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from .distance import distance_km

BASE_FARE = 50.0
RATE_PER_KM = 25.0
RATE_PER_MINUTE = 2.0
MINIMUM_FARE = 100.0
SURGE_MULTIPLIER = 1.5
MINUTES_PER_KM = 3

NAIROBI = ZoneInfo("Africa/Nairobi")
RUSH_HOURS = (range(7, 10), range(17, 20))


def estimate_fare(distance: float) -> float:
    """Standard fare for *distance* km."""
    return BASE_FARE + RATE_PER_KM * distance


def estimate_duration_minutes(distance: float) -> int:
    return round(distance * MINUTES_PER_KM)


def is_rush_hour(moment: datetime | None = None) -> bool:
    """Whether *moment* (default now) falls in a Nairobi rush-hour window."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    hour = moment.astimezone(NAIROBI).hour
    return any(hour in window for window in RUSH_HOURS)


def time_based_fare(
    distance: float, minutes: int, rush_hour: bool = False
) -> float:
    return TimeBasedPricing(
        rate_per_minute=RATE_PER_MINUTE,
        surge_multiplier=SURGE_MULTIPLIER if rush_hour else 1.0,
        minimum_fare=MINIMUM_FARE,
    ).calculate(distance, minutes, BASE_FARE, RATE_PER_KM)


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(
        self, distance: float, minutes: int, base_fare: float, rate_per_km: float
    ) -> float: ...


class StandardPricing(PricingStrategy):
    def calculate(
        self, distance: float, minutes: int, base_fare: float, rate_per_km: float
    ) -> float:
        return base_fare + distance * rate_per_km


class TimeBasedPricing(PricingStrategy):
    """Distance + time, with rush-hour surge and a minimum fare."""

    def __init__(
        self,
        rate_per_minute: float = RATE_PER_MINUTE,
        surge_multiplier: float = 1.0,
        minimum_fare: float = MINIMUM_FARE,
    ):
        self.rate_per_minute = rate_per_minute
        self.surge_multiplier = surge_multiplier
        self.minimum_fare = minimum_fare

    def calculate(
        self, distance: float, minutes: int, base_fare: float, rate_per_km: float
    ) -> float:
        raw = base_fare + distance * rate_per_km + minutes * self.rate_per_minute
        return max(self.minimum_fare, raw * self.surge_multiplier)


# ── Engine facade ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class FareQuote:
    distance_km: float
    duration_minutes: int
    fare: float


class PricingEngine:
    """High-level API used by the ride lifecycle and the API layer."""

    def __init__(
        self,
        base_fare: float = BASE_FARE,
        rate_per_km: float = RATE_PER_KM,
        rate_per_minute: float = RATE_PER_MINUTE,
        minimum_fare: float = MINIMUM_FARE,
        surge_multiplier: float = SURGE_MULTIPLIER,
        time_based: bool = False,
    ):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km
        self.rate_per_minute = rate_per_minute
        self.minimum_fare = minimum_fare
        self.surge_multiplier = surge_multiplier
        self.time_based = time_based

    @classmethod
    def from_settings(cls, settings) -> "PricingEngine":
        return cls(
            base_fare=settings.base_fare,
            rate_per_km=settings.rate_per_km,
            rate_per_minute=settings.rate_per_minute,
            minimum_fare=settings.minimum_fare,
            surge_multiplier=settings.surge_multiplier,
            time_based=settings.use_time_based_fare,
        )

    def strategy(self, at: datetime | None = None) -> PricingStrategy:
        if not self.time_based:
            return StandardPricing()
        surge = self.surge_multiplier if is_rush_hour(at) else 1.0
        return TimeBasedPricing(self.rate_per_minute, surge, self.minimum_fare)

    def quote(
        self,
        pickup_lat: float,
        pickup_lng: float,
        dropoff_lat: float,
        dropoff_lng: float,
        at: datetime | None = None,
    ) -> FareQuote:
        """Estimate distance, duration and fare; never below the minimum fare."""
        distance = distance_km(pickup_lat, pickup_lng, dropoff_lat, dropoff_lng)
        minutes = estimate_duration_minutes(distance)
        fare = self.strategy(at).calculate(
            distance, minutes, self.base_fare, self.rate_per_km
        )
        return FareQuote(
            distance_km=round(distance, 3),
            duration_minutes=minutes,
            fare=round(max(self.minimum_fare, fare), 2),
        )
