"""Unit tests for haversine distance and the fare engine."""

from datetime import datetime, timezone

import pytest

from src.domain.distance import distance_km
from src.domain.pricing import (
    PricingEngine,
    StandardPricing,
    TimeBasedPricing,
    estimate_duration_minutes,
    estimate_fare,
    is_rush_hour,
    time_based_fare,
)

NAIROBI = (-1.2921, 36.8219)
MOMBASA = (-4.0435, 39.6682)
CBD = (-1.2833, 36.8167)
WESTLANDS = (-1.2676, 36.8108)


def _utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 10, hour, minute, tzinfo=timezone.utc)


class TestDistance:
    def test_same_point_is_zero(self):
        assert distance_km(*CBD, *CBD) == 0.0

    def test_symmetric(self):
        assert distance_km(*NAIROBI, *MOMBASA) == pytest.approx(distance_km(*MOMBASA, *NAIROBI))

    def test_nairobi_to_mombasa(self):
        assert 430 < distance_km(*NAIROBI, *MOMBASA) < 450

    def test_one_degree_of_latitude(self):
        assert distance_km(0.0, 36.8, 1.0, 36.8) == pytest.approx(111.19, abs=0.01)

    def test_antipodal_points(self):
        assert distance_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(20015.09, abs=0.1)


class TestFareFormula:
    def test_zero_distance_is_base_fare(self):
        assert estimate_fare(0.0) == 50.0

    def test_ten_km(self):
        assert estimate_fare(10.0) == 300.0  # 50 + 10 * 25

    def test_duration_is_three_minutes_per_km(self):
        assert estimate_duration_minutes(10.0) == 30
        assert estimate_duration_minutes(1.8) == 5

    def test_time_based_off_peak(self):
        assert time_based_fare(10.0, 30) == 360.0  # 50 + 250 + 60

    def test_time_based_rush_hour_surge(self):
        assert time_based_fare(10.0, 30, rush_hour=True) == 540.0

    def test_time_based_floor(self):
        assert time_based_fare(0.5, 2) == 100.0


class TestRushHour:
    @pytest.mark.parametrize(
        "utc_hour, expected",
        [
            (3, False),   # 06:00 Nairobi
            (4, True),    # 07:00
            (6, True),    # 09:00
            (7, False),   # 10:00
            (14, True),   # 17:00
            (16, True),   # 19:00
            (17, False),  # 20:00
        ],
    )
    def test_nairobi_windows(self, utc_hour, expected):
        assert is_rush_hour(_utc(utc_hour)) is expected

    def test_naive_time_is_treated_as_utc(self):
        assert is_rush_hour(datetime(2026, 3, 10, 4, 30)) is True


class TestStrategies:
    def test_standard_pricing_ignores_minutes(self):
        assert StandardPricing().calculate(4.0, 12, 50.0, 25.0) == 150.0

    def test_time_based_pricing_with_surge(self):
        strategy = TimeBasedPricing(rate_per_minute=2.0, surge_multiplier=1.5, minimum_fare=100.0)
        assert strategy.calculate(4.0, 12, 50.0, 25.0) == pytest.approx(261.0)  # 174 * 1.5


class TestPricingEngine:
    def test_quote_uses_standard_formula(self):
        quote = PricingEngine().quote(*NAIROBI, *MOMBASA)
        assert quote.fare == pytest.approx(round(estimate_fare(quote.distance_km), 2), abs=0.05)
        assert quote.duration_minutes == estimate_duration_minutes(distance_km(*NAIROBI, *MOMBASA))

    def test_short_trip_is_floored_at_minimum(self):
        quote = PricingEngine().quote(*CBD, *CBD)
        assert quote.distance_km == 0.0
        assert quote.fare == 100.0

    def test_time_based_engine_surges_in_rush_hour(self):
        engine = PricingEngine(time_based=True)
        off_peak = engine.quote(*NAIROBI, *MOMBASA, at=_utc(8))
        peak = engine.quote(*NAIROBI, *MOMBASA, at=_utc(5))
        assert peak.fare == pytest.approx(off_peak.fare * 1.5, rel=1e-6)

    def test_strategy_selection(self):
        assert isinstance(PricingEngine().strategy(), StandardPricing)
        assert isinstance(PricingEngine(time_based=True).strategy(_utc(8)), TimeBasedPricing)

    def test_from_settings(self, settings):
        engine = PricingEngine.from_settings(settings.model_copy(update={"base_fare": 80.0}))
        assert engine.base_fare == 80.0
        assert engine.rate_per_km == 25.0
