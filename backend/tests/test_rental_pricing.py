"""
Unit tests for the rental pricing engine.

Tests cover:
- Duration normalization (ceiling hours, one-day floor, reversed windows)
- First-fit tier resolution
- Price calculation for flat, per-hour, per-day and tiered models
- Quantity linearity and flat-price invariance
- Configuration errors for uncovered durations
"""
import pytest
from datetime import datetime, timedelta, timezone

from models import Duration, PricingModel, PricingTier, TierUnitType
from rental_pricing import (
    PricingConfigurationError,
    calculate_duration,
    calculate_price,
    calculate_price_by_model,
    calculate_tiered_price,
    error_price_result,
    find_applicable_tier,
    quote_rental_price,
)

PICKUP = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_tier(tier_id, tier_order, min_hours, max_hours, price, unit_type, active=True, description=None):
    return PricingTier(
        id=tier_id,
        listing_id=1,
        tier_order=tier_order,
        min_duration_hours=min_hours,
        max_duration_hours=max_hours,
        price_per_unit=price,
        unit_type=unit_type,
        active=active,
        description=description,
    )


# =============================================================================
# Unit Tests: calculate_duration()
# =============================================================================

class TestCalculateDuration:
    """Tests for duration normalization."""

    def test_whole_hours(self):
        """Exactly 30 hours is 30 hours and 2 days."""
        duration = calculate_duration(PICKUP, PICKUP + timedelta(hours=30))
        assert duration == Duration(hours=30, days=2)

    def test_partial_hour_rounds_up(self):
        """Any started hour is billable."""
        duration = calculate_duration(PICKUP, PICKUP + timedelta(hours=2, minutes=1))
        assert duration.hours == 3

    def test_exactly_24_hours_is_one_day(self):
        """24 hours is one day, not two."""
        duration = calculate_duration(PICKUP, PICKUP + timedelta(hours=24))
        assert duration == Duration(hours=24, days=1)

    def test_25_hours_is_two_days(self):
        """Days round up from hours."""
        assert calculate_duration(PICKUP, PICKUP + timedelta(hours=25)).days == 2

    def test_short_rental_bills_one_day(self):
        """A 1 hour rental still counts as one day."""
        assert calculate_duration(PICKUP, PICKUP + timedelta(hours=1)).days == 1

    def test_same_instant_clamps_to_zero_hours_one_day(self):
        """Dropoff equal to pickup gives 0 hours but 1 day."""
        assert calculate_duration(PICKUP, PICKUP) == Duration(hours=0, days=1)

    @pytest.mark.parametrize("hours_before", [1, 5, 48])
    def test_dropoff_before_pickup_never_negative(self, hours_before):
        """Reversed windows clamp to 0 hours and 1 day."""
        duration = calculate_duration(PICKUP, PICKUP - timedelta(hours=hours_before))
        assert duration.hours == 0
        assert duration.days == 1

    def test_accepts_iso_strings(self):
        """ISO-8601 strings, including a Z suffix, are accepted."""
        duration = calculate_duration("2026-03-02T09:00:00Z", "2026-03-03T15:00:00+00:00")
        assert duration == Duration(hours=30, days=2)

    @pytest.mark.parametrize("pickup,dropoff", [
        ("2026-03-02T09:00:00", "2026-03-03T15:00:00Z"),
        ("2026-03-02T09:00:00Z", "2026-03-03T15:00:00"),
        (datetime(2026, 3, 2, 9), "2026-03-03T15:00:00+00:00"),
        (PICKUP, datetime(2026, 3, 3, 15)),
    ])
    def test_naive_timestamps_are_utc(self, pickup, dropoff):
        """A timestamp without an offset can be mixed with an aware one."""
        assert calculate_duration(pickup, dropoff) == Duration(hours=30, days=2)

    def test_offsets_are_respected(self):
        duration = calculate_duration("2026-03-02T09:00:00+02:00", "2026-03-02T09:00:00Z")
        assert duration == Duration(hours=2, days=1)

    def test_invalid_timestamp_raises_value_error(self):
        with pytest.raises(ValueError):
            calculate_duration("not-a-date", "2026-03-03T15:00:00Z")


# =============================================================================
# Unit Tests: find_applicable_tier()
# =============================================================================

class TestFindApplicableTier:
    """Tests for first-fit tier resolution."""

    def test_30_hours_resolves_to_multi_day_tier(self, scenario_tiers):
        """30 hours falls in the 24-168h tier."""
        tier = find_applicable_tier(scenario_tiers, 30)
        assert tier.description == "Multi-Day"

    def test_shared_boundary_goes_to_earlier_tier(self, scenario_tiers):
        """4 hours is covered by both 0-4h and 4-24h; tier_order decides."""
        assert find_applicable_tier(scenario_tiers, 4).description == "Half Day"
        assert find_applicable_tier(scenario_tiers, 24).description == "Full Day"

    def test_open_ended_tier_covers_long_rentals(self, scenario_tiers):
        """The tier without max covers anything past its minimum."""
        assert find_applicable_tier(scenario_tiers, 10_000).description == "Weekly+"

    def test_unsorted_input_uses_tier_order(self, scenario_tiers):
        """Input order does not matter, tier_order does."""
        assert find_applicable_tier(list(reversed(scenario_tiers)), 4).description == "Half Day"

    def test_inactive_tiers_are_ignored(self):
        """A deactivated tier never matches."""
        tiers = [
            make_tier(1, 1, 0, 24, 10, TierUnitType.FLAT, active=False),
            make_tier(2, 2, 0, 48, 20, TierUnitType.FLAT),
        ]
        assert find_applicable_tier(tiers, 10).id == 2

    def test_first_fit_not_tightest_fit(self):
        """With overlapping tiers the lower tier_order wins, not the narrower range."""
        wide = make_tier(1, 1, 0, 100, 10, TierUnitType.FLAT)
        narrow = make_tier(2, 2, 10, 20, 99, TierUnitType.FLAT)
        assert find_applicable_tier([narrow, wide], 15).id == 1

    def test_no_tier_covers_duration(self):
        """Returns None when nothing covers the duration."""
        tiers = [make_tier(1, 1, 0, 24, 10, TierUnitType.FLAT)]
        assert find_applicable_tier(tiers, 48) is None

    def test_gap_between_tiers(self):
        """Gaps are allowed and resolve to None."""
        tiers = [
            make_tier(1, 1, 0, 4, 10, TierUnitType.FLAT),
            make_tier(2, 2, 8, None, 20, TierUnitType.FLAT),
        ]
        assert find_applicable_tier(tiers, 6) is None

    def test_empty_table(self):
        assert find_applicable_tier([], 5) is None


# =============================================================================
# Unit Tests: calculate_price_by_model()
# =============================================================================

class TestCalculatePriceByModel:
    """Tests for single-rate pricing models."""

    def test_flat(self):
        result = calculate_price_by_model(PricingModel.FLAT, 45.0, Duration(hours=30, days=2), 2)
        assert result.price == 90.0
        assert result.unit_price == 45.0
        assert result.breakdown.model == "flat"
        assert result.breakdown.base_price == 45.0
        assert result.breakdown.subtotal == 90.0

    def test_per_hour(self):
        result = calculate_price_by_model(PricingModel.PER_HOUR, 12.5, Duration(hours=3, days=1), 1)
        assert result.price == 37.5
        assert result.breakdown.model == "per_hour"
        assert result.breakdown.rate == 12.5
        assert result.breakdown.hours == 3

    def test_per_hour_zero_hours_is_free(self):
        """A zero-length per-hour rental costs nothing."""
        result = calculate_price_by_model(PricingModel.PER_HOUR, 12.5, Duration(hours=0, days=1), 1)
        assert result.price == 0

    def test_per_day(self):
        result = calculate_price_by_model(PricingModel.PER_DAY, 80.0, Duration(hours=30, days=2), 3)
        assert result.price == 480.0
        assert result.unit_price == 160.0
        assert result.breakdown.days == 2
        assert result.breakdown.quantity == 3

    def test_accepts_model_string(self):
        result = calculate_price_by_model("per_day", 10.0, Duration(hours=1, days=1))
        assert result.price == 10.0

    def test_tiered_model_rejected(self):
        """Tiered pricing cannot be computed from a single rate."""
        with pytest.raises(ValueError):
            calculate_price_by_model(PricingModel.TIERED, 10.0, Duration(hours=1, days=1))

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_rejected(self, quantity):
        with pytest.raises(ValueError, match="Quantity"):
            calculate_price_by_model(PricingModel.FLAT, 10.0, Duration(hours=1, days=1), quantity)


# =============================================================================
# Unit Tests: calculate_tiered_price() / calculate_price()
# =============================================================================

class TestTieredPricing:
    """Tests for tiered pricing."""

    def test_scenario_30_hours(self, scenario_tiers):
        """30 hours on the 24-168h tier prices at 2 days x $80."""
        result = calculate_price(PricingModel.TIERED, scenario_tiers, Duration(hours=30, days=2), 1)
        assert result.price == 160.0
        assert result.breakdown.model == "tiered"
        assert result.breakdown.tier == "Multi-Day"
        assert result.breakdown.unit_type == TierUnitType.DAY
        assert result.breakdown.rate == 80.0
        assert result.breakdown.days == 2

    @pytest.mark.parametrize("hours,expected", [
        (0, 50.0),     # Half day, zero-length window
        (2, 50.0),     # Half day
        (4, 50.0),     # Boundary goes to the first tier
        (5, 80.0),     # Full day
        (24, 80.0),    # Boundary goes to full day
        (30, 160.0),   # 2 days x $80
        (168, 560.0),  # 7 days x $80
        (200, 612.0),  # 9 days x $68
    ])
    def test_scenario_prices(self, scenario_tiers, hours, expected):
        duration = Duration(hours=hours, days=max(1, -(-hours // 24)))
        assert calculate_price(PricingModel.TIERED, scenario_tiers, duration).price == expected

    def test_hourly_tier(self):
        tier = make_tier(1, 1, 0, None, 7.5, TierUnitType.HOUR)
        result = calculate_tiered_price(tier, Duration(hours=6, days=1), 2)
        assert result.unit_price == 45.0
        assert result.price == 90.0
        assert result.breakdown.hours == 6

    def test_day_tier_bills_at_least_one_day(self):
        """A zero-hour rental on a per-day tier still bills one day."""
        tier = make_tier(1, 1, 0, None, 30.0, TierUnitType.DAY)
        result = calculate_tiered_price(tier, Duration(hours=0, days=1))
        assert result.price == 30.0

    def test_tier_label_falls_back_to_order(self):
        tier = make_tier(1, 3, 0, None, 10.0, TierUnitType.FLAT)
        assert calculate_tiered_price(tier, Duration(hours=1, days=1)).breakdown.tier == "Tier 3"

    def test_no_matching_tier_raises(self):
        """Tiers covering only 0-24h cannot price 48 hours."""
        tiers = [make_tier(1, 1, 0, 24, 80.0, TierUnitType.FLAT)]
        with pytest.raises(PricingConfigurationError, match="48 hours"):
            calculate_price(PricingModel.TIERED, tiers, Duration(hours=48, days=2))

    def test_configuration_error_is_a_value_error(self):
        assert issubclass(PricingConfigurationError, ValueError)


# =============================================================================
# Property Tests
# =============================================================================

class TestPricingProperties:
    """Determinism, linearity and invariance across models."""

    MODELS = [
        (PricingModel.FLAT, 45.0),
        (PricingModel.PER_HOUR, 12.5),
        (PricingModel.PER_DAY, 80.0),
    ]

    @pytest.mark.parametrize("hours", [0, 3, 30, 200])
    @pytest.mark.parametrize("quantity", [1, 2, 7])
    def test_quantity_linearity_single_rate(self, hours, quantity):
        duration = calculate_duration(PICKUP, PICKUP + timedelta(hours=hours))
        for model, rate in self.MODELS:
            single = calculate_price(model, rate, duration, 1).price
            assert calculate_price(model, rate, duration, quantity).price == quantity * single

    @pytest.mark.parametrize("hours", [0, 3, 30, 200])
    @pytest.mark.parametrize("quantity", [1, 2, 7])
    def test_quantity_linearity_tiered(self, scenario_tiers, hours, quantity):
        duration = calculate_duration(PICKUP, PICKUP + timedelta(hours=hours))
        single = calculate_price(PricingModel.TIERED, scenario_tiers, duration, 1).price
        result = calculate_price(PricingModel.TIERED, scenario_tiers, duration, quantity)
        assert result.price == quantity * single
        assert result.unit_price == single

    def test_deterministic(self, scenario_tiers):
        duration = Duration(hours=30, days=2)
        prices = {calculate_price(PricingModel.TIERED, scenario_tiers, duration, 3).price for _ in range(20)}
        assert prices == {480.0}

    @pytest.mark.parametrize("hours", [0, 1, 23, 24, 25, 500])
    def test_flat_price_ignores_window(self, hours):
        result = quote_rental_price(PricingModel.FLAT, 45.0, PICKUP, PICKUP + timedelta(hours=hours), 2)
        assert result.total_price == 90.0


# =============================================================================
# Unit Tests: quote_rental_price() / error_price_result()
# =============================================================================

class TestQuoteRentalPrice:
    """Tests for end-to-end local quotes."""

    def test_tiered_quote(self, scenario_tiers):
        result = quote_rental_price(
            PricingModel.TIERED, scenario_tiers, PICKUP, PICKUP + timedelta(hours=30), 1
        )
        assert result.total_price == 160.0
        assert result.unit_price == 160.0
        assert result.duration == Duration(hours=30, days=2)
        assert result.pickup_at == PICKUP
        assert result.error is None
        assert result.is_billable

    def test_uncovered_duration_is_configuration_error(self):
        """No tier for 48 hours gives a tagged zero-price result, not a price."""
        tiers = [make_tier(1, 1, 0, 24, 80.0, TierUnitType.FLAT)]
        result = quote_rental_price(
            PricingModel.TIERED, tiers, PICKUP, PICKUP + timedelta(hours=48), 1
        )
        assert result.breakdown.model == "configuration_error"
        assert result.total_price == 0
        assert result.duration.hours == 48
        assert "48 hours" in result.error
        assert not result.is_billable

    def test_empty_tier_table_is_configuration_error(self):
        result = quote_rental_price(PricingModel.TIERED, [], PICKUP, PICKUP + timedelta(hours=1))
        assert result.breakdown.model == "configuration_error"

    def test_error_result(self):
        result = error_price_result("2026-03-02T09:00:00Z", "2026-03-03T09:00:00Z", 2)
        assert result.total_price == 0
        assert result.quantity == 2
        assert result.breakdown.model == "error"
        assert result.breakdown.subtotal == 0
        assert result.error == "Failed to calculate price"
        assert not result.is_billable

    def test_error_result_with_unparsable_timestamps(self):
        """The fallback result is built even when the input could not be parsed."""
        result = error_price_result("not-a-date", "2026-03-03T09:00:00Z", 1)
        assert result.breakdown.model == "error"
        assert result.pickup_at is None
        assert result.dropoff_at == datetime(2026, 3, 3, 9, tzinfo=timezone.utc)
