"""
Duration-based rental pricing.

Pure functions shared by the client preview and the server-side quote:
- Normalize a pickup/dropoff window into billable hours and days
- Resolve the applicable tier (first fit by tier_order)
- Calculate a price for the flat, per-hour, per-day and tiered models
- Validate tier tables and generate a default table from a daily rate

None of these functions perform I/O.
"""
import math
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Union

from models import (
    CONFIGURATION_ERROR,
    ERROR,
    Duration,
    PriceBreakdown,
    PriceCalculationResult,
    PriceComputation,
    PricingModel,
    PricingTier,
    TierCreateRequest,
    TierUnitType,
    TierValidationResult,
)
from pricing_display import tier_label

SECONDS_PER_HOUR = 3600
HOURS_PER_DAY = 24

# Default tier table boundaries (hours)
SHORT_TERM_MAX_HOURS = 4
FULL_DAY_MAX_HOURS = 24
MULTI_DAY_MAX_HOURS = 168


class PricingConfigurationError(ValueError):
    """The listing's pricing configuration cannot price this rental."""


def parse_timestamp(value: Union[datetime, str]) -> datetime:
    """
    Parse a datetime or ISO-8601 string into an aware datetime.

    Values without a UTC offset are taken as UTC, so naive and aware
    timestamps can be mixed in one rental window.

    Raises:
        ValueError: If a string is not an ISO-8601 timestamp
    """
    if not isinstance(value, datetime):
        # fromisoformat only accepts a trailing "Z" from Python 3.11
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp_or_none(value) -> Optional[datetime]:
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        return None


def round_money(amount: float) -> float:
    """Round to the smallest currency unit, half-up."""
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# =============================================================================
# Duration
# =============================================================================

def calculate_duration(
    pickup_at: Union[datetime, str],
    dropoff_at: Union[datetime, str],
) -> Duration:
    """
    Convert a rental window into billable hours and days.

    Hours are rounded up and never negative. Days are rounded up from
    hours and never less than 1, so every rental bills at least one day.

    Args:
        pickup_at: Start of the rental (datetime or ISO-8601 string)
        dropoff_at: End of the rental (datetime or ISO-8601 string)

    Returns:
        Duration with billable hours and days
    """
    elapsed = parse_timestamp(dropoff_at) - parse_timestamp(pickup_at)
    hours = math.ceil(max(0.0, elapsed.total_seconds()) / SECONDS_PER_HOUR)
    days = max(1, math.ceil(hours / HOURS_PER_DAY))
    return Duration(hours=hours, days=days)


# =============================================================================
# Tier resolution
# =============================================================================

def tier_covers(tier, duration_hours: float) -> bool:
    """Check whether a tier's inclusive [min, max] range covers a duration."""
    if duration_hours < tier.min_duration_hours:
        return False
    return tier.max_duration_hours is None or duration_hours <= tier.max_duration_hours


def find_applicable_tier(
    tiers: Sequence[PricingTier],
    duration_hours: float,
) -> Optional[PricingTier]:
    """
    Find the tier that prices a rental of the given length.

    Inactive tiers are ignored. The remaining tiers are evaluated in
    ascending tier_order and the first one whose range covers the duration
    wins, even if a later tier's range is tighter.

    Args:
        tiers: All tiers of a listing (active or not, any order)
        duration_hours: Billable hours of the rental

    Returns:
        The applicable tier, or None when no active tier covers the duration
    """
    active = sorted((t for t in tiers if t.active), key=lambda t: t.tier_order)
    for tier in active:
        if tier_covers(tier, duration_hours):
            return tier
    return None


# =============================================================================
# Price calculation
# =============================================================================

def _check_quantity(quantity: int) -> None:
    if quantity < 1:
        raise ValueError(f"Quantity must be a positive integer. Got {quantity}.")


def calculate_price_by_model(
    model: PricingModel,
    base_price: float,
    duration: Duration,
    quantity: int = 1,
) -> PriceComputation:
    """
    Price a rental with a single rate.

    Args:
        model: flat, per_hour or per_day
        base_price: The listing's rate
        duration: Normalized rental duration
        quantity: Number of units rented

    Returns:
        PriceComputation with total, per-unit price and breakdown

    Raises:
        ValueError: For the tiered model or a non-positive quantity
    """
    _check_quantity(quantity)
    model = PricingModel(model)

    if model == PricingModel.FLAT:
        unit_price = base_price
        breakdown = PriceBreakdown(
            model=model.value,
            base_price=base_price,
            quantity=quantity,
            subtotal=unit_price * quantity,
        )
    elif model == PricingModel.PER_HOUR:
        unit_price = base_price * duration.hours
        breakdown = PriceBreakdown(
            model=model.value,
            rate=base_price,
            hours=duration.hours,
            quantity=quantity,
            subtotal=unit_price * quantity,
        )
    elif model == PricingModel.PER_DAY:
        unit_price = base_price * duration.days
        breakdown = PriceBreakdown(
            model=model.value,
            rate=base_price,
            days=duration.days,
            quantity=quantity,
            subtotal=unit_price * quantity,
        )
    else:
        raise ValueError("Tiered pricing needs a tier table, use calculate_price()")

    return PriceComputation(
        price=unit_price * quantity,
        unit_price=unit_price,
        breakdown=breakdown,
    )


def calculate_tiered_price(
    tier: PricingTier,
    duration: Duration,
    quantity: int = 1,
) -> PriceComputation:
    """
    Price a rental with an already resolved tier.

    Flat tiers charge price_per_unit once, hour tiers multiply it by
    billable hours and day tiers by billable days. Quantity is applied
    to the resulting subtotal only.
    """
    _check_quantity(quantity)

    if tier.unit_type == TierUnitType.HOUR:
        unit_price = tier.price_per_unit * duration.hours
    elif tier.unit_type == TierUnitType.DAY:
        unit_price = tier.price_per_unit * duration.days
    else:
        unit_price = tier.price_per_unit

    return PriceComputation(
        price=unit_price * quantity,
        unit_price=unit_price,
        breakdown=PriceBreakdown(
            model=PricingModel.TIERED.value,
            tier=tier_label(tier),
            rate=tier.price_per_unit,
            unit_type=tier.unit_type,
            hours=duration.hours,
            days=duration.days,
            quantity=quantity,
            subtotal=unit_price * quantity,
        ),
    )


def calculate_price(
    model: PricingModel,
    base_price_or_tiers: Union[float, Sequence[PricingTier]],
    duration: Duration,
    quantity: int = 1,
) -> PriceComputation:
    """
    Price a rental under any pricing model.

    Args:
        model: The listing's pricing model
        base_price_or_tiers: The rate, or the tier table for the tiered model
        duration: Normalized rental duration
        quantity: Number of units rented

    Returns:
        PriceComputation with total, per-unit price and breakdown

    Raises:
        PricingConfigurationError: No tier covers the duration
        ValueError: Non-positive quantity
    """
    model = PricingModel(model)
    if model != PricingModel.TIERED:
        return calculate_price_by_model(model, float(base_price_or_tiers), duration, quantity)

    tier = find_applicable_tier(base_price_or_tiers, duration.hours)
    if tier is None:
        raise PricingConfigurationError(
            f"No active pricing tier covers a rental of {duration.hours} hours"
        )
    return calculate_tiered_price(tier, duration, quantity)


def quote_rental_price(
    model: PricingModel,
    base_price_or_tiers: Union[float, Sequence[PricingTier]],
    pickup_at: Union[datetime, str],
    dropoff_at: Union[datetime, str],
    quantity: int = 1,
) -> PriceCalculationResult:
    """
    Quote a rental window end to end.

    A tier table that cannot price the window produces a zero-price result
    tagged "configuration_error" which must block checkout.
    """
    pickup = parse_timestamp(pickup_at)
    dropoff = parse_timestamp(dropoff_at)
    duration = calculate_duration(pickup, dropoff)

    try:
        computation = calculate_price(model, base_price_or_tiers, duration, quantity)
    except PricingConfigurationError as e:
        return PriceCalculationResult(
            total_price=0,
            unit_price=0,
            quantity=quantity,
            duration=duration,
            pickup_at=pickup,
            dropoff_at=dropoff,
            breakdown=PriceBreakdown(model=CONFIGURATION_ERROR, quantity=quantity, subtotal=0),
            error=str(e),
        )

    return PriceCalculationResult(
        total_price=computation.price,
        unit_price=computation.unit_price,
        quantity=quantity,
        duration=duration,
        pickup_at=pickup,
        dropoff_at=dropoff,
        breakdown=computation.breakdown,
    )


def error_price_result(
    pickup_at: Union[datetime, str, None],
    dropoff_at: Union[datetime, str, None],
    quantity: int,
    message: str = "Failed to calculate price",
) -> PriceCalculationResult:
    """
    Zero-price result shown when the authoritative quote is unavailable.

    Never raises: a timestamp that cannot be parsed is left out.
    """
    return PriceCalculationResult(
        total_price=0,
        unit_price=0,
        quantity=quantity,
        duration=Duration(hours=0, days=0),
        pickup_at=parse_timestamp_or_none(pickup_at),
        dropoff_at=parse_timestamp_or_none(dropoff_at),
        breakdown=PriceBreakdown(model=ERROR, quantity=quantity, subtotal=0),
        error=message,
    )


# =============================================================================
# Validation and defaults
# =============================================================================

def validate_tier_durations(tiers: Sequence) -> TierValidationResult:
    """
    Check a tier table for structural problems.

    Tiers are checked in ascending min_duration_hours, independent of
    tier_order. Every violation is reported; positions in the messages
    are 1-based positions in that sorted order. Adjacent tiers may share
    a boundary (previous max == next min).

    Args:
        tiers: Tier-shaped objects (PricingTier, TierCreateRequest or ORM rows)

    Returns:
        TierValidationResult listing every problem found
    """
    errors = []
    sorted_tiers = sorted(tiers, key=lambda t: t.min_duration_hours)

    for i, tier in enumerate(sorted_tiers):
        position = i + 1

        if tier.min_duration_hours < 0:
            errors.append(f"Tier {position}: Minimum duration cannot be negative")

        if tier.max_duration_hours is not None and tier.max_duration_hours <= tier.min_duration_hours:
            errors.append(f"Tier {position}: Maximum duration must be greater than minimum")

        if tier.price_per_unit < 0:
            errors.append(f"Tier {position}: Price cannot be negative")

        if i > 0:
            previous = sorted_tiers[i - 1]
            if (
                previous.max_duration_hours is not None
                and tier.min_duration_hours < previous.max_duration_hours
            ):
                errors.append(
                    f"Tier {position}: Overlaps with tier {position - 1} "
                    f"(starts at {tier.min_duration_hours:g}h, tier {position - 1} "
                    f"ends at {previous.max_duration_hours:g}h)"
                )

    return TierValidationResult(valid=not errors, errors=errors)


def generate_default_tiers(
    daily_rate: float,
    short_term_multiplier: float = 1.5,
    long_term_discount: float = 0.15,
) -> list[TierCreateRequest]:
    """
    Build a starter tier table from a single daily rate.

    Produces, in order:
    - up to 4 hours: flat, daily rate x short-term multiplier
    - 4 to 24 hours: flat, daily rate
    - 1 to 7 days: per day, daily rate
    - 7+ days: per day, daily rate less the long-term discount

    Args:
        daily_rate: The listing's daily rate
        short_term_multiplier: Multiplier for the short-term tier
        long_term_discount: Fractional discount for the weekly tier

    Returns:
        Four unsaved tiers that pass validate_tier_durations()

    Raises:
        ValueError: If any argument is out of range
    """
    if daily_rate < 0:
        raise ValueError("Daily rate cannot be negative")
    if short_term_multiplier <= 0:
        raise ValueError("Short-term multiplier must be greater than 0")
    if not 0 <= long_term_discount < 1:
        raise ValueError("Long-term discount must be between 0 and 1")

    return [
        TierCreateRequest(
            tier_order=1,
            min_duration_hours=0,
            max_duration_hours=SHORT_TERM_MAX_HOURS,
            price_per_unit=round_money(daily_rate * short_term_multiplier),
            unit_type=TierUnitType.FLAT,
            description="Half Day (up to 4 hours)",
        ),
        TierCreateRequest(
            tier_order=2,
            min_duration_hours=SHORT_TERM_MAX_HOURS,
            max_duration_hours=FULL_DAY_MAX_HOURS,
            price_per_unit=round_money(daily_rate),
            unit_type=TierUnitType.FLAT,
            description="Full Day (4-24 hours)",
        ),
        TierCreateRequest(
            tier_order=3,
            min_duration_hours=FULL_DAY_MAX_HOURS,
            max_duration_hours=MULTI_DAY_MAX_HOURS,
            price_per_unit=round_money(daily_rate),
            unit_type=TierUnitType.DAY,
            description="Multi-Day (1-7 days)",
        ),
        TierCreateRequest(
            tier_order=4,
            min_duration_hours=MULTI_DAY_MAX_HOURS,
            max_duration_hours=None,
            price_per_unit=round_money(daily_rate * (1 - long_term_discount)),
            unit_type=TierUnitType.DAY,
            description="Weekly+ (7+ days)",
        ),
    ]
