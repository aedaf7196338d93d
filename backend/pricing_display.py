"""
Human-readable labels for rental pricing.

Presentation only: nothing here feeds back into a price.
"""
import math
from typing import Optional

from config import get_settings
from models import CONFIGURATION_ERROR, PriceBreakdown, PricingModel, TierUnitType

PRICING_MODEL_LABELS = {
    PricingModel.FLAT: "Flat Rate",
    PricingModel.PER_DAY: "Per Day",
    PricingModel.PER_HOUR: "Per Hour",
    PricingModel.TIERED: "Tiered Pricing",
}

UNIT_TYPE_LABELS = {
    TierUnitType.FLAT: "Flat Fee",
    TierUnitType.HOUR: "Per Hour",
    TierUnitType.DAY: "Per Day",
}


def format_pricing_model(model) -> str:
    """Label for a pricing model, or the raw value if unknown."""
    try:
        return PRICING_MODEL_LABELS[PricingModel(model)]
    except ValueError:
        return str(model)


def format_unit_type(unit_type) -> str:
    """Label for a tier unit type, or the raw value if unknown."""
    try:
        return UNIT_TYPE_LABELS[TierUnitType(unit_type)]
    except ValueError:
        return str(unit_type)


def format_duration(hours: float) -> str:
    """
    Describe a duration in hours.

    Under an hour shows minutes, under a day shows hours, anything
    longer shows whole days rounded up.
    """
    if hours < 1:
        return f"{round(hours * 60)} min"
    if hours < 24:
        return "1 hour" if hours == 1 else f"{hours:g} hours"
    days = math.ceil(hours / 24)
    return "1 day" if days == 1 else f"{days} days"


def tier_label(tier) -> str:
    """Display name of a tier."""
    return tier.description or f"Tier {tier.tier_order}"


def _money(amount, currency_symbol: str) -> str:
    return f"{currency_symbol}{(amount or 0):.2f}"


def format_price_breakdown(breakdown: PriceBreakdown, currency_symbol: Optional[str] = None) -> str:
    """
    One-line description of how a price was calculated.

    currency_symbol defaults to the configured one.

    Examples:
        "Flat rate: $50.00"
        "$10.00/hr × 5 hours"
        "Multi-Day (1-7 days): $80.00/day"
    """
    model = breakdown.model
    if currency_symbol is None:
        currency_symbol = get_settings().currency_symbol

    if model == PricingModel.FLAT.value:
        return f"Flat rate: {_money(breakdown.base_price, currency_symbol)}"

    if model == PricingModel.PER_HOUR.value:
        return f"{_money(breakdown.rate, currency_symbol)}/hr × {breakdown.hours or 0} hours"

    if model == PricingModel.PER_DAY.value:
        return f"{_money(breakdown.rate, currency_symbol)}/day × {breakdown.days or 0} days"

    if model == PricingModel.TIERED.value:
        rate = _money(breakdown.rate, currency_symbol)
        if breakdown.unit_type is None or breakdown.unit_type == TierUnitType.FLAT:
            return f"{breakdown.tier}: {rate}"
        return f"{breakdown.tier}: {rate}/{breakdown.unit_type.value}"

    if model == CONFIGURATION_ERROR:
        return "Pricing unavailable for this rental length"

    return _money(breakdown.subtotal, currency_symbol)
