"""
Authoritative rental quotes.

This is the price that gets persisted and charged. The applicable tier
is selected by the database rather than by find_applicable_tier(), so
the two paths can be checked against each other on shared fixtures.
"""
import logging
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from db_models import ServiceListing, RentalPricingTier
from models import (
    CONFIGURATION_ERROR,
    PriceBreakdown,
    PriceCalculationResult,
    PricingModel,
    PricingTier,
)
from rental_pricing import (
    calculate_duration,
    calculate_price_by_model,
    calculate_tiered_price,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


def select_tier(db: Session, listing_id: int, duration_hours: int):
    """First active tier by tier_order whose range covers the duration."""
    return db.query(RentalPricingTier).filter(
        RentalPricingTier.listing_id == listing_id,
        RentalPricingTier.is_active.is_(True),
        RentalPricingTier.min_duration_hours <= duration_hours,
        or_(
            RentalPricingTier.max_duration_hours.is_(None),
            RentalPricingTier.max_duration_hours >= duration_hours,
        ),
    ).order_by(RentalPricingTier.tier_order, RentalPricingTier.id).first()


def calculate_authoritative_price(
    db: Session,
    listing: ServiceListing,
    pickup_at: datetime,
    dropoff_at: datetime,
    quantity: int = 1,
) -> PriceCalculationResult:
    """
    Quote a rental from the listing's persisted pricing configuration.

    Args:
        db: Database session
        listing: The listing being rented
        pickup_at: Start of the rental
        dropoff_at: End of the rental
        quantity: Number of units rented

    Returns:
        PriceCalculationResult; tagged "configuration_error" with a zero
        price when the listing is tiered and no tier covers the duration

    Raises:
        ValueError: Non-positive quantity
    """
    pickup_at = parse_timestamp(pickup_at)
    dropoff_at = parse_timestamp(dropoff_at)
    duration = calculate_duration(pickup_at, dropoff_at)
    model = PricingModel(listing.rental_pricing_model)

    if model == PricingModel.TIERED:
        tier_row = select_tier(db, listing.id, duration.hours)
        if tier_row is None:
            logger.warning(
                f"No tier covers {duration.hours}h for tiered listing {listing.id}"
            )
            return PriceCalculationResult(
                total_price=0,
                unit_price=0,
                quantity=quantity,
                duration=duration,
                pickup_at=pickup_at,
                dropoff_at=dropoff_at,
                breakdown=PriceBreakdown(model=CONFIGURATION_ERROR, quantity=quantity, subtotal=0),
                error=f"No active pricing tier covers a rental of {duration.hours} hours",
            )
        computation = calculate_tiered_price(PricingTier.model_validate(tier_row), duration, quantity)
    else:
        base_price = listing.rental_base_price
        if base_price is None:
            base_price = listing.price or 0
        computation = calculate_price_by_model(model, base_price, duration, quantity)

    return PriceCalculationResult(
        total_price=computation.price,
        unit_price=computation.unit_price,
        quantity=quantity,
        duration=duration,
        pickup_at=pickup_at,
        dropoff_at=dropoff_at,
        breakdown=computation.breakdown,
    )
