"""
Data models for the rental pricing service.
"""
from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field, AliasChoices
from enum import Enum


class PricingModel(str, Enum):
    """How a listing's rental price is computed."""
    FLAT = "flat"
    PER_HOUR = "per_hour"
    PER_DAY = "per_day"
    TIERED = "tiered"


class TierUnitType(str, Enum):
    """How a tier's price_per_unit is charged."""
    FLAT = "flat"   # Once per rental
    HOUR = "hour"   # Per billable hour
    DAY = "day"     # Per billable day


# Breakdown tags that are not pricing models
CONFIGURATION_ERROR = "configuration_error"
ERROR = "error"


class PricingTier(BaseModel):
    """A persisted row of a listing's duration-based price table."""
    id: int
    listing_id: int
    tier_order: int
    min_duration_hours: float
    max_duration_hours: Optional[float] = None  # None = open-ended
    price_per_unit: float
    unit_type: TierUnitType
    description: Optional[str] = None
    active: bool = Field(default=True, validation_alias=AliasChoices("active", "is_active"))
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class TierCreateRequest(BaseModel):
    """Request to create a pricing tier (also the shape of generated defaults)."""
    tier_order: Optional[int] = None  # Next free order when omitted
    min_duration_hours: float
    max_duration_hours: Optional[float] = None
    price_per_unit: float
    unit_type: TierUnitType
    description: Optional[str] = None


class TierUpdateRequest(BaseModel):
    """
    Partial update of a pricing tier.

    Only fields that were explicitly set are applied, so sending
    max_duration_hours=None makes a tier open-ended.
    """
    tier_order: Optional[int] = None
    min_duration_hours: Optional[float] = None
    max_duration_hours: Optional[float] = None
    price_per_unit: Optional[float] = None
    unit_type: Optional[TierUnitType] = None
    description: Optional[str] = None
    active: Optional[bool] = None


class Duration(BaseModel):
    """Billable duration of a rental window."""
    hours: int
    days: int


class PriceBreakdown(BaseModel):
    """
    Record of how a price was produced.

    model is a PricingModel value, or "configuration_error" / "error"
    for results that must never be charged.
    """
    model: str
    base_price: Optional[float] = None
    rate: Optional[float] = None
    hours: Optional[int] = None
    days: Optional[int] = None
    tier: Optional[str] = None
    unit_type: Optional[TierUnitType] = None
    quantity: int
    subtotal: float


class PriceComputation(BaseModel):
    """Output of the price calculator for a normalized duration."""
    price: float
    unit_price: float
    breakdown: PriceBreakdown


class PriceCalculationResult(BaseModel):
    """A full rental quote."""
    total_price: float
    unit_price: float
    quantity: int
    duration: Duration
    pickup_at: Optional[datetime]  # None only on error results for unparsable input
    dropoff_at: Optional[datetime]
    breakdown: PriceBreakdown
    error: Optional[str] = None

    @property
    def is_billable(self) -> bool:
        """False for configuration and transport error results."""
        return self.breakdown.model not in (CONFIGURATION_ERROR, ERROR)


class TierValidationResult(BaseModel):
    """Outcome of validating a tier set."""
    valid: bool
    errors: list[str] = []


class TierWriteResult(BaseModel):
    """Outcome of a tier management write."""
    status: Literal["ok", "rejected", "conflict"]
    tiers: list[PricingTier] = []  # Active tiers after the write
    errors: list[str] = []
    order_version: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


# ==================== LISTINGS ====================

class ListingCreateRequest(BaseModel):
    """Request to create a rentable listing."""
    title: str
    rental_pricing_model: PricingModel = PricingModel.FLAT
    rental_base_price: Optional[float] = None
    price: float = 0


class ListingUpdateRequest(BaseModel):
    """Partial update of a listing's pricing configuration."""
    title: Optional[str] = None
    rental_pricing_model: Optional[PricingModel] = None
    rental_base_price: Optional[float] = None
    price: Optional[float] = None


class ListingResponse(BaseModel):
    """A listing and its pricing configuration."""
    id: int
    title: str
    rental_pricing_model: PricingModel
    rental_base_price: Optional[float] = None
    price: float
    tier_order_version: int = 0

    class Config:
        from_attributes = True

    @property
    def base_price(self) -> float:
        """Rate used by the flat / per-hour / per-day models."""
        if self.rental_base_price is not None:
            return self.rental_base_price
        return self.price


# ==================== REQUESTS ====================

class RentalQuoteRequest(BaseModel):
    """Arguments of the authoritative rental price function."""
    listing_id: int
    pickup_at: datetime
    dropoff_at: datetime
    quantity: int = Field(default=1, ge=1)


class TierReorderRequest(BaseModel):
    """Explicit evaluation order for a listing's active tiers."""
    tier_ids: list[int]
    expected_version: Optional[int] = None


class DefaultTiersRequest(BaseModel):
    """Parameters for generating the default four-tier table."""
    daily_rate: float
    short_term_multiplier: float = 1.5
    long_term_discount: float = 0.15
    replace_existing: bool = True


class TierValidationRequest(BaseModel):
    """A candidate tier set to validate."""
    tiers: list[TierCreateRequest]
