"""
SQLAlchemy database models for the rental pricing service.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Float, Numeric,
    ForeignKey, Enum, Boolean, Text, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
from models import PricingModel, TierUnitType
import enum


class ServiceListing(Base):
    """A rentable listing and its pricing configuration."""
    __tablename__ = "service_listings"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)

    # Pricing
    rental_pricing_model = Column(Enum(PricingModel), default=PricingModel.FLAT, nullable=False)
    rental_base_price = Column(Numeric(10, 2, asdecimal=False))  # Falls back to price when null
    price = Column(Numeric(10, 2, asdecimal=False), default=0, nullable=False)

    # Bumped on every applied reorder of the tier table
    tier_order_version = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    pricing_tiers = relationship("RentalPricingTier", back_populates="listing")

    def __repr__(self):
        return f"<ServiceListing {self.id} {self.title} ({self.rental_pricing_model.value})>"


class RentalPricingTier(Base):
    """One row of a listing's duration-based price table."""
    __tablename__ = "rental_pricing_tiers"
    __table_args__ = (
        Index("idx_rental_pricing_tiers_listing", "listing_id", "tier_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("service_listings.id"), nullable=False)

    # Evaluation and display order (ascending, need not be contiguous)
    tier_order = Column(Integer, default=1, nullable=False)

    # Inclusive duration range in hours, max null = open-ended
    min_duration_hours = Column(Float, default=0, nullable=False)
    max_duration_hours = Column(Float)

    price_per_unit = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    unit_type = Column(Enum(TierUnitType), default=TierUnitType.HOUR, nullable=False)
    description = Column(Text)

    # Soft delete
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    listing = relationship("ServiceListing", back_populates="pricing_tiers")

    def __repr__(self):
        upper = f"{self.max_duration_hours:g}h" if self.max_duration_hours is not None else "∞"
        return f"<RentalPricingTier {self.tier_order}: {self.min_duration_hours:g}h-{upper}>"


class TierAuditEvent(enum.Enum):
    """Types of tier table audit events."""
    TIER_CREATED = "tier_created"
    TIER_UPDATED = "tier_updated"
    TIER_DEACTIVATED = "tier_deactivated"
    TIERS_REORDERED = "tiers_reordered"
    DEFAULT_TIERS_APPLIED = "default_tiers_applied"
    TIER_WRITE_REJECTED = "tier_write_rejected"


class TierAuditLog(Base):
    """Audit trail for tier table edits, including rejected writes."""
    __tablename__ = "tier_audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    listing_id = Column(Integer, ForeignKey("service_listings.id"), nullable=False, index=True)
    tier_id = Column(Integer, ForeignKey("rental_pricing_tiers.id"), nullable=True)

    event = Column(Enum(TierAuditEvent), nullable=False, index=True)
    event_data = Column(Text)  # JSON blob with event-specific data

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    def __repr__(self):
        return f"<TierAuditLog {self.event.value} - listing {self.listing_id}>"
