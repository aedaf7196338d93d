"""
Database service layer for listings and rental pricing tiers.

Every tier write validates the listing's would-be active tier set first
and returns a TierWriteResult instead of writing an invalid table.

Writes also reject any tier that starts at or after an open-ended tier,
a case validate_tier_durations() does not flag on its own.
"""
import json
import logging
from typing import Optional, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db_models import ServiceListing, RentalPricingTier, TierAuditLog, TierAuditEvent
from models import (
    DefaultTiersRequest,
    ListingCreateRequest,
    ListingUpdateRequest,
    PricingTier,
    TierCreateRequest,
    TierUpdateRequest,
    TierWriteResult,
)
from rental_pricing import generate_default_tiers, validate_tier_durations

logger = logging.getLogger(__name__)

# Columns that can be cleared with an explicit null in an update
NULLABLE_TIER_FIELDS = {"max_duration_hours", "description"}


def open_ended_overlaps(tiers) -> List[str]:
    """Errors for tiers starting at or after an open-ended tier."""
    errors = []
    sorted_tiers = sorted(tiers, key=lambda t: t.min_duration_hours)
    open_ended = None
    for position, tier in enumerate(sorted_tiers, start=1):
        if open_ended is not None:
            errors.append(
                f"Tier {position}: Overlaps with open-ended tier {open_ended} "
                f"(starts at {tier.min_duration_hours:g}h)"
            )
        elif tier.max_duration_hours is None:
            open_ended = position
    return errors


def validate_active_tiers(tiers) -> List[str]:
    """All errors that block writing this active tier set."""
    return validate_tier_durations(tiers).errors + open_ended_overlaps(tiers)


# ============== LISTING OPERATIONS ==============

def create_listing(db: Session, request: ListingCreateRequest) -> ServiceListing:
    """Create a listing with its pricing configuration."""
    listing = ServiceListing(
        title=request.title,
        rental_pricing_model=request.rental_pricing_model,
        rental_base_price=request.rental_base_price,
        price=request.price,
        tier_order_version=0,
    )
    db.add(listing)
    db.commit()
    db.refresh(listing)
    return listing


def get_listing_by_id(db: Session, listing_id: int) -> Optional[ServiceListing]:
    """Get listing by ID."""
    return db.query(ServiceListing).filter(ServiceListing.id == listing_id).first()


def update_listing_pricing(
    db: Session,
    listing: ServiceListing,
    request: ListingUpdateRequest,
) -> ServiceListing:
    """Apply the explicitly set fields of a listing update."""
    for field, value in request.model_dump(exclude_unset=True).items():
        if value is None and field != "rental_base_price":
            continue
        setattr(listing, field, value)
    db.commit()
    db.refresh(listing)
    return listing


# ============== TIER OPERATIONS ==============

def get_pricing_tiers(
    db: Session,
    listing_id: int,
    include_inactive: bool = False,
) -> List[RentalPricingTier]:
    """Get a listing's tiers ordered by tier_order."""
    query = db.query(RentalPricingTier).filter(RentalPricingTier.listing_id == listing_id)
    if not include_inactive:
        query = query.filter(RentalPricingTier.is_active.is_(True))
    return query.order_by(RentalPricingTier.tier_order, RentalPricingTier.id).all()


def get_tier_by_id(db: Session, tier_id: int) -> Optional[RentalPricingTier]:
    """Get tier by ID."""
    return db.query(RentalPricingTier).filter(RentalPricingTier.id == tier_id).first()


def _record_audit(
    db: Session,
    listing_id: int,
    event: TierAuditEvent,
    tier_id: int = None,
    event_data: dict = None,
) -> None:
    """Add an audit row to the current transaction."""
    db.add(TierAuditLog(
        listing_id=listing_id,
        tier_id=tier_id,
        event=event,
        event_data=json.dumps(event_data, default=str) if event_data else None,
    ))


def _ok(db: Session, listing_id: int) -> TierWriteResult:
    listing = get_listing_by_id(db, listing_id)
    return TierWriteResult(
        status="ok",
        tiers=[PricingTier.model_validate(t) for t in get_pricing_tiers(db, listing_id)],
        order_version=listing.tier_order_version,
    )


def _reject(
    db: Session,
    listing_id: int,
    errors: List[str],
    operation: str,
    tier_id: int = None,
) -> TierWriteResult:
    """Record a rejected write and return the rejection without touching tiers."""
    logger.warning(f"Rejected {operation} for listing {listing_id}: {'; '.join(errors)}")
    _record_audit(
        db, listing_id, TierAuditEvent.TIER_WRITE_REJECTED,
        tier_id=tier_id,
        event_data={"operation": operation, "errors": errors},
    )
    db.commit()
    listing = get_listing_by_id(db, listing_id)
    return TierWriteResult(
        status="rejected",
        tiers=[PricingTier.model_validate(t) for t in get_pricing_tiers(db, listing_id)],
        errors=errors,
        order_version=listing.tier_order_version,
    )


def create_tier(
    db: Session,
    listing: ServiceListing,
    request: TierCreateRequest,
) -> TierWriteResult:
    """
    Create a pricing tier for a listing.

    Args:
        db: Database session
        listing: The listing that owns the tier
        request: Tier fields; tier_order defaults to the next free order

    Returns:
        TierWriteResult, rejected if the new tier would make the
        active tier set invalid
    """
    active = get_pricing_tiers(db, listing.id)

    tier_order = request.tier_order
    if tier_order is None:
        tier_order = max((t.tier_order for t in active), default=0) + 1

    errors = validate_active_tiers([*active, request])
    if errors:
        return _reject(db, listing.id, errors, "create")

    tier = RentalPricingTier(
        listing_id=listing.id,
        tier_order=tier_order,
        min_duration_hours=request.min_duration_hours,
        max_duration_hours=request.max_duration_hours,
        price_per_unit=request.price_per_unit,
        unit_type=request.unit_type,
        description=request.description,
        is_active=True,
    )
    db.add(tier)
    db.flush()
    _record_audit(
        db, listing.id, TierAuditEvent.TIER_CREATED,
        tier_id=tier.id,
        event_data=request.model_dump(mode="json") | {"tier_order": tier_order},
    )
    db.commit()

    logger.info(f"Created tier {tier.id} (order {tier_order}) for listing {listing.id}")
    return _ok(db, listing.id)


def update_tier(
    db: Session,
    tier: RentalPricingTier,
    request: TierUpdateRequest,
) -> TierWriteResult:
    """
    Apply a partial update to a tier.

    If the tier is (or becomes) active, the listing's active tiers with
    the updated values must pass validation or nothing is written.
    """
    changes = {}
    for field, value in request.model_dump(exclude_unset=True).items():
        if value is None and field not in NULLABLE_TIER_FIELDS:
            continue
        changes["is_active" if field == "active" else field] = value

    if changes.get("is_active", tier.is_active):
        candidate = TierCreateRequest(
            min_duration_hours=changes.get("min_duration_hours", tier.min_duration_hours),
            max_duration_hours=changes.get("max_duration_hours", tier.max_duration_hours),
            price_per_unit=changes.get("price_per_unit", tier.price_per_unit),
            unit_type=changes.get("unit_type", tier.unit_type),
        )
        others = [t for t in get_pricing_tiers(db, tier.listing_id) if t.id != tier.id]
        errors = validate_active_tiers([*others, candidate])
        if errors:
            return _reject(db, tier.listing_id, errors, "update", tier_id=tier.id)

    for field, value in changes.items():
        setattr(tier, field, value)
    _record_audit(
        db, tier.listing_id, TierAuditEvent.TIER_UPDATED,
        tier_id=tier.id,
        event_data=request.model_dump(mode="json", exclude_unset=True),
    )
    db.commit()

    logger.info(f"Updated tier {tier.id} for listing {tier.listing_id}: {sorted(changes)}")
    return _ok(db, tier.listing_id)


def deactivate_tier(db: Session, tier: RentalPricingTier) -> TierWriteResult:
    """Soft-delete a tier so historical quotes can still reference it."""
    if tier.is_active:
        tier.is_active = False
        _record_audit(db, tier.listing_id, TierAuditEvent.TIER_DEACTIVATED, tier_id=tier.id)
        db.commit()
        logger.info(f"Deactivated tier {tier.id} for listing {tier.listing_id}")
    return _ok(db, tier.listing_id)


def reorder_tiers(
    db: Session,
    listing: ServiceListing,
    tier_ids: List[int],
    expected_version: Optional[int] = None,
) -> TierWriteResult:
    """
    Rewrite tier_order to follow tier_ids, in a single transaction.

    tier_ids must list every active tier of the listing exactly once;
    they receive tier_order 1..n in that sequence. Re-applying an ordering
    that is already in place is a no-op, so retries are safe. Otherwise a
    stale expected_version (or a concurrent reorder) returns a conflict.

    Args:
        db: Database session
        listing: The listing whose tiers are reordered
        tier_ids: Active tier IDs in the new evaluation order
        expected_version: The tier_order_version the caller last saw

    Returns:
        TierWriteResult with the listing's current order_version
    """
    active = get_pricing_tiers(db, listing.id)
    active_by_id = {t.id: t for t in active}

    errors = []
    duplicates = sorted({i for i in tier_ids if tier_ids.count(i) > 1})
    if duplicates:
        errors.append(f"Duplicate tier ids: {duplicates}")
    unknown = [i for i in tier_ids if i not in active_by_id]
    if unknown:
        errors.append(f"Not active tiers of listing {listing.id}: {unknown}")
    missing = sorted(set(active_by_id) - set(tier_ids))
    if missing:
        errors.append(f"Missing active tiers: {missing}")
    if errors:
        return _reject(db, listing.id, errors, "reorder")

    already_applied = all(
        active_by_id[tier_id].tier_order == position
        for position, tier_id in enumerate(tier_ids, start=1)
    )
    if already_applied:
        return _ok(db, listing.id)

    current_version = listing.tier_order_version
    if expected_version is not None and expected_version != current_version:
        return _conflict(db, listing.id, expected_version, current_version)

    try:
        # Compare-and-set on the version guards against a concurrent reorder
        bumped = db.query(ServiceListing).filter(
            ServiceListing.id == listing.id,
            ServiceListing.tier_order_version == current_version,
        ).update(
            {ServiceListing.tier_order_version: current_version + 1},
            synchronize_session="fetch",
        )
        if bumped == 0:
            db.rollback()
            db.refresh(listing)
            return _conflict(db, listing.id, current_version, listing.tier_order_version)

        for position, tier_id in enumerate(tier_ids, start=1):
            active_by_id[tier_id].tier_order = position
        _record_audit(
            db, listing.id, TierAuditEvent.TIERS_REORDERED,
            event_data={"tier_ids": tier_ids, "version": current_version + 1},
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Reorder failed for listing {listing.id}: {e}")
        raise

    logger.info(f"Reordered {len(tier_ids)} tiers for listing {listing.id} (version {current_version + 1})")
    return _ok(db, listing.id)


def _conflict(db: Session, listing_id: int, expected: int, current: int) -> TierWriteResult:
    logger.warning(f"Stale reorder for listing {listing_id}: expected version {expected}, current {current}")
    return TierWriteResult(
        status="conflict",
        tiers=[PricingTier.model_validate(t) for t in get_pricing_tiers(db, listing_id)],
        errors=[f"Tier order changed since version {expected} (current version {current}). Reload and retry."],
        order_version=current,
    )


def apply_default_tiers(
    db: Session,
    listing: ServiceListing,
    request: DefaultTiersRequest,
) -> TierWriteResult:
    """
    Generate the default four-tier table and persist it in one transaction.

    With replace_existing the listing's current active tiers are
    deactivated first; otherwise the generated tiers are appended after
    them and the combined set must validate.

    Raises:
        ValueError: If the generator arguments are out of range
    """
    generated = generate_default_tiers(
        request.daily_rate,
        short_term_multiplier=request.short_term_multiplier,
        long_term_discount=request.long_term_discount,
    )
    active = get_pricing_tiers(db, listing.id)
    kept = [] if request.replace_existing else active

    errors = validate_active_tiers([*kept, *generated])
    if errors:
        return _reject(db, listing.id, errors, "apply_defaults")

    order_offset = max((t.tier_order for t in kept), default=0)
    if request.replace_existing:
        for tier in active:
            tier.is_active = False

    for tier_input in generated:
        db.add(RentalPricingTier(
            listing_id=listing.id,
            tier_order=tier_input.tier_order + order_offset,
            min_duration_hours=tier_input.min_duration_hours,
            max_duration_hours=tier_input.max_duration_hours,
            price_per_unit=tier_input.price_per_unit,
            unit_type=tier_input.unit_type,
            description=tier_input.description,
            is_active=True,
        ))
    _record_audit(
        db, listing.id, TierAuditEvent.DEFAULT_TIERS_APPLIED,
        event_data=request.model_dump() | {"deactivated": [t.id for t in active] if request.replace_existing else []},
    )
    db.commit()

    logger.info(f"Applied default tiers to listing {listing.id} at daily rate {request.daily_rate}")
    return _ok(db, listing.id)
