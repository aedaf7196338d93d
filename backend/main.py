"""
FastAPI application for the rental pricing service.

Provides REST API endpoints for the marketplace client to:
- Manage listings' rental pricing configuration
- Create, update, deactivate and reorder duration pricing tiers
- Validate tier tables and preview generated default tiers
- Get the authoritative price for a rental window
"""
import logging

from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db, init_db
from models import (
    DefaultTiersRequest,
    ListingCreateRequest,
    ListingResponse,
    ListingUpdateRequest,
    PriceCalculationResult,
    PricingTier,
    RentalQuoteRequest,
    TierCreateRequest,
    TierReorderRequest,
    TierUpdateRequest,
    TierValidationRequest,
    TierValidationResult,
    TierWriteResult,
)
from quote_service import calculate_authoritative_price
from rental_pricing import generate_default_tiers, validate_tier_durations
import db_service

logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title="Rental Pricing API",
    description="Duration-based rental pricing tiers and authoritative quotes",
    version="1.0.0",
)

# Configure CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:8081",  # Expo dev server
        "http://localhost:19006",  # Expo web
        get_settings().frontend_url,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    logger.info(f"Starting rental pricing API ({get_settings().environment})")
    init_db()


# HTTP status for each tier write outcome
WRITE_STATUS_CODES = {
    "ok": 200,
    "rejected": 422,
    "conflict": 409,
}


def tier_write_response(result: TierWriteResult) -> JSONResponse:
    """Send a TierWriteResult with the status code matching its outcome."""
    return JSONResponse(
        status_code=WRITE_STATUS_CODES[result.status],
        content=result.model_dump(mode="json"),
    )


def get_listing_or_404(db: Session, listing_id: int):
    listing = db_service.get_listing_by_id(db, listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing


def get_tier_or_404(db: Session, tier_id: int):
    tier = db_service.get_tier_by_id(db, tier_id)
    if not tier:
        raise HTTPException(status_code=404, detail="Pricing tier not found")
    return tier


@app.get("/")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "rental-pricing"}


# ==================== LISTINGS ====================

@app.post("/api/listings", response_model=ListingResponse, status_code=201)
async def create_listing(request: ListingCreateRequest, db: Session = Depends(get_db)):
    """Create a listing with its rental pricing configuration."""
    listing = db_service.create_listing(db, request)
    logger.info(f"Created listing {listing.id} ({listing.rental_pricing_model.value})")
    return listing


@app.get("/api/listings/{listing_id}", response_model=ListingResponse)
async def get_listing(listing_id: int, db: Session = Depends(get_db)):
    """Get a listing's pricing configuration."""
    return get_listing_or_404(db, listing_id)


@app.patch("/api/listings/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: int,
    request: ListingUpdateRequest,
    db: Session = Depends(get_db),
):
    """Change a listing's pricing model or rates."""
    listing = get_listing_or_404(db, listing_id)
    return db_service.update_listing_pricing(db, listing, request)


# ==================== PRICING TIERS ====================

@app.get("/api/listings/{listing_id}/tiers", response_model=list[PricingTier])
async def get_pricing_tiers(
    listing_id: int,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    """
    Get a listing's pricing tiers ordered by tier_order.

    Only active tiers are returned unless include_inactive is set.
    """
    get_listing_or_404(db, listing_id)
    tiers = db_service.get_pricing_tiers(db, listing_id, include_inactive=include_inactive)
    return [PricingTier.model_validate(t) for t in tiers]


@app.post("/api/listings/{listing_id}/tiers", response_model=TierWriteResult)
async def create_pricing_tier(
    listing_id: int,
    request: TierCreateRequest,
    db: Session = Depends(get_db),
):
    """
    Add a pricing tier to a listing.

    Returns 422 with every validation error if the tier would overlap
    an active tier or has an invalid range or price.
    """
    listing = get_listing_or_404(db, listing_id)
    return tier_write_response(db_service.create_tier(db, listing, request))


@app.patch("/api/tiers/{tier_id}", response_model=TierWriteResult)
async def update_pricing_tier(
    tier_id: int,
    request: TierUpdateRequest,
    db: Session = Depends(get_db),
):
    """Update a pricing tier. Validated like creation."""
    tier = get_tier_or_404(db, tier_id)
    return tier_write_response(db_service.update_tier(db, tier, request))


@app.delete("/api/tiers/{tier_id}", response_model=TierWriteResult)
async def deactivate_pricing_tier(tier_id: int, db: Session = Depends(get_db)):
    """Deactivate (soft-delete) a pricing tier."""
    tier = get_tier_or_404(db, tier_id)
    return tier_write_response(db_service.deactivate_tier(db, tier))


@app.put("/api/listings/{listing_id}/tiers/order", response_model=TierWriteResult)
async def reorder_pricing_tiers(
    listing_id: int,
    request: TierReorderRequest,
    db: Session = Depends(get_db),
):
    """
    Apply an explicit evaluation order to a listing's active tiers.

    The whole ordering is applied in one transaction. Send the
    order_version from the last read as expected_version to get a 409
    instead of overwriting someone else's reorder.
    """
    listing = get_listing_or_404(db, listing_id)
    result = db_service.reorder_tiers(
        db, listing, request.tier_ids, expected_version=request.expected_version
    )
    return tier_write_response(result)


@app.post("/api/listings/{listing_id}/tiers/defaults", response_model=TierWriteResult)
async def apply_default_pricing_tiers(
    listing_id: int,
    request: DefaultTiersRequest,
    db: Session = Depends(get_db),
):
    """Replace (or extend) a listing's tiers with the generated default table."""
    listing = get_listing_or_404(db, listing_id)
    try:
        result = db_service.apply_default_tiers(db, listing, request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return tier_write_response(result)


@app.post("/api/pricing/validate", response_model=TierValidationResult)
async def validate_pricing_tiers(request: TierValidationRequest):
    """Validate a candidate tier table without saving it."""
    return validate_tier_durations(request.tiers)


@app.post("/api/pricing/default-tiers", response_model=list[TierCreateRequest])
async def preview_default_tiers(request: DefaultTiersRequest):
    """Generate the default tier table for a daily rate without saving it."""
    try:
        return generate_default_tiers(
            request.daily_rate,
            short_term_multiplier=request.short_term_multiplier,
            long_term_discount=request.long_term_discount,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ==================== QUOTES ====================

@app.post("/api/rpc/calculate_rental_price", response_model=PriceCalculationResult)
async def calculate_rental_price(request: RentalQuoteRequest, db: Session = Depends(get_db)):
    """
    Authoritative price for a rental window.

    A tiered listing whose tiers do not cover the window returns a
    zero-price result tagged "configuration_error"; checkout must be
    blocked for it.
    """
    listing = get_listing_or_404(db, request.listing_id)
    try:
        return calculate_authoritative_price(
            db,
            listing,
            request.pickup_at,
            request.dropoff_at,
            request.quantity,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
