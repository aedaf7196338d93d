"""
Pytest configuration and shared fixtures.

This module loads environment variables from .env, points the app at a
throwaway SQLite database and provides fixtures for API and client tests.
"""
import os
import tempfile
import pytest
import pytest_asyncio
from pathlib import Path

# Load .env file before any imports that might use settings
from dotenv import load_dotenv

backend_dir = Path(__file__).parent.parent
env_file = backend_dir / ".env"
if env_file.exists():
    load_dotenv(env_file)

# Set test database before any imports
TEST_DATABASE_PATH = Path(tempfile.gettempdir()) / "rental_pricing_test.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DATABASE_PATH}"

from httpx import AsyncClient, ASGITransport

from models import ListingCreateRequest, PricingModel, PricingTier, TierUnitType


# Tier table used across local, remote and agreement tests:
# 0-4h flat $50, 4-24h flat $80, 1-7 days $80/day, 7+ days $68/day
SCENARIO_TIERS = [
    dict(tier_order=1, min_duration_hours=0, max_duration_hours=4,
         price_per_unit=50.0, unit_type=TierUnitType.FLAT, description="Half Day"),
    dict(tier_order=2, min_duration_hours=4, max_duration_hours=24,
         price_per_unit=80.0, unit_type=TierUnitType.FLAT, description="Full Day"),
    dict(tier_order=3, min_duration_hours=24, max_duration_hours=168,
         price_per_unit=80.0, unit_type=TierUnitType.DAY, description="Multi-Day"),
    dict(tier_order=4, min_duration_hours=168, max_duration_hours=None,
         price_per_unit=68.0, unit_type=TierUnitType.DAY, description="Weekly+"),
]


@pytest.fixture(autouse=True)
def setup_test_database():
    """Create fresh tables for every test."""
    from database import engine
    from db_models import Base

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Get a test database session."""
    from database import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def scenario_tiers():
    """The scenario tier table as in-memory PricingTier objects."""
    return [
        PricingTier(id=i, listing_id=1, **tier)
        for i, tier in enumerate(SCENARIO_TIERS, start=1)
    ]


@pytest.fixture
def tiered_listing(db_session):
    """A tiered listing persisted with the scenario tier table."""
    import db_service
    from models import TierCreateRequest

    listing = db_service.create_listing(db_session, ListingCreateRequest(
        title="Pressure washer",
        rental_pricing_model=PricingModel.TIERED,
        price=80.0,
    ))
    for tier in SCENARIO_TIERS:
        result = db_service.create_tier(db_session, listing, TierCreateRequest(**tier))
        assert result.ok, result.errors
    return listing


@pytest_asyncio.fixture
async def client():
    """Create an async test client."""
    from main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def pricing_client():
    """RentalPricingClient wired to the app in-process."""
    from main import app
    from pricing_client import RentalPricingClient

    async with RentalPricingClient(
        base_url="http://test",
        transport=ASGITransport(app=app),
    ) as pc:
        yield pc
