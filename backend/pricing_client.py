"""
Async client for the rental pricing API.

calculate_rental_price() asks the backend for the authoritative price and
never raises: when the backend is unreachable or answers with something
unusable it returns a zero-price result tagged "error", which must be
shown as unavailable and never charged.

preview_rental_price() computes an advisory price locally from the
listing's cached tier table, for instant feedback while dates change.
"""
import logging
from datetime import datetime
from typing import Optional, Union

import httpx
from pydantic import ValidationError

from config import get_settings
from models import (
    DefaultTiersRequest,
    ListingResponse,
    PriceCalculationResult,
    PricingModel,
    PricingTier,
    TierCreateRequest,
    TierUpdateRequest,
    TierWriteResult,
)
from rental_pricing import error_price_result, quote_rental_price

logger = logging.getLogger(__name__)

# Tier writes answer with a TierWriteResult body for these statuses
WRITE_RESULT_STATUS_CODES = (200, 409, 422)

Timestamp = Union[datetime, str]


def _isoformat(value: Timestamp) -> str:
    return value.isoformat() if isinstance(value, datetime) else value


class RentalPricingClient:
    """
    Client for the rental pricing backend.

    Use as an async context manager:

        async with RentalPricingClient() as client:
            quote = await client.calculate_rental_price(listing_id, pickup, dropoff)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.pricing_api_url,
            timeout=timeout if timeout is not None else settings.pricing_api_timeout,
            transport=transport,
        )
        # listing_id -> (listing, active tiers) for local previews
        self._pricing_cache: dict[int, tuple[ListingResponse, list[PricingTier]]] = {}

    async def __aenter__(self) -> "RentalPricingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def invalidate(self, listing_id: int) -> None:
        """Drop the cached pricing configuration of a listing."""
        self._pricing_cache.pop(listing_id, None)

    # ==================== QUOTES ====================

    async def calculate_rental_price(
        self,
        listing_id: int,
        pickup_at: Timestamp,
        dropoff_at: Timestamp,
        quantity: int = 1,
    ) -> PriceCalculationResult:
        """
        Get the authoritative price for a rental window.

        Args:
            listing_id: The listing being rented
            pickup_at: Start of the rental
            dropoff_at: End of the rental
            quantity: Number of units rented

        Returns:
            The backend's PriceCalculationResult, or an error-tagged
            zero-price result if the backend could not produce one
        """
        payload = {
            "listing_id": listing_id,
            "pickup_at": _isoformat(pickup_at),
            "dropoff_at": _isoformat(dropoff_at),
            "quantity": quantity,
        }
        try:
            response = await self._client.post("/api/rpc/calculate_rental_price", json=payload)
            response.raise_for_status()
            return PriceCalculationResult.model_validate(response.json())
        except httpx.TimeoutException:
            logger.error(f"Rental price request timed out for listing {listing_id}")
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Rental price request failed for listing {listing_id}: "
                f"{e.response.status_code} {e.response.text[:200]}"
            )
        except httpx.HTTPError as e:
            logger.error(f"Rental price request failed for listing {listing_id}: {e}")
        except (ValueError, ValidationError) as e:
            logger.error(f"Malformed rental price response for listing {listing_id}: {e}")

        return error_price_result(pickup_at, dropoff_at, quantity)

    async def preview_rental_price(
        self,
        listing_id: int,
        pickup_at: Timestamp,
        dropoff_at: Timestamp,
        quantity: int = 1,
    ) -> PriceCalculationResult:
        """
        Advisory local quote from the listing's cached configuration.

        The first preview for a listing fetches the listing and its tiers;
        later previews are computed without any request.
        """
        listing, tiers = await self._get_pricing_config(listing_id)
        if listing.rental_pricing_model == PricingModel.TIERED:
            rate_or_tiers = tiers
        else:
            rate_or_tiers = listing.base_price
        return quote_rental_price(
            listing.rental_pricing_model, rate_or_tiers, pickup_at, dropoff_at, quantity
        )

    async def _get_pricing_config(self, listing_id: int):
        if listing_id not in self._pricing_cache:
            listing = await self.get_listing(listing_id)
            tiers = await self.get_pricing_tiers(listing_id)
            self._pricing_cache[listing_id] = (listing, tiers)
        return self._pricing_cache[listing_id]

    # ==================== LISTINGS AND TIERS ====================

    async def get_listing(self, listing_id: int) -> ListingResponse:
        response = await self._client.get(f"/api/listings/{listing_id}")
        response.raise_for_status()
        return ListingResponse.model_validate(response.json())

    async def get_pricing_tiers(self, listing_id: int) -> list[PricingTier]:
        """Active tiers of a listing ordered by tier_order."""
        response = await self._client.get(f"/api/listings/{listing_id}/tiers")
        response.raise_for_status()
        return [PricingTier.model_validate(t) for t in response.json()]

    async def _write(self, listing_id: Optional[int], method: str, url: str, **kwargs) -> TierWriteResult:
        response = await self._client.request(method, url, **kwargs)
        if response.status_code not in WRITE_RESULT_STATUS_CODES:
            response.raise_for_status()
        result = TierWriteResult.model_validate(response.json())

        if result.tiers:
            listing_id = result.tiers[0].listing_id
        if listing_id is None:
            self._pricing_cache.clear()
        else:
            self.invalidate(listing_id)
        if not result.ok:
            logger.warning(f"Tier write {method} {url} {result.status}: {result.errors}")
        return result

    async def create_tier(self, listing_id: int, request: TierCreateRequest) -> TierWriteResult:
        return await self._write(
            listing_id, "POST", f"/api/listings/{listing_id}/tiers",
            json=request.model_dump(mode="json", exclude_unset=True),
        )

    async def update_tier(self, tier_id: int, request: TierUpdateRequest) -> TierWriteResult:
        # exclude_unset keeps an explicit max_duration_hours=None in the payload
        return await self._write(
            None, "PATCH", f"/api/tiers/{tier_id}",
            json=request.model_dump(mode="json", exclude_unset=True),
        )

    async def deactivate_tier(self, tier_id: int) -> TierWriteResult:
        return await self._write(None, "DELETE", f"/api/tiers/{tier_id}")

    async def reorder_tiers(
        self,
        listing_id: int,
        tier_ids: list[int],
        expected_version: Optional[int] = None,
    ) -> TierWriteResult:
        """
        Apply an explicit order to the listing's active tiers.

        Safe to retry with the same tier_ids: an ordering that is already
        in place is reported as ok without another version bump.
        """
        return await self._write(
            listing_id, "PUT", f"/api/listings/{listing_id}/tiers/order",
            json={"tier_ids": tier_ids, "expected_version": expected_version},
        )

    async def apply_default_tiers(self, listing_id: int, request: DefaultTiersRequest) -> TierWriteResult:
        return await self._write(
            listing_id, "POST", f"/api/listings/{listing_id}/tiers/defaults",
            json=request.model_dump(mode="json"),
        )
