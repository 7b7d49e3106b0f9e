"""Hotel and flight lookups against Amadeus and SerpAPI.

Every method returns ``None`` when the provider is unavailable (disabled,
unauthenticated or failing) so the caller can answer "service
unavailable". Payloads are passed through unshaped.
"""
from __future__ import annotations

from typing import Any, Iterable

import structlog

from integration_service.core.exceptions import UpstreamApiError
from integration_service.services.api_client import ApiKeyClient, OAuthApiClient

logger = structlog.get_logger(__name__)

# Amadeus e-reputation accepts at most three hotels per request.
MAX_RATED_HOTELS = 3


def _join_ids(hotel_ids: Iterable[str]) -> str:
    return ",".join(hotel_ids)


class AmadeusHotelService:
    def __init__(self, api: OAuthApiClient):
        self._api = api

    async def search_hotels_by_city(self, city_code: str, **options: Any) -> list[Any] | None:
        params = {"cityCode": city_code.upper(), **options}
        data = await self._get(
            None, "/reference-data/locations/hotels/by-city", params, "Hotel Search by City"
        )
        return None if data is None else data.get("data", [])

    async def get_hotel_offers(
        self,
        hotel_ids: Iterable[str],
        check_in_date: str,
        check_out_date: str,
        **options: Any,
    ) -> list[Any] | None:
        params = {
            "hotelIds": _join_ids(hotel_ids),
            "checkInDate": check_in_date,
            "checkOutDate": check_out_date,
            "adults": 1,
            "roomQuantity": 1,
            **options,
        }
        data = await self._get("v3", "/shopping/hotel-offers", params, "Hotel Offers Search")
        return None if data is None else data.get("data", [])

    async def get_hotel_ratings(self, hotel_ids: Iterable[str]) -> list[Any] | None:
        ids = list(hotel_ids)[:MAX_RATED_HOTELS]
        data = await self._get(
            "v2", "/e-reputation/hotel-sentiments", {"hotelIds": _join_ids(ids)}, "Hotel Ratings"
        )
        return None if data is None else data.get("data", [])

    async def _get(
        self, version: str | None, path: str, params: dict[str, Any], context: str
    ) -> dict[str, Any] | None:
        client = await self._api.client(version)
        if client is None:
            return None
        try:
            return await client.get(path, params=params, context=context)
        except UpstreamApiError:
            return None


class AmadeusFlightService:
    def __init__(self, api: OAuthApiClient):
        self._api = api

    async def search_flight_offers(self, params: dict[str, Any]) -> list[Any] | None:
        client = await self._api.client("v2")
        if client is None:
            return None
        try:
            data = await client.get("/shopping/flight-offers", params=params, context="Flight Offers Search")
        except UpstreamApiError:
            return None
        return data.get("data", [])


class SerpApiFlightService:
    """Google Flights results through SerpAPI, returned as received."""

    def __init__(self, api: ApiKeyClient):
        self._api = api

    async def search_flight_offers(
        self,
        departure_id: str,
        arrival_id: str,
        outbound_date: str,
        return_date: str | None = None,
    ) -> dict[str, Any] | None:
        client = await self._api.client()
        if client is None:
            return None
        params = {
            "engine": "google_flights",
            "departure_id": departure_id,
            "arrival_id": arrival_id,
            "outbound_date": outbound_date,
        }
        if return_date is not None:
            params["return_date"] = return_date
        try:
            return await client.get(params=params, context="Flight Offers Search")
        except UpstreamApiError:
            return None
