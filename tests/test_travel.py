"""Travel call sites degrade to None when a provider is unavailable."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from integration_service.core.exceptions import UpstreamApiError
from integration_service.services.travel import (
    AmadeusFlightService,
    AmadeusHotelService,
    SerpApiFlightService,
)


def _api_returning(client) -> MagicMock:
    api = MagicMock()
    api.client = AsyncMock(return_value=client)
    return api


@pytest.mark.asyncio
async def test_hotels_by_city_uppercases_code_and_unwraps_data():
    client = MagicMock()
    client.get = AsyncMock(return_value={"data": [{"hotelId": "H1"}]})
    service = AmadeusHotelService(_api_returning(client))

    hotels = await service.search_hotels_by_city("par", radius=5)

    assert hotels == [{"hotelId": "H1"}]
    service._api.client.assert_awaited_once_with(None)
    client.get.assert_awaited_once_with(
        "/reference-data/locations/hotels/by-city",
        params={"cityCode": "PAR", "radius": 5},
        context="Hotel Search by City",
    )


@pytest.mark.asyncio
async def test_hotel_offers_use_v3_and_default_occupancy():
    client = MagicMock()
    client.get = AsyncMock(return_value={})
    service = AmadeusHotelService(_api_returning(client))

    offers = await service.get_hotel_offers(["H1", "H2"], "2025-03-01", "2025-03-03", adults=2)

    assert offers == []
    service._api.client.assert_awaited_once_with("v3")
    _, kwargs = client.get.call_args
    assert kwargs["params"] == {
        "hotelIds": "H1,H2",
        "checkInDate": "2025-03-01",
        "checkOutDate": "2025-03-03",
        "adults": 2,
        "roomQuantity": 1,
    }


@pytest.mark.asyncio
async def test_hotel_ratings_are_limited_to_three_hotels():
    client = MagicMock()
    client.get = AsyncMock(return_value={"data": []})
    service = AmadeusHotelService(_api_returning(client))

    await service.get_hotel_ratings(["A", "B", "C", "D"])

    service._api.client.assert_awaited_once_with("v2")
    assert client.get.call_args.kwargs["params"] == {"hotelIds": "A,B,C"}


@pytest.mark.asyncio
async def test_upstream_error_means_unavailable():
    client = MagicMock()
    client.get = AsyncMock(
        side_effect=UpstreamApiError("amadeus", status=500, message="boom", context="Flight Offers Search")
    )
    service = AmadeusFlightService(_api_returning(client))

    assert await service.search_flight_offers({"originLocationCode": "ICN"}) is None


@pytest.mark.asyncio
async def test_missing_client_means_unavailable():
    assert await AmadeusHotelService(_api_returning(None)).search_hotels_by_city("SEL") is None
    assert await SerpApiFlightService(_api_returning(None)).search_flight_offers("ICN", "NRT", "2025-05-01") is None


@pytest.mark.asyncio
async def test_serpapi_flights_pass_return_date_only_when_given():
    client = MagicMock()
    client.get = AsyncMock(return_value={"best_flights": [1]})
    service = SerpApiFlightService(_api_returning(client))

    one_way = await service.search_flight_offers("ICN", "NRT", "2025-05-01")
    await service.search_flight_offers("ICN", "NRT", "2025-05-01", "2025-05-09")

    assert one_way == {"best_flights": [1]}
    first, second = (call.kwargs["params"] for call in client.get.call_args_list)
    assert "return_date" not in first
    assert first["engine"] == "google_flights"
    assert second["return_date"] == "2025-05-09"
