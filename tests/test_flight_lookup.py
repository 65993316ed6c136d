"""
Unit tests for cache-first flight lookups.
"""

import pytest
from unittest.mock import AsyncMock

from services.flight_lookup import FlightDataProvider, FlightLookupService


class TestFlightDataProvider:
    """Test cases for the demo data provider."""

    @pytest.mark.asyncio
    async def test_same_flight_same_record(self):
        provider = FlightDataProvider()

        first = await provider.fetch_flight("ai202")
        second = await provider.fetch_flight("AI202")

        assert first.flight_number == "AI202"
        assert first.airline == "Air India"
        assert first.route == second.route
        assert first.aircraft == second.aircraft
        assert first.route.origin != first.route.destination

    @pytest.mark.asyncio
    @pytest.mark.parametrize("flight_number", ["", "A", "AI20202", "??12", "AI 202"])
    async def test_invalid_flight_numbers(self, flight_number):
        assert await FlightDataProvider().fetch_flight(flight_number) is None

    @pytest.mark.asyncio
    async def test_aircraft_history(self):
        history = await FlightDataProvider().fetch_aircraft_history("vt-anb", legs=4)

        assert history.registration == "VT-ANB"
        assert len(history.flights) == 4
        assert history.flights[0].date > history.flights[-1].date

    @pytest.mark.asyncio
    async def test_invalid_registration(self):
        assert await FlightDataProvider().fetch_aircraft_history("not a tail!") is None


class TestFlightLookupService:
    """Test cases for FlightLookupService."""

    @pytest.fixture
    def service(self, cache):
        return FlightLookupService(cache)

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, service, cache):
        """Test the first search reaches the provider and the second the cache."""
        data, cached = await service.search("ai202")

        assert cached is False
        assert data["flight_number"] == "AI202"
        assert await cache.get_flight_data("AI202") == data

        again, cached = await service.search("AI202")

        assert cached is True
        assert again == data
        assert await cache.get_counter("api_calls") == 1
        assert await cache.get_counter("cache_hits") == 1

    @pytest.mark.asyncio
    async def test_provider_called_once(self, cache):
        provider = FlightDataProvider()
        provider.fetch_flight = AsyncMock(wraps=provider.fetch_flight)
        service = FlightLookupService(cache, provider)

        await service.search("EK500")
        await service.search("EK500")

        provider.fetch_flight.assert_awaited_once_with("EK500")

    @pytest.mark.asyncio
    async def test_unknown_flight(self, service, cache):
        assert await service.search("???") == (None, False)
        assert await cache.get_counter("api_calls") == 0

    @pytest.mark.asyncio
    async def test_serves_data_when_store_down(self, service, kv):
        kv.down = True

        data, cached = await service.search("BA117")

        assert cached is False
        assert data["airline"] == "British Airways"

    @pytest.mark.asyncio
    async def test_aircraft_history_cached(self, service, kv):
        data, cached = await service.aircraft_history("vt-anb")
        assert cached is False
        assert await kv.ttl("jetvein:aircraft:VT-ANB") == 7200

        again, cached = await service.aircraft_history("VT-ANB")
        assert cached is True
        assert again == data
