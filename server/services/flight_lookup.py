"""Flight lookups with a cache in front of the flight data provider.

The provider here serves deterministic demo data: the same flight number or
registration always yields the same record, so cache behaviour is easy to
observe end to end.
"""

import hashlib
import random
import re
import time
from datetime import date, timedelta
from typing import Any, Dict, Optional, Tuple

from core.cache import CacheService
from core.exceptions import CacheWriteError
from core.logging import get_logger
from models.flight import AircraftHistoryRecord, AircraftInfo, FlightLeg, FlightRecord, FlightRoute

logger = get_logger(__name__)

FLIGHT_NUMBER_PATTERN = re.compile(r"^[A-Z0-9]{2}\d{1,4}[A-Z]?$")
REGISTRATION_PATTERN = re.compile(r"^[A-Z0-9]{1,2}-?[A-Z0-9]{2,5}$")

AIRLINES = {
    'AI': ('Air India', 'VT'),
    '6E': ('IndiGo', 'VT'),
    'UK': ('Vistara', 'VT'),
    'SG': ('SpiceJet', 'VT'),
    'EK': ('Emirates', 'A6'),
    'QR': ('Qatar Airways', 'A7'),
    'BA': ('British Airways', 'G'),
    'LH': ('Lufthansa', 'D'),
    'AA': ('American Airlines', 'N'),
    'UA': ('United Airlines', 'N'),
    'DL': ('Delta Air Lines', 'N'),
}

AIRCRAFT_MODELS = (
    'Airbus A320neo',
    'Airbus A321neo',
    'Airbus A350-900',
    'Boeing 737-800',
    'Boeing 737 MAX 8',
    'Boeing 787-9',
    'Boeing 777-300ER',
)

AIRPORTS = ('DEL', 'BOM', 'BLR', 'MAA', 'HYD', 'CCU', 'DXB', 'DOH', 'LHR', 'FRA', 'JFK', 'SFO')

STATUSES = ('Scheduled', 'Boarding', 'In Flight', 'Landed', 'Delayed')


def _rng(seed_text: str) -> random.Random:
    seed = int.from_bytes(hashlib.sha256(seed_text.encode()).digest()[:8], 'big')
    return random.Random(seed)


class FlightDataProvider:
    """Source of truth behind the cache (demo data)."""

    async def fetch_flight(self, flight_number: str) -> Optional[FlightRecord]:
        flight_number = flight_number.strip().upper()
        if not FLIGHT_NUMBER_PATTERN.match(flight_number):
            return None

        rng = _rng(flight_number)
        airline, reg_prefix = AIRLINES.get(flight_number[:2], ('JetVein Demo Air', 'VT'))
        origin, destination = rng.sample(AIRPORTS, 2)
        registration = f"{reg_prefix}-{''.join(rng.choice('ABCDEFGHJKLMNPQRSTUVWXYZ') for _ in range(3))}"

        return FlightRecord(
            flight_number=flight_number,
            aircraft=AircraftInfo(
                registration=registration,
                model=rng.choice(AIRCRAFT_MODELS),
                age=round(rng.uniform(0.5, 20.0), 1),
            ),
            airline=airline,
            route=FlightRoute(origin=origin, destination=destination),
            status=rng.choice(STATUSES),
            timestamp=int(time.time() * 1000),
        )

    async def fetch_aircraft_history(self, registration: str, legs: int = 10) -> Optional[AircraftHistoryRecord]:
        registration = registration.strip().upper()
        if not REGISTRATION_PATTERN.match(registration):
            return None

        rng = _rng(registration)
        airline_code = rng.choice(list(AIRLINES))
        airline = AIRLINES[airline_code][0]
        today = date.today()
        flights = []
        for day in range(legs):
            origin, destination = rng.sample(AIRPORTS, 2)
            minutes = rng.randint(55, 600)
            flights.append(FlightLeg(
                date=(today - timedelta(days=day)).isoformat(),
                flight_number=f"{airline_code}{rng.randint(100, 9999)}",
                origin=origin,
                destination=destination,
                duration=f"{minutes // 60}h {minutes % 60:02d}m",
                airline=airline,
            ))
        return AircraftHistoryRecord(registration=registration, flights=flights)


class FlightLookupService:
    """Cache-first flight and aircraft lookups with hit / call counters."""

    def __init__(self, cache: CacheService, provider: Optional[FlightDataProvider] = None):
        self.cache = cache
        self.provider = provider or FlightDataProvider()

    async def search(self, flight_number: str) -> Tuple[Optional[Dict[str, Any]], bool]:
        """Return ``(flight, cached)``; flight is None when the provider has no match."""
        cached = await self.cache.get_flight_data(flight_number)
        if cached:
            await self.cache.increment_counter("cache_hits")
            return cached, True

        record = await self.provider.fetch_flight(flight_number)
        if record is None:
            return None, False

        data = record.model_dump(mode="json")
        try:
            await self.cache.cache_flight_data(flight_number, data)
        except CacheWriteError:
            logger.warning("Serving uncached flight data", flight_number=record.flight_number)

        await self.cache.increment_counter("api_calls")
        return data, False

    async def aircraft_history(self, registration: str) -> Tuple[Optional[Dict[str, Any]], bool]:
        cached = await self.cache.get_aircraft_history(registration)
        if cached:
            await self.cache.increment_counter("cache_hits")
            return cached, True

        history = await self.provider.fetch_aircraft_history(registration)
        if history is None:
            return None, False

        data = history.model_dump(mode="json")
        try:
            await self.cache.cache_aircraft_history(registration, data)
        except CacheWriteError:
            logger.warning("Serving uncached aircraft history", registration=history.registration)

        await self.cache.increment_counter("api_calls")
        return data, False
