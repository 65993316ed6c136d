"""Flight, aircraft history and search history records."""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class AircraftInfo(BaseModel):
    registration: str
    model: str
    age: float = Field(ge=0)
    image: Optional[str] = None


class FlightRoute(BaseModel):
    origin: str
    destination: str


class FlightRecord(BaseModel):
    """Result of one flight lookup.

    flight_number is canonicalized to upper case; timestamp is the capture
    time in epoch milliseconds.
    """
    flight_number: str
    aircraft: AircraftInfo
    airline: str
    route: Optional[FlightRoute] = None
    status: str
    timestamp: int

    @field_validator("flight_number")
    @classmethod
    def canonical_flight_number(cls, v: str) -> str:
        return v.strip().upper()


class FlightLeg(BaseModel):
    date: str
    flight_number: str
    origin: str
    destination: str
    duration: str
    airline: str


class AircraftHistoryRecord(BaseModel):
    registration: str
    flights: List[FlightLeg] = Field(default_factory=list)

    @field_validator("registration")
    @classmethod
    def canonical_registration(cls, v: str) -> str:
        return v.strip().upper()


class SearchHistoryEntry(BaseModel):
    term: str
    timestamp: int
