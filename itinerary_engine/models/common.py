"""Common types and enums shared across all models."""

from datetime import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

MINUTES_IN_DAY = 24 * 60


class Geo(BaseModel):
    """Geographic coordinates (WGS84)."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class TravelMode(str, Enum):
    """Travel mode between two stops."""

    walk = "walk"
    bicycle = "bicycle"
    car = "car"
    taxi = "taxi"
    rideshare = "rideshare"
    transit = "transit"
    train = "train"
    subway = "subway"
    tram = "tram"
    bus = "bus"
    ferry = "ferry"


PUBLIC_TRANSIT_MODES = frozenset(
    {
        TravelMode.transit,
        TravelMode.train,
        TravelMode.subway,
        TravelMode.tram,
        TravelMode.bus,
        TravelMode.ferry,
    }
)


class Weekday(str, Enum):
    """Day of week, Monday first (matches date.weekday())."""

    monday = "monday"
    tuesday = "tuesday"
    wednesday = "wednesday"
    thursday = "thursday"
    friday = "friday"
    saturday = "saturday"
    sunday = "sunday"

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        return list(cls)[index]


def minutes_of(value: time) -> int:
    """Convert a time of day to minutes from midnight."""
    return value.hour * 60 + value.minute


def clock_time(minutes: int) -> time:
    """Convert minutes from midnight to a time of day, wrapping past midnight."""
    normalized = minutes % MINUTES_IN_DAY
    return time(normalized // 60, normalized % 60)


def format_minutes(minutes: int) -> str:
    """Format minutes from midnight as HH:MM."""
    return clock_time(minutes).strftime("%H:%M")
