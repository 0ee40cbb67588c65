"""Routing provider request/response models."""

from pydantic import BaseModel, ConfigDict, Field

from itinerary_engine.models.common import Geo, TravelMode


class RoutingRequest(BaseModel):
    """Route request sent to the routing provider."""

    model_config = ConfigDict(frozen=True)

    origin: Geo
    destination: Geo
    mode: TravelMode
    departure_time: str | None = None  # HH:MM local time
    timezone: str | None = None


class RoutingResponse(BaseModel):
    """Route returned by the routing provider (or estimated locally)."""

    model_config = ConfigDict(frozen=True)

    duration_minutes: int = Field(..., ge=0)
    distance_meters: int = Field(0, ge=0)
    path: list[Geo] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    is_estimated: bool = False
    mode: TravelMode | None = None
