"""Planning request/result models exchanged with the presentation layer."""

from datetime import time

from pydantic import BaseModel, ConfigDict, Field

from itinerary_engine.models.common import Geo
from itinerary_engine.models.conflicts import ConflictReport
from itinerary_engine.models.itinerary import Itinerary


class PlanningRequest(BaseModel):
    """Per-invocation planning options."""

    model_config = ConfigDict(frozen=True)

    suppress_optimization: bool = False
    full_replan: bool = False
    entry_point: Geo | None = None
    default_day_start: time | None = None
    refine_route: bool = False


class PlanningResult(BaseModel):
    """Output of one completed planning run."""

    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    conflicts: ConflictReport
    reordered_day_ids: list[str] = Field(default_factory=list)
    resolved_segments: int = 0
    estimated_segments: int = 0
