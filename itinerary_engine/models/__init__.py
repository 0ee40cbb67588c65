"""Models package - re-exports for convenience."""

from itinerary_engine.models.common import (
    MINUTES_IN_DAY,
    PUBLIC_TRANSIT_MODES,
    Geo,
    TravelMode,
    Weekday,
    clock_time,
    format_minutes,
    minutes_of,
)
from itinerary_engine.models.conflicts import (
    Conflict,
    ConflictCategory,
    ConflictReport,
    ConflictSeverity,
    ConflictSummary,
)
from itinerary_engine.models.itinerary import (
    Activity,
    CityTransition,
    Day,
    Itinerary,
    NoteActivity,
    OperatingPeriod,
    PlaceActivity,
    Schedule,
    SegmentWarning,
    TravelSegment,
)
from itinerary_engine.models.planning import PlanningRequest, PlanningResult
from itinerary_engine.models.routing import RoutingRequest, RoutingResponse

__all__ = [
    # Common
    "MINUTES_IN_DAY",
    "PUBLIC_TRANSIT_MODES",
    "Geo",
    "TravelMode",
    "Weekday",
    "clock_time",
    "format_minutes",
    "minutes_of",
    # Itinerary
    "Activity",
    "CityTransition",
    "Day",
    "Itinerary",
    "NoteActivity",
    "OperatingPeriod",
    "PlaceActivity",
    "Schedule",
    "SegmentWarning",
    "TravelSegment",
    # Conflicts
    "Conflict",
    "ConflictCategory",
    "ConflictReport",
    "ConflictSeverity",
    "ConflictSummary",
    # Planning
    "PlanningRequest",
    "PlanningResult",
    # Routing
    "RoutingRequest",
    "RoutingResponse",
]
