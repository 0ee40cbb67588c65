"""Late-night and peak-hour windows for public transit segments."""

from datetime import time

from itinerary_engine.config import Settings
from itinerary_engine.models.common import (
    MINUTES_IN_DAY,
    PUBLIC_TRANSIT_MODES,
    TravelMode,
    minutes_of,
)
from itinerary_engine.models.itinerary import SegmentWarning, TravelSegment


def in_window(minute: int, window: tuple[time, time]) -> bool:
    """Whether a minute-of-day falls in ``[start, end)``; windows may wrap midnight."""
    start, end = minutes_of(window[0]), minutes_of(window[1])
    minute %= MINUTES_IN_DAY
    if start <= end:
        return start <= minute < end
    return minute >= start or minute < end


def window_warnings(mode: TravelMode, arrival_min: int, settings: Settings) -> list[SegmentWarning]:
    """Warnings for a transit arrival at ``arrival_min``; other modes get none."""
    if mode not in PUBLIC_TRANSIT_MODES:
        return []

    warnings: list[SegmentWarning] = []
    if in_window(arrival_min, settings.last_train_window):
        warnings.append(SegmentWarning.last_train)
    if any(in_window(arrival_min, w) for w in settings.rush_hour_windows):
        warnings.append(SegmentWarning.rush_hour)
    return warnings


def transit_warnings(segment: TravelSegment, settings: Settings) -> list[SegmentWarning]:
    """Last-train and rush-hour warnings for a timed segment."""
    if segment.arrival_min is None:
        return []
    return window_warnings(segment.mode, segment.arrival_min, settings)
