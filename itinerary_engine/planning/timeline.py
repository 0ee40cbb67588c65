"""Day timeline builder: sequential arrival/departure propagation."""

import logging
from collections.abc import Collection, Mapping
from datetime import time

from itinerary_engine.config import Settings, get_settings
from itinerary_engine.models.common import MINUTES_IN_DAY, TravelMode, minutes_of
from itinerary_engine.models.itinerary import (
    CityTransition,
    Day,
    NoteActivity,
    PlaceActivity,
    Schedule,
    SegmentWarning,
    TravelSegment,
)
from itinerary_engine.planning.durations import visit_minutes
from itinerary_engine.planning.transit_windows import transit_warnings

logger = logging.getLogger(__name__)


def effective_day_start(
    day: Day,
    default_day_start: time | None = None,
    settings: Settings | None = None,
) -> int:
    """Day start in minutes: the day's own override, then the request default, then settings."""
    settings = settings or get_settings()
    start = day.start_time or default_day_start or settings.default_day_start
    return minutes_of(start)


def effective_day_end(day: Day, day_start_min: int, settings: Settings) -> int:
    end = minutes_of(day.end_time or settings.default_day_end)
    # An end before the start means the day runs past midnight
    if end <= day_start_min:
        end += MINUTES_IN_DAY
    return end


def _timed_segment(
    segment: TravelSegment,
    departure_min: int,
    gap_min: int,
    settings: Settings,
) -> TravelSegment:
    arrival_min = departure_min + segment.duration_minutes
    timed = segment.model_copy(update={"departure_min": departure_min, "arrival_min": arrival_min})

    warnings: list[SegmentWarning] = []
    if segment.duration_minutes > 0 and gap_min < segment.duration_minutes:
        warnings.append(SegmentWarning.tight_gap)
    warnings.extend(transit_warnings(timed, settings))
    return timed.model_copy(update={"warnings": warnings})


def build_day_timeline(
    day: Day,
    *,
    day_start_min: int | None = None,
    settings: Settings | None = None,
    unresolved_ids: Collection[str] = (),
) -> Day:
    """Fill in the schedule of every place activity of a day.

    Strictly sequential: each place arrives after the previous departure plus
    its travel segment, then stays for its visit duration. A segment that does
    not start at the preceding place is stale and ignored. A missing segment
    counts as zero minutes and marks the activity as awaiting recalculation,
    unless one end has no coordinate (``unresolved_ids``), in which case the
    activity is simply shown without travel data.

    Args:
        day: Day with activities in visiting order
        day_start_min: Start of the day in minutes (defaults to the day's own start)
        settings: Engine settings
        unresolved_ids: Place ids whose coordinate could not be resolved

    Returns:
        New Day with schedules and timed segments
    """
    settings = settings or get_settings()
    cursor = day_start_min if day_start_min is not None else effective_day_start(day, settings=settings)
    day_end_min = effective_day_end(day, cursor, settings)

    activities = []
    previous: PlaceActivity | None = None
    last_departure: int | None = None

    for activity in day.activities:
        if isinstance(activity, NoteActivity):
            if activity.has_fixed_times:
                start = minutes_of(activity.start_time)
                end = minutes_of(activity.end_time)
                if end < start:
                    end += MINUTES_IN_DAY
                cursor = max(cursor, end)
            activities.append(activity)
            continue

        segment = activity.travel_from_previous
        if previous is None or (segment is not None and segment.origin_activity_id != previous.id):
            segment = None

        awaiting = (
            previous is not None
            and segment is None
            and activity.id not in unresolved_ids
            and previous.id not in unresolved_ids
        )

        if segment is not None:
            gap = cursor - last_departure + segment.duration_minutes if last_departure is not None else 0
            segment = _timed_segment(segment, cursor, gap, settings)
            cursor = segment.arrival_min

        arrival = cursor
        departure = arrival + visit_minutes(activity, settings.default_visit_minutes)
        schedule = Schedule(
            arrival_min=arrival,
            departure_min=departure,
            awaiting_recalculation=awaiting,
            exceeds_day_end=departure > day_end_min,
        )
        activities.append(
            activity.model_copy(update={"schedule": schedule, "travel_from_previous": segment})
        )

        cursor = departure + settings.transition_buffer_min
        last_departure = departure
        previous = activity

    return day.model_copy(update={"activities": activities})


def city_transition_mode(duration_minutes: int) -> TravelMode:
    """Short and long hops are trains; mid-range ones are generic transit."""
    if 60 <= duration_minutes <= 120:
        return TravelMode.transit
    return TravelMode.train


def build_city_transition(
    previous_day: Day | None,
    day: Day,
    travel_minutes: Mapping[tuple[str, str], int],
    settings: Settings | None = None,
) -> CityTransition | None:
    """Inter-city travel departing at the end of the previous day.

    Returns None when the cities match, either is unknown, or no travel time
    is known for the pair.
    """
    if previous_day is None or not previous_day.city_id or not day.city_id:
        return None
    if previous_day.city_id == day.city_id:
        return None

    duration = travel_minutes.get((previous_day.city_id, day.city_id))
    if duration is None:
        logger.debug(
            "No city travel time",
            extra={"structured": {"from": previous_day.city_id, "to": day.city_id}},
        )
        return None

    settings = settings or get_settings()
    departure = minutes_of(previous_day.end_time or settings.default_day_end)
    return CityTransition(
        from_city_id=previous_day.city_id,
        to_city_id=day.city_id,
        mode=city_transition_mode(duration),
        duration_minutes=duration,
        departure_min=departure,
        arrival_min=departure + duration,
    )
