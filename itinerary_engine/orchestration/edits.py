"""User edits as pure functions producing new itineraries.

Structural edits drop the travel segments of place pairs they form, so the
next planning run only re-resolves what changed.
"""

from collections.abc import Sequence
from datetime import time

from itinerary_engine.models.common import TravelMode
from itinerary_engine.models.itinerary import Activity, Day, Itinerary, PlaceActivity
from itinerary_engine.planning.segments import invalidate_changed_segments


def _get_day(itinerary: Itinerary, day_id: str) -> Day:
    day = itinerary.day(day_id)
    if day is None:
        raise ValueError(f"Unknown day: {day_id}")
    return day


def _index_of(day: Day, activity_id: str) -> int:
    for index, activity in enumerate(day.activities):
        if activity.id == activity_id:
            return index
    raise ValueError(f"Unknown activity {activity_id} in day {day.id}")


def _with_days(itinerary: Itinerary, *days: Day) -> Itinerary:
    updated = {day.id: day for day in days}
    return itinerary.model_copy(update={"days": [updated.get(d.id, d) for d in itinerary.days]})


def _with_activities(day: Day, activities: list[Activity]) -> Day:
    return invalidate_changed_segments(day, day.model_copy(update={"activities": activities}))


def reorder_activities(itinerary: Itinerary, day_id: str, order: Sequence[str]) -> Itinerary:
    """Arrange a day's activities in ``order``, which must name each activity once."""
    day = _get_day(itinerary, day_id)
    by_id = {a.id: a for a in day.activities}
    if sorted(order) != sorted(by_id):
        raise ValueError(f"Order for day {day_id} must contain each activity exactly once")
    return _with_days(itinerary, _with_activities(day, [by_id[i] for i in order]))


def move_activity(
    itinerary: Itinerary,
    activity_id: str,
    from_day_id: str,
    to_day_id: str,
    index: int,
) -> Itinerary:
    """Move an activity to ``index`` of a (possibly different) day."""
    source = _get_day(itinerary, from_day_id)
    activity = source.activities[_index_of(source, activity_id)]
    if isinstance(activity, PlaceActivity):
        activity = activity.model_copy(update={"travel_from_previous": None, "schedule": None})

    remaining = [a for a in source.activities if a.id != activity_id]
    if from_day_id == to_day_id:
        remaining.insert(index, activity)
        return _with_days(itinerary, _with_activities(source, remaining))

    target = _get_day(itinerary, to_day_id)
    inserted = list(target.activities)
    inserted.insert(index, activity)
    return _with_days(
        itinerary,
        _with_activities(source, remaining),
        _with_activities(target, inserted),
    )


def add_activity(
    itinerary: Itinerary,
    day_id: str,
    activity: Activity,
    index: int | None = None,
) -> Itinerary:
    """Insert an activity (appended when ``index`` is None)."""
    day = _get_day(itinerary, day_id)
    if day.activity(activity.id) is not None:
        raise ValueError(f"Activity {activity.id} already exists in day {day_id}")

    activities = list(day.activities)
    activities.insert(len(activities) if index is None else index, activity)
    return _with_days(itinerary, _with_activities(day, activities))


def replace_activity(
    itinerary: Itinerary,
    day_id: str,
    activity_id: str,
    replacement: Activity,
) -> Itinerary:
    """Swap an activity for another in the same position.

    Segments into and out of the replaced stop are dropped even when the id
    is unchanged, since the place itself may have moved.
    """
    day = _get_day(itinerary, day_id)
    position = _index_of(day, activity_id)
    if isinstance(replacement, PlaceActivity):
        replacement = replacement.model_copy(update={"travel_from_previous": None, "schedule": None})

    activities = list(day.activities)
    activities[position] = replacement
    for later in range(position + 1, len(activities)):
        following = activities[later]
        if isinstance(following, PlaceActivity):
            activities[later] = following.model_copy(update={"travel_from_previous": None})
            break
    return _with_days(itinerary, _with_activities(day, activities))


def delete_activity(itinerary: Itinerary, day_id: str, activity_id: str) -> Itinerary:
    day = _get_day(itinerary, day_id)
    _index_of(day, activity_id)
    return _with_days(
        itinerary, _with_activities(day, [a for a in day.activities if a.id != activity_id])
    )


def set_day_start(itinerary: Itinerary, day_id: str, start_time: time | None) -> Itinerary:
    """Override (or clear with None) the day's start time."""
    day = _get_day(itinerary, day_id)
    return _with_days(itinerary, day.model_copy(update={"start_time": start_time}))


def set_travel_mode(
    itinerary: Itinerary,
    day_id: str,
    activity_id: str,
    mode: TravelMode | None,
) -> Itinerary:
    """Request a travel mode into a place; None lets the resolver choose."""
    day = _get_day(itinerary, day_id)
    position = _index_of(day, activity_id)
    activity = day.activities[position]
    if not isinstance(activity, PlaceActivity):
        raise ValueError(f"Activity {activity_id} is a note and has no travel mode")

    activities = list(day.activities)
    activities[position] = activity.model_copy(
        update={"travel_mode": mode, "travel_from_previous": None}
    )
    return _with_days(itinerary, day.model_copy(update={"activities": activities}))
