"""Conflict detection over a timed itinerary.

A pure, read-only pass: the itinerary is never modified, conflicts are
returned as annotations that reference the day and activities involved.
"""

from itinerary_engine.config import Settings, get_settings
from itinerary_engine.models.common import MINUTES_IN_DAY, Weekday, format_minutes, minutes_of
from itinerary_engine.models.conflicts import (
    Conflict,
    ConflictCategory,
    ConflictReport,
    ConflictSeverity,
    ConflictSummary,
)
from itinerary_engine.models.itinerary import Day, Itinerary, OperatingPeriod, PlaceActivity, SegmentWarning
from itinerary_engine.planning.transit_windows import window_warnings

FINE_DINING_TAGS = ("fine_dining", "kaiseki", "omakase")


def verify_pair(
    previous: PlaceActivity,
    current: PlaceActivity,
    day: Day,
    day_index: int,
    settings: Settings,
) -> list[Conflict]:
    """Check the gap between two consecutive places.

    Overlap when the current arrival is before the previous departure,
    otherwise a tight gap when the gap is shorter than the travel time.
    """
    if previous.schedule is None or current.schedule is None:
        return []

    gap = current.schedule.arrival_min - previous.schedule.departure_min
    if gap < 0:
        return [
            Conflict(
                id=f"overlap-{current.id}",
                severity=ConflictSeverity.ERROR,
                category=ConflictCategory.OVERLAP,
                day_id=day.id,
                day_index=day_index,
                activity_ids=[current.id, previous.id],
                message=f"Overlaps with {previous.title} by {-gap} min",
                details={"overlap_minutes": -gap},
            )
        ]

    segment = current.travel_from_previous
    if segment is None or segment.origin_activity_id != previous.id:
        return []

    travel = segment.duration_minutes
    if travel == 0 or gap >= travel:
        return []

    # The margin only pads the suggested departure
    shortfall = travel - gap
    leave_by = format_minutes(previous.schedule.departure_min - (shortfall + settings.tight_gap_margin_min))
    return [
        Conflict(
            id=f"tight-gap-{current.id}",
            severity=ConflictSeverity.WARNING,
            category=ConflictCategory.TIGHT_GAP,
            day_id=day.id,
            day_index=day_index,
            activity_ids=[current.id, previous.id],
            message=(
                f"Only {gap} min after {previous.title} but travel takes ~{travel} min. "
                f"Leave by {leave_by} or switch to a faster mode."
            ),
            details={"gap_minutes": gap, "travel_minutes": travel, "shortfall_minutes": shortfall},
        )
    ]


def applicable_periods(activity: PlaceActivity, day: Day) -> list[OperatingPeriod] | None:
    """Operating periods that apply on the day.

    Returns None when nothing can be checked (no published hours, or only
    weekday-specific hours and no date). An empty list means closed that day.
    """
    if not activity.operating_hours:
        return None

    every_day = [p for p in activity.operating_hours if p.weekday is None]
    if day.date is None:
        return every_day or None

    weekday = Weekday.from_index(day.date.weekday())
    return [p for p in activity.operating_hours if p.weekday == weekday] + every_day


def outside_period(arrival: int, departure: int, period: OperatingPeriod) -> str | None:
    """Return ``before_open``/``after_close`` when the visit is outside the period."""
    opens = minutes_of(period.opens_at)
    closes = minutes_of(period.closes_at)

    if period.is_overnight:
        # Open across midnight: inside after opening or before the early-morning close
        if arrival >= opens or arrival < closes:
            return None
        return "before_open" if arrival < opens else "after_close"

    if arrival < opens:
        return "before_open"
    if departure > closes:
        return "after_close"
    return None


def verify_operating_hours(activity: PlaceActivity, day: Day, day_index: int) -> list[Conflict]:
    """Check the visit window against the published hours for the day's weekday."""
    if activity.schedule is None:
        return []

    periods = applicable_periods(activity, day)
    if periods is None:
        return []

    arrival = activity.schedule.arrival_min % MINUTES_IN_DAY
    departure = arrival + (activity.schedule.departure_min - activity.schedule.arrival_min)
    scheduled = format_minutes(arrival)

    # Case 1: no hours on this weekday - closed
    if not periods:
        weekday = Weekday.from_index(day.date.weekday()).value
        return [
            Conflict(
                id=f"closed-{activity.id}",
                severity=ConflictSeverity.ERROR,
                category=ConflictCategory.OUTSIDE_HOURS,
                day_id=day.id,
                day_index=day_index,
                activity_ids=[activity.id],
                message=f"{activity.title} is closed on {weekday.capitalize()}",
                details={"scheduled_time": scheduled, "weekday": weekday},
            )
        ]

    reasons = [outside_period(arrival, departure, p) for p in periods]
    if any(reason is None for reason in reasons):
        return []

    # Case 2: outside every period - report against the first one
    period, reason = periods[0], reasons[0]
    opens_at = period.opens_at.strftime("%H:%M")
    closes_at = period.closes_at.strftime("%H:%M")
    if reason == "before_open":
        message = f"Scheduled arrival at {scheduled}, but opens at {opens_at}"
    else:
        message = f"Closes at {closes_at}, but scheduled until {format_minutes(departure)}"

    return [
        Conflict(
            id=f"closed-{activity.id}",
            severity=ConflictSeverity.ERROR,
            category=ConflictCategory.OUTSIDE_HOURS,
            day_id=day.id,
            day_index=day_index,
            activity_ids=[activity.id],
            message=message,
            details={
                "scheduled_time": scheduled,
                "opens_at": opens_at,
                "closes_at": closes_at,
                "reason": reason,
            },
        )
    ]


def verify_reservation(activity: PlaceActivity, day: Day, day_index: int) -> list[Conflict]:
    """Flag unconfirmed reservations: required ones warn, fine dining is a hint."""
    if activity.reservation_confirmed:
        return []

    if activity.reservation_required:
        return [
            Conflict(
                id=f"reservation-{activity.id}",
                severity=ConflictSeverity.WARNING,
                category=ConflictCategory.RESERVATION_NEEDED,
                day_id=day.id,
                day_index=day_index,
                activity_ids=[activity.id],
                message=f"{activity.title} requires a reservation",
            )
        ]

    tags = [t.lower() for t in activity.tags]
    if any(marker in tag for tag in tags for marker in FINE_DINING_TAGS):
        return [
            Conflict(
                id=f"reservation-{activity.id}",
                severity=ConflictSeverity.INFO,
                category=ConflictCategory.RESERVATION_RECOMMENDED,
                day_id=day.id,
                day_index=day_index,
                activity_ids=[activity.id],
                message="Fine dining venue - advance reservation strongly recommended",
            )
        ]

    return []


def verify_transit_windows(
    activity: PlaceActivity, day: Day, day_index: int, settings: Settings
) -> list[Conflict]:
    """Warn when a transit segment arrives in the late-night or peak window."""
    segment = activity.travel_from_previous
    if segment is None:
        return []

    arrival = segment.arrival_min
    if arrival is None and activity.schedule is not None:
        arrival = activity.schedule.arrival_min
    if arrival is None:
        return []

    conflicts: list[Conflict] = []
    for warning in window_warnings(segment.mode, arrival, settings):
        if warning == SegmentWarning.last_train:
            category = ConflictCategory.LAST_TRAIN
            message = f"Arrives at {format_minutes(arrival)}, close to the last train"
        else:
            category = ConflictCategory.RUSH_HOUR
            message = f"Arrives at {format_minutes(arrival)} during rush hour; expect crowded trains"
        conflicts.append(
            Conflict(
                id=f"{category.value.replace('_', '-')}-{activity.id}",
                severity=ConflictSeverity.WARNING,
                category=category,
                day_id=day.id,
                day_index=day_index,
                activity_ids=[activity.id],
                message=message,
                details={"arrival_time": format_minutes(arrival), "mode": segment.mode.value},
            )
        )
    return conflicts


def detect_day_conflicts(day: Day, day_index: int, settings: Settings | None = None) -> list[Conflict]:
    """All conflicts of one day, in visiting order."""
    settings = settings or get_settings()
    conflicts: list[Conflict] = []
    previous: PlaceActivity | None = None

    for activity in day.places():
        if previous is not None:
            conflicts.extend(verify_pair(previous, activity, day, day_index, settings))
        conflicts.extend(verify_operating_hours(activity, day, day_index))
        conflicts.extend(verify_reservation(activity, day, day_index))
        conflicts.extend(verify_transit_windows(activity, day, day_index, settings))
        previous = activity

    return conflicts


def detect_itinerary_conflicts(itinerary: Itinerary, settings: Settings | None = None) -> ConflictReport:
    """Scan every day of a timed itinerary.

    Args:
        itinerary: Itinerary with schedules filled in
        settings: Engine settings (margins and transit windows)

    Returns:
        ConflictReport with conflicts in day order, grouped by day, and counts
    """
    settings = settings or get_settings()
    conflicts: list[Conflict] = []
    by_day: dict[str, list[Conflict]] = {}

    for day_index, day in enumerate(itinerary.days):
        day_conflicts = detect_day_conflicts(day, day_index, settings)
        if day_conflicts:
            by_day[day.id] = day_conflicts
            conflicts.extend(day_conflicts)

    return ConflictReport(conflicts=conflicts, by_day=by_day, summary=ConflictSummary.of(conflicts))


def conflicts_for_day(report: ConflictReport, day_id: str) -> list[Conflict]:
    return report.by_day.get(day_id, [])


def conflicts_for_activity(report: ConflictReport, activity_id: str) -> list[Conflict]:
    """Conflicts shown on an activity (its primary id)."""
    return [c for c in report.conflicts if c.activity_id == activity_id]
