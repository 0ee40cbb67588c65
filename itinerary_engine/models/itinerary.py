"""Itinerary models - days, activities, schedules and travel segments.

All models are frozen: planning never mutates a value in place, it emits a new
one through ``model_copy(update=...)``.
"""

import datetime
from datetime import time
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

from itinerary_engine.models.common import Geo, TravelMode, Weekday, clock_time


class SegmentWarning(str, Enum):
    """Warnings attached to a travel segment."""

    tight_gap = "tight_gap"
    last_train = "last_train"
    rush_hour = "rush_hour"


class TravelSegment(BaseModel):
    """Computed transition between two consecutive place activities.

    Owned by the destination activity. ``origin_activity_id`` records which
    place the segment starts from so stale segments are detectable after a
    reorder.
    """

    model_config = ConfigDict(frozen=True)

    mode: TravelMode
    duration_minutes: int = Field(..., ge=0)
    distance_meters: int = Field(0, ge=0)
    path: list[Geo] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    is_estimated: bool = False
    warnings: list[SegmentWarning] = Field(default_factory=list)
    origin_activity_id: str
    departure_min: int | None = None
    arrival_min: int | None = None


class Schedule(BaseModel):
    """Arrival and departure of a place visit, in minutes from the day's midnight."""

    model_config = ConfigDict(frozen=True)

    arrival_min: int
    departure_min: int
    awaiting_recalculation: bool = False
    exceeds_day_end: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def arrival_time(self) -> time:
        return clock_time(self.arrival_min)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def departure_time(self) -> time:
        return clock_time(self.departure_min)


class OperatingPeriod(BaseModel):
    """Published opening hours; ``weekday=None`` applies to every day.

    A period whose ``closes_at`` is earlier than ``opens_at`` runs overnight.
    """

    model_config = ConfigDict(frozen=True)

    weekday: Weekday | None = None
    opens_at: time
    closes_at: time

    @property
    def is_overnight(self) -> bool:
        return self.closes_at < self.opens_at


class PlaceActivity(BaseModel):
    """A visit to a place."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["place"] = "place"
    id: str
    title: str
    category: str | None = None
    coordinate: Geo | None = None
    location_id: str | None = None
    duration_minutes: int | None = Field(None, ge=0)
    travel_mode: TravelMode | None = None
    operating_hours: list[OperatingPeriod] = Field(default_factory=list)
    reservation_required: bool = False
    reservation_confirmed: bool = False
    tags: list[str] = Field(default_factory=list)
    schedule: Schedule | None = None
    travel_from_previous: TravelSegment | None = None


class NoteActivity(BaseModel):
    """Free-form note; takes up time only when it has fixed times."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["note"] = "note"
    id: str
    title: str
    notes: str = ""
    start_time: time | None = None
    end_time: time | None = None

    @property
    def has_fixed_times(self) -> bool:
        return self.start_time is not None and self.end_time is not None


Activity = Annotated[PlaceActivity | NoteActivity, Field(discriminator="kind")]


class CityTransition(BaseModel):
    """Inter-city travel between the previous day and this one."""

    model_config = ConfigDict(frozen=True)

    from_city_id: str
    to_city_id: str
    mode: TravelMode
    duration_minutes: int
    departure_min: int
    arrival_min: int


class Day(BaseModel):
    """One day of the trip; activity order is the visiting order."""

    model_config = ConfigDict(frozen=True)

    id: str
    date: datetime.date | None = None
    city_id: str | None = None
    timezone: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    start_point: Geo | None = None
    activities: list[Activity] = Field(default_factory=list)
    city_transition: CityTransition | None = None

    def places(self) -> list[PlaceActivity]:
        return [a for a in self.activities if isinstance(a, PlaceActivity)]

    def activity(self, activity_id: str) -> PlaceActivity | NoteActivity | None:
        for activity in self.activities:
            if activity.id == activity_id:
                return activity
        return None


class Itinerary(BaseModel):
    """Ordered collection of days."""

    model_config = ConfigDict(frozen=True)

    id: str
    days: list[Day] = Field(default_factory=list)
    timezone: str | None = None

    def day(self, day_id: str) -> Day | None:
        for day in self.days:
            if day.id == day_id:
                return day
        return None
