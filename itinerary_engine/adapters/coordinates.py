"""Coordinate resolution for place activities.

Ordered fallback: explicit activity coordinate, then the linked location
record, then a lookup by name. Unresolvable activities get ``None`` and are
left out of travel-segment computation.
"""

import logging
import unicodedata
from collections.abc import Iterable
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from itinerary_engine.models.common import Geo
from itinerary_engine.models.itinerary import Day, PlaceActivity

logger = logging.getLogger(__name__)


class LocationRecord(BaseModel):
    """A known location that place activities can link to."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    coordinate: Geo | None = None


class LocationDirectory(Protocol):
    """Lookup of location records by id or name."""

    def get(self, location_id: str) -> LocationRecord | None:
        ...

    def find_by_name(self, name: str) -> LocationRecord | None:
        ...


def normalize_name(name: str) -> str:
    """Case- and accent-insensitive key for name lookups."""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.casefold().split())


class InMemoryLocationDirectory:
    """Location directory over a fixed set of records."""

    def __init__(self, records: Iterable[LocationRecord] = ()) -> None:
        self._by_id: dict[str, LocationRecord] = {}
        self._by_name: dict[str, LocationRecord] = {}
        for record in records:
            self.add(record)

    def add(self, record: LocationRecord) -> None:
        self._by_id[record.id] = record
        self._by_name.setdefault(normalize_name(record.name), record)

    def get(self, location_id: str) -> LocationRecord | None:
        return self._by_id.get(location_id)

    def find_by_name(self, name: str) -> LocationRecord | None:
        return self._by_name.get(normalize_name(name))


class CoordinateResolver:
    """Resolves place activities to coordinates."""

    def __init__(self, directory: LocationDirectory | None = None) -> None:
        self._directory = directory

    def resolve(self, activity: PlaceActivity) -> Geo | None:
        if activity.coordinate is not None:
            return activity.coordinate

        if self._directory is None:
            return None

        if activity.location_id:
            record = self._directory.get(activity.location_id)
            if record is not None and record.coordinate is not None:
                return record.coordinate

        record = self._directory.find_by_name(activity.title)
        if record is not None and record.coordinate is not None:
            return record.coordinate

        logger.debug(
            "No coordinates for activity",
            extra={"structured": {"activity_id": activity.id, "title": activity.title}},
        )
        return None

    def resolve_day(self, day: Day) -> dict[str, Geo | None]:
        """Resolve every place activity of a day, keyed by activity id."""
        return {place.id: self.resolve(place) for place in day.places()}
