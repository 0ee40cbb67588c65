"""Conflict models - scheduling problems found in a timed itinerary."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# JSON-serializable value types for conflict details
JsonValue = str | int | float | bool | None | dict[str, Any] | list[Any]


class ConflictSeverity(str, Enum):
    """Severity levels for scheduling conflicts."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ConflictCategory(str, Enum):
    """Categories of scheduling conflicts."""

    OVERLAP = "overlap"
    TIGHT_GAP = "tight_gap"
    OUTSIDE_HOURS = "outside_hours"
    RESERVATION_NEEDED = "reservation_needed"
    RESERVATION_RECOMMENDED = "reservation_recommended"
    LAST_TRAIN = "last_train"
    RUSH_HOUR = "rush_hour"


class Conflict(BaseModel):
    """A scheduling problem attached to one or more activities.

    ``activity_ids[0]`` is the activity the conflict is shown on; any further
    ids are the related activities (e.g. the previous stop of an overlap).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    severity: ConflictSeverity
    category: ConflictCategory
    day_id: str
    day_index: int
    activity_ids: list[str]
    message: str
    details: dict[str, JsonValue] = Field(default_factory=dict)

    @property
    def activity_id(self) -> str:
        return self.activity_ids[0]


class ConflictSummary(BaseModel):
    """Conflict counts by severity."""

    total: int = 0
    errors: int = 0
    warnings: int = 0
    info: int = 0

    @classmethod
    def of(cls, conflicts: list[Conflict]) -> "ConflictSummary":
        return cls(
            total=len(conflicts),
            errors=sum(1 for c in conflicts if c.severity == ConflictSeverity.ERROR),
            warnings=sum(1 for c in conflicts if c.severity == ConflictSeverity.WARNING),
            info=sum(1 for c in conflicts if c.severity == ConflictSeverity.INFO),
        )


class ConflictReport(BaseModel):
    """All conflicts of an itinerary, in day and visiting order."""

    model_config = ConfigDict(frozen=True)

    conflicts: list[Conflict] = Field(default_factory=list)
    by_day: dict[str, list[Conflict]] = Field(default_factory=dict)
    summary: ConflictSummary = Field(default_factory=ConflictSummary)
