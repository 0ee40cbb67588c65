"""Planning run and orchestrator state models."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from itinerary_engine.models.conflicts import ConflictReport
from itinerary_engine.models.itinerary import Itinerary
from itinerary_engine.models.planning import PlanningRequest
from itinerary_engine.tools.executor import CancelToken

RunStatus = Literal["running", "succeeded", "failed", "cancelled", "timed_out", "superseded"]


class PlannerState(str, Enum):
    """Orchestrator state machine."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    PLANNING = "planning"
    SETTLED = "settled"
    WATCHDOG_FALLBACK = "watchdog_fallback"
    FAILED = "failed"


@dataclass
class PlanningRun:
    """One end-to-end planning execution over an itinerary snapshot.

    Lives only for the duration of a cycle; superseded runs are discarded.
    """

    run_id: int
    target: Itinerary
    request: PlanningRequest
    status: RunStatus = "running"
    cancel_token: CancelToken = field(default_factory=CancelToken)
    started_monotonic: float = field(default_factory=time.monotonic)

    def cancel(self, status: RunStatus, reason: str) -> None:
        if self.status == "running":
            self.status = status
        self.cancel_token.cancel(reason)


@dataclass(frozen=True)
class PlanningSnapshot:
    """Everything the presentation layer sees."""

    model: Itinerary
    is_planning: bool
    planning_error: str | None
    conflicts: ConflictReport
    state: PlannerState
    run_id: int
