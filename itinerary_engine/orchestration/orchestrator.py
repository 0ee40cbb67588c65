"""Planning orchestrator: debounced, cancellable planning runs over user edits.

State machine::

    idle -> debouncing -> planning -> settled | watchdog_fallback | failed

- A new edit restarts the debounce timer; only the latest edit is planned.
- Entering planning aborts the in-flight run and issues a new, strictly
  increasing run id.
- A run's result is applied only while its id is still the latest.
- The watchdog keeps the last good model and surfaces a retryable error.
"""

import asyncio
import datetime
import logging
import time
from collections.abc import Awaitable, Callable, Mapping

from itinerary_engine.adapters.coordinates import CoordinateResolver
from itinerary_engine.config import Settings, get_settings
from itinerary_engine.models.common import Geo
from itinerary_engine.models.conflicts import ConflictReport
from itinerary_engine.models.itinerary import Itinerary
from itinerary_engine.models.planning import PlanningRequest, PlanningResult
from itinerary_engine.orchestration.pipeline import run_planning
from itinerary_engine.orchestration.state import (
    PlannerState,
    PlanningRun,
    PlanningSnapshot,
    RunStatus,
)
from itinerary_engine.planning.segments import TravelSegmentResolver
from itinerary_engine.tools.executor import PlanningCancelledError

logger = logging.getLogger(__name__)

WATCHDOG_MESSAGE = "We couldn't refresh travel times right now. Showing previous estimates."
FAILURE_MESSAGE = "We couldn't update your itinerary. Please try again."


class OrchestratorClosedError(Exception):
    """The orchestrator was torn down."""

    pass


class PlanningMetrics:
    """Interface for planning run metrics (no-op default)."""

    def record_run(self, outcome: str, duration_ms: float) -> None:
        pass


class PlanningOrchestrator:
    """Owns the visible itinerary and the timers that replan it."""

    def __init__(
        self,
        itinerary: Itinerary,
        *,
        resolver: TravelSegmentResolver | None = None,
        coordinate_resolver: CoordinateResolver | None = None,
        settings: Settings | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        on_change: Callable[[PlanningSnapshot], None] | None = None,
        on_settled: Callable[[Itinerary], None] | None = None,
        metrics: PlanningMetrics | None = None,
        city_travel_minutes: Mapping[tuple[str, str], int] | None = None,
        entry_point: Geo | None = None,
        default_day_start: datetime.time | None = None,
        refine_route: bool = False,
    ) -> None:
        """Initialize orchestrator.

        Args:
            itinerary: Initial model
            resolver: Travel segment resolver (heuristics only if omitted)
            coordinate_resolver: Coordinate resolution for place activities
            settings: Engine settings (debounce and watchdog timers)
            sleep_fn: Timer sleep (injectable for tests)
            on_change: Called with a snapshot on every state change
            on_settled: Called with the finalized itinerary when a plan settles
            metrics: Planning run metrics
            city_travel_minutes: Known travel times between cities
            entry_point: Trip entry point used as the route start of days without one
            default_day_start: Start time for days without their own
            refine_route: Run 2-opt after nearest neighbour
        """
        self._settings = settings or get_settings()
        self._resolver = resolver or TravelSegmentResolver(settings=self._settings)
        self._coordinates = coordinate_resolver or CoordinateResolver()
        self._sleep = sleep_fn or asyncio.sleep
        self._on_change = on_change
        self._on_settled = on_settled
        self._metrics = metrics or PlanningMetrics()
        self._city_travel_minutes = city_travel_minutes
        self._entry_point = entry_point
        self._default_day_start = default_day_start
        self._refine_route = refine_route

        self._model = itinerary
        self._conflicts = ConflictReport()
        self._state = PlannerState.IDLE
        self._planning_error: str | None = None

        self._run_counter = 0
        self._active_run: PlanningRun | None = None
        self._pending_request: PlanningRequest | None = None
        self._last_request: PlanningRequest | None = None
        self._debounce_task: asyncio.Task[None] | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._watchdog_task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    @property
    def snapshot(self) -> PlanningSnapshot:
        return PlanningSnapshot(
            model=self._model,
            is_planning=self._state in (PlannerState.DEBOUNCING, PlannerState.PLANNING),
            planning_error=self._planning_error,
            conflicts=self._conflicts,
            state=self._state,
            run_id=self._run_counter,
        )

    @property
    def state(self) -> PlannerState:
        return self._state

    @property
    def model(self) -> Itinerary:
        return self._model

    def submit_edit(self, itinerary: Itinerary, *, suppress_optimization: bool = False) -> None:
        """Apply a user edit and schedule a debounced planning cycle.

        The edit is visible immediately. Any in-flight run is aborted and any
        pending edit is superseded.

        Raises:
            OrchestratorClosedError: After ``aclose()``
        """
        self._ensure_open()
        self._model = itinerary
        self._abort_active_run("superseded", "superseded by a newer edit")
        self._pending_request = self._request(suppress_optimization=suppress_optimization)

        _cancel_task(self._debounce_task)
        self._debounce_task = asyncio.create_task(self._debounce())
        self._idle.clear()
        self._transition(PlannerState.DEBOUNCING)

    def load(self, itinerary: Itinerary) -> None:
        """Replace the model and plan it right away."""
        self._ensure_open()
        self._model = itinerary
        _cancel_task(self._debounce_task)
        self._debounce_task = None
        self._start_run(self._request())

    def retry(self) -> None:
        """Manual retry after a failure or watchdog fallback: full replan, no debounce.

        Repeats the last request, so a manual reorder stays unoptimized.
        """
        self._ensure_open()
        _cancel_task(self._debounce_task)
        self._debounce_task = None
        request = self._pending_request or self._last_request or self._request()
        self._pending_request = None
        self._start_run(request.model_copy(update={"full_replan": True}))

    async def wait_idle(self) -> None:
        """Wait until no debounce or planning run is outstanding."""
        await self._idle.wait()

    async def aclose(self) -> None:
        """Tear down: abort outstanding requests and clear all timers."""
        if self._closed:
            return
        self._closed = True

        tasks = [t for t in (self._debounce_task, self._run_task, self._watchdog_task) if t]
        _cancel_task(self._debounce_task)
        self._debounce_task = None
        self._abort_active_run("cancelled", "orchestrator closed")
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._resolver.aclose()

        self._state = PlannerState.IDLE
        self._idle.set()
        logger.debug("Orchestrator closed", extra={"structured": {"run_id": self._run_counter}})

    def _request(self, **kwargs: bool) -> PlanningRequest:
        return PlanningRequest(
            entry_point=self._entry_point,
            default_day_start=self._default_day_start,
            refine_route=self._refine_route,
            **kwargs,
        )

    def _ensure_open(self) -> None:
        if self._closed:
            raise OrchestratorClosedError("Planning orchestrator is closed")

    async def _debounce(self) -> None:
        await self._sleep(self._settings.debounce_ms / 1000)
        request = self._pending_request or self._request()
        self._pending_request = None
        self._debounce_task = None
        self._start_run(request)

    def _start_run(self, request: PlanningRequest) -> None:
        self._abort_active_run("superseded", "superseded by a newer run")

        self._run_counter += 1
        run = PlanningRun(run_id=self._run_counter, target=self._model, request=request)
        self._active_run = run
        self._last_request = request
        self._planning_error = None
        self._idle.clear()

        logger.debug(
            "Planning run started",
            extra={
                "structured": {
                    "run_id": run.run_id,
                    "suppress_optimization": request.suppress_optimization,
                    "full_replan": request.full_replan,
                }
            },
        )
        self._run_task = asyncio.create_task(self._execute(run))
        self._watchdog_task = asyncio.create_task(self._watchdog(run))
        self._transition(PlannerState.PLANNING)

    def _abort_active_run(self, status: RunStatus, reason: str) -> None:
        run = self._active_run
        if run is None:
            return
        run.cancel(status, reason)
        self._active_run = None
        _cancel_task(self._run_task)
        _cancel_task(self._watchdog_task)
        self._run_task = None
        self._watchdog_task = None
        self._metrics.record_run(status, _elapsed_ms(run))
        logger.debug(
            "Planning run aborted",
            extra={"structured": {"run_id": run.run_id, "status": status, "reason": reason}},
        )

    def _is_latest(self, run: PlanningRun) -> bool:
        return run is self._active_run and run.run_id == self._run_counter and run.status == "running"

    async def _execute(self, run: PlanningRun) -> None:
        try:
            result = await run_planning(
                run.target,
                run.request,
                resolver=self._resolver,
                coordinates=self._coordinates,
                settings=self._settings,
                cancel_token=run.cancel_token,
                run_id=run.run_id,
                city_travel_minutes=self._city_travel_minutes,
            )
        except PlanningCancelledError:
            logger.debug("Planning run cancelled", extra={"structured": {"run_id": run.run_id}})
            return
        except Exception as e:
            self._apply_failure(run, e)
            return

        self._apply_result(run, result)

    def _apply_result(self, run: PlanningRun, result: PlanningResult) -> None:
        if not self._is_latest(run):
            logger.debug("Discarding stale planning result", extra={"structured": {"run_id": run.run_id}})
            return

        run.status = "succeeded"
        self._finish_run(run)
        self._model = result.itinerary
        self._conflicts = result.conflicts
        self._planning_error = None
        self._transition(PlannerState.SETTLED)

        if self._on_settled is not None:
            try:
                self._on_settled(result.itinerary)
            except Exception:
                logger.exception("Settled listener failed", extra={"structured": {"run_id": run.run_id}})
        self._idle.set()

    def _apply_failure(self, run: PlanningRun, error: Exception) -> None:
        if not self._is_latest(run):
            logger.debug("Discarding stale planning failure", extra={"structured": {"run_id": run.run_id}})
            return

        run.status = "failed"
        self._finish_run(run)
        logger.error(
            "Planning run failed",
            exc_info=error,
            extra={"structured": {"run_id": run.run_id, "error": type(error).__name__}},
        )
        self._planning_error = FAILURE_MESSAGE
        self._transition(PlannerState.FAILED)
        self._idle.set()

    async def _watchdog(self, run: PlanningRun) -> None:
        await self._sleep(self._settings.watchdog_ms / 1000)
        if not self._is_latest(run):
            return

        run.cancel("timed_out", "watchdog")
        self._active_run = None
        self._watchdog_task = None
        _cancel_task(self._run_task)
        self._run_task = None
        self._metrics.record_run("timed_out", _elapsed_ms(run))
        logger.warning(
            "Planning run exceeded watchdog",
            extra={"structured": {"run_id": run.run_id, "watchdog_ms": self._settings.watchdog_ms}},
        )

        self._planning_error = WATCHDOG_MESSAGE
        self._transition(PlannerState.WATCHDOG_FALLBACK)
        self._idle.set()

    def _finish_run(self, run: PlanningRun) -> None:
        self._active_run = None
        self._run_task = None
        _cancel_task(self._watchdog_task)
        self._watchdog_task = None
        self._metrics.record_run(run.status, _elapsed_ms(run))

    def _transition(self, state: PlannerState) -> None:
        self._state = state
        if self._on_change is None:
            return
        try:
            self._on_change(self.snapshot)
        except Exception:
            logger.exception("Change listener failed", extra={"structured": {"state": state.value}})


def _cancel_task(task: asyncio.Task[None] | None) -> None:
    # A timer may abort the run it belongs to; never cancel the running task itself
    if task is not None and not task.done() and task is not asyncio.current_task():
        task.cancel()


def _elapsed_ms(run: PlanningRun) -> float:
    return (time.monotonic() - run.started_monotonic) * 1000
