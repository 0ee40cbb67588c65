"""Integration tests for the planning orchestrator state machine.

Timers run on a fake clock so debounce and watchdog behavior is deterministic.
"""

import asyncio
from datetime import time

import pytest

from itinerary_engine.adapters.coordinates import CoordinateResolver
from itinerary_engine.config import Settings
from itinerary_engine.models.itinerary import Day, Itinerary
from itinerary_engine.orchestration.edits import reorder_activities, set_day_start
from itinerary_engine.orchestration.orchestrator import (
    FAILURE_MESSAGE,
    WATCHDOG_MESSAGE,
    OrchestratorClosedError,
    PlanningMetrics,
    PlanningOrchestrator,
)
from itinerary_engine.orchestration.state import PlannerState, PlanningSnapshot
from itinerary_engine.planning.segments import TravelSegmentResolver
from tests.fakes import (
    ASAKUSA_HOTEL,
    SENSOJI,
    SHIBUYA,
    TOKYO_STATION,
    UENO_PARK,
    FakeClock,
    FakeRoutingProvider,
    make_day,
    make_itinerary,
    make_place,
)


class RecordingMetrics(PlanningMetrics):
    def __init__(self) -> None:
        self.outcomes: list[str] = []

    def record_run(self, outcome: str, duration_ms: float) -> None:
        self.outcomes.append(outcome)


def base_trip() -> Itinerary:
    return make_itinerary(
        make_day(
            "d1",
            [
                make_place("sensoji", SENSOJI, duration_minutes=60),
                make_place("ueno", UENO_PARK, duration_minutes=90),
                make_place("station", TOKYO_STATION, duration_minutes=30),
            ],
            start_time=time(9, 0),
        )
    )


def build(
    clock: FakeClock,
    provider: FakeRoutingProvider,
    settings: Settings,
    **kwargs,
) -> PlanningOrchestrator:
    return PlanningOrchestrator(
        kwargs.pop("itinerary", base_trip()),
        resolver=TravelSegmentResolver.from_provider(provider, settings),
        settings=settings,
        sleep_fn=clock.sleep,
        **kwargs,
    )


async def wait_idle(orchestrator: PlanningOrchestrator) -> None:
    await asyncio.wait_for(orchestrator.wait_idle(), timeout=2)


def first_day(orchestrator: PlanningOrchestrator) -> Day:
    return orchestrator.snapshot.model.days[0]


@pytest.mark.asyncio
async def test_edits_inside_debounce_window_yield_one_run(clock: FakeClock, settings: Settings) -> None:
    provider = FakeRoutingProvider(clock=clock)
    metrics = RecordingMetrics()
    orchestrator = build(clock, provider, settings, metrics=metrics)

    edit_a = set_day_start(base_trip(), "d1", time(8, 0))
    edit_b = set_day_start(base_trip(), "d1", time(10, 0))

    orchestrator.submit_edit(edit_a)
    await clock.advance(0.2)
    orchestrator.submit_edit(edit_b)

    # Edit B is visible immediately, before any planning
    assert orchestrator.snapshot.model == edit_b
    assert orchestrator.state == PlannerState.DEBOUNCING
    assert orchestrator.snapshot.is_planning is True

    await clock.advance(0.44)
    assert orchestrator.snapshot.run_id == 0
    assert provider.calls == []

    await clock.advance(0.02)
    await wait_idle(orchestrator)

    snapshot = orchestrator.snapshot
    assert snapshot.state == PlannerState.SETTLED
    assert snapshot.run_id == 1
    assert metrics.outcomes == ["succeeded"]
    assert snapshot.model.days[0].places()[0].schedule.arrival_time == time(10, 0)

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_run_superseded_in_flight_is_discarded(clock: FakeClock, settings: Settings) -> None:
    provider = FakeRoutingProvider(clock=clock, delay=1.0)
    metrics = RecordingMetrics()
    settled: list[Itinerary] = []
    orchestrator = build(clock, provider, settings, metrics=metrics, on_settled=settled.append)

    # Runs #1-#4 are each superseded by the next
    for _ in range(4):
        orchestrator.retry()
    await clock.advance(0)

    orchestrator.submit_edit(base_trip())
    await clock.advance(0.45)
    assert orchestrator.snapshot.run_id == 5
    assert orchestrator.state == PlannerState.PLANNING
    run_five_target = first_day(orchestrator)

    # Drag-reorder arrives while run #5 waits on the router
    await clock.advance(0.3)
    dragged = reorder_activities(base_trip(), "d1", ["station", "ueno", "sensoji"])
    orchestrator.submit_edit(dragged, suppress_optimization=True)
    assert orchestrator.state == PlannerState.DEBOUNCING

    # Run #5's route would have completed here
    await clock.advance(0.7)
    assert settled == []

    # Walk then transit, each delayed by the router
    await clock.advance(2.0)
    await wait_idle(orchestrator)

    snapshot = orchestrator.snapshot
    assert snapshot.run_id == 6
    assert snapshot.state == PlannerState.SETTLED
    assert [a.id for a in snapshot.model.days[0].activities] == ["station", "ueno", "sensoji"]
    assert len(settled) == 1
    assert settled[0] == snapshot.model
    assert [a.id for a in run_five_target.activities] == ["sensoji", "ueno", "station"]
    assert metrics.outcomes == ["superseded"] * 5 + ["succeeded"]

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_watchdog_keeps_previous_schedule(clock: FakeClock, settings: Settings) -> None:
    provider = FakeRoutingProvider(clock=clock)
    orchestrator = build(clock, provider, settings)

    orchestrator.load(base_trip())
    await wait_idle(orchestrator)
    rendered = orchestrator.snapshot.model
    assert rendered.days[0].places()[1].schedule is not None

    provider.delay = 20.0
    orchestrator.retry()
    await clock.advance(14.9)
    assert orchestrator.state == PlannerState.PLANNING

    await clock.advance(0.2)

    snapshot = orchestrator.snapshot
    assert snapshot.state == PlannerState.WATCHDOG_FALLBACK
    assert snapshot.planning_error == WATCHDOG_MESSAGE
    assert snapshot.is_planning is False
    assert snapshot.model == rendered

    # The abandoned run never lands
    await clock.advance(10)
    assert orchestrator.snapshot.model == rendered
    assert orchestrator.state == PlannerState.WATCHDOG_FALLBACK

    # Manual retry recovers
    provider.delay = 0.0
    orchestrator.retry()
    await wait_idle(orchestrator)
    assert orchestrator.state == PlannerState.SETTLED
    assert orchestrator.snapshot.planning_error is None

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_failure_keeps_model_and_retry_recovers(clock: FakeClock, settings: Settings) -> None:
    class FlakyCoordinates(CoordinateResolver):
        def __init__(self) -> None:
            super().__init__()
            self.broken = True

        def resolve_day(self, day):
            if self.broken:
                raise RuntimeError("location directory unavailable")
            return super().resolve_day(day)

    coordinates = FlakyCoordinates()
    orchestrator = build(clock, FakeRoutingProvider(clock=clock), settings, coordinate_resolver=coordinates)
    trip = base_trip()

    orchestrator.load(trip)
    await wait_idle(orchestrator)

    snapshot = orchestrator.snapshot
    assert snapshot.state == PlannerState.FAILED
    assert snapshot.planning_error == FAILURE_MESSAGE
    assert snapshot.model == trip

    coordinates.broken = False
    orchestrator.retry()
    await wait_idle(orchestrator)

    assert orchestrator.state == PlannerState.SETTLED
    assert orchestrator.snapshot.planning_error is None
    assert orchestrator.snapshot.model.days[0].places()[0].schedule is not None

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_routing_outage_still_settles_with_estimates(clock: FakeClock, settings: Settings) -> None:
    provider = FakeRoutingProvider(clock=clock, fail_all=True)
    orchestrator = build(clock, provider, settings)

    orchestrator.load(base_trip())
    await wait_idle(orchestrator)

    places = first_day(orchestrator).places()
    assert orchestrator.state == PlannerState.SETTLED
    assert orchestrator.snapshot.planning_error is None
    assert all(p.travel_from_previous.is_estimated for p in places[1:])

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_state_transitions_are_published(clock: FakeClock, settings: Settings) -> None:
    seen: list[PlanningSnapshot] = []
    orchestrator = build(clock, FakeRoutingProvider(clock=clock), settings, on_change=seen.append)

    orchestrator.submit_edit(base_trip())
    await clock.advance(0.45)
    await wait_idle(orchestrator)

    assert [s.state for s in seen] == [
        PlannerState.DEBOUNCING,
        PlannerState.PLANNING,
        PlannerState.SETTLED,
    ]
    assert seen[-1].conflicts.summary.total == len(seen[-1].conflicts.conflicts)

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_planning(clock: FakeClock, settings: Settings) -> None:
    def explode(_: Itinerary) -> None:
        raise RuntimeError("sync failed")

    orchestrator = build(clock, FakeRoutingProvider(clock=clock), settings, on_settled=explode)

    orchestrator.load(base_trip())
    await wait_idle(orchestrator)

    assert orchestrator.state == PlannerState.SETTLED

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_optimizer_runs_unless_suppressed(clock: FakeClock, settings: Settings) -> None:
    scrambled = make_itinerary(
        make_day(
            "d1",
            [
                make_place("shibuya", SHIBUYA),
                make_place("sensoji", SENSOJI),
                make_place("station", TOKYO_STATION),
            ],
            start_point=SENSOJI,
        )
    )
    orchestrator = build(clock, FakeRoutingProvider(clock=clock), settings, itinerary=scrambled)

    orchestrator.submit_edit(scrambled, suppress_optimization=True)
    await clock.advance(0.45)
    await wait_idle(orchestrator)
    assert [a.id for a in first_day(orchestrator).activities] == ["shibuya", "sensoji", "station"]

    orchestrator.submit_edit(scrambled)
    await clock.advance(0.45)
    await wait_idle(orchestrator)
    assert [a.id for a in first_day(orchestrator).activities] == ["sensoji", "station", "shibuya"]

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_retry_after_watchdog_keeps_manual_order(clock: FakeClock, settings: Settings) -> None:
    dragged = make_itinerary(
        make_day(
            "d1",
            [make_place("shibuya", SHIBUYA), make_place("sensoji", SENSOJI)],
            start_point=ASAKUSA_HOTEL,
        )
    )
    provider = FakeRoutingProvider(clock=clock, delay=20.0)
    orchestrator = build(clock, provider, settings, itinerary=dragged)

    orchestrator.submit_edit(dragged, suppress_optimization=True)
    await clock.advance(0.45)
    await clock.advance(15.1)
    assert orchestrator.state == PlannerState.WATCHDOG_FALLBACK

    provider.delay = 0.0
    orchestrator.retry()
    await wait_idle(orchestrator)

    assert orchestrator.state == PlannerState.SETTLED
    # Optimizing from the hotel would put sensoji first
    assert [a.id for a in first_day(orchestrator).activities] == ["shibuya", "sensoji"]

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_default_day_start_applies_to_days_without_one(clock: FakeClock, settings: Settings) -> None:
    trip = make_itinerary(
        make_day("d1", [make_place("sensoji", SENSOJI), make_place("ueno", UENO_PARK)]),
    )
    orchestrator = build(
        clock, FakeRoutingProvider(clock=clock), settings, itinerary=trip, default_day_start=time(10, 0)
    )

    orchestrator.load(trip)
    await wait_idle(orchestrator)

    assert first_day(orchestrator).places()[0].schedule.arrival_time == time(10, 0)

    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_teardown_aborts_everything(clock: FakeClock, settings: Settings) -> None:
    provider = FakeRoutingProvider(clock=clock, delay=5.0)
    orchestrator = build(clock, provider, settings)

    orchestrator.load(base_trip())
    await clock.advance(0)
    orchestrator.submit_edit(base_trip())
    await orchestrator.aclose()

    assert clock.pending == 0
    assert orchestrator.state == PlannerState.IDLE
    assert provider.closed is True

    await clock.advance(30)
    assert orchestrator.snapshot.run_id == 1
    with pytest.raises(OrchestratorClosedError):
        orchestrator.submit_edit(base_trip())
    with pytest.raises(OrchestratorClosedError):
        orchestrator.retry()


@pytest.mark.asyncio
async def test_real_timer_debounce(settings: Settings) -> None:
    fast = settings.model_copy(update={"debounce_ms": 10, "watchdog_ms": 2000})
    orchestrator = PlanningOrchestrator(
        base_trip(),
        resolver=TravelSegmentResolver.from_provider(FakeRoutingProvider(), fast),
        settings=fast,
    )

    orchestrator.submit_edit(base_trip())
    await wait_idle(orchestrator)

    assert orchestrator.state == PlannerState.SETTLED
    assert orchestrator.snapshot.run_id == 1

    await orchestrator.aclose()
