"""End-to-end tests for a single planning run."""

from datetime import time

import pytest

from itinerary_engine.adapters.coordinates import CoordinateResolver
from itinerary_engine.config import Settings
from itinerary_engine.models.common import TravelMode
from itinerary_engine.models.conflicts import ConflictCategory
from itinerary_engine.models.planning import PlanningRequest
from itinerary_engine.orchestration.pipeline import run_planning
from itinerary_engine.planning.segments import TravelSegmentResolver
from itinerary_engine.tools.executor import CancelToken, PlanningCancelledError
from tests.fakes import (
    ASAKUSA_HOTEL,
    SENSOJI,
    SHIBUYA,
    TOKYO_STATION,
    UENO_PARK,
    FakeRoutingProvider,
    make_day,
    make_itinerary,
    make_note,
    make_place,
)


def ids(day) -> list[str]:
    return [a.id for a in day.activities]


async def plan(itinerary, settings: Settings, provider: FakeRoutingProvider | None = None, **kwargs):
    request = kwargs.pop("request", PlanningRequest())
    return await run_planning(
        itinerary,
        request,
        resolver=TravelSegmentResolver.from_provider(provider or FakeRoutingProvider(), settings),
        coordinates=CoordinateResolver(),
        settings=settings,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_plans_a_full_day(settings: Settings) -> None:
    itinerary = make_itinerary(
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

    result = await plan(itinerary, settings)
    sensoji, ueno, station = result.itinerary.days[0].places()

    assert result.resolved_segments == 2
    assert result.estimated_segments == 0
    assert sensoji.travel_from_previous is None
    assert ueno.travel_from_previous.origin_activity_id == "sensoji"
    assert ueno.schedule.arrival_time == time(10, 20)
    assert station.schedule.arrival_time == time(12, 10)
    assert not any(p.schedule.awaiting_recalculation for p in (sensoji, ueno, station))
    # Input is untouched
    assert itinerary.days[0].places()[1].schedule is None


@pytest.mark.asyncio
async def test_optimizer_reorders_from_start_point(settings: Settings) -> None:
    itinerary = make_itinerary(
        make_day(
            "d1",
            [
                make_place("shibuya", SHIBUYA),
                make_note("pack-umbrella"),
                make_place("station", TOKYO_STATION),
                make_place("sensoji", SENSOJI),
            ],
            start_point=ASAKUSA_HOTEL,
        )
    )

    result = await plan(itinerary, settings)
    day = result.itinerary.days[0]

    assert result.reordered_day_ids == ["d1"]
    assert ids(day) == ["sensoji", "station", "shibuya", "pack-umbrella"]
    assert [p.travel_from_previous.origin_activity_id for p in day.places()[1:]] == ["sensoji", "station"]


@pytest.mark.asyncio
async def test_suppressed_optimization_keeps_manual_order(settings: Settings) -> None:
    itinerary = make_itinerary(
        make_day(
            "d1",
            [make_place("shibuya", SHIBUYA), make_place("sensoji", SENSOJI), make_place("station", TOKYO_STATION)],
            start_point=ASAKUSA_HOTEL,
        )
    )

    result = await plan(itinerary, settings, request=PlanningRequest(suppress_optimization=True))

    assert result.reordered_day_ids == []
    assert ids(result.itinerary.days[0]) == ["shibuya", "sensoji", "station"]


@pytest.mark.asyncio
async def test_routing_failure_falls_back_to_estimate(settings: Settings) -> None:
    provider = FakeRoutingProvider(failing_destinations=(UENO_PARK,))
    itinerary = make_itinerary(
        make_day(
            "d1",
            [
                make_place("sensoji", SENSOJI, duration_minutes=60),
                make_place("ueno", UENO_PARK, duration_minutes=60),
                make_place("station", TOKYO_STATION, duration_minutes=60),
            ],
        )
    )

    result = await plan(itinerary, settings, provider)
    _, ueno, station = result.itinerary.days[0].places()

    assert ueno.travel_from_previous.is_estimated is True
    assert ueno.travel_from_previous.duration_minutes > 0
    assert station.travel_from_previous.is_estimated is False
    assert result.resolved_segments == 2
    assert result.estimated_segments == 1
    assert ueno.schedule.awaiting_recalculation is False


@pytest.mark.asyncio
async def test_place_without_coordinates_is_timed_without_travel(settings: Settings) -> None:
    itinerary = make_itinerary(
        make_day(
            "d1",
            [make_place("sensoji", SENSOJI, duration_minutes=60), make_place("secret-bar", duration_minutes=60)],
        )
    )

    result = await plan(itinerary, settings, request=PlanningRequest(suppress_optimization=True))
    bar = result.itinerary.days[0].places()[1]

    assert bar.travel_from_previous is None
    assert bar.schedule.awaiting_recalculation is False
    assert bar.schedule.arrival_time == time(10, 0)


@pytest.mark.asyncio
async def test_unchanged_segments_are_reused(settings: Settings) -> None:
    provider = FakeRoutingProvider()
    itinerary = make_itinerary(
        make_day("d1", [make_place("sensoji", SENSOJI), make_place("ueno", UENO_PARK)])
    )

    first = await plan(itinerary, settings, provider)
    calls = len(provider.calls)
    second = await plan(first.itinerary, settings, provider)

    assert len(provider.calls) == calls
    assert second.resolved_segments == 0

    await plan(first.itinerary, settings, provider, request=PlanningRequest(full_replan=True))
    assert len(provider.calls) == calls * 2


@pytest.mark.asyncio
async def test_explicit_travel_mode_is_requested(settings: Settings) -> None:
    provider = FakeRoutingProvider(duration_minutes={TravelMode.taxi: 12})
    itinerary = make_itinerary(
        make_day(
            "d1",
            [make_place("sensoji", SENSOJI), make_place("station", TOKYO_STATION, travel_mode=TravelMode.taxi)],
        )
    )

    result = await plan(itinerary, settings, provider)
    segment = result.itinerary.days[0].places()[1].travel_from_previous

    assert [c.mode for c in provider.calls] == [TravelMode.taxi]
    assert segment.mode == TravelMode.taxi
    assert segment.duration_minutes == 12


@pytest.mark.asyncio
async def test_city_transitions(settings: Settings) -> None:
    itinerary = make_itinerary(
        make_day("d1", [make_place("sensoji", SENSOJI)], city_id="tokyo", end_time=time(19, 0)),
        make_day("d2", [], city_id="hakone"),
        make_day("d3", [], city_id="kyoto"),
    )
    travel = {("tokyo", "hakone"): 90, ("hakone", "kyoto"): 150}

    result = await plan(itinerary, settings, city_travel_minutes=travel)
    d1, d2, d3 = result.itinerary.days

    assert d1.city_transition is None
    assert d2.city_transition.mode == TravelMode.transit
    assert d2.city_transition.departure_min == 19 * 60
    assert d3.city_transition.mode == TravelMode.train
    assert d3.city_transition.departure_min == 21 * 60


@pytest.mark.asyncio
async def test_conflicts_are_reported(settings: Settings) -> None:
    itinerary = make_itinerary(
        make_day(
            "d1",
            [
                make_place("sensoji", SENSOJI, duration_minutes=60),
                make_place("sushi", UENO_PARK, reservation_required=True),
            ],
        )
    )

    result = await plan(itinerary, settings)
    categories = {c.category for c in result.conflicts.conflicts}

    assert ConflictCategory.RESERVATION_NEEDED in categories
    # Travel fits the schedule the engine built, so the pair is not a tight gap
    assert ConflictCategory.TIGHT_GAP not in categories
    assert result.conflicts.summary.total == len(result.conflicts.conflicts)


@pytest.mark.asyncio
async def test_cancelled_run_raises(settings: Settings) -> None:
    token = CancelToken()
    token.cancel("superseded")
    itinerary = make_itinerary(make_day("d1", [make_place("sensoji", SENSOJI)]))

    with pytest.raises(PlanningCancelledError):
        await plan(itinerary, settings, cancel_token=token)
