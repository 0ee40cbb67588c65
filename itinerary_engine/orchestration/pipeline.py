"""One planning run: optimize, resolve segments, build timelines, detect conflicts."""

import logging
import time
from collections.abc import Mapping

from itinerary_engine.adapters.coordinates import CoordinateResolver
from itinerary_engine.config import Settings, get_settings
from itinerary_engine.models.itinerary import Day, Itinerary
from itinerary_engine.models.planning import PlanningRequest, PlanningResult
from itinerary_engine.planning.optimizer import apply_order, optimize_route_order
from itinerary_engine.planning.segments import TravelSegmentResolver, invalidate_changed_segments
from itinerary_engine.planning.timeline import (
    build_city_transition,
    build_day_timeline,
    effective_day_start,
)
from itinerary_engine.tools.executor import CancelToken
from itinerary_engine.verification.conflicts import detect_itinerary_conflicts

logger = logging.getLogger(__name__)


async def run_planning(
    itinerary: Itinerary,
    request: PlanningRequest,
    *,
    resolver: TravelSegmentResolver,
    coordinates: CoordinateResolver,
    settings: Settings | None = None,
    cancel_token: CancelToken | None = None,
    run_id: int | None = None,
    city_travel_minutes: Mapping[tuple[str, str], int] | None = None,
) -> PlanningResult:
    """Plan every day of an itinerary and return a new, fully timed itinerary.

    The input is never modified. The cancel token is checked between steps so
    an aborted run stops at the next boundary.

    Raises:
        PlanningCancelledError: The run was cancelled
    """
    settings = settings or get_settings()
    cancel_token = cancel_token or CancelToken()
    start_time = time.monotonic()

    days: list[Day] = []
    reordered: list[str] = []
    resolved = 0
    estimated = 0
    previous_day: Day | None = None

    for day in itinerary.days:
        cancel_token.throw_if_cancelled()
        coords = coordinates.resolve_day(day)

        if not request.suppress_optimization:
            result = optimize_route_order(
                day.activities,
                day.start_point or request.entry_point,
                coords,
                refine=request.refine_route,
            )
            if result.order_changed:
                day = invalidate_changed_segments(day, apply_order(day, result.order))
                reordered.append(day.id)

        outcome = await resolver.resolve_day(
            day,
            coords,
            full=request.full_replan,
            timezone=day.timezone or itinerary.timezone or settings.default_timezone,
            cancel_token=cancel_token,
            run_id=run_id,
        )
        resolved += outcome.resolved
        estimated += outcome.estimated
        cancel_token.throw_if_cancelled()

        unresolved = {activity_id for activity_id, geo in coords.items() if geo is None}
        day = build_day_timeline(
            outcome.day,
            day_start_min=effective_day_start(day, request.default_day_start, settings),
            settings=settings,
            unresolved_ids=unresolved,
        )

        if city_travel_minutes is not None:
            transition = build_city_transition(previous_day, day, city_travel_minutes, settings)
            day = day.model_copy(update={"city_transition": transition})

        days.append(day)
        previous_day = day

    planned = itinerary.model_copy(update={"days": days})
    conflicts = detect_itinerary_conflicts(planned, settings)

    logger.info(
        "Planning run completed",
        extra={
            "structured": {
                "run_id": run_id,
                "days": len(days),
                "reordered_days": reordered,
                "resolved_segments": resolved,
                "estimated_segments": estimated,
                "conflicts": conflicts.summary.total,
                "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
            }
        },
    )

    return PlanningResult(
        itinerary=planned,
        conflicts=conflicts,
        reordered_day_ids=reordered,
        resolved_segments=resolved,
        estimated_segments=estimated,
    )
