"""Travel segment resolution between consecutive place activities.

Segments come from the routing provider when it answers, and from a
straight-line heuristic when it does not. Resolution never raises for routing
problems; only cancellation of the owning planning run propagates.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from itinerary_engine.config import Settings, get_settings
from itinerary_engine.models.common import Geo, TravelMode, format_minutes
from itinerary_engine.models.itinerary import Day, PlaceActivity, TravelSegment
from itinerary_engine.models.routing import RoutingRequest, RoutingResponse
from itinerary_engine.planning.geo import estimate_minutes, haversine_meters
from itinerary_engine.tools.executor import (
    CancelToken,
    PlanningCancelledError,
    RouteCallConfig,
    RouteCallExecutor,
    RoutingLogger,
    RoutingMetrics,
    RoutingProvider,
)

logger = logging.getLogger(__name__)

PlacePair = tuple[str, str]


def estimate_segment(
    origin: Geo,
    destination: Geo,
    mode: TravelMode,
    origin_activity_id: str,
) -> TravelSegment:
    """Heuristic segment: straight-line distance at the mode's average speed."""
    distance = haversine_meters(origin, destination)
    return TravelSegment(
        mode=mode,
        duration_minutes=estimate_minutes(distance, mode),
        distance_meters=round(distance),
        path=[origin, destination],
        is_estimated=True,
        origin_activity_id=origin_activity_id,
    )


def segment_from_response(
    response: RoutingResponse,
    requested_mode: TravelMode,
    origin_activity_id: str,
) -> TravelSegment:
    return TravelSegment(
        mode=response.mode or requested_mode,
        duration_minutes=response.duration_minutes,
        distance_meters=response.distance_meters,
        path=list(response.path),
        instructions=list(response.instructions),
        is_estimated=response.is_estimated,
        origin_activity_id=origin_activity_id,
    )


def adjacent_place_pairs(day: Day) -> list[tuple[PlaceActivity, PlaceActivity]]:
    """Consecutive place activities of a day, skipping notes."""
    places = day.places()
    return list(zip(places, places[1:]))


def segment_is_current(place: PlaceActivity, previous_id: str) -> bool:
    """Whether the place's segment still starts at ``previous_id`` with the requested mode."""
    segment = place.travel_from_previous
    if segment is None or segment.origin_activity_id != previous_id:
        return False
    return place.travel_mode is None or segment.mode == place.travel_mode


@dataclass(frozen=True)
class AdjacencyDiff:
    """Place pairs broken and formed by an edit."""

    broken: frozenset[PlacePair] = field(default_factory=frozenset)
    formed: frozenset[PlacePair] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.broken and not self.formed


def changed_adjacency_pairs(old_day: Day, new_day: Day) -> AdjacencyDiff:
    """Diff the consecutive place pairs of two versions of a day."""
    old_pairs = {(a.id, b.id) for a, b in adjacent_place_pairs(old_day)}
    new_pairs = {(a.id, b.id) for a, b in adjacent_place_pairs(new_day)}
    return AdjacencyDiff(
        broken=frozenset(old_pairs - new_pairs),
        formed=frozenset(new_pairs - old_pairs),
    )


def invalidate_changed_segments(old_day: Day, new_day: Day) -> Day:
    """Drop segments of newly formed pairs; segments of unchanged pairs are kept."""
    diff = changed_adjacency_pairs(old_day, new_day)
    stale_ids = {dest for _, dest in diff.formed}
    first_place = next(iter(new_day.places()), None)
    if first_place is not None and first_place.travel_from_previous is not None:
        stale_ids.add(first_place.id)
    if not stale_ids:
        return new_day

    activities = [
        a.model_copy(update={"travel_from_previous": None})
        if isinstance(a, PlaceActivity) and a.id in stale_ids
        else a
        for a in new_day.activities
    ]
    return new_day.model_copy(update={"activities": activities})


@dataclass(frozen=True)
class ResolvedDay:
    """A day with refreshed segments plus resolution counters."""

    day: Day
    resolved: int = 0
    estimated: int = 0


class TravelSegmentResolver:
    """Computes travel segments through the routing provider with heuristic fallback."""

    def __init__(
        self,
        executor: RouteCallExecutor | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize resolver.

        Args:
            executor: Routing call executor; ``None`` means heuristics only
            settings: Engine settings (defaults to cached settings)
        """
        self._executor = executor
        self._settings = settings or get_settings()

    @classmethod
    def from_provider(
        cls,
        provider: RoutingProvider,
        settings: Settings | None = None,
        *,
        metrics: RoutingMetrics | None = None,
        logger: RoutingLogger | None = None,
    ) -> "TravelSegmentResolver":
        settings = settings or get_settings()
        config = RouteCallConfig(
            timeout_ms=settings.routing_timeout_ms,
            retry_count=settings.routing_retry_count,
            retry_jitter_min_ms=settings.retry_jitter_min_ms,
            retry_jitter_max_ms=settings.retry_jitter_max_ms,
            breaker_failure_threshold=settings.circuit_breaker_failures,
            breaker_window_seconds=settings.circuit_breaker_window_sec,
            breaker_half_open_seconds=settings.circuit_breaker_half_open_sec,
            cache_ttl_seconds=settings.route_cache_ttl_seconds,
        )
        executor = RouteCallExecutor(provider, config, metrics=metrics, logger=logger)
        return cls(executor, settings)

    async def aclose(self) -> None:
        if self._executor is not None:
            await self._executor.aclose()

    async def resolve(
        self,
        origin: Geo | None,
        destination: Geo | None,
        mode: TravelMode | None,
        *,
        origin_activity_id: str,
        departure_min: int | None = None,
        timezone: str | None = None,
        cancel_token: CancelToken | None = None,
        run_id: int | None = None,
    ) -> TravelSegment | None:
        """Resolve one segment; ``None`` when either coordinate is unknown.

        Without an explicit mode a walk is tried first, and a transit route
        replaces it when the walk is long and transit is faster.
        """
        if origin is None or destination is None:
            return None

        kwargs = {
            "origin_activity_id": origin_activity_id,
            "departure_min": departure_min,
            "timezone": timezone,
            "cancel_token": cancel_token,
            "run_id": run_id,
        }
        if mode is not None:
            return await self._resolve_mode(origin, destination, mode, **kwargs)

        walk = await self._resolve_mode(origin, destination, TravelMode.walk, **kwargs)
        if walk.duration_minutes <= self._settings.walk_to_transit_threshold_min:
            return walk

        transit = await self._resolve_mode(origin, destination, TravelMode.transit, **kwargs)
        if transit.duration_minutes < walk.duration_minutes:
            return transit
        return walk

    async def _resolve_mode(
        self,
        origin: Geo,
        destination: Geo,
        mode: TravelMode,
        *,
        origin_activity_id: str,
        departure_min: int | None,
        timezone: str | None,
        cancel_token: CancelToken | None,
        run_id: int | None,
    ) -> TravelSegment:
        if self._executor is None:
            return estimate_segment(origin, destination, mode, origin_activity_id)

        request = RoutingRequest(
            origin=origin,
            destination=destination,
            mode=mode,
            departure_time=format_minutes(departure_min) if departure_min is not None else None,
            timezone=timezone,
        )
        try:
            response = await self._executor.call(request, cancel_token, run_id=run_id)
        except PlanningCancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Routing failed, using heuristic estimate",
                extra={
                    "structured": {
                        "run_id": run_id,
                        "mode": mode.value,
                        "origin_activity_id": origin_activity_id,
                        "error": type(e).__name__,
                    }
                },
            )
            return estimate_segment(origin, destination, mode, origin_activity_id)

        return segment_from_response(response, mode, origin_activity_id)

    async def resolve_day(
        self,
        day: Day,
        coordinates: Mapping[str, Geo | None],
        *,
        full: bool = False,
        timezone: str | None = None,
        cancel_token: CancelToken | None = None,
        run_id: int | None = None,
    ) -> ResolvedDay:
        """Fill missing or stale segments of a day, requesting them concurrently.

        Segments whose pair is unchanged are kept unless ``full`` is set.
        Pairs with an unknown coordinate keep their previous segment if it
        still starts at the same place, otherwise they get none.
        """
        semaphore = asyncio.Semaphore(max(1, self._settings.segment_fanout_cap))

        async def resolve_pair(
            previous: PlaceActivity, place: PlaceActivity
        ) -> tuple[TravelSegment | None, bool]:
            if not full and segment_is_current(place, previous.id):
                return place.travel_from_previous, False

            origin = coordinates.get(previous.id)
            destination = coordinates.get(place.id)
            if origin is None or destination is None:
                kept = place.travel_from_previous if segment_is_current(place, previous.id) else None
                return kept, False

            # The previous schedule belongs to the old order unless the pair already existed
            existing = place.travel_from_previous
            departure_min = None
            if previous.schedule and existing is not None and existing.origin_activity_id == previous.id:
                departure_min = previous.schedule.departure_min
            async with semaphore:
                segment = await self.resolve(
                    origin,
                    destination,
                    place.travel_mode,
                    origin_activity_id=previous.id,
                    departure_min=departure_min,
                    timezone=timezone,
                    cancel_token=cancel_token,
                    run_id=run_id,
                )
            return segment, True

        pairs = adjacent_place_pairs(day)
        outcomes = await asyncio.gather(*(resolve_pair(prev, place) for prev, place in pairs))
        segments = {place.id: outcome for (_, place), outcome in zip(pairs, outcomes)}

        resolved = 0
        estimated = 0
        activities = []
        for activity in day.activities:
            if not isinstance(activity, PlaceActivity):
                activities.append(activity)
                continue
            segment, fresh = segments.get(activity.id, (None, False))
            if fresh and segment is not None:
                resolved += 1
                if segment.is_estimated:
                    estimated += 1
            activities.append(activity.model_copy(update={"travel_from_previous": segment}))

        return ResolvedDay(
            day=day.model_copy(update={"activities": activities}),
            resolved=resolved,
            estimated=estimated,
        )
