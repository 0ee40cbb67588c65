"""Factories wiring the planning engine from settings."""

import datetime
import logging
from collections.abc import Mapping

from itinerary_engine.adapters.coordinates import CoordinateResolver, LocationDirectory
from itinerary_engine.adapters.routing_http import HttpRoutingProvider
from itinerary_engine.config import Settings, get_settings
from itinerary_engine.models.common import Geo
from itinerary_engine.models.itinerary import Itinerary
from itinerary_engine.orchestration.orchestrator import PlanningOrchestrator
from itinerary_engine.planning.segments import TravelSegmentResolver
from itinerary_engine.utils.logging import StructuredRoutingLogger
from itinerary_engine.utils.metrics import PrometheusPlanningMetrics, PrometheusRoutingMetrics

logger = logging.getLogger(__name__)


def get_segment_resolver(settings: Settings | None = None) -> TravelSegmentResolver:
    """Routed resolver if a routing service is configured, heuristic estimates otherwise."""
    settings = settings or get_settings()

    if settings.routing_base_url:
        logger.info("Using HTTP routing provider", extra={"structured": {"base_url": settings.routing_base_url}})
        provider = HttpRoutingProvider(
            settings.routing_base_url,
            api_key=settings.routing_api_key,
            timeout=settings.routing_timeout_ms / 1000,
        )
        return TravelSegmentResolver.from_provider(
            provider,
            settings,
            metrics=PrometheusRoutingMetrics(),
            logger=StructuredRoutingLogger(),
        )

    logger.warning("No routing service configured, travel times will be estimated")
    return TravelSegmentResolver(settings=settings)


def create_orchestrator(
    itinerary: Itinerary,
    settings: Settings | None = None,
    *,
    directory: LocationDirectory | None = None,
    city_travel_minutes: Mapping[tuple[str, str], int] | None = None,
    entry_point: Geo | None = None,
    default_day_start: datetime.time | None = None,
    refine_route: bool = False,
) -> PlanningOrchestrator:
    """Orchestrator with the configured resolver and Prometheus run metrics."""
    settings = settings or get_settings()
    return PlanningOrchestrator(
        itinerary,
        resolver=get_segment_resolver(settings),
        coordinate_resolver=CoordinateResolver(directory),
        settings=settings,
        metrics=PrometheusPlanningMetrics(),
        city_travel_minutes=city_travel_minutes,
        entry_point=entry_point,
        default_day_start=default_day_start,
        refine_route=refine_route,
    )
