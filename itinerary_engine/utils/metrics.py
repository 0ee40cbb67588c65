"""Prometheus metrics for routing calls and planning runs."""

from prometheus_client import Counter, Histogram

from itinerary_engine.orchestration.orchestrator import PlanningMetrics
from itinerary_engine.tools.executor import RoutingMetrics

# Routing call metrics
route_call_latency_ms = Histogram(
    "route_call_latency_ms",
    "Routing call latency in milliseconds",
    ["mode", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000],
)

route_call_errors_total = Counter(
    "route_call_errors_total",
    "Total routing call errors",
    ["mode", "reason"],
)

route_cache_hits_total = Counter(
    "route_cache_hits_total",
    "Total routing cache hits",
    ["mode"],
)

# Planning run metrics
planning_runs_total = Counter(
    "planning_runs_total",
    "Total planning runs by outcome",
    ["outcome"],
)

planning_run_duration_ms = Histogram(
    "planning_run_duration_ms",
    "Planning run duration in milliseconds",
    ["outcome"],
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000, 15000],
)


class PrometheusRoutingMetrics(RoutingMetrics):
    """Prometheus-based routing metrics implementation."""

    def record_latency(self, mode: str, outcome: str, latency_ms: float) -> None:
        route_call_latency_ms.labels(mode=mode, outcome=outcome).observe(latency_ms)

    def inc_error(self, mode: str, reason: str) -> None:
        route_call_errors_total.labels(mode=mode, reason=reason).inc()

    def inc_cache_hit(self, mode: str) -> None:
        route_cache_hits_total.labels(mode=mode).inc()


class PrometheusPlanningMetrics(PlanningMetrics):
    """Prometheus-based planning run metrics implementation."""

    def record_run(self, outcome: str, duration_ms: float) -> None:
        planning_runs_total.labels(outcome=outcome).inc()
        planning_run_duration_ms.labels(outcome=outcome).observe(duration_ms)
