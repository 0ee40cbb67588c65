"""Structured logging for routing calls."""

import logging
from typing import Any

from itinerary_engine.tools.executor import RouteCallContext, RoutingLogger

logger = logging.getLogger(__name__)

# Attempts slower than this are flagged so provider latency shows up in logs
SLOW_CALL_MS = 2000.0


class StructuredRoutingLogger(RoutingLogger):
    """Logs each routing attempt with its run, mode and outcome.

    Cache hits go to debug, successes to info, and every failure outcome
    (timeout, error, breaker_open) to warning.
    """

    def __init__(self, slow_call_ms: float = SLOW_CALL_MS) -> None:
        self._slow_call_ms = slow_call_ms

    def log_attempt(
        self,
        ctx: RouteCallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "run_id": ctx.run_id,
            "provider": ctx.provider,
            "mode": ctx.mode,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            "slow": latency_ms >= self._slow_call_ms,
        }
        if error_reason:
            payload["error_reason"] = error_reason

        if outcome == "cache_hit":
            level = logging.DEBUG
        elif outcome == "success":
            level = logging.INFO
        else:
            level = logging.WARNING
        logger.log(level, "Routing %s/%s: %s", ctx.provider, ctx.mode, outcome, extra={"structured": payload})
