"""Typed settings configuration - single source of truth."""

from datetime import time
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Planning engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Routing provider
    routing_base_url: str | None = None
    routing_api_key: str = ""

    # Routing call timeouts (milliseconds)
    routing_timeout_ms: int = 4000

    # Retries
    routing_retry_count: int = 0
    retry_jitter_min_ms: int = 200
    retry_jitter_max_ms: int = 500

    # Circuit breaker
    circuit_breaker_failures: int = 5
    circuit_breaker_window_sec: int = 60
    circuit_breaker_half_open_sec: int = 30

    # Route cache TTL (seconds, 0 disables)
    route_cache_ttl_seconds: int = 900

    # Concurrent segment requests per day
    segment_fanout_cap: int = 4

    # Orchestration timers (milliseconds)
    debounce_ms: int = 450
    watchdog_ms: int = 15000

    # Timeline
    default_day_start: time = time(9, 0)
    default_day_end: time = time(21, 0)
    default_visit_minutes: int = 90
    transition_buffer_min: int = 0
    default_timezone: str = "Asia/Tokyo"
    walk_to_transit_threshold_min: int = 10

    # Conflict detection
    tight_gap_margin_min: int = 5
    rush_hour_windows: list[tuple[time, time]] = [
        (time(7, 30), time(9, 30)),
        (time(17, 0), time(19, 0)),
    ]
    last_train_window: tuple[time, time] = (time(23, 30), time(5, 0))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
