"""Shared pytest fixtures for all test suites."""

from collections.abc import Callable
from typing import Any

import pytest

from itinerary_engine.config import Settings
from tests.fakes import FakeClock, FakeRoutingProvider


@pytest.fixture
def settings() -> Settings:
    """Settings with the route cache disabled so every call reaches the provider."""
    return Settings(route_cache_ttl_seconds=0, routing_base_url=None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider_factory(clock: FakeClock) -> Callable[..., FakeRoutingProvider]:
    def factory(**kwargs: Any) -> FakeRoutingProvider:
        kwargs.setdefault("clock", clock)
        return FakeRoutingProvider(**kwargs)

    return factory
