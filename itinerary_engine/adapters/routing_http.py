"""HTTP routing provider adapter."""

from typing import Any

import httpx
from pydantic import ValidationError

from itinerary_engine.models.common import Geo
from itinerary_engine.models.routing import RoutingRequest, RoutingResponse
from itinerary_engine.tools.executor import RoutingProviderError


class HttpRoutingProvider:
    """Routing provider backed by a JSON route endpoint.

    POSTs the request to ``{base_url}/route`` and maps the camelCase route
    payload onto ``RoutingResponse``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = 4.0,
    ) -> None:
        """Initialize provider.

        Args:
            base_url: Routing service base URL
            api_key: Optional bearer token
            client: Optional httpx client (for testing with mocks)
            timeout: Timeout for the owned client, in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def route(self, request: RoutingRequest) -> RoutingResponse:
        """Request a route.

        Raises:
            RoutingProviderError: On non-success status or malformed payload
            httpx.HTTPError: On network errors
        """
        body: dict[str, Any] = {
            "origin": request.origin.model_dump(),
            "destination": request.destination.model_dump(),
            "mode": request.mode.value,
        }
        if request.departure_time:
            body["departureTime"] = request.departure_time
        if request.timezone:
            body["timezone"] = request.timezone

        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        response = await self._get_client().post(f"{self._base_url}/route", json=body, headers=headers)

        if response.status_code >= 400:
            raise RoutingProviderError(
                f"Routing provider error ({response.status_code}): {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RoutingProviderError("Routing provider returned invalid JSON") from e

        # Some providers wrap the route in {"route": {...}}
        if isinstance(data, dict) and isinstance(data.get("route"), dict):
            data = data["route"]

        try:
            return RoutingResponse(
                duration_minutes=data["durationMinutes"],
                distance_meters=data.get("distanceMeters", 0),
                path=[Geo(**point) for point in data.get("path", [])],
                instructions=data.get("instructions", []),
                is_estimated=data.get("isEstimated", False),
                mode=data.get("mode"),
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise RoutingProviderError("Routing provider returned a malformed route") from e

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
