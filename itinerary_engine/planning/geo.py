"""Straight-line distance and heuristic travel estimates."""

import math

from itinerary_engine.models.common import Geo, TravelMode

EARTH_RADIUS_M = 6_371_000.0

# Average door-to-door speeds (km/h) used when no routed duration is available
AVERAGE_SPEED_KMH: dict[TravelMode, float] = {
    TravelMode.walk: 4.5,
    TravelMode.bicycle: 15.0,
    TravelMode.car: 30.0,
    TravelMode.taxi: 30.0,
    TravelMode.rideshare: 30.0,
    TravelMode.bus: 18.0,
    TravelMode.tram: 20.0,
    TravelMode.subway: 32.0,
    TravelMode.train: 45.0,
    TravelMode.transit: 25.0,
    TravelMode.ferry: 20.0,
}


def haversine_meters(a: Geo, b: Geo) -> float:
    """Great-circle distance in metres."""
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lam = math.radians(b.lon - a.lon)
    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def estimate_minutes(distance_meters: float, mode: TravelMode) -> int:
    """Heuristic duration for a distance; never below one minute."""
    speed_kmh = AVERAGE_SPEED_KMH.get(mode, AVERAGE_SPEED_KMH[TravelMode.walk])
    minutes = (distance_meters / 1000) / speed_kmh * 60
    return max(1, round(minutes))
