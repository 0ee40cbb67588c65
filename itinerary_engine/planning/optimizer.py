"""Route optimizer: reorders a day's place stops to reduce travel.

Greedy nearest neighbour from a fixed start coordinate. This is a best-effort
reducer of total travel, not an optimal tour.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from itinerary_engine.models.common import Geo
from itinerary_engine.models.itinerary import Activity, Day, PlaceActivity
from itinerary_engine.planning.geo import haversine_meters

TWO_OPT_MAX_PASSES = 5


@dataclass(frozen=True)
class OptimizeRouteResult:
    """Optimized activity order and statistics."""

    order: list[str] = field(default_factory=list)
    order_changed: bool = False
    optimized_count: int = 0
    skipped_count: int = 0


def route_distance(
    order: Sequence[str],
    coordinates: Mapping[str, Geo | None],
    start: Geo,
    end: Geo | None = None,
) -> float:
    """Total straight-line distance of a route, including the start and end legs."""
    total = 0.0
    position = start
    for activity_id in order:
        coordinate = coordinates.get(activity_id)
        if coordinate is None:
            continue
        total += haversine_meters(position, coordinate)
        position = coordinate
    if end is not None and order:
        total += haversine_meters(position, end)
    return total


def nearest_neighbor_order(
    place_ids: Sequence[str],
    coordinates: Mapping[str, Geo | None],
    start: Geo,
) -> list[str]:
    """Visit the closest remaining place each step; ties go to the earlier place."""
    remaining = list(place_ids)
    order: list[str] = []
    position = start
    while remaining:
        nearest = remaining[0]
        nearest_distance = haversine_meters(position, coordinates[nearest])
        for candidate in remaining[1:]:
            distance = haversine_meters(position, coordinates[candidate])
            if distance < nearest_distance:
                nearest, nearest_distance = candidate, distance
        order.append(nearest)
        remaining.remove(nearest)
        position = coordinates[nearest]
    return order


def two_opt_improve(
    order: list[str],
    coordinates: Mapping[str, Geo | None],
    start: Geo,
    end: Geo | None = None,
) -> list[str]:
    """Reverse sub-routes while that shortens the route (bounded passes)."""
    if len(order) <= 2:
        return order

    best = list(order)
    best_distance = route_distance(best, coordinates, start, end)
    for _ in range(TWO_OPT_MAX_PASSES):
        improved = False
        for i in range(len(best) - 1):
            for j in range(i + 1, len(best)):
                candidate = best[:i] + best[i : j + 1][::-1] + best[j + 1 :]
                distance = route_distance(candidate, coordinates, start, end)
                if distance < best_distance:
                    best, best_distance = candidate, distance
                    improved = True
        if not improved:
            break
    return best


def optimize_route_order(
    activities: Sequence[Activity],
    start: Geo | None,
    coordinates: Mapping[str, Geo | None],
    *,
    end: Geo | None = None,
    refine: bool = False,
) -> OptimizeRouteResult:
    """Reorder place activities by nearest neighbour from ``start``.

    Notes are never reordered: each note stays right after the place it
    followed, and notes before the first place stay at the front. Places
    without a coordinate keep their relative order after the optimized ones.

    Args:
        activities: Day activities in current order
        start: Fixed start coordinate (accommodation or entry point)
        coordinates: Resolved coordinates by activity id
        end: Optional end coordinate, used only by ``refine``
        refine: Apply 2-opt passes after the greedy order

    Returns:
        OptimizeRouteResult with the full activity id order
    """
    original = [a.id for a in activities]
    places = [a for a in activities if isinstance(a, PlaceActivity)]
    if start is None or not places:
        return OptimizeRouteResult(order=original)

    with_coords = [p.id for p in places if coordinates.get(p.id) is not None]
    without_coords = [p.id for p in places if coordinates.get(p.id) is None]
    if not with_coords:
        return OptimizeRouteResult(order=original, skipped_count=len(without_coords))

    ordered = nearest_neighbor_order(with_coords, coordinates, start)
    if refine:
        ordered = two_opt_improve(ordered, coordinates, start, end)
    place_order = ordered + without_coords

    # Notes ride along with the place they followed
    leading: list[str] = []
    trailing: dict[str, list[str]] = {p.id: [] for p in places}
    anchor: str | None = None
    for activity in activities:
        if isinstance(activity, PlaceActivity):
            anchor = activity.id
        elif anchor is None:
            leading.append(activity.id)
        else:
            trailing[anchor].append(activity.id)

    order = list(leading)
    for place_id in place_order:
        order.append(place_id)
        order.extend(trailing[place_id])

    return OptimizeRouteResult(
        order=order,
        order_changed=order != original,
        optimized_count=len(with_coords),
        skipped_count=len(without_coords),
    )


def apply_order(day: Day, order: Sequence[str]) -> Day:
    """Return the day with its activities arranged in ``order``."""
    by_id = {a.id: a for a in day.activities}
    return day.model_copy(update={"activities": [by_id[i] for i in order]})
