"""
Route Splitter
Traveled / remaining partition of the active route

Both halves are recomputed from the unmodified route and the latest fix,
never updated incrementally.
"""

from dataclasses import replace
from typing import Optional

from navigation.models import Position, RouteGeometry
from utils import config
from utils.gps_utils import haversine_distance, polyline_length, project_point_onto_polyline


def _distance_to_projection(route: RouteGeometry, projection) -> float:
    coords = route.coordinates
    seg = projection.segment_index
    lon, lat = coords[seg]
    plon, plat = projection.projected_point
    return polyline_length(coords[:seg + 1]) + haversine_distance(lat, lon, plat, plon)


def compute_remaining(position: Position, route: RouteGeometry) -> RouteGeometry:
    """
    Route from the fix's projection to the destination.

    Returns the route unchanged when the trim would leave fewer than two
    vertices.
    """
    coords = route.coordinates
    if len(coords) < 2:
        return route

    projection = project_point_onto_polyline(position.latitude, position.longitude, coords)
    seg = projection.segment_index

    remaining = [projection.projected_point]
    if projection.progress_on_segment < 1:
        remaining.append(coords[seg + 1])
    remaining.extend(coords[seg + 2:])

    if len(remaining) < 2:
        return route

    travelled = _distance_to_projection(route, projection)
    maneuvers = [
        replace(m, distance_m=m.distance_m - travelled)
        for m in route.maneuvers if m.distance_m >= travelled
    ]

    distance = polyline_length(remaining)
    duration = None
    if route.duration_s is not None and route.distance_m > 0:
        duration = route.duration_s * min(1.0, distance / route.distance_m)

    return RouteGeometry(
        coordinates=remaining, distance_m=distance, duration_s=duration,
        maneuvers=maneuvers, source=route.source,
    )


def compute_traveled(position: Position, route: RouteGeometry) -> Optional[RouteGeometry]:
    """Route from the start to the fix's projection; None if under two vertices."""
    coords = route.coordinates
    if len(coords) < 2:
        return None

    projection = project_point_onto_polyline(position.latitude, position.longitude, coords)
    traveled = list(coords[:projection.segment_index + 1])
    if projection.progress_on_segment > 0:
        traveled.append(projection.projected_point)

    if len(traveled) < 2:
        return None
    return RouteGeometry.from_coordinates(traveled, source=route.source)


def should_update_split(
    position: Position,
    last_split_position: Optional[Position],
    threshold: float = config.ROUTE_SPLIT_THRESHOLD,
) -> bool:
    if last_split_position is None:
        return True
    moved = haversine_distance(
        last_split_position.latitude, last_split_position.longitude,
        position.latitude, position.longitude,
    )
    return moved >= threshold
