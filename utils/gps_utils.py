"""
GPS and geometric utility functions

Polylines are sequences of (longitude, latitude) vertices, GeoJSON order.
Single points are passed as separate lat/lon arguments.

These run on every GPS fix, so invalid input (NaN, empty polylines)
yields a defined fallback instead of an exception.
"""

import math
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

EARTH_RADIUS_M = 6371000

LonLat = Tuple[float, float]

DIRECTIONS = [
    ('North', '↑'),
    ('North-East', '↗'),
    ('East', '→'),
    ('South-East', '↘'),
    ('South', '↓'),
    ('South-West', '↙'),
    ('West', '←'),
    ('North-West', '↖'),
]


class Projection(NamedTuple):
    """Closest point of a polyline to a query point."""
    projected_point: LonLat
    segment_index: int
    progress_on_segment: float
    deviation_distance_m: float


def _finite(*values: float) -> bool:
    try:
        return all(math.isfinite(v) for v in values)
    except TypeError:
        return False


def haversine_distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
) -> float:
    """
    Calculate distance between two GPS points (meters)

    Uses Haversine formula - standard in GPS/GIS applications.
    Returns 0.0 when any coordinate is not a finite number.
    """
    if not _finite(lat1, lon1, lat2, lon2):
        return 0.0

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def calculate_bearing(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
) -> float:
    """
    Calculate compass bearing from point 1 to point 2.

    Returns bearing in degrees [0, 360).
    0 = North, 90 = East, 180 = South, 270 = West.
    """
    if not _finite(lat1, lon1, lat2, lon2):
        return 0.0

    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlon = math.radians(lon2 - lon1)
    x = math.sin(dlon) * math.cos(rlat2)
    y = (math.cos(rlat1) * math.sin(rlat2)
         - math.sin(rlat1) * math.cos(rlat2) * math.cos(dlon))

    bearing = math.degrees(math.atan2(x, y))
    return (bearing + 360) % 360 % 360


def angle_difference(bearing_a: float, bearing_b: float) -> float:
    """Smallest absolute difference between two bearings, in [0, 180]."""
    diff = abs(bearing_a - bearing_b) % 360
    return 360 - diff if diff > 180 else diff


def signed_turn_angle(bearing_in: float, bearing_out: float) -> float:
    """Turn from one heading to another in (-180, 180]; positive = right."""
    turn = (bearing_out - bearing_in) % 360
    return turn - 360 if turn > 180 else turn


def bearing_to_direction(bearing: float) -> Dict[str, str]:
    """Map a bearing to one of eight cardinal directions with an arrow icon."""
    if not _finite(bearing):
        bearing = 0.0
    name, icon = DIRECTIONS[int(round((bearing % 360) / 45)) % 8]
    return {'name': name, 'icon': icon}


def format_distance(distance_m: float) -> str:
    """'{m} m' below one kilometre, '{km.d} km' at or above."""
    if not _finite(distance_m):
        distance_m = 0.0
    if distance_m < 1000:
        return f"{int(round(distance_m))} m"
    return f"{distance_m / 1000:.1f} km"


def polyline_length(polyline: Sequence[LonLat]) -> float:
    """Sum of haversine lengths of consecutive vertices (meters)."""
    total = 0.0
    for i in range(len(polyline) - 1):
        lon1, lat1 = polyline[i]
        lon2, lat2 = polyline[i + 1]
        total += haversine_distance(lat1, lon1, lat2, lon2)
    return total


# ──────────────────────────────────────────────────────────── projection

def _closest_point_on_segment(
    lon: float, lat: float,
    start: LonLat, end: LonLat,
) -> Tuple[float, float, float]:
    """Clamp-project a point onto a segment; returns (t, lon, lat)."""
    x1, y1 = start
    x2, y2 = end
    dx, dy = x2 - x1, y2 - y1
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return 0.0, x1, y1
    t = max(0.0, min(1.0, ((lon - x1) * dx + (lat - y1) * dy) / length_sq))
    return t, x1 + t * dx, y1 + t * dy


def project_point_onto_polyline(
    lat: float, lon: float,
    polyline: Sequence[LonLat],
) -> Projection:
    """
    Project a point onto the closest segment of a polyline.

    Every segment is tested; the globally closest clamped projection wins,
    ties going to the lowest segment index. A single-vertex polyline is
    treated as a point. An empty polyline or non-finite input returns the
    query point itself with zero deviation.
    """
    if not polyline or not _finite(lat, lon):
        return Projection((lon, lat), 0, 0.0, 0.0)

    if len(polyline) == 1:
        vlon, vlat = polyline[0]
        return Projection(
            (vlon, vlat), 0, 0.0, haversine_distance(lat, lon, vlat, vlon),
        )

    best = None
    for i in range(len(polyline) - 1):
        t, plon, plat = _closest_point_on_segment(lon, lat, polyline[i], polyline[i + 1])
        d = haversine_distance(lat, lon, plat, plon)
        if best is None or d < best.deviation_distance_m:
            best = Projection((plon, plat), i, t, d)
    return best


def _is_behind(reference: Projection, target: Projection) -> bool:
    if target.segment_index != reference.segment_index:
        return target.segment_index < reference.segment_index
    return target.progress_on_segment < reference.progress_on_segment


def distance_along_polyline_between(
    reference: Projection,
    target: Projection,
    polyline: Sequence[LonLat],
) -> float:
    """
    Distance along the polyline from one projection to another (meters).

    Returns -1 when the target lies behind the reference.
    """
    if len(polyline) < 2:
        (lon1, lat1), (lon2, lat2) = reference.projected_point, target.projected_point
        return haversine_distance(lat1, lon1, lat2, lon2)

    if _is_behind(reference, target):
        return -1

    ref_lon, ref_lat = reference.projected_point
    tgt_lon, tgt_lat = target.projected_point

    if target.segment_index == reference.segment_index:
        return haversine_distance(ref_lat, ref_lon, tgt_lat, tgt_lon)

    end_lon, end_lat = polyline[reference.segment_index + 1]
    total = haversine_distance(ref_lat, ref_lon, end_lat, end_lon)
    total += polyline_length(polyline[reference.segment_index + 1:target.segment_index + 1])
    start_lon, start_lat = polyline[target.segment_index]
    total += haversine_distance(start_lat, start_lon, tgt_lat, tgt_lon)
    return total


def snap_to_route(
    lat: float, lon: float,
    polyline: Sequence[LonLat],
    max_distance: float = 20.0,
) -> Optional[Projection]:
    """Projection onto the route if the point is within max_distance, else None."""
    if len(polyline) < 2:
        return None
    projection = project_point_onto_polyline(lat, lon, polyline)
    if projection.deviation_distance_m <= max_distance:
        return projection
    return None


def detect_turns(
    polyline: Sequence[LonLat],
    lat: float, lon: float,
    lookahead_m: float = 100.0,
    min_angle: float = 30.0,
    max_vertices: Optional[int] = None,
) -> List[Dict]:
    """
    Upcoming turns ahead of the point's projection on the route.

    A vertex is a turn when the bearing change across it exceeds min_angle.
    Only vertices within lookahead_m along the route are considered, and at
    most max_vertices vertices are scanned when given.
    """
    if len(polyline) < 3 or not _finite(lat, lon):
        return []

    projection = project_point_onto_polyline(lat, lon, polyline)
    plon, plat = projection.projected_point
    turns: List[Dict] = []
    travelled = 0.0
    prev_lon, prev_lat = plon, plat

    last = len(polyline) - 1
    stop = last if max_vertices is None else min(last, projection.segment_index + 1 + max_vertices)
    for i in range(projection.segment_index + 1, stop):
        vlon, vlat = polyline[i]
        travelled += haversine_distance(prev_lat, prev_lon, vlat, vlon)
        if travelled > lookahead_m:
            break
        prev_lon, prev_lat = vlon, vlat

        before_lon, before_lat = polyline[i - 1]
        after_lon, after_lat = polyline[i + 1]
        bearing_in = calculate_bearing(before_lat, before_lon, vlat, vlon)
        bearing_out = calculate_bearing(vlat, vlon, after_lat, after_lon)
        turn = signed_turn_angle(bearing_in, bearing_out)

        if abs(turn) > min_angle:
            turns.append({
                'vertex_index': i,
                'direction': 'right' if turn > 0 else 'left',
                'angle': abs(turn),
                'distance': travelled,
                'coordinates': (vlon, vlat),
                'severity': 'sharp' if abs(turn) > 90 else 'normal',
            })

    return turns

