"""
Buffered route corridor

Alternative off-route test: the route is projected to its local UTM zone,
buffered by a fixed metric distance, and fixes are tested against the
buffer. Selected with DEVIATION_STRATEGY='corridor'.
"""

from typing import Sequence, Tuple

import pyproj
from shapely.geometry import LineString, Point
from shapely.ops import transform

from utils import config


def utm_epsg(lat: float, lon: float) -> int:
    """EPSG code of the WGS84 UTM zone containing the point."""
    zone = int((lon + 180) // 6) % 60 + 1
    return (32600 if lat >= 0 else 32700) + zone


class RouteCorridor:
    """Metric buffer around a (lon, lat) polyline."""

    def __init__(
        self,
        coordinates: Sequence[Tuple[float, float]],
        buffer_distance: float = config.CORRIDOR_BUFFER_DISTANCE,
    ):
        if len(coordinates) < 2:
            raise ValueError("A corridor needs at least two route vertices")

        self.buffer_distance = buffer_distance
        first_lon, first_lat = coordinates[0]
        wgs84 = pyproj.CRS('EPSG:4326')
        utm = pyproj.CRS(f'EPSG:{utm_epsg(first_lat, first_lon)}')
        self._to_utm = pyproj.Transformer.from_crs(wgs84, utm, always_xy=True)
        to_wgs = pyproj.Transformer.from_crs(utm, wgs84, always_xy=True)

        self.line_utm = transform(self._to_utm.transform, LineString(coordinates))
        self.buffer_utm = self.line_utm.buffer(buffer_distance)
        self.polygon = transform(to_wgs.transform, self.buffer_utm)

    def _point_utm(self, lat: float, lon: float) -> Point:
        return Point(*self._to_utm.transform(lon, lat))

    def contains(self, lat: float, lon: float) -> bool:
        return self.buffer_utm.contains(self._point_utm(lat, lon))

    def distance_to_route(self, lat: float, lon: float) -> float:
        """Planar distance to the route centre line in metres."""
        return self.line_utm.distance(self._point_utm(lat, lon))
