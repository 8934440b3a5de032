"""
Value types shared by the navigation engine

All types are immutable; a new route replaces the old one wholesale,
so renderers can hold references without locking.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

from utils.gps_utils import Projection, polyline_length

LonLat = Tuple[float, float]

__all__ = [
    'Position',
    'Maneuver',
    'RouteGeometry',
    'Destination',
    'Projection',
    'DeviationState',
    'SessionSnapshot',
]


def _check_coordinates(lat: float, lon: float):
    if not (isinstance(lat, (int, float)) and isinstance(lon, (int, float))):
        raise ValueError(f"Coordinates must be numeric, got ({lat!r}, {lon!r})")
    if not (-90 <= lat <= 90) or not (-180 <= lon <= 180):
        raise ValueError(f"Coordinates out of range: lat={lat}, lon={lon}")


@dataclass(frozen=True)
class Position:
    """A single GPS fix. Timestamp is in seconds."""
    latitude: float
    longitude: float
    timestamp: float
    accuracy: Optional[float] = None

    def __post_init__(self):
        _check_coordinates(self.latitude, self.longitude)
        if not math.isfinite(self.timestamp):
            raise ValueError(f"Timestamp must be finite, got {self.timestamp}")

    @property
    def lonlat(self) -> LonLat:
        return (self.longitude, self.latitude)


@dataclass(frozen=True)
class Maneuver:
    type: str
    modifier: Optional[str] = None
    distance_m: float = 0.0
    location: Optional[LonLat] = None
    instruction: Optional[str] = None


@dataclass(frozen=True)
class RouteGeometry:
    """
    Route path from origin to destination.

    coordinates are (lon, lat) vertices; source names the provider that
    produced the route ('osrm', 'openrouteservice', 'google', 'direct').
    """
    coordinates: Tuple[LonLat, ...]
    distance_m: float
    duration_s: Optional[float] = None
    maneuvers: Tuple[Maneuver, ...] = ()
    source: str = 'unknown'

    def __post_init__(self):
        # Accept lists from callers but store tuples
        object.__setattr__(
            self, 'coordinates',
            tuple((float(lon), float(lat)) for lon, lat in self.coordinates),
        )
        object.__setattr__(self, 'maneuvers', tuple(self.maneuvers))

    def __len__(self) -> int:
        return len(self.coordinates)

    @property
    def origin(self) -> Optional[LonLat]:
        return self.coordinates[0] if self.coordinates else None

    @property
    def end(self) -> Optional[LonLat]:
        return self.coordinates[-1] if self.coordinates else None

    @classmethod
    def from_coordinates(
        cls,
        coordinates: Sequence[LonLat],
        source: str = 'unknown',
        duration_s: Optional[float] = None,
        maneuvers: Sequence[Maneuver] = (),
    ) -> 'RouteGeometry':
        """Build a route whose distance is the summed haversine length."""
        coords = [tuple(c) for c in coordinates]
        return cls(
            coordinates=coords,
            distance_m=polyline_length(coords),
            duration_s=duration_s,
            maneuvers=tuple(maneuvers),
            source=source,
        )

    @classmethod
    def from_feature(cls, feature: Dict, source: str = 'unknown') -> 'RouteGeometry':
        """
        Parse a GeoJSON LineString Feature (or bare geometry).

        Raises ValueError when the payload is not a usable LineString.
        """
        geometry = feature.get('geometry', feature) if isinstance(feature, dict) else None
        if not geometry or geometry.get('type') != 'LineString':
            raise ValueError("Expected a GeoJSON LineString")
        coords = [(c[0], c[1]) for c in geometry.get('coordinates') or []]
        if len(coords) < 2:
            raise ValueError("LineString needs at least two coordinates")

        props = feature.get('properties') or {}
        distance = props.get('distance')
        route = cls.from_coordinates(coords, source=source, duration_s=props.get('duration'))
        if distance is not None:
            route = cls(
                coordinates=route.coordinates, distance_m=float(distance),
                duration_s=route.duration_s, source=source,
            )
        return route

    def to_feature(self, **properties) -> Dict:
        props = {
            'distance': self.distance_m,
            'duration': self.duration_s,
            'source': self.source,
        }
        props.update(properties)
        return {
            'type': 'Feature',
            'properties': props,
            'geometry': {
                'type': 'LineString',
                'coordinates': [list(c) for c in self.coordinates],
            },
        }

    def to_feature_collection(self, **properties) -> Dict:
        return {'type': 'FeatureCollection', 'features': [self.to_feature(**properties)]}


@dataclass(frozen=True)
class Destination:
    coordinates: LonLat
    label: str = ''
    is_exit_point: bool = False

    def __post_init__(self):
        lon, lat = self.coordinates
        _check_coordinates(lat, lon)
        object.__setattr__(self, 'coordinates', (float(lon), float(lat)))

    @property
    def latitude(self) -> float:
        return self.coordinates[1]

    @property
    def longitude(self) -> float:
        return self.coordinates[0]


class DeviationState(Enum):
    ON_ROUTE = 'on_route'
    DEVIATING = 'deviating'
    CONFIRMED_DEVIATION = 'confirmed_deviation'


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a tracking session for renderers."""
    destination: Optional[Destination]
    route: Optional[RouteGeometry]
    traveled: Optional[RouteGeometry]
    remaining: Optional[RouteGeometry]
    last_position: Optional[Position]
    deviation_state: DeviationState
    deviation_m: float
    recalculating: bool
    arrived: bool
    events: Tuple[Dict, ...] = ()
