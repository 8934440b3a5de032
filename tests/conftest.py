"""
Shared fixtures for the route tracking test suite.
"""

import math
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from navigation.models import Position, RouteGeometry
from navigation.route_providers import ProviderError, RouteProvider

# South-west corner of the test grid, inside the village
BASE_LAT = 14.3480
BASE_LON = 120.9510

METERS_PER_DEGREE = 111194.9


def offset(north_m: float = 0.0, east_m: float = 0.0, lat: float = BASE_LAT, lon: float = BASE_LON):
    """(lat, lon) shifted by metric offsets from a reference point."""
    return (
        lat + north_m / METERS_PER_DEGREE,
        lon + east_m / (METERS_PER_DEGREE * math.cos(math.radians(lat))),
    )


def lonlat(north_m: float = 0.0, east_m: float = 0.0):
    lat, lon = offset(north_m, east_m)
    return (lon, lat)


def pos(north_m: float = 0.0, east_m: float = 0.0, t: float = 0.0, accuracy=None) -> Position:
    lat, lon = offset(north_m, east_m)
    return Position(lat, lon, t, accuracy=accuracy)


def straight_coordinates():
    """400 m due east, a vertex every 100 m."""
    return [lonlat(0, e) for e in (0, 100, 200, 300, 400)]


def l_coordinates():
    """200 m east, then a left turn and 200 m north."""
    return [lonlat(0, 0), lonlat(0, 100), lonlat(0, 200), lonlat(100, 200), lonlat(200, 200)]


class FakeProvider(RouteProvider):
    """Scriptable provider: returns a fixed route, a straight line, or raises."""

    def __init__(self, name='fake', route=None, error=None, configured=True):
        self.name = name
        self.route = route
        self.error = error
        self.configured = configured
        self.calls = []

    def is_configured(self):
        return self.configured

    def fetch_route(self, origin_lat, origin_lon, dest_lat, dest_lon, timeout=8):
        self.calls.append((origin_lat, origin_lon, dest_lat, dest_lon))
        if self.error is not None:
            raise self.error
        if self.route is not None:
            return self.route
        return RouteGeometry.from_coordinates(
            [(origin_lon, origin_lat), (dest_lon, dest_lat)], source=self.name,
        )


@pytest.fixture
def straight_route():
    return RouteGeometry.from_coordinates(straight_coordinates(), source='test')


@pytest.fixture
def l_route():
    return RouteGeometry.from_coordinates(l_coordinates(), source='test')


@pytest.fixture
def failing_provider():
    return FakeProvider(name='broken', error=ProviderError('HTTP 503'))
