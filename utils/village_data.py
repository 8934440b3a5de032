"""
Village-specific data and constants

Coordinates are (longitude, latitude).
"""

from typing import Optional, Tuple

VILLAGE_EXIT_COORDS = (120.951863, 14.35098)
VILLAGE_CENTER = (120.95134859887523, 14.347872973134175)
VILLAGE_RADIUS = 800

PUBLIC_POIS = {
    'guard_post': {'name': 'Guard Post', 'coords': (120.951835, 14.350945)},
    'swimming_pool': {'name': 'Swimming Pool', 'coords': (120.95258, 14.346882)},
    'basketball_court_1': {'name': 'BasketBall Court 1', 'coords': (120.952382, 14.346829)},
    'basketball_court_2': {'name': 'BasketBall Court 2', 'coords': (120.951937, 14.347253)},
    'tennis_court': {'name': 'TennisBall Court', 'coords': (120.952173, 14.346797)},
    'college': {'name': 'College', 'coords': (120.952096, 14.347099)},
    'infos': {'name': 'Infos', 'coords': (120.952451, 14.347207)},
    'church': {'name': 'Church', 'coords': (120.95236, 14.347433)},
}


def exit_destination():
    """Destination for leaving the village through the main gate."""
    from navigation.models import Destination

    return Destination(
        coordinates=VILLAGE_EXIT_COORDS,
        label='Village Exit',
        is_exit_point=True,
    )


def poi_destination(key: str):
    """Destination for a public point of interest; KeyError if unknown."""
    from navigation.models import Destination

    poi = PUBLIC_POIS[key]
    return Destination(coordinates=poi['coords'], label=poi['name'])


def nearest_poi(lat: float, lon: float) -> Tuple[Optional[str], float]:
    """
    Closest public point of interest to a position.

    Returns (poi_key, distance_m); (None, inf) when there are no POIs.
    """
    from utils.gps_utils import haversine_distance

    best_key, best_distance = None, float('inf')
    for key, poi in PUBLIC_POIS.items():
        poi_lon, poi_lat = poi['coords']
        d = haversine_distance(lat, lon, poi_lat, poi_lon)
        if d < best_distance:
            best_key, best_distance = key, d
    return best_key, best_distance


def is_inside_village(lat: float, lon: float) -> bool:
    """Rough containment test: within VILLAGE_RADIUS of the village center."""
    from utils.gps_utils import haversine_distance

    center_lon, center_lat = VILLAGE_CENTER
    return haversine_distance(lat, lon, center_lat, center_lon) <= VILLAGE_RADIUS
