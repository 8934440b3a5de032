"""
Utility functions
"""

from utils.gps_utils import (
    Projection,
    haversine_distance,
    calculate_bearing,
    angle_difference,
    bearing_to_direction,
    format_distance,
    polyline_length,
    project_point_onto_polyline,
    distance_along_polyline_between,
    snap_to_route,
    detect_turns,
)

from utils.village_data import (
    VILLAGE_EXIT_COORDS,
    VILLAGE_CENTER,
    PUBLIC_POIS,
    exit_destination,
    poi_destination,
    nearest_poi,
    is_inside_village,
)

from utils import config

__all__ = [
    'Projection',
    'haversine_distance',
    'calculate_bearing',
    'angle_difference',
    'bearing_to_direction',
    'format_distance',
    'polyline_length',
    'project_point_onto_polyline',
    'distance_along_polyline_between',
    'snap_to_route',
    'detect_turns',
    'VILLAGE_EXIT_COORDS',
    'VILLAGE_CENTER',
    'PUBLIC_POIS',
    'exit_destination',
    'poi_destination',
    'nearest_poi',
    'is_inside_village',
    'config',
]
