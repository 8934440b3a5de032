"""
Navigation Instruction Formatter
Turns bearing/position/destination into a human instruction
"""

from typing import Dict

from navigation.models import Destination, Position
from utils import config
from utils.gps_utils import (
    bearing_to_direction,
    calculate_bearing,
    format_distance,
    haversine_distance,
)

ARRIVED_TEXT = 'You have arrived!'

# Upper bound of relative bearing (inclusive) -> instruction
INSTRUCTION_TABLE = [
    (15, 'Continue straight ahead'),
    (75, 'Turn slightly right'),
    (105, 'Turn right'),
    (165, 'Turn sharply right'),
    (195, 'Turn around'),
    (255, 'Turn sharply left'),
    (285, 'Turn left'),
    (345, 'Turn slightly left'),
]


def relative_bearing(bearing_to_target: float, device_bearing: float) -> float:
    return (bearing_to_target - device_bearing + 360) % 360


def instruction_text(rel_bearing: float) -> str:
    """Instruction for a relative bearing in [0, 360)."""
    for upper, text in INSTRUCTION_TABLE:
        if rel_bearing <= upper:
            return text
    return 'Continue straight ahead'


def instruction_for(
    position: Position,
    destination: Destination,
    device_bearing: float = 0.0,
    arrival_threshold: float = config.ARRIVAL_THRESHOLD,
    distance_limit: float = config.INSTRUCTION_DISTANCE_LIMIT,
) -> Dict:
    """
    Instruction towards the destination for a user facing device_bearing.

    The distance is appended to the text only under distance_limit metres.
    """
    bearing = calculate_bearing(
        position.latitude, position.longitude,
        destination.latitude, destination.longitude,
    )
    distance = haversine_distance(
        position.latitude, position.longitude,
        destination.latitude, destination.longitude,
    )
    rel = relative_bearing(bearing, device_bearing or 0.0)
    label = format_distance(distance)

    if distance <= arrival_threshold:
        text = ARRIVED_TEXT
    else:
        text = instruction_text(rel)
        if distance < distance_limit:
            text = f"{text} ({label})"

    return {
        'text': text,
        'distance_label': label,
        'distance_m': distance,
        'bearing': bearing,
        'relative_bearing': rel,
        'direction': bearing_to_direction(bearing),
    }
