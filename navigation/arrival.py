"""
Arrival Detector
"""

import logging
from typing import Optional

from navigation.models import Destination, Position
from utils import config
from utils.gps_utils import haversine_distance

logger = logging.getLogger(__name__)


class ArrivalDetector:
    """
    Level-triggered arrival check with a grace period after a destination change.

    Callers detect the false -> true transition themselves.
    """

    def __init__(
        self,
        threshold: float = config.ARRIVAL_THRESHOLD,
        grace_period: float = config.ARRIVAL_GRACE_PERIOD,
    ):
        self.threshold = threshold
        self.grace_period = grace_period
        self.destination: Optional[Destination] = None
        self.destination_changed_at: Optional[float] = None

    def set_destination(self, destination: Optional[Destination], now: float):
        self.destination = destination
        self.destination_changed_at = now

    def distance_to_destination(self, position: Position) -> Optional[float]:
        if self.destination is None:
            return None
        return haversine_distance(
            position.latitude, position.longitude,
            self.destination.latitude, self.destination.longitude,
        )

    def in_grace_period(self, now: float) -> bool:
        if self.destination_changed_at is None:
            return False
        return now - self.destination_changed_at < self.grace_period

    def has_arrived(self, position: Position) -> bool:
        if self.destination is None or self.in_grace_period(position.timestamp):
            return False
        return self.distance_to_destination(position) <= self.threshold
