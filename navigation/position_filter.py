"""
GPS fix filter
Drops implausible fixes and smooths the rest before they reach the engine
"""

import logging
from dataclasses import replace
from typing import Optional

from navigation.models import Position
from utils import config
from utils.gps_utils import haversine_distance

logger = logging.getLogger(__name__)


class PositionFilter:
    """
    Rejects fixes that are inaccurate, too frequent or implausibly fast;
    accepted fixes are exponentially smoothed towards the previous one.

    After a gap longer than `max_gap` seconds, or after `max_rejections`
    rejected fixes in a row, the next usable fix is taken as is and becomes
    the new reference.
    """

    def __init__(
        self,
        min_accuracy: float = config.GPS_MIN_ACCURACY,
        min_interval: float = config.GPS_MIN_FIX_INTERVAL,
        max_speed: float = config.GPS_MAX_SPEED,
        max_gap: float = config.GPS_MAX_GAP,
        max_rejections: int = config.GPS_MAX_CONSECUTIVE_REJECTIONS,
        smoothing_factor: float = config.GPS_SMOOTHING_FACTOR,
    ):
        self.min_accuracy = min_accuracy
        self.min_interval = min_interval
        self.max_speed = max_speed
        self.max_gap = max_gap
        self.max_rejections = max_rejections
        self.smoothing_factor = smoothing_factor
        self.reset()

    def reset(self):
        self.last_accepted: Optional[Position] = None
        self.rejected = 0
        self.consecutive_rejections = 0

    def _reject(self, reason: str) -> None:
        self.rejected += 1
        self.consecutive_rejections += 1
        logger.debug(f"GPS fix rejected: {reason}")
        return None

    def _reseed(self, position: Position, reason: str) -> Position:
        logger.info(f"GPS filter re-seeded: {reason}")
        self.last_accepted = position
        self.consecutive_rejections = 0
        return position

    def process(self, position: Position) -> Optional[Position]:
        """Smoothed fix, or None when the fix is rejected."""
        if position.accuracy is not None and position.accuracy > self.min_accuracy:
            return self._reject(f"accuracy {position.accuracy:.0f}m")

        prev = self.last_accepted
        if prev is None:
            self.last_accepted = position
            self.consecutive_rejections = 0
            return position

        dt = position.timestamp - prev.timestamp
        if dt > self.max_gap:
            return self._reseed(position, f"{dt:.0f}s since last fix")
        if dt < self.min_interval:
            return self._reject(f"interval {dt:.2f}s")

        distance = haversine_distance(
            prev.latitude, prev.longitude, position.latitude, position.longitude,
        )
        speed = distance / dt
        if speed > self.max_speed:
            if self.consecutive_rejections < self.max_rejections:
                return self._reject(f"speed {speed:.1f}m/s")
            return self._reseed(position, f"{self.consecutive_rejections} fixes rejected in a row")

        f = self.smoothing_factor
        smoothed = replace(
            position,
            latitude=prev.latitude + (position.latitude - prev.latitude) * f,
            longitude=prev.longitude + (position.longitude - prev.longitude) * f,
        )
        self.last_accepted = smoothed
        self.consecutive_rejections = 0
        return smoothed
