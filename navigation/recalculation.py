"""
Recalculation Scheduler
Rate-limits route recalculation requests

Gates, in order: force flag, cooldown since the last successful
recalculation, minimum movement since that recalculation. Past the gates
the deviation classifier decides, with an independent raw-distance check
for fixes grossly far from the route.
"""

import logging
from typing import Optional

from navigation.deviation import DeviationClassifier
from navigation.models import Position, RouteGeometry
from utils import config
from utils.gps_utils import haversine_distance

logger = logging.getLogger(__name__)


def _moved(a: Position, b: Position) -> float:
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


class RecalculationScheduler:

    def __init__(
        self,
        classifier: Optional[DeviationClassifier] = None,
        min_interval: float = config.MIN_RECALCULATION_INTERVAL,
        min_movement: float = config.MIN_MOVEMENT_THRESHOLD,
        gross_threshold: float = config.GROSS_DEVIATION_THRESHOLD,
    ):
        self.classifier = classifier or DeviationClassifier()
        self.min_interval = min_interval
        self.min_movement = min_movement
        self.gross_threshold = gross_threshold
        self.reset()

    def reset(self):
        """Clear scheduler and deviation state (new destination)."""
        self.last_recalculation_time: Optional[float] = None
        self.last_recalculation_position: Optional[Position] = None
        self.in_flight = False
        self.classifier.reset()

    def should_recalculate(
        self,
        position: Position,
        route: RouteGeometry,
        force: bool = False,
        previous_position: Optional[Position] = None,
    ) -> bool:
        # Deviation bookkeeping runs on every fix, even when gated below
        deviating = self.classifier.update(position, route, previous_position)

        if force:
            return True

        if self.in_flight:
            logger.debug("Recalculation already in flight")
            return False

        if self.last_recalculation_time is not None:
            since = position.timestamp - self.last_recalculation_time
            if since < self.min_interval:
                logger.debug(f"Recalculation cooldown: {since:.1f}s < {self.min_interval}s")
                return False

        if self.last_recalculation_position is not None:
            moved = _moved(self.last_recalculation_position, position)
            if moved < self.min_movement:
                logger.debug(f"Recalculation movement gate: {moved:.1f}m < {self.min_movement}m")
                return False

        gross = self.classifier.last_deviation_m > self.gross_threshold
        return deviating or gross

    def record_recalculation(self, position: Position):
        """Call only after a successful recalculation."""
        if self.last_recalculation_time is None or position.timestamp > self.last_recalculation_time:
            self.last_recalculation_time = position.timestamp
        self.last_recalculation_position = position
        self.classifier.reset()

    def mark_in_flight(self) -> bool:
        """Claim the single recalculation slot; False if already taken."""
        if self.in_flight:
            return False
        self.in_flight = True
        return True

    def clear_in_flight(self):
        self.in_flight = False


class RouteFetchDebouncer:
    """
    Debounce for position-only route refreshes.

    Skips a fetch within `interval` seconds of the previous one, or when
    the user moved less than `min_movement` metres since it.
    """

    def __init__(
        self,
        interval: float = config.ROUTE_FETCH_DEBOUNCE,
        min_movement: float = config.ROUTE_FETCH_MIN_MOVEMENT,
    ):
        self.interval = interval
        self.min_movement = min_movement
        self.reset()

    def reset(self):
        self.last_fetch_time: Optional[float] = None
        self.last_fetch_position: Optional[Position] = None

    def should_fetch(self, position: Position) -> bool:
        if self.last_fetch_time is not None and position.timestamp - self.last_fetch_time < self.interval:
            return False
        if self.last_fetch_position is not None and _moved(self.last_fetch_position, position) < self.min_movement:
            return False
        return True

    def record_fetch(self, position: Position):
        self.last_fetch_time = position.timestamp
        self.last_fetch_position = position
