"""
Deviation Classifier
Separates intentional off-route walking from GPS noise

States per episode: ON_ROUTE -> DEVIATING -> CONFIRMED_DEVIATION.
A deviation is confirmed by one of three paths:
  - major:       far off the route for a short minimum time
  - direction:   sharp heading change while off-route
  - persistence: off-route for a sustained period
Thresholds tighten near an upcoming turn on the route.
Any fix back within the threshold resets the whole episode.
"""

import logging
from typing import Optional

from navigation.corridor import RouteCorridor
from navigation.models import DeviationState, Position, RouteGeometry
from utils import config
from utils.gps_utils import (
    angle_difference,
    calculate_bearing,
    detect_turns,
    haversine_distance,
    project_point_onto_polyline,
)

logger = logging.getLogger(__name__)

STRATEGIES = ('projection', 'corridor')


class DeviationClassifier:
    """
    Per-session off-route state machine.

    Timing comes from Position.timestamp so recorded walks replay exactly.
    """

    def __init__(
        self,
        threshold: float = config.ROUTE_DEVIATION_THRESHOLD,
        major_threshold: float = config.MAJOR_DEVIATION_THRESHOLD,
        major_min_time: float = config.MAJOR_DEVIATION_MIN_TIME,
        direction_change_threshold: float = config.DIRECTION_CHANGE_THRESHOLD,
        decision_point_factor: float = config.DECISION_POINT_FACTOR,
        persistent_time: float = config.PERSISTENT_DEVIATION_TIME,
        min_direction_movement: float = config.MIN_DIRECTION_MOVEMENT,
        turn_angle: float = config.DECISION_POINT_TURN_ANGLE,
        lookahead_m: float = config.DECISION_POINT_LOOKAHEAD_M,
        lookahead_vertices: int = config.DECISION_POINT_LOOKAHEAD_VERTICES,
        strategy: str = config.DEVIATION_STRATEGY,
        corridor_buffer: float = config.CORRIDOR_BUFFER_DISTANCE,
    ):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown deviation strategy {strategy!r}, expected one of {STRATEGIES}")

        self.threshold = threshold
        self.major_threshold = major_threshold
        self.major_min_time = major_min_time
        self.direction_change_threshold = direction_change_threshold
        self.decision_point_factor = decision_point_factor
        self.persistent_time = persistent_time
        self.min_direction_movement = min_direction_movement
        self.turn_angle = turn_angle
        self.lookahead_m = lookahead_m
        self.lookahead_vertices = lookahead_vertices
        self.strategy = strategy
        self.corridor_buffer = corridor_buffer

        self._corridor: Optional[RouteCorridor] = None
        self._corridor_route: Optional[RouteGeometry] = None

        self.reset_statistics()
        self.reset()

    def reset_statistics(self):
        self.episode_count = 0
        self.max_deviation_m = 0.0

    def reset(self):
        """Back to ON_ROUTE with no timer and no direction history."""
        self.state = DeviationState.ON_ROUTE
        self.deviation_start_time: Optional[float] = None
        self.last_user_direction: Optional[float] = None
        self.last_deviation_m = 0.0
        self.confirmed_by: Optional[str] = None

    # ------------------------------------------------------------- geometry

    def deviation_distance(self, position: Position, route: RouteGeometry) -> float:
        """Distance from the fix to the route in metres."""
        if self.strategy == 'corridor' and len(route.coordinates) >= 2:
            if self._corridor_route is not route:
                self._corridor = RouteCorridor(route.coordinates, self.corridor_buffer)
                self._corridor_route = route
            return self._corridor.distance_to_route(position.latitude, position.longitude)

        projection = project_point_onto_polyline(
            position.latitude, position.longitude, route.coordinates,
        )
        return projection.deviation_distance_m

    def is_near_decision_point(self, position: Position, route: RouteGeometry) -> bool:
        """True when a turn sharper than turn_angle lies just ahead on the route."""
        turns = detect_turns(
            route.coordinates, position.latitude, position.longitude,
            lookahead_m=self.lookahead_m,
            min_angle=self.turn_angle,
            max_vertices=self.lookahead_vertices,
        )
        return bool(turns)

    # -------------------------------------------------------------- update

    def update(
        self,
        position: Position,
        route: RouteGeometry,
        previous_position: Optional[Position] = None,
    ) -> bool:
        """
        Feed one fix; returns True while the deviation is confirmed.
        """
        distance = self.deviation_distance(position, route)
        self.last_deviation_m = distance

        if distance <= self.threshold:
            if self.state != DeviationState.ON_ROUTE:
                logger.debug(f"Back on route ({distance:.1f}m), deviation episode cleared")
                self.reset()
                self.last_deviation_m = distance
            return False

        self.max_deviation_m = max(self.max_deviation_m, distance)
        if self.state == DeviationState.CONFIRMED_DEVIATION:
            return True

        heading = self._heading(previous_position, position)
        direction_change = None

        if self.deviation_start_time is None:
            self.deviation_start_time = position.timestamp
            self.last_user_direction = heading
            self.state = DeviationState.DEVIATING
            self.episode_count += 1
            logger.debug(f"Deviation started: {distance:.1f}m off route")
        elif heading is not None:
            if self.last_user_direction is not None:
                direction_change = angle_difference(heading, self.last_user_direction)
            self.last_user_direction = heading

        elapsed = position.timestamp - self.deviation_start_time
        near_turn = self.is_near_decision_point(position, route)

        if distance > self.major_threshold and elapsed >= self.major_min_time:
            return self._confirm('major', distance, elapsed)

        direction_limit = self.direction_change_threshold
        if near_turn:
            direction_limit *= self.decision_point_factor
        if direction_change is not None and direction_change > direction_limit:
            return self._confirm('direction', distance, elapsed)

        persistent_limit = self.persistent_time / 2 if near_turn else self.persistent_time
        if elapsed >= persistent_limit:
            return self._confirm('persistence', distance, elapsed)

        return False

    def _heading(self, previous: Optional[Position], current: Position) -> Optional[float]:
        if previous is None:
            return None
        moved = haversine_distance(
            previous.latitude, previous.longitude, current.latitude, current.longitude,
        )
        if moved < self.min_direction_movement:
            return None
        return calculate_bearing(
            previous.latitude, previous.longitude, current.latitude, current.longitude,
        )

    def _confirm(self, path: str, distance: float, elapsed: float) -> bool:
        self.state = DeviationState.CONFIRMED_DEVIATION
        self.confirmed_by = path
        logger.info(f"Deviation confirmed by {path}: {distance:.1f}m off route for {elapsed:.1f}s")
        return True
