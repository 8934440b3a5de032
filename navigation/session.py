"""
Route tracking session
Per-navigation aggregate driving the engine one GPS fix at a time

Pipeline per fix: arrival -> deviation/scheduling (may start a
recalculation) -> traveled/remaining split -> instruction.

All mutable state sits behind one RLock. Recalculations run on an optional
executor; at most one is in flight, and each carries a generation number
and a cancel event so a destination change or cancel discards stale results.
"""

import logging
import threading
from concurrent.futures import Executor, Future
from typing import Callable, Dict, List, Optional, Tuple

from navigation.arrival import ArrivalDetector
from navigation.instructions import instruction_for
from navigation.models import Destination, Position, RouteGeometry, SessionSnapshot
from navigation.position_filter import PositionFilter
from navigation.recalculation import RecalculationScheduler, RouteFetchDebouncer
from navigation.route_providers import RouteProviderChain, RouteRequestCancelled
from navigation.route_splitter import compute_remaining, compute_traveled, should_update_split
from utils import config
from utils.gps_utils import calculate_bearing, haversine_distance

logger = logging.getLogger(__name__)

RecalculationJob = Tuple[int, threading.Event, Position, str]


class TrackingSession:
    """
    Route tracking and recalculation engine for one user.

    Callbacks (all optional):
        on_route_updated(route, source)
        on_arrived()
        on_recalculating()
        on_recalculated(success)
    """

    def __init__(
        self,
        provider_chain: Optional[RouteProviderChain] = None,
        scheduler: Optional[RecalculationScheduler] = None,
        arrival_detector: Optional[ArrivalDetector] = None,
        debouncer: Optional[RouteFetchDebouncer] = None,
        position_filter: Optional[PositionFilter] = None,
        executor: Optional[Executor] = None,
        split_threshold: float = config.ROUTE_SPLIT_THRESHOLD,
        min_heading_movement: float = config.MIN_DIRECTION_MOVEMENT,
        on_route_updated: Optional[Callable[[RouteGeometry, str], None]] = None,
        on_arrived: Optional[Callable[[], None]] = None,
        on_recalculating: Optional[Callable[[], None]] = None,
        on_recalculated: Optional[Callable[[bool], None]] = None,
    ):
        self.provider_chain = provider_chain or RouteProviderChain()
        self.scheduler = scheduler or RecalculationScheduler()
        self.arrival_detector = arrival_detector or ArrivalDetector()
        self.debouncer = debouncer or RouteFetchDebouncer()
        self.position_filter = position_filter
        self.executor = executor
        self.split_threshold = split_threshold
        self.min_heading_movement = min_heading_movement

        self.on_route_updated = on_route_updated
        self.on_arrived = on_arrived
        self.on_recalculating = on_recalculating
        self.on_recalculated = on_recalculated

        self._lock = threading.RLock()
        self._generation = 0
        self._cancel_event = threading.Event()
        self._future: Optional[Future] = None
        self._clear_state()

    def _clear_state(self):
        self.destination: Optional[Destination] = None
        self.route: Optional[RouteGeometry] = None
        self.traveled: Optional[RouteGeometry] = None
        self.remaining: Optional[RouteGeometry] = None
        self.last_position: Optional[Position] = None
        self.last_split_position: Optional[Position] = None
        self.heading: Optional[float] = None
        self.arrived = False
        self.fix_count = 0
        self.recalculation_count = 0
        self.events: List[Dict] = []

    # ----------------------------------------------------------- lifecycle

    def on_destination_set(self, destination: Destination, initial_position: Position) -> Optional[RouteGeometry]:
        """
        Start a new navigation: cancel pending work, reset all state and
        fetch the first route synchronously.

        Returns the route, or None if the request was superseded.
        """
        with self._lock:
            self._cancel_pending()
            self._clear_state()
            self.scheduler.reset()
            self.scheduler.classifier.reset_statistics()
            self.debouncer.reset()
            if self.position_filter is not None:
                self.position_filter.reset()

            self.destination = destination
            self.last_position = initial_position
            self.arrival_detector.set_destination(destination, initial_position.timestamp)
            generation, cancel_event = self._generation, self._cancel_event
            self._log_event('destination_set', initial_position, label=destination.label)

        logger.info(f"Navigation started to {destination.label or destination.coordinates}")

        try:
            route = self.provider_chain.create_route(
                initial_position.latitude, initial_position.longitude,
                destination.latitude, destination.longitude,
                cancel_event=cancel_event,
            )
        except RouteRequestCancelled:
            logger.info("Initial route request cancelled")
            return None

        with self._lock:
            if generation != self._generation:
                return None
            self._apply_route(route, initial_position)
            self.debouncer.record_fetch(initial_position)

        self._emit(self.on_route_updated, route, route.source)
        return route

    def on_cancel(self):
        """Cancel any in-flight request and tear the session down."""
        with self._lock:
            self._cancel_pending()
            self._clear_state()
            self.scheduler.reset()
            self.debouncer.reset()
            self.arrival_detector.set_destination(None, 0.0)
        logger.info("Navigation cancelled")

    def _cancel_pending(self):
        self._cancel_event.set()
        self._cancel_event = threading.Event()
        self._generation += 1
        self.scheduler.clear_in_flight()

    # ----------------------------------------------------------- per fix

    def on_position_update(self, position: Position, device_bearing: Optional[float] = None) -> Optional[Dict]:
        """
        Process one GPS fix.

        Returns a status dict, or None when there is nothing to track
        (no destination/route yet) or the fix was filtered out.
        """
        if self.position_filter is not None:
            position = self.position_filter.process(position)
            if position is None:
                return None

        job = None
        arrived_now = False
        with self._lock:
            if self.destination is None or self.route is None:
                return None

            previous = self.last_position
            self.last_position = position
            self.fix_count += 1
            self._update_heading(previous, position)

            if not self.arrived:
                if self.arrival_detector.has_arrived(position):
                    self.arrived = arrived_now = True
                    self._cancel_pending()
                    self._log_event('arrived', position)
                    logger.info(f"Arrived at {self.destination.label or self.destination.coordinates}")
                else:
                    if self.scheduler.should_recalculate(position, self.route, previous_position=previous):
                        job = self._begin_recalculation(position, 'deviation')
                    if should_update_split(position, self.last_split_position, self.split_threshold):
                        self._split(position)

            status = self._status(position, device_bearing)

        if arrived_now:
            self._emit(self.on_arrived)
        if job is not None:
            self._dispatch(job)
        return status

    def request_recalculation(self) -> bool:
        """Manual recalculation from the last known fix, bypassing the gates."""
        with self._lock:
            if self.destination is None or self.route is None or self.last_position is None or self.arrived:
                return False
            job = self._begin_recalculation(self.last_position, 'manual')
        if job is None:
            return False
        self._dispatch(job)
        return True

    def refresh_route(self, position: Position) -> bool:
        """Position-only route refresh, subject to the fetch debouncer."""
        with self._lock:
            if self.destination is None or self.arrived:
                return False
            if not self.debouncer.should_fetch(position):
                logger.debug("Route refresh debounced")
                return False
            job = self._begin_recalculation(position, 'refresh')
            if job is not None:
                self.debouncer.record_fetch(position)
        if job is None:
            return False
        self._dispatch(job)
        return True

    # ------------------------------------------------------ recalculation

    def _begin_recalculation(self, position: Position, reason: str) -> Optional[RecalculationJob]:
        if not self.scheduler.mark_in_flight():
            logger.debug(f"Recalculation ({reason}) dropped: one already in flight")
            return None
        self._log_event('recalculating', position, reason=reason)
        logger.info(f"Recalculating route ({reason})")
        return (self._generation, self._cancel_event, position, reason)

    def _dispatch(self, job: RecalculationJob):
        self._emit(self.on_recalculating)
        if self.executor is not None:
            self._future = self.executor.submit(self._run_recalculation, *job)
        else:
            self._run_recalculation(*job)

    def _run_recalculation(self, generation: int, cancel_event: threading.Event,
                           position: Position, reason: str) -> bool:
        with self._lock:
            destination = self.destination
        if destination is None:
            self._finish_recalculation(generation)
            return False

        try:
            route = self.provider_chain.create_route(
                position.latitude, position.longitude,
                destination.latitude, destination.longitude,
                cancel_event=cancel_event,
            )
        except RouteRequestCancelled:
            logger.info(f"Recalculation ({reason}) cancelled")
            self._finish_recalculation(generation)
            return False
        except Exception:
            self._finish_recalculation(generation)
            self._emit(self.on_recalculated, False)
            raise

        with self._lock:
            if generation != self._generation or cancel_event.is_set():
                logger.info("Discarding stale recalculation result")
                return False
            self._apply_route(route, position)
            self.scheduler.record_recalculation(position)
            self.scheduler.clear_in_flight()
            self.recalculation_count += 1
            self._log_event('recalculated', position, source=route.source, reason=reason)

        self._emit(self.on_route_updated, route, route.source)
        self._emit(self.on_recalculated, True)
        return True

    def _finish_recalculation(self, generation: int):
        with self._lock:
            if generation == self._generation:
                self.scheduler.clear_in_flight()

    def wait_for_recalculation(self, timeout: Optional[float] = None) -> Optional[bool]:
        """Block until the last dispatched recalculation finishes (executor mode)."""
        future = self._future
        if future is None:
            return None
        return future.result(timeout=timeout)

    # ------------------------------------------------------------ helpers

    def _apply_route(self, route: RouteGeometry, position: Position):
        self.route = route
        self.traveled = None
        self.remaining = route
        self.last_split_position = None
        self._split(position)

    def _split(self, position: Position):
        self.remaining = compute_remaining(position, self.route)
        self.traveled = compute_traveled(position, self.route)
        self.last_split_position = position

    def _update_heading(self, previous: Optional[Position], position: Position):
        if previous is None:
            return
        moved = haversine_distance(
            previous.latitude, previous.longitude, position.latitude, position.longitude,
        )
        if moved >= self.min_heading_movement:
            self.heading = calculate_bearing(
                previous.latitude, previous.longitude, position.latitude, position.longitude,
            )

    def _status(self, position: Position, device_bearing: Optional[float]) -> Dict:
        classifier = self.scheduler.classifier
        bearing = device_bearing if device_bearing is not None else (self.heading or 0.0)
        return {
            'arrived': self.arrived,
            'deviation_m': classifier.last_deviation_m,
            'deviation_state': classifier.state.value,
            'recalculating': self.scheduler.in_flight,
            'remaining_distance_m': self.remaining.distance_m if self.remaining else None,
            'route_source': self.route.source if self.route else None,
            'instruction': instruction_for(position, self.destination, bearing),
        }

    def _log_event(self, kind: str, position: Position, **details):
        event = {'type': kind, 'timestamp': position.timestamp}
        event.update(details)
        self.events.append(event)

    @staticmethod
    def _emit(callback, *args):
        if callback is not None:
            callback(*args)

    # ------------------------------------------------------------ readers

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            classifier = self.scheduler.classifier
            return SessionSnapshot(
                destination=self.destination,
                route=self.route,
                traveled=self.traveled,
                remaining=self.remaining,
                last_position=self.last_position,
                deviation_state=classifier.state,
                deviation_m=classifier.last_deviation_m,
                recalculating=self.scheduler.in_flight,
                arrived=self.arrived,
                events=tuple(dict(e) for e in self.events),
            )

    def get_session_summary(self) -> Optional[Dict]:
        with self._lock:
            if not self.fix_count:
                return None
            classifier = self.scheduler.classifier
            return {
                'destination': self.destination.label if self.destination else None,
                'total_fixes': self.fix_count,
                'recalculations': self.recalculation_count,
                'deviation_episodes': classifier.episode_count,
                'max_deviation': classifier.max_deviation_m,
                'route_source': self.route.source if self.route else None,
                'remaining_distance': self.remaining.distance_m if self.remaining else None,
                'arrived': self.arrived,
            }
