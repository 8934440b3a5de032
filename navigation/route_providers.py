"""
Route Provider Chain
Fetches walking routes from an ordered list of routing backends

Each backend is attempted with a timeout; a failure advances the chain.
The direct straight-line route is the guaranteed final fallback, so
create_route always returns a usable RouteGeometry. Setting the cancel
event abandons the provider call in flight.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import googlemaps
import requests

from navigation.models import Maneuver, RouteGeometry
from utils import config
from utils.gps_utils import haversine_distance

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A routing backend failed: HTTP error, bad payload, client error."""


class ProviderTimeout(ProviderError):
    """A routing backend did not answer within its timeout."""


class RouteRequestCancelled(Exception):
    """The caller cancelled the route request before it completed."""


@dataclass(frozen=True)
class ProviderAttempt:
    """Outcome of one provider call within a chain request."""
    provider: str
    route: Optional[RouteGeometry] = None
    error: Optional[str] = None
    elapsed_s: float = 0.0
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.route is not None


# ------------------------------------------------------------------ providers

class RouteProvider:
    """Base class: one routing backend."""

    name = 'base'

    def is_configured(self) -> bool:
        return True

    def fetch_route(
        self,
        origin_lat: float, origin_lon: float,
        dest_lat: float, dest_lon: float,
        timeout: float = config.ROUTING_TIMEOUT,
    ) -> RouteGeometry:
        raise NotImplementedError


class OSRMProvider(RouteProvider):
    """OSRM walking profile over HTTP (GeoJSON geometry, with steps)."""

    name = 'osrm'

    def __init__(self, base_url: str = config.OSRM_URL, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()

    def fetch_route(self, origin_lat, origin_lon, dest_lat, dest_lon,
                    timeout=config.ROUTING_TIMEOUT) -> RouteGeometry:
        url = f"{self.base_url}/{origin_lon},{origin_lat};{dest_lon},{dest_lat}"
        params = {'overview': 'full', 'geometries': 'geojson', 'steps': 'true'}
        data = _request_json(self.session, 'GET', url, timeout, params=params)

        if data.get('code') != 'Ok' or not data.get('routes'):
            raise ProviderError(f"OSRM returned no route (code={data.get('code')})")

        try:
            route = data['routes'][0]
            coords = [(c[0], c[1]) for c in route['geometry']['coordinates']]
            distance = float(route['distance'])
            duration = route.get('duration')
            maneuvers = self._parse_steps(route.get('legs') or [])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError(f"Malformed OSRM payload: {e}") from e

        if len(coords) < 2:
            raise ProviderError("OSRM geometry has fewer than two vertices")

        return RouteGeometry(
            coordinates=coords, distance_m=distance,
            duration_s=float(duration) if duration is not None else None,
            maneuvers=maneuvers, source=self.name,
        )

    @staticmethod
    def _parse_steps(legs: List[Dict]) -> List[Maneuver]:
        maneuvers = []
        travelled = 0.0
        for leg in legs:
            for step in leg.get('steps') or []:
                m = step['maneuver']
                location = m.get('location')
                maneuvers.append(Maneuver(
                    type=m.get('type', 'turn'),
                    modifier=m.get('modifier'),
                    distance_m=travelled,
                    location=tuple(location) if location else None,
                    instruction=step.get('name') or None,
                ))
                travelled += float(step.get('distance', 0.0))
        return maneuvers


# OpenRouteService step type codes -> (maneuver type, modifier)
ORS_STEP_TYPES = {
    0: ('turn', 'left'),
    1: ('turn', 'right'),
    2: ('turn', 'sharp left'),
    3: ('turn', 'sharp right'),
    4: ('turn', 'slight left'),
    5: ('turn', 'slight right'),
    6: ('continue', 'straight'),
    7: ('roundabout', None),
    8: ('exit roundabout', None),
    9: ('turn', 'uturn'),
    10: ('arrive', None),
    11: ('depart', None),
    12: ('fork', 'slight left'),
    13: ('fork', 'slight right'),
}


class OpenRouteServiceProvider(RouteProvider):
    """OpenRouteService foot-walking; only used when an API key is set."""

    name = 'openrouteservice'

    def __init__(
        self,
        api_key: str = config.ORS_API_KEY,
        url: str = config.ORS_URL,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.session = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def fetch_route(self, origin_lat, origin_lon, dest_lat, dest_lon,
                    timeout=config.ROUTING_TIMEOUT) -> RouteGeometry:
        if not self.api_key:
            raise ProviderError("OpenRouteService API key not configured")

        body = {'coordinates': [[origin_lon, origin_lat], [dest_lon, dest_lat]]}
        headers = {
            'Authorization': self.api_key,
            'Content-Type': 'application/json',
            'Accept': 'application/geo+json, application/json',
        }
        data = _request_json(self.session, 'POST', self.url, timeout, json=body, headers=headers)

        try:
            feature = data['features'][0]
            coords = [(c[0], c[1]) for c in feature['geometry']['coordinates']]
            props = feature.get('properties') or {}
            summary = props.get('summary') or {}
            distance = float(summary['distance']) if 'distance' in summary else None
            duration = summary.get('duration')
            maneuvers = self._parse_segments(props.get('segments') or [], coords)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError(f"Malformed OpenRouteService payload: {e}") from e

        if len(coords) < 2:
            raise ProviderError("OpenRouteService geometry has fewer than two vertices")

        route = RouteGeometry.from_coordinates(
            coords, source=self.name,
            duration_s=float(duration) if duration is not None else None,
            maneuvers=maneuvers,
        )
        if distance is not None:
            route = RouteGeometry(
                coordinates=route.coordinates, distance_m=distance,
                duration_s=route.duration_s, maneuvers=route.maneuvers, source=self.name,
            )
        return route

    @staticmethod
    def _parse_segments(segments: List[Dict], coords) -> List[Maneuver]:
        maneuvers = []
        travelled = 0.0
        for segment in segments:
            for step in segment.get('steps') or []:
                kind, modifier = ORS_STEP_TYPES.get(step.get('type'), ('turn', None))
                way_points = step.get('way_points') or [None]
                index = way_points[0]
                location = coords[index] if index is not None and index < len(coords) else None
                maneuvers.append(Maneuver(
                    type=kind, modifier=modifier, distance_m=travelled,
                    location=location, instruction=step.get('instruction'),
                ))
                travelled += float(step.get('distance', 0.0))
        return maneuvers


class GoogleDirectionsProvider(RouteProvider):
    """Google Directions in walking mode; only used when an API key is set."""

    name = 'google'

    def __init__(self, api_key: str = config.GOOGLE_API_KEY, client=None):
        self.api_key = api_key
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _get_client(self, timeout: float):
        if self._client is None:
            try:
                self._client = googlemaps.Client(key=self.api_key, timeout=timeout)
            except ValueError as e:
                raise ProviderError(f"Google Maps client rejected API key: {e}") from e
        return self._client

    def fetch_route(self, origin_lat, origin_lon, dest_lat, dest_lon,
                    timeout=config.ROUTING_TIMEOUT) -> RouteGeometry:
        client = self._get_client(timeout)
        try:
            directions = client.directions(
                origin=(origin_lat, origin_lon),
                destination=(dest_lat, dest_lon),
                mode='walking',
            )
        except googlemaps.exceptions.Timeout as e:
            raise ProviderTimeout(f"Google Directions timed out: {e}") from e
        except (googlemaps.exceptions.ApiError, googlemaps.exceptions.TransportError) as e:
            raise ProviderError(f"Google Directions failed: {e}") from e

        if not directions:
            raise ProviderError("No routes found from Google Maps")

        try:
            rd = directions[0]
            poly = googlemaps.convert.decode_polyline(rd['overview_polyline']['points'])
            coords = [(p['lng'], p['lat']) for p in poly]
            leg = rd['legs'][0]
            distance = float(leg['distance']['value'])
            duration = float(leg['duration']['value'])
            maneuvers = []
            travelled = 0.0
            for step in leg.get('steps') or []:
                start = step.get('start_location') or {}
                kind, _, modifier = (step.get('maneuver') or 'continue').partition('-')
                maneuvers.append(Maneuver(
                    type=kind, modifier=modifier or None, distance_m=travelled,
                    location=(start['lng'], start['lat']) if start else None,
                    instruction=step.get('html_instructions'),
                ))
                travelled += float(step['distance']['value'])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError(f"Malformed Google Directions payload: {e}") from e

        if len(coords) < 2:
            raise ProviderError("Google polyline has fewer than two vertices")

        return RouteGeometry(
            coordinates=coords, distance_m=distance, duration_s=duration,
            maneuvers=maneuvers, source=self.name,
        )


def create_direct_route(
    origin_lat: float, origin_lon: float,
    dest_lat: float, dest_lon: float,
    walking_speed: float = config.WALKING_SPEED,
) -> RouteGeometry:
    """Straight two-vertex route; distance is haversine, duration at walking speed."""
    distance = haversine_distance(origin_lat, origin_lon, dest_lat, dest_lon)
    return RouteGeometry(
        coordinates=[(origin_lon, origin_lat), (dest_lon, dest_lat)],
        distance_m=distance,
        duration_s=distance / walking_speed if walking_speed > 0 else None,
        source='direct',
    )


class DirectLineProvider(RouteProvider):
    name = 'direct'

    def __init__(self, walking_speed: float = config.WALKING_SPEED):
        self.walking_speed = walking_speed

    def fetch_route(self, origin_lat, origin_lon, dest_lat, dest_lon,
                    timeout=config.ROUTING_TIMEOUT) -> RouteGeometry:
        return create_direct_route(origin_lat, origin_lon, dest_lat, dest_lon, self.walking_speed)


def _request_json(session, method: str, url: str, timeout: float, **kwargs) -> Dict:
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.Timeout as e:
        raise ProviderTimeout(f"{method} {url} timed out after {timeout}s") from e
    except requests.RequestException as e:
        raise ProviderError(f"{method} {url} failed: {e}") from e

    if not 200 <= response.status_code < 300:
        raise ProviderError(f"{method} {url} returned HTTP {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        raise ProviderError(f"{method} {url} returned invalid JSON") from e
    if not isinstance(data, dict):
        raise ProviderError(f"{method} {url} returned unexpected payload")
    return data


def default_providers(session: Optional[requests.Session] = None) -> List[RouteProvider]:
    """OSRM, then OpenRouteService and Google when their keys are set."""
    session = session or requests.Session()
    return [
        OSRMProvider(session=session),
        OpenRouteServiceProvider(session=session),
        GoogleDirectionsProvider(),
    ]


# --------------------------------------------------------------------- chain

class _CircuitBreaker:
    """Consecutive-failure counter that opens for a cooldown period."""

    def __init__(self, threshold: int, cooldown: float):
        self.threshold = threshold
        self.cooldown = cooldown
        self.failures = 0
        self.opened_at: Optional[float] = None

    def is_open(self, now: float) -> bool:
        if self.opened_at is None:
            return False
        # Half-open after the cooldown: allow one trial call
        return now - self.opened_at < self.cooldown

    def record_success(self):
        self.failures = 0
        self.opened_at = None

    def record_failure(self, now: float) -> bool:
        """Returns True when this failure opened (or re-opened) the circuit."""
        self.failures += 1
        if self.failures >= self.threshold:
            self.opened_at = now
            return True
        return False


class RouteProviderChain:
    """
    Ordered provider list with per-provider circuit breaking.

    Each request yields one ProviderAttempt per provider tried; iteration
    stops at the first success. The direct-line fallback runs when every
    configured provider failed or was skipped.
    """

    def __init__(
        self,
        providers: Optional[Sequence[RouteProvider]] = None,
        fallback: Optional[RouteProvider] = None,
        timeout: float = config.ROUTING_TIMEOUT,
        failure_threshold: int = config.PROVIDER_FAILURE_THRESHOLD,
        cooldown: float = config.PROVIDER_COOLDOWN,
        cancel_poll: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.providers = list(providers) if providers is not None else default_providers()
        self.fallback = fallback or DirectLineProvider()
        self.timeout = timeout
        self.clock = clock
        self.cancel_poll = cancel_poll
        self._breakers = {
            id(p): _CircuitBreaker(failure_threshold, cooldown) for p in self.providers
        }
        self._lock = threading.Lock()
        self.last_attempts: List[ProviderAttempt] = []

    def configured_providers(self) -> List[RouteProvider]:
        return [p for p in self.providers if p.is_configured()]

    def _fetch(self, provider: RouteProvider, coords, cancel_event: Optional[threading.Event]) -> RouteGeometry:
        """
        Run fetch_route on a helper thread so a cancel returns at once.

        The abandoned call finishes in the background (bounded by the
        provider timeout) and its result is dropped.
        """
        if cancel_event is None:
            return provider.fetch_route(*coords, timeout=self.timeout)

        outcome = {}
        done = threading.Event()

        def run():
            try:
                outcome['route'] = provider.fetch_route(*coords, timeout=self.timeout)
            except Exception as e:
                outcome['error'] = e
            finally:
                done.set()

        threading.Thread(target=run, name=f"route-{provider.name}", daemon=True).start()
        while not done.wait(self.cancel_poll):
            if cancel_event.is_set():
                logger.info(f"Abandoning in-flight request to {provider.name}")
                raise RouteRequestCancelled("Route request cancelled")

        if 'error' in outcome:
            raise outcome['error']
        return outcome['route']

    def _attempt(self, provider: RouteProvider, coords, cancel_event=None) -> ProviderAttempt:
        breaker = self._breakers.get(id(provider))
        now = self.clock()
        if breaker is not None and breaker.is_open(now):
            return ProviderAttempt(provider.name, error='circuit open', skipped=True)

        started = time.perf_counter()
        try:
            route = self._fetch(provider, coords, cancel_event)
        except ProviderError as e:
            elapsed = time.perf_counter() - started
            logger.warning(f"Route provider {provider.name} failed: {e}")
            if breaker is not None:
                with self._lock:
                    opened = breaker.record_failure(self.clock())
                if opened:
                    logger.warning(
                        f"Route provider {provider.name} disabled for "
                        f"{breaker.cooldown:.0f}s after {breaker.failures} failures"
                    )
            return ProviderAttempt(provider.name, error=str(e), elapsed_s=elapsed)

        if breaker is not None:
            with self._lock:
                breaker.record_success()
        return ProviderAttempt(provider.name, route=route, elapsed_s=time.perf_counter() - started)

    def create_route(
        self,
        origin_lat: float, origin_lon: float,
        dest_lat: float, dest_lon: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> RouteGeometry:
        """
        Route from origin to destination; never returns None.

        Raises RouteRequestCancelled if cancel_event is set before a result
        is accepted.
        """
        coords = (origin_lat, origin_lon, dest_lat, dest_lon)
        attempts: List[ProviderAttempt] = []
        route = None

        for provider in self.configured_providers():
            _check_cancelled(cancel_event)
            attempt = self._attempt(provider, coords, cancel_event)
            attempts.append(attempt)
            if attempt.ok:
                route = attempt.route
                break

        _check_cancelled(cancel_event)
        if route is None:
            attempt = ProviderAttempt(
                self.fallback.name, route=self.fallback.fetch_route(*coords, timeout=self.timeout),
            )
            attempts.append(attempt)
            route = attempt.route

        self.last_attempts = attempts
        logger.info(
            f"Route served by {route.source}: {route.distance_m:.0f}m, "
            f"{len(route.coordinates)} vertices ({len(attempts)} attempt(s))"
        )
        return route

    def provider_status(self) -> List[Dict]:
        now = self.clock()
        status = []
        for p in self.providers:
            breaker = self._breakers[id(p)]
            status.append({
                'provider': p.name,
                'configured': p.is_configured(),
                'failures': breaker.failures,
                'circuit_open': breaker.is_open(now),
            })
        return status


def _check_cancelled(cancel_event: Optional[threading.Event]):
    if cancel_event is not None and cancel_event.is_set():
        raise RouteRequestCancelled("Route request cancelled")
