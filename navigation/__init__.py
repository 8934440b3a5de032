"""
Route tracking and recalculation engine
"""

from navigation.models import (
    Position,
    Maneuver,
    RouteGeometry,
    Destination,
    Projection,
    DeviationState,
    SessionSnapshot,
)
from navigation.route_providers import (
    ProviderError,
    ProviderTimeout,
    RouteRequestCancelled,
    ProviderAttempt,
    OSRMProvider,
    OpenRouteServiceProvider,
    GoogleDirectionsProvider,
    DirectLineProvider,
    RouteProviderChain,
    create_direct_route,
    default_providers,
)
from navigation.deviation import DeviationClassifier
from navigation.corridor import RouteCorridor
from navigation.recalculation import RecalculationScheduler, RouteFetchDebouncer
from navigation.route_splitter import compute_remaining, compute_traveled, should_update_split
from navigation.arrival import ArrivalDetector
from navigation.instructions import instruction_for, instruction_text
from navigation.position_filter import PositionFilter
from navigation.session import TrackingSession

__all__ = [
    'Position',
    'Maneuver',
    'RouteGeometry',
    'Destination',
    'Projection',
    'DeviationState',
    'SessionSnapshot',
    'ProviderError',
    'ProviderTimeout',
    'RouteRequestCancelled',
    'ProviderAttempt',
    'OSRMProvider',
    'OpenRouteServiceProvider',
    'GoogleDirectionsProvider',
    'DirectLineProvider',
    'RouteProviderChain',
    'create_direct_route',
    'default_providers',
    'DeviationClassifier',
    'RouteCorridor',
    'RecalculationScheduler',
    'RouteFetchDebouncer',
    'compute_remaining',
    'compute_traveled',
    'should_update_split',
    'ArrivalDetector',
    'instruction_for',
    'instruction_text',
    'PositionFilter',
    'TrackingSession',
]
