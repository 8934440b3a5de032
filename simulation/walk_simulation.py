"""
Offline walk simulation for the route tracking engine

Walks a simulated pedestrian along the initial route at walking speed with
Gaussian GPS noise, optionally stepping sideways off the route for a while,
and replays every fix through a TrackingSession.

Run from project root:
    python -m simulation.walk_simulation --offline
    python -m simulation.walk_simulation --from church --detour-offset 60
"""

import argparse
import logging
import math
import sys
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from navigation import (
    DirectLineProvider,
    Position,
    RouteProviderChain,
    TrackingSession,
)
from utils import config
from utils.gps_utils import calculate_bearing, haversine_distance
from utils.village_data import PUBLIC_POIS, exit_destination

logger = logging.getLogger(__name__)

METERS_PER_DEGREE = 111194.9


def offset_position(lat: float, lon: float, north_m: float, east_m: float) -> Tuple[float, float]:
    """Shift a point by metric offsets; returns (lat, lon)."""
    dlat = north_m / METERS_PER_DEGREE
    dlon = east_m / (METERS_PER_DEGREE * math.cos(math.radians(lat)))
    return lat + dlat, lon + dlon


def interpolate_walk(
    coordinates: Sequence[Tuple[float, float]],
    speed: float = config.WALKING_SPEED,
    interval: float = 1.0,
    start_time: float = 0.0,
    noise_m: float = 0.0,
    detour: Optional[Tuple[float, float, float]] = None,
    rng: Optional[np.random.Generator] = None,
) -> List[Position]:
    """
    Fixes every `interval` seconds along a (lon, lat) polyline.

    detour is (start_s, duration_s, offset_m): during that window the walker
    is pushed offset_m to the right of the walking direction.
    """
    if len(coordinates) < 2:
        return []
    rng = rng or np.random.default_rng()

    seg_lengths = [
        haversine_distance(a[1], a[0], b[1], b[0])
        for a, b in zip(coordinates[:-1], coordinates[1:])
    ]
    total = sum(seg_lengths)
    steps = int(math.ceil(total / (speed * interval)))

    fixes = []
    for k in range(steps + 1):
        elapsed = k * interval
        travelled = min(total, elapsed * speed)

        seg, remaining = 0, travelled
        while seg < len(seg_lengths) - 1 and remaining > seg_lengths[seg]:
            remaining -= seg_lengths[seg]
            seg += 1
        (lon1, lat1), (lon2, lat2) = coordinates[seg], coordinates[seg + 1]
        t = remaining / seg_lengths[seg] if seg_lengths[seg] > 0 else 0.0
        lat, lon = lat1 + t * (lat2 - lat1), lon1 + t * (lon2 - lon1)

        north, east = 0.0, 0.0
        if detour is not None:
            d_start, d_duration, d_offset = detour
            if d_start <= elapsed < d_start + d_duration:
                right = math.radians(calculate_bearing(lat1, lon1, lat2, lon2) + 90)
                north += d_offset * math.cos(right)
                east += d_offset * math.sin(right)
        if noise_m > 0:
            north += float(rng.normal(0, noise_m))
            east += float(rng.normal(0, noise_m))

        lat, lon = offset_position(lat, lon, north, east)
        fixes.append(Position(lat, lon, start_time + elapsed, accuracy=max(noise_m, 5.0)))

    return fixes


def run_simulation(
    origin: Tuple[float, float],
    destination=None,
    provider_chain: Optional[RouteProviderChain] = None,
    noise_m: float = 3.0,
    detour: Optional[Tuple[float, float, float]] = None,
    seed: Optional[int] = 42,
) -> Dict:
    """
    Replay a simulated walk from origin (lon, lat) to destination.

    Returns the session summary plus the event log.
    """
    destination = destination or exit_destination()
    session = TrackingSession(provider_chain=provider_chain or RouteProviderChain())

    origin_lon, origin_lat = origin
    start = Position(origin_lat, origin_lon, 0.0, accuracy=5.0)
    route = session.on_destination_set(destination, start)
    print(f"Route from {route.source}: {route.distance_m:.0f}m, {len(route.coordinates)} vertices")

    fixes = interpolate_walk(
        route.coordinates, noise_m=noise_m, detour=detour,
        start_time=1.0, rng=np.random.default_rng(seed),
    )

    for fix in fixes:
        status = session.on_position_update(fix)
        if status is None:
            continue
        print(
            f"t={fix.timestamp:5.1f}s  dev={status['deviation_m']:6.1f}m  "
            f"{status['deviation_state']:<20} {status['instruction']['text']}"
        )
        if status['arrived']:
            break

    summary = session.get_session_summary() or {}
    summary['events'] = list(session.events)
    return summary


def main(argv=None):
    parser = argparse.ArgumentParser(description='Simulate a walk through the route tracking engine')
    parser.add_argument('--from', dest='origin', default='church', choices=sorted(PUBLIC_POIS),
                        help='public point of interest to start from')
    parser.add_argument('--offline', action='store_true', help='use only the direct-line route')
    parser.add_argument('--noise', type=float, default=3.0, help='GPS noise sigma in metres')
    parser.add_argument('--detour-start', type=float, default=20.0)
    parser.add_argument('--detour-duration', type=float, default=0.0)
    parser.add_argument('--detour-offset', type=float, default=60.0)
    parser.add_argument('--seed', type=int, default=42)
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    chain = RouteProviderChain(providers=[DirectLineProvider()]) if args.offline else RouteProviderChain()
    detour = None
    if args.detour_duration > 0:
        detour = (args.detour_start, args.detour_duration, args.detour_offset)

    summary = run_simulation(
        PUBLIC_POIS[args.origin]['coords'],
        provider_chain=chain, noise_m=args.noise, detour=detour, seed=args.seed,
    )

    print("\nEvents:")
    for event in summary.pop('events'):
        print(f"   {event}")
    print("\nSummary:")
    for key, value in summary.items():
        print(f"   {key}: {value}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
