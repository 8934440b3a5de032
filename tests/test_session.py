"""
Tests for navigation/session.py

Providers are scripted fakes; executors either run inline, capture
submitted jobs for manual stepping, or are a real single-worker pool.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from navigation.models import Destination, DeviationState
from navigation.position_filter import PositionFilter
from navigation.route_providers import RouteProviderChain
from navigation.session import TrackingSession
from tests.conftest import FakeProvider, lonlat, pos


class BlockingProvider(FakeProvider):
    """Blocks inside fetch_route once `blocking` is set, until released."""

    def __init__(self, route):
        super().__init__(name='osrm', route=route)
        self.blocking = False
        self.release = threading.Event()

    def fetch_route(self, *args, **kwargs):
        if self.blocking:
            self.release.wait(5)
        return super().fetch_route(*args, **kwargs)


class CapturingExecutor:
    """Holds submitted jobs until run_all() is called."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args):
        self.jobs.append((fn, args))
        return Future()

    def run_all(self):
        results = [fn(*args) for fn, args in self.jobs]
        self.jobs = []
        return results


@pytest.fixture
def destination():
    return Destination(coordinates=lonlat(0, 400), label='Block 7 Lot 3')


@pytest.fixture
def osrm_route(straight_route):
    return replace(straight_route, source='osrm')


@pytest.fixture
def provider(osrm_route):
    return FakeProvider(name='osrm', route=osrm_route)


def make_session(provider, **kwargs):
    callbacks = {
        'on_route_updated': MagicMock(),
        'on_arrived': MagicMock(),
        'on_recalculating': MagicMock(),
        'on_recalculated': MagicMock(),
    }
    callbacks.update(kwargs)
    chain = RouteProviderChain(providers=[provider])
    return TrackingSession(provider_chain=chain, **callbacks)


# ═══════════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════

class TestLifecycle:

    def test_no_destination_ignores_fixes(self, provider):
        session = make_session(provider)
        assert session.on_position_update(pos(0, 0, 0)) is None
        assert session.get_session_summary() is None

    def test_destination_set_fetches_route(self, provider, destination, osrm_route):
        session = make_session(provider)
        route = session.on_destination_set(destination, pos(0, 0, 0))

        assert route is osrm_route
        assert session.route is osrm_route
        assert session.remaining is not None
        assert len(provider.calls) == 1
        session.on_route_updated.assert_called_once_with(osrm_route, 'osrm')

    def test_new_destination_resets_state(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        session.on_position_update(pos(30, 20, 1))
        assert session.scheduler.classifier.state == DeviationState.DEVIATING

        other = Destination(coordinates=lonlat(0, 300), label='Clubhouse')
        session.on_destination_set(other, pos(0, 0, 2))
        assert session.destination is other
        assert session.scheduler.classifier.state == DeviationState.ON_ROUTE
        assert session.scheduler.classifier.episode_count == 0
        assert session.fix_count == 0

    def test_cancel_tears_down(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        session.on_cancel()

        assert session.destination is None
        assert session.route is None
        assert session.on_position_update(pos(0, 10, 1)) is None
        assert session.snapshot().destination is None


# ═══════════════════════════════════════════════════════════════════════════════
# Per-fix pipeline
# ═══════════════════════════════════════════════════════════════════════════════

class TestPositionUpdates:

    def test_status_on_route(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        status = session.on_position_update(pos(2, 50, 1))

        assert status['arrived'] is False
        assert status['deviation_state'] == 'on_route'
        assert status['route_source'] == 'osrm'
        assert status['remaining_distance_m'] == pytest.approx(350, rel=1e-2)
        assert status['instruction']['distance_label'] == '350 m'

    def test_split_follows_movement(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))

        session.on_position_update(pos(0, 25, 1))
        assert session.remaining.coordinates[0][0] == pytest.approx(lonlat(0, 25)[0], abs=1e-9)

        session.on_position_update(pos(0, 30, 2))
        assert session.remaining.coordinates[0][0] == pytest.approx(lonlat(0, 25)[0], abs=1e-9)
        assert session.traveled is not None

    def test_persistent_deviation_recalculates_once(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))

        for t in range(1, 10):
            session.on_position_update(pos(30, 20 + 1.4 * t, t))

        assert len(provider.calls) == 2
        assert session.recalculation_count == 1
        session.on_recalculating.assert_called_once()
        session.on_recalculated.assert_called_once_with(True)
        assert session.scheduler.last_recalculation_time == 7
        assert [e['type'] for e in session.events].count('recalculated') == 1

    def test_recalculation_uses_current_position(self, destination):
        provider = FakeProvider(name='osrm')
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        session.on_position_update(pos(200, 50, 1))

        origin_lat, origin_lon, _, _ = provider.calls[-1]
        assert (origin_lon, origin_lat) == lonlat(200, 50)
        assert session.route.origin == pytest.approx(lonlat(200, 50))

    def test_arrival_fires_once(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))

        assert session.on_position_update(pos(0, 398, 1))['arrived'] is False
        assert session.on_position_update(pos(0, 398, 3))['arrived'] is True
        assert session.on_position_update(pos(0, 399, 4))['arrived'] is True
        session.on_arrived.assert_called_once_with()

    def test_no_recalculation_after_arrival(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        session.on_position_update(pos(0, 400, 3))
        session.on_position_update(pos(300, 400, 20))
        assert len(provider.calls) == 1
        assert session.request_recalculation() is False

    def test_filtered_fix_ignored(self, provider, destination):
        session = make_session(provider, position_filter=PositionFilter())
        session.on_destination_set(destination, pos(0, 0, 0))
        assert session.on_position_update(pos(0, 10, 1, accuracy=500)) is None
        assert session.fix_count == 0

    def test_filter_recovers_after_gps_gap(self, provider, destination):
        session = make_session(provider, position_filter=PositionFilter())
        session.on_destination_set(destination, pos(0, 0, 0))
        session.on_position_update(pos(0, 10, 1))

        assert session.on_position_update(pos(0, 70, 90)) is not None
        assert session.on_position_update(pos(0, 71, 91)) is not None
        assert session.fix_count == 3


# ═══════════════════════════════════════════════════════════════════════════════
# Manual recalculation, refresh, concurrency
# ═══════════════════════════════════════════════════════════════════════════════

class TestRecalculationControl:

    def test_manual_recalculation(self, provider, destination):
        session = make_session(provider)
        assert session.request_recalculation() is False

        session.on_destination_set(destination, pos(0, 0, 0))
        session.on_position_update(pos(0, 20, 1))
        assert session.request_recalculation() is True
        assert len(provider.calls) == 2
        assert session.scheduler.in_flight is False

    def test_manual_recalculation_does_not_reclassify_fix(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        session.on_position_update(pos(30, 20, 1))

        with patch.object(session.scheduler.classifier, 'update') as update:
            assert session.request_recalculation() is True
        update.assert_not_called()

    def test_single_request_in_flight(self, provider, destination):
        executor = CapturingExecutor()
        session = make_session(provider, executor=executor)
        session.on_destination_set(destination, pos(0, 0, 0))

        assert session.request_recalculation() is True
        assert session.request_recalculation() is False
        assert session.snapshot().recalculating is True
        assert len(executor.jobs) == 1

        assert executor.run_all() == [True]
        assert session.scheduler.in_flight is False
        assert session.recalculation_count == 1

    def test_destination_change_discards_pending_request(self, provider, destination, osrm_route):
        executor = CapturingExecutor()
        session = make_session(provider, executor=executor)
        session.on_destination_set(destination, pos(0, 0, 0))
        session.request_recalculation()

        other = Destination(coordinates=lonlat(0, 300), label='Clubhouse')
        session.on_destination_set(other, pos(0, 0, 5))
        assert executor.run_all() == [False]

        assert len(provider.calls) == 2
        assert session.destination is other
        assert session.recalculation_count == 0
        assert session.scheduler.in_flight is False

    def test_cancel_discards_pending_request(self, provider, destination):
        executor = CapturingExecutor()
        session = make_session(provider, executor=executor)
        session.on_destination_set(destination, pos(0, 0, 0))
        session.request_recalculation()
        session.on_cancel()

        assert executor.run_all() == [False]
        assert session.route is None

    def test_thread_pool_executor(self, provider, destination):
        with ThreadPoolExecutor(max_workers=1) as executor:
            session = make_session(provider, executor=executor)
            session.on_destination_set(destination, pos(0, 0, 0))
            assert session.request_recalculation() is True
            assert session.wait_for_recalculation(timeout=5) is True
        assert session.recalculation_count == 1

    def test_cancel_frees_worker_during_slow_fetch(self, osrm_route, destination):
        provider = BlockingProvider(osrm_route)
        with ThreadPoolExecutor(max_workers=1) as executor:
            session = make_session(provider, executor=executor)
            session.on_destination_set(destination, pos(0, 0, 0))
            provider.blocking = True
            try:
                assert session.request_recalculation() is True
                time.sleep(0.1)
                session.on_cancel()
                started = time.monotonic()
                assert session.wait_for_recalculation(timeout=2) is False
                assert time.monotonic() - started < 2
                assert session.recalculation_count == 0
            finally:
                provider.release.set()

    def test_refresh_route_debounced(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))

        assert session.refresh_route(pos(0, 40, 0.2)) is False
        assert session.refresh_route(pos(0, 10, 5)) is False
        assert session.refresh_route(pos(0, 40, 5)) is True
        assert len(provider.calls) == 2

    def test_unexpected_provider_error_propagates(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        provider.error = RuntimeError('bug')

        with pytest.raises(RuntimeError):
            session.request_recalculation()
        session.on_recalculated.assert_called_once_with(False)
        assert session.scheduler.in_flight is False


# ═══════════════════════════════════════════════════════════════════════════════
# Readers
# ═══════════════════════════════════════════════════════════════════════════════

class TestReaders:

    def test_snapshot(self, provider, destination, osrm_route):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        session.on_position_update(pos(30, 100, 1))
        snap = session.snapshot()

        assert snap.destination is destination
        assert snap.route is osrm_route
        assert snap.deviation_state == DeviationState.DEVIATING
        assert snap.deviation_m == pytest.approx(30, abs=0.5)
        assert snap.arrived is False
        assert isinstance(snap.events, tuple)
        assert snap.events[0]['type'] == 'destination_set'

    def test_snapshot_not_affected_by_later_updates(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        snap = session.snapshot()
        session.on_position_update(pos(0, 100, 1))
        assert snap.last_position == pos(0, 0, 0)
        assert len(snap.events) == 1

    def test_session_summary(self, provider, destination):
        session = make_session(provider)
        session.on_destination_set(destination, pos(0, 0, 0))
        for t in range(1, 10):
            session.on_position_update(pos(30, 20 + 1.4 * t, t))

        summary = session.get_session_summary()
        assert summary['destination'] == 'Block 7 Lot 3'
        assert summary['total_fixes'] == 9
        assert summary['recalculations'] == 1
        assert summary['deviation_episodes'] >= 1
        assert summary['max_deviation'] == pytest.approx(30, abs=0.5)
        assert summary['route_source'] == 'osrm'
        assert summary['arrived'] is False
