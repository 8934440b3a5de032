"""
Tests for navigation/deviation.py

Fix streams are built on a metric grid near the village (see conftest.pos);
timestamps are in seconds.
"""

import pytest

from navigation.deviation import DeviationClassifier
from navigation.models import DeviationState
from tests.conftest import pos


@pytest.fixture
def classifier():
    return DeviationClassifier()


def feed(classifier, route, fixes):
    """Feed (north, east, t) fixes in order; returns the list of results."""
    results = []
    previous = None
    for north, east, t in fixes:
        current = pos(north, east, t)
        results.append(classifier.update(current, route, previous))
        previous = current
    return results


class TestOnRoute:

    def test_on_route_is_not_deviation(self, classifier, straight_route):
        assert classifier.update(pos(5, 50, 0), straight_route) is False
        assert classifier.state == DeviationState.ON_ROUTE
        assert classifier.deviation_start_time is None
        assert classifier.last_deviation_m == pytest.approx(5, abs=0.5)

    def test_noise_below_threshold_never_confirms(self, classifier, straight_route):
        fixes = [(0 if t % 2 else 20, 1.4 * t, t) for t in range(31)]
        assert not any(feed(classifier, straight_route, fixes))
        assert classifier.state == DeviationState.ON_ROUTE
        assert classifier.episode_count == 0


class TestPersistence:

    def test_confirms_at_six_seconds(self, classifier, straight_route):
        fixes = [(30, 20 + 1.5 * t, t) for t in range(7)]
        results = feed(classifier, straight_route, fixes)
        assert results == [False] * 6 + [True]
        assert classifier.confirmed_by == 'persistence'
        assert classifier.state == DeviationState.CONFIRMED_DEVIATION

    def test_deviating_state_before_confirmation(self, classifier, straight_route):
        feed(classifier, straight_route, [(30, 20, 0), (30, 21.5, 1)])
        assert classifier.state == DeviationState.DEVIATING
        assert classifier.deviation_start_time == 0

    def test_stays_confirmed_until_reset(self, classifier, straight_route):
        fixes = [(30, 20 + 1.5 * t, t) for t in range(9)]
        results = feed(classifier, straight_route, fixes)
        assert results[6:] == [True, True, True]
        classifier.reset()
        assert classifier.state == DeviationState.ON_ROUTE
        assert classifier.update(pos(30, 40, 9), straight_route) is False

    def test_return_to_route_restarts_clock(self, classifier, straight_route):
        fixes = [(30, 20 + 1.5 * t, t) for t in range(5)]
        fixes.append((0, 28, 5))
        fixes += [(30, 20 + 1.5 * t, t) for t in range(6, 13)]
        results = feed(classifier, straight_route, fixes)
        assert not any(results[:12])
        assert results[12] is True
        assert classifier.episode_count == 2

    def test_halved_near_decision_point(self, classifier, l_route):
        # 30 m south of the first leg, 10 m before the left turn
        fixes = [(-30, 190, t) for t in range(4)]
        results = feed(classifier, l_route, fixes)
        assert results == [False, False, False, True]
        assert classifier.is_near_decision_point(pos(-30, 190, 0), l_route)

    def test_not_halved_on_straight_route(self, classifier, straight_route):
        fixes = [(-30, 190, t) for t in range(4)]
        assert not any(feed(classifier, straight_route, fixes))


class TestMajorDeviation:

    def test_fast_path_after_three_seconds(self, classifier, straight_route):
        fixes = [(100, 50, 0), (100, 50, 2), (100, 50, 3)]
        assert feed(classifier, straight_route, fixes) == [False, False, True]
        assert classifier.confirmed_by == 'major'

    def test_custom_thresholds(self, straight_route):
        classifier = DeviationClassifier(major_threshold=50, major_min_time=1)
        fixes = [(60, 50, 0), (60, 50, 1)]
        assert feed(classifier, straight_route, fixes) == [False, True]


class TestDirectionChange:

    def test_sharp_turn_confirms(self, classifier, straight_route):
        fixes = [(40, 0, 0), (40, 5, 1), (50, 5, 2)]
        assert feed(classifier, straight_route, fixes) == [False, False, True]
        assert classifier.confirmed_by == 'direction'

    def test_steady_heading_does_not_confirm(self, classifier, straight_route):
        fixes = [(40, 0, 0), (40, 5, 1), (40, 10, 2), (40, 15, 3)]
        assert not any(feed(classifier, straight_route, fixes))

    def test_jitter_below_min_movement_ignored(self, classifier, straight_route):
        # Sub-2 m moves never establish a heading
        fixes = [(40, 0, 0), (40, 1, 1), (41, 1, 2), (41, 0, 3)]
        assert not any(feed(classifier, straight_route, fixes))
        assert classifier.last_user_direction is None


class TestStrategies:

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            DeviationClassifier(strategy='tiles')

    def test_corridor_distance_matches_projection(self, straight_route):
        corridor = DeviationClassifier(strategy='corridor')
        projection = DeviationClassifier(strategy='projection')
        p = pos(40, 150, 0)
        assert corridor.deviation_distance(p, straight_route) == pytest.approx(
            projection.deviation_distance(p, straight_route), abs=1.0,
        )

    def test_corridor_strategy_confirms(self, straight_route):
        classifier = DeviationClassifier(strategy='corridor')
        fixes = [(30, 20 + 1.5 * t, t) for t in range(7)]
        assert feed(classifier, straight_route, fixes)[-1] is True


class TestStatistics:

    def test_max_deviation_and_episodes(self, classifier, straight_route):
        feed(classifier, straight_route, [(30, 10, 0), (45, 10, 1), (0, 10, 2), (35, 10, 3)])
        assert classifier.episode_count == 2
        assert classifier.max_deviation_m == pytest.approx(45, abs=0.5)

    def test_reset_statistics(self, classifier, straight_route):
        feed(classifier, straight_route, [(30, 10, 0)])
        classifier.reset_statistics()
        assert classifier.episode_count == 0
        assert classifier.max_deviation_m == 0.0
