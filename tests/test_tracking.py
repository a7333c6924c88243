"""
GeoTrack Tracking Test Suite

Tests for observations, Kalman filters, tracks and the tracking session.

Test ID | Description                    | Reference              | Tolerance
--------|--------------------------------|------------------------|------------
1       | Two-observation velocity       | hand-computed KF       | ±0.01 m/s
2       | Velocity convergence           | CV truth, sigma = 5 m  | ±0.5 m/s
3       | Zero-time predict              | F = I, Q = 0           | exact
4       | Atomic rollback                | singular S             | exact
5       | Time-only observations         | predict without update | exact
6       | Origin change                  | position preserved     | ±1e-9 rad
7       | Session handling               | -                      | exact

References:
    - Bar-Shalom, Y. (2001). "Estimation with Applications to Tracking and Navigation"
"""

import math
import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from geotrack.errors import SingularMatrixError
from geotrack.geodesy import Position, destination, range_azimuth
from geotrack.io.config_loader import TrackerConfig
from geotrack.linalg import Matrix
from geotrack.tracking import (
    KalmanPredictFilter,
    KalmanUpdateFilter,
    NisStatistics,
    PositionObservation,
    PositionVelocityTrack,
    TrackingSession,
    TrackState,
    nis_bounds,
    normalized_innovation_squared,
)

ORIGIN = Position.from_degrees(45.0, -75.0)


def make_observation(x: float, y: float, time_s: float, variance: float = 1.0):
    return PositionObservation(Matrix.from_array([x, y]), _diag(variance), time_s, ORIGIN)


def _diag(variance: float) -> Matrix:
    R = Matrix.identity(2)
    R.mult(variance)
    return R


def make_track(velocity_accuracy_mps: float = 100.0, process_noise: float = 0.0):
    return PositionVelocityTrack(
        KalmanPredictFilter(process_noise), KalmanUpdateFilter(), velocity_accuracy_mps
    )


# =============================================================================
# TEST 1: Two-Observation Scenario
# =============================================================================


class TestTwoObservationScenario:
    """
    Origin (45N, 75W), R = I, velocity sigma 100 m/s, q = 0.

    After init at (0, 0) and a predict/update with (100, 0) 10 s later:
        P_xx = 1 + 100 * 1e4, P_xvx = 10 * 1e4
        vx = P_xvx / (P_xx + 1) * 100 = 9.99998 m/s
    """

    @pytest.fixture
    def track(self):
        track = make_track()
        assert track.init(make_observation(0.0, 0.0, 0.0))
        assert track.predict(10.0)
        assert track.update(make_observation(100.0, 0.0, 10.0))
        return track

    def test_velocity(self, track):
        vx, vy = track.velocity
        assert vx == pytest.approx(9.99998, abs=0.01)
        assert vy == pytest.approx(0.0, abs=1e-9)

    def test_position(self, track):
        assert track.x.at(track.X_POS) == pytest.approx(100.0 * 1_000_001 / 1_000_002, abs=1e-6)

    def test_state_flags(self, track):
        assert track.state is TrackState.READY
        assert track.received_update
        assert track.last_update_time_s == 10.0
        assert track.init_time_s == 0.0

    def test_geographic_position_east_of_origin(self, track):
        solution = range_azimuth(ORIGIN, track.position)
        assert solution.range_m == pytest.approx(track.x.at(track.X_POS), abs=1e-6)
        assert solution.fwd_azimuth_rad == pytest.approx(math.pi / 2, abs=1e-9)

    def test_covariance_symmetric_positive(self, track):
        P = track.P.as_array()
        np.testing.assert_allclose(P, P.T, atol=1e-9)
        assert np.all(np.linalg.eigvalsh(P) > 0.0)

    def test_update_filter_outputs(self, track):
        update_filter = track.update_filter
        assert update_filter.S.shape == (2, 2)
        assert update_filter.K.shape == (4, 2)
        assert update_filter.nis == pytest.approx(100.0**2 / 1_000_002, rel=1e-9)


# =============================================================================
# TEST 2: Convergence
# =============================================================================


class TestConvergence:
    """
    Noisy constant-velocity truth: v = (5, -3) m/s, sigma = 5 m, q = 0.001.

    Reference: Bar-Shalom (2001), Ch. 6
    """

    def test_velocity_converges(self):
        rng = np.random.default_rng(1234)
        sigma = 5.0
        truth_v = np.array([5.0, -3.0])

        track = make_track(velocity_accuracy_mps=10.0, process_noise=0.001)
        for step in range(100):
            time_s = float(step)
            z = truth_v * time_s + rng.normal(0.0, sigma, size=2)
            observation = make_observation(z[0], z[1], time_s, variance=sigma**2)
            if step == 0:
                assert track.init(observation)
            else:
                assert track.predict(time_s)
                assert track.update(observation)

        vx, vy = track.velocity
        assert vx == pytest.approx(5.0, abs=0.5)
        assert vy == pytest.approx(-3.0, abs=0.5)

    def test_covariance_shrinks(self):
        track = make_track(velocity_accuracy_mps=10.0)
        assert track.init(make_observation(0.0, 0.0, 0.0, variance=25.0))
        initial = track.P.at(track.VX, track.VX)

        for step in range(1, 20):
            assert track.predict(float(step))
            assert track.update(make_observation(5.0 * step, 0.0, float(step), variance=25.0))

        assert track.P.at(track.VX, track.VX) < initial / 100.0


# =============================================================================
# TEST 3: Init and Predict
# =============================================================================


class TestInitPredict:
    """Initialization seeds the state; a zero-length predict is the identity."""

    def test_init_seeds_state(self):
        track = make_track(velocity_accuracy_mps=2.0)
        observation = make_observation(10.0, -20.0, 5.0, variance=9.0)
        assert track.init(observation)

        np.testing.assert_array_equal(track.x.as_array().ravel(), [10.0, -20.0, 0.0, 0.0])
        np.testing.assert_array_equal(np.diag(track.P.as_array()), [9.0, 9.0, 4.0, 4.0])
        assert track.origin == ORIGIN
        assert track.init_time_s == 5.0

    def test_predict_to_init_time_is_noop(self):
        track = make_track(process_noise=0.5)
        assert track.init(make_observation(10.0, -20.0, 5.0))
        x_before = track.x.copy()
        P_before = track.P.copy()

        assert track.predict(5.0)
        assert track.x == x_before
        assert track.P == P_before
        assert not track.received_update

    def test_predict_moves_position(self):
        track = make_track()
        assert track.init(make_observation(0.0, 0.0, 0.0))
        track.x.set_at(track.VY, 0, 2.0)

        assert track.predict(50.0)
        assert track.x.at(track.Y_POS) == pytest.approx(100.0)

        solution = range_azimuth(ORIGIN, track.position)
        assert solution.range_m == pytest.approx(100.0, abs=1e-6)

    def test_reinit_starts_over(self):
        track = make_track()
        assert track.init(make_observation(0.0, 0.0, 0.0))
        track.x.set_at(track.VX, 0, 7.0)

        assert track.init(make_observation(50.0, 50.0, 30.0))
        assert track.velocity == (0.0, 0.0)
        assert track.P.at(0, 2) == 0.0
        assert track.init_time_s == 30.0

    def test_invalid_velocity_accuracy_falls_back(self):
        track = make_track(velocity_accuracy_mps=0.0)
        assert track.velocity_accuracy_mps == 1.5

    def test_predict_before_init(self):
        track = make_track()
        assert not track.predict(1.0)
        assert track.state is TrackState.UNINITIALIZED

    def test_update_before_init(self):
        track = make_track()
        assert not track.update(make_observation(0.0, 0.0, 0.0))


# =============================================================================
# TEST 4: Atomic Rollback
# =============================================================================


class TestAtomicRollback:
    """A failed step leaves every part of the track unchanged."""

    def _snapshot(self, track):
        return (
            track.x.copy(),
            track.P.copy(),
            track.last_update_time_s,
            track.received_update,
            track.position,
        )

    def test_singular_innovation_covariance(self):
        """Zero position variance and zero R make S singular"""
        zero_R = Matrix(2, 2)
        track = make_track()
        first = PositionObservation(Matrix.from_array([1.0, 2.0]), zero_R, 0.0, ORIGIN)
        assert track.init(first)
        assert track.predict(0.0)

        before = self._snapshot(track)
        second = PositionObservation(Matrix.from_array([3.0, 4.0]), zero_R, 0.0, ORIGIN)
        assert not track.update(second)

        after = self._snapshot(track)
        assert after[0] == before[0]
        assert after[1] == before[1]
        assert after[2:4] == before[2:4]
        assert after[4] == before[4]

    def test_failed_update_does_not_block_next(self):
        zero_R = Matrix(2, 2)
        track = make_track()
        assert track.init(PositionObservation(Matrix.from_array([1.0, 2.0]), zero_R, 0.0, ORIGIN))
        assert not track.update(
            PositionObservation(Matrix.from_array([3.0, 4.0]), zero_R, 0.0, ORIGIN)
        )

        assert track.predict(1.0)
        assert track.update(make_observation(3.0, 4.0, 1.0))

    def test_non_finite_elapsed_time(self):
        track = make_track()
        assert track.init(make_observation(0.0, 0.0, 0.0))
        before = self._snapshot(track)

        assert not track.predict(float("nan"))
        assert track.x == before[0]
        assert track.last_update_time_s == before[2]

    def test_update_filter_nis_unchanged_on_failure(self):
        zero_R = Matrix(2, 2)
        track = make_track()
        assert track.init(make_observation(0.0, 0.0, 0.0))
        assert track.predict(1.0)
        assert track.update(make_observation(1.0, 1.0, 1.0))
        nis = track.update_filter.nis

        track.P.assign(0.0)
        assert not track.update(
            PositionObservation(Matrix.from_array([3.0, 4.0]), zero_R, 1.0, ORIGIN)
        )
        assert track.update_filter.nis == nis


# =============================================================================
# TEST 5: Time-Only Observations
# =============================================================================


class TestTimeOnly:
    """Timestamp-only observations drive prediction but never init/update."""

    def test_shape_and_flag(self):
        observation = PositionObservation.time_only(12.0, ORIGIN)
        assert observation.is_time_only
        assert observation.z == Matrix(2, 1)
        assert observation.R == Matrix(2, 2)

    def test_rejected_by_init(self):
        track = make_track()
        assert not track.init(PositionObservation.time_only(0.0, ORIGIN))
        assert track.state is TrackState.UNINITIALIZED

    def test_rejected_by_update(self):
        track = make_track()
        assert track.init(make_observation(0.0, 0.0, 0.0))
        x_before = track.x.copy()

        assert not track.update(PositionObservation.time_only(1.0, ORIGIN))
        assert track.x == x_before


# =============================================================================
# TEST 6: Origin Change
# =============================================================================


class TestReorient:
    """
    Re-expressing a track relative to a new origin.

    Reference: grid convergence at the track position, rotation T P T^T
    """

    @pytest.fixture
    def track(self):
        track = make_track(velocity_accuracy_mps=3.0)
        assert track.init(make_observation(3000.0, 4000.0, 0.0, variance=100.0))
        track.x.set_at(track.VX, 0, 8.0)
        track.x.set_at(track.VY, 0, -6.0)
        return track

    def test_same_origin_is_identity(self, track):
        x_before = track.x.copy()
        assert track.reorient(ORIGIN)
        assert track.x.compare(x_before, 1e-6)

    def test_geographic_position_preserved(self, track):
        before = track.position
        new_origin = Position.from_degrees(45.5, -74.0)

        assert track.reorient(new_origin)
        assert track.origin == new_origin
        assert track.position.lat == pytest.approx(before.lat, abs=1e-9)
        assert track.position.lon == pytest.approx(before.lon, abs=1e-9)

    def test_position_relative_to_new_origin(self, track):
        new_origin = destination(ORIGIN, 20_000.0, math.radians(30.0)).position
        target = track.position
        assert track.reorient(new_origin)

        solution = range_azimuth(new_origin, target)
        assert track.x.at(track.X_POS) == pytest.approx(
            solution.range_m * math.sin(solution.fwd_azimuth_rad), abs=1e-6
        )
        assert track.x.at(track.Y_POS) == pytest.approx(
            solution.range_m * math.cos(solution.fwd_azimuth_rad), abs=1e-6
        )

    def test_rotation_preserves_speed_and_trace(self, track):
        speed = track.speed_mps
        trace = np.trace(track.P.as_array())

        assert track.reorient(Position.from_degrees(44.0, -77.0))
        assert track.speed_mps == pytest.approx(speed, abs=1e-9)
        assert np.trace(track.P.as_array()) == pytest.approx(trace, rel=1e-12)

    def test_reorient_before_init(self):
        assert not make_track().reorient(ORIGIN)


# =============================================================================
# TEST 7: Observations, Copies and Views
# =============================================================================


class TestObservationAndCopies:
    """Ids, copies and published views."""

    def test_copy_keeps_id_unless_asked(self):
        observation = make_observation(1.0, 2.0, 3.0)
        assert observation.copy().id == observation.id
        assert observation.copy(new_id=True).id != observation.id

    def test_ids_are_unique(self):
        ids = {make_observation(0.0, 0.0, 0.0).id for _ in range(10)}
        assert len(ids) == 10

    def test_inputs_are_copied(self):
        z = Matrix.from_array([1.0, 2.0])
        observation = PositionObservation(z, Matrix.identity(2), 0.0, ORIGIN)
        z.set_at(0, 0, 99.0)
        assert observation.z.at(0) == 1.0

    def test_from_position(self):
        fix = destination(ORIGIN, 1000.0, math.radians(90.0)).position
        observation = PositionObservation.from_position(ORIGIN, fix, 4.0, accuracy_m=3.0)

        assert observation.z.at(0) == pytest.approx(1000.0, abs=1e-6)
        assert observation.z.at(1) == pytest.approx(0.0, abs=1e-6)
        assert observation.R == _diag(9.0)

    def test_track_copy_is_deep(self):
        track = make_track()
        assert track.init(make_observation(0.0, 0.0, 0.0))
        duplicate = track.copy()

        duplicate.x.set_at(0, 0, 50.0)
        assert track.x.at(0) == 0.0
        assert duplicate.id == track.id
        assert duplicate.predict_filter is track.predict_filter

    def test_view_is_snapshot(self):
        track = make_track()
        assert track.init(make_observation(0.0, 0.0, 0.0))
        view = track.view()

        track.x.set_at(0, 0, 50.0)
        assert view.x_m == 0.0
        assert view.state is TrackState.READY
        assert view.lat_deg == pytest.approx(45.0)


# =============================================================================
# TEST 8: NIS Metrics
# =============================================================================


class TestMetrics:
    """Normalized innovation squared and chi-square bounds."""

    def test_nis_value(self):
        y = Matrix.from_array([2.0, 0.0])
        S = Matrix.from_array([[4.0, 0.0], [0.0, 1.0]])
        assert normalized_innovation_squared(y, S) == pytest.approx(1.0)

    def test_nis_singular(self):
        with pytest.raises(SingularMatrixError):
            normalized_innovation_squared(np.ones(2), np.zeros((2, 2)))

    def test_single_sample_bounds(self):
        lower, upper = nis_bounds(1, dof=2, confidence=0.95)
        assert lower == pytest.approx(0.0506356, rel=1e-4)
        assert upper == pytest.approx(7.3777589, rel=1e-4)

    def test_bounds_validation(self):
        with pytest.raises(ValueError):
            nis_bounds(0)
        with pytest.raises(ValueError):
            nis_bounds(10, confidence=1.5)

    def test_statistics(self):
        stats = NisStatistics()
        assert math.isnan(stats.mean)
        assert not stats.is_consistent()

        for value in (1.5, 2.5, 2.0, 2.0):
            stats.add(value)
        assert stats.mean == pytest.approx(2.0)
        assert stats.is_consistent()


# =============================================================================
# TEST 9: Tracking Session
# =============================================================================


class TestTrackingSession:
    """Observation handling, history and display throttling."""

    @pytest.fixture
    def session(self):
        return TrackingSession(TrackerConfig(display_rate_s=10.0, velocity_accuracy_mps=100.0))

    def test_time_only_before_track_skipped(self, session):
        assert session.process(PositionObservation.time_only(0.0, ORIGIN)) is None
        assert not session.has_track
        assert len(session.observations()) == 1

    def test_first_observation_starts_track(self, session):
        view = session.process(make_observation(0.0, 0.0, 0.0))
        assert view is not None
        assert view.state is TrackState.READY
        assert session.has_track
        assert session.origin == ORIGIN

    def test_predict_update_cycle(self, session):
        session.process(make_observation(0.0, 0.0, 0.0))
        view = session.process(make_observation(100.0, 0.0, 10.0))

        assert view.received_update
        assert view.vx_mps == pytest.approx(9.99998, abs=0.01)
        assert session.nis_statistics().count == 1

    def test_time_only_predicts(self, session):
        session.process(make_observation(0.0, 0.0, 0.0))
        view = session.process(PositionObservation.time_only(5.0, ORIGIN))

        assert not view.received_update
        assert view.time_s == 5.0
        assert session.failed_steps == 0

    def test_display_view_throttled(self, session):
        for time_s in (0.0, 5.0, 10.0, 15.0):
            session.process(make_observation(0.0, 0.0, time_s))
            if time_s == 5.0:
                assert session.display_view().time_s == 0.0

        assert session.display_view().time_s == 10.0
        assert session.latest_view().time_s == 15.0
        assert len(session.history()) == 4

    def test_process_fix_anchors_origin(self):
        session = TrackingSession(TrackerConfig(position_accuracy_m=5.0))
        first = Position.from_degrees(10.0, 20.0)
        view = session.process_fix(first, 0.0)

        assert session.origin == first
        assert view.x_m == pytest.approx(0.0, abs=1e-9)
        assert view.covariance_diag[0] == pytest.approx(25.0)

    def test_fix_accuracy_used_when_enabled(self):
        session = TrackingSession(TrackerConfig(position_accuracy_m=50.0, use_fix_accuracy=True))
        observation = session.observation_from_fix(Position.from_degrees(10.0, 20.0), 0.0, 4.0)
        assert observation.R.at(0, 0) == pytest.approx(16.0)

        session = TrackingSession(TrackerConfig(position_accuracy_m=50.0, use_fix_accuracy=False))
        observation = session.observation_from_fix(Position.from_degrees(10.0, 20.0), 0.0, 4.0)
        assert observation.R.at(0, 0) == pytest.approx(2500.0)

    def test_configured_origin(self):
        session = TrackingSession(TrackerConfig(origin=ORIGIN))
        fix = destination(ORIGIN, 500.0, 0.0).position
        view = session.process_fix(fix, 0.0)
        assert view.y_m == pytest.approx(500.0, abs=1e-6)

    def test_failed_update_counted(self, session):
        zero_R = Matrix(2, 2)
        session.process(PositionObservation(Matrix.from_array([0.0, 0.0]), zero_R, 0.0, ORIGIN))
        view = session.process(PositionObservation(Matrix.from_array([1.0, 1.0]), zero_R, 0.0, ORIGIN))

        assert session.failed_steps == 1
        assert view.x_m == 0.0

    def test_histories_bounded(self):
        session = TrackingSession(TrackerConfig(velocity_accuracy_mps=100.0), max_history=3)
        for step in range(5):
            session.process(make_observation(10.0 * step, 0.0, float(step)))

        assert [obs.init_time_s for obs in session.observations()] == [2.0, 3.0, 4.0]
        assert [view.time_s for view in session.history()] == [2.0, 3.0, 4.0]

    def test_reset(self, session):
        session.process(make_observation(0.0, 0.0, 0.0))
        session.reset()

        assert not session.has_track
        assert session.latest_view() is None
        assert session.history() == []
        assert session.origin is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
