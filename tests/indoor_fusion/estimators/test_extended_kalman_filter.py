"""
Unit tests for the Extended Kalman Filter.

Tests cover:
    - Jacobian evaluation point
    - Lifecycle (uninitialized, initialize, reset)
    - Update skipping on a singular innovation covariance
    - Covariance symmetry
"""

import unittest

import numpy as np
from numpy.testing import assert_allclose

from indoor_fusion.estimators import ExtendedKalmanFilter, symmetrize


def make_position_filter(x0=None, P0=None, singular_tolerance=1e-12):
    """1D constant-velocity filter observing position."""

    def process_model(x, u, dt):
        return np.array([x[0] + x[1] * dt, x[1]])

    def process_jacobian(x, u, dt):
        return np.array([[1.0, dt], [0.0, 1.0]])

    return ExtendedKalmanFilter(
        process_model=process_model,
        process_jacobian=process_jacobian,
        measurement_model=lambda x: x[:1],
        measurement_jacobian=lambda x: np.array([[1.0, 0.0]]),
        Q=lambda dt, u: 0.01 * dt * np.eye(2),
        R=lambda: np.array([[0.25]]),
        state_dim=2,
        x0=x0,
        P0=P0,
        singular_tolerance=singular_tolerance,
    )


class TestEKFJacobianEvaluationPoint(unittest.TestCase):
    """F must be evaluated at x_{k-1}, not at the predicted state."""

    def test_jacobian_evaluated_at_pre_prediction_state(self):
        seen = []

        def process_model(x, u, dt):
            return np.array([x[0] + 0.1 * x[0] ** 2 * dt])

        def process_jacobian(x, u, dt):
            seen.append(x.copy())
            return np.array([[1.0 + 0.2 * x[0] * dt]])

        ekf = ExtendedKalmanFilter(
            process_model=process_model,
            process_jacobian=process_jacobian,
            measurement_model=lambda x: x,
            measurement_jacobian=lambda x: np.eye(1),
            Q=lambda dt, u: np.zeros((1, 1)),
            R=lambda: np.eye(1),
            state_dim=1,
            x0=np.array([2.0]),
            P0=np.eye(1),
        )

        ekf.predict(dt=1.0)

        assert_allclose(seen[0], [2.0])
        F = 1.0 + 0.2 * 2.0
        assert_allclose(ekf.covariance, [[F * F]])
        assert_allclose(ekf.state, [2.4])


class TestEKFLifecycle(unittest.TestCase):
    def test_starts_uninitialized(self):
        ekf = make_position_filter()

        self.assertFalse(ekf.is_initialized)
        with self.assertRaises(RuntimeError):
            ekf.get_state()
        with self.assertRaises(RuntimeError):
            ekf.predict(dt=0.1)
        with self.assertRaises(RuntimeError):
            ekf.update(np.array([1.0]))

    def test_x0_and_P0_together(self):
        with self.assertRaises(ValueError):
            make_position_filter(x0=np.zeros(2))

    def test_initialize_shape_checked(self):
        ekf = make_position_filter()
        with self.assertRaises(ValueError):
            ekf.initialize(np.zeros(3), np.eye(3))

    def test_reset(self):
        ekf = make_position_filter(np.zeros(2), np.eye(2))
        ekf.reset()

        self.assertFalse(ekf.is_initialized)

    def test_get_state_returns_copies(self):
        ekf = make_position_filter(np.zeros(2), np.eye(2))
        x, P = ekf.get_state()
        x[0] = 99.0
        P[0, 0] = 99.0

        assert_allclose(ekf.state, [0.0, 0.0])
        assert_allclose(ekf.covariance, np.eye(2))


class TestEKFUpdate(unittest.TestCase):
    def test_converges_to_constant_position(self):
        ekf = make_position_filter(np.array([0.0, 0.0]), 10.0 * np.eye(2))

        for _ in range(50):
            ekf.predict(dt=0.1)
            self.assertTrue(ekf.update(np.array([3.0])))

        self.assertAlmostEqual(ekf.state[0], 3.0, places=1)
        self.assertLess(ekf.covariance[0, 0], 0.25)

    def test_scalar_gain(self):
        ekf = make_position_filter(np.array([0.0, 0.0]), np.diag([1.0, 1.0]))

        ekf.update(np.array([1.0]), R=np.array([[1.0]]))

        # K = P/(P+R) = 0.5
        assert_allclose(ekf.state, [0.5, 0.0])
        assert_allclose(ekf.covariance[0, 0], 0.5)

    def test_singular_innovation_skipped(self):
        ekf = make_position_filter(np.array([1.0, 0.0]), np.zeros((2, 2)))

        with self.assertLogs("indoor_fusion.estimators.extended_kalman_filter", level="WARNING"):
            applied = ekf.update(np.array([5.0]), R=np.zeros((1, 1)))

        self.assertFalse(applied)
        assert_allclose(ekf.state, [1.0, 0.0])
        assert_allclose(ekf.covariance, np.zeros((2, 2)))

    def test_non_finite_innovation_skipped(self):
        ekf = make_position_filter(np.array([1.0, 0.0]), np.eye(2))

        applied = ekf.update(np.array([5.0]), R=np.array([[np.inf]]))

        self.assertFalse(applied)
        assert_allclose(ekf.state, [1.0, 0.0])

    def test_covariance_stays_symmetric(self):
        ekf = make_position_filter(np.array([0.0, 1.0]), np.array([[2.0, 0.3], [0.3, 1.0]]))
        rng = np.random.default_rng(0)

        for _ in range(100):
            ekf.predict(dt=0.05)
            ekf.update(np.array([rng.normal()]))

        assert_allclose(ekf.covariance, ekf.covariance.T, atol=0)
        self.assertTrue(np.all(np.linalg.eigvalsh(ekf.covariance) > 0))

    def test_update_applies_gain_to_residual(self):
        ekf = make_position_filter(np.array([1.0, 0.0]), np.eye(2))

        # S = 1 + 0.25, K = [0.8, 0], ν = 3 − 1
        self.assertTrue(ekf.update(np.array([3.0])))

        assert_allclose(ekf.state, [2.6, 0.0])
        assert_allclose(ekf.covariance, [[0.2, 0.0], [0.0, 1.0]])


class TestSymmetrize(unittest.TestCase):
    def test_symmetrize(self):
        P = np.array([[1.0, 2.0], [0.0, 1.0]])
        assert_allclose(symmetrize(P), [[1.0, 1.0], [1.0, 1.0]])
