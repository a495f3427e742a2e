"""
Unit tests for the EKF fusion core.

Tests cover:
    - Lifecycle before and after the first fix
    - Prediction along straight lines and arcs
    - Absolute fix updates and singular-S skipping
    - Motion-confidence process noise scaling
    - Drift correction
"""

import math
import unittest

import numpy as np
from numpy.testing import assert_allclose

from indoor_fusion.config import FusionConfig
from indoor_fusion.fusion import AbsoluteMeasurement, FusionEKF, PositionSource
from indoor_fusion.sensors import MotionEstimate


def fix(x, y, accuracy=1.0, confidence=1.0, source=PositionSource.BLE, timestamp=0.0):
    return AbsoluteMeasurement.from_accuracy(x, y, accuracy, confidence, source, timestamp)


class TestFusionEKFLifecycle(unittest.TestCase):
    def setUp(self):
        self.ekf = FusionEKF()

    def test_uninitialized(self):
        self.assertFalse(self.ekf.is_initialized)
        self.assertFalse(self.ekf.predict(MotionEstimate(1.0, 0.0), 0.1))
        self.assertFalse(self.ekf.update(fix(1.0, 1.0)))
        self.assertFalse(self.ekf.apply_drift_correction(100.0))
        self.assertFalse(self.ekf.fused_position().is_valid)
        with self.assertRaises(RuntimeError):
            self.ekf.state

    def test_initialize_from_fix(self):
        self.ekf.initialize(fix(3.0, 4.0, accuracy=2.0))

        state = self.ekf.state
        self.assertTrue(self.ekf.is_initialized)
        assert_allclose(state.vector, [3.0, 4.0, 0.0])
        assert_allclose(np.diag(state.covariance), [4.0, 4.0, FusionConfig().initial_heading_variance])

    def test_reset(self):
        self.ekf.initialize(fix(3.0, 4.0))
        self.ekf.set_motion_confidence(0.0)
        self.ekf.reset()

        self.assertFalse(self.ekf.is_initialized)
        self.assertIsNone(self.ekf.last_fix)
        self.assertEqual(self.ekf.position_noise, FusionConfig().position_noise)
        self.assertTrue(math.isinf(self.ekf.drift_threshold))

    def test_negative_dt_rejected(self):
        self.ekf.initialize(fix(0.0, 0.0))
        with self.assertRaises(ValueError):
            self.ekf.predict(MotionEstimate(1.0, 0.0), -0.1)


class TestFusionEKFPrediction(unittest.TestCase):
    def setUp(self):
        self.ekf = FusionEKF()
        self.ekf.initialize(fix(0.0, 0.0))

    def test_straight_line(self):
        for _ in range(5):
            self.assertTrue(self.ekf.predict(MotionEstimate(1.0, 0.0), 1.0))

        state = self.ekf.state
        self.assertAlmostEqual(state.x, 5.0)
        self.assertAlmostEqual(state.y, 0.0)
        self.assertAlmostEqual(state.theta, 0.0)

    def test_uncertainty_grows(self):
        before = self.ekf.state.accuracy
        self.ekf.predict(MotionEstimate(1.0, 0.0), 1.0)

        self.assertGreater(self.ekf.state.accuracy, before)

    def test_full_circle_returns_home(self):
        omega = 2 * math.pi / 20
        for _ in range(200):
            self.ekf.predict(MotionEstimate(1.0, omega), 0.1)

        state = self.ekf.state
        self.assertAlmostEqual(state.x, 0.0, places=6)
        self.assertAlmostEqual(state.y, 0.0, places=6)

    def test_motion_confidence_scales_noise(self):
        cfg = FusionConfig()
        self.ekf.set_motion_confidence(1.0)
        self.assertAlmostEqual(self.ekf.position_noise, cfg.position_noise)

        self.ekf.set_motion_confidence(0.0)
        self.assertAlmostEqual(self.ekf.position_noise, 2 * cfg.position_noise)
        self.assertAlmostEqual(self.ekf.heading_noise, 2 * cfg.heading_noise)

    def test_invalid_process_noise(self):
        with self.assertRaises(ValueError):
            self.ekf.set_process_noise(0.0, 0.1)


class TestFusionEKFUpdate(unittest.TestCase):
    def test_update_pulls_toward_fix(self):
        ekf = FusionEKF()
        ekf.initialize(fix(0.0, 0.0, accuracy=2.0))

        self.assertTrue(ekf.update(fix(4.0, 0.0, accuracy=2.0)))

        # Equal variances: halfway
        self.assertAlmostEqual(ekf.state.x, 2.0)
        self.assertEqual(ekf.last_fix.x, 4.0)

    def test_covariance_override(self):
        ekf = FusionEKF()
        ekf.initialize(fix(0.0, 0.0, accuracy=1.0))

        ekf.update(fix(4.0, 0.0, accuracy=1.0), covariance=3.0 * np.eye(2))

        self.assertAlmostEqual(ekf.state.x, 1.0)

    def test_singular_update_skipped(self):
        ekf = FusionEKF(FusionConfig(singular_pivot_tolerance=1e-3))
        ekf.initialize(fix(1.0, 1.0, accuracy=0.0))
        before = ekf.state

        applied = ekf.update(fix(5.0, 5.0), covariance=np.zeros((2, 2)))

        self.assertFalse(applied)
        assert_allclose(ekf.state.vector, before.vector)
        self.assertEqual(ekf.last_fix.x, 1.0)

    def test_fused_position(self):
        ekf = FusionEKF()
        ekf.initialize(fix(1.0, 2.0, accuracy=1.0))

        p = ekf.fused_position(PositionSource.WIFI, timestamp=4.0)

        self.assertTrue(p.is_valid)
        self.assertEqual(p.source, PositionSource.WIFI)
        self.assertAlmostEqual(p.accuracy, math.sqrt(2.0))
        self.assertAlmostEqual(p.confidence, 1.0 - math.sqrt(2.0) / 10.0)

    def test_output_confidence_floor(self):
        ekf = FusionEKF()
        ekf.initialize(fix(1.0, 2.0, accuracy=20.0))

        self.assertAlmostEqual(ekf.output_confidence(), FusionConfig().min_output_confidence)


class TestDriftCorrection(unittest.TestCase):
    def setUp(self):
        self.ekf = FusionEKF()
        # Confidence 1: period 5 s, threshold 1.5 m, factor 0.3
        self.ekf.initialize(fix(0.0, 0.0, accuracy=1.0, confidence=1.0), timestamp=0.0)
        self.ekf.predict(MotionEstimate(1.0, 0.0), 10.0)

    def test_parameters_from_fix_quality(self):
        self.assertAlmostEqual(self.ekf.drift_period_s, 5.0)
        self.assertAlmostEqual(self.ekf.drift_threshold, 1.5)
        self.assertAlmostEqual(self.ekf.drift_factor, 0.3)

        self.ekf.configure_drift(accuracy=4.0, confidence=0.0)
        self.assertAlmostEqual(self.ekf.drift_period_s, 15.0)
        self.assertAlmostEqual(self.ekf.drift_threshold, 6.0)
        self.assertAlmostEqual(self.ekf.drift_factor, 0.0)

    def test_not_due_before_period(self):
        self.assertFalse(self.ekf.apply_drift_correction(2.0))
        self.assertAlmostEqual(self.ekf.state.x, 10.0)

    def test_correction_applied(self):
        P_before = self.ekf.state.covariance.copy()

        self.assertTrue(self.ekf.apply_drift_correction(6.0))

        state = self.ekf.state
        self.assertAlmostEqual(state.x, 7.0)
        self.assertAlmostEqual(state.covariance[0, 0], 1.5 * P_before[0, 0])
        self.assertAlmostEqual(state.covariance[1, 1], 1.5 * P_before[1, 1])
        self.assertAlmostEqual(state.covariance[2, 2], P_before[2, 2])

    def test_period_restarts_after_check(self):
        self.assertTrue(self.ekf.apply_drift_correction(6.0))
        self.assertFalse(self.ekf.apply_drift_correction(8.0))
        self.assertTrue(self.ekf.apply_drift_correction(11.5))

    def test_within_threshold_not_corrected(self):
        ekf = FusionEKF()
        ekf.initialize(fix(0.0, 0.0, accuracy=1.0, confidence=1.0), timestamp=0.0)
        ekf.predict(MotionEstimate(1.0, 0.0), 1.0)

        self.assertFalse(ekf.apply_drift_correction(6.0))
        self.assertAlmostEqual(ekf.state.x, 1.0)
