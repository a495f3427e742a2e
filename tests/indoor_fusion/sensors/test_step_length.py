"""Unit tests for the walking-pattern aware step length estimator."""

import unittest

import numpy as np
import pytest

from indoor_fusion.config import StepLengthConfig
from indoor_fusion.sensors import (
    CombinedSample,
    StepLengthEstimator,
    WalkingPattern,
    classify_walking_pattern,
)

NS = 1_000_000_000


def sample(linear=9.0, gyro=0.3, t_s=0.0):
    return CombinedSample(
        acceleration=(0.0, 0.0, 9.81 + linear),
        linear_acceleration=(0.0, 0.0, linear),
        gyroscope=(0.0, 0.0, gyro),
        timestamp_ns=int(t_s * NS),
    )


class TestClassifyWalkingPattern:
    def test_running(self):
        assert classify_walking_pattern(16.0, 6.0, 0.5, 2.8) is WalkingPattern.RUNNING

    def test_fast(self):
        assert classify_walking_pattern(12.0, 1.0, 0.5, 2.2) is WalkingPattern.FAST

    def test_slow(self):
        assert classify_walking_pattern(3.0, 1.0, 0.5, 1.2) is WalkingPattern.SLOW

    def test_irregular_from_motion(self):
        assert classify_walking_pattern(8.0, 4.5, 2.0, 1.8) is WalkingPattern.IRREGULAR

    def test_irregular_from_unstable_cadence(self):
        pattern = classify_walking_pattern(8.0, 1.0, 0.5, 1.8, frequency_stability=0.3)
        assert pattern is WalkingPattern.IRREGULAR

    def test_normal(self):
        assert classify_walking_pattern(8.0, 1.0, 0.5, 1.8) is WalkingPattern.NORMAL

    def test_pattern_bounds(self):
        for pattern in WalkingPattern:
            assert 0 < pattern.min_height_ratio < pattern.max_height_ratio


class TestStepLengthEstimator(unittest.TestCase):
    def setUp(self):
        self.estimator = StepLengthEstimator()

    def test_first_step_base_length(self):
        # √9 / 3 = 1: no acceleration correction, no frequency yet
        length = self.estimator.estimate(sample(linear=9.0))

        self.assertAlmostEqual(length, 0.4 * 1.70)

    def test_user_height_and_calibration(self):
        length = self.estimator.estimate(sample(linear=9.0), user_height=2.0, calibration_factor=1.1)

        self.assertAlmostEqual(length, 0.4 * 2.0 * 1.1)

    def test_calibration_cannot_escape_pattern_bounds(self):
        height = 1.70
        lengths = [
            self.estimator.estimate(
                sample(linear=16.0, t_s=0.35 * i), user_height=height, calibration_factor=1.5
            )
            for i in range(5)
        ]

        self.assertIs(self.estimator.walking_pattern, WalkingPattern.NORMAL)
        for length in lengths:
            self.assertLessEqual(length, 0.8 * height + 1e-9)
        # 0.68 × 1.3 × 1.3 × 1.5 per step after the first: the average is capped
        self.assertAlmostEqual(lengths[-1], 0.8 * height)

    def test_clamped_to_pattern_minimum(self):
        # f_acc = 0.7 gives 0.476 m, below 0.3 × 1.70
        length = self.estimator.estimate(sample(linear=0.0))

        self.assertAlmostEqual(length, 0.3 * 1.70)

    def test_invalid_height(self):
        with self.assertRaises(ValueError):
            self.estimator.estimate(sample(), user_height=0.0)
        with self.assertRaises(ValueError):
            self.estimator.estimate(sample(), calibration_factor=-1.0)

    def test_step_frequency(self):
        self.estimator.estimate(sample(t_s=0.0))
        self.estimator.estimate(sample(t_s=0.5))

        self.assertAlmostEqual(self.estimator.step_frequency, 2.0)

    def test_lengths_within_height_bounds(self):
        rng = np.random.default_rng(3)
        height = 1.80
        t = 0.0
        for _ in range(60):
            t += rng.uniform(0.3, 0.9)
            s = sample(linear=rng.uniform(0.0, 25.0), gyro=rng.uniform(0.0, 3.0), t_s=t)
            for _ in range(3):
                self.estimator.add_sample(s)
            length = self.estimator.estimate(s, user_height=height)
            self.assertGreaterEqual(length, 0.2 * height - 1e-9)
            self.assertLessEqual(length, 1.1 * height + 1e-9)

    def test_add_sample_requires_combined(self):
        with self.assertRaises(TypeError):
            self.estimator.add_sample((0.0, 0.0, 9.8))

    def test_reset(self):
        fresh = StepLengthEstimator().estimate(sample(linear=4.0, t_s=10.0))
        for i in range(10):
            self.estimator.estimate(sample(linear=12.0, t_s=0.4 * i))

        self.estimator.reset()

        self.assertIs(self.estimator.walking_pattern, WalkingPattern.NORMAL)
        self.assertEqual(self.estimator.step_frequency, 0.0)
        self.assertAlmostEqual(self.estimator.estimate(sample(linear=4.0, t_s=10.0)), fresh)


class TestWalkingPatternSwitching:
    def _fill(self, estimator, linear):
        for _ in range(StepLengthConfig().pattern_window):
            estimator.add_sample(sample(linear=linear))

    def test_switch_needs_a_confident_run(self):
        estimator = StepLengthEstimator()
        self._fill(estimator, linear=12.0)

        # 2.5 Hz cadence with strong acceleration classifies as Fast from the
        # second step on
        estimator.estimate(sample(linear=12.0, t_s=0.0))
        estimator.estimate(sample(linear=12.0, t_s=0.4))
        assert estimator.walking_pattern is WalkingPattern.NORMAL

        for i in range(2, 6):
            estimator.estimate(sample(linear=12.0, t_s=0.4 * i))

        assert estimator.walking_pattern is WalkingPattern.FAST
        assert estimator.pattern_confidence > 0.5

    def test_no_classification_before_min_samples(self):
        estimator = StepLengthEstimator()
        estimator.estimate(sample(linear=12.0, t_s=0.0))
        estimator.estimate(sample(linear=12.0, t_s=0.4))

        assert estimator.pattern_confidence == 0.0

    def test_frequency_stability(self):
        estimator = StepLengthEstimator()
        assert estimator.frequency_stability() == 1.0

        for t in [0.0, 0.5, 1.0, 1.5, 2.0]:
            estimator.estimate(sample(t_s=t))
        assert estimator.frequency_stability() == pytest.approx(1.0)

        for t in [2.2, 3.4, 3.6, 5.0]:
            estimator.estimate(sample(t_s=t))
        assert estimator.frequency_stability() < 1.0
