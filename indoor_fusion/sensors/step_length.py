"""
Step length estimation with walking-pattern recognition.

The step length model starts from a height-proportional base length and
applies three multiplicative corrections:

    L = 0.4·h · f_acc · f_freq · f_pattern · calibration

    f_acc     = clamp(√|a_lin| / 3, 0.7, 1.3)
    f_freq    = clamp(step_frequency / 2, 0.7, 1.3)   (1 before the 2nd step)
    f_pattern = 1 + (factor(pattern) − 1) · confidence

The result is averaged over the last few steps and finally bounded to a
pattern-specific fraction of the user's height.

Walking patterns are classified from rolling statistics of the linear
acceleration and gyroscope magnitudes plus the stability of the step
frequency. A newly classified pattern only becomes current once its run of
identical classifications is long or confident enough, which suppresses
flicker between neighbouring classes.
"""

import logging
from collections import deque
from enum import Enum
from typing import Optional

import numpy as np

from ..config import StepLengthConfig
from .types import NANOS_PER_SECOND, CombinedSample

logger = logging.getLogger(__name__)


class WalkingPattern(Enum):
    """
    Walking patterns with their length factor and height-relative bounds.

    Each member carries ``length_factor``, ``min_height_ratio`` and
    ``max_height_ratio``.
    """

    NORMAL = ("normal", 1.0, 0.3, 0.8)
    FAST = ("fast", 1.2, 0.4, 0.9)
    SLOW = ("slow", 0.8, 0.2, 0.6)
    RUNNING = ("running", 1.4, 0.5, 1.1)
    IRREGULAR = ("irregular", 0.9, 0.25, 0.7)

    def __init__(self, label: str, length_factor: float, min_height_ratio: float, max_height_ratio: float):
        self.label = label
        self.length_factor = length_factor
        self.min_height_ratio = min_height_ratio
        self.max_height_ratio = max_height_ratio


def classify_walking_pattern(
    accel_mean: float,
    accel_std: float,
    gyro_std: float,
    step_frequency: float,
    frequency_stability: float = 1.0,
) -> WalkingPattern:
    """
    Classify a walking pattern from rolling sensor statistics.

    Args:
        accel_mean: Mean linear acceleration magnitude (m/s²).
        accel_std: Standard deviation of linear acceleration magnitude (m/s²).
        gyro_std: Standard deviation of gyroscope magnitude (rad/s).
        step_frequency: Current step frequency (Hz), 0 when unknown.
        frequency_stability: 1 − coefficient of variation of recent step
            frequencies, in [0, 1].

    Returns:
        The first matching pattern in order Running, Fast, Slow, Irregular,
        otherwise Normal.
    """
    if accel_mean > 15.0 and step_frequency > 2.5 and accel_std > 5.0:
        return WalkingPattern.RUNNING
    if accel_mean > 10.0 and step_frequency > 2.0:
        return WalkingPattern.FAST
    if accel_mean < 5.0 and step_frequency < 1.5 and accel_std < 2.0:
        return WalkingPattern.SLOW
    if (accel_std > 4.0 and gyro_std > 1.5) or frequency_stability < 0.5:
        return WalkingPattern.IRREGULAR
    return WalkingPattern.NORMAL


class StepLengthEstimator:
    """
    Stateful step length estimator.

    Call :meth:`add_sample` for sensor samples between steps (optional) and
    :meth:`estimate` once per detected step.

    Attributes:
        config: Estimator parameters.
        walking_pattern: Current (accepted) walking pattern.
        pattern_confidence: Confidence of the latest classification run.
        step_frequency: Latest step frequency (Hz), 0 before the 2nd step.

    Example:
        >>> estimator = StepLengthEstimator()
        >>> length = estimator.estimate(sample, user_height=1.75)
    """

    CONFIDENCE_ON_CHANGE = 0.3
    CONFIDENCE_STEP = 0.1
    SWITCH_CONFIDENCE = 0.5
    SWITCH_RUN_LENGTH = 5
    MIN_FREQUENCIES_FOR_STABILITY = 3

    def __init__(self, config: Optional[StepLengthConfig] = None):
        self.config = config or StepLengthConfig()
        self._accel_magnitudes: deque = deque(maxlen=self.config.pattern_window)
        self._gyro_magnitudes: deque = deque(maxlen=self.config.pattern_window)
        self._frequencies: deque = deque(maxlen=self.config.pattern_window)
        self._recent_lengths: deque = deque(maxlen=self.config.averaging_steps)
        self.reset()

    def reset(self) -> None:
        """Forget all history and return to the Normal pattern."""
        self._accel_magnitudes.clear()
        self._gyro_magnitudes.clear()
        self._frequencies.clear()
        self._recent_lengths.clear()
        self._last_step_ns: Optional[int] = None
        self.step_frequency = 0.0
        self.walking_pattern = WalkingPattern.NORMAL
        self.pattern_confidence = 0.0
        self._run_pattern: Optional[WalkingPattern] = None
        self._run_length = 0

    def add_sample(self, sample: CombinedSample) -> None:
        """Add a sensor sample to the classification window."""
        if not isinstance(sample, CombinedSample):
            raise TypeError(f"Expected CombinedSample, got {type(sample).__name__}")
        self._accel_magnitudes.append(sample.linear_magnitude)
        self._gyro_magnitudes.append(sample.gyro_magnitude)

    def estimate(
        self,
        sample: CombinedSample,
        user_height: Optional[float] = None,
        calibration_factor: Optional[float] = None,
    ) -> float:
        """
        Estimate the length of the step that ended at ``sample``.

        Args:
            sample: Sensor snapshot taken at the detected step.
            user_height: User height in meters (defaults to config).
            calibration_factor: Multiplicative calibration (defaults to config).

        Returns:
            Step length in meters.

        Raises:
            ValueError: If height or calibration factor are not positive.
        """
        height = self.config.user_height_m if user_height is None else float(user_height)
        calibration = (
            self.config.calibration_factor if calibration_factor is None else float(calibration_factor)
        )
        if height <= 0:
            raise ValueError(f"user_height must be positive, got {height}")
        if calibration <= 0:
            raise ValueError(f"calibration_factor must be positive, got {calibration}")

        timestamp = sample.timestamp_ns
        if self._last_step_ns is not None and timestamp > self._last_step_ns:
            self.step_frequency = NANOS_PER_SECOND / (timestamp - self._last_step_ns)
            self._frequencies.append(self.step_frequency)
        self._last_step_ns = timestamp

        self.add_sample(sample)
        self._update_pattern()

        raw_length = self._raw_length(sample.linear_magnitude, height, calibration)
        self._recent_lengths.append(raw_length)
        average = float(np.mean(self._recent_lengths))

        pattern = self.walking_pattern
        length = float(
            np.clip(average, pattern.min_height_ratio * height, pattern.max_height_ratio * height)
        )
        logger.debug(
            "Step length %.3f m (freq=%.2f Hz, pattern=%s, confidence=%.2f)",
            length, self.step_frequency, pattern.label, self.pattern_confidence,
        )
        return length

    def frequency_stability(self) -> float:
        """1 − coefficient of variation of recent step frequencies, in [0, 1]."""
        if len(self._frequencies) < self.MIN_FREQUENCIES_FOR_STABILITY:
            return 1.0
        values = np.asarray(self._frequencies)
        mean = float(np.mean(values))
        if mean <= 0:
            return 0.0
        return float(np.clip(1.0 - np.std(values) / mean, 0.0, 1.0))

    def _update_pattern(self) -> None:
        if len(self._accel_magnitudes) < self.config.min_pattern_samples:
            return

        accel = np.asarray(self._accel_magnitudes)
        gyro = np.asarray(self._gyro_magnitudes)
        classified = classify_walking_pattern(
            accel_mean=float(np.mean(accel)),
            accel_std=float(np.std(accel)),
            gyro_std=float(np.std(gyro)),
            step_frequency=self.step_frequency,
            frequency_stability=self.frequency_stability(),
        )

        if classified is self._run_pattern:
            self._run_length += 1
            self.pattern_confidence = min(1.0, self.pattern_confidence + self.CONFIDENCE_STEP)
        else:
            self._run_pattern = classified
            self._run_length = 1
            self.pattern_confidence = self.CONFIDENCE_ON_CHANGE

        if classified is not self.walking_pattern and (
            self.pattern_confidence > self.SWITCH_CONFIDENCE
            or self._run_length > self.SWITCH_RUN_LENGTH
        ):
            logger.debug(
                "Walking pattern %s -> %s", self.walking_pattern.label, classified.label
            )
            self.walking_pattern = classified

    def _raw_length(self, linear_magnitude: float, height: float, calibration: float) -> float:
        cfg = self.config
        base = cfg.base_length_ratio * height
        accel_factor = float(np.clip(np.sqrt(linear_magnitude) / 3.0, cfg.factor_min, cfg.factor_max))
        if self.step_frequency > 0:
            freq_factor = float(np.clip(self.step_frequency / 2.0, cfg.factor_min, cfg.factor_max))
        else:
            freq_factor = 1.0
        pattern_factor = 1.0 + (self.walking_pattern.length_factor - 1.0) * self.pattern_confidence
        pattern_factor = float(np.clip(pattern_factor, cfg.factor_min, cfg.factor_max))
        return base * accel_factor * freq_factor * pattern_factor * calibration
