"""
Step detection from accelerometer magnitude.

Two detectors are provided:

    StepDetector        Adaptive peak/valley state machine with exponential
                        smoothing, thresholds that follow the recent signal
                        statistics, and optional gyroscope gating.
    SimpleStepDetector  Fixed-threshold peak/valley detector kept as a
                        fallback for devices without a usable gyroscope or
                        with very low sample rates.

Both share the same step timing rule. A shape-valid peak/valley cycle is a
step candidate; a candidate with no reference within the maximum step
interval starts a walking bout (it arms the timer but is not counted), a
candidate arriving sooner than the minimum interval is dropped, and every
other candidate is counted and becomes the new reference.

Example:
    >>> detector = StepDetector()
    >>> for sample in accelerometer_stream:
    ...     result = detector.process(sample)
    ...     if result.step_detected:
    ...         print(result.step_count)
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from ..config import StepDetectorConfig
from .types import (
    NANOS_PER_MILLI,
    AccelerometerSample,
    CombinedSample,
    GyroscopeSample,
    SensorSample,
)

logger = logging.getLogger(__name__)


class StepState(Enum):
    """States of the peak/valley machine."""

    IDLE = "idle"
    RISING = "rising"
    PEAK = "peak"
    FALLING = "falling"
    VALLEY = "valley"


@dataclass(frozen=True)
class StepDetectionResult:
    """
    Outcome of feeding one sample to a step detector.

    Attributes:
        step_detected: True if this sample completed an accepted step.
        step_count: Steps accepted since construction or the last reset.
        filtered_magnitude: Smoothed acceleration magnitude (m/s²).
        filtered_gyro_magnitude: Smoothed gyroscope magnitude (rad/s), 0 when
            no gyroscope data has been seen.
        state: Machine state after this sample.
        timestamp_ns: Timestamp of the sample.
        confidence: Confidence of the detected step in [0.5, 1], 0 otherwise.
    """

    step_detected: bool
    step_count: int
    filtered_magnitude: float
    filtered_gyro_magnitude: float
    state: StepState
    timestamp_ns: int
    confidence: float = 0.0


class _StepTimer:
    """Enforces the minimum/maximum interval between counted steps."""

    def __init__(self, min_interval_ms: float, max_interval_ms: float):
        self.min_interval_ns = int(min_interval_ms * NANOS_PER_MILLI)
        self.max_interval_ns = int(max_interval_ms * NANOS_PER_MILLI)
        self.reference_ns: Optional[int] = None

    def reset(self) -> None:
        self.reference_ns = None

    def register(self, time_ns: int) -> bool:
        """Return True if a candidate at ``time_ns`` counts as a step."""
        if self.reference_ns is None or time_ns - self.reference_ns > self.max_interval_ns:
            self.reference_ns = time_ns
            logger.debug("Walking bout armed at t=%d ns", time_ns)
            return False

        elapsed = time_ns - self.reference_ns
        if elapsed < self.min_interval_ns:
            logger.debug("Step candidate rejected: %.0f ms after previous", elapsed / NANOS_PER_MILLI)
            return False

        self.reference_ns = time_ns
        return True


def _step_confidence(height: float, min_height: float) -> float:
    return float(np.clip(height / (2.0 * min_height), 0.5, 1.0))


class StepDetector:
    """
    Adaptive peak/valley step detector.

    The acceleration magnitude is smoothed with
    ``filtered = α·current + (1-α)·filtered`` and drives the machine

        IDLE → RISING → PEAK → FALLING → VALLEY → IDLE

    RISING starts when the signal exceeds the peak threshold, PEAK is entered
    once it stops increasing, FALLING once it drops below the valley threshold
    and VALLEY once it stops decreasing. At VALLEY the cycle is evaluated:
    it must swing at least ``min_peak_valley_height``, the smoothed gyroscope
    magnitude must exceed ``gyro_threshold`` (when gyroscope data is
    available) and it must pass the step timer. The machine then returns to
    IDLE on the next sample.

    Peak and valley thresholds follow the last ``window_size`` smoothed
    samples (``mean + 0.7σ`` and ``mean − 0.3σ``) once half the window is
    filled, clamped to ``±adaptive_clamp`` of the static thresholds.

    Attributes:
        config: Detector parameters.
        step_count: Accepted steps since construction or the last reset.
        state: Current machine state.
    """

    PEAK_SIGMA_GAIN = 0.7
    VALLEY_SIGMA_GAIN = 0.3

    def __init__(self, config: Optional[StepDetectorConfig] = None):
        self.config = config or StepDetectorConfig()
        self._window: deque = deque(maxlen=self.config.window_size)
        self._timer = _StepTimer(
            self.config.min_step_interval_ms, self.config.max_step_interval_ms
        )
        self.reset()

    def reset(self) -> None:
        """Clear all state, including the adaptive window and step count."""
        self.state = StepState.IDLE
        self.step_count = 0
        self._filtered: Optional[float] = None
        self._filtered_gyro = 0.0
        self._gyro_seen = False
        self._window.clear()
        self._timer.reset()
        self._peak_threshold = self.config.peak_threshold
        self._valley_threshold = self.config.valley_threshold
        self._peak_value = 0.0
        self._peak_time_ns = 0
        self._valley_value = 0.0

    @property
    def current_thresholds(self) -> Tuple[float, float]:
        """Current (peak, valley) thresholds in m/s²."""
        return self._peak_threshold, self._valley_threshold

    def process(
        self,
        sample: SensorSample,
        gyroscope: Optional[GyroscopeSample] = None,
    ) -> StepDetectionResult:
        """
        Feed one sample to the detector.

        Args:
            sample: Accelerometer, gyroscope or combined sample. Gyroscope
                samples only update the rotational-activity filter.
            gyroscope: Optional gyroscope reading taken together with an
                accelerometer sample.

        Returns:
            StepDetectionResult for this sample.

        Raises:
            TypeError: If ``sample`` is not one of the sensor sample types.
        """
        if isinstance(sample, CombinedSample):
            self._update_gyro(sample.gyro_magnitude)
            return self._process_acceleration(sample.magnitude, sample.timestamp_ns)
        if isinstance(sample, AccelerometerSample):
            if gyroscope is not None:
                self._update_gyro(gyroscope.magnitude)
            return self._process_acceleration(sample.magnitude, sample.timestamp_ns)
        if isinstance(sample, GyroscopeSample):
            self._update_gyro(sample.magnitude)
            return self._result(False, sample.timestamp_ns)
        raise TypeError(f"Unsupported sensor sample type: {type(sample).__name__}")

    def _update_gyro(self, magnitude: float) -> None:
        alpha = self.config.gyro_alpha
        if self._gyro_seen:
            self._filtered_gyro = alpha * magnitude + (1.0 - alpha) * self._filtered_gyro
        else:
            self._filtered_gyro = magnitude
            self._gyro_seen = True

    def _update_thresholds(self) -> None:
        if len(self._window) < self.config.window_size // 2:
            return
        values = np.asarray(self._window)
        mean = float(np.mean(values))
        sigma = float(np.std(values))
        clamp = self.config.adaptive_clamp
        base_peak = self.config.peak_threshold
        base_valley = self.config.valley_threshold
        self._peak_threshold = float(
            np.clip(mean + self.PEAK_SIGMA_GAIN * sigma, base_peak * (1 - clamp), base_peak * (1 + clamp))
        )
        self._valley_threshold = float(
            np.clip(mean - self.VALLEY_SIGMA_GAIN * sigma, base_valley * (1 - clamp), base_valley * (1 + clamp))
        )

    def _process_acceleration(self, magnitude: float, timestamp_ns: int) -> StepDetectionResult:
        alpha = self.config.accel_alpha
        if self._filtered is None:
            self._filtered = magnitude
        else:
            self._filtered = alpha * magnitude + (1.0 - alpha) * self._filtered
        value = self._filtered

        self._window.append(value)
        self._update_thresholds()

        if self.state is StepState.VALLEY:
            self.state = StepState.IDLE

        if self.state is StepState.IDLE:
            if value > self._peak_threshold:
                self.state = StepState.RISING
                self._peak_value = value
                self._peak_time_ns = timestamp_ns

        elif self.state is StepState.RISING:
            if value > self._peak_value:
                self._peak_value = value
                self._peak_time_ns = timestamp_ns
            else:
                self.state = StepState.PEAK

        elif self.state is StepState.PEAK:
            if value > self._peak_value:
                self._peak_value = value
                self._peak_time_ns = timestamp_ns
            elif value < self._valley_threshold:
                self.state = StepState.FALLING
                self._valley_value = value
            elif timestamp_ns - self._peak_time_ns > self.config.max_peak_duration_ms * NANOS_PER_MILLI:
                logger.debug("Peak abandoned: no valley within %.0f ms", self.config.max_peak_duration_ms)
                self.state = StepState.IDLE

        elif self.state is StepState.FALLING:
            if value < self._valley_value:
                self._valley_value = value
            else:
                self.state = StepState.VALLEY
                return self._evaluate_cycle(timestamp_ns)

        return self._result(False, timestamp_ns)

    def _evaluate_cycle(self, timestamp_ns: int) -> StepDetectionResult:
        height = self._peak_value - self._valley_value
        if height < self.config.min_peak_valley_height:
            logger.debug("Step candidate rejected: peak-valley height %.2f", height)
            return self._result(False, timestamp_ns)

        if self._gyro_seen and self._filtered_gyro < self.config.gyro_threshold:
            logger.debug("Step candidate rejected: gyro magnitude %.3f rad/s", self._filtered_gyro)
            return self._result(False, timestamp_ns)

        if not self._timer.register(self._peak_time_ns):
            return self._result(False, timestamp_ns)

        self.step_count += 1
        confidence = _step_confidence(height, self.config.min_peak_valley_height)
        logger.debug("Step %d detected (height=%.2f, confidence=%.2f)", self.step_count, height, confidence)
        return self._result(True, timestamp_ns, confidence)

    def _result(self, detected: bool, timestamp_ns: int, confidence: float = 0.0) -> StepDetectionResult:
        return StepDetectionResult(
            step_detected=detected,
            step_count=self.step_count,
            filtered_magnitude=self._filtered if self._filtered is not None else 0.0,
            filtered_gyro_magnitude=self._filtered_gyro,
            state=self.state,
            timestamp_ns=timestamp_ns,
            confidence=confidence,
        )


class SimpleStepDetector:
    """
    Fixed-threshold step detector.

    A peak is the maximum raw magnitude while the signal stays above
    ``peak_threshold``; the cycle completes on the first sample below
    ``valley_threshold`` and is counted when the swing reaches
    ``min_peak_valley_height`` and it passes the step timer. No smoothing,
    no adaptive thresholds and no gyroscope gating.
    """

    def __init__(self, config: Optional[StepDetectorConfig] = None):
        self.config = config or StepDetectorConfig()
        self._timer = _StepTimer(
            self.config.min_step_interval_ms, self.config.max_step_interval_ms
        )
        self.reset()

    def reset(self) -> None:
        self.step_count = 0
        self._in_peak = False
        self._peak_value = 0.0
        self._peak_time_ns = 0
        self._last_magnitude = 0.0
        self._timer.reset()

    def process(self, sample: SensorSample) -> StepDetectionResult:
        if isinstance(sample, (AccelerometerSample, CombinedSample)):
            magnitude = sample.magnitude
        elif isinstance(sample, GyroscopeSample):
            return self._result(False, sample.timestamp_ns)
        else:
            raise TypeError(f"Unsupported sensor sample type: {type(sample).__name__}")

        detected = False
        confidence = 0.0
        if magnitude > self.config.peak_threshold:
            if not self._in_peak or magnitude > self._peak_value:
                self._peak_value = magnitude
                self._peak_time_ns = sample.timestamp_ns
            self._in_peak = True
        elif self._in_peak and magnitude < self.config.valley_threshold:
            self._in_peak = False
            height = self._peak_value - magnitude
            if height >= self.config.min_peak_valley_height and self._timer.register(self._peak_time_ns):
                self.step_count += 1
                detected = True
                confidence = _step_confidence(height, self.config.min_peak_valley_height)

        self._last_magnitude = magnitude
        return self._result(detected, sample.timestamp_ns, confidence)

    def _result(self, detected: bool, timestamp_ns: int, confidence: float = 0.0) -> StepDetectionResult:
        return StepDetectionResult(
            step_detected=detected,
            step_count=self.step_count,
            filtered_magnitude=self._last_magnitude,
            filtered_gyro_magnitude=0.0,
            state=StepState.PEAK if self._in_peak else StepState.IDLE,
            timestamp_ns=timestamp_ns,
            confidence=confidence,
        )
