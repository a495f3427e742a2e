"""
Fusion orchestration.

One call to :meth:`FusionEngine.process` is one fusion cycle. With the
``kalman_filter`` method:

    1. combine the visual-inertial and PDR motion with the effective weight w
    2. scale the process noise by (2 − w) and predict
    3. if an absolute fix is present, build its adaptive covariance and update
    4. apply drift correction when due
    5. emit a FusedPosition

Before the first absolute fix the filter is uninitialized; the first cycle
carrying a fix seeds it.

With the ``weighted_average`` method the absolute fix and the PDR position
are blended directly by :class:`WeightedAverageFusion` and the filter is not
used.

The engine holds mutable state and must be driven by a single loop. Sources
that arrive asynchronously have to be queued into that loop by the caller.
"""

import logging
from typing import Optional

import numpy as np

from ..config import FusionConfig
from ..sensors.pdr import PdrPosition
from ..sensors.types import MotionEstimate
from .fusion_filter import FusionEKF
from .types import (
    AbsoluteMeasurement,
    FusedPosition,
    FusionMethod,
    PositionSource,
    adaptive_measurement_covariance,
)
from .weighted_average import WeightedAverageFusion

logger = logging.getLogger(__name__)


def effective_motion_weight(
    visual: Optional[MotionEstimate],
    pdr: Optional[MotionEstimate],
    weight: float,
) -> float:
    """
    Weight of the visual estimate in the motion actually used this cycle.

    0 when only PDR motion is present, 1 when only visual motion is, the
    requested weight clamped to [0, 1] otherwise.
    """
    if visual is None and pdr is not None:
        return 0.0
    if pdr is None and visual is not None:
        return 1.0
    return float(np.clip(weight, 0.0, 1.0))


def combine_motion(
    visual: Optional[MotionEstimate],
    pdr: Optional[MotionEstimate],
    weight: float,
) -> MotionEstimate:
    """
    Blend two motion estimates: ``w·visual + (1 − w)·pdr``.

    Args:
        visual: Visual-inertial motion, or None.
        pdr: PDR-derived motion, or None.
        weight: Confidence in the visual estimate, clamped to [0, 1].

    Returns:
        The blend; the available estimate when only one is given; zero motion
        when neither is.
    """
    if visual is None and pdr is None:
        return MotionEstimate.zero()
    if visual is None:
        return pdr
    if pdr is None:
        return visual
    w = float(np.clip(weight, 0.0, 1.0))
    return MotionEstimate(
        velocity=w * visual.velocity + (1.0 - w) * pdr.velocity,
        angular_velocity=w * visual.angular_velocity + (1.0 - w) * pdr.angular_velocity,
    )


def pdr_measurement(position: PdrPosition, timestamp: float) -> AbsoluteMeasurement:
    """Express a dead-reckoned position as a PDR-tagged measurement at ``timestamp``."""
    return AbsoluteMeasurement.from_accuracy(
        position.x,
        position.y,
        accuracy=position.accuracy,
        confidence=position.confidence,
        source=PositionSource.PDR,
        timestamp=timestamp,
    )


class FusionEngine:
    """
    Drives a FusionEKF, or the weighted-average fuser, once per cycle.

    Example:
        >>> engine = FusionEngine()
        >>> fix = AbsoluteMeasurement.from_accuracy(0.0, 0.0, 3.0, 0.7,
        ...                                         PositionSource.WIFI)
        >>> engine.process(0.1, measurement=fix, timestamp=0.0).is_valid
        True
        >>> engine.process(0.1, visual=MotionEstimate(1.0, 0.0), timestamp=0.1).x
        0.1
    """

    def __init__(self, config: Optional[FusionConfig] = None):
        self.config = config or FusionConfig()
        self.method = FusionMethod(self.config.method)
        self.filter = FusionEKF(self.config)
        self.averager = WeightedAverageFusion(self.config)

    @property
    def is_initialized(self) -> bool:
        return self.filter.is_initialized

    def reset(self) -> None:
        self.filter.reset()
        self.averager.reset()
        logger.info("Fusion engine reset")

    def measurement_covariance(self, measurement: AbsoluteMeasurement) -> np.ndarray:
        return adaptive_measurement_covariance(
            measurement.accuracy,
            measurement.confidence,
            self.config.min_confidence,
            self.config.max_measurement_variance,
        )

    def process(
        self,
        dt: float,
        visual: Optional[MotionEstimate] = None,
        pdr: Optional[MotionEstimate] = None,
        motion_weight: float = 0.5,
        measurement: Optional[AbsoluteMeasurement] = None,
        timestamp: float = 0.0,
        pdr_position: Optional[PdrPosition] = None,
    ) -> FusedPosition:
        """
        Run one fusion cycle.

        Args:
            dt: Time since the previous cycle (s).
            visual: Visual-inertial motion estimate, if any.
            pdr: PDR-derived motion estimate, if any.
            motion_weight: Confidence weight w of the visual estimate.
            measurement: Absolute fix for this cycle, if any.
            timestamp: Cycle time (s), used for drift scheduling.
            pdr_position: Dead-reckoned position, used by the
                ``weighted_average`` method only.

        Returns:
            The fused position; ``FusedPosition.invalid()`` while there is
            nothing to report.
        """
        weight = effective_motion_weight(visual, pdr, motion_weight)
        motion = combine_motion(visual, pdr, weight)

        if self.method is FusionMethod.WEIGHTED_AVERAGE:
            moving = abs(motion.velocity) > self.config.moving_speed_threshold
            dead_reckoned = None
            if pdr_position is not None and pdr_position.is_valid:
                dead_reckoned = pdr_measurement(pdr_position, timestamp)
            return self.averager.fuse(measurement, dead_reckoned, timestamp, moving)

        if not self.filter.is_initialized:
            if measurement is None:
                return FusedPosition.invalid(timestamp)
            self.filter.initialize(measurement, timestamp)
            return self.filter.fused_position(measurement.source, timestamp)

        self.filter.set_motion_confidence(weight)
        self.filter.predict(motion, dt)

        source = PositionSource.FUSION
        if measurement is not None:
            if self.filter.update(measurement, self.measurement_covariance(measurement)):
                self.filter.configure_drift(measurement.accuracy, measurement.confidence)
                source = measurement.source
            else:
                logger.debug("Absolute fix from %s not applied", measurement.source.value)

        self.filter.apply_drift_correction(timestamp)
        return self.filter.fused_position(source, timestamp)
