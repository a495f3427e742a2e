"""
Confidence-weighted averaging of an absolute fix and a dead-reckoned position.

The lightweight alternative to the EKF. Each cycle takes the latest absolute
fix (BLE or Wi-Fi) and the PDR position and blends them:

    p = w_abs·p_abs + w_pdr·p_pdr,   w_abs + w_pdr = 1

Starting from a base split (``ble_weight`` / 1 − ``ble_weight``) each weight
is scaled by

    confidence   1 + 0.6·(c − 0.5)
    accuracy     max(0.2, 1 − 0.4·acc)
    age          max(0.1, 1 − 0.3·age_s)
    motion       PDR ×1.2 while walking, absolute ×1.3 while standing
    consistency  ×1.7 for the more confident source when the two positions
                 disagree by more than twice their combined accuracy

With ``smooth_transition`` the output moves from the previous output toward
the new blend by an adaptive factor instead of jumping to it.

When only the PDR position is available its confidence decays with the time
since the last absolute fix, and its accuracy grows by the same fraction.
"""

import logging
import math
from typing import Optional, Tuple

import numpy as np

from ..config import FusionConfig
from .types import AbsoluteMeasurement, FusedPosition, PositionSource

logger = logging.getLogger(__name__)

CONFIDENCE_GAIN = 0.6
ACCURACY_GAIN = 0.4
MIN_ACCURACY_SCALE = 0.2
AGE_GAIN = 0.3
MIN_AGE_SCALE = 0.1
WALKING_PDR_BOOST = 1.2
STANDING_ABSOLUTE_BOOST = 1.3
INCONSISTENCY_RATIO = 2.0
CONSISTENCY_BOOST = 1.7


def _distance(a: AbsoluteMeasurement, b: AbsoluteMeasurement) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def _relative_distance(a: AbsoluteMeasurement, b: AbsoluteMeasurement) -> float:
    """Separation in units of the combined accuracy."""
    return _distance(a, b) / (a.accuracy + b.accuracy + 0.1)


class WeightedAverageFusion:
    """
    Stateful weighted-average fuser.

    Keeps the previous output (for smoothing) and the time of the last
    absolute fix (for the PDR-only decay).

    Example:
        >>> fuser = WeightedAverageFusion()
        >>> out = fuser.fuse(ble_fix, pdr_fix, timestamp=3.0, moving=True)
        >>> out.source
        <PositionSource.FUSION: 'fusion'>
    """

    def __init__(self, config: Optional[FusionConfig] = None):
        self.config = config or FusionConfig()
        self.reset()

    def reset(self) -> None:
        self._last_output: Optional[FusedPosition] = None
        self._last_absolute_time: Optional[float] = None

    @property
    def last_output(self) -> Optional[FusedPosition]:
        return self._last_output

    def weights(
        self,
        absolute: AbsoluteMeasurement,
        pdr: AbsoluteMeasurement,
        timestamp: float,
        moving: bool,
    ) -> Tuple[float, float]:
        """
        Normalized (absolute, PDR) weights for one blend.

        Args:
            absolute: BLE or Wi-Fi fix.
            pdr: Dead-reckoned position.
            timestamp: Current time (s), used to age both inputs.
            moving: Whether the user is walking.

        Returns:
            Tuple (w_abs, w_pdr) summing to one.
        """
        base = self.config.ble_weight
        w_abs, w_pdr = base, 1.0 - base

        w_abs *= 1.0 + (absolute.confidence - 0.5) * CONFIDENCE_GAIN
        w_pdr *= 1.0 + (pdr.confidence - 0.5) * CONFIDENCE_GAIN

        w_abs *= max(MIN_ACCURACY_SCALE, 1.0 - absolute.accuracy * ACCURACY_GAIN)
        w_pdr *= max(MIN_ACCURACY_SCALE, 1.0 - pdr.accuracy * ACCURACY_GAIN)

        w_abs *= max(MIN_AGE_SCALE, 1.0 - (timestamp - absolute.timestamp) * AGE_GAIN)
        w_pdr *= max(MIN_AGE_SCALE, 1.0 - (timestamp - pdr.timestamp) * AGE_GAIN)

        if moving:
            w_pdr *= WALKING_PDR_BOOST
        else:
            w_abs *= STANDING_ABSOLUTE_BOOST

        if _relative_distance(absolute, pdr) > INCONSISTENCY_RATIO:
            if absolute.confidence > pdr.confidence:
                w_abs *= CONSISTENCY_BOOST
            else:
                w_pdr *= CONSISTENCY_BOOST

        total = w_abs + w_pdr
        if total <= 0:
            return base, 1.0 - base
        return w_abs / total, w_pdr / total

    def transition_factor(self, separation: float, moving: bool) -> float:
        """Smoothing factor toward the new blend, in [0.05, 0.8]."""
        factor = self.config.transition_factor
        if separation < 1.0:
            factor *= 1.5
        elif separation > 5.0:
            factor *= 0.5
        factor *= 1.2 if moving else 0.8
        return float(np.clip(factor, 0.05, 0.8))

    def fuse(
        self,
        absolute: Optional[AbsoluteMeasurement],
        pdr: Optional[AbsoluteMeasurement],
        timestamp: float,
        moving: bool = False,
    ) -> FusedPosition:
        """
        Fuse the available inputs of one cycle.

        Args:
            absolute: BLE or Wi-Fi fix, if any.
            pdr: Dead-reckoned position as a measurement, if any.
            timestamp: Cycle time (s).
            moving: Whether the user is walking.

        Returns:
            The absolute fix alone (its own source tag), the decayed PDR
            position alone (PDR), the blend of both (FUSION), or
            ``FusedPosition.invalid()`` when neither is given.
        """
        if absolute is None and pdr is None:
            return FusedPosition.invalid(timestamp)

        if absolute is None:
            output = self._pdr_only(pdr, timestamp)
        elif pdr is None:
            self._last_absolute_time = timestamp
            output = self._position(
                absolute.x, absolute.y, absolute.accuracy, absolute.confidence,
                absolute.source, timestamp,
            )
        else:
            self._last_absolute_time = timestamp
            output = self._blend(absolute, pdr, timestamp, moving)

        self._last_output = output
        return output

    def _pdr_only(self, pdr: AbsoluteMeasurement, timestamp: float) -> FusedPosition:
        cfg = self.config
        if self._last_absolute_time is None:
            return self._position(pdr.x, pdr.y, pdr.accuracy, pdr.confidence, PositionSource.PDR, timestamp)

        elapsed = max(timestamp - self._last_absolute_time, 0.0)
        decay = min(cfg.pdr_max_decay, elapsed / cfg.pdr_decay_window_s)
        confidence = max(cfg.min_pdr_confidence, pdr.confidence * (1.0 - decay))
        logger.debug("PDR only for %.1f s, confidence decay %.2f", elapsed, decay)
        return self._position(
            pdr.x, pdr.y, pdr.accuracy * (1.0 + decay), confidence, PositionSource.PDR, timestamp
        )

    def _blend(
        self,
        absolute: AbsoluteMeasurement,
        pdr: AbsoluteMeasurement,
        timestamp: float,
        moving: bool,
    ) -> FusedPosition:
        w_abs, w_pdr = self.weights(absolute, pdr, timestamp, moving)
        separation = _distance(absolute, pdr)
        x = w_abs * absolute.x + w_pdr * pdr.x
        y = w_abs * absolute.y + w_pdr * pdr.y

        previous = self._last_output
        if self.config.smooth_transition and previous is not None and previous.is_valid:
            alpha = self.transition_factor(separation, moving)
            x = previous.x + alpha * (x - previous.x)
            y = previous.y + alpha * (y - previous.y)

        accuracy = (w_abs * absolute.accuracy + w_pdr * pdr.accuracy) * (
            1.0 - 0.3 * math.exp(-separation / 2.0)
        )
        confidence = (w_abs * absolute.confidence + w_pdr * pdr.confidence) * math.exp(
            -_relative_distance(absolute, pdr) / 3.0
        )
        logger.debug(
            "Weighted average: w_abs=%.2f w_pdr=%.2f separation=%.2f m", w_abs, w_pdr, separation
        )
        return self._position(
            x, y, accuracy, float(np.clip(confidence, 0.1, 1.0)), PositionSource.FUSION, timestamp
        )

    @staticmethod
    def _position(
        x: float,
        y: float,
        accuracy: float,
        confidence: float,
        source: PositionSource,
        timestamp: float,
    ) -> FusedPosition:
        sigma = accuracy / math.sqrt(2.0)
        return FusedPosition(
            x=float(x),
            y=float(y),
            accuracy=float(accuracy),
            sigma_x=sigma,
            sigma_y=sigma,
            sigma_theta=math.inf,
            confidence=float(confidence),
            source=source,
            timestamp=timestamp,
            theta=math.nan,
        )
