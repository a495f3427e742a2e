"""
EKF fusion core for planar pedestrian tracking.

State [x, y, θ] follows the unicycle model driven by a combined motion
estimate and is corrected by absolute (x, y) fixes from Wi-Fi or BLE.

Lifecycle:

    Uninitialized ──initialize(first fix)──▶ Tracking ──reset()──▶ Uninitialized

While uninitialized ``predict``, ``update`` and ``apply_drift_correction``
are no-ops returning False and ``fused_position`` returns
``FusedPosition.invalid()``.

Drift correction periodically pulls the position toward the last accepted
fix when the two diverge by more than an accuracy-scaled threshold, and
inflates the position variances to account for the injected correction.
"""

import logging
import math
from typing import Optional

import numpy as np

from ..config import FusionConfig
from ..estimators.extended_kalman_filter import ExtendedKalmanFilter, symmetrize
from ..models.motion_models import UnicycleModel, wrap_angle
from ..sensors.types import MotionEstimate
from .types import AbsoluteMeasurement, FusedPosition, FusionState, PositionSource

logger = logging.getLogger(__name__)

_H = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
_MIN_INITIAL_VARIANCE = 1e-6


class FusionEKF:
    """
    Extended Kalman Filter over [x, y, θ] with drift correction.

    Attributes:
        config: Filter parameters.
        position_noise: Current position process noise density (m²/s).
        heading_noise: Current heading process noise density (rad²/s).
        drift_period_s: Current drift correction period (s).
        drift_threshold: Current divergence threshold (m).
        drift_factor: Current correction factor in [0, 1].

    Example:
        >>> ekf = FusionEKF()
        >>> ekf.initialize(AbsoluteMeasurement.from_accuracy(1.0, 2.0, 3.0, 0.8))
        >>> ekf.predict(MotionEstimate(1.0, 0.0), dt=0.5)
        True
        >>> ekf.state.x
        1.5
    """

    def __init__(self, config: Optional[FusionConfig] = None):
        self.config = config or FusionConfig()
        eps = self.config.straight_line_epsilon
        self._ekf = ExtendedKalmanFilter(
            process_model=lambda x, u, dt: UnicycleModel.f(x, u, dt, eps),
            process_jacobian=lambda x, u, dt: UnicycleModel.F(x, u, dt, eps),
            measurement_model=lambda x: x[:2],
            measurement_jacobian=lambda x: _H,
            Q=self._process_noise,
            R=lambda: np.eye(2),
            state_dim=3,
            singular_tolerance=self.config.singular_pivot_tolerance,
        )
        self.reset()

    def reset(self) -> None:
        """Return to the uninitialized state with default parameters."""
        self._ekf.reset()
        self.position_noise = self.config.position_noise
        self.heading_noise = self.config.heading_noise
        self.drift_period_s = self.config.drift_max_period_s
        self.drift_threshold = math.inf
        self.drift_factor = 0.0
        self._last_fix: Optional[AbsoluteMeasurement] = None
        self._last_drift_time: Optional[float] = None

    @property
    def is_initialized(self) -> bool:
        return self._ekf.is_initialized

    @property
    def state(self) -> FusionState:
        """
        Snapshot of the current state.

        Raises:
            RuntimeError: If the filter is not initialized.
        """
        x, P = self._ekf.get_state()
        return FusionState(x=float(x[0]), y=float(x[1]), theta=float(x[2]), covariance=P)

    @property
    def last_fix(self) -> Optional[AbsoluteMeasurement]:
        """Last accepted absolute measurement."""
        return self._last_fix

    def initialize(self, measurement: AbsoluteMeasurement, timestamp: Optional[float] = None) -> None:
        """
        Seed the state from an absolute fix with θ = 0.

        The position variances are the fix's accuracy squared, the heading
        variance is ``config.initial_heading_variance``.
        """
        variance = max(measurement.accuracy ** 2, _MIN_INITIAL_VARIANCE)
        x0 = np.array([measurement.x, measurement.y, 0.0])
        P0 = np.diag([variance, variance, self.config.initial_heading_variance])
        self._ekf.initialize(x0, P0)
        self._last_fix = measurement
        self._last_drift_time = measurement.timestamp if timestamp is None else timestamp
        self.configure_drift(measurement.accuracy, measurement.confidence)
        logger.info(
            "Fusion initialized at (%.2f, %.2f) from %s fix, accuracy %.2f m",
            measurement.x, measurement.y, measurement.source.value, measurement.accuracy,
        )

    def _process_noise(self, dt: float, u: Optional[np.ndarray]) -> np.ndarray:
        velocity = 0.0 if u is None else float(u[0])
        return UnicycleModel.Q(
            dt,
            velocity=velocity,
            position_noise=self.position_noise,
            heading_noise=self.heading_noise,
            velocity_gain=self.config.velocity_noise_gain,
        )

    def set_process_noise(self, position_noise: float, heading_noise: float) -> None:
        """Set the process noise densities directly."""
        if position_noise <= 0 or heading_noise <= 0:
            raise ValueError(
                f"Process noise must be positive, got {position_noise}, {heading_noise}"
            )
        self.position_noise = position_noise
        self.heading_noise = heading_noise

    def set_motion_confidence(self, weight: float) -> None:
        """
        Scale the process noise by (2 − w) for a motion weight w in [0, 1].

        A fully trusted motion source keeps the base noise, a fully
        distrusted one doubles it.
        """
        scale = 2.0 - float(np.clip(weight, 0.0, 1.0))
        self.set_process_noise(self.config.position_noise * scale, self.config.heading_noise * scale)

    def set_drift_parameters(self, period_s: float, threshold: float, factor: float) -> None:
        if period_s <= 0:
            raise ValueError(f"period_s must be positive, got {period_s}")
        if threshold < 0:
            raise ValueError(f"threshold must be non-negative, got {threshold}")
        self.drift_period_s = period_s
        self.drift_threshold = threshold
        self.drift_factor = float(np.clip(factor, 0.0, 1.0))

    def configure_drift(self, accuracy: float, confidence: float) -> None:
        """
        Derive drift parameters from the quality of the latest fix.

            period    = min + (max − min)·(1 − confidence)
            threshold = threshold_scale · accuracy
            factor    = max_factor · confidence
        """
        cfg = self.config
        confidence = float(np.clip(confidence, 0.0, 1.0))
        period = cfg.drift_min_period_s + (cfg.drift_max_period_s - cfg.drift_min_period_s) * (1.0 - confidence)
        self.set_drift_parameters(
            period_s=period,
            threshold=cfg.drift_threshold_scale * accuracy,
            factor=cfg.drift_max_factor * confidence,
        )

    def predict(self, motion: MotionEstimate, dt: float) -> bool:
        """
        Propagate the state with the unicycle model.

        Args:
            motion: Combined motion estimate for this cycle.
            dt: Time step (s), non-negative.

        Returns:
            False if the filter is not initialized, True otherwise.
        """
        if dt < 0:
            raise ValueError(f"dt must be non-negative, got {dt}")
        if not self.is_initialized:
            return False
        self._ekf.predict(np.array([motion.velocity, motion.angular_velocity]), dt)
        return True

    def update(self, measurement: AbsoluteMeasurement, covariance: Optional[np.ndarray] = None) -> bool:
        """
        Correct the position with an absolute fix.

        Args:
            measurement: The fix.
            covariance: Measurement covariance to use instead of the fix's own.

        Returns:
            True if the update was applied; False when uninitialized or when
            the innovation covariance was singular.
        """
        if not self.is_initialized:
            return False
        R = measurement.covariance if covariance is None else covariance
        if not self._ekf.update(measurement.z, R):
            return False
        self._ekf.state[2] = wrap_angle(self._ekf.state[2])
        self._last_fix = measurement
        return True

    def apply_drift_correction(self, now: float) -> bool:
        """
        Nudge the position toward the last accepted fix if due.

        Args:
            now: Current time (s).

        Returns:
            True if a correction was applied.
        """
        if not self.is_initialized or self._last_fix is None:
            return False
        if self._last_drift_time is None:
            self._last_drift_time = now
            return False
        if now - self._last_drift_time < self.drift_period_s:
            return False
        self._last_drift_time = now

        state = self._ekf.state
        offset = self._last_fix.z - state[:2]
        divergence = float(np.linalg.norm(offset))
        if divergence <= self.drift_threshold:
            return False

        state[:2] += self.drift_factor * offset
        P = self._ekf.covariance
        P[0, 0] *= self.config.drift_covariance_inflation
        P[1, 1] *= self.config.drift_covariance_inflation
        self._ekf.covariance = symmetrize(P)
        logger.debug(
            "Drift correction: divergence %.2f m, factor %.2f", divergence, self.drift_factor
        )
        return True

    def output_confidence(self) -> float:
        """1 − min(1, √(var_x + var_y)/scale), clamped to [min, 1]."""
        accuracy = self.state.accuracy
        confidence = 1.0 - min(1.0, accuracy / self.config.output_confidence_scale)
        return float(np.clip(confidence, self.config.min_output_confidence, 1.0))

    def fused_position(
        self,
        source: PositionSource = PositionSource.FUSION,
        timestamp: float = 0.0,
    ) -> FusedPosition:
        """Current estimate as a FusedPosition, invalid when uninitialized."""
        if not self.is_initialized:
            return FusedPosition.invalid(timestamp)
        state = self.state
        return FusedPosition(
            x=state.x,
            y=state.y,
            accuracy=state.accuracy,
            sigma_x=state.sigma_x,
            sigma_y=state.sigma_y,
            sigma_theta=state.sigma_theta,
            confidence=self.output_confidence(),
            source=source,
            timestamp=timestamp,
            theta=state.theta,
        )
