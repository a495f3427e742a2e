"""Data types exchanged with the fusion core.

AbsoluteMeasurement is what the radio estimators hand to the filter,
FusionState is the filter's own state snapshot and FusedPosition is the
per-cycle output consumed by the position repository / UI layer.
"""

import math
from dataclasses import dataclass
from enum import Enum

import numpy as np


class PositionSource(Enum):
    """Origin of a position fix."""

    UNKNOWN = "unknown"
    WIFI = "wifi"
    BLE = "ble"
    PDR = "pdr"
    FUSION = "fusion"


class FusionMethod(Enum):
    """How absolute fixes and dead reckoning are combined."""

    KALMAN_FILTER = "kalman_filter"
    WEIGHTED_AVERAGE = "weighted_average"


def adaptive_measurement_covariance(
    accuracy: float,
    confidence: float,
    min_confidence: float = 0.1,
    max_variance: float = 100.0,
) -> np.ndarray:
    """
    Build a 2×2 measurement covariance from a fix's accuracy and confidence.

        σ² = min(accuracy² / clamp(confidence, min_confidence, 1), max_variance)

    Args:
        accuracy: Reported 1-sigma accuracy (m).
        confidence: Reported confidence in [0, 1].
        min_confidence: Lower clamp of the confidence.
        max_variance: Upper cap of the per-axis variance (m²).

    Returns:
        Diagonal covariance diag(σ², σ²).

    Example:
        >>> adaptive_measurement_covariance(2.0, 0.5)
        array([[8., 0.],
               [0., 8.]])
    """
    if not math.isfinite(accuracy) or accuracy < 0:
        raise ValueError(f"accuracy must be finite and non-negative, got {accuracy}")
    confidence = float(np.clip(confidence, min_confidence, 1.0))
    variance = min(accuracy * accuracy / confidence, max_variance)
    return np.diag([variance, variance])


@dataclass(frozen=True)
class AbsoluteMeasurement:
    """
    Absolute 2D position fix from Wi-Fi or BLE.

    Attributes:
        x, y: Position (m).
        covariance: 2×2 symmetric PSD covariance (m²).
        accuracy: Reported 1-sigma accuracy (m).
        confidence: Reported confidence in [0, 1].
        source: Producing estimator.
        timestamp: Time of the fix (s).

    Example:
        >>> m = AbsoluteMeasurement.from_accuracy(3.0, 4.0, accuracy=2.5,
        ...                                       confidence=0.7,
        ...                                       source=PositionSource.WIFI)
        >>> m.z
        array([3., 4.])
    """

    x: float
    y: float
    covariance: np.ndarray
    accuracy: float
    confidence: float
    source: PositionSource = PositionSource.UNKNOWN
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        """Validate the measurement."""
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(f"Measurement position must be finite, got ({self.x}, {self.y})")

        R = np.array(self.covariance, dtype=float)
        if R.shape != (2, 2):
            raise ValueError(f"Covariance must have shape (2, 2), got {R.shape}")
        if not np.allclose(R, R.T):
            raise ValueError("Covariance must be symmetric")
        eigvals = np.linalg.eigvalsh(R)
        if np.any(eigvals < -1e-10):
            raise ValueError(f"Covariance must be positive semi-definite, got eigenvalues {eigvals}")
        R.setflags(write=False)
        object.__setattr__(self, "covariance", R)

        if not math.isfinite(self.accuracy) or self.accuracy < 0:
            raise ValueError(f"accuracy must be finite and non-negative, got {self.accuracy}")
        object.__setattr__(self, "confidence", float(np.clip(self.confidence, 0.0, 1.0)))

    @classmethod
    def from_accuracy(
        cls,
        x: float,
        y: float,
        accuracy: float,
        confidence: float,
        source: PositionSource = PositionSource.UNKNOWN,
        timestamp: float = 0.0,
        min_confidence: float = 0.1,
        max_variance: float = 100.0,
    ) -> "AbsoluteMeasurement":
        """Create a measurement whose covariance follows ``adaptive_measurement_covariance``."""
        return cls(
            x=float(x),
            y=float(y),
            covariance=adaptive_measurement_covariance(
                accuracy, confidence, min_confidence, max_variance
            ),
            accuracy=float(accuracy),
            confidence=float(confidence),
            source=source,
            timestamp=timestamp,
        )

    @property
    def z(self) -> np.ndarray:
        return np.array([self.x, self.y])


@dataclass(frozen=True)
class FusionState:
    """
    Snapshot of the filter state [x, y, θ] and its 3×3 covariance.

    θ is in radians, counter-clockwise from +x. The covariance array is a
    read-only copy; the filter never hands out its internal buffers.
    """

    x: float
    y: float
    theta: float
    covariance: np.ndarray

    def __post_init__(self) -> None:
        P = np.array(self.covariance, dtype=float)
        if P.shape != (3, 3):
            raise ValueError(f"Covariance must have shape (3, 3), got {P.shape}")
        P.setflags(write=False)
        object.__setattr__(self, "covariance", P)

    @property
    def vector(self) -> np.ndarray:
        return np.array([self.x, self.y, self.theta])

    @property
    def sigma_x(self) -> float:
        return math.sqrt(max(self.covariance[0, 0], 0.0))

    @property
    def sigma_y(self) -> float:
        return math.sqrt(max(self.covariance[1, 1], 0.0))

    @property
    def sigma_theta(self) -> float:
        return math.sqrt(max(self.covariance[2, 2], 0.0))

    @property
    def accuracy(self) -> float:
        """√(var_x + var_y) in meters."""
        return math.sqrt(max(self.covariance[0, 0] + self.covariance[1, 1], 0.0))


@dataclass(frozen=True)
class FusedPosition:
    """
    Fused position emitted once per cycle.

    Attributes:
        x, y: Position (m), NaN when invalid.
        accuracy: √(var_x + var_y) (m).
        sigma_x, sigma_y: Per-axis standard deviations (m).
        sigma_theta: Heading standard deviation (rad).
        confidence: Confidence in [0, 1].
        source: Source tag of the fix applied this cycle, FUSION otherwise.
        timestamp: Cycle time (s).
        theta: Heading (rad), counter-clockwise from +x.
    """

    x: float
    y: float
    accuracy: float
    sigma_x: float
    sigma_y: float
    sigma_theta: float
    confidence: float
    source: PositionSource
    timestamp: float
    theta: float = 0.0

    @classmethod
    def invalid(cls, timestamp: float = 0.0) -> "FusedPosition":
        return cls(
            x=math.nan,
            y=math.nan,
            accuracy=math.inf,
            sigma_x=math.inf,
            sigma_y=math.inf,
            sigma_theta=math.inf,
            confidence=0.0,
            source=PositionSource.UNKNOWN,
            timestamp=timestamp,
            theta=math.nan,
        )

    @property
    def is_valid(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)
