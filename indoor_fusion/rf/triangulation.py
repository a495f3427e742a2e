"""
BLE beacon triangulation.

Two solvers share one result type:

    weighted_centroid       Confidence/inverse-range weighted mean of the
                            strongest beacons. Used with fewer than three
                            usable beacons and as the initial guess of the
                            least-squares solver.
    least_squares_position  Gradient descent on the confidence-weighted
                            range residuals Σ cᵢ·(‖p − bᵢ‖ − dᵢ)², starting
                            from the centroid and keeping the best iterate.

``triangulate`` picks the solver from the number of usable beacons. Beacons
without a live reading or with a non-positive or non-finite range are
discarded before any weighting.
"""

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import numpy as np

from ..config import TriangulationConfig
from ..fusion.types import AbsoluteMeasurement, PositionSource
from .dop import gdop_at, gdop_score
from .types import Beacon

logger = logging.getLogger(__name__)

# Beacon counts at which the count term of the confidence saturates
CENTROID_FULL_COUNT = 5
LEAST_SQUARES_FULL_COUNT = 8


class TriangulationMethod(Enum):
    NONE = "none"
    CENTROID = "centroid"
    LEAST_SQUARES = "least_squares"


@dataclass(frozen=True)
class TriangulationResult:
    """
    Output of a triangulation solver.

    Attributes:
        x, y: Estimated position (m). Zero when no beacon was usable.
        confidence: Result confidence in [0, 1].
        beacons_used: Number of beacons that entered the solution.
        gdop: Geometric dilution of precision (``inf`` for poor geometry).
        accuracy: RMS range residual at the solution (m), ``inf`` if none.
        average_error: Mean squared range residual of the least-squares
            solution, ``inf`` when least squares did not run.
        method: Solver that produced the position.
    """

    x: float
    y: float
    confidence: float
    beacons_used: int
    gdop: float = math.inf
    accuracy: float = math.inf
    average_error: float = math.inf
    method: TriangulationMethod = TriangulationMethod.NONE

    @classmethod
    def empty(cls) -> "TriangulationResult":
        return cls(x=0.0, y=0.0, confidence=0.0, beacons_used=0)

    @property
    def is_valid(self) -> bool:
        return self.beacons_used > 0

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y])

    def to_measurement(
        self, timestamp: float = 0.0, min_accuracy: float = 1.0
    ) -> Optional[AbsoluteMeasurement]:
        """
        Convert to an absolute measurement for the fusion filter.

        Args:
            timestamp: Measurement time (s).
            min_accuracy: Floor of the reported accuracy (m).

        Returns:
            AbsoluteMeasurement tagged BLE, or None for an empty result.
        """
        if not self.is_valid:
            return None
        accuracy = self.accuracy if math.isfinite(self.accuracy) else min_accuracy
        return AbsoluteMeasurement.from_accuracy(
            x=self.x,
            y=self.y,
            accuracy=max(accuracy, min_accuracy),
            confidence=self.confidence,
            source=PositionSource.BLE,
            timestamp=timestamp,
        )


def select_beacons(beacons: Iterable[Beacon], max_count: int) -> List[Beacon]:
    """Usable beacons sorted by descending range confidence, at most ``max_count``."""
    usable = [b for b in beacons if b.is_usable]
    usable.sort(key=lambda b: b.distance_confidence, reverse=True)
    return usable[:max_count]


def _arrays(beacons: List[Beacon]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    positions = np.array([[b.x, b.y] for b in beacons], dtype=float)
    distances = np.array([b.estimated_distance for b in beacons], dtype=float)
    confidences = np.array([b.distance_confidence for b in beacons], dtype=float)
    return positions, distances, confidences


def _rms_residual(position: np.ndarray, positions: np.ndarray, distances: np.ndarray) -> float:
    residuals = np.linalg.norm(positions - position, axis=1) - distances
    return float(np.sqrt(np.mean(residuals**2)))


def weighted_centroid(
    beacons: Iterable[Beacon],
    config: Optional[TriangulationConfig] = None,
) -> TriangulationResult:
    """
    Weighted centroid of the most confident beacons.

    Weights are ``wᵢ = cᵢ / dᵢ`` normalized to sum to one (equal weights if
    they are all zero). Confidence blends the beacon count ratio (30%), the
    mean range confidence (40%) and the geometry score 1/(1 + GDOP) (30%).

    Args:
        beacons: Candidate beacons.
        config: Solver parameters.

    Returns:
        TriangulationResult; ``TriangulationResult.empty()`` when no beacon is
        usable.

    Example:
        >>> result = weighted_centroid(beacons)
        >>> result.x, result.y, result.confidence
    """
    config = config or TriangulationConfig()
    selected = select_beacons(beacons, config.max_centroid_beacons)
    if not selected:
        return TriangulationResult.empty()

    positions, distances, confidences = _arrays(selected)
    weights = confidences / distances
    total = np.sum(weights)
    if total > 0:
        weights = weights / total
    else:
        weights = np.full(len(selected), 1.0 / len(selected))

    position = weights @ positions
    gdop = gdop_at(positions, position, config.min_range_m)
    count_ratio = min(len(selected) / CENTROID_FULL_COUNT, 1.0)
    confidence = 0.3 * count_ratio + 0.4 * float(np.mean(confidences)) + 0.3 * gdop_score(gdop)

    return TriangulationResult(
        x=float(position[0]),
        y=float(position[1]),
        confidence=float(np.clip(confidence, 0.0, 1.0)),
        beacons_used=len(selected),
        gdop=gdop,
        accuracy=_rms_residual(position, positions, distances),
        method=TriangulationMethod.CENTROID,
    )


def _range_gradient(
    position: np.ndarray,
    positions: np.ndarray,
    distances: np.ndarray,
    confidences: np.ndarray,
    min_range: float,
) -> Tuple[np.ndarray, float]:
    """Gradient of Σ cᵢ·(‖p − bᵢ‖ − dᵢ)² and the mean squared residual at p."""
    diff = position - positions
    ranges = np.linalg.norm(diff, axis=1)
    valid = ranges >= min_range

    errors = ranges[valid] - distances[valid]
    directions = diff[valid] / ranges[valid, np.newaxis]
    gradient = np.sum((2.0 * errors * confidences[valid])[:, np.newaxis] * directions, axis=0)
    mse = float(np.sum(errors**2) / len(distances))
    return gradient, mse


def least_squares_position(
    beacons: Iterable[Beacon],
    config: Optional[TriangulationConfig] = None,
) -> TriangulationResult:
    """
    Range-based least-squares position by gradient descent.

    Starts from the weighted centroid and descends with a fixed learning
    rate, stopping early once the mean squared residual drops below
    ``convergence_threshold``. The iterate with the lowest residual is
    returned. With fewer than ``min_least_squares_beacons`` usable beacons the
    weighted centroid is returned with ``average_error = inf``.

    Confidence blends the count ratio (20%), mean range confidence (30%),
    residual score 1/(1 + mse) (30%) and geometry score 1/(1 + GDOP) (20%).

    Args:
        beacons: Candidate beacons.
        config: Solver parameters.

    Returns:
        TriangulationResult.
    """
    config = config or TriangulationConfig()
    beacons = list(beacons)
    selected = select_beacons(beacons, config.max_least_squares_beacons)
    if len(selected) < config.min_least_squares_beacons:
        logger.debug(
            "Least squares needs %d beacons, have %d; using centroid",
            config.min_least_squares_beacons, len(selected),
        )
        return replace(weighted_centroid(beacons, config), average_error=math.inf)

    positions, distances, confidences = _arrays(selected)
    initial = weighted_centroid(selected, config)
    position = initial.position

    best_position = position.copy()
    best_error = math.inf
    for _ in range(config.max_iterations):
        gradient, error = _range_gradient(
            position, positions, distances, confidences, config.min_range_m
        )
        if error < best_error:
            best_error = error
            best_position = position.copy()
        if error < config.convergence_threshold:
            break
        position = position - config.learning_rate * gradient
    else:
        _, error = _range_gradient(position, positions, distances, confidences, config.min_range_m)
        if error < best_error:
            best_error = error
            best_position = position.copy()

    gdop = gdop_at(positions, best_position, config.min_range_m)
    count_ratio = min(len(selected) / LEAST_SQUARES_FULL_COUNT, 1.0)
    confidence = (
        0.2 * count_ratio
        + 0.3 * float(np.mean(confidences))
        + 0.3 / (1.0 + best_error)
        + 0.2 * gdop_score(gdop)
    )
    logger.debug(
        "Least squares: (%.2f, %.2f) mse=%.3f gdop=%.2f with %d beacons",
        best_position[0], best_position[1], best_error, gdop, len(selected),
    )

    return TriangulationResult(
        x=float(best_position[0]),
        y=float(best_position[1]),
        confidence=float(np.clip(confidence, 0.0, 1.0)),
        beacons_used=len(selected),
        gdop=gdop,
        accuracy=_rms_residual(best_position, positions, distances),
        average_error=best_error,
        method=TriangulationMethod.LEAST_SQUARES,
    )


def triangulate(
    beacons: Iterable[Beacon],
    config: Optional[TriangulationConfig] = None,
) -> TriangulationResult:
    """Least squares with enough usable beacons, weighted centroid otherwise."""
    config = config or TriangulationConfig()
    beacons = list(beacons)
    usable = sum(1 for b in beacons if b.is_usable)
    if usable >= config.min_least_squares_beacons:
        return least_squares_position(beacons, config)
    return weighted_centroid(beacons, config)
