"""
Evaluation metrics for fused indoor positions.

Functions accept either (N, 2) arrays or sequences of FusedPosition; invalid
positions (NaN) are excluded where noted.
"""

from typing import Dict, Optional, Sequence, Union

import numpy as np

from ..fusion.types import FusedPosition


def positions_to_array(positions: Sequence[FusedPosition]) -> np.ndarray:
    """Stack FusedPosition coordinates into an (N, 2) array (NaN rows for invalid ones)."""
    return np.array([[p.x, p.y] for p in positions], dtype=float).reshape(-1, 2)


def compute_position_errors(
    truth: np.ndarray, estimated: Union[np.ndarray, Sequence[FusedPosition]]
) -> np.ndarray:
    """
    Compute 2D position error vectors.

    Args:
        truth: True positions, shape (N, 2).
        estimated: Estimated positions, shape (N, 2), or N FusedPositions.

    Returns:
        errors: estimated − truth, shape (N, 2).

    Raises:
        ValueError: If inputs have incompatible shapes.
    """
    truth = np.asarray(truth, dtype=float)
    if len(estimated) and isinstance(estimated[0], FusedPosition):
        estimated = positions_to_array(estimated)
    estimated = np.asarray(estimated, dtype=float)

    if truth.shape != estimated.shape:
        raise ValueError(
            f"Shape mismatch: truth {truth.shape} vs estimated {estimated.shape}"
        )
    return estimated - truth


def compute_rmse(errors: np.ndarray, axis: Optional[int] = None) -> Union[float, np.ndarray]:
    """
    Compute Root Mean Square Error, ignoring NaN rows.

    Args:
        errors: Error vectors, shape (N, d) or (N,).
        axis: None for a scalar 2D RMSE (√ mean ‖e‖²), 0 for per-axis RMSE.

    Returns:
        rmse: RMSE value(s).
    """
    errors = np.asarray(errors, dtype=float)
    if errors.ndim > 1:
        errors = errors[~np.any(np.isnan(errors), axis=1)]
        if axis is None:
            return float(np.sqrt(np.mean(np.sum(errors**2, axis=1))))
        return np.sqrt(np.mean(errors**2, axis=axis))
    errors = errors[~np.isnan(errors)]
    return float(np.sqrt(np.mean(errors**2)))


def compute_error_stats(errors: np.ndarray) -> Dict[str, float]:
    """
    Summary statistics of error magnitudes.

    Args:
        errors: Error vectors, shape (N, d) or (N,).

    Returns:
        Dictionary with 'mean', 'median', 'std', 'rmse', 'p50', 'p75', 'p90',
        'p95', 'max' and 'count' (number of valid samples).
    """
    errors = np.asarray(errors, dtype=float)
    if errors.ndim > 1:
        magnitudes = np.linalg.norm(errors, axis=1)
    else:
        magnitudes = np.abs(errors)
    magnitudes = magnitudes[~np.isnan(magnitudes)]
    if magnitudes.size == 0:
        raise ValueError("No valid errors to summarize")

    return {
        "mean": float(np.mean(magnitudes)),
        "median": float(np.median(magnitudes)),
        "std": float(np.std(magnitudes)),
        "rmse": float(np.sqrt(np.mean(magnitudes**2))),
        "p50": float(np.percentile(magnitudes, 50)),
        "p75": float(np.percentile(magnitudes, 75)),
        "p90": float(np.percentile(magnitudes, 90)),
        "p95": float(np.percentile(magnitudes, 95)),
        "max": float(np.max(magnitudes)),
        "count": float(magnitudes.size),
    }


def compute_nees(truth: np.ndarray, positions: Sequence[FusedPosition]) -> np.ndarray:
    """
    Normalized Estimation Error Squared of the position, per sample.

        NEES = eᵀ diag(σx², σy²)⁻¹ e

    For a consistent filter NEES is χ²-distributed with 2 degrees of freedom
    (mean 2). Invalid positions and zero sigmas give NaN.

    Args:
        truth: True positions, shape (N, 2).
        positions: N FusedPositions.

    Returns:
        nees: shape (N,).
    """
    errors = compute_position_errors(truth, positions)
    sx = np.array([p.sigma_x for p in positions], dtype=float)
    sy = np.array([p.sigma_y for p in positions], dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        nees = (errors[:, 0] / sx) ** 2 + (errors[:, 1] / sy) ** 2
    nees[~np.isfinite(nees)] = np.nan
    return nees


def accuracy_coverage(truth: np.ndarray, positions: Sequence[FusedPosition]) -> float:
    """Fraction of valid positions whose error is within the reported accuracy."""
    errors = compute_position_errors(truth, positions)
    magnitudes = np.linalg.norm(errors, axis=1)
    accuracy = np.array([p.accuracy for p in positions], dtype=float)
    valid = np.isfinite(magnitudes) & np.isfinite(accuracy)
    if not np.any(valid):
        return 0.0
    return float(np.mean(magnitudes[valid] <= accuracy[valid]))
