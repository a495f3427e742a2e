"""
Geometric dilution of precision (GDOP) for 2D range positioning.

The geometry matrix stacks the unit line-of-sight vectors from the position
estimate to each beacon:

    G[i, :] = (b_i − p) / ‖b_i − p‖

and with the 2×2 normal matrix N = GᵀG

    GDOP = √(trace(N⁻¹)) = √((N_xx + N_yy) / det(N))

Collinear beacons (or fewer than two) make N singular; GDOP is then the
sentinel ``math.inf`` ("poor geometry") rather than an exception. GDOP only
modulates confidence and never rejects a position.
"""

import math
from typing import Sequence, Union

import numpy as np

# det(N) at or below this is treated as singular geometry
SINGULAR_DETERMINANT = 1e-3


def compute_geometry_matrix(
    beacon_positions: np.ndarray,
    position: np.ndarray,
    min_range: float = 0.1,
) -> np.ndarray:
    """
    Compute the 2D geometry matrix of unit vectors position → beacon.

    Args:
        beacon_positions: Beacon positions, shape (N, 2).
        position: Position estimate, shape (2,).
        min_range: Beacons closer than this get a zero row (direction undefined).

    Returns:
        Geometry matrix G, shape (N, 2).

    Example:
        >>> beacons = np.array([[0, 0], [10, 0], [10, 10], [0, 10]])
        >>> G = compute_geometry_matrix(beacons, np.array([5.0, 5.0]))
        >>> G.shape
        (4, 2)
    """
    beacon_positions = np.asarray(beacon_positions, dtype=float).reshape(-1, 2)
    position = np.asarray(position, dtype=float)
    if position.shape != (2,):
        raise ValueError(f"position must have shape (2,), got {position.shape}")

    diff = beacon_positions - position
    ranges = np.linalg.norm(diff, axis=1)
    G = np.zeros_like(diff)
    valid = ranges >= min_range
    G[valid] = diff[valid] / ranges[valid, np.newaxis]
    return G


def compute_gdop(geometry_matrix: np.ndarray) -> float:
    """
    Compute GDOP from a 2D geometry matrix.

    Args:
        geometry_matrix: Matrix G, shape (N, 2).

    Returns:
        GDOP, or ``math.inf`` when fewer than two rows are given or the normal
        matrix is (near) singular.

    Example:
        >>> beacons = np.array([[0, 0], [10, 0], [10, 10], [0, 10]])
        >>> G = compute_geometry_matrix(beacons, np.array([5.0, 5.0]))
        >>> round(compute_gdop(G), 2)
        1.0
    """
    G = np.asarray(geometry_matrix, dtype=float).reshape(-1, 2)
    if G.shape[0] < 2:
        return math.inf

    N = G.T @ G
    det = N[0, 0] * N[1, 1] - N[0, 1] * N[1, 0]
    if det <= SINGULAR_DETERMINANT:
        return math.inf
    return float(math.sqrt((N[0, 0] + N[1, 1]) / det))


def gdop_at(
    beacon_positions: Union[np.ndarray, Sequence[Sequence[float]]],
    position: np.ndarray,
    min_range: float = 0.1,
) -> float:
    """GDOP of ``beacon_positions`` seen from ``position``."""
    return compute_gdop(compute_geometry_matrix(np.asarray(beacon_positions), position, min_range))


def gdop_score(gdop: float) -> float:
    """Map GDOP to a geometry quality in [0, 1]: 1/(1 + GDOP), 0 for infinite GDOP."""
    if not math.isfinite(gdop):
        return 0.0
    return 1.0 / (1.0 + gdop)
