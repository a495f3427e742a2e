"""
BLE beacon positioning.

This package provides:
    - types: Beacon reference data with live range estimates
    - dop: 2D geometry matrix and GDOP
    - triangulation: Weighted centroid and least-squares solvers
"""

from indoor_fusion.rf.types import Beacon
from indoor_fusion.rf.dop import (
    compute_gdop,
    compute_geometry_matrix,
    gdop_at,
    gdop_score,
)
from indoor_fusion.rf.triangulation import (
    TriangulationMethod,
    TriangulationResult,
    least_squares_position,
    select_beacons,
    triangulate,
    weighted_centroid,
)

__all__ = [
    "Beacon",
    "compute_geometry_matrix",
    "compute_gdop",
    "gdop_at",
    "gdop_score",
    "TriangulationMethod",
    "TriangulationResult",
    "select_beacons",
    "weighted_centroid",
    "least_squares_position",
    "triangulate",
]
