"""
Multi-source position fusion.

This package provides:
    - types: Absolute measurements, filter state and fused output
    - fusion_filter: EKF over [x, y, theta] with drift correction
    - weighted_average: Confidence-weighted blend of absolute fixes and PDR
    - engine: Per-cycle orchestration of motion blending, predict and update
"""

from indoor_fusion.fusion.types import (
    AbsoluteMeasurement,
    FusedPosition,
    FusionMethod,
    FusionState,
    PositionSource,
    adaptive_measurement_covariance,
)
from indoor_fusion.fusion.fusion_filter import FusionEKF
from indoor_fusion.fusion.weighted_average import WeightedAverageFusion
from indoor_fusion.fusion.engine import (
    FusionEngine,
    combine_motion,
    effective_motion_weight,
    pdr_measurement,
)

__all__ = [
    "AbsoluteMeasurement",
    "FusedPosition",
    "FusionMethod",
    "FusionState",
    "PositionSource",
    "adaptive_measurement_covariance",
    "FusionEKF",
    "WeightedAverageFusion",
    "FusionEngine",
    "combine_motion",
    "effective_motion_weight",
    "pdr_measurement",
]
