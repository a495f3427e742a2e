"""
Inertial sensing for pedestrian tracking.

This package provides:
    - types: Sensor sample variants and the per-cycle motion estimate
    - step_detection: Adaptive and fixed-threshold step detectors
    - step_length: Walking-pattern aware step length estimator
    - pdr: Step-and-heading dead reckoning
"""

from indoor_fusion.sensors.types import (
    AccelerometerSample,
    CombinedSample,
    GyroscopeSample,
    MotionEstimate,
    SensorSample,
)
from indoor_fusion.sensors.step_detection import (
    SimpleStepDetector,
    StepDetectionResult,
    StepDetector,
    StepState,
)
from indoor_fusion.sensors.step_length import (
    StepLengthEstimator,
    WalkingPattern,
    classify_walking_pattern,
)
from indoor_fusion.sensors.pdr import (
    PdrIntegrator,
    PdrPosition,
    heading_to_theta,
    motion_from_steps,
    pdr_step_update,
)

__all__ = [
    # Samples
    "AccelerometerSample",
    "GyroscopeSample",
    "CombinedSample",
    "SensorSample",
    "MotionEstimate",
    # Step detection
    "StepDetector",
    "SimpleStepDetector",
    "StepDetectionResult",
    "StepState",
    # Step length
    "StepLengthEstimator",
    "WalkingPattern",
    "classify_walking_pattern",
    # PDR
    "PdrIntegrator",
    "PdrPosition",
    "pdr_step_update",
    "heading_to_theta",
    "motion_from_steps",
]
