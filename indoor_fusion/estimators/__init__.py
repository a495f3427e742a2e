"""
State estimation algorithms.

Available estimators:
    - Extended Kalman Filter (EKF) with LU-based gain and singular-S skipping
"""

from indoor_fusion.estimators.base import StateEstimator
from indoor_fusion.estimators.extended_kalman_filter import ExtendedKalmanFilter, symmetrize

__all__ = [
    "StateEstimator",
    "ExtendedKalmanFilter",
    "symmetrize",
]
