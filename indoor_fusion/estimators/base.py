"""
Base classes for state estimators.

This module defines the common interface of the recursive estimators used by
the fusion core.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np


class StateEstimator(ABC):
    """Abstract base class for recursive state estimators."""

    def __init__(self, state_dim: int):
        """
        Initialize state estimator.

        Args:
            state_dim: Dimension of the state vector.
        """
        self.state_dim = state_dim
        self.state: Optional[np.ndarray] = None
        self.covariance: Optional[np.ndarray] = None

    @abstractmethod
    def predict(self, u: Optional[np.ndarray] = None, dt: float = 1.0) -> None:
        """
        Perform prediction step (time update).

        Args:
            u: Optional control input vector.
            dt: Time step in seconds.
        """

    @abstractmethod
    def update(self, z: np.ndarray, R: Optional[np.ndarray] = None) -> bool:
        """
        Perform measurement update (correction step).

        Args:
            z: Measurement vector.
            R: Optional measurement covariance overriding the default.

        Returns:
            True if the update was applied.
        """

    def initialize(self, x0: np.ndarray, P0: np.ndarray) -> None:
        """Set state and covariance."""
        x0 = np.asarray(x0, dtype=float).copy()
        P0 = np.asarray(P0, dtype=float).copy()
        if x0.shape != (self.state_dim,):
            raise ValueError(f"x0 shape {x0.shape} inconsistent with state_dim {self.state_dim}")
        if P0.shape != (self.state_dim, self.state_dim):
            raise ValueError(f"P0 shape {P0.shape} inconsistent with state_dim {self.state_dim}")
        self.state = x0
        self.covariance = P0

    def reset(self) -> None:
        """Drop state and covariance; the estimator must be re-initialized."""
        self.state = None
        self.covariance = None

    @property
    def is_initialized(self) -> bool:
        return self.state is not None and self.covariance is not None

    def get_state(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Get current state estimate and covariance.

        Returns:
            Tuple of (state_vector, covariance_matrix).
        """
        if self.state is None or self.covariance is None:
            raise RuntimeError("Estimator not initialized. Call initialize() first.")
        return self.state.copy(), self.covariance.copy()
