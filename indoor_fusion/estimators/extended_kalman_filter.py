"""
Extended Kalman Filter for nonlinear process models.

    Prediction:
        x̂_k^- = f(x̂_{k-1}, u_k)
        P_k^- = F_{k-1} P_{k-1} F_{k-1}^T + Q

    Update:
        ν = z − h(x̂_k^-)
        S = H P_k^- H^T + R
        K = P_k^- H^T S^{-1}        (S factorized by LU)
        x̂_k = x̂_k^- + K ν
        P_k = (I − K H) P_k^-

F is evaluated at the pre-prediction state. A (numerically) singular S makes
``update`` return False and leave the state untouched instead of raising.
"""

import logging
import warnings
from typing import Callable, Optional

import numpy as np
from scipy.linalg import LinAlgWarning, lu_factor, lu_solve

from indoor_fusion.estimators.base import StateEstimator

logger = logging.getLogger(__name__)


def symmetrize(P: np.ndarray) -> np.ndarray:
    """Return 0.5·(P + Pᵀ)."""
    return 0.5 * (P + P.T)


class ExtendedKalmanFilter(StateEstimator):
    """
    Extended Kalman Filter with callable models.

    Attributes:
        process_model: Function f(x, u, dt) -> x_next.
        process_jacobian: Function F(x, u, dt) -> ∂f/∂x (n×n).
        measurement_model: Function h(x) -> z_pred.
        measurement_jacobian: Function H(x) -> ∂h/∂x (m×n).
        Q: Function Q(dt, u) -> process noise covariance (n×n).
        R: Function R() -> default measurement covariance (m×m).
        state: Current state estimate (n,), None until initialized.
        covariance: Current covariance (n×n), None until initialized.
    """

    def __init__(
        self,
        process_model: Callable[[np.ndarray, Optional[np.ndarray], float], np.ndarray],
        process_jacobian: Callable[[np.ndarray, Optional[np.ndarray], float], np.ndarray],
        measurement_model: Callable[[np.ndarray], np.ndarray],
        measurement_jacobian: Callable[[np.ndarray], np.ndarray],
        Q: Callable[[float, Optional[np.ndarray]], np.ndarray],
        R: Callable[[], np.ndarray],
        state_dim: int,
        x0: Optional[np.ndarray] = None,
        P0: Optional[np.ndarray] = None,
        singular_tolerance: float = 1e-12,
    ):
        """
        Initialize the filter.

        Args:
            process_model: Nonlinear state transition f(x, u, dt).
            process_jacobian: Jacobian of the process model.
            measurement_model: Measurement function h(x).
            measurement_jacobian: Jacobian of the measurement model.
            Q: Process noise covariance as a function of (dt, u).
            R: Default measurement noise covariance.
            state_dim: Dimension of the state.
            x0: Optional initial state. When omitted the filter starts
                uninitialized and ``initialize`` must be called.
            P0: Initial covariance, required together with ``x0``.
            singular_tolerance: LU pivots below this mark S as singular.

        Raises:
            ValueError: If dimensions are inconsistent or only one of x0/P0
                is given.
        """
        super().__init__(state_dim)
        self.process_model = process_model
        self.process_jacobian = process_jacobian
        self.measurement_model = measurement_model
        self.measurement_jacobian = measurement_jacobian
        self.Q = Q
        self.R = R
        self.singular_tolerance = singular_tolerance

        if (x0 is None) != (P0 is None):
            raise ValueError("x0 and P0 must be given together")
        if x0 is not None:
            self.initialize(x0, P0)

    def predict(self, u: Optional[np.ndarray] = None, dt: float = 1.0) -> None:
        """
        Propagate state and covariance by ``dt``.

        Args:
            u: Optional control input.
            dt: Time step in seconds.

        Raises:
            RuntimeError: If the filter is not initialized.
        """
        if self.state is None or self.covariance is None:
            raise RuntimeError("State and covariance must be initialized")

        x_pre = self.state.copy()
        # Jacobian at the pre-prediction state
        F = self.process_jacobian(x_pre, u, dt)
        self.state = self.process_model(x_pre, u, dt)
        self.covariance = symmetrize(F @ self.covariance @ F.T + self.Q(dt, u))

    def update(self, z: np.ndarray, R: Optional[np.ndarray] = None) -> bool:
        """
        Correct the state with measurement ``z``.

        Args:
            z: Measurement vector (m,).
            R: Measurement covariance (m×m); defaults to ``self.R()``.

        Returns:
            True if applied, False if S was singular and the update skipped.

        Raises:
            RuntimeError: If the filter is not initialized.
        """
        if self.state is None or self.covariance is None:
            raise RuntimeError("Must initialize before update()")

        z = np.asarray(z, dtype=float)
        R = self.R() if R is None else np.asarray(R, dtype=float)

        z_pred = self.measurement_model(self.state)
        H = self.measurement_jacobian(self.state)
        innovation = z - z_pred

        P = self.covariance
        S = H @ P @ H.T + R
        if not np.all(np.isfinite(S)):
            logger.warning("Non-finite innovation covariance; update skipped")
            return False

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", LinAlgWarning)
            lu, piv = lu_factor(S)
        if np.min(np.abs(np.diag(lu))) < self.singular_tolerance:
            logger.warning("Singular innovation covariance; update skipped")
            return False

        # K^T = S^{-T} H P^T
        K = lu_solve((lu, piv), H @ P.T, trans=1).T

        self.state = self.state + K @ innovation
        I_KH = np.eye(self.state_dim) - K @ H
        self.covariance = symmetrize(I_KH @ P)
        return True
