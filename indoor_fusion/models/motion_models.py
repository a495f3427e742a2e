"""
Planar unicycle motion model for the fusion filter.

State: x = [x, y, θ] (m, m, rad, θ counter-clockwise from +x)
Control: u = [v, ω] (forward speed m/s, yaw rate rad/s)

For |ω| below a small threshold the straight-line model is used:

    x' = x + v·cosθ·Δt
    y' = y + v·sinθ·Δt
    θ' = θ

otherwise the closed-form arc:

    x' = x − (v/ω)·sinθ + (v/ω)·sin(θ + ωΔt)
    y' = y + (v/ω)·cosθ − (v/ω)·cos(θ + ωΔt)
    θ' = θ + ωΔt
"""

import math
from typing import Optional

import numpy as np

DEFAULT_STRAIGHT_EPSILON = 1e-4


def wrap_angle(angle: float) -> float:
    """Wrap an angle to (−π, π]."""
    wrapped = math.atan2(math.sin(angle), math.cos(angle))
    return math.pi if wrapped == -math.pi else wrapped


class UnicycleModel:
    """
    Unicycle (constant speed and yaw rate) motion model.

    Example:
        >>> x = np.array([0.0, 0.0, 0.0])
        >>> UnicycleModel.f(x, np.array([1.0, 0.0]), dt=2.0)
        array([2., 0., 0.])
    """

    @staticmethod
    def f(
        x: np.ndarray,
        u: Optional[np.ndarray] = None,
        dt: float = 1.0,
        epsilon: float = DEFAULT_STRAIGHT_EPSILON,
    ) -> np.ndarray:
        """
        Process model x_{k+1} = f(x_k, u_k, Δt).

        Args:
            x: State [x, y, θ].
            u: Control [v, ω]; None means no motion.
            dt: Time step (s).
            epsilon: Yaw-rate threshold for the straight-line model.

        Returns:
            Next state with θ wrapped to (−π, π].
        """
        x = np.asarray(x, dtype=float)
        if x.shape != (3,):
            raise ValueError(f"State must be [x, y, theta], got shape {x.shape}")
        if u is None:
            return x.copy()

        v, w = float(u[0]), float(u[1])
        px, py, theta = x
        if abs(w) < epsilon:
            px += v * math.cos(theta) * dt
            py += v * math.sin(theta) * dt
        else:
            r = v / w
            px += -r * math.sin(theta) + r * math.sin(theta + w * dt)
            py += r * math.cos(theta) - r * math.cos(theta + w * dt)
            theta += w * dt
        return np.array([px, py, wrap_angle(theta)])

    @staticmethod
    def F(
        x: np.ndarray,
        u: Optional[np.ndarray] = None,
        dt: float = 1.0,
        epsilon: float = DEFAULT_STRAIGHT_EPSILON,
    ) -> np.ndarray:
        """
        Jacobian ∂f/∂x evaluated at ``x``.

        Only the position rows depend on θ:

            straight: G[0,2] = −v·sinθ·Δt,  G[1,2] = v·cosθ·Δt
            arc:      G[0,2] = −(v/ω)·cosθ + (v/ω)·cos(θ + ωΔt)
                      G[1,2] = −(v/ω)·sinθ + (v/ω)·sin(θ + ωΔt)

        Returns:
            3×3 Jacobian.
        """
        G = np.eye(3)
        if u is None:
            return G

        v, w = float(u[0]), float(u[1])
        theta = float(x[2])
        if abs(w) < epsilon:
            G[0, 2] = -v * math.sin(theta) * dt
            G[1, 2] = v * math.cos(theta) * dt
        else:
            r = v / w
            G[0, 2] = -r * math.cos(theta) + r * math.cos(theta + w * dt)
            G[1, 2] = -r * math.sin(theta) + r * math.sin(theta + w * dt)
        return G

    @staticmethod
    def Q(
        dt: float,
        velocity: float = 0.0,
        position_noise: float = 0.05,
        heading_noise: float = 0.02,
        velocity_gain: float = 2.0,
    ) -> np.ndarray:
        """
        Process noise covariance, growing with Δt and speed.

            vf = 1 + velocity_gain·|v|
            Q  = diag(q_pos·Δt·vf, q_pos·Δt·vf, q_head·Δt·vf)

        Args:
            dt: Time step (s).
            velocity: Forward speed (m/s).
            position_noise: Position noise density (m²/s).
            heading_noise: Heading noise density (rad²/s).
            velocity_gain: Speed inflation gain.

        Returns:
            3×3 diagonal covariance.
        """
        vf = 1.0 + velocity_gain * abs(velocity)
        return np.diag([
            position_noise * dt * vf,
            position_noise * dt * vf,
            heading_noise * dt * vf,
        ])
