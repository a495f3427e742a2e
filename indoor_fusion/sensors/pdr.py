"""
Pedestrian dead reckoning (PDR) integration.

Headings handled here are compass headings: degrees, clockwise from the map's
+y axis ("north"). A step of length L at heading ψ moves the position by

    Δx = L·sin(ψ),  Δy = L·cos(ψ)

The fusion filter uses the mathematical convention instead (θ in radians,
counter-clockwise from +x); ``heading_to_theta`` converts between the two and
``motion_from_steps`` turns step events into the velocity/yaw-rate form the
filter consumes.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import PdrConfig
from ..models.motion_models import wrap_angle
from .types import MotionEstimate

logger = logging.getLogger(__name__)


def heading_to_theta(heading_deg: float) -> float:
    """
    Convert a compass heading to the filter's yaw angle.

    Args:
        heading_deg: Heading in degrees, clockwise from +y.

    Returns:
        Yaw in radians, counter-clockwise from +x, wrapped to (−π, π].

    Example:
        >>> heading_to_theta(90.0)   # east
        0.0
    """
    return wrap_angle(math.pi / 2.0 - math.radians(heading_deg))


def pdr_step_update(x: float, y: float, step_length: float, heading_deg: float):
    """
    Advance a 2D position by one step.

    Args:
        x: Previous x (m).
        y: Previous y (m).
        step_length: Step length (m), non-negative.
        heading_deg: Compass heading in degrees.

    Returns:
        Tuple (x, y) after the step.

    Example:
        >>> pdr_step_update(0.0, 0.0, 0.7, 0.0)
        (0.0, 0.7)
    """
    if step_length < 0:
        raise ValueError(f"step_length must be non-negative, got {step_length}")
    heading_rad = math.radians(heading_deg)
    return x + step_length * math.sin(heading_rad), y + step_length * math.cos(heading_rad)


def motion_from_steps(
    step_length: float,
    interval_s: float,
    heading_change_rad: float = 0.0,
) -> MotionEstimate:
    """
    Express a step as a motion estimate over the step interval.

    Args:
        step_length: Step length (m).
        interval_s: Time covered by the step (s), positive.
        heading_change_rad: Change of compass heading over the step (rad,
            clockwise positive).

    Returns:
        MotionEstimate with ``velocity = L / Δt`` and a counter-clockwise
        yaw rate ``-Δψ / Δt``.
    """
    if interval_s <= 0:
        raise ValueError(f"interval_s must be positive, got {interval_s}")
    if step_length < 0:
        raise ValueError(f"step_length must be non-negative, got {step_length}")
    return MotionEstimate(
        velocity=step_length / interval_s,
        angular_velocity=-wrap_angle(heading_change_rad) / interval_s,
    )


@dataclass(frozen=True)
class PdrPosition:
    """
    Dead-reckoned position.

    Attributes:
        x, y: Position (m).
        accuracy: Accumulated 1-sigma radius (m).
        confidence: Confidence in [0, 1].
        timestamp_ns: Time of the last update.
    """

    x: float
    y: float
    accuracy: float
    confidence: float
    timestamp_ns: int = 0

    @classmethod
    def invalid(cls) -> "PdrPosition":
        return cls(math.nan, math.nan, math.inf, 0.0, 0)

    @property
    def is_valid(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


class PdrIntegrator:
    """
    Accumulates step displacements into a relative position.

    Only the latest position is kept. Each step grows ``accuracy`` by a fixed
    amount and decays ``confidence`` by ``(1 - confidence_decay)`` scaled by
    the step's detection confidence.

    Example:
        >>> pdr = PdrIntegrator()
        >>> pdr.set_position(PdrPosition(0.0, 0.0, 1.0, 1.0))
        >>> pos = pdr.update(True, 0.7, 90.0)
        >>> round(pos.x, 3), round(pos.y, 3)
        (0.7, 0.0)
    """

    def __init__(self, config: Optional[PdrConfig] = None):
        self.config = config or PdrConfig()
        self._position: Optional[PdrPosition] = None

    @property
    def position(self) -> PdrPosition:
        return self._position if self._position is not None else PdrPosition.invalid()

    def set_position(self, position: PdrPosition) -> None:
        """Seed or re-anchor the integrator (e.g. on an absolute fix)."""
        if not position.is_valid:
            raise ValueError("Cannot anchor PDR to an invalid position")
        self._position = position

    def reset(self) -> None:
        self._position = None

    def update(
        self,
        step_detected: bool,
        step_length: float,
        heading_deg: float,
        prior: Optional[PdrPosition] = None,
        step_confidence: Optional[float] = None,
        timestamp_ns: Optional[int] = None,
    ) -> PdrPosition:
        """
        Apply one step (or no step) to the position.

        Args:
            step_detected: Whether a step occurred.
            step_length: Step length (m).
            heading_deg: Compass heading (degrees).
            prior: Position to start from; defaults to the integrator's own.
            step_confidence: Detection confidence of the step, defaults to
                ``config.default_step_confidence``.
            timestamp_ns: Timestamp of the step.

        Returns:
            The new position, the prior one when no step occurred, or
            ``PdrPosition.invalid()`` when there is nothing to start from.
        """
        start = prior if prior is not None else self._position
        if start is None or not start.is_valid:
            return PdrPosition.invalid()
        if not step_detected:
            return start

        if step_confidence is None:
            step_confidence = self.config.default_step_confidence
        step_confidence = float(np.clip(step_confidence, 0.0, 1.0))

        x, y = pdr_step_update(start.x, start.y, step_length, heading_deg)
        confidence = float(
            np.clip(start.confidence * (1.0 - self.config.confidence_decay) * step_confidence, 0.0, 1.0)
        )
        self._position = PdrPosition(
            x=x,
            y=y,
            accuracy=start.accuracy + self.config.accuracy_growth_per_step,
            confidence=confidence,
            timestamp_ns=start.timestamp_ns if timestamp_ns is None else timestamp_ns,
        )
        logger.debug("PDR step to (%.2f, %.2f), accuracy %.2f m", x, y, self._position.accuracy)
        return self._position
