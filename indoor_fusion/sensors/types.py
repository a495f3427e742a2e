"""
Sensor sample types consumed by the step detector and step length estimator.

Samples form a closed set of variants:

    SensorSample = AccelerometerSample | GyroscopeSample | CombinedSample

Consumers dispatch with ``isinstance`` over exactly these three classes and
raise ``TypeError`` for anything else. Timestamps are integer nanoseconds
from a monotonic clock, as delivered by the platform sensor stack.
"""

import math
from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np

Vector3 = Tuple[float, float, float]

NANOS_PER_MILLI = 1_000_000
NANOS_PER_SECOND = 1_000_000_000


def _as_vector3(name: str, value) -> Vector3:
    arr = np.asarray(value, dtype=float)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {arr.shape}")
    return (float(arr[0]), float(arr[1]), float(arr[2]))


@dataclass(frozen=True)
class AccelerometerSample:
    """Raw accelerometer reading (m/s², gravity included)."""

    x: float
    y: float
    z: float
    timestamp_ns: int

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)


@dataclass(frozen=True)
class GyroscopeSample:
    """Raw gyroscope reading (rad/s)."""

    x: float
    y: float
    z: float
    timestamp_ns: int

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)


@dataclass(frozen=True)
class CombinedSample:
    """
    Time-aligned accelerometer, linear acceleration and gyroscope reading.

    Attributes:
        acceleration: Specific force including gravity (m/s²).
        linear_acceleration: Acceleration with gravity removed (m/s²).
        gyroscope: Angular rate (rad/s).
        timestamp_ns: Sample time in nanoseconds.
    """

    acceleration: Vector3
    linear_acceleration: Vector3
    gyroscope: Vector3
    timestamp_ns: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "acceleration", _as_vector3("acceleration", self.acceleration))
        object.__setattr__(
            self, "linear_acceleration", _as_vector3("linear_acceleration", self.linear_acceleration)
        )
        object.__setattr__(self, "gyroscope", _as_vector3("gyroscope", self.gyroscope))

    @property
    def magnitude(self) -> float:
        return float(np.linalg.norm(self.acceleration))

    @property
    def linear_magnitude(self) -> float:
        return float(np.linalg.norm(self.linear_acceleration))

    @property
    def gyro_magnitude(self) -> float:
        return float(np.linalg.norm(self.gyroscope))

    def accelerometer(self) -> AccelerometerSample:
        return AccelerometerSample(*self.acceleration, timestamp_ns=self.timestamp_ns)

    def gyroscope_sample(self) -> GyroscopeSample:
        return GyroscopeSample(*self.gyroscope, timestamp_ns=self.timestamp_ns)


SensorSample = Union[AccelerometerSample, GyroscopeSample, CombinedSample]


@dataclass(frozen=True)
class MotionEstimate:
    """
    Planar motion over one fusion cycle.

    Attributes:
        velocity: Forward speed (m/s).
        angular_velocity: Yaw rate (rad/s), counter-clockwise positive.
    """

    velocity: float = 0.0
    angular_velocity: float = 0.0

    def __post_init__(self) -> None:
        if not (math.isfinite(self.velocity) and math.isfinite(self.angular_velocity)):
            raise ValueError(
                f"MotionEstimate must be finite, got velocity={self.velocity}, "
                f"angular_velocity={self.angular_velocity}"
            )

    @classmethod
    def zero(cls) -> "MotionEstimate":
        return cls(0.0, 0.0)
