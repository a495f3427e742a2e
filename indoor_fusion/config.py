"""
Configuration for the indoor fusion engine.

Each stateful or tunable component owns one frozen dataclass holding its
parameters, with units spelled out in the field names where they are not SI.
``EngineConfig`` groups them, and ``load_config`` reads them from a YAML file
with one optional section per component:

    step_detector:
      peak_threshold: 10.8
    fingerprint_matcher:
      k: 4
    fusion:
      position_noise: 0.08

Missing sections and keys fall back to the defaults below.
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValueError(f"{name} must be in [{low}, {high}], got {value}")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class StepDetectorConfig:
    """
    Parameters of the adaptive peak/valley step detector.

    Attributes:
        accel_alpha: Exponential smoothing factor for acceleration magnitude.
        gyro_alpha: Exponential smoothing factor for gyroscope magnitude.
        peak_threshold: Static peak threshold (m/s²). Adaptive thresholds are
            clamped to ±``adaptive_clamp`` of this value.
        valley_threshold: Static valley threshold (m/s²).
        min_peak_valley_height: Minimum peak-to-valley swing of a step (m/s²).
        min_step_interval_ms: Shortest accepted time between steps.
        max_step_interval_ms: Longest accepted time between steps.
        gyro_threshold: Minimum smoothed gyroscope magnitude (rad/s) at the
            valley. Only applied when gyroscope data has been seen.
        max_peak_duration_ms: A peak not followed by a valley within this time
            is abandoned.
        window_size: Number of smoothed samples used for adaptive thresholds.
        adaptive_clamp: Relative clamp of adaptive thresholds around the
            static ones (0.3 = ±30%).
    """

    accel_alpha: float = 0.3
    gyro_alpha: float = 0.2
    peak_threshold: float = 10.5
    valley_threshold: float = 9.5
    min_peak_valley_height: float = 0.7
    min_step_interval_ms: float = 250.0
    max_step_interval_ms: float = 2000.0
    gyro_threshold: float = 0.2
    max_peak_duration_ms: float = 1000.0
    window_size: int = 50
    adaptive_clamp: float = 0.3

    def __post_init__(self) -> None:
        _check_range("accel_alpha", self.accel_alpha, 1e-6, 1.0)
        _check_range("gyro_alpha", self.gyro_alpha, 1e-6, 1.0)
        if self.valley_threshold >= self.peak_threshold:
            raise ValueError(
                f"valley_threshold ({self.valley_threshold}) must be below "
                f"peak_threshold ({self.peak_threshold})"
            )
        _check_positive("min_peak_valley_height", self.min_peak_valley_height)
        _check_positive("min_step_interval_ms", self.min_step_interval_ms)
        if self.max_step_interval_ms <= self.min_step_interval_ms:
            raise ValueError(
                f"max_step_interval_ms ({self.max_step_interval_ms}) must exceed "
                f"min_step_interval_ms ({self.min_step_interval_ms})"
            )
        if self.gyro_threshold < 0:
            raise ValueError(f"gyro_threshold must be >= 0, got {self.gyro_threshold}")
        _check_positive("max_peak_duration_ms", self.max_peak_duration_ms)
        if self.window_size < 2:
            raise ValueError(f"window_size must be >= 2, got {self.window_size}")
        _check_range("adaptive_clamp", self.adaptive_clamp, 0.0, 1.0)


@dataclass(frozen=True)
class StepLengthConfig:
    """
    Parameters of the walking-pattern aware step length estimator.

    Attributes:
        user_height_m: Default user height used when none is passed per step.
        calibration_factor: Default multiplicative calibration of the length.
        base_length_ratio: Base step length as a fraction of height.
        factor_min: Lower clamp for the acceleration and frequency factors.
        factor_max: Upper clamp for the acceleration and frequency factors.
        pattern_window: Rolling window of sensor samples for classification.
        min_pattern_samples: Samples required before classifying at all.
        averaging_steps: Number of recent step lengths averaged together.
    """

    user_height_m: float = 1.70
    calibration_factor: float = 1.0
    base_length_ratio: float = 0.4
    factor_min: float = 0.7
    factor_max: float = 1.3
    pattern_window: int = 20
    min_pattern_samples: int = 10
    averaging_steps: int = 5

    def __post_init__(self) -> None:
        _check_positive("user_height_m", self.user_height_m)
        _check_positive("calibration_factor", self.calibration_factor)
        _check_positive("base_length_ratio", self.base_length_ratio)
        if not 0 < self.factor_min <= self.factor_max:
            raise ValueError(
                f"Need 0 < factor_min <= factor_max, got "
                f"{self.factor_min}, {self.factor_max}"
            )
        if self.min_pattern_samples > self.pattern_window:
            raise ValueError(
                f"min_pattern_samples ({self.min_pattern_samples}) cannot exceed "
                f"pattern_window ({self.pattern_window})"
            )
        if self.averaging_steps < 1:
            raise ValueError(f"averaging_steps must be >= 1, got {self.averaging_steps}")


@dataclass(frozen=True)
class PdrConfig:
    """
    Attributes:
        accuracy_growth_per_step: Additive accuracy growth per step (m).
        confidence_decay: Multiplicative confidence decay per step.
        default_step_confidence: Used when a step carries no confidence.
    """

    accuracy_growth_per_step: float = 0.05
    confidence_decay: float = 0.01
    default_step_confidence: float = 0.9

    def __post_init__(self) -> None:
        if self.accuracy_growth_per_step < 0:
            raise ValueError(
                f"accuracy_growth_per_step must be >= 0, got {self.accuracy_growth_per_step}"
            )
        _check_range("confidence_decay", self.confidence_decay, 0.0, 1.0)
        _check_range("default_step_confidence", self.default_step_confidence, 0.0, 1.0)


@dataclass(frozen=True)
class TriangulationConfig:
    """
    Attributes:
        max_centroid_beacons: Beacons kept by the weighted centroid.
        max_least_squares_beacons: Beacons kept by the least-squares solver.
        min_least_squares_beacons: Below this count least squares falls back
            to the weighted centroid.
        learning_rate: Gradient descent step size.
        max_iterations: Gradient descent iteration cap.
        convergence_threshold: Early exit once mean squared error drops below.
        min_range_m: Beacons closer than this to the iterate are skipped in
            the gradient (direction undefined).
    """

    max_centroid_beacons: int = 5
    max_least_squares_beacons: int = 8
    min_least_squares_beacons: int = 3
    learning_rate: float = 0.5
    max_iterations: int = 20
    convergence_threshold: float = 0.1
    min_range_m: float = 0.1

    def __post_init__(self) -> None:
        if self.max_centroid_beacons < 1:
            raise ValueError(
                f"max_centroid_beacons must be >= 1, got {self.max_centroid_beacons}"
            )
        if self.min_least_squares_beacons < 2:
            raise ValueError(
                f"min_least_squares_beacons must be >= 2, got {self.min_least_squares_beacons}"
            )
        if self.max_least_squares_beacons < self.min_least_squares_beacons:
            raise ValueError(
                f"max_least_squares_beacons ({self.max_least_squares_beacons}) must be "
                f">= min_least_squares_beacons ({self.min_least_squares_beacons})"
            )
        _check_positive("learning_rate", self.learning_rate)
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        _check_positive("convergence_threshold", self.convergence_threshold)
        _check_positive("min_range_m", self.min_range_m)


@dataclass(frozen=True)
class FingerprintMatcherConfig:
    """
    Attributes:
        k: Number of nearest reference fingerprints averaged.
        max_distance: Candidates farther than this (RSSI-delta units) are dropped.
        min_matching_aps: Minimum number of access points shared with a candidate.
        rssi_threshold_dbm: Scan readings weaker than this are ignored.
        strategy: ``"knn"`` or ``"nearest"``.
        fallback_to_nearest: Use the single nearest fingerprint when k-NN
            finds no acceptable candidate.
        selected_bssids: Optional subset of BSSIDs to compare on.
        near_zero_distance: Distances below this get ``near_zero_weight``.
        near_zero_weight: Weight used instead of ``1/distance`` near zero.
    """

    k: int = 3
    max_distance: float = 15.0
    min_matching_aps: int = 3
    rssi_threshold_dbm: float = -85.0
    strategy: str = "knn"
    fallback_to_nearest: bool = False
    selected_bssids: Optional[frozenset] = None
    near_zero_distance: float = 0.1
    near_zero_weight: float = 10.0

    def __post_init__(self) -> None:
        if self.k < 1:
            raise ValueError(f"k must be >= 1, got {self.k}")
        _check_positive("max_distance", self.max_distance)
        if self.min_matching_aps < 1:
            raise ValueError(f"min_matching_aps must be >= 1, got {self.min_matching_aps}")
        if self.strategy not in ("knn", "nearest"):
            raise ValueError(
                f"Unsupported strategy: '{self.strategy}'. Use 'knn' or 'nearest'."
            )
        if self.selected_bssids is not None and not isinstance(self.selected_bssids, frozenset):
            object.__setattr__(self, "selected_bssids", frozenset(self.selected_bssids))
        _check_positive("near_zero_distance", self.near_zero_distance)
        _check_positive("near_zero_weight", self.near_zero_weight)


@dataclass(frozen=True)
class FusionConfig:
    """
    Parameters of the fusion core (EKF and weighted-average methods).

    Attributes:
        position_noise: Base position process noise per second (m²/s).
        heading_noise: Base heading process noise per second (rad²/s).
        velocity_noise_gain: Inflation vf = 1 + gain·|v| of the process noise.
        straight_line_epsilon: Below this angular velocity (rad/s) the
            straight-line motion model is used.
        initial_heading_variance: Heading variance (rad²) at initialization.
        min_confidence: Lower clamp of measurement confidence in the
            measurement covariance.
        max_measurement_variance: Cap of the per-axis measurement variance (m²).
        drift_min_period_s: Drift-correction period for perfect measurements.
        drift_max_period_s: Drift-correction period for worthless measurements.
        drift_threshold_scale: Divergence threshold as a multiple of accuracy.
        drift_max_factor: Correction factor applied at full confidence.
        drift_covariance_inflation: Position covariance multiplier after a
            correction.
        output_confidence_scale: Accuracy (m) at which output confidence
            reaches its floor.
        min_output_confidence: Floor of the output confidence.
        singular_pivot_tolerance: LU pivots below this mark S as singular.
        method: ``"kalman_filter"`` or ``"weighted_average"``.
        ble_weight: Base weight of the absolute fix in the weighted average.
        transition_factor: Base smoothing factor toward each new weighted
            average.
        smooth_transition: Blend weighted averages with the previous output.
        pdr_decay_window_s: Time without an absolute fix over which PDR-only
            output loses confidence at full rate.
        pdr_max_decay: Cap of the PDR-only confidence decay.
        min_pdr_confidence: Floor of the decayed PDR-only confidence.
        moving_speed_threshold: Speeds above this (m/s) count as walking.
    """

    position_noise: float = 0.05
    heading_noise: float = 0.02
    velocity_noise_gain: float = 2.0
    straight_line_epsilon: float = 1e-4
    initial_heading_variance: float = 1.0
    min_confidence: float = 0.1
    max_measurement_variance: float = 100.0
    drift_min_period_s: float = 5.0
    drift_max_period_s: float = 15.0
    drift_threshold_scale: float = 1.5
    drift_max_factor: float = 0.3
    drift_covariance_inflation: float = 1.5
    output_confidence_scale: float = 10.0
    min_output_confidence: float = 0.1
    singular_pivot_tolerance: float = 1e-12
    method: str = "kalman_filter"
    ble_weight: float = 0.6
    transition_factor: float = 0.3
    smooth_transition: bool = True
    pdr_decay_window_s: float = 30.0
    pdr_max_decay: float = 0.3
    min_pdr_confidence: float = 0.3
    moving_speed_threshold: float = 0.2

    def __post_init__(self) -> None:
        _check_positive("position_noise", self.position_noise)
        _check_positive("heading_noise", self.heading_noise)
        if self.velocity_noise_gain < 0:
            raise ValueError(
                f"velocity_noise_gain must be >= 0, got {self.velocity_noise_gain}"
            )
        _check_positive("straight_line_epsilon", self.straight_line_epsilon)
        _check_positive("initial_heading_variance", self.initial_heading_variance)
        _check_range("min_confidence", self.min_confidence, 1e-6, 1.0)
        _check_positive("max_measurement_variance", self.max_measurement_variance)
        _check_positive("drift_min_period_s", self.drift_min_period_s)
        if self.drift_max_period_s < self.drift_min_period_s:
            raise ValueError(
                f"drift_max_period_s ({self.drift_max_period_s}) must be >= "
                f"drift_min_period_s ({self.drift_min_period_s})"
            )
        _check_positive("drift_threshold_scale", self.drift_threshold_scale)
        _check_range("drift_max_factor", self.drift_max_factor, 0.0, 1.0)
        if self.drift_covariance_inflation < 1.0:
            raise ValueError(
                f"drift_covariance_inflation must be >= 1, got {self.drift_covariance_inflation}"
            )
        _check_positive("output_confidence_scale", self.output_confidence_scale)
        _check_range("min_output_confidence", self.min_output_confidence, 0.0, 1.0)
        _check_positive("singular_pivot_tolerance", self.singular_pivot_tolerance)
        if self.method not in ("kalman_filter", "weighted_average"):
            raise ValueError(
                f"Unsupported method: '{self.method}'. Use 'kalman_filter' or 'weighted_average'."
            )
        _check_range("ble_weight", self.ble_weight, 0.0, 1.0)
        _check_range("transition_factor", self.transition_factor, 0.0, 1.0)
        _check_positive("pdr_decay_window_s", self.pdr_decay_window_s)
        _check_range("pdr_max_decay", self.pdr_max_decay, 0.0, 1.0)
        _check_range("min_pdr_confidence", self.min_pdr_confidence, 0.0, 1.0)
        if self.moving_speed_threshold < 0:
            raise ValueError(
                f"moving_speed_threshold must be >= 0, got {self.moving_speed_threshold}"
            )


_SECTIONS = {
    "step_detector": StepDetectorConfig,
    "step_length": StepLengthConfig,
    "pdr": PdrConfig,
    "triangulation": TriangulationConfig,
    "fingerprint_matcher": FingerprintMatcherConfig,
    "fusion": FusionConfig,
}


@dataclass(frozen=True)
class EngineConfig:
    """All component configurations, one attribute per YAML section."""

    step_detector: StepDetectorConfig = field(default_factory=StepDetectorConfig)
    step_length: StepLengthConfig = field(default_factory=StepLengthConfig)
    pdr: PdrConfig = field(default_factory=PdrConfig)
    triangulation: TriangulationConfig = field(default_factory=TriangulationConfig)
    fingerprint_matcher: FingerprintMatcherConfig = field(
        default_factory=FingerprintMatcherConfig
    )
    fusion: FusionConfig = field(default_factory=FusionConfig)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "EngineConfig":
        """
        Build a configuration from a nested mapping.

        Args:
            data: Mapping of section name to a mapping of parameter overrides.
                  ``None`` or an empty mapping yields the defaults.

        Returns:
            EngineConfig with the overrides applied.

        Raises:
            ValueError: If a section or a key is unknown, or a value is invalid.
        """
        data = data or {}
        unknown_sections = set(data) - set(_SECTIONS)
        if unknown_sections:
            raise ValueError(
                f"Unknown config section(s): {sorted(unknown_sections)}. "
                f"Valid sections: {sorted(_SECTIONS)}"
            )

        kwargs = {}
        for section, section_cls in _SECTIONS.items():
            values = data.get(section) or {}
            valid_keys = {f.name for f in fields(section_cls)}
            unknown_keys = set(values) - valid_keys
            if unknown_keys:
                raise ValueError(
                    f"Unknown key(s) in '{section}': {sorted(unknown_keys)}"
                )
            kwargs[section] = section_cls(**values)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        result = {}
        for section in _SECTIONS:
            values = asdict(getattr(self, section))
            if isinstance(values.get("selected_bssids"), frozenset):
                values["selected_bssids"] = sorted(values["selected_bssids"])
            result[section] = values
        return result


def load_config(config_path: Union[str, Path]) -> EngineConfig:
    """
    Load an engine configuration from a YAML file.

    Args:
        config_path: Path to the YAML file.

    Returns:
        EngineConfig with the file's overrides applied on top of the defaults.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is malformed.
        ValueError: If the file contains unknown sections/keys or bad values.

    Example:
        >>> config = load_config("configs/default.yaml")
        >>> config.fingerprint_matcher.k
        3
    """
    with open(config_path, "r") as f:
        data = yaml.safe_load(f)

    if data is not None and not isinstance(data, Mapping):
        raise ValueError(
            f"Top level of {config_path} must be a mapping, got {type(data).__name__}"
        )
    return EngineConfig.from_dict(data)
