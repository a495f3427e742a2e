"""Unit tests for indoor_fusion.config."""

import pytest
import yaml

from indoor_fusion.config import (
    EngineConfig,
    FingerprintMatcherConfig,
    FusionConfig,
    StepDetectorConfig,
    TriangulationConfig,
    load_config,
)


class TestComponentConfigs:
    """Defaults and validation of the per-component dataclasses."""

    def test_step_detector_defaults(self):
        cfg = StepDetectorConfig()
        assert cfg.peak_threshold == pytest.approx(10.5)
        assert cfg.valley_threshold == pytest.approx(9.5)
        assert cfg.min_step_interval_ms == pytest.approx(250.0)
        assert cfg.max_step_interval_ms == pytest.approx(2000.0)

    def test_valley_above_peak_rejected(self):
        with pytest.raises(ValueError, match="valley_threshold"):
            StepDetectorConfig(peak_threshold=9.0, valley_threshold=9.5)

    def test_alpha_out_of_range_rejected(self):
        with pytest.raises(ValueError, match="accel_alpha"):
            StepDetectorConfig(accel_alpha=1.5)

    def test_triangulation_beacon_counts_validated(self):
        with pytest.raises(ValueError, match="max_least_squares_beacons"):
            TriangulationConfig(min_least_squares_beacons=4, max_least_squares_beacons=3)

    def test_matcher_strategy_validated(self):
        with pytest.raises(ValueError, match="strategy"):
            FingerprintMatcherConfig(strategy="bayes")

    def test_selected_bssids_frozen(self):
        cfg = FingerprintMatcherConfig(selected_bssids=["a", "b"])
        assert cfg.selected_bssids == frozenset({"a", "b"})

    def test_fusion_drift_periods_ordered(self):
        with pytest.raises(ValueError, match="drift_max_period_s"):
            FusionConfig(drift_min_period_s=10.0, drift_max_period_s=5.0)

    def test_fusion_method_validated(self):
        with pytest.raises(ValueError, match="method"):
            FusionConfig(method="particle_filter")

    def test_weighted_average_parameters_validated(self):
        with pytest.raises(ValueError, match="ble_weight"):
            FusionConfig(ble_weight=1.2)
        with pytest.raises(ValueError, match="pdr_decay_window_s"):
            FusionConfig(pdr_decay_window_s=0.0)


class TestEngineConfig:
    def test_from_empty_mapping_gives_defaults(self):
        assert EngineConfig.from_dict({}) == EngineConfig()
        assert EngineConfig.from_dict(None) == EngineConfig()

    def test_partial_override(self):
        cfg = EngineConfig.from_dict({"fusion": {"position_noise": 0.08}})
        assert cfg.fusion.position_noise == pytest.approx(0.08)
        assert cfg.fusion.heading_noise == pytest.approx(0.02)
        assert cfg.step_detector == StepDetectorConfig()

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError, match="Unknown config section"):
            EngineConfig.from_dict({"uwb": {}})

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown key"):
            EngineConfig.from_dict({"pdr": {"stride": 0.7}})

    def test_to_dict_round_trip(self):
        cfg = EngineConfig.from_dict(
            {"fingerprint_matcher": {"k": 5, "selected_bssids": ["x", "y"]}}
        )
        assert EngineConfig.from_dict(cfg.to_dict()) == cfg


class TestLoadConfig:
    def test_load_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "step_detector": {"peak_threshold": 10.8},
                    "fingerprint_matcher": {"k": 4, "fallback_to_nearest": True},
                }
            )
        )

        cfg = load_config(path)

        assert cfg.step_detector.peak_threshold == pytest.approx(10.8)
        assert cfg.fingerprint_matcher.k == 4
        assert cfg.fingerprint_matcher.fallback_to_nearest is True

    def test_load_fusion_method(self, tmp_path):
        path = tmp_path / "average.yaml"
        path.write_text("fusion:\n  method: weighted_average\n  ble_weight: 0.7\n")

        cfg = load_config(path)

        assert cfg.fusion.method == "weighted_average"
        assert cfg.fusion.ble_weight == pytest.approx(0.7)
        assert EngineConfig.from_dict(cfg.to_dict()) == cfg

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == EngineConfig()

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("triangulation:\n  learning_rate: -1.0\n")
        with pytest.raises(ValueError, match="learning_rate"):
            load_config(path)
