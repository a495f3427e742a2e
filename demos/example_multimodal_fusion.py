"""Multi-Modal Indoor Fusion Demo.

Simulates a pedestrian walking a rectangular loop inside a 20 m × 12 m hall
and runs the complete pipeline:

- 50 Hz accelerometer/gyroscope → step detection → step length → PDR
- 10 Hz visual-inertial motion (noisy speed and yaw rate)
- 1 Hz BLE ranges from six beacons → least-squares triangulation
- Every 3 s a Wi-Fi scan → k-NN fingerprint match
- 10 Hz EKF (or weighted-average) fusion of all of the above

Usage:
    python demos/example_multimodal_fusion.py
    python demos/example_multimodal_fusion.py --config configs/default.yaml --plot
    python demos/example_multimodal_fusion.py --method weighted_average
"""

import argparse
import logging
import math
from dataclasses import replace
from typing import Dict, List, Optional

import numpy as np
from tqdm import tqdm

from indoor_fusion.config import EngineConfig, load_config
from indoor_fusion.eval import (
    accuracy_coverage,
    compute_position_errors,
    compute_rmse,
    positions_to_array,
)
from indoor_fusion.fingerprinting import FingerprintDatabase, FingerprintMatcher
from indoor_fusion.fusion import FusedPosition, FusionEngine, FusionMethod
from indoor_fusion.rf import Beacon, triangulate
from indoor_fusion.sensors import (
    CombinedSample,
    MotionEstimate,
    PdrIntegrator,
    PdrPosition,
    StepDetector,
    StepLengthEstimator,
    motion_from_steps,
)

SENSOR_RATE_HZ = 50
FUSION_RATE_HZ = 10
WALK_SPEED = 1.2
STEP_FREQUENCY_HZ = 1.8
GRAVITY = 9.81

BEACON_POSITIONS = np.array(
    [[0.0, 0.0], [10.0, 0.0], [20.0, 0.0], [0.0, 12.0], [10.0, 12.0], [20.0, 12.0]]
)
ACCESS_POINTS = {
    "00:11:22:33:44:01": (2.0, 2.0),
    "00:11:22:33:44:02": (18.0, 2.0),
    "00:11:22:33:44:03": (10.0, 6.0),
    "00:11:22:33:44:04": (2.0, 10.0),
    "00:11:22:33:44:05": (18.0, 10.0),
}


def simulate_walk(duration_s: float, rng: np.random.Generator) -> Dict[str, np.ndarray]:
    """Ground-truth loop around the rectangle (3, 3) → (17, 3) → (17, 9) → (3, 9)."""
    corners = np.array([[3.0, 3.0], [17.0, 3.0], [17.0, 9.0], [3.0, 9.0], [3.0, 3.0]])
    segment_lengths = np.linalg.norm(np.diff(corners, axis=0), axis=1)
    perimeter = segment_lengths.sum()

    t = np.arange(0.0, duration_s, 1.0 / SENSOR_RATE_HZ)
    distance = (WALK_SPEED * t) % perimeter
    cumulative = np.concatenate([[0.0], np.cumsum(segment_lengths)])
    seg = np.searchsorted(cumulative, distance, side="right") - 1
    frac = (distance - cumulative[seg]) / segment_lengths[seg]
    xy = corners[seg] + frac[:, np.newaxis] * (corners[seg + 1] - corners[seg])

    direction = corners[seg + 1] - corners[seg]
    theta = np.arctan2(direction[:, 1], direction[:, 0])
    return {"t": t, "xy": xy, "theta": np.unwrap(theta)}


def rssi_at(position: np.ndarray, ap_xy, rng: np.random.Generator, noise_db: float = 2.0) -> float:
    """Log-distance path loss, -40 dBm at 1 m with exponent 2.5."""
    d = max(np.linalg.norm(position - np.asarray(ap_xy)), 1.0)
    return -40.0 - 25.0 * math.log10(d) + rng.normal(0.0, noise_db)


def build_radio_map(rng: np.random.Generator, spacing: float = 2.0) -> FingerprintDatabase:
    db = FingerprintDatabase()
    for gx in np.arange(1.0, 20.0, spacing):
        for gy in np.arange(1.0, 12.0, spacing):
            point = np.array([gx, gy])
            scans = [
                {bssid: rssi_at(point, ap, rng) for bssid, ap in ACCESS_POINTS.items()}
                for _ in range(5)
            ]
            db.add_scans(f"rp_{gx:.0f}_{gy:.0f}", scans, gx, gy)
    return db


def run_demo(
    config: EngineConfig, duration_s: float, seed: int, verbose: bool = False
) -> Dict[str, np.ndarray]:
    rng = np.random.default_rng(seed)
    truth = simulate_walk(duration_s, rng)
    radio_map = build_radio_map(rng)
    matcher = FingerprintMatcher(radio_map, config.fingerprint_matcher)
    beacons = [Beacon(f"ble-{i}", float(x), float(y)) for i, (x, y) in enumerate(BEACON_POSITIONS)]

    detector = StepDetector(config.step_detector)
    step_lengths = StepLengthEstimator(config.step_length)
    pdr = PdrIntegrator(config.pdr)
    engine = FusionEngine(config.fusion)

    pdr.set_position(PdrPosition(*truth["xy"][0], accuracy=0.5, confidence=1.0))
    sensor_per_fusion = SENSOR_RATE_HZ // FUSION_RATE_HZ
    dt = 1.0 / FUSION_RATE_HZ

    fused: List[FusedPosition] = []
    pdr_track: List[np.ndarray] = []
    fixes: List[np.ndarray] = []
    fusion_truth: List[np.ndarray] = []
    fusion_t: List[float] = []
    last_step_t: Optional[float] = None
    last_step_heading = 0.0
    pdr_motion: Optional[MotionEstimate] = None

    for k, t in enumerate(tqdm(truth["t"], desc="Walk", disable=not verbose)):
        theta = truth["theta"][k]
        bounce = 2.5 * math.sin(2.0 * math.pi * STEP_FREQUENCY_HZ * t)
        accel = np.array([0.3 * bounce, 0.2 * bounce, GRAVITY + bounce]) + rng.normal(0.0, 0.15, 3)
        linear = accel - np.array([0.0, 0.0, GRAVITY])
        gyro = np.array([0.4, 0.3, 0.2]) * (1.0 + 0.5 * math.sin(2.0 * math.pi * STEP_FREQUENCY_HZ * t))
        sample = CombinedSample(accel, linear, gyro, timestamp_ns=int(t * 1e9))

        step_lengths.add_sample(sample)
        result = detector.process(sample)
        if result.step_detected:
            length = step_lengths.estimate(sample)
            heading_deg = math.degrees(math.pi / 2.0 - theta) + rng.normal(0.0, 3.0)
            pdr.update(True, length, heading_deg, step_confidence=result.confidence, timestamp_ns=sample.timestamp_ns)
            if last_step_t is not None:
                pdr_motion = motion_from_steps(
                    length, t - last_step_t, math.radians(heading_deg - last_step_heading)
                )
            last_step_t, last_step_heading = t, heading_deg
        pdr_track.append(np.array([pdr.position.x, pdr.position.y]))

        if k % sensor_per_fusion:
            continue

        omega = (truth["theta"][min(k + 1, len(truth["t"]) - 1)] - theta) * SENSOR_RATE_HZ
        visual = MotionEstimate(
            velocity=WALK_SPEED + rng.normal(0.0, 0.1),
            angular_velocity=omega + rng.normal(0.0, 0.05),
        )

        measurement = None
        true_xy = truth["xy"][k]
        if k % (SENSOR_RATE_HZ * 3) == 0:
            scan = {bssid: rssi_at(true_xy, ap, rng, noise_db=3.0) for bssid, ap in ACCESS_POINTS.items()}
            match = matcher.estimate(scan)
            if match is not None:
                measurement = match.to_measurement(timestamp=t)
        elif k % SENSOR_RATE_HZ == 0:
            for beacon in beacons:
                true_range = float(np.linalg.norm(true_xy - beacon.position))
                noisy = max(true_range + rng.normal(0.0, 0.3 + 0.05 * true_range), 0.2)
                beacon.update_range(noisy, confidence=1.0 / (1.0 + 0.1 * true_range), rssi=-70.0)
            ble = triangulate(beacons, config.triangulation)
            measurement = ble.to_measurement(timestamp=t)

        if measurement is not None:
            fixes.append(measurement.z)

        fused.append(
            engine.process(
                dt,
                visual=visual,
                pdr=pdr_motion,
                motion_weight=0.7,
                measurement=measurement,
                timestamp=t,
                pdr_position=pdr.position,
            )
        )
        fusion_truth.append(true_xy)
        fusion_t.append(t)

    return {
        "t": np.array(fusion_t),
        "truth": np.array(fusion_truth),
        "fused": fused,
        "pdr": np.array(pdr_track),
        "pdr_truth": truth["xy"],
        "fixes": np.array(fixes).reshape(-1, 2),
        "steps": detector.step_count,
    }


def main():
    """Main entry point for the multi-modal fusion demo."""
    parser = argparse.ArgumentParser(description="Multi-Modal Indoor Fusion Demo")
    parser.add_argument("--config", type=str, default=None, help="Path to YAML configuration")
    parser.add_argument("--duration", type=float, default=120.0, help="Walk duration in seconds")
    parser.add_argument("--seed", type=int, default=7, help="Random seed")
    parser.add_argument(
        "--method",
        choices=[m.value for m in FusionMethod],
        default=None,
        help="Override the fusion method from the configuration",
    )
    parser.add_argument("--plot", action="store_true", help="Show trajectory figure")
    parser.add_argument("--save", type=str, default=None, help="Directory to save figures")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config) if args.config else EngineConfig()
    if args.method:
        config = replace(config, fusion=replace(config.fusion, method=args.method))
    results = run_demo(config, args.duration, args.seed, verbose=args.verbose)

    fused_xy = positions_to_array(results["fused"])
    fused_errors = compute_position_errors(results["truth"], fused_xy)
    pdr_errors = compute_position_errors(results["pdr_truth"], results["pdr"])

    print("=" * 70)
    print("Multi-Modal Fusion Results")
    print("=" * 70)
    print(f"  Steps detected     : {results['steps']}")
    print(f"  Absolute fixes     : {len(results['fixes'])}")
    print(f"  RMSE fused (2D)    : {compute_rmse(fused_errors):.3f} m")
    print(f"  RMSE PDR only (2D) : {compute_rmse(pdr_errors):.3f} m")
    print(f"  Within accuracy    : {100.0 * accuracy_coverage(results['truth'], results['fused']):.1f} %")

    if args.plot or args.save:
        import matplotlib.pyplot as plt

        from indoor_fusion.eval import plot_error_time, plot_trajectories, save_figure

        label = f"Fusion ({config.fusion.method})"
        fig_traj = plot_trajectories(
            results["truth"],
            {label: fused_xy, "PDR only": results["pdr"][:: SENSOR_RATE_HZ // FUSION_RATE_HZ]},
            beacons_xy=BEACON_POSITIONS,
            fixes_xy=results["fixes"],
        )
        fig_err = plot_error_time(
            results["t"],
            {label: fused_errors},
            accuracy=np.array([p.accuracy for p in results["fused"]]),
        )
        if args.save:
            save_figure(fig_traj, args.save, "fusion_trajectory")
            save_figure(fig_err, args.save, "fusion_error")
        if args.plot:
            plt.show()


if __name__ == "__main__":
    main()
