"""
Unit tests for BLE triangulation.

Tests cover:
    - Beacon usability filtering
    - Weighted centroid weighting and confidence
    - Least-squares convergence and centroid fallback
    - Conversion to fusion measurements
"""

import math
import unittest

import numpy as np
import pytest

from indoor_fusion.config import TriangulationConfig
from indoor_fusion.fusion import PositionSource
from indoor_fusion.rf import (
    Beacon,
    TriangulationMethod,
    TriangulationResult,
    least_squares_position,
    select_beacons,
    triangulate,
    weighted_centroid,
)


def beacon(name, x, y, distance, confidence=0.8, rssi=-70.0):
    return Beacon(
        name, x, y, last_rssi=rssi, estimated_distance=distance, distance_confidence=confidence
    )


def ranged_beacons(positions, truth, confidence=0.8):
    truth = np.asarray(truth, dtype=float)
    return [
        beacon(f"b{i}", x, y, float(np.linalg.norm(np.array([x, y]) - truth)), confidence)
        for i, (x, y) in enumerate(positions)
    ]


class TestBeacon(unittest.TestCase):
    def test_usable(self):
        self.assertTrue(beacon("a", 0.0, 0.0, 3.0).is_usable)

    def test_never_heard_is_unusable(self):
        self.assertFalse(beacon("a", 0.0, 0.0, 3.0, rssi=0.0).is_usable)

    def test_bad_range_is_unusable(self):
        self.assertFalse(beacon("a", 0.0, 0.0, 0.0).is_usable)
        self.assertFalse(beacon("a", 0.0, 0.0, math.inf).is_usable)
        self.assertFalse(beacon("a", 0.0, 0.0, -1.0).is_usable)

    def test_confidence_clamped(self):
        b = beacon("a", 0.0, 0.0, 3.0, confidence=1.7)
        self.assertEqual(b.distance_confidence, 1.0)
        b.update_range(2.0, confidence=-0.2, rssi=-65.0)
        self.assertEqual(b.distance_confidence, 0.0)
        self.assertEqual(b.last_rssi, -65.0)

    def test_position_must_be_finite(self):
        with self.assertRaises(ValueError):
            Beacon("a", math.nan, 0.0)

    def test_select_by_confidence(self):
        beacons = [
            beacon("low", 0.0, 0.0, 3.0, confidence=0.2),
            beacon("high", 1.0, 0.0, 3.0, confidence=0.9),
            beacon("dead", 2.0, 0.0, 3.0, rssi=0.0, confidence=1.0),
            beacon("mid", 3.0, 0.0, 3.0, confidence=0.5),
        ]

        selected = select_beacons(beacons, max_count=2)

        self.assertEqual([b.id for b in selected], ["high", "mid"])


class TestWeightedCentroid:
    def test_no_usable_beacons(self):
        result = weighted_centroid([beacon("a", 1.0, 1.0, 0.0)])

        assert result == TriangulationResult.empty()
        assert (result.x, result.y, result.confidence, result.beacons_used) == (0.0, 0.0, 0.0, 0)
        assert not result.is_valid

    def test_single_beacon(self):
        result = weighted_centroid([beacon("a", 3.0, 4.0, 2.0)])

        assert result.x == pytest.approx(3.0)
        assert result.y == pytest.approx(4.0)
        assert result.beacons_used == 1
        assert math.isinf(result.gdop)
        assert result.method is TriangulationMethod.CENTROID

    def test_biased_toward_confident_beacon(self):
        beacons = [
            beacon("near", 0.0, 0.0, 2.0, confidence=0.9),
            beacon("far", 10.0, 0.0, 2.0, confidence=0.1),
        ]

        result = weighted_centroid(beacons)

        # Weights 0.45 and 0.05 normalize to 0.9 and 0.1
        assert result.x == pytest.approx(1.0)
        assert result.y == pytest.approx(0.0)

    def test_biased_toward_short_range(self):
        beacons = [
            beacon("near", 0.0, 0.0, 1.0),
            beacon("far", 10.0, 0.0, 9.0),
        ]

        result = weighted_centroid(beacons)

        assert result.x == pytest.approx(1.0)

    def test_zero_confidence_uses_equal_weights(self):
        beacons = [
            beacon("a", 0.0, 0.0, 2.0, confidence=0.0),
            beacon("b", 4.0, 2.0, 2.0, confidence=0.0),
        ]

        result = weighted_centroid(beacons)

        assert result.x == pytest.approx(2.0)
        assert result.y == pytest.approx(1.0)

    def test_confidence_formula(self):
        positions = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]
        beacons = ranged_beacons(positions, (5.0, 5.0), confidence=0.5)

        result = weighted_centroid(beacons)

        # Symmetric ranges put the centroid at the centre where GDOP = 1
        assert result.gdop == pytest.approx(1.0)
        expected = 0.3 * (4 / 5) + 0.4 * 0.5 + 0.3 * 0.5
        assert result.confidence == pytest.approx(expected)
        assert result.accuracy == pytest.approx(0.0, abs=1e-9)

    def test_keeps_most_confident_beacons(self):
        beacons = [beacon(f"b{i}", float(i), 0.0, 1.0, confidence=0.1 * (i + 1)) for i in range(7)]

        result = weighted_centroid(beacons, TriangulationConfig(max_centroid_beacons=5))

        assert result.beacons_used == 5


class TestLeastSquares:
    def test_equilateral_triangle(self):
        # Circumcentre (5, 5), circumradius 5
        positions = [
            (5.0, 10.0),
            (5.0 - 5.0 * math.sqrt(3) / 2, 2.5),
            (5.0 + 5.0 * math.sqrt(3) / 2, 2.5),
        ]
        beacons = [beacon(f"b{i}", x, y, 5.0) for i, (x, y) in enumerate(positions)]

        result = least_squares_position(beacons)

        assert result.method is TriangulationMethod.LEAST_SQUARES
        assert result.beacons_used == 3
        assert np.hypot(result.x - 5.0, result.y - 5.0) < 0.5
        assert result.average_error < TriangulationConfig().convergence_threshold
        assert math.isfinite(result.gdop)

    def test_consistent_ranges_to_triangle(self):
        beacons = ranged_beacons([(0.0, 0.0), (10.0, 0.0), (5.0, 10.0)], (5.0, 5.0))

        result = least_squares_position(beacons)

        assert np.hypot(result.x - 5.0, result.y - 5.0) < 0.5
        assert result.average_error < TriangulationConfig().convergence_threshold

    def test_inconsistent_equal_ranges_to_triangle(self):
        # No point is 5 m from all three; the best fit sits on the axis of symmetry
        beacons = [
            beacon("a", 0.0, 0.0, 5.0),
            beacon("b", 10.0, 0.0, 5.0),
            beacon("c", 5.0, 10.0, 5.0),
        ]

        result = least_squares_position(beacons)

        assert result.method is TriangulationMethod.LEAST_SQUARES
        assert result.x == pytest.approx(5.0, abs=1e-6)
        assert result.y == pytest.approx(3.62, abs=0.01)
        assert result.average_error == pytest.approx(1.55, abs=0.01)
        assert result.average_error > TriangulationConfig().convergence_threshold

    def test_improves_on_centroid(self):
        truth = np.array([2.0, 7.0])
        positions = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]
        beacons = ranged_beacons(positions, truth)

        centroid = weighted_centroid(beacons)
        result = least_squares_position(beacons)

        assert np.linalg.norm(result.position - truth) < np.linalg.norm(centroid.position - truth)
        assert result.accuracy <= centroid.accuracy

    def test_falls_back_to_centroid(self):
        beacons = [beacon("a", 0.0, 0.0, 3.0), beacon("b", 6.0, 0.0, 3.0)]

        result = least_squares_position(beacons)

        assert result.method is TriangulationMethod.CENTROID
        assert result.beacons_used == 2
        assert math.isinf(result.average_error)
        assert result.x == pytest.approx(3.0)

    def test_beacon_at_iterate_is_skipped(self):
        # Start point coincides with a beacon; the gradient must stay finite
        positions = [(0.0, 0.0), (10.0, 0.0), (0.0, 10.0)]
        beacons = [beacon("a", 0.0, 0.0, 1e-3, confidence=1.0)] + [
            beacon(f"b{i}", x, y, 10.0, confidence=0.01) for i, (x, y) in enumerate(positions[1:])
        ]

        result = least_squares_position(beacons)

        assert np.isfinite(result.x) and np.isfinite(result.y)


class TestTriangulate:
    def test_dispatch_by_usable_count(self):
        two = [beacon("a", 0.0, 0.0, 3.0), beacon("b", 6.0, 0.0, 3.0), beacon("c", 3.0, 5.0, 2.0, rssi=0.0)]
        three = ranged_beacons([(0.0, 0.0), (10.0, 0.0), (5.0, 10.0)], (5.0, 4.0))

        assert triangulate(two).method is TriangulationMethod.CENTROID
        assert triangulate(three).method is TriangulationMethod.LEAST_SQUARES

    def test_empty(self):
        result = triangulate([])

        assert not result.is_valid
        assert result.to_measurement() is None

    def test_to_measurement(self):
        beacons = ranged_beacons([(0.0, 0.0), (10.0, 0.0), (5.0, 10.0)], (5.0, 4.0))
        result = triangulate(beacons)

        measurement = result.to_measurement(timestamp=3.0)

        assert measurement.source is PositionSource.BLE
        assert measurement.timestamp == 3.0
        # Near-zero residuals are floored at 1 m
        assert measurement.accuracy == pytest.approx(1.0)
        assert measurement.confidence == pytest.approx(result.confidence)
        assert np.allclose(measurement.z, result.position)
