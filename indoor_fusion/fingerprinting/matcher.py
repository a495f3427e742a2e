"""Wi-Fi fingerprint matching.

Nearest-neighbour (NN) and k-nearest-neighbour (k-NN) matching of a live scan
against a FingerprintDatabase.

Signal distance between a scan z and a reference f is computed over the
BSSIDs present in both (optionally restricted to a selected subset) and
normalized by their count:

    D(z, f) = √( Σ_{i ∈ C} (z_i − f_i)² / |C| )

k-NN estimate:

    x̂ = Σ w_i x_i / Σ w_i,   w_i = 1 / D_i  (a large constant when D_i ≈ 0)
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, List, Optional, Tuple

import numpy as np

from ..config import FingerprintMatcherConfig
from ..fusion.types import AbsoluteMeasurement, PositionSource
from .types import FingerprintDatabase, Scan, WifiFingerprint

logger = logging.getLogger(__name__)


class MatchStrategy(Enum):
    KNN = "knn"
    NEAREST = "nearest"


def common_bssids(
    scan: Scan,
    reference: Scan,
    selected_bssids: Optional[AbstractSet[str]] = None,
) -> List[str]:
    """BSSIDs present in both maps (and in ``selected_bssids`` when given)."""
    common = [bssid for bssid in scan if bssid in reference]
    if selected_bssids is not None:
        common = [bssid for bssid in common if bssid in selected_bssids]
    return common


def fingerprint_distance(
    scan: Scan,
    reference: Scan,
    selected_bssids: Optional[AbstractSet[str]] = None,
) -> float:
    """
    RSSI-space distance over the common BSSIDs.

    Args:
        scan: Live scan (BSSID → RSSI).
        reference: Reference fingerprint access points (BSSID → RSSI).
        selected_bssids: Optional subset to compare on.

    Returns:
        Root-mean-square RSSI difference (dB), ``inf`` when nothing is shared.

    Examples:
        >>> fingerprint_distance({"a": -50, "b": -60}, {"a": -50, "b": -60})
        0.0
        >>> fingerprint_distance({"a": -50, "b": -60}, {"a": -53, "b": -56})
        3.5355339059327378
    """
    common = common_bssids(scan, reference, selected_bssids)
    if not common:
        return math.inf
    diffs = np.array([scan[bssid] - reference[bssid] for bssid in common], dtype=float)
    return float(np.sqrt(np.sum(diffs**2) / len(common)))


@dataclass(frozen=True)
class MatchResult:
    """
    Position estimated from fingerprints.

    Attributes:
        x, y: Estimated position (m).
        accuracy: k-NN: mean distance of the neighbours' reference points to
            the estimate (m). Nearest: signal distance of the single match.
        neighbors: (location_id, signal distance) of the fingerprints used,
            nearest first.
        strategy: Strategy that produced the estimate.
    """

    x: float
    y: float
    accuracy: float
    neighbors: Tuple[Tuple[str, float], ...]
    strategy: MatchStrategy

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y])

    def to_measurement(self, timestamp: float = 0.0, min_accuracy: float = 2.5) -> AbsoluteMeasurement:
        """
        Convert to an absolute fix tagged WIFI.

        Accuracy is floored at ``min_accuracy`` and confidence is
        1 / (1 + accuracy / 5).
        """
        accuracy = max(self.accuracy, min_accuracy)
        return AbsoluteMeasurement.from_accuracy(
            x=self.x,
            y=self.y,
            accuracy=accuracy,
            confidence=1.0 / (1.0 + accuracy / 5.0),
            source=PositionSource.WIFI,
            timestamp=timestamp,
        )


class FingerprintMatcher:
    """
    Matches live scans against a fingerprint database.

    Matching is stateless per call; a matcher may be shared between threads
    as long as the database is not mutated concurrently.

    Example:
        >>> matcher = FingerprintMatcher(db)
        >>> result = matcher.estimate({"ap1": -52.0, "ap2": -61.0, "ap3": -70.0})
        >>> if result is not None:
        ...     print(result.x, result.y, result.accuracy)
    """

    def __init__(
        self,
        database: FingerprintDatabase,
        config: Optional[FingerprintMatcherConfig] = None,
    ):
        self.database = database
        self.config = config or FingerprintMatcherConfig()

    def filter_scan(self, scan: Scan) -> dict:
        """Drop readings that are missing (0 dBm) or weaker than the RSSI threshold."""
        return {
            bssid: float(rssi)
            for bssid, rssi in scan.items()
            if rssi != 0 and rssi >= self.config.rssi_threshold_dbm
        }

    def _distances(self, scan: Scan) -> List[Tuple[WifiFingerprint, float, int]]:
        selected = self.config.selected_bssids
        candidates = []
        for fingerprint in self.database:
            n_common = len(common_bssids(scan, fingerprint.access_points, selected))
            if n_common == 0:
                continue
            d = fingerprint_distance(scan, fingerprint.access_points, selected)
            candidates.append((fingerprint, d, n_common))
        candidates.sort(key=lambda item: item[1])
        return candidates

    def estimate(self, scan: Scan, strategy: Optional[MatchStrategy] = None) -> Optional[MatchResult]:
        """
        Estimate a position from a live scan.

        Args:
            scan: BSSID → RSSI.
            strategy: Overrides ``config.strategy``.

        Returns:
            MatchResult, or None when no fingerprint is acceptable.
        """
        if strategy is None:
            strategy = MatchStrategy(self.config.strategy)
        filtered = self.filter_scan(scan)
        if not filtered or len(self.database) == 0:
            return None

        if strategy is MatchStrategy.NEAREST:
            return self.nearest(filtered, prefiltered=True)

        result = self.knn(filtered, prefiltered=True)
        if result is None and self.config.fallback_to_nearest:
            logger.debug("k-NN found no acceptable fingerprint; falling back to nearest")
            result = self.nearest(filtered, prefiltered=True)
        return result

    def knn(self, scan: Scan, prefiltered: bool = False) -> Optional[MatchResult]:
        """
        k-NN estimate over acceptable candidates.

        A candidate is acceptable when it shares at least ``min_matching_aps``
        access points with the scan and its distance does not exceed
        ``max_distance``.
        """
        if not prefiltered:
            scan = self.filter_scan(scan)
        cfg = self.config
        acceptable = [
            (fp, d)
            for fp, d, n_common in self._distances(scan)
            if n_common >= cfg.min_matching_aps and d <= cfg.max_distance
        ]
        if not acceptable:
            return None

        neighbors = acceptable[: cfg.k]
        distances = np.array([d for _, d in neighbors])
        locations = np.array([fp.location for fp, _ in neighbors])
        weights = np.where(
            distances < cfg.near_zero_distance,
            cfg.near_zero_weight,
            1.0 / np.maximum(distances, cfg.near_zero_distance),
        )
        position = np.sum(weights[:, np.newaxis] * locations, axis=0) / np.sum(weights)
        accuracy = float(np.mean(np.linalg.norm(locations - position, axis=1)))

        logger.debug(
            "k-NN match (%.2f, %.2f) from %d neighbours, accuracy %.2f m",
            position[0], position[1], len(neighbors), accuracy,
        )
        return MatchResult(
            x=float(position[0]),
            y=float(position[1]),
            accuracy=accuracy,
            neighbors=tuple((fp.location_id, float(d)) for fp, d in neighbors),
            strategy=MatchStrategy.KNN,
        )

    def nearest(self, scan: Scan, prefiltered: bool = False) -> Optional[MatchResult]:
        """Single nearest fingerprint among those sharing at least one access point."""
        if not prefiltered:
            scan = self.filter_scan(scan)
        candidates = self._distances(scan)
        if not candidates:
            return None
        fingerprint, d, _ = candidates[0]
        return MatchResult(
            x=fingerprint.x,
            y=fingerprint.y,
            accuracy=d,
            neighbors=((fingerprint.location_id, d),),
            strategy=MatchStrategy.NEAREST,
        )
