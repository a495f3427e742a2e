"""Wi-Fi fingerprint positioning.

This package provides:
    - types: Reference fingerprints and the fingerprint database
    - matcher: RSSI distance, k-NN and nearest-neighbour matching
"""

from .types import FingerprintDatabase, Scan, WifiFingerprint, average_scans
from .matcher import (
    FingerprintMatcher,
    MatchResult,
    MatchStrategy,
    common_bssids,
    fingerprint_distance,
)

__all__ = [
    # Types
    "WifiFingerprint",
    "FingerprintDatabase",
    "Scan",
    "average_scans",
    # Matching
    "fingerprint_distance",
    "common_bssids",
    "FingerprintMatcher",
    "MatchResult",
    "MatchStrategy",
]
