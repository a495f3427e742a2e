"""Type definitions for Wi-Fi fingerprint positioning.

A fingerprint is the set of access points (BSSID → mean RSSI in dBm) observed
at a surveyed reference location. The database is keyed by location id and is
loaded once by an external persistence layer; ``to_dict``/``from_dict`` give
that layer a JSON-compatible form.
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import numpy as np

# Scan snapshot as delivered by the platform scanner
Scan = Mapping[str, float]


@dataclass(frozen=True)
class WifiFingerprint:
    """
    Reference fingerprint at a surveyed location.

    Attributes:
        location_id: Unique identifier of the reference location.
        access_points: BSSID → RSSI (dBm). Stored as a read-only mapping.
        x, y: Reference coordinates (m).
        timestamp: Survey time (s), informational.

    Example:
        >>> fp = WifiFingerprint("lobby", {"aa:bb": -50.0, "cc:dd": -62.0}, 1.0, 2.0)
        >>> fp.access_points["aa:bb"]
        -50.0
    """

    location_id: str
    access_points: Mapping[str, float]
    x: float
    y: float
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        """Validate and freeze the fingerprint."""
        if not isinstance(self.location_id, str) or not self.location_id:
            raise ValueError(f"location_id must be a non-empty string, got {self.location_id!r}")
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(
                f"Reference coordinates must be finite, got ({self.x}, {self.y}) "
                f"for '{self.location_id}'"
            )
        aps = {str(bssid): float(rssi) for bssid, rssi in dict(self.access_points).items()}
        object.__setattr__(self, "access_points", MappingProxyType(aps))

    @property
    def location(self) -> np.ndarray:
        return np.array([self.x, self.y])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location_id": self.location_id,
            "x": self.x,
            "y": self.y,
            "timestamp": self.timestamp,
            "access_points": dict(self.access_points),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WifiFingerprint":
        return cls(
            location_id=data["location_id"],
            access_points=data["access_points"],
            x=float(data["x"]),
            y=float(data["y"]),
            timestamp=float(data.get("timestamp", 0.0)),
        )


def average_scans(scans: Iterable[Scan], min_presence: float = 0.5) -> Dict[str, float]:
    """
    Average several scans taken at one location.

    Args:
        scans: Scan snapshots (BSSID → RSSI).
        min_presence: Fraction of scans a BSSID must appear in to be kept.

    Returns:
        BSSID → mean RSSI over the scans it appeared in.

    Example:
        >>> average_scans([{"a": -50, "b": -70}, {"a": -54}, {"a": -52}])
        {'a': -52.0}
    """
    scans = list(scans)
    if not scans:
        return {}

    readings: Dict[str, List[float]] = {}
    for scan in scans:
        for bssid, rssi in scan.items():
            readings.setdefault(bssid, []).append(float(rssi))

    required = len(scans) * min_presence
    return {
        bssid: float(np.mean(values))
        for bssid, values in readings.items()
        if len(values) >= required
    }


@dataclass
class FingerprintDatabase:
    """
    Radio map: reference fingerprints keyed by location id.

    Example:
        >>> db = FingerprintDatabase()
        >>> db.put(WifiFingerprint("a", {"ap1": -50.0}, 0.0, 0.0))
        >>> len(db)
        1
    """

    _fingerprints: Dict[str, WifiFingerprint] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self._fingerprints)

    def __iter__(self) -> Iterator[WifiFingerprint]:
        return iter(list(self._fingerprints.values()))

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._fingerprints

    def put(self, fingerprint: WifiFingerprint) -> None:
        """Insert or replace the fingerprint of ``fingerprint.location_id``."""
        if not isinstance(fingerprint, WifiFingerprint):
            raise TypeError(f"Expected WifiFingerprint, got {type(fingerprint).__name__}")
        self._fingerprints[fingerprint.location_id] = fingerprint

    def get(self, location_id: str) -> Optional[WifiFingerprint]:
        return self._fingerprints.get(location_id)

    def remove(self, location_id: str) -> Optional[WifiFingerprint]:
        return self._fingerprints.pop(location_id, None)

    def clear(self) -> None:
        self._fingerprints.clear()

    def fingerprints(self) -> List[WifiFingerprint]:
        return list(self._fingerprints.values())

    def add_scans(
        self,
        location_id: str,
        scans: Iterable[Scan],
        x: float,
        y: float,
        timestamp: float = 0.0,
    ) -> WifiFingerprint:
        """
        Build a fingerprint from repeated scans at one location and store it.

        BSSIDs seen in fewer than half of the scans are dropped.

        Raises:
            ValueError: If no BSSID survives the averaging.
        """
        access_points = average_scans(scans)
        if not access_points:
            raise ValueError(f"No access points retained for location '{location_id}'")
        fingerprint = WifiFingerprint(location_id, access_points, x, y, timestamp)
        self.put(fingerprint)
        return fingerprint

    def to_dict(self) -> Dict[str, Any]:
        return {"fingerprints": [fp.to_dict() for fp in self._fingerprints.values()]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FingerprintDatabase":
        db = cls()
        for item in data.get("fingerprints", []):
            db.put(WifiFingerprint.from_dict(item))
        return db

    @classmethod
    def from_fingerprints(cls, fingerprints: Iterable[WifiFingerprint]) -> "FingerprintDatabase":
        db = cls()
        for fingerprint in fingerprints:
            db.put(fingerprint)
        return db
