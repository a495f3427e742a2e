"""Beacon reference data for BLE positioning."""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class Beacon:
    """
    A BLE beacon at a surveyed position.

    The position is static map data. ``last_rssi``, ``filtered_rssi``,
    ``estimated_distance`` and ``distance_confidence`` are refreshed by the
    external ranging collaborator (log-distance path loss) before each
    triangulation.

    Attributes:
        id: Beacon identifier (e.g. MAC address or UUID/major/minor).
        x, y: Beacon position (m).
        tx_power: Calibrated RSSI at 1 m (dBm).
        last_rssi: Latest raw RSSI (dBm), 0 when never heard.
        filtered_rssi: Smoothed RSSI (dBm), 0 when never heard.
        estimated_distance: Range estimate (m), 0 when unknown.
        distance_confidence: Confidence in the range estimate, clamped to [0, 1].
    """

    id: str
    x: float
    y: float
    tx_power: float = -59.0
    last_rssi: float = 0.0
    filtered_rssi: float = 0.0
    estimated_distance: float = 0.0
    distance_confidence: float = 0.0

    def __post_init__(self) -> None:
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(f"Beacon {self.id} position must be finite, got ({self.x}, {self.y})")
        self.distance_confidence = float(np.clip(self.distance_confidence, 0.0, 1.0))

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    @property
    def is_usable(self) -> bool:
        """True if the beacon carries a finite, positive range from a live reading."""
        rssi_missing = self.last_rssi == 0 and self.filtered_rssi == 0
        return (
            math.isfinite(self.estimated_distance)
            and self.estimated_distance > 0
            and not rssi_missing
        )

    def update_range(
        self,
        distance: float,
        confidence: float,
        rssi: Optional[float] = None,
        filtered_rssi: Optional[float] = None,
    ) -> None:
        """Store a new range estimate, clamping the confidence to [0, 1]."""
        self.estimated_distance = float(distance)
        self.distance_confidence = float(np.clip(confidence, 0.0, 1.0))
        if rssi is not None:
            self.last_rssi = float(rssi)
        if filtered_rssi is not None:
            self.filtered_rssi = float(filtered_rssi)
