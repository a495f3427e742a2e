"""
Visualization utilities for fused indoor positioning.

All functions return matplotlib Figure objects for flexible display/saving.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np


def plot_trajectories(
    truth_xy: np.ndarray,
    est_xy_dict: Dict[str, np.ndarray],
    beacons_xy: Optional[np.ndarray] = None,
    fixes_xy: Optional[np.ndarray] = None,
    title: str = "Fused Trajectory",
) -> plt.Figure:
    """
    Plot ground truth against estimated trajectories.

    Args:
        truth_xy: True trajectory, shape (N, 2).
        est_xy_dict: Estimated trajectories {name: (N, 2) array}.
        beacons_xy: BLE beacon positions, shape (M, 2) (optional).
        fixes_xy: Absolute fixes fed to the filter, shape (K, 2) (optional).
        title: Plot title.

    Returns:
        fig: Matplotlib figure.
    """
    fig, ax = plt.subplots(figsize=(10, 8))

    ax.plot(truth_xy[:, 0], truth_xy[:, 1], "k-", linewidth=2, label="Ground Truth", zorder=10)
    ax.plot(truth_xy[0, 0], truth_xy[0, 1], "go", markersize=10, label="Start", zorder=11)
    ax.plot(truth_xy[-1, 0], truth_xy[-1, 1], "ro", markersize=10, label="End", zorder=11)

    colors = ["blue", "red", "green", "orange", "purple"]
    linestyles = ["-", "--", "-.", ":", "-"]
    for i, (name, est_xy) in enumerate(est_xy_dict.items()):
        ax.plot(
            est_xy[:, 0],
            est_xy[:, 1],
            linestyle=linestyles[i % len(linestyles)],
            color=colors[i % len(colors)],
            linewidth=1.5,
            label=name,
            alpha=0.7,
        )

    if fixes_xy is not None and len(fixes_xy):
        ax.scatter(fixes_xy[:, 0], fixes_xy[:, 1], s=12, c="gray", marker="x", label="Absolute fixes")

    if beacons_xy is not None and len(beacons_xy):
        ax.plot(beacons_xy[:, 0], beacons_xy[:, 1], "s", color="blue", markersize=8, label="Beacons", zorder=5)

    ax.set_xlabel("X (m)", fontsize=12)
    ax.set_ylabel("Y (m)", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)
    ax.axis("equal")

    plt.tight_layout()
    return fig


def plot_error_time(
    t: np.ndarray,
    errors_dict: Dict[str, np.ndarray],
    accuracy: Optional[np.ndarray] = None,
    title: str = "Position Error",
) -> plt.Figure:
    """
    Plot error magnitude over time.

    Args:
        t: Timestamps (s), shape (N,).
        errors_dict: {name: error vectors (N, 2)}.
        accuracy: Reported fused accuracy (N,), drawn as a band (optional).
        title: Plot title.

    Returns:
        fig: Matplotlib figure.
    """
    fig, ax = plt.subplots(figsize=(12, 5))
    for name, errors in errors_dict.items():
        ax.plot(t, np.linalg.norm(errors, axis=1), linewidth=1.5, label=name)
    if accuracy is not None:
        ax.fill_between(t, 0, accuracy, color="gray", alpha=0.2, label="Reported accuracy")

    ax.set_xlabel("Time (s)", fontsize=12)
    ax.set_ylabel("Error (m)", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig


def save_figure(
    fig: plt.Figure,
    out_dir: Union[str, Path],
    name: str,
    formats: Tuple[str, ...] = ("png",),
) -> List[Path]:
    """
    Save figure in one or more formats.

    Returns:
        paths: List of saved file paths.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for fmt in formats:
        filepath = out_dir / f"{name}.{fmt}"
        fig.savefig(filepath, dpi=150, bbox_inches="tight")
        paths.append(filepath)
    return paths
