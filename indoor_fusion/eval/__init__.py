"""
Evaluation and visualization.

Modules:
    metrics: Error metrics (RMSE, error statistics, NEES, accuracy coverage)
    plots: Trajectory and error-over-time figures
"""

from .metrics import (
    accuracy_coverage,
    compute_error_stats,
    compute_nees,
    compute_position_errors,
    compute_rmse,
    positions_to_array,
)
from .plots import plot_error_time, plot_trajectories, save_figure

__all__ = [
    # Metrics
    "positions_to_array",
    "compute_position_errors",
    "compute_rmse",
    "compute_error_stats",
    "compute_nees",
    "accuracy_coverage",
    # Plots
    "plot_trajectories",
    "plot_error_time",
    "save_figure",
]
