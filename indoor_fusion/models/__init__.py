"""Motion models for state estimation."""

from indoor_fusion.models.motion_models import UnicycleModel, wrap_angle

__all__ = ["UnicycleModel", "wrap_angle"]
