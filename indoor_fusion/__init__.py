"""Multi-modal indoor position fusion.

This package contains the components of the fusion engine:
- sensors: Step detection, step length estimation and dead reckoning
- rf: BLE beacon triangulation and GDOP
- fingerprinting: Wi-Fi fingerprint database and matching
- models: Unicycle motion model
- estimators: Extended Kalman Filter
- fusion: EKF fusion core and cycle orchestration
- eval: Error metrics and plots
"""

__version__ = "0.1.0"
