"""
Tracking Module

Single-target Kalman tracking in a local tangent-plane frame.

Components:
    - PositionObservation: 2D position measurement relative to an origin
    - KalmanPredictFilter / KalmanUpdateFilter: CV predict, Joseph-form update
    - PositionVelocityTrack: Track lifecycle with atomic predict/update
    - TrackingSession: Thread-safe observation handler and view publisher
    - NisStatistics: Filter consistency check
"""

from .filters import (
    FilterResult,
    KalmanPredictFilter,
    KalmanUpdateFilter,
    PredictFilter,
    UpdateFilter,
)
from .metrics import NisStatistics, nis_bounds, normalized_innovation_squared
from .observation import Observation, PositionObservation
from .track import PositionVelocityTrack, Track, TrackState, TrackView
from .session import TrackingSession

__all__ = [
    "Observation",
    "PositionObservation",
    "FilterResult",
    "PredictFilter",
    "UpdateFilter",
    "KalmanPredictFilter",
    "KalmanUpdateFilter",
    "Track",
    "TrackState",
    "TrackView",
    "PositionVelocityTrack",
    "TrackingSession",
    "NisStatistics",
    "nis_bounds",
    "normalized_innovation_squared",
]
