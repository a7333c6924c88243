"""
GeoTrack Source Package

Single-target geographic tracking with:
- Dense matrix algebra (LUP decomposition, determinant, inverse)
- Vincenty geodesy on the WGS-84 ellipsoid
- Constant-velocity Kalman filtering in a local tangent plane
- Binary observation/track logs and HDF5 recording
"""

from geotrack.errors import GeoTrackError
from geotrack.geodesy import Position, destination, range_azimuth
from geotrack.io.config_loader import ConfigLoader, TrackerConfig, load_config
from geotrack.linalg import Matrix
from geotrack.tracking import (
    KalmanPredictFilter,
    KalmanUpdateFilter,
    PositionObservation,
    PositionVelocityTrack,
    TrackingSession,
    TrackState,
    TrackView,
)

__version__ = "1.0.0"
__author__ = "GeoTrack Contributors"

__all__ = [
    # Kernels
    "GeoTrackError",
    "Matrix",
    "Position",
    "destination",
    "range_azimuth",
    # Tracking
    "PositionObservation",
    "KalmanPredictFilter",
    "KalmanUpdateFilter",
    "PositionVelocityTrack",
    "TrackState",
    "TrackView",
    "TrackingSession",
    # Configuration
    "ConfigLoader",
    "TrackerConfig",
    "load_config",
]
