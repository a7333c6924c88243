"""
GeoTrack I/O Module

Configuration loading, binary observation/track logs and HDF5 recording.

Components:
    - ConfigLoader / TrackerConfig: YAML tracker configuration
    - ObservationLogReader / ObservationLogWriter: Binary observation logs
    - TrackLogReader / TrackLogWriter: Binary track logs
    - TrackRecorder: HDF5 session recorder
"""

from .config_loader import ConfigLoader, TrackerConfig, load_config
from .logs import (
    ObservationLogReader,
    ObservationLogWriter,
    TrackLogReader,
    TrackLogWriter,
    deserialize_observation,
    deserialize_track,
    serialize_observation,
    serialize_track,
)
from .recorder import TrackRecorder, validate_hdf5_structure

__all__ = [
    "ConfigLoader",
    "TrackerConfig",
    "load_config",
    "ObservationLogReader",
    "ObservationLogWriter",
    "TrackLogReader",
    "TrackLogWriter",
    "serialize_observation",
    "deserialize_observation",
    "serialize_track",
    "deserialize_track",
    "TrackRecorder",
    "validate_hdf5_structure",
]
