"""
Tracker Configuration Loader

YAML-based tracker configuration for GeoTrack.

Loads tracker parameters from YAML files and creates configured tracks
and tracking sessions.

Supported sections:
    tracker:
        update_rate_ms: 5000             # observation period
        display_rate_ms: 10000           # published view refresh period
        use_fix_accuracy: true           # use the fix's own accuracy for R
        obs_position_accuracy_m: 50.0    # fallback 1-sigma fix accuracy
        trk_velocity_accuracy_mps: 1.5   # initial 1-sigma velocity accuracy
        trk_process_noise: 0.0           # q of the CV process noise
    origin:                              # optional fixed tangent-plane origin
        lat_deg: 45.0
        lon_deg: -75.0
    logging:
        level: INFO

Usage:
    loader = ConfigLoader('config/tracker.yaml')
    config = loader.get_config()
    track = config.create_track()
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from geotrack.errors import ConfigError
from geotrack.geodesy import Position

DEFAULT_UPDATE_RATE_MS = 5000
DEFAULT_DISPLAY_RATE_MS = 10000
DEFAULT_POSITION_ACCURACY_M = 50.0
DEFAULT_VELOCITY_ACCURACY_MPS = 1.5
DEFAULT_PROCESS_NOISE = 0.0

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class TrackerConfig:
    """
    Tracker construction parameters.

    Attributes:
        update_rate_s: Observation period [s]
        display_rate_s: Minimum time between published views [s]
        use_fix_accuracy: Use the accuracy reported with each fix for R
        position_accuracy_m: 1-sigma fix accuracy when the fix has none [m]
        velocity_accuracy_mps: Initial 1-sigma velocity accuracy [m/s]
        process_noise: CV process noise intensity q
        origin: Fixed tangent-plane origin, or None to anchor at the first fix
        log_level: Logging level name
    """

    update_rate_s: float = DEFAULT_UPDATE_RATE_MS / 1000.0
    display_rate_s: float = DEFAULT_DISPLAY_RATE_MS / 1000.0
    use_fix_accuracy: bool = True
    position_accuracy_m: float = DEFAULT_POSITION_ACCURACY_M
    velocity_accuracy_mps: float = DEFAULT_VELOCITY_ACCURACY_MPS
    process_noise: float = DEFAULT_PROCESS_NOISE
    origin: Optional[Position] = None
    log_level: str = "INFO"

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigError: On a non-positive rate or accuracy, negative
                         process noise or an unknown log level
        """
        for name in ("update_rate_s", "display_rate_s", "position_accuracy_m"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0.0:
                raise ConfigError(f"{name} must be positive, got {value}")
        if not math.isfinite(self.velocity_accuracy_mps):
            raise ConfigError(f"velocity_accuracy_mps must be finite, got {self.velocity_accuracy_mps}")
        if not math.isfinite(self.process_noise) or self.process_noise < 0.0:
            raise ConfigError(f"process_noise must be >= 0, got {self.process_noise}")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigError(f"Unknown log level: {self.log_level}")

    def fix_accuracy(self, reported_accuracy_m: Optional[float]) -> float:
        """Accuracy to use for a fix, honoring ``use_fix_accuracy``."""
        if self.use_fix_accuracy and reported_accuracy_m is not None and reported_accuracy_m > 0.0:
            return reported_accuracy_m
        return self.position_accuracy_m

    def create_track(self, logger: Optional[logging.Logger] = None):
        """
        Build an uninitialized track with its own predict/update filters.

        Returns:
            PositionVelocityTrack instance
        """
        # Import here to avoid circular dependencies
        from geotrack.tracking.filters import KalmanPredictFilter, KalmanUpdateFilter
        from geotrack.tracking.track import PositionVelocityTrack

        return PositionVelocityTrack(
            KalmanPredictFilter(self.process_noise, logger=logger),
            KalmanUpdateFilter(logger=logger),
            self.velocity_accuracy_mps,
            logger=logger,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Flat dictionary (HDF5 attributes, run summaries)."""
        data: Dict[str, Any] = {
            "update_rate_s": self.update_rate_s,
            "display_rate_s": self.display_rate_s,
            "use_fix_accuracy": self.use_fix_accuracy,
            "position_accuracy_m": self.position_accuracy_m,
            "velocity_accuracy_mps": self.velocity_accuracy_mps,
            "process_noise": self.process_noise,
            "log_level": self.log_level,
        }
        if self.origin is not None:
            data["origin_lat_deg"] = self.origin.lat_deg
            data["origin_lon_deg"] = self.origin.lon_deg
        return data


class ConfigLoader:
    """
    Loads tracker configuration from YAML files.

    Usage:
        loader = ConfigLoader('config/tracker.yaml')
        config = loader.get_config()
    """

    def __init__(self, filepath: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            filepath: Path to YAML config file (optional)
        """
        self.filepath = filepath
        self.data: Dict[str, Any] = {}
        self._config: Optional[TrackerConfig] = None

        if filepath:
            self.load(filepath)

    def load(self, filepath: str) -> bool:
        """
        Load configuration from YAML file.

        Args:
            filepath: Path to YAML config file

        Returns:
            True if loaded successfully

        Raises:
            FileNotFoundError: If file doesn't exist
            yaml.YAMLError: If YAML parsing fails
            ConfigError: If a value is missing its expected type or range
        """
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Config file not found: {filepath}")

        self.filepath = filepath

        with open(filepath, "r", encoding="utf-8") as f:
            self.data = yaml.safe_load(f) or {}

        if not isinstance(self.data, dict):
            raise ConfigError(f"Config root must be a mapping: {filepath}")

        self._config = self._parse_config()
        return True

    def load_string(self, text: str) -> TrackerConfig:
        """Parse configuration from a YAML string."""
        self.data = yaml.safe_load(text) or {}
        if not isinstance(self.data, dict):
            raise ConfigError("Config root must be a mapping")
        self._config = self._parse_config()
        return self._config

    @staticmethod
    def _number(section: Dict[str, Any], key: str, default: float) -> float:
        value = section.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key}: expected a number, got {value!r}") from e

    @staticmethod
    def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"Section '{name}' must be a mapping")
        return section

    def _parse_config(self) -> TrackerConfig:
        """Parse loaded YAML data into TrackerConfig."""
        tracker = self._section(self.data, "tracker")

        use_fix_accuracy = tracker.get("use_fix_accuracy", True)
        if not isinstance(use_fix_accuracy, bool):
            raise ConfigError(f"use_fix_accuracy: expected a boolean, got {use_fix_accuracy!r}")

        config = TrackerConfig(
            update_rate_s=self._number(tracker, "update_rate_ms", DEFAULT_UPDATE_RATE_MS) / 1000.0,
            display_rate_s=self._number(tracker, "display_rate_ms", DEFAULT_DISPLAY_RATE_MS) / 1000.0,
            use_fix_accuracy=use_fix_accuracy,
            position_accuracy_m=self._number(
                tracker, "obs_position_accuracy_m", DEFAULT_POSITION_ACCURACY_M
            ),
            velocity_accuracy_mps=self._number(
                tracker, "trk_velocity_accuracy_mps", DEFAULT_VELOCITY_ACCURACY_MPS
            ),
            process_noise=self._number(tracker, "trk_process_noise", DEFAULT_PROCESS_NOISE),
            origin=self._parse_origin(),
            log_level=str(self._section(self.data, "logging").get("level", "INFO")).upper(),
        )
        config.validate()
        return config

    def _parse_origin(self) -> Optional[Position]:
        """Parse the optional fixed origin."""
        if "origin" not in self.data or self.data["origin"] is None:
            return None

        origin = self._section(self.data, "origin")
        if "lat_deg" not in origin or "lon_deg" not in origin:
            raise ConfigError("origin requires lat_deg and lon_deg")

        lat_deg = self._number(origin, "lat_deg", 0.0)
        lon_deg = self._number(origin, "lon_deg", 0.0)
        if not -90.0 <= lat_deg <= 90.0 or not -180.0 <= lon_deg <= 180.0:
            raise ConfigError(f"origin out of range: ({lat_deg}, {lon_deg})")

        return Position.from_degrees(lat_deg, lon_deg)

    def get_config(self) -> Optional[TrackerConfig]:
        """
        Get parsed tracker configuration.

        Returns:
            TrackerConfig or None if not loaded
        """
        return self._config


def load_config(filepath: Optional[str] = None) -> TrackerConfig:
    """
    Convenience function to load a config file.

    Args:
        filepath: Path to YAML config file, or None for the defaults

    Returns:
        TrackerConfig instance
    """
    if filepath is None:
        return TrackerConfig()
    loader = ConfigLoader(filepath)
    return loader.get_config()
