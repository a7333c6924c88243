"""
HDF5 Track Recorder

Saves tracking session data to HDF5 files for post-analysis.

Features:
    - Tracker configuration storage
    - Track state history with timestamps
    - Observation measurements (including time-only observations)
    - Automatic filename with timestamp

Reference: HDF5 Best Practices for Scientific Data
"""

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import h5py
import numpy as np

from geotrack.tracking.observation import PositionObservation
from geotrack.tracking.track import TrackView


@dataclass
class RecordingBuffer:
    """
    Session data accumulator for HDF5 recording.

    Attributes:
        config: Tracker configuration dictionary
        states: Rows of (t, lat_rad, lon_rad, x, y, vx, vy)
        covariance_diag: Rows of diag(P)
        received_update: Per-state update flag
        observations: Rows of (t, x, y, time_only)
    """

    config: Dict[str, Any] = field(default_factory=dict)
    states: List[List[float]] = field(default_factory=list)
    covariance_diag: List[List[float]] = field(default_factory=list)
    received_update: List[bool] = field(default_factory=list)
    observations: List[List[float]] = field(default_factory=list)

    def clear(self):
        """Clear all recorded data."""
        self.config = {}
        self.states = []
        self.covariance_diag = []
        self.received_update = []
        self.observations = []


class TrackRecorder:
    """
    HDF5 track recorder.

    File Structure:
        /config (attributes)
        /track
            - states (Nx7 array: t, lat_rad, lon_rad, x, y, vx, vy)
            - covariance_diag (Nx4 array)
            - received_update (N bool array)
        /observations
            - time (array)
            - x (array)
            - y (array)
            - time_only (bool array)
    """

    def __init__(self, output_dir: str = "output"):
        """
        Initialize track recorder.

        Args:
            output_dir: Directory for HDF5 output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.buffer = RecordingBuffer()
        self.is_recording = False
        self._lock = threading.Lock()

    def start_recording(self, config: Dict[str, Any]):
        """
        Start a new recording session.

        Args:
            config: Tracker configuration dictionary
        """
        with self._lock:
            self.buffer.clear()
            self.buffer.config = config.copy()
            self.is_recording = True

    def stop_recording(self, filename: Optional[str] = None) -> Optional[str]:
        """
        Stop recording and save to HDF5.

        Args:
            filename: Output file name, defaults to a timestamped name

        Returns:
            Path to saved file, or None if no data
        """
        with self._lock:
            self.is_recording = False

            if not self.buffer.states and not self.buffer.observations:
                return None

            return self._save_to_hdf5(filename)

    def record_view(self, view: TrackView):
        """Record a published track view."""
        if not self.is_recording:
            return

        with self._lock:
            self.buffer.states.append(
                [view.time_s, view.lat_rad, view.lon_rad, view.x_m, view.y_m, view.vx_mps, view.vy_mps]
            )
            self.buffer.covariance_diag.append(list(view.covariance_diag))
            self.buffer.received_update.append(view.received_update)

    def record_observation(self, observation: PositionObservation):
        """Record an observation; time-only observations store NaN for x/y."""
        if not self.is_recording:
            return

        with self._lock:
            if observation.is_time_only:
                x, y = float("nan"), float("nan")
            else:
                x = observation.z.at(PositionObservation.X_POS)
                y = observation.z.at(PositionObservation.Y_POS)
            self.buffer.observations.append(
                [observation.init_time_s, x, y, float(observation.is_time_only)]
            )

    def _save_to_hdf5(self, filename: Optional[str] = None) -> str:
        """
        Save session data to HDF5 file.

        Returns:
            Path to saved file
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        if filename is None:
            filename = f"track_{timestamp}.h5"
        filepath = self.output_dir / filename

        with h5py.File(filepath, "w") as f:
            config_group = f.create_group("config")
            for key, value in self.buffer.config.items():
                if isinstance(value, (int, float, str, bool)):
                    config_group.attrs[key] = value
                else:
                    config_group.attrs[key] = json.dumps(value)

            track_group = f.create_group("track")
            states = np.array(self.buffer.states, dtype=np.float64).reshape(-1, 7)
            track_group.create_dataset("states", data=states)
            covariance = np.array(self.buffer.covariance_diag, dtype=np.float64).reshape(-1, 4)
            track_group.create_dataset("covariance_diag", data=covariance)
            track_group.create_dataset(
                "received_update", data=np.array(self.buffer.received_update, dtype=bool)
            )

            obs_group = f.create_group("observations")
            observations = np.array(self.buffer.observations, dtype=np.float64).reshape(-1, 4)
            obs_group.create_dataset("time", data=observations[:, 0])
            obs_group.create_dataset("x", data=observations[:, 1])
            obs_group.create_dataset("y", data=observations[:, 2])
            obs_group.create_dataset("time_only", data=observations[:, 3].astype(bool))

            f.attrs["version"] = "1.0"
            f.attrs["created"] = timestamp
            f.attrs["software"] = "GeoTrack"

        return str(filepath)

    def get_recording_stats(self) -> Dict[str, Any]:
        """
        Get current recording statistics.

        Returns:
            Dict with recording stats
        """
        with self._lock:
            states = self.buffer.states
            return {
                "is_recording": self.is_recording,
                "duration_s": states[-1][0] - states[0][0] if states else 0.0,
                "num_states": len(states),
                "num_observations": len(self.buffer.observations),
                "num_updates": sum(self.buffer.received_update),
            }


def validate_hdf5_structure(filepath: str) -> Dict[str, Any]:
    """
    Validate HDF5 file structure.

    Args:
        filepath: Path to HDF5 file

    Returns:
        Validation result dictionary
    """
    result = {"valid": True, "groups": [], "datasets": [], "errors": []}

    try:
        with h5py.File(filepath, "r") as f:
            for group_name in ["config", "track", "observations"]:
                if group_name in f:
                    result["groups"].append(group_name)
                else:
                    result["errors"].append(f"Missing group: {group_name}")
                    result["valid"] = False

            def visitor(name, obj):
                if isinstance(obj, h5py.Dataset):
                    result["datasets"].append(name)

            f.visititems(visitor)

            if "track/states" in f and f["track/states"].shape[1:] != (7,):
                result["errors"].append(f"track/states has shape {f['track/states'].shape}")
                result["valid"] = False

    except (OSError, KeyError) as e:
        result["valid"] = False
        result["errors"].append(str(e))

    return result
