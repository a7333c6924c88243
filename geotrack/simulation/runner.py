"""
Headless Replay Runner

Runs a tracking session over a recorded or synthetic observation stream and
collects summary statistics.

Features:
    - No live position source required
    - Optional HDF5 recording of every published view
    - Position error against ground truth when available
    - NIS consistency check

Usage:
    runner = ReplayRunner(config)
    result = runner.run(observations, truth)
    print(result.to_dict())
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from geotrack.geodesy import Position, range_azimuth
from geotrack.io.config_loader import TrackerConfig
from geotrack.io.logs import ObservationLogReader
from geotrack.io.recorder import TrackRecorder
from geotrack.tracking.observation import PositionObservation
from geotrack.tracking.session import TrackingSession
from geotrack.tracking.track import TrackView


@dataclass
class ReplayResult:
    """
    Results from a replay run.

    Attributes:
        config: Tracker configuration used
        num_observations: Observations processed
        num_time_only: Time-only observations among them
        num_updates: Successful measurement updates
        failed_steps: Init/predict/update steps that failed and were rolled back
        final_view: Last published track view (None if no track was started)
        mean_nis: Mean normalized innovation squared (NaN without updates)
        nis_consistent: True if the mean NIS lies inside the chi-square bounds
        rms_error_m: RMS geodesic distance to truth (NaN without truth)
        runtime_s: Wall-clock execution time
    """

    config: TrackerConfig
    num_observations: int = 0
    num_time_only: int = 0
    num_updates: int = 0
    failed_steps: int = 0
    final_view: Optional[TrackView] = None
    mean_nis: float = math.nan
    nis_consistent: bool = False
    rms_error_m: float = math.nan
    runtime_s: float = 0.0
    position_errors_m: List[float] = field(default_factory=list)

    @property
    def has_track(self) -> bool:
        return self.final_view is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        data: Dict[str, Any] = {
            "num_observations": self.num_observations,
            "num_time_only": self.num_time_only,
            "num_updates": self.num_updates,
            "failed_steps": self.failed_steps,
            "mean_nis": self.mean_nis,
            "nis_consistent": self.nis_consistent,
            "rms_error_m": self.rms_error_m,
            "runtime_s": self.runtime_s,
        }
        if self.final_view is not None:
            data.update(
                {
                    "final_lat_deg": self.final_view.lat_deg,
                    "final_lon_deg": self.final_view.lon_deg,
                    "speed_mps": self.final_view.speed_mps,
                    "heading_deg": math.degrees(self.final_view.heading_rad) % 360.0,
                }
            )
        return data


class ReplayRunner:
    """
    Headless replay runner.

    Feeds observations through a fresh TrackingSession and summarizes the
    outcome.
    """

    def __init__(
        self,
        config: TrackerConfig,
        logger: Optional[logging.Logger] = None,
        recorder: Optional[TrackRecorder] = None,
    ):
        """
        Initialize replay runner.

        Args:
            config: Tracker configuration
            logger: Logger passed to the session, track and filters
            recorder: Optional HDF5 recorder; recording is started and
                      stopped by the caller
        """
        self.config = config
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self.recorder = recorder
        self.session: Optional[TrackingSession] = None

    def run(
        self,
        observations: Iterable[PositionObservation],
        truth: Optional[Sequence[Position]] = None,
    ) -> ReplayResult:
        """
        Execute a replay.

        Args:
            observations: Observation stream in time order
            truth: Truth position per observation, aligned by index

        Returns:
            ReplayResult with run statistics
        """
        start_time = time.perf_counter()

        self.session = TrackingSession(self.config, self._logger)
        result = ReplayResult(config=self.config)

        for index, observation in enumerate(observations):
            result.num_observations += 1
            if observation.is_time_only:
                result.num_time_only += 1

            view = self.session.process(observation)

            if self.recorder is not None:
                self.recorder.record_observation(observation)
                if view is not None:
                    self.recorder.record_view(view)

            if view is None:
                continue
            if truth is not None and index < len(truth):
                estimate = Position(view.lat_rad, view.lon_rad)
                result.position_errors_m.append(range_azimuth(truth[index], estimate).range_m)

        runtime = time.perf_counter() - start_time
        self._finalize(result, runtime)
        return result

    def run_file(self, filepath: str, truth: Optional[Sequence[Position]] = None) -> ReplayResult:
        """Replay a binary observation log."""
        return self.run(ObservationLogReader(filepath), truth)

    def _finalize(self, result: ReplayResult, runtime: float) -> None:
        """Fill summary fields from the session."""
        nis = self.session.nis_statistics()

        result.num_updates = nis.count
        result.failed_steps = self.session.failed_steps
        result.final_view = self.session.latest_view()
        result.mean_nis = nis.mean
        result.nis_consistent = nis.count > 0 and nis.is_consistent()
        result.runtime_s = runtime

        if result.position_errors_m:
            errors = np.asarray(result.position_errors_m)
            result.rms_error_m = float(np.sqrt(np.mean(errors**2)))

        self._logger.info(
            f"Replay finished: {result.num_observations} observations, "
            f"{result.num_updates} updates, {result.failed_steps} failed steps "
            f"in {runtime * 1000:.1f} ms"
        )


def run_replay(
    config: TrackerConfig,
    observations: Iterable[PositionObservation],
    truth: Optional[Sequence[Position]] = None,
) -> ReplayResult:
    """
    Convenience function for one-shot replays.

    Args:
        config: Tracker configuration
        observations: Observation stream
        truth: Optional truth positions aligned with the observations

    Returns:
        Replay result
    """
    runner = ReplayRunner(config)
    return runner.run(observations, truth)
