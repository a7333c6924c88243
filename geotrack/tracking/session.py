"""
Tracking Session

Drives a single track from a stream of observations:

    - the first observation with a measurement creates and initializes the
      track (earlier time-only observations are recorded and skipped);
    - every later observation predicts the track to the observation time
      and, unless it is time-only, updates it.

The session is the thread-safe boundary: one lock guards the track, the
observation history and the published views, and readers only ever receive
immutable TrackView snapshots.
"""

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING, Deque, List, Optional

from geotrack.errors import GeoTrackError
from geotrack.geodesy import Position

from .filters import KalmanUpdateFilter
from .metrics import NisStatistics
from .observation import PositionObservation
from .track import PositionVelocityTrack, TrackView

if TYPE_CHECKING:
    from geotrack.io.config_loader import TrackerConfig


class TrackingSession:
    """
    One track plus its observation and view history.

    Example:
        >>> session = TrackingSession(TrackerConfig())
        >>> view = session.process_fix(Position.from_degrees(45.0, -75.0), 0.0, 5.0)
        >>> round(view.lat_deg, 6)
        45.0
    """

    def __init__(
        self,
        config: "TrackerConfig",
        logger: Optional[logging.Logger] = None,
        max_history: int = 10_000,
    ) -> None:
        """
        Args:
            config: Tracker parameters
            logger: Logger shared with the track and filters
            max_history: Maximum number of observations and views kept in the histories
        """
        self.config = config
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._lock = threading.Lock()

        self._origin: Optional[Position] = None if config.origin is None else config.origin.copy()
        self._track: Optional[PositionVelocityTrack] = None
        self._observations: Deque[PositionObservation] = deque(maxlen=max_history)
        self._history: Deque[TrackView] = deque(maxlen=max_history)
        self._latest: Optional[TrackView] = None
        self._display: Optional[TrackView] = None
        self._nis = NisStatistics()

        self.failed_steps = 0

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    @property
    def origin(self) -> Optional[Position]:
        with self._lock:
            return None if self._origin is None else self._origin.copy()

    def observation_from_fix(
        self,
        position: Position,
        time_s: float,
        reported_accuracy_m: Optional[float] = None,
    ) -> PositionObservation:
        """
        Convert a geographic fix into an observation.

        The first fix anchors the origin unless the configuration fixes one.
        A fix that cannot be located relative to the origin becomes a
        time-only observation.
        """
        with self._lock:
            if self._origin is None:
                self._origin = position.copy()
                self._logger.info(f"Session origin set to {self._origin}")
            origin = self._origin.copy()

        accuracy_m = self.config.fix_accuracy(reported_accuracy_m)
        try:
            return PositionObservation.from_position(origin, position, time_s, accuracy_m)
        except GeoTrackError as e:
            self._logger.error(f"Fix at t={time_s:.3f}s could not be located: {e!r}")
            return PositionObservation.time_only(time_s, origin)

    def process_fix(
        self,
        position: Position,
        time_s: float,
        reported_accuracy_m: Optional[float] = None,
    ) -> Optional[TrackView]:
        """Convert a fix and process it. See ``process``."""
        return self.process(self.observation_from_fix(position, time_s, reported_accuracy_m))

    def process(self, observation: PositionObservation) -> Optional[TrackView]:
        """
        Feed one observation to the track.

        Returns:
            The track view after the observation, or None while no track
            exists yet
        """
        with self._lock:
            self._observations.append(observation.copy())

            if self._track is None:
                if observation.is_time_only:
                    self._logger.debug(
                        f"Skipping time-only observation {observation.id} before track start"
                    )
                    return None

                track = self.config.create_track(self._logger)
                if not track.init(observation):
                    self.failed_steps += 1
                    return None

                self._track = track
                if self._origin is None:
                    self._origin = track.origin
            else:
                if not self._track.predict(observation.init_time_s):
                    self.failed_steps += 1

                if not observation.is_time_only:
                    if self._track.update(observation):
                        self._record_nis()
                    else:
                        self.failed_steps += 1

            return self._publish()

    def _record_nis(self) -> None:
        update_filter = self._track.update_filter
        if isinstance(update_filter, KalmanUpdateFilter) and update_filter.nis is not None:
            self._nis.add(update_filter.nis)

    def _publish(self) -> TrackView:
        view = self._track.view()
        self._history.append(view)
        self._latest = view

        if (
            self._display is None
            or abs(view.time_s - self._display.time_s) >= self.config.display_rate_s
        ):
            self._display = view
        return view

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    @property
    def has_track(self) -> bool:
        with self._lock:
            return self._track is not None

    def latest_view(self) -> Optional[TrackView]:
        """Most recent track view."""
        with self._lock:
            return self._latest

    def display_view(self) -> Optional[TrackView]:
        """Most recent view refreshed at the configured display rate."""
        with self._lock:
            return self._display

    def history(self) -> List[TrackView]:
        with self._lock:
            return list(self._history)

    def observations(self) -> List[PositionObservation]:
        with self._lock:
            return [obs.copy() for obs in self._observations]

    def track_copy(self) -> Optional[PositionVelocityTrack]:
        """Deep copy of the current track."""
        with self._lock:
            return None if self._track is None else self._track.copy()

    def nis_statistics(self) -> NisStatistics:
        with self._lock:
            return NisStatistics(self._nis.dof, self._nis.confidence, list(self._nis.samples))

    def reset(self) -> None:
        """Drop the track, histories and any origin taken from a fix."""
        with self._lock:
            self._track = None
            self._origin = None if self.config.origin is None else self.config.origin.copy()
            self._observations.clear()
            self._history.clear()
            self._latest = None
            self._display = None
            self._nis.reset()
            self.failed_steps = 0
        self._logger.info("Session reset")
