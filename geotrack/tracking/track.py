"""
Single-Target Track

Owns the state vector, covariance and filter references for one target and
orchestrates initialization, prediction and update. The geographic position
is re-derived from the tangent-plane state after every successful step.

State Vector: [x, y, vx, vy]^T
    - x, y: Position east/north of the origin (meters)
    - vx, vy: Velocity components east/north (m/s)

Track Lifecycle:
    UNINITIALIZED -> READY

Every predict/update/reorient is atomic: a snapshot of the full track state
is taken first and restored if any step fails, so a failed cycle leaves the
track exactly as it was and the next call proceeds normally.
"""

import itertools
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, BinaryIO, Dict, Optional, Tuple

from geotrack.errors import GeoTrackError, LogFormatError
from geotrack.geodesy import Position, RangeAzimuth, destination, range_azimuth
from geotrack.linalg import Matrix
from geotrack.utils import codec

from .filters import PredictFilter, UpdateFilter

if TYPE_CHECKING:
    from .observation import Observation

DEFAULT_VELOCITY_ACCURACY_MPS = 1.5


class TrackState(Enum):
    """Track lifecycle states."""

    UNINITIALIZED = "uninitialized"  # Created, no observation yet
    READY = "ready"  # Initialized from an observation


@dataclass(frozen=True)
class TrackView:
    """
    Immutable snapshot of a track for display and recording.

    Attributes:
        track_id: Track identifier
        state: Lifecycle state
        init_time_s: Time of the initializing observation [s]
        time_s: Time of the last predict/update [s]
        received_update: True if the last step was an update
        x_m, y_m: Position relative to the origin [m]
        vx_mps, vy_mps: Velocity [m/s]
        lat_rad, lon_rad: Geographic position [rad]
        origin_lat_rad, origin_lon_rad: Tangent-plane origin [rad]
        covariance_diag: Diagonal of P
    """

    track_id: int
    state: TrackState
    init_time_s: float
    time_s: float
    received_update: bool
    x_m: float
    y_m: float
    vx_mps: float
    vy_mps: float
    lat_rad: float
    lon_rad: float
    origin_lat_rad: float
    origin_lon_rad: float
    covariance_diag: Tuple[float, float, float, float]

    @property
    def speed_mps(self) -> float:
        return math.hypot(self.vx_mps, self.vy_mps)

    @property
    def heading_rad(self) -> float:
        """Heading (0 = north, clockwise positive)."""
        return math.atan2(self.vx_mps, self.vy_mps)

    @property
    def lat_deg(self) -> float:
        return math.degrees(self.lat_rad)

    @property
    def lon_deg(self) -> float:
        return math.degrees(self.lon_rad)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "track_id": self.track_id,
            "state": self.state.value,
            "time_s": self.time_s,
            "received_update": self.received_update,
            "lat_deg": self.lat_deg,
            "lon_deg": self.lon_deg,
            "x_m": self.x_m,
            "y_m": self.y_m,
            "speed_mps": self.speed_mps,
            "heading_deg": math.degrees(self.heading_rad),
        }


@dataclass
class _Snapshot:
    x: Matrix
    P: Matrix
    init_time_s: float
    last_update_time_s: float
    received_update: bool
    state: TrackState
    origin: Position
    position: Position


class Track(ABC):
    """
    Base class for tracks.

    Attributes:
        id: Process-wide unique identifier (preserved by ``copy``)
        x: State vector
        P: State covariance
        init_time_s: Time of the initializing observation [s]
        last_update_time_s: Time of the last predict/update [s]
        received_update: True if the last step folded in an observation
        state: Lifecycle state
    """

    DIMS = 4
    X_POS = 0
    Y_POS = 1
    VX = 2
    VY = 3

    _ids = itertools.count(1)

    def __init__(
        self,
        predict_filter: PredictFilter,
        update_filter: UpdateFilter,
        logger: Optional[logging.Logger] = None,
        track_id: Optional[int] = None,
    ) -> None:
        self.id = next(Track._ids) if track_id is None else track_id
        self.predict_filter = predict_filter
        self.update_filter = update_filter
        self._logger = logger if logger is not None else logging.getLogger(__name__)

        self.x = Matrix(self.DIMS, 1)
        self.P = Matrix(self.DIMS, self.DIMS)
        self.init_time_s = 0.0
        self.last_update_time_s = 0.0
        self.received_update = False
        self.state = TrackState.UNINITIALIZED

    @property
    def is_initialized(self) -> bool:
        return self.state is TrackState.READY

    @abstractmethod
    def init(self, observation: "Observation") -> bool:
        """Initialize from an observation. Returns False if rejected."""

    @abstractmethod
    def predict(self, to_time_s: float) -> bool:
        """Propagate to ``to_time_s``. Returns False on failure."""

    @abstractmethod
    def update(self, observation: "Observation") -> bool:
        """Correct with an observation. Returns False on failure."""

    @abstractmethod
    def set_origin(self, ref: Position) -> None:
        """Anchor the tangent-plane frame at ``ref``."""

    def write(self, stream: BinaryIO) -> None:
        codec.write_int(stream, self.id)
        codec.write_double(stream, self.init_time_s)
        codec.write_double(stream, self.last_update_time_s)
        codec.write_bool(stream, self.received_update)
        self.x.write(stream)
        self.P.write(stream)


class PositionVelocityTrack(Track):
    """
    2D position/velocity track in a local tangent-plane frame.

    Example:
        >>> track = PositionVelocityTrack(KalmanPredictFilter(), KalmanUpdateFilter())
        >>> track.init(first_observation)
        True
        >>> track.predict(10.0)
        True
        >>> track.update(second_observation)
        True
    """

    def __init__(
        self,
        predict_filter: PredictFilter,
        update_filter: UpdateFilter,
        velocity_accuracy_mps: float = DEFAULT_VELOCITY_ACCURACY_MPS,
        logger: Optional[logging.Logger] = None,
        track_id: Optional[int] = None,
    ) -> None:
        """
        Create an uninitialized track.

        Args:
            predict_filter: Shared predict filter
            update_filter: Shared update filter
            velocity_accuracy_mps: 1-sigma initial velocity uncertainty;
                                   values <= 0 fall back to 1.5 m/s
            logger: Logger for lifecycle events and failures
            track_id: Explicit id (deserialization); a new id is drawn otherwise
        """
        super().__init__(predict_filter, update_filter, logger, track_id)

        if velocity_accuracy_mps <= 0.0:
            velocity_accuracy_mps = DEFAULT_VELOCITY_ACCURACY_MPS
        self.velocity_accuracy_mps = velocity_accuracy_mps

        self._origin = Position()
        self._position = Position()

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def origin(self) -> Position:
        return self._origin.copy()

    @property
    def position(self) -> Position:
        """Geographic position derived from the current state."""
        return self._position.copy()

    @property
    def velocity(self) -> Tuple[float, float]:
        return (self.x.at(self.VX), self.x.at(self.VY))

    @property
    def speed_mps(self) -> float:
        return math.hypot(self.x.at(self.VX), self.x.at(self.VY))

    @property
    def heading_rad(self) -> float:
        """Heading (0 = north, clockwise positive)."""
        return math.atan2(self.x.at(self.VX), self.x.at(self.VY))

    def set_origin(self, ref: Position) -> None:
        self._origin = ref.copy()
        self.find_position()

    def find_position(self) -> None:
        """
        Recompute the geographic position from the state.

        Raises:
            GeodesyError: If the direct solution fails
        """
        x_pos = self.x.at(self.X_POS)
        y_pos = self.x.at(self.Y_POS)
        solution = destination(self._origin, math.hypot(x_pos, y_pos), math.atan2(x_pos, y_pos))
        self._position = solution.position

    # -------------------------------------------------------------------------
    # Snapshot / restore
    # -------------------------------------------------------------------------

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(
            x=self.x.copy(),
            P=self.P.copy(),
            init_time_s=self.init_time_s,
            last_update_time_s=self.last_update_time_s,
            received_update=self.received_update,
            state=self.state,
            origin=self._origin.copy(),
            position=self._position.copy(),
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        self.x.copy_from(snapshot.x)
        self.P.copy_from(snapshot.P)
        self.init_time_s = snapshot.init_time_s
        self.last_update_time_s = snapshot.last_update_time_s
        self.received_update = snapshot.received_update
        self.state = snapshot.state
        self._origin = snapshot.origin
        self._position = snapshot.position

    def _fail(self, snapshot: _Snapshot, operation: str, error: Optional[GeoTrackError]) -> bool:
        self._logger.error(f"Track {self.id}: {operation} failed: {error!r}")
        self._restore(snapshot)
        return False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self, observation: "Observation") -> bool:
        """
        Initialize position, covariance and origin from an observation.

        The velocity starts at zero with variance velocity_accuracy^2 on
        each axis. Re-initializing a READY track starts it over.

        Returns:
            False (state unchanged) for a time-only observation or on failure
        """
        if observation.is_time_only:
            self._logger.warning(
                f"Track {self.id}: cannot initialize from time-only observation {observation.id}"
            )
            return False

        snapshot = self._snapshot()
        try:
            self.x.assign(0.0)
            self.P.assign(0.0)
            observation.initialize(self, self.x, self.P)

            velocity_variance = self.velocity_accuracy_mps * self.velocity_accuracy_mps
            self.P.set_at(self.VX, self.VX, velocity_variance)
            self.P.set_at(self.VY, self.VY, velocity_variance)
        except GeoTrackError as e:
            return self._fail(snapshot, "init", e)

        self.init_time_s = observation.init_time_s
        self.last_update_time_s = observation.init_time_s
        self.received_update = True
        self.state = TrackState.READY

        self._logger.info(
            f"Track {self.id}: initialized at t={self.init_time_s:.3f}s from observation {observation.id}"
        )
        return True

    def predict(self, to_time_s: float) -> bool:
        """
        Dead-reckon the track to ``to_time_s``.

        Returns:
            False (state unchanged) if uninitialized or on failure
        """
        if not self.is_initialized:
            self._logger.warning(f"Track {self.id}: predict before init")
            return False

        snapshot = self._snapshot()
        elapsed_s = to_time_s - self.last_update_time_s

        try:
            result = self.predict_filter.predict(self, elapsed_s)
            if not result.ok:
                return self._fail(snapshot, "predict", result.error)

            self.received_update = False
            self.last_update_time_s = to_time_s
            self.find_position()
        except GeoTrackError as e:
            return self._fail(snapshot, "predict", e)

        return True

    def update(self, observation: "Observation") -> bool:
        """
        Fold an observation into the track.

        Returns:
            False (state unchanged) for a time-only observation, an
            uninitialized track, or on failure
        """
        if observation.is_time_only:
            self._logger.warning(
                f"Track {self.id}: cannot update from time-only observation {observation.id}"
            )
            return False
        if not self.is_initialized:
            self._logger.warning(f"Track {self.id}: update before init")
            return False

        snapshot = self._snapshot()
        try:
            result = self.update_filter.update(self, observation)
            if not result.ok:
                return self._fail(snapshot, "update", result.error)

            self.received_update = True
            self.find_position()
        except GeoTrackError as e:
            return self._fail(snapshot, "update", e)

        return True

    # -------------------------------------------------------------------------
    # Origin change
    # -------------------------------------------------------------------------

    @staticmethod
    def _grid_convergence(solution: RangeAzimuth) -> float:
        """
        Angle between true north and the tangent-plane y axis at the far end
        of a geodesic from the origin: true bearing = grid bearing + gamma.
        """
        if solution.range_m == 0.0:
            return 0.0
        return (solution.rev_azimuth_rad + math.pi) - solution.fwd_azimuth_rad

    def reorient(self, new_origin: Position) -> bool:
        """
        Re-express the track relative to a new tangent-plane origin.

        The position is recomputed with the inverse solution from the new
        origin (x = r sin(az), y = r cos(az)). Velocity and both covariance
        blocks are rotated clockwise by delta, the change in grid convergence
        at the track position between the old and the new frame:

            T = | R 0 |,  R = |  cos(delta)  sin(delta) |
                | 0 R |       | -sin(delta)  cos(delta) |

            v' = R v,  P' = T P T^T

        Returns:
            False (state unchanged) if uninitialized or on failure
        """
        if not self.is_initialized:
            self._logger.warning(f"Track {self.id}: reorient before init")
            return False

        snapshot = self._snapshot()
        try:
            old = range_azimuth(self._origin, self._position)
            new = range_azimuth(new_origin, self._position)

            delta = self._grid_convergence(old) - self._grid_convergence(new)
            cos_d = math.cos(delta)
            sin_d = math.sin(delta)

            T = Matrix(self.DIMS, self.DIMS)
            for p, q in ((self.X_POS, self.Y_POS), (self.VX, self.VY)):
                T.set_at(p, p, cos_d)
                T.set_at(p, q, sin_d)
                T.set_at(q, p, -sin_d)
                T.set_at(q, q, cos_d)

            x_new = T.copy()
            x_new.mult(self.x)
            x_new.set_at(self.X_POS, 0, new.range_m * math.sin(new.fwd_azimuth_rad))
            x_new.set_at(self.Y_POS, 0, new.range_m * math.cos(new.fwd_azimuth_rad))

            Tt = T.copy()
            Tt.transpose()
            P_new = T
            P_new.mult(self.P)
            P_new.mult(Tt)

            self.x.copy_from(x_new)
            self.P.copy_from(P_new)
            self.set_origin(new_origin)
        except GeoTrackError as e:
            return self._fail(snapshot, "reorient", e)

        self._logger.info(
            f"Track {self.id}: reoriented to origin {new_origin} (rotation {math.degrees(delta):.6f} deg)"
        )
        return True

    # -------------------------------------------------------------------------
    # Copy / publish / serialize
    # -------------------------------------------------------------------------

    def copy(self) -> "PositionVelocityTrack":
        """Deep copy sharing the filters and keeping the id."""
        duplicate = PositionVelocityTrack(
            self.predict_filter,
            self.update_filter,
            self.velocity_accuracy_mps,
            self._logger,
            track_id=self.id,
        )
        duplicate._restore(self._snapshot())
        return duplicate

    def view(self) -> TrackView:
        """Immutable snapshot for publishing to readers."""
        return TrackView(
            track_id=self.id,
            state=self.state,
            init_time_s=self.init_time_s,
            time_s=self.last_update_time_s,
            received_update=self.received_update,
            x_m=self.x.at(self.X_POS),
            y_m=self.x.at(self.Y_POS),
            vx_mps=self.x.at(self.VX),
            vy_mps=self.x.at(self.VY),
            lat_rad=self._position.lat,
            lon_rad=self._position.lon,
            origin_lat_rad=self._origin.lat,
            origin_lon_rad=self._origin.lon,
            covariance_diag=tuple(self.P.at(i, i) for i in range(self.DIMS)),
        )

    def write(self, stream: BinaryIO) -> None:
        """
        Write the track record.

        Layout: [int id][double init_time][double last_update_time]
        [bool received_update][matrix x][matrix P][position origin]
        [position position], big-endian.
        """
        super().write(stream)
        self._origin.write(stream)
        self._position.write(stream)

    @classmethod
    def read(
        cls,
        stream: BinaryIO,
        predict_filter: PredictFilter,
        update_filter: UpdateFilter,
        velocity_accuracy_mps: float = DEFAULT_VELOCITY_ACCURACY_MPS,
        logger: Optional[logging.Logger] = None,
    ) -> "PositionVelocityTrack":
        """
        Read one track record. Logged tracks are restored as READY.

        Raises:
            EOFError: If the stream is exhausted before the record starts
            LogFormatError: If the record is truncated or malformed
        """
        track_id = codec.read_int(stream, allow_eof=True)
        init_time_s = codec.read_double(stream)
        last_update_time_s = codec.read_double(stream)
        received_update = codec.read_bool(stream)
        x = Matrix.read(stream)
        P = Matrix.read(stream)
        origin = Position.read(stream)
        position = Position.read(stream)

        if x.shape != (cls.DIMS, 1) or P.shape != (cls.DIMS, cls.DIMS):
            raise LogFormatError(f"Track {track_id}: unexpected shapes x={x.shape}, P={P.shape}")

        track = cls(predict_filter, update_filter, velocity_accuracy_mps, logger, track_id=track_id)
        track._restore(
            _Snapshot(
                x=x,
                P=P,
                init_time_s=init_time_s,
                last_update_time_s=last_update_time_s,
                received_update=received_update,
                state=TrackState.READY,
                origin=origin,
                position=position,
            )
        )
        return track

    def __repr__(self) -> str:
        return (
            f"PositionVelocityTrack(id={self.id}, state={self.state.value}, "
            f"t={self.last_update_time_s}, x={self.x.at(self.X_POS):.2f}, "
            f"y={self.x.at(self.Y_POS):.2f}, speed={self.speed_mps:.2f})"
        )
