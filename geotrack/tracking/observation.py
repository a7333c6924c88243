"""
Observation Model

An observation carries a measurement vector z, its covariance R, the time
it was taken and the geographic origin of the local tangent-plane frame z
is expressed in. Time-only observations carry just a timestamp and are used
to drive a prediction step without a correction.

Measurement model (PositionObservation):
    z = H x,  H = | 1 0 0 0 |
                  | 0 1 0 0 |

    i.e. the sensor observes the (x, y) position of the [x, y, vx, vy] state.
"""

import itertools
import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, BinaryIO, Optional

from geotrack.errors import DimensionMismatchError, LogFormatError
from geotrack.geodesy import Position, range_azimuth
from geotrack.linalg import Matrix
from geotrack.utils import codec

if TYPE_CHECKING:
    from .track import Track


class Observation(ABC):
    """
    Base class for sensor observations.

    Attributes:
        id: Process-wide unique identifier (preserved by ``copy``)
        init_time_s: Time of the observation [s]
        is_time_only: True if the observation carries no measurement
        z: Measurement vector
        R: Measurement covariance
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        z: Matrix,
        R: Matrix,
        init_time_s: float = 0.0,
        is_time_only: bool = False,
        obs_id: Optional[int] = None,
    ) -> None:
        self.id = self.next_id() if obs_id is None else obs_id
        self.init_time_s = float(init_time_s)
        self.is_time_only = is_time_only
        self.z = z
        self.R = R

    @classmethod
    def next_id(cls) -> int:
        return next(Observation._ids)

    @abstractmethod
    def measurement_matrix(self, track: "Track", H: Matrix) -> None:
        """Fill H, the mapping from track state to measurement space."""

    @abstractmethod
    def innovation(self, track: "Track", H: Matrix, y: Matrix) -> None:
        """Fill y = z - H x for the track's current state x."""

    @abstractmethod
    def initialize(self, track: "Track", x: Matrix, P: Matrix) -> None:
        """Seed the track state and covariance from this observation."""

    @abstractmethod
    def copy(self, new_id: bool = False) -> "Observation":
        """Return a deep copy, optionally with a fresh id."""

    def write(self, stream: BinaryIO) -> None:
        codec.write_int(stream, self.id)
        codec.write_double(stream, self.init_time_s)
        codec.write_bool(stream, self.is_time_only)
        self.z.write(stream)
        self.R.write(stream)


class PositionObservation(Observation):
    """
    2D position observation in a local tangent-plane frame.

    Example:
        >>> origin = Position.from_degrees(45.0, -75.0)
        >>> obs = PositionObservation(Matrix.from_array([100.0, 0.0]),
        ...                           Matrix.identity(2), 10.0, origin)
        >>> obs.z.at(0)
        100.0
    """

    DIMS = 2
    X_POS = 0
    Y_POS = 1

    def __init__(
        self,
        z: Optional[Matrix] = None,
        R: Optional[Matrix] = None,
        init_time_s: float = 0.0,
        origin: Optional[Position] = None,
        is_time_only: bool = False,
        obs_id: Optional[int] = None,
    ) -> None:
        """
        Create a position observation.

        Args:
            z: Measured (x, y) [m] relative to ``origin``, 2x1. Copied.
            R: Measurement covariance [m^2], 2x2. Copied.
            init_time_s: Observation time [s]
            origin: Tangent-plane anchor. Copied.
            is_time_only: Mark as timestamp-only
            obs_id: Explicit id (deserialization); a new id is drawn otherwise

        Raises:
            DimensionMismatchError: If z is not 2x1 or R is not 2x2
        """
        z = Matrix(self.DIMS, 1) if z is None else z.copy()
        R = Matrix(self.DIMS, self.DIMS) if R is None else R.copy()
        if z.shape != (self.DIMS, 1):
            raise DimensionMismatchError(f"Measurement must be 2x1, got {z.rows}x{z.cols}")
        if R.shape != (self.DIMS, self.DIMS):
            raise DimensionMismatchError(f"Covariance must be 2x2, got {R.rows}x{R.cols}")

        super().__init__(z, R, init_time_s, is_time_only, obs_id)
        self.origin = Position() if origin is None else origin.copy()

        # H*x workspace for the innovation
        self._hx = Matrix(self.DIMS, 1)

    @classmethod
    def time_only(
        cls, init_time_s: float, origin: Optional[Position] = None
    ) -> "PositionObservation":
        """Create a timestamp-only observation."""
        return cls(init_time_s=init_time_s, origin=origin, is_time_only=True)

    @classmethod
    def from_position(
        cls,
        origin: Position,
        position: Position,
        init_time_s: float,
        accuracy_m: float,
    ) -> "PositionObservation":
        """
        Convert a geographic fix into a tangent-plane observation.

        The fix is located relative to ``origin`` with the Vincenty inverse
        solution: x = r sin(az) (east), y = r cos(az) (north).

        Args:
            origin: Tangent-plane anchor
            position: Geographic fix
            init_time_s: Fix time [s]
            accuracy_m: 1-sigma horizontal accuracy [m]; R = accuracy^2 * I

        Raises:
            GeodesyError: If the inverse solution fails
        """
        solution = range_azimuth(origin, position)

        z = Matrix(cls.DIMS, 1)
        z.set_at(cls.X_POS, 0, solution.range_m * math.sin(solution.fwd_azimuth_rad))
        z.set_at(cls.Y_POS, 0, solution.range_m * math.cos(solution.fwd_azimuth_rad))

        R = Matrix.identity(cls.DIMS)
        R.mult(accuracy_m * accuracy_m)

        return cls(z, R, init_time_s, origin)

    def measurement_matrix(self, track: "Track", H: Matrix) -> None:
        H.resize(self.DIMS, track.DIMS)
        H.assign(0.0)
        H.set_at(self.X_POS, track.X_POS, 1.0)
        H.set_at(self.Y_POS, track.Y_POS, 1.0)

    def innovation(self, track: "Track", H: Matrix, y: Matrix) -> None:
        self._hx.copy_from(H)
        self._hx.mult(track.x)
        y.copy_from(self.z)
        y.sub(self._hx)

    def initialize(self, track: "Track", x: Matrix, P: Matrix) -> None:
        x.set_at(track.X_POS, 0, self.z.at(self.X_POS))
        x.set_at(track.Y_POS, 0, self.z.at(self.Y_POS))

        for row, track_row in ((self.X_POS, track.X_POS), (self.Y_POS, track.Y_POS)):
            for col, track_col in ((self.X_POS, track.X_POS), (self.Y_POS, track.Y_POS)):
                P.set_at(track_row, track_col, self.R.at(row, col))

        track.set_origin(self.origin)

    def copy(self, new_id: bool = False) -> "PositionObservation":
        return PositionObservation(
            self.z,
            self.R,
            self.init_time_s,
            self.origin,
            self.is_time_only,
            obs_id=None if new_id else self.id,
        )

    def write(self, stream: BinaryIO) -> None:
        """
        Write the observation record.

        Layout: [int id][double init_time][bool time_only][matrix z]
        [matrix R][position origin], big-endian.
        """
        super().write(stream)
        self.origin.write(stream)

    @classmethod
    def read(cls, stream: BinaryIO) -> "PositionObservation":
        """
        Read one observation record.

        Raises:
            EOFError: If the stream is exhausted before the record starts
            LogFormatError: If the record is truncated or malformed
        """
        obs_id = codec.read_int(stream, allow_eof=True)
        init_time_s = codec.read_double(stream)
        is_time_only = codec.read_bool(stream)
        z = Matrix.read(stream)
        R = Matrix.read(stream)
        origin = Position.read(stream)

        if z.shape != (cls.DIMS, 1) or R.shape != (cls.DIMS, cls.DIMS):
            raise LogFormatError(
                f"Observation {obs_id}: unexpected shapes z={z.shape}, R={R.shape}"
            )

        return cls(z, R, init_time_s, origin, is_time_only, obs_id=obs_id)

    def __repr__(self) -> str:
        if self.is_time_only:
            return f"PositionObservation(id={self.id}, t={self.init_time_s}, time_only)"
        return (
            f"PositionObservation(id={self.id}, t={self.init_time_s}, "
            f"x={self.z.at(self.X_POS):.2f}, y={self.z.at(self.Y_POS):.2f})"
        )
