"""
Kalman Predict / Update Filters

Linear Kalman filter steps for the constant-velocity (CV) model, written
against the in-place Matrix type. Each filter owns its scratch matrices
and reuses them across calls; the track only sees its state replaced once
every intermediate has been computed.

Predict (elapsed time dt):
    F = | 1  0  dt  0 |      Q = q * | dt^3/3  0       dt^2/2  0      |
        | 0  1  0  dt |              | 0       dt^3/3  0       dt^2/2 |
        | 0  0  1   0 |              | dt^2/2  0       dt      0      |
        | 0  0  0   1 |              | 0       dt^2/2  0       dt     |

    x' = F x
    P' = F P F^T + Q

Update (Joseph form):
    y = z - H x
    S = H P H^T + R
    K = P H^T S^-1
    x' = x + K y
    P' = (I - K H) P (I - K H)^T + K R K^T

Reference:
    - Bar-Shalom, Y. "Estimation with Applications to Tracking and Navigation", 2001
    - Bucy, R.S. and Joseph, P.D. "Filtering for Stochastic Processes", 1968
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from geotrack.errors import GeoTrackError, InvalidValueError
from geotrack.linalg import Matrix

from .metrics import normalized_innovation_squared

if TYPE_CHECKING:
    from .observation import Observation
    from .track import Track


@dataclass(frozen=True)
class FilterResult:
    """
    Outcome of a predict or update step.

    Attributes:
        ok: True if the track state was advanced
        error: The error that stopped the step, if any
    """

    ok: bool
    error: Optional[GeoTrackError] = None

    @classmethod
    def success(cls) -> "FilterResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: GeoTrackError) -> "FilterResult":
        return cls(ok=False, error=error)


class PredictFilter(ABC):
    """Propagates a track's state and covariance forward in time."""

    @abstractmethod
    def predict(self, track: "Track", elapsed_s: float) -> FilterResult:
        """Advance ``track`` by ``elapsed_s`` seconds."""


class UpdateFilter(ABC):
    """Corrects a track's state and covariance with an observation."""

    @abstractmethod
    def update(self, track: "Track", observation: "Observation") -> FilterResult:
        """Fold ``observation`` into ``track``."""


class KalmanPredictFilter(PredictFilter):
    """
    Constant-velocity Kalman prediction.

    Example:
        >>> predictor = KalmanPredictFilter(process_noise=0.01)
        >>> result = predictor.predict(track, 1.0)
        >>> result.ok
        True
    """

    def __init__(self, process_noise: float = 0.0, logger: Optional[logging.Logger] = None) -> None:
        """
        Args:
            process_noise: White-noise acceleration spectral density q [m^2/s^3]
            logger: Logger for failures, defaults to the module logger
        """
        self.process_noise = process_noise
        self._logger = logger if logger is not None else logging.getLogger(__name__)

        self.F = Matrix(1, 1)
        self.Q = Matrix(1, 1)
        self._Ft = Matrix(1, 1)
        self._xp = Matrix(1, 1)
        self._Pp = Matrix(1, 1)

    def _build_transition(self, track: "Track", dt: float) -> None:
        n = track.DIMS
        self.F.resize(n, n)
        self.F.set_as_identity()
        self.F.set_at(track.X_POS, track.VX, dt)
        self.F.set_at(track.Y_POS, track.VY, dt)

    def _build_process_noise(self, track: "Track", dt: float) -> None:
        n = track.DIMS
        dt2 = dt * dt
        dt3 = dt2 * dt

        self.Q.resize(n, n)
        self.Q.assign(0.0)
        for pos, vel in ((track.X_POS, track.VX), (track.Y_POS, track.VY)):
            self.Q.set_at(pos, pos, dt3 / 3.0)
            self.Q.set_at(pos, vel, dt2 / 2.0)
            self.Q.set_at(vel, pos, dt2 / 2.0)
            self.Q.set_at(vel, vel, dt)
        self.Q.mult(self.process_noise)

    def predict(self, track: "Track", elapsed_s: float) -> FilterResult:
        try:
            if not math.isfinite(elapsed_s):
                raise InvalidValueError(f"Invalid elapsed time: {elapsed_s}")

            self._build_transition(track, elapsed_s)
            self._build_process_noise(track, elapsed_s)

            # x' = F x
            self._xp.copy_from(self.F)
            self._xp.mult(track.x)

            # P' = F P F^T + Q
            self._Ft.copy_from(self.F)
            self._Ft.transpose()
            self._Pp.copy_from(self.F)
            self._Pp.mult(track.P)
            self._Pp.mult(self._Ft)
            self._Pp.add(self.Q)
        except GeoTrackError as e:
            self._logger.error(f"KalmanPredictFilter: predict failed: {e!r}")
            return FilterResult.failure(e)

        track.x.copy_from(self._xp)
        track.P.copy_from(self._Pp)
        return FilterResult.success()


class KalmanUpdateFilter(UpdateFilter):
    """
    Kalman measurement update with the Joseph-form covariance.

    After every successful update the filter exposes the innovation ``y``,
    its covariance ``S``, the gain ``K`` and the normalized innovation
    squared ``nis``.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger if logger is not None else logging.getLogger(__name__)

        self.H = Matrix(1, 1)
        self.y = Matrix(1, 1)
        self.S = Matrix(1, 1)
        self.K = Matrix(1, 1)
        self.nis: Optional[float] = None

        self._Ht = Matrix(1, 1)
        self._Si = Matrix(1, 1)
        self._Kt = Matrix(1, 1)
        self._IKH = Matrix(1, 1)
        self._IKHt = Matrix(1, 1)
        self._KRKt = Matrix(1, 1)
        self._xp = Matrix(1, 1)
        self._Pp = Matrix(1, 1)

    def update(self, track: "Track", observation: "Observation") -> FilterResult:
        P = track.P
        R = observation.R

        try:
            observation.measurement_matrix(track, self.H)
            observation.innovation(track, self.H, self.y)

            self._Ht.copy_from(self.H)
            self._Ht.transpose()

            # S = H P H^T + R
            self.S.copy_from(self.H)
            self.S.mult(P)
            self.S.mult(self._Ht)
            self.S.add(R)

            self._Si.copy_from(self.S)
            self._Si.invert()

            # K = P H^T S^-1
            self.K.copy_from(P)
            self.K.mult(self._Ht)
            self.K.mult(self._Si)

            # x' = x + K y
            self._xp.copy_from(self.K)
            self._xp.mult(self.y)
            self._xp.add(track.x)

            # I - K H
            self._IKH.copy_from(self.K)
            self._IKH.mult(self.H)
            self._IKH.mult(-1.0)
            self._IKH.add(Matrix.identity(track.DIMS))
            self._IKHt.copy_from(self._IKH)
            self._IKHt.transpose()

            # K R K^T
            self._Kt.copy_from(self.K)
            self._Kt.transpose()
            self._KRKt.copy_from(self.K)
            self._KRKt.mult(R)
            self._KRKt.mult(self._Kt)

            # P' = (I - K H) P (I - K H)^T + K R K^T
            self._Pp.copy_from(self._IKH)
            self._Pp.mult(P)
            self._Pp.mult(self._IKHt)
            self._Pp.add(self._KRKt)

            nis = normalized_innovation_squared(self.y, self._Si, inverted=True)
        except GeoTrackError as e:
            self._logger.error(
                f"KalmanUpdateFilter: update with observation {observation.id} failed: {e!r}"
            )
            return FilterResult.failure(e)

        track.x.copy_from(self._xp)
        track.P.copy_from(self._Pp)
        self.nis = nis
        return FilterResult.success()
