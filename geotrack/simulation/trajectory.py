"""
Synthetic Trajectories

Ground-truth target motion on the ellipsoid and noisy observation streams
for exercising the tracker without a live position source.

Motion model:
    Constant velocity along a geodesic: the truth position at time t is the
    Vincenty direct solution from the start point, range = speed * (t - t0),
    azimuth = heading.

Observations are the truth expressed in the tangent plane of the trajectory
origin plus zero-mean Gaussian noise with standard deviation accuracy_m on
each axis, so R = accuracy_m^2 * I matches the noise actually injected.

Reference: Bar-Shalom, Y. (2001). "Estimation with Applications to Tracking
and Navigation", Ch. 6 (simulated measurement generation)
"""

import math
from dataclasses import dataclass
from typing import List, NamedTuple, Optional

import numpy as np

from geotrack.geodesy import Position, destination
from geotrack.tracking.observation import PositionObservation


@dataclass
class ConstantVelocityTrajectory:
    """
    Target moving at constant speed along a geodesic.

    Attributes:
        origin: Start position (also the tangent-plane origin of the observations)
        speed_mps: Ground speed [m/s]
        heading_rad: Initial azimuth (0 = north, clockwise positive)
        start_time_s: Time at which the target is at ``origin`` [s]
    """

    origin: Position
    speed_mps: float
    heading_rad: float
    start_time_s: float = 0.0

    @classmethod
    def from_degrees(
        cls,
        lat_deg: float,
        lon_deg: float,
        speed_mps: float,
        heading_deg: float,
        start_time_s: float = 0.0,
    ) -> "ConstantVelocityTrajectory":
        return cls(
            Position.from_degrees(lat_deg, lon_deg),
            speed_mps,
            math.radians(heading_deg),
            start_time_s,
        )

    @property
    def velocity(self):
        """(east, north) velocity at the start point [m/s]."""
        return (
            self.speed_mps * math.sin(self.heading_rad),
            self.speed_mps * math.cos(self.heading_rad),
        )

    def position_at(self, time_s: float) -> Position:
        """
        Truth position at ``time_s``.

        Raises:
            GeodesyError: If the direct solution fails
        """
        range_m = self.speed_mps * (time_s - self.start_time_s)
        heading = self.heading_rad
        if range_m < 0.0:
            range_m = -range_m
            heading += math.pi
        return destination(self.origin, range_m, heading).position


class SyntheticRun(NamedTuple):
    """Observation stream with the truth position at each observation time."""

    observations: List[PositionObservation]
    truth: List[Position]


def generate_observations(
    trajectory: ConstantVelocityTrajectory,
    duration_s: float,
    period_s: float,
    accuracy_m: float,
    seed: Optional[int] = None,
    dropout_probability: float = 0.0,
) -> SyntheticRun:
    """
    Sample a trajectory into noisy position observations.

    Args:
        trajectory: Truth motion
        duration_s: Length of the run [s]
        period_s: Time between observations [s]
        accuracy_m: 1-sigma noise per axis [m]
        seed: RNG seed for reproducible runs
        dropout_probability: Chance that a fix is lost; a lost fix becomes
                             a time-only observation

    Returns:
        SyntheticRun with one observation and one truth position per sample
        time t0, t0 + period, ..., t0 + duration

    Raises:
        ValueError: On a non-positive period or duration, negative accuracy
                    or a dropout probability outside [0, 1]
    """
    if period_s <= 0.0 or duration_s < 0.0:
        raise ValueError(f"Invalid timing: duration={duration_s}, period={period_s}")
    if accuracy_m < 0.0:
        raise ValueError(f"accuracy_m must be >= 0, got {accuracy_m}")
    if not 0.0 <= dropout_probability <= 1.0:
        raise ValueError(f"dropout_probability must be in [0, 1], got {dropout_probability}")

    rng = np.random.default_rng(seed)
    origin = trajectory.origin

    n_samples = int(math.floor(duration_s / period_s + 1e-9)) + 1
    observations: List[PositionObservation] = []
    truth: List[Position] = []

    for k in range(n_samples):
        time_s = trajectory.start_time_s + k * period_s
        position = trajectory.position_at(time_s)
        truth.append(position)

        # Noise is drawn for every sample, dropped or not
        noise = rng.normal(0.0, accuracy_m, size=2) if accuracy_m > 0.0 else np.zeros(2)
        dropped = rng.random() < dropout_probability

        if dropped:
            observations.append(PositionObservation.time_only(time_s, origin))
            continue

        observation = PositionObservation.from_position(origin, position, time_s, accuracy_m)
        observation.z.set_at(
            PositionObservation.X_POS, 0, observation.z.at(PositionObservation.X_POS) + noise[0]
        )
        observation.z.set_at(
            PositionObservation.Y_POS, 0, observation.z.at(PositionObservation.Y_POS) + noise[1]
        )
        observations.append(observation)

    return SyntheticRun(observations, truth)
