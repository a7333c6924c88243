"""
Vincenty Geodesics on the WGS-84 Ellipsoid

Direct problem: position reached from a reference point after travelling a
given range along a given azimuth.

Inverse problem: range and forward/reverse azimuths between two points.

Azimuths are in radians, positive clockwise from north. The reverse azimuth
is always the bearing from the second point back to the first, i.e. the
forward azimuth at the end point rotated by pi.

Near-antipodal pairs, where the standard lambda iteration leaves [-pi, pi]
or oscillates without converging, are solved with Vincenty's antipodal
formulation iterating on sin(alpha).

Reference:
    - Vincenty, T. "Direct and Inverse Solutions of Geodesics on the Ellipsoid
      with Application of Nested Equations", Survey Review XXIII, 1975
    - Vincenty, T. "Geodetic Inverse Solution Between Antipodal Points", 1975
"""

import math
from typing import NamedTuple, Tuple

from geotrack.errors import DegenerateGeometryError, NoConvergenceError

from .constants import (
    CONVERGENCE_EPSILON,
    FLATTENING,
    MAX_ITERATIONS,
    MIN_DIRECT_RANGE,
    SECOND_ECCENTRICITY_SQ,
    SEMI_MINOR_AXIS,
)
from .position import Position


class RangeAzimuth(NamedTuple):
    """Inverse problem solution."""

    range_m: float
    fwd_azimuth_rad: float
    rev_azimuth_rad: float


class Destination(NamedTuple):
    """Direct problem solution."""

    position: Position
    rev_azimuth_rad: float


def _reduced_latitude(lat_rad: float) -> Tuple[float, float]:
    """(sin U, cos U) for geodetic latitude phi, with tan U = (1 - f) tan phi."""
    tan_u = (1.0 - FLATTENING) * math.tan(lat_rad)
    cos_u = 1.0 / math.sqrt(1.0 + tan_u * tan_u)
    return tan_u * cos_u, cos_u


def _series_coefficients(cos_sq_alpha: float) -> Tuple[float, float]:
    """Vincenty's A and B series coefficients for u^2 = cos^2(alpha) * e'^2."""
    u_sq = cos_sq_alpha * SECOND_ECCENTRICITY_SQ
    A = 1.0 + u_sq / 16384.0 * (4096.0 + u_sq * (-768.0 + u_sq * (320.0 - 175.0 * u_sq)))
    B = u_sq / 1024.0 * (256.0 + u_sq * (-128.0 + u_sq * (74.0 - 47.0 * u_sq)))
    return A, B


def _delta_sigma(B: float, sin_sigma: float, cos_sigma: float, cos_2sigma_m: float) -> float:
    cos_2sm_sq = cos_2sigma_m * cos_2sigma_m
    return (
        B
        * sin_sigma
        * (
            cos_2sigma_m
            + B
            / 4.0
            * (
                cos_sigma * (-1.0 + 2.0 * cos_2sm_sq)
                - B / 6.0 * cos_2sigma_m * (-3.0 + 4.0 * sin_sigma * sin_sigma) * (-3.0 + 4.0 * cos_2sm_sq)
            )
        )
    )


def _longitude_correction_terms(
    cos_sq_alpha: float, sigma: float, sin_sigma: float, cos_sigma: float, cos_2sigma_m: float
) -> float:
    """(1 - C) * f * (sigma + C sin(sigma) (cos 2sigma_m + C cos(sigma) (-1 + 2 cos^2 2sigma_m)))."""
    C = FLATTENING / 16.0 * cos_sq_alpha * (4.0 + FLATTENING * (4.0 - 3.0 * cos_sq_alpha))
    return (
        (1.0 - C)
        * FLATTENING
        * (
            sigma
            + C * sin_sigma * (cos_2sigma_m + C * cos_sigma * (-1.0 + 2.0 * cos_2sigma_m * cos_2sigma_m))
        )
    )


def _wrap_pi(angle: float) -> float:
    if angle > math.pi:
        return angle - 2.0 * math.pi
    if angle < -math.pi:
        return angle + 2.0 * math.pi
    return angle


def _clamp_unit(value: float) -> float:
    return max(-1.0, min(1.0, value))


# =============================================================================
# DIRECT PROBLEM
# =============================================================================


def destination(
    ref: Position,
    range_m: float,
    azimuth_rad: float,
    max_iterations: int = MAX_ITERATIONS,
) -> Destination:
    """
    Solve the direct problem.

    Args:
        ref: Starting position
        range_m: Geodesic distance to travel [m]
        azimuth_rad: Initial bearing at ``ref`` [rad]
        max_iterations: Iteration cap for the sigma iteration

    Returns:
        Destination(position, rev_azimuth_rad). Ranges at or below 0.5 m
        (including negative ranges) return a copy of ``ref`` with reverse
        azimuth 0.

    Raises:
        NoConvergenceError: If sigma does not converge within the cap
    """
    if range_m <= MIN_DIRECT_RANGE:
        return Destination(ref.copy(), 0.0)

    sin_u1, cos_u1 = _reduced_latitude(ref.lat)
    tan_u1 = sin_u1 / cos_u1
    sin_alpha1 = math.sin(azimuth_rad)
    cos_alpha1 = math.cos(azimuth_rad)

    # Angular distance on the sphere from the equator to the start point
    sigma1 = math.atan2(tan_u1, cos_alpha1)

    # Azimuth of the geodesic at the equator
    sin_alpha = cos_u1 * sin_alpha1
    cos_sq_alpha = 1.0 - sin_alpha * sin_alpha

    A, B = _series_coefficients(cos_sq_alpha)
    sigma_0 = range_m / (SEMI_MINOR_AXIS * A)

    sigma = sigma_0
    for _ in range(max_iterations):
        cos_2sigma_m = math.cos(2.0 * sigma1 + sigma)
        sigma_prev = sigma
        sigma = sigma_0 + _delta_sigma(B, math.sin(sigma), math.cos(sigma), cos_2sigma_m)
        if abs(sigma - sigma_prev) < CONVERGENCE_EPSILON:
            break
    else:
        raise NoConvergenceError(
            f"Direct problem did not converge in {max_iterations} iterations"
        )

    sin_sigma = math.sin(sigma)
    cos_sigma = math.cos(sigma)
    cos_2sigma_m = math.cos(2.0 * sigma1 + sigma)

    tmp = sin_u1 * sin_sigma - cos_u1 * cos_sigma * cos_alpha1
    lat2 = math.atan2(
        sin_u1 * cos_sigma + cos_u1 * sin_sigma * cos_alpha1,
        (1.0 - FLATTENING) * math.sqrt(sin_alpha * sin_alpha + tmp * tmp),
    )

    # Longitude difference on the auxiliary sphere, then on the ellipsoid
    lam = math.atan2(sin_sigma * sin_alpha1, cos_u1 * cos_sigma - sin_u1 * sin_sigma * cos_alpha1)
    delta_lon = lam - sin_alpha * _longitude_correction_terms(
        cos_sq_alpha, sigma, sin_sigma, cos_sigma, cos_2sigma_m
    )

    rev_azimuth = math.atan2(-sin_alpha, tmp)

    return Destination(Position(lat2, _wrap_pi(ref.lon + delta_lon)), rev_azimuth)


# =============================================================================
# INVERSE PROBLEM
# =============================================================================


def range_azimuth(
    ref: Position,
    obj: Position,
    max_iterations: int = MAX_ITERATIONS,
) -> RangeAzimuth:
    """
    Solve the inverse problem.

    Args:
        ref: First position
        obj: Second position
        max_iterations: Iteration cap for the lambda (or sin alpha) iteration

    Returns:
        RangeAzimuth(range_m, fwd_azimuth_rad, rev_azimuth_rad). Positions
        within 1e-12 rad in both latitude and longitude give all zeros.
        Far-hemisphere pairs whose lambda iteration leaves [-pi, pi] or runs
        out of iterations are solved by the antipodal iteration.

    Raises:
        NoConvergenceError: If the iteration does not converge within the cap
        DegenerateGeometryError: On a zero denominator in the antipodal branch
    """
    if (
        abs(ref.lat - obj.lat) < CONVERGENCE_EPSILON
        and abs(ref.lon - obj.lon) < CONVERGENCE_EPSILON
    ):
        return RangeAzimuth(0.0, 0.0, 0.0)

    sin_u1, cos_u1 = _reduced_latitude(ref.lat)
    sin_u2, cos_u2 = _reduced_latitude(obj.lat)

    L = _wrap_pi(obj.lon - ref.lon)
    lam = L

    for _ in range(max_iterations):
        sin_lam = math.sin(lam)
        cos_lam = math.cos(lam)

        sin_sigma = math.hypot(cos_u2 * sin_lam, cos_u1 * sin_u2 - sin_u1 * cos_u2 * cos_lam)
        cos_sigma = sin_u1 * sin_u2 + cos_u1 * cos_u2 * cos_lam

        if sin_sigma == 0.0:
            if cos_sigma < 0.0:
                return _antipodal(L, sin_u1, cos_u1, sin_u2, cos_u2, max_iterations)
            # Same point on the auxiliary sphere (e.g. a pole at two longitudes)
            return RangeAzimuth(0.0, 0.0, 0.0)

        sigma = math.atan2(sin_sigma, cos_sigma)
        sin_alpha = cos_u1 * cos_u2 * sin_lam / sin_sigma
        cos_sq_alpha = 1.0 - sin_alpha * sin_alpha

        # Equatorial line: cos^2(alpha) = 0
        if cos_sq_alpha != 0.0:
            cos_2sigma_m = cos_sigma - 2.0 * sin_u1 * sin_u2 / cos_sq_alpha
        else:
            cos_2sigma_m = 0.0

        lam_prev = lam
        lam = L + sin_alpha * _longitude_correction_terms(
            cos_sq_alpha, sigma, sin_sigma, cos_sigma, cos_2sigma_m
        )

        if abs(lam) > math.pi:
            return _antipodal(L, sin_u1, cos_u1, sin_u2, cos_u2, max_iterations)

        if abs(lam - lam_prev) < CONVERGENCE_EPSILON:
            break
    else:
        # Near the antipode lambda can oscillate inside [-pi, pi]
        if cos_sigma < 0.0:
            return _antipodal(L, sin_u1, cos_u1, sin_u2, cos_u2, max_iterations)
        raise NoConvergenceError(
            f"Inverse problem did not converge in {max_iterations} iterations"
        )

    A, B = _series_coefficients(cos_sq_alpha)
    range_m = SEMI_MINOR_AXIS * A * (sigma - _delta_sigma(B, sin_sigma, cos_sigma, cos_2sigma_m))

    sin_lam = math.sin(lam)
    cos_lam = math.cos(lam)
    fwd_azimuth = math.atan2(cos_u2 * sin_lam, cos_u1 * sin_u2 - sin_u1 * cos_u2 * cos_lam)
    rev_azimuth = math.atan2(-cos_u1 * sin_lam, sin_u1 * cos_u2 - cos_u1 * sin_u2 * cos_lam)

    return RangeAzimuth(range_m, fwd_azimuth, rev_azimuth)


def _antipodal(
    L: float,
    sin_u1: float,
    cos_u1: float,
    sin_u2: float,
    cos_u2: float,
    max_iterations: int,
) -> RangeAzimuth:
    """
    Inverse solution for nearly antipodal points.

    Works with lambda' = pi - lambda, the longitude difference on the
    auxiliary sphere measured from the antipode of the first point, and
    iterates on sin(alpha) = (L' - lambda') / D. Solved for L >= 0; a
    westward pair is the mirror image, so its azimuths change sign.
    """
    sign = -1.0 if L < 0.0 else 1.0
    L_prime = math.pi - abs(L)

    lam_prime = 0.0
    sigma = math.pi - abs(math.atan2(sin_u1, cos_u1) + math.atan2(sin_u2, cos_u2))
    sin_sigma = math.sin(sigma)
    cos_sigma = math.cos(sigma)
    cos_sq_alpha = 0.5
    sin_alpha = math.sqrt(0.5)
    cos_2sigma_m = 0.0

    for _ in range(max_iterations):
        if cos_sq_alpha != 0.0:
            cos_2sigma_m = cos_sigma - 2.0 * sin_u1 * sin_u2 / cos_sq_alpha
        else:
            cos_2sigma_m = 0.0

        D = _longitude_correction_terms(cos_sq_alpha, sigma, sin_sigma, cos_sigma, cos_2sigma_m)
        if D == 0.0:
            raise DegenerateGeometryError("Zero longitude correction in antipodal solution")

        sin_alpha_prev = sin_alpha
        sin_alpha = _clamp_unit((L_prime - lam_prime) / D)
        cos_sq_alpha = 1.0 - sin_alpha * sin_alpha

        denom = cos_u1 * cos_u2
        if denom == 0.0:
            raise DegenerateGeometryError("Antipodal solution undefined at a pole")

        lam_prime = math.asin(_clamp_unit(sin_alpha * sin_sigma / denom))
        sin_lam_p = math.sin(lam_prime)
        cos_lam_p = math.cos(lam_prime)

        sin_sigma = math.hypot(cos_u2 * sin_lam_p, cos_u1 * sin_u2 + sin_u1 * cos_u2 * cos_lam_p)
        cos_sigma = sin_u1 * sin_u2 - cos_u1 * cos_u2 * cos_lam_p
        sigma = math.atan2(sin_sigma, cos_sigma)

        if abs(sin_alpha - sin_alpha_prev) < CONVERGENCE_EPSILON:
            break
    else:
        raise NoConvergenceError(
            f"Antipodal solution did not converge in {max_iterations} iterations"
        )

    if cos_sq_alpha != 0.0:
        cos_2sigma_m = cos_sigma - 2.0 * sin_u1 * sin_u2 / cos_sq_alpha
    else:
        cos_2sigma_m = 0.0

    A, B = _series_coefficients(cos_sq_alpha)
    range_m = SEMI_MINOR_AXIS * A * (sigma - _delta_sigma(B, sin_sigma, cos_sigma, cos_2sigma_m))

    # Clairaut: sin(alpha) = cos(U) sin(azimuth); quadrant from sin(sigma) cos(azimuth)
    # with lambda = pi - lambda', i.e. cos(lambda) = -cos(lambda')
    cos_lam_p = math.cos(lam_prime)
    fwd_azimuth = _azimuth(sin_alpha / cos_u1, cos_u1 * sin_u2 + sin_u1 * cos_u2 * cos_lam_p)
    rev_azimuth = _azimuth(-sin_alpha / cos_u2, sin_u1 * cos_u2 + cos_u1 * sin_u2 * cos_lam_p)

    return RangeAzimuth(range_m, sign * fwd_azimuth, sign * rev_azimuth)


def _azimuth(sin_azimuth: float, cos_sign: float) -> float:
    sin_azimuth = _clamp_unit(sin_azimuth)
    cos_azimuth = math.sqrt(1.0 - sin_azimuth * sin_azimuth)
    if cos_sign < 0.0:
        cos_azimuth = -cos_azimuth
    return math.atan2(sin_azimuth, cos_azimuth)
