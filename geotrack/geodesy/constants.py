"""
Geodetic Constants

WGS-84 reference ellipsoid parameters and numerical controls for the
Vincenty solvers.

References:
    - NIMA TR8350.2: Department of Defense World Geodetic System 1984, 3rd ed.
    - Vincenty, T. "Direct and Inverse Solutions of Geodesics on the Ellipsoid
      with Application of Nested Equations", Survey Review XXIII, 1975
"""

from typing import Final

# =============================================================================
# WGS-84 ELLIPSOID
# =============================================================================

SEMI_MAJOR_AXIS: Final[float] = 6_378_137.0
"""Equatorial radius a [m]"""

SEMI_MINOR_AXIS: Final[float] = 6_356_752.314245
"""Polar radius b [m]"""

INVERSE_FLATTENING: Final[float] = 298.257223563
"""Nominal 1/f, dimensionless"""

FLATTENING: Final[float] = (SEMI_MAJOR_AXIS - SEMI_MINOR_AXIS) / SEMI_MAJOR_AXIS
"""f = (a - b) / a, derived from the axes used by the solvers"""

SECOND_ECCENTRICITY_SQ: Final[float] = (
    SEMI_MAJOR_AXIS**2 - SEMI_MINOR_AXIS**2
) / SEMI_MINOR_AXIS**2
"""e'^2 = (a^2 - b^2) / b^2"""

# =============================================================================
# SOLVER CONTROLS
# =============================================================================

CONVERGENCE_EPSILON: Final[float] = 1e-12
"""Iteration stops when the update of lambda/sigma/sin(alpha) is below this [rad]"""

MAX_ITERATIONS: Final[int] = 100
"""Iteration cap before NoConvergenceError is raised"""

MIN_DIRECT_RANGE: Final[float] = 0.5
"""Direct problem ranges at or below this [m] return the reference position"""
