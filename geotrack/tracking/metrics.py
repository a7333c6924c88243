"""
Filter Consistency Metrics

Normalized Innovation Squared (NIS) test for a Kalman filter:

    NIS_k = y_k^T S_k^-1 y_k

For a consistent filter NIS_k is chi-square distributed with dim(z)
degrees of freedom, so the sum of N samples follows chi2(N * dim(z)) and
the sample mean must fall inside

    [chi2.ppf(a/2, N*m) / N,  chi2.ppf(1 - a/2, N*m) / N]

with probability 1 - a.

Reference:
    - Bar-Shalom, Y. "Estimation with Applications to Tracking and Navigation",
      2001, Section 5.4
"""

from dataclasses import dataclass, field
from typing import List, Tuple, Union

import numpy as np
from scipy import stats

from geotrack.errors import DimensionMismatchError, SingularMatrixError
from geotrack.linalg import Matrix

ArrayLike = Union[Matrix, np.ndarray]


def _to_array(value: ArrayLike) -> np.ndarray:
    if isinstance(value, Matrix):
        return value.as_array()
    return np.asarray(value, dtype=np.float64)


def normalized_innovation_squared(y: ArrayLike, S: ArrayLike, inverted: bool = False) -> float:
    """
    Compute y^T S^-1 y.

    Args:
        y: Innovation vector (m x 1 or length m)
        S: Innovation covariance (m x m), or its inverse if ``inverted``
        inverted: True if ``S`` already holds S^-1

    Returns:
        NIS value (dimensionless)

    Raises:
        DimensionMismatchError: If y and S disagree in size
        SingularMatrixError: If S cannot be solved against
    """
    y_vec = _to_array(y).reshape(-1)
    S_mat = _to_array(S)

    if S_mat.shape != (y_vec.size, y_vec.size):
        raise DimensionMismatchError(
            f"Innovation of size {y_vec.size} vs covariance {S_mat.shape}"
        )

    if inverted:
        return float(y_vec @ S_mat @ y_vec)

    try:
        return float(y_vec @ np.linalg.solve(S_mat, y_vec))
    except np.linalg.LinAlgError as e:
        raise SingularMatrixError(f"Innovation covariance is singular: {e}") from e


def nis_bounds(num_samples: int, dof: int = 2, confidence: float = 0.95) -> Tuple[float, float]:
    """
    Two-sided chi-square acceptance region for the mean NIS.

    Args:
        num_samples: Number of NIS samples averaged (N)
        dof: Measurement dimension (m)
        confidence: Probability mass inside the region

    Returns:
        (lower, upper) bounds on the mean NIS
    """
    if num_samples <= 0:
        raise ValueError("num_samples must be positive")
    if not 0.0 < confidence < 1.0:
        raise ValueError("confidence must be in (0, 1)")

    alpha = 1.0 - confidence
    total_dof = num_samples * dof
    lower = stats.chi2.ppf(alpha / 2.0, total_dof) / num_samples
    upper = stats.chi2.ppf(1.0 - alpha / 2.0, total_dof) / num_samples
    return float(lower), float(upper)


@dataclass
class NisStatistics:
    """
    Running NIS record for one track.

    Example:
        >>> nis = NisStatistics(dof=2)
        >>> nis.add(1.5)
        >>> nis.add(2.5)
        >>> nis.mean
        2.0
    """

    dof: int = 2
    confidence: float = 0.95
    samples: List[float] = field(default_factory=list)

    def add(self, value: float) -> None:
        self.samples.append(float(value))

    def reset(self) -> None:
        self.samples.clear()

    @property
    def count(self) -> int:
        return len(self.samples)

    @property
    def mean(self) -> float:
        """Mean NIS, NaN when no samples were recorded."""
        if not self.samples:
            return float("nan")
        return float(np.mean(self.samples))

    def bounds(self) -> Tuple[float, float]:
        return nis_bounds(self.count, self.dof, self.confidence)

    def is_consistent(self) -> bool:
        """True if the mean NIS lies inside the chi-square acceptance region."""
        if not self.samples:
            return False
        lower, upper = self.bounds()
        return lower <= self.mean <= upper
