"""
Error Taxonomy

Exceptions raised by the numeric kernels (matrix algebra, geodesy) and the
I/O layer. The tracking layer converts kernel errors into explicit
``FilterResult`` failures, so a failed predict/update never escapes the
track boundary.

Hierarchy:
    GeoTrackError
        LinearAlgebraError
            InvalidDimensionError
            IndexOutOfRangeError
            InvalidValueError
            DimensionMismatchError
            SingularMatrixError
            NotInvertibleError
        GeodesyError
            NoConvergenceError
            DegenerateGeometryError
        LogFormatError
        ConfigError
"""


class GeoTrackError(Exception):
    """Base class for all errors raised by geotrack."""


class LinearAlgebraError(GeoTrackError):
    """Base class for matrix errors."""


class InvalidDimensionError(LinearAlgebraError):
    """Matrix created or resized with a non-positive row or column count."""


class IndexOutOfRangeError(LinearAlgebraError):
    """Element access outside the current matrix bounds."""


class InvalidValueError(LinearAlgebraError):
    """Scalar operand is NaN or infinite."""


class DimensionMismatchError(LinearAlgebraError):
    """Operand shapes are incompatible for the requested operation."""


class SingularMatrixError(LinearAlgebraError):
    """Zero pivot encountered during LUP factorization."""


class NotInvertibleError(LinearAlgebraError):
    """Zero pivot encountered during forward/backward substitution."""


class GeodesyError(GeoTrackError):
    """Base class for Vincenty solver errors."""


class NoConvergenceError(GeodesyError):
    """Iteration cap reached before the solution converged."""


class DegenerateGeometryError(GeodesyError):
    """Zero denominator in the geodesic equations."""


class LogFormatError(GeoTrackError):
    """Binary log record is truncated or malformed."""


class ConfigError(GeoTrackError):
    """Tracker configuration value is missing or invalid."""
