"""
Dense Real Matrix

General-purpose row-major matrix of IEEE doubles used as the substrate for
all filter math. Operations mutate the matrix in place so filters can keep
their intermediates in preallocated workspaces instead of allocating on
every predict/update cycle.

Index convention:
    Elements are addressed with 0-based (row, col) indices. Column vectors
    are (n x 1) matrices and may be addressed with the row index only.

Storage:
    A flat float64 buffer whose capacity only grows. ``resize`` reuses the
    buffer when the new element count fits and reallocates (zero-filled)
    otherwise. Products and transposes are computed in a separate scratch
    buffer and then copied back, so ``m.mult(m)`` is alias-safe.

Inversion:
    LUP factorization with partial pivoting (P*A = L*U) followed by forward
    substitution (L*y = P*e_i) and backward substitution (U*x = y) for each
    column e_i of the identity.

Reference:
    - Trefethen, L.N. and Bau, D. "Numerical Linear Algebra", SIAM 1997, Lecture 21
    - Kolman, B. "Introductory Linear Algebra with Applications", 1993
"""

import math
from typing import BinaryIO, NamedTuple, Optional, Sequence, Tuple, Union

import numba
import numpy as np

from geotrack.errors import (
    DimensionMismatchError,
    IndexOutOfRangeError,
    InvalidDimensionError,
    InvalidValueError,
    LogFormatError,
    NotInvertibleError,
    SingularMatrixError,
)
from geotrack.utils import codec

Operand = Union["Matrix", float]

# Largest rows*cols accepted when reading a serialized matrix
MAX_SERIALIZED_ELEMENTS = 1 << 20


class LUPFactorization(NamedTuple):
    """
    Result of ``Matrix.lup``.

    Attributes:
        L: Unit lower triangular factor
        U: Upper triangular factor
        P: Permutation matrix such that P*A = L*U
        num_permutations: Number of row interchanges performed
    """

    L: "Matrix"
    U: "Matrix"
    P: "Matrix"
    num_permutations: int


_SUBSTITUTION_OK = 0
_ZERO_DIAGONAL_L = 1
_ZERO_DIAGONAL_U = 2


@numba.jit(nopython=True, cache=True)
def _lup_decompose_jit(u: np.ndarray, l: np.ndarray, p: np.ndarray) -> Tuple[int, int]:
    """
    JIT-compiled LUP elimination, in place.

    On entry u holds A and l, p hold the identity. On exit P*A = L*U.

    Args:
        u: Square matrix, overwritten with U
        l: Identity, overwritten with the unit lower triangular L
        p: Identity, overwritten with the row permutation P

    Returns:
        Tuple of (row swaps performed, column of the zero pivot or -1)
    """
    n = u.shape[0]
    swaps = 0

    for k in range(n - 1):
        # Strictly greater, so the current row wins ties
        pivot_row = k
        pivot_abs = abs(u[k, k])
        for i in range(k + 1, n):
            if abs(u[i, k]) > pivot_abs:
                pivot_abs = abs(u[i, k])
                pivot_row = i

        if pivot_row != k:
            for j in range(n):
                tmp = u[k, j]
                u[k, j] = u[pivot_row, j]
                u[pivot_row, j] = tmp

                tmp = p[k, j]
                p[k, j] = p[pivot_row, j]
                p[pivot_row, j] = tmp

            # Only the multipliers already stored below the diagonal move
            for j in range(k):
                tmp = l[k, j]
                l[k, j] = l[pivot_row, j]
                l[pivot_row, j] = tmp

            swaps += 1

        denom = u[k, k]
        if denom == 0.0:
            return swaps, k

        for i in range(k + 1, n):
            factor = u[i, k] / denom
            l[i, k] = factor
            u[i, k] = 0.0
            for j in range(k + 1, n):
                u[i, j] -= factor * u[k, j]

    return swaps, -1


@numba.jit(nopython=True, cache=True)
def _lup_inverse_jit(
    l: np.ndarray, u: np.ndarray, p: np.ndarray, out: np.ndarray
) -> Tuple[int, int]:
    """
    JIT-compiled inverse from an LUP factorization.

    For each column e_i of the identity solves L*y = P*e_i by forward
    substitution and U*x = y by backward substitution; x is column i of
    the inverse.

    Returns:
        Tuple of (status, row): status is _SUBSTITUTION_OK, or
        _ZERO_DIAGONAL_L / _ZERO_DIAGONAL_U with the offending row
    """
    n = l.shape[0]
    y = np.zeros(n)
    x = np.zeros(n)

    for i in range(n):
        for j in range(n):
            denom = l[j, j]
            if denom == 0.0:
                return _ZERO_DIAGONAL_L, j
            acc = p[j, i]
            for k in range(j):
                acc -= l[j, k] * y[k]
            y[j] = acc / denom

        for j in range(n - 1, -1, -1):
            denom = u[j, j]
            if denom == 0.0:
                return _ZERO_DIAGONAL_U, j
            acc = y[j]
            for k in range(j + 1, n):
                acc -= u[j, k] * x[k]
            x[j] = acc / denom

        for j in range(n):
            out[j, i] = x[j]

    return _SUBSTITUTION_OK, -1


class Matrix:
    """
    Dense, resizable, row-major real matrix.

    Example:
        >>> A = Matrix.from_array([[4.0, 3.0], [6.0, 3.0]])
        >>> A.invert()
        >>> A.at(0, 0)
        -0.5
    """

    def __init__(self, rows: int, cols: int = 1) -> None:
        """
        Create a zero-filled matrix.

        Args:
            rows: Number of rows (>= 1)
            cols: Number of columns (>= 1)

        Raises:
            InvalidDimensionError: If rows or cols is not positive
        """
        self._rows = 0
        self._cols = 0
        self._data = np.zeros(0, dtype=np.float64)
        self._scratch: Optional[np.ndarray] = None
        self._allocate(rows, cols)

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    @classmethod
    def from_array(cls, values: Union[Sequence, np.ndarray]) -> "Matrix":
        """
        Create a matrix from nested sequences or a numpy array.

        A 1D input becomes a column vector.
        """
        array = np.asarray(values, dtype=np.float64)
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        if array.ndim != 2:
            raise InvalidDimensionError(f"Expected a 1D or 2D array, got {array.ndim}D")

        matrix = cls(array.shape[0], array.shape[1])
        matrix._view[...] = array
        return matrix

    @classmethod
    def identity(cls, size: int) -> "Matrix":
        """Create a (size x size) identity matrix."""
        matrix = cls(size, size)
        matrix.set_as_identity()
        return matrix

    def _allocate(self, rows: int, cols: int) -> None:
        if rows <= 0 or cols <= 0:
            raise InvalidDimensionError(f"Invalid matrix dimensions {rows}x{cols}")
        self._data = np.zeros(rows * cols, dtype=np.float64)
        self._rows = rows
        self._cols = cols

    def _workspace(self, size: int) -> np.ndarray:
        """Scratch buffer of at least ``size`` elements, grown monotonically."""
        if self._scratch is None or self._scratch.size < size:
            self._scratch = np.empty(size, dtype=np.float64)
        return self._scratch[:size]

    @property
    def _view(self) -> np.ndarray:
        # Writable 2D view over the active part of the backing buffer
        return self._data[: self._rows * self._cols].reshape(self._rows, self._cols)

    # -------------------------------------------------------------------------
    # Shape and element access
    # -------------------------------------------------------------------------

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def shape(self) -> Tuple[int, int]:
        return (self._rows, self._cols)

    @property
    def capacity(self) -> int:
        """Number of elements the backing buffer can hold without reallocating."""
        return self._data.size

    def resize(self, rows: int, cols: int = 1) -> None:
        """
        Change the matrix dimensions.

        The backing buffer is reused when ``rows * cols`` fits within the
        current capacity; otherwise a new zero-filled buffer is allocated and
        the previous contents are discarded.

        Raises:
            InvalidDimensionError: If rows or cols is not positive
        """
        if rows <= 0 or cols <= 0:
            raise InvalidDimensionError(f"Invalid matrix dimensions {rows}x{cols}")

        if rows * cols <= self._data.size:
            self._rows = rows
            self._cols = cols
        else:
            self._allocate(rows, cols)

    def _check_index(self, row: int, col: int) -> None:
        if not (0 <= row < self._rows and 0 <= col < self._cols):
            raise IndexOutOfRangeError(
                f"Index ({row}, {col}) outside {self._rows}x{self._cols} matrix"
            )

    def at(self, row: int, col: int = 0) -> float:
        """Get element (row, col)."""
        self._check_index(row, col)
        return float(self._data[row * self._cols + col])

    def set_at(self, row: int, col: int, value: float) -> None:
        """Set element (row, col)."""
        self._check_index(row, col)
        self._data[row * self._cols + col] = value

    def as_array(self) -> np.ndarray:
        """Return a 2D numpy copy of the matrix."""
        return self._view.copy()

    # -------------------------------------------------------------------------
    # Copying and comparison
    # -------------------------------------------------------------------------

    def copy(self) -> "Matrix":
        """Return an independent copy."""
        duplicate = Matrix(self._rows, self._cols)
        duplicate._view[...] = self._view
        return duplicate

    def copy_from(self, other: "Matrix") -> None:
        """Resize to the shape of ``other`` and copy its elements."""
        if other is self:
            return
        self.resize(other._rows, other._cols)
        self._view[...] = other._view

    def compare(self, other: "Matrix", tolerance: float) -> bool:
        """
        Check whether two matrices agree elementwise within a tolerance.

        Returns:
            True if shapes match and every |a_ij - b_ij| <= tolerance
        """
        if other is None or other.shape != self.shape:
            return False
        return bool(np.all(np.abs(self._view - other._view) <= tolerance))

    def is_symmetric(self) -> bool:
        """True if the matrix is square and exactly equal to its transpose."""
        view = self._view
        return self._rows == self._cols and bool(np.array_equal(view, view.T))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._view, other._view))

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"Matrix.from_array({self._view.tolist()!r})"

    def __str__(self) -> str:
        lines = [f"Matrix {self._rows}x{self._cols} :"]
        for row in self._view:
            lines.append("\t".join(f"{value:.8f}" for value in row))
        return "\n".join(lines) + "\n"

    # -------------------------------------------------------------------------
    # Arithmetic (in place)
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_scalar(value: float) -> None:
        if not math.isfinite(value):
            raise InvalidValueError(f"Invalid scalar operand: {value}")

    def _check_same_shape(self, other: "Matrix") -> None:
        if other.shape != self.shape:
            raise DimensionMismatchError(
                f"Shape mismatch: {self._rows}x{self._cols} vs {other._rows}x{other._cols}"
            )

    def assign(self, value: float) -> None:
        """Set every element to ``value``."""
        self._check_scalar(value)
        self._view[...] = value

    def add(self, operand: Operand) -> None:
        """Add a scalar or a same-shaped matrix elementwise."""
        if isinstance(operand, Matrix):
            self._check_same_shape(operand)
            self._view[...] += operand._view
        else:
            self._check_scalar(operand)
            self._view[...] += operand

    def sub(self, operand: Operand) -> None:
        """Subtract a scalar or a same-shaped matrix elementwise."""
        if isinstance(operand, Matrix):
            self._check_same_shape(operand)
            self._view[...] -= operand._view
        else:
            self._check_scalar(operand)
            self._view[...] -= operand

    def mult(self, operand: Operand) -> None:
        """
        Multiply in place.

        A scalar operand scales every element. A matrix operand replaces self
        with the matrix product ``self * operand``.

        Raises:
            InvalidValueError: Scalar is NaN or infinite
            DimensionMismatchError: Inner dimensions disagree
        """
        if not isinstance(operand, Matrix):
            self._check_scalar(operand)
            self._view[...] *= operand
            return

        if self._cols != operand._rows:
            raise DimensionMismatchError(
                f"Cannot multiply {self._rows}x{self._cols} by {operand._rows}x{operand._cols}"
            )

        rows, cols = self._rows, operand._cols
        product = self._workspace(rows * cols).reshape(rows, cols)
        np.matmul(self._view, operand._view, out=product)

        self.resize(rows, cols)
        self._view[...] = product

    def transpose(self) -> None:
        """Transpose in place."""
        rows, cols = self._cols, self._rows
        transposed = self._workspace(rows * cols).reshape(rows, cols)
        transposed[...] = self._view.T

        self.resize(rows, cols)
        self._view[...] = transposed

    def set_as_identity(self) -> None:
        """
        Overwrite with the identity matrix.

        Raises:
            DimensionMismatchError: If the matrix is not square
        """
        if self._rows != self._cols:
            raise DimensionMismatchError("Identity requires a square matrix")
        view = self._view
        view[...] = 0.0
        for i in range(self._rows):
            view[i, i] = 1.0

    # -------------------------------------------------------------------------
    # Factorization, determinant, inverse
    # -------------------------------------------------------------------------

    def lup(self) -> LUPFactorization:
        """
        LUP factorization with partial pivoting.

        For each pivot column k, the row at or below k holding the largest
        absolute value in column k is swapped into row k (ties keep the
        current row), then the rows below are eliminated.

        Only the pivots of columns 0..n-2 are checked: a zero final pivot
        U[n-1, n-1] still factorizes. ``determinant`` then returns 0 and
        ``invert`` raises ``NotInvertibleError`` during back substitution.

        Returns:
            LUPFactorization(L, U, P, num_permutations) with P*A = L*U

        Raises:
            DimensionMismatchError: If the matrix is not square
            SingularMatrixError: If a pivot is exactly zero
        """
        if self._rows != self._cols:
            raise DimensionMismatchError("LUP factorization requires a square matrix")

        n = self._rows
        L = Matrix.identity(n)
        U = self.copy()
        P = Matrix.identity(n)

        num_permutations, zero_pivot = _lup_decompose_jit(U._view, L._view, P._view)
        if zero_pivot >= 0:
            raise SingularMatrixError(f"Zero pivot in column {zero_pivot}")

        return LUPFactorization(L=L, U=U, P=P, num_permutations=int(num_permutations))

    def determinant(self) -> float:
        """
        Determinant via LUP factorization.

        det(A) = (-1)^num_permutations * prod(diag(U)), since det(L) = 1.
        A factorization that hits a zero pivot column has determinant 0.

        Raises:
            DimensionMismatchError: If the matrix is not square
        """
        try:
            factorization = self.lup()
        except SingularMatrixError:
            return 0.0

        determinant = float(np.prod(np.diagonal(factorization.U._view)))
        if factorization.num_permutations % 2 != 0:
            determinant = -determinant
        return determinant

    def invert(self) -> None:
        """
        Invert in place.

        The matrix is only overwritten once every column of the inverse has
        been solved, so a failed inversion leaves it untouched.

        Raises:
            DimensionMismatchError: If the matrix is not square
            SingularMatrixError: If the LUP factorization hits a zero pivot
            NotInvertibleError: If a zero pivot appears during substitution
        """
        L, U, P, _ = self.lup()
        n = self._rows

        inverse = np.empty((n, n), dtype=np.float64)
        stage, row = _lup_inverse_jit(L._view, U._view, P._view, inverse)
        if stage == _ZERO_DIAGONAL_L:
            raise NotInvertibleError(f"Zero diagonal in L at row {row}")
        if stage == _ZERO_DIAGONAL_U:
            raise NotInvertibleError(f"Zero diagonal in U at row {row}")

        self._view[...] = inverse

    # -------------------------------------------------------------------------
    # Binary serialization
    # -------------------------------------------------------------------------

    def write(self, stream: BinaryIO) -> None:
        """Write as [int rows][int cols][rows*cols doubles], big-endian."""
        codec.write_int(stream, self._rows)
        codec.write_int(stream, self._cols)
        codec.write_doubles(stream, self._view.ravel())

    @classmethod
    def read(cls, stream: BinaryIO) -> "Matrix":
        """
        Read a matrix written by ``write``.

        The payload is read before any storage is allocated, and headers
        describing more than ``MAX_SERIALIZED_ELEMENTS`` elements are rejected.

        Raises:
            LogFormatError: If the header is invalid or the payload truncated
        """
        rows = codec.read_int(stream)
        cols = codec.read_int(stream)
        if rows <= 0 or cols <= 0:
            raise LogFormatError(f"Invalid matrix header {rows}x{cols}")
        if rows * cols > MAX_SERIALIZED_ELEMENTS:
            raise LogFormatError(
                f"Matrix header {rows}x{cols} exceeds {MAX_SERIALIZED_ELEMENTS} elements"
            )

        values = codec.read_doubles(stream, rows * cols)
        return cls.from_array(values.reshape(rows, cols))
