"""
GeoTrack Matrix Test Suite

Tests for the dense matrix used by the Kalman filter.

Test ID | Description                    | Reference             | Tolerance
--------|--------------------------------|-----------------------|------------
1       | Inverse round trip             | M * M^-1 = I          | ±1e-9
2       | LUP factorization              | P*A = L*U             | ±1e-9
3       | Determinant sign vs parity     | det = (-1)^s prod(U)  | ±1e-9
4       | Singular matrices              | zero pivot            | exact
5       | In-place arithmetic            | elementwise / product | exact
6       | Binary layout                  | DataOutputStream      | exact

References:
    - Trefethen & Bau (1997). "Numerical Linear Algebra", Lecture 21
"""

import io
import os
import struct
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from geotrack.errors import (
    DimensionMismatchError,
    IndexOutOfRangeError,
    InvalidDimensionError,
    InvalidValueError,
    LinearAlgebraError,
    LogFormatError,
    NotInvertibleError,
    SingularMatrixError,
)
from geotrack.linalg import Matrix

# =============================================================================
# TEST 1: Inverse
# =============================================================================


class TestInverse:
    """
    Validate LUP-based inversion.

    Reference: M * M^-1 = I
    """

    def test_2x2_known_inverse(self):
        """[[4, 3], [6, 3]]^-1 = [[-0.5, 0.5], [1, -2/3]]"""
        A = Matrix.from_array([[4.0, 3.0], [6.0, 3.0]])
        A.invert()

        expected = Matrix.from_array([[-0.5, 0.5], [1.0, -2.0 / 3.0]])
        assert A.compare(expected, 1e-12)

    def test_random_round_trip(self):
        """M * M^-1 ≈ I for random well-conditioned matrices"""
        rng = np.random.default_rng(42)
        for n in (1, 2, 3, 4, 6):
            values = rng.normal(size=(n, n)) + n * np.eye(n)
            M = Matrix.from_array(values)
            Mi = M.copy()
            Mi.invert()

            product = M.copy()
            product.mult(Mi)
            assert product.compare(Matrix.identity(n), 1e-9), f"n={n}"

    def test_inverse_matches_numpy(self):
        values = np.array([[2.0, -1.0, 0.0], [-1.0, 2.0, -1.0], [0.0, -1.0, 2.0]])
        M = Matrix.from_array(values)
        M.invert()

        np.testing.assert_allclose(M.as_array(), np.linalg.inv(values), atol=1e-12)

    def test_non_square_rejected(self):
        M = Matrix(2, 3)
        with pytest.raises(DimensionMismatchError):
            M.invert()


# =============================================================================
# TEST 2: LUP Factorization
# =============================================================================


class TestLUP:
    """
    Validate partial-pivoting LUP factorization.

    Reference: P*A = L*U with L unit lower triangular, U upper triangular
    """

    def test_reconstruction(self):
        """P*A ≈ L*U"""
        rng = np.random.default_rng(7)
        values = rng.normal(size=(5, 5))
        A = Matrix.from_array(values)

        L, U, P, _ = A.lup()

        lhs = P.copy()
        lhs.mult(A)
        rhs = L.copy()
        rhs.mult(U)
        assert lhs.compare(rhs, 1e-9)

    def test_factor_structure(self):
        A = Matrix.from_array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0], [7.0, 8.0, 10.0]])
        L, U, P, _ = A.lup()

        l = L.as_array()
        u = U.as_array()
        np.testing.assert_array_equal(np.diag(l), np.ones(3))
        assert np.allclose(np.triu(l, 1), 0.0)
        assert np.allclose(np.tril(u, -1), 0.0)

        # P is a permutation matrix
        p = P.as_array()
        np.testing.assert_array_equal(p.sum(axis=0), np.ones(3))
        np.testing.assert_array_equal(p.sum(axis=1), np.ones(3))

    def test_pivot_picks_largest(self):
        """First pivot comes from the row with the largest |a_i0|"""
        A = Matrix.from_array([[1.0, 2.0], [3.0, 4.0]])
        _, U, P, swaps = A.lup()

        assert swaps == 1
        assert U.at(0, 0) == 3.0
        assert P.at(0, 1) == 1.0

    def test_ties_keep_current_row(self):
        A = Matrix.from_array([[2.0, 1.0], [-2.0, 3.0]])
        _, _, P, swaps = A.lup()

        assert swaps == 0
        assert P == Matrix.identity(2)

    def test_source_unchanged(self):
        A = Matrix.from_array([[1.0, 2.0], [3.0, 4.0]])
        before = A.copy()
        A.lup()
        assert A == before


# =============================================================================
# TEST 3: Determinant
# =============================================================================


class TestDeterminant:
    """
    Validate determinant via LUP.

    Reference: det(A) = (-1)^num_permutations * prod(diag(U))
    """

    def test_2x2(self):
        A = Matrix.from_array([[4.0, 3.0], [6.0, 3.0]])
        assert A.determinant() == pytest.approx(-6.0, abs=1e-12)

    def test_identity(self):
        assert Matrix.identity(4).determinant() == 1.0

    def test_matches_numpy(self):
        rng = np.random.default_rng(3)
        for n in (2, 3, 5):
            values = rng.normal(size=(n, n))
            assert Matrix.from_array(values).determinant() == pytest.approx(
                np.linalg.det(values), abs=1e-9
            )

    def test_sign_follows_permutation_parity(self):
        """Swapping two rows flips the sign of the determinant"""
        values = np.array([[2.0, 1.0, 0.0], [1.0, 3.0, 1.0], [0.0, 1.0, 4.0]])
        swapped = values[[1, 0, 2]]

        det = Matrix.from_array(values).determinant()
        det_swapped = Matrix.from_array(swapped).determinant()
        assert det_swapped == pytest.approx(-det, abs=1e-9)

    def test_zero_pivot_column_gives_zero(self):
        A = Matrix.from_array([[0.0, 1.0], [0.0, 2.0]])
        assert A.determinant() == 0.0


# =============================================================================
# TEST 4: Singular Matrices
# =============================================================================


class TestSingular:
    """Singular inputs raise and leave the matrix untouched."""

    def test_lup_zero_pivot_raises(self):
        A = Matrix.from_array([[0.0, 1.0], [0.0, 2.0]])
        with pytest.raises(SingularMatrixError):
            A.lup()

    def test_invert_zero_matrix(self):
        A = Matrix(3, 3)
        with pytest.raises(SingularMatrixError):
            A.invert()

    def test_zero_final_pivot_factorizes(self):
        """Only pivots before the last column are checked during elimination"""
        A = Matrix.from_array([[1.0, 2.0], [2.0, 4.0]])
        L, U, P, num_permutations = A.lup()

        assert U.at(1, 1) == 0.0
        assert num_permutations == 1
        assert A.determinant() == 0.0
        with pytest.raises(NotInvertibleError):
            A.invert()

    def test_invert_rank_deficient(self):
        """Dependent rows surface as a zero diagonal in U"""
        A = Matrix.from_array([[1.0, 2.0], [2.0, 4.0]])
        with pytest.raises(LinearAlgebraError):
            A.invert()

    def test_failed_invert_is_atomic(self):
        A = Matrix.from_array([[1.0, 2.0], [2.0, 4.0]])
        before = A.copy()
        with pytest.raises(LinearAlgebraError):
            A.invert()
        assert A == before


# =============================================================================
# TEST 5: Arithmetic and Shape
# =============================================================================


class TestArithmetic:
    """In-place operations, validation and workspace reuse."""

    def test_invalid_dimensions(self):
        with pytest.raises(InvalidDimensionError):
            Matrix(0, 2)
        with pytest.raises(InvalidDimensionError):
            Matrix(2, 2).resize(2, -1)

    def test_index_out_of_range(self):
        M = Matrix(2, 2)
        with pytest.raises(IndexOutOfRangeError):
            M.at(2, 0)
        with pytest.raises(IndexOutOfRangeError):
            M.set_at(0, -1, 1.0)

    def test_column_vector_row_index(self):
        v = Matrix.from_array([1.0, 2.0, 3.0])
        assert v.shape == (3, 1)
        assert v.at(2) == 3.0

    def test_scalar_operations(self):
        M = Matrix.from_array([[1.0, 2.0], [3.0, 4.0]])
        M.add(1.0)
        M.mult(2.0)
        M.sub(0.5)
        np.testing.assert_array_equal(M.as_array(), [[3.5, 5.5], [7.5, 9.5]])

    def test_non_finite_scalar_rejected(self):
        M = Matrix(2, 2)
        for value in (float("nan"), float("inf")):
            with pytest.raises(InvalidValueError):
                M.mult(value)
            with pytest.raises(InvalidValueError):
                M.assign(value)

    def test_elementwise_shape_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            Matrix(2, 2).add(Matrix(2, 1))

    def test_product_shape(self):
        A = Matrix.from_array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        B = Matrix.from_array([1.0, 0.0, -1.0])
        A.mult(B)

        assert A.shape == (2, 1)
        np.testing.assert_array_equal(A.as_array(), [[-2.0], [-2.0]])

    def test_product_inner_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            Matrix(2, 3).mult(Matrix(2, 3))

    def test_self_product_alias_safe(self):
        M = Matrix.from_array([[1.0, 1.0], [0.0, 1.0]])
        M.mult(M)
        np.testing.assert_array_equal(M.as_array(), [[1.0, 2.0], [0.0, 1.0]])

    def test_transpose(self):
        M = Matrix.from_array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        M.transpose()
        assert M.shape == (3, 2)
        np.testing.assert_array_equal(M.as_array(), [[1.0, 4.0], [2.0, 5.0], [3.0, 6.0]])

    def test_resize_reuses_capacity(self):
        M = Matrix(4, 4)
        M.resize(2, 3)
        assert M.capacity == 16
        assert M.shape == (2, 3)

        M.resize(5, 5)
        assert M.capacity == 25
        assert np.all(M.as_array() == 0.0)

    def test_copy_is_independent(self):
        A = Matrix.identity(2)
        B = A.copy()
        B.set_at(0, 1, 5.0)
        assert A.at(0, 1) == 0.0

    def test_copy_from_resizes(self):
        A = Matrix(1, 1)
        A.copy_from(Matrix.identity(3))
        assert A == Matrix.identity(3)

    def test_compare_and_symmetry(self):
        A = Matrix.from_array([[1.0, 2.0], [2.0, 1.0]])
        B = Matrix.from_array([[1.0, 2.0 + 1e-10], [2.0, 1.0]])

        assert A.is_symmetric()
        assert not B.is_symmetric()
        assert A.compare(B, 1e-9)
        assert not A.compare(B, 1e-11)
        assert not A.compare(Matrix(2, 1), 1.0)

    def test_set_as_identity_requires_square(self):
        with pytest.raises(DimensionMismatchError):
            Matrix(2, 3).set_as_identity()

    def test_str_format(self):
        text = str(Matrix.from_array([[1.0, 0.5]]))
        assert text == "Matrix 1x2 :\n1.00000000\t0.50000000\n"


# =============================================================================
# TEST 6: Binary Layout
# =============================================================================


class TestSerialization:
    """[int rows][int cols][rows*cols doubles], big-endian."""

    def test_byte_layout(self):
        buffer = io.BytesIO()
        Matrix.from_array([[1.0, 2.0]]).write(buffer)

        assert buffer.getvalue() == struct.pack(">iidd", 1, 2, 1.0, 2.0)

    def test_round_trip(self):
        M = Matrix.from_array([[1.5, -2.0], [3.25, 1e-300]])
        buffer = io.BytesIO()
        M.write(buffer)
        buffer.seek(0)

        assert Matrix.read(buffer) == M

    def test_truncated_payload(self):
        data = struct.pack(">iid", 2, 1, 1.0)
        with pytest.raises(LogFormatError):
            Matrix.read(io.BytesIO(data))

    def test_invalid_header(self):
        with pytest.raises(LogFormatError):
            Matrix.read(io.BytesIO(struct.pack(">ii", 0, 3)))

    def test_oversized_header(self):
        data = struct.pack(">ii", 2**31 - 1, 2**31 - 1) + b"\0" * 16
        with pytest.raises(LogFormatError):
            Matrix.read(io.BytesIO(data))

    def test_large_header_with_short_payload(self):
        """Within the element cap, a short payload is a truncated record"""
        data = struct.pack(">ii", 1000, 1000) + b"\0" * 16
        with pytest.raises(LogFormatError):
            Matrix.read(io.BytesIO(data))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
