"""
Linear Algebra Module

Dense matrix algebra used by the tracking filters.

Components:
    - Matrix: Resizable row-major matrix with in-place arithmetic,
      LUP factorization, determinant and inversion
    - LUPFactorization: (L, U, P, num_permutations) result tuple
"""

from .matrix import LUPFactorization, Matrix

__all__ = ["Matrix", "LUPFactorization"]
