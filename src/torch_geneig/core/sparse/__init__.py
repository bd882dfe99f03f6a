"""Sparse matrix storage.

This module provides:
- SymmetricSparseMatrix: symmetric matrix read from one triangular half
  of a SparseTensor.
"""

from .symmetric import SymmetricSparseMatrix

__all__ = [
    "SymmetricSparseMatrix",
]
