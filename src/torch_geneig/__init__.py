"""Sparse B operators for generalized symmetric eigensolvers."""

from .core import (
    ComputationInfo,
    ConjugateGradient,
    RegularInverseOperator,
    SymmetricOperator,
    SymmetricSparseMatrix,
)

__all__ = [
    "ComputationInfo",
    "ConjugateGradient",
    "RegularInverseOperator",
    "SymmetricOperator",
    "SymmetricSparseMatrix",
]

__version__ = "0.1.0"
