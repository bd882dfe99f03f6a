""" Core modules """

from .operators import RegularInverseOperator, SymmetricOperator
from .solvers import (
    ComputationInfo,
    ConjugateGradient,
    DiagonalPreconditioner,
    IdentityPreconditioner,
    OperatorPreconditioner,
    Preconditioner,
    cg_solve,
)
from .sparse import SymmetricSparseMatrix

__all__ = [
    "ComputationInfo",
    "ConjugateGradient",
    "DiagonalPreconditioner",
    "IdentityPreconditioner",
    "OperatorPreconditioner",
    "Preconditioner",
    "RegularInverseOperator",
    "SymmetricOperator",
    "SymmetricSparseMatrix",
    "cg_solve",
]
