"""Generic linear solvers for symmetric positive definite systems.

This module provides:
- Preconditioner: abstract base class for preconditioners.
- IdentityPreconditioner: no preconditioning.
- DiagonalPreconditioner: Jacobi (diagonal) preconditioner.
- OperatorPreconditioner: wraps an arbitrary linear operator.
- cg_solve: Preconditioned Conjugate Gradient solver.
- ConjugateGradient: reusable CG solver state primed on a matrix.
"""

from .cg import (
    ComputationInfo,
    ConjugateGradient,
    DiagonalPreconditioner,
    IdentityPreconditioner,
    OperatorPreconditioner,
    Preconditioner,
    build_preconditioner,
    cg_solve,
)

__all__ = [
    "ComputationInfo",
    "ConjugateGradient",
    "DiagonalPreconditioner",
    "IdentityPreconditioner",
    "OperatorPreconditioner",
    "Preconditioner",
    "build_preconditioner",
    "cg_solve",
]
