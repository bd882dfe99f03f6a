"""Conjugate Gradient solver and preconditioner abstractions.

This module provides a generic implementation of the Preconditioned
Conjugate Gradient (PCG) algorithm for solving symmetric positive definite
linear systems A x = b, in two forms:

- cg_solve: a one-shot functional solver.
- ConjugateGradient: a reusable solver state, primed once on a matrix
  (preconditioner setup) and then applied to many right-hand sides.

Convergence is measured on the relative residual ||b - A x|| / ||b||.
Failing to converge is not an error: the last iterate is returned and the
outcome is reported through the info dict / ComputationInfo.
"""
# pylint: disable=invalid-name

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

import torch
from torch import Tensor
from torch_sparse import SparseTensor

from ..sparse.symmetric import SymmetricSparseMatrix

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Type alias for linear operators
# ------------------------------------------------------------------

LinearOperator = Union[
    Tensor, SparseTensor, SymmetricSparseMatrix, Callable[[Tensor], Tensor]
]


def _matvec(A: LinearOperator, x: Tensor) -> Tensor:
    """Apply linear operator A to vector x.

    Args:
        A (LinearOperator): dense/sparse matrix or callable operator.
        x (Tensor): (n,) or (n, d) input tensor.

    Returns:
        A(x) as Tensor.
    """
    if isinstance(A, SparseTensor) and x.ndim == 1:
        # torch_sparse matmul expects a trailing feature dimension
        return (A @ x.unsqueeze(-1)).squeeze(-1)
    if callable(A):
        return A(x)
    return A @ x


# ------------------------------------------------------------------
# Preconditioner abstraction
# ------------------------------------------------------------------


class Preconditioner(ABC):
    """Abstract base class for preconditioners.

    A preconditioner M approximates A^{-1}. Given a residual r,
    apply(r) returns an approximation of A^{-1} r, which improves
    the conditioning of the CG iteration.
    """

    @abstractmethod
    def apply(self, r: Tensor) -> Tensor:
        """Apply preconditioner to residual r.

        Args:
            r (Tensor): residual tensor, same shape as x and b.

        Returns:
            Approximation of A^{-1} r, same shape as r.
        """


class IdentityPreconditioner(Preconditioner):
    """No-op preconditioner (M = I), giving plain CG."""

    def apply(self, r: Tensor) -> Tensor:
        return r.clone()


class DiagonalPreconditioner(Preconditioner):
    """Preconditioner based on the diagonal of A.

    Applies M^{-1} r = r / diag, which corresponds to Jacobi
    preconditioning. Effective when the diagonal captures most
    of the conditioning of A.

    Args:
        diag (Tensor): (n,) tensor of diagonal entries of A.
    """

    def __init__(self, diag: Tensor):
        self._diag = diag

    @classmethod
    def from_matrix(cls, matrix: SymmetricSparseMatrix) -> DiagonalPreconditioner:
        """Build a Jacobi preconditioner from the stored diagonal.

        Zero (unstored) diagonal entries are replaced by 1 so the
        preconditioner stays well defined.
        """
        diag = matrix.diagonal()
        return cls(torch.where(diag != 0, diag, torch.ones_like(diag)))

    @property
    def diag(self) -> Tensor:
        return self._diag

    def apply(self, r: Tensor) -> Tensor:
        """Apply diagonal preconditioning.

        Args:
            r (Tensor): (n,) or (n, d) residual tensor.

        Returns:
            r / diag, same shape as r.
        """
        diag = self._diag.to(dtype=r.dtype)
        if r.ndim == 1:
            return r / diag
        return r / diag.unsqueeze(-1)


class OperatorPreconditioner(Preconditioner):
    """Preconditioner wrapping an arbitrary linear operator.

    Allows using any dense/sparse matrix or callable as a preconditioner,
    without imposing specific structure.

    Args:
        operator (LinearOperator): dense/sparse matrix or callable P such
            that P(r) approximates A^{-1} r.
    """

    def __init__(self, operator: LinearOperator):
        self._op = operator

    def apply(self, r: Tensor) -> Tensor:
        """Apply operator preconditioner to residual r.

        Args:
            r (Tensor): (n,) or (n, d) residual tensor.

        Returns:
            P(r), same shape as r.
        """
        return _matvec(self._op, r)


PreconditionerFactory = Callable[[SymmetricSparseMatrix], Preconditioner]

_PRECONDITIONERS: dict[str, PreconditionerFactory] = {
    "diagonal": DiagonalPreconditioner.from_matrix,
    "jacobi": DiagonalPreconditioner.from_matrix,
    "identity": lambda matrix: IdentityPreconditioner(),
    "none": lambda matrix: IdentityPreconditioner(),
}


def build_preconditioner(
    choice: Union[None, str, Preconditioner, PreconditionerFactory],
    matrix: SymmetricSparseMatrix,
) -> Preconditioner:
    """Resolve a preconditioner choice against a matrix.

    Args:
        choice: None (Jacobi), a registered name ("diagonal", "jacobi",
            "identity", "none"), a ready Preconditioner, or a factory
            called with the matrix.
        matrix (SymmetricSparseMatrix): matrix the preconditioner targets.

    Returns:
        Preconditioner instance.

    Raises:
        ValueError: if choice is an unknown name.
        TypeError: if choice has an unsupported type.
    """
    if choice is None:
        return DiagonalPreconditioner.from_matrix(matrix)
    if isinstance(choice, Preconditioner):
        return choice
    if isinstance(choice, str):
        try:
            factory = _PRECONDITIONERS[choice.lower()]
        except KeyError:
            raise ValueError(
                f"unknown preconditioner {choice!r}, "
                f"expected one of {sorted(_PRECONDITIONERS)}"
            ) from None
        return factory(matrix)
    if callable(choice):
        return choice(matrix)
    raise TypeError(f"unsupported preconditioner choice: {type(choice)}")


# ------------------------------------------------------------------
# CG solver
# ------------------------------------------------------------------


def cg_solve(
    A: LinearOperator,
    b: Tensor,
    x0: Optional[Tensor] = None,
    preconditioner: Optional[Preconditioner] = None,
    tol: Optional[float] = None,
    maxiter: Optional[int] = None,
) -> tuple[Tensor, dict]:
    """Solve the SPD linear system A x = b via Preconditioned Conjugate Gradient.

    Supports both vector (n,) and batched (n, d) right-hand sides. When b has
    shape (n, d), all d systems are solved simultaneously.

    Args:
        A (LinearOperator): symmetric positive definite operator.
        b (Tensor): right-hand side, shape (n,) or (n, d).
        x0 (Tensor | None): initial guess, defaults to zero.
        preconditioner (Preconditioner | None): optional preconditioner M.
            When None, CG runs without preconditioning (M = I).
        tol (float | None): stopping tolerance on the relative residual
            ||r|| / ||b||. Defaults to the machine epsilon of b.dtype.
        maxiter (int | None): maximum number of iterations. Defaults to 2 * n.

    Returns:
        x (Tensor): approximate solution, same shape as b.
        info (dict): convergence info with keys:
            - "converged" (bool)
            - "iterations" (int)
            - "residual_norm" (float): max relative residual norm across
              features.
    """
    n = b.shape[0]
    _tol = tol if tol is not None else torch.finfo(b.dtype).eps
    _maxiter = maxiter if maxiter is not None else 2 * n

    x = torch.zeros_like(b) if x0 is None else x0.clone()

    b_norm = b.norm(dim=0)
    if not bool((b_norm > 0).any()):
        # Zero right-hand side: the solution is exactly zero.
        return torch.zeros_like(b), {
            "converged": True,
            "iterations": 0,
            "residual_norm": 0.0,
        }

    # Zero columns converge trivially; avoid dividing by their zero norm.
    scale = torch.where(b_norm > 0, b_norm, torch.ones_like(b_norm))

    # Initial residual: r = b - A x
    r = b - _matvec(A, x)
    rel_res = r.norm(dim=0) / scale
    if float(rel_res.max()) <= _tol:
        return x, {
            "converged": True,
            "iterations": 0,
            "residual_norm": float(rel_res.max()),
        }

    # Initial preconditioned residual
    z = preconditioner.apply(r) if preconditioner is not None else r.clone()

    p = z.clone()

    # Inner products along the n dimension: scalar or (d,) if batched
    rz_old = (r * z).sum(dim=0)

    converged = False
    it = 0

    while it < _maxiter:
        Ap = _matvec(A, p)

        # Step size alpha = (r^T z) / (p^T A p); zero for exhausted columns
        pAp = (p * Ap).sum(dim=0)
        alpha = torch.where(pAp != 0, rz_old / pAp, torch.zeros_like(pAp))

        # Update solution and residual
        x = x + alpha * p
        r = r - alpha * Ap
        it += 1

        # Check convergence
        rel_res = r.norm(dim=0) / scale
        if float(rel_res.max()) <= _tol:
            converged = True
            break

        z = preconditioner.apply(r) if preconditioner is not None else r.clone()

        rz_new = (r * z).sum(dim=0)

        # Direction update: p = z + beta * p
        beta = torch.where(rz_old != 0, rz_new / rz_old, torch.zeros_like(rz_new))
        p = z + beta * p
        rz_old = rz_new

    info = {
        "converged": converged,
        "iterations": it,
        "residual_norm": float(rel_res.max()),
    }

    return x, info


class ComputationInfo(enum.Enum):
    """Outcome of the last ConjugateGradient operation."""

    NOT_COMPUTED = "not_computed"
    SUCCESS = "success"
    NO_CONVERGENCE = "no_convergence"


class ConjugateGradient:
    """Reusable Conjugate Gradient solver state.

    compute() binds the solver to a symmetric positive definite matrix and
    sets up the preconditioner once; solve() then runs PCG on any number of
    right-hand sides, reusing that setup. Each solve records its iteration
    count, relative residual and outcome on the instance, so a single
    instance must not be shared between threads.

    Args:
        tol (float | None): relative residual tolerance. None uses the
            machine epsilon of the right-hand side dtype.
        maxiter (int | None): iteration cap per solve. None uses 2 * n.
        preconditioner: None (Jacobi), a registered name, a Preconditioner
            instance, or a factory taking the matrix. See
            build_preconditioner.
    """

    def __init__(
        self,
        tol: Optional[float] = None,
        maxiter: Optional[int] = None,
        preconditioner: Union[None, str, Preconditioner, PreconditionerFactory] = None,
    ):
        if tol is not None and tol < 0:
            raise ValueError(f"tol must be non-negative, got {tol}")
        if maxiter is not None and maxiter < 0:
            raise ValueError(f"maxiter must be non-negative, got {maxiter}")

        self._tol = tol
        self._maxiter = maxiter
        self._preconditioner_choice = preconditioner

        self._matrix: Optional[SymmetricSparseMatrix] = None
        self._preconditioner: Optional[Preconditioner] = None

        self._iterations = 0
        self._error = 0.0
        self._info = ComputationInfo.NOT_COMPUTED

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def compute(self, matrix: SymmetricSparseMatrix) -> ConjugateGradient:
        """Prime the solver on matrix.

        Args:
            matrix (SymmetricSparseMatrix): square SPD matrix (referenced).

        Returns:
            self, for chaining.

        Raises:
            ValueError: if the matrix is not square.
        """
        if not matrix.is_square:
            raise ValueError(
                f"ConjugateGradient: matrix must be square, got {matrix.sizes()}"
            )
        self._matrix = matrix
        self._preconditioner = build_preconditioner(
            self._preconditioner_choice, matrix
        )
        self._iterations = 0
        self._error = 0.0
        self._info = ComputationInfo.SUCCESS
        logger.debug(
            "ConjugateGradient primed: n=%d, preconditioner=%s, tol=%s, maxiter=%d",
            matrix.n_rows,
            type(self._preconditioner).__name__,
            self._tol,
            self.maxiter,
        )
        return self

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def tol(self) -> Optional[float]:
        return self._tol

    @property
    def maxiter(self) -> Optional[int]:
        """Effective iteration cap (2 * n when not set explicitly).

        None until compute() when no explicit cap was given.
        """
        if self._maxiter is not None:
            return self._maxiter
        if self._matrix is None:
            return None
        return 2 * self._matrix.n_cols

    @property
    def preconditioner(self) -> Optional[Preconditioner]:
        return self._preconditioner

    @property
    def iterations(self) -> int:
        """Iterations performed by the last solve."""
        return self._iterations

    @property
    def error(self) -> float:
        """Relative residual reached by the last solve."""
        return self._error

    @property
    def info(self) -> ComputationInfo:
        return self._info

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    def solve(self, b: Tensor, x0: Optional[Tensor] = None) -> Tensor:
        """Approximately solve A x = b with the primed state.

        Args:
            b (Tensor): (n,) or (n, d) right-hand side. Not modified.
            x0 (Tensor | None): initial guess, defaults to zero.

        Returns:
            x, same shape as b. On non-convergence, the last iterate.

        Raises:
            RuntimeError: if compute() has not been called.
        """
        if self._matrix is None:
            raise RuntimeError("ConjugateGradient.solve called before compute")

        x, info = cg_solve(
            self._matrix,
            b,
            x0=x0,
            preconditioner=self._preconditioner,
            tol=self._tol,
            maxiter=self.maxiter,
        )

        self._iterations = info["iterations"]
        self._error = info["residual_norm"]
        self._info = (
            ComputationInfo.SUCCESS if info["converged"]
            else ComputationInfo.NO_CONVERGENCE
        )
        if info["converged"]:
            logger.debug(
                "CG converged in %d iterations (relative residual %.3e)",
                self._iterations,
                self._error,
            )
        else:
            logger.debug(
                "CG did not converge within %d iterations (relative residual %.3e)",
                self._iterations,
                self._error,
            )
        return x
