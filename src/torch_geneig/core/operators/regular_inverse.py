"""B operator for generalized eigensolvers in regular inverse mode.

For a generalized eigenvalue problem A x = λ B x, where A is symmetric and
B is sparse and positive definite, RegularInverseOperator implements the
matrix-vector product y = B x and the linear solve y = B^{-1} x. The solve
is carried out by a Conjugate Gradient solver primed once at construction,
so its setup cost is paid once over the many solves of an eigensolver run.
"""
# pylint: disable=invalid-name

from __future__ import annotations

import logging
from typing import Optional, Union

import torch
from torch import Tensor

from ..solvers.cg import (
    ComputationInfo,
    ConjugateGradient,
    Preconditioner,
    PreconditionerFactory,
)
from ..sparse.symmetric import MatrixLike, SymmetricSparseMatrix
from .base import SymmetricOperator

logger = logging.getLogger(__name__)


class RegularInverseOperator(SymmetricOperator):
    """Sparse symmetric positive definite B with forward and inverse products.

    Only one triangular half of B is read (see SymmetricSparseMatrix). The
    matrix is referenced, not copied: it must outlive the operator and must
    not be modified while the operator is in use.

    Args:
        matrix (SymmetricSparseMatrix | SparseTensor | Tensor): the matrix B.
            Anything other than a SymmetricSparseMatrix is wrapped with uplo.
        uplo (str): stored half when wrapping, "lower" or "upper".
            Ignored for SymmetricSparseMatrix inputs. Default: "lower".
        tol (float | None): CG relative residual tolerance. None uses the
            machine epsilon of the vector dtype.
        maxiter (int | None): CG iteration cap per solve. None uses 2 * n.
        preconditioner: CG preconditioner, None for Jacobi. See
            build_preconditioner.
        validate (bool): if True, mat_prod and solve check that inputs
            have length n. Default: False.

    Raises:
        ValueError: if the matrix is not square.
    """

    def __init__(
        self,
        matrix: Union[SymmetricSparseMatrix, MatrixLike],
        uplo: str = "lower",
        tol: Optional[float] = None,
        maxiter: Optional[int] = None,
        preconditioner: Union[None, str, Preconditioner, PreconditionerFactory] = None,
        validate: bool = False,
    ):
        if not isinstance(matrix, SymmetricSparseMatrix):
            matrix = SymmetricSparseMatrix(matrix, uplo=uplo)

        if not matrix.is_square:
            raise ValueError(
                "RegularInverseOperator: matrix must be square, "
                f"got {matrix.n_rows}x{matrix.n_cols}"
            )

        self._n = matrix.n_rows
        self._matrix = matrix
        self._validate = validate
        self._cg = ConjugateGradient(
            tol=tol, maxiter=maxiter, preconditioner=preconditioner
        ).compute(matrix)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "RegularInverseOperator: n=%d, nnz=%d, uplo=%s",
                self._n,
                matrix.nnz(),
                matrix.uplo,
            )

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------

    def rows(self) -> int:
        return self._n

    def cols(self) -> int:
        return self._n

    @property
    def matrix(self) -> SymmetricSparseMatrix:
        return self._matrix

    # ------------------------------------------------------------------
    # Last solve diagnostics
    # ------------------------------------------------------------------

    @property
    def iterations(self) -> int:
        """CG iterations used by the last solve."""
        return self._cg.iterations

    @property
    def error(self) -> float:
        """Relative residual ||x - B y|| / ||x|| of the last solve."""
        return self._cg.error

    @property
    def info(self) -> ComputationInfo:
        return self._cg.info

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def _check(self, x: Tensor, out: Optional[Tensor]) -> None:
        if x.ndim != 1 or x.shape[0] != self._n:
            raise ValueError(
                f"expected input of shape ({self._n},), got {tuple(x.shape)}"
            )
        if out is not None and tuple(out.shape) != (self._n,):
            raise ValueError(
                f"expected output of shape ({self._n},), got {tuple(out.shape)}"
            )

    def _work_dtype(self, x: Tensor) -> torch.dtype:
        """Floating dtype products are computed in.

        Integer-valued matrices or vectors are promoted so neither product
        truncates and CG has a machine epsilon to work with.
        """
        dtype = torch.promote_types(self._matrix.dtype, x.dtype)
        if not dtype.is_floating_point and not dtype.is_complex:
            return torch.get_default_dtype()
        return dtype

    def mat_prod(self, x: Tensor, out: Optional[Tensor] = None) -> Tensor:
        """Compute y = B x using the stored triangular half.

        Args:
            x (Tensor): (n,) input vector, not modified.
            out (Tensor | None): optional (n,) buffer overwritten with y.

        Returns:
            y = B x.
        """
        if self._validate:
            self._check(x, out)
        y = self._matrix.matvec(x.to(dtype=self._work_dtype(x)))
        return self._write_out(y, out)

    def solve(self, x: Tensor, out: Optional[Tensor] = None) -> Tensor:
        """Compute y ≈ B^{-1} x with the primed CG solver.

        Never raises on non-convergence: y is then the last CG iterate and
        info reports ComputationInfo.NO_CONVERGENCE.

        Args:
            x (Tensor): (n,) right-hand side, not modified.
            out (Tensor | None): optional (n,) buffer overwritten with y.

        Returns:
            y, the approximate solution of B y = x.
        """
        if self._validate:
            self._check(x, out)
        y = self._cg.solve(x.to(dtype=self._work_dtype(x)))
        return self._write_out(y, out)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(n={self._n}, uplo={self._matrix.uplo!r})"
        )
