"""Operator abstraction for the B matrix of a generalized eigenproblem.

For A x = λ B x with B symmetric positive definite, an eigensolver only
needs two primitives of B:

    mat_prod(x) = B x
    solve(x)    = B^{-1} x

plus its shape. SymmetricOperator fixes that interface so eigensolvers can
depend on it without knowing how B is stored or inverted.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from torch import Tensor


class SymmetricOperator(ABC):
    """Abstract base class for symmetric positive definite operators B.

    Implementations must provide:
    - rows(), cols(): the operator dimension n
    - mat_prod(x): compute B @ x
    - solve(x): compute (an approximation of) B^{-1} @ x

    Both products accept an optional ``out`` buffer of shape (n,) which is
    overwritten with the result and returned.
    """

    @abstractmethod
    def rows(self) -> int:
        """Number of rows of B."""

    @abstractmethod
    def cols(self) -> int:
        """Number of columns of B."""

    @property
    def shape(self) -> tuple[int, int]:
        return self.rows(), self.cols()

    @abstractmethod
    def mat_prod(self, x: Tensor, out: Optional[Tensor] = None) -> Tensor:
        """Apply B to vector x.

        Args:
            x (Tensor): (n,) input vector, not modified.
            out (Tensor | None): optional (n,) output buffer.

        Returns:
            B @ x, written into out when given.
        """

    @abstractmethod
    def solve(self, x: Tensor, out: Optional[Tensor] = None) -> Tensor:
        """Solve B @ y = x for y.

        Args:
            x (Tensor): (n,) right-hand side, not modified.
            out (Tensor | None): optional (n,) output buffer.

        Returns:
            y, written into out when given.
        """

    @staticmethod
    def _write_out(result: Tensor, out: Optional[Tensor]) -> Tensor:
        """Copy result into the caller buffer when one is given."""
        if out is None:
            return result
        out.copy_(result)
        return out
