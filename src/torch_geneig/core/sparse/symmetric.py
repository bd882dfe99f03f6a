"""Sparse symmetric matrices stored as one triangular half.

A symmetric matrix B = B^T is fully described by its lower (or upper)
triangle. SymmetricSparseMatrix wraps a SparseTensor and reads only the
entries of the selected half:

    B = T + T^T - diag(T)

where T is the stored triangle. Entries of the other half, if present in
the storage, are ignored by every operation.
"""
# pylint: disable=invalid-name

from __future__ import annotations

from typing import Optional, Union

import torch
from torch import Tensor
from torch_sparse import SparseTensor

MatrixLike = Union[SparseTensor, Tensor]

_UPLO_ALIASES = {
    "lower": "lower",
    "l": "lower",
    "upper": "upper",
    "u": "upper",
}


def _parse_uplo(uplo: str) -> str:
    """Normalize a triangular-half tag to "lower" or "upper"."""
    if not isinstance(uplo, str) or uplo.lower() not in _UPLO_ALIASES:
        raise ValueError(f"uplo must be 'lower' or 'upper', got {uplo!r}")
    return _UPLO_ALIASES[uplo.lower()]


def _parse_matrix(matrix: MatrixLike) -> SparseTensor:
    """Return matrix as SparseTensor.

    SparseTensor inputs are returned as-is (no copy). torch sparse tensors
    and dense 2D tensors are converted once.
    """
    if isinstance(matrix, SparseTensor):
        return matrix

    if not isinstance(matrix, Tensor):
        raise TypeError(
            "matrix must be a SparseTensor or a torch Tensor, "
            f"got {type(matrix)}"
        )
    if matrix.ndim != 2:
        raise ValueError(f"matrix must be 2D, got ndim={matrix.ndim}")

    if matrix.layout == torch.sparse_coo:
        return SparseTensor.from_torch_sparse_coo_tensor(matrix.coalesce())
    if matrix.layout == torch.sparse_csr:
        return SparseTensor.from_torch_sparse_coo_tensor(
            matrix.to_sparse_coo().coalesce()
        )
    return SparseTensor.from_dense(matrix)


class SymmetricSparseMatrix:
    """Symmetric matrix backed by one triangular half of a SparseTensor.

    The wrapped storage is referenced, not copied: values are read from it
    on every call and it is never written to. The caller must keep it alive
    and unmodified for as long as this object is used.

    Args:
        matrix (SparseTensor | Tensor): storage. A SparseTensor is kept
            by reference; a torch sparse (COO/CSR) or dense 2D tensor is
            converted into a SparseTensor once.
        uplo (str): which half is read, "lower" (row >= col) or "upper"
            (row <= col). "L" and "U" are accepted as well.
            Default: "lower".

    Raises:
        ValueError: if uplo is not recognized or matrix is not 2D.
        TypeError: if matrix is neither a SparseTensor nor a Tensor.
    """

    def __init__(self, matrix: MatrixLike, uplo: str = "lower"):
        self._uplo = _parse_uplo(uplo)
        self._data = _parse_matrix(matrix)
        self._half: Optional[tuple[Tensor, Tensor, Tensor]] = None

    @classmethod
    def from_dense(cls, dense: Tensor, uplo: str = "lower") -> SymmetricSparseMatrix:
        """Build from a dense (n, n) tensor, keeping only its nonzeros."""
        return cls(SparseTensor.from_dense(dense), uplo=uplo)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def data(self) -> SparseTensor:
        """Referenced SparseTensor storage."""
        return self._data

    @property
    def uplo(self) -> str:
        """Stored half, "lower" or "upper"."""
        return self._uplo

    @property
    def n_rows(self) -> int:
        return int(self._data.sparse_size(0))

    @property
    def n_cols(self) -> int:
        return int(self._data.sparse_size(1))

    @property
    def is_square(self) -> bool:
        return self.n_rows == self.n_cols

    @property
    def dtype(self) -> torch.dtype:
        value = self._data.storage.value()
        if value is None:
            return torch.get_default_dtype()
        return value.dtype

    @property
    def device(self) -> torch.device:
        return self._data.device()

    def sizes(self) -> tuple[int, int]:
        """(n_rows, n_cols) of the storage."""
        return self.n_rows, self.n_cols

    # ------------------------------------------------------------------
    # Nonzero access
    # ------------------------------------------------------------------

    def coo(self) -> tuple[Tensor, Tensor, Tensor]:
        """Nonzeros of the stored triangular half.

        Returns:
            row (Tensor): (nnz,) row indices.
            col (Tensor): (nnz,) column indices.
            value (Tensor): (nnz,) values. Implicit ones when the storage
                carries no values.
        """
        row, col, keep = self._half_indices()
        value = self._data.storage.value()
        if value is None:
            value = torch.ones(
                row.numel(), dtype=torch.get_default_dtype(), device=row.device
            )
        else:
            value = value[keep]
        return row, col, value

    def _half_indices(self) -> tuple[Tensor, Tensor, Tensor]:
        """(row, col, keep mask) of the stored half, cached.

        The sparsity structure is fixed, so only the mask selection is
        cached; values are still read from the storage on every call.
        """
        if self._half is None:
            row, col, _ = self._data.coo()
            keep = row >= col if self._uplo == "lower" else row <= col
            self._half = (row[keep], col[keep], keep)
        return self._half

    def nnz(self) -> int:
        """Number of stored nonzeros in the triangular half."""
        row, _, _ = self._half_indices()
        return int(row.numel())

    def diagonal(self) -> Tensor:
        """Return the (min(n_rows, n_cols),) diagonal, zero where unstored."""
        row, col, value = self.coo()
        on_diag = row == col
        diag = value.new_zeros(min(self.n_rows, self.n_cols))
        diag.index_add_(0, row[on_diag], value[on_diag])
        return diag

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def matvec(self, x: Tensor) -> Tensor:
        """Compute B @ x by mirroring the stored half.

        Diagonal entries contribute once; off-diagonal entries contribute
        at (row, col) and again, transposed, at (col, row).

        Args:
            x (Tensor): (n,) or (n, d) tensor.

        Returns:
            B @ x with the same shape as x.

        Raises:
            ValueError: if the matrix is not square.
        """
        if not self.is_square:
            raise ValueError(
                f"symmetric product requires a square matrix, got {self.sizes()}"
            )
        row, col, value = self.coo()
        value = value.to(dtype=x.dtype)
        if x.ndim > 1:
            value = value.unsqueeze(-1)

        y = x.new_zeros(x.shape)
        y.index_add_(0, row, value * x.index_select(0, col))

        off = row != col
        y.index_add_(0, col[off], value[off] * x.index_select(0, row[off]))
        return y

    def __matmul__(self, x: Tensor) -> Tensor:
        return self.matvec(x)

    def to_full(self) -> SparseTensor:
        """Return the explicit symmetric matrix with both halves stored."""
        row, col, value = self.coo()
        off = row != col
        return SparseTensor(
            row=torch.cat([row, col[off]], dim=0),
            col=torch.cat([col, row[off]], dim=0),
            value=torch.cat([value, value[off]], dim=0),
            sparse_sizes=self.sizes(),
        ).coalesce()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(sizes={self.sizes()}, "
            f"nnz={self.nnz()}, uplo={self._uplo!r})"
        )
