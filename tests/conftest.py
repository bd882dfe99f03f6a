import pytest
import torch
from torch_sparse import SparseTensor


def random_spd(n: int, density: float = 0.2, seed: int = 0) -> torch.Tensor:
    """Dense sparse-pattern SPD matrix, made positive definite by diagonal dominance."""
    gen = torch.Generator().manual_seed(seed)
    vals = torch.randn(n, n, generator=gen, dtype=torch.float64)
    mask = torch.rand(n, n, generator=gen, dtype=torch.float64) < density
    off = torch.where(mask, vals, torch.zeros_like(vals))
    sym = torch.tril(off, diagonal=-1)
    sym = sym + sym.T
    diag = sym.abs().sum(dim=1) + 1.0
    return sym + torch.diag(diag)


def laplacian_1d(n: int, shift: float = 0.5) -> torch.Tensor:
    """Tridiagonal 1D Laplacian plus a positive shift."""
    dense = torch.diag(torch.full((n,), 2.0 + shift, dtype=torch.float64))
    off = torch.full((n - 1,), -1.0, dtype=torch.float64)
    return dense + torch.diag(off, 1) + torch.diag(off, -1)


def lower_storage(dense: torch.Tensor) -> SparseTensor:
    return SparseTensor.from_dense(torch.tril(dense))


def upper_storage(dense: torch.Tensor) -> SparseTensor:
    return SparseTensor.from_dense(torch.triu(dense))


@pytest.fixture
def spd_dense():
    return random_spd(25, density=0.15, seed=3)


@pytest.fixture
def laplacian_dense():
    return laplacian_1d(30)


@pytest.fixture
def vector():
    gen = torch.Generator().manual_seed(11)
    return lambda n: torch.randn(n, generator=gen, dtype=torch.float64)
