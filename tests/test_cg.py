import pytest
import torch

from torch_geneig.core.solvers import (
    ComputationInfo,
    ConjugateGradient,
    DiagonalPreconditioner,
    IdentityPreconditioner,
    OperatorPreconditioner,
    build_preconditioner,
    cg_solve,
)
from torch_geneig.core.sparse import SymmetricSparseMatrix

from conftest import lower_storage


def test_cg_solve_dense_matrix(spd_dense, vector):
    b = vector(spd_dense.shape[0])
    x, info = cg_solve(spd_dense, b, tol=1e-12)
    assert info["converged"]
    assert info["residual_norm"] <= 1e-12
    torch.testing.assert_close(spd_dense @ x, b)


def test_cg_solve_sparse_tensor_vector_rhs(laplacian_dense, vector):
    from torch_sparse import SparseTensor

    A = SparseTensor.from_dense(laplacian_dense)
    b = vector(laplacian_dense.shape[0])
    x, info = cg_solve(A, b, tol=1e-12)
    assert info["converged"]
    assert x.shape == b.shape
    torch.testing.assert_close(laplacian_dense @ x, b)


def test_cg_solve_batched(spd_dense):
    B = SymmetricSparseMatrix(lower_storage(spd_dense))
    b = torch.randn(spd_dense.shape[0], 3, dtype=torch.float64)
    b[:, 1] = 0.0
    x, info = cg_solve(B, b, preconditioner=DiagonalPreconditioner.from_matrix(B), tol=1e-12)
    assert info["converged"]
    assert torch.equal(x[:, 1], torch.zeros_like(x[:, 1]))
    torch.testing.assert_close(spd_dense @ x, b)


def test_cg_solve_zero_rhs():
    A = torch.eye(4, dtype=torch.float64)
    x, info = cg_solve(A, torch.zeros(4, dtype=torch.float64))
    assert torch.equal(x, torch.zeros(4, dtype=torch.float64))
    assert info == {"converged": True, "iterations": 0, "residual_norm": 0.0}


def test_cg_solve_callable_operator(laplacian_dense, vector):
    b = vector(laplacian_dense.shape[0])
    x, info = cg_solve(lambda v: laplacian_dense @ v, b, tol=1e-12)
    assert info["converged"]
    torch.testing.assert_close(laplacian_dense @ x, b)


def test_cg_solve_reports_non_convergence(laplacian_dense, vector):
    b = vector(laplacian_dense.shape[0])
    x, info = cg_solve(laplacian_dense, b, tol=1e-14, maxiter=2)
    assert not info["converged"]
    assert info["iterations"] == 2
    assert torch.isfinite(x).all()


def test_jacobi_on_diagonal_matrix_converges_in_one_step():
    A = torch.diag(torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64))
    B = SymmetricSparseMatrix.from_dense(A)
    b = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)
    x, info = cg_solve(B, b, preconditioner=DiagonalPreconditioner.from_matrix(B))
    assert info["iterations"] == 1
    torch.testing.assert_close(x, torch.ones(3, dtype=torch.float64))


def test_diagonal_preconditioner_replaces_zero_entries():
    dense = torch.tensor([[0.0, 0.0], [1.0, 4.0]], dtype=torch.float64)
    precond = DiagonalPreconditioner.from_matrix(SymmetricSparseMatrix.from_dense(dense))
    torch.testing.assert_close(precond.diag, torch.tensor([1.0, 4.0], dtype=torch.float64))
    r = torch.tensor([[2.0, 4.0], [8.0, 4.0]], dtype=torch.float64)
    torch.testing.assert_close(precond.apply(r), torch.tensor([[2.0, 4.0], [2.0, 1.0]], dtype=torch.float64))


def test_build_preconditioner_choices(spd_dense):
    B = SymmetricSparseMatrix(lower_storage(spd_dense))
    assert isinstance(build_preconditioner(None, B), DiagonalPreconditioner)
    assert isinstance(build_preconditioner("jacobi", B), DiagonalPreconditioner)
    assert isinstance(build_preconditioner("identity", B), IdentityPreconditioner)

    ready = IdentityPreconditioner()
    assert build_preconditioner(ready, B) is ready

    built = build_preconditioner(lambda m: OperatorPreconditioner(m), B)
    assert isinstance(built, OperatorPreconditioner)

    with pytest.raises(ValueError):
        build_preconditioner("ilu", B)
    with pytest.raises(TypeError):
        build_preconditioner(3, B)


def test_conjugate_gradient_lifecycle(spd_dense, vector):
    cg = ConjugateGradient(tol=1e-12)
    assert cg.info is ComputationInfo.NOT_COMPUTED
    with pytest.raises(RuntimeError):
        cg.solve(vector(spd_dense.shape[0]))

    B = SymmetricSparseMatrix(lower_storage(spd_dense))
    assert cg.compute(B) is cg
    assert cg.info is ComputationInfo.SUCCESS
    assert cg.maxiter == 2 * spd_dense.shape[0]

    b = vector(spd_dense.shape[0])
    x = cg.solve(b)
    assert cg.info is ComputationInfo.SUCCESS
    assert 0 < cg.iterations <= cg.maxiter
    assert cg.error <= 1e-12
    torch.testing.assert_close(spd_dense @ x, b)


def test_conjugate_gradient_no_convergence_is_reported(laplacian_dense, vector):
    B = SymmetricSparseMatrix(lower_storage(laplacian_dense))
    cg = ConjugateGradient(maxiter=1).compute(B)
    cg.solve(vector(laplacian_dense.shape[0]))
    assert cg.info is ComputationInfo.NO_CONVERGENCE
    assert cg.iterations == 1


def test_conjugate_gradient_rejects_bad_arguments():
    with pytest.raises(ValueError):
        ConjugateGradient(tol=-1.0)
    with pytest.raises(ValueError):
        ConjugateGradient(maxiter=-1)
    with pytest.raises(ValueError):
        ConjugateGradient().compute(SymmetricSparseMatrix(torch.ones(2, 3)))


def test_cg_solve_warm_start_at_solution(spd_dense, vector):
    x_true = vector(spd_dense.shape[0])
    b = spd_dense @ x_true
    x, info = cg_solve(spd_dense, b, x0=x_true, tol=1e-10)
    assert info["converged"]
    assert info["iterations"] == 0
    assert torch.equal(x, x_true)
    assert x is not x_true


def test_conjugate_gradient_warm_start(spd_dense, vector):
    B = SymmetricSparseMatrix(lower_storage(spd_dense))
    cg = ConjugateGradient(tol=1e-10).compute(B)
    x_true = vector(spd_dense.shape[0])
    x = cg.solve(spd_dense @ x_true, x0=x_true)
    assert cg.iterations == 0
    assert cg.info is ComputationInfo.SUCCESS
    torch.testing.assert_close(x, x_true)


def test_conjugate_gradient_maxiter_before_compute(spd_dense):
    assert ConjugateGradient().maxiter is None
    assert ConjugateGradient(maxiter=7).maxiter == 7
    cg = ConjugateGradient().compute(SymmetricSparseMatrix(lower_storage(spd_dense)))
    assert cg.maxiter == 2 * spd_dense.shape[0]
