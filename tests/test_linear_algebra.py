"""
Tests for vector operators and the sparse linear-solve backends.
"""

import numpy as np
import pytest
import scipy.sparse as sp

from meshless.assembly.sparse_assembler import assemble_rows
from meshless.config import SolverType, SweepOptions
from meshless.exceptions import InvariantError
from meshless.operators.vector_operator import (Augmented, Identity, Scalar,
                                                VectorOperator)
from meshless.solvers.linear_solve import (DirectSolve, GMRESSolve,
                                           get_linear_solve)


class MatrixOperator(VectorOperator):
    def __init__(self, matrix):
        self.matrix = np.asarray(matrix, dtype=np.float64)
        self.row_size, self.column_size = self.matrix.shape

    def _apply(self, x):
        return self.matrix @ x


# =============================================================================
# Vector operators
# =============================================================================

class TestVectorOperator:

    def test_compose_applies_right_first(self):
        a = MatrixOperator([[1.0, 2.0]])
        b = MatrixOperator([[1.0], [3.0]])
        np.testing.assert_allclose((a * b).apply(np.array([2.0])), [14.0])

    def test_compose_size_mismatch(self):
        with pytest.raises(InvariantError):
            MatrixOperator(np.eye(2)) * MatrixOperator(np.eye(3))

    def test_sum_and_difference(self):
        a = MatrixOperator([[1.0, 0.0], [0.0, 2.0]])
        x = np.array([1.0, 1.0])
        np.testing.assert_allclose((a + Identity(2)).apply(x), [2.0, 3.0])
        np.testing.assert_allclose((a - Identity(2)).apply(x), [0.0, 1.0])
        np.testing.assert_allclose((-a).apply(x), [-1.0, -2.0])

    def test_sum_shape_mismatch(self):
        with pytest.raises(InvariantError):
            Identity(2) + Identity(3)

    def test_scaling(self):
        x = np.array([1.0, -2.0])
        np.testing.assert_allclose((3 * Identity(2)).apply(x), [3.0, -6.0])
        np.testing.assert_allclose((Identity(2) * 0.5).apply(x), [0.5, -1.0])
        np.testing.assert_allclose(Scalar(2, 4.0).apply(x), [4.0, -8.0])

    def test_wrong_input_shape(self):
        with pytest.raises(InvariantError):
            Identity(3).apply(np.ones(2))

    def test_sum_does_not_share_input(self):
        class Doubling(VectorOperator):
            row_size = column_size = 2

            def _apply(self, x):
                x *= 2.0
                return x

        x = np.array([1.0, 1.0])
        np.testing.assert_allclose((Doubling() + Doubling()).apply(x), [4.0, 4.0])

    def test_augmented_passes_augments(self):
        op = Augmented(2, Scalar(3, 2.0))
        x = np.array([1.0, 2.0, 3.0, 7.0, 8.0])
        np.testing.assert_allclose(op.apply(x), [2.0, 4.0, 6.0, 7.0, 8.0])

    def test_augmented_zero_augments(self):
        op = Augmented(2, Scalar(3, 2.0), zero_augments=True)
        x = np.array([1.0, 2.0, 3.0, 7.0, 8.0])
        np.testing.assert_allclose(op.apply(x), [2.0, 4.0, 6.0, 0.0, 0.0])

    def test_linear_operator_wrapper(self):
        a = MatrixOperator([[2.0, 1.0], [0.0, 1.0]])
        wrapped = a.as_linear_operator()
        np.testing.assert_allclose(wrapped.matvec(np.array([1.0, 1.0])), [3.0, 1.0])


# =============================================================================
# Linear solves
# =============================================================================

@pytest.fixture
def diagonally_dominant():
    rng = np.random.default_rng(11)
    n = 30
    matrix = sp.random(n, n, density=0.15, random_state=12, format='csr')
    matrix = matrix + sp.diags(np.abs(matrix).sum(axis=1).A1 + 1.0)
    rhs = rng.normal(size=n)
    return matrix, rhs


class TestLinearSolve:

    @pytest.mark.parametrize("solver", list(SolverType))
    def test_backends_agree(self, solver, diagonally_dominant):
        matrix, rhs = diagonally_dominant
        backend = get_linear_solve(SweepOptions(solver=solver, tolerance=1e-12))
        backend.assemble(matrix)
        lhs, info = backend.solve(rhs)
        assert info == 0
        np.testing.assert_allclose(matrix @ lhs, rhs, rtol=1e-8, atol=1e-10)
        assert backend.residual(lhs, rhs) < 1e-8

    def test_factorization_reused(self, diagonally_dominant):
        matrix, rhs = diagonally_dominant
        backend = DirectSolve(SweepOptions())
        backend.assemble(matrix)
        lu = backend.lu
        backend.solve(rhs)
        backend.solve(2.0 * rhs)
        assert backend.lu is lu

    def test_gmres_zero_rhs(self, diagonally_dominant):
        matrix, _ = diagonally_dominant
        backend = GMRESSolve(SweepOptions(solver=SolverType.GMRES))
        backend.assemble(matrix)
        lhs, info = backend.solve(np.zeros(matrix.shape[0]))
        assert info == 0
        assert not np.any(lhs)

    def test_gmres_iteration_cap(self, diagonally_dominant):
        matrix, rhs = diagonally_dominant
        options = SweepOptions(solver=SolverType.GMRES, kspace=1,
                               max_restarts=1, tolerance=1e-14)
        backend = get_linear_solve(options)
        backend.assemble(matrix)
        _, info = backend.solve(rhs)
        assert info > 0


class TestSparseAssembler:

    def test_rows_assembled(self):
        rows = {0: ([0, 2], [1.0, 2.0]), 1: ([1], [3.0]), 2: ([0, 2], [4.0, 5.0])}
        matrix = assemble_rows(3, 3, lambda i: rows[i])
        np.testing.assert_allclose(matrix.toarray(),
                                   [[1.0, 0.0, 2.0], [0.0, 3.0, 0.0],
                                    [4.0, 0.0, 5.0]])

    def test_column_outside_range(self):
        with pytest.raises(InvariantError):
            assemble_rows(2, 2, lambda i: ([0, 2], [1.0, 1.0]))

    def test_mismatched_row(self):
        with pytest.raises(InvariantError):
            assemble_rows(1, 2, lambda i: ([0, 1], [1.0]))
