"""
Sparse linear-solve backends for the per-(ordinate, group) systems.

Every backend separates assembly from solving so that a factorization or
preconditioner built once is reused by every later sweep:

    solver = get_linear_solve(options)
    solver.assemble(matrix)          # factorize / precondition once
    x, info = solver.solve(rhs)      # many times

Backends:
    DIRECT      SuperLU factorization (scipy.sparse.linalg.splu)
    GMRES       restarted GMRES, no preconditioner
    GMRES_ILUT  GMRES with a threshold incomplete LU (spilu, drop_tol)
    GMRES_ILU   GMRES with a fill-limited incomplete LU (spilu, no drop)

``info`` follows scipy: 0 converged, > 0 iteration cap reached,
< 0 breakdown or illegal input.
"""

import logging

import numpy as np
from scipy.sparse import csc_matrix
from scipy.sparse.linalg import LinearOperator, gmres, onenormest, spilu, splu

from ..config import ILL_CONDITIONED_ESTIMATE, ILUT_FILL_FACTOR, SolverType

logger = logging.getLogger(__name__)


class LinearSolve:
    """Base class: holds the assembled matrix."""

    def __init__(self, options):
        self.options = options
        self.matrix = None

    @property
    def assembled(self):
        return self.matrix is not None

    def assemble(self, matrix):
        self.matrix = csc_matrix(matrix)
        self.precondition()

    def precondition(self):
        """Build factorization or preconditioner data for ``self.matrix``."""

    def solve(self, rhs):
        raise NotImplementedError

    def residual(self, lhs, rhs):
        norm = np.linalg.norm(rhs)
        r = np.linalg.norm(rhs - self.matrix @ lhs)
        return r / norm if norm > 0 else r


class DirectSolve(LinearSolve):
    """Sparse LU factorization reused for every right-hand side."""

    def precondition(self):
        self.lu = splu(self.matrix)

    def solve(self, rhs):
        return self.lu.solve(rhs), 0


class GMRESSolve(LinearSolve):
    """Restarted GMRES, optionally with a preconditioner ``self.M``."""

    def precondition(self):
        self.M = None

    def solve(self, rhs):
        options = self.options
        if not np.any(rhs):
            return np.zeros_like(rhs), 0
        lhs, info = gmres(self.matrix, rhs, rtol=options.tolerance, atol=0.0,
                          restart=options.kspace,
                          maxiter=options.restart_cycles, M=self.M)
        return lhs, info


class ILUTSolve(GMRESSolve):
    """GMRES with a threshold ILU preconditioner."""

    def precondition(self):
        self.ilu = spilu(self.matrix, drop_tol=self.options.drop_tolerance,
                         fill_factor=ILUT_FILL_FACTOR)
        self.M = LinearOperator(self.matrix.shape, matvec=self.ilu.solve)

        inverse = LinearOperator(self.matrix.shape, matvec=self.ilu.solve,
                                 rmatvec=lambda v: self.ilu.solve(v, trans='T'))
        estimate = onenormest(self.matrix) * onenormest(inverse)
        if estimate > ILL_CONDITIONED_ESTIMATE:
            logger.warning("ILUT preconditioner condition estimate %.3e "
                           "exceeds %.1e", estimate, ILL_CONDITIONED_ESTIMATE)


class ILUSolve(GMRESSolve):
    """GMRES with an ILU preconditioner limited by level of fill."""

    def precondition(self):
        fill_factor = max(1.0, 1.0 + self.options.level_of_fill)
        self.ilu = spilu(self.matrix, drop_tol=0.0, fill_factor=fill_factor)
        self.M = LinearOperator(self.matrix.shape, matvec=self.ilu.solve)


LINEAR_SOLVES = {
    SolverType.DIRECT: DirectSolve,
    SolverType.GMRES: GMRESSolve,
    SolverType.GMRES_ILUT: ILUTSolve,
    SolverType.GMRES_ILU: ILUSolve,
}


def get_linear_solve(options):
    """Construct the backend named by ``options.solver``."""
    try:
        return LINEAR_SOLVES[options.solver](options)
    except KeyError:
        raise ValueError(f"unknown solver type {options.solver!r}") from None
