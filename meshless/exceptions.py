"""
Exception hierarchy for the meshless transport package.

Three failure classes are distinguished:

    ConfigurationError
        An unsupported or inconsistent combination of options. Raised at
        setup time, before any integration or sweep work begins.
    InvariantError
        An internal-consistency violation (mismatched table sizes, a stencil
        that references an unknown basis index, a weight function integrated
        twice). Always fatal.
    ConvergenceError
        An inner linear solve or an outer iteration that did not converge
        while ``quit_if_diverged`` is set.
"""


class MeshlessError(Exception):
    """Base class for all errors raised by the package."""


class ConfigurationError(MeshlessError, ValueError):
    """Unsupported or inconsistent option combination."""


class InvariantError(MeshlessError, RuntimeError):
    """Internal-consistency violation detected during integration or sweep."""


class ConvergenceError(MeshlessError, RuntimeError):
    """Iterative solve failed to reach its tolerance.

    Parameters
    ----------
    message : str
        Description of the failure.
    ordinate, group : int or None
        Identifying indices of the failed (ordinate, group) system, if any.
    iterations : int or None
        Iterations performed before giving up.
    residual : float or None
        Last residual reported by the solver.
    """

    def __init__(self, message, ordinate=None, group=None,
                 iterations=None, residual=None):
        super().__init__(message)
        self.ordinate = ordinate
        self.group = group
        self.iterations = iterations
        self.residual = residual
