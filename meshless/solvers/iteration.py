"""
Outer Iteration Drivers
=======================

Fixed-source problems solve

    phi = b + K phi,     b = source(0),  K = flux operator

either by Richardson (source) iteration or by restarted GMRES on
(I - K) phi = b.

The k-eigenvalue problem

    (I - K_s) phi = (1/k) F phi

is solved by power iteration with a GMRES inner solve for each fission
source, updating

    k_new = k * sum(F phi_new) / sum(F phi_old)

All vectors carry the reflected-boundary augments after the moments;
results report them separately.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from scipy.sparse.linalg import LinearOperator, gmres

from ..config import IterationOptions
from ..exceptions import ConvergenceError

logger = logging.getLogger(__name__)


# =====================================================================
# Result data classes
# =====================================================================
@dataclass
class IterationResult:
    """Outcome of a fixed-source solve.

    Attributes
    ----------
    phi : np.ndarray
        Moment coefficients, layout ``g + ng * (m + nm * i)``.
    augments : np.ndarray
        Boundary-basis angular fluxes (empty without reflection).
    iterations : int
    converged : bool
    residual_history : list of float
        Relative change (source iteration) or residual norm (Krylov).
    values : np.ndarray or None
        Moments evaluated at the weight centers.
    total_time : float
        Wall-clock seconds.
    """
    phi: np.ndarray = field(repr=False)
    augments: np.ndarray = field(repr=False)
    iterations: int
    converged: bool
    residual_history: List[float] = field(default_factory=list, repr=False)
    values: Optional[np.ndarray] = field(default=None, repr=False)
    total_time: float = 0.0

    def scalar_flux(self, number_of_moments, number_of_groups, use_values=True):
        """Zeroth moment per (point, group)."""
        data = self.values if (use_values and self.values is not None) else self.phi
        return data.reshape(-1, number_of_moments, number_of_groups)[:, 0, :]

    def summary(self) -> str:
        lines = [
            "",
            "=" * 70,
            "  Fixed-Source Transport Solution",
            "=" * 70,
            f"  Iterations      = {self.iterations}",
            f"  Converged       = {'Yes' if self.converged else 'No'}",
            f"  Final residual  = {self.residual_history[-1] if self.residual_history else 0.0:.3e}",
            f"  Wall time       = {self.total_time:.2f} s",
            "=" * 70,
        ]
        return "\n".join(lines)


@dataclass
class EigenvalueResult(IterationResult):
    """Outcome of a k-eigenvalue solve.

    Attributes
    ----------
    keff : float
    keff_history : list of float
        k after every power iteration.
    """
    keff: float = 1.0
    keff_history: List[float] = field(default_factory=list)

    def summary(self) -> str:
        lines = [
            "",
            "=" * 70,
            "  k-Eigenvalue Transport Solution",
            "=" * 70,
            f"  k_eff           = {self.keff:.6f}",
            f"  Reactivity      = {(self.keff - 1.0) / self.keff * 1e5:.0f} pcm",
            f"  Iterations      = {self.iterations}",
            f"  Converged       = {'Yes' if self.converged else 'No'}",
            f"  Wall time       = {self.total_time:.2f} s",
            "=" * 70,
        ]
        return "\n".join(lines)


# =====================================================================
# Drivers
# =====================================================================
class _Driver:
    """Shared result packaging and divergence handling."""

    def __init__(self, transport, options=None, value_operator=None):
        self.transport = transport
        self.options = options or IterationOptions()
        self.value_operator = value_operator

    def _split(self, x):
        n = self.transport.phi_size
        return x[:n].copy(), x[n:].copy()

    def _values(self, phi):
        if self.value_operator is None:
            return None
        return self.value_operator.apply(phi.copy())

    def _not_converged(self, name, iterations, residual):
        message = (f"{name} did not converge in {iterations} iterations "
                   f"(residual {residual:.3e})")
        if self.options.quit_if_diverged:
            raise ConvergenceError(message, iterations=iterations,
                                   residual=residual)
        logger.warning(message)


class SourceIteration(_Driver):
    """Richardson iteration phi <- b + K phi.

    Parameters
    ----------
    transport : TransportDiscretization
    options : IterationOptions or None
    value_operator : VectorOperator or None
        Applied to the converged moments to give point values.
    """

    def solve(self, source_operator, flux_operator, initial=None):
        start = time.time()
        size = flux_operator.column_size
        b = source_operator.apply(np.zeros(size))
        phi = np.zeros(size) if initial is None else np.array(initial, dtype=np.float64)

        history = []
        converged = False
        iterations = 0
        for iterations in range(1, self.options.max_iterations + 1):
            phi_new = b + flux_operator.apply(phi.copy())
            norm = np.linalg.norm(phi_new)
            change = np.linalg.norm(phi_new - phi) / norm if norm > 0 else 0.0
            history.append(change)
            phi = phi_new
            logger.debug("Source iteration %d: relative change %.3e",
                         iterations, change)
            if change < self.options.tolerance:
                converged = True
                break

        if not converged:
            self._not_converged("Source iteration", iterations, history[-1])
        logger.info("Source iteration finished after %d iterations "
                    "(change %.3e)", iterations, history[-1] if history else 0.0)

        moments, augments = self._split(phi)
        return IterationResult(phi=moments, augments=augments,
                               iterations=iterations, converged=converged,
                               residual_history=history,
                               values=self._values(moments),
                               total_time=time.time() - start)


class KrylovSteadyState(_Driver):
    """Restarted GMRES on (I - K) phi = b."""

    def solve(self, source_operator, flux_operator, initial=None):
        start = time.time()
        size = flux_operator.column_size
        b = source_operator.apply(np.zeros(size))

        def matvec(v):
            v = np.array(v, dtype=np.float64).ravel()
            return v - flux_operator.apply(v.copy())

        operator = LinearOperator((size, size), matvec=matvec, dtype=np.float64)
        history = []
        x0 = None if initial is None else np.array(initial, dtype=np.float64)

        if not np.any(b) and x0 is None:
            phi, info = np.zeros(size), 0
        else:
            kspace = min(self.options.kspace, size)
            phi, info = gmres(operator, b, x0=x0, rtol=self.options.tolerance,
                              atol=0.0, restart=kspace,
                              maxiter=max(1, self.options.max_iterations // kspace),
                              callback=history.append, callback_type='pr_norm')
        converged = info == 0
        residual = history[-1] if history else 0.0
        if not converged:
            self._not_converged("GMRES steady state", len(history), residual)
        logger.info("GMRES steady state finished after %d iterations "
                    "(residual %.3e)", len(history), residual)

        moments, augments = self._split(phi)
        return IterationResult(phi=moments, augments=augments,
                               iterations=len(history), converged=converged,
                               residual_history=history,
                               values=self._values(moments),
                               total_time=time.time() - start)


class KrylovEigenvalue(_Driver):
    """Power iteration on k with GMRES inner solves."""

    def initial_guess(self, size):
        """Isotropic unit flux with zero augments."""
        t = self.transport
        phi = np.zeros(size)
        points = np.arange(t.number_of_points)
        for g in range(t.number_of_groups):
            phi[g + t.number_of_groups * t.number_of_moments * points] = 1.0
        return phi

    def solve(self, flux_operator, fission_operator, initial=None, keff=1.0):
        start = time.time()
        size = flux_operator.column_size
        n = self.transport.phi_size
        phi = self.initial_guess(size) if initial is None \
            else np.array(initial, dtype=np.float64)

        def matvec(v):
            v = np.array(v, dtype=np.float64).ravel()
            return v - flux_operator.apply(v.copy())

        operator = LinearOperator((size, size), matvec=matvec, dtype=np.float64)
        kspace = min(self.options.kspace, size)

        fission = fission_operator.apply(phi.copy())
        fission_sum = np.sum(fission[:n])
        if fission_sum == 0:
            raise ConvergenceError("fission source vanishes for the initial flux")

        k_history = []
        history = []
        converged = False
        iterations = 0
        for iterations in range(1, self.options.max_iterations + 1):
            phi_new, info = gmres(operator, fission / keff, x0=phi,
                                  rtol=self.options.tolerance, atol=0.0,
                                  restart=kspace,
                                  maxiter=max(1, self.options.max_iterations // kspace))
            if info != 0:
                logger.warning("Inner GMRES solve returned info=%d at power "
                               "iteration %d", info, iterations)

            fission_new = fission_operator.apply(phi_new.copy())
            fission_new_sum = np.sum(fission_new[:n])
            k_new = keff * fission_new_sum / fission_sum

            # Normalize so the next fission source has unit total
            scale = 1.0 / fission_new_sum
            phi_new *= scale
            fission_new *= scale
            phi_norm = np.linalg.norm(phi_new)
            change = (np.linalg.norm(phi_new - phi / np.sum(fission[:n]))
                      / phi_norm if phi_norm > 0 else 0.0)
            k_error = abs(k_new - keff)

            history.append(change)
            k_history.append(k_new)
            logger.debug("Power iteration %d: k = %.8f, dk = %.3e, dphi = %.3e",
                         iterations, k_new, k_error, change)

            phi = phi_new
            fission = fission_new
            fission_sum = 1.0
            keff = k_new
            if k_error < self.options.tolerance and change < self.options.tolerance:
                converged = True
                break

        if not converged:
            self._not_converged("Power iteration", iterations, history[-1])
        logger.info("Power iteration finished after %d iterations: k = %.6f",
                    iterations, keff)

        moments, augments = self._split(phi)
        return EigenvalueResult(phi=moments, augments=augments,
                                iterations=iterations, converged=converged,
                                residual_history=history,
                                values=self._values(moments),
                                total_time=time.time() - start,
                                keff=keff, keff_history=k_history)
