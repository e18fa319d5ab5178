"""
Analytical Slab Benchmarks
==========================

Discrete-ordinates solution of a 1D purely absorbing slab made of
piecewise-constant regions, vacuum on both faces, with an isotropic
source q_r in each region r.

Along ordinate mu > 0 (swept left to right from psi(x_0) = 0), inside a
region [a, b] with total cross section sigma:

    psi(x) = psi(a) e^{-sigma (x - a) / mu} + q / (N sigma) (1 - e^{-sigma (x - a) / mu})

and for sigma = 0:

    psi(x) = psi(a) + q (x - a) / (N mu)

with N = 2 the 1D angular normalization. mu < 0 is swept right to left
the same way. The scalar flux is phi(x) = sum_o w_o psi_o(x).

``benchmark_slab`` runs the meshless pipeline on this problem for a
sequence of point counts and reports errors and the observed order.
"""

import logging
import time

import numpy as np

from ..config import (IterationOptions, SweepOptions,
                      WeakSpatialDiscretizationOptions, WeightingMethod)
from ..discretization.angular import AngularDiscretization
from ..discretization.energy import EnergyDiscretization
from ..discretization.factory import WeakSpatialDiscretizationFactory
from ..discretization.transport import TransportDiscretization
from ..geometry.solid import BoxGeometry
from ..geometry.surfaces import BoundarySource
from ..materials.material import Material
from ..solvers.factory import SolverFactory
from ..solvers.iteration import SourceIteration

logger = logging.getLogger(__name__)

ANGULAR_NORMALIZATION_1D = 2.0


class PiecewiseAbsorberSlab:
    """
    Analytic discrete-ordinates flux in a piecewise absorbing slab.

    Parameters
    ----------
    interfaces : array_like, shape (nr + 1,)
        Increasing region boundaries; the slab is [interfaces[0], interfaces[-1]].
    sigma_t : array_like, shape (nr,)
    source : array_like, shape (nr,)
        Isotropic source (scalar-flux moment) per region.
    number_of_ordinates : int
        Gauss-Legendre ordinates; must match the transport solve.
    """

    def __init__(self, interfaces, sigma_t, source, number_of_ordinates=4):
        self.interfaces = np.asarray(interfaces, dtype=np.float64)
        self.sigma_t = np.asarray(sigma_t, dtype=np.float64)
        self.source = np.asarray(source, dtype=np.float64)
        nr = self.interfaces.size - 1
        if nr < 1 or np.any(np.diff(self.interfaces) <= 0):
            raise ValueError("interfaces must be increasing with at least two entries")
        if self.sigma_t.shape != (nr,) or self.source.shape != (nr,):
            raise ValueError(f"need {nr} values of sigma_t and source")
        if np.any(self.sigma_t < 0):
            raise ValueError("sigma_t must be non-negative")
        self.angular = AngularDiscretization.gauss_legendre(number_of_ordinates)

    @property
    def limits(self):
        return np.array([[self.interfaces[0], self.interfaces[-1]]])

    def region(self, x):
        """Region index of every position (interfaces belong to the right region)."""
        x = np.atleast_1d(np.asarray(x, dtype=np.float64))
        return np.clip(np.searchsorted(self.interfaces, x, side='right') - 1,
                       0, self.sigma_t.size - 1)

    def _segment(self, psi_in, sigma, q, length, mu):
        q = q / ANGULAR_NORMALIZATION_1D
        if sigma == 0:
            return psi_in + q * length / mu
        attenuation = np.exp(-sigma * length / mu)
        return psi_in * attenuation + q / sigma * (1.0 - attenuation)

    def angular_flux(self, x, o):
        """psi_o at every position in ``x``."""
        x = np.atleast_1d(np.asarray(x, dtype=np.float64))
        mu = self.angular.direction(o)[0]
        edges = self.interfaces
        nr = self.sigma_t.size
        result = np.empty_like(x)

        for k, position in enumerate(x):
            psi = 0.0
            if mu > 0:
                for r in range(nr):
                    start, end = edges[r], edges[r + 1]
                    stop = min(end, position)
                    psi = self._segment(psi, self.sigma_t[r], self.source[r],
                                        stop - start, mu)
                    if position <= end:
                        break
            else:
                for r in reversed(range(nr)):
                    start, end = edges[r + 1], edges[r]
                    stop = max(end, position)
                    psi = self._segment(psi, self.sigma_t[r], self.source[r],
                                        start - stop, -mu)
                    if position >= end:
                        break
            result[k] = psi
        return result

    def scalar_flux(self, x):
        """phi(x) = sum_o w_o psi_o(x)."""
        weights = self.angular.weights
        return sum(weights[o] * self.angular_flux(x, o)
                   for o in range(self.angular.number_of_ordinates))

    def material_function(self):
        """``position -> Material`` for the meshless factory."""
        def material(position):
            r = int(self.region(position[0])[0])
            return Material.from_groups(r, sigma_t=[self.sigma_t[r]],
                                        internal_source=[self.source[r]])
        return material


def solve_slab(slab, num_points, options=None, sweep_options=None,
               iteration_options=None, radius_num_intervals=3.0):
    """Meshless solution of a slab benchmark.

    Returns
    -------
    positions : ndarray, shape (n,)
    scalar_flux : ndarray, shape (n,)
        Zeroth moment at the weight centers.
    result : IterationResult
    """
    options = options or WeakSpatialDiscretizationOptions(
        weighting=WeightingMethod.WEIGHT)
    solid = BoxGeometry(slab.limits, BoundarySource.vacuum(1))
    factory = WeakSpatialDiscretizationFactory(solid, options)
    spatial = factory.get_simple_discretization(
        num_points, slab.material_function(),
        radius_num_intervals=radius_num_intervals)

    transport = TransportDiscretization(spatial, slab.angular,
                                        EnergyDiscretization(1))
    solvers = SolverFactory(transport, sweep_options)
    source_operator, flux_operator = solvers.get_source_operators()
    iteration = SourceIteration(transport,
                                iteration_options or IterationOptions(),
                                value_operator=solvers.get_value_operator())
    result = iteration.solve(source_operator, flux_operator)

    positions = spatial.positions()[:, 0]
    flux = result.scalar_flux(transport.number_of_moments, 1)[:, 0]
    return positions, flux, result


def benchmark_slab(point_counts=(11, 21, 41), interfaces=(0.0, 1.0, 2.0),
                   sigma_t=(1.0, 2.0), source=(1.0, 0.5), number_of_ordinates=4,
                   options=None, sweep_options=None, iteration_options=None):
    """
    Meshless errors against the analytic slab for a refinement sequence.

    Parameters
    ----------
    point_counts : sequence of int
    interfaces, sigma_t, source : array_like
        Slab description, see PiecewiseAbsorberSlab.
    number_of_ordinates : int
    options, sweep_options, iteration_options : option records or None

    Returns
    -------
    dict
        Dictionary containing:
            - cases: list of dicts with 'points', 'l2_error', 'max_error',
              'iterations', 'time'
            - order: observed convergence order of the L2 error
              (None for fewer than two cases)
    """
    slab = PiecewiseAbsorberSlab(interfaces, sigma_t, source,
                                 number_of_ordinates=number_of_ordinates)
    cases = []
    for n in point_counts:
        start = time.time()
        positions, flux, result = solve_slab(slab, n, options, sweep_options,
                                             iteration_options)
        exact = slab.scalar_flux(positions)
        l2_error = np.linalg.norm(flux - exact) / np.linalg.norm(exact)
        max_error = np.max(np.abs(flux - exact)) / np.max(np.abs(exact))
        cases.append({
            'points': int(n),
            'l2_error': float(l2_error),
            'max_error': float(max_error),
            'iterations': result.iterations,
            'time': time.time() - start,
        })
        logger.info("Slab benchmark, %d points: L2 error %.3e, max error %.3e",
                    n, l2_error, max_error)

    order = None
    if len(cases) > 1:
        spacing = np.log([1.0 / (c['points'] - 1) for c in cases])
        errors = np.log([c['l2_error'] for c in cases])
        order = float(np.polyfit(spacing, errors, 1)[0])
    return {'cases': cases, 'order': order}
