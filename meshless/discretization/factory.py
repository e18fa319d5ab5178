"""
Factory for meshless weak spatial discretizations.

Builds, from a box geometry and a point set:

    1. RBF kernels centered at every point, support radius r_i
    2. basis functions: the kernels themselves (RBF) or linear MLS
       functions built on them
    3. weight functions: the basis functions (Galerkin) or separate RBFs
    4. neighbor lists via a KD-tree, with the overlap test
           |x_i - x_j| < r_i + r_j
    5. boundary surfaces within each support
    6. the integration mesh and one global integration pass

For ``get_simple_discretization`` the points are a Cartesian grid with
``num_dimensional_points`` per dimension, spacing h, and the support radius
is ``h * radius_num_intervals``. The integration mesh then defaults to
``2 * (num_dimensional_points - 1)`` cells per dimension.
"""

import itertools
import logging

import numpy as np
from scipy.spatial import cKDTree

from ..assembly.weight_function_integration import WeightFunctionIntegration
from ..config import (BasisType, DEFAULT_RADIUS_NUM_INTERVALS, Discretization,
                      IdenticalBasisFunctions)
from ..exceptions import ConfigurationError
from ..functions.meshless_function import LinearMLSFunction, RBFFunction
from ..functions.rbf import WendlandRBF
from ..mesh.integration_mesh import IntegrationMesh
from .points import BasisFunction, WeightFunction
from .spatial import WeakSpatialDiscretization

logger = logging.getLogger(__name__)


def cartesian_points(limits, num_dimensional_points):
    """Regular grid including the box faces.

    Returns
    -------
    points : ndarray, shape (prod(num_dimensional_points), dim)
    intervals : ndarray, shape (dim,)
    """
    limits = np.atleast_2d(np.asarray(limits, dtype=np.float64))
    counts = np.broadcast_to(np.asarray(num_dimensional_points, dtype=np.int64),
                             (limits.shape[0],))
    if np.any(counts < 2):
        raise ValueError(f"need at least 2 points per dimension, got {counts.tolist()}")
    axes = [np.linspace(lo, hi, n) for (lo, hi), n in zip(limits, counts)]
    points = np.array(list(itertools.product(*axes)))
    intervals = (limits[:, 1] - limits[:, 0]) / (counts - 1)
    return points, intervals


def find_neighbors(positions, radii_a, radii_b):
    """Indices j with |x_i - x_j| < radii_a[i] + radii_b[j], sorted, per i."""
    n = len(positions)
    if not np.all(np.isfinite(radii_a)) or not np.all(np.isfinite(radii_b)):
        return [list(range(n)) for _ in range(n)]

    tree = cKDTree(positions)
    max_b = np.max(radii_b)
    neighbors = []
    for i in range(n):
        candidates = tree.query_ball_point(positions[i], radii_a[i] + max_b)
        candidates = np.array(sorted(candidates), dtype=np.int64)
        distance = np.linalg.norm(positions[candidates] - positions[i], axis=1)
        keep = distance < radii_a[i] + radii_b[candidates]
        neighbors.append(candidates[keep].tolist())
    return neighbors


def _shape_for_radius(rbf, radius):
    # Global kernels use the radius as their length scale
    if rbf.is_local:
        return rbf.radius / radius
    return 1.0 / radius


class WeakSpatialDiscretizationFactory:
    """
    Parameters
    ----------
    solid : BoxGeometry
    options : WeakSpatialDiscretizationOptions
    """

    def __init__(self, solid, options):
        self.solid = solid
        self.options = options

    def get_simple_discretization(self, num_dimensional_points, material_function,
                                  radius_num_intervals=DEFAULT_RADIUS_NUM_INTERVALS,
                                  basis_type=BasisType.MLS, rbf=None,
                                  weight_rbf=None):
        """Discretization on a regular Cartesian grid of points.

        Parameters
        ----------
        num_dimensional_points : int or sequence of int
            Points per dimension, including both faces.
        material_function : callable
            ``material_function(position) -> Material``.
        radius_num_intervals : float
            Support radius in units of the largest grid spacing.
        basis_type : BasisType
        rbf : RBF or None
            Kernel of the basis functions (Wendland by default).
        weight_rbf : RBF or None
            Kernel of separate weight functions; None means Galerkin
            weighting unless the options force separate weights.

        Returns
        -------
        spatial : WeakSpatialDiscretization
        """
        points, intervals = cartesian_points(self.solid.limits,
                                             num_dimensional_points)
        radius = np.max(intervals) * radius_num_intervals
        counts = np.broadcast_to(np.asarray(num_dimensional_points),
                                 (self.solid.dimension,))
        dimensional_cells = [2 * (int(n) - 1) for n in counts]
        return self.get_discretization(points, radius, material_function,
                                       basis_type=basis_type, rbf=rbf,
                                       weight_rbf=weight_rbf,
                                       dimensional_cells=dimensional_cells)

    def get_discretization(self, positions, radius, material_function,
                           basis_type=BasisType.MLS, rbf=None, weight_rbf=None,
                           weight_radius=None, dimensional_cells=None):
        """Discretization on an arbitrary point set.

        Parameters
        ----------
        positions : ndarray, shape (n, dim)
        radius : float or ndarray, shape (n,)
            Basis support radius per point.
        material_function : callable
        basis_type : BasisType
        rbf, weight_rbf : RBF or None
        weight_radius : float, ndarray or None
            Weight support radius; defaults to ``radius``.
        dimensional_cells : sequence of int or None
            Integration cells per dimension when the options leave it open.

        Returns
        -------
        spatial : WeakSpatialDiscretization
        """
        options = self.options
        options.validate()

        positions = np.atleast_2d(np.asarray(positions, dtype=np.float64))
        n, dimension = positions.shape
        if dimension != self.solid.dimension:
            raise ConfigurationError(
                f"points are {dimension}D but the geometry is "
                f"{self.solid.dimension}D"
            )
        if not np.all(self.solid.inside(positions, tolerance=1e-12)):
            raise ConfigurationError("every point must lie inside the geometry")

        rbf = WendlandRBF() if rbf is None else rbf
        basis_radii = np.broadcast_to(np.asarray(radius, dtype=np.float64), (n,))
        weight_radii = (basis_radii if weight_radius is None else
                        np.broadcast_to(np.asarray(weight_radius, dtype=np.float64),
                                        (n,)))
        identical = self._identical(weight_rbf, weight_radius)

        # --- Kernels and basis functions ---
        kernels = [RBFFunction(i, _shape_for_radius(rbf, basis_radii[i]),
                               positions[i], rbf) for i in range(n)]
        kernel_radii = np.array([k.radius for k in kernels])
        materials = [material_function(x) for x in positions]

        if basis_type == BasisType.MLS:
            kernel_neighbors = find_neighbors(positions, kernel_radii, kernel_radii)
            functions = [LinearMLSFunction(
                [kernels[i]] + [kernels[k] for k in kernel_neighbors[i] if k != i])
                for i in range(n)]
        else:
            functions = kernels
        function_radii = np.array([f.radius for f in functions])

        bases = [BasisFunction(
            index=j,
            function=functions[j],
            boundary_surfaces=self.solid.surfaces_within(positions[j],
                                                         function_radii[j]),
            material=materials[j]) for j in range(n)]

        # --- Weight functions ---
        if identical:
            weight_functions = functions
        else:
            wrbf = rbf if weight_rbf is None else weight_rbf
            weight_functions = [RBFFunction(i, _shape_for_radius(wrbf, weight_radii[i]),
                                            positions[i], wrbf) for i in range(n)]
        weight_function_radii = np.array([f.radius for f in weight_functions])
        stencils = find_neighbors(positions, weight_function_radii, function_radii)

        weight_options = options.weight_options()
        weights = [WeightFunction(
            index=i,
            options=weight_options,
            function=weight_functions[i],
            basis_functions=[bases[j] for j in stencils[i]],
            boundary_surfaces=self.solid.surfaces_within(
                positions[i], weight_function_radii[i]),
            material=materials[i]) for i in range(n)]

        # --- Integration mesh ---
        limits = self.solid.limits if options.limits is None else options.limits
        if options.dimensional_cells is not None:
            dimensional_cells = options.dimensional_cells
        elif dimensional_cells is None:
            per_dimension = max(2, int(round(n ** (1.0 / dimension))))
            dimensional_cells = [2 * (per_dimension - 1)] * dimension

        mesh = None
        if options.discretization == Discretization.WEAK:
            mesh = IntegrationMesh(limits, dimensional_cells,
                                   options.integration_ordinates,
                                   weights, bases, self.solid.surfaces)
        spatial = WeakSpatialDiscretization(bases, weights, options, self.solid,
                                            integration_mesh=mesh)
        logger.info("Built %dD meshless discretization: %d points, %d boundary "
                    "bases, mean stencil %.1f", dimension, n,
                    spatial.number_of_boundary_points,
                    np.mean([len(s) for s in stencils]))

        if mesh is not None:
            integration = WeightFunctionIntegration(weights, bases, mesh,
                                                    num_threads=options.num_threads)
            integration.perform_integration()
        return spatial

    def _identical(self, weight_rbf, weight_radius):
        setting = self.options.identical_basis_functions
        if setting == IdenticalBasisFunctions.TRUE:
            if weight_rbf is not None or weight_radius is not None:
                raise ConfigurationError(
                    "identical basis functions requested with a separate "
                    "weight kernel or radius"
                )
            return True
        if setting == IdenticalBasisFunctions.FALSE:
            return False
        return weight_rbf is None and weight_radius is None
