"""
Background integration mesh.

The mesh only carries quadrature; it is independent of where the meshless
points sit. The box ``limits`` is split into ``dimensional_cells[d]``
equal intervals per dimension. Each cell holds a tensor Gauss-Legendre
rule and the indices of the weight and basis functions whose support
intersects the cell. Each boundary face of the box is split the same way
in its tangential dimensions.

Overlap test (sphere against box):

    distance(center, box) < radius

with the distance computed from the clamped center. Global functions
(infinite radius) overlap every cell.

Conventions:
    - Cell numbering: row-major over dimensions (last fastest)
    - Surface cell ``surface_index`` is the global CartesianPlane index
"""

import itertools
from dataclasses import dataclass, field
from typing import List

import numpy as np

from ..elements.quadrature import cartesian_quadrature, surface_quadrature


def box_distance(centers, lower, upper):
    """Distance from each center to the box [lower, upper]."""
    centers = np.atleast_2d(centers)
    clamped = np.clip(centers, lower, upper)
    return np.sqrt(np.sum((centers - clamped) ** 2, axis=1))


@dataclass
class Cell:
    """
    Volume integration cell.

    Attributes
    ----------
    index : int
    lower, upper : ndarray, shape (dim,)
        Cell bounds.
    points : ndarray, shape (nq, dim)
        Quadrature points.
    weights : ndarray, shape (nq,)
        Quadrature weights (include the cell Jacobian).
    weight_indices : list of int
        Weight functions nonzero somewhere in the cell.
    basis_indices : list of int
        Basis functions nonzero somewhere in the cell.
    """
    index: int
    lower: np.ndarray
    upper: np.ndarray
    points: np.ndarray
    weights: np.ndarray
    weight_indices: List[int] = field(default_factory=list)
    basis_indices: List[int] = field(default_factory=list)


@dataclass
class Surface:
    """
    Boundary integration cell on one face of the box.

    Attributes
    ----------
    index : int
    surface_index : int
        Global index of the CartesianPlane the cell lies on.
    points, weights, weight_indices, basis_indices
        As for Cell.
    """
    index: int
    surface_index: int
    lower: np.ndarray
    upper: np.ndarray
    points: np.ndarray
    weights: np.ndarray
    weight_indices: List[int] = field(default_factory=list)
    basis_indices: List[int] = field(default_factory=list)


class IntegrationMesh:
    """
    Tensor-product integration mesh over a box.

    Parameters
    ----------
    limits : array_like, shape (dim, 2)
    dimensional_cells : sequence of int, length dim
    integration_ordinates : int
        Gauss-Legendre points per dimension per cell.
    weight_functions : sequence
        Objects with ``position`` and ``radius``.
    basis_functions : sequence
        Objects with ``position`` and ``radius``.
    boundary_surfaces : sequence of CartesianPlane
    """

    def __init__(self, limits, dimensional_cells, integration_ordinates,
                 weight_functions, basis_functions, boundary_surfaces):
        self.limits = np.atleast_2d(np.asarray(limits, dtype=np.float64))
        self.dimension = self.limits.shape[0]
        self.dimensional_cells = np.asarray(dimensional_cells, dtype=np.int64)
        if self.dimensional_cells.shape != (self.dimension,):
            raise ValueError(
                f"dimensional_cells must have {self.dimension} entries, "
                f"got {self.dimensional_cells.tolist()}"
            )
        if np.any(self.dimensional_cells < 1):
            raise ValueError(
                f"dimensional_cells must be positive, "
                f"got {self.dimensional_cells.tolist()}"
            )
        self.integration_ordinates = integration_ordinates

        self._weight_centers = np.array([w.position for w in weight_functions])
        self._weight_radii = np.array([w.radius for w in weight_functions])
        self._basis_centers = np.array([b.position for b in basis_functions])
        self._basis_radii = np.array([b.radius for b in basis_functions])
        self.number_of_weight_functions = len(weight_functions)

        self.edges = [np.linspace(lo, hi, n + 1)
                      for (lo, hi), n in zip(self.limits, self.dimensional_cells)]

        self.cells = self._build_cells()
        self.surfaces = self._build_surfaces(boundary_surfaces)
        self._weight_cells = self._invert([c.weight_indices for c in self.cells])
        self._weight_surfaces = self._invert(
            [s.weight_indices for s in self.surfaces])

    @property
    def number_of_cells(self):
        return len(self.cells)

    @property
    def number_of_surfaces(self):
        return len(self.surfaces)

    def _overlaps(self, lower, upper):
        weights = np.flatnonzero(
            box_distance(self._weight_centers, lower, upper) < self._weight_radii)
        bases = np.flatnonzero(
            box_distance(self._basis_centers, lower, upper) < self._basis_radii)
        return weights.tolist(), bases.tolist()

    def _build_cells(self):
        cells = []
        ranges = [range(n) for n in self.dimensional_cells]
        for index, ijk in enumerate(itertools.product(*ranges)):
            lower = np.array([self.edges[d][i] for d, i in enumerate(ijk)])
            upper = np.array([self.edges[d][i + 1] for d, i in enumerate(ijk)])
            points, weights = cartesian_quadrature(
                self.integration_ordinates, np.stack([lower, upper], axis=1))
            weight_indices, basis_indices = self._overlaps(lower, upper)
            cells.append(Cell(index=index, lower=lower, upper=upper,
                              points=points, weights=weights,
                              weight_indices=weight_indices,
                              basis_indices=basis_indices))
        return cells

    def _build_surfaces(self, boundary_surfaces):
        surfaces = []
        for plane in boundary_surfaces:
            sd = plane.surface_dimension
            tangential = [d for d in range(self.dimension) if d != sd]
            ranges = [range(self.dimensional_cells[d]) for d in tangential]
            for ij in itertools.product(*ranges):
                lower = np.empty(self.dimension)
                upper = np.empty(self.dimension)
                lower[sd] = upper[sd] = plane.position
                for d, i in zip(tangential, ij):
                    lower[d] = self.edges[d][i]
                    upper[d] = self.edges[d][i + 1]
                points, weights = surface_quadrature(
                    self.integration_ordinates, np.stack([lower, upper], axis=1),
                    sd, plane.position)
                weight_indices, basis_indices = self._overlaps(lower, upper)
                surfaces.append(Surface(index=len(surfaces),
                                        surface_index=plane.index,
                                        lower=lower, upper=upper,
                                        points=points, weights=weights,
                                        weight_indices=weight_indices,
                                        basis_indices=basis_indices))
        return surfaces

    def _invert(self, overlap_lists):
        inverse = [[] for _ in range(self.number_of_weight_functions)]
        for k, indices in enumerate(overlap_lists):
            for i in indices:
                inverse[i].append(k)
        return inverse

    def weight_cells(self, i):
        """Cells on which weight function ``i`` may be nonzero."""
        return [self.cells[k] for k in self._weight_cells[i]]

    def weight_surfaces(self, i):
        """Surface cells on which weight function ``i`` may be nonzero."""
        return [self.surfaces[k] for k in self._weight_surfaces[i]]

    def total_volume(self):
        return float(np.prod(self.limits[:, 1] - self.limits[:, 0]))
