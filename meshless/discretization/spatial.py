"""
Spatial discretizations.

WeakSpatialDiscretization is the arena owning every basis and weight
function of a meshless discretization; everything else refers to them by
dense index. Weight function i and basis function i share a center.

SimpleSpatialDiscretization is a bare list of physical points, enough for
operators that act pointwise (scattering, fission) on moment vectors.
"""

import numpy as np

from ..config import CrossSectionDependency
from ..exceptions import InvariantError
from .points import PointType


class SimpleSpatialDiscretization:
    """
    Physical points without basis or weight functions.

    Parameters
    ----------
    points : sequence of SimplePoint
    """

    def __init__(self, points):
        self.points = list(points)
        if not self.points:
            raise ValueError("spatial discretization needs at least one point")
        self.dimension = self.points[0].dimension
        self.boundary_basis_indices = np.zeros(0, dtype=np.int64)

    @property
    def number_of_points(self):
        return len(self.points)

    @property
    def number_of_boundary_points(self):
        return 0

    @property
    def has_reflection(self):
        return False

    def point(self, i):
        return self.points[i]

    def point_materials(self):
        return [p.material for p in self.points]


class WeakSpatialDiscretization:
    """
    Meshless basis and weight functions over a solid geometry.

    Parameters
    ----------
    basis_functions : sequence of BasisFunction
    weight_functions : sequence of WeightFunction
    options : WeakSpatialDiscretizationOptions
    solid : BoxGeometry
    integration_mesh : IntegrationMesh or None
    """

    def __init__(self, basis_functions, weight_functions, options, solid,
                 integration_mesh=None):
        self.basis_functions = list(basis_functions)
        self.weight_functions = list(weight_functions)
        self.options = options
        self.solid = solid
        self.integration_mesh = integration_mesh

        if len(self.basis_functions) != len(self.weight_functions):
            raise InvariantError(
                f"{len(self.basis_functions)} basis functions but "
                f"{len(self.weight_functions)} weight functions"
            )
        for i, (basis, weight) in enumerate(zip(self.basis_functions,
                                                self.weight_functions)):
            if basis.index != i or weight.index != i:
                raise InvariantError(
                    f"entity at position {i} has basis index {basis.index} "
                    f"and weight index {weight.index}"
                )

        self.dimension = solid.dimension
        self.boundary_basis_indices = np.array(
            [b.index for b in self.basis_functions
             if b.point_type == PointType.BOUNDARY], dtype=np.int64)
        self._boundary_index = {int(j): k for k, j in
                                enumerate(self.boundary_basis_indices)}

    @property
    def number_of_points(self):
        return len(self.weight_functions)

    @property
    def number_of_boundary_points(self):
        return len(self.boundary_basis_indices)

    @property
    def has_reflection(self):
        return self.solid.has_reflection

    @property
    def cross_section_dependency(self):
        return self.weight_functions[0].options.cross_section_dependency

    @property
    def number_of_groups(self):
        return self.basis_functions[0].material.number_of_groups

    def point(self, i):
        return self.weight_functions[i]

    def weight(self, i):
        return self.weight_functions[i]

    def basis(self, j):
        return self.basis_functions[j]

    def boundary_index(self, j):
        """Position of basis ``j`` among the boundary bases, or -1."""
        return self._boundary_index.get(int(j), -1)

    def point_materials(self):
        """Materials the pointwise operators should apply at each point."""
        if self.cross_section_dependency == CrossSectionDependency.BASIS:
            return [b.material for b in self.basis_functions]
        return [w.material for w in self.weight_functions]

    def positions(self):
        return np.array([w.position for w in self.weight_functions])
