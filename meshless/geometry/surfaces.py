"""
Boundary surfaces and boundary sources.

A CartesianPlane is an axis-aligned boundary of a box domain:

    { x : x[surface_dimension] = position }

with an outward unit normal of +1 or -1 along ``surface_dimension``.
Each plane carries a BoundarySource describing what enters through it:

    psi_in(o, g) = alpha[g] * psi(o_reflected, g) + values[o, g]

``alpha = 0`` with zero values is a vacuum boundary; ``alpha = 1`` is a
specular reflector.
"""

import numpy as np

from ..config import GEOMETRIC_TOLERANCE


class BoundarySource:
    """Reflection coefficients and prescribed incoming angular flux.

    Parameters
    ----------
    alpha : array_like, shape (ng,)
        Reflection coefficient per group.
    values : array_like, shape (no, ng) or None
        Prescribed incoming angular flux per (ordinate, group). None means
        no external boundary source.
    index : int
    """

    def __init__(self, alpha, values=None, index=0):
        self.index = index
        self.alpha = np.atleast_1d(np.asarray(alpha, dtype=np.float64))
        if self.alpha.ndim != 1:
            raise ValueError(f"alpha must be 1D, got shape {self.alpha.shape}")
        if values is None:
            self.values = None
        else:
            self.values = np.atleast_2d(np.asarray(values, dtype=np.float64))
            if self.values.shape[1] != self.alpha.size:
                raise ValueError(
                    f"boundary values must have {self.alpha.size} groups, "
                    f"got shape {self.values.shape}"
                )

    @classmethod
    def vacuum(cls, number_of_groups, index=0):
        return cls(np.zeros(number_of_groups), index=index)

    @classmethod
    def reflective(cls, number_of_groups, index=0):
        return cls(np.ones(number_of_groups), index=index)

    @property
    def number_of_groups(self):
        return self.alpha.size

    @property
    def has_reflection(self):
        return bool(np.any(self.alpha != 0))

    @property
    def has_source(self):
        return self.values is not None and bool(np.any(self.values != 0))

    def value(self, o, g):
        """Prescribed incoming angular flux for ordinate ``o``, group ``g``."""
        if self.values is None:
            return 0.0
        return self.values[o, g]


class CartesianPlane:
    """Axis-aligned boundary plane with an outward normal.

    Parameters
    ----------
    index : int
        Global surface index.
    dimension : int
        Spatial dimension of the problem.
    surface_dimension : int
        Axis the plane is normal to.
    position : float
        Coordinate of the plane along ``surface_dimension``.
    normal : float
        Outward normal component, +1 or -1.
    boundary_source : BoundarySource
    """

    def __init__(self, index, dimension, surface_dimension, position, normal,
                 boundary_source):
        if not 0 <= surface_dimension < dimension:
            raise ValueError(
                f"surface_dimension {surface_dimension} out of range for "
                f"dimension {dimension}"
            )
        if normal not in (-1, 1, -1.0, 1.0):
            raise ValueError(f"normal must be +1 or -1, got {normal}")
        self.index = index
        self.dimension = dimension
        self.surface_dimension = surface_dimension
        self.position = float(position)
        self.normal = float(normal)
        self.boundary_source = boundary_source

    @property
    def normal_vector(self):
        vector = np.zeros(self.dimension)
        vector[self.surface_dimension] = self.normal
        return vector

    def distance(self, x):
        """Unsigned distance from position(s) ``x`` to the plane."""
        x = np.atleast_2d(x)
        return np.abs(x[:, self.surface_dimension] - self.position)

    def normal_dot(self, direction):
        """Outward normal dotted with a direction; 0 for tangent directions."""
        dot = self.normal * direction[self.surface_dimension]
        if abs(dot) <= GEOMETRIC_TOLERANCE:
            return 0.0
        return dot

    def __repr__(self):
        return (f"CartesianPlane(index={self.index}, "
                f"surface_dimension={self.surface_dimension}, "
                f"position={self.position}, normal={self.normal:+.0f})")
