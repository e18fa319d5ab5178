"""
Box-shaped solid geometry.

The domain is the box ``limits[d, 0] <= x[d] <= limits[d, 1]`` bounded
by 2 * dim Cartesian planes. Surfaces are indexed ``2 * d + side`` with
side 0 the lower (normal -1) and side 1 the upper (normal +1) face.
"""

import numpy as np

from .surfaces import BoundarySource, CartesianPlane


class BoxGeometry:
    """Axis-aligned box with one boundary source per face.

    Parameters
    ----------
    limits : array_like, shape (dim, 2)
        Lower and upper coordinate of each dimension.
    boundary_sources : BoundarySource or sequence of BoundarySource
        A single source shared by every face, or one per face in surface
        index order.
    """

    def __init__(self, limits, boundary_sources):
        self.limits = np.atleast_2d(np.asarray(limits, dtype=np.float64))
        if self.limits.ndim != 2 or self.limits.shape[1] != 2:
            raise ValueError(
                f"limits must have shape (dim, 2), got {self.limits.shape}"
            )
        if np.any(self.limits[:, 1] <= self.limits[:, 0]):
            raise ValueError(f"box limits must be increasing, got {self.limits}")
        self.dimension = self.limits.shape[0]

        number_of_surfaces = 2 * self.dimension
        if isinstance(boundary_sources, BoundarySource):
            boundary_sources = [boundary_sources] * number_of_surfaces
        if len(boundary_sources) != number_of_surfaces:
            raise ValueError(
                f"expected {number_of_surfaces} boundary sources, "
                f"got {len(boundary_sources)}"
            )

        self.surfaces = []
        for d in range(self.dimension):
            for side, normal in enumerate((-1.0, 1.0)):
                index = 2 * d + side
                self.surfaces.append(CartesianPlane(
                    index=index,
                    dimension=self.dimension,
                    surface_dimension=d,
                    position=self.limits[d, side],
                    normal=normal,
                    boundary_source=boundary_sources[index],
                ))

    @property
    def number_of_surfaces(self):
        return len(self.surfaces)

    @property
    def has_reflection(self):
        return any(s.boundary_source.has_reflection for s in self.surfaces)

    def inside(self, x, tolerance=0.0):
        """Whether position(s) ``x`` lie in the closed box."""
        x = np.atleast_2d(x)
        return np.all((x >= self.limits[:, 0] - tolerance)
                      & (x <= self.limits[:, 1] + tolerance), axis=1)

    def boundary_distance(self, x):
        """Distance from position(s) ``x`` to the nearest face."""
        x = np.atleast_2d(x)
        return np.min(np.stack([s.distance(x) for s in self.surfaces]), axis=0)

    def surfaces_within(self, position, radius):
        """Faces closer to ``position`` than ``radius``."""
        return [s for s in self.surfaces if s.distance(position)[0] < radius]
