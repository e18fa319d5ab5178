"""
Point, basis-function and weight-function data model.

Every entity is addressed by a dense integer index into the arrays of
the owning discretization. A weight function keeps the ordered list of
global basis indices whose support overlaps its own (the local stencil)
and a reverse lookup from global to local position.

Integral tables attached to weight function i (nb = stencil size,
ns = number of local boundary surfaces, dim = spatial dimension):

    is_w     (ns,)            integral_s w
    is_b_w   (ns, nb)         integral_s b_j w
    iv_w     (1,)             integral_V w
    iv_dw    (dim,)           integral_V dw/dx_d
    iv_b_w   (nb,)            integral_V b_j w
    iv_b_dw  (nb, dim)        integral_V b_j dw/dx_d
    iv_db_w  (nb, dim)        integral_V db_j/dx_d w
    iv_db_dw (nb, dim, dim)   integral_V db_j/dx_d1 dw/dx_d2

Lifecycle: a weight function is built with geometry and options only
(UNINTEGRATED) and receives its tables exactly once through
``set_integrals`` (INTEGRATED). Tables are read-only afterwards.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from ..config import CrossSectionDependency, GEOMETRIC_TOLERANCE, TauScaling
from ..exceptions import InvariantError


class PointType(Enum):
    INTERIOR = "interior"
    BOUNDARY = "boundary"


@dataclass
class SimplePoint:
    """A physical point with a material, used by collocation-style operators.

    Attributes
    ----------
    index : int
    position : ndarray, shape (dim,)
    material : Material
    point_type : PointType
    """
    index: int
    position: np.ndarray
    material: object
    point_type: PointType = PointType.INTERIOR

    def __post_init__(self):
        self.position = np.atleast_1d(np.asarray(self.position, dtype=np.float64))

    @property
    def dimension(self):
        return self.position.size


class DimensionalMoments:
    """Dimensional-moment basis used to carry SUPG weighting.

    Without SUPG there is a single moment (the weight itself). With SUPG
    the moments are ``[w, dw/dx_1, ..., dw/dx_dim]`` and a direction
    ``Omega`` combines them with coefficients ``[1, tau*Omega_1, ...]``.
    """

    def __init__(self, include_supg, dimension):
        self.include_supg = include_supg
        self.dimension = dimension
        self.number_of_dimensional_moments = 1 + dimension if include_supg else 1

    def coefficients(self, tau, direction):
        if not self.include_supg:
            return np.ones(1)
        coefficients = np.empty(self.number_of_dimensional_moments)
        coefficients[0] = 1.0
        coefficients[1:] = tau * np.asarray(direction)[:self.dimension]
        return coefficients

    def weighting(self, w_val, w_grad):
        """Stack the weighting functions, shape (ndm, nq)."""
        if not self.include_supg:
            return w_val[None, :]
        return np.vstack([w_val[None, :], w_grad.T])


@dataclass
class Integrals:
    """Volume and surface integral tables of one weight function."""
    is_w: np.ndarray
    is_b_w: np.ndarray
    iv_w: np.ndarray
    iv_dw: np.ndarray
    iv_b_w: np.ndarray
    iv_b_dw: np.ndarray
    iv_db_w: np.ndarray
    iv_db_dw: np.ndarray

    NAMES = ('is_w', 'is_b_w', 'iv_w', 'iv_dw',
             'iv_b_w', 'iv_b_dw', 'iv_db_w', 'iv_db_dw')

    @classmethod
    def zeros(cls, number_of_boundary_surfaces, number_of_basis_functions,
              dimension):
        ns, nb, dim = (number_of_boundary_surfaces, number_of_basis_functions,
                       dimension)
        return cls(
            is_w=np.zeros(ns),
            is_b_w=np.zeros((ns, nb)),
            iv_w=np.zeros(1),
            iv_dw=np.zeros(dim),
            iv_b_w=np.zeros(nb),
            iv_b_dw=np.zeros((nb, dim)),
            iv_db_w=np.zeros((nb, dim)),
            iv_db_dw=np.zeros((nb, dim, dim)),
        )

    def expected_shapes(self, number_of_boundary_surfaces,
                        number_of_basis_functions, dimension):
        ns, nb, dim = (number_of_boundary_surfaces, number_of_basis_functions,
                       dimension)
        return {
            'is_w': (ns,),
            'is_b_w': (ns, nb),
            'iv_w': (1,),
            'iv_dw': (dim,),
            'iv_b_w': (nb,),
            'iv_b_dw': (nb, dim),
            'iv_db_w': (nb, dim),
            'iv_db_dw': (nb, dim, dim),
        }

    def validate(self, number_of_boundary_surfaces, number_of_basis_functions,
                 dimension, index=None):
        """Check every table against the declared sizes.

        Raises
        ------
        InvariantError
            If any table has the wrong shape or non-finite entries.
        """
        expected = self.expected_shapes(number_of_boundary_surfaces,
                                        number_of_basis_functions, dimension)
        for name, shape in expected.items():
            table = getattr(self, name)
            if table.shape != shape:
                raise InvariantError(
                    f"weight function {index}: integral table {name} has shape "
                    f"{table.shape}, expected {shape}"
                )
            if not np.all(np.isfinite(table)):
                raise InvariantError(
                    f"weight function {index}: integral table {name} "
                    f"contains non-finite values"
                )

    def freeze(self):
        for name in self.NAMES:
            getattr(self, name).flags.writeable = False

    def array_equal(self, other):
        return all(np.array_equal(getattr(self, n), getattr(other, n))
                   for n in self.NAMES)


@dataclass
class Values:
    """Basis values and gradients evaluated at the weight center.

    Attributes
    ----------
    v_b : ndarray, shape (nb,)
    v_db : ndarray, shape (nb, dim)
    """
    v_b: np.ndarray
    v_db: np.ndarray


class BasisFunction:
    """A meshless basis function of the solution space.

    Parameters
    ----------
    index : int
    function : RBFFunction or LinearMLSFunction
    boundary_surfaces : sequence of CartesianPlane
        Surfaces within the support radius.
    material : Material or None
        Physical material at the basis point.
    """

    def __init__(self, index, function, boundary_surfaces=(), material=None):
        self._index = index
        self._function = function
        self._boundary_surfaces = tuple(boundary_surfaces)
        self._material = material

    @property
    def index(self):
        return self._index

    @property
    def function(self):
        return self._function

    @property
    def dimension(self):
        return self._function.dimension

    @property
    def position(self):
        return self._function.position

    @property
    def radius(self):
        return self._function.radius

    @property
    def material(self):
        return self._material

    @property
    def boundary_surfaces(self):
        return self._boundary_surfaces

    @property
    def number_of_boundary_surfaces(self):
        return len(self._boundary_surfaces)

    @property
    def point_type(self):
        if self._boundary_surfaces:
            return PointType.BOUNDARY
        return PointType.INTERIOR

    def value(self, x):
        return self._function.value(x)

    def value_and_gradient(self, x):
        return self._function.value_and_gradient(x)

    def __repr__(self):
        return (f"BasisFunction(index={self._index}, "
                f"point_type={self.point_type.name})")


class WeightFunction:
    """A weight (test) function of the weak form, centered at a point.

    Parameters
    ----------
    index : int
    options : WeightFunctionOptions
    function : RBFFunction or LinearMLSFunction
    basis_functions : sequence of BasisFunction
        Local stencil in order.
    boundary_surfaces : sequence of CartesianPlane
        Surfaces within the weight's support.
    material : Material
        Physical material at the weight point.
    """

    def __init__(self, index, options, function, basis_functions,
                 boundary_surfaces=(), material=None):
        self.index = index
        self.options = options
        self.function = function
        self.basis_functions = tuple(basis_functions)
        self.boundary_surfaces = tuple(boundary_surfaces)
        self.point_material = material

        self.basis_function_indices = np.array(
            [b.index for b in self.basis_functions], dtype=np.int64)
        self._basis_global_indices = {
            int(j): local for local, j in enumerate(self.basis_function_indices)
        }
        if len(self._basis_global_indices) != len(self.basis_functions):
            raise InvariantError(
                f"weight function {index}: duplicate basis indices in stencil "
                f"{self.basis_function_indices.tolist()}"
            )
        self._local_surface_indices = {
            s.index: local for local, s in enumerate(self.boundary_surfaces)
        }

        self.dimensional_moments = DimensionalMoments(options.include_supg,
                                                      self.dimension)
        self.tau = self._calculate_tau()
        self.values = self._calculate_values()

        self._integrals = None
        self._material = None
        self._basis_weight_material = None

    # -----------------------------------------------------------------
    #  Geometry
    # -----------------------------------------------------------------

    @property
    def dimension(self):
        return self.function.dimension

    @property
    def position(self):
        return self.function.position

    @property
    def radius(self):
        return self.function.radius

    @property
    def point_type(self):
        if self.boundary_surfaces:
            return PointType.BOUNDARY
        return PointType.INTERIOR

    @property
    def number_of_basis_functions(self):
        return len(self.basis_functions)

    @property
    def number_of_boundary_surfaces(self):
        return len(self.boundary_surfaces)

    def local_basis_index(self, global_index):
        """Stencil position of a global basis index, or -1 if absent."""
        return self._basis_global_indices.get(int(global_index), -1)

    def local_surface_index(self, global_index):
        """Position of a global surface in the local surface list, or -1."""
        return self._local_surface_indices.get(global_index, -1)

    def value_and_gradient(self, x):
        return self.function.value_and_gradient(x)

    def _calculate_tau(self):
        if not self.options.include_supg:
            return 0.0
        tau = self.options.tau_const / self.function.shape
        scaling = self.options.tau_scaling

        if scaling == TauScaling.NONE or not self.boundary_surfaces:
            return tau
        distance = min(s.distance(self.position)[0] for s in self.boundary_surfaces)
        if scaling == TauScaling.LINEAR:
            return tau * min(1.0, distance / self.radius)
        if scaling == TauScaling.ABSOLUTE:
            return 0.0 if distance < GEOMETRIC_TOLERANCE else tau
        if scaling == TauScaling.FUNCTIONAL:
            # Ratio of the weight on its nearest boundary to its center value
            nearest = min(self.boundary_surfaces,
                          key=lambda s: s.distance(self.position)[0])
            projection = self.position.copy()
            projection[nearest.surface_dimension] = nearest.position
            center = self.function.value(self.position)[0]
            edge = self.function.value(projection)[0]
            return tau * max(0.0, 1.0 - edge / center)
        raise InvariantError(f"unknown tau scaling {scaling!r}")

    def _calculate_values(self):
        nb = self.number_of_basis_functions
        v_b = np.zeros(nb)
        v_db = np.zeros((nb, self.dimension))
        for j, basis in enumerate(self.basis_functions):
            value, gradient = basis.value_and_gradient(self.position)
            v_b[j] = value[0]
            v_db[j] = gradient[0]
        return Values(v_b=v_b, v_db=v_db)

    # -----------------------------------------------------------------
    #  Integration state
    # -----------------------------------------------------------------

    @property
    def integrated(self):
        return self._integrals is not None

    def check_integrals(self, integrals, basis_weight_material=None):
        """Check integration results against this weight without attaching them.

        Raises
        ------
        InvariantError
            If the weight function is already integrated, or the tables do
            not match the stencil size.
        """
        if self.integrated:
            raise InvariantError(
                f"weight function {self.index}: integrals already set"
            )
        integrals.validate(self.number_of_boundary_surfaces,
                           self.number_of_basis_functions,
                           self.dimension, index=self.index)
        if (self.options.cross_section_dependency
                == CrossSectionDependency.BASIS_WEIGHT):
            if basis_weight_material is None:
                raise InvariantError(
                    f"weight function {self.index}: FULL weighting requires "
                    f"basis-weight material tables"
                )
            if (basis_weight_material.number_of_basis_functions
                    != self.number_of_basis_functions):
                raise InvariantError(
                    f"weight function {self.index}: basis-weight tables sized "
                    f"for {basis_weight_material.number_of_basis_functions} "
                    f"bases, stencil has {self.number_of_basis_functions}"
                )

    def set_integrals(self, integrals, material, basis_weight_material=None):
        """Attach the integral tables and material; allowed exactly once.

        Raises
        ------
        InvariantError
            See ``check_integrals``.
        """
        self.check_integrals(integrals, basis_weight_material)
        integrals.freeze()
        self._integrals = integrals
        self._material = material
        self._basis_weight_material = basis_weight_material

    def _require_integrated(self):
        if not self.integrated:
            raise InvariantError(
                f"weight function {self.index}: integrals requested before "
                f"integration"
            )

    @property
    def integrals(self):
        self._require_integrated()
        return self._integrals

    @property
    def material(self):
        """Integrated material, or the point material before integration."""
        if self._material is None:
            return self.point_material
        return self._material

    @property
    def basis_weight_material(self) -> Optional[object]:
        self._require_integrated()
        return self._basis_weight_material

    def __repr__(self):
        return (f"WeightFunction(index={self.index}, "
                f"number_of_basis_functions={self.number_of_basis_functions}, "
                f"integrated={self.integrated})")
