"""
Central Configuration for the Meshless Transport Solver

Defines default numerical parameters and the option records consumed by
the discretization, integration, sweep and iteration layers:

  Tier 1: Numerical defaults (quadrature orders, solver tolerances)
  Tier 2: Option enumerations
  Tier 3: Option records (dataclasses) with setup-time validation

Option combinations that the solver cannot honor are rejected by
``validate()`` with a ConfigurationError before any integration or sweep
work starts.

Usage:
    from meshless.config import WeakSpatialDiscretizationOptions, WeightingMethod
    options = WeakSpatialDiscretizationOptions(weighting=WeightingMethod.WEIGHT)
    options.validate()
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np

from .exceptions import ConfigurationError


# =============================================================================
# TIER 1: NUMERICAL DEFAULTS
# =============================================================================

# --- INTEGRATION ---
DEFAULT_INTEGRATION_ORDINATES = 8     # Gauss-Legendre points per dimension per cell
DEFAULT_RADIUS_NUM_INTERVALS = 3.0    # support radius in units of point spacing
DEFAULT_TAU_CONST = 1.0               # SUPG tau = tau_const / shape

# --- INNER LINEAR SOLVES ---
DEFAULT_KSPACE = 20                   # GMRES restart length
DEFAULT_SOLVER_MAX_ITERATIONS = 5000  # total inner GMRES iterations
DEFAULT_SOLVER_TOLERANCE = 1e-12      # relative residual
DEFAULT_LEVEL_OF_FILL = 1.0
DEFAULT_DROP_TOLERANCE = 1e-6
ILUT_FILL_FACTOR = 10.0
ILL_CONDITIONED_ESTIMATE = 1e14       # warn above this 1-norm condition estimate

# --- OUTER ITERATION ---
DEFAULT_ITERATION_MAX = 1000
DEFAULT_ITERATION_TOLERANCE = 1e-10

# --- GEOMETRY ---
GEOMETRIC_TOLERANCE = 1e-12           # point-on-surface test


# =============================================================================
# TIER 2: OPTION ENUMERATIONS
# =============================================================================

class Discretization(Enum):
    WEAK = "weak"
    STRONG = "strong"


class WeightingMethod(Enum):
    """How cross sections enter the weighted residual.

    POINT  - weight point's own material
    WEIGHT - basis-interpolated material averaged by the weight function
    FLUX   - as WEIGHT, additionally weighted by a supplied scalar flux
    FULL   - separate integral for every (basis, weight) pair
    BASIS  - material of each basis point, applied before weighting
    """
    POINT = "point"
    WEIGHT = "weight"
    FLUX = "flux"
    FULL = "full"
    BASIS = "basis"


class CrossSectionDependency(Enum):
    WEIGHT = "weight"
    BASIS = "basis"
    BASIS_WEIGHT = "basis_weight"


class TauScaling(Enum):
    NONE = "none"
    FUNCTIONAL = "functional"
    LINEAR = "linear"
    ABSOLUTE = "absolute"


class TotalTreatment(Enum):
    ISOTROPIC = "isotropic"
    MOMENT = "moment"


class IdenticalBasisFunctions(Enum):
    AUTO = "auto"
    TRUE = "true"
    FALSE = "false"


class BasisType(Enum):
    RBF = "rbf"
    MLS = "mls"


class SolverType(Enum):
    DIRECT = "direct"
    GMRES = "gmres"
    GMRES_ILUT = "gmres_ilut"
    GMRES_ILU = "gmres_ilu"


class ScatteringType(Enum):
    FULL = "full"
    COHERENT = "coherent"
    INCOHERENT = "incoherent"


def cross_section_dependency(weighting):
    """Map a weighting method onto the material representation it needs."""
    if weighting in (WeightingMethod.POINT, WeightingMethod.WEIGHT,
                     WeightingMethod.FLUX):
        return CrossSectionDependency.WEIGHT
    if weighting == WeightingMethod.BASIS:
        return CrossSectionDependency.BASIS
    if weighting == WeightingMethod.FULL:
        return CrossSectionDependency.BASIS_WEIGHT
    raise ConfigurationError(f"unknown weighting method {weighting!r}")


# =============================================================================
# TIER 3: OPTION RECORDS
# =============================================================================

@dataclass
class WeightFunctionOptions:
    """Per-weight-function options.

    Attributes
    ----------
    weighting : WeightingMethod
    total : TotalTreatment
        Only ISOTROPIC is implemented.
    include_supg : bool
        Add streamline-upwind Petrov-Galerkin terms.
    tau_const : float
        SUPG strength; the weight's tau is ``tau_const / shape``.
    tau_scaling : TauScaling
        Spatial reduction of tau near the boundary.
    integration_ordinates : int
        Quadrature points per dimension per integration cell.
    flux : callable or None
        ``flux(moment, group, position) -> float`` for FLUX weighting.
    normalized : bool
        Derived: material moments are divided by their norm at integration
        time unless SUPG terms are present.
    """
    weighting: WeightingMethod = WeightingMethod.WEIGHT
    total: TotalTreatment = TotalTreatment.ISOTROPIC
    include_supg: bool = False
    tau_const: float = DEFAULT_TAU_CONST
    tau_scaling: TauScaling = TauScaling.NONE
    integration_ordinates: int = DEFAULT_INTEGRATION_ORDINATES
    flux: Optional[Callable[[int, int, np.ndarray], float]] = None
    normalized: bool = field(init=False)

    def __post_init__(self):
        self.normalized = not self.include_supg
        if self.integration_ordinates < 1:
            raise ValueError(
                f"integration_ordinates must be positive, "
                f"got {self.integration_ordinates}"
            )

    @property
    def cross_section_dependency(self):
        return cross_section_dependency(self.weighting)


@dataclass
class WeakSpatialDiscretizationOptions:
    """Options for building and integrating a meshless discretization.

    Attributes
    ----------
    discretization : Discretization
        WEAK (Petrov-Galerkin) or STRONG (collocation).
    weighting : WeightingMethod
    include_supg : bool
    tau_const : float
    tau_scaling : TauScaling
    total : TotalTreatment
    integration_ordinates : int
        Gauss-Legendre points per dimension in each integration cell.
    dimensional_cells : sequence of int or None
        Integration cells per dimension. None lets the factory choose
        ``2 * (num_dimensional_points - 1)``.
    limits : ndarray, shape (dim, 2) or None
        Box limits of the integration mesh. None uses the solid geometry.
    identical_basis_functions : IdenticalBasisFunctions
        Whether weight functions are the basis functions (Galerkin).
    num_threads : int
        Worker threads for the point-parallel integration loop.
    flux : callable or None
        Scalar flux for FLUX weighting.
    """
    discretization: Discretization = Discretization.WEAK
    weighting: WeightingMethod = WeightingMethod.WEIGHT
    include_supg: bool = False
    tau_const: float = DEFAULT_TAU_CONST
    tau_scaling: TauScaling = TauScaling.NONE
    total: TotalTreatment = TotalTreatment.ISOTROPIC
    integration_ordinates: int = DEFAULT_INTEGRATION_ORDINATES
    dimensional_cells: Optional[Sequence[int]] = None
    limits: Optional[np.ndarray] = None
    identical_basis_functions: IdenticalBasisFunctions = IdenticalBasisFunctions.AUTO
    num_threads: int = 1
    flux: Optional[Callable[[int, int, np.ndarray], float]] = None

    def validate(self):
        """Reject option combinations the solver cannot honor.

        Raises
        ------
        ConfigurationError
            For unsupported discretization/weighting/total combinations.
        """
        if self.total == TotalTreatment.MOMENT:
            raise ConfigurationError(
                "total cross section treatment MOMENT is not implemented; "
                "use ISOTROPIC"
            )
        if self.discretization == Discretization.STRONG:
            if self.weighting not in (WeightingMethod.POINT, WeightingMethod.BASIS):
                raise ConfigurationError(
                    f"STRONG discretization requires POINT or BASIS weighting, "
                    f"got {self.weighting.name}"
                )
            if self.include_supg:
                raise ConfigurationError(
                    "SUPG terms are only defined for the WEAK discretization"
                )
        if self.weighting == WeightingMethod.FLUX:
            if self.flux is None:
                raise ConfigurationError("FLUX weighting requires a flux function")
            if self.include_supg:
                raise ConfigurationError(
                    "FLUX weighting with SUPG terms is not supported"
                )
        if self.integration_ordinates < 1:
            raise ConfigurationError(
                f"integration_ordinates must be positive, "
                f"got {self.integration_ordinates}"
            )
        if self.num_threads < 1:
            raise ConfigurationError(
                f"num_threads must be positive, got {self.num_threads}"
            )

    def weight_options(self):
        """Build the per-weight options implied by these settings."""
        return WeightFunctionOptions(
            weighting=self.weighting,
            total=self.total,
            include_supg=self.include_supg,
            tau_const=self.tau_const,
            tau_scaling=self.tau_scaling,
            integration_ordinates=self.integration_ordinates,
            flux=self.flux,
        )


@dataclass
class SweepOptions:
    """Inner linear-solve settings shared by every (ordinate, group) system.

    Attributes
    ----------
    solver : SolverType
    kspace : int
        GMRES restart length.
    max_iterations : int
        Cap on total GMRES iterations per solve.
    tolerance : float
        Relative residual tolerance.
    max_restarts : int or None
        Cap on GMRES restart cycles; None derives it from max_iterations.
    level_of_fill : float
        Fill level for GMRES_ILU.
    drop_tolerance : float
        Drop tolerance for GMRES_ILUT.
    quit_if_diverged : bool
        Raise ConvergenceError instead of logging a warning.
    num_threads : int
        Worker threads for the (ordinate, group) loop.
    """
    solver: SolverType = SolverType.DIRECT
    kspace: int = DEFAULT_KSPACE
    max_iterations: int = DEFAULT_SOLVER_MAX_ITERATIONS
    tolerance: float = DEFAULT_SOLVER_TOLERANCE
    max_restarts: Optional[int] = None
    level_of_fill: float = DEFAULT_LEVEL_OF_FILL
    drop_tolerance: float = DEFAULT_DROP_TOLERANCE
    quit_if_diverged: bool = True
    num_threads: int = 1

    def __post_init__(self):
        if self.kspace < 1:
            raise ValueError(f"kspace must be positive, got {self.kspace}")
        if self.tolerance <= 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if self.num_threads < 1:
            raise ValueError(f"num_threads must be positive, got {self.num_threads}")

    @property
    def restart_cycles(self):
        """Number of GMRES restart cycles passed to scipy as ``maxiter``."""
        if self.max_restarts is not None:
            return max(1, self.max_restarts)
        return max(1, math.ceil(self.max_iterations / self.kspace))


@dataclass
class IterationOptions:
    """Outer iteration settings.

    Attributes
    ----------
    max_iterations : int
    tolerance : float
        Relative change in the moment vector (and eigenvalue) per iteration.
    kspace : int
        Restart length for Krylov drivers.
    quit_if_diverged : bool
        Raise ConvergenceError when the cap is hit.
    """
    max_iterations: int = DEFAULT_ITERATION_MAX
    tolerance: float = DEFAULT_ITERATION_TOLERANCE
    kspace: int = DEFAULT_KSPACE
    quit_if_diverged: bool = False
