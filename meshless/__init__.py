"""
Meshless Discrete-Ordinates Transport Package

Weak-form (Petrov-Galerkin) and strong-form (collocation) meshless spatial
discretization of the multigroup discrete-ordinates transport equation,
with RBF and linear MLS basis functions.

Pipeline:
    - discretization.factory:   basis/weight functions, stencils, integration mesh
    - assembly:                 weight-function integration (volume, surface, materials)
    - solvers.sweep:            per-(ordinate, group) sparse systems and solves
    - operators:                moment, scattering, fission and source operators
    - solvers.factory:          operator chains for source and eigenvalue problems
    - solvers.iteration:        source iteration, GMRES steady state, power iteration

Coordinate systems:
    - Cartesian boxes in 1, 2 and 3 dimensions
"""

__version__ = "0.1.0"

from .exceptions import (
    MeshlessError,
    ConfigurationError,
    InvariantError,
    ConvergenceError,
)
from .logging_config import setup_logging, get_logger
from .config import (
    Discretization,
    WeightingMethod,
    CrossSectionDependency,
    TauScaling,
    TotalTreatment,
    IdenticalBasisFunctions,
    BasisType,
    SolverType,
    ScatteringType,
    WeakSpatialDiscretizationOptions,
    SweepOptions,
    IterationOptions,
)
from .geometry.surfaces import BoundarySource, CartesianPlane
from .geometry.solid import BoxGeometry
from .materials.material import Material
from .discretization.angular import AngularDiscretization
from .discretization.energy import EnergyDiscretization
from .discretization.factory import WeakSpatialDiscretizationFactory
from .discretization.transport import TransportDiscretization
from .solvers.factory import SolverFactory
from .solvers.iteration import (
    SourceIteration,
    KrylovSteadyState,
    KrylovEigenvalue,
    IterationResult,
    EigenvalueResult,
)
