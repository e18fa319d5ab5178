"""
Operator Assembly for Steady-State and Eigenvalue Problems
==========================================================

Builds the operator chains that the iteration drivers apply to moment
vectors (moments followed by reflected-boundary augments):

    source  = D * Linv(boundary on)  * Q'
    flux    = D * Linv(boundary off) * (S + F)'
    fission = D * Linv(boundary off) * F'         (augments zeroed)

where D is discrete-to-moment, Linv the transport sweep, and the primed
operators map moments to discrete right-hand sides according to the
discretization:

    strong, POINT             M * X * V
    strong, BASIS             M * V * X
    weak, POINT/WEIGHT/FLUX   M * X * Wm             normalized
    weak, SUPG                Msupg * Xsupg * Wm     Wm averages
    weak, BASIS               Wd * M * X
    weak, FULL                Msupg * Xbw

with X one of scattering, fission or internal source, V the basis value
operator, Wm moment weighting and Wd discrete weighting. Every non-sweep
stage carries the augments through unchanged.

Steady state solves  phi = source + flux(phi);  the eigenvalue problem
solves  (I - flux) phi = fission(phi) / k.
"""

import logging

import numpy as np

from ..config import (CrossSectionDependency, Discretization, ScatteringType,
                      SweepOptions)
from ..exceptions import ConfigurationError
from ..operators.moments import (DiscreteToMoment, DiscreteWeighting,
                                 MomentToDiscrete, MomentValue, MomentWeighting,
                                 SUPGMomentToDiscrete)
from ..operators.sources import (BasisWeightFission, BasisWeightInternalSource,
                                 BasisWeightScattering, Fission, InternalSource,
                                 Scattering, SUPGFission, SUPGInternalSource,
                                 SUPGScattering)
from ..operators.vector_operator import Augmented
from .sweep import BoundarySourceToggle, StrongRBFSweep, WeakRBFSweep

logger = logging.getLogger(__name__)


class SolverFactory:
    """
    Assemble sweep and moment operators for a transport discretization.

    Parameters
    ----------
    transport : TransportDiscretization
        Spatial part must be a WeakSpatialDiscretization.
    sweep_options : SweepOptions or None
    scattering_type : ScatteringType
    """

    def __init__(self, transport, sweep_options=None,
                 scattering_type=ScatteringType.FULL):
        if not hasattr(transport.spatial, 'options'):
            raise ConfigurationError(
                "operator assembly needs a weak spatial discretization"
            )
        self.transport = transport
        self.spatial = transport.spatial
        self.options = transport.spatial.options
        self.sweep_options = sweep_options or SweepOptions()
        self.scattering_type = scattering_type
        self.number_of_augments = transport.number_of_augments
        self._sweep = None

    # -----------------------------------------------------------------
    #  Building blocks
    # -----------------------------------------------------------------

    def get_sweep(self):
        """Sweep operator, built once and shared by every chain."""
        if self._sweep is None:
            if self.options.discretization == Discretization.STRONG:
                self._sweep = StrongRBFSweep(self.transport, self.sweep_options)
            else:
                self._sweep = WeakRBFSweep(self.transport, self.sweep_options)
            logger.info("Built %s: %d ordinates x %d groups, %d points, "
                        "%d augments", type(self._sweep).__name__,
                        self.transport.number_of_ordinates,
                        self.transport.number_of_groups,
                        self.transport.number_of_points,
                        self.number_of_augments)
        return self._sweep

    @property
    def is_strong(self):
        return self.options.discretization == Discretization.STRONG

    @property
    def dependency(self):
        return self.spatial.cross_section_dependency

    def _materials(self):
        if self.is_strong:
            if self.dependency == CrossSectionDependency.BASIS:
                return [b.material for b in self.spatial.basis_functions]
            return [w.point_material for w in self.spatial.weight_functions]
        return self.spatial.point_materials()

    def _source_scales(self):
        """Per-weight multiplier turning a normalized source into its integral."""
        if self.is_strong or self.dependency != CrossSectionDependency.WEIGHT:
            return None
        return np.array([w.integrals.iv_w[0] for w in self.spatial.weight_functions])

    def _moment_stages(self, kind):
        """Moments-to-discrete-rhs operator for scattering, fission or source."""
        transport = self.transport
        materials = self._materials()

        if self.dependency == CrossSectionDependency.BASIS_WEIGHT:
            operator = {
                'scattering': lambda: BasisWeightScattering(transport,
                                                            self.scattering_type),
                'fission': lambda: BasisWeightFission(transport),
                'source': lambda: BasisWeightInternalSource(transport),
            }[kind]()
            return SUPGMomentToDiscrete(transport) * operator

        if self.options.include_supg and not self.is_strong \
                and self.dependency == CrossSectionDependency.WEIGHT:
            operator = {
                'scattering': lambda: SUPGScattering(transport, materials,
                                                     self.scattering_type),
                'fission': lambda: SUPGFission(transport, materials),
                'source': lambda: SUPGInternalSource(transport, materials),
            }[kind]()
            stage = SUPGMomentToDiscrete(transport) * operator
            if kind == 'source':
                return stage
            return stage * MomentWeighting(transport)

        operator = {
            'scattering': lambda: Scattering(transport, materials,
                                             self.scattering_type),
            'fission': lambda: Fission(transport, materials),
            'source': lambda: InternalSource(transport, materials,
                                             self._source_scales()),
        }[kind]()
        to_discrete = MomentToDiscrete(transport)

        if self.is_strong:
            value = MomentValue(transport)
            if self.dependency == CrossSectionDependency.BASIS:
                return to_discrete * value * operator
            if kind == 'source':
                return to_discrete * operator
            return to_discrete * operator * value

        if self.dependency == CrossSectionDependency.BASIS:
            return DiscreteWeighting(transport) * to_discrete * operator

        if kind == 'source':
            return to_discrete * operator
        return to_discrete * operator * MomentWeighting(transport)

    def _chain(self, stage, include_boundary_source, zero_augments=False):
        n = self.number_of_augments
        sweep = BoundarySourceToggle(include_boundary_source, self.get_sweep())
        return (Augmented(n, DiscreteToMoment(self.transport))
                * sweep
                * Augmented(n, stage, zero_augments=zero_augments))

    # -----------------------------------------------------------------
    #  Problem operators
    # -----------------------------------------------------------------

    def get_source_operator(self):
        """Uncollided flux from internal and boundary sources."""
        return self._chain(self._moment_stages('source'), True,
                           zero_augments=True)

    def get_flux_operator(self, include_fission=True):
        """One scattering (and fission) collision followed by a sweep."""
        stage = self._moment_stages('scattering')
        if include_fission:
            stage = stage + self._moment_stages('fission')
        return self._chain(stage, False)

    def get_fission_operator(self):
        """Swept fission source, without reflected boundary flux."""
        return self._chain(self._moment_stages('fission'), False,
                           zero_augments=True)

    def get_source_operators(self):
        """(source, flux) pair for a fixed-source problem."""
        return self.get_source_operator(), self.get_flux_operator()

    def get_eigenvalue_operators(self):
        """(flux without fission, fission) pair for a k-eigenvalue problem."""
        return self.get_flux_operator(include_fission=False), self.get_fission_operator()

    def get_value_operator(self):
        """Converts moment coefficients to moments at the weight centers."""
        return MomentValue(self.transport)
