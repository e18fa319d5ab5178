"""
Transport Sweep: per-(ordinate, group) linear systems
=====================================================

For every ordinate o and group g, solves

    A(o, g) psi(., o, g) = b(o, g)

for the angular flux coefficients of every basis function, then refreshes
the reflected-boundary augments.

Weak form (row i, weight w_i, column j, basis b_j, direction Omega):

    A_ij =  sum_{s: n.Omega > 0} (n.Omega) is_b_w[s, j]          outgoing
          - Omega . iv_b_dw[j]                                   streaming
          + tau Omega (x) Omega : iv_db_dw[j]                    SUPG
          + collision_j                                          collision

    b_i  =  x[i, o, g]
          - sum_{s: n.Omega < 0} (n.Omega) [ alpha_g sum_{j boundary}
                is_b_w[s, j] psi_aug(j, o_ref, g) + is_w[s] psi_b(o, g) ]

Collision by cross-section dependency:

    WEIGHT        (iv_b_w[j] + tau Omega.iv_b_dw[j]) sigma_t
                  sigma_t = sigma_t[0, g]                      normalized
                  sigma_t = c.sigma_t[:, g] / c.norm           SUPG, c = [1, tau Omega]
    BASIS         (iv_b_w[j] + tau Omega.iv_b_dw[j]) sigma_t(basis j)
    BASIS_WEIGHT  c . sigma_t_pair[:, j, g]

Strong form (collocation at weight centers):

    interior row:            sum_j (Omega.v_db[j] + sigma_t v_b[j]) psi_j = x[i, o, g]
    incoming boundary row:   sum_j v_b[j] psi_j = alpha sum_{j boundary} v_b[j] psi_aug
                                                  + psi_b(o, g)

Tangent surfaces (n.Omega == 0) contribute to neither side.

Matrices depend only on (o, g), so they are assembled and factorized once
at construction; each ``apply`` rebuilds only right-hand sides.
"""

import logging
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from ..assembly.sparse_assembler import assemble_rows
from ..config import CrossSectionDependency, GEOMETRIC_TOLERANCE, TotalTreatment
from ..exceptions import ConvergenceError, InvariantError
from ..operators.vector_operator import VectorOperator
from .linear_solve import get_linear_solve

logger = logging.getLogger(__name__)


class SweepOperator(VectorOperator):
    """
    Shared machinery of the weak and strong sweeps.

    Parameters
    ----------
    transport : TransportDiscretization
    options : SweepOptions
    """

    def __init__(self, transport, options):
        self.transport = transport
        self.spatial = transport.spatial
        self.angular = transport.angular
        self.options = options
        self.number_of_points = transport.number_of_points
        self.number_of_ordinates = transport.number_of_ordinates
        self.number_of_groups = transport.number_of_groups
        self.row_size = transport.psi_size + transport.number_of_augments
        self.column_size = self.row_size

        self._reflected = {}
        self._boundary_stencils = [self._boundary_stencil(self.spatial.weight(i))
                                   for i in range(self.number_of_points)]
        self.check_class_invariants()
        self._solvers = {}
        self.initialize_solvers()

    # -----------------------------------------------------------------
    #  Setup
    # -----------------------------------------------------------------

    def check_class_invariants(self):
        n = self.number_of_points
        for i in range(n):
            weight = self.spatial.weight(i)
            indices = weight.basis_function_indices
            if len(indices) != weight.number_of_basis_functions:
                raise InvariantError(
                    f"weight function {i}: {len(indices)} stencil indices for "
                    f"{weight.number_of_basis_functions} basis functions"
                )
            if len(indices) and (indices.min() < 0 or indices.max() >= n):
                raise InvariantError(
                    f"weight function {i}: stencil {indices.tolist()} references "
                    f"basis indices outside [0, {n})"
                )
            if weight.options.total != TotalTreatment.ISOTROPIC:
                raise InvariantError(
                    f"weight function {i}: total cross section treatment "
                    f"{weight.options.total.name} is not implemented"
                )

    def _boundary_stencil(self, weight):
        """Local stencil positions and augment indices of boundary bases."""
        local = []
        boundary = []
        for k, j in enumerate(weight.basis_function_indices):
            b = self.spatial.boundary_index(j)
            if b >= 0:
                local.append(k)
                boundary.append(b)
        return np.array(local, dtype=np.int64), np.array(boundary, dtype=np.int64)

    def initialize_solvers(self):
        for o in range(self.number_of_ordinates):
            for g in range(self.number_of_groups):
                solver = get_linear_solve(self.options)
                solver.assemble(self.get_matrix(o, g))
                self._solvers[o, g] = solver
        logger.debug("Assembled %d sweep systems of size %d",
                     len(self._solvers), self.number_of_points)

    def reflected_ordinate(self, o, surface):
        key = (o, surface.index)
        if key not in self._reflected:
            self._reflected[key] = self.angular.reflect_ordinate(
                o, surface.normal_vector)
        return self._reflected[key]

    def psi_indices(self, o, g):
        """Flat indices of psi(., o, g) for every point."""
        points = np.arange(self.number_of_points)
        return g + self.number_of_groups * (o + self.number_of_ordinates * points)

    def augment_indices(self, boundary, o, g):
        return (self.transport.psi_size + g
                + self.number_of_groups * (o + self.number_of_ordinates * boundary))

    # -----------------------------------------------------------------
    #  Rows
    # -----------------------------------------------------------------

    def get_matrix_row(self, i, o, g):
        raise NotImplementedError

    def get_rhs(self, i, o, g, x, include_boundary_source):
        raise NotImplementedError

    def get_matrix(self, o, g):
        return assemble_rows(self.number_of_points, self.number_of_points,
                             lambda i: self.get_matrix_row(i, o, g))

    def reflected_flux(self, i, o, g, x, surface, coefficients):
        """alpha_g sum_{j boundary} coefficients[j] psi_aug(j, o_ref, g)."""
        if not self.transport.has_reflection:
            return 0.0
        alpha = surface.boundary_source.alpha[g]
        if alpha == 0:
            return 0.0
        local, boundary = self._boundary_stencils[i]
        if local.size == 0:
            return 0.0
        o_ref = self.reflected_ordinate(o, surface)
        augments = x[self.augment_indices(boundary, o_ref, g)]
        return alpha * np.dot(coefficients[local], augments)

    # -----------------------------------------------------------------
    #  Apply
    # -----------------------------------------------------------------

    def apply(self, x, include_boundary_source=True):
        """Sweep ``x`` in place and return it.

        Parameters
        ----------
        x : ndarray, shape (row_size,)
            Volumetric source per (point, ordinate, group) followed by the
            reflected-boundary augments. Overwritten with the angular flux.
        include_boundary_source : bool
            Add prescribed boundary sources to the right-hand sides.
        """
        if not isinstance(x, np.ndarray) or x.dtype != np.float64:
            x = np.array(x, dtype=np.float64)
        if x.shape != (self.column_size,):
            raise InvariantError(
                f"sweep input has shape {x.shape}, expected ({self.column_size},)"
            )

        pairs = [(o, g) for o in range(self.number_of_ordinates)
                 for g in range(self.number_of_groups)]
        if self.options.num_threads > 1:
            with ThreadPoolExecutor(max_workers=self.options.num_threads) as executor:
                list(executor.map(
                    lambda pair: self._solve_pair(pair[0], pair[1], x,
                                                  include_boundary_source),
                    pairs))
        else:
            for o, g in pairs:
                self._solve_pair(o, g, x, include_boundary_source)

        self.update_augments(x)
        return x

    def _solve_pair(self, o, g, x, include_boundary_source):
        rhs = np.array([self.get_rhs(i, o, g, x, include_boundary_source)
                        for i in range(self.number_of_points)])
        solver = self._solvers[o, g]
        lhs, info = solver.solve(rhs)

        if info != 0:
            residual = solver.residual(lhs, rhs)
            message = (f"linear solve for ordinate {o}, group {g} did not "
                       f"converge (info={info}, relative residual {residual:.3e})")
            if self.options.quit_if_diverged:
                raise ConvergenceError(message, ordinate=o, group=g,
                                       iterations=info if info > 0 else None,
                                       residual=residual)
            logger.warning(message)

        x[self.psi_indices(o, g)] = lhs

    def update_augments(self, x):
        """Copy boundary-basis angular fluxes into the augment slots."""
        if not self.transport.has_reflection:
            return
        boundary_bases = self.spatial.boundary_basis_indices
        boundary = np.arange(len(boundary_bases))
        for o in range(self.number_of_ordinates):
            for g in range(self.number_of_groups):
                psi = g + self.number_of_groups * (
                    o + self.number_of_ordinates * boundary_bases)
                x[self.augment_indices(boundary, o, g)] = x[psi]

    # -----------------------------------------------------------------
    #  Matrix dump
    # -----------------------------------------------------------------

    def save_matrix_as_xml(self, o, g, parent=None):
        """Row-compressed matrix of system (o, g) as an XML element.

        Parameters
        ----------
        o, g : int
        parent : xml.etree.ElementTree.Element or None
            Element to attach the ``matrix`` node to.

        Returns
        -------
        node : xml.etree.ElementTree.Element
        """
        matrix = self.get_matrix(o, g)
        matrix.sort_indices()
        if parent is None:
            node = ET.Element('matrix')
        else:
            node = ET.SubElement(parent, 'matrix')
        node.set('ordinate', str(o))
        node.set('group', str(g))
        node.set('number_of_rows', str(matrix.shape[0]))
        node.set('number_of_entries', str(matrix.nnz))

        for i in range(matrix.shape[0]):
            start, end = matrix.indptr[i], matrix.indptr[i + 1]
            row = ET.SubElement(node, 'row')
            row.set('row_index', str(i))
            columns = ET.SubElement(row, 'column_indices')
            columns.text = ' '.join(str(c) for c in matrix.indices[start:end])
            values = ET.SubElement(row, 'values')
            values.text = ' '.join(f"{v:.16e}" for v in matrix.data[start:end])
        return node

    def write_matrices(self, path):
        """Write every (ordinate, group) matrix to one XML file."""
        root = ET.Element('sweep_matrices')
        root.set('number_of_ordinates', str(self.number_of_ordinates))
        root.set('number_of_groups', str(self.number_of_groups))
        for o in range(self.number_of_ordinates):
            for g in range(self.number_of_groups):
                self.save_matrix_as_xml(o, g, parent=root)
        ET.ElementTree(root).write(path, encoding='utf-8', xml_declaration=True)
        logger.info("Wrote %d sweep matrices to %s",
                    self.number_of_ordinates * self.number_of_groups, path)


class WeakRBFSweep(SweepOperator):
    """Petrov-Galerkin sweep built from weight-function integrals."""

    def __init__(self, transport, options):
        spatial = transport.spatial
        self.dependency = spatial.cross_section_dependency
        if self.dependency == CrossSectionDependency.BASIS:
            self._basis_sigma_t = np.array(
                [b.material.sigma_t[0] for b in spatial.basis_functions])
        super().__init__(transport, options)

    def collision(self, weight, g, direction):
        """Collision coefficient of every stencil column."""
        integrals = weight.integrals
        include_supg = weight.options.include_supg
        tau = weight.tau

        if self.dependency == CrossSectionDependency.BASIS_WEIGHT:
            coefficients = weight.dimensional_moments.coefficients(tau, direction)
            return coefficients @ weight.basis_weight_material.sigma_t[:, :, g]

        weighting = integrals.iv_b_w.copy()
        if include_supg:
            weighting += tau * (integrals.iv_b_dw @ direction)

        if self.dependency == CrossSectionDependency.BASIS:
            sigma_t = self._basis_sigma_t[weight.basis_function_indices, g]
            return weighting * sigma_t

        material = weight.material
        if weight.options.normalized:
            sigma_t = material.sigma_t[0, g]
        else:
            coefficients = weight.dimensional_moments.coefficients(tau, direction)
            sigma_t = ((coefficients @ material.sigma_t[:, g])
                       / (coefficients @ material.norm))
        return weighting * sigma_t

    def get_matrix_row(self, i, o, g):
        weight = self.spatial.weight(i)
        integrals = weight.integrals
        direction = self.angular.direction(o)

        values = np.zeros(weight.number_of_basis_functions)
        for s, surface in enumerate(weight.boundary_surfaces):
            dot = surface.normal_dot(direction)
            if dot > 0:
                values += dot * integrals.is_b_w[s]

        values -= integrals.iv_b_dw @ direction

        if weight.options.include_supg:
            values += weight.tau * np.einsum('jab,a,b->j', integrals.iv_db_dw,
                                             direction, direction)

        values += self.collision(weight, g, direction)
        return weight.basis_function_indices, values

    def get_rhs(self, i, o, g, x, include_boundary_source):
        weight = self.spatial.weight(i)
        integrals = weight.integrals
        direction = self.angular.direction(o)

        value = x[self.transport.psi_index(i, o, g)]
        for s, surface in enumerate(weight.boundary_surfaces):
            dot = surface.normal_dot(direction)
            if dot >= 0:
                continue
            local_sum = self.reflected_flux(i, o, g, x, surface,
                                            integrals.is_b_w[s])
            if include_boundary_source:
                local_sum += (integrals.is_w[s]
                              * surface.boundary_source.value(o, g))
            value -= dot * local_sum
        return value


class StrongRBFSweep(SweepOperator):
    """Collocation sweep at the weight-function centers."""

    def __init__(self, transport, options):
        spatial = transport.spatial
        self.dependency = spatial.cross_section_dependency
        self._basis_sigma_t = np.array(
            [b.material.sigma_t[0] for b in spatial.basis_functions])
        positions = np.array([w.position for w in spatial.weight_functions])
        on_boundary = spatial.solid.boundary_distance(positions) < GEOMETRIC_TOLERANCE
        self._on_surfaces = [
            [s for s in spatial.weight(i).boundary_surfaces
             if s.distance(spatial.weight(i).position)[0] < GEOMETRIC_TOLERANCE]
            if on_boundary[i] else []
            for i in range(spatial.number_of_points)]
        super().__init__(transport, options)

    def incoming_surface(self, i, direction):
        """First surface through which ``direction`` enters at point i."""
        for surface in self._on_surfaces[i]:
            if surface.normal_dot(direction) < 0:
                return surface
        return None

    def get_matrix_row(self, i, o, g):
        weight = self.spatial.weight(i)
        values = weight.values
        direction = self.angular.direction(o)

        if self.incoming_surface(i, direction) is not None:
            return weight.basis_function_indices, values.v_b.copy()

        if self.dependency == CrossSectionDependency.BASIS:
            sigma_t = self._basis_sigma_t[weight.basis_function_indices, g]
        else:
            sigma_t = weight.point_material.sigma_t[0, g]
        row = values.v_db @ direction + sigma_t * values.v_b
        return weight.basis_function_indices, row

    def get_rhs(self, i, o, g, x, include_boundary_source):
        weight = self.spatial.weight(i)
        direction = self.angular.direction(o)
        surface = self.incoming_surface(i, direction)
        if surface is None:
            return x[self.transport.psi_index(i, o, g)]

        value = self.reflected_flux(i, o, g, x, surface, weight.values.v_b)
        if include_boundary_source:
            value += surface.boundary_source.value(o, g)
        return value


class BoundarySourceToggle(VectorOperator):
    """Apply a sweep with boundary sources switched on or off."""

    def __init__(self, include_boundary_source, sweep):
        self.include_boundary_source = include_boundary_source
        self.sweep = sweep
        self.row_size = sweep.row_size
        self.column_size = sweep.column_size

    def _apply(self, x):
        return self.sweep.apply(x, include_boundary_source=self.include_boundary_source)
