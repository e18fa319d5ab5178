"""
Angular and spatial moment operators.

Angular (act on every point independently):
    DiscreteToMoment        psi (i, o, g)     -> phi (i, m, g)
    MomentToDiscrete        phi (i, m, g)     -> psi (i, o, g)
    SUPGMomentToDiscrete    q   (i, m, g, d)  -> psi (i, o, g)
        psi[i, o, g] = sum_d c_d(tau_i, Omega_o) sum_m M[o, m] q[i, m, g, d]

Spatial (couple a point to its stencil):
    MomentWeighting         phi_bar_i = sum_j iv_b_w[j] phi_j / norm_i
                            norm_i = 1 when normalized, iv_w otherwise
    DiscreteWeighting       psi_hat_i = sum_j (iv_b_w[j] + tau Omega.iv_b_dw[j]) psi_j
    MomentValue             phi(x_i)  = sum_j v_b[j] phi_j

Vectors follow the layouts of TransportDiscretization; dimensional-moment
vectors put d fastest: ``d + ndm * (g + ng * (m + nm * i))``.
"""

import numpy as np
from scipy.sparse import csr_matrix

from ..assembly.sparse_assembler import assemble_rows
from .vector_operator import VectorOperator


def number_of_dimensional_moments(transport):
    spatial = transport.spatial
    options = getattr(spatial, 'options', None)
    if options is None or not options.include_supg:
        return 1
    return 1 + spatial.dimension


class DiscreteToMoment(VectorOperator):
    """Angular integration with quadrature weights and harmonics."""

    def __init__(self, transport):
        self.transport = transport
        self.row_size = transport.phi_size
        self.column_size = transport.psi_size

    def _apply(self, x):
        t = self.transport
        psi = x.reshape(t.number_of_points, t.number_of_ordinates,
                        t.number_of_groups)
        phi = np.einsum('mo,iog->img', t.angular.discrete_to_moment, psi)
        return phi.ravel()


class MomentToDiscrete(VectorOperator):
    """Harmonic expansion evaluated at every ordinate."""

    def __init__(self, transport):
        self.transport = transport
        self.row_size = transport.psi_size
        self.column_size = transport.phi_size

    def _apply(self, x):
        t = self.transport
        phi = x.reshape(t.number_of_points, t.number_of_moments,
                        t.number_of_groups)
        psi = np.einsum('om,img->iog', t.angular.moment_to_discrete, phi)
        return psi.ravel()


class SUPGMomentToDiscrete(VectorOperator):
    """Moment-to-discrete for dimensional-moment sources."""

    def __init__(self, transport):
        self.transport = transport
        self.ndm = number_of_dimensional_moments(transport)
        self.row_size = transport.psi_size
        self.column_size = transport.phi_size * self.ndm

        angular = transport.angular
        spatial = transport.spatial
        self.coefficients = np.empty((transport.number_of_points,
                                      transport.number_of_ordinates, self.ndm))
        for i in range(transport.number_of_points):
            weight = spatial.weight(i)
            for o in range(transport.number_of_ordinates):
                self.coefficients[i, o] = weight.dimensional_moments.coefficients(
                    weight.tau, angular.direction(o))

    def _apply(self, x):
        t = self.transport
        q = x.reshape(t.number_of_points, t.number_of_moments,
                      t.number_of_groups, self.ndm)
        psi = np.einsum('om,imgd,iod->iog', t.angular.moment_to_discrete, q,
                        self.coefficients)
        return psi.ravel()


class _PointCoupling(VectorOperator):
    """Apply a sparse point-to-point matrix to every (moment, group) column."""

    def __init__(self, transport, matrix, components):
        self.transport = transport
        self.matrix = csr_matrix(matrix)
        self.components = components
        self.row_size = transport.number_of_points * components
        self.column_size = self.row_size

    def _apply(self, x):
        n = self.transport.number_of_points
        return (self.matrix @ x.reshape(n, self.components)).ravel()


class MomentWeighting(_PointCoupling):
    """Weight-function average (or integral) of the basis expansion."""

    def __init__(self, transport):
        spatial = transport.spatial
        n = transport.number_of_points

        def row(i):
            weight = spatial.weight(i)
            integrals = weight.integrals
            norm = 1.0 if weight.options.normalized else integrals.iv_w[0]
            return weight.basis_function_indices, integrals.iv_b_w / norm

        super().__init__(transport, assemble_rows(n, n, row),
                         transport.number_of_moments * transport.number_of_groups)


class MomentValue(_PointCoupling):
    """Basis expansion evaluated at the weight centers."""

    def __init__(self, transport):
        spatial = transport.spatial
        n = transport.number_of_points

        def row(i):
            weight = spatial.weight(i)
            return weight.basis_function_indices, weight.values.v_b

        super().__init__(transport, assemble_rows(n, n, row),
                         transport.number_of_moments * transport.number_of_groups)


class DiscreteWeighting(VectorOperator):
    """Weighted residual of a discrete source given per basis point."""

    def __init__(self, transport):
        self.transport = transport
        self.row_size = self.column_size = transport.psi_size
        spatial = transport.spatial
        angular = transport.angular
        n = transport.number_of_points

        self.matrices = []
        for o in range(transport.number_of_ordinates):
            direction = angular.direction(o)

            def row(i, direction=direction):
                weight = spatial.weight(i)
                integrals = weight.integrals
                values = integrals.iv_b_w.copy()
                if weight.options.include_supg:
                    values += weight.tau * (integrals.iv_b_dw @ direction)
                return weight.basis_function_indices, values

            self.matrices.append(assemble_rows(n, n, row))

    def _apply(self, x):
        t = self.transport
        psi = x.reshape(t.number_of_points, t.number_of_ordinates,
                        t.number_of_groups)
        result = np.empty_like(psi)
        for o, matrix in enumerate(self.matrices):
            result[:, o, :] = matrix @ psi[:, o, :]
        return result.ravel()
