"""
Scattering, fission and internal-source operators on moment vectors.

Standard operators (phi -> phi), with l(m) the scattering order of
moment m:

    Scattering      q[i, m, g] = sum_g' sigma_s[l(m), g, g'] phi[i, m, g']
    Fission         q[i, 0, g] = sum_g' chi_g nu_g' sigma_f_g' phi[i, 0, g']
                    q[i, m, g] = 0 for m > 0
    InternalSource  q[i, 0, g] = scale_i * s_g   (input ignored)

Scattering types restrict the group coupling: COHERENT keeps g' == g,
INCOHERENT keeps g' != g, FULL keeps both.

Dimensional-moment operators (phi -> phi x ndm) use the raw moments of
un-normalized integrated materials, d fastest in the output:

    SUPGScattering         q[i, m, g, d] = sum_g' sigma_s[d, l, g, g'] phi[i, m, g']
    SUPGFission            q[i, 0, g, d] = sum_g' fission[d, g, g'] phi[i, 0, g']
    SUPGInternalSource     q[i, 0, g, d] = s[d, g]

Basis-weight operators (FULL weighting) sum the pair tables of weight i
over its stencil:

    BasisWeightScattering  q[i, m, g, d] = sum_j sum_g' S[d, j, l, g, g'] phi[j, m, g']
    BasisWeightFission     q[i, 0, g, d] = sum_j sum_g' F[d, j, g, g'] phi[j, 0, g']
    BasisWeightInternalSource
"""

import numpy as np

from ..config import ScatteringType
from .moments import number_of_dimensional_moments
from .vector_operator import VectorOperator


def _scattering_stack(materials, number_of_moments, scattering_indices,
                      scattering_type, ndm=1):
    """sigma_s per (point, dimensional moment, angular moment, to, from)."""
    n = len(materials)
    ng = materials[0].number_of_groups
    stack = np.zeros((n, ndm, number_of_moments, ng, ng))
    for i, material in enumerate(materials):
        nl = material.number_of_scattering_moments
        for m, l in enumerate(scattering_indices):
            if l < nl:
                stack[i, :, m] = material.sigma_s[:ndm, l]
    if scattering_type == ScatteringType.COHERENT:
        stack *= np.eye(ng)
    elif scattering_type == ScatteringType.INCOHERENT:
        stack *= 1.0 - np.eye(ng)
    return stack


class Scattering(VectorOperator):
    """
    Pointwise group-to-group scattering.

    Parameters
    ----------
    transport : TransportDiscretization
    materials : sequence of Material
        Material applied at each point.
    scattering_type : ScatteringType
    """

    def __init__(self, transport, materials,
                 scattering_type=ScatteringType.FULL):
        self.transport = transport
        self.row_size = self.column_size = transport.phi_size
        self.scattering_type = scattering_type
        self.sigma_s = _scattering_stack(
            materials, transport.number_of_moments,
            transport.angular.scattering_indices, scattering_type)[:, 0]

    def _apply(self, x):
        t = self.transport
        phi = x.reshape(t.number_of_points, t.number_of_moments,
                        t.number_of_groups)
        return np.einsum('imab,imb->ima', self.sigma_s, phi).ravel()


class Fission(VectorOperator):
    """Pointwise isotropic fission source.

    Parameters
    ----------
    transport : TransportDiscretization
    materials : sequence of Material
    """

    def __init__(self, transport, materials):
        self.transport = transport
        self.row_size = self.column_size = transport.phi_size
        self.fission = np.array([m.fission[0] for m in materials])

    def _apply(self, x):
        t = self.transport
        phi = x.reshape(t.number_of_points, t.number_of_moments,
                        t.number_of_groups)
        result = np.zeros_like(phi)
        result[:, 0, :] = np.einsum('iab,ib->ia', self.fission, phi[:, 0, :])
        return result.ravel()


class InternalSource(VectorOperator):
    """Isotropic internal source, independent of the input.

    Parameters
    ----------
    transport : TransportDiscretization
    materials : sequence of Material
    scales : array_like, shape (n,) or None
        Per-point multiplier (e.g. the weight integral ``iv_w``).
    """

    def __init__(self, transport, materials, scales=None):
        self.transport = transport
        self.row_size = self.column_size = transport.phi_size
        source = np.array([m.internal_source[0] for m in materials])
        if scales is not None:
            source = source * np.asarray(scales, dtype=np.float64)[:, None]
        self.source = np.zeros((transport.number_of_points,
                                transport.number_of_moments,
                                transport.number_of_groups))
        self.source[:, 0, :] = source

    def _apply(self, x):
        return self.source.ravel().copy()


class SUPGScattering(VectorOperator):
    """Scattering with raw dimensional-moment cross sections."""

    def __init__(self, transport, materials,
                 scattering_type=ScatteringType.FULL):
        self.transport = transport
        self.ndm = number_of_dimensional_moments(transport)
        self.row_size = transport.phi_size * self.ndm
        self.column_size = transport.phi_size
        self.sigma_s = _scattering_stack(
            materials, transport.number_of_moments,
            transport.angular.scattering_indices, scattering_type, self.ndm)

    def _apply(self, x):
        t = self.transport
        phi = x.reshape(t.number_of_points, t.number_of_moments,
                        t.number_of_groups)
        return np.einsum('idmab,imb->imad', self.sigma_s, phi).ravel()


class SUPGFission(VectorOperator):
    """Fission with raw dimensional-moment cross sections."""

    def __init__(self, transport, materials):
        self.transport = transport
        self.ndm = number_of_dimensional_moments(transport)
        self.row_size = transport.phi_size * self.ndm
        self.column_size = transport.phi_size
        self.fission = np.array([m.fission[:self.ndm] for m in materials])

    def _apply(self, x):
        t = self.transport
        phi = x.reshape(t.number_of_points, t.number_of_moments,
                        t.number_of_groups)
        result = np.zeros((t.number_of_points, t.number_of_moments,
                           t.number_of_groups, self.ndm))
        result[:, 0] = np.einsum('idab,ib->iad', self.fission, phi[:, 0, :])
        return result.ravel()


class SUPGInternalSource(VectorOperator):
    """Internal source with raw dimensional moments, input ignored."""

    def __init__(self, transport, materials):
        self.transport = transport
        self.ndm = number_of_dimensional_moments(transport)
        self.row_size = transport.phi_size * self.ndm
        self.column_size = transport.phi_size
        self.source = np.zeros((transport.number_of_points,
                                transport.number_of_moments,
                                transport.number_of_groups, self.ndm))
        for i, material in enumerate(materials):
            self.source[i, 0] = material.internal_source[:self.ndm].T

    def _apply(self, x):
        return self.source.ravel().copy()


class BasisWeightScattering(VectorOperator):
    """Scattering from per-(basis, weight) integrated cross sections."""

    def __init__(self, transport, scattering_type=ScatteringType.FULL):
        self.transport = transport
        spatial = transport.spatial
        self.ndm = number_of_dimensional_moments(transport)
        self.row_size = transport.phi_size * self.ndm
        self.column_size = transport.phi_size

        ng = transport.number_of_groups
        indices = transport.angular.scattering_indices
        self.stencils = []
        self.sigma_s = []
        for i in range(transport.number_of_points):
            weight = spatial.weight(i)
            tables = weight.basis_weight_material.sigma_s
            nl = tables.shape[2]
            sigma = np.zeros((self.ndm, tables.shape[1], len(indices), ng, ng))
            for m, l in enumerate(indices):
                if l < nl:
                    sigma[:, :, m] = tables[:, :, l]
            if scattering_type == ScatteringType.COHERENT:
                sigma *= np.eye(ng)
            elif scattering_type == ScatteringType.INCOHERENT:
                sigma *= 1.0 - np.eye(ng)
            self.stencils.append(weight.basis_function_indices)
            self.sigma_s.append(sigma)

    def _apply(self, x):
        t = self.transport
        phi = x.reshape(t.number_of_points, t.number_of_moments,
                        t.number_of_groups)
        result = np.empty((t.number_of_points, t.number_of_moments,
                           t.number_of_groups, self.ndm))
        for i, (stencil, sigma) in enumerate(zip(self.stencils, self.sigma_s)):
            result[i] = np.einsum('djmab,jmb->mad', sigma, phi[stencil])
        return result.ravel()


class BasisWeightFission(VectorOperator):
    """Fission from per-(basis, weight) integrated cross sections."""

    def __init__(self, transport):
        self.transport = transport
        spatial = transport.spatial
        self.ndm = number_of_dimensional_moments(transport)
        self.row_size = transport.phi_size * self.ndm
        self.column_size = transport.phi_size
        self.stencils = []
        self.fission = []
        for i in range(transport.number_of_points):
            weight = spatial.weight(i)
            self.stencils.append(weight.basis_function_indices)
            self.fission.append(weight.basis_weight_material.fission)

    def _apply(self, x):
        t = self.transport
        phi = x.reshape(t.number_of_points, t.number_of_moments,
                        t.number_of_groups)
        result = np.zeros((t.number_of_points, t.number_of_moments,
                           t.number_of_groups, self.ndm))
        for i, (stencil, fission) in enumerate(zip(self.stencils, self.fission)):
            result[i, 0] = np.einsum('djab,jb->ad', fission, phi[stencil, 0, :])
        return result.ravel()


class BasisWeightInternalSource(VectorOperator):
    """Weight-moment integral of the internal source, input ignored."""

    def __init__(self, transport):
        self.transport = transport
        spatial = transport.spatial
        self.ndm = number_of_dimensional_moments(transport)
        self.row_size = transport.phi_size * self.ndm
        self.column_size = transport.phi_size
        self.source = np.zeros((transport.number_of_points,
                                transport.number_of_moments,
                                transport.number_of_groups, self.ndm))
        for i in range(transport.number_of_points):
            material = spatial.weight(i).basis_weight_material
            self.source[i, 0] = material.internal_source.T

    def _apply(self, x):
        return self.source.ravel().copy()
