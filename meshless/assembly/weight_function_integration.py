"""
Weight-Function Integration Engine
==================================

Fills the integral tables and the integrated material of every weight
function by Gauss-Legendre quadrature over a background integration mesh.
This is done once, before any transport sweep.

For weight function w_i with local stencil {b_j}, on every cell the weight
overlaps and at every quadrature point (x, q):

    iv_w      += q * w(x)
    iv_dw     += q * grad w(x)
    iv_b_w    += q * b_j(x) * w(x)
    iv_b_dw   += q * b_j(x) * grad w(x)
    iv_db_w   += q * grad b_j(x) * w(x)
    iv_db_dw  += q * grad b_j(x) (x) grad w(x)

and on every boundary surface cell:

    is_w[s]   += q * w(x)
    is_b_w[s] += q * b_j(x) * w(x)

Material data are accumulated in the dimensional-moment basis
W_0 = w, W_d = dw/dx_d (the latter only with SUPG):

    sigma[d] += q * W_d(x) * sum_j b_j(x) * sigma_j
    norm[d]  += q * W_d(x) * sum_j b_j(x)

and divided by ``norm`` when the weight's materials are normalized
(no SUPG). Volume and surface sums are kept in separate buffers and only
combined into an Integrals record once every cell has been visited.

Weighting methods:
    POINT   weight point's own material (raw moments use iv_w, iv_dw)
    WEIGHT  basis-interpolated material, as above
    FLUX    as WEIGHT with an extra scalar-flux weight per group
    BASIS   no accumulation; the sweep reads basis-point materials
    FULL    per-(basis, weight) tables with Shepard-interpolated sigma(x)

The loop runs over weight functions, so each worker writes only its own
tables; a thread pool is used when ``num_threads > 1``.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import WeightingMethod
from ..discretization.points import Integrals
from ..exceptions import InvariantError
from ..materials.material import BasisWeightMaterial, Material

logger = logging.getLogger(__name__)


@dataclass
class MaterialData:
    """Per-weight accumulation buffers in the dimensional-moment basis."""
    sigma_t: np.ndarray
    sigma_s: np.ndarray
    nu: np.ndarray
    sigma_f: np.ndarray
    chi: np.ndarray
    fission: np.ndarray
    internal_source: np.ndarray
    norm: np.ndarray
    flux_norm: np.ndarray

    @classmethod
    def zeros(cls, ndm, ng, nl):
        return cls(
            sigma_t=np.zeros((ndm, ng)),
            sigma_s=np.zeros((ndm, nl, ng, ng)),
            nu=np.zeros((ndm, ng)),
            sigma_f=np.zeros((ndm, ng)),
            chi=np.zeros((ndm, ng)),
            fission=np.zeros((ndm, ng, ng)),
            internal_source=np.zeros((ndm, ng)),
            norm=np.zeros(ndm),
            flux_norm=np.zeros((ndm, ng)),
        )


@dataclass
class IntegrationResult:
    """Tables computed for one weight function, ready for ``set_integrals``."""
    integrals: Integrals
    material: Material
    basis_weight_material: Optional[BasisWeightMaterial] = None

    def array_equal(self, other):
        if not self.integrals.array_equal(other.integrals):
            return False
        if not self.material.array_equal(other.material):
            return False
        if self.basis_weight_material is None:
            return other.basis_weight_material is None
        return (other.basis_weight_material is not None
                and self.basis_weight_material.array_equal(
                    other.basis_weight_material))


@dataclass
class MaterialStack:
    """Physical cross sections of a list of materials as stacked arrays.

    The leading axis is the position in the list. Scattering orders are
    padded with zeros to the largest order present.
    """
    sigma_t: np.ndarray
    sigma_s: np.ndarray
    nu: np.ndarray
    sigma_f: np.ndarray
    chi: np.ndarray
    fission: np.ndarray
    internal_source: np.ndarray

    FIELDS = ('sigma_t', 'sigma_s', 'nu', 'sigma_f', 'chi', 'fission',
              'internal_source')

    @classmethod
    def from_materials(cls, materials):
        materials = list(materials)
        if not materials:
            raise ValueError("material stack needs at least one material")
        ng = materials[0].number_of_groups
        nl = max(m.number_of_scattering_moments for m in materials)

        n = len(materials)
        stack = cls(
            sigma_t=np.zeros((n, ng)),
            sigma_s=np.zeros((n, nl, ng, ng)),
            nu=np.zeros((n, ng)),
            sigma_f=np.zeros((n, ng)),
            chi=np.zeros((n, ng)),
            fission=np.zeros((n, ng, ng)),
            internal_source=np.zeros((n, ng)),
        )
        for k, m in enumerate(materials):
            if m.number_of_groups != ng:
                raise InvariantError(
                    f"material {m.index} has {m.number_of_groups} groups, "
                    f"expected {ng}"
                )
            stack.sigma_t[k] = m.sigma_t[0]
            stack.sigma_s[k, :m.number_of_scattering_moments] = m.sigma_s[0]
            stack.nu[k] = m.nu[0]
            stack.sigma_f[k] = m.sigma_f[0]
            stack.chi[k] = m.chi[0]
            stack.fission[k] = m.fission[0]
            stack.internal_source[k] = m.internal_source[0]
        return stack

    @property
    def number_of_groups(self):
        return self.sigma_t.shape[1]

    @property
    def number_of_scattering_moments(self):
        return self.sigma_s.shape[1]

    def take(self, indices):
        """Sub-stack restricted to ``indices``."""
        return MaterialStack(**{name: getattr(self, name)[indices]
                                for name in self.FIELDS})


class WeightFunctionIntegration:
    """
    Integration engine for a set of weight and basis functions.

    Parameters
    ----------
    weight_functions : sequence of WeightFunction
    basis_functions : sequence of BasisFunction
        Indexed by global basis index.
    mesh : IntegrationMesh
    num_threads : int
        Worker threads for the point-parallel loop.
    """

    def __init__(self, weight_functions, basis_functions, mesh, num_threads=1):
        self.weight_functions = list(weight_functions)
        self.basis_functions = list(basis_functions)
        self.mesh = mesh
        self.num_threads = num_threads
        self.number_of_basis_functions = len(self.basis_functions)

        materials = [b.material for b in self.basis_functions]
        if any(m is None for m in materials):
            raise InvariantError("every basis function needs a material")
        self.basis_materials = MaterialStack.from_materials(materials)
        self.number_of_groups = self.basis_materials.number_of_groups
        self.number_of_scattering_moments = (
            self.basis_materials.number_of_scattering_moments)

    # -----------------------------------------------------------------
    #  Public interface
    # -----------------------------------------------------------------

    def compute_integrals(self):
        """Integrate every weight function without attaching the results.

        Returns
        -------
        results : list of IntegrationResult
            One entry per weight function, in index order.

        Raises
        ------
        InvariantError
            If a stencil is inconsistent with the functions present on a
            cell. No weight function is modified.
        """
        n = len(self.weight_functions)
        if self.num_threads > 1:
            with ThreadPoolExecutor(max_workers=self.num_threads) as executor:
                return list(executor.map(self.integrate_weight, range(n)))
        return [self.integrate_weight(i) for i in range(n)]

    def perform_integration(self):
        """Integrate every weight function and push the tables into it."""
        t_start = time.time()
        logger.info("Integrating %d weight functions over %d cells and %d "
                    "surface cells", len(self.weight_functions),
                    self.mesh.number_of_cells, self.mesh.number_of_surfaces)

        results = self.compute_integrals()
        # All results are checked before any weight is updated
        for weight, result in zip(self.weight_functions, results):
            weight.check_integrals(result.integrals, result.basis_weight_material)
        for weight, result in zip(self.weight_functions, results):
            weight.set_integrals(result.integrals, result.material,
                                 result.basis_weight_material)

        logger.info("Integration finished in %.3f s", time.time() - t_start)
        return results

    # -----------------------------------------------------------------
    #  Per-weight integration
    # -----------------------------------------------------------------

    def integrate_weight(self, i):
        weight = self.weight_functions[i]
        options = weight.options
        nb = weight.number_of_basis_functions
        ns = weight.number_of_boundary_surfaces
        dim = weight.dimension
        ndm = weight.dimensional_moments.number_of_dimensional_moments
        ng = self.number_of_groups
        nl = self.number_of_scattering_moments
        weighting = options.weighting

        stencil_materials = self.basis_materials.take(weight.basis_function_indices)

        volume = Integrals.zeros(0, nb, dim)
        surface = Integrals.zeros(ns, nb, 0)
        data = MaterialData.zeros(ndm, ng, nl)
        full = None
        if weighting == WeightingMethod.FULL:
            full = BasisWeightMaterial(
                sigma_t=np.zeros((ndm, nb, ng)),
                sigma_s=np.zeros((ndm, nb, nl, ng, ng)),
                fission=np.zeros((ndm, nb, ng, ng)),
                internal_source=np.zeros((ndm, ng)),
            )

        for cell in self.mesh.weight_cells(i):
            self._add_cell(weight, cell, volume, data, full, stencil_materials)

        for cell in self.mesh.weight_surfaces(i):
            self._add_surface(weight, cell, surface)

        integrals = Integrals(
            is_w=surface.is_w,
            is_b_w=surface.is_b_w,
            iv_w=volume.iv_w,
            iv_dw=volume.iv_dw,
            iv_b_w=volume.iv_b_w,
            iv_b_dw=volume.iv_b_dw,
            iv_db_w=volume.iv_db_w,
            iv_db_dw=volume.iv_db_dw,
        )
        material = self._reduce_material(weight, integrals, data)
        return IntegrationResult(integrals=integrals, material=material,
                                 basis_weight_material=full)

    def _cell_bases(self, weight, cell, x, w_val):
        """Values and gradients of the stencil bases present on a cell.

        Returns local stencil indices, values (nl, nq), gradients (nl, nq, dim).
        """
        local_indices = []
        values = []
        gradients = []
        weight_nonzero = w_val != 0
        for j in cell.basis_indices:
            basis = self.basis_functions[j]
            local = weight.local_basis_index(j)
            if local < 0:
                if not np.any(weight_nonzero):
                    continue
                b_val = basis.value(x[weight_nonzero])
                if np.any(b_val != 0):
                    raise InvariantError(
                        f"weight function {weight.index}: basis {j} is nonzero "
                        f"on cell {cell.index} but is not in the stencil "
                        f"{weight.basis_function_indices.tolist()}"
                    )
                continue
            if local >= weight.number_of_basis_functions:
                raise InvariantError(
                    f"weight function {weight.index}: local index {local} of "
                    f"basis {j} exceeds stencil size "
                    f"{weight.number_of_basis_functions}"
                )
            if basis.function is weight.function:
                b_val, b_grad = None, None
            else:
                b_val, b_grad = basis.value_and_gradient(x)
            local_indices.append(local)
            values.append(b_val)
            gradients.append(b_grad)
        return local_indices, values, gradients

    def _add_cell(self, weight, cell, volume, data, full, stencil_materials):
        x = cell.points
        qw = cell.weights
        w_val, w_grad = weight.value_and_gradient(x)
        if not (np.any(w_val) or np.any(w_grad)):
            return

        local, values, gradients = self._cell_bases(weight, cell, x, w_val)
        values = [w_val if v is None else v for v in values]
        gradients = [w_grad if g is None else g for g in gradients]

        # --- Weight-only terms ---
        qw_w = qw * w_val
        qw_dw = qw[:, None] * w_grad
        volume.iv_w[0] += np.sum(qw_w)
        volume.iv_dw += np.sum(qw_dw, axis=0)

        if not local:
            return
        local = np.array(local, dtype=np.int64)
        b_val = np.array(values)
        b_grad = np.array(gradients)

        # --- Basis x weight terms ---
        volume.iv_b_w[local] += b_val @ qw_w
        volume.iv_b_dw[local] += b_val @ qw_dw
        volume.iv_db_w[local] += np.einsum('jqd,q->jd', b_grad, qw_w)
        volume.iv_db_dw[local] += np.einsum('jqa,qb->jab', b_grad, qw_dw)

        # --- Material moments ---
        moments = weight.dimensional_moments.weighting(w_val, w_grad) * qw
        weighting = weight.options.weighting
        if weighting in (WeightingMethod.WEIGHT, WeightingMethod.FULL):
            self._add_volume_material(moments, b_val, local, data,
                                      stencil_materials)
        elif weighting == WeightingMethod.FLUX:
            flux = self._get_flux(weight, x)
            self._add_flux_material(moments, b_val, local, flux, data,
                                    stencil_materials)
        if full is not None:
            self._add_basis_weight_material(moments, b_val, local, full,
                                            stencil_materials)

    def _add_volume_material(self, moments, b_val, local, data, stencil):
        # coefficient[d, j] = sum_q q W_d(x_q) b_j(x_q)
        coefficient = moments @ b_val.T
        data.sigma_t += coefficient @ stencil.sigma_t[local]
        data.sigma_s += np.einsum('dj,jlab->dlab', coefficient,
                                  stencil.sigma_s[local])
        data.nu += coefficient @ stencil.nu[local]
        data.sigma_f += coefficient @ stencil.sigma_f[local]
        data.chi += coefficient @ stencil.chi[local]
        data.fission += np.einsum('dj,jab->dab', coefficient,
                                  stencil.fission[local])
        data.internal_source += coefficient @ stencil.internal_source[local]
        data.norm += np.sum(coefficient, axis=1)

    def _add_flux_material(self, moments, b_val, local, flux, data, stencil):
        # coefficient[d, j] plain, flux_coefficient[d, g, j] weighted by phi_g
        coefficient = moments @ b_val.T
        flux_coefficient = np.einsum('dq,qg,jq->dgj', moments, flux, b_val)
        data.sigma_t += np.einsum('dgj,jg->dg', flux_coefficient,
                                  stencil.sigma_t[local])
        data.sigma_s += np.einsum('dbj,jlab->dlab', flux_coefficient,
                                  stencil.sigma_s[local])
        data.nu += np.einsum('dgj,jg->dg', flux_coefficient, stencil.nu[local])
        data.sigma_f += np.einsum('dgj,jg->dg', flux_coefficient,
                                  stencil.sigma_f[local])
        data.fission += np.einsum('dbj,jab->dab', flux_coefficient,
                                  stencil.fission[local])
        data.chi += coefficient @ stencil.chi[local]
        data.internal_source += coefficient @ stencil.internal_source[local]
        data.norm += np.sum(coefficient, axis=1)
        data.flux_norm += np.sum(flux_coefficient, axis=2)

    def _add_basis_weight_material(self, moments, b_val, local, full, stencil):
        # Shepard interpolation of the stencil materials at each point
        total = np.sum(b_val, axis=0)
        inverse = np.zeros_like(total)
        nonzero = total != 0
        inverse[nonzero] = 1.0 / total[nonzero]
        shepard = b_val * inverse

        sigma_t_x = shepard.T @ stencil.sigma_t[local]
        sigma_s_x = np.einsum('jq,jlab->qlab', shepard, stencil.sigma_s[local])
        fission_x = np.einsum('jq,jab->qab', shepard, stencil.fission[local])
        source_x = shepard.T @ stencil.internal_source[local]

        full.sigma_t[:, local] += np.einsum('dq,jq,qg->djg', moments, b_val,
                                            sigma_t_x)
        full.sigma_s[:, local] += np.einsum('dq,jq,qlab->djlab', moments, b_val,
                                            sigma_s_x)
        full.fission[:, local] += np.einsum('dq,jq,qab->djab', moments, b_val,
                                            fission_x)
        full.internal_source += moments @ source_x

    def _get_flux(self, weight, x):
        flux_function = weight.options.flux
        if flux_function is None:
            raise InvariantError(
                f"weight function {weight.index}: FLUX weighting without a "
                f"flux function"
            )
        flux = np.empty((x.shape[0], self.number_of_groups))
        for q, position in enumerate(x):
            for g in range(self.number_of_groups):
                flux[q, g] = flux_function(0, g, position)
        return flux

    def _add_surface(self, weight, cell, surface):
        s = weight.local_surface_index(cell.surface_index)
        x = cell.points
        w_val = weight.function.value(x)
        if s < 0:
            if np.any(w_val != 0):
                raise InvariantError(
                    f"weight function {weight.index}: nonzero on boundary "
                    f"surface {cell.surface_index} that is not among its "
                    f"local surfaces"
                )
            return
        qw_w = cell.weights * w_val
        surface.is_w[s] += np.sum(qw_w)

        for j in cell.basis_indices:
            local = weight.local_basis_index(j)
            if local < 0:
                continue
            basis = self.basis_functions[j]
            b_val = w_val if basis.function is weight.function else basis.value(x)
            surface.is_b_w[s, local] += b_val @ qw_w

    # -----------------------------------------------------------------
    #  Normalization
    # -----------------------------------------------------------------

    def _reduce_material(self, weight, integrals, data):
        options = weight.options
        weighting = options.weighting
        index = weight.index

        if weighting in (WeightingMethod.POINT, WeightingMethod.BASIS):
            return self._point_material(weight, integrals)

        if np.any(data.norm == 0):
            raise InvariantError(
                f"weight function {index}: zero material norm {data.norm}"
            )

        if weighting == WeightingMethod.FLUX:
            if np.any(data.flux_norm == 0):
                raise InvariantError(
                    f"weight function {index}: zero flux norm {data.flux_norm}"
                )
            flux_norm = data.flux_norm
            return Material(
                index=index,
                sigma_t=data.sigma_t / flux_norm,
                sigma_s=data.sigma_s / flux_norm[:, None, None, :],
                nu=data.nu / flux_norm,
                sigma_f=data.sigma_f / flux_norm,
                chi=data.chi / data.norm[:, None],
                internal_source=data.internal_source / data.norm[:, None],
                fission=data.fission / flux_norm[:, None, :],
            )

        if options.normalized:
            norm = data.norm
            return Material(
                index=index,
                sigma_t=data.sigma_t / norm[:, None],
                sigma_s=data.sigma_s / norm[:, None, None, None],
                nu=data.nu / norm[:, None],
                sigma_f=data.sigma_f / norm[:, None],
                chi=data.chi / norm[:, None],
                internal_source=data.internal_source / norm[:, None],
                fission=data.fission / norm[:, None, None],
            )

        return Material(
            index=index,
            sigma_t=data.sigma_t,
            sigma_s=data.sigma_s,
            nu=data.nu,
            sigma_f=data.sigma_f,
            chi=data.chi,
            internal_source=data.internal_source,
            fission=data.fission,
            norm=data.norm.copy(),
        )

    def _point_material(self, weight, integrals):
        point = weight.point_material
        if point is None:
            raise InvariantError(
                f"weight function {weight.index}: POINT weighting without a "
                f"point material"
            )
        if weight.options.normalized:
            return point

        # Raw moments of a constant material: sigma * [iv_w, iv_dw]
        norm = np.concatenate([integrals.iv_w, integrals.iv_dw])
        ndm = weight.dimensional_moments.number_of_dimensional_moments
        norm = norm[:ndm]
        return Material(
            index=weight.index,
            sigma_t=norm[:, None] * point.sigma_t[0],
            sigma_s=norm[:, None, None, None] * point.sigma_s[0],
            nu=norm[:, None] * point.nu[0],
            sigma_f=norm[:, None] * point.sigma_f[0],
            chi=norm[:, None] * point.chi[0],
            internal_source=norm[:, None] * point.internal_source[0],
            fission=norm[:, None, None] * point.fission[0],
            norm=norm,
        )
