"""
Tests for the discretization factory and weight-function integration.
"""

import numpy as np
import pytest

from meshless.assembly.weight_function_integration import WeightFunctionIntegration
from meshless.config import (BasisType, Discretization,
                             WeakSpatialDiscretizationOptions, WeightingMethod)
from meshless.discretization.factory import (WeakSpatialDiscretizationFactory,
                                             cartesian_points, find_neighbors)
from meshless.discretization.points import PointType, WeightFunction
from meshless.exceptions import ConfigurationError, InvariantError
from meshless.geometry.solid import BoxGeometry
from meshless.geometry.surfaces import BoundarySource
from meshless.materials.material import Material

from conftest import uniform_material


def build_spatial(limits, num_points, options=None, basis_type=BasisType.MLS,
                  material_function=None, boundary=None):
    options = options or WeakSpatialDiscretizationOptions()
    solid = BoxGeometry(limits, boundary or BoundarySource.vacuum(1))
    factory = WeakSpatialDiscretizationFactory(solid, options)
    return factory.get_simple_discretization(
        num_points, material_function or uniform_material(sigma_t=2.0, sigma_s=0.5,
                                                          source=3.0),
        basis_type=basis_type)


@pytest.fixture
def slab_mls():
    return build_spatial([[0.0, 1.0]], 7)


@pytest.fixture
def square_mls():
    return build_spatial([[0.0, 1.0], [0.0, 1.0]], 4)


# =============================================================================
# Factory
# =============================================================================

class TestFactory:

    def test_cartesian_points_include_faces(self):
        points, intervals = cartesian_points([[0.0, 1.0], [0.0, 2.0]], [3, 5])
        assert points.shape == (15, 2)
        np.testing.assert_allclose(intervals, [0.5, 0.5])
        assert points.min(axis=0).tolist() == [0.0, 0.0]
        assert points.max(axis=0).tolist() == [1.0, 2.0]

    def test_neighbors_by_support_overlap(self):
        positions = np.array([[0.0], [1.0], [3.0]])
        radii = np.array([0.6, 0.6, 0.6])
        neighbors = find_neighbors(positions, radii, radii)
        assert neighbors == [[0, 1], [0, 1], [2]]

    def test_stencils_sorted_and_symmetric(self, slab_mls):
        n = slab_mls.number_of_points
        for i in range(n):
            indices = slab_mls.weight(i).basis_function_indices
            assert np.all(np.diff(indices) > 0)
            for j in indices:
                assert i in slab_mls.weight(j).basis_function_indices

    def test_boundary_bases(self, slab_mls):
        # Support radius 3h reaches a face from the first and last three points
        boundary = slab_mls.boundary_basis_indices.tolist()
        assert {0, 1, 2, 4, 5, 6} <= set(boundary)
        for k, j in enumerate(boundary):
            assert slab_mls.boundary_index(j) == k
            assert slab_mls.basis(j).point_type == PointType.BOUNDARY

    def test_interior_basis(self):
        spatial = build_spatial([[0.0, 1.0]], 11)
        assert spatial.basis(5).point_type == PointType.INTERIOR
        assert spatial.boundary_index(5) == -1
        assert 5 not in spatial.boundary_basis_indices

    def test_points_outside_geometry_rejected(self):
        solid = BoxGeometry([[0.0, 1.0]], BoundarySource.vacuum(1))
        factory = WeakSpatialDiscretizationFactory(
            solid, WeakSpatialDiscretizationOptions())
        with pytest.raises(ConfigurationError):
            factory.get_discretization(np.array([[0.0], [1.5]]), 0.5,
                                       uniform_material())

    def test_invalid_options_rejected_before_integration(self):
        options = WeakSpatialDiscretizationOptions(weighting=WeightingMethod.FLUX)
        with pytest.raises(ConfigurationError):
            build_spatial([[0.0, 1.0]], 5, options=options)

    def test_strong_form_is_not_integrated(self):
        options = WeakSpatialDiscretizationOptions(
            discretization=Discretization.STRONG, weighting=WeightingMethod.POINT)
        spatial = build_spatial([[0.0, 1.0]], 5, options=options)
        assert spatial.integration_mesh is None
        assert not spatial.weight(0).integrated
        with pytest.raises(InvariantError):
            spatial.weight(0).integrals


# =============================================================================
# Integral tables
# =============================================================================

class TestIntegrals:

    def test_galerkin_rbf_mass_matrix_is_symmetric(self):
        spatial = build_spatial([[0.0, 1.0]], 7, basis_type=BasisType.RBF)
        for i in range(spatial.number_of_points):
            wi = spatial.weight(i)
            for k, j in enumerate(wi.basis_function_indices):
                wj = spatial.weight(j)
                assert wi.integrals.iv_b_w[k] == pytest.approx(
                    wj.integrals.iv_b_w[wj.local_basis_index(i)], rel=1e-10)

    @pytest.mark.parametrize("fixture", ["slab_mls", "square_mls"])
    def test_partition_of_unity(self, fixture, request):
        spatial = request.getfixturevalue(fixture)
        for weight in spatial.weight_functions:
            integrals = weight.integrals
            assert integrals.iv_b_w.sum() == pytest.approx(integrals.iv_w[0],
                                                           rel=1e-9)
            np.testing.assert_allclose(integrals.iv_db_w.sum(axis=0), 0.0,
                                       atol=1e-9)
            for s in range(weight.number_of_boundary_surfaces):
                assert integrals.is_b_w[s].sum() == pytest.approx(
                    integrals.is_w[s], rel=1e-9, abs=1e-14)

    @pytest.mark.parametrize("fixture, tolerance", [("slab_mls", 1e-8),
                                                    ("square_mls", 1e-4)])
    def test_divergence_theorem(self, fixture, tolerance, request):
        spatial = request.getfixturevalue(fixture)
        for weight in spatial.weight_functions:
            integrals = weight.integrals
            flux = np.zeros(weight.dimension)
            for s, surface in enumerate(weight.boundary_surfaces):
                flux += integrals.is_w[s] * surface.normal_vector
            np.testing.assert_allclose(integrals.iv_dw, flux, atol=tolerance)

    def test_tables_are_read_only(self, slab_mls):
        integrals = slab_mls.weight(0).integrals
        with pytest.raises(ValueError):
            integrals.iv_w[0] = 1.0

    def test_weight_material_of_uniform_medium(self, slab_mls):
        for weight in slab_mls.weight_functions:
            material = weight.material
            assert material.sigma_t[0, 0] == pytest.approx(2.0)
            assert material.sigma_s[0, 0, 0, 0] == pytest.approx(0.5)
            assert material.internal_source[0, 0] == pytest.approx(3.0)

    def test_supg_material_keeps_raw_moments(self):
        options = WeakSpatialDiscretizationOptions(include_supg=True)
        spatial = build_spatial([[0.0, 1.0]], 7, options=options)
        for weight in spatial.weight_functions:
            material = weight.material
            integrals = weight.integrals
            assert material.sigma_t.shape == (2, 1)
            norm = np.concatenate([integrals.iv_w, integrals.iv_dw])
            np.testing.assert_allclose(material.norm, norm, rtol=1e-9, atol=1e-12)
            np.testing.assert_allclose(material.sigma_t[:, 0], 2.0 * norm,
                                       rtol=1e-9, atol=1e-12)

    def test_full_weighting_pair_tables(self):
        options = WeakSpatialDiscretizationOptions(weighting=WeightingMethod.FULL)
        spatial = build_spatial([[0.0, 1.0]], 7, options=options)
        for weight in spatial.weight_functions:
            tables = weight.basis_weight_material
            np.testing.assert_allclose(tables.sigma_t[0, :, 0],
                                       2.0 * weight.integrals.iv_b_w, rtol=1e-9)

    def test_two_region_material_is_between_regions(self):
        def material(position):
            if position[0] < 0.5:
                return Material.from_groups(0, sigma_t=[1.0])
            return Material.from_groups(1, sigma_t=[3.0])

        # Stencils of the end weights do not reach the interface at 0.5
        spatial = build_spatial([[0.0, 1.0]], 17, material_function=material)
        sigma = [w.material.sigma_t[0, 0] for w in spatial.weight_functions]
        assert sigma[0] == pytest.approx(1.0)
        assert sigma[-1] == pytest.approx(3.0)
        assert 1.0 < sigma[8] < 3.0


# =============================================================================
# Integration lifecycle
# =============================================================================

class TestIntegrationLifecycle:

    @pytest.fixture
    def engine(self, slab_mls):
        return WeightFunctionIntegration(slab_mls.weight_functions,
                                         slab_mls.basis_functions,
                                         slab_mls.integration_mesh)

    def test_recomputation_is_identical(self, slab_mls, engine):
        results = engine.compute_integrals()
        for weight, result in zip(slab_mls.weight_functions, results):
            assert result.integrals.array_equal(weight.integrals)
            assert result.material.array_equal(weight.material)

    def test_threaded_integration_is_identical(self, slab_mls):
        engine = WeightFunctionIntegration(slab_mls.weight_functions,
                                           slab_mls.basis_functions,
                                           slab_mls.integration_mesh,
                                           num_threads=3)
        results = engine.compute_integrals()
        for weight, result in zip(slab_mls.weight_functions, results):
            assert result.integrals.array_equal(weight.integrals)

    def test_second_integration_rejected(self, slab_mls, engine):
        with pytest.raises(InvariantError):
            engine.perform_integration()

    def test_set_integrals_once(self, slab_mls, engine):
        weight = slab_mls.weight(0)
        result = engine.integrate_weight(0)
        with pytest.raises(InvariantError):
            weight.set_integrals(result.integrals, result.material)


# =============================================================================
# Failed integration passes
# =============================================================================

def copy_weights(spatial, drop=None):
    """Unintegrated copies of the weight functions.

    ``drop`` maps a weight index to a basis index removed from its stencil.
    """
    drop = drop or {}
    weights = []
    for w in spatial.weight_functions:
        bases = [b for b in w.basis_functions if b.index != drop.get(w.index)]
        weights.append(WeightFunction(w.index, w.options, w.function, bases,
                                      w.boundary_surfaces, w.point_material))
    return weights


class TestFailedIntegration:

    def test_stencil_missing_overlapping_basis(self, slab_mls):
        weights = copy_weights(slab_mls, drop={3: 4})
        engine = WeightFunctionIntegration(weights, slab_mls.basis_functions,
                                           slab_mls.integration_mesh)
        with pytest.raises(InvariantError,
                           match=r"weight function 3: basis 4 is nonzero on cell \d+"):
            engine.perform_integration()
        assert not any(w.integrated for w in weights)

    def test_invalid_result_leaves_every_weight_unintegrated(self, slab_mls,
                                                             monkeypatch):
        weights = copy_weights(slab_mls)
        engine = WeightFunctionIntegration(weights, slab_mls.basis_functions,
                                           slab_mls.integration_mesh)
        results = engine.compute_integrals()
        results[-1].integrals.iv_w[0] = np.nan
        monkeypatch.setattr(engine, "compute_integrals", lambda: results)

        with pytest.raises(InvariantError, match="non-finite"):
            engine.perform_integration()
        assert not any(w.integrated for w in weights)

    def test_clean_copies_integrate(self, slab_mls):
        weights = copy_weights(slab_mls)
        WeightFunctionIntegration(weights, slab_mls.basis_functions,
                                  slab_mls.integration_mesh).perform_integration()
        for copy, weight in zip(weights, slab_mls.weight_functions):
            assert copy.integrated
            assert copy.integrals.array_equal(weight.integrals)
