"""
Tests for the transport sweep: reflection, boundary sources, matrix
structure and the XML matrix dump.

A uniform isotropic flux in a pure scatterer (sigma_s = sigma_t) between
specular reflectors is a fixed point of the flux operator for every
weighting method, in the weak and the strong form.
"""

import logging
import xml.etree.ElementTree as ET

import numpy as np
import pytest

from meshless.config import (Discretization, SolverType, SweepOptions,
                             WeakSpatialDiscretizationOptions, WeightingMethod)
from meshless.discretization.angular import AngularDiscretization
from meshless.exceptions import ConvergenceError, InvariantError
from meshless.geometry.solid import BoxGeometry
from meshless.geometry.surfaces import BoundarySource
from meshless.solvers.factory import SolverFactory
from meshless.solvers.sweep import BoundarySourceToggle, StrongRBFSweep, WeakRBFSweep

from conftest import build_transport, uniform_material, uniform_moments


# =============================================================================
# Reflection
# =============================================================================

class TestReflection:

    def test_uniform_flux_is_reflected_unchanged(self, reflective_slab):
        flux = SolverFactory(reflective_slab).get_flux_operator()
        x = uniform_moments(reflective_slab)
        np.testing.assert_allclose(flux.apply(x.copy()), x, rtol=1e-6)

    @pytest.mark.parametrize("weighting, supg", [
        (WeightingMethod.POINT, False),
        (WeightingMethod.WEIGHT, True),
        (WeightingMethod.BASIS, False),
        (WeightingMethod.FULL, False),
        (WeightingMethod.FULL, True),
    ])
    def test_fixed_point_for_every_weighting(self, slab_limits, weighting, supg):
        options = WeakSpatialDiscretizationOptions(weighting=weighting,
                                                   include_supg=supg,
                                                   tau_const=0.1)
        transport = build_transport(slab_limits, 5,
                                    uniform_material(sigma_t=2.0, sigma_s=2.0),
                                    BoundarySource.reflective(1), options=options)
        flux = SolverFactory(transport).get_flux_operator()
        x = uniform_moments(transport)
        np.testing.assert_allclose(flux.apply(x.copy()), x, rtol=1e-6)

    def test_flux_weighting_fixed_point(self, slab_limits):
        options = WeakSpatialDiscretizationOptions(
            weighting=WeightingMethod.FLUX, flux=lambda m, g, x: 1.0 + x[0])
        transport = build_transport(slab_limits, 5,
                                    uniform_material(sigma_t=1.0, sigma_s=1.0),
                                    BoundarySource.reflective(1), options=options)
        flux = SolverFactory(transport).get_flux_operator()
        x = uniform_moments(transport)
        np.testing.assert_allclose(flux.apply(x.copy()), x, rtol=1e-6)

    @pytest.mark.parametrize("weighting", [WeightingMethod.POINT,
                                           WeightingMethod.BASIS])
    def test_strong_fixed_point(self, slab_limits, weighting):
        options = WeakSpatialDiscretizationOptions(
            discretization=Discretization.STRONG, weighting=weighting)
        transport = build_transport(slab_limits, 6,
                                    uniform_material(sigma_t=1.0, sigma_s=1.0),
                                    BoundarySource.reflective(1), options=options)
        factory = SolverFactory(transport)
        assert isinstance(factory.get_sweep(), StrongRBFSweep)
        x = uniform_moments(transport)
        np.testing.assert_allclose(factory.get_flux_operator().apply(x.copy()), x,
                                   rtol=1e-10)

    def test_2d_fixed_point(self):
        transport = build_transport(np.array([[0.0, 1.0], [0.0, 1.0]]), 4,
                                    uniform_material(sigma_t=1.0, sigma_s=1.0),
                                    BoundarySource.reflective(1),
                                    angular=AngularDiscretization.product(2, 2, 4))
        flux = SolverFactory(transport).get_flux_operator()
        x = uniform_moments(transport)
        np.testing.assert_allclose(flux.apply(x.copy()), x, rtol=1e-2)

    def test_augments_hold_boundary_basis_flux(self, reflective_slab):
        sweep = SolverFactory(reflective_slab).get_sweep()
        t = reflective_slab
        rng = np.random.default_rng(2)
        x = np.concatenate([rng.uniform(size=t.psi_size),
                            np.zeros(t.number_of_augments)])
        psi = sweep.apply(x.copy())
        for b, j in enumerate(t.spatial.boundary_basis_indices):
            for o in range(t.number_of_ordinates):
                assert psi[t.augment_index(b, o, 0)] == psi[t.psi_index(j, o, 0)]


# =============================================================================
# Boundary sources and vacuum
# =============================================================================

class TestBoundarySource:

    @pytest.fixture
    def source_slab(self, slab_limits):
        # Unit incoming flux on the left face, vacuum on the right
        left = BoundarySource(np.zeros(1), values=np.ones((4, 1)))
        right = BoundarySource.vacuum(1, index=1)
        return build_transport(slab_limits, 9,
                               uniform_material(sigma_t=1.0, sigma_s=0.0),
                               [left, right])

    def test_toggle_switches_boundary_source(self, source_slab):
        sweep = SolverFactory(source_slab).get_sweep()
        zero = np.zeros(sweep.column_size)
        off = BoundarySourceToggle(False, sweep).apply(zero.copy())
        on = BoundarySourceToggle(True, sweep).apply(zero.copy())
        assert not np.any(off)
        assert np.any(on)

    def test_uncollided_flux_decays(self, source_slab):
        t = source_slab
        source = SolverFactory(t).get_source_operator()
        phi = source.apply(np.zeros(t.phi_size)).reshape(t.number_of_points)
        # Positive-mu ordinates carry the source to the right
        assert phi[0] > phi[t.number_of_points // 2] > phi[-1]
        assert phi[-1] > 0

    def test_vacuum_source_free_slab_is_empty(self, slab_limits):
        transport = build_transport(slab_limits, 5,
                                    uniform_material(sigma_t=1.0, sigma_s=0.5),
                                    BoundarySource.vacuum(1))
        source = SolverFactory(transport).get_source_operator()
        assert transport.number_of_augments == 0
        np.testing.assert_array_equal(source.apply(np.zeros(transport.phi_size)), 0.0)


# =============================================================================
# Matrices
# =============================================================================

class TestSweepMatrices:

    def test_rows_follow_stencils(self, reflective_slab):
        sweep = SolverFactory(reflective_slab).get_sweep()
        assert isinstance(sweep, WeakRBFSweep)
        matrix = sweep.get_matrix(0, 0)
        for i in range(reflective_slab.number_of_points):
            stencil = reflective_slab.spatial.weight(i).basis_function_indices
            np.testing.assert_array_equal(
                np.sort(matrix.indices[matrix.indptr[i]:matrix.indptr[i + 1]]),
                stencil)

    def test_xml_dump_matches_matrix(self, reflective_slab):
        sweep = SolverFactory(reflective_slab).get_sweep()
        node = sweep.save_matrix_as_xml(1, 0)
        matrix = sweep.get_matrix(1, 0).toarray()
        assert node.get('number_of_rows') == str(reflective_slab.number_of_points)
        rows = node.findall('row')
        assert len(rows) == reflective_slab.number_of_points
        for row in rows:
            i = int(row.get('row_index'))
            columns = [int(c) for c in row.find('column_indices').text.split()]
            values = [float(v) for v in row.find('values').text.split()]
            np.testing.assert_allclose(values, matrix[i, columns], rtol=1e-15)

    def test_write_matrices(self, reflective_slab, tmp_path):
        path = tmp_path / "sweep.xml"
        SolverFactory(reflective_slab).get_sweep().write_matrices(str(path))
        root = ET.parse(path).getroot()
        assert root.tag == 'sweep_matrices'
        assert len(root.findall('matrix')) == reflective_slab.number_of_ordinates

    @pytest.mark.parametrize("solver", list(SolverType))
    def test_backends_give_the_same_sweep(self, reflective_slab, solver):
        reference = SolverFactory(reflective_slab).get_sweep()
        sweep = SolverFactory(reflective_slab,
                              SweepOptions(solver=solver)).get_sweep()
        rng = np.random.default_rng(8)
        x = rng.uniform(size=reference.column_size)
        np.testing.assert_allclose(sweep.apply(x.copy()), reference.apply(x.copy()),
                                   rtol=1e-8, atol=1e-12)

    def test_threaded_sweep_matches_serial(self, reflective_slab):
        serial = SolverFactory(reflective_slab).get_sweep()
        threaded = SolverFactory(reflective_slab,
                                 SweepOptions(num_threads=3)).get_sweep()
        x = np.linspace(0.0, 1.0, serial.column_size)
        np.testing.assert_array_equal(threaded.apply(x.copy()), serial.apply(x.copy()))

    def test_wrong_input_size(self, reflective_slab):
        sweep = SolverFactory(reflective_slab).get_sweep()
        with pytest.raises(InvariantError):
            sweep.apply(np.zeros(sweep.column_size + 1))

    def test_divergence_raises(self, reflective_slab):
        options = SweepOptions(solver=SolverType.GMRES, kspace=1, max_restarts=1,
                               tolerance=1e-15)
        sweep = SolverFactory(reflective_slab, options).get_sweep()
        x = np.linspace(1.0, 2.0, sweep.column_size)
        with pytest.raises(ConvergenceError) as excinfo:
            sweep.apply(x)
        assert excinfo.value.ordinate is not None

    def test_divergence_warns_and_keeps_iterate(self, reflective_slab, caplog):
        options = SweepOptions(solver=SolverType.GMRES, kspace=1, max_restarts=1,
                               tolerance=1e-15, quit_if_diverged=False)
        sweep = SolverFactory(reflective_slab, options).get_sweep()
        t = reflective_slab
        x = np.linspace(1.0, 2.0, sweep.column_size)
        source = x.copy()
        with caplog.at_level(logging.WARNING, logger="meshless"):
            psi = sweep.apply(x)
        assert psi is x
        assert any(r.levelname == "WARNING" and "did not converge" in r.getMessage()
                   for r in caplog.records)
        assert np.all(np.isfinite(psi))

        # Every system still wrote its truncated GMRES iterate into its own slots
        points = np.arange(t.number_of_points)
        for o in range(t.number_of_ordinates):
            rhs = np.array([sweep.get_rhs(i, o, 0, source, True) for i in points])
            lhs, _ = sweep._solvers[o, 0].solve(rhs)
            np.testing.assert_allclose(psi[t.psi_index(points, o, 0)], lhs,
                                       rtol=1e-12)


# =============================================================================
# Tangent directions
# =============================================================================

class TestTangentSurfaces:

    def test_round_off_tangent_counts_as_tangent(self):
        plane = BoxGeometry([[0.0, 1.0], [0.0, 1.0]],
                            BoundarySource.vacuum(1)).surfaces[0]
        assert plane.normal_dot(np.array([6.1e-17, 1.0])) == 0.0
        assert plane.normal_dot(np.array([-0.5, 0.8])) == 0.5

    def test_boundary_distance(self):
        solid = BoxGeometry([[0.0, 1.0], [0.0, 2.0]], BoundarySource.vacuum(1))
        np.testing.assert_allclose(
            solid.boundary_distance(np.array([[0.5, 1.0], [0.1, 1.9], [1.0, 0.5]])),
            [0.5, 0.1, 0.0])

    def test_tangent_faces_admit_no_boundary_source(self):
        # Both ordinates of product(2, 2, 2) run along y, parallel to the x faces
        angular = AngularDiscretization.product(2, 2, 2)
        np.testing.assert_allclose(angular.directions[:, 0], 0.0, atol=1e-15)
        source = BoundarySource(np.zeros(1), values=np.ones((2, 1)))
        vacuum = BoundarySource.vacuum(1)
        transport = build_transport(np.array([[0.0, 1.0], [0.0, 1.0]]), 4,
                                    uniform_material(sigma_t=1.0, sigma_s=0.0),
                                    [source, source, vacuum, vacuum],
                                    angular=angular)
        sweep = SolverFactory(transport).get_sweep()
        psi = sweep.apply(np.zeros(sweep.column_size))
        np.testing.assert_array_equal(psi, 0.0)

    def test_tangent_faces_add_no_outgoing_terms(self):
        angular = AngularDiscretization.product(2, 2, 2)
        transport = build_transport(np.array([[0.0, 1.0], [0.0, 1.0]]), 4,
                                    uniform_material(sigma_t=1.0, sigma_s=0.0),
                                    BoundarySource.vacuum(1), angular=angular)
        sweep = SolverFactory(transport).get_sweep()
        direction = angular.direction(0)
        for i, weight in enumerate(transport.spatial.weight_functions):
            integrals = weight.integrals
            expected = sweep.collision(weight, 0, direction) - integrals.iv_b_dw @ direction
            for s, surface in enumerate(weight.boundary_surfaces):
                if surface.surface_dimension == 1:
                    dot = surface.normal_dot(direction)
                    if dot > 0:
                        expected = expected + dot * integrals.is_b_w[s]
            indices, values = sweep.get_matrix_row(i, 0, 0)
            np.testing.assert_allclose(values, expected, rtol=1e-12, atol=1e-14)
