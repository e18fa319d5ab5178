"""
Tests for the angular, energy and transport (index layout) discretizations.
"""

import numpy as np
import pytest

from meshless.discretization.angular import AngularDiscretization
from meshless.discretization.energy import EnergyDiscretization
from meshless.discretization.points import SimplePoint
from meshless.discretization.spatial import SimpleSpatialDiscretization
from meshless.discretization.transport import TransportDiscretization
from meshless.exceptions import InvariantError

from conftest import uniform_material


class TestAngularDiscretization:

    def test_gauss_legendre_normalization(self):
        angular = AngularDiscretization.gauss_legendre(8)
        assert angular.weights.sum() == pytest.approx(angular.angular_normalization)
        assert angular.angular_normalization == 2.0

    @pytest.mark.parametrize("dimension", [2, 3])
    def test_product_normalization(self, dimension):
        angular = AngularDiscretization.product(dimension, 4, 8)
        assert angular.weights.sum() == pytest.approx(4.0 * np.pi)
        norms = np.linalg.norm(angular.full_directions, axis=1)
        np.testing.assert_allclose(norms, 1.0)

    def test_2d_set_is_upper_hemisphere(self):
        angular = AngularDiscretization.product(2, 4, 8)
        assert angular.number_of_ordinates == 16
        assert np.all(angular.mu > 0)
        assert angular.directions.shape == (16, 2)

    def test_product_rejects_odd_counts(self):
        with pytest.raises(ValueError):
            AngularDiscretization.product(2, 3, 8)

    def test_1d_moments_roundtrip(self):
        angular = AngularDiscretization.gauss_legendre(8, number_of_scattering_moments=4)
        identity = angular.discrete_to_moment @ angular.moment_to_discrete
        np.testing.assert_allclose(identity, np.eye(4), atol=1e-12)

    def test_3d_moments_roundtrip(self):
        angular = AngularDiscretization.product(3, 8, 16, number_of_scattering_moments=3)
        assert angular.number_of_moments == 9
        identity = angular.discrete_to_moment @ angular.moment_to_discrete
        np.testing.assert_allclose(identity, np.eye(9), atol=1e-10)

    def test_2d_keeps_even_moments(self):
        angular = AngularDiscretization.product(2, 4, 8, number_of_scattering_moments=2)
        # l = 0; l = 1 with m = -1, 1
        assert angular.moment_indices == [(0, 0), (1, -1), (1, 1)]

    def test_isotropic_flux_moment(self):
        angular = AngularDiscretization.product(2, 4, 8)
        psi = np.full(angular.number_of_ordinates, 1.0 / (4.0 * np.pi))
        assert (angular.discrete_to_moment @ psi)[0] == pytest.approx(1.0)

    def test_1d_reflection(self):
        angular = AngularDiscretization.gauss_legendre(4)
        for o in range(4):
            o_ref = angular.reflect_ordinate(o, [1.0])
            assert angular.mu[o_ref] == pytest.approx(-angular.mu[o])

    def test_2d_reflection_is_an_involution(self):
        angular = AngularDiscretization.product(2, 4, 8)
        for normal in ([1.0, 0.0], [0.0, -1.0]):
            for o in range(angular.number_of_ordinates):
                o_ref = angular.reflect_ordinate(o, normal)
                assert angular.reflect_ordinate(o_ref, normal) == o
                d = np.argmax(np.abs(normal))
                assert angular.directions[o_ref, d] == pytest.approx(
                    -angular.directions[o, d])

    def test_missing_reflection_raises(self):
        angular = AngularDiscretization(1, 1, [0.3, -0.5], [0.0, 0.0], [1.0, 1.0])
        with pytest.raises(InvariantError):
            angular.reflect_ordinate(0, [1.0])


class TestEnergyDiscretization:

    def test_bounds_must_decrease(self):
        with pytest.raises(ValueError):
            EnergyDiscretization(2, [1.0, 2.0, 3.0])

    def test_group_count(self):
        energy = EnergyDiscretization(2, [2e7, 1.0, 1e-5])
        assert energy.number_of_groups == 2
        with pytest.raises(ValueError):
            EnergyDiscretization(0)


class TestTransportLayout:

    @pytest.fixture
    def transport(self):
        material = uniform_material()
        points = [SimplePoint(i, [0.5 * i], material([0.5 * i])) for i in range(3)]
        return TransportDiscretization(
            SimpleSpatialDiscretization(points),
            AngularDiscretization.gauss_legendre(4, number_of_scattering_moments=2),
            EnergyDiscretization(2))

    def test_sizes(self, transport):
        assert transport.psi_size == 3 * 4 * 2
        assert transport.phi_size == 3 * 2 * 2
        assert transport.number_of_augments == 0

    def test_group_fastest(self, transport):
        assert transport.psi_index(0, 0, 1) == 1
        assert transport.psi_index(0, 1, 0) == 2
        assert transport.psi_index(1, 0, 0) == 8
        assert transport.phi_index(2, 1, 1) == 1 + 2 * (1 + 2 * 2)

    def test_dimension_mismatch(self):
        material = uniform_material()
        points = [SimplePoint(0, [0.0], material([0.0]))]
        with pytest.raises(ValueError):
            TransportDiscretization(SimpleSpatialDiscretization(points),
                                    AngularDiscretization.product(2, 2, 4),
                                    EnergyDiscretization(1))
