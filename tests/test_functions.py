"""
Tests for quadrature rules, radial kernels and meshless shape functions.
"""

import numpy as np
import pytest

from meshless.elements.quadrature import (cartesian_quadrature, gauss_legendre,
                                          gauss_legendre_interval,
                                          surface_quadrature)
from meshless.functions.meshless_function import LinearMLSFunction, RBFFunction
from meshless.functions.rbf import (CompactGaussianRBF, GaussianRBF,
                                    WendlandRBF, get_rbf)


# =============================================================================
# Quadrature
# =============================================================================

class TestQuadrature:

    def test_weights_sum_to_interval_length(self):
        for n in (1, 2, 5, 8):
            _, weights = gauss_legendre(n)
            assert weights.sum() == pytest.approx(2.0)

    def test_polynomial_exactness(self):
        points, weights = gauss_legendre_interval(4, 1.0, 3.0)
        # Exact up to degree 2n - 1 = 7
        integral = np.sum(weights * points ** 7)
        assert integral == pytest.approx((3.0 ** 8 - 1.0) / 8.0, rel=1e-12)

    def test_rejects_nonpositive_order(self):
        with pytest.raises(ValueError):
            gauss_legendre(0)

    def test_cartesian_box_volume(self):
        points, weights = cartesian_quadrature(3, [[0.0, 2.0], [1.0, 4.0]])
        assert points.shape == (9, 2)
        assert weights.sum() == pytest.approx(6.0)
        integral = np.sum(weights * points[:, 0] * points[:, 1] ** 2)
        assert integral == pytest.approx(2.0 * (64.0 - 1.0) / 3.0)

    def test_surface_quadrature_1d_is_a_point(self):
        points, weights = surface_quadrature(4, [[0.0, 1.0]], 0, 1.0)
        np.testing.assert_array_equal(points, [[1.0]])
        np.testing.assert_array_equal(weights, [1.0])

    def test_surface_quadrature_2d_face(self):
        points, weights = surface_quadrature(3, [[0.0, 1.0], [0.0, 2.0]], 0, 1.0)
        assert np.all(points[:, 0] == 1.0)
        assert weights.sum() == pytest.approx(2.0)


# =============================================================================
# Radial kernels
# =============================================================================

class TestRBF:

    @pytest.mark.parametrize("rbf", [WendlandRBF(), CompactGaussianRBF(3.0),
                                      GaussianRBF()])
    def test_unit_center(self, rbf):
        assert rbf.value(0.0) == pytest.approx(1.0)

    def test_local_kernels_vanish_outside_support(self):
        for rbf in (WendlandRBF(), CompactGaussianRBF(2.0)):
            r = np.array([rbf.radius, rbf.radius + 0.5])
            np.testing.assert_array_equal(rbf.value(r), 0.0)
            np.testing.assert_array_equal(rbf.d_value(r), 0.0)

    def test_compact_gaussian_continuous_at_edge(self):
        rbf = CompactGaussianRBF(2.0)
        assert rbf.value(2.0 - 1e-9) == pytest.approx(0.0, abs=1e-7)

    def test_derivative_matches_finite_difference(self):
        rbf = WendlandRBF()
        r = np.linspace(0.1, 0.9, 9)
        h = 1e-6
        fd = (rbf.value(r + h) - rbf.value(r - h)) / (2 * h)
        np.testing.assert_allclose(rbf.d_value(r), fd, rtol=1e-6, atol=1e-9)

    def test_global_kernel_radius(self):
        assert not GaussianRBF().is_local
        assert np.isinf(GaussianRBF().radius)

    def test_get_rbf_by_name(self):
        assert isinstance(get_rbf("wendland"), WendlandRBF)
        assert get_rbf("compact_gaussian", radius=4.0).radius == 4.0
        with pytest.raises(ValueError):
            get_rbf("multiquadric")


# =============================================================================
# Shape functions
# =============================================================================

@pytest.fixture
def mls_functions_2d():
    """Linear MLS functions on a 4x4 grid over the unit square."""
    axis = np.linspace(0.0, 1.0, 4)
    centers = np.array([[x, y] for x in axis for y in axis])
    radius = 1.0
    kernels = [RBFFunction(i, 1.0 / radius, c, WendlandRBF())
               for i, c in enumerate(centers)]
    functions = []
    for i, kernel in enumerate(kernels):
        neighbors = [k for j, k in enumerate(kernels)
                     if j != i and np.linalg.norm(centers[j] - centers[i]) < 2 * radius]
        functions.append(LinearMLSFunction([kernel] + neighbors))
    return functions


class TestShapeFunctions:

    def test_rbf_function_support(self):
        f = RBFFunction(0, 2.0, [0.5], WendlandRBF())
        assert f.radius == pytest.approx(0.5)
        assert f.value([[1.0]])[0] == 0.0
        assert f.value([[0.5]])[0] == pytest.approx(1.0)

    def test_rbf_function_rejects_bad_shape(self):
        with pytest.raises(ValueError):
            RBFFunction(0, 0.0, [0.0], WendlandRBF())

    def test_rbf_gradient_matches_finite_difference(self):
        f = RBFFunction(0, 1.5, [0.2, 0.3], WendlandRBF())
        x = np.array([[0.4, 0.1]])
        h = 1e-6
        grad = f.gradient(x)[0]
        for d in range(2):
            e = np.zeros(2)
            e[d] = h
            fd = (f.value(x + e)[0] - f.value(x - e)[0]) / (2 * h)
            assert grad[d] == pytest.approx(fd, rel=1e-5)

    def test_mls_partition_of_unity(self, mls_functions_2d):
        rng = np.random.default_rng(3)
        x = rng.uniform(0.0, 1.0, size=(20, 2))
        total = sum(f.value(x) for f in mls_functions_2d)
        np.testing.assert_allclose(total, 1.0, rtol=1e-10)

    def test_mls_gradients_sum_to_zero(self, mls_functions_2d):
        rng = np.random.default_rng(4)
        x = rng.uniform(0.0, 1.0, size=(20, 2))
        total = sum(f.gradient(x) for f in mls_functions_2d)
        np.testing.assert_allclose(total, 0.0, atol=1e-9)

    def test_mls_linear_reproduction(self, mls_functions_2d):
        rng = np.random.default_rng(5)
        x = rng.uniform(0.0, 1.0, size=(20, 2))
        field = lambda p: 1.0 + 2.0 * p[..., 0] - 3.0 * p[..., 1]
        approx = sum(field(f.position) * f.value(x) for f in mls_functions_2d)
        np.testing.assert_allclose(approx, field(x), rtol=1e-9)

    def test_mls_gradient_matches_finite_difference(self, mls_functions_2d):
        f = mls_functions_2d[5]
        x = np.array([[0.45, 0.52]])
        h = 1e-6
        grad = f.gradient(x)[0]
        for d in range(2):
            e = np.zeros(2)
            e[d] = h
            fd = (f.value(x + e)[0] - f.value(x - e)[0]) / (2 * h)
            assert grad[d] == pytest.approx(fd, rel=1e-5, abs=1e-8)

    def test_mls_needs_enough_neighbors(self):
        kernel = RBFFunction(0, 1.0, [0.0, 0.0], WendlandRBF())
        with pytest.raises(ValueError):
            LinearMLSFunction([kernel])
