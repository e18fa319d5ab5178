import numpy as np
import pytest

from meshless.config import (BasisType, WeakSpatialDiscretizationOptions,
                             WeightingMethod)
from meshless.discretization.angular import AngularDiscretization
from meshless.discretization.energy import EnergyDiscretization
from meshless.discretization.factory import WeakSpatialDiscretizationFactory
from meshless.discretization.transport import TransportDiscretization
from meshless.geometry.solid import BoxGeometry
from meshless.geometry.surfaces import BoundarySource
from meshless.materials.material import Material


def uniform_material(sigma_t=1.0, sigma_s=0.0, nu=None, sigma_f=None, chi=None,
                     source=0.0):
    material = Material.from_groups(
        0, sigma_t=[sigma_t], sigma_s=[[sigma_s]],
        nu=None if nu is None else [nu],
        sigma_f=None if sigma_f is None else [sigma_f],
        chi=None if chi is None else [chi],
        internal_source=[source])
    return lambda position: material


def build_transport(limits, num_points, material_function, boundary,
                    angular=None, options=None, basis_type=BasisType.MLS,
                    radius_num_intervals=3.0):
    """Meshless transport discretization on a box."""
    options = options or WeakSpatialDiscretizationOptions(
        weighting=WeightingMethod.WEIGHT)
    solid = BoxGeometry(limits, boundary)
    factory = WeakSpatialDiscretizationFactory(solid, options)
    spatial = factory.get_simple_discretization(
        num_points, material_function, radius_num_intervals=radius_num_intervals,
        basis_type=basis_type)
    if angular is None:
        angular = AngularDiscretization.gauss_legendre(4)
    return TransportDiscretization(spatial, angular, EnergyDiscretization(1))


def uniform_moments(transport, value=1.0):
    """Isotropic moment vector with matching reflected-boundary augments."""
    x = np.zeros(transport.phi_size + transport.number_of_augments)
    points = np.arange(transport.number_of_points)
    x[transport.phi_index(points, 0, 0)] = value
    x[transport.phi_size:] = value / transport.angular.angular_normalization
    return x


@pytest.fixture
def slab_limits():
    return np.array([[0.0, 1.0]])


@pytest.fixture
def reflective_slab(slab_limits):
    """Pure scatterer between two specular reflectors, MLS Galerkin."""
    return build_transport(slab_limits, 5,
                           uniform_material(sigma_t=1.0, sigma_s=1.0),
                           BoundarySource.reflective(1))
