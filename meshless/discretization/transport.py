"""
Transport discretization: index layout of flux vectors.

Vector layouts (i point, o ordinate, m moment, g group, b boundary basis):

    psi     g + ng * (o + no * i)
    phi     g + ng * (m + nm * i)
    augment psi_size + g + ng * (o + no * b)

Augments are present only when some boundary reflects; they hold the
angular flux coefficients of every boundary basis function from the
previous sweep and trail both discrete and moment vectors.
"""


class TransportDiscretization:
    """
    Combined spatial, angular and energy discretization.

    Parameters
    ----------
    spatial : WeakSpatialDiscretization or SimpleSpatialDiscretization
    angular : AngularDiscretization
    energy : EnergyDiscretization
    """

    def __init__(self, spatial, angular, energy):
        if spatial.dimension != angular.dimension:
            raise ValueError(
                f"spatial dimension {spatial.dimension} does not match "
                f"angular dimension {angular.dimension}"
            )
        self.spatial = spatial
        self.angular = angular
        self.energy = energy

        self.number_of_points = spatial.number_of_points
        self.number_of_ordinates = angular.number_of_ordinates
        self.number_of_moments = angular.number_of_moments
        self.number_of_groups = energy.number_of_groups
        self.has_reflection = spatial.has_reflection
        self.number_of_boundary_points = spatial.number_of_boundary_points

        self.psi_size = (self.number_of_points * self.number_of_ordinates
                         * self.number_of_groups)
        self.phi_size = (self.number_of_points * self.number_of_moments
                         * self.number_of_groups)
        if self.has_reflection:
            self.number_of_augments = (self.number_of_boundary_points
                                       * self.number_of_ordinates
                                       * self.number_of_groups)
        else:
            self.number_of_augments = 0

    def psi_index(self, i, o, g):
        return g + self.number_of_groups * (o + self.number_of_ordinates * i)

    def phi_index(self, i, m, g):
        return g + self.number_of_groups * (m + self.number_of_moments * i)

    def augment_index(self, b, o, g):
        return self.psi_size + g + self.number_of_groups * (
            o + self.number_of_ordinates * b)
