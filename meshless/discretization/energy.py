"""Multigroup energy discretization."""

import numpy as np


class EnergyDiscretization:
    """
    Energy groups, ordered from highest to lowest energy.

    Parameters
    ----------
    number_of_groups : int
    energy_bounds : array_like, shape (number_of_groups + 1,) or None
        Group boundaries in decreasing order.
    """

    def __init__(self, number_of_groups, energy_bounds=None):
        if number_of_groups < 1:
            raise ValueError(
                f"number_of_groups must be positive, got {number_of_groups}"
            )
        self.number_of_groups = number_of_groups
        if energy_bounds is None:
            self.energy_bounds = None
        else:
            self.energy_bounds = np.asarray(energy_bounds, dtype=np.float64)
            if self.energy_bounds.shape != (number_of_groups + 1,):
                raise ValueError(
                    f"energy_bounds must have {number_of_groups + 1} entries, "
                    f"got {self.energy_bounds.shape}"
                )
            if np.any(np.diff(self.energy_bounds) >= 0):
                raise ValueError("energy_bounds must be strictly decreasing")
