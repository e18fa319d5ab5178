"""
Discrete-ordinates angular discretization.

Angular flux moments and discrete values are related by

    phi_m     = sum_o w_o Y_m(Omega_o) psi_o                 (D)
    psi_o     = sum_m (2 l_m + 1) / N  Y_m(Omega_o) phi_m     (M)

with N the angular normalization (sum of the weights): 2 in 1D, 4 pi in
2D and 3D. Harmonics are Legendre polynomials P_l(mu) in 1D and Schmidt
semi-normalized real spherical harmonics otherwise,

    Y_lm = sqrt((2 - delta_m0) (l - |m|)! / (l + |m|)!) P_l^|m|(mu)
           * { cos(m phi)  m >= 0
             { sin(|m| phi) m < 0

so that integral Y_lm Y_l'm' dOmega = 4 pi / (2l + 1) delta.

Quadrature sets:
    1D      Gauss-Legendre in mu
    2D      product set on the upper hemisphere (mu > 0), weights doubled;
            only moments with l + |m| even are kept
    3D      product set on the full sphere

Azimuthal angles are ``(k + 1/2) 2 pi / n_azimuthal`` so that an even
azimuthal count is closed under reflection across every Cartesian plane.
"""

import numpy as np
from scipy.special import factorial, lpmv

from ..elements.quadrature import gauss_legendre
from ..exceptions import InvariantError

REFLECTION_TOLERANCE = 1e-10


def _schmidt_harmonic(l, m, mu, phi):
    am = abs(m)
    norm = np.sqrt((2.0 - (am == 0)) * factorial(l - am) / factorial(l + am))
    legendre = lpmv(am, l, mu)
    if m >= 0:
        return norm * legendre * np.cos(am * phi)
    return norm * legendre * np.sin(am * phi)


class AngularDiscretization:
    """
    Ordinates, weights and harmonic moments.

    Parameters
    ----------
    dimension : int
        Spatial dimension (1, 2 or 3).
    number_of_scattering_moments : int
        Legendre order plus one of the scattering expansion.
    mu : ndarray, shape (no,)
        Polar cosines.
    phi : ndarray, shape (no,)
        Azimuthal angles (ignored in 1D).
    weights : ndarray, shape (no,)
    """

    def __init__(self, dimension, number_of_scattering_moments, mu, phi, weights):
        if dimension not in (1, 2, 3):
            raise ValueError(f"dimension must be 1, 2 or 3, got {dimension}")
        if number_of_scattering_moments < 1:
            raise ValueError(
                f"number_of_scattering_moments must be positive, "
                f"got {number_of_scattering_moments}"
            )
        self.dimension = dimension
        self.number_of_scattering_moments = number_of_scattering_moments
        self.mu = np.asarray(mu, dtype=np.float64)
        self.phi = np.asarray(phi, dtype=np.float64)
        self.weights = np.asarray(weights, dtype=np.float64)
        self.angular_normalization = 2.0 if dimension == 1 else 4.0 * np.pi

        if dimension == 1:
            self.full_directions = self.mu[:, None]
        else:
            sin_theta = np.sqrt(np.maximum(0.0, 1.0 - self.mu ** 2))
            self.full_directions = np.stack(
                [sin_theta * np.cos(self.phi), sin_theta * np.sin(self.phi),
                 self.mu], axis=1)
        self.directions = self.full_directions[:, :dimension]

        self.moment_indices = self._moment_indices()
        self.scattering_indices = np.array([l for l, _ in self.moment_indices],
                                           dtype=np.int64)
        self.harmonics = self._harmonics()

        # D[m, o] and M[o, m]
        self.discrete_to_moment = self.harmonics * self.weights[None, :]
        self.moment_to_discrete = (
            self.harmonics.T * (2.0 * self.scattering_indices[None, :] + 1.0)
            / self.angular_normalization)

    # -----------------------------------------------------------------
    #  Constructors
    # -----------------------------------------------------------------

    @classmethod
    def gauss_legendre(cls, number_of_ordinates, number_of_scattering_moments=1):
        """1D Gauss-Legendre ordinates."""
        mu, weights = gauss_legendre(number_of_ordinates)
        return cls(1, number_of_scattering_moments, mu, np.zeros_like(mu),
                   weights)

    @classmethod
    def product(cls, dimension, number_of_polar, number_of_azimuthal,
                number_of_scattering_moments=1):
        """Gauss-Legendre x uniform-azimuth product set for 2D or 3D."""
        if dimension not in (2, 3):
            raise ValueError(f"product sets need dimension 2 or 3, got {dimension}")
        if number_of_polar % 2 or number_of_azimuthal % 2:
            raise ValueError(
                f"polar and azimuthal counts must be even, got "
                f"{number_of_polar} and {number_of_azimuthal}"
            )
        mu_polar, w_polar = gauss_legendre(number_of_polar)
        if dimension == 2:
            upper = mu_polar > 0
            mu_polar = mu_polar[upper]
            w_polar = 2.0 * w_polar[upper]

        phi_azimuthal = ((np.arange(number_of_azimuthal) + 0.5)
                         * 2.0 * np.pi / number_of_azimuthal)
        w_azimuthal = np.full(number_of_azimuthal, 2.0 * np.pi / number_of_azimuthal)

        mu = np.repeat(mu_polar, number_of_azimuthal)
        phi = np.tile(phi_azimuthal, len(mu_polar))
        weights = np.repeat(w_polar, number_of_azimuthal) * np.tile(
            w_azimuthal, len(mu_polar))
        return cls(dimension, number_of_scattering_moments, mu, phi, weights)

    # -----------------------------------------------------------------
    #  Moments
    # -----------------------------------------------------------------

    def _moment_indices(self):
        indices = []
        for l in range(self.number_of_scattering_moments):
            if self.dimension == 1:
                indices.append((l, 0))
                continue
            for m in range(-l, l + 1):
                if self.dimension == 2 and (l + abs(m)) % 2:
                    continue
                indices.append((l, m))
        return indices

    def _harmonics(self):
        harmonics = np.empty((len(self.moment_indices), self.number_of_ordinates))
        for k, (l, m) in enumerate(self.moment_indices):
            if self.dimension == 1:
                harmonics[k] = lpmv(0, l, self.mu)
            else:
                harmonics[k] = _schmidt_harmonic(l, m, self.mu, self.phi)
        return harmonics

    @property
    def number_of_ordinates(self):
        return self.mu.size

    @property
    def number_of_moments(self):
        return len(self.moment_indices)

    def direction(self, o):
        return self.directions[o]

    def reflect_ordinate(self, o, normal):
        """Ordinate of the specular reflection of ``o`` off a surface.

        Parameters
        ----------
        o : int
        normal : array_like, shape (dim,)
            Outward unit normal of the surface.

        Raises
        ------
        InvariantError
            If the quadrature set has no reflected ordinate.
        """
        full = self.full_directions[o]
        n = np.zeros(full.size)
        normal = np.asarray(normal, dtype=np.float64)
        n[:normal.size] = normal
        reflected = full - 2.0 * np.dot(full, n) * n

        distance = np.linalg.norm(self.full_directions - reflected, axis=1)
        o_ref = int(np.argmin(distance))
        if distance[o_ref] > REFLECTION_TOLERANCE:
            raise InvariantError(
                f"ordinate {o} has no reflected ordinate for normal "
                f"{normal.tolist()} (closest {o_ref}, distance {distance[o_ref]:.3e})"
            )
        return o_ref
