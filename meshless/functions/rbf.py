"""
Radial basis function kernels.

Each kernel is a function of the scaled distance ``r = shape * |x - c|``
and provides its value and first two derivatives with respect to ``r``.
Local kernels vanish for ``r >= radius``; global kernels report an
infinite radius.

    Kernel              value                            radius
    ------------------  -------------------------------  ------
    Gaussian            exp(-r^2)                        inf
    Truncated Gaussian  exp(-r^2)                        R
    Compact Gaussian    (exp(-r^2) - exp(-R^2)) * k2     R
    Wendland (C2)       (1 - r)^4 (4 r + 1)              1

with ``k2 = 1 / (1 - exp(-R^2))`` so the compact Gaussian is 1 at the
center and continuous at the support edge.

References:
    - Wendland, H. "Piecewise polynomial, positive definite and compactly
      supported radial functions of minimal degree." Adv. Comput. Math.
      4 (1995).
    - Fasshauer, G.E. "Meshfree Approximation Methods with MATLAB",
      World Scientific, 2007.
"""

import numpy as np


class RBF:
    """Base class for radial kernels.

    Subclasses implement ``_value``, ``_d_value`` and ``_dd_value`` inside
    the support; the public methods zero everything outside it.
    """

    name = "rbf"

    @property
    def radius(self):
        return np.inf

    @property
    def is_local(self):
        return np.isfinite(self.radius)

    def _inside(self, r):
        return r < self.radius

    def value(self, r):
        r = np.asarray(r, dtype=np.float64)
        return np.where(self._inside(r), self._value(r), 0.0)

    def d_value(self, r):
        r = np.asarray(r, dtype=np.float64)
        return np.where(self._inside(r), self._d_value(r), 0.0)

    def dd_value(self, r):
        r = np.asarray(r, dtype=np.float64)
        return np.where(self._inside(r), self._dd_value(r), 0.0)

    def _value(self, r):
        raise NotImplementedError

    def _d_value(self, r):
        raise NotImplementedError

    def _dd_value(self, r):
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}(radius={self.radius})"


class GaussianRBF(RBF):
    """Globally supported Gaussian, exp(-r^2)."""

    name = "gaussian"

    def _value(self, r):
        return np.exp(-r * r)

    def _d_value(self, r):
        return -2.0 * r * np.exp(-r * r)

    def _dd_value(self, r):
        return (4.0 * r * r - 2.0) * np.exp(-r * r)


class TruncatedGaussianRBF(GaussianRBF):
    """Gaussian cut to zero at ``radius`` (discontinuous at the edge)."""

    name = "truncated_gaussian"

    def __init__(self, radius=5.0):
        if radius <= 0:
            raise ValueError(f"radius must be positive, got {radius}")
        self._radius = float(radius)

    @property
    def radius(self):
        return self._radius


class CompactGaussianRBF(RBF):
    """Gaussian shifted and rescaled to vanish continuously at ``radius``."""

    name = "compact_gaussian"

    def __init__(self, radius=5.0):
        if radius <= 0:
            raise ValueError(f"radius must be positive, got {radius}")
        self._radius = float(radius)
        self.k1 = np.exp(-self._radius ** 2)
        self.k2 = 1.0 / (1.0 - self.k1)

    @property
    def radius(self):
        return self._radius

    def _value(self, r):
        return self.k2 * (np.exp(-r * r) - self.k1)

    def _d_value(self, r):
        return -2.0 * self.k2 * r * np.exp(-r * r)

    def _dd_value(self, r):
        return self.k2 * (4.0 * r * r - 2.0) * np.exp(-r * r)


class WendlandRBF(RBF):
    """Wendland C2 kernel, (1 - r)^4 (4 r + 1) on r < 1."""

    name = "wendland"

    @property
    def radius(self):
        return 1.0

    def _value(self, r):
        return (1.0 - r) ** 4 * (4.0 * r + 1.0)

    def _d_value(self, r):
        return -20.0 * r * (1.0 - r) ** 3

    def _dd_value(self, r):
        return 20.0 * (1.0 - r) ** 2 * (4.0 * r - 1.0)


RBF_TYPES = {
    cls.name: cls for cls in (GaussianRBF, TruncatedGaussianRBF,
                              CompactGaussianRBF, WendlandRBF)
}


def get_rbf(name, **kwargs):
    """Construct a kernel by name (``gaussian``, ``wendland``, ...)."""
    try:
        cls = RBF_TYPES[name]
    except KeyError:
        raise ValueError(
            f"unknown RBF '{name}', expected one of {sorted(RBF_TYPES)}"
        ) from None
    return cls(**kwargs)
