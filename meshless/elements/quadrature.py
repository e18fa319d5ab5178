"""
Gauss-Legendre quadrature rules for integration cells and surfaces.

The 1D rule on [x1, x2] is mapped from the standard interval [-1, 1]:

    x = (x2 + x1) / 2 + s * (x2 - x1) / 2,   dx = ds * (x2 - x1) / 2

so that

    integral over [x1, x2] of f dx = sum_i w_i * f(x_i)

Multi-dimensional rules are tensor products of 1D rules. Points are
ordered with the last dimension varying fastest, i.e. for a 2D rule the
flat index is ``k = j + ny * i``.

An n-point rule integrates polynomials of degree 2n - 1 exactly.

References:
    - Abramowitz & Stegun, "Handbook of Mathematical Functions", 25.4.29
    - Press et al., "Numerical Recipes", Section 4.6
"""

import numpy as np


def gauss_legendre(n):
    """
    n-point Gauss-Legendre quadrature on the standard interval [-1, 1].

    Parameters
    ----------
    n : int
        Number of quadrature points (n >= 1).

    Returns
    -------
    points : ndarray, shape (n,)
        Quadrature abscissae in increasing order.
    weights : ndarray, shape (n,)
        Quadrature weights (sum to 2).
    """
    if n < 1:
        raise ValueError(f"number of quadrature points must be positive, got {n}")
    points, weights = np.polynomial.legendre.leggauss(n)
    return points, weights


def gauss_legendre_interval(n, x1, x2):
    """
    n-point Gauss-Legendre quadrature on [x1, x2].

    Parameters
    ----------
    n : int
        Number of quadrature points.
    x1, x2 : float
        Interval limits.

    Returns
    -------
    points : ndarray, shape (n,)
    weights : ndarray, shape (n,)
        Weights include the Jacobian (x2 - x1) / 2.
    """
    s, w = gauss_legendre(n)
    half_length = 0.5 * (x2 - x1)
    midpoint = 0.5 * (x2 + x1)
    return midpoint + half_length * s, half_length * w


def cartesian_quadrature(n, limits):
    """
    Tensor-product Gauss-Legendre quadrature on a box.

    Parameters
    ----------
    n : int
        Points per dimension.
    limits : array_like, shape (dim, 2)
        Lower and upper bound of each dimension.

    Returns
    -------
    points : ndarray, shape (n**dim, dim)
    weights : ndarray, shape (n**dim,)
    """
    limits = np.asarray(limits, dtype=np.float64)
    if limits.ndim != 2 or limits.shape[1] != 2:
        raise ValueError(f"limits must have shape (dim, 2), got {limits.shape}")

    rules = [gauss_legendre_interval(n, lo, hi) for lo, hi in limits]
    grids = np.meshgrid(*[r[0] for r in rules], indexing='ij')
    wgrids = np.meshgrid(*[r[1] for r in rules], indexing='ij')

    points = np.stack([g.ravel() for g in grids], axis=1)
    weights = np.prod(np.stack([g.ravel() for g in wgrids], axis=1), axis=1)
    return points, weights


def surface_quadrature(n, limits, surface_dimension, position):
    """
    Gauss-Legendre quadrature on a face of a box.

    The face is the set of points of ``limits`` whose coordinate along
    ``surface_dimension`` equals ``position``. In 1D a face is a single
    point with unit weight.

    Parameters
    ----------
    n : int
        Points per tangential dimension.
    limits : array_like, shape (dim, 2)
        Limits of the face region (the entry for ``surface_dimension``
        is ignored).
    surface_dimension : int
        Index of the dimension normal to the face.
    position : float
        Face coordinate along ``surface_dimension``.

    Returns
    -------
    points : ndarray, shape (n**(dim-1), dim)
    weights : ndarray, shape (n**(dim-1),)
    """
    limits = np.asarray(limits, dtype=np.float64)
    dimension = limits.shape[0]
    if dimension == 1:
        return np.array([[position]]), np.array([1.0])

    tangential = [d for d in range(dimension) if d != surface_dimension]
    face_points, weights = cartesian_quadrature(n, limits[tangential])

    points = np.empty((len(weights), dimension))
    points[:, tangential] = face_points
    points[:, surface_dimension] = position
    return points, weights
