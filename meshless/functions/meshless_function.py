"""
Meshless shape functions built on radial kernels.

RBFFunction
    phi(x) = rbf(shape * |x - c|)

    Support radius is ``rbf.radius / shape`` (infinite for global kernels).

LinearMLSFunction
    Moving least squares shape function with the linear polynomial basis
    p(x) = [1, (x - c_i) / h]:

        A(x)     = sum_k w_k(x) p(c_k) p(c_k)^T
        phi_i(x) = p(x)^T A(x)^-1 p(c_i) w_i(x)

    where w_k are the RBF functions of the neighbors of i (the first
    neighbor is the function's own kernel). The gradient uses

        d(A^-1) = -A^-1 dA A^-1

    MLS functions form a partition of unity and reproduce linear fields
    exactly wherever A(x) is non-singular.

All evaluation methods are vectorized over an array of positions of
shape (n, dim) and return arrays of shape (n,) or (n, dim).

References:
    - Lancaster, P. & Salkauskas, K. "Surfaces generated by moving least
      squares methods." Math. Comp. 37 (1981).
    - Belytschko, T. et al. "Meshless methods: An overview and recent
      developments." CMAME 139 (1996).
"""

import numpy as np


def _as_positions(x, dimension):
    x = np.asarray(x, dtype=np.float64)
    if x.ndim < 2:
        x = x.reshape(-1, dimension)
    if x.shape[1] != dimension:
        raise ValueError(
            f"positions must have {dimension} columns, got shape {x.shape}"
        )
    return x


class RBFFunction:
    """Radial basis function centered at ``position``.

    Parameters
    ----------
    index : int
        Global index of the function.
    shape : float
        Inverse length scale applied to the distance.
    position : array_like, shape (dim,)
        Center.
    rbf : RBF
        Radial kernel.
    """

    def __init__(self, index, shape, position, rbf):
        if shape <= 0:
            raise ValueError(f"shape must be positive, got {shape}")
        self.index = index
        self.shape = float(shape)
        self.position = np.asarray(position, dtype=np.float64).ravel()
        self.dimension = self.position.size
        self.rbf = rbf

    @property
    def radius(self):
        return self.rbf.radius / self.shape

    def _distance(self, x):
        diff = _as_positions(x, self.dimension) - self.position
        return diff, np.sqrt(np.sum(diff * diff, axis=1))

    def value(self, x):
        _, dist = self._distance(x)
        return self.rbf.value(self.shape * dist)

    def gradient(self, x):
        diff, dist = self._distance(x)
        d_rbf = self.rbf.d_value(self.shape * dist)
        factor = np.zeros_like(dist)
        nonzero = dist > 0
        factor[nonzero] = self.shape * d_rbf[nonzero] / dist[nonzero]
        return factor[:, None] * diff

    def value_and_gradient(self, x):
        return self.value(x), self.gradient(x)

    def __repr__(self):
        return (f"RBFFunction(index={self.index}, shape={self.shape:.6g}, "
                f"position={self.position.tolist()}, rbf={self.rbf!r})")


class LinearMLSFunction:
    """Linear moving least squares function.

    Parameters
    ----------
    neighbor_functions : sequence of RBFFunction
        Kernels of every function whose support may overlap this one.
        ``neighbor_functions[0]`` is this function's own kernel.
    """

    def __init__(self, neighbor_functions):
        if len(neighbor_functions) == 0:
            raise ValueError("MLS function needs at least its own kernel")
        self.function = neighbor_functions[0]
        self.neighbor_functions = list(neighbor_functions)
        self.index = self.function.index
        self.dimension = self.function.dimension
        self.position = self.function.position
        self.shape = self.function.shape
        self.number_of_polynomials = self.dimension + 1

        # Scale the polynomial basis so A stays well conditioned
        radius = self.function.radius
        self._scale = radius if np.isfinite(radius) else 1.0 / self.shape
        centers = np.array([f.position for f in self.neighbor_functions])
        self._neighbor_polynomials = self._polynomial(centers)
        self._own_polynomial = self._neighbor_polynomials[0]

        if len(self.neighbor_functions) < self.number_of_polynomials:
            raise ValueError(
                f"MLS function {self.index} has {len(self.neighbor_functions)} "
                f"neighbors, needs at least {self.number_of_polynomials}"
            )

    @property
    def radius(self):
        return self.function.radius

    def _polynomial(self, x):
        x = np.atleast_2d(x)
        poly = np.ones((x.shape[0], self.number_of_polynomials))
        poly[:, 1:] = (x - self.position) / self._scale
        return poly

    def _moment_matrices(self, x):
        """A(x), dA/dx_d(x), b(x) and db/dx_d(x) at every position."""
        values = np.array([f.value(x) for f in self.neighbor_functions])
        gradients = np.array([f.gradient(x) for f in self.neighbor_functions])
        poly = self._neighbor_polynomials

        a = np.einsum('kn,kp,kq->npq', values, poly, poly)
        d_a = np.einsum('knd,kp,kq->ndpq', gradients, poly, poly)
        b = values[0][:, None] * self._own_polynomial[None, :]
        d_b = gradients[0][:, :, None] * self._own_polynomial[None, None, :]
        return a, d_a, b, d_b

    def value_and_gradient(self, x):
        x = _as_positions(x, self.dimension)
        n = x.shape[0]
        value = np.zeros(n)
        gradient = np.zeros((n, self.dimension))

        # Outside the own support b = 0, and A may be singular
        active = self.function.value(x) > 0
        if not np.any(active):
            return value, gradient
        xa = x[active]

        a, d_a, b, d_b = self._moment_matrices(xa)
        p = self._polynomial(xa)
        alpha = np.linalg.solve(a, p[:, :, None])[:, :, 0]
        beta = np.linalg.solve(a, b[:, :, None])[:, :, 0]

        value[active] = np.sum(alpha * b, axis=1)

        # dp/dx_d is the (d+1)-th unit vector divided by the scale
        d_p_beta = beta[:, 1:] / self._scale
        d_a_beta = np.einsum('ndpq,nq->ndp', d_a, beta)
        gradient[active] = (d_p_beta
                            - np.einsum('np,ndp->nd', alpha, d_a_beta)
                            + np.einsum('np,ndp->nd', alpha, d_b))
        return value, gradient

    def value(self, x):
        return self.value_and_gradient(x)[0]

    def gradient(self, x):
        return self.value_and_gradient(x)[1]

    def __repr__(self):
        return (f"LinearMLSFunction(index={self.index}, "
                f"neighbors={[f.index for f in self.neighbor_functions]})")
