"""
Composable linear operators on flat numpy vectors.

Every operator maps a vector of length ``column_size`` to one of length
``row_size``:

    y = A.apply(x)

Operators combine with ``*`` (composition, right operator first), ``+``,
``-`` and scalar multiplication, giving small explicit trees of Compose /
Sum / Scaled nodes. ``apply`` may overwrite its argument (the sweep
updates in place); composite nodes copy before handing the same input to
two branches.

``as_linear_operator`` wraps an operator for scipy's Krylov solvers.
"""

import numbers

import numpy as np
from scipy.sparse.linalg import LinearOperator

from ..exceptions import InvariantError


class VectorOperator:
    """Base class. Subclasses set ``row_size``/``column_size`` and ``_apply``."""

    row_size = 0
    column_size = 0

    def apply(self, x):
        x = np.asarray(x, dtype=np.float64)
        if x.shape != (self.column_size,):
            raise InvariantError(
                f"{type(self).__name__}: input has shape {x.shape}, "
                f"expected ({self.column_size},)"
            )
        result = self._apply(x)
        if result.shape != (self.row_size,):
            raise InvariantError(
                f"{type(self).__name__}: output has shape {result.shape}, "
                f"expected ({self.row_size},)"
            )
        return result

    def _apply(self, x):
        raise NotImplementedError

    def __call__(self, x):
        return self.apply(x)

    def __mul__(self, other):
        if isinstance(other, VectorOperator):
            return Compose(self, other)
        if isinstance(other, numbers.Number):
            return Scaled(float(other), self)
        return NotImplemented

    def __rmul__(self, other):
        if isinstance(other, numbers.Number):
            return Scaled(float(other), self)
        return NotImplemented

    def __add__(self, other):
        if isinstance(other, VectorOperator):
            return Sum(self, other)
        return NotImplemented

    def __sub__(self, other):
        if isinstance(other, VectorOperator):
            return Sum(self, Scaled(-1.0, other))
        return NotImplemented

    def __neg__(self):
        return Scaled(-1.0, self)

    def as_linear_operator(self):
        return LinearOperator((self.row_size, self.column_size),
                              matvec=lambda v: self.apply(np.array(v, dtype=np.float64).ravel()),
                              dtype=np.float64)


class Compose(VectorOperator):
    """``left * right``: apply ``right`` first."""

    def __init__(self, left, right):
        if left.column_size != right.row_size:
            raise InvariantError(
                f"cannot compose {type(left).__name__} "
                f"({left.row_size}x{left.column_size}) with "
                f"{type(right).__name__} ({right.row_size}x{right.column_size})"
            )
        self.left = left
        self.right = right
        self.row_size = left.row_size
        self.column_size = right.column_size

    def _apply(self, x):
        return self.left.apply(self.right.apply(x))


class Sum(VectorOperator):
    """``left + right`` on the same input."""

    def __init__(self, left, right):
        if (left.row_size, left.column_size) != (right.row_size, right.column_size):
            raise InvariantError(
                f"cannot add operators of shape "
                f"{left.row_size}x{left.column_size} and "
                f"{right.row_size}x{right.column_size}"
            )
        self.left = left
        self.right = right
        self.row_size = left.row_size
        self.column_size = left.column_size

    def _apply(self, x):
        return self.left.apply(x.copy()) + self.right.apply(x.copy())


class Scaled(VectorOperator):
    """``value * operator``."""

    def __init__(self, value, operator):
        self.value = value
        self.operator = operator
        self.row_size = operator.row_size
        self.column_size = operator.column_size

    def _apply(self, x):
        return self.value * self.operator.apply(x)


class Identity(VectorOperator):
    def __init__(self, size):
        self.row_size = self.column_size = size

    def _apply(self, x):
        return x.copy()


class Scalar(VectorOperator):
    """Multiplication of every entry by a fixed value."""

    def __init__(self, size, value):
        self.row_size = self.column_size = size
        self.value = value

    def _apply(self, x):
        return self.value * x


class Augmented(VectorOperator):
    """Pass trailing augment slots around an operator.

    The operator sees the vector without its last ``number_of_augments``
    entries; the augments are appended to its output unchanged, or as
    zeros when ``zero_augments`` is set.
    """

    def __init__(self, number_of_augments, operator, zero_augments=False):
        self.number_of_augments = number_of_augments
        self.operator = operator
        self.zero_augments = zero_augments
        self.row_size = operator.row_size + number_of_augments
        self.column_size = operator.column_size + number_of_augments

    def _apply(self, x):
        n = self.number_of_augments
        if n == 0:
            return self.operator.apply(x)
        result = self.operator.apply(x[:-n].copy())
        augments = np.zeros(n) if self.zero_augments else x[-n:]
        return np.concatenate([result, augments])
