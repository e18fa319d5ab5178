"""
Multigroup material data in the dimensional-moment basis.

Every cross section is stored with a leading dimensional-moment axis of
length ``ndm``. Physical materials attached to points have ``ndm = 1``.
Materials produced by weight-function integration carry either
normalized moments (``ndm = 1``) or, with SUPG terms, the raw moments

    sigma[d] = integral( dw_d * sum_j b_j * sigma_j ) dV,
    dw_0 = w,  dw_d = dw/dx_d

together with ``norm[d]``, the same integral without the cross section.

Array layout (ng = groups, nl = scattering moments):
    sigma_t          (ndm, ng)
    sigma_s          (ndm, nl, ng_to, ng_from)
    nu, sigma_f, chi (ndm, ng)
    fission          (ndm, ng_to, ng_from)   chi_to * nu_from * sigma_f_from
    internal_source  (ndm, ng)
    norm             (ndm,)
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


def _group_array(value, number_of_groups, name):
    if value is None:
        return np.zeros((1, number_of_groups))
    arr = np.atleast_1d(np.asarray(value, dtype=np.float64))
    if arr.shape != (number_of_groups,):
        raise ValueError(
            f"{name} must have shape ({number_of_groups},), got {arr.shape}"
        )
    return arr.reshape(1, number_of_groups)


@dataclass
class Material:
    """Cross sections for one material or one integrated weight function.

    Attributes
    ----------
    index : int
        Material index (weight index for integrated materials).
    sigma_t : ndarray, shape (ndm, ng)
    sigma_s : ndarray, shape (ndm, nl, ng, ng)
        Scattering from group ``[..., from]`` into group ``[..., to, :]``.
    nu : ndarray, shape (ndm, ng)
    sigma_f : ndarray, shape (ndm, ng)
    chi : ndarray, shape (ndm, ng)
    internal_source : ndarray, shape (ndm, ng)
        Isotropic volumetric source (scalar-flux normalization).
    fission : ndarray, shape (ndm, ng, ng) or None
        Group-to-group fission matrix; built from chi, nu and sigma_f
        when omitted.
    norm : ndarray, shape (ndm,) or None
        Moment norms for un-normalized integrated materials.
    """
    index: int
    sigma_t: np.ndarray
    sigma_s: np.ndarray
    nu: np.ndarray
    sigma_f: np.ndarray
    chi: np.ndarray
    internal_source: np.ndarray
    fission: Optional[np.ndarray] = None
    norm: Optional[np.ndarray] = field(default=None)

    def __post_init__(self):
        self.sigma_t = np.asarray(self.sigma_t, dtype=np.float64)
        self.sigma_s = np.asarray(self.sigma_s, dtype=np.float64)
        self.nu = np.asarray(self.nu, dtype=np.float64)
        self.sigma_f = np.asarray(self.sigma_f, dtype=np.float64)
        self.chi = np.asarray(self.chi, dtype=np.float64)
        self.internal_source = np.asarray(self.internal_source, dtype=np.float64)

        if self.sigma_t.ndim != 2:
            raise ValueError(
                f"sigma_t must have shape (ndm, ng), got {self.sigma_t.shape}"
            )
        ndm, ng = self.sigma_t.shape
        for name in ('nu', 'sigma_f', 'chi', 'internal_source'):
            arr = getattr(self, name)
            if arr.shape != (ndm, ng):
                raise ValueError(
                    f"{name} must have shape ({ndm}, {ng}), got {arr.shape}"
                )
        if (self.sigma_s.ndim != 4 or self.sigma_s.shape[0] != ndm
                or self.sigma_s.shape[2:] != (ng, ng)):
            raise ValueError(
                f"sigma_s must have shape ({ndm}, nl, {ng}, {ng}), "
                f"got {self.sigma_s.shape}"
            )

        if self.fission is None:
            self.fission = (self.chi[:, :, None]
                            * (self.nu * self.sigma_f)[:, None, :])
        else:
            self.fission = np.asarray(self.fission, dtype=np.float64)
            if self.fission.shape != (ndm, ng, ng):
                raise ValueError(
                    f"fission must have shape ({ndm}, {ng}, {ng}), "
                    f"got {self.fission.shape}"
                )
        if self.norm is not None:
            self.norm = np.asarray(self.norm, dtype=np.float64)
            if self.norm.shape != (ndm,):
                raise ValueError(
                    f"norm must have shape ({ndm},), got {self.norm.shape}"
                )

    @classmethod
    def from_groups(cls, index, sigma_t, sigma_s=None, nu=None, sigma_f=None,
                    chi=None, internal_source=None):
        """Build a physical material from per-group data.

        Parameters
        ----------
        index : int
        sigma_t : array_like, shape (ng,)
        sigma_s : array_like, shape (ng, ng) or (nl, ng, ng), or None
            ``sigma_s[l, to, from]``; a 2D array is the isotropic (l = 0)
            matrix. A scalar is accepted for one group.
        nu, sigma_f, chi, internal_source : array_like, shape (ng,), or None

        Returns
        -------
        material : Material
        """
        sigma_t = np.atleast_1d(np.asarray(sigma_t, dtype=np.float64))
        ng = sigma_t.size

        if sigma_s is None:
            sigma_s = np.zeros((1, ng, ng))
        else:
            sigma_s = np.asarray(sigma_s, dtype=np.float64)
            if sigma_s.ndim == 0:
                sigma_s = sigma_s.reshape(1, 1, 1)
            elif sigma_s.ndim == 2:
                sigma_s = sigma_s[None, :, :]
            if sigma_s.ndim != 3 or sigma_s.shape[1:] != (ng, ng):
                raise ValueError(
                    f"sigma_s must have shape (nl, {ng}, {ng}), got {sigma_s.shape}"
                )

        return cls(
            index=index,
            sigma_t=sigma_t.reshape(1, ng),
            sigma_s=sigma_s[None, ...],
            nu=_group_array(nu, ng, 'nu'),
            sigma_f=_group_array(sigma_f, ng, 'sigma_f'),
            chi=_group_array(chi, ng, 'chi'),
            internal_source=_group_array(internal_source, ng, 'internal_source'),
        )

    @property
    def number_of_dimensional_moments(self):
        return self.sigma_t.shape[0]

    @property
    def number_of_groups(self):
        return self.sigma_t.shape[1]

    @property
    def number_of_scattering_moments(self):
        return self.sigma_s.shape[1]

    def array_equal(self, other):
        """Exact comparison of every table (used for idempotence checks)."""
        names = ('sigma_t', 'sigma_s', 'nu', 'sigma_f', 'chi',
                 'internal_source', 'fission')
        if not all(np.array_equal(getattr(self, n), getattr(other, n))
                   for n in names):
            return False
        if self.norm is None or other.norm is None:
            return self.norm is None and other.norm is None
        return np.array_equal(self.norm, other.norm)


@dataclass
class BasisWeightMaterial:
    """Cross sections integrated separately for every (basis, weight) pair.

    Entry ``[d, j]`` is ``integral( dw_d * b_j * sigma(x) ) dV`` where
    ``sigma(x)`` is the Shepard interpolation of the basis-point materials.

    Attributes
    ----------
    sigma_t : ndarray, shape (ndm, nb, ng)
    sigma_s : ndarray, shape (ndm, nb, nl, ng, ng)
    fission : ndarray, shape (ndm, nb, ng, ng)
    internal_source : ndarray, shape (ndm, ng)
        Weight-moment integral of the internal source.
    """
    sigma_t: np.ndarray
    sigma_s: np.ndarray
    fission: np.ndarray
    internal_source: np.ndarray

    def __post_init__(self):
        ndm, nb, ng = self.sigma_t.shape
        if self.sigma_s.shape[:2] != (ndm, nb) or self.sigma_s.shape[3:] != (ng, ng):
            raise ValueError(
                f"sigma_s must have shape ({ndm}, {nb}, nl, {ng}, {ng}), "
                f"got {self.sigma_s.shape}"
            )
        if self.fission.shape != (ndm, nb, ng, ng):
            raise ValueError(
                f"fission must have shape ({ndm}, {nb}, {ng}, {ng}), "
                f"got {self.fission.shape}"
            )
        if self.internal_source.shape != (ndm, ng):
            raise ValueError(
                f"internal_source must have shape ({ndm}, {ng}), "
                f"got {self.internal_source.shape}"
            )

    @property
    def number_of_basis_functions(self):
        return self.sigma_t.shape[1]

    def array_equal(self, other):
        return all(np.array_equal(getattr(self, n), getattr(other, n))
                   for n in ('sigma_t', 'sigma_s', 'fission', 'internal_source'))
