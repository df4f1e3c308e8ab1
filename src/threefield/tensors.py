"""Standard tensors and finite-strain kinematics.

Second-order tensors are ``(dim, dim)`` arrays and fourth-order tensors are
``(dim, dim, dim, dim)`` arrays. The double contraction ``A : B`` of two
fourth-order tensors is ``einsum('ijmn,mnkl->ijkl', A, B)``.

These helpers are the reference (pure NumPy) formulation; the hot loops use
the equivalent closed forms in :mod:`threefield.numba.kernels_material`.
"""

from __future__ import annotations

import numpy as np


def identity(dim: int) -> np.ndarray:
    """Second-order identity I."""
    return np.eye(int(dim), dtype=float)


def outer(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Dyadic product a ⊗ b of two second-order tensors."""
    return np.einsum("ij,kl->ijkl", a, b)


def IxI(dim: int) -> np.ndarray:
    """I ⊗ I."""
    I = identity(dim)
    return outer(I, I)


def symmetric_identity4(dim: int) -> np.ndarray:
    """Symmetric fourth-order identity S_ijkl = (δ_ik δ_jl + δ_il δ_jk) / 2."""
    I = identity(dim)
    return 0.5 * (np.einsum("ik,jl->ijkl", I, I) + np.einsum("il,jk->ijkl", I, I))


def deviator_tensor(dim: int) -> np.ndarray:
    """Deviatoric projector dev_P = S - (1/dim) I ⊗ I."""
    return symmetric_identity4(dim) - IxI(dim) / float(dim)


def double_contract(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """A : B for fourth-order A and second- or fourth-order B."""
    if B.ndim == 2:
        return np.einsum("ijkl,kl->ij", A, B)
    return np.einsum("ijmn,mnkl->ijkl", A, B)


def deformation_gradient(grad_u: np.ndarray) -> np.ndarray:
    """F = I + ∇u (reference-configuration displacement gradient)."""
    grad_u = np.asarray(grad_u, dtype=float)
    return identity(grad_u.shape[-1]) + grad_u


def isochoric_part(F: np.ndarray) -> np.ndarray:
    """F̄ = det(F)^(-1/dim) F."""
    F = np.asarray(F, dtype=float)
    dim = F.shape[0]
    return np.linalg.det(F) ** (-1.0 / dim) * F


def left_cauchy_green(F: np.ndarray) -> np.ndarray:
    """b = F Fᵀ."""
    F = np.asarray(F, dtype=float)
    return F @ F.T


def is_minor_symmetric(C: np.ndarray, atol: float = 0.0) -> bool:
    return bool(
        np.allclose(C, np.transpose(C, (1, 0, 2, 3)), rtol=0.0, atol=atol)
        and np.allclose(C, np.transpose(C, (0, 1, 3, 2)), rtol=0.0, atol=atol)
    )


def is_major_symmetric(C: np.ndarray, atol: float = 0.0) -> bool:
    return bool(np.allclose(C, np.transpose(C, (2, 3, 0, 1)), rtol=0.0, atol=atol))
