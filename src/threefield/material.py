"""Compressible Neo-Hookean material for the three-field formulation.

The free energy is split additively into a volumetric part Ψ_vol(J̃) and an
isochoric part Ψ_iso(b̄) with

    Ψ_vol = κ/4 (J̃² - 1 - 2 ln J̃)
    Ψ_iso = c₁ (tr b̄ - dim)

The Kirchhoff stress and the spatial tangent (``J c``) follow from

    τ     = p̃ det(F) I + dev_P : (2 c₁ b̄)
    Jc    = p̃ det(F) (I⊗I - 2S)
          + 2/dim tr(τ̄) dev_P - 2/dim (τ_iso⊗I + I⊗τ_iso)

with the fictitious isochoric tangent c̄ = 0.

The per-point evaluation in the solver runs through the tagged-variant kernel
returned by :func:`select_material_kernel`; :class:`NeoHookeanThreeField` is
the object-level model used to validate parameters and as a NumPy reference.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Tuple

import numpy as np

from threefield import tensors
from threefield.errors import ConfigurationError, KinematicError
from threefield.numba.kernels_material import neo_hooke_update_cells, neo_hooke_update_cells_python


class MaterialKind(IntEnum):
    NEO_HOOKE_THREE_FIELD = 1


def bulk_modulus(mu: float, nu: float) -> float:
    """κ = 2μ(1+ν) / (3(1-2ν)); ``inf`` for ν = 0.5."""
    denom = 3.0 * (1.0 - 2.0 * nu)
    if denom == 0.0:
        return math.inf
    return 2.0 * mu * (1.0 + nu) / denom


@dataclass
class NeoHookeanThreeField:
    """Neo-Hookean law with relaxed pressure p̃ and dilatation J̃.

    Parameters
    ----------
    mu : float
        Shear modulus.
    nu : float
        Poisson ratio; κ must come out positive and finite.
    dim : int
        Space dimension (2 or 3).
    """

    mu: float
    nu: float
    dim: int = 3

    kappa: float = field(init=False)
    c_1: float = field(init=False)

    det_F: float = field(init=False, default=1.0)
    b_bar: np.ndarray = field(init=False, repr=False)
    p_tilde: float = field(init=False, default=0.0)
    J_tilde: float = field(init=False, default=1.0)

    def __post_init__(self):
        self.mu = float(self.mu)
        self.nu = float(self.nu)
        self.dim = int(self.dim)
        if self.dim not in (2, 3):
            raise ConfigurationError(f"dim must be 2 or 3, got {self.dim}")
        self.kappa = bulk_modulus(self.mu, self.nu)
        if not math.isfinite(self.kappa) or self.kappa <= 0.0:
            raise ConfigurationError(
                f"Bulk modulus must be positive and finite (mu={self.mu}, nu={self.nu}, kappa={self.kappa})"
            )
        self.c_1 = 0.5 * self.mu
        self.b_bar = tensors.identity(self.dim)

    # ------------------------------------------------------------------
    # State update
    # ------------------------------------------------------------------
    def update_material_data(self, F: np.ndarray, p_tilde: float, J_tilde: float) -> None:
        F = np.asarray(F, dtype=float)
        det_F = float(np.linalg.det(F))
        if not det_F > 0.0:
            raise KinematicError(det_F)
        self.det_F = det_F
        self.b_bar = tensors.left_cauchy_green(tensors.isochoric_part(F))
        self.p_tilde = float(p_tilde)
        self.J_tilde = float(J_tilde)

    # ------------------------------------------------------------------
    # Stress and tangent
    # ------------------------------------------------------------------
    def get_tau_bar(self) -> np.ndarray:
        return 2.0 * self.c_1 * self.b_bar

    def get_tau_iso(self) -> np.ndarray:
        return tensors.double_contract(tensors.deviator_tensor(self.dim), self.get_tau_bar())

    def get_tau_vol(self) -> np.ndarray:
        return self.p_tilde * self.det_F * tensors.identity(self.dim)

    def get_tau(self) -> np.ndarray:
        return self.get_tau_vol() + self.get_tau_iso()

    def get_Jc_vol(self) -> np.ndarray:
        d = self.dim
        return self.p_tilde * self.det_F * (tensors.IxI(d) - 2.0 * tensors.symmetric_identity4(d))

    def get_Jc_iso(self) -> np.ndarray:
        d = self.dim
        tau_bar = self.get_tau_bar()
        tau_iso = self.get_tau_iso()
        I = tensors.identity(d)
        dev_P = tensors.deviator_tensor(d)
        tau_iso_x_I = tensors.outer(tau_iso, I)
        I_x_tau_iso = tensors.outer(I, tau_iso)
        # c_bar = 0 for this law, so the dev_P : c_bar : dev_P term vanishes
        return (2.0 / d) * np.trace(tau_bar) * dev_P - (2.0 / d) * (tau_iso_x_I + I_x_tau_iso)

    def get_Jc(self) -> np.ndarray:
        return self.get_Jc_vol() + self.get_Jc_iso()

    def get_dPsi_vol_dJ(self) -> float:
        return 0.5 * self.kappa * (self.J_tilde - 1.0 / self.J_tilde)

    def get_d2Psi_vol_dJ2(self) -> float:
        return 0.5 * self.kappa * (1.0 + 1.0 / (self.J_tilde * self.J_tilde))

    def get_det_F(self) -> float:
        return self.det_F

    def get_p_tilde(self) -> float:
        return self.p_tilde

    def get_J_tilde(self) -> float:
        return self.J_tilde


# -----------------------------------------------------------------------------
# Tagged variant used by the batched kernels
# -----------------------------------------------------------------------------


def pack_material_params(material) -> Tuple[MaterialKind, np.ndarray]:
    """Return ``(kind, params)`` for the batched constitutive kernels."""
    if isinstance(material, NeoHookeanThreeField):
        params = np.array([material.mu, material.kappa, material.c_1], dtype=float)
        return MaterialKind.NEO_HOOKE_THREE_FIELD, params
    raise ConfigurationError(f"No batched kernel for material type {type(material).__name__}")


def select_material_kernel(kind: int, use_numba: bool = True) -> Callable:
    """Resolve the batched update kernel for ``kind`` (called once per run)."""
    try:
        kind = MaterialKind(int(kind))
    except ValueError:
        raise ConfigurationError(f"Unknown material kind {kind}") from None
    if kind == MaterialKind.NEO_HOOKE_THREE_FIELD:
        return neo_hooke_update_cells if use_numba else neo_hooke_update_cells_python
    raise ConfigurationError(f"Unknown material kind {kind}")


def make_material(parameters) -> NeoHookeanThreeField:
    """Instantiate the material selected by an :class:`~threefield.parameters.AllParameters`."""
    return NeoHookeanThreeField(
        mu=float(parameters.materials.mu),
        nu=float(parameters.materials.nu),
        dim=int(parameters.geometry.dim),
    )
