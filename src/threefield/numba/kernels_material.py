"""Numba kernels for the three-field Neo-Hookean material.

The kernels are **stateless** and operate on primitive NumPy arrays so they
compile in Numba ``nopython`` mode. The same functions run as plain Python
through ``kernel.py_func`` when JIT compilation is switched off.

Material parameter layout (see :func:`threefield.material.pack_material_params`)::

    params = [mu, kappa, c_1]

History layout per point: ``F_inv (dim, dim)``, ``tau (dim, dim)``,
``Jc (dim, dim, dim, dim)`` and the scalars ``det_F``, ``p_tilde``,
``J_tilde``, ``dPsi_vol_dJ``, ``d2Psi_vol_dJ2``.
"""

from __future__ import annotations

import numpy as np
from numba import njit, prange


@njit(cache=True, nogil=True)
def neo_hooke_point(F, p_tilde, J_tilde, params, F_inv, tau, Jc):
    """Evaluate one quadrature point.

    Writes ``F_inv``, ``tau`` and ``Jc`` in place and returns
    ``(det_F, dPsi_vol_dJ, d2Psi_vol_dJ2)``. For ``det_F <= 0`` nothing is
    written and the caller must raise.
    """
    dim = F.shape[0]
    kappa = params[1]
    c_1 = params[2]

    if dim == 2:
        det_F = F[0, 0] * F[1, 1] - F[0, 1] * F[1, 0]
    else:
        det_F = (
            F[0, 0] * (F[1, 1] * F[2, 2] - F[1, 2] * F[2, 1])
            - F[0, 1] * (F[1, 0] * F[2, 2] - F[1, 2] * F[2, 0])
            + F[0, 2] * (F[1, 0] * F[2, 1] - F[1, 1] * F[2, 0])
        )
    if not (det_F > 0.0):
        return det_F, 0.0, 0.0

    inv_det = 1.0 / det_F
    if dim == 2:
        F_inv[0, 0] = F[1, 1] * inv_det
        F_inv[0, 1] = -F[0, 1] * inv_det
        F_inv[1, 0] = -F[1, 0] * inv_det
        F_inv[1, 1] = F[0, 0] * inv_det
    else:
        F_inv[0, 0] = (F[1, 1] * F[2, 2] - F[1, 2] * F[2, 1]) * inv_det
        F_inv[0, 1] = (F[0, 2] * F[2, 1] - F[0, 1] * F[2, 2]) * inv_det
        F_inv[0, 2] = (F[0, 1] * F[1, 2] - F[0, 2] * F[1, 1]) * inv_det
        F_inv[1, 0] = (F[1, 2] * F[2, 0] - F[1, 0] * F[2, 2]) * inv_det
        F_inv[1, 1] = (F[0, 0] * F[2, 2] - F[0, 2] * F[2, 0]) * inv_det
        F_inv[1, 2] = (F[0, 2] * F[1, 0] - F[0, 0] * F[1, 2]) * inv_det
        F_inv[2, 0] = (F[1, 0] * F[2, 1] - F[1, 1] * F[2, 0]) * inv_det
        F_inv[2, 1] = (F[0, 1] * F[2, 0] - F[0, 0] * F[2, 1]) * inv_det
        F_inv[2, 2] = (F[0, 0] * F[1, 1] - F[0, 1] * F[1, 0]) * inv_det

    # b_bar = det(F)^(-2/dim) F F^T, tau_bar = 2 c_1 b_bar
    scale = det_F ** (-2.0 / dim)
    tau_bar = np.empty((dim, dim), dtype=np.float64)
    tr_tau_bar = 0.0
    for i in range(dim):
        for j in range(dim):
            s = 0.0
            for k in range(dim):
                s += F[i, k] * F[j, k]
            tau_bar[i, j] = 2.0 * c_1 * scale * s
        tr_tau_bar += tau_bar[i, i]

    # tau_iso = dev_P : tau_bar, tau_vol = p_tilde det(F) I
    p_J = p_tilde * det_F
    tau_iso = np.empty((dim, dim), dtype=np.float64)
    for i in range(dim):
        for j in range(dim):
            v = tau_bar[i, j]
            if i == j:
                v -= tr_tau_bar / dim
            tau_iso[i, j] = v
            tau[i, j] = v + (p_J if i == j else 0.0)

    # Jc_vol = p_tilde det(F) (IxI - 2 S)
    # Jc_iso = 2/dim tr(tau_bar) dev_P - 2/dim (tau_iso x I + I x tau_iso)
    two_over_dim = 2.0 / dim
    for i in range(dim):
        for j in range(dim):
            for k in range(dim):
                for l in range(dim):
                    d_ij = 1.0 if i == j else 0.0
                    d_kl = 1.0 if k == l else 0.0
                    d_ik = 1.0 if i == k else 0.0
                    d_jl = 1.0 if j == l else 0.0
                    d_il = 1.0 if i == l else 0.0
                    d_jk = 1.0 if j == k else 0.0
                    S = 0.5 * (d_ik * d_jl + d_il * d_jk)
                    vol = p_J * (d_ij * d_kl - 2.0 * S)
                    iso = two_over_dim * tr_tau_bar * (S - d_ij * d_kl / dim)
                    iso -= two_over_dim * (tau_iso[i, j] * d_kl + d_ij * tau_iso[k, l])
                    Jc[i, j, k, l] = vol + iso

    dPsi = 0.5 * kappa * (J_tilde - 1.0 / J_tilde)
    d2Psi = 0.5 * kappa * (1.0 + 1.0 / (J_tilde * J_tilde))
    return det_F, dPsi, d2Psi


@njit(cache=True, parallel=True)
def neo_hooke_update_cells(
    grad_u,
    p_tilde,
    J_tilde,
    params,
    F_inv,
    tau,
    Jc,
    det_F,
    p_out,
    J_out,
    dPsi,
    d2Psi,
    status,
):
    """Update every (cell, point) of the history store.

    ``grad_u`` has shape ``(n_cells, n_q, dim, dim)``; ``p_tilde`` and
    ``J_tilde`` have shape ``(n_cells, n_q)``. ``status[c]`` is ``-1`` on
    success, otherwise the first point index of cell ``c`` with det(F) <= 0
    (``det_F`` then holds the offending value at that point).
    """
    n_cells = grad_u.shape[0]
    n_q = grad_u.shape[1]
    dim = grad_u.shape[2]
    for c in prange(n_cells):
        status[c] = -1
        F = np.empty((dim, dim), dtype=np.float64)
        for q in range(n_q):
            for i in range(dim):
                for j in range(dim):
                    F[i, j] = grad_u[c, q, i, j] + (1.0 if i == j else 0.0)
            dJ, d1, d2 = neo_hooke_point(F, p_tilde[c, q], J_tilde[c, q], params, F_inv[c, q], tau[c, q], Jc[c, q])
            det_F[c, q] = dJ
            if not (dJ > 0.0):
                status[c] = q
                break
            p_out[c, q] = p_tilde[c, q]
            J_out[c, q] = J_tilde[c, q]
            dPsi[c, q] = d1
            d2Psi[c, q] = d2


def neo_hooke_update_cells_python(
    grad_u,
    p_tilde,
    J_tilde,
    params,
    F_inv,
    tau,
    Jc,
    det_F,
    p_out,
    J_out,
    dPsi,
    d2Psi,
    status,
):
    """Serial pure-Python counterpart of :func:`neo_hooke_update_cells`."""
    point = neo_hooke_point.py_func
    n_cells, n_q, dim = grad_u.shape[0], grad_u.shape[1], grad_u.shape[2]
    I = np.eye(dim)
    for c in range(n_cells):
        status[c] = -1
        for q in range(n_q):
            F = I + grad_u[c, q]
            dJ, d1, d2 = point(F, p_tilde[c, q], J_tilde[c, q], params, F_inv[c, q], tau[c, q], Jc[c, q])
            det_F[c, q] = dJ
            if not (dJ > 0.0):
                status[c] = q
                break
            p_out[c, q] = p_tilde[c, q]
            J_out[c, q] = J_tilde[c, q]
            dPsi[c, q] = d1
            d2Psi[c, q] = d2
