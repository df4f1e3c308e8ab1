"""Numba kernels for the per-cell residual and tangent of the three-field system.

Local DOF order is ``[u (node-major, component-minor) | p | J]``. Only the
lower triangle ``j <= i`` is integrated; the upper triangle is copied from it
afterwards, so the local tangent is exactly symmetric.

Per quadrature point, with ``g_a = F^-T grad_X N_a``:

* ``r_u[a,c] = -sum_j g_a[j] tau[c,j] JxW``
* ``r_p[k]   = -N_k (det F - J~) JxW``
* ``r_J[k]   = -N_k (dPsi/dJ - p~) JxW``
* ``K_uu     = g_a[k] Jc[ci,k,cj,l] g_b[l] + delta(ci,cj) g_a . tau . g_b``
* ``K_pu     = N_k det F g_b[cj]``
* ``K_Jp     = -N_k N_m``
* ``K_JJ     = N_k d2Psi N_m``

All remaining blocks (pp, uJ, Ju) stay zero.
"""

from __future__ import annotations

import numpy as np
from numba import njit, prange


@njit(cache=True, nogil=True)
def assemble_cell(dNdX, JxW, N_p, F_inv, tau, Jc, det_F, p_tilde, J_tilde, dPsi, d2Psi, K, R):
    """Integrate one cell into ``K`` (n_loc, n_loc) and ``R`` (n_loc,), both zeroed here."""
    n_q = dNdX.shape[0]
    n_nodes = dNdX.shape[1]
    dim = dNdX.shape[2]
    n_pc = N_p.shape[1]
    n_u = n_nodes * dim
    off_p = n_u
    off_J = n_u + n_pc
    n_loc = n_u + 2 * n_pc

    for i in range(n_loc):
        R[i] = 0.0
        for j in range(n_loc):
            K[i, j] = 0.0

    g = np.empty((n_nodes, dim), dtype=np.float64)
    g_tau = np.empty((n_nodes, dim), dtype=np.float64)
    A = np.empty((n_nodes, dim, dim, dim), dtype=np.float64)

    for q in range(n_q):
        w = JxW[q]
        Fi = F_inv[q]
        t = tau[q]
        C = Jc[q]
        dJ = det_F[q]

        # spatial gradients of the scalar shape functions
        for a in range(n_nodes):
            for j in range(dim):
                s = 0.0
                for m in range(dim):
                    s += dNdX[q, a, m] * Fi[m, j]
                g[a, j] = s

        # g_a . tau and g_a[k] Jc[ci, k, cj, l]
        for a in range(n_nodes):
            for l in range(dim):
                s = 0.0
                for k in range(dim):
                    s += g[a, k] * t[k, l]
                g_tau[a, l] = s
            for ci in range(dim):
                for cj in range(dim):
                    for l in range(dim):
                        s = 0.0
                        for k in range(dim):
                            s += g[a, k] * C[ci, k, cj, l]
                        A[a, ci, cj, l] = s

        # u rows
        for i in range(n_u):
            a = i // dim
            ci = i % dim
            s = 0.0
            for j in range(dim):
                s += g[a, j] * t[ci, j]
            R[i] -= s * w

            for jj in range(i + 1):
                b = jj // dim
                cj = jj % dim
                s = 0.0
                for l in range(dim):
                    s += A[a, ci, cj, l] * g[b, l]
                if ci == cj:
                    for l in range(dim):
                        s += g_tau[a, l] * g[b, l]
                K[i, jj] += s * w

        # p rows: residual and the pu block
        for k in range(n_pc):
            Nk = N_p[q, k]
            i = off_p + k
            R[i] -= Nk * (dJ - J_tilde[q]) * w
            for jj in range(n_u):
                b = jj // dim
                cj = jj % dim
                K[i, jj] += Nk * dJ * g[b, cj] * w

        # J rows: residual, Jp and JJ blocks
        for k in range(n_pc):
            Nk = N_p[q, k]
            i = off_J + k
            R[i] -= Nk * (dPsi[q] - p_tilde[q]) * w
            for m in range(n_pc):
                K[i, off_p + m] -= Nk * N_p[q, m] * w
            for m in range(k + 1):
                K[i, off_J + m] += Nk * d2Psi[q] * N_p[q, m] * w

    for i in range(n_loc):
        for j in range(i + 1, n_loc):
            K[i, j] = K[j, i]


@njit(cache=True, parallel=True)
def assemble_cells(dNdX, JxW, N_p, F_inv, tau, Jc, det_F, p_tilde, J_tilde, dPsi, d2Psi, K_cells, R_cells):
    """Integrate every cell into the slabs ``K_cells[c]`` and ``R_cells[c]``."""
    n_cells = dNdX.shape[0]
    for c in prange(n_cells):
        assemble_cell(
            dNdX[c],
            JxW[c],
            N_p,
            F_inv[c],
            tau[c],
            Jc[c],
            det_F[c],
            p_tilde[c],
            J_tilde[c],
            dPsi[c],
            d2Psi[c],
            K_cells[c],
            R_cells[c],
        )


def assemble_cells_python(dNdX, JxW, N_p, F_inv, tau, Jc, det_F, p_tilde, J_tilde, dPsi, d2Psi, K_cells, R_cells):
    """Serial pure-Python counterpart of :func:`assemble_cells`."""
    kernel = assemble_cell.py_func
    for c in range(dNdX.shape[0]):
        kernel(
            dNdX[c],
            JxW[c],
            N_p,
            F_inv[c],
            tau[c],
            Jc[c],
            det_F[c],
            p_tilde[c],
            J_tilde[c],
            dPsi[c],
            d2Psi[c],
            K_cells[c],
            R_cells[c],
        )
