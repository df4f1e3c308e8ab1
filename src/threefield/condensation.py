"""Per-cell static condensation of the pressure and dilatation unknowns.

For every cell the blocks ``k_pu``, ``k_pJ`` and ``k_JJ`` are read back from
the assembled global tangent. With ``k_pJ^-1`` the reduced displacement
contribution is::

    k_bar = k_pu^T k_pJ^-T k_JJ k_pJ^-1 k_pu

``k_bar`` is added to the uu block and ``k_pJ^-1 - k_pJ`` to the pJ block, so
after the update the pJ slot of the global matrix holds ``k_pJ^-1`` for the
back-substitution in :mod:`threefield.linear_solver`. Because the p and J
modes are cell-local (discontinuous), the per-cell blocks are exact.
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from threefield.errors import SingularReductionError
from threefield.fem.dofs import BlockDofHandler


def invert_pJ_block(k_pJ: np.ndarray, cell: int = -1) -> np.ndarray:
    """Inverse of one cell's pJ block; singular blocks are fatal."""
    eps = np.finfo(float).eps
    try:
        cond = np.linalg.cond(k_pJ)
        if not np.isfinite(cond) or cond > 1.0 / eps:
            raise np.linalg.LinAlgError(f"condition number {cond:.3e}")
        return np.linalg.inv(k_pJ)
    except np.linalg.LinAlgError as exc:
        raise SingularReductionError(f"Singular pJ block in static condensation (cell={cell}): {exc}") from exc


def extract_cell_blocks(K: sp.csr_matrix, dofs: BlockDofHandler, cell: int):
    """Dense ``(k_pu, k_pJ, k_JJ)`` of one cell from the global tangent."""
    u = dofs.cell_u_dofs(cell)
    p = dofs.cell_p_dofs(cell)
    J = dofs.cell_J_dofs(cell)
    rows_p = K[p]
    rows_J = K[J]
    k_pu = rows_p[:, u].toarray()
    k_pJ = rows_p[:, J].toarray()
    k_JJ = rows_J[:, J].toarray()
    return k_pu, k_pJ, k_JJ


def assemble_static_condensation(K: sp.csr_matrix, dofs: BlockDofHandler) -> sp.csr_matrix:
    """Return ``K`` plus the condensation contributions of every cell."""
    K = sp.csr_matrix(K)
    rows = []
    cols = []
    data = []
    for c in range(dofs.mesh.n_cells):
        k_pu, k_pJ, k_JJ = extract_cell_blocks(K, dofs, c)
        k_pJ_inv = invert_pJ_block(k_pJ, cell=c)
        k_bar = k_pu.T @ k_pJ_inv.T @ k_JJ @ k_pJ_inv @ k_pu

        u = dofs.cell_u_dofs(c)
        p = dofs.cell_p_dofs(c)
        J = dofs.cell_J_dofs(c)

        rows.append(np.repeat(u, u.size))
        cols.append(np.tile(u, u.size))
        data.append(k_bar.ravel())

        rows.append(np.repeat(p, J.size))
        cols.append(np.tile(J, p.size))
        data.append((k_pJ_inv - k_pJ).ravel())

    n = dofs.n_dofs
    if not rows:
        return K
    C = sp.coo_matrix(
        (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
        shape=(n, n),
    ).tocsr()
    return (K + C).tocsr()
