"""Global assembly of the three-field residual and tangent.

Each Newton iteration:

1. the batched cell kernel integrates every cell independently into per-cell
   slabs (``prange`` over cells when Numba is enabled);
2. the slabs are scattered into a fresh COO triplet list restricted to the
   block coupling pattern and converted to CSR (single writer);
3. the pressure-ramped traction is added to the u block of the right-hand
   side on the faces carrying the load boundary id.

The returned right-hand side is ``f_ext - f_int``, so the Newton update solves
``K du = rhs``.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
import scipy.sparse as sp

from threefield.fem.dofs import BlockDofHandler
from threefield.fem.values import CellValues, FaceValues
from threefield.history import QuadraturePointHistory
from threefield.numba.kernels_assembly import assemble_cells, assemble_cells_python


class CellAssembler:
    """Residual/tangent assembler for one mesh, bound to its history store.

    Parameters
    ----------
    dofs : BlockDofHandler
    cell_values : CellValues
    history : QuadraturePointHistory
    load_faces : FaceValues, optional
        Faces that carry the traction.
    p0 : float
        Reference pressure ``1/scale**2``.
    p_p0 : float
        Pressure ratio applied at ``time_ramp = 1``.
    traction_direction : ndarray or None
        Fixed traction direction; ``None`` pushes against the outward normal.
    use_numba : bool
        Compiled parallel cell loop (True) or the serial Python kernel.
    """

    def __init__(
        self,
        dofs: BlockDofHandler,
        cell_values: CellValues,
        history: QuadraturePointHistory,
        load_faces: Optional[FaceValues] = None,
        p0: float = 1.0,
        p_p0: float = 0.0,
        traction_direction: Optional[np.ndarray] = None,
        use_numba: bool = True,
    ):
        self.dofs = dofs
        self.cell_values = cell_values
        self.history = history
        self.load_faces = load_faces
        self.p0 = float(p0)
        self.p_p0 = float(p_p0)
        self.traction_direction = None if traction_direction is None else np.asarray(traction_direction, dtype=float)
        self.use_numba = bool(use_numba)
        self._kernel = assemble_cells if self.use_numba else assemble_cells_python

        nc = dofs.mesh.n_cells
        nloc = dofs.dofs_per_cell
        self._mask = dofs.local_coupling_mask()
        cd = dofs.cell_dofs
        self._rows = np.broadcast_to(cd[:, :, None], (nc, nloc, nloc))[:, self._mask].ravel()
        self._cols = np.broadcast_to(cd[:, None, :], (nc, nloc, nloc))[:, self._mask].ravel()

        self.K_cells = np.zeros((nc, nloc, nloc), dtype=float)
        self.R_cells = np.zeros((nc, nloc), dtype=float)

    # ------------------------------------------------------------------
    def assemble_local(self) -> Tuple[np.ndarray, np.ndarray]:
        """Integrate all cells into ``K_cells`` / ``R_cells`` (no traction)."""
        h = self.history
        cv = self.cell_values
        self._kernel(
            cv.dNdX,
            cv.JxW,
            cv.N_p,
            h.F_inv,
            h.tau,
            h.Jc,
            h.det_F,
            h.p_tilde,
            h.J_tilde,
            h.dPsi_vol_dJ,
            h.d2Psi_vol_dJ2,
            self.K_cells,
            self.R_cells,
        )
        return self.K_cells, self.R_cells

    def scatter(self, K_cells: np.ndarray, R_cells: np.ndarray) -> Tuple[sp.csr_matrix, np.ndarray]:
        n = self.dofs.n_dofs
        data = K_cells[:, self._mask].ravel()
        K = sp.coo_matrix((data, (self._rows, self._cols)), shape=(n, n)).tocsr()
        rhs = np.zeros(n, dtype=float)
        np.add.at(rhs, self.dofs.cell_dofs.ravel(), R_cells.ravel())
        return K, rhs

    def pressure(self, time_ramp: float) -> float:
        return self.p0 * self.p_p0 * float(time_ramp)

    def traction_rhs(self, time_ramp: float) -> np.ndarray:
        """``∫ N_a t_c dA`` over the loaded faces as a global vector."""
        rhs = np.zeros(self.dofs.n_dofs, dtype=float)
        fv = self.load_faces
        if fv is None or len(fv) == 0:
            return rhs
        pressure = self.pressure(time_ramp)
        dim = self.dofs.dim
        mesh = self.dofs.mesh
        for i, (c, _f) in enumerate(fv.faces):
            if self.traction_direction is None:
                traction = -pressure * fv.normals[i]                                # (n_qf, dim)
            else:
                traction = np.broadcast_to(pressure * self.traction_direction, (fv.JxW.shape[1], dim))
            f_loc = np.einsum("qa,qc,q->ac", fv.N_u[i], traction, fv.JxW[i])
            gdofs = mesh.cells[c][:, None] * dim + np.arange(dim)[None, :]
            np.add.at(rhs, gdofs.ravel(), f_loc.ravel())
        return rhs

    def assemble(self, time_ramp: float) -> Tuple[sp.csr_matrix, np.ndarray]:
        """Tangent (CSR) and right-hand side ``f_ext - f_int``."""
        K_cells, R_cells = self.assemble_local()
        K, rhs = self.scatter(K_cells, R_cells)
        rhs += self.traction_rhs(time_ramp)
        return K, rhs
