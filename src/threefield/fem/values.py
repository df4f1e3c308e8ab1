"""Finite-element values on cells and faces.

The reference shape data are shared by all cells; only the mapped gradients
``dN/dX`` and the integration weights ``JxW`` are stored per cell.
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

import numpy as np

from threefield.fem.dofs import BlockDofHandler
from threefield.fem.quadrature import face_points, gauss_tensor


class CellValues:
    """Volume quadrature data for every cell of a :class:`BlockDofHandler`.

    Attributes
    ----------
    N_u : (n_q, n_nodes)
        Lagrange values.
    N_p : (n_q, n_pc)
        DGP values (shared by the pressure and the dilatation).
    dNdX : (n_cells, n_q, n_nodes, dim)
        Gradients with respect to the reference coordinates X.
    JxW : (n_cells, n_q)
    """

    def __init__(self, dofs: BlockDofHandler, quad_order: int):
        self.dofs = dofs
        mesh = dofs.mesh
        self.dim = mesh.dim
        self.quad_order = int(quad_order)
        self.q_points, self.q_weights = gauss_tensor(self.quad_order, self.dim)
        self.n_q_points = self.q_points.shape[0]

        self.N_u = dofs.fe_u.values(self.q_points)
        dN_ref = dofs.fe_u.gradients(self.q_points)
        self.N_p = dofs.fe_p.values(self.q_points)

        X = mesh.points[mesh.cells]                                # (nc, nn, dim)
        jac = np.einsum("cai,qaj->cqij", X, dN_ref)                # dX_i/dxi_j
        det = np.linalg.det(jac)
        if np.any(det <= 0.0):
            raise ValueError("Mesh has cells with non-positive Jacobian")
        jinv = np.linalg.inv(jac)
        self.dNdX = np.ascontiguousarray(np.einsum("qaj,cqji->cqai", dN_ref, jinv))
        self.JxW = np.ascontiguousarray(det * self.q_weights[None, :])
        self.q_points_real = np.einsum("cai,qa->cqi", X, self.N_u)

    def grad_u(self, u_cells: np.ndarray) -> np.ndarray:
        """∇_X u at every point, ``u_cells`` shape ``(n_cells, n_nodes, dim)``."""
        return np.einsum("cai,cqaj->cqij", u_cells, self.dNdX)

    def dgp_at_points(self, modes: np.ndarray) -> np.ndarray:
        """Interpolate per-cell DGP coefficients ``(n_cells, n_pc)`` to ``(n_cells, n_q)``."""
        return modes @ self.N_p.T

    def volume(self) -> float:
        return float(self.JxW.sum())


class FaceValues:
    """Face quadrature data for a list of ``(cell, face)`` pairs.

    Attributes
    ----------
    N_u : list of (n_qf, n_nodes)
        Lagrange values per face (depends only on the face number).
    JxW : (n_faces, n_qf)
        Surface measure ``det(J) |J^-T e_d| w``.
    normals : (n_faces, n_qf, dim)
        Unit outward normals.
    """

    def __init__(self, dofs: BlockDofHandler, quad_order: int, faces: Iterable[Tuple[int, int]]):
        self.dofs = dofs
        mesh = dofs.mesh
        self.dim = mesh.dim
        self.faces = [(int(c), int(f)) for c, f in faces]
        fe = dofs.fe_u

        self.N_u = []
        jxw = []
        normals = []
        points = []
        for c, f in self.faces:
            d, side = divmod(f, 2)
            qp, qw = face_points(int(quad_order), self.dim, f)
            N = fe.values(qp)
            dN = fe.gradients(qp)
            X = mesh.points[mesh.cells[c]]
            jac = np.einsum("ai,qaj->qij", X, dN)
            det = np.linalg.det(jac)
            jinv = np.linalg.inv(jac)
            # Nanson: n da = det(J) J^-T N dA, N = +-e_d
            nvec = jinv[:, d, :] * (1.0 if side == 1 else -1.0)
            nrm = np.linalg.norm(nvec, axis=1)
            self.N_u.append(N)
            jxw.append(det * nrm * qw)
            normals.append(nvec / nrm[:, None])
            points.append(N @ X)

        n_qf = jxw[0].shape[0] if jxw else 0
        self.JxW = np.array(jxw, dtype=float).reshape(len(self.faces), n_qf)
        self.normals = np.array(normals, dtype=float).reshape(len(self.faces), n_qf, self.dim)
        self.q_points_real = np.array(points, dtype=float).reshape(len(self.faces), n_qf, self.dim)

    def __len__(self) -> int:
        return len(self.faces)

    def area(self, index: Optional[int] = None) -> float:
        if index is None:
            return float(self.JxW.sum())
        return float(self.JxW[int(index)].sum())
