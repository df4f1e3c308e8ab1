"""Block DOF numbering for the Q_k x DGP_{k-1} x DGP_{k-1} system.

Global layout::

    [ u (point * dim + component) | p (cell * n_pc + mode) | J (cell * n_pc + mode) ]

Local (per cell) layout::

    [ u (node-major, component-minor) | p modes | J modes ]
"""

from __future__ import annotations

import numpy as np

from threefield.fem.mesh import StructuredMesh
from threefield.fem.shape import LagrangeQ, LegendreDGP

U_BLOCK = 0
P_BLOCK = 1
J_BLOCK = 2

# Blocks coupled by the weak form; pp, uJ and Ju are structurally zero.
COUPLING = np.array(
    [
        [True, True, False],
        [True, False, True],
        [False, True, True],
    ],
    dtype=bool,
)


class BlockDofHandler:
    def __init__(self, mesh: StructuredMesh, degree: int):
        self.mesh = mesh
        self.dim = mesh.dim
        self.degree = int(degree)
        if self.degree != mesh.degree:
            raise ValueError(f"Mesh lattice degree {mesh.degree} does not match poly_degree {self.degree}")

        self.fe_u = LagrangeQ(self.degree, self.dim)
        self.fe_p = LegendreDGP(self.degree - 1, self.dim)

        self.n_nodes_per_cell = self.fe_u.n_nodes
        self.n_u_per_cell = self.n_nodes_per_cell * self.dim
        self.n_p_per_cell = self.fe_p.n_modes
        self.dofs_per_cell = self.n_u_per_cell + 2 * self.n_p_per_cell

        nc = mesh.n_cells
        self.n_u = mesh.n_points * self.dim
        self.n_p = nc * self.n_p_per_cell
        self.n_J = self.n_p
        self.n_dofs = self.n_u + self.n_p + self.n_J
        self.dofs_per_block = (self.n_u, self.n_p, self.n_J)

        self.u_slice = slice(0, self.n_u)
        self.p_slice = slice(self.n_u, self.n_u + self.n_p)
        self.J_slice = slice(self.n_u + self.n_p, self.n_dofs)

        npc = self.n_p_per_cell
        u_loc = (mesh.cells[:, :, None] * self.dim + np.arange(self.dim)[None, None, :]).reshape(nc, -1)
        p_loc = self.n_u + np.arange(nc)[:, None] * npc + np.arange(npc)[None, :]
        J_loc = p_loc + self.n_p
        self.cell_dofs = np.ascontiguousarray(np.hstack([u_loc, p_loc, J_loc]).astype(np.int64))

        self.local_block = np.concatenate(
            [
                np.full(self.n_u_per_cell, U_BLOCK, dtype=int),
                np.full(npc, P_BLOCK, dtype=int),
                np.full(npc, J_BLOCK, dtype=int),
            ]
        )
        self.local_u = np.arange(self.n_u_per_cell)
        self.local_p = self.n_u_per_cell + np.arange(npc)
        self.local_J = self.n_u_per_cell + npc + np.arange(npc)

    def block_of(self, dofs: np.ndarray) -> np.ndarray:
        dofs = np.asarray(dofs)
        return np.where(dofs < self.n_u, U_BLOCK, np.where(dofs < self.n_u + self.n_p, P_BLOCK, J_BLOCK))

    def local_coupling_mask(self) -> np.ndarray:
        """(dofs_per_cell, dofs_per_cell) mask of entries that may be written."""
        b = self.local_block
        return COUPLING[b[:, None], b[None, :]]

    def point_dofs(self, points: np.ndarray, components) -> np.ndarray:
        points = np.asarray(points, dtype=int)
        comps = np.asarray(list(components), dtype=int)
        return (points[:, None] * self.dim + comps[None, :]).ravel()

    def cell_p_dofs(self, cell: int) -> np.ndarray:
        return self.cell_dofs[int(cell), self.local_p]

    def cell_J_dofs(self, cell: int) -> np.ndarray:
        return self.cell_dofs[int(cell), self.local_J]

    def cell_u_dofs(self, cell: int) -> np.ndarray:
        return self.cell_dofs[int(cell), self.local_u]

    def cell_field(self, x: np.ndarray, block: int) -> np.ndarray:
        """Gather a block of the global vector per cell.

        u: ``(n_cells, n_nodes, dim)``; p/J: ``(n_cells, n_pc)``.
        """
        if block == U_BLOCK:
            u = np.asarray(x[self.u_slice]).reshape(-1, self.dim)
            return u[self.mesh.cells]
        sl = self.p_slice if block == P_BLOCK else self.J_slice
        return np.asarray(x[sl]).reshape(self.mesh.n_cells, self.n_p_per_cell)

    def initial_solution(self) -> np.ndarray:
        """u = 0, p = 0, J = L2 projection of 1 (constant mode 1 per cell)."""
        x = np.zeros(self.n_dofs, dtype=float)
        J = x[self.J_slice].reshape(self.mesh.n_cells, self.n_p_per_cell)
        J[:, 0] = 1.0
        return x
