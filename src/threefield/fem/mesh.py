"""Structured hexahedral/quadrilateral meshes with Q_k node lattices.

A mesh of ``n_d`` cells per direction carries ``k*n_d + 1`` points per
direction, so every cell owns a (k+1)^dim sub-lattice of nodes. Faces are
numbered ``f = 2*d + side`` (side 0 at x_d = 0 of the reference cell).
``boundary_ids[c, f]`` is -1 for interior faces.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np

from threefield.fem.quadrature import gauss_tensor
from threefield.fem.shape import LagrangeQ


@dataclass
class StructuredMesh:
    points: np.ndarray        # (n_points, dim)
    cells: np.ndarray         # (n_cells, (k+1)^dim) global point ids
    boundary_ids: np.ndarray  # (n_cells, 2*dim)
    degree: int
    subdivisions: tuple

    @property
    def dim(self) -> int:
        return int(self.points.shape[1])

    @property
    def n_cells(self) -> int:
        return int(self.cells.shape[0])

    @property
    def n_points(self) -> int:
        return int(self.points.shape[0])

    def face_local_nodes(self, face: int) -> np.ndarray:
        d, side = divmod(int(face), 2)
        el = LagrangeQ(self.degree, self.dim)
        return np.nonzero(el.node_index[:, d] == side * self.degree)[0]

    def face_center(self, cell: int, face: int) -> np.ndarray:
        return self.points[self.cells[int(cell), self.face_local_nodes(face)]].mean(axis=0)

    def boundary_faces(self, boundary_id: Optional[int] = None):
        """``(cell, face)`` pairs on the boundary (optionally with a given id)."""
        if boundary_id is None:
            mask = self.boundary_ids >= 0
        else:
            mask = self.boundary_ids == int(boundary_id)
        cs, fs = np.nonzero(mask)
        return list(zip(cs.tolist(), fs.tolist()))

    def boundary_points(self, boundary_id: int) -> np.ndarray:
        """Sorted global point ids on all faces carrying ``boundary_id``."""
        ids = [self.cells[c, self.face_local_nodes(f)] for c, f in self.boundary_faces(boundary_id)]
        if not ids:
            return np.zeros(0, dtype=int)
        return np.unique(np.concatenate(ids))

    def transform(self, fn: Callable[[np.ndarray], np.ndarray]) -> None:
        self.points = np.asarray(fn(self.points), dtype=float)

    def scale(self, factor: float) -> None:
        self.points = self.points * float(factor)


def hyper_rectangle(
    p0: Sequence[float],
    p1: Sequence[float],
    subdivisions: Sequence[int],
    degree: int = 1,
    colorize: bool = True,
) -> StructuredMesh:
    """Axis-aligned box [p0, p1] split into ``subdivisions`` cells per direction.

    With ``colorize`` the boundary faces get ids ``2*d + side``, otherwise 0.
    """
    p0 = np.asarray(p0, dtype=float)
    p1 = np.asarray(p1, dtype=float)
    dim = p0.shape[0]
    subs = tuple(int(s) for s in subdivisions)
    k = int(degree)
    npd = [k * s + 1 for s in subs]

    axes = [np.linspace(p0[d], p1[d], npd[d]) for d in range(dim)]
    grids = np.meshgrid(*axes, indexing="ij")
    rev = tuple(range(dim))[::-1]
    points = np.stack([g.transpose(rev).ravel() for g in grids], axis=1)

    strides = np.cumprod([1] + npd[:-1])
    el = LagrangeQ(k, dim)

    cell_idx = np.array([idx[::-1] for idx in np.ndindex(*subs[::-1])], dtype=int)
    n_cells = cell_idx.shape[0]
    cells = np.empty((n_cells, el.n_nodes), dtype=int)
    for c in range(n_cells):
        lattice = k * cell_idx[c][None, :] + el.node_index
        cells[c] = lattice @ strides

    boundary_ids = np.full((n_cells, 2 * dim), -1, dtype=int)
    for d in range(dim):
        lo = cell_idx[:, d] == 0
        hi = cell_idx[:, d] == subs[d] - 1
        boundary_ids[lo, 2 * d] = 2 * d if colorize else 0
        boundary_ids[hi, 2 * d + 1] = 2 * d + 1 if colorize else 0

    return StructuredMesh(points=points, cells=cells, boundary_ids=boundary_ids, degree=k, subdivisions=subs)


def _cooks_y_transform(points: np.ndarray) -> np.ndarray:
    out = np.array(points, dtype=float, copy=True)
    x = points[:, 0]
    y = points[:, 1]
    y_upper = 44.0 + (16.0 / 48.0) * x
    y_lower = (44.0 / 48.0) * x
    theta = y / 44.0
    out[:, 1] = (1.0 - theta) * y_lower + theta * y_upper
    return out


def cooks_membrane(elements_per_edge: int, dim: int = 3, degree: int = 1, scale: float = 1.0) -> StructuredMesh:
    """Tapered Cook's membrane (48 x 44/16), clamped at x=0, loaded at x=48.

    Boundary ids: 1 clamped edge, 11 loaded edge, 2 the +-z faces (3D),
    3 all other boundary faces.
    """
    n = int(elements_per_edge)
    if dim == 3:
        mesh = hyper_rectangle((0.0, 0.0, -2.5), (48.0, 44.0, 2.5), (n, n, 2), degree=degree)
    else:
        mesh = hyper_rectangle((0.0, 0.0), (48.0, 44.0), (n, n), degree=degree)

    tol = 1e-6
    for c, f in mesh.boundary_faces():
        center = mesh.face_center(c, f)
        if abs(center[0]) < tol:
            bid = 1
        elif abs(center[0] - 48.0) < tol:
            bid = 11
        elif dim == 3 and abs(abs(center[2]) - 2.5) < tol:
            bid = 2
        else:
            bid = 3
        mesh.boundary_ids[c, f] = bid

    mesh.transform(_cooks_y_transform)
    mesh.scale(scale)
    return mesh


def unit_block(global_refinement: int, dim: int = 3, degree: int = 1, scale: float = 1.0) -> StructuredMesh:
    """Unit cube/square with a loaded patch (id 6) on the top face y = 1.

    Faces keep the colorized ids ``2*d + side``; the patch is
    0.25 < x, z < 0.75 in 3D and x < 0.5 in 2D.
    """
    n = 2 ** max(1, int(global_refinement))
    mesh = hyper_rectangle([0.0] * dim, [1.0] * dim, [n] * dim, degree=degree, colorize=True)
    mesh.scale(scale)

    for c, f in mesh.boundary_faces(3):
        center = mesh.face_center(c, f) / scale
        if dim == 3:
            if 0.25 < center[0] < 0.75 and 0.25 < center[2] < 0.75:
                mesh.boundary_ids[c, f] = 6
        elif center[0] < 0.5:
            mesh.boundary_ids[c, f] = 6
    return mesh


def volume(mesh: StructuredMesh, quad_order: Optional[int] = None) -> float:
    """Reference volume as the sum of ``det(dX/dxi) * w`` over all cells."""
    el = LagrangeQ(mesh.degree, mesh.dim)
    qp, qw = gauss_tensor(quad_order or mesh.degree + 1, mesh.dim)
    dN = el.gradients(qp)                              # (nq, nn, dim)
    X = mesh.points[mesh.cells]                        # (nc, nn, dim)
    jac = np.einsum("cai,qaj->cqij", X, dN)
    return float(np.sum(np.linalg.det(jac) * qw[None, :]))
