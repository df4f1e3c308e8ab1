"""Quadrature-point history store.

Per-point constitutive state lives in flat arrays indexed by
``(cell, q_point)``. The store is allocated once for the mesh and never
reallocated; every Newton iteration overwrites it from the current total
solution through the batched material kernel selected at :meth:`setup`.

Cached per point:

* ``F_inv``  (dim, dim)
* ``tau``    (dim, dim)            Kirchhoff stress
* ``Jc``     (dim, dim, dim, dim)  spatial tangent
* ``det_F``, ``p_tilde``, ``J_tilde``, ``dPsi_vol_dJ``, ``d2Psi_vol_dJ2``
"""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

from threefield.errors import KinematicError
from threefield.material import pack_material_params, select_material_kernel


class PointHistory:
    """View on one ``(cell, q_point)`` row of a :class:`QuadraturePointHistory`."""

    __slots__ = ("_store", "cell", "q_point")

    def __init__(self, store: "QuadraturePointHistory", cell: int, q_point: int):
        self._store = store
        self.cell = int(cell)
        self.q_point = int(q_point)

    def update(self, grad_u: np.ndarray, p_tilde: float, J_tilde: float) -> None:
        self._store.update_point(self.cell, self.q_point, grad_u, p_tilde, J_tilde)

    def get_F_inv(self) -> np.ndarray:
        return self._store.F_inv[self.cell, self.q_point]

    def get_tau(self) -> np.ndarray:
        return self._store.tau[self.cell, self.q_point]

    def get_Jc(self) -> np.ndarray:
        return self._store.Jc[self.cell, self.q_point]

    def get_det_F(self) -> float:
        return float(self._store.det_F[self.cell, self.q_point])

    def get_p_tilde(self) -> float:
        return float(self._store.p_tilde[self.cell, self.q_point])

    def get_J_tilde(self) -> float:
        return float(self._store.J_tilde[self.cell, self.q_point])

    def get_dPsi_vol_dJ(self) -> float:
        return float(self._store.dPsi_vol_dJ[self.cell, self.q_point])

    def get_d2Psi_vol_dJ2(self) -> float:
        return float(self._store.d2Psi_vol_dJ2[self.cell, self.q_point])


class QuadraturePointHistory:
    """Struct-of-arrays container for per-quadrature-point material state."""

    def __init__(self, n_cells: int, n_q_points: int, dim: int):
        self.n_cells = int(n_cells)
        self.n_q_points = int(n_q_points)
        self.dim = int(dim)

        nc, nq, d = self.n_cells, self.n_q_points, self.dim
        self.F_inv = np.zeros((nc, nq, d, d), dtype=float)
        self.tau = np.zeros((nc, nq, d, d), dtype=float)
        self.Jc = np.zeros((nc, nq, d, d, d, d), dtype=float)
        self.det_F = np.ones((nc, nq), dtype=float)
        self.p_tilde = np.zeros((nc, nq), dtype=float)
        self.J_tilde = np.ones((nc, nq), dtype=float)
        self.dPsi_vol_dJ = np.zeros((nc, nq), dtype=float)
        self.d2Psi_vol_dJ2 = np.zeros((nc, nq), dtype=float)

        self._status = np.full(nc, -1, dtype=np.int64)
        self._kernel: Optional[Callable] = None
        self._params: Optional[np.ndarray] = None
        self.material_kind: Optional[int] = None

    def setup(self, material, use_numba: bool = True) -> None:
        """Bind the material and apply the null update to every point."""
        kind, params = pack_material_params(material)
        self.material_kind = int(kind)
        self._params = params
        self._kernel = select_material_kernel(kind, use_numba=use_numba)

        grad_u = np.zeros((self.n_cells, self.n_q_points, self.dim, self.dim), dtype=float)
        p_tilde = np.zeros((self.n_cells, self.n_q_points), dtype=float)
        J_tilde = np.ones((self.n_cells, self.n_q_points), dtype=float)
        self.update_all(grad_u, p_tilde, J_tilde)

    def __getitem__(self, key) -> PointHistory:
        cell, q_point = key
        return PointHistory(self, cell, q_point)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------
    def update_all(self, grad_u: np.ndarray, p_tilde: np.ndarray, J_tilde: np.ndarray) -> None:
        """Refresh every point from the total-solution fields.

        ``grad_u`` has shape ``(n_cells, n_q, dim, dim)``; ``p_tilde`` and
        ``J_tilde`` have shape ``(n_cells, n_q)``.
        """
        if self._kernel is None:
            raise RuntimeError("QuadraturePointHistory.setup() must be called before updates")
        grad_u = np.ascontiguousarray(grad_u, dtype=float)
        p_tilde = np.ascontiguousarray(p_tilde, dtype=float)
        J_tilde = np.ascontiguousarray(J_tilde, dtype=float)
        self._kernel(
            grad_u,
            p_tilde,
            J_tilde,
            self._params,
            self.F_inv,
            self.tau,
            self.Jc,
            self.det_F,
            self.p_tilde,
            self.J_tilde,
            self.dPsi_vol_dJ,
            self.d2Psi_vol_dJ2,
            self._status,
        )
        self._raise_on_failure(np.arange(self.n_cells))

    def update_cell(self, cell: int, grad_u: np.ndarray, p_tilde: np.ndarray, J_tilde: np.ndarray) -> None:
        """Refresh the points of one cell (``grad_u`` shape ``(n_q, dim, dim)``)."""
        c = int(cell)
        self._update_block(slice(c, c + 1), slice(None), np.asarray(grad_u, dtype=float)[None],
                           np.asarray(p_tilde, dtype=float)[None], np.asarray(J_tilde, dtype=float)[None])

    def update_point(self, cell: int, q_point: int, grad_u: np.ndarray, p_tilde: float, J_tilde: float) -> None:
        c, q = int(cell), int(q_point)
        self._update_block(
            slice(c, c + 1),
            slice(q, q + 1),
            np.asarray(grad_u, dtype=float).reshape(1, 1, self.dim, self.dim),
            np.full((1, 1), float(p_tilde)),
            np.full((1, 1), float(J_tilde)),
        )

    def _update_block(self, cells: slice, points: slice, grad_u, p_tilde, J_tilde) -> None:
        if self._kernel is None:
            raise RuntimeError("QuadraturePointHistory.setup() must be called before updates")
        status = np.full(1, -1, dtype=np.int64)
        # basic slices are views, so the kernel writes straight into the store
        self._kernel(
            np.ascontiguousarray(grad_u),
            np.ascontiguousarray(p_tilde),
            np.ascontiguousarray(J_tilde),
            self._params,
            self.F_inv[cells, points],
            self.tau[cells, points],
            self.Jc[cells, points],
            self.det_F[cells, points],
            self.p_tilde[cells, points],
            self.J_tilde[cells, points],
            self.dPsi_vol_dJ[cells, points],
            self.d2Psi_vol_dJ2[cells, points],
            status,
        )
        if status[0] >= 0:
            c = cells.start
            q = int(status[0]) + (points.start or 0)
            raise KinematicError(float(self.det_F[c, q]), cell=c, q_point=q)

    def _raise_on_failure(self, cells: np.ndarray) -> None:
        bad = cells[self._status[cells] >= 0]
        if bad.size:
            c = int(bad[0])
            q = int(self._status[c])
            raise KinematicError(float(self.det_F[c, q]), cell=c, q_point=q)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------
    def copy(self) -> "QuadraturePointHistory":
        other = QuadraturePointHistory(self.n_cells, self.n_q_points, self.dim)
        for name in ("F_inv", "tau", "Jc", "det_F", "p_tilde", "J_tilde", "dPsi_vol_dJ", "d2Psi_vol_dJ2"):
            setattr(other, name, np.array(getattr(self, name), copy=True))
        other._kernel = self._kernel
        other._params = self._params
        other.material_kind = self.material_kind
        return other

    def stress_norm_per_cell(self) -> np.ndarray:
        """Mean Frobenius norm of the Kirchhoff stress per cell."""
        return np.sqrt(np.einsum("cqij,cqij->cq", self.tau, self.tau)).mean(axis=1)
