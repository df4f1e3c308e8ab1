"""Dirichlet constraints.

Nonlinear Dirichlet handling follows the usual incremental scheme:

* the first Newton iteration of a step prescribes the (possibly
  inhomogeneous) values on the update, ``du[dof] = value``;
* later iterations use the homogenized constraints, ``du[dof] = 0``;
* the Newton system is solved on the free dofs only.
"""

from __future__ import annotations

from typing import Dict, Iterable, Sequence, Tuple, Union

import numpy as np

from threefield.fem.dofs import BlockDofHandler
from threefield.fem.mesh import StructuredMesh


class Constraints:
    def __init__(self, n_dofs: int):
        self.n_dofs = int(n_dofs)
        self._values: Dict[int, float] = {}
        self._closed = False
        self._dofs = np.zeros(0, dtype=int)
        self._vals = np.zeros(0, dtype=float)
        self._mask = np.zeros(self.n_dofs, dtype=bool)

    def clear(self) -> None:
        self._values.clear()
        self._closed = False

    def add(self, dofs: Iterable[int], value: Union[float, Sequence[float]] = 0.0) -> None:
        dofs = np.asarray(list(dofs), dtype=int)
        vals = np.broadcast_to(np.asarray(value, dtype=float), dofs.shape)
        for d, v in zip(dofs.tolist(), vals.tolist()):
            self._values[int(d)] = float(v)
        self._closed = False

    def close(self) -> None:
        self._dofs = np.array(sorted(self._values), dtype=int)
        self._vals = np.array([self._values[d] for d in self._dofs], dtype=float)
        self._mask = np.zeros(self.n_dofs, dtype=bool)
        self._mask[self._dofs] = True
        self._closed = True

    def _ensure_closed(self) -> None:
        if not self._closed:
            self.close()

    @property
    def constrained_dofs(self) -> np.ndarray:
        self._ensure_closed()
        return self._dofs

    @property
    def values(self) -> np.ndarray:
        self._ensure_closed()
        return self._vals

    @property
    def mask(self) -> np.ndarray:
        self._ensure_closed()
        return self._mask

    def free_dofs(self) -> np.ndarray:
        return np.nonzero(~self.mask)[0]

    def is_constrained(self, dof: int) -> bool:
        return bool(self.mask[int(dof)])

    def is_inhomogeneously_constrained(self, dof: int) -> bool:
        return self._values.get(int(dof), 0.0) != 0.0

    def has_inhomogeneities(self) -> bool:
        return any(v != 0.0 for v in self._values.values())

    def homogenize(self) -> None:
        for d in self._values:
            self._values[d] = 0.0
        self.close()

    def distribute(self, x: np.ndarray) -> np.ndarray:
        """Overwrite the constrained entries of ``x`` with their values (in place)."""
        x[self.constrained_dofs] = self.values
        return x

    def copy(self) -> "Constraints":
        other = Constraints(self.n_dofs)
        other._values = dict(self._values)
        other.close()
        return other

    def __len__(self) -> int:
        return len(self._values)


DirichletSpec = Tuple[int, Sequence[int], float]


def make_dirichlet_constraints(
    mesh: StructuredMesh,
    dofs: BlockDofHandler,
    specs: Iterable[DirichletSpec],
) -> Constraints:
    """Build constraints from ``(boundary_id, components, value)`` triples."""
    cons = Constraints(dofs.n_dofs)
    for boundary_id, components, value in specs:
        comps = [int(c) for c in components if int(c) < mesh.dim]
        if not comps:
            continue
        pts = mesh.boundary_points(boundary_id)
        if pts.size == 0:
            continue
        cons.add(dofs.point_dofs(pts, comps), value)
    cons.close()
    return cons
