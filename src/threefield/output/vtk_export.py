"""VTK export of solution snapshots (legacy ASCII unstructured grid).

Q_k cells are written as their k^dim linear sub-cells on the node lattice, so
ParaView shows the full displacement resolution without higher-order cell
types.
"""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Dict, Optional

import numpy as np

from threefield.fem.mesh import StructuredMesh

VTK_QUAD = 9
VTK_HEXAHEDRON = 12


def linear_subcells(mesh: StructuredMesh) -> np.ndarray:
    """Connectivity of the linear sub-cells, ``(n_cells * k**dim, 2**dim)``.

    Sub-cells of one parent are contiguous, so cell data of the parent can be
    repeated ``k**dim`` times.
    """
    dim = mesh.dim
    k = mesh.degree
    n1 = k + 1
    strides = n1 ** np.arange(dim)
    if dim == 2:
        corners = np.array([(0, 0), (1, 0), (1, 1), (0, 1)])
    else:
        corners = np.array([(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0), (0, 0, 1), (1, 0, 1), (1, 1, 1), (0, 1, 1)])
    local = []
    for off in itertools.product(range(k), repeat=dim):
        off = np.array(off[::-1])
        local.append((corners + off[None, :]) @ strides)
    local = np.array(local, dtype=int)                   # (k**dim, 2**dim) local node ids
    return mesh.cells[:, local].reshape(-1, 2 ** dim)




def _pad3(values: np.ndarray) -> np.ndarray:
    """(n, 2) -> (n, 3) with a zero z column; (n, 3) unchanged."""
    values = np.asarray(values, dtype=float)
    if values.shape[1] == 3:
        return values
    return np.hstack([values, np.zeros((values.shape[0], 3 - values.shape[1]))])


def _write_fields(f, fields: Dict[str, np.ndarray], n: int, location: str) -> None:
    for name, values in fields.items():
        values = np.asarray(values, dtype=float)
        if values.ndim == 2 and values.shape[1] == 1:
            values = values[:, 0]
        if values.shape[0] != n:
            print(f"[output] WARNING: {location} field '{name}' has {values.shape[0]} entries, expected {n}; skipped")
            continue
        if values.ndim == 2:
            f.write(f"VECTORS {name} double\n")
            np.savetxt(f, _pad3(values), fmt="%.9e")
        else:
            f.write(f"SCALARS {name} double 1\nLOOKUP_TABLE default\n")
            np.savetxt(f, values, fmt="%.9e")


def write_vtk_unstructured_grid(
    filename: str,
    nodes: np.ndarray,
    elems: np.ndarray,
    point_data: Optional[Dict[str, np.ndarray]] = None,
    cell_data: Optional[Dict[str, np.ndarray]] = None,
    title: str = "threefield solution",
    verbose: bool = True,
) -> None:
    """Write a legacy ASCII VTK unstructured grid of linear quads/hexes.

    ``point_data`` values are ``(n_nodes,)`` scalars or ``(n_nodes, dim)``
    vectors; ``cell_data`` values are ``(n_elem,)`` scalars. Fields of the
    wrong length are skipped with a warning.
    """
    nodes = np.asarray(nodes, dtype=float)
    elems = np.asarray(elems, dtype=int)
    n_nodes, n_elem = nodes.shape[0], elems.shape[0]
    n_per = elems.shape[1]
    cell_type = VTK_QUAD if n_per == 4 else VTK_HEXAHEDRON

    path = Path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        f.write(f"# vtk DataFile Version 3.0\n{title}\nASCII\nDATASET UNSTRUCTURED_GRID\n")
        f.write(f"POINTS {n_nodes} double\n")
        np.savetxt(f, _pad3(nodes), fmt="%.9e")

        f.write(f"\nCELLS {n_elem} {n_elem * (1 + n_per)}\n")
        np.savetxt(f, np.column_stack([np.full(n_elem, n_per), elems]), fmt="%d")
        f.write(f"\nCELL_TYPES {n_elem}\n")
        np.savetxt(f, np.full(n_elem, cell_type), fmt="%d")

        if point_data:
            f.write(f"\nPOINT_DATA {n_nodes}\n")
            _write_fields(f, point_data, n_nodes, "point")
        if cell_data:
            f.write(f"\nCELL_DATA {n_elem}\n")
            _write_fields(f, {k: np.ravel(v) for k, v in cell_data.items()}, n_elem, "cell")

    if verbose:
        print(f"[output] VTK file written: {filename}")
