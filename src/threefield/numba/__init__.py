"""Numba-compiled kernels.

The kernels are *stateless* and run in ``nopython`` mode. Each batched kernel
loops over cells with ``prange``; the serial ``*_python`` counterparts call
the same per-cell kernels through ``.py_func`` and are selected with
``runtime.use_numba: false``.
"""

from threefield.numba.kernels_assembly import assemble_cells, assemble_cells_python
from threefield.numba.kernels_material import neo_hooke_update_cells, neo_hooke_update_cells_python

__all__ = [
    "assemble_cells",
    "assemble_cells_python",
    "neo_hooke_update_cells",
    "neo_hooke_update_cells_python",
]
