"""Run header and setup summary printed at the start of a simulation."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import numba

from threefield.parameters import AllParameters

_PA_UNITS = ((1e9, "GPa"), (1e6, "MPa"), (1e3, "kPa"))


def _fmt_pa(x: float) -> str:
    for factor, unit in _PA_UNITS:
        if abs(x) >= factor:
            return f"{x / factor:.4g} {unit}"
    return f"{float(x):.4g} Pa"


def print_run_header(tag: str) -> None:
    stamp = datetime.now(ZoneInfo("Europe/Berlin")).strftime("%Y-%m-%d %H:%M:%S %Z")
    print(f"\n[run] {tag}  started {stamp}")


def print_setup_summary(params: AllParameters, n_cells: int, n_points: int, dofs_per_block, dofs_per_cell: int, volume: float) -> None:
    g = params.geometry
    ls = params.linear_solver
    print(f"[setup] grid={g.grid}  dim={g.dim}  cells={n_cells}  vertices={n_points}  reference volume={volume:.6e}")
    print(
        f"[setup] FE degree={params.fe_system.poly_degree}  quad_order={params.fe_system.quad_order}  "
        f"dofs per cell={dofs_per_cell}  dofs per block={tuple(int(n) for n in dofs_per_block)}"
    )
    print(f"[material] (neo-hooke 3-field) mu={_fmt_pa(params.materials.mu)}  nu={params.materials.nu:.6g}")
    print(
        f"[setup] linear solver={ls.type_lin}  static condensation={'yes' if ls.use_static_condensation else 'no'}"
        f"  preconditioner={ls.preconditioner_type}"
    )
    if params.runtime.use_numba:
        print(f"[numba] kernels=yes  threads={numba.get_num_threads()}")
    else:
        print("[numba] kernels=no  (pure Python)")
