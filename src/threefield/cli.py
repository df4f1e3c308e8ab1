"""Command-line entry point: ``threefield PARAMS.yaml``."""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

import numpy as np

from threefield.errors import ThreeFieldError
from threefield.parameters import AllParameters
from threefield.solid import Solid
from threefield.utils.run_info import print_run_header


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="threefield",
        description="Quasi-static three-field (u, p, J) Neo-Hookean solid solver.",
    )
    ap.add_argument("params", nargs="?", default=None, help="YAML parameter file (defaults when omitted)")
    ap.add_argument("--dim", type=int, choices=(2, 3), default=None, help="Override geometry.dim")
    ap.add_argument("--grid", choices=("cooks", "block"), default=None, help="Override geometry.grid")
    ap.add_argument("--no-numba", action="store_true", help="Run the kernels as plain Python")
    ap.add_argument("--output-dir", default=None, help="Directory for VTK snapshots")
    ap.add_argument("--no-vtk", action="store_true", help="Do not write VTK snapshots")
    ap.add_argument("--quiet", action="store_true", help="Suppress diagnostics")
    return ap


def params_from_args(args: argparse.Namespace) -> AllParameters:
    params = AllParameters.from_yaml(args.params) if args.params else AllParameters()
    geometry = {}
    runtime = {}
    if args.dim is not None:
        geometry["dim"] = args.dim
    if args.grid is not None:
        geometry["grid"] = args.grid
    if args.no_numba:
        runtime["use_numba"] = False
    if args.output_dir is not None:
        runtime["output_dir"] = args.output_dir
    if args.no_vtk:
        runtime["write_vtk"] = False
    if args.quiet:
        runtime["verbose"] = False
    return params.with_overrides(geometry=geometry, runtime=runtime)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        params = params_from_args(args)
        if params.runtime.verbose:
            print_run_header(f"threefield {params.geometry.grid} {params.geometry.dim}d")
        solid = Solid(params)
        solid.run()
    except ThreeFieldError as exc:
        print("\n\n----------------------------------------------------", file=sys.stderr)
        print(f"Exception on processing: \n{exc}\nAborting!", file=sys.stderr)
        print("----------------------------------------------------", file=sys.stderr)
        return 1

    final = solid.snapshots[-1]
    top = final.highest_point(solid.mesh.points)
    print(f"Highest position in the deformed state: {np.array2string(top, precision=6)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
