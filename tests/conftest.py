"""
Pytest configuration for threefield tests.

Adds src/ to sys.path so tests can import threefield without PYTHONPATH,
and provides a factory for small, fast parameter sets.
"""

import os
import sys

import pytest

repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(repo_root, "src")

if src_path not in sys.path:
    sys.path.insert(0, src_path)


def _tiny_parameters(**sections):
    """2D block, Q1 x DGP0, 2x2 cells, pure-Python kernels, no output."""
    from threefield.parameters import AllParameters

    base = AllParameters().with_overrides(
        fe_system={"poly_degree": 1, "quad_order": 2},
        geometry={"dim": 2, "grid": "block", "global_refinement": 1, "p_p0": 5.0},
        materials={"nu": 0.3},
        linear_solver={"type_lin": "Direct"},
        time={"delta_t": 0.5, "end_time": 1.0},
        runtime={"use_numba": False, "verbose": False, "write_vtk": False},
    )
    if sections:
        base = base.with_overrides(**sections)
    return base


@pytest.fixture
def tiny_params():
    return _tiny_parameters
