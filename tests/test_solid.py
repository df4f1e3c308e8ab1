"""End-to-end quasi-static runs on small grids (pure-Python kernels)."""

import numpy as np
import pytest

from threefield.errors import NonconvergenceError
from threefield.output.snapshots import MemorySnapshotWriter
from threefield.solid import Solid, default_dirichlet_specs


def test_block_compression_run(tiny_params):
    writer = MemorySnapshotWriter()
    solid = Solid(tiny_params(), writers=[writer])
    assert solid.vol_reference == pytest.approx(1e-6)
    assert solid.get_volume_ratio() == pytest.approx(1.0)
    assert solid.compute_vol_current() == pytest.approx(solid.cell_values.volume(), rel=1e-12)

    results = solid.run()

    assert len(results) == 2
    assert writer.steps == [0, 1, 2]
    assert [s.time for s in solid.snapshots] == pytest.approx([0.0, 0.5, 1.0])
    for res in results:
        assert res.iterations >= 1
        assert res.error_residual_norm.u <= solid.parameters.nonlinear_solver.tol_f
        assert res.error_update_norm.u <= solid.parameters.nonlinear_solver.tol_u
        hist = res.residual_history
        assert all(b < a for a, b in zip(hist[1:], hist[2:]))

    first, last = solid.snapshots[0], solid.snapshots[-1]
    assert not first.displacement.any()
    assert np.allclose(first.dilatation, 1.0)

    # the loaded patch moves down and the block loses volume
    patch = solid.mesh.boundary_points(6)
    assert np.all(last.displacement[patch, 1] < 0.0)
    assert last.volume_ratio < 1.0
    # cell 2 is the top-left cell under the patch
    assert last.pressure[2] < 0.0
    assert np.all(last.stress_norm > 0.0)

    # support conditions hold in the converged state
    assert np.allclose(last.displacement[solid.mesh.boundary_points(0), 0], 0.0)
    assert np.allclose(last.displacement[solid.mesh.boundary_points(2), 1], 0.0)
    assert np.allclose(last.displacement[patch, 0], 0.0)

    # with DGP0 the dilatation equals the cell mean of det(F)
    h, JxW = solid.history, solid.cell_values.JxW
    assert np.allclose((h.det_F * JxW).sum(axis=1), (h.J_tilde * JxW).sum(axis=1), rtol=1e-8, atol=0.0)
    assert solid.get_error_dilatation() >= 0.0


def test_load_increments_scale_the_response(tiny_params):
    solid = Solid(tiny_params(), writers=[])
    solid.run()
    half, full = solid.snapshots[1], solid.snapshots[2]
    top = solid.mesh.boundary_points(6)
    ratio = full.displacement[top, 1] / half.displacement[top, 1]
    # nearly linear at this load level
    assert np.all((ratio > 1.8) & (ratio < 2.2))


def test_cooks_membrane_bends_upwards(tiny_params):
    solid = Solid(tiny_params(geometry={"grid": "cooks", "cellnum": 2}), writers=[])
    solid.run()
    last = solid.snapshots[-1]
    loaded = solid.mesh.boundary_points(11)
    assert np.all(last.displacement[loaded, 1] > 0.0)
    assert np.allclose(last.displacement[solid.mesh.boundary_points(1)], 0.0)
    top = last.highest_point(solid.mesh.points)
    assert top[1] > 60.0e-3


def test_block_run_with_cg_and_q2(tiny_params):
    params = tiny_params(
        fe_system={"poly_degree": 2, "quad_order": 3},
        linear_solver={"type_lin": "CG", "max_iterations_lin": 3.0},
        time={"delta_t": 1.0, "end_time": 1.0},
    )
    solid = Solid(params, writers=[])
    results = solid.run()
    assert len(results) == 1
    assert results[0].records[0].lin_it > 0
    assert solid.snapshots[-1].volume_ratio < 1.0


def test_unreduced_schur_path_matches_condensed(tiny_params):
    base = dict(time={"delta_t": 1.0, "end_time": 1.0})
    condensed = Solid(tiny_params(**base), writers=[])
    condensed.run()
    schur = Solid(
        tiny_params(
            linear_solver={"type_lin": "CG", "use_static_condensation": False, "tol_lin": 1e-10, "max_iterations_lin": 5.0},
            **base,
        ),
        writers=[],
    )
    schur.run()
    u_ref = condensed.snapshots[-1].displacement
    u = schur.snapshots[-1].displacement
    assert np.allclose(u, u_ref, rtol=1e-5, atol=1e-6 * np.abs(u_ref).max())


def test_newton_bound_aborts_the_run(tiny_params):
    solid = Solid(tiny_params(nonlinear_solver={"max_iterations_NR": 1}), writers=[])
    with pytest.raises(NonconvergenceError):
        solid.run()
    # only the initial state was exported
    assert len(solid.snapshots) == 1


def test_default_supports(tiny_params):
    cooks3d = tiny_params(geometry={"grid": "cooks", "dim": 3})
    assert default_dirichlet_specs(cooks3d)[0][0] == 1
    assert list(default_dirichlet_specs(cooks3d)[0][1]) == [0, 1, 2]
    block = tiny_params()
    assert [s[0] for s in default_dirichlet_specs(block)] == [0, 2, 4, 6]


def test_constraints_are_homogenized_after_first_iteration(tiny_params):
    specs = [(0, [0, 1], 0.0), (1, [0], 1e-6)]
    solid = Solid(tiny_params(), dirichlet=specs, writers=[])
    solid.make_constraints(0)
    assert solid.constraints.has_inhomogeneities()
    solid.make_constraints(1)
    assert not solid.constraints.has_inhomogeneities()
    n = len(solid.constraints)
    solid.make_constraints(2)
    assert len(solid.constraints) == n
