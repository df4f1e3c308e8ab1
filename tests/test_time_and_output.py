import numpy as np
import pytest

from threefield.fem.mesh import unit_block
from threefield.output.snapshots import SolutionSnapshot, VtkSnapshotWriter
from threefield.output.vtk_export import linear_subcells, write_vtk_unstructured_grid
from threefield.solid import Solid
from threefield.time_stepper import Time
from threefield.utils.timing import Timer


def _count_steps(end_time, delta_t):
    t = Time(end_time, delta_t)
    t.increment()
    n = 0
    while t.within_end():
        n += 1
        t.increment()
    return n, t


@pytest.mark.parametrize("end_time,delta_t,expected", [(1.0, 0.1, 10), (1.0, 0.5, 2), (1.0, 1.0, 1), (1.0, 0.3, 3)])
def test_time_loop_step_count(end_time, delta_t, expected):
    n, _ = _count_steps(end_time, delta_t)
    assert n == expected


def test_time_ramp():
    t = Time(2.0, 0.5)
    assert t.ramp() == 0.0
    t.increment()
    assert t.get_timestep() == 1
    assert t.current() == 0.5
    assert t.ramp() == pytest.approx(0.25)
    assert t.end() == 2.0 and t.get_delta_t() == 0.5


@pytest.mark.parametrize("dim,degree", [(2, 1), (2, 2), (3, 2)])
def test_linear_subcells_cover_the_lattice(dim, degree):
    mesh = unit_block(1, dim=dim, degree=degree)
    sub = linear_subcells(mesh)
    assert sub.shape == (mesh.n_cells * degree**dim, 2**dim)
    assert np.array_equal(np.unique(sub), np.arange(mesh.n_points))
    # sub-cells have the size of one lattice spacing
    h = 1.0 / (2 * degree)
    x = mesh.points[sub]
    assert np.allclose(x.max(axis=1) - x.min(axis=1), h)


def test_write_vtk_file(tmp_path):
    nodes = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    elems = np.array([[0, 1, 2, 3]])
    fname = tmp_path / "out" / "quad.vtk"
    write_vtk_unstructured_grid(
        str(fname),
        nodes,
        elems,
        point_data={"displacement": np.ones((4, 2)), "bad": np.ones(3)},
        cell_data={"pressure": np.array([2.0])},
        verbose=False,
    )
    text = fname.read_text()
    assert "DATASET UNSTRUCTURED_GRID" in text
    assert "POINTS 4 double" in text
    assert "CELLS 1 5" in text
    assert "VECTORS displacement double" in text
    assert "SCALARS pressure double 1" in text
    assert "bad" not in text
    assert "\n9\n" in text


def test_solid_writes_one_file_per_snapshot(tiny_params, tmp_path):
    params = tiny_params(runtime={"write_vtk": True, "output_dir": str(tmp_path)})
    solid = Solid(params)
    solid.run()
    names = sorted(p.name for p in tmp_path.glob("*.vtk"))
    assert names == ["solution-2d-0.vtk", "solution-2d-1.vtk", "solution-2d-2.vtk"]
    text = (tmp_path / "solution-2d-2.vtk").read_text()
    assert "stress_norm" in text and "dilatation" in text


def test_snapshot_highest_point():
    mesh = unit_block(1, dim=2, degree=1)
    disp = np.zeros((mesh.n_points, 2))
    disp[0, 1] = 5.0
    snap = SolutionSnapshot(
        step=0, time=0.0, solution=np.zeros(1), displacement=disp,
        pressure=np.zeros(4), dilatation=np.ones(4), stress_norm=np.zeros(4),
    )
    assert np.allclose(snap.highest_point(mesh.points), mesh.points[0] + [0.0, 5.0])

    writer = VtkSnapshotWriter(output_dir="unused", verbose=False)
    assert writer.written == []


def test_timer_sections():
    timer = Timer()
    for _ in range(3):
        with timer.section("Assemble system"):
            pass
    assert timer.calls["Assemble system"] == 3
    assert timer.totals["Assemble system"] >= 0.0
    assert "Assemble system" in timer.summary()
    assert "Total wallclock" in timer.summary()
