import yaml

from threefield.cli import build_parser, main, params_from_args


def _write_params(path, **materials):
    data = {
        "fe_system": {"poly_degree": 1, "quad_order": 2},
        "geometry": {"dim": 2, "grid": "block", "global_refinement": 1, "p_p0": 5.0},
        "materials": {"mu": 80.194e6, "nu": 0.3, **materials},
        "linear_solver": {"type_lin": "Direct"},
        "time": {"delta_t": 1.0, "end_time": 1.0},
    }
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_overrides_from_command_line(tmp_path):
    args = build_parser().parse_args(
        [_write_params(tmp_path / "p.yaml"), "--dim", "3", "--no-numba", "--no-vtk", "--quiet", "--output-dir", "res"]
    )
    params = params_from_args(args)
    assert params.geometry.dim == 3
    assert params.runtime.use_numba is False
    assert params.runtime.write_vtk is False
    assert params.runtime.verbose is False
    assert params.runtime.output_dir == "res"
    assert params.materials.nu == 0.3


def test_main_runs_small_problem(tmp_path, capsys):
    code = main([_write_params(tmp_path / "p.yaml"), "--no-numba", "--no-vtk", "--quiet"])
    assert code == 0
    assert "Highest position in the deformed state" in capsys.readouterr().out


def test_main_reports_invalid_material(tmp_path, capsys):
    code = main([_write_params(tmp_path / "p.yaml", nu=0.5), "--no-numba", "--no-vtk", "--quiet"])
    assert code == 1
    err = capsys.readouterr().err
    assert "Exception on processing" in err
    assert "Bulk modulus" in err
