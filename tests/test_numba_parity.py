"""JIT-compiled kernels versus their plain-Python execution."""

import numpy as np
import pytest

from threefield.material import NeoHookeanThreeField, pack_material_params
from threefield.numba.kernels_assembly import assemble_cells, assemble_cells_python
from threefield.numba.kernels_material import neo_hooke_update_cells, neo_hooke_update_cells_python
from threefield.solid import Solid


def _history_buffers(nc, nq, d):
    return [
        np.zeros((nc, nq, d, d)),
        np.zeros((nc, nq, d, d)),
        np.zeros((nc, nq, d, d, d, d)),
        np.ones((nc, nq)),
        np.zeros((nc, nq)),
        np.ones((nc, nq)),
        np.zeros((nc, nq)),
        np.zeros((nc, nq)),
    ]


@pytest.mark.slow
@pytest.mark.parametrize("dim", [2, 3])
def test_material_update_parity(dim):
    rng = np.random.default_rng(7)
    nc, nq = 5, 8
    _, params = pack_material_params(NeoHookeanThreeField(mu=80.194e6, nu=0.4999, dim=dim))
    grad_u = 0.1 * rng.standard_normal((nc, nq, dim, dim))
    p_tilde = 1e6 * rng.standard_normal((nc, nq))
    J_tilde = 1.0 + 0.05 * rng.random((nc, nq))

    out_jit = _history_buffers(nc, nq, dim)
    out_py = _history_buffers(nc, nq, dim)
    st_jit = np.zeros(nc, dtype=np.int64)
    st_py = np.zeros(nc, dtype=np.int64)
    neo_hooke_update_cells(grad_u, p_tilde, J_tilde, params, *out_jit, st_jit)
    neo_hooke_update_cells_python(grad_u, p_tilde, J_tilde, params, *out_py, st_py)

    assert np.array_equal(st_jit, st_py)
    for a, b in zip(out_jit, out_py):
        assert np.allclose(a, b, rtol=1e-12, atol=1e-12 * max(1.0, np.abs(b).max()))


@pytest.mark.slow
@pytest.mark.parametrize("degree", [1, 2])
def test_cell_assembly_parity(tiny_params, degree):
    solid = Solid(tiny_params(fe_system={"poly_degree": degree, "quad_order": degree + 1}))
    rng = np.random.default_rng(8)
    d = solid.dofs
    x = d.initial_solution()
    x[d.u_slice] += 1e-5 * rng.standard_normal(d.n_u)
    x[d.p_slice] += 1e5 * rng.standard_normal(d.n_p)
    solid.solution_n = x
    solid.update_qph_incremental(np.zeros_like(x))

    h, cv = solid.history, solid.cell_values
    args = (cv.dNdX, cv.JxW, cv.N_p, h.F_inv, h.tau, h.Jc, h.det_F, h.p_tilde, h.J_tilde, h.dPsi_vol_dJ, h.d2Psi_vol_dJ2)
    shape = solid.assembler.K_cells.shape
    K_jit, R_jit = np.zeros(shape), np.zeros(shape[:2])
    K_py, R_py = np.zeros(shape), np.zeros(shape[:2])
    assemble_cells(*args, K_jit, R_jit)
    assemble_cells_python(*args, K_py, R_py)

    assert np.allclose(K_jit, K_py, rtol=1e-12, atol=1e-12 * np.abs(K_py).max())
    assert np.allclose(R_jit, R_py, rtol=1e-12, atol=1e-12 * np.abs(R_py).max())


@pytest.mark.slow
@pytest.mark.parametrize("use_numba", [False, True])
def test_block_run_independent_of_kernels(tiny_params, use_numba):
    params = tiny_params(runtime={"use_numba": use_numba}, time={"delta_t": 1.0, "end_time": 1.0})
    solid = Solid(params, writers=[])
    solid.run()
    reference = Solid(tiny_params(time={"delta_t": 1.0, "end_time": 1.0}), writers=[])
    reference.run()
    u = solid.snapshots[-1].displacement
    u_ref = reference.snapshots[-1].displacement
    assert np.allclose(u, u_ref, rtol=1e-9, atol=1e-12 * np.abs(u_ref).max())
