import numpy as np
import pytest

from threefield.errors import KinematicError
from threefield.history import QuadraturePointHistory
from threefield.material import NeoHookeanThreeField


def _history(nc=3, nq=4, dim=2):
    mat = NeoHookeanThreeField(mu=1.0, nu=0.3, dim=dim)
    h = QuadraturePointHistory(nc, nq, dim)
    h.setup(mat, use_numba=False)
    return h, mat


def test_setup_applies_null_update():
    h, mat = _history()
    assert np.allclose(h.det_F, 1.0)
    assert np.allclose(h.J_tilde, 1.0)
    assert np.allclose(h.p_tilde, 0.0)
    assert np.allclose(h.tau, 0.0, atol=1e-14)
    assert np.allclose(h.F_inv, np.eye(2))
    assert np.allclose(h.d2Psi_vol_dJ2, mat.kappa)
    assert np.allclose(h.stress_norm_per_cell(), 0.0, atol=1e-14)


def test_null_update_is_idempotent():
    h, _ = _history()
    before = h.copy()
    zeros = np.zeros((h.n_cells, h.n_q_points, 2, 2))
    h.update_all(zeros, np.zeros((h.n_cells, h.n_q_points)), np.ones((h.n_cells, h.n_q_points)))
    for name in ("F_inv", "tau", "Jc", "det_F", "dPsi_vol_dJ", "d2Psi_vol_dJ2"):
        assert np.array_equal(getattr(h, name), getattr(before, name))


def test_point_view_and_single_point_update():
    h, mat = _history()
    grad_u = np.array([[0.1, 0.0], [0.02, -0.05]])
    h[1, 2].update(grad_u, 0.4, 1.01)

    F = np.eye(2) + grad_u
    mat.update_material_data(F, 0.4, 1.01)
    pt = h[1, 2]
    assert pt.get_det_F() == pytest.approx(np.linalg.det(F))
    assert pt.get_p_tilde() == pytest.approx(0.4)
    assert pt.get_J_tilde() == pytest.approx(1.01)
    assert np.allclose(pt.get_tau(), mat.get_tau())
    assert np.allclose(pt.get_Jc(), mat.get_Jc())
    assert np.allclose(pt.get_F_inv(), np.linalg.inv(F))
    assert pt.get_dPsi_vol_dJ() == pytest.approx(mat.get_dPsi_vol_dJ())
    # neighbours untouched
    assert h[1, 1].get_det_F() == pytest.approx(1.0)
    assert h[0, 2].get_det_F() == pytest.approx(1.0)


def test_cell_update_only_touches_that_cell():
    h, _ = _history()
    grad_u = np.tile(np.diag([0.1, 0.0]), (h.n_q_points, 1, 1))
    h.update_cell(2, grad_u, np.zeros(h.n_q_points), np.ones(h.n_q_points))
    assert np.allclose(h.det_F[2], 1.1)
    assert np.allclose(h.det_F[:2], 1.0)


def test_inverted_point_raises_with_location():
    h, _ = _history()
    grad_u = np.zeros((h.n_cells, h.n_q_points, 2, 2))
    grad_u[2, 1] = np.diag([-2.0, 0.0])
    with pytest.raises(KinematicError) as excinfo:
        h.update_all(grad_u, np.zeros((h.n_cells, h.n_q_points)), np.ones((h.n_cells, h.n_q_points)))
    assert excinfo.value.cell == 2
    assert excinfo.value.q_point == 1
    assert excinfo.value.det_F == pytest.approx(-1.0)


def test_update_before_setup_fails():
    h = QuadraturePointHistory(1, 1, 2)
    with pytest.raises(RuntimeError):
        h.update_all(np.zeros((1, 1, 2, 2)), np.zeros((1, 1)), np.ones((1, 1)))
