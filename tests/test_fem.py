"""Reference-cell machinery, meshes, DOF numbering and FE values."""

import numpy as np
import pytest

from threefield.fem.dofs import COUPLING, J_BLOCK, P_BLOCK, U_BLOCK, BlockDofHandler
from threefield.fem.mesh import cooks_membrane, hyper_rectangle, unit_block, volume
from threefield.fem.quadrature import face_points, gauss_1d, gauss_tensor
from threefield.fem.shape import LagrangeQ, LegendreDGP
from threefield.fem.values import CellValues, FaceValues


def test_gauss_rules_integrate_polynomials_exactly():
    x, w = gauss_1d(2)
    assert w.sum() == pytest.approx(1.0)
    assert np.sum(w * x**3) == pytest.approx(0.25)

    pts, wts = gauss_tensor(3, 3)
    assert pts.shape == (27, 3)
    assert wts.sum() == pytest.approx(1.0)
    assert np.sum(wts * pts[:, 0] ** 2 * pts[:, 2] ** 4) == pytest.approx(1.0 / 15.0)
    # x varies fastest
    assert pts[0, 0] < pts[1, 0]
    assert pts[0, 1] == pts[1, 1]


def test_face_points_lie_on_face():
    pts, wts = face_points(2, 3, 3)  # y = 1
    assert np.allclose(pts[:, 1], 1.0)
    assert wts.sum() == pytest.approx(1.0)


@pytest.mark.parametrize("degree", [1, 2, 3])
@pytest.mark.parametrize("dim", [2, 3])
def test_lagrange_partition_of_unity(degree, dim):
    el = LagrangeQ(degree, dim)
    pts, _ = gauss_tensor(degree + 1, dim)
    assert np.allclose(el.values(pts).sum(axis=1), 1.0)
    assert np.allclose(el.gradients(pts).sum(axis=1), 0.0, atol=1e-12)
    # nodal interpolation property
    assert np.allclose(el.values(el.reference_nodes()), np.eye(el.n_nodes), atol=1e-12)


def test_lagrange_gradients_match_finite_differences():
    el = LagrangeQ(2, 2)
    x = np.array([[0.3, 0.7]])
    h = 1e-6
    G = el.gradients(x)[0]
    for d in range(2):
        e = np.zeros((1, 2))
        e[0, d] = h
        fd = (el.values(x + e) - el.values(x - e))[0] / (2 * h)
        assert np.allclose(G[:, d], fd, atol=1e-8)


@pytest.mark.parametrize("degree,dim,n_modes", [(0, 2, 1), (1, 2, 3), (1, 3, 4), (2, 2, 6)])
def test_dgp_modes(degree, dim, n_modes):
    fe = LegendreDGP(degree, dim)
    assert fe.n_modes == n_modes
    pts, wts = gauss_tensor(degree + 1, dim)
    N = fe.values(pts)
    assert np.allclose(N[:, 0], 1.0)
    # Legendre products are L2-orthogonal on the reference cell
    M = N.T @ (wts[:, None] * N)
    assert np.allclose(M, np.diag(np.diag(M)), atol=1e-12)


def test_hyper_rectangle_numbering_and_ids():
    mesh = hyper_rectangle((0.0, 0.0), (2.0, 1.0), (2, 1), degree=2)
    assert mesh.n_points == 5 * 3
    assert mesh.n_cells == 2
    assert mesh.cells.shape == (2, 9)
    assert mesh.boundary_ids.tolist() == [[0, -1, 2, 3], [-1, 1, 2, 3]]
    assert np.allclose(mesh.points[mesh.boundary_points(1)][:, 0], 2.0)
    assert volume(mesh) == pytest.approx(2.0)


@pytest.mark.parametrize("dim,expected", [(2, 1440.0), (3, 7200.0)])
def test_cooks_membrane_geometry(dim, expected):
    mesh = cooks_membrane(2, dim=dim, degree=1)
    assert volume(mesh) == pytest.approx(expected)
    assert np.allclose(mesh.points[mesh.boundary_points(1)][:, 0], 0.0)
    loaded = mesh.points[mesh.boundary_points(11)]
    assert np.allclose(loaded[:, 0], 48.0)
    assert loaded[:, 1].min() == pytest.approx(44.0)
    assert loaded[:, 1].max() == pytest.approx(60.0)
    if dim == 3:
        assert np.allclose(np.abs(mesh.points[mesh.boundary_points(2)][:, 2]), 2.5)

    scaled = cooks_membrane(2, dim=dim, degree=1, scale=1e-3)
    assert volume(scaled) == pytest.approx(expected * 1e-3**dim)


@pytest.mark.parametrize("dim", [2, 3])
def test_unit_block_patch(dim):
    mesh = unit_block(2, dim=dim, degree=1)
    assert mesh.subdivisions == (4,) * dim
    patch = mesh.boundary_faces(6)
    assert len(patch) == (2 if dim == 2 else 4)
    for c, f in patch:
        assert f == 3
        assert mesh.face_center(c, f)[1] == pytest.approx(1.0)


def test_block_dof_layout():
    mesh = unit_block(1, dim=2, degree=2)
    dofs = BlockDofHandler(mesh, 2)
    assert dofs.n_p_per_cell == 3
    assert dofs.dofs_per_cell == 9 * 2 + 2 * 3
    assert dofs.dofs_per_block == (25 * 2, 4 * 3, 4 * 3)
    assert dofs.n_dofs == sum(dofs.dofs_per_block)

    blocks = dofs.block_of(dofs.cell_dofs[0])
    assert np.array_equal(blocks, dofs.local_block)
    p_all = np.concatenate([dofs.cell_p_dofs(c) for c in range(mesh.n_cells)])
    assert np.array_equal(np.sort(p_all), np.arange(dofs.n_u, dofs.n_u + dofs.n_p))

    mask = dofs.local_coupling_mask()
    assert not mask[np.ix_(dofs.local_p, dofs.local_p)].any()
    assert not mask[np.ix_(dofs.local_u, dofs.local_J)].any()
    assert not mask[np.ix_(dofs.local_J, dofs.local_u)].any()
    assert mask[np.ix_(dofs.local_J, dofs.local_J)].all()
    assert not COUPLING[P_BLOCK, P_BLOCK] and COUPLING[U_BLOCK, P_BLOCK] and COUPLING[J_BLOCK, J_BLOCK]

    x0 = dofs.initial_solution()
    J = dofs.cell_field(x0, J_BLOCK)
    assert np.allclose(J[:, 0], 1.0)
    assert np.allclose(J[:, 1:], 0.0)
    assert not x0[dofs.u_slice].any()


def test_degree_mismatch_is_rejected():
    with pytest.raises(ValueError):
        BlockDofHandler(unit_block(1, dim=2, degree=1), 2)


@pytest.mark.parametrize("dim", [2, 3])
def test_cell_values_reproduce_linear_gradient(dim):
    mesh = cooks_membrane(2, dim=dim, degree=2)
    dofs = BlockDofHandler(mesh, 2)
    cv = CellValues(dofs, 3)
    assert cv.volume() == pytest.approx(1440.0 if dim == 2 else 7200.0)

    rng = np.random.default_rng(5)
    A = rng.standard_normal((dim, dim))
    u = mesh.points @ A.T
    x = dofs.initial_solution()
    x[dofs.u_slice] = u.ravel()
    grad = cv.grad_u(dofs.cell_field(x, U_BLOCK))
    assert np.allclose(grad, A[None, None], atol=1e-10)


def test_dgp_interpolation_of_constant_mode():
    mesh = unit_block(1, dim=2, degree=2)
    dofs = BlockDofHandler(mesh, 2)
    cv = CellValues(dofs, 3)
    x = dofs.initial_solution()
    J = cv.dgp_at_points(dofs.cell_field(x, J_BLOCK))
    assert J.shape == (mesh.n_cells, cv.n_q_points)
    assert np.allclose(J, 1.0)


def test_face_values_on_cooks_load_edge():
    mesh = cooks_membrane(2, dim=2, degree=2)
    dofs = BlockDofHandler(mesh, 2)
    fv = FaceValues(dofs, 3, mesh.boundary_faces(11))
    assert len(fv) == 2
    assert fv.area() == pytest.approx(16.0)
    assert np.allclose(fv.normals, [1.0, 0.0])
    assert np.allclose(fv.q_points_real[..., 0], 48.0)


def test_face_normals_of_sloped_edges():
    mesh = cooks_membrane(2, dim=2, degree=1)
    dofs = BlockDofHandler(mesh, 1)
    faces = [(c, f) for c, f in mesh.boundary_faces(3) if f == 2]
    fv = FaceValues(dofs, 2, faces)
    # lower edge runs from (0, 0) to (48, 44), outward normal points down-right
    n = np.array([44.0, -48.0]) / np.hypot(44.0, 48.0)
    assert np.allclose(fv.normals, n)
    assert fv.area() == pytest.approx(np.hypot(44.0, 48.0))
