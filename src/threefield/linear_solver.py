"""Linear solve of the Newton system ``K du = rhs``.

Three paths, selected by the linear-solver configuration:

* ``use_static_condensation`` (CG or Direct): per-cell condensation
  (:mod:`threefield.condensation`), solve the reduced uu system, then
  back-substitute the dilatation and the pressure;
* no condensation + ``CG``: the same elimination at the operator level with
  :class:`scipy.sparse.linalg.LinearOperator` compositions (inner CG for
  ``K_Jp^-1``, outer preconditioned CG on the Schur complement);
* no condensation + ``Direct``: sparse LU of the full 3-block system.

In every path the constrained entries of ``du`` take the constraint values
(inhomogeneous on the first Newton iteration, zero afterwards) and only the
free equations are solved.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from threefield.condensation import assemble_static_condensation
from threefield.errors import LinearSolverFailure
from threefield.fem.bcs import Constraints
from threefield.fem.dofs import BlockDofHandler

INNER_RTOL = 1e-12
ATOL = 1e-30


def _check_finite(x: np.ndarray, what: str) -> np.ndarray:
    if not np.all(np.isfinite(x)):
        raise LinearSolverFailure(f"{what}: non-finite entries in the solution")
    return x


def _cg(A, b: np.ndarray, rtol: float, maxiter: int, M=None, what: str = "CG") -> Tuple[np.ndarray, int]:
    """scipy CG with an iteration counter; non-convergence raises."""
    b = np.asarray(b, dtype=float)
    if not np.any(b):
        return np.zeros_like(b), 0
    n_it = [0]

    def _count(_xk):
        n_it[0] += 1

    x, info = spla.cg(A, b, rtol=rtol, atol=ATOL, maxiter=max(1, int(maxiter)), M=M, callback=_count)
    if info != 0:
        raise LinearSolverFailure(f"{what} did not converge (info={info}, iterations={n_it[0]})")
    return _check_finite(x, what), n_it[0]


def _residual(A, x: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(b - A @ x))


def make_preconditioner(A: sp.csr_matrix, kind: str, relaxation: float) -> Optional[spla.LinearOperator]:
    """Jacobi (ω D^-1), SSOR or none for an SPD sparse matrix."""
    kind = (kind or "none").lower()
    if kind == "none":
        return None
    A = sp.csr_matrix(A)
    n = A.shape[0]
    diag = A.diagonal()
    if np.any(diag == 0.0):
        raise LinearSolverFailure(f"{kind} preconditioner: zero on the diagonal")
    omega = float(relaxation)

    if kind == "jacobi":
        inv_d = omega / diag
        return spla.LinearOperator((n, n), matvec=lambda v: inv_d * np.ravel(v), dtype=float)

    if kind == "ssor":
        D = sp.diags(diag / omega)
        lower = (sp.tril(A, k=-1) + D).tocsr()
        upper = (sp.triu(A, k=1) + D).tocsr()
        scale = (2.0 - omega) / omega

        def _apply(v):
            y = spla.spsolve_triangular(lower, np.ravel(v), lower=True)
            z = (diag / omega) * y
            return scale * spla.spsolve_triangular(upper, z, lower=False)

        return spla.LinearOperator((n, n), matvec=_apply, dtype=float)

    raise LinearSolverFailure(f"Unknown preconditioner '{kind}'")


def _blocks(K: sp.csr_matrix, dofs: BlockDofHandler):
    K = sp.csr_matrix(K)
    u, p, J = dofs.u_slice, dofs.p_slice, dofs.J_slice
    return {
        "uu": K[u, u],
        "up": K[u, p],
        "pu": K[p, u],
        "pJ": K[p, J],
        "Jp": K[J, p],
        "JJ": K[J, J],
    }


def _constrained_update(dofs: BlockDofHandler, constraints: Constraints) -> np.ndarray:
    du = np.zeros(dofs.n_dofs, dtype=float)
    constraints.distribute(du)
    return du


def solve_condensed(
    K_sc: sp.csr_matrix,
    rhs: np.ndarray,
    dofs: BlockDofHandler,
    constraints: Constraints,
    type_lin: str = "CG",
    tol_lin: float = 1e-6,
    max_iterations_lin: float = 1.0,
    preconditioner_type: str = "ssor",
    preconditioner_relaxation: float = 0.65,
) -> Tuple[np.ndarray, int, float]:
    """Solve with a tangent already passed through static condensation.

    The pJ block of ``K_sc`` holds ``k_pJ^-1`` and the uu block the condensed
    stiffness.
    """
    B = _blocks(K_sc, dofs)
    f_u = rhs[dofs.u_slice].copy()
    f_p = rhs[dofs.p_slice]
    f_J = rhs[dofs.J_slice]
    K_pJ_inv = B["pJ"]

    # f_u <- f_u - K_up K_pJ^-T (f_J - K_JJ K_pJ^-1 f_p)
    a_J = f_J - B["JJ"] @ (K_pJ_inv @ f_p)
    f_u -= B["up"] @ (K_pJ_inv.T @ a_J)

    du = _constrained_update(dofs, constraints)
    free_u = np.nonzero(~constraints.mask[dofs.u_slice])[0]
    con_u = np.nonzero(constraints.mask[dofs.u_slice])[0]
    K_uu = B["uu"]
    A = K_uu[free_u][:, free_u].tocsr()
    b = f_u[free_u] - K_uu[free_u][:, con_u] @ du[con_u]

    if type_lin == "CG":
        M = make_preconditioner(A, preconditioner_type, preconditioner_relaxation)
        x, lin_it = _cg(A, b, tol_lin, max_iterations_lin * A.shape[0], M=M, what="CG (condensed uu)")
        lin_res = _residual(A, x, b)
    else:
        x = _check_finite(np.atleast_1d(spla.spsolve(A.tocsc(), b)), "Direct (condensed uu)")
        lin_it, lin_res = 1, 0.0
    du[free_u] = x

    d_u = du[dofs.u_slice]
    d_J = K_pJ_inv @ (f_p - B["pu"] @ d_u)
    d_p = K_pJ_inv.T @ (f_J - B["JJ"] @ d_J)
    du[dofs.J_slice] = d_J
    du[dofs.p_slice] = d_p
    return _check_finite(du, "condensed back-substitution"), lin_it, lin_res


def solve_schur_operator(
    K: sp.csr_matrix,
    rhs: np.ndarray,
    dofs: BlockDofHandler,
    constraints: Constraints,
    tol_lin: float = 1e-6,
    max_iterations_lin: float = 1.0,
    preconditioner_type: str = "ssor",
    preconditioner_relaxation: float = 0.65,
) -> Tuple[np.ndarray, int, float]:
    """Operator-level Schur complement with inner and outer CG."""
    B = _blocks(K, dofs)
    n_pJ = dofs.n_p

    # K_Jp = -M is negative definite; the inner CG works on -K_Jp
    neg_Jp = (-B["Jp"]).tocsr()
    neg_pJ = (-B["pJ"]).tocsr()
    M_Jp = make_preconditioner(neg_Jp, "jacobi", 1.0)
    M_pJ = make_preconditioner(neg_pJ, "jacobi", 1.0)
    inner_maxiter = max(1, neg_Jp.shape[0])

    def _Jp_inv(v):
        x, _ = _cg(neg_Jp, -np.ravel(v), INNER_RTOL, inner_maxiter, M=M_Jp, what="inner CG (K_Jp^-1)")
        return x

    def _pJ_inv(v):
        x, _ = _cg(neg_pJ, -np.ravel(v), INNER_RTOL, inner_maxiter, M=M_pJ, what="inner CG (K_pJ^-1)")
        return x

    K_Jp_inv = spla.LinearOperator((n_pJ, n_pJ), matvec=_Jp_inv, rmatvec=_pJ_inv, dtype=float)
    K_pJ_inv = K_Jp_inv.T
    K_JJ = spla.aslinearoperator(B["JJ"])
    K_pp_bar = K_Jp_inv @ K_JJ @ K_pJ_inv

    f_u = rhs[dofs.u_slice]
    f_p = rhs[dofs.p_slice]
    f_J = rhs[dofs.J_slice]

    du = _constrained_update(dofs, constraints)
    free_u = np.nonzero(~constraints.mask[dofs.u_slice])[0]
    con_u = np.nonzero(constraints.mask[dofs.u_slice])[0]
    n_u = dofs.n_u

    # restriction of K_con = K_uu + K_up K_pp_bar K_pu to the free displacement dofs
    K_uu = B["uu"]
    K_up = B["up"]
    K_pu = B["pu"]
    K_uu_ff = K_uu[free_u][:, free_u].tocsr()
    K_up_f = K_up[free_u].tocsr()
    K_pu_f = K_pu[:, free_u].tocsr()

    def _con(v):
        v = np.ravel(v)
        return K_uu_ff @ v + K_up_f @ (K_pp_bar @ (K_pu_f @ v))

    A = spla.LinearOperator((free_u.size, free_u.size), matvec=_con, dtype=float)

    # f_u - K_up (K_Jp^-1 f_J - K_pp_bar f_p), minus the constrained columns of K_con
    rhs_u = f_u - K_up @ (K_Jp_inv @ f_J - K_pp_bar @ f_p)
    g = np.zeros(n_u, dtype=float)
    g[con_u] = du[con_u]
    if np.any(g):
        rhs_u = rhs_u - (K_uu @ g + K_up @ (K_pp_bar @ (K_pu @ g)))
    b = rhs_u[free_u]

    M = make_preconditioner(K_uu_ff, preconditioner_type, preconditioner_relaxation)
    x, lin_it = _cg(A, b, tol_lin, max_iterations_lin * free_u.size, M=M, what="CG (Schur complement)")
    lin_res = _residual(A, x, b)
    du[free_u] = x

    d_u = du[dofs.u_slice]
    d_J = K_pJ_inv @ (f_p - K_pu @ d_u)
    d_p = K_Jp_inv @ (f_J - B["JJ"] @ d_J)
    du[dofs.J_slice] = d_J
    du[dofs.p_slice] = d_p
    return _check_finite(du, "Schur back-substitution"), lin_it, lin_res


def solve_direct_full(
    K: sp.csr_matrix,
    rhs: np.ndarray,
    dofs: BlockDofHandler,
    constraints: Constraints,
) -> Tuple[np.ndarray, int, float]:
    """Sparse LU of the whole 3-block system on the free dofs."""
    K = sp.csr_matrix(K)
    du = _constrained_update(dofs, constraints)
    free = constraints.free_dofs()
    con = constraints.constrained_dofs
    K_f = K[free]
    b = rhs[free] - K_f[:, con] @ du[con]
    A = K_f[:, free].tocsc()
    du[free] = _check_finite(np.atleast_1d(spla.spsolve(A, b)), "Direct (full system)")
    return du, 1, 0.0


def solve_linear_system(
    K: sp.csr_matrix,
    rhs: np.ndarray,
    dofs: BlockDofHandler,
    constraints: Constraints,
    settings,
    timer=None,
) -> Tuple[np.ndarray, int, float]:
    """Newton update ``du`` with ``(iterations, residual)`` of the linear solve.

    ``settings`` is a :class:`threefield.parameters.LinearSolver`.
    """
    opts = dict(
        tol_lin=settings.tol_lin,
        max_iterations_lin=settings.max_iterations_lin,
        preconditioner_type=settings.preconditioner_type,
        preconditioner_relaxation=settings.preconditioner_relaxation,
    )
    if settings.use_static_condensation:
        if timer is not None:
            with timer.section("Perform static condensation"):
                K_sc = assemble_static_condensation(K, dofs)
        else:
            K_sc = assemble_static_condensation(K, dofs)
        return solve_condensed(K_sc, rhs, dofs, constraints, type_lin=settings.type_lin, **opts)
    if settings.type_lin == "CG":
        return solve_schur_operator(K, rhs, dofs, constraints, **opts)
    return solve_direct_full(K, rhs, dofs, constraints)
