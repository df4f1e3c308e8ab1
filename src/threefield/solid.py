"""Quasi-static three-field solid problem.

:class:`Solid` wires the collaborators together (grid, DOFs, FE values,
quadrature-point history, assembler, constraints, linear solver, Newton
driver, time stepper, snapshot writers) and implements the problem interface
consumed by :class:`threefield.newton.NewtonRaphsonDriver`.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from threefield.assembly import CellAssembler
from threefield.convergence import Errors, NewtonConvergence
from threefield.fem.bcs import Constraints, DirichletSpec, make_dirichlet_constraints
from threefield.fem.dofs import J_BLOCK, P_BLOCK, U_BLOCK, BlockDofHandler
from threefield.fem.mesh import StructuredMesh, cooks_membrane, unit_block
from threefield.fem.values import CellValues, FaceValues
from threefield.history import QuadraturePointHistory
from threefield.linear_solver import solve_linear_system
from threefield.material import make_material
from threefield.newton import NewtonRaphsonDriver, NewtonResult
from threefield.output.snapshots import SolutionSnapshot, VtkSnapshotWriter
from threefield.parameters import AllParameters
from threefield.time_stepper import Time
from threefield.utils.run_info import print_setup_summary
from threefield.utils.timing import Timer


def make_grid(parameters: AllParameters) -> StructuredMesh:
    g = parameters.geometry
    k = parameters.fe_system.poly_degree
    if g.grid == "cooks":
        return cooks_membrane(g.cellnum, dim=g.dim, degree=k, scale=g.scale)
    return unit_block(g.global_refinement, dim=g.dim, degree=k, scale=g.scale)


def default_dirichlet_specs(parameters: AllParameters) -> List[DirichletSpec]:
    """Homogeneous support conditions of the built-in grids.

    Cook's membrane: clamped at id 1, out-of-plane displacement fixed on ids
    2 and 3 (3D only). Block: symmetry planes x=0, y=0, z=0 and the loaded
    patch guided along y.
    """
    g = parameters.geometry
    if g.grid == "cooks":
        return [(1, range(g.dim), 0.0), (2, [2], 0.0), (3, [2], 0.0)]
    return [(0, [0], 0.0), (2, [1], 0.0), (4, [2], 0.0), (6, [0, 2], 0.0)]


class Solid:
    """Three-field quasi-static solid.

    Parameters
    ----------
    parameters : AllParameters
        Run configuration.
    mesh : StructuredMesh, optional
        Overrides the grid selected in ``parameters.geometry``.
    dirichlet : sequence of (boundary_id, components, value), optional
        Overrides :func:`default_dirichlet_specs`.
    writers : sequence, optional
        Snapshot writers; defaults to a :class:`VtkSnapshotWriter` when
        ``runtime.write_vtk`` is on.
    """

    def __init__(
        self,
        parameters: AllParameters,
        mesh: Optional[StructuredMesh] = None,
        dirichlet: Optional[Sequence[DirichletSpec]] = None,
        writers: Optional[Sequence] = None,
    ):
        self.parameters = parameters
        self.verbose = bool(parameters.runtime.verbose)
        self.use_numba = bool(parameters.runtime.use_numba)
        self.timer = Timer()
        self.time = Time(parameters.time.end_time, parameters.time.delta_t)

        # invalid material parameters abort before any setup work
        self.material = make_material(parameters)

        self.mesh = mesh if mesh is not None else make_grid(parameters)
        self.dirichlet_specs = list(dirichlet) if dirichlet is not None else default_dirichlet_specs(parameters)
        if writers is None:
            writers = [VtkSnapshotWriter(parameters.runtime.output_dir, verbose=self.verbose)] if parameters.runtime.write_vtk else []
        self.writers = list(writers)

        ns = parameters.nonlinear_solver
        self.newton = NewtonRaphsonDriver(
            NewtonConvergence(tol_f=ns.tol_f, tol_u=ns.tol_u, max_iterations=ns.max_iterations_NR),
            verbose=self.verbose,
        )

        self.tangent_matrix = None
        self.system_rhs = None
        self.snapshots: List[SolutionSnapshot] = []
        self.system_setup()

    @classmethod
    def from_yaml(cls, filepath: str, **kwargs) -> "Solid":
        return cls(AllParameters.from_yaml(filepath), **kwargs)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def system_setup(self) -> None:
        with self.timer.section("Setup system"):
            p = self.parameters
            self.dofs = BlockDofHandler(self.mesh, p.fe_system.poly_degree)
            self.cell_values = CellValues(self.dofs, p.fe_system.quad_order)
            load_id = p.geometry.load_boundary_id
            self.load_faces = FaceValues(self.dofs, p.fe_system.quad_order, self.mesh.boundary_faces(load_id))
            self.vol_reference = self.cell_values.volume()

            self.history = QuadraturePointHistory(self.mesh.n_cells, self.cell_values.n_q_points, self.mesh.dim)
            self.history.setup(self.material, use_numba=self.use_numba)

            self.assembler = CellAssembler(
                self.dofs,
                self.cell_values,
                self.history,
                load_faces=self.load_faces,
                p0=p.geometry.p0,
                p_p0=p.geometry.p_p0,
                traction_direction=p.geometry.traction_vector(),
                use_numba=self.use_numba,
            )
            self.constraints = Constraints(self.dofs.n_dofs)
            self.solution_n = self.dofs.initial_solution()

        if self.verbose:
            print_setup_summary(
                p,
                n_cells=self.mesh.n_cells,
                n_points=self.mesh.n_points,
                dofs_per_block=self.dofs.dofs_per_block,
                dofs_per_cell=self.dofs.dofs_per_cell,
                volume=self.vol_reference,
            )
            if len(self.load_faces) == 0:
                print(f"[setup] WARNING: no faces carry the load boundary id {load_id}")

    # ------------------------------------------------------------------
    # Newton problem interface
    # ------------------------------------------------------------------
    def make_constraints(self, iteration: int) -> None:
        """Inhomogeneous constraints on iteration 0, homogenized on 1, kept afterwards."""
        if iteration == 0:
            self.constraints = make_dirichlet_constraints(self.mesh, self.dofs, self.dirichlet_specs)
        elif iteration == 1 and self.constraints.has_inhomogeneities():
            self.constraints.homogenize()

    def assemble_system(self) -> None:
        with self.timer.section("Assemble system"):
            self.tangent_matrix, self.system_rhs = self.assembler.assemble(self.time.ramp())

    def _free_mask(self) -> np.ndarray:
        return ~self.constraints.mask

    def get_error_residual(self) -> Errors:
        return Errors.from_vector(self.system_rhs, self.dofs, self._free_mask())

    def get_error_update(self, newton_update: np.ndarray) -> Errors:
        return Errors.from_vector(newton_update, self.dofs, self._free_mask())

    def solve_linear_system(self):
        with self.timer.section("Linear solver"):
            return solve_linear_system(
                self.tangent_matrix,
                self.system_rhs,
                self.dofs,
                self.constraints,
                self.parameters.linear_solver,
                timer=self.timer,
            )

    def get_total_solution(self, solution_delta: np.ndarray) -> np.ndarray:
        return self.solution_n + solution_delta

    def update_qph_incremental(self, solution_delta: np.ndarray) -> None:
        """Refresh the history from ``solution_n + solution_delta``."""
        with self.timer.section("Update QPH data"):
            total = self.get_total_solution(solution_delta)
            cv = self.cell_values
            grad_u = cv.grad_u(self.dofs.cell_field(total, U_BLOCK))
            p_tilde = cv.dgp_at_points(self.dofs.cell_field(total, P_BLOCK))
            J_tilde = cv.dgp_at_points(self.dofs.cell_field(total, J_BLOCK))
            self.history.update_all(grad_u, p_tilde, J_tilde)

    def compute_vol_current(self) -> float:
        return float(np.sum(self.history.det_F * self.cell_values.JxW))

    def get_error_dilatation(self) -> float:
        """L2 norm of det(F) - J~ over the mesh."""
        err = (self.history.det_F - self.history.J_tilde) ** 2
        return float(np.sqrt(np.sum(err * self.cell_values.JxW)))

    def get_volume_ratio(self) -> float:
        return self.compute_vol_current() / self.vol_reference

    # ------------------------------------------------------------------
    # Time loop
    # ------------------------------------------------------------------
    def solve_nonlinear_timestep(self, solution_delta: np.ndarray) -> NewtonResult:
        if self.verbose:
            print(f"\n[newton] Timestep {self.time.get_timestep()} @ {self.time.current():.6g}s")
        return self.newton.solve(self, solution_delta)

    def snapshot(self) -> SolutionSnapshot:
        x = self.solution_n
        d = self.dofs
        return SolutionSnapshot(
            step=self.time.get_timestep(),
            time=self.time.current(),
            solution=x.copy(),
            displacement=x[d.u_slice].reshape(-1, self.mesh.dim).copy(),
            pressure=d.cell_field(x, P_BLOCK)[:, 0].copy(),
            dilatation=d.cell_field(x, J_BLOCK)[:, 0].copy(),
            stress_norm=self.history.stress_norm_per_cell(),
            volume_ratio=self.get_volume_ratio(),
        )

    def output_results(self) -> SolutionSnapshot:
        with self.timer.section("Output"):
            snap = self.snapshot()
            self.snapshots.append(snap)
            for w in self.writers:
                w.write(snap, self.mesh)
        if self.verbose:
            top = snap.highest_point(self.mesh.points)
            print(f"[output] step={snap.step}  highest deformed point={np.array2string(top, precision=6)}")
        return snap

    def run(self) -> List[NewtonResult]:
        """Export t = 0, then solve and export every increment up to ``end_time``."""
        results: List[NewtonResult] = []
        self.output_results()
        self.time.increment()

        while self.time.within_end():
            solution_delta = np.zeros(self.dofs.n_dofs, dtype=float)
            results.append(self.solve_nonlinear_timestep(solution_delta))
            self.solution_n += solution_delta
            self.output_results()
            self.time.increment()

        if self.verbose:
            print("\n[run] timer summary")
            print(self.timer.summary())
        return results
