"""Newton-Raphson driver for one pseudo-time step.

The driver is a small state machine::

    ASSEMBLE -> CHECK_CONVERGENCE -> (CONVERGED | SOLVE -> UPDATE -> ASSEMBLE)
                                  -> DIVERGED when the iteration bound is hit

It owns no physics: the problem object (normally :class:`threefield.solid.Solid`)
provides constraints, assembly, the linear solve and the history update.
Convergence needs the normalized u-block update AND the normalized u-block
residual to be within tolerance, and is never declared on iteration 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Protocol, Tuple

import numpy as np

from threefield.convergence import Errors, NewtonConvergence
from threefield.errors import NonconvergenceError


class NewtonState(Enum):
    ASSEMBLE = "assemble"
    CHECK_CONVERGENCE = "check_convergence"
    SOLVE = "solve"
    UPDATE = "update"
    CONVERGED = "converged"
    DIVERGED = "diverged"


class NonlinearProblem(Protocol):
    def make_constraints(self, iteration: int) -> None: ...

    def assemble_system(self) -> None: ...

    def get_error_residual(self) -> Errors: ...

    def solve_linear_system(self) -> Tuple[np.ndarray, int, float]: ...

    def get_error_update(self, newton_update: np.ndarray) -> Errors: ...

    def update_qph_incremental(self, solution_delta: np.ndarray) -> None: ...

    def get_error_dilatation(self) -> float: ...

    def get_volume_ratio(self) -> float: ...


@dataclass
class NewtonIterationRecord:
    iteration: int
    lin_it: int
    lin_res: float
    residual: Errors
    update: Errors


@dataclass
class NewtonResult:
    iterations: int
    error_residual_norm: Errors
    error_update_norm: Errors
    records: List[NewtonIterationRecord] = field(default_factory=list)

    @property
    def residual_history(self) -> List[float]:
        """Normalized u-block residual of every solved iteration."""
        return [r.residual.u for r in self.records]


_HEADER = (
    "    SOLVER STEP      |  LIN_IT   LIN_RES    RES_NORM    RES_U     RES_P      RES_J     "
    "NU_NORM     NU_U       NU_P       NU_J"
)


class NewtonRaphsonDriver:
    """Run the Newton iteration of one time step.

    Parameters
    ----------
    convergence : NewtonConvergence
        Tolerances and the iteration bound.
    verbose : bool
        Print the convergence table.
    """

    def __init__(self, convergence: NewtonConvergence, verbose: bool = True):
        self.convergence = convergence
        self.verbose = bool(verbose)
        self.state = NewtonState.ASSEMBLE

    def solve(self, problem: NonlinearProblem, solution_delta: np.ndarray) -> NewtonResult:
        """Iterate until converged; ``solution_delta`` is updated in place."""
        conv = self.convergence
        error_residual_0 = Errors()
        error_residual_norm = Errors()
        error_update_0 = Errors()
        error_update_norm = Errors()
        records: List[NewtonIterationRecord] = []

        if self.verbose:
            self._print_header()

        it = 0
        newton_update = None
        lin_it, lin_res = 0, 0.0
        self.state = NewtonState.ASSEMBLE
        while True:
            if self.state == NewtonState.ASSEMBLE:
                if conv.exhausted(it):
                    self.state = NewtonState.DIVERGED
                    continue
                problem.make_constraints(it)
                problem.assemble_system()
                self.state = NewtonState.CHECK_CONVERGENCE

            elif self.state == NewtonState.CHECK_CONVERGENCE:
                error_residual = problem.get_error_residual()
                if it == 0:
                    error_residual_0 = error_residual.copy()
                error_residual_norm = error_residual.copy()
                error_residual_norm.normalize(error_residual_0)
                if conv.converged(it, error_update_norm, error_residual_norm):
                    self.state = NewtonState.CONVERGED
                else:
                    self.state = NewtonState.SOLVE

            elif self.state == NewtonState.SOLVE:
                newton_update, lin_it, lin_res = problem.solve_linear_system()
                error_update = problem.get_error_update(newton_update)
                if it == 0:
                    error_update_0 = error_update.copy()
                error_update_norm = error_update.copy()
                error_update_norm.normalize(error_update_0)
                self.state = NewtonState.UPDATE

            elif self.state == NewtonState.UPDATE:
                solution_delta += newton_update
                problem.update_qph_incremental(solution_delta)
                records.append(
                    NewtonIterationRecord(
                        iteration=it,
                        lin_it=int(lin_it),
                        lin_res=float(lin_res),
                        residual=error_residual_norm.copy(),
                        update=error_update_norm.copy(),
                    )
                )
                if self.verbose:
                    self._print_line(records[-1])
                it += 1
                self.state = NewtonState.ASSEMBLE

            elif self.state == NewtonState.CONVERGED:
                if self.verbose:
                    print(f"[newton] it={it:02d} CONVERGED")
                    self._print_footer(problem, error_update_norm, error_residual_norm)
                return NewtonResult(
                    iterations=it,
                    error_residual_norm=error_residual_norm,
                    error_update_norm=error_update_norm,
                    records=records,
                )

            else:  # DIVERGED
                if self.verbose:
                    print(f"[newton] failed(maxit) after {it} iterations")
                raise NonconvergenceError(
                    f"No convergence in nonlinear solver after {it} iterations "
                    f"(res_u={error_residual_norm.u:.3e}, nu_u={error_update_norm.u:.3e})"
                )

    # ------------------------------------------------------------------
    # Convergence table
    # ------------------------------------------------------------------
    @staticmethod
    def _print_header() -> None:
        print("_" * len(_HEADER))
        print(_HEADER)
        print("_" * len(_HEADER))

    @staticmethod
    def _print_line(rec: NewtonIterationRecord) -> None:
        r, u = rec.residual, rec.update
        print(
            f"[newton] it={rec.iteration:02d} | {rec.lin_it:5d}  {rec.lin_res:.3e}  "
            f"{r.norm:.3e}  {r.u:.3e}  {r.p:.3e}  {r.J:.3e}  "
            f"{u.norm:.3e}  {u.u:.3e}  {u.p:.3e}  {u.J:.3e}"
        )

    @staticmethod
    def _print_footer(problem: NonlinearProblem, update: Errors, residual: Errors) -> None:
        print("_" * len(_HEADER))
        print("Relative errors:")
        print(f"Displacement:\t{update.u:.3e}")
        print(f"Force:\t\t{residual.u:.3e}")
        print(f"Dilatation:\t{problem.get_error_dilatation():.3e}")
        print(f"v / V_0:\t{problem.get_volume_ratio():.6e}")
