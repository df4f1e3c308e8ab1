"""Newton convergence helpers (normalized two-tolerance rule)."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class Errors:
    """Norms of a residual or an update: (whole, u block, p block, J block)."""

    norm: float = 1.0
    u: float = 1.0
    p: float = 1.0
    J: float = 1.0

    def reset(self) -> None:
        self.norm = 1.0
        self.u = 1.0
        self.p = 1.0
        self.J = 1.0

    def normalize(self, rhs: "Errors") -> None:
        """Divide by a baseline; zero baseline components are left unnormalized."""
        if rhs.norm != 0.0:
            self.norm /= rhs.norm
        if rhs.u != 0.0:
            self.u /= rhs.u
        if rhs.p != 0.0:
            self.p /= rhs.p
        if rhs.J != 0.0:
            self.J /= rhs.J

    def copy(self) -> "Errors":
        return Errors(self.norm, self.u, self.p, self.J)

    @classmethod
    def from_vector(cls, x: np.ndarray, dofs, free_mask: np.ndarray) -> "Errors":
        """Block norms of ``x`` restricted to the unconstrained dofs."""
        v = np.where(free_mask, np.asarray(x, dtype=float), 0.0)
        return cls(
            norm=float(np.linalg.norm(v)),
            u=float(np.linalg.norm(v[dofs.u_slice])),
            p=float(np.linalg.norm(v[dofs.p_slice])),
            J=float(np.linalg.norm(v[dofs.J_slice])),
        )


@dataclass(frozen=True)
class NewtonConvergence:
    tol_f: float = 1e-9
    tol_u: float = 1e-6
    max_iterations: int = 10

    def converged(self, iteration: int, error_update_norm: Errors, error_residual_norm: Errors) -> bool:
        """Both normalized u-block measures must be within tolerance; never on iteration 0."""
        if int(iteration) == 0:
            return False
        return bool(error_update_norm.u <= self.tol_u and error_residual_norm.u <= self.tol_f)

    def exhausted(self, iteration: int) -> bool:
        return int(iteration) >= int(self.max_iterations)
