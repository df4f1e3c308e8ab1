"""Exception types raised by the three-field solver.

Every condition below is fatal for the run: the exceptions propagate out of
:meth:`threefield.solid.Solid.run` and there is no local recovery.
"""

from __future__ import annotations


class ThreeFieldError(Exception):
    """Base class for all solver errors."""


class ConfigurationError(ThreeFieldError, ValueError):
    """Invalid parameters (e.g. a non-positive bulk modulus)."""


class KinematicError(ThreeFieldError, RuntimeError):
    """Non-positive Jacobian determinant during a material update."""

    def __init__(self, det_F: float, cell: int = -1, q_point: int = -1):
        self.det_F = float(det_F)
        self.cell = int(cell)
        self.q_point = int(q_point)
        where = f" (cell={self.cell}, q_point={self.q_point})" if self.cell >= 0 else ""
        super().__init__(f"The tensor F must have a positive determinant; det(F)={self.det_F:.6e}{where}")


class SingularReductionError(ThreeFieldError, RuntimeError):
    """Non-invertible pressure/dilatation coupling block during static condensation."""


class NonconvergenceError(ThreeFieldError, RuntimeError):
    """Newton iteration exceeded its bound without meeting both tolerances."""


class LinearSolverFailure(ThreeFieldError, RuntimeError):
    """The linear-solve primitive failed or returned a non-finite update."""
