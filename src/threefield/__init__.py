"""threefield: quasi-static three-field (u, p, J) mixed FE solver for
compressible Neo-Hookean solids.

Entry points
------------
* :class:`threefield.solid.Solid` - problem setup and time loop
* :class:`threefield.parameters.AllParameters` - run configuration (YAML)
* ``threefield`` console script (:mod:`threefield.cli`)
"""

from threefield.errors import (
    ConfigurationError,
    KinematicError,
    LinearSolverFailure,
    NonconvergenceError,
    SingularReductionError,
    ThreeFieldError,
)
from threefield.parameters import AllParameters
from threefield.solid import Solid

__version__ = "0.1.0"

__all__ = [
    "AllParameters",
    "ConfigurationError",
    "KinematicError",
    "LinearSolverFailure",
    "NonconvergenceError",
    "SingularReductionError",
    "Solid",
    "ThreeFieldError",
]
