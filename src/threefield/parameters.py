"""Run configuration for the three-field solid solver.

The parameters are grouped the same way as the sections of the input file
(finite-element system, geometry, materials, linear solver, nonlinear solver,
time, runtime). :class:`AllParameters` aggregates the sections and provides
dict/YAML round-tripping.

Example YAML::

    fe_system: {poly_degree: 2, quad_order: 3}
    geometry: {dim: 2, grid: cooks, cellnum: 8, scale: 1.0e-3, p_p0: 100.0}
    materials: {mu: 80.194e6, nu: 0.4999}
    linear_solver: {type_lin: CG, use_static_condensation: true}
    nonlinear_solver: {max_iterations_NR: 10, tol_f: 1.0e-9, tol_u: 1.0e-6}
    time: {delta_t: 0.1, end_time: 1.0}
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np
import yaml

from threefield.errors import ConfigurationError


# Fixed load direction of the Cook's-membrane shear traction (1/16 along y).
COOKS_TRACTION_DIRECTION = (0.0, 0.0625, 0.0)


def _section_to_dict(section) -> Dict[str, Any]:
    out = {}
    for f in fields(section):
        v = getattr(section, f.name)
        if isinstance(v, tuple):
            v = list(v)
        out[f.name] = v
    return out


def _section_from_dict(cls, data: Optional[Dict[str, Any]]):
    data = dict(data or {})
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown {cls.__name__} parameter(s): {', '.join(unknown)}")
    return cls(**data)


@dataclass
class FESystem:
    """Polynomial degree of the displacement space and Gauss order."""

    poly_degree: int = 2
    quad_order: int = 3

    def __post_init__(self):
        self.poly_degree = int(self.poly_degree)
        self.quad_order = int(self.quad_order)
        if self.poly_degree < 1:
            raise ConfigurationError(f"poly_degree must be >= 1, got {self.poly_degree}")
        if self.quad_order < 1:
            raise ConfigurationError(f"quad_order must be >= 1, got {self.quad_order}")

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


@dataclass
class Geometry:
    """Grid selection, loading patch and load magnitude.

    ``traction_direction`` is either ``"fixed"`` (the Cook's-membrane vector
    ``(0, 1/16, 0)``), ``"normal"`` (pressure acting against the outward face
    normal) or an explicit vector. It defaults to ``"fixed"`` on the Cook's
    membrane and ``"normal"`` on the block.
    """

    dim: int = 3
    grid: str = "cooks"  # cooks | block
    global_refinement: int = 2
    scale: float = 1e-3
    p_p0: float = 100.0
    cellnum: int = 8
    load_boundary_id: Optional[int] = None
    traction_direction: Optional[Union[str, Tuple[float, ...]]] = None

    def __post_init__(self):
        self.dim = int(self.dim)
        if self.dim not in (2, 3):
            raise ConfigurationError("This problem only works in 2 or 3 space dimensions.")

        grid = (self.grid or "cooks").strip().lower()
        aliases = {
            "cook": "cooks",
            "cooks": "cooks",
            "cooks_membrane": "cooks",
            "cooks-membrane": "cooks",
            "block": "block",
            "unit_block": "block",
            "hyper_rectangle": "block",
            "cube": "block",
        }
        grid = aliases.get(grid, grid)
        if grid not in ("cooks", "block"):
            raise ConfigurationError(f"Unknown grid='{self.grid}'. Use 'cooks' or 'block'.")
        self.grid = grid

        self.global_refinement = int(self.global_refinement)
        self.cellnum = int(self.cellnum)
        self.scale = float(self.scale)
        self.p_p0 = float(self.p_p0)
        if self.scale <= 0.0:
            raise ConfigurationError(f"scale must be positive, got {self.scale}")
        if self.cellnum < 1:
            raise ConfigurationError(f"cellnum must be >= 1, got {self.cellnum}")

        if self.load_boundary_id is None:
            self.load_boundary_id = 11 if self.grid == "cooks" else 6
        self.load_boundary_id = int(self.load_boundary_id)

        td = self.traction_direction
        if td is None:
            td = "fixed" if self.grid == "cooks" else "normal"
        if isinstance(td, str):
            td = td.strip().lower()
            if td not in ("fixed", "normal"):
                raise ConfigurationError(f"Unknown traction_direction='{self.traction_direction}'")
            self.traction_direction = td
        else:
            vec = tuple(float(x) for x in td)
            if len(vec) not in (self.dim, 3):
                raise ConfigurationError(f"traction_direction needs {self.dim} components, got {len(vec)}")
            self.traction_direction = vec

    @property
    def p0(self) -> float:
        """Reference pressure 1/scale^2."""
        return 1.0 / (self.scale * self.scale)

    def traction_vector(self) -> Optional[np.ndarray]:
        """Fixed traction direction, or ``None`` when the face normal is used."""
        if self.traction_direction == "normal":
            return None
        if self.traction_direction == "fixed":
            return np.asarray(COOKS_TRACTION_DIRECTION[: self.dim], dtype=float)
        return np.asarray(self.traction_direction[: self.dim], dtype=float)

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


@dataclass
class Materials:
    """Neo-Hookean shear modulus and Poisson ratio."""

    mu: float = 80.194e6
    nu: float = 0.4999

    def __post_init__(self):
        self.mu = float(self.mu)
        self.nu = float(self.nu)

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


@dataclass
class LinearSolver:
    type_lin: str = "CG"  # CG | Direct
    tol_lin: float = 1e-6
    max_iterations_lin: float = 1.0
    use_static_condensation: bool = True
    preconditioner_type: str = "ssor"  # jacobi | ssor | none
    preconditioner_relaxation: float = 0.65

    def __post_init__(self):
        t = (self.type_lin or "CG").strip().lower()
        aliases = {"cg": "CG", "direct": "Direct", "umfpack": "Direct", "lu": "Direct", "splu": "Direct"}
        if t not in aliases:
            raise ConfigurationError(f"Linear solver type not implemented: '{self.type_lin}'")
        self.type_lin = aliases[t]

        p = (self.preconditioner_type or "none").strip().lower()
        if p not in ("jacobi", "ssor", "none"):
            raise ConfigurationError(f"Unknown preconditioner_type='{self.preconditioner_type}'")
        self.preconditioner_type = p

        self.tol_lin = float(self.tol_lin)
        self.max_iterations_lin = float(self.max_iterations_lin)
        self.use_static_condensation = bool(self.use_static_condensation)
        self.preconditioner_relaxation = float(self.preconditioner_relaxation)

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


@dataclass
class NonlinearSolver:
    max_iterations_NR: int = 10
    tol_f: float = 1e-9
    tol_u: float = 1e-6

    def __post_init__(self):
        self.max_iterations_NR = int(self.max_iterations_NR)
        self.tol_f = float(self.tol_f)
        self.tol_u = float(self.tol_u)
        if self.max_iterations_NR < 1:
            raise ConfigurationError("max_iterations_NR must be >= 1")

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


@dataclass
class TimeParams:
    delta_t: float = 0.1
    end_time: float = 1.0

    def __post_init__(self):
        self.delta_t = float(self.delta_t)
        self.end_time = float(self.end_time)
        if self.delta_t <= 0.0:
            raise ConfigurationError(f"delta_t must be positive, got {self.delta_t}")
        if self.end_time < self.delta_t:
            raise ConfigurationError("end_time must be >= delta_t")

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


@dataclass
class Runtime:
    """Execution switches that do not change the discrete problem."""

    use_numba: bool = True
    verbose: bool = True
    output_dir: str = "output"
    write_vtk: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


_SECTIONS = (
    ("fe_system", FESystem),
    ("geometry", Geometry),
    ("materials", Materials),
    ("linear_solver", LinearSolver),
    ("nonlinear_solver", NonlinearSolver),
    ("time", TimeParams),
    ("runtime", Runtime),
)


@dataclass
class AllParameters:
    fe_system: FESystem = field(default_factory=FESystem)
    geometry: Geometry = field(default_factory=Geometry)
    materials: Materials = field(default_factory=Materials)
    linear_solver: LinearSolver = field(default_factory=LinearSolver)
    nonlinear_solver: NonlinearSolver = field(default_factory=NonlinearSolver)
    time: TimeParams = field(default_factory=TimeParams)
    runtime: Runtime = field(default_factory=Runtime)

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name).to_dict() for name, _ in _SECTIONS}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AllParameters":
        data = dict(data or {})
        unknown = sorted(set(data) - {name for name, _ in _SECTIONS})
        if unknown:
            raise ConfigurationError(f"Unknown parameter section(s): {', '.join(unknown)}")
        return cls(**{name: _section_from_dict(sec_cls, data.get(name)) for name, sec_cls in _SECTIONS})

    @classmethod
    def from_yaml(cls, filepath: str) -> "AllParameters":
        with open(filepath, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)

    def to_yaml(self, filepath: Optional[str] = None) -> str:
        """Dump to a YAML string; also written to ``filepath`` when given."""
        text = yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)
        if filepath is not None:
            with open(filepath, "w") as f:
                f.write(text)
        return text

    def with_overrides(self, **sections: Dict[str, Any]) -> "AllParameters":
        """Return a copy with some section entries replaced, e.g. ``geometry={'dim': 2}``."""
        data = self.to_dict()
        for name, values in sections.items():
            if name not in data:
                raise ConfigurationError(f"Unknown parameter section '{name}'")
            if name == "geometry" and "grid" in values:
                # grid-dependent defaults are re-derived for the new grid
                data[name]["load_boundary_id"] = None
                data[name]["traction_direction"] = None
            data[name].update(values)
        return AllParameters.from_dict(data)


def load_parameters(filepath: Optional[str] = None, overrides: Optional[Sequence[Tuple[str, Dict[str, Any]]]] = None) -> AllParameters:
    """Read a YAML parameter file (or the defaults when ``filepath`` is None)."""
    params = AllParameters.from_yaml(filepath) if filepath else AllParameters()
    if overrides:
        params = params.with_overrides(**dict(overrides))
    return params
