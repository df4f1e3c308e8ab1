"""Finite-element building blocks: quadrature, bases, meshes, DOFs, constraints."""

from threefield.fem.bcs import Constraints, make_dirichlet_constraints
from threefield.fem.dofs import BlockDofHandler
from threefield.fem.mesh import StructuredMesh, cooks_membrane, hyper_rectangle, unit_block, volume
from threefield.fem.values import CellValues, FaceValues

__all__ = [
    "BlockDofHandler",
    "CellValues",
    "Constraints",
    "FaceValues",
    "StructuredMesh",
    "cooks_membrane",
    "hyper_rectangle",
    "make_dirichlet_constraints",
    "unit_block",
    "volume",
]
