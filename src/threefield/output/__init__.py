"""Result export."""

from threefield.output.snapshots import MemorySnapshotWriter, SolutionSnapshot, VtkSnapshotWriter
from threefield.output.vtk_export import linear_subcells, write_vtk_unstructured_grid

__all__ = [
    "MemorySnapshotWriter",
    "SolutionSnapshot",
    "VtkSnapshotWriter",
    "linear_subcells",
    "write_vtk_unstructured_grid",
]
