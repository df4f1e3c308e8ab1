"""Per-step solution snapshots and their writers.

A :class:`SolutionSnapshot` is taken after every accepted step (and at t = 0)
and handed to every registered writer.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List

import numpy as np

from threefield.output.vtk_export import linear_subcells, write_vtk_unstructured_grid


@dataclass
class SolutionSnapshot:
    step: int
    time: float
    solution: np.ndarray          # copy of the total solution [u | p | J]
    displacement: np.ndarray      # (n_points, dim)
    pressure: np.ndarray          # cell mean of p~, (n_cells,)
    dilatation: np.ndarray        # cell mean of J~, (n_cells,)
    stress_norm: np.ndarray       # mean |tau| per cell, (n_cells,)
    volume_ratio: float = 1.0

    def deformed_points(self, reference_points: np.ndarray) -> np.ndarray:
        return reference_points + self.displacement

    def highest_point(self, reference_points: np.ndarray) -> np.ndarray:
        """Deformed point with the largest y coordinate."""
        x = self.deformed_points(reference_points)
        return x[int(np.argmax(x[:, 1]))]


class MemorySnapshotWriter:
    """Keep every snapshot in memory (tests, notebooks)."""

    def __init__(self):
        self.snapshots: List[SolutionSnapshot] = []

    def write(self, snapshot: SolutionSnapshot, mesh) -> None:
        self.snapshots.append(snapshot)

    @property
    def steps(self) -> List[int]:
        return [s.step for s in self.snapshots]


@dataclass
class VtkSnapshotWriter:
    """Write ``solution-<dim>d-<step>.vtk`` into ``output_dir``."""

    output_dir: str = "output"
    verbose: bool = True
    written: List[str] = field(default_factory=list)

    def write(self, snapshot: SolutionSnapshot, mesh) -> None:
        fname = os.path.join(self.output_dir, f"solution-{mesh.dim}d-{snapshot.step}.vtk")
        sub = linear_subcells(mesh)
        repeat = sub.shape[0] // mesh.n_cells
        write_vtk_unstructured_grid(
            fname,
            mesh.points,
            sub,
            point_data={"displacement": snapshot.displacement},
            cell_data={
                "pressure": np.repeat(snapshot.pressure, repeat),
                "dilatation": np.repeat(snapshot.dilatation, repeat),
                "stress_norm": np.repeat(snapshot.stress_norm, repeat),
            },
            title=f"threefield step={snapshot.step} time={snapshot.time:.6g}",
            verbose=self.verbose,
        )
        self.written.append(fname)
