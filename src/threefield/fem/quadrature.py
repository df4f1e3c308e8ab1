"""Gauss-Legendre rules on the reference cell [0, 1]^dim."""

from __future__ import annotations

from typing import Tuple

import numpy as np


def gauss_1d(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """n-point rule on [0, 1] (exact for degree 2n-1)."""
    t, w = np.polynomial.legendre.leggauss(int(n))
    return 0.5 * (t + 1.0), 0.5 * w


def gauss_tensor(n: int, dim: int) -> Tuple[np.ndarray, np.ndarray]:
    """Tensor-product rule; points ``(n**dim, dim)``, x varies fastest."""
    x, w = gauss_1d(n)
    if dim == 1:
        return x[:, None], w.copy()
    grids = np.meshgrid(*([x] * dim), indexing="ij")
    wgrids = np.meshgrid(*([w] * dim), indexing="ij")
    # reverse axis order so that the first coordinate varies fastest
    pts = np.stack([g.transpose(tuple(range(dim))[::-1]).ravel() for g in grids], axis=1)
    wts = np.prod(np.stack([g.transpose(tuple(range(dim))[::-1]).ravel() for g in wgrids], axis=1), axis=1)
    return pts, wts


def face_points(n: int, dim: int, face: int) -> Tuple[np.ndarray, np.ndarray]:
    """Rule on reference face ``face = 2*d + side`` embedded in [0, 1]^dim."""
    d, side = divmod(int(face), 2)
    if dim == 1:
        return np.array([[float(side)]]), np.ones(1)
    pts_f, wts = gauss_tensor(n, dim - 1)
    pts = np.empty((pts_f.shape[0], dim), dtype=float)
    others = [k for k in range(dim) if k != d]
    for col, k in enumerate(others):
        pts[:, k] = pts_f[:, col]
    pts[:, d] = float(side)
    return pts, wts
