"""Shape functions on the reference cell [0, 1]^dim.

* :class:`LagrangeQ` - tensor-product Lagrange Q_k on equispaced nodes, used
  for the displacement and for the (isoparametric) geometry.
* :class:`LegendreDGP` - discontinuous P_k space spanned by tensor Legendre
  polynomials of total degree <= k, used for pressure and dilatation.
"""

from __future__ import annotations

import itertools
from typing import List, Tuple

import numpy as np
from numpy.polynomial import legendre


def _lagrange_1d(k: int, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Values and derivatives of the k+1 1D Lagrange polynomials at ``x``.

    Returns arrays of shape ``(len(x), k+1)``.
    """
    x = np.asarray(x, dtype=float)
    nodes = np.linspace(0.0, 1.0, k + 1)
    n = x.shape[0]
    N = np.ones((n, k + 1), dtype=float)
    dN = np.zeros((n, k + 1), dtype=float)
    for a in range(k + 1):
        others = [b for b in range(k + 1) if b != a]
        denom = np.prod([nodes[a] - nodes[b] for b in others])
        for b in others:
            N[:, a] *= x - nodes[b]
        for m in others:
            term = np.ones(n, dtype=float)
            for b in others:
                if b != m:
                    term *= x - nodes[b]
            dN[:, a] += term
        N[:, a] /= denom
        dN[:, a] /= denom
    return N, dN


class LagrangeQ:
    """Q_k element; local nodes are lexicographic with x varying fastest."""

    def __init__(self, degree: int, dim: int):
        self.degree = int(degree)
        self.dim = int(dim)
        self.n_1d = self.degree + 1
        self.n_nodes = self.n_1d ** self.dim
        # multi-index (i_0, ..., i_{dim-1}) of each local node
        self.node_index = np.array(
            [idx[::-1] for idx in itertools.product(range(self.n_1d), repeat=self.dim)], dtype=int
        )

    def reference_nodes(self) -> np.ndarray:
        return self.node_index / float(self.degree)

    def values(self, points: np.ndarray) -> np.ndarray:
        """``N[q, a]`` at reference points ``(n_q, dim)``."""
        points = np.asarray(points, dtype=float)
        N = np.ones((points.shape[0], self.n_nodes), dtype=float)
        for d in range(self.dim):
            N1, _ = _lagrange_1d(self.degree, points[:, d])
            N *= N1[:, self.node_index[:, d]]
        return N

    def gradients(self, points: np.ndarray) -> np.ndarray:
        """``dN[q, a, d]`` with respect to the reference coordinates."""
        points = np.asarray(points, dtype=float)
        vals = []
        ders = []
        for d in range(self.dim):
            N1, dN1 = _lagrange_1d(self.degree, points[:, d])
            vals.append(N1[:, self.node_index[:, d]])
            ders.append(dN1[:, self.node_index[:, d]])
        G = np.ones((points.shape[0], self.n_nodes, self.dim), dtype=float)
        for d in range(self.dim):
            for e in range(self.dim):
                G[:, :, d] *= ders[e] if e == d else vals[e]
        return G


class LegendreDGP:
    """Discontinuous P_k basis ``prod_d P_{alpha_d}(2 x_d - 1)``, ``|alpha| <= k``.

    The first mode is the constant 1.
    """

    def __init__(self, degree: int, dim: int):
        self.degree = int(degree)
        self.dim = int(dim)
        self.exponents: List[Tuple[int, ...]] = sorted(
            (a for a in itertools.product(range(self.degree + 1), repeat=self.dim) if sum(a) <= self.degree),
            key=lambda a: (sum(a), a[::-1]),
        )
        self.n_modes = len(self.exponents)

    def values(self, points: np.ndarray) -> np.ndarray:
        """``N[q, k]`` at reference points ``(n_q, dim)``."""
        points = np.asarray(points, dtype=float)
        t = 2.0 * points - 1.0
        N = np.ones((points.shape[0], self.n_modes), dtype=float)
        for k, alpha in enumerate(self.exponents):
            for d, a in enumerate(alpha):
                if a:
                    coef = np.zeros(a + 1)
                    coef[a] = 1.0
                    N[:, k] *= legendre.legval(t[:, d], coef)
        return N
