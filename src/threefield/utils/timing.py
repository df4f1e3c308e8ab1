"""Wall-clock section timer (summary printed at the end of a run)."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Dict, Iterator


class Timer:
    def __init__(self):
        self.totals: Dict[str, float] = {}
        self.calls: Dict[str, int] = {}
        self._t0 = time.perf_counter()

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        t0 = time.perf_counter()
        try:
            yield
        finally:
            dt = time.perf_counter() - t0
            self.totals[name] = self.totals.get(name, 0.0) + dt
            self.calls[name] = self.calls.get(name, 0) + 1

    def elapsed(self) -> float:
        return time.perf_counter() - self._t0

    def summary(self) -> str:
        total = self.elapsed()
        width = max([len(n) for n in self.totals] + [len("Section")])
        lines = [
            f"{'Section':<{width}}  {'calls':>6}  {'wall [s]':>10}  {'% total':>7}",
            "-" * (width + 30),
        ]
        for name, t in sorted(self.totals.items(), key=lambda kv: -kv[1]):
            share = 100.0 * t / total if total > 0.0 else 0.0
            lines.append(f"{name:<{width}}  {self.calls[name]:>6d}  {t:>10.3f}  {share:>6.1f}%")
        lines.append(f"{'Total wallclock':<{width}}  {'':>6}  {total:>10.3f}")
        return "\n".join(lines)
