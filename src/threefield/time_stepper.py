"""Fixed-increment pseudo-time."""

from __future__ import annotations


class Time:
    def __init__(self, end_time: float, delta_t: float):
        self.time_end = float(end_time)
        self.delta_t = float(delta_t)
        self.time_current = 0.0
        self.timestep = 0

    def current(self) -> float:
        return self.time_current

    def end(self) -> float:
        return self.time_end

    def get_delta_t(self) -> float:
        return self.delta_t

    def get_timestep(self) -> int:
        return self.timestep

    def ramp(self) -> float:
        """Load factor ``current / end``."""
        return self.time_current / self.time_end

    def increment(self) -> None:
        self.time_current += self.delta_t
        self.timestep += 1

    def within_end(self) -> bool:
        """True while ``current <= end`` up to round-off of the accumulated increments."""
        return self.time_current <= self.time_end + 1e-12 * self.delta_t * max(1, self.timestep)
