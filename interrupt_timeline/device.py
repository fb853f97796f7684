from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class DeviceTimeSplit(ABC):
    """
    Splits a device's total service time into three phases.
    Every implementation must satisfy t1 + t2 + t3 == total.
    """

    @abstractmethod
    def split(self, total: int) -> tuple[int, int, int]: ...


def _draw(rng: random.Random, remain: int) -> int:
    return rng.randrange(remain) if remain > 0 else 0


@dataclass
class BiasedRandomSplit(DeviceTimeSplit):
    """
    First phase is a draw below the budget minus 2, second a draw below the
    reduced budget minus 1, third takes whatever is left.

    Phases can come out negative when the budget is small (clock moves back).
    """

    rng: random.Random = field(default_factory=random.Random)

    def split(self, total: int) -> tuple[int, int, int]:
        remain = int(total)
        t1 = _draw(self.rng, remain) - 2
        remain -= t1
        t2 = _draw(self.rng, remain) - 1
        remain -= t2
        return t1, t2, remain


@dataclass
class ClampedRandomSplit(DeviceTimeSplit):
    """Same three phases, but every phase is >= 0 for a non-negative total."""

    rng: random.Random = field(default_factory=random.Random)

    def split(self, total: int) -> tuple[int, int, int]:
        remain = max(0, int(total))
        t1 = self.rng.randint(0, remain)
        t2 = self.rng.randint(0, remain - t1)
        return t1, t2, int(total) - t1 - t2


SPLIT_MODES = ("biased", "clamped")


def make_splitter(mode: str = "biased", seed: int | None = None) -> DeviceTimeSplit:
    rng = random.Random(seed)
    if mode == "biased":
        return BiasedRandomSplit(rng)
    if mode == "clamped":
        return ClampedRandomSplit(rng)
    raise ValueError(f"device split mode must be one of: {', '.join(SPLIT_MODES)} (got {mode!r})")
