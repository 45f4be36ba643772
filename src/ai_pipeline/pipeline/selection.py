"""Step selection strategies.

Each iteration runs every required step plus a sample of optional steps. How
many steps run, and which optional ones, is decided by a
:class:`StepSelector`. The default is random; pass a seed for repeatable runs.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import Protocol, TypeVar

T = TypeVar("T")


class StepSelector(Protocol):
    def steps_to_run(self, min_steps: int, max_steps: int, available: int) -> int:
        """Return how many steps the next iteration should run."""
        ...

    def sample(self, candidates: Sequence[T], count: int) -> list[T]:
        """Return *count* distinct items drawn from *candidates*."""
        ...


def clamp_step_count(count: int, min_steps: int, max_steps: int, available: int) -> int:
    """Clamp *count* into ``[min_steps, max_steps]`` and cap it at *available*."""
    return min(max(count, min_steps), max_steps, available)


class RandomStepSelector:
    """Uniform step count in ``[min_steps, max_steps]`` and uniform optional sampling."""

    def __init__(self, seed: int | None = None) -> None:
        self.seed = seed
        self._rng = random.Random(seed)

    def steps_to_run(self, min_steps: int, max_steps: int, available: int) -> int:
        return clamp_step_count(self._rng.randint(min_steps, max_steps), min_steps, max_steps, available)

    def sample(self, candidates: Sequence[T], count: int) -> list[T]:
        count = max(0, min(count, len(candidates)))
        return self._rng.sample(list(candidates), count)


class FixedStepSelector:
    """Always runs *count* steps and takes optional steps in configuration order."""

    def __init__(self, count: int) -> None:
        self.count = count

    def steps_to_run(self, min_steps: int, max_steps: int, available: int) -> int:
        return clamp_step_count(self.count, min_steps, max_steps, available)

    def sample(self, candidates: Sequence[T], count: int) -> list[T]:
        return list(candidates[: max(0, count)])
