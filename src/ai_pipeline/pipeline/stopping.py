"""Stopping-condition evaluation after each successful iteration."""

from __future__ import annotations

from ai_pipeline.schemas import IterationResult, IterationStatus, StopReason


def default_stop_policy(iteration: IterationResult, max_iterations: int) -> StopReason | None:
    """Decide whether the run stops after *iteration*.

    Stop when:
    1. The iteration budget is used up (``iteration + 1 >= max_iterations``).
    2. The iteration succeeded and no executed step reported warnings.
    """
    if iteration.iteration + 1 >= max_iterations:
        return StopReason.MAX_ITERATIONS
    if iteration.status == IterationStatus.SUCCESS and all(
        step.warnings == 0 for step in iteration.steps
    ):
        return StopReason.CLEAN_ITERATION
    return None
