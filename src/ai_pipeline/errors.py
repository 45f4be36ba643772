"""Exception hierarchy shared across the pipeline."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for pipeline failures."""


class ConfigError(PipelineError):
    """Raised when the pipeline configuration is missing or invalid."""


class StepNotFoundError(PipelineError):
    """Raised when a step has neither a script on disk nor a built-in implementation."""

    def __init__(self, step_id: str, detail: str) -> None:
        super().__init__(f"Step {step_id!r} not found: {detail}")
        self.step_id = step_id
        self.detail = detail


class PromotionError(PipelineError):
    """Raised when a branch promotion cannot be completed."""
