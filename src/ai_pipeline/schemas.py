"""Pydantic models for pipeline configuration and the persisted run record."""

from __future__ import annotations

import datetime as dt
import logging
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ai_pipeline.file_io import atomic_write_text

logger = logging.getLogger(__name__)

DEFAULT_BASE_BRANCH = "main"
DEFAULT_OUTPUT_DIR = ".ai-pipeline-iterations"
DEFAULT_RESULTS_FILE = ".ai-pipeline-results.json"
DEFAULT_MAX_ITERATIONS = 5


def utc_timestamp() -> str:
    """Return the current UTC time as ``YYYY-MM-DDTHH:MM:SSZ``."""
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

ThresholdValue = int | list[int]


class StepDefinition(BaseModel):
    """One configured pipeline step."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    script: str = ""  # empty -> built-in step registered under ``id``
    required: bool = False
    timeout_seconds: int = 300
    thresholds: dict[str, ThresholdValue] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("step id must not be empty")
        return value

    @field_validator("timeout_seconds")
    @classmethod
    def _validate_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("timeout_seconds must be a positive integer")
        return value

    @property
    def display_name(self) -> str:
        return self.name or self.id


class PipelineConfig(BaseModel):
    """Declarative pipeline description: available steps and global bounds."""

    model_config = ConfigDict(frozen=True)

    min_steps: int
    max_steps: int
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    base_branch: str = DEFAULT_BASE_BRANCH
    output_dir: str = DEFAULT_OUTPUT_DIR
    results_file: str = DEFAULT_RESULTS_FILE
    steps: list[StepDefinition]

    @model_validator(mode="after")
    def _validate_bounds(self) -> PipelineConfig:
        total = len(self.steps)
        if not 0 < self.min_steps <= self.max_steps <= total:
            raise ValueError(
                "expected 0 < min_steps <= max_steps <= number of steps, got "
                f"min_steps={self.min_steps}, max_steps={self.max_steps}, steps={total}"
            )
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id: {step.id!r}")
            seen.add(step.id)
        required = len(self.required_steps())
        if required > self.max_steps:
            raise ValueError(
                f"{required} required steps cannot fit in max_steps={self.max_steps}"
            )
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        return self

    def required_steps(self) -> list[StepDefinition]:
        """Required steps in configuration order."""
        return [s for s in self.steps if s.required]

    def optional_steps(self) -> list[StepDefinition]:
        """Optional steps in configuration order."""
        return [s for s in self.steps if not s.required]

    def step(self, step_id: str) -> StepDefinition:
        for candidate in self.steps:
            if candidate.id == step_id:
                return candidate
        raise KeyError(step_id)


# ---------------------------------------------------------------------------
# Run record
# ---------------------------------------------------------------------------

class IterationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class RunState(str, Enum):
    """Orchestrator lifecycle states."""

    IDLE = "idle"
    RUNNING_ITERATION = "running_iteration"
    ITERATION_SUCCEEDED = "iteration_succeeded"
    ITERATION_FAILED = "iteration_failed"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StopReason(str, Enum):
    """Reason a pipeline run stopped."""

    MAX_ITERATIONS = "max_iterations"
    CLEAN_ITERATION = "clean_iteration"
    REQUIRED_STEP_FAILED = "required_step_failed"


class StepExecutionResult(BaseModel):
    """Outcome of one step invocation, written to ``status.json``."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    step_name: str
    exit_code: int
    duration_seconds: float = 0.0
    timestamp: str = Field(default_factory=utc_timestamp)
    warnings: int = 0
    skipped: bool = False
    timed_out: bool = False
    error: str = ""

    @property
    def passed(self) -> bool:
        return self.exit_code == 0


class IterationResult(BaseModel):
    """Record of one completed iteration."""

    model_config = ConfigDict(frozen=True)

    iteration: int
    timestamp: str = Field(default_factory=utc_timestamp)
    steps_run: int
    steps: list[StepExecutionResult] = Field(default_factory=list)
    status: IterationStatus
    failed_step: str | None = None

    @model_validator(mode="after")
    def _validate_failed_step(self) -> IterationResult:
        if self.status == IterationStatus.FAILED and not self.failed_step:
            raise ValueError("failed iterations must name the failing step")
        if self.status == IterationStatus.SUCCESS and self.failed_step is not None:
            raise ValueError("successful iterations cannot name a failing step")
        return self

    @property
    def total_warnings(self) -> int:
        return sum(step.warnings for step in self.steps)


class PipelineRun(BaseModel):
    """Append-only history of iterations for one orchestrator invocation."""

    branch: str = ""
    feature: str = ""
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    started_at: str = Field(default_factory=utc_timestamp)
    finished_at: str | None = None
    state: RunState = RunState.IDLE
    stop_reason: StopReason | None = None
    iterations: list[IterationResult] = Field(default_factory=list)

    def append(self, iteration: IterationResult) -> None:
        """Append a finished iteration; iteration numbers must increase by one."""
        expected = len(self.iterations)
        if iteration.iteration != expected:
            raise ValueError(
                f"iteration {iteration.iteration} appended out of order (expected {expected})"
            )
        self.iterations.append(iteration)

    @property
    def last_iteration(self) -> IterationResult | None:
        return self.iterations[-1] if self.iterations else None

    def save(self, path: str | Path) -> None:
        """Checkpoint the record to *path*."""
        atomic_write_text(Path(path), self.model_dump_json(indent=2) + "\n")

    @classmethod
    def load(cls, path: str | Path) -> PipelineRun | None:
        """Load a persisted record, or return ``None`` when absent or unreadable."""
        path = Path(path)
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
            if not raw.strip():
                logger.warning("Run record is empty; ignoring: %s", path)
                return None
            return cls.model_validate_json(raw)
        except (OSError, ValidationError) as exc:
            logger.warning("Could not load run record %s: %s", path, exc)
            return None
