"""Invoke a configured step and persist its ``status.json``."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from ai_pipeline.errors import StepNotFoundError
from ai_pipeline.file_io import atomic_write_text
from ai_pipeline.schemas import StepDefinition, StepExecutionResult
from ai_pipeline.steps.base import (
    EXIT_FAILED,
    EXIT_NOT_FOUND,
    EXIT_TIMEOUT,
    OUTPUT_LOG_NAME,
    STATUS_NAME,
    Step,
    StepContext,
    StepOutcome,
    step_dir,
)
from ai_pipeline.steps.checkers import Checker, NullChecker
from ai_pipeline.steps.registry import resolve_step

logger = logging.getLogger(__name__)

CAPTURED_LOGGER_NAME = "ai_pipeline"
LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"


@contextmanager
def capture_step_log(path: Path, *, debug: bool = False) -> Iterator[None]:
    """Copy records from the package loggers into *path* while the block runs.

    Covers the step modules and the helpers they call, such as ``git_tools``.
    """
    step_logger = logging.getLogger(CAPTURED_LOGGER_NAME)
    handler = logging.FileHandler(path, encoding="utf-8", delay=True)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    handler.setLevel(logging.DEBUG if debug else logging.INFO)
    previous_level = step_logger.level
    step_logger.addHandler(handler)
    if step_logger.getEffectiveLevel() > handler.level:
        step_logger.setLevel(handler.level)
    try:
        yield
    finally:
        step_logger.removeHandler(handler)
        handler.close()
        step_logger.setLevel(previous_level)


class StepRunner:
    """Runs steps for one branch/feature and records each result.

    Parameters
    ----------
    workspace:
        Repository root the steps inspect.
    output_root:
        Directory holding ``iteration-<n>/step-<id>`` folders.
    checker:
        Source of findings handed to built-in steps (defaults to
        :class:`NullChecker`).
    clock:
        Monotonic clock used for durations and the built-in step timeout.
    """

    def __init__(
        self,
        workspace: str | Path,
        output_root: str | Path,
        *,
        branch: str,
        feature: str,
        base_branch: str = "main",
        checker: Checker | None = None,
        debug: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.workspace = Path(workspace)
        self.output_root = Path(output_root)
        self.branch = branch
        self.feature = feature
        self.base_branch = base_branch
        self.checker = checker or NullChecker()
        self.debug = debug
        self._clock = clock

    def run(self, definition: StepDefinition, iteration: int) -> StepExecutionResult:
        """Execute *definition* for *iteration*; never raises for step failures."""
        out_dir = step_dir(self.output_root, iteration, definition.id)
        out_dir.mkdir(parents=True, exist_ok=True)
        started = self._clock()

        try:
            step = resolve_step(definition, self.workspace)
        except StepNotFoundError as exc:
            if definition.required:
                logger.error("Required step unavailable: %s", exc)
            else:
                logger.warning("Skipping optional step: %s", exc)
            result = StepExecutionResult(
                step_id=definition.id,
                step_name=definition.display_name,
                exit_code=EXIT_NOT_FOUND,
                skipped=not definition.required,
                error=str(exc),
            )
            self._write_status(out_dir, result)
            return result

        ctx = StepContext(
            workspace=self.workspace,
            branch=self.branch,
            iteration=iteration,
            feature=self.feature,
            step_id=definition.id,
            output_dir=out_dir,
            checker=self.checker,
            base_branch=self.base_branch,
            debug=self.debug,
            thresholds={**step.default_thresholds, **definition.thresholds},
        )
        with capture_step_log(out_dir / OUTPUT_LOG_NAME, debug=self.debug):
            outcome = self._invoke(step, ctx)
        duration = self._clock() - started

        exit_code = outcome.exit_code
        timed_out = outcome.timed_out
        error = outcome.message
        if not timed_out and duration > definition.timeout_seconds:
            logger.error(
                "Step %s took %.1fs, exceeding its %ds timeout",
                definition.id,
                duration,
                definition.timeout_seconds,
            )
            exit_code = EXIT_TIMEOUT
            timed_out = True
            error = f"exceeded timeout of {definition.timeout_seconds}s"

        result = StepExecutionResult(
            step_id=definition.id,
            step_name=definition.display_name,
            exit_code=exit_code,
            duration_seconds=round(duration, 3),
            warnings=outcome.warnings,
            timed_out=timed_out,
            error=error,
        )
        self._write_status(out_dir, result)
        return result

    def _invoke(self, step: Step, ctx: StepContext) -> StepOutcome:
        try:
            return step.execute(ctx)
        except Exception as exc:
            logger.exception("Step %s raised an unexpected error", ctx.step_id)
            return StepOutcome(exit_code=EXIT_FAILED, message=f"{type(exc).__name__}: {exc}")

    @staticmethod
    def _write_status(out_dir: Path, result: StepExecutionResult) -> None:
        atomic_write_text(out_dir / STATUS_NAME, result.model_dump_json(indent=2) + "\n")
