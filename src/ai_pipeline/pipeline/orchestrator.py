"""Pipeline orchestrator.

The :class:`PipelineOrchestrator` drives iterations of step execution against a
branch. Each iteration runs every required step (in configuration order),
then a sample of optional steps, and appends an :class:`IterationResult` to
the in-memory :class:`PipelineRun`, which is checkpointed to disk after every
append. A failing required step aborts the run; otherwise the stop policy
decides whether another iteration follows.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable
from pathlib import Path

from ai_pipeline.console import NullReporter, PipelineReporter
from ai_pipeline.pipeline.selection import RandomStepSelector, StepSelector
from ai_pipeline.pipeline.stopping import default_stop_policy
from ai_pipeline.schemas import (
    IterationResult,
    IterationStatus,
    PipelineConfig,
    PipelineRun,
    RunState,
    StepDefinition,
    StepExecutionResult,
    StopReason,
    utc_timestamp,
)
from ai_pipeline.steps import Checker, StepRunner

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "ai-generated-code"
DEFAULT_FEATURE = "feature"

StopPolicy = Callable[[IterationResult, int], StopReason | None]

_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.IDLE: {RunState.RUNNING_ITERATION},
    RunState.RUNNING_ITERATION: {RunState.ITERATION_SUCCEEDED, RunState.ITERATION_FAILED},
    RunState.ITERATION_SUCCEEDED: {RunState.RUNNING_ITERATION, RunState.COMPLETED},
    RunState.ITERATION_FAILED: {RunState.ABORTED},
    RunState.COMPLETED: set(),
    RunState.ABORTED: set(),
}


class PipelineOrchestrator:
    """Runs validation iterations until a stopping condition or a required-step failure.

    Parameters
    ----------
    workspace:
        Repository root; steps diff ``config.base_branch`` against *branch* here.
    config:
        Loaded :class:`PipelineConfig`.
    max_iterations:
        Overrides ``config.max_iterations`` when given.
    selector:
        Decides step counts and optional-step sampling
        (default :class:`RandomStepSelector`).
    checker:
        Findings source for built-in steps (default: placeholder, no findings).
    reporter:
        Receives progress callbacks (default: silent).
    stop_policy:
        Callable ``(iteration_result, max_iterations) -> StopReason | None``.
    """

    def __init__(
        self,
        workspace: str | Path,
        config: PipelineConfig,
        *,
        branch: str = DEFAULT_BRANCH,
        feature: str = DEFAULT_FEATURE,
        max_iterations: int | None = None,
        selector: StepSelector | None = None,
        checker: Checker | None = None,
        reporter: PipelineReporter | None = None,
        stop_policy: StopPolicy | None = None,
        debug: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.workspace = Path(workspace).resolve()
        if not self.workspace.is_dir():
            raise FileNotFoundError(f"Workspace does not exist: {self.workspace}")
        parsed_max = config.max_iterations if max_iterations is None else int(max_iterations)
        if parsed_max < 1:
            raise ValueError("max_iterations must be >= 1")
        branch = (branch or "").strip()
        if not branch:
            raise ValueError("branch must not be empty")

        self.config = config
        self.branch = branch
        self.feature = (feature or "").strip() or DEFAULT_FEATURE
        self.max_iterations = parsed_max
        self.selector = selector or RandomStepSelector()
        self.reporter = reporter or NullReporter()
        self.stop_policy = stop_policy or default_stop_policy
        self.output_root = self.workspace / config.output_dir
        self.results_path = self.workspace / config.results_file
        self.state = RunState.IDLE
        self.runner = StepRunner(
            self.workspace,
            self.output_root,
            branch=self.branch,
            feature=self.feature,
            base_branch=config.base_branch,
            checker=checker,
            debug=debug,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def run(self) -> PipelineRun:
        """Execute the pipeline and return the final run record."""
        if self.state != RunState.IDLE:
            raise RuntimeError("an orchestrator instance can only run once")
        run = PipelineRun(
            branch=self.branch,
            feature=self.feature,
            max_iterations=self.max_iterations,
        )
        self._clear_previous_iterations()
        run.save(self.results_path)
        logger.info(
            "Starting pipeline: branch=%s, feature=%s, max_iterations=%d",
            self.branch,
            self.feature,
            self.max_iterations,
        )
        self.reporter.run_started(run, self.config)

        for iteration in range(self.max_iterations):
            self._transition(run, RunState.RUNNING_ITERATION)
            result = self.run_iteration(run, iteration)

            if result.status == IterationStatus.FAILED:
                self._transition(run, RunState.ITERATION_FAILED)
                run.stop_reason = StopReason.REQUIRED_STEP_FAILED
                logger.error(
                    "Pipeline stopped: required step %s failed in iteration %d",
                    result.failed_step,
                    iteration,
                )
                return self._finish(run, RunState.ABORTED)

            self._transition(run, RunState.ITERATION_SUCCEEDED)
            stop = self.stop_policy(result, self.max_iterations)
            if stop is not None:
                run.stop_reason = stop
                logger.info("Stopping after iteration %d: %s", iteration, stop.value)
                break
        else:
            # The default policy always stops on the last iteration; custom ones may not.
            run.stop_reason = StopReason.MAX_ITERATIONS

        return self._finish(run, RunState.COMPLETED)

    def run_iteration(self, run: PipelineRun, iteration: int) -> IterationResult:
        """Run one iteration, append its result to *run* and checkpoint it."""
        available = len(self.config.steps)
        steps_to_run = self.selector.steps_to_run(
            self.config.min_steps, self.config.max_steps, available
        )
        logger.info("──── Iteration %d: %d steps ────", iteration, steps_to_run)
        self.reporter.iteration_started(iteration, steps_to_run)

        executed: list[StepExecutionResult] = []
        required = self.config.required_steps()
        for definition in required:
            result = self._run_step(definition, iteration)
            executed.append(result)
            if not result.passed:
                return self._record(
                    run,
                    IterationResult(
                        iteration=iteration,
                        steps_run=steps_to_run,
                        steps=executed,
                        status=IterationStatus.FAILED,
                        failed_step=definition.id,
                    ),
                )

        budget = steps_to_run - len(required)
        if budget > 0:
            for definition in self.selector.sample(self.config.optional_steps(), budget):
                result = self._run_step(definition, iteration)
                executed.append(result)
                if not result.passed and not result.skipped:
                    logger.warning(
                        "Optional step %s failed (exit %d); continuing",
                        definition.id,
                        result.exit_code,
                    )

        return self._record(
            run,
            IterationResult(
                iteration=iteration,
                steps_run=steps_to_run,
                steps=executed,
                status=IterationStatus.SUCCESS,
            ),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_step(self, definition: StepDefinition, iteration: int) -> StepExecutionResult:
        self.reporter.step_started(definition)
        result = self.runner.run(definition, iteration)
        logger.info(
            "Step %s finished: exit=%d warnings=%d duration=%.2fs",
            definition.id,
            result.exit_code,
            result.warnings,
            result.duration_seconds,
        )
        self.reporter.step_finished(definition, result)
        return result

    def _record(self, run: PipelineRun, result: IterationResult) -> IterationResult:
        run.append(result)
        run.save(self.results_path)
        self.reporter.iteration_finished(result)
        return result

    def _transition(self, run: PipelineRun, new_state: RunState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"invalid state transition {self.state.value} -> {new_state.value}")
        logger.debug("State %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        run.state = new_state

    def _finish(self, run: PipelineRun, final_state: RunState) -> PipelineRun:
        self._transition(run, final_state)
        run.finished_at = utc_timestamp()
        run.save(self.results_path)
        logger.info(
            "Pipeline %s after %d iteration(s): %s",
            final_state.value,
            len(run.iterations),
            run.stop_reason.value if run.stop_reason else "-",
        )
        self.reporter.run_finished(run, self.results_path)
        return run

    def _clear_previous_iterations(self) -> None:
        """Remove ``iteration-*`` folders left by an earlier run."""
        if not self.output_root.is_dir():
            return
        for child in self.output_root.glob("iteration-*"):
            if child.is_dir():
                shutil.rmtree(child)
                logger.debug("Removed stale %s", child)
