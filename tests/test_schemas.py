"""Unit tests for schemas module."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from ai_pipeline.schemas import (
    IterationResult,
    IterationStatus,
    PipelineConfig,
    PipelineRun,
    RunState,
    StepDefinition,
    StepExecutionResult,
    StopReason,
)

pytestmark = pytest.mark.unit


def _steps(*specs: tuple[str, bool]) -> list[dict]:
    return [{"id": step_id, "name": step_id.title(), "required": req} for step_id, req in specs]


def _ok(step_id: str, warnings: int = 0) -> StepExecutionResult:
    return StepExecutionResult(step_id=step_id, step_name=step_id, exit_code=0, warnings=warnings)


class TestStepDefinition:
    def test_defaults(self):
        step = StepDefinition(id="syntax_check")
        assert step.script == ""
        assert step.required is False
        assert step.timeout_seconds == 300
        assert step.thresholds == {}
        assert step.display_name == "syntax_check"

    def test_display_name_prefers_name(self):
        assert StepDefinition(id="x", name="Syntax Check").display_name == "Syntax Check"

    def test_id_is_stripped_and_must_not_be_empty(self):
        assert StepDefinition(id="  lint ").id == "lint"
        with pytest.raises(ValidationError):
            StepDefinition(id="   ")

    @pytest.mark.parametrize("timeout", [0, -5])
    def test_timeout_must_be_positive(self, timeout):
        with pytest.raises(ValidationError):
            StepDefinition(id="x", timeout_seconds=timeout)

    def test_thresholds_accept_constants_and_schedules(self):
        step = StepDefinition(id="x", thresholds={"max_errors": [10, 5, 2], "max_high": 3})
        assert step.thresholds["max_errors"] == [10, 5, 2]
        assert step.thresholds["max_high"] == 3

    def test_is_frozen(self):
        step = StepDefinition(id="x")
        with pytest.raises(ValidationError):
            step.required = True


class TestPipelineConfig:
    def test_valid_config(self):
        cfg = PipelineConfig(
            min_steps=1,
            max_steps=2,
            steps=_steps(("a", False), ("b", True), ("c", False)),
        )
        assert cfg.max_iterations == 5
        assert cfg.base_branch == "main"
        assert [s.id for s in cfg.required_steps()] == ["b"]
        assert [s.id for s in cfg.optional_steps()] == ["a", "c"]
        assert cfg.step("c").id == "c"

    def test_step_lookup_raises_key_error(self):
        cfg = PipelineConfig(min_steps=1, max_steps=1, steps=_steps(("a", True)))
        with pytest.raises(KeyError):
            cfg.step("missing")

    @pytest.mark.parametrize(
        ("min_steps", "max_steps"),
        [(0, 1), (2, 1), (1, 4), (-1, 2)],
    )
    def test_bounds_are_enforced(self, min_steps, max_steps):
        with pytest.raises(ValidationError):
            PipelineConfig(
                min_steps=min_steps,
                max_steps=max_steps,
                steps=_steps(("a", True), ("b", False), ("c", False)),
            )

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValidationError, match="duplicate step id"):
            PipelineConfig(min_steps=1, max_steps=2, steps=_steps(("a", True), ("a", False)))

    def test_required_steps_must_fit_in_max_steps(self):
        with pytest.raises(ValidationError, match="required steps"):
            PipelineConfig(
                min_steps=1,
                max_steps=1,
                steps=_steps(("a", True), ("b", True)),
            )

    def test_max_iterations_must_be_positive(self):
        with pytest.raises(ValidationError):
            PipelineConfig(min_steps=1, max_steps=1, max_iterations=0, steps=_steps(("a", True)))


class TestIterationResult:
    def test_failed_requires_failed_step(self):
        with pytest.raises(ValidationError):
            IterationResult(iteration=0, steps_run=1, status=IterationStatus.FAILED)

    def test_success_forbids_failed_step(self):
        with pytest.raises(ValidationError):
            IterationResult(
                iteration=0, steps_run=1, status=IterationStatus.SUCCESS, failed_step="a"
            )

    def test_total_warnings(self):
        result = IterationResult(
            iteration=0,
            steps_run=2,
            steps=[_ok("a", 2), _ok("b", 3)],
            status=IterationStatus.SUCCESS,
        )
        assert result.total_warnings == 5

    def test_serialized_keys(self):
        result = IterationResult(
            iteration=1,
            steps_run=2,
            steps=[_ok("a")],
            status=IterationStatus.FAILED,
            failed_step="b",
        )
        data = json.loads(result.model_dump_json())
        assert {"iteration", "timestamp", "steps_run", "steps", "status", "failed_step"} <= set(data)
        assert data["status"] == "failed"
        assert data["steps"][0]["exit_code"] == 0


class TestStepExecutionResult:
    def test_passed_tracks_exit_code(self):
        assert _ok("a").passed is True
        failed = StepExecutionResult(step_id="a", step_name="A", exit_code=124, timed_out=True)
        assert failed.passed is False


class TestPipelineRun:
    def test_defaults(self):
        run = PipelineRun()
        assert run.state == RunState.IDLE
        assert run.iterations == []
        assert run.last_iteration is None
        assert run.stop_reason is None

    def test_append_requires_consecutive_iterations(self):
        run = PipelineRun()
        run.append(IterationResult(iteration=0, steps_run=1, status=IterationStatus.SUCCESS))
        with pytest.raises(ValueError, match="out of order"):
            run.append(IterationResult(iteration=2, steps_run=1, status=IterationStatus.SUCCESS))
        run.append(IterationResult(iteration=1, steps_run=1, status=IterationStatus.SUCCESS))
        assert [it.iteration for it in run.iterations] == [0, 1]
        assert run.last_iteration.iteration == 1

    def test_save_and_load(self, tmp_path: Path):
        run = PipelineRun(branch="ai-generated-code", feature="login", max_iterations=3)
        run.append(
            IterationResult(
                iteration=0,
                steps_run=2,
                steps=[_ok("syntax_check", 1)],
                status=IterationStatus.SUCCESS,
            )
        )
        run.state = RunState.COMPLETED
        run.stop_reason = StopReason.CLEAN_ITERATION
        path = tmp_path / "results.json"
        run.save(path)

        loaded = PipelineRun.load(path)
        assert loaded is not None
        assert loaded.feature == "login"
        assert loaded.state == RunState.COMPLETED
        assert loaded.stop_reason == StopReason.CLEAN_ITERATION
        assert loaded.iterations[0].steps[0].warnings == 1

    def test_load_missing_returns_none(self, tmp_path: Path):
        assert PipelineRun.load(tmp_path / "nope.json") is None

    def test_load_empty_returns_none(self, tmp_path: Path):
        path = tmp_path / "results.json"
        path.write_text("  \n", encoding="utf-8")
        assert PipelineRun.load(path) is None

    def test_load_invalid_returns_none(self, tmp_path: Path):
        path = tmp_path / "results.json"
        path.write_text('{"iterations": "nope"}', encoding="utf-8")
        assert PipelineRun.load(path) is None
