"""Tests for StepRunner: status recording, timeouts, missing steps and log capture."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from ai_pipeline.schemas import StepDefinition
from ai_pipeline.steps import Finding, StaticChecker, StepOutcome, StepRunner
from ai_pipeline.steps.base import OUTPUT_LOG_NAME, STATUS_NAME, Step, step_dir
from ai_pipeline.steps.runner import CAPTURED_LOGGER_NAME, capture_step_log


def _runner(workspace: Path, **kwargs) -> StepRunner:
    return StepRunner(
        workspace,
        workspace / "out",
        branch="ai-generated-code",
        feature="login",
        **kwargs,
    )


def _ticks(*values: float):
    it = iter(values)
    return lambda: next(it)


class _Exploding(Step):
    step_id = "boom"

    def execute(self, ctx):
        raise RuntimeError("kaboom")


class _Quiet(Step):
    step_id = "quiet"

    def execute(self, ctx):
        return StepOutcome(warnings=2)


@pytest.mark.unit
class TestStepRunner:
    def test_builtin_result_and_status_file(self, tmp_path: Path):
        result = _runner(tmp_path, clock=_ticks(10.0, 12.5)).run(
            StepDefinition(id="context_validation", name="Context Validation"), 0
        )

        assert result.exit_code == 0
        assert result.duration_seconds == 2.5
        status_path = step_dir(tmp_path / "out", 0, "context_validation") / STATUS_NAME
        status = json.loads(status_path.read_text(encoding="utf-8"))
        assert status["exit_code"] == 0
        assert status["step_name"] == "Context Validation"

    def test_builtin_exceeding_timeout_is_124(self, tmp_path: Path):
        result = _runner(tmp_path, clock=_ticks(0.0, 61.0)).run(
            StepDefinition(id="context_validation", timeout_seconds=60), 0
        )

        assert result.exit_code == 124
        assert result.timed_out is True
        assert "timeout" in result.error

    def test_missing_optional_step_is_skipped(self, tmp_path: Path):
        result = _runner(tmp_path).run(StepDefinition(id="lint", script="scripts/lint.sh"), 0)

        assert result.exit_code == 127
        assert result.skipped is True
        assert (step_dir(tmp_path / "out", 0, "lint") / STATUS_NAME).is_file()

    def test_missing_required_step_is_a_failure(self, tmp_path: Path):
        result = _runner(tmp_path).run(
            StepDefinition(id="lint", script="scripts/lint.sh", required=True), 0
        )

        assert result.exit_code == 127
        assert result.skipped is False
        assert result.passed is False

    def test_unknown_builtin_is_not_found(self, tmp_path: Path):
        result = _runner(tmp_path).run(StepDefinition(id="teleport", required=True), 0)

        assert result.exit_code == 127
        assert "no built-in step" in result.error

    def test_unexpected_exception_becomes_failure(self, tmp_path: Path):
        with patch("ai_pipeline.steps.runner.resolve_step", return_value=_Exploding()):
            result = _runner(tmp_path).run(StepDefinition(id="boom"), 1)

        assert result.exit_code == 1
        assert result.error == "RuntimeError: kaboom"
        log = (step_dir(tmp_path / "out", 1, "boom") / OUTPUT_LOG_NAME).read_text(encoding="utf-8")
        assert "kaboom" in log

    def test_warnings_are_carried_into_the_result(self, tmp_path: Path):
        with patch("ai_pipeline.steps.runner.resolve_step", return_value=_Quiet()):
            result = _runner(tmp_path).run(StepDefinition(id="quiet"), 0)

        assert result.passed
        assert result.warnings == 2

    def test_output_log_captures_step_logging(self, tmp_path: Path):
        _runner(tmp_path).run(StepDefinition(id="context_validation"), 0)

        log = (step_dir(tmp_path / "out", 0, "context_validation") / OUTPUT_LOG_NAME).read_text(
            encoding="utf-8"
        )
        assert "Running Context Validation for login (iteration 0)" in log
        assert "Context validation completed" in log


@pytest.mark.integration
def test_configured_thresholds_override_defaults(make_branch):
    repo = make_branch("ai-generated-code", {"src/app.py": "x = 1\n"})
    checker = StaticChecker({"syntax_check": [Finding(file="src/app.py", message="bad")]})
    runner = _runner(repo, checker=checker)

    lenient = runner.run(StepDefinition(id="syntax_check"), 0)
    strict = runner.run(StepDefinition(id="syntax_check", thresholds={"max_errors": 0}), 1)

    assert lenient.passed and lenient.warnings == 1
    assert strict.exit_code == 1


@pytest.mark.integration
def test_debug_output_log_includes_git_commands(make_branch):
    repo = make_branch("ai-generated-code", {"src/app.py": "x = 1\n"})

    _runner(repo, debug=True).run(StepDefinition(id="syntax_check"), 0)

    log = (step_dir(repo / "out", 0, "syntax_check") / OUTPUT_LOG_NAME).read_text(encoding="utf-8")
    assert "ai_pipeline.git_tools" in log
    assert "git diff --name-only main..ai-generated-code" in log


@pytest.mark.unit
def test_capture_step_log_restores_logger(tmp_path: Path):
    step_logger = logging.getLogger(CAPTURED_LOGGER_NAME)
    handlers_before = list(step_logger.handlers)
    level_before = step_logger.level

    with capture_step_log(tmp_path / "output.log", debug=True):
        logging.getLogger(f"{CAPTURED_LOGGER_NAME}.custom").debug("detail %d", 7)

    assert step_logger.handlers == handlers_before
    assert step_logger.level == level_before
    assert "detail 7" in (tmp_path / "output.log").read_text(encoding="utf-8")
