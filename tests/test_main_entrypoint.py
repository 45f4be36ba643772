"""Tests for CLI entrypoint dispatch and command handlers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

import ai_pipeline.__main__ as main_module
from ai_pipeline.config import DEFAULT_CONFIG
from ai_pipeline.schemas import PipelineRun, RunState


def test_main_entrypoint_source_is_ascii_safe() -> None:
    source_text = Path(main_module.__file__).read_text(encoding="utf-8")
    assert source_text.isascii()


def test_main_dispatches_subcommands(monkeypatch, tmp_path: Path) -> None:
    calls: dict[str, object] = {}

    def fake_pipeline(args):
        calls["pipeline_branch"] = args.branch
        return 10

    def fake_step(args):
        calls["step"] = (args.step_id, args.iteration)
        return 11

    def fake_promote(args):
        calls["promote"] = (args.feature, args.stage, args.no_push)
        return 12

    def fake_summary(args):
        calls["summary"] = args.workspace
        return 13

    def fake_init(args):
        calls["init_force"] = args.force
        return 14

    monkeypatch.setattr(main_module, "_run_pipeline", fake_pipeline)
    monkeypatch.setattr(main_module, "_run_step", fake_step)
    monkeypatch.setattr(main_module, "_run_promote", fake_promote)
    monkeypatch.setattr(main_module, "_run_summary", fake_summary)
    monkeypatch.setattr(main_module, "_run_init_config", fake_init)

    assert main_module.main(["--branch", "ai-gen/login"]) == 10
    assert main_module.main(["step", "syntax_check", "--iteration", "2"]) == 11
    assert main_module.main(["promote", "--feature", "login", "--stage", "ai-review", "--no-push"]) == 12
    assert main_module.main(["summary", "--workspace", str(tmp_path)]) == 13
    assert main_module.main(["init-config", "--force"]) == 14

    assert calls == {
        "pipeline_branch": "ai-gen/login",
        "step": ("syntax_check", 2),
        "promote": ("login", "ai-review", True),
        "summary": str(tmp_path),
        "init_force": True,
    }


def test_defaults_for_pipeline_run() -> None:
    args = main_module._build_parser().parse_args([])
    assert args.command is None
    assert args.branch == "ai-generated-code"
    assert args.feature == "feature"
    assert args.max_iterations is None


def test_options_before_subcommand_are_kept() -> None:
    parser = main_module._build_parser()

    step = parser.parse_args(
        ["--workspace", "/repo", "--branch", "x", "--debug", "step", "syntax_check"]
    )
    assert (step.workspace, step.branch, step.debug) == ("/repo", "x", True)
    assert step.feature == "feature"

    summary = parser.parse_args(["--workspace", "/repo", "--config", "c.yaml", "summary"])
    assert (summary.workspace, summary.config) == ("/repo", "c.yaml")

    init = parser.parse_args(["--workspace", "/repo", "init-config"])
    assert init.workspace == "/repo"
    assert init.config == ""


def test_options_after_subcommand_override_top_level() -> None:
    args = main_module._build_parser().parse_args(
        ["--branch", "x", "step", "syntax_check", "--branch", "y", "--workspace", "/other"]
    )
    assert args.branch == "y"
    assert args.workspace == "/other"


def test_promote_rejects_unknown_stage(capsys) -> None:
    with pytest.raises(SystemExit):
        main_module.main(["promote", "--feature", "login", "--stage", "ai-staging"])
    assert "invalid choice" in capsys.readouterr().err


@pytest.mark.integration
class TestCommands:
    def test_missing_config_fails_before_running(self, tmp_path: Path, capsys, monkeypatch):
        monkeypatch.delenv("AI_PIPELINE_CONFIG", raising=False)
        rc = main_module.main(["--workspace", str(tmp_path)])
        captured = capsys.readouterr()
        assert rc == 1
        assert "Configuration file not found" in captured.err
        assert not (tmp_path / ".ai-pipeline-results.json").exists()

    def test_init_config_then_run_then_summary(self, tmp_path: Path, capsys, monkeypatch):
        monkeypatch.delenv("AI_PIPELINE_CONFIG", raising=False)
        assert main_module.main(["init-config", "--workspace", str(tmp_path)]) == 0
        written = json.loads((tmp_path / "config" / "ai-pipeline.json").read_text(encoding="utf-8"))
        assert written == DEFAULT_CONFIG
        assert main_module.main(["init-config", "--workspace", str(tmp_path)]) == 1

        rc = main_module.main(
            ["--workspace", str(tmp_path), "--feature", "login", "--max-iterations", "2"]
        )
        assert rc == 0
        run = PipelineRun.load(tmp_path / ".ai-pipeline-results.json")
        assert run.state == RunState.COMPLETED
        assert run.feature == "login"
        assert run.max_iterations == 2

        capsys.readouterr()
        assert main_module.main(["summary", "--workspace", str(tmp_path)]) == 0
        out = capsys.readouterr().out
        assert "Pipeline Summary" in out
        assert "login" in out

    def test_summary_without_record(self, tmp_path: Path, capsys):
        assert main_module.main(["summary", "--workspace", str(tmp_path)]) == 1
        assert "No run record found" in capsys.readouterr().err

    def test_step_command_returns_step_exit_code(self, tmp_path: Path, capsys, monkeypatch):
        monkeypatch.delenv("AI_PIPELINE_CONFIG", raising=False)
        main_module.main(["init-config", "--workspace", str(tmp_path)])

        rc = main_module.main(
            ["step", "security_scan", "--workspace", str(tmp_path), "--iteration", "1"]
        )
        assert rc == 0
        assert "Security Scan passed" in capsys.readouterr().out
        status = tmp_path / ".ai-pipeline-iterations" / "iteration-1" / "step-security_scan"
        assert (status / "status.json").is_file()

        assert main_module.main(["step", "teleport", "--workspace", str(tmp_path)]) == 127

    def test_promote_command(self, git_repo: Path, capsys):
        rc = main_module.main(
            ["promote", "--repo", str(git_repo), "--feature", "login", "--stage", "ai-gen", "--no-push"]
        )
        assert rc == 0
        assert "Created ai-gen/login from main" in capsys.readouterr().out

        rc = main_module.main(
            ["promote", "--repo", str(git_repo), "--feature", "login", "--stage", "ai-prod", "--no-push"]
        )
        assert rc == 1
        assert "ai-review/login does not exist" in capsys.readouterr().err
