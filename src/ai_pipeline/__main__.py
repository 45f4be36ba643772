"""CLI entrypoint for the AI Safe Pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from ai_pipeline.config import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATH,
    load_config,
    resolve_config_path,
    write_default_config,
)
from ai_pipeline.errors import ConfigError, PromotionError
from ai_pipeline.pipeline.orchestrator import DEFAULT_BRANCH, DEFAULT_FEATURE


def _load_dotenv() -> None:
    """Load .env from cwd, its parent, or package root so it's found regardless of cwd."""
    _package_root = Path(__file__).resolve().parent.parent.parent  # src/ai_pipeline/__main__.py
    for dir_ in (Path.cwd(), Path.cwd().parent, _package_root):
        env_file = dir_ / ".env"
        if env_file.is_file():
            load_dotenv(env_file)
            return
    load_dotenv()


def _add_step_surface(p: argparse.ArgumentParser, *, nested: bool = False) -> None:
    """Add the options shared by the pipeline run and its sub-commands.

    Sub-parsers get ``SUPPRESS`` defaults so a value given before the
    sub-command name is not reset by the sub-parser.
    """

    def default(value: object) -> object:
        return argparse.SUPPRESS if nested else value

    p.add_argument(
        "--workspace", type=str, default=default("."), help="Repository root (default: cwd)."
    )
    p.add_argument(
        "--branch",
        type=str,
        default=default(DEFAULT_BRANCH),
        help=f"Branch under validation (default: {DEFAULT_BRANCH}).",
    )
    p.add_argument(
        "--feature",
        type=str,
        default=default(DEFAULT_FEATURE),
        help=f"Feature name (default: {DEFAULT_FEATURE}).",
    )
    p.add_argument(
        "--config",
        type=str,
        default=default(""),
        help=f"Pipeline config path (default: ${CONFIG_ENV_VAR} or {DEFAULT_CONFIG_PATH}).",
    )
    p.add_argument(
        "--debug", action="store_true", default=default(False), help="Pass --debug to steps."
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the command-line parser for all supported modes."""
    p = argparse.ArgumentParser(
        prog="ai-pipeline",
        description="AI Safe Pipeline - iterative, gated validation of AI-generated branches.",
    )
    _add_step_surface(p)
    p.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations (default: from config).",
    )
    p.add_argument("--seed", type=int, default=None, help="Seed for step selection.")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable verbose (DEBUG) logging.")

    # -- Sub-commands ---------------------------------------------------------
    sub = p.add_subparsers(dest="command")

    step_p = sub.add_parser("step", help="Run a single step and exit with its code.")
    step_p.add_argument("step_id", help="Step id (configured or built-in).")
    _add_step_surface(step_p, nested=True)
    step_p.add_argument("--iteration", type=int, default=0, help="Iteration number (default 0).")

    promote_p = sub.add_parser("promote", help="Promote a feature to the next branch stage.")
    promote_p.add_argument("--feature", type=str, required=True, help="Feature name.")
    promote_p.add_argument(
        "--stage",
        type=str,
        required=True,
        choices=["ai-gen", "ai-review", "ai-prod"],
        help="Destination stage.",
    )
    promote_p.add_argument("--base", type=str, default="main", help="Base branch (default main).")
    promote_p.add_argument("--remote", type=str, default="origin", help="Remote (default origin).")
    promote_p.add_argument("--no-push", action="store_true", help="Update the local branch only.")
    promote_p.add_argument("--repo", type=str, default=".", help="Repository path (default: cwd).")

    summary_p = sub.add_parser("summary", help="Print the summary of a saved run record.")
    summary_p.add_argument(
        "--workspace", type=str, default=argparse.SUPPRESS, help="Repository root."
    )
    summary_p.add_argument(
        "--config", type=str, default=argparse.SUPPRESS, help="Pipeline config path."
    )
    summary_p.add_argument(
        "--results",
        type=str,
        default="",
        help="Run record path (default: results_file from config).",
    )

    init_p = sub.add_parser("init-config", help="Write the default pipeline configuration.")
    init_p.add_argument(
        "--workspace", type=str, default=argparse.SUPPRESS, help="Repository root."
    )
    init_p.add_argument("--config", type=str, default=argparse.SUPPRESS, help="Destination path.")
    init_p.add_argument("--force", action="store_true", help="Overwrite an existing file.")
    return p


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch to the appropriate mode."""
    _load_dotenv()
    parser = _build_parser()
    args = parser.parse_args(argv)
    # -- Logging setup (early, for all modes) --------------------------------
    level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    if args.command == "step":
        return _run_step(args)
    if args.command == "promote":
        return _run_promote(args)
    if args.command == "summary":
        return _run_summary(args)
    if args.command == "init-config":
        return _run_init_config(args)
    return _run_pipeline(args)


def _run_pipeline(args: argparse.Namespace) -> int:
    from ai_pipeline.console import ConsoleReporter
    from ai_pipeline.pipeline import PipelineOrchestrator, RandomStepSelector
    from ai_pipeline.schemas import RunState

    workspace = Path(args.workspace).resolve()
    try:
        config = load_config(resolve_config_path(workspace, args.config or None))
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        orchestrator = PipelineOrchestrator(
            workspace,
            config,
            branch=args.branch,
            feature=args.feature,
            max_iterations=args.max_iterations,
            selector=RandomStepSelector(args.seed),
            reporter=ConsoleReporter(),
            debug=args.debug,
        )
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    run = orchestrator.run()
    return 1 if run.state == RunState.ABORTED else 0


def _run_step(args: argparse.Namespace) -> int:
    from ai_pipeline.schemas import StepDefinition
    from ai_pipeline.steps import StepRunner

    workspace = Path(args.workspace).resolve()
    try:
        config = load_config(resolve_config_path(workspace, args.config or None))
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        definition = config.step(args.step_id)
    except KeyError:
        definition = StepDefinition(id=args.step_id, name=args.step_id, required=True)

    runner = StepRunner(
        workspace,
        workspace / config.output_dir,
        branch=args.branch,
        feature=args.feature,
        base_branch=config.base_branch,
        debug=args.debug,
    )
    result = runner.run(definition, args.iteration)
    state = "passed" if result.passed else "failed"
    print(f"{definition.display_name} {state} (exit {result.exit_code}, {result.warnings} warnings)")
    return result.exit_code


def _run_promote(args: argparse.Namespace) -> int:
    from ai_pipeline.promotion import promote

    try:
        result = promote(
            args.repo,
            args.feature,
            args.stage,
            base_branch=args.base,
            remote=args.remote,
            push=not args.no_push,
        )
    except PromotionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    action = "Created" if result.created else "Updated"
    print(f"{action} {result.destination} from {result.source} at {result.commit[:12]}")
    if result.pushed:
        print(f"Pushed {result.destination} to {args.remote}")
    return 0


def _run_summary(args: argparse.Namespace) -> int:
    from rich.console import Console

    from ai_pipeline.console import summary_table
    from ai_pipeline.schemas import DEFAULT_RESULTS_FILE, PipelineRun

    workspace = Path(args.workspace).resolve()
    if args.results:
        results_path = Path(args.results)
    else:
        results_file = DEFAULT_RESULTS_FILE
        config_path = resolve_config_path(workspace, args.config or None)
        if config_path.is_file():
            try:
                results_file = load_config(config_path).results_file
            except ConfigError as exc:
                print(f"Error: {exc}", file=sys.stderr)
                return 1
        results_path = workspace / results_file

    run = PipelineRun.load(results_path)
    if run is None:
        print(f"No run record found at {results_path}", file=sys.stderr)
        return 1
    console = Console()
    console.print(
        f"Branch [green]{run.branch}[/green], feature [green]{run.feature}[/green], "
        f"state [bold]{run.state.value}[/bold]"
    )
    console.print(summary_table(run))
    return 0


def _run_init_config(args: argparse.Namespace) -> int:
    workspace = Path(args.workspace).resolve()
    path = resolve_config_path(workspace, args.config or None)
    try:
        write_default_config(path, overwrite=args.force)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Wrote {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
