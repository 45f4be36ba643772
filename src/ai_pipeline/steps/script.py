"""Steps backed by an external executable.

The executable receives the step CLI surface::

    <script> --workspace=<path> --branch=<name> --iteration=<n> --feature=<name> [--debug]

Its exit code is the step result. Combined stdout/stderr is appended to the
step's ``output.log``. A script may report a warning count by writing
``{"warnings": <int>}`` to ``result.json`` in its step directory. The step
directory is passed in the ``AI_PIPELINE_STEP_DIR`` environment variable.
A script without the executable bit is run through its ``#!`` interpreter.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
from pathlib import Path

from ai_pipeline.file_io import read_json
from ai_pipeline.steps.base import (
    EXIT_NOT_FOUND,
    EXIT_TIMEOUT,
    OUTPUT_LOG_NAME,
    Step,
    StepContext,
    StepOutcome,
)

logger = logging.getLogger(__name__)

RESULT_NAME = "result.json"
STEP_DIR_ENV_VAR = "AI_PIPELINE_STEP_DIR"


def _interpreter(path: Path) -> list[str]:
    """Return the ``#!`` command line of *path*, or an empty list."""
    try:
        with path.open("rb") as handle:
            first = handle.readline(256)
    except OSError:
        return []
    if not first.startswith(b"#!"):
        return []
    return shlex.split(first[2:].decode("utf-8", errors="replace").strip())


class ScriptStep(Step):
    """Runs a configured script as a subprocess with a timeout."""

    def __init__(self, script: Path, *, timeout_seconds: int) -> None:
        self.script = script
        self.timeout_seconds = timeout_seconds

    def command(self, ctx: StepContext) -> list[str]:
        args = [
            f"--workspace={ctx.workspace}",
            f"--branch={ctx.branch}",
            f"--iteration={ctx.iteration}",
            f"--feature={ctx.feature}",
        ]
        if ctx.debug:
            args.append("--debug")
        if self.script.suffix == ".py":
            return [sys.executable, str(self.script), *args]
        if os.name != "nt" and not os.access(self.script, os.X_OK):
            # Not executable: hand it to its shebang interpreter.
            interpreter = _interpreter(self.script)
            if interpreter:
                return [*interpreter, str(self.script), *args]
        return [str(self.script), *args]

    def execute(self, ctx: StepContext) -> StepOutcome:
        ctx.output_dir.mkdir(parents=True, exist_ok=True)
        cmd = self.command(ctx)
        logger.info("Running script %s (timeout %ds)", self.script, self.timeout_seconds)
        with (ctx.output_dir / OUTPUT_LOG_NAME).open("a", encoding="utf-8") as log_handle:
            try:
                proc = subprocess.run(
                    cmd,
                    cwd=ctx.workspace,
                    env={**os.environ, STEP_DIR_ENV_VAR: str(ctx.output_dir)},
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    timeout=self.timeout_seconds,
                    check=False,
                )
            except subprocess.TimeoutExpired:
                logger.error("Script %s timed out after %ds", self.script, self.timeout_seconds)
                return StepOutcome(
                    exit_code=EXIT_TIMEOUT,
                    timed_out=True,
                    message=f"timed out after {self.timeout_seconds}s",
                )
            except OSError as exc:
                logger.error("Could not execute %s: %s", self.script, exc)
                return StepOutcome(exit_code=EXIT_NOT_FOUND, message=f"could not execute: {exc}")

        return StepOutcome(exit_code=proc.returncode, warnings=self._read_warnings(ctx))

    def _read_warnings(self, ctx: StepContext) -> int:
        payload = read_json(ctx.output_dir / RESULT_NAME)
        if not isinstance(payload, dict):
            return 0
        value = payload.get("warnings", 0)
        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning("Ignoring non-integer warnings value %r from %s", value, self.script)
            return 0
        return max(value, 0)
