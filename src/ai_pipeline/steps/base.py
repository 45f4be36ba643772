"""Step contract shared by built-in and script-backed steps.

A step is invoked with a :class:`StepContext` (workspace, branch, iteration,
feature, debug flag plus its own output directory) and returns a
:class:`StepOutcome`. Steps write only inside ``ctx.output_dir``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, ClassVar

from ai_pipeline import git_tools
from ai_pipeline.errors import ConfigError
from ai_pipeline.file_io import atomic_write_text, write_json

if TYPE_CHECKING:
    from ai_pipeline.steps.checkers import Checker

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127

CHANGED_FILES_NAME = "changed_files.txt"
SUMMARY_NAME = "summary.txt"
STATUS_NAME = "status.json"
OUTPUT_LOG_NAME = "output.log"

# Extension -> language, shared by the per-language steps.
LANGUAGES: dict[str, str] = {
    "js": "JavaScript/TypeScript",
    "jsx": "JavaScript/TypeScript",
    "ts": "JavaScript/TypeScript",
    "tsx": "JavaScript/TypeScript",
    "py": "Python",
    "rb": "Ruby",
    "java": "Java",
    "php": "PHP",
    "go": "Go",
    "sh": "Shell",
}


def detect_language(path: str) -> str:
    """Return the language name for *path* based on its extension."""
    suffix = PurePosixPath(path).suffix.lstrip(".").lower()
    return LANGUAGES.get(suffix, "Unknown")


def group_by_file(findings: Sequence[Finding]) -> dict[str, list[Finding]]:
    grouped: dict[str, list[Finding]] = defaultdict(list)
    for finding in findings:
        grouped[finding.file].append(finding)
    return grouped


def step_dir(output_root: Path, iteration: int, step_id: str) -> Path:
    """Return ``<output_root>/iteration-<n>/step-<id>``."""
    return output_root / f"iteration-{iteration}" / f"step-{step_id}"


def resolve_threshold(value: int | Sequence[int], iteration: int) -> int:
    """Resolve a threshold that is either a constant or an iteration schedule.

    A schedule ``[10, 5, 3]`` yields 10 for iteration 0, 5 for iteration 1 and
    3 for every later iteration.
    """
    if isinstance(value, bool):
        raise ConfigError(f"threshold must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    schedule = list(value)
    if not schedule:
        raise ConfigError("threshold schedule must not be empty")
    return int(schedule[min(max(iteration, 0), len(schedule) - 1)])


@dataclass(frozen=True)
class Finding:
    """A single issue reported by a :class:`Checker`."""

    file: str = ""
    line: int = 0
    column: int = 0
    category: str = ""
    severity: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class StepContext:
    """Inputs for one step invocation."""

    workspace: Path
    branch: str
    iteration: int
    feature: str
    step_id: str
    output_dir: Path
    checker: Checker
    base_branch: str = "main"
    debug: bool = False
    thresholds: Mapping[str, int | Sequence[int]] = field(default_factory=dict)

    def threshold(self, name: str) -> int:
        """Return threshold *name* for the current iteration."""
        try:
            value = self.thresholds[name]
        except KeyError:
            raise ConfigError(f"step {self.step_id!r} has no threshold named {name!r}") from None
        return resolve_threshold(value, self.iteration)

    def findings(self, files: Sequence[str]) -> list[Finding]:
        """Ask the checker for findings; an empty change set has none."""
        if not files:
            return []
        return list(self.checker.check(self.step_id, self, files))

    @property
    def iteration_dir(self) -> Path:
        return self.output_dir.parent


@dataclass
class StepOutcome:
    """What a step reports back to the runner."""

    exit_code: int = EXIT_OK
    warnings: int = 0
    changed_files: list[str] = field(default_factory=list)
    timed_out: bool = False
    message: str = ""

    @property
    def passed(self) -> bool:
        return self.exit_code == EXIT_OK


class Step(ABC):
    """A uniformly invokable validation unit."""

    step_id: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    default_thresholds: ClassVar[dict[str, int | list[int]]] = {}

    @abstractmethod
    def execute(self, ctx: StepContext) -> StepOutcome:
        """Run the step and return its outcome."""


class BuiltinStep(Step):
    """Base for in-process steps.

    Handles the shared part of the contract (output directory, changed-file
    discovery, ``summary.txt``) and delegates the check itself to
    :meth:`check`.
    """

    artifact_name: ClassVar[str] = ""

    def execute(self, ctx: StepContext) -> StepOutcome:
        ctx.output_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Running %s for %s (iteration %d)", self.display_name, ctx.feature, ctx.iteration
        )
        files = self.collect_changed_files(ctx)
        outcome = self.check(ctx, files)
        outcome.changed_files = files
        return outcome

    def collect_changed_files(self, ctx: StepContext) -> list[str]:
        """Return files changed on the target branch and record them in ``changed_files.txt``.

        A branch that does not exist yet has no changes. Neither does a branch
        whose base is missing, which usually means a misconfigured
        ``base_branch``.
        """
        target = ctx.output_dir / CHANGED_FILES_NAME
        if not git_tools.branch_exists(ctx.workspace, ctx.branch):
            logger.info("Branch %s does not exist yet; treating change set as empty", ctx.branch)
            atomic_write_text(target, "")
            return []
        if not git_tools.branch_exists(ctx.workspace, ctx.base_branch):
            logger.warning(
                "Base branch %s does not exist; treating change set of %s as empty",
                ctx.base_branch,
                ctx.branch,
            )
            atomic_write_text(target, "")
            return []
        files = git_tools.changed_files(ctx.workspace, ctx.base_branch, ctx.branch)
        logger.info("Found %d changed files on %s", len(files), ctx.branch)
        atomic_write_text(target, "".join(f"{name}\n" for name in files))
        return files

    @abstractmethod
    def check(self, ctx: StepContext, files: list[str]) -> StepOutcome:
        """Inspect *files* and write the step's artifacts."""

    # -- artifact helpers --

    def write_artifact(self, ctx: StepContext, payload: Any, name: str | None = None) -> Path:
        path = ctx.output_dir / (name or self.artifact_name)
        write_json(path, payload)
        return path

    def write_summary(self, ctx: StepContext, lines: Sequence[str]) -> Path:
        title = f"{self.display_name} Summary for {ctx.feature} (Iteration {ctx.iteration})"
        body = "\n".join([title, "=" * len(title), *lines])
        path = ctx.output_dir / SUMMARY_NAME
        atomic_write_text(path, body + "\n")
        return path
