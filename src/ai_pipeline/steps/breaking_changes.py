"""Breaking-change detection: categorise changed files and count API/DB breaks and test failures."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath

from ai_pipeline.steps.base import EXIT_FAILED, BuiltinStep, StepContext, StepOutcome
from ai_pipeline.steps.registry import register_step

logger = logging.getLogger(__name__)

FILE_CATEGORIES = ("api", "db", "ui", "test", "config", "other")


def categorize_file(path: str) -> str:
    """Classify a changed path as api, db, ui, test, config or other (first match wins)."""
    padded = f"/{path}"
    suffix = PurePosixPath(path).suffix.lower()
    if "/api/" in padded or "Service" in path or "Controller" in path:
        return "api"
    if "/db/" in padded or "Repository" in path or "migration" in path:
        return "db"
    if "/ui/" in padded or "component" in path or suffix in {".css", ".html"}:
        return "ui"
    if "test" in path or "spec" in path:
        return "test"
    if "config" in path or suffix in {".json", ".yml", ".yaml"}:
        return "config"
    return "other"


@register_step
class BreakingChangesStep(BuiltinStep):
    """Fails on too many breaking changes or too many test failures.

    Findings are read by category: ``api`` and ``db`` are breaking changes,
    ``test_failure`` is a failing test. Anything else is ignored.
    """

    step_id = "breaking_changes"
    display_name = "Breaking Changes Detection"
    artifact_name = "breaking_changes.json"
    default_thresholds = {"max_breaking_changes": 2, "max_test_failures": 5}

    def check(self, ctx: StepContext, files: list[str]) -> StepOutcome:
        categories: dict[str, list[str]] = {key: [] for key in FILE_CATEGORIES}
        for name in files:
            categories[categorize_file(name)].append(name)

        findings = ctx.findings(files)
        api_changes = [f.to_dict() for f in findings if f.category == "api"]
        db_changes = [f.to_dict() for f in findings if f.category == "db"]
        test_failures = [f.to_dict() for f in findings if f.category == "test_failure"]
        breaking = len(api_changes) + len(db_changes)

        self.write_artifact(
            ctx,
            {
                "files": categories,
                "api_changes": api_changes,
                "db_changes": db_changes,
                "test_failures": test_failures,
                "total_breaking_changes": breaking,
            },
        )
        self.write_summary(
            ctx,
            [
                f"Files Analyzed: {len(files)}",
                f"API Files Modified: {len(categories['api'])}",
                f"Database Files Modified: {len(categories['db'])}",
                f"Test Failures: {len(test_failures)}",
                f"Total Breaking Changes: {breaking}",
            ],
        )

        problems: list[str] = []
        max_breaking = ctx.threshold("max_breaking_changes")
        if breaking > max_breaking:
            problems.append(f"{breaking} breaking changes (limit {max_breaking})")
        max_failures = ctx.threshold("max_test_failures")
        if len(test_failures) > max_failures:
            problems.append(f"{len(test_failures)} test failures (limit {max_failures})")

        warnings = breaking + len(test_failures)
        if problems:
            for problem in problems:
                logger.error("Too many: %s", problem)
            return StepOutcome(exit_code=EXIT_FAILED, warnings=warnings, message="; ".join(problems))
        if warnings:
            logger.warning(
                "Detected %d breaking changes and %d test failures", breaking, len(test_failures)
            )
        else:
            logger.info("No breaking changes detected")
        return StepOutcome(warnings=warnings)
