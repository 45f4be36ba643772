"""Syntax check over the changed files."""

from __future__ import annotations

import logging

from ai_pipeline.steps.base import (
    EXIT_FAILED,
    BuiltinStep,
    StepContext,
    StepOutcome,
    detect_language,
    group_by_file,
)
from ai_pipeline.steps.registry import register_step

logger = logging.getLogger(__name__)

SYNTAX_TOOLS: dict[str, str] = {
    "JavaScript/TypeScript": "ESLint",
    "Python": "pylint",
    "Ruby": "rubocop",
    "Java": "javac",
    "PHP": "php -l",
    "Go": "go vet",
    "Shell": "shellcheck",
}


@register_step
class SyntaxCheckStep(BuiltinStep):
    """Fails when the number of syntax errors exceeds ``max_errors``."""

    step_id = "syntax_check"
    display_name = "Syntax Check"
    artifact_name = "syntax_results.json"
    default_thresholds = {"max_errors": 5}

    def check(self, ctx: StepContext, files: list[str]) -> StepOutcome:
        checked: list[str] = []
        for name in files:
            if (ctx.workspace / name).is_file():
                checked.append(name)
            else:
                logger.info("File %s does not exist in the workspace, skipping", name)

        findings = ctx.findings(checked)
        by_file = group_by_file(findings)
        results = []
        for name in checked:
            language = detect_language(name)
            errors = by_file.get(name, [])
            results.append(
                {
                    "file": name,
                    "language": language,
                    "tool": SYNTAX_TOOLS.get(language, "generic"),
                    "error_count": len(errors),
                    "errors": [
                        {"line": e.line, "column": e.column, "message": e.message} for e in errors
                    ],
                }
            )
        total = len(findings)
        self.write_artifact(ctx, results)
        self.write_summary(
            ctx,
            [
                f"Total Files Checked: {len(checked)}",
                f"Total Syntax Errors: {total}",
            ],
        )

        max_errors = ctx.threshold("max_errors")
        if total > max_errors:
            logger.error("Too many syntax errors (%d > %d)", total, max_errors)
            return StepOutcome(
                exit_code=EXIT_FAILED,
                warnings=total,
                message=f"{total} syntax errors (limit {max_errors})",
            )
        if total:
            logger.warning("Syntax check found %d errors (limit %d)", total, max_errors)
        else:
            logger.info("Syntax check passed, no errors found")
        return StepOutcome(warnings=total)
