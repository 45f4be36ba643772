"""Code style verification. Style issues are reported but never block."""

from __future__ import annotations

import logging
from collections import Counter

from ai_pipeline.file_io import atomic_write_text
from ai_pipeline.steps.base import (
    BuiltinStep,
    StepContext,
    StepOutcome,
    detect_language,
    group_by_file,
)
from ai_pipeline.steps.registry import register_step

logger = logging.getLogger(__name__)

STYLE_TOOLS: dict[str, str] = {
    "JavaScript/TypeScript": "ESLint/Prettier",
    "Python": "Black/Flake8",
    "Ruby": "RuboCop",
    "Java": "Checkstyle",
    "PHP": "PHP_CodeSniffer",
    "Go": "gofmt",
    "Shell": "shellcheck",
}

STYLE_CATEGORIES = ("indentation", "naming", "line_length", "documentation")

_RECOMMENDATIONS = {
    "indentation": "Configure your editor to use consistent indentation and use an auto-formatter",
    "naming": "Review naming conventions in the project's style guide and apply them consistently",
    "line_length": "Break long lines into multiple lines for better readability",
    "documentation": "Add appropriate documentation to public functions, classes, and modules",
}

_LABELS = {
    "indentation": "Indentation Issues",
    "naming": "Naming Convention Issues",
    "line_length": "Line Length Issues",
    "documentation": "Documentation Issues",
    "other": "Other Issues",
}


@register_step
class CodeStyleStep(BuiltinStep):
    step_id = "code_style"
    display_name = "Code Style Verification"
    artifact_name = "style_results.json"
    default_thresholds = {"warn_issue_count": 50, "recommend_threshold": 10}

    def check(self, ctx: StepContext, files: list[str]) -> StepOutcome:
        checked = [name for name in files if (ctx.workspace / name).is_file()]
        findings = ctx.findings(checked)
        by_file = group_by_file(findings)

        results = []
        for name in checked:
            language = detect_language(name)
            issues = by_file.get(name, [])
            results.append(
                {
                    "file": name,
                    "language": language,
                    "tool": STYLE_TOOLS.get(language, "generic"),
                    "issue_count": len(issues),
                    "issues": [
                        {
                            "line": i.line,
                            "column": i.column,
                            "category": i.category,
                            "message": i.message,
                        }
                        for i in issues
                    ],
                }
            )
        self.write_artifact(ctx, results)

        breakdown = Counter(
            f.category if f.category in STYLE_CATEGORIES else "other" for f in findings
        )
        total = len(findings)
        breakdown_lines = [
            f"- {_LABELS[key]}: {breakdown.get(key, 0)}" for key in (*STYLE_CATEGORIES, "other")
        ]
        self.write_summary(
            ctx,
            [
                f"Total Files Checked: {len(checked)}",
                f"Total Style Issues: {total}",
                "",
                "Issue Breakdown:",
                *breakdown_lines,
            ],
        )
        self._write_report(ctx, results, breakdown, total, len(checked))

        if total > ctx.threshold("warn_issue_count"):
            logger.warning("Too many style issues (%d), continuing", total)
        elif total:
            logger.info("Style verification found %d issues", total)
        else:
            logger.info("Style verification passed, no issues found")
        return StepOutcome(warnings=total)

    def _write_report(
        self,
        ctx: StepContext,
        results: list[dict],
        breakdown: Counter[str],
        total: int,
        files_checked: int,
    ) -> None:
        lines = [
            f"# Code Style Report for {ctx.feature} (Iteration {ctx.iteration})",
            "",
            "## Summary",
            "",
            f"- **Files Analyzed**: {files_checked}",
            f"- **Total Style Issues**: {total}",
            "",
            "## Issue Breakdown",
            "",
        ]
        lines += [
            f"- **{_LABELS[key]}**: {breakdown.get(key, 0)}" for key in (*STYLE_CATEGORIES, "other")
        ]
        lines += ["", "## Files with Most Issues", ""]
        worst = sorted(results, key=lambda r: r["issue_count"], reverse=True)[:5]
        lines += [f"- **{r['file']}**: {r['issue_count']} issues" for r in worst if r["issue_count"]]
        lines += ["", "## Recommendations", ""]
        limit = ctx.threshold("recommend_threshold")
        lines += [
            f"- {_RECOMMENDATIONS[key]}" for key in STYLE_CATEGORIES if breakdown.get(key, 0) > limit
        ]
        atomic_write_text(ctx.output_dir / "style_report.md", "\n".join(lines) + "\n")
