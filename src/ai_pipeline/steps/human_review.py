"""Human review request.

Assembles ``review_summary.md`` from the diff and from the summaries of the
steps that already ran in this iteration, then records the review verdict.
The verdict comes from the checker: any finding means changes were requested.
Requested changes produce a warning; the step itself never fails.
"""

from __future__ import annotations

import logging

from ai_pipeline import git_tools
from ai_pipeline.file_io import atomic_write_text
from ai_pipeline.schemas import utc_timestamp
from ai_pipeline.steps.base import SUMMARY_NAME, BuiltinStep, StepContext, StepOutcome
from ai_pipeline.steps.registry import register_step

logger = logging.getLogger(__name__)

REVIEWER = "Placeholder Reviewer"

REVIEW_QUESTIONS = (
    "Does the implemented code satisfy the requirements for the feature?",
    "Are there any security concerns not caught by the automated checks?",
    "Is the code maintainable and consistent with the project's style guidelines?",
    "Are there any performance issues that should be addressed?",
    "Is adequate error handling in place?",
    "Is the code sufficiently tested?",
)


def _title_for(step_dir_name: str) -> str:
    return step_dir_name.removeprefix("step-").replace("_", " ").title()


@register_step
class HumanReviewStep(BuiltinStep):
    step_id = "human_review"
    display_name = "Human Review Request"
    artifact_name = "review_result.json"

    def check(self, ctx: StepContext, files: list[str]) -> StepOutcome:
        lines = [
            f"# Human Review Request for {ctx.feature} (Iteration {ctx.iteration})",
            "",
            "## Overview",
            "",
            f"- **Feature**: {ctx.feature}",
            f"- **Branch**: `{ctx.branch}`",
            f"- **Iteration**: {ctx.iteration}",
            f"- **Date**: {utc_timestamp()}",
            "",
            "## Changes Summary",
            "",
        ]
        lines += self._changes_section(ctx, files)
        lines += ["## Pipeline Results Summary", ""]
        lines += self._previous_summaries(ctx)
        lines += ["## Review Questions", ""]
        lines += [f"{index}. {question}" for index, question in enumerate(REVIEW_QUESTIONS, 1)]
        atomic_write_text(ctx.output_dir / "review_summary.md", "\n".join(lines) + "\n")

        findings = ctx.findings(files)
        if findings:
            result = "changes_requested"
            comments = "; ".join(f.message for f in findings if f.message) or "Changes requested."
        else:
            result = "approved"
            comments = "No review findings."
        self.write_artifact(
            ctx,
            {
                "reviewer": REVIEWER,
                "timestamp": utc_timestamp(),
                "result": result,
                "comments": comments,
            },
        )
        self.write_summary(
            ctx,
            [
                f"Review Result: {result}",
                f"Reviewer: {REVIEWER}",
                f"Comments: {comments}",
            ],
        )
        logger.info("Review result: %s", result)
        return StepOutcome(warnings=1 if findings else 0)

    def _changes_section(self, ctx: StepContext, files: list[str]) -> list[str]:
        if not files:
            return [f"No changes detected on `{ctx.branch}`.", ""]
        revspec = f"{ctx.base_branch}..{ctx.branch}"
        entries = git_tools.diff_numstat_entries(ctx.workspace, revspec)
        changed, insertions, deletions = git_tools.summarize_numstat_entries(entries)
        return [
            f"- **Files Changed**: {changed}",
            f"- **Lines Added**: {insertions}",
            f"- **Lines Removed**: {deletions}",
            "",
            "```",
            git_tools.diff_stat(ctx.workspace, revspec),
            "```",
            "",
            "## Changed Files",
            "",
            *(f"- {name}" for name in files),
            "",
        ]

    def _previous_summaries(self, ctx: StepContext) -> list[str]:
        lines: list[str] = []
        for sibling in sorted(ctx.iteration_dir.glob("step-*")):
            if sibling == ctx.output_dir:
                continue
            summary = sibling / SUMMARY_NAME
            if not summary.is_file():
                continue
            lines += [
                f"### {_title_for(sibling.name)}",
                "",
                "```",
                summary.read_text(encoding="utf-8").rstrip(),
                "```",
                "",
            ]
        return lines or ["No other step summaries are available for this iteration.", ""]
