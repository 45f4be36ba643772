"""Context validation: record what changed and how well the change is understood."""

from __future__ import annotations

import logging

from ai_pipeline.steps.base import BuiltinStep, StepContext, StepOutcome, detect_language
from ai_pipeline.steps.registry import register_step

logger = logging.getLogger(__name__)


@register_step
class ContextValidationStep(BuiltinStep):
    """Scores context understanding; a low score warns but never fails the step."""

    step_id = "context_validation"
    display_name = "Context Validation"
    artifact_name = "validation_result.json"
    default_thresholds = {"min_score": 60, "finding_penalty": 10}

    def check(self, ctx: StepContext, files: list[str]) -> StepOutcome:
        findings = ctx.findings(files)
        score = max(0, 100 - ctx.threshold("finding_penalty") * len(findings))
        min_score = ctx.threshold("min_score")

        languages = sorted({detect_language(name) for name in files})
        self.write_artifact(
            ctx,
            {
                "feature": ctx.feature,
                "branch": ctx.branch,
                "base_branch": ctx.base_branch,
                "changed_files": files,
                "languages": languages,
            },
            name="context.json",
        )
        self.write_artifact(
            ctx,
            {
                "score": score,
                "confidence": round(score / 100, 2),
                "min_score": min_score,
                "warnings": [f.message for f in findings],
                "findings": [f.to_dict() for f in findings],
            },
        )
        self.write_summary(
            ctx,
            [
                f"Understanding Score: {score}%",
                f"Changed Files: {len(files)}",
                f"Languages: {', '.join(languages) or 'none'}",
            ],
        )

        if score < min_score:
            logger.warning("Low understanding score %d%% (minimum %d%%)", score, min_score)
        logger.info("Context validation completed (score %d%%)", score)
        return StepOutcome(warnings=len(findings))
