"""Iteration orchestration, step selection and stopping conditions."""

from ai_pipeline.pipeline.orchestrator import PipelineOrchestrator
from ai_pipeline.pipeline.selection import FixedStepSelector, RandomStepSelector, StepSelector
from ai_pipeline.pipeline.stopping import default_stop_policy

__all__ = [
    "FixedStepSelector",
    "PipelineOrchestrator",
    "RandomStepSelector",
    "StepSelector",
    "default_stop_policy",
]
