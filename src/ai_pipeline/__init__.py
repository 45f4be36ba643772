"""AI Safe Pipeline - iterative, gated validation of AI-generated branches."""

from importlib.metadata import PackageNotFoundError, version

from ai_pipeline.schemas import IterationResult, PipelineConfig, PipelineRun, StepExecutionResult

__all__ = ["IterationResult", "PipelineConfig", "PipelineRun", "StepExecutionResult"]

try:
    __version__ = version("ai-safe-pipeline")
except PackageNotFoundError:
    __version__ = "0.0.0"
