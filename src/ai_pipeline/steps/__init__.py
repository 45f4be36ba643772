"""Pipeline steps.

Importing this package registers the built-in steps:
``context_validation``, ``syntax_check``, ``code_style``,
``breaking_changes``, ``security_scan`` and ``human_review``.
"""

from ai_pipeline.steps import (  # noqa: F401  (registration side effects)
    breaking_changes,
    code_style,
    context_validation,
    human_review,
    security_scan,
    syntax_check,
)
from ai_pipeline.steps.base import Finding, Step, StepContext, StepOutcome
from ai_pipeline.steps.checkers import Checker, NullChecker, StaticChecker
from ai_pipeline.steps.registry import builtin_step_ids, register_step, resolve_step
from ai_pipeline.steps.runner import StepRunner
from ai_pipeline.steps.script import ScriptStep

__all__ = [
    "Checker",
    "Finding",
    "NullChecker",
    "ScriptStep",
    "StaticChecker",
    "Step",
    "StepContext",
    "StepOutcome",
    "StepRunner",
    "builtin_step_ids",
    "register_step",
    "resolve_step",
]
