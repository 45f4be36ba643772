"""Registry of built-in steps and resolution of configured steps."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TypeVar

from ai_pipeline.errors import StepNotFoundError
from ai_pipeline.schemas import StepDefinition
from ai_pipeline.steps.base import Step
from ai_pipeline.steps.script import ScriptStep

logger = logging.getLogger(__name__)

_REGISTRY: dict[str, type[Step]] = {}

S = TypeVar("S", bound=type[Step])


def register_step(cls: S) -> S:
    """Class decorator registering a built-in step under its ``step_id``."""
    step_id = cls.step_id
    if not step_id:
        raise ValueError(f"{cls.__name__} does not define step_id")
    existing = _REGISTRY.get(step_id)
    if existing is not None and existing is not cls:
        raise ValueError(f"step id {step_id!r} already registered by {existing.__name__}")
    _REGISTRY[step_id] = cls
    return cls


def builtin_step_ids() -> list[str]:
    return sorted(_REGISTRY)


def get_builtin(step_id: str) -> type[Step]:
    try:
        return _REGISTRY[step_id]
    except KeyError:
        raise StepNotFoundError(step_id, "no built-in step is registered with this id") from None


def resolve_script_path(workspace: Path, script: str) -> Path:
    path = Path(script).expanduser()
    if not path.is_absolute():
        path = workspace / path
    return path


def resolve_step(definition: StepDefinition, workspace: Path) -> Step:
    """Return the implementation for *definition*.

    A configured ``script`` must exist on disk; without one the built-in step
    of the same id is used.
    """
    if definition.script:
        path = resolve_script_path(workspace, definition.script)
        if not path.is_file():
            raise StepNotFoundError(definition.id, f"script not found at {path}")
        return ScriptStep(path, timeout_seconds=definition.timeout_seconds)
    return get_builtin(definition.id)()
