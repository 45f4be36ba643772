"""Load and validate the pipeline configuration file.

The file is JSON or YAML with a top-level ``pipeline`` mapping::

    {
      "pipeline": {
        "min_steps": 2,
        "max_steps": 5,
        "steps": [
          {"id": "syntax_check", "name": "Syntax Check", "required": true,
           "timeout_seconds": 120}
        ]
      }
    }
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ai_pipeline.errors import ConfigError
from ai_pipeline.file_io import write_json
from ai_pipeline.schemas import PipelineConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AI_PIPELINE_CONFIG"
DEFAULT_CONFIG_PATH = Path("config") / "ai-pipeline.json"

_YAML_SUFFIXES = {".yml", ".yaml"}

DEFAULT_CONFIG: dict[str, Any] = {
    "pipeline": {
        "min_steps": 2,
        "max_steps": 5,
        "max_iterations": 5,
        "base_branch": "main",
        "steps": [
            {
                "id": "context_validation",
                "name": "Context Validation",
                "required": True,
                "timeout_seconds": 60,
            },
            {
                "id": "syntax_check",
                "name": "Syntax Check",
                "required": True,
                "timeout_seconds": 120,
            },
            {
                "id": "code_style",
                "name": "Code Style Verification",
                "required": False,
                "timeout_seconds": 120,
            },
            {
                "id": "breaking_changes",
                "name": "Breaking Changes Detection",
                "required": False,
                "timeout_seconds": 300,
            },
            {
                "id": "security_scan",
                "name": "Security Scan",
                "required": False,
                "timeout_seconds": 300,
            },
            {
                "id": "human_review",
                "name": "Human Review Request",
                "required": False,
                "timeout_seconds": 600,
            },
        ],
    }
}


def resolve_config_path(workspace: str | Path, explicit: str | Path | None = None) -> Path:
    """Return the config path: explicit value, then ``$AI_PIPELINE_CONFIG``, then the default.

    Relative paths are resolved against *workspace*.
    """
    raw = explicit or os.environ.get(CONFIG_ENV_VAR, "").strip() or DEFAULT_CONFIG_PATH
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = Path(workspace) / path
    return path


def _parse(path: Path, raw: str) -> Any:
    if path.suffix.lower() in _YAML_SUFFIXES:
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Malformed YAML in {path}: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Malformed JSON in {path}: {exc}") from exc


def parse_config(data: Any, *, source: str = "<config>") -> PipelineConfig:
    """Validate an already-parsed configuration document."""
    if not isinstance(data, dict) or not isinstance(data.get("pipeline"), dict):
        raise ConfigError(f"{source}: expected a top-level 'pipeline' mapping")
    try:
        config = PipelineConfig.model_validate(data["pipeline"])
    except ValidationError as exc:
        raise ConfigError(f"{source}: invalid pipeline configuration:\n{exc}") from exc
    if not config.required_steps():
        logger.warning(
            "%s: no step is marked required; an iteration may finish without running any check",
            source,
        )
    return config


def load_config(path: str | Path) -> PipelineConfig:
    """Read and validate the configuration at *path*.

    Raises :class:`ConfigError` for a missing file, unparsable content or a
    configuration that violates the pipeline invariants.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found at {path}")
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read configuration file {path}: {exc}") from exc
    config = parse_config(_parse(path, raw), source=str(path))
    logger.debug(
        "Loaded config %s: min_steps=%d max_steps=%d steps=%d",
        path,
        config.min_steps,
        config.max_steps,
        len(config.steps),
    )
    return config


def write_default_config(path: str | Path, *, overwrite: bool = False) -> Path:
    """Write :data:`DEFAULT_CONFIG` to *path* (JSON or YAML by suffix)."""
    path = Path(path)
    if path.exists() and not overwrite:
        raise ConfigError(f"Refusing to overwrite existing configuration at {path}")
    if path.suffix.lower() in _YAML_SUFFIXES:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False), encoding="utf-8")
    else:
        write_json(path, DEFAULT_CONFIG)
    logger.info("Wrote default configuration to %s", path)
    return path
