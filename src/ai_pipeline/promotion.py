"""Promote validated work along the ``ai-gen -> ai-review -> ai-prod`` branch chain."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ai_pipeline.errors import PromotionError
from ai_pipeline.git_tools import (
    GitError,
    branch_exists,
    current_branch,
    delete_branch,
    push_branch,
    rev_parse,
    set_branch,
)
from ai_pipeline.schemas import DEFAULT_BASE_BRANCH

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    AI_GEN = "ai-gen"
    AI_REVIEW = "ai-review"
    AI_PROD = "ai-prod"

    @property
    def previous(self) -> Stage | None:
        order = list(Stage)
        index = order.index(self)
        return order[index - 1] if index > 0 else None


def branch_name(stage: Stage | str, feature: str) -> str:
    """Return ``<stage>/<feature>``."""
    feature = (feature or "").strip().strip("/")
    if not feature:
        raise PromotionError("feature name must not be empty")
    return f"{Stage(stage).value}/{feature}"


def source_branch(stage: Stage | str, feature: str, base_branch: str = DEFAULT_BASE_BRANCH) -> str:
    """The branch a stage is promoted from: the base branch for ``ai-gen``."""
    previous = Stage(stage).previous
    if previous is None:
        return base_branch
    return branch_name(previous, feature)


@dataclass(frozen=True)
class PromotionResult:
    source: str
    destination: str
    commit: str
    created: bool
    pushed: bool


def promote(
    repo: str | Path,
    feature: str,
    stage: Stage | str,
    *,
    base_branch: str = DEFAULT_BASE_BRANCH,
    remote: str = "origin",
    push: bool = True,
) -> PromotionResult:
    """Point ``<stage>/<feature>`` at the source branch's commit and push it.

    When the push fails the local destination branch is restored to its
    previous commit (or deleted if it did not exist) and
    :class:`PromotionError` is raised.
    """
    repo = Path(repo)
    try:
        stage = Stage(stage)
    except ValueError:
        valid = ", ".join(s.value for s in Stage)
        raise PromotionError(f"Unknown stage {stage!r} (expected one of: {valid})") from None

    source = source_branch(stage, feature, base_branch)
    destination = branch_name(stage, feature)

    try:
        if not branch_exists(repo, source):
            raise PromotionError(f"Source branch {source} does not exist")
        if current_branch(repo) == destination:
            raise PromotionError(
                f"Destination branch {destination} is checked out; switch branches first"
            )
        commit = rev_parse(repo, source)
        existed = branch_exists(repo, destination)
        previous = rev_parse(repo, destination) if existed else ""
        set_branch(repo, destination, commit)
    except GitError as exc:
        raise PromotionError(f"Could not promote {source} to {destination}: {exc}") from exc

    logger.info("Promoted %s -> %s at %s", source, destination, commit[:12])
    if push:
        try:
            push_branch(repo, remote, destination, force=True)
        except GitError as exc:
            logger.error("Push of %s to %s failed; rolling back local branch", destination, remote)
            _rollback(repo, destination, previous)
            raise PromotionError(f"Push of {destination} to {remote} failed: {exc}") from exc

    return PromotionResult(
        source=source,
        destination=destination,
        commit=commit,
        created=not existed,
        pushed=push,
    )


def _rollback(repo: Path, destination: str, previous: str) -> None:
    try:
        if previous:
            set_branch(repo, destination, previous)
        else:
            delete_branch(repo, destination)
    except GitError as exc:
        logger.error("Rollback of %s failed: %s", destination, exc)
