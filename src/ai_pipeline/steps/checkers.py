"""Checker capability: where step findings come from.

Steps never analyse code themselves; they ask a :class:`Checker` for
findings and apply their thresholds to the result. :class:`NullChecker` is the
placeholder used by default and reports nothing. A real analyser (linters,
scanners, a review queue) plugs in by implementing :meth:`Checker.check`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING

from ai_pipeline.steps.base import Finding

if TYPE_CHECKING:
    from ai_pipeline.steps.base import StepContext

logger = logging.getLogger(__name__)


class Checker(ABC):
    """Produces findings for a step over a set of changed files."""

    @abstractmethod
    def check(self, step_id: str, ctx: StepContext, files: Sequence[str]) -> Iterable[Finding]:
        """Return findings for *files*."""


class NullChecker(Checker):
    """Placeholder checker that never reports a finding."""

    def check(self, step_id: str, ctx: StepContext, files: Sequence[str]) -> list[Finding]:
        logger.debug("NullChecker: no analysis for %s (%d files)", step_id, len(files))
        return []


class StaticChecker(Checker):
    """Returns canned findings per step id.

    Findings can be keyed by step id alone, or by ``(step_id, iteration)``
    to model issues that disappear as iterations progress; the iteration key
    wins when both exist. Findings naming a file outside the change set are
    dropped.
    """

    def __init__(
        self,
        findings: Mapping[str | tuple[str, int], Sequence[Finding]] | None = None,
    ) -> None:
        self._findings = dict(findings or {})

    def check(self, step_id: str, ctx: StepContext, files: Sequence[str]) -> list[Finding]:
        key: str | tuple[str, int] = (step_id, ctx.iteration)
        if key not in self._findings:
            key = step_id
        selected = self._findings.get(key, ())
        changed = set(files)
        return [f for f in selected if not f.file or f.file in changed]
