"""Git helper utilities for branch queries, diffs and branch updates."""

from __future__ import annotations

import contextlib
import logging
import os
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _git_subprocess_isolation_kwargs() -> dict[str, object]:
    """Return kwargs that prevent child console events from reaching the parent on Windows."""
    if os.name != "nt":
        return {}
    new_pg = int(getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0))
    no_win = int(getattr(subprocess, "CREATE_NO_WINDOW", 0))
    flags = new_pg | no_win
    return {"creationflags": flags} if flags else {}


class GitError(RuntimeError):
    """Raised when a git command fails unexpectedly."""


def _run_git(
    *args: str,
    cwd: Path,
    check: bool = True,
    timeout: int = 60,
) -> subprocess.CompletedProcess[str]:
    """Run a git command and return the CompletedProcess."""
    cmd = ["git", *args]
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            **_git_subprocess_isolation_kwargs(),
        )
    except FileNotFoundError as exc:
        raise GitError(f"git executable not found: {exc}") from exc
    except subprocess.TimeoutExpired as exc:
        raise GitError(f"`git {' '.join(args)}` timed out after {timeout}s") from exc
    if check and result.returncode != 0:
        raise GitError(
            f"`git {' '.join(args)}` failed (rc={result.returncode}): {result.stderr.strip()}"
        )
    return result


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def branch_exists(repo: str | Path, branch: str) -> bool:
    """Return True when a local branch named *branch* exists in *repo*.

    A directory that is not a git repository has no branches.
    """
    result = _run_git(
        "show-ref", "--verify", "--quiet", f"refs/heads/{branch}", cwd=Path(repo), check=False
    )
    return result.returncode == 0


def changed_files(repo: str | Path, base: str, branch: str) -> list[str]:
    """Return paths changed between *base* and *branch* (``git diff --name-only base..branch``)."""
    out = _run_git("diff", "--name-only", f"{base}..{branch}", cwd=Path(repo)).stdout
    return [line.strip() for line in out.splitlines() if line.strip()]


def diff_stat(repo: str | Path, revspec: str | None = None) -> str:
    """Return ``git diff --stat`` output.

    When ``revspec`` is provided, runs ``git diff --stat <revspec>``.
    """
    args = ["diff", "--stat"]
    if revspec:
        args.append(revspec)
    return _run_git(*args, cwd=Path(repo)).stdout.strip()


def _parse_numstat_output(raw: str) -> list[dict[str, Any]]:
    """Parse ``git diff --numstat`` output into structured entries."""
    out = str(raw or "").strip()
    if not out:
        return []

    entries: list[dict[str, Any]] = []
    for line in out.splitlines():
        parts = line.split("\t", 2)
        if len(parts) < 3:
            continue
        ins_raw, del_raw, path = parts

        ins_val: int | None = None
        del_val: int | None = None
        with contextlib.suppress(ValueError):
            ins_val = int(ins_raw)
        with contextlib.suppress(ValueError):
            del_val = int(del_raw)

        entries.append(
            {
                "path": path,
                "insertions": ins_val,
                "deletions": del_val,
            }
        )
    return entries


def diff_numstat_entries(repo: str | Path, revspec: str) -> list[dict[str, Any]]:
    """Return file-level diff entries from ``git diff --numstat <revspec>``.

    Each entry contains ``path``, ``insertions`` and ``deletions``; the counts
    are ``None`` for binary entries.
    """
    out = _run_git("diff", "--numstat", revspec, cwd=Path(repo)).stdout
    return _parse_numstat_output(out)


def summarize_numstat_entries(entries: Sequence[dict[str, Any]]) -> tuple[int, int, int]:
    """Return (files_changed, insertions, deletions) for parsed numstat entries."""
    if not entries:
        return 0, 0, 0
    files = insertions = deletions = 0
    for entry in entries:
        files += 1
        if isinstance(entry.get("insertions"), int):
            insertions += int(entry["insertions"])
        if isinstance(entry.get("deletions"), int):
            deletions += int(entry["deletions"])
    return files, insertions, deletions


def current_branch(repo: str | Path) -> str:
    """Return the name of the current branch."""
    return _run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=Path(repo)).stdout.strip()


def rev_parse(repo: str | Path, ref: str) -> str:
    """Return the full commit SHA that *ref* points to."""
    return _run_git("rev-parse", "--verify", f"{ref}^{{commit}}", cwd=Path(repo)).stdout.strip()


# ---------------------------------------------------------------------------
# Mutation helpers
# ---------------------------------------------------------------------------


def set_branch(repo: str | Path, branch: str, commit: str) -> None:
    """Create *branch* at *commit*, or force-move it there when it already exists."""
    _run_git("branch", "--force", branch, commit, cwd=Path(repo))
    logger.info("Branch %s -> %s", branch, commit[:12])


def delete_branch(repo: str | Path, branch: str) -> None:
    """Force-delete a local branch."""
    _run_git("branch", "-D", branch, cwd=Path(repo))
    logger.info("Deleted branch %s", branch)


def push_branch(repo: str | Path, remote: str, branch: str, *, force: bool = False) -> None:
    """Push *branch* to *remote* and set upstream tracking."""
    args = ["push", "--set-upstream"]
    if force:
        args.append("--force")
    args.extend([remote, branch])
    _run_git(*args, cwd=Path(repo), timeout=300)
    logger.info("Pushed %s to %s", branch, remote)
