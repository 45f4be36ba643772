"""Shared pytest configuration: marker registration, execution ordering and git fixtures."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast isolated unit tests")
    config.addinivalue_line("markers", "integration: filesystem/subprocess integration tests")
    config.addinivalue_line("markers", "slow: expensive tests that wait on timeouts")


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Run fast unit tests first, integration tests second, slow tests last."""

    def sort_key(item: pytest.Item) -> tuple[int, str]:
        if item.get_closest_marker("slow"):
            return (2, item.nodeid)
        if item.get_closest_marker("integration"):
            return (1, item.nodeid)
        return (0, item.nodeid)

    items.sort(key=sort_key)


def run_git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=repo, check=True, capture_output=True, text=True
    )
    return result.stdout.strip()


def _init_repo(repo: Path) -> None:
    repo.mkdir(parents=True, exist_ok=True)
    run_git(repo, "init")
    run_git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(repo, "config", "user.name", "Test User")
    run_git(repo, "config", "user.email", "test@example.com")
    run_git(repo, "config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("base\n", encoding="utf-8")
    run_git(repo, "add", "-A")
    run_git(repo, "commit", "-m", "init")


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A repository with a single commit on ``main``."""
    repo = tmp_path / "repo"
    _init_repo(repo)
    return repo


@pytest.fixture
def make_branch(git_repo: Path) -> Callable[..., Path]:
    """Return a helper committing *files* on a new branch cut from ``main``.

    With ``stay=True`` the branch remains checked out so its files exist in
    the working tree.
    """

    def _make(branch: str, files: dict[str, str], *, stay: bool = True) -> Path:
        run_git(git_repo, "checkout", "-B", branch, "main")
        for name, content in files.items():
            path = git_repo / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        run_git(git_repo, "add", "-A")
        run_git(git_repo, "commit", "-m", f"work on {branch}")
        if not stay:
            run_git(git_repo, "checkout", "main")
        return git_repo

    return _make


@pytest.fixture
def git():
    """Expose ``run_git`` to tests."""
    return run_git
