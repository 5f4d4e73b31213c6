"""Shared fixtures: throwaway upstream repositories and workspaces."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from patchstack.registry import load_workspace
from patchstack.schemas.workspace import Module, WorkspaceConfig
from patchstack.sync.engine import SyncEngine


def git(cwd: Path, *args: str) -> str:
    """Run git in ``cwd`` and return stripped stdout."""
    result = subprocess.run(
        ["git", *args], cwd=str(cwd), capture_output=True, text=True, check=True,
    )
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: str) -> str:
    """Write a file, commit it, and return the new commit SHA."""
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD")


def write_config(root: Path, upstream: Path, commit: str, extra: str = "") -> Path:
    """Write a workspace file with a single module ``lib``."""
    path = root / "patchstack.toml"
    path.write_text(
        f"""
[modules.lib]
url = "{upstream.as_posix()}"
branch = "main"
commit = "{commit}"
directory = "lib"
{extra}
"""
    )
    return path


@pytest.fixture(autouse=True)
def _git_env(monkeypatch, tmp_path_factory):
    """Isolate git from the user's configuration."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.org")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.org")
    monkeypatch.delenv("PATCHSTACK_CONFIG", raising=False)


@pytest.fixture
def upstream(tmp_path) -> Path:
    """An upstream repository on branch ``main`` with two files."""
    repo = tmp_path / "upstream"
    repo.mkdir()
    git(repo, "init", "-q", "-b", "main")
    (repo / "README.md").write_text("# upstream\n")
    (repo / "config.txt").write_text("value = 1\n")
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", "initial")
    return repo


@pytest.fixture
def workspace(tmp_path, upstream) -> WorkspaceConfig:
    """A workspace pinning ``lib`` to the upstream tip."""
    root = tmp_path / "ws"
    root.mkdir()
    pinned = git(upstream, "rev-parse", "HEAD")
    return load_workspace(write_config(root, upstream, pinned))


@pytest.fixture
def module(workspace) -> Module:
    return workspace.modules["lib"]


@pytest.fixture
def synced(workspace, module) -> Module:
    """``lib`` cloned and checked out at its pin."""
    SyncEngine(workspace.settings).sync(module)
    return module


@pytest.fixture
def layered(synced) -> dict[str, str]:
    """Module with a ``generic`` commit and two ``specific`` commits, tagged.

    Returns the tagged commit SHAs keyed by tag name.
    """
    path = synced.path
    generic = commit_file(path, "README.md", "# upstream\ngeneric\n", "generic change")
    git(path, "tag", "generic")
    commit_file(path, "README.md", "# upstream\ngeneric\nspecific\n", "specific change")
    specific = commit_file(path, "extra.txt", "extra\n", "add extra file")
    git(path, "tag", "specific")
    return {"generic": generic, "specific": specific}
