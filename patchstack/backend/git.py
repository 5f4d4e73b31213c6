"""Git backend for module working copies.

Runs git CLI operations against a single module working copy. All
operations use subprocess to call git directly and carry no policy:
the engines decide what to run and in which order.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Sequence
from functools import cmp_to_key
from pathlib import Path

from patchstack.errors import GitCommandError, PatchApplyFailed
from patchstack.schemas.results import TagMarker
from patchstack.schemas.workspace import Identity

logger = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"


class GitBackend:
    """Git operations for one module working copy.

    One instance is used per module per operation; instances must not be
    shared between concurrent operations on the same module.
    """

    def __init__(self, path: Path, module: str = "") -> None:
        self.path = path
        self.module = module

    # ── Plumbing ─────────────────────────────────────────────────

    def _run(
        self,
        *args: str,
        check: bool = True,
        env: dict[str, str] | None = None,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a git command and return the result."""
        cmd = ["git", *args]
        full_env = None
        if env:
            full_env = {**os.environ, **env}
        logger.debug("%s: %s", self.module or self.path, shlex.join(cmd))
        return subprocess.run(
            cmd,
            cwd=str(cwd or self.path),
            capture_output=True,
            text=True,
            check=check,
            env=full_env,
        )

    def _git(
        self,
        *args: str,
        env: dict[str, str] | None = None,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a git command, raising GitCommandError on a non-zero exit."""
        try:
            return self._run(*args, env=env, cwd=cwd)
        except subprocess.CalledProcessError as e:
            raise GitCommandError(
                ["git", *args],
                e.returncode,
                e.stderr or "",
                module=self.module,
                step=_subcommand(args),
            ) from e

    @staticmethod
    def _identity_args(identity: Identity) -> list[str]:
        return [
            "-c", f"user.name={identity.name}",
            "-c", f"user.email={identity.email}",
            "-c", "commit.gpgsign=false",
        ]

    # ── Working copy ─────────────────────────────────────────────

    def clone(self, source: str) -> None:
        """Clone ``source`` into this backend's path."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._git("clone", "--quiet", source, str(self.path), cwd=self.path.parent)
        logger.info("Cloned %s into %s", source, self.path)

    def is_repository(self) -> bool:
        """Check that the path is the top level of a git working copy."""
        if not self.path.is_dir():
            return False
        result = self._run("rev-parse", "--show-toplevel", check=False)
        if result.returncode != 0:
            return False
        return Path(result.stdout.strip()).resolve() == self.path.resolve()

    def fetch_and_hard_reset_to_remote(self, branch: str, remote: str = DEFAULT_REMOTE) -> None:
        """Fetch ``branch`` from the remote and hard-reset HEAD onto its tip."""
        self._git(
            "fetch", "--quiet", "--no-tags", remote,
            f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}",
        )
        self._git("reset", "--quiet", "--hard", f"{remote}/{branch}")

    def discard_untracked(self) -> None:
        """Remove untracked files and directories (ignored files are kept)."""
        self._git("clean", "--quiet", "-f", "-d")

    def pull(self, branch: str, remote: str = DEFAULT_REMOTE) -> None:
        """Fast-forward the current branch from the remote."""
        self._git("pull", "--quiet", "--ff-only", "--no-tags", remote, branch)

    def checkout(self, ref: str) -> None:
        self._git("checkout", "--quiet", ref)

    def current_branch(self) -> str:
        """Return the checked-out branch name, or ``HEAD`` when detached."""
        return self._git("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def head(self) -> str:
        return self._git("rev-parse", "HEAD").stdout.strip()

    def rev_parse(self, ref: str) -> str | None:
        """Resolve ``ref`` to a commit hash, or None if it does not exist."""
        result = self._run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def has_uncommitted_changes(self) -> bool:
        """Staged, unstaged or untracked changes, ignored files excluded."""
        return bool(self._git("status", "--porcelain").stdout.strip())

    def commit_all(self, identity: Identity, message: str) -> str:
        """Stage everything (except ignored files) and commit as ``identity``.

        Returns:
            The new commit SHA.
        """
        self._git("add", "--all")
        self._git(
            *self._identity_args(identity),
            "commit", "--quiet", "--no-verify",
            f"--author={identity.signature}",
            "-m", message,
            env=identity.as_env(),
        )
        sha = self.head()
        logger.info("Committed working tree as %s", sha[:12])
        return sha

    # ── Branches ─────────────────────────────────────────────────

    def branch_exists(self, name: str) -> bool:
        result = self._run("show-ref", "--verify", "--quiet", f"refs/heads/{name}", check=False)
        return result.returncode == 0

    def create_branch(self, name: str) -> None:
        """Create and check out a branch at the current HEAD."""
        self._git("checkout", "--quiet", "-b", name)
        logger.info("Created branch: %s", name)

    def delete_branch(self, name: str) -> None:
        self._git("branch", "-D", name)

    def list_branches(self, pattern: str = "*") -> list[str]:
        result = self._git("branch", "--list", "--format=%(refname:short)", pattern)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    # ── History ──────────────────────────────────────────────────

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Whether ``ancestor`` is reachable from ``descendant`` (or equal to it)."""
        args = ("merge-base", "--is-ancestor", ancestor, descendant)
        result = self._run(*args, check=False)
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        raise GitCommandError(
            ["git", *args], result.returncode, result.stderr,
            module=self.module, step="merge-base",
        )

    def count_commits(self, start: str, end: str, exclude: str | None = None) -> int:
        """Count commits in ``(start, end]``, optionally minus those reachable from ``exclude``."""
        args = ["rev-list", "--count", f"{start}..{end}"]
        if exclude:
            args.append(f"^{exclude}")
        return int(self._git(*args).stdout.strip() or 0)

    def resolve_tag(self, name: str) -> str | None:
        """Return the commit a tag points at, or None if the tag does not exist."""
        return self.rev_parse(f"refs/tags/{name}")

    def tag(self, name: str, ref: str = "HEAD", force: bool = True) -> None:
        args = ["tag"]
        if force:
            args.append("-f")
        self._git(*args, name, ref)

    def list_tags_newest_first(self, names: Sequence[str] | None = None) -> list[TagMarker]:
        """List tags reachable from HEAD, most recent first.

        Args:
            names: Only consider these tag names. Tags sharing a commit keep
                the reverse of this order, so later names sort as more recent.

        Returns:
            TagMarkers ordered by ancestry, newest first.
        """
        merged = self._git("tag", "--list", "--merged", "HEAD").stdout.split()
        if names is not None:
            order = {name: i for i, name in enumerate(names)}
            merged = sorted((t for t in merged if t in order), key=order.__getitem__, reverse=True)

        markers: list[TagMarker] = []
        for name in merged:
            commit = self.resolve_tag(name)
            if commit is None:
                logger.debug("Tag %s does not point at a commit, ignoring", name)
                continue
            markers.append(TagMarker(name=name, commit=commit))

        def newest_first(a: TagMarker, b: TagMarker) -> int:
            if a.commit == b.commit:
                return 0
            if self.is_ancestor(a.commit, b.commit):
                return 1
            if self.is_ancestor(b.commit, a.commit):
                return -1
            return 0

        return sorted(markers, key=cmp_to_key(newest_first))

    # ── Stash ────────────────────────────────────────────────────

    def stash_snapshot(self, identity: Identity, message: str) -> str | None:
        """Store uncommitted tracked changes in the stash list and clean the tree.

        Returns:
            The stash commit, or None if there was nothing to stash.
        """
        ref = self._git(*self._identity_args(identity), "stash", "create", message).stdout.strip()
        if not ref:
            return None
        self._git("stash", "store", "--quiet", "-m", message, ref)
        self._git("reset", "--quiet", "--hard")
        logger.debug("Stashed uncommitted changes as %s", ref[:12])
        return ref

    def stash_restore(self, ref: str) -> None:
        """Re-apply a stash commit and drop its entry from the stash list."""
        self._git("stash", "apply", "--quiet", ref)
        entries = self._git("stash", "list", "--format=%gd %H").stdout.splitlines()
        for entry in entries:
            selector, _, sha = entry.partition(" ")
            if sha == ref:
                self._git("stash", "drop", "--quiet", selector)
                break

    # ── Patches ──────────────────────────────────────────────────

    def rewrite_committer_metadata(self, start: str, end: str, identity: Identity) -> bool:
        """Force committer identity and date (= author date) over ``(start, end]``.

        Tags pointing into the range are moved to the rewritten commits.

        Returns:
            False if the range was empty and nothing ran.
        """
        if self.count_commits(start, end) == 0:
            return False
        env_filter = (
            'export GIT_COMMITTER_DATE="$GIT_AUTHOR_DATE"; '
            f"export GIT_COMMITTER_NAME={shlex.quote(identity.name)}; "
            f"export GIT_COMMITTER_EMAIL={shlex.quote(identity.email)}"
        )
        self._git(
            *self._identity_args(identity),
            "filter-branch", "-f",
            "--tag-name-filter", "cat",
            "--env-filter", env_filter,
            "--", f"{start}..{end}",
            env={"FILTER_BRANCH_SQUELCH_WARNING": "1"},
        )
        return True

    def export_patch_series(self, start: str, end: str, output_dir: Path) -> list[Path]:
        """Write one patch file per commit in ``(start, end]`` into ``output_dir``."""
        result = self._git(
            "format-patch", "--zero-commit", "-k", "--patience", "--no-signature",
            "-o", str(output_dir), f"{start}..{end}",
        )
        return [Path(line.strip()) for line in result.stdout.splitlines() if line.strip()]

    def apply_patch_series(self, patches: Sequence[Path], identity: Identity) -> int:
        """Apply patch files in order as commits.

        The committer is ``identity`` with the author date, so replaying a
        normalized export recreates the exported commits.

        Returns:
            Number of patches applied.

        Raises:
            PatchApplyFailed: A patch did not apply. Earlier patches stay
                committed; the failed am session is aborted.
        """
        for index, patch in enumerate(patches):
            try:
                self._git(
                    *self._identity_args(identity),
                    "am", "--quiet", "-k", "--committer-date-is-author-date", str(patch),
                    env=identity.as_env(),
                )
            except GitCommandError as e:
                self.abort_apply()
                raise PatchApplyFailed(str(patch), index, e) from e
        return len(patches)

    def abort_apply(self) -> None:
        result = self._run("am", "--abort", check=False)
        if result.returncode != 0:
            logger.debug("git am --abort: %s", result.stderr.strip())


def _subcommand(args: Sequence[str]) -> str:
    """Return the git subcommand from an argument list, skipping ``-c`` options."""
    skip = False
    for arg in args:
        if skip:
            skip = False
            continue
        if arg == "-c":
            skip = True
            continue
        return arg
    return ""
