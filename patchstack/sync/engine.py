"""Sync engine: brings a module to its pinned upstream revision.

Clones missing modules. For existing working copies it either preserves
the current state on a backup branch or, when explicitly asked, discards
it, then resets the tracked branch to the remote tip and checks out the
pinned revision.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from patchstack.backend.git import DEFAULT_REMOTE, GitBackend
from patchstack.errors import (
    BackupFailed,
    CloneFailed,
    GitCommandError,
    InvalidModule,
    NamingCollision,
)
from patchstack.schemas.results import BackupSnapshot, SyncAction, SyncOutcome
from patchstack.schemas.workspace import Module, Settings

logger = logging.getLogger(__name__)


def backup_branch_name(prefix: str, source_branch: str, when: datetime) -> str:
    """Build a backup branch name unique per invocation.

    The epoch seconds keep names sortable; the random suffix removes the
    collision window between two syncs in the same second.
    """
    source = "detached" if source_branch == "HEAD" else source_branch
    return f"{prefix}-{source}-{int(when.timestamp())}-{uuid.uuid4().hex[:8]}"


class SyncEngine:
    """Synchronizes modules with their upstream pin."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def sync(self, module: Module, allow_backup: bool = True) -> SyncOutcome:
        """Bring ``module`` to its pinned revision.

        Args:
            module: The module to sync.
            allow_backup: Preserve committed and uncommitted state on a
                backup branch before resetting. When False, local changes
                are discarded irreversibly.

        Returns:
            SyncOutcome describing the action taken.

        Raises:
            CloneFailed: The module could not be cloned.
            InvalidModule: The path exists but is not a git working copy.
            BackupFailed: The backup could not be made; nothing was reset.
            NamingCollision: The backup branch name is already taken.
            GitCommandError: A later git step failed.
        """
        git = GitBackend(module.path, module=module.name)
        backup: BackupSnapshot | None = None

        if not module.path.exists():
            logger.info("%s: cloning %s", module.name, module.source)
            try:
                git.clone(module.source)
            except GitCommandError as e:
                raise CloneFailed(
                    f"cannot clone {module.source}: {e.stderr.strip() or e.message}",
                    module=module.name, step="clone",
                ) from e
            action = SyncAction.CLONED
        else:
            if not git.is_repository():
                raise InvalidModule(
                    f"{module.path} is not a git repository",
                    module=module.name, step="verify",
                )
            logger.info("%s: module already cloned", module.name)

            if allow_backup:
                backup = self._backup(git, module)
                action = SyncAction.BACKED_UP
            else:
                logger.warning(
                    "%s: any changes (uncommitted and committed) will be LOST", module.name
                )
                git.fetch_and_hard_reset_to_remote(module.branch)
                git.discard_untracked()
                action = SyncAction.RESET_WITHOUT_BACKUP

            git.checkout(module.branch)
            git.fetch_and_hard_reset_to_remote(module.branch)
            git.pull(module.branch)

        head, detached = self._checkout_pin(git, module)
        return SyncOutcome(
            module=module.name, action=action, head=head, detached=detached, backup=backup,
        )

    def _backup(self, git: GitBackend, module: Module) -> BackupSnapshot:
        """Move the current state onto a fresh backup branch.

        Uncommitted work (staged, unstaged and untracked, ignored files
        excluded) is committed onto the branch under the synthetic identity.
        """
        now = datetime.now(UTC)
        try:
            source_branch = git.current_branch()
        except GitCommandError as e:
            raise BackupFailed(
                f"cannot determine current branch: {e.message}",
                module=module.name, step="backup",
            ) from e

        name = backup_branch_name(self._settings.backup_prefix, source_branch, now)
        if git.branch_exists(name):
            raise NamingCollision(
                f"backup branch '{name}' already exists", module=module.name, step="backup",
            )

        logger.warning(
            "%s: changes (uncommitted and committed) will be backed up into branch '%s'",
            module.name, name,
        )
        committed = False
        try:
            dirty = git.has_uncommitted_changes()
            git.create_branch(name)
            if dirty:
                git.commit_all(
                    self._settings.identity,
                    f"Backup of {source_branch} at {int(now.timestamp())} - "
                    "staged / unstaged / untracked files (excl. ignored)",
                )
                committed = True
                logger.warning(
                    "%s: uncommitted changes (excl. ignored) were saved on %s",
                    module.name, name,
                )
        except GitCommandError as e:
            raise BackupFailed(
                f"cannot back up {source_branch} to '{name}': {e.message}",
                module=module.name, step="backup",
            ) from e

        return BackupSnapshot(
            branch=name,
            source_branch=source_branch,
            created_at=now,
            committed_changes=committed,
        )

    def _checkout_pin(self, git: GitBackend, module: Module) -> tuple[str, bool]:
        """Check out the tracked branch, then the pin if upstream moved past it."""
        git.checkout(module.branch)
        tip = git.head()
        pinned = git.rev_parse(module.pinned_revision)
        if pinned is None:
            # Let git report the unknown revision
            git.checkout(module.pinned_revision)
            pinned = git.head()

        if tip == pinned:
            return tip, False

        logger.warning(
            "%s: HEAD of %s/%s does not match the pinned commit (wanted %s, upstream %s)",
            module.name, DEFAULT_REMOTE, module.branch, pinned[:12], tip[:12],
        )
        git.checkout(pinned)
        return git.head(), True
