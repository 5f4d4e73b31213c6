"""Patch segmenter: carves a module's history into patch-set directories.

Saving commits top to bottom:

    ..U..G....S...
          ........   specific commits  (G, S]
       ...           generic commits   (U, G]

U is the pinned upstream revision, G and S are tag markers. Each tag
becomes one directory of ``NNNN-<subject>.patch`` records.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from patchstack.apply.chain import layers_by_depth
from patchstack.backend.git import DEFAULT_REMOTE, GitBackend
from patchstack.errors import (
    AnchorNotAncestor,
    BackupFailed,
    GitCommandError,
    InvalidModule,
    MissingTag,
)
from patchstack.schemas.results import PatchSetExport, SaveReport, TagMarker
from patchstack.schemas.workspace import Identity, Module, WorkspaceConfig

logger = logging.getLogger(__name__)


class PatchSegmenter:
    """Exports each tagged patch set of a module as a patch series."""

    def __init__(self, config: WorkspaceConfig) -> None:
        self._config = config

    def save(self, module: Module, single_set_only: bool = False) -> SaveReport:
        """Export the module's patch sets.

        Args:
            module: The module to save.
            single_set_only: Only export the most recent tag, measured from
                the pinned revision.

        Returns:
            SaveReport listing exported sets, skipped sets and warnings.

        Raises:
            InvalidModule: The pinned revision is not in the module's history.
            MissingTag: No patch-set tag is reachable from HEAD.
            AnchorNotAncestor: The most recent tag predates the pin.
            BackupFailed: Uncommitted work could not be restored after
                normalization (it is kept in the stash list).
            GitCommandError: A git step failed.
        """
        git = GitBackend(module.path, module=module.name)
        report = SaveReport(module=module.name)
        names = layers_by_depth(self._config.layers)

        anchor = git.rev_parse(module.pinned_revision)
        if anchor is None:
            raise InvalidModule(
                f"pinned revision {module.pinned_revision} is missing from the module "
                "(run update first)",
                module=module.name, step="save",
            )

        tags = git.list_tags_newest_first(names)
        if not tags:
            raise MissingTag(
                f"no patch-set tag ({', '.join(names)}) is reachable from HEAD",
                module=module.name, step="save",
            )
        if not git.is_ancestor(anchor, tags[0].commit):
            raise AnchorNotAncestor(
                f"patch-set tag '{tags[0].name}' is before the upstream commit "
                f"{module.pinned_revision[:12]}",
                module=module.name, step="save",
            )

        # Checked before normalization, which would rewrite those commits
        self._check_upstream_overlap(git, module, anchor, tags[0], report)
        report.normalized = self._normalize(git, module, anchor)

        # Normalization rewrites the tagged commits
        tags = git.list_tags_newest_first(names)
        valid = self._tags_after_anchor(git, anchor, tags, report, module)
        if not valid:
            raise MissingTag(
                "no patch-set tag survived normalization", module=module.name, step="save",
            )

        head = git.head()
        if head != valid[0].commit:
            ahead = git.count_commits(valid[0].commit, head)
            if ahead:
                report.warnings.append(
                    f"{ahead} commit(s) above tag '{valid[0].name}' are not part of any patch set"
                )

        if single_set_only:
            if len(valid) > 1:
                report.warnings.append(
                    f"single-set save folds {', '.join(t.name for t in valid[1:])} "
                    f"into '{valid[0].name}'"
                )
            report.patch_sets.append(self._export(git, module, valid[0], anchor, report))
            return report

        for index, tag in enumerate(valid):
            below = valid[index + 1] if index + 1 < len(valid) else None
            self._check_base(tag, below, report)
            start = below.commit if below else anchor
            report.patch_sets.append(self._export(git, module, tag, start, report))

        return report

    def _check_upstream_overlap(
        self,
        git: GitBackend,
        module: Module,
        anchor: str,
        newest: TagMarker,
        report: SaveReport,
    ) -> None:
        """Warn when patch ranges contain commits the tracked upstream branch also has."""
        upstream = f"{DEFAULT_REMOTE}/{module.branch}"
        if git.rev_parse(upstream) is None:
            return
        total = git.count_commits(anchor, newest.commit)
        own = git.count_commits(anchor, newest.commit, exclude=upstream)
        if own != total:
            report.warnings.append(
                f"{total - own} commit(s) between the pinned commit and '{newest.name}' "
                f"are also on {upstream}; the pin may be out of date"
            )

    def _normalize(self, git: GitBackend, module: Module, anchor: str) -> bool:
        """Force committer metadata over ``(anchor, HEAD]``, preserving uncommitted work."""
        identity = self._config.settings.identity
        with _preserve_worktree(git, module, identity):
            return git.rewrite_committer_metadata(anchor, "HEAD", identity)

    def _tags_after_anchor(
        self,
        git: GitBackend,
        anchor: str,
        tags: list[TagMarker],
        report: SaveReport,
        module: Module,
    ) -> list[TagMarker]:
        """Keep tags descending from the anchor; the first one that does not ends the walk."""
        valid: list[TagMarker] = []
        for tag in tags:
            if git.is_ancestor(anchor, tag.commit):
                valid.append(tag)
                continue
            error = AnchorNotAncestor(
                f"patch-set tag '{tag.name}' is before the upstream commit; skipping it "
                "and any older tags",
                module=module.name, step="save",
            )
            logger.error("%s", error)
            report.errors.append(str(error))
            break
        return valid

    def _check_base(
        self, tag: TagMarker, below: TagMarker | None, report: SaveReport
    ) -> None:
        layer = self._config.layers.get(tag.name)
        if layer is None or not layer.base:
            return
        if below is None or below.name != layer.base:
            found = f"'{below.name}'" if below else "the upstream commit"
            report.warnings.append(
                f"'{tag.name}' is based on '{layer.base}' but is measured from {found}"
            )

    def _export(
        self,
        git: GitBackend,
        module: Module,
        tag: TagMarker,
        start: str,
        report: SaveReport,
    ) -> PatchSetExport:
        """Replace the tag's output directory with a fresh export of ``(start, tag]``."""
        output_dir = self._config.patch_dir(module, tag.name)
        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True)

        files = git.export_patch_series(start, tag.commit, output_dir)
        logger.info(
            "%s: saved %d patch(es) for '%s' to %s", module.name, len(files), tag.name, output_dir
        )
        return PatchSetExport(
            name=tag.name,
            range_start=start,
            range_end=tag.commit,
            files=[Path(f) for f in files],
        )


@contextmanager
def _preserve_worktree(git: GitBackend, module: Module, identity: Identity) -> Iterator[None]:
    """Stash uncommitted tracked changes around a history rewrite.

    The stash is restored whether or not the body raised; a failed restore
    is a BackupFailed and the stash entry stays in the stash list.
    """
    try:
        ref = git.stash_snapshot(identity, f"patchstack: before normalizing {module.name}")
    except GitCommandError as e:
        raise BackupFailed(
            f"cannot stash uncommitted changes: {e.message}", module=module.name, step="normalize",
        ) from e

    try:
        yield
    finally:
        if ref is not None:
            try:
                git.stash_restore(ref)
            except GitCommandError as e:
                raise BackupFailed(
                    f"cannot restore uncommitted changes, they are kept in stash {ref[:12]}: "
                    f"{e.message}",
                    module=module.name, step="normalize",
                ) from e
