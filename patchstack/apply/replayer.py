"""Patch replayer: applies a patch-set chain onto a module checkout.

Every layer of the chain is replayed in order, each as its records in
ascending sequence. A record that no longer applies stops the replay;
records applied before it stay committed for manual inspection.
"""

from __future__ import annotations

import logging
from pathlib import Path

from patchstack.apply.chain import resolve_chain
from patchstack.backend.git import GitBackend
from patchstack.errors import ApplyConflict, InvalidModule, PatchApplyFailed
from patchstack.schemas.results import AppliedLayer, ApplyReport, PatchRecord
from patchstack.schemas.workspace import Module, WorkspaceConfig

logger = logging.getLogger(__name__)


def discover_records(directory: Path) -> list[PatchRecord]:
    """Return the patch records in ``directory`` ordered by sequence number.

    Files that are not ``NNNN-*.patch`` are ignored. A gap in the sequence
    is logged; the records are still returned in order.
    """
    records = [
        record
        for path in directory.iterdir()
        if path.is_file() and (record := PatchRecord.from_path(path)) is not None
    ]
    records.sort(key=lambda r: r.sequence)

    expected = list(range(1, len(records) + 1))
    if [r.sequence for r in records] != expected:
        logger.warning("Patch records in %s are not numbered 1..%d", directory, len(records))
    return records


class PatchReplayer:
    """Replays exported patch sets onto module working copies."""

    def __init__(self, config: WorkspaceConfig) -> None:
        self._config = config

    def chain(self, name: str) -> list[str]:
        """Layers to apply for ``name``, base first."""
        return resolve_chain(self._config.layers, name)

    def apply(self, module: Module, name: str) -> ApplyReport:
        """Apply ``name`` and every layer it is based on to ``module``.

        After each layer the layer's tag marker is moved to HEAD so a later
        save can find the layer boundaries again.

        Returns:
            ApplyReport listing the records applied per layer.

        Raises:
            ConfigError: ``name`` is not a configured patch set.
            InvalidModule: The module is not a git working copy.
            ApplyConflict: A record did not apply.
        """
        chain = self.chain(name)
        git = GitBackend(module.path, module=module.name)
        if not git.is_repository():
            raise InvalidModule(
                f"{module.path} is not a git repository (run update first)",
                module=module.name, step="apply",
            )

        report = ApplyReport(module=module.name, chain=chain)
        for layer in chain:
            directory = self._config.patch_dir(module, layer)
            if not directory.is_dir():
                logger.info("%s: no '%s' patches saved, skipping", module.name, layer)
                report.layers.append(AppliedLayer(name=layer, skipped=True))
                continue

            records = discover_records(directory)
            paths = [r.path for r in records]
            logger.info("%s: applying %d '%s' patch(es)", module.name, len(paths), layer)
            try:
                git.apply_patch_series(paths, self._config.settings.identity)
            except PatchApplyFailed as e:
                raise ApplyConflict(
                    f"'{Path(e.patch).name}' of '{layer}' does not apply "
                    f"({e.applied} of {len(paths)} applied): {e.stderr.strip() or 'no stderr'}",
                    module=module.name,
                    step=f"apply {layer}",
                    patch_set=layer,
                    record=e.patch,
                    applied=e.applied,
                ) from e

            git.tag(layer)
            report.layers.append(AppliedLayer(name=layer, records=paths))

        report.head = git.head()
        return report
