"""Result schemas for update, save and apply.

These are the audit records returned by the engines and rendered by
the CLI.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field

_RECORD_RE = re.compile(r"^(\d{4,})-.*\.patch$")


class TagMarker(BaseModel):
    """A tag pointing at the tip of one cumulative patch set."""

    name: str = Field(description="Tag (and patch-set) name")
    commit: str = Field(description="Peeled commit the tag points at")


class PatchRecord(BaseModel):
    """One exported commit in a patch-set directory."""

    sequence: int = Field(ge=1, description="1-based position in the set")
    path: Path = Field(description="Absolute path of the .patch file")

    @classmethod
    def from_path(cls, path: Path) -> PatchRecord | None:
        """Parse a ``NNNN-<subject>.patch`` file name, or None if it is not one."""
        match = _RECORD_RE.match(path.name)
        if not match or int(match.group(1)) == 0:
            return None
        return cls(sequence=int(match.group(1)), path=path)


class BackupSnapshot(BaseModel):
    """A branch preserving a module's state before a destructive reset."""

    branch: str = Field(description="Backup branch name")
    source_branch: str = Field(description="Branch (or HEAD) the backup was taken from")
    created_at: datetime = Field(description="When the backup was taken")
    committed_changes: bool = Field(
        default=False, description="Whether uncommitted work was committed onto the branch"
    )


class SyncAction(StrEnum):
    """What the synchronizer did to bring a module up to date."""

    CLONED = "cloned"
    BACKED_UP = "backed_up"
    RESET_WITHOUT_BACKUP = "reset_without_backup"


class SyncOutcome(BaseModel):
    """Result of syncing one module."""

    module: str
    action: SyncAction
    head: str = Field(default="", description="Commit checked out after the sync")
    detached: bool = Field(
        default=False, description="Whether the pin is behind the branch tip"
    )
    backup: BackupSnapshot | None = None


class PatchSetExport(BaseModel):
    """One patch set written by save."""

    name: str
    range_start: str = Field(description="Exclusive lower boundary commit")
    range_end: str = Field(description="Inclusive upper boundary commit")
    files: list[Path] = Field(default_factory=list)


class SaveReport(BaseModel):
    """Result of saving one module's patch sets."""

    module: str
    normalized: bool = Field(
        default=False, description="Whether history was rewritten during normalization"
    )
    patch_sets: list[PatchSetExport] = Field(default_factory=list)
    errors: list[str] = Field(
        default_factory=list, description="Patch sets skipped as corrupt"
    )
    warnings: list[str] = Field(default_factory=list)


class AppliedLayer(BaseModel):
    """Records replayed for one layer of a chain."""

    name: str
    records: list[Path] = Field(default_factory=list)
    skipped: bool = Field(
        default=False, description="True when the module has no directory for this layer"
    )


class ApplyReport(BaseModel):
    """Result of replaying a patch-set chain onto one module."""

    module: str
    chain: list[str] = Field(default_factory=list)
    layers: list[AppliedLayer] = Field(default_factory=list)
    head: str = ""


class ModuleFailure(BaseModel):
    """A per-module failure collected by the batch runner."""

    module: str
    step: str
    error: str
