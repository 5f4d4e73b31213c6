"""Tests for patchstack.schemas."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from patchstack.schemas import (
    Identity,
    Module,
    PatchRecord,
    Settings,
    SyncAction,
    WorkspaceConfig,
)


class TestPatchRecord:
    @pytest.mark.parametrize(
        ("name", "sequence"),
        [("0001-fix-build.patch", 1), ("0042-x.patch", 42), ("10000-late.patch", 10000)],
    )
    def test_parses_sequence(self, name, sequence):
        record = PatchRecord.from_path(Path("/p") / name)
        assert record is not None
        assert record.sequence == sequence

    @pytest.mark.parametrize(
        "name", ["README.md", "1-short.patch", "0001-fix.diff", "0000-cover-letter.patch"]
    )
    def test_rejects_other_files(self, name):
        assert PatchRecord.from_path(Path("/p") / name) is None


class TestIdentity:
    def test_defaults(self):
        identity = Identity()
        assert identity.signature == "patchstack <patchstack@invalid>"
        assert identity.as_env() == {
            "GIT_COMMITTER_NAME": "patchstack",
            "GIT_COMMITTER_EMAIL": "patchstack@invalid",
        }

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            Identity(name="")


class TestWorkspaceConfig:
    def _module(self) -> Module:
        return Module(
            name="lib",
            source="https://example.org/lib.git",
            branch="main",
            pinned_revision="abc",
            directory="vendor/lib",
            path=Path("/ws/vendor/lib"),
        )

    def test_patch_dir_relative_root(self):
        config = WorkspaceConfig(root=Path("/ws"))
        assert config.patch_dir(self._module(), "generic") == Path(
            "/ws/patches/vendor/lib/generic"
        )

    def test_patch_dir_absolute_root(self):
        config = WorkspaceConfig(root=Path("/ws"), settings=Settings(patches_dir=Path("/srv/p")))
        assert config.patches_root == Path("/srv/p")


def test_sync_action_values():
    assert [a.value for a in SyncAction] == ["cloned", "backed_up", "reset_without_backup"]
