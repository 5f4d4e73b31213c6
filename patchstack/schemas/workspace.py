"""Workspace configuration schemas.

Defines the module descriptors, patch-set layers and global settings
loaded from ``patchstack.toml``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class Identity(BaseModel):
    """Synthetic git identity used for backups, normalization and replay."""

    name: str = Field(default="patchstack", min_length=1, description="User name")
    email: str = Field(default="patchstack@invalid", min_length=1, description="User email")

    def as_env(self) -> dict[str, str]:
        """Return the committer environment for a git subprocess."""
        return {
            "GIT_COMMITTER_NAME": self.name,
            "GIT_COMMITTER_EMAIL": self.email,
        }

    @property
    def signature(self) -> str:
        return f"{self.name} <{self.email}>"


class Settings(BaseModel):
    """Global settings from the ``[settings]`` table."""

    patches_dir: Path = Field(
        default=Path("patches"), description="Root of the exported patch tree"
    )
    backup_prefix: str = Field(
        default="patchstack-backup",
        min_length=1,
        description="Prefix for backup branch names",
    )
    identity: Identity = Field(
        default_factory=Identity, description="Synthetic committer identity"
    )


class Module(BaseModel):
    """A tracked upstream repository synced to a pinned revision."""

    name: str = Field(description="Module key from the workspace file")
    source: str = Field(min_length=1, description="Clone URL or path")
    branch: str = Field(min_length=1, description="Tracked upstream branch")
    pinned_revision: str = Field(
        min_length=1, description="Upstream commit all patch sets are measured from"
    )
    directory: str = Field(
        min_length=1, description="Working-copy directory, relative to the workspace root"
    )
    path: Path = Field(description="Absolute path of the working copy")


class PatchSetLayer(BaseModel):
    """A named patch set and the layer it is stacked on."""

    name: str = Field(description="Patch-set name, also the tag marker name")
    base: str = Field(default="", description="Layer that must be applied first")
    description: str = Field(default="", description="Free-form description")


DEFAULT_LAYERS: tuple[PatchSetLayer, ...] = (
    PatchSetLayer(name="generic", description="Patches shared by every build"),
    PatchSetLayer(name="specific", base="generic"),
    PatchSetLayer(name="specific2", base="generic"),
)


class WorkspaceConfig(BaseModel):
    """Everything loaded from one workspace file."""

    root: Path = Field(description="Directory containing the workspace file")
    settings: Settings = Field(default_factory=Settings)
    modules: dict[str, Module] = Field(default_factory=dict)
    layers: dict[str, PatchSetLayer] = Field(default_factory=dict)

    @property
    def patches_root(self) -> Path:
        """Absolute root of the patch tree."""
        if self.settings.patches_dir.is_absolute():
            return self.settings.patches_dir
        return self.root / self.settings.patches_dir

    def patch_dir(self, module: Module, patch_set: str) -> Path:
        """Directory holding one module's records for one patch set."""
        return self.patches_root / module.directory / patch_set
