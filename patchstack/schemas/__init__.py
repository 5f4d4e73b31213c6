"""patchstack schema definitions.

All Pydantic v2 models used for configuration and engine results.
"""

from patchstack.schemas.results import (
    AppliedLayer,
    ApplyReport,
    BackupSnapshot,
    ModuleFailure,
    PatchRecord,
    PatchSetExport,
    SaveReport,
    SyncAction,
    SyncOutcome,
    TagMarker,
)
from patchstack.schemas.workspace import (
    DEFAULT_LAYERS,
    Identity,
    Module,
    PatchSetLayer,
    Settings,
    WorkspaceConfig,
)

__all__ = [
    "DEFAULT_LAYERS",
    "AppliedLayer",
    "ApplyReport",
    "BackupSnapshot",
    "Identity",
    "Module",
    "ModuleFailure",
    "PatchRecord",
    "PatchSetExport",
    "PatchSetLayer",
    "SaveReport",
    "Settings",
    "SyncAction",
    "SyncOutcome",
    "TagMarker",
    "WorkspaceConfig",
]
