"""Error taxonomy for patchstack.

Every error carries the module it concerns and the step that failed so
batch summaries can name both. Per-module errors are caught by the batch
runner; ``ConfigError`` is raised before any module is touched.
"""

from __future__ import annotations


class PatchStackError(Exception):
    """Base exception for all patchstack errors."""

    def __init__(self, message: str, *, module: str = "", step: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.module = module
        self.step = step

    def __str__(self) -> str:
        prefix = ": ".join(p for p in (self.module, self.step) if p)
        return f"{prefix}: {self.message}" if prefix else self.message


class ConfigError(PatchStackError):
    """Raised when the workspace file is missing or invalid."""


class GitCommandError(PatchStackError):
    """Raised when a git invocation exits non-zero."""

    def __init__(
        self,
        command: list[str],
        returncode: int,
        stderr: str = "",
        *,
        module: str = "",
        step: str = "",
    ) -> None:
        detail = stderr.strip() or "no stderr"
        super().__init__(
            f"'{' '.join(command)}' failed (exit {returncode}): {detail}",
            module=module,
            step=step,
        )
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class PatchApplyFailed(GitCommandError):
    """Raised by the backend when one record of a patch series does not apply."""

    def __init__(self, patch: str, applied: int, cause: GitCommandError) -> None:
        super().__init__(
            cause.command, cause.returncode, cause.stderr,
            module=cause.module, step=cause.step,
        )
        self.patch = patch
        self.applied = applied


class InvalidModule(PatchStackError):
    """The module path exists but is not a git working copy."""


class AnchorNotAncestor(PatchStackError):
    """A patch-set tag does not descend from the pinned upstream revision."""


class MissingTag(PatchStackError):
    """No patch-set tag marker could be found."""


class CloneFailed(PatchStackError):
    """Cloning the module source failed."""


class BackupFailed(PatchStackError):
    """Local state could not be preserved before a destructive step."""


class ApplyConflict(PatchStackError):
    """A patch record no longer applies to the current checkout."""

    def __init__(
        self,
        message: str,
        *,
        module: str = "",
        step: str = "",
        patch_set: str = "",
        record: str = "",
        applied: int = 0,
    ) -> None:
        super().__init__(message, module=module, step=step)
        self.patch_set = patch_set
        self.record = record
        self.applied = applied


class NamingCollision(PatchStackError):
    """A backup branch with the generated name already exists."""
