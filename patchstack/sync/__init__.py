"""Module synchronization with backup-before-destroy."""

from patchstack.sync.engine import SyncEngine

__all__ = ["SyncEngine"]
