"""Version-control backend for module working copies."""

from patchstack.backend.git import GitBackend

__all__ = ["GitBackend"]
