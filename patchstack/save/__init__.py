"""Patch-set export (save)."""

from patchstack.save.segmenter import PatchSegmenter

__all__ = ["PatchSegmenter"]
