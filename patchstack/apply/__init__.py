"""Patch-set replay (apply).

Resolves a patch set's dependency chain and replays every layer's
records onto the module checkout.
"""

from patchstack.apply.chain import resolve_chain
from patchstack.apply.replayer import PatchReplayer, discover_records

__all__ = ["PatchReplayer", "discover_records", "resolve_chain"]
