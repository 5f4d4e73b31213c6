"""Patch-set dependency chains.

Each layer names at most one base layer. The chain of a layer is the
chain of its base followed by the layer itself, so applying ``specific``
means applying ``generic`` first.
"""

from __future__ import annotations

from collections.abc import Mapping

from patchstack.errors import ConfigError
from patchstack.schemas.workspace import PatchSetLayer


def resolve_chain(layers: Mapping[str, PatchSetLayer], name: str) -> list[str]:
    """Return the layers to apply for ``name``, base first.

    Raises:
        ConfigError: If ``name`` or one of its bases is not configured, or
            the bases form a cycle.
    """
    if name not in layers:
        known = ", ".join(layers) or "none"
        raise ConfigError(f"Unknown patch set '{name}' (configured: {known})")

    chain: list[str] = []
    current = name
    while current:
        if current in chain:
            cycle = " -> ".join([*reversed(chain), current])
            raise ConfigError(f"Patch-set bases form a cycle: {cycle}")
        layer = layers.get(current)
        if layer is None:
            raise ConfigError(f"Patch set '{chain[-1]}' has unknown base '{current}'")
        chain.append(current)
        current = layer.base
    chain.reverse()
    return chain


def layer_depth(layers: Mapping[str, PatchSetLayer], name: str) -> int:
    """Number of bases below ``name`` (0 for a root layer)."""
    return len(resolve_chain(layers, name)) - 1


def layers_by_depth(layers: Mapping[str, PatchSetLayer]) -> list[str]:
    """All layer names, root layers first, config order within a depth."""
    return sorted(layers, key=lambda n: layer_depth(layers, n))
