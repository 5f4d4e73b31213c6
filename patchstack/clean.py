"""Module directory removal for the ``clean`` command."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable

from patchstack.schemas.workspace import Module

logger = logging.getLogger(__name__)


def remove_module_directories(modules: Iterable[Module]) -> list[Module]:
    """Delete every existing module working copy.

    Exported patches are left alone.

    Returns:
        The modules whose directory was removed.
    """
    removed: list[Module] = []
    for module in modules:
        if not module.path.exists():
            logger.debug("%s: %s does not exist", module.name, module.path)
            continue
        shutil.rmtree(module.path)
        logger.info("%s: removed %s", module.name, module.path)
        removed.append(module)
    return removed
