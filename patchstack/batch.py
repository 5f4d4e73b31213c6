"""Batch runner: applies one operation to every module.

Modules are processed sequentially. A failing module is logged and
recorded; the remaining modules still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from patchstack.errors import PatchStackError
from patchstack.schemas.results import ModuleFailure, SaveReport
from patchstack.schemas.workspace import Module

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchResult(Generic[T]):
    """Per-module results and failures of one batch run."""

    results: dict[str, T] = field(default_factory=dict)
    failures: list[ModuleFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def run_for_modules(
    modules: Iterable[Module],
    operation: Callable[[Module], T],
    step: str,
    on_start: Callable[[Module], None] | None = None,
) -> BatchResult[T]:
    """Run ``operation`` for each module, continuing past per-module failures.

    Args:
        modules: Modules in processing order.
        operation: Callable doing the work for one module.
        step: Name of the operation, used when an error does not name one.
        on_start: Optional callback invoked before each module.

    Returns:
        BatchResult with one entry per successful module and one
        ModuleFailure per failed module.
    """
    batch: BatchResult[T] = BatchResult()
    for module in modules:
        if on_start is not None:
            on_start(module)
        try:
            result = operation(module)
        except PatchStackError as e:
            logger.error("%s: %s failed: %s", module.name, e.step or step, e.message)
            batch.failures.append(
                ModuleFailure(module=module.name, step=e.step or step, error=e.message)
            )
            continue
        except OSError as e:
            logger.error("%s: %s failed: %s", module.name, step, e)
            batch.failures.append(ModuleFailure(module=module.name, step=step, error=str(e)))
            continue

        batch.results[module.name] = result
        if isinstance(result, SaveReport):
            for error in result.errors:
                batch.failures.append(ModuleFailure(module=module.name, step=step, error=error))
    return batch
