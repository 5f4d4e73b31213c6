"""Workspace registry and TOML configuration loader.

Loads module descriptors, patch-set layers and settings from a
``patchstack.toml`` workspace file. Relative paths resolve against the
directory holding the file.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path, PurePath

from pydantic import ValidationError

from patchstack.apply.chain import resolve_chain
from patchstack.errors import ConfigError
from patchstack.schemas.workspace import (
    DEFAULT_LAYERS,
    Identity,
    Module,
    PatchSetLayer,
    Settings,
    WorkspaceConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "patchstack.toml"
CONFIG_ENV = "PATCHSTACK_CONFIG"

# Keys every [modules.<name>] table must provide
_MODULE_KEYS = ("url", "branch", "commit", "directory")


def default_config_path() -> Path:
    """Workspace file from ``$PATCHSTACK_CONFIG``, else ``./patchstack.toml``."""
    env = os.environ.get(CONFIG_ENV)
    return Path(env) if env else Path.cwd() / DEFAULT_CONFIG_NAME


def load_workspace(config_path: Path | None = None) -> WorkspaceConfig:
    """Load a workspace file.

    Args:
        config_path: Path to the workspace TOML. Defaults to
            ``default_config_path()``.

    Returns:
        WorkspaceConfig with modules in file order.

    Raises:
        ConfigError: If the file is missing, unparsable, or invalid.
    """
    path = config_path or default_config_path()
    if not path.exists():
        raise ConfigError(f"Workspace file not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    root = path.resolve().parent
    settings = _parse_settings(raw.get("settings", {}), path)
    modules = _parse_modules(raw.get("modules"), root, path)
    layers = _parse_layers(raw.get("patchsets"), path)

    return WorkspaceConfig(root=root, settings=settings, modules=modules, layers=layers)


def _parse_settings(section: object, path: Path) -> Settings:
    if not isinstance(section, dict):
        raise ConfigError(f"[settings] must be a table in {path}")
    data = dict(section)
    if "identity" in data:
        raise ConfigError(
            f"Invalid [settings] in {path}: use identity_name / identity_email, not identity"
        )
    try:
        identity = Identity(
            name=data.pop("identity_name", Identity().name),
            email=data.pop("identity_email", Identity().email),
        )
        return Settings(**data, identity=identity)
    except (ValidationError, TypeError) as e:
        raise ConfigError(f"Invalid [settings] in {path}: {e}") from e


def _parse_modules(section: object, root: Path, path: Path) -> dict[str, Module]:
    if not section or not isinstance(section, dict):
        raise ConfigError(f"No [modules] section found in {path}")

    modules: dict[str, Module] = {}
    directories: dict[str, str] = {}
    for key, entry in section.items():
        if not isinstance(entry, dict):
            logger.warning("Ignoring non-table entry modules.%s in %s", key, path)
            continue

        missing = [k for k in _MODULE_KEYS if k not in entry]
        if missing:
            raise ConfigError(f"Module '{key}' in {path} is missing: {', '.join(missing)}")

        directory = str(entry["directory"])
        pure = PurePath(directory)
        if pure.is_absolute() or ".." in pure.parts or directory in ("", "."):
            raise ConfigError(
                f"Module '{key}' directory must be a relative path inside the workspace: "
                f"{directory!r}"
            )
        if directory in directories:
            raise ConfigError(
                f"Modules '{directories[directory]}' and '{key}' share directory {directory!r}"
            )
        directories[directory] = key

        try:
            modules[key] = Module(
                name=key,
                source=str(entry["url"]),
                branch=str(entry["branch"]),
                pinned_revision=str(entry["commit"]),
                directory=directory,
                path=root / directory,
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid module '{key}' in {path}: {e}") from e

    if not modules:
        raise ConfigError(f"No [modules] section found in {path}")
    return modules


def _parse_layers(section: object, path: Path) -> dict[str, PatchSetLayer]:
    if section is None:
        return {layer.name: layer for layer in DEFAULT_LAYERS}
    if not isinstance(section, dict) or not section:
        raise ConfigError(f"[patchsets] in {path} must define at least one patch set")

    layers: dict[str, PatchSetLayer] = {}
    for name, entry in section.items():
        if not isinstance(entry, dict):
            raise ConfigError(f"patchsets.{name} in {path} must be a table")
        try:
            layers[name] = PatchSetLayer(name=name, **entry)
        except (ValidationError, TypeError) as e:
            raise ConfigError(f"Invalid patch set '{name}' in {path}: {e}") from e

    # Unknown bases and cycles surface here rather than mid-apply
    for name in layers:
        resolve_chain(layers, name)
    return layers
