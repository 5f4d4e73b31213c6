"""Tests for patchstack.registry: workspace TOML loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from patchstack.errors import ConfigError
from patchstack.registry import default_config_path, load_workspace
from patchstack.schemas.workspace import Module

_EXAMPLE = Path(__file__).parent.parent / "patchstack.example.toml"

_MODULE = """
[modules.lib]
url = "https://example.org/lib.git"
branch = "main"
commit = "0123456789abcdef0123456789abcdef01234567"
directory = "lib"
"""


def _write(tmp_path, content: str) -> Path:
    path = tmp_path / "patchstack.toml"
    path.write_text(content)
    return path


class TestLoadWorkspace:
    def test_loads_example(self):
        config = load_workspace(_EXAMPLE)
        assert list(config.modules) == ["gitignore", "cheatsheet"]
        module = config.modules["gitignore"]
        assert isinstance(module, Module)
        assert module.source == "https://github.com/github/gitignore.git"
        assert module.pinned_revision == "57208bef833f2f8286cd6dae5a2eeb3d314e3b31"
        assert module.path == _EXAMPLE.resolve().parent / "github-ignore"
        assert list(config.layers) == ["generic", "specific", "specific2"]

    def test_missing_file_raises(self):
        with pytest.raises(ConfigError, match="not found"):
            load_workspace(Path("/nonexistent/patchstack.toml"))

    def test_invalid_toml_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_workspace(_write(tmp_path, "[modules\n"))

    def test_no_modules_section_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="No \\[modules\\] section"):
            load_workspace(_write(tmp_path, '[settings]\npatches_dir = "out"\n'))

    def test_missing_module_keys(self, tmp_path):
        content = '[modules.lib]\nurl = "x"\nbranch = "main"\n'
        with pytest.raises(ConfigError, match="missing: commit, directory"):
            load_workspace(_write(tmp_path, content))

    @pytest.mark.parametrize("directory", ["/abs/lib", "../outside", "."])
    def test_directory_must_stay_inside_workspace(self, tmp_path, directory):
        content = _MODULE.replace('directory = "lib"', f'directory = "{directory}"')
        with pytest.raises(ConfigError, match="relative path"):
            load_workspace(_write(tmp_path, content))

    def test_duplicate_directory(self, tmp_path):
        content = _MODULE + _MODULE.replace("[modules.lib]", "[modules.other]")
        with pytest.raises(ConfigError, match="share directory"):
            load_workspace(_write(tmp_path, content))

    def test_empty_field_rejected(self, tmp_path):
        content = _MODULE.replace('branch = "main"', 'branch = ""')
        with pytest.raises(ConfigError, match="Invalid module 'lib'"):
            load_workspace(_write(tmp_path, content))

    def test_default_settings_and_layers(self, tmp_path):
        config = load_workspace(_write(tmp_path, _MODULE))
        assert config.settings.backup_prefix == "patchstack-backup"
        assert config.settings.identity.name == "patchstack"
        assert config.patches_root == tmp_path.resolve() / "patches"
        assert config.layers["specific"].base == "generic"

    def test_custom_settings(self, tmp_path):
        content = """
[settings]
patches_dir = "out/patches"
backup_prefix = "keep"
identity_name = "ci"
identity_email = "ci@example.org"
""" + _MODULE
        config = load_workspace(_write(tmp_path, content))
        assert config.settings.identity.signature == "ci <ci@example.org>"
        assert config.settings.backup_prefix == "keep"
        module = config.modules["lib"]
        assert config.patch_dir(module, "generic") == (
            tmp_path.resolve() / "out" / "patches" / "lib" / "generic"
        )

    def test_empty_identity_name_rejected(self, tmp_path):
        content = '[settings]\nidentity_name = ""\n' + _MODULE
        with pytest.raises(ConfigError, match="Invalid \\[settings\\]"):
            load_workspace(_write(tmp_path, content))

    def test_identity_table_key_rejected(self, tmp_path):
        content = '[settings]\nidentity = "ci"\n' + _MODULE
        with pytest.raises(ConfigError, match="identity_name"):
            load_workspace(_write(tmp_path, content))

    def test_custom_layers(self, tmp_path):
        content = _MODULE + """
[patchsets.base]
[patchsets.board]
base = "base"
[patchsets.product]
base = "board"
description = "Product tweaks"
"""
        config = load_workspace(_write(tmp_path, content))
        assert list(config.layers) == ["base", "board", "product"]
        assert config.layers["product"].description == "Product tweaks"

    def test_unknown_base_raises(self, tmp_path):
        content = _MODULE + '[patchsets.specific]\nbase = "generic"\n'
        with pytest.raises(ConfigError, match="unknown base 'generic'"):
            load_workspace(_write(tmp_path, content))

    def test_cyclic_bases_raise(self, tmp_path):
        content = _MODULE + '[patchsets.a]\nbase = "b"\n[patchsets.b]\nbase = "a"\n'
        with pytest.raises(ConfigError, match="cycle"):
            load_workspace(_write(tmp_path, content))

    def test_empty_patchsets_raises(self, tmp_path):
        content = _MODULE + "[patchsets]\n"
        with pytest.raises(ConfigError, match="at least one"):
            load_workspace(_write(tmp_path, content))


class TestDefaultConfigPath:
    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PATCHSTACK_CONFIG", str(tmp_path / "ws.toml"))
        assert default_config_path() == tmp_path / "ws.toml"

    def test_cwd_default(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert default_config_path() == tmp_path / "patchstack.toml"
