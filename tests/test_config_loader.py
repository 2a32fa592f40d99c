"""Tests for raindrop_notebooklm_sync.config_loader -- hierarchical config loading."""

import textwrap
from pathlib import Path

import pytest

from raindrop_notebooklm_sync.config_loader import (
    CONFIG_ENV_VAR,
    PROJECT_DIR_NAME,
    _interpolate_recursive,
    discover_config_files,
    interpolate_env_vars,
    load_hierarchical_config,
)
from raindrop_notebooklm_sync.errors import ConfigError


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Run every test from an empty CWD and HOME."""
    work = tmp_path / "work"
    home = tmp_path / "home"
    work.mkdir()
    home.mkdir()
    monkeypatch.chdir(work)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    return work, home


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("MY_TOKEN", "abc")
        assert interpolate_env_vars("${MY_TOKEN}") == "abc"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("MY_PORT", "8080")
        assert interpolate_env_vars("${MY_PORT:-3000}") == "8080"

    def test_recursive_walks_nested_structures(self, monkeypatch):
        monkeypatch.setenv("NB_ID", "nb42")
        data = {"notebooklm": {"notebook_id": "${NB_ID}"}, "list": ["${NB_ID}", 3]}
        assert _interpolate_recursive(data) == {
            "notebooklm": {"notebook_id": "nb42"},
            "list": ["nb42", 3],
        }


# -------------------------------------------------------------------------
# Discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_nothing_found(self):
        assert discover_config_files() == []

    def test_project_and_global_found_in_order(self, isolated_dirs):
        work, home = isolated_dirs
        project = _write(work / PROJECT_DIR_NAME / "config.yml", "{}")
        global_ = _write(
            home / ".config" / "raindrop_notebooklm" / "config.yml", "{}"
        )

        found = discover_config_files()

        assert [p.resolve() for p in found] == [project.resolve(), global_.resolve()]

    def test_env_path_comes_first(self, tmp_path, monkeypatch, isolated_dirs):
        work, _ = isolated_dirs
        env_file = _write(tmp_path / "env.yml", "{}")
        _write(work / PROJECT_DIR_NAME / "config.yml", "{}")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(env_file))

        assert discover_config_files()[0] == env_file.resolve()

    def test_explicit_missing_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            discover_config_files(tmp_path / "nope.yml")


# -------------------------------------------------------------------------
# Loading
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_zero_config(self):
        assert load_hierarchical_config() == {}

    def test_project_wins_over_global(self, isolated_dirs):
        work, home = isolated_dirs
        _write(
            home / ".config" / "raindrop_notebooklm" / "config.yml",
            """
            raindrop:
              collection_id: 1
            logging:
              level: DEBUG
            """,
        )
        _write(
            work / PROJECT_DIR_NAME / "config.yml",
            """
            raindrop:
              collection_id: 2
            """,
        )

        config = load_hierarchical_config()

        assert config["raindrop"] == {"collection_id": 2}
        assert config["logging"] == {"level": "DEBUG"}

    def test_interpolation_applied(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RD_TOKEN_FOR_TEST", "tok")
        path = _write(
            tmp_path / "c.yml",
            """
            raindrop:
              token: ${RD_TOKEN_FOR_TEST}
            """,
        )

        assert load_hierarchical_config(path)["raindrop"]["token"] == "tok"

    def test_invalid_yaml_raises(self, tmp_path):
        path = _write(tmp_path / "bad.yml", "raindrop: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_hierarchical_config(path)

    def test_non_dict_root_skipped(self, tmp_path):
        path = _write(tmp_path / "list.yml", "- a\n- b\n")

        assert load_hierarchical_config(path) == {}
