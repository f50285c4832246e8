"""Tests for infoflow_sync.config_loader: hierarchical config loading."""

import textwrap

import pytest

from infoflow_sync.config_loader import (
    CONFIG_ENV_VAR,
    IncludedText,
    discover_config_files,
    ensure_config,
    expand_env,
    interpolate_env_vars,
    load_hierarchical_config,
    load_yaml_file,
    merge_sections,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Empty CWD and HOME so no real config files are discovered."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(work)
    return work


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("IF_TOKEN", "secret")
        assert interpolate_env_vars("${IF_TOKEN}") == "secret"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-InfoFlow}") == "InfoFlow"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("IF_FOLDER", "Reading")
        assert interpolate_env_vars("${IF_FOLDER:-InfoFlow}") == "Reading"

    def test_lone_dollar_kept(self):
        assert interpolate_env_vars("pa$$word${") == "pa$$word${"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("IF_TAG", "later")
        data = {"infoflow": {"tags": ["${IF_TAG}", "x"], "count": 3}}
        assert expand_env(data) == {
            "infoflow": {"tags": ["later", "x"], "count": 3}
        }


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestInclude:
    def test_include_relative_file(self, tmp_path):
        (tmp_path / "note.md").write_text("# {{title}}\n")
        config = tmp_path / "config.yml"
        config.write_text("sync:\n  note_template: !include note.md\n")

        data = load_yaml_file(config)

        assert data == {"sync": {"note_template": "# {{title}}\n"}}
        assert isinstance(data["sync"]["note_template"], IncludedText)

    def test_included_text_not_expanded(self, tmp_path, monkeypatch):
        monkeypatch.setenv("IF_COST", "10")
        (tmp_path / "note.md").write_text("Price: ${IF_COST}\n")
        config = tmp_path / "config.yml"
        config.write_text(
            "sync:\n  note_template: !include note.md\n  target_folder: ${IF_COST}\n"
        )

        data = expand_env(load_yaml_file(config))

        assert data["sync"]["note_template"] == "Price: ${IF_COST}\n"
        assert data["sync"]["target_folder"] == "10"

    def test_include_yaml_mapping(self, tmp_path):
        (tmp_path / "infoflow.yml").write_text("endpoint: https://x.example\n")
        config = tmp_path / "config.yml"
        config.write_text("infoflow: !include infoflow.yml\n")

        assert load_yaml_file(config) == {
            "infoflow": {"endpoint": "https://x.example"}
        }

    def test_missing_include(self, tmp_path):
        config = tmp_path / "config.yml"
        config.write_text("sync: !include nope.yml\n")

        with pytest.raises(FileNotFoundError, match="nope.yml"):
            load_yaml_file(config)

    def test_circular_include(self, tmp_path):
        (tmp_path / "a.yml").write_text("x: !include b.yml\n")
        (tmp_path / "b.yml").write_text("y: !include a.yml\n")

        with pytest.raises(ValueError, match="Circular include"):
            load_yaml_file(tmp_path / "a.yml")


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


class TestDiscovery:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []
        assert load_hierarchical_config() == {}

    def test_env_var_path_first(self, isolated, tmp_path, monkeypatch):
        explicit = tmp_path / "explicit.yml"
        explicit.write_text("sync: {}\n")
        project = isolated / ".infoflow_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("sync: {}\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(explicit))

        assert discover_config_files() == [explicit.resolve(), project]

    def test_project_merged_over_global(self, isolated, tmp_path, monkeypatch):
        global_cfg = tmp_path / "home" / ".config" / "infoflow_sync" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text(
            textwrap.dedent(
                """\
                infoflow:
                  endpoint: https://global.example
                logging:
                  level: DEBUG
                """
            )
        )
        project = isolated / ".infoflow_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text(
            "infoflow:\n  api_token: ${IF_TEST_TOKEN:-none}\n"
        )
        monkeypatch.delenv("IF_TEST_TOKEN", raising=False)

        merged = load_hierarchical_config()

        assert merged == {
            "infoflow": {
                "endpoint": "https://global.example",
                "api_token": "none",
            },
            "logging": {"level": "DEBUG"},
        }

    def test_non_dict_root_skipped(self, isolated):
        project = isolated / ".infoflow_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("- just\n- a list\n")

        assert load_hierarchical_config() == {}


class TestEnsureConfig:
    def test_creates_starter(self, isolated):
        path = ensure_config()

        assert path == isolated / ".infoflow_sync" / "config.yml"
        assert "infoflow-sync configuration" in path.read_text()
        assert load_hierarchical_config() == {}

    def test_returns_existing(self, isolated):
        project = isolated / ".infoflow_sync" / "config.yml"
        project.parent.mkdir()
        project.write_text("sync: {}\n")

        assert ensure_config() == project
        assert project.read_text() == "sync: {}\n"


class TestMergeSections:
    def test_section_keys_override(self):
        base = {"sync": {"target_folder": "A", "sync_frequency": 30}}
        override = {"sync": {"target_folder": "B"}}

        assert merge_sections(base, override) == {
            "sync": {"target_folder": "B", "sync_frequency": 30}
        }

    def test_non_mapping_replaces(self):
        assert merge_sections({"sync": {"a": 1}}, {"sync": None}) == {
            "sync": None
        }
