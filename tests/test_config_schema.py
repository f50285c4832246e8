"""Tests for the unified YAML config schema and its SyncSettings adapter."""

import pytest
from pydantic import ValidationError

from infoflow_sync.config_schema import (
    InfoFlowConfig,
    LoggingConfig,
    UnifiedConfig,
    VaultSyncConfig,
    build_config,
    settings_fallbacks,
    to_sync_settings,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "INFOFLOW_ENDPOINT",
        "INFOFLOW_API_TOKEN",
        "INFOFLOW_VAULT_ROOT",
        "INFOFLOW_TARGET_FOLDER",
        "INFOFLOW_SYNC_FREQUENCY",
        "INFOFLOW_RESYNC_DELETED",
        "INFOFLOW_INSECURE",
        "INFOFLOW_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)


class TestSectionModels:
    def test_zero_config_valid(self):
        unified = UnifiedConfig()
        assert unified.infoflow.endpoint is None
        assert unified.sync.resync_deleted is True
        assert unified.logging.level is None

    def test_date_filters_use_wire_aliases(self):
        cfg = InfoFlowConfig.model_validate(
            {"from": "2024-01-01", "to": "2024-02-01"}
        )
        assert cfg.from_date == "2024-01-01"
        assert cfg.to_date == "2024-02-01"

    def test_date_filters_by_field_name(self):
        cfg = InfoFlowConfig(from_date="2024-01-01")
        assert cfg.from_date == "2024-01-01"

    @pytest.mark.parametrize("frequency", [-1, 10081])
    def test_frequency_bounds(self, frequency):
        with pytest.raises(ValidationError):
            VaultSyncConfig(sync_frequency=frequency)

    def test_frozen(self):
        cfg = LoggingConfig(level="INFO")
        with pytest.raises(ValidationError):
            cfg.level = "DEBUG"


class TestBuildConfig:
    def test_empty(self):
        assert build_config({}) == UnifiedConfig()

    def test_null_sections_ignored(self):
        unified = build_config({"infoflow": None, "sync": {"target_folder": "R"}})
        assert unified.infoflow == InfoFlowConfig()
        assert unified.sync.target_folder == "R"

    def test_sections_parsed(self):
        unified = build_config(
            {
                "infoflow": {"api_token": "t", "tags": ["a"]},
                "logging": {"level": "DEBUG", "file": "/tmp/x.log"},
            }
        )
        assert unified.infoflow.api_token == "t"
        assert unified.infoflow.tags == ["a"]
        assert unified.logging.file == "/tmp/x.log"


class TestAdapter:
    def test_settings_fallbacks_drops_unset(self):
        unified = build_config(
            {"infoflow": {"from": "2024-01-01"}, "sync": {"sync_frequency": 5}}
        )
        fb = settings_fallbacks(unified)

        assert fb["from_date"] == "2024-01-01"
        assert fb["sync_frequency"] == 5
        assert "endpoint" not in fb
        assert "vault_root" not in fb

    def test_to_sync_settings_yaml_values(self):
        unified = build_config(
            {
                "infoflow": {"endpoint": "https://yaml.example", "api_token": "y"},
                "sync": {"target_folder": "Reading", "resync_deleted": False},
            }
        )
        settings = to_sync_settings(unified)

        assert settings.endpoint == "https://yaml.example"
        assert settings.api_token == "y"
        assert settings.target_folder == "Reading"
        assert settings.resync_deleted is False

    def test_cli_overrides_win(self):
        unified = build_config({"sync": {"vault_root": "/yaml"}})
        settings = to_sync_settings(
            unified, cli_overrides={"vault_root": "/cli", "insecure": True}
        )

        assert settings.vault_root == "/cli"
        assert settings.insecure is True

    def test_invalid_endpoint_raises(self):
        unified = build_config({"infoflow": {"endpoint": "not-a-url"}})
        with pytest.raises(ValueError, match="Invalid InfoFlow endpoint"):
            to_sync_settings(unified)
