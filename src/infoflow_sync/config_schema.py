"""Unified configuration schema for infoflow_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the InfoFlow connection, the vault sync and logging, plus the
adapter that turns the validated config into the ``SyncSettings`` handed to
the engine.

Usage:
    from infoflow_sync.config_schema import build_config, to_sync_settings

    raw = load_hierarchical_config()
    unified = build_config(raw)
    settings = to_sync_settings(unified, cli_overrides={"vault_root": "~/Notes"})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import SyncSettings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class InfoFlowConfig(BaseModel):
    """InfoFlow connection settings and fetch filters.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    endpoint: str | None = Field(
        default=None, description="InfoFlow base URL"
    )
    api_token: str | None = Field(
        default=None, description="Bearer token for the export API"
    )
    from_date: str | None = Field(
        default=None,
        alias="from",
        description="Only export items created on or after this date",
    )
    to_date: str | None = Field(
        default=None,
        alias="to",
        description="Only export items created on or before this date",
    )
    tags: list[str] = Field(
        default_factory=list, description="Only export items with these tags"
    )
    folders: list[str] = Field(
        default_factory=list,
        description="Only export items in these folders",
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True, "populate_by_name": True}


class VaultSyncConfig(BaseModel):
    """Where and how records are written into the vault."""

    vault_root: str | None = Field(
        default=None, description="Vault directory"
    )
    target_folder: str | None = Field(
        default=None, description="Vault folder receiving new notes"
    )
    file_name_template: str | None = Field(
        default=None, description="Mustache template for note file names"
    )
    note_template: str | None = Field(
        default=None, description="Mustache template for the managed region"
    )
    sync_frequency: int | None = Field(
        default=None,
        ge=0,
        le=10080,
        description="Auto-sync interval in minutes (0 disables)",
    )
    resync_deleted: bool = Field(
        default=True,
        description="Re-import records whose notes were deleted locally",
    )
    state_file: str | None = Field(
        default=None,
        description="State file path, relative to the vault unless absolute",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unset keeps the mode default.
        file: Optional extra log file path.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    ``UnifiedConfig()`` (zero-config) is always valid.
    """

    infoflow: InfoFlowConfig = Field(default_factory=InfoFlowConfig)
    sync: VaultSyncConfig = Field(default_factory=VaultSyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from ``load_hierarchical_config()`` output.

    Missing sections get defaults.  Sections set to ``null`` in YAML are
    treated as missing.
    """
    if not raw_data:
        return UnifiedConfig()

    data = {k: v for k, v in raw_data.items() if v is not None}
    return UnifiedConfig(**data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> SyncSettings
# ---------------------------------------------------------------------------


def settings_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten the ``infoflow`` and ``sync`` sections for ``load_settings``."""
    fb: dict[str, Any] = {}
    fb.update(unified.infoflow.model_dump())
    fb.update(unified.sync.model_dump())
    return {k: v for k, v in fb.items() if v is not None}


def to_sync_settings(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> SyncSettings:
    """Resolve ``SyncSettings`` from the YAML config plus CLI overrides.

    Precedence: CLI override > env var > YAML value > built-in default.

    CLI overrides dict keys: endpoint, api_token, vault_root,
    target_folder, insecure, debug.

    Raises:
        ValueError: If a resolved value is invalid.
    """
    # Import here to avoid circular imports
    from .config import load_settings

    overrides = cli_overrides or {}
    return load_settings(
        endpoint=overrides.get("endpoint"),
        api_token=overrides.get("api_token"),
        vault_root=overrides.get("vault_root"),
        target_folder=overrides.get("target_folder"),
        insecure=bool(overrides.get("insecure", False)),
        debug=bool(overrides.get("debug", False)),
        yaml_fallbacks=settings_fallbacks(unified),
    )
