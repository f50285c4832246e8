"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import UnifiedConfig, build_config, to_sync_settings
from ..core.async_utils import init_run_lock, run_sync
from ..logger import apply_logging_config
from ..sync.engine import SyncManager
from ..sync.scheduler import AutoSyncScheduler
from ..sync.status import StatusQueue

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def load_server_settings(config_overrides: dict[str, Any] | None = None):
    """Resolve ``SyncSettings`` from .env, YAML config and CLI overrides.

    Returns:
        Tuple of (settings, description of the contributing sources).

    Raises:
        ValueError: If a resolved value or the YAML config is invalid.
        OSError: If a config file or include cannot be read.
    """
    # .env first so ${VAR} interpolation in YAML can see its values
    load_dotenv()

    sources = []
    unified = UnifiedConfig()
    config_files = discover_config_files()
    if config_files:
        unified = build_config(load_hierarchical_config())
        sources.append(f"config file: {config_files[0]}")
        apply_logging_config(unified.logging.level, unified.logging.file)

    overrides = config_overrides or {}
    settings = to_sync_settings(unified, overrides)

    if overrides:
        sources.append("CLI arguments")
    sources.append("environment variables")
    return settings, ", ".join(sources)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env and YAML config, merge with CLI overrides
    - Build the SyncManager for the configured vault
    - Validate the InfoFlow connection when a token is configured
    - Start the auto-sync scheduler

    On shutdown:
    - Stop the scheduler, waiting for a running sync to finish

    Args:
        config_overrides: Optional dict with config values from CLI
            (endpoint, api_token, vault_root, target_folder, insecure, debug)

    Yields:
        Dict with 'manager', 'scheduler' and 'settings' keys

    Raises:
        RuntimeError: If configuration is invalid or InfoFlow rejects the
            configured token.
    """
    logger.info("MCP server starting...")
    _stderr_print("InfoFlow Sync MCP Server starting...")

    try:
        settings, source_desc = load_server_settings(config_overrides)
    except (ValueError, OSError) as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    logger.info("Configuration loaded from: %s", source_desc)
    _stderr_print(f"  Configuration loaded from: {source_desc}")
    _stderr_print(f"  InfoFlow endpoint: {settings.endpoint}")
    _stderr_print(f"  Vault: {settings.vault_root} -> {settings.target_folder}")

    status = StatusQueue()
    manager = SyncManager.from_settings(settings, status=status)

    if settings.api_token:
        _stderr_print("  Validating InfoFlow connection...")
        try:
            total = await run_sync(manager.remote.validate_connection)
        except Exception as e:
            logger.error("Failed to connect to InfoFlow: %s", e)
            _stderr_print("ERROR: InfoFlow connection failed.")
            _stderr_print(f"  {e}")
            raise RuntimeError(
                f"InfoFlow connection failed: {e}. Check INFOFLOW_ENDPOINT "
                "and INFOFLOW_API_TOKEN."
            ) from e
        logger.info("Connected to InfoFlow (%d items visible)", total)
        _stderr_print(f"  Connected to InfoFlow ({total} items visible)")
    else:
        logger.warning("No InfoFlow API token configured; syncs will fail")
        _stderr_print(
            "  WARNING: INFOFLOW_API_TOKEN is not set. Sync tools will "
            "report a configuration error until it is."
        )

    init_run_lock()
    scheduler = AutoSyncScheduler(
        manager, settings.sync_frequency, status=status
    )
    await scheduler.start()
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"manager": manager, "scheduler": scheduler, "settings": settings}
    finally:
        await scheduler.stop()
        logger.info("MCP server shutting down")
        _stderr_print("InfoFlow Sync MCP Server shutting down.")
