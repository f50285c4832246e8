"""MCP Server for InfoFlow sync using stdio transport.

This module implements the Model Context Protocol server that lets an
agent trigger and inspect InfoFlow syncs into a Markdown vault, while an
APScheduler timer keeps the vault up to date in the background.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import ensure_config
from ..logger import setup_logging
from ..sync.engine import SyncManager
from ..sync.errors import SyncError
from ..sync.reporter import format_sync_report
from .lifespan import load_server_settings, server_lifespan
from .tools import SYNC_TOOLS, build_error_response, handle_sync_tool

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("infoflow-sync")

# Global manager instance (initialized in lifespan)
_manager: SyncManager | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_manager() -> SyncManager:
    """Get the global SyncManager instance.

    Raises:
        RuntimeError: If the manager is not initialized
    """
    if _manager is None:
        raise RuntimeError(
            "SyncManager not initialized. Server lifespan not started."
        )
    return _manager


def set_manager(manager: SyncManager | None) -> None:
    """Set the global SyncManager instance, or None to clear."""
    global _manager
    _manager = manager


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available sync tools."""
    return SYNC_TOOLS


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    if name not in {tool.name for tool in SYNC_TOOLS}:
        return build_error_response(
            "unknown_tool",
            f"Unknown tool: {name}",
            "Use list_tools to see available tools.",
        )
    return await handle_sync_tool(name, arguments, get_manager())


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Logging goes to a file only (stdout carries the protocol), then the
    lifespan manager builds the sync manager and starts the scheduler.

    Args:
        config_overrides: Optional dict with config values to override
            (endpoint, api_token, vault_root, target_folder, insecure, log_file)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(
        mode="mcp", debug=overrides.get("debug", False), log_file=log_file
    )

    # set_manager() is called here rather than in the lifespan so that
    # `python -m infoflow_sync.mcp.server` updates this module's global
    # and not a second import of it.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_manager(ctx["manager"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="infoflow-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_manager(None)


def run_once(config_overrides: dict | None = None) -> int:
    """Run a single manual sync from the command line.

    Returns:
        Process exit code: 0 on success, 1 on failure.
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)
    setup_logging(
        mode="cli", debug=overrides.get("debug", False), log_file=log_file
    )

    try:
        settings, source_desc = load_server_settings(overrides)
    except (ValueError, OSError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 1
    logger.info("Configuration loaded from: %s", source_desc)

    manager = SyncManager.from_settings(settings)
    try:
        report = manager.run(auto=False)
    except (SyncError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(format_sync_report(report))
    return 1 if report.errors else 0


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="InfoFlow Sync - pull InfoFlow items into a Markdown vault",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the MCP server with config from .env or .infoflow_sync/config.yml
  infoflow-sync

  # Sync a specific vault once and exit
  infoflow-sync --vault ~/Notes --once

  # Write a starter config file
  infoflow-sync --init-config

Note: Without --once this server uses stdio transport for JSON-RPC
communication with MCP clients. All user-facing messages go to stderr.
        """,
    )

    parser.add_argument(
        "--endpoint",
        help="Override InfoFlow endpoint (takes precedence over INFOFLOW_ENDPOINT and config files)",
    )
    parser.add_argument(
        "--api-token",
        help="Override InfoFlow API token"
        " (visible in process list -- prefer INFOFLOW_API_TOKEN env var)",
    )
    parser.add_argument(
        "--vault",
        help="Vault root directory (default: current directory)",
    )
    parser.add_argument(
        "--target-folder",
        help="Folder inside the vault for synced notes (default: InfoFlow)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path (default: /tmp/infoflow-sync.log in server mode)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one sync, print the report and exit",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a starter config file if none exists and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"infoflow-sync version {__version__}",
    )

    args = parser.parse_args()

    if args.init_config:
        path = ensure_config()
        print(f"Config file: {path}", file=sys.stderr)
        sys.exit(0)

    config_overrides = {}
    if args.endpoint:
        config_overrides["endpoint"] = args.endpoint
    if args.api_token:
        config_overrides["api_token"] = args.api_token
    if args.vault:
        config_overrides["vault_root"] = args.vault
    if args.target_folder:
        config_overrides["target_folder"] = args.target_folder
    if args.insecure:
        config_overrides["insecure"] = True
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file

    if config_overrides:
        override_keys = [k for k in config_overrides if k != "api_token"]
        print(
            f"Config overrides from CLI: {', '.join(override_keys) or 'api_token'}",
            file=sys.stderr,
        )

    if args.once:
        sys.exit(run_once(config_overrides))

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
