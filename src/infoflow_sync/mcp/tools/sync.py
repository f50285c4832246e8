"""MCP tool handlers for the InfoFlow sync.

Defines five tools:

- ``infoflow_sync`` -- run a manual sync now.
- ``infoflow_sync_status`` -- show cursor, last outcome, lock and queues.
- ``infoflow_reimport`` -- queue record ids for a forced reimport.
- ``infoflow_note_renamed`` / ``infoflow_note_deleted`` -- vault event
  hooks that keep the item index in step with the user's file moves.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync, run_sync_exclusive
from ...sync.engine import SyncManager
from ...sync.errors import SyncError
from ...sync.reporter import (
    format_state_summary,
    format_sync_report,
    report_to_json,
)
from .errors import build_error_response, translate_sync_error

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="infoflow_sync",
        description=(
            "Pull new and updated InfoFlow items into the vault. Only the "
            "managed region of existing notes is rewritten; user edits "
            "outside it are preserved."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="infoflow_sync_status",
        description=(
            "Show InfoFlow sync state -- last cursor, last run outcome, "
            "in-flight lock, number of indexed notes and queued reimports."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="infoflow_reimport",
        description=(
            "Queue InfoFlow item ids for a forced reimport. The next sync "
            "fetches without a cursor and only processes the queued items."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "ids": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": 1,
                    "description": "InfoFlow item ids to reimport",
                },
                "run_now": {
                    "type": "boolean",
                    "default": False,
                    "description": "Run the sync immediately after queuing",
                },
            },
            "required": ["ids"],
        },
    ),
    types.Tool(
        name="infoflow_note_renamed",
        description=(
            "Tell the sync that a note or folder in the vault was moved, so "
            "the item index follows it instead of recreating the note."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "old_path": {
                    "type": "string",
                    "description": "Vault-relative path before the move",
                },
                "new_path": {
                    "type": "string",
                    "description": "Vault-relative path after the move",
                },
            },
            "required": ["old_path", "new_path"],
        },
    ),
    types.Tool(
        name="infoflow_note_deleted",
        description=(
            "Tell the sync that a note was deleted from the vault. The index "
            "entry is dropped and, when resync_deleted is enabled, the item "
            "is queued so the next sync recreates the note."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Vault-relative path of the deleted note",
                },
                "record_id": {
                    "type": "string",
                    "description": (
                        "InfoFlow item id from the note's frontmatter, if "
                        "known; otherwise it is looked up in the index"
                    ),
                },
            },
            "required": ["path"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Tool handler
# ---------------------------------------------------------------------------


async def handle_sync_tool(
    name: str,
    arguments: dict[str, Any] | None,
    manager: SyncManager,
) -> types.CallToolResult:
    """Dispatch and execute a sync tool.

    Args:
        name: Tool name.
        arguments: Tool arguments dict.
        manager: The server's ``SyncManager``.

    Returns:
        ``CallToolResult`` with tool output or error details.
    """
    args = arguments or {}

    try:
        match name:
            case "infoflow_sync":
                return await _handle_sync(manager)
            case "infoflow_sync_status":
                return await _handle_status(manager)
            case "infoflow_reimport":
                return await _handle_reimport(args, manager)
            case "infoflow_note_renamed":
                return await _handle_note_renamed(args, manager)
            case "infoflow_note_deleted":
                return await _handle_note_deleted(args, manager)
            case _:
                raise ValueError(f"Unknown sync tool: {name}")

    except SyncError as exc:
        logger.warning("Sync tool %s failed: %s", name, exc)
        return translate_sync_error(exc)
    except ValueError as exc:
        return build_error_response(
            "validation_error",
            str(exc),
            "Check parameter values and retry.",
        )
    except Exception as exc:
        logger.exception("Sync tool error: %s", exc)
        return translate_sync_error(exc)


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_sync(manager: SyncManager) -> types.CallToolResult:
    report = await run_sync_exclusive(manager.run, auto=False)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_report(report))],
        structuredContent=report_to_json(report),
    )


async def _handle_status(manager: SyncManager) -> types.CallToolResult:
    state = await run_sync(manager.state_store.load)

    structured: dict[str, Any] = {
        "last_successful_cursor": state.last_successful_cursor,
        "last_run": state.last_run.model_dump() if state.last_run else None,
        "in_flight_run": (
            state.in_flight_run.model_dump() if state.in_flight_run else None
        ),
        "indexed_notes": len(state.item_path_index),
        "reimport_queue": list(state.reimport_queue),
        "deleted_resync_queue": list(state.deleted_resync_queue),
    }
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_state_summary(state))
        ],
        structuredContent=structured,
    )


async def _handle_reimport(
    args: dict[str, Any], manager: SyncManager
) -> types.CallToolResult:
    raw_ids = args.get("ids")
    if not isinstance(raw_ids, list) or not raw_ids:
        raise ValueError("ids must be a non-empty list of item ids")
    ids = [str(i).strip() for i in raw_ids if str(i).strip()]
    if not ids:
        raise ValueError("ids must contain at least one non-empty id")

    await run_sync(manager.request_reimport, ids)
    text = f"Queued {len(ids)} item(s) for reimport."

    if args.get("run_now", False):
        report = await run_sync_exclusive(manager.run, auto=False)
        text += "\n\n" + format_sync_report(report)
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=text)],
            structuredContent={"queued": ids, "report": report_to_json(report)},
        )

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={"queued": ids},
    )


def _require_path(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty vault path")
    return value.strip()


async def _handle_note_renamed(
    args: dict[str, Any], manager: SyncManager
) -> types.CallToolResult:
    old_path = _require_path(args, "old_path")
    new_path = _require_path(args, "new_path")

    await run_sync(manager.handle_rename, old_path, new_path)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text", text=f"Recorded move: {old_path} -> {new_path}"
            )
        ],
        structuredContent={"old_path": old_path, "new_path": new_path},
    )


async def _handle_note_deleted(
    args: dict[str, Any], manager: SyncManager
) -> types.CallToolResult:
    path = _require_path(args, "path")
    record_id = str(args.get("record_id") or "").strip() or None

    await run_sync(manager.handle_delete, path, record_id)
    resync = manager.settings.resync_deleted
    text = f"Recorded deletion of {path}."
    if resync:
        text += " A synced item at that path is recreated on the next sync."
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={"path": path, "record_id": record_id, "resync": resync},
    )
