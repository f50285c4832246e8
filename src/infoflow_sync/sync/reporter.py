"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- full post-run summary.
- ``format_state_summary`` -- cursor, lock and queue overview.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncReport, SyncState

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a sync report as human-readable text.

    Per-action sections are only included when they contain at least one
    result.  Unchanged notes are summarised by count only.

    Args:
        report: The completed (or skipped) sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"InfoFlow sync {report.status}"
    tags = []
    if report.auto:
        tags.append("auto")
    if report.forced:
        tags.append("forced reimport")
    if tags:
        header += f" ({', '.join(tags)})"
    lines.append(header)
    if report.run_id:
        lines.append(f"Run: {report.run_id}")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    if report.error:
        lines.append(f"Reason: {report.error}")

    if report.status == "skipped":
        return "\n".join(lines)

    lines.append(
        f"Cursor: {report.cursor_before or '(none)'} -> "
        f"{report.cursor_after or '(none)'}"
    )
    lines.append("")

    lines.append(
        f"Fetched {report.fetched} items, processed {len(report.results)}: "
        f"{len(report.created)} created, {len(report.updated)} updated, "
        f"{len(report.renamed)} renamed, {len(report.errors)} errors"
    )
    lines.append("")

    if report.created:
        lines.append("Created:")
        for r in report.created:
            lines.append(f"  {r.path}")
        lines.append("")

    if report.updated:
        lines.append("Updated:")
        for r in report.updated:
            lines.append(f"  {r.path}")
        lines.append("")

    if report.renamed:
        lines.append("Renamed:")
        for r in report.renamed:
            lines.append(f"  {r.previous_path} -> {r.path}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.title or r.record_id}: {r.error}")
        lines.append("")

    if report.unchanged:
        lines.append(f"Unchanged: {len(report.unchanged)} notes")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_state_summary(state: SyncState) -> str:
    """Format the persisted engine state for status output."""
    lines = [f"Last cursor: {state.last_successful_cursor or '(never synced)'}"]
    if state.last_run:
        line = f"Last run: {state.last_run.status} at {state.last_run.at}"
        if state.last_run.error:
            line += f" ({state.last_run.error})"
        lines.append(line)
    else:
        lines.append("Last run: (none)")
    if state.in_flight_run:
        lines.append(
            f"In flight: {state.in_flight_run.run_id} since "
            f"{state.in_flight_run.started_at} "
            f"({state.in_flight_run.processed} processed)"
        )
    lines.append(f"Indexed notes: {len(state.item_path_index)}")
    if state.reimport_queue:
        lines.append(f"Queued for reimport: {len(state.reimport_queue)}")
    if state.deleted_resync_queue:
        lines.append(
            f"Queued after deletion: {len(state.deleted_resync_queue)}"
        )
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.

    Args:
        report: The sync report.

    Returns:
        Dict with run info, counts, and per-record details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "record_id": r.record_id,
            "title": r.title,
            "path": r.path,
            "action": r.action.value,
            "success": r.success,
        }
        if r.previous_path:
            entry["previous_path"] = r.previous_path
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    data: dict = {
        "run_id": report.run_id,
        "status": report.status,
        "auto": report.auto,
        "forced": report.forced,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "cursor_before": report.cursor_before,
        "cursor_after": report.cursor_after,
        "counts": {
            "fetched": report.fetched,
            "processed": len(report.results),
            "created": len(report.created),
            "updated": len(report.updated),
            "renamed": len(report.renamed),
            "unchanged": len(report.unchanged),
            "errors": len(report.errors),
        },
        "results": results_list,
    }
    if report.error:
        data["error"] = report.error
    return data
