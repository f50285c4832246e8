"""Sync state persistence layer.

Stores the whole ``SyncState`` as a single JSON document (by default
``.infoflow_sync/state.json``).  State is small, so every persist is a full
overwrite.

Key design choices:

* **Atomic writes** -- ``persist()`` writes to a temp file then calls
  ``os.replace()`` so a crash never leaves a half-written state file.
* **Additive schema evolution** -- ``load()`` fills missing fields with
  defaults and ignores unknown ones.  States written by the
  InfoFlow Obsidian plugin (camelCase keys, millisecond timestamps) are upgraded
  transparently.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from infoflow_sync.core.time_utils import format_timestamp, from_epoch_ms
from infoflow_sync.sync.models import SyncState

logger = logging.getLogger(__name__)

_LEGACY_KEYS: dict[str, str] = {
    "lastSuccessfulCursor": "last_successful_cursor",
    "inFlightRun": "in_flight_run",
    "itemPathIndex": "item_path_index",
    "reimportQueue": "reimport_queue",
    "deletedResyncQueue": "deleted_resync_queue",
    "lastRun": "last_run",
}


class SyncStateStore:
    """Load and persist the engine's ``SyncState``.

    Args:
        path: Path of the JSON state file.  Parent directories are created
            on first persist.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> SyncState:
        """Load state from disk.

        Returns:
            The persisted state, or a fresh default ``SyncState`` when the
            file does not exist.

        Raises:
            ValueError: If the file exists but is not valid state JSON.
        """
        if not self._path.exists():
            return SyncState()

        with open(self._path, encoding="utf-8") as fh:
            raw = json.load(fh)

        if not isinstance(raw, dict):
            raise ValueError(
                f"State file {self._path} does not contain a JSON object"
            )

        try:
            return SyncState.model_validate(upgrade_legacy_state(raw))
        except ValidationError as exc:
            raise ValueError(
                f"State file {self._path} is malformed: {exc}"
            ) from exc

    def persist(self, state: SyncState) -> None:
        """Persist *state* atomically, replacing the previous file."""
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state.model_dump(mode="json"), fh, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("Persisted sync state to %s", self._path)


# ------------------------------------------------------------------
# Legacy upgrade
# ------------------------------------------------------------------


def upgrade_legacy_state(raw: dict[str, Any]) -> dict[str, Any]:
    """Map a camelCase plugin state onto the current field names.

    Current snake_case keys take precedence when both spellings exist.
    Millisecond timestamps (``startedAtMs``, ``atMs``) become ISO strings.
    """
    data = dict(raw)
    for legacy, current in _LEGACY_KEYS.items():
        if legacy in data:
            value = data.pop(legacy)
            data.setdefault(current, value)

    run = data.get("in_flight_run")
    if isinstance(run, dict):
        run = dict(run)
        if "runId" in run:
            run.setdefault("run_id", run.pop("runId"))
        if "startedAtMs" in run:
            ms = run.pop("startedAtMs")
            if isinstance(ms, (int, float)):
                run.setdefault("started_at", format_timestamp(from_epoch_ms(ms)))
        data["in_flight_run"] = run

    outcome = data.get("last_run")
    if isinstance(outcome, dict):
        outcome = dict(outcome)
        if "atMs" in outcome:
            ms = outcome.pop("atMs")
            if isinstance(ms, (int, float)):
                outcome.setdefault("at", format_timestamp(from_epoch_ms(ms)))
        data["last_run"] = outcome

    # Older states stored queues and the index as null.
    for key in ("reimport_queue", "deleted_resync_queue"):
        if data.get(key) is None:
            data.pop(key, None)
    if data.get("item_path_index") is None:
        data.pop("item_path_index", None)

    return data
