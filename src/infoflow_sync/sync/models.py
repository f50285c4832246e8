"""Pydantic models for the InfoFlow sync engine.

Defines the data contracts used across the sync modules:

- ``Note``, ``ItemMetadata``, ``Record``: read-only projection of a remote
  InfoFlow item (accepts the camelCase wire names).
- ``FetchParams``: filters passed to the remote source.
- ``InFlightRun``, ``RunOutcome``, ``SyncState``: the durable engine state.
- ``SyncAction``, ``RecordResult``, ``SyncReport``: per-record outcomes and
  the aggregate report for a run.

Remote records and reports are frozen.  ``SyncState`` is mutable so the
engine can update it in place between persists.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Remote records
# ---------------------------------------------------------------------------


class Note(BaseModel):
    """A highlight or annotation attached to a record."""

    id: str | None = None
    content: str = ""
    quoted_text: str | None = Field(default=None, alias="quotedText")
    created_at: str | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore"
    )

    @field_validator("content", mode="before")
    @classmethod
    def _null_content(cls, value: Any) -> Any:
        return "" if value is None else value


class ItemMetadata(BaseModel):
    """Optional descriptive metadata of a record."""

    source: str | None = None
    author: str | None = None
    reading_progress: float | None = Field(
        default=None, alias="readingProgress"
    )

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore"
    )


class Record(BaseModel):
    """A remote InfoFlow item.

    Attributes:
        id: Stable, globally unique identifier.
        title: Item title.
        item_type: Item kind (``web_page``, ``pdf``, ``video`` ...).
        url: Source URL, if any.
        content: HTML or plain-text body, if any.
        tags: Ordered tag names.
        notes: Ordered highlights/notes.
        created_at: ISO 8601 creation timestamp.
        updated_at: ISO 8601 last-update timestamp.
    """

    id: str
    title: str = ""
    item_type: str = Field(default="", alias="itemType")
    url: str | None = None
    content: str | None = None
    item_note: str | None = Field(default=None, alias="itemNote")
    folder_name: str | None = Field(default=None, alias="folderName")
    preview_image_url: str | None = Field(
        default=None, alias="previewImageUrl"
    )
    notes: list[Note] = []
    tags: list[str] = []
    metadata: ItemMetadata | None = None
    created_at: str = Field(default="", alias="createdAt")
    updated_at: str = Field(default="", alias="updatedAt")

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore"
    )

    @field_validator("notes", "tags", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator(
        "title", "item_type", "created_at", "updated_at", mode="before"
    )
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def author(self) -> str | None:
        """Author from the record metadata, if present."""
        return self.metadata.author if self.metadata else None


class FetchParams(BaseModel):
    """Filters accepted by the remote record enumeration.

    ``updated_since`` is the cursor lower bound; ``None`` means unbounded.
    """

    from_date: str | None = None
    to_date: str | None = None
    tags: list[str] | None = None
    folders: list[str] | None = None
    updated_since: str | None = None

    model_config = ConfigDict(frozen=True)

    def to_query(self) -> dict[str, str | list[str]]:
        """Return the non-empty filters as InfoFlow query parameters."""
        query: dict[str, str | list[str]] = {}
        if self.from_date:
            query["from"] = self.from_date
        if self.to_date:
            query["to"] = self.to_date
        if self.tags:
            query["tags"] = list(self.tags)
        if self.folders:
            query["folders"] = list(self.folders)
        if self.updated_since:
            query["updatedAt"] = self.updated_since
        return query


# ---------------------------------------------------------------------------
# Durable state
# ---------------------------------------------------------------------------


class InFlightRun(BaseModel):
    """Advisory lock held while a run executes.

    Attributes:
        run_id: Unique id of the run holding the lock.
        started_at: ISO 8601 timestamp when the lock was acquired.
        cursor: Fetch lower bound used by the run (``None`` if unbounded).
        processed: Records processed at the last checkpoint.
    """

    run_id: str
    started_at: str
    cursor: str | None = None
    processed: int = 0

    model_config = ConfigDict(extra="ignore")


class RunOutcome(BaseModel):
    """Diagnostic outcome of the last run."""

    status: str
    at: str
    error: str | None = None

    model_config = ConfigDict(extra="ignore")


class SyncState(BaseModel):
    """Full durable state of the engine.

    Every field has a default so older persisted states load cleanly.
    """

    version: int = 1
    last_successful_cursor: str | None = None
    in_flight_run: InFlightRun | None = None
    item_path_index: dict[str, str] = {}
    reimport_queue: list[str] = []
    deleted_resync_queue: list[str] = []
    last_run: RunOutcome | None = None

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    @property
    def forced_ids(self) -> set[str]:
        """Union of the reimport and deleted-resync queues."""
        return set(self.reimport_queue) | set(self.deleted_resync_queue)


# ---------------------------------------------------------------------------
# Run results
# ---------------------------------------------------------------------------


class SyncAction(str, Enum):
    """What happened to a record's document during a run."""

    CREATE = "create"
    UPDATE = "update"
    RENAME = "rename"
    SKIP = "skip"


class RecordResult(BaseModel):
    """Outcome of reconciling one record.

    Attributes:
        record_id: Remote record id.
        title: Record title (for reporting).
        path: Document path after reconciliation (empty on early failure).
        action: Action performed.
        success: Whether reconciliation succeeded.
        error: Error message if it failed.
        previous_path: Old path when the document was renamed.
        written: Whether the document body was created or modified.
    """

    record_id: str
    title: str = ""
    path: str = ""
    action: SyncAction
    success: bool
    error: str | None = None
    previous_path: str | None = None
    written: bool = False

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one sync run.

    Attributes:
        run_id: Id of the run (empty when skipped before locking).
        status: ``success``, ``failed`` or ``skipped``.
        auto: Whether the run was triggered by the timer.
        forced: Whether the run was a forced reimport.
        fetched: Number of records returned by the remote source.
        cursor_before: Cursor at the start of the run.
        cursor_after: Cursor persisted at the end of the run.
        results: Per-record outcomes in processing order.
        started_at: ISO 8601 start timestamp.
        completed_at: ISO 8601 end timestamp.
        error: Failure or skip reason.
    """

    run_id: str = ""
    status: str
    auto: bool = False
    forced: bool = False
    fetched: int = 0
    cursor_before: str | None = None
    cursor_after: str | None = None
    results: list[RecordResult] = []
    started_at: str
    completed_at: str | None = None
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def created(self) -> list[RecordResult]:
        """Results where a new document was created."""
        return [
            r
            for r in self.results
            if r.success and r.action == SyncAction.CREATE
        ]

    @property
    def updated(self) -> list[RecordResult]:
        """Results where the managed region was rewritten in place."""
        return [
            r
            for r in self.results
            if r.success and r.action == SyncAction.UPDATE
        ]

    @property
    def renamed(self) -> list[RecordResult]:
        """Results where the document moved to a new path."""
        return [
            r
            for r in self.results
            if r.success and r.action == SyncAction.RENAME
        ]

    @property
    def unchanged(self) -> list[RecordResult]:
        """Results where nothing had to be written."""
        return [
            r
            for r in self.results
            if r.success and r.action == SyncAction.SKIP
        ]

    @property
    def errors(self) -> list[RecordResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def writes(self) -> int:
        """Number of documents created, modified or moved."""
        return sum(
            1
            for r in self.results
            if r.success and (r.written or r.previous_path)
        )

    def summary(self) -> str:
        """Format a short multi-line summary of the run."""
        mode = "auto" if self.auto else "manual"
        if self.forced:
            mode += ", forced reimport"
        lines = [
            f"Sync run {self.run_id or '-'} ({mode}): {self.status}",
            f"  Fetched:   {self.fetched}",
            f"  Created:   {len(self.created)}",
            f"  Updated:   {len(self.updated)}",
            f"  Renamed:   {len(self.renamed)}",
            f"  Unchanged: {len(self.unchanged)}",
            f"  Errors:    {len(self.errors)}",
        ]
        return "\n".join(lines)
