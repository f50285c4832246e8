"""Core sync engine: incremental pull from InfoFlow into the vault.

The ``SyncManager`` ties together the remote source, the document store,
the state store and the template engine into a complete sync run.  It:

1. Checks preconditions (token, in-flight lock, templates, target folder).
2. Computes the fetch window from the last cursor minus a 5 minute overlap,
   or fetches unfiltered when ids are queued for a forced reimport.
3. Acquires the in-flight lock and persists it.
4. Drains every page from the remote source.
5. Reconciles each record with its note: locate by index, verify the
   frontmatter id, fall back to a vault scan, then create, rename and/or
   rewrite the managed region.
6. Checkpoints progress every 10 records.
7. Advances the cursor, clears the queues and the lock, records the
   outcome and persists.

Error handling is per-record: a single note failure does not abort the run.
Failures before or during the fetch clear the lock, record a failed outcome
and re-raise.

Rename and delete notifications arriving while a run is in progress are
held back and applied to the state after the run's final persist.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Iterable

from infoflow_sync.converters import convert_content
from infoflow_sync.core.time_utils import (
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from infoflow_sync.sync.errors import (
    SyncAlreadyRunningError,
    SyncConfigurationError,
    TemplateError,
)
from infoflow_sync.sync.frontmatter import (
    build_new_document,
    get_record_id,
    upsert_managed_block,
)
from infoflow_sync.sync.models import (
    FetchParams,
    InFlightRun,
    Record,
    RecordResult,
    RunOutcome,
    SyncAction,
    SyncReport,
    SyncState,
)
from infoflow_sync.sync.store import DocumentStore, normalize_path
from infoflow_sync.sync.templating import (
    build_render_context,
    render_file_name,
    render_template,
    validate_template,
)

if TYPE_CHECKING:
    from infoflow_sync.config import SyncSettings
    from infoflow_sync.core.client import RemoteSource
    from infoflow_sync.sync.state import SyncStateStore
    from infoflow_sync.sync.status import StatusQueue

logger = logging.getLogger(__name__)

OVERLAP = timedelta(minutes=5)
LOCK_STALE_AFTER = timedelta(minutes=10)
CHECKPOINT_EVERY = 10
STATUS_EVERY = 25
MAX_COLLISION_SUFFIX = 50

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

StateMutation = Callable[[SyncState], bool]


# ------------------------------------------------------------------
# Cursor helpers
# ------------------------------------------------------------------


def compute_cursor_start(cursor: str | None) -> str | None:
    """Return the fetch lower bound for *cursor*: 5 minutes earlier.

    ``None`` means unbounded.  A cursor that does not parse is passed
    through unchanged.
    """
    if not cursor:
        return None
    parsed = parse_timestamp(cursor)
    if parsed is None:
        return cursor
    return format_timestamp(max(parsed - OVERLAP, _EPOCH))


def compute_next_cursor(
    previous: str | None,
    max_succeeded: datetime | None,
    earliest_failed: datetime | None,
) -> str | None:
    """Cursor to persist after a routine run.

    The newest ``updatedAt`` among successfully reconciled records, capped
    at the oldest ``updatedAt`` among failed ones so a failed record falls
    inside the next run's window.  Never moves backwards.
    """
    if max_succeeded is None:
        return previous
    candidate = max_succeeded
    if earliest_failed is not None and earliest_failed < candidate:
        candidate = earliest_failed
    previous_dt = parse_timestamp(previous)
    if previous_dt is not None and candidate <= previous_dt:
        return previous
    return format_timestamp(candidate)


class SyncManager:
    """Run incremental syncs from InfoFlow into a document store.

    Args:
        remote: Source of remote records.
        store: Document store holding the notes.
        state_store: Loads and persists the ``SyncState``.
        settings: Settings used by ``run()`` and the hooks.
        status: Optional progress message queue.
        clock: Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        remote: RemoteSource,
        store: DocumentStore,
        state_store: SyncStateStore,
        settings: SyncSettings,
        status: StatusQueue | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.remote = remote
        self.store = store
        self.state_store = state_store
        self.settings = settings
        self.status = status
        self.clock = clock

        self._hook_lock = threading.RLock()
        self._running = False
        self._pending_hooks: list[StateMutation] = []
        self._scan_index: dict[str, str] | None = None

    @classmethod
    def from_settings(
        cls, settings: SyncSettings, status: StatusQueue | None = None
    ) -> SyncManager:
        """Build a manager wired to InfoFlow and the on-disk vault."""
        from infoflow_sync.core.client import InfoFlowClient
        from infoflow_sync.sync.state import SyncStateStore
        from infoflow_sync.sync.store import FileSystemDocumentStore

        return cls(
            remote=InfoFlowClient(settings),
            store=FileSystemDocumentStore(settings.vault_root),
            state_store=SyncStateStore(settings.state_path),
            settings=settings,
            status=status,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self, auto: bool = False) -> SyncReport:
        """Load the persisted state and run a sync with ``self.settings``."""
        state = self.state_store.load()
        return self.sync(state, self.settings, auto=auto)

    def sync(
        self, state: SyncState, settings: SyncSettings, auto: bool = False
    ) -> SyncReport:
        """Execute one sync run against *state*.

        *state* is updated in place and persisted after every meaningful
        change.

        Args:
            state: Current engine state.
            settings: Connection, template and filter settings.
            auto: Whether the run was triggered by the timer.

        Returns:
            A ``SyncReport``.  Automatic runs that find a fresh lock return
            a report with status ``skipped``.

        Raises:
            SyncConfigurationError: Missing token or invalid template; no
                state is modified.
            SyncAlreadyRunningError: A manual run found a fresh lock.
            Exception: Whatever the remote source raised; the lock has been
                cleared and the failure recorded.
        """
        now = self.clock()
        started_at = format_timestamp(now)

        if not settings.api_token.strip():
            raise SyncConfigurationError(
                "InfoFlow API token is not set. Set INFOFLOW_API_TOKEN or "
                "add 'api_token' to the infoflow section of config.yml."
            )

        skipped = self._check_lock(state, now, auto)
        if skipped is not None:
            return skipped

        self._validate_templates(settings)
        self._clear_stale_lock(state)

        folder = normalize_path(settings.target_folder)
        if folder != "/" and not self.store.exists(folder):
            self.store.create_folder(folder)

        forced = bool(state.reimport_queue or state.deleted_resync_queue)
        forced_ids = state.forced_ids
        cursor_before = state.last_successful_cursor
        cursor_start = None if forced else compute_cursor_start(cursor_before)

        params = FetchParams(
            from_date=settings.from_date,
            to_date=settings.to_date,
            tags=settings.tags or None,
            folders=settings.folders or None,
            updated_since=cursor_start,
        )

        run_id = self._new_run_id(now)
        with self._hook_lock:
            self._running = True
        self._scan_index = None
        try:
            state.in_flight_run = InFlightRun(
                run_id=run_id,
                started_at=started_at,
                cursor=cursor_start,
                processed=0,
            )
            self.state_store.persist(state)
            self._notify(
                "Auto sync started" if auto else "Sync started", 2, True
            )
            logger.info(
                "Sync %s started (auto=%s, forced=%s, since=%s)",
                run_id,
                auto,
                forced,
                cursor_start or "beginning",
            )

            try:
                records = self.remote.fetch_all_items(
                    params, progress_callback=self._on_fetch_progress
                )
                if forced:
                    records = [r for r in records if r.id in forced_ids]
                results, max_ok, earliest_failed = self._process_records(
                    state, settings, records
                )
            except Exception as exc:
                self._fail_run(state, str(exc) or type(exc).__name__)
                raise

            cursor_after = (
                cursor_before
                if forced
                else compute_next_cursor(cursor_before, max_ok, earliest_failed)
            )
            failures = sum(1 for r in results if not r.success)
            completed_at = format_timestamp(self.clock())

            state.last_successful_cursor = cursor_after
            state.in_flight_run = None
            state.reimport_queue = []
            state.deleted_resync_queue = []
            state.last_run = RunOutcome(
                status="success",
                at=completed_at,
                error=f"{failures} record(s) failed" if failures else None,
            )
            self.state_store.persist(state)
        finally:
            self._scan_index = None
            self._finish_run(state)

        self._notify("Sync complete", 3, True)
        logger.info(
            "Sync %s complete: %d processed, %d failed, cursor %s",
            run_id,
            len(results),
            failures,
            cursor_after,
        )

        return SyncReport(
            run_id=run_id,
            status="success",
            auto=auto,
            forced=forced,
            fetched=len(records),
            cursor_before=cursor_before,
            cursor_after=cursor_after,
            results=results,
            started_at=started_at,
            completed_at=completed_at,
        )

    # ------------------------------------------------------------------
    # Event hooks
    # ------------------------------------------------------------------

    def request_reimport(self, record_ids: Iterable[str]) -> None:
        """Queue records for a forced reimport on the next run."""
        ids = [rid for rid in record_ids if rid]

        def mutation(state: SyncState) -> bool:
            added = [rid for rid in ids if rid not in state.reimport_queue]
            if not added:
                return False
            state.reimport_queue = [*state.reimport_queue, *added]
            return True

        self._apply_hook(mutation)

    def handle_rename(self, old_path: str, new_path: str) -> None:
        """Follow a note (or folder) moved by the user."""
        old = normalize_path(old_path)
        new = normalize_path(new_path)
        if old == new:
            return

        def mutation(state: SyncState) -> bool:
            changed = False
            index = state.item_path_index
            for record_id, path in index.items():
                if path == old:
                    index[record_id] = new
                    changed = True
                elif path.startswith(old + "/"):
                    index[record_id] = new + path[len(old) :]
                    changed = True
            return changed

        self._apply_hook(mutation)

    def handle_delete(self, path: str, record_id: str | None = None) -> None:
        """React to a note deleted by the user.

        The record id comes from the note's frontmatter when the caller
        still has it, otherwise from a reverse index lookup.  The stale
        index entry is dropped, and the record is queued for re-import
        when ``resync_deleted`` is enabled.
        """
        deleted = normalize_path(path)
        resync = self.settings.resync_deleted

        def mutation(state: SyncState) -> bool:
            index = state.item_path_index
            rid = record_id or next(
                (i for i, p in index.items() if p == deleted), None
            )
            if rid is None:
                return False
            changed = False
            if index.get(rid) == deleted:
                del index[rid]
                changed = True
            if resync and rid not in state.deleted_resync_queue:
                state.deleted_resync_queue = [
                    *state.deleted_resync_queue,
                    rid,
                ]
                changed = True
            return changed

        self._apply_hook(mutation)

    def _apply_hook(self, mutation: StateMutation) -> None:
        with self._hook_lock:
            if self._running:
                self._pending_hooks.append(mutation)
                logger.debug("Deferred state change until the run finishes")
                return
            state = self.state_store.load()
            if mutation(state):
                self.state_store.persist(state)

    def _finish_run(self, state: SyncState) -> None:
        """Leave the running phase and replay deferred hook mutations."""
        with self._hook_lock:
            pending, self._pending_hooks = self._pending_hooks, []
            self._running = False
            changed = False
            for mutation in pending:
                changed = mutation(state) or changed
            if changed:
                self.state_store.persist(state)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _check_lock(
        self, state: SyncState, now: datetime, auto: bool
    ) -> SyncReport | None:
        """Enforce the in-flight lock.

        Returns a skipped report for automatic runs blocked by a fresh lock,
        ``None`` when the run may proceed.  A stale lock (10 minutes or
        older, or timestamped in the future) is left in place for
        ``_clear_stale_lock``; *state* is never modified here.
        """
        run = state.in_flight_run
        if run is None:
            return None

        started = parse_timestamp(run.started_at)
        age = now - started if started is not None else None
        if age is not None and timedelta(0) <= age < LOCK_STALE_AFTER:
            message = (
                f"Another sync ({run.run_id}) has been running since "
                f"{run.started_at}"
            )
            if auto:
                logger.info("Skipping auto sync: %s", message)
                return SyncReport(
                    status="skipped",
                    auto=True,
                    cursor_before=state.last_successful_cursor,
                    cursor_after=state.last_successful_cursor,
                    started_at=format_timestamp(now),
                    completed_at=format_timestamp(now),
                    error=message,
                )
            raise SyncAlreadyRunningError(message)
        return None

    def _clear_stale_lock(self, state: SyncState) -> None:
        """Drop a lock that ``_check_lock`` let through (in memory only)."""
        run = state.in_flight_run
        if run is None:
            return
        logger.warning(
            "Clearing stale in-flight run %s (started %s, %d processed)",
            run.run_id,
            run.started_at,
            run.processed,
        )
        state.in_flight_run = None

    def _validate_templates(self, settings: SyncSettings) -> None:
        ok, message = validate_template(settings.file_name_template)
        if not ok:
            raise TemplateError(f"Invalid file name template: {message}")
        ok, message = validate_template(settings.note_template)
        if not ok:
            raise TemplateError(f"Invalid note template: {message}")

    # ------------------------------------------------------------------
    # Record processing
    # ------------------------------------------------------------------

    def _process_records(
        self,
        state: SyncState,
        settings: SyncSettings,
        records: list[Record],
    ) -> tuple[list[RecordResult], datetime | None, datetime | None]:
        results: list[RecordResult] = []
        max_ok: datetime | None = None
        earliest_failed: datetime | None = None
        total = len(records)

        for processed, record in enumerate(records, start=1):
            result = self._reconcile(state, settings, record)
            results.append(result)

            updated = parse_timestamp(record.updated_at)
            if updated is not None:
                if result.success:
                    max_ok = updated if max_ok is None else max(max_ok, updated)
                elif earliest_failed is None or updated < earliest_failed:
                    earliest_failed = updated

            self._checkpoint(state, processed)
            if processed % STATUS_EVERY == 0:
                self._notify(f"Synced {processed}/{total}", 2)

        return results, max_ok, earliest_failed

    def _reconcile(
        self, state: SyncState, settings: SyncSettings, record: Record
    ) -> RecordResult:
        try:
            return self._upsert_record(state, settings, record)
        except Exception as exc:
            logger.error(
                "Error syncing %s (%s): %s", record.id, record.title, exc
            )
            self._notify(f"Failed to sync '{record.title}': {exc}", 5)
            return RecordResult(
                record_id=record.id,
                title=record.title,
                path=state.item_path_index.get(record.id, ""),
                action=SyncAction.SKIP,
                success=False,
                error=str(exc) or type(exc).__name__,
            )

    def _upsert_record(
        self, state: SyncState, settings: SyncSettings, record: Record
    ) -> RecordResult:
        markdown = convert_content(record.content) if record.content else ""
        context = build_render_context(record, markdown)

        base_name = render_file_name(settings.file_name_template, context)
        folder = normalize_path(settings.target_folder)
        desired = normalize_path(f"{folder}/{base_name}.md")
        body = render_template(settings.note_template, context)

        path = self._locate(state, record.id)

        if path is None:
            target = self._find_available_path(desired)
            self.store.create(target, build_new_document(record, body))
            self._index(state, record.id, target)
            logger.debug("Created %s for %s", target, record.id)
            return RecordResult(
                record_id=record.id,
                title=record.title,
                path=target,
                action=SyncAction.CREATE,
                success=True,
                written=True,
            )

        previous: str | None = None
        if path != desired and not self.store.exists(desired):
            self.store.rename(path, desired)
            previous, path = path, desired
            logger.debug("Renamed %s -> %s", previous, path)
        self._index(state, record.id, path)

        existing = self.store.read(path)
        updated = upsert_managed_block(existing, body.strip())
        written = updated != existing
        if written:
            self.store.modify(path, updated)

        if previous:
            action = SyncAction.RENAME
        elif written:
            action = SyncAction.UPDATE
        else:
            action = SyncAction.SKIP
        return RecordResult(
            record_id=record.id,
            title=record.title,
            path=path,
            action=action,
            success=True,
            previous_path=previous,
            written=written,
        )

    def _locate(self, state: SyncState, record_id: str) -> str | None:
        """Find the note for *record_id*.

        Tries the index first and verifies the note's frontmatter still
        carries the id.  On a miss, falls back to scanning every note.
        """
        indexed = state.item_path_index.get(record_id)
        if indexed:
            if self._has_id(indexed, record_id):
                return indexed
            logger.debug("Index entry for %s is stale: %s", record_id, indexed)
            del state.item_path_index[record_id]

        found = self._scan_for(record_id)
        if found is not None:
            state.item_path_index[record_id] = found
        return found

    def _has_id(self, path: str, record_id: str) -> bool:
        if not self.store.exists(path):
            return False
        return get_record_id(self.store.get_frontmatter(path)) == record_id

    def _scan_for(self, record_id: str) -> str | None:
        # One vault scan per run; later misses use the id map it built.
        if self._scan_index is None:
            self._scan_index = {}
            for doc in self.store.list_documents():
                doc_id = get_record_id(self.store.get_frontmatter(doc))
                if doc_id and doc_id not in self._scan_index:
                    self._scan_index[doc_id] = doc
        found = self._scan_index.get(record_id)
        if found is not None and self._has_id(found, record_id):
            return found
        return None

    def _index(self, state: SyncState, record_id: str, path: str) -> None:
        state.item_path_index[record_id] = path
        if self._scan_index is not None:
            self._scan_index[record_id] = path

    def _find_available_path(self, desired: str) -> str:
        """Return *desired*, or the first free ``name (n).md`` variant."""
        if not self.store.exists(desired):
            return desired
        stem = desired[:-3] if desired.lower().endswith(".md") else desired
        for i in range(1, MAX_COLLISION_SUFFIX + 1):
            candidate = f"{stem} ({i}).md"
            if not self.store.exists(candidate):
                return candidate
        return f"{stem} ({int(self.clock().timestamp() * 1000)}).md"

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    def _checkpoint(self, state: SyncState, processed: int) -> None:
        if state.in_flight_run is None or processed % CHECKPOINT_EVERY != 0:
            return
        state.in_flight_run.processed = processed
        self.state_store.persist(state)

    def _fail_run(self, state: SyncState, message: str) -> None:
        logger.error("Sync failed: %s", message)
        state.in_flight_run = None
        state.last_run = RunOutcome(
            status="failed",
            at=format_timestamp(self.clock()),
            error=message,
        )
        self.state_store.persist(state)
        self._notify(f"Sync failed: {message}", 5, True)

    def _on_fetch_progress(self, so_far: int, total: int) -> None:
        self._notify(f"Fetching items... ({so_far}/{total})", 1)

    def _notify(
        self, message: str, timeout_seconds: float, forcing: bool = False
    ) -> None:
        if self.status is not None:
            self.status.enqueue(message, timeout_seconds, forcing)

    def _new_run_id(self, now: datetime) -> str:
        return f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:8]}"
