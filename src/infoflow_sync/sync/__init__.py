"""Incremental InfoFlow-to-vault sync engine.

Pulls records from InfoFlow and reconciles each one with a Markdown note
in the vault.  Only the region between the managed markers is rewritten;
the user owns everything else in the note.

Modules:

- ``engine``      -- ``SyncManager``: cursor, lock, forced reimport and
  per-record reconciliation.
- ``state``       -- ``SyncStateStore``: atomic JSON persistence.
- ``store``       -- ``FileSystemDocumentStore``: vault file operations.
- ``templating``  -- Mustache-style note and file-name templates.
- ``frontmatter`` -- YAML frontmatter and managed-block handling.
- ``status``      -- ``StatusQueue``: short-lived progress messages.
- ``scheduler``   -- ``AutoSyncScheduler``: periodic automatic runs.
- ``reporter``    -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from infoflow_sync.config import load_settings
    from infoflow_sync.sync import SyncManager, format_sync_report

    settings = load_settings(vault_root="~/Notes")
    manager = SyncManager.from_settings(settings)
    print(format_sync_report(manager.run()))
"""

from .engine import SyncManager, compute_cursor_start, compute_next_cursor
from .errors import (
    RemoteSourceError,
    SyncAlreadyRunningError,
    SyncConfigurationError,
    SyncError,
    TemplateError,
)
from .models import (
    FetchParams,
    Record,
    RecordResult,
    SyncAction,
    SyncReport,
    SyncState,
)
from .reporter import format_state_summary, format_sync_report, report_to_json
from .state import SyncStateStore
from .status import StatusQueue
from .store import FileSystemDocumentStore

__all__ = [
    "FetchParams",
    "FileSystemDocumentStore",
    "Record",
    "RecordResult",
    "RemoteSourceError",
    "StatusQueue",
    "SyncAction",
    "SyncAlreadyRunningError",
    "SyncConfigurationError",
    "SyncError",
    "SyncManager",
    "SyncReport",
    "SyncState",
    "SyncStateStore",
    "TemplateError",
    "compute_cursor_start",
    "compute_next_cursor",
    "format_state_summary",
    "format_sync_report",
    "report_to_json",
]
