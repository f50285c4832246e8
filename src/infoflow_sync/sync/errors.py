"""Exception types raised by the sync engine.

Configuration errors are raised before any state is touched.  Contention
(``SyncAlreadyRunningError``) is a deferral rather than a failure.
Transport failures surface as ``RemoteSourceError`` with the underlying
exception chained for diagnostics.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync engine errors."""


class SyncConfigurationError(SyncError):
    """Settings are incomplete or invalid (missing token, bad template)."""


class TemplateError(SyncConfigurationError):
    """A filename or note template failed to parse."""


class SyncAlreadyRunningError(SyncError):
    """Another run holds a fresh in-flight lock."""


class RemoteSourceError(SyncError):
    """Fetching records from the remote collection failed."""
