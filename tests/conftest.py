"""Shared pytest fixtures for infoflow-sync tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from infoflow_sync.config import SyncSettings
from infoflow_sync.sync.models import FetchParams, Record


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live InfoFlow account",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live InfoFlow account"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRemote:
    """In-memory ``RemoteSource``.

    Honours the ``updated_since`` filter like InfoFlow does and records the
    params of every call.
    """

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self.records: list[dict[str, Any]] = list(records or [])
        self.calls: list[FetchParams] = []
        self.error: Exception | None = None

    def fetch_all_items(self, params, progress_callback=None) -> list[Record]:
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        items = [Record.model_validate(r) for r in self.records]
        if params.updated_since:
            items = [i for i in items if i.updated_at >= params.updated_since]
        if progress_callback is not None:
            progress_callback(len(items), len(items))
        return items

    def upsert(self, raw: dict[str, Any]) -> None:
        self.records = [r for r in self.records if r["id"] != raw["id"]]
        self.records.append(raw)


class FakeClock:
    """Settable clock returning aware UTC datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_record(record_id: str = "abc123", **overrides: Any) -> dict[str, Any]:
    """Raw InfoFlow item as returned by the export API."""
    raw: dict[str, Any] = {
        "id": record_id,
        "title": f"Article {record_id}",
        "itemType": "web_page",
        "url": f"https://example.com/{record_id}",
        "content": "<p>Hello <strong>world</strong></p>",
        "tags": ["reading"],
        "notes": [],
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": "2024-01-02T00:00:00.000Z",
    }
    raw.update(overrides)
    return raw


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """Empty vault directory."""
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def settings(vault: Path) -> SyncSettings:
    """Settings pointing at the temporary vault."""
    return SyncSettings(
        endpoint="https://infoflow.example.com",
        api_token="test-token",
        vault_root=str(vault),
        target_folder="InfoFlow",
        file_name_template="{{{title}}}",
    )


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_manager():
    """MagicMock standing in for a SyncManager."""
    from infoflow_sync.sync.engine import SyncManager

    return MagicMock(spec=SyncManager)


@pytest.fixture
def sync_manager(settings, fake_remote, clock):
    """Real SyncManager over the temporary vault and the fake remote."""
    from infoflow_sync.sync.engine import SyncManager
    from infoflow_sync.sync.state import SyncStateStore
    from infoflow_sync.sync.store import FileSystemDocumentStore

    return SyncManager(
        remote=fake_remote,
        store=FileSystemDocumentStore(settings.vault_root),
        state_store=SyncStateStore(settings.state_path),
        settings=settings,
        clock=clock,
    )
