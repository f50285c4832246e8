from unittest.mock import Mock, patch

import pytest
import requests

from infoflow_sync.config import SyncSettings
from infoflow_sync.core.client import EXPORT_PATH, InfoFlowClient
from infoflow_sync.sync.errors import RemoteSourceError
from infoflow_sync.sync.models import FetchParams, Record

from conftest import make_record

_PATCH_GET = "infoflow_sync.core.client.requests.Session.get"


def _response(payload=None, status=200):
    response = Mock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            response=response
        )
    return response


def _page(items, page_has_next=False, total=None):
    return {
        "items": items,
        "pagination": {
            "hasNextPage": page_has_next,
            "totalItems": total if total is not None else len(items),
        },
    }


@pytest.fixture
def client(settings):
    return InfoFlowClient(settings)


# Session setup
def test_export_url_construction():
    client = InfoFlowClient(SyncSettings(endpoint="https://infoflow.example.com/"))
    assert client.export_url == f"https://infoflow.example.com{EXPORT_PATH}"


def test_session_headers_and_verify(client):
    session = client._get_session()
    assert session.headers["Authorization"] == "Bearer test-token"
    assert session.headers["Accept"] == "application/json"
    assert session.verify is True
    assert client._get_session() is session


def test_session_insecure():
    client = InfoFlowClient(SyncSettings(insecure=True))
    assert client._get_session().verify is False


# fetch_items
@patch(_PATCH_GET)
def test_fetch_items_sends_filters(mock_get, client):
    mock_get.return_value = _response(_page([]))
    params = FetchParams(
        from_date="2024-01-01",
        tags=["a", "b"],
        updated_since="2024-02-01T00:00:00.000Z",
    )

    client.fetch_items(params, page=2, per_page=50)

    query = mock_get.call_args.kwargs["params"]
    assert query == {
        "from": "2024-01-01",
        "tags": ["a", "b"],
        "updatedAt": "2024-02-01T00:00:00.000Z",
        "page": 2,
        "perPage": 50,
    }
    assert mock_get.call_args.args[0] == client.export_url
    assert mock_get.call_args.kwargs["timeout"] == client.timeout


@patch(_PATCH_GET)
def test_fetch_items_unauthorized(mock_get, client):
    mock_get.return_value = _response({"error": "bad token"}, status=401)

    with pytest.raises(RemoteSourceError, match=r"HTTP 401.*check the API token"):
        client.fetch_items(FetchParams())


@patch(_PATCH_GET)
def test_fetch_items_server_error_detail(mock_get, client):
    mock_get.return_value = _response({"message": "database down"}, status=500)

    with pytest.raises(RemoteSourceError, match="HTTP 500.*database down"):
        client.fetch_items(FetchParams())


@patch(_PATCH_GET)
def test_fetch_items_connection_error(mock_get, client):
    mock_get.side_effect = requests.ConnectionError("refused")

    with pytest.raises(RemoteSourceError, match="Could not reach InfoFlow"):
        client.fetch_items(FetchParams())


@patch(_PATCH_GET)
def test_fetch_items_invalid_json(mock_get, client):
    response = _response()
    response.json.side_effect = ValueError("no json")
    mock_get.return_value = response

    with pytest.raises(RemoteSourceError, match="invalid JSON"):
        client.fetch_items(FetchParams())


@patch(_PATCH_GET)
def test_fetch_items_non_object(mock_get, client):
    mock_get.return_value = _response([1, 2])

    with pytest.raises(RemoteSourceError, match="expected an object"):
        client.fetch_items(FetchParams())


# fetch_all_items
@patch(_PATCH_GET)
def test_fetch_all_items_drains_pages(mock_get, client):
    mock_get.side_effect = [
        _response(_page([make_record("a"), make_record("b")], True, total=3)),
        _response(_page([make_record("c")], False, total=3)),
    ]
    progress = []

    records = client.fetch_all_items(
        FetchParams(), progress_callback=lambda n, t: progress.append((n, t))
    )

    assert [r.id for r in records] == ["a", "b", "c"]
    assert all(isinstance(r, Record) for r in records)
    assert progress == [(2, 3), (3, 3)]
    pages = [c.kwargs["params"]["page"] for c in mock_get.call_args_list]
    assert pages == [1, 2]


@patch(_PATCH_GET)
def test_fetch_all_items_empty(mock_get, client):
    mock_get.return_value = _response({"items": None})
    assert client.fetch_all_items(FetchParams()) == []


@patch(_PATCH_GET)
def test_fetch_all_items_null_notes_and_tags(mock_get, client):
    mock_get.return_value = _response(
        _page(
            [
                make_record("ok"),
                make_record(
                    "bad", notes=None, tags=None, title=None, updatedAt=None
                ),
            ]
        )
    )

    records = client.fetch_all_items(FetchParams())

    assert [r.id for r in records] == ["ok", "bad"]
    assert records[1].notes == []
    assert records[1].tags == []
    assert records[1].title == ""
    assert records[1].updated_at == ""


@patch(_PATCH_GET)
def test_fetch_all_items_null_note_content(mock_get, client):
    mock_get.return_value = _response(
        _page([make_record("a", notes=[{"content": None, "quotedText": "q"}])])
    )

    (record,) = client.fetch_all_items(FetchParams())

    assert record.notes[0].content == ""
    assert record.notes[0].quoted_text == "q"


@patch(_PATCH_GET)
def test_fetch_all_items_skips_malformed_item(mock_get, client, caplog):
    mock_get.return_value = _response(
        _page([make_record("a"), {"title": "no id"}, make_record("b")])
    )

    with caplog.at_level("WARNING", logger="infoflow_sync.core.client"):
        records = client.fetch_all_items(FetchParams())

    assert [r.id for r in records] == ["a", "b"]
    assert "Skipping malformed InfoFlow item <no id> on page 1" in caplog.text


# validate_connection
@patch(_PATCH_GET)
def test_validate_connection_returns_total(mock_get, client):
    mock_get.return_value = _response(_page([make_record("a")], True, total=42))

    assert client.validate_connection() == 42
    assert mock_get.call_args.kwargs["params"]["perPage"] == 1


@pytest.mark.live
def test_live_validate_connection():
    import os

    settings = SyncSettings(
        endpoint=os.environ.get("INFOFLOW_ENDPOINT", "https://www.infoflow.app"),
        api_token=os.environ["INFOFLOW_API_TOKEN"],
    )
    assert InfoFlowClient(settings).validate_connection() >= 0
