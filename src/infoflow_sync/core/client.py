"""InfoFlow export API client.

``RemoteSource`` is the protocol the sync engine depends on.
``InfoFlowClient`` implements it over the paginated
``/api/v1/external/export/items`` endpoint with bearer-token auth.
"""

import logging
import threading
from typing import Any, Callable, Protocol

import requests
from pydantic import ValidationError

from ..config import SyncSettings
from ..sync.errors import RemoteSourceError
from ..sync.models import FetchParams, Record

logger = logging.getLogger(__name__)

EXPORT_PATH = "/api/v1/external/export/items"
MAX_PER_PAGE = 100

ProgressCallback = Callable[[int, int], None]


class RemoteSource(Protocol):
    """Enumerates remote records matching a filter."""

    def fetch_all_items(
        self,
        params: FetchParams,
        progress_callback: ProgressCallback | None = None,
    ) -> list[Record]: ...


class InfoFlowClient:
    def __init__(self, settings: SyncSettings, timeout: tuple[int, int] = (10, 60)):
        self.settings = settings
        self.timeout = timeout
        self._thread_local = threading.local()
        self.export_url = self._get_export_url()

    def _get_export_url(self) -> str:
        return f"{self.settings.endpoint.rstrip('/')}{EXPORT_PATH}"

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["Authorization"] = f"Bearer {self.settings.api_token}"
        session.headers["Accept"] = "application/json"
        session.verify = not self.settings.insecure
        return session

    def fetch_items(
        self, params: FetchParams, page: int = 1, per_page: int = MAX_PER_PAGE
    ) -> dict[str, Any]:
        """
        Fetch one page of exported items.

        Returns:
            The decoded response: ``{"items": [...], "pagination": {...}}``.

        Raises:
            RemoteSourceError: On connection errors, non-2xx responses or a
                body that is not a JSON object.
        """
        query: dict[str, Any] = dict(params.to_query())
        query["page"] = page
        query["perPage"] = per_page

        try:
            response = self._get_session().get(
                self.export_url, params=query, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            detail = _error_detail(e.response)
            logger.error(
                "InfoFlow returned HTTP %s for %s: %s",
                status,
                self.export_url,
                detail,
            )
            message = f"InfoFlow returned HTTP {status} for {self.export_url}"
            if status in (401, 403):
                message += " (check the API token)"
            elif detail:
                message += f": {detail}"
            raise RemoteSourceError(message) from e
        except requests.RequestException as e:
            logger.error("Request to %s failed: %s", self.export_url, e)
            raise RemoteSourceError(
                f"Could not reach InfoFlow at {self.export_url}: {e}"
            ) from e
        except ValueError as e:
            raise RemoteSourceError(
                f"InfoFlow returned invalid JSON from {self.export_url}"
            ) from e

        if not isinstance(data, dict):
            raise RemoteSourceError(
                f"Unexpected response from {self.export_url}: expected an object"
            )
        return data

    def fetch_all_items(
        self,
        params: FetchParams,
        progress_callback: ProgressCallback | None = None,
    ) -> list[Record]:
        """
        Fetch every item matching *params*, draining all pages.

        Args:
            params: Filters (date range, tags, folders, updated-since cursor).
            progress_callback: Called after each page with
                ``(items_so_far, total_items)``.

        Items that fail validation are logged and skipped so one bad item
        cannot block every later run.

        Returns:
            Records in the order the API returned them.

        Raises:
            RemoteSourceError: If any page fails.
        """
        records: list[Record] = []
        page = 1
        has_next_page = True

        while has_next_page:
            data = self.fetch_items(params, page=page)
            for raw in data.get("items") or []:
                try:
                    records.append(Record.model_validate(raw))
                except ValidationError as e:
                    item_id = raw.get("id") if isinstance(raw, dict) else None
                    logger.warning(
                        "Skipping malformed InfoFlow item %s on page %d: %d validation error(s)",
                        item_id or "<no id>",
                        page,
                        e.error_count(),
                    )

            pagination = data.get("pagination") or {}
            total = int(pagination.get("totalItems") or len(records))
            if progress_callback is not None:
                progress_callback(len(records), total)

            has_next_page = bool(pagination.get("hasNextPage"))
            logger.debug(
                "Fetched page %d (%d items so far, next=%s)",
                page,
                len(records),
                has_next_page,
            )
            page += 1

        return records

    def validate_connection(self) -> int:
        """
        Fetch a single item to check the endpoint and token.
        Returns the total number of items visible to the token.
        """
        data = self.fetch_items(FetchParams(), page=1, per_page=1)
        pagination = data.get("pagination") or {}
        return int(pagination.get("totalItems") or 0)


def _error_detail(response: requests.Response | None) -> str:
    """Best-effort human-readable error message from an error response."""
    if response is None:
        return ""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200].strip()
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if isinstance(body.get(key), str):
                return body[key]
    return ""
