import logging
import threading
from typing import Any

import requests

from .errors import RemoteNotFoundError
from .http import JsonHttpClient
from .ratelimit import RateLimiter

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class NotionClient:
    """Side A client for one Notion task database.

    Each thread gets its own ``requests.Session`` so the client can be used
    from the worker threads behind ``run_sync``.
    """

    def __init__(
        self,
        token: str,
        database_id: str,
        *,
        api_url: str = "https://api.notion.com/v1",
        api_version: str = "2022-06-28",
        requests_per_second: float = 3.0,
        max_attempts: int = 4,
    ):
        self.token = token
        self.database_id = database_id
        self.api_url = api_url.rstrip("/")
        self.api_version = api_version
        self.limiter = RateLimiter(requests_per_second)
        self.max_attempts = max_attempts
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            session = requests.Session()
            session.headers.update(
                {
                    "Authorization": f"Bearer {self.token}",
                    "Notion-Version": self.api_version,
                    "Content-Type": "application/json",
                }
            )
            self._thread_local.session = session
        return self._thread_local.session

    def _http(self) -> JsonHttpClient:
        return JsonHttpClient(
            self._get_session(), self.limiter, max_attempts=self.max_attempts
        )

    def _request(self, method: str, path: str, **kwargs) -> Any:
        return self._http().request(method, f"{self.api_url}{path}", **kwargs)

    def retrieve_database(self) -> dict[str, Any]:
        """
        Get the database schema (used to detect the title property).
        """
        return self._request("GET", f"/databases/{self.database_id}")

    def query_database(
        self, filter: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """
        Return every page of the database matching *filter*, following
        ``start_cursor`` pagination.
        """
        pages: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            body: dict[str, Any] = {"page_size": PAGE_SIZE}
            if filter:
                body["filter"] = filter
            if cursor:
                body["start_cursor"] = cursor
            data = self._request(
                "POST", f"/databases/{self.database_id}/query", json=body
            )
            pages.extend(data.get("results", []))
            if not data.get("has_more"):
                break
            cursor = data.get("next_cursor")
        logger.debug("Fetched %d Notion pages", len(pages))
        return pages

    def retrieve_page(self, page_id: str) -> dict[str, Any]:
        """
        Get one page by id.  Archived or trashed pages count as not found.
        """
        page = self._request("GET", f"/pages/{page_id}")
        if page.get("archived") or page.get("in_trash"):
            raise RemoteNotFoundError(f"Notion page {page_id} is archived")
        return page

    def create_page(self, properties: dict[str, Any]) -> dict[str, Any]:
        return self._request(
            "POST",
            "/pages",
            json={
                "parent": {"database_id": self.database_id},
                "properties": properties,
            },
        )

    def update_page(
        self, page_id: str, properties: dict[str, Any]
    ) -> dict[str, Any]:
        return self._request(
            "PATCH", f"/pages/{page_id}", json={"properties": properties}
        )

    def archive_page(self, page_id: str) -> dict[str, Any]:
        return self._request(
            "PATCH", f"/pages/{page_id}", json={"archived": True}
        )
