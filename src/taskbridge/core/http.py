"""JSON-over-HTTP helper shared by the Notion and Todoist clients.

Responsibilities:

* Translate transport failures and HTTP status codes into the error
  taxonomy in ``core.errors``.
* Retry ``TransientNetworkError`` with exponential backoff and jitter
  (via tenacity), bounded by the configured attempt budget.  Validation,
  auth and not-found errors are raised immediately.
* Pace every attempt through the client's ``RateLimiter``.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .errors import TransientNetworkError, classify_status
from .ratelimit import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = (10, 60)


class JsonHttpClient:
    """Thin wrapper around a ``requests.Session`` returning decoded JSON.

    Args:
        session: Pre-configured session (auth headers already set).
        limiter: Pacing for outgoing requests.
        max_attempts: Total attempts for transient failures (>= 1).
        backoff_initial: First backoff delay in seconds.
        backoff_max: Ceiling for a single backoff delay in seconds.
    """

    def __init__(
        self,
        session: requests.Session,
        limiter: RateLimiter,
        max_attempts: int = 4,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
    ) -> None:
        self.session = session
        self.limiter = limiter
        self.max_attempts = max(1, max_attempts)
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

    def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request, retrying transient failures.

        Returns:
            The decoded JSON body (``None`` for empty bodies).

        Raises:
            TransientNetworkError: Retry budget exhausted.
            AuthError, ValidationError, RemoteNotFoundError: Not retried.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.backoff_initial, max=self.backoff_max
            ),
            retry=retry_if_exception_type(TransientNetworkError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(
            self._send_once, method, url, json=json, data=data, params=params
        )

    def _send_once(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        self.limiter.wait()
        try:
            response = self.session.request(
                method,
                url,
                json=json,
                data=data,
                params=params,
                timeout=DEFAULT_TIMEOUT,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientNetworkError(
                f"{method} {url} failed: {exc}"
            ) from exc

        if response.status_code >= 400:
            excerpt = (response.text or "")[:300]
            raise classify_status(
                response.status_code,
                f"{method} {url} returned {response.status_code}: {excerpt}",
            )

        if not response.content:
            return None
        return response.json()
