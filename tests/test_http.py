"""Tests for the shared JSON-over-HTTP helper."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from taskbridge.core.errors import (
    AuthError,
    RemoteNotFoundError,
    TransientNetworkError,
    ValidationError,
    classify_status,
)
from taskbridge.core.http import JsonHttpClient
from taskbridge.core.ratelimit import RateLimiter


def _response(status: int = 200, body: bytes = b'{"ok": true}'):
    response = MagicMock()
    response.status_code = status
    response.content = body
    response.text = body.decode()
    response.json.return_value = {"ok": True}
    return response


def _client(*responses, max_attempts: int = 3):
    session = MagicMock()
    session.request.side_effect = list(responses)
    client = JsonHttpClient(
        session,
        RateLimiter(0),
        max_attempts=max_attempts,
        backoff_initial=0,
        backoff_max=0,
    )
    return client, session


class TestClassifyStatus:
    @pytest.mark.parametrize(
        "status, cls",
        [
            (401, AuthError),
            (403, AuthError),
            (404, RemoteNotFoundError),
            (429, TransientNetworkError),
            (503, TransientNetworkError),
            (400, ValidationError),
            (409, ValidationError),
            (422, ValidationError),
            (408, TransientNetworkError),
        ],
    )
    def test_mapping(self, status, cls):
        error = classify_status(status, "boom")
        assert type(error) is cls
        assert error.status_code == status


class TestJsonHttpClient:
    def test_success_returns_json(self):
        client, session = _client(_response())

        assert client.request("GET", "https://api.test/x") == {"ok": True}
        session.request.assert_called_once()
        assert session.request.call_args.kwargs["timeout"] == (10, 60)

    def test_empty_body_returns_none(self):
        client, _ = _client(_response(204, b""))
        assert client.request("DELETE", "https://api.test/x") is None

    def test_transient_status_is_retried(self):
        client, session = _client(_response(502, b"bad gateway"), _response())

        assert client.request("POST", "https://api.test/x") == {"ok": True}
        assert session.request.call_count == 2

    def test_connection_error_is_retried(self):
        client, session = _client(
            requests.ConnectionError("reset"), _response()
        )

        client.request("GET", "https://api.test/x")

        assert session.request.call_count == 2

    def test_retry_budget_exhausted(self):
        client, session = _client(
            *[_response(429, b"slow down")] * 3, max_attempts=3
        )

        with pytest.raises(TransientNetworkError) as excinfo:
            client.request("GET", "https://api.test/x")

        assert excinfo.value.status_code == 429
        assert session.request.call_count == 3

    @pytest.mark.parametrize(
        "status, cls",
        [
            (401, AuthError),
            (400, ValidationError),
            (404, RemoteNotFoundError),
            (409, ValidationError),
        ],
    )
    def test_permanent_errors_not_retried(self, status, cls):
        client, session = _client(_response(status, b"nope"), _response())

        with pytest.raises(cls):
            client.request("GET", "https://api.test/x")

        assert session.request.call_count == 1

    def test_each_attempt_is_paced(self):
        limiter = MagicMock()
        session = MagicMock()
        session.request.side_effect = [_response(500, b"oops"), _response()]
        client = JsonHttpClient(
            session, limiter, max_attempts=2, backoff_initial=0, backoff_max=0
        )

        client.request("GET", "https://api.test/x")

        assert limiter.wait.call_count == 2
