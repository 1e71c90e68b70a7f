"""Error taxonomy shared by the provider clients and the sync engine.

Failures fall into two groups:

* **Pass-fatal** -- ``AuthError``.  No retry can help, so the running sync
  pass aborts and the error propagates to the caller.
* **Per-record / recoverable** -- ``TransientNetworkError`` (retried with
  backoff, then reported as a warning), ``ValidationError`` (the remote
  rejected one record), ``TempIdResolutionError`` (a create reported success
  but no permanent id came back) and ``RemoteNotFoundError``.  These never
  abort a pass; they are folded into the report's error counters.
"""

from __future__ import annotations


class TaskBridgeError(Exception):
    """Base class for all taskbridge errors."""

    retryable: bool = False

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransientNetworkError(TaskBridgeError):
    """Timeouts, connection failures, 429 and 5xx responses."""

    retryable = True


class AuthError(TaskBridgeError):
    """Credentials missing, invalid or lacking permission (401/403)."""


class ValidationError(TaskBridgeError):
    """The remote rejected a request as malformed (4xx other than auth)."""


class RemoteNotFoundError(TaskBridgeError):
    """The requested record does not exist (or is archived)."""


class TempIdResolutionError(TaskBridgeError):
    """A create succeeded but the response carried no permanent id."""

    def __init__(self, temp_id: str):
        super().__init__(
            f"No permanent id returned for temporary id '{temp_id}'"
        )
        self.temp_id = temp_id


class SyncCancelled(TaskBridgeError):
    """The pass was cancelled between states."""


def classify_status(status_code: int, message: str) -> TaskBridgeError:
    """Map an HTTP status code onto the error taxonomy.

    Args:
        status_code: HTTP status returned by the provider.
        message: Human-readable error text (response body excerpt).

    Returns:
        An (unraised) error instance of the matching class.
    """
    match status_code:
        case 401 | 403:
            return AuthError(message, status_code=status_code)
        case 404:
            return RemoteNotFoundError(message, status_code=status_code)
        case 408 | 429:
            return TransientNetworkError(message, status_code=status_code)
        case code if code >= 500:
            return TransientNetworkError(message, status_code=status_code)
        case _:
            return ValidationError(message, status_code=status_code)
