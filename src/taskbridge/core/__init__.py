"""Provider clients and shared transport utilities."""

from .async_utils import run_sync
from .errors import (
    AuthError,
    RemoteNotFoundError,
    SyncCancelled,
    TaskBridgeError,
    TempIdResolutionError,
    TransientNetworkError,
    ValidationError,
)

__all__ = [
    "AuthError",
    "RemoteNotFoundError",
    "SyncCancelled",
    "TaskBridgeError",
    "TempIdResolutionError",
    "TransientNetworkError",
    "ValidationError",
    "run_sync",
]
