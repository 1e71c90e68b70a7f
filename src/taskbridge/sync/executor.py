"""Batch command execution against one remote.

``BatchCommandExecutor.execute()`` submits commands in chunks of at most
``max_batch_size`` (one chunk per pass in the common case), pacing chunk
submissions through a ``RateLimiter``.  Outcomes are reported per command:

* a token the provider reports as failed -> failed ``CommandResult``;
* a create reported ok but missing from the temp-id mapping -> failed with
  ``TempIdResolutionError`` (at-least-once creation; the record is
  re-created or adopted on the next pass);
* a chunk whose submission raised (transient failure after the retry
  budget, or a rejected request) -> every command in it failed;
* ``AuthError`` propagates and aborts the pass.

No retry happens here: failed commands leave their mappings untouched and
are reclassified on the next pass.
"""

from __future__ import annotations

import logging
import threading

from taskbridge.core.errors import (
    AuthError,
    TaskBridgeError,
    TempIdResolutionError,
)
from taskbridge.core.ratelimit import RateLimiter
from taskbridge.sync.models import (
    BatchResult,
    Command,
    CommandKind,
    CommandResult,
    Pending,
)
from taskbridge.sync.remotes import TaskRemote

logger = logging.getLogger(__name__)


class BatchCommandExecutor:
    """Execute commands against *remote* in paced batches.

    Args:
        remote: Target system.
        max_batch_size: Commands per submission.
        limiter: Pacing between submissions (none by default).
        cancel_event: When set, no further chunk is submitted; the chunk
            in flight always completes.
    """

    def __init__(
        self,
        remote: TaskRemote,
        max_batch_size: int = 100,
        limiter: RateLimiter | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self.remote = remote
        self.max_batch_size = max_batch_size
        self.limiter = limiter or RateLimiter(0)
        self.cancel_event = cancel_event

    def execute(self, commands: list[Command]) -> list[CommandResult]:
        """Submit *commands* and return one result per submitted command.

        Commands left unsubmitted because of cancellation have no result.
        """
        if not commands:
            return []

        tokens = [c.token for c in commands]
        if len(set(tokens)) != len(tokens):
            raise ValueError("Correlation tokens must be unique per batch")

        results: list[CommandResult] = []
        for start in range(0, len(commands), self.max_batch_size):
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.warning(
                    "Cancelled with %d %s commands unsubmitted",
                    len(commands) - start,
                    self.remote.name,
                )
                break
            chunk = commands[start : start + self.max_batch_size]
            self.limiter.wait()
            logger.debug(
                "Submitting %d commands to %s", len(chunk), self.remote.name
            )
            try:
                batch = self.remote.submit_batch(chunk)
            except AuthError:
                raise
            except TaskBridgeError as exc:
                logger.error(
                    "%s batch of %d commands failed: %s",
                    self.remote.name,
                    len(chunk),
                    exc.message,
                )
                results.extend(_failure(c, exc) for c in chunk)
                continue
            results.extend(self._collect(chunk, batch))
        return results

    def _collect(
        self, chunk: list[Command], batch: BatchResult
    ) -> list[CommandResult]:
        collected = []
        for command in chunk:
            status = batch.statuses.get(command.token)
            if status is None:
                collected.append(
                    _result(
                        command,
                        ok=False,
                        error="No status reported for command",
                        error_type="ValidationError",
                    )
                )
                continue
            if not status.ok:
                logger.warning(
                    "%s %s failed for %s: %s",
                    self.remote.name,
                    command.kind.value,
                    command.group,
                    status.error,
                )
                collected.append(
                    _result(
                        command,
                        ok=False,
                        error=status.error,
                        error_type=status.error_type,
                    )
                )
                continue

            remote_id = command.remote_id.value
            if command.kind is CommandKind.CREATE and isinstance(
                command.remote_id, Pending
            ):
                permanent = batch.temp_id_mapping.get(command.remote_id.temp_id)
                if permanent is None:
                    exc = TempIdResolutionError(command.remote_id.temp_id)
                    logger.warning(
                        "%s create for %s: %s", self.remote.name, command.group, exc
                    )
                    collected.append(_failure(command, exc))
                    continue
                remote_id = permanent
            collected.append(_result(command, ok=True, remote_id=remote_id))
        return collected


def _result(command: Command, **kwargs) -> CommandResult:
    return CommandResult(
        token=command.token,
        kind=command.kind,
        group=command.group,
        **kwargs,
    )


def _failure(command: Command, exc: TaskBridgeError) -> CommandResult:
    return _result(
        command, ok=False, error=exc.message, error_type=type(exc).__name__
    )
