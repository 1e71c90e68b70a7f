"""Pydantic models for the two-way task sync engine.

Defines the data contracts shared by every sync module:

- ``Side`` / ``Direction``: which remote system, and which way changes flow.
- ``Priority``: the shared priority scale both providers normalise onto.
- ``TaskSnapshot``: provider-neutral view of one task used for comparison.
- ``SyncMapping``: the durable link between a side-A and a side-B record.
- ``Pending`` / ``Confirmed``: tagged remote identifier (temp id vs real id).
- ``ReconciliationDecision`` / ``ReconciliationPlan``: what the reconciler
  decided for one pass.
- ``Command`` / ``CommandResult`` / ``BatchResult``: executor contracts.
- ``SyncResult`` / ``SyncReport``: per-record outcome and pass aggregate.

All models are frozen (immutable); use ``model_copy(update=...)`` to derive
modified copies.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Side(str, Enum):
    """One of the two remote systems."""

    A = "a"
    B = "b"

    @property
    def other(self) -> Side:
        return Side.B if self is Side.A else Side.A


class Direction(str, Enum):
    """Direction of a sync pass (or of one half of a two-way pass)."""

    TWO_WAY = "two-way"
    A_TO_B = "a-to-b"
    B_TO_A = "b-to-a"

    @classmethod
    def towards(cls, target: Side) -> Direction:
        """Return the one-way direction whose writes land on *target*."""
        return cls.A_TO_B if target is Side.B else cls.B_TO_A

    def includes(self, target: Side) -> bool:
        """Whether writes to *target* are allowed in this direction."""
        return self is Direction.TWO_WAY or self is Direction.towards(
            target
        )


class Priority(str, Enum):
    """Shared priority scale (providers map their own scales onto this)."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskSnapshot(BaseModel):
    """Normalised view of a remote task.

    Attributes:
        title: Task title.
        due_date: ISO date (``YYYY-MM-DD``) or minute-resolution datetime.
        completed: Completion flag.
        priority: Shared priority level.
        labels: Tag/label names (unordered).
        last_edited: Provider's last modification time (UTC).
    """

    title: str
    due_date: str | None = None
    completed: bool = False
    priority: Priority = Priority.LOW
    labels: frozenset[str] = frozenset()
    last_edited: datetime | None = None

    model_config = {"frozen": True}

    @property
    def edited_or_epoch(self) -> datetime:
        """``last_edited`` with a missing value treated as oldest possible."""
        return self.last_edited or _EPOCH


class SyncMapping(BaseModel):
    """Durable association between one side-A and one side-B record.

    A mapping with neither remote id set carries no information and is
    rejected at construction time.

    Attributes:
        local_key: Stable identity of the logical task across systems.
        a_id / b_id: Remote identifiers (``None`` until created there).
        a_hash / b_hash: Last observed content hash per side.
        a_last_edited / b_last_edited: Last observed modification time.
    """

    local_key: str
    a_id: str | None = None
    b_id: str | None = None
    a_hash: str | None = None
    b_hash: str | None = None
    a_last_edited: datetime | None = None
    b_last_edited: datetime | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _require_one_side(self) -> SyncMapping:
        if self.a_id is None and self.b_id is None:
            raise ValueError(
                f"Mapping '{self.local_key}' must carry at least one remote id"
            )
        return self

    def id_for(self, side: Side) -> str | None:
        return self.a_id if side is Side.A else self.b_id

    def hash_for(self, side: Side) -> str | None:
        return self.a_hash if side is Side.A else self.b_hash

    def last_edited_for(self, side: Side) -> datetime | None:
        return (
            self.a_last_edited if side is Side.A else self.b_last_edited
        )

    def with_side(
        self,
        side: Side,
        *,
        remote_id: str | None,
        content_hash: str | None,
        last_edited: datetime | None,
    ) -> SyncMapping:
        """Return a copy with one side's id, hash and timestamp replaced."""
        prefix = side.value
        return self.model_copy(
            update={
                f"{prefix}_id": remote_id,
                f"{prefix}_hash": content_hash,
                f"{prefix}_last_edited": last_edited,
            }
        )


# ---------------------------------------------------------------------------
# Remote identifiers
# ---------------------------------------------------------------------------


class Pending(BaseModel):
    """A record not yet created remotely, addressed by a temporary id."""

    kind: Literal["pending"] = "pending"
    temp_id: str

    model_config = {"frozen": True}

    @property
    def value(self) -> str:
        return self.temp_id


class Confirmed(BaseModel):
    """A record with a permanent remote identifier."""

    kind: Literal["confirmed"] = "confirmed"
    id: str

    model_config = {"frozen": True}

    @property
    def value(self) -> str:
        return self.id


RemoteId = Annotated[Union[Pending, Confirmed], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class DecisionKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ReconciliationDecision(BaseModel):
    """One mutation the reconciler wants applied to *side*.

    Attributes:
        kind: Create, update or delete.
        side: The side the mutation is executed against.
        local_key: Mapping key (new keys are generated for creates).
        snapshot: Winning content (create/update only).
        remote_id: Target record id (update/delete only).
        source_id: Id of the record on the winning side.
        target_snapshot: Current content on the target (update only).
        reason: Short explanation for logs and reports.
    """

    kind: DecisionKind
    side: Side
    local_key: str
    snapshot: TaskSnapshot | None = None
    remote_id: str | None = None
    source_id: str | None = None
    target_snapshot: TaskSnapshot | None = None
    reason: str | None = None

    model_config = {"frozen": True}


class ReconciliationPlan(BaseModel):
    """Output of one reconciliation run.

    ``removed_from_a`` / ``removed_from_b`` list mapping keys whose record
    is no longer eligible or present on that side; those are handed to the
    deletion reconciler instead of producing updates.
    """

    to_create_on_b: list[ReconciliationDecision] = []
    to_update_on_b: list[ReconciliationDecision] = []
    to_create_on_a: list[ReconciliationDecision] = []
    to_update_on_a: list[ReconciliationDecision] = []
    removed_from_a: list[str] = []
    removed_from_b: list[str] = []
    adopted: list[SyncMapping] = []
    unchanged: int = 0
    conflicts: int = 0

    model_config = {"frozen": True}

    def creates_for(self, side: Side) -> list[ReconciliationDecision]:
        return self.to_create_on_a if side is Side.A else self.to_create_on_b

    def updates_for(self, side: Side) -> list[ReconciliationDecision]:
        return self.to_update_on_a if side is Side.A else self.to_update_on_b


class RemovalReason(str, Enum):
    """Why a mapped record is considered removed from its side."""

    GONE = "gone"
    INELIGIBLE = "ineligible"


class RemovalCandidate(BaseModel):
    """A mapping whose counterpart should be deleted.

    Attributes:
        local_key: Mapping key.
        side_to_delete_from: Side holding the counterpart to delete.
        remote_id: Id of the counterpart (``None`` if never created).
        reason: Whether the source record vanished or became ineligible.
        title: Last known title, for logs and previews.
    """

    local_key: str
    side_to_delete_from: Side
    remote_id: str | None = None
    reason: RemovalReason
    title: str | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Batch execution
# ---------------------------------------------------------------------------


class CommandKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    COMPLETE = "complete"
    UNCOMPLETE = "uncomplete"


class Command(BaseModel):
    """A single provider-neutral mutation.

    Attributes:
        kind: Mutation type.
        token: Caller-supplied correlation token (unique per batch).
        group: Mapping key the command belongs to; a mapping is committed
            only when every command in its group succeeded.
        remote_id: ``Pending`` for creates, ``Confirmed`` otherwise.
        snapshot: Content to write (create/update).
        previous: Target's current content, when known (update).
        back_reference: Id of the source record, embedded by providers
            that support back-links.
    """

    kind: CommandKind
    token: str
    group: str
    remote_id: RemoteId
    snapshot: TaskSnapshot | None = None
    previous: TaskSnapshot | None = None
    back_reference: str | None = None

    model_config = {"frozen": True}


class CommandStatus(BaseModel):
    """Provider-reported outcome for one command."""

    ok: bool
    error: str | None = None
    error_type: str | None = None

    model_config = {"frozen": True}


class BatchResult(BaseModel):
    """Response of one provider batch submission.

    Attributes:
        temp_id_mapping: Temporary id -> permanent id for created records.
        statuses: Correlation token -> per-command status.
    """

    temp_id_mapping: dict[str, str] = {}
    statuses: dict[str, CommandStatus] = {}

    model_config = {"frozen": True}


class CommandResult(BaseModel):
    """Executor outcome for one command.

    Attributes:
        token: Correlation token of the command.
        kind: Command kind.
        group: Mapping key of the command.
        ok: Whether the command succeeded.
        remote_id: Permanent id (resolved from the temp id for creates).
        error: Error message on failure.
        error_type: Name of the error class on failure.
    """

    token: str
    kind: CommandKind
    group: str
    ok: bool
    remote_id: str | None = None
    error: str | None = None
    error_type: str | None = None

    model_config = {"frozen": True}


class SyncCursor(BaseModel):
    """Incremental-fetch cursor persisted next to the mappings.

    Attributes:
        token: Provider sync token (``"*"`` requests a full fetch).
        records: Last known raw records keyed by id, merged with each
            incremental response.
    """

    token: str = "*"
    records: dict[str, dict[str, Any]] = {}

    model_config = {"frozen": True}


class FetchResult(BaseModel):
    """Records returned by a remote listing, plus the advanced cursor."""

    records: list[dict[str, Any]] = []
    cursor: SyncCursor | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


class SyncAction(str, Enum):
    """Action recorded in a sync report."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    COMPLETE = "complete"
    UNCOMPLETE = "uncomplete"


class SyncResult(BaseModel):
    """Result of applying (or previewing) one decision.

    Attributes:
        local_key: Mapping key.
        title: Task title, for display.
        direction: ``a-to-b`` or ``b-to-a``.
        action: What was done to the target side.
        success: Whether it succeeded (always ``True`` in dry runs).
        target_id: Remote id on the target side, when known.
        reason: Decision explanation (conflict winner, deletion cause).
        error: Error message if the operation failed.
        details: Field values for previews (due date, priority, ...).
    """

    local_key: str
    title: str = ""
    direction: Direction
    action: SyncAction
    success: bool
    target_id: str | None = None
    reason: str | None = None
    error: str | None = None
    details: dict[str, Any] = {}

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one sync pass.

    Attributes:
        profile_name: Name of the state profile used.
        direction: Configured pass direction.
        dry_run: Whether this was a preview (no mutations).
        results: Individual results.
        skipped: Records found unchanged (or filtered by direction).
        warnings: Pass-level warnings (e.g. a side was unreachable).
        cancelled: The pass was cancelled before finishing.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass finished.
    """

    profile_name: str
    direction: Direction = Direction.TWO_WAY
    dry_run: bool = False
    results: list[SyncResult] = []
    skipped: int = 0
    warnings: list[str] = []
    cancelled: bool = False
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _ok(self, *actions: SyncAction) -> list[SyncResult]:
        return [
            r for r in self.results if r.success and r.action in actions
        ]

    @property
    def created(self) -> list[SyncResult]:
        """Successful creates on either side."""
        return self._ok(SyncAction.CREATE)

    @property
    def updated(self) -> list[SyncResult]:
        """Successful updates, including completion toggles."""
        return self._ok(
            SyncAction.UPDATE, SyncAction.COMPLETE, SyncAction.UNCOMPLETE
        )

    @property
    def deleted(self) -> list[SyncResult]:
        """Successful deletions."""
        return self._ok(SyncAction.DELETE)

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    def for_direction(self, direction: Direction) -> list[SyncResult]:
        return [r for r in self.results if r.direction == direction]

    def counts(self) -> dict[str, int]:
        """Summary counters returned to callers."""
        return {
            "created": len(self.created),
            "updated": len(self.updated),
            "deleted": len(self.deleted),
            "skipped": self.skipped,
            "errors": len(self.errors),
        }

    def summary(self) -> str:
        """Format a human-readable summary of the sync pass.

        Returns:
            Multi-line summary string with counts by action.
        """
        counts = self.counts()
        lines = [
            f"Sync report for profile '{self.profile_name}'"
            + (" (dry run)" if self.dry_run else ""),
            f"  Created:  {counts['created']}",
            f"  Updated:  {counts['updated']}",
            f"  Deleted:  {counts['deleted']}",
            f"  Skipped:  {counts['skipped']}",
            f"  Errors:   {counts['errors']}",
        ]
        return "\n".join(lines)
