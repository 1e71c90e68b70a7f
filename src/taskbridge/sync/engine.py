"""Sync orchestrator: one reconciliation pass between side A and side B.

The ``SyncEngine`` ties together the mapping store, reconciler, batch
executor and deletion reconciler.  Each pass walks a fixed sequence of
states::

    LOAD_MAPPINGS -> FETCH_BOTH_SIDES -> RECONCILE -> EXECUTE_A_TO_B
    -> EXECUTE_B_TO_A -> RECONCILE_DELETIONS -> EXECUTE_DELETIONS
    -> PERSIST_MAPPINGS -> DONE

* Both sides are fetched concurrently; the two execute states run one
  after the other.
* Mapping rows are committed only for command groups that fully
  succeeded, and the store is checkpointed after every execute state.
* Per-record failures land in the report.  A side that stays unreachable
  after the retry budget ends the pass early with a warning and no
  mutations.  ``AuthError`` escapes, as do ``ValidationError`` and
  ``RemoteNotFoundError`` raised by a listing (a bad filter or database
  id), since retrying the next pass cannot fix them.
* In dry-run mode the execute states are skipped and the report carries a
  preview of what would have been done.
* ``cancel()`` stops the pass at the next state boundary or batch; the
  batch in flight is allowed to finish.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from taskbridge.core.async_utils import gather_limited, map_limited, run_sync
from taskbridge.core.errors import (
    AuthError,
    RemoteNotFoundError,
    SyncCancelled,
    TransientNetworkError,
    ValidationError,
)
from taskbridge.core.ratelimit import RateLimiter
from taskbridge.sync.adapters import EligibilityPredicate, RawRecord
from taskbridge.sync.deletion import DeletionReconciler
from taskbridge.sync.detector import compute_hash, differs_only_in_completion
from taskbridge.sync.executor import BatchCommandExecutor
from taskbridge.sync.models import (
    Command,
    CommandKind,
    CommandResult,
    Confirmed,
    DecisionKind,
    Direction,
    FetchResult,
    ReconciliationDecision,
    ReconciliationPlan,
    RemovalCandidate,
    Side,
    SyncAction,
    SyncMapping,
    SyncReport,
    SyncResult,
)
from taskbridge.sync.reconciler import reconcile
from taskbridge.sync.remotes import TaskRemote, new_temp_id
from taskbridge.sync.resolver import ConflictResolver, create_resolver
from taskbridge.sync.state import MappingStore

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    LOAD_MAPPINGS = "load_mappings"
    FETCH_BOTH_SIDES = "fetch_both_sides"
    RECONCILE = "reconcile"
    EXECUTE_A_TO_B = "execute_a_to_b"
    EXECUTE_B_TO_A = "execute_b_to_a"
    RECONCILE_DELETIONS = "reconcile_deletions"
    EXECUTE_DELETIONS = "execute_deletions"
    PERSIST_MAPPINGS = "persist_mappings"
    DONE = "done"


_EXECUTE_PHASE = {
    Side.B: SyncPhase.EXECUTE_A_TO_B,
    Side.A: SyncPhase.EXECUTE_B_TO_A,
}

_ACTION = {
    CommandKind.CREATE: SyncAction.CREATE,
    CommandKind.UPDATE: SyncAction.UPDATE,
    CommandKind.DELETE: SyncAction.DELETE,
    CommandKind.COMPLETE: SyncAction.COMPLETE,
    CommandKind.UNCOMPLETE: SyncAction.UNCOMPLETE,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _PassState:
    """Mutable working data of one pass."""

    dry_run: bool
    started_at: str
    fetched: dict[Side, FetchResult] = field(default_factory=dict)
    eligible: dict[Side, set[str]] = field(default_factory=dict)
    titles: dict[str, str] = field(default_factory=dict)
    plan: ReconciliationPlan | None = None
    results: list[SyncResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    skipped: int = 0
    cancelled: bool = False
    loaded: bool = False


class SyncEngine:
    """Orchestrate a sync pass between two remotes.

    Args:
        remote_a: Side A (authoritative for existence).
        remote_b: Side B.
        store: Mapping store for the profile (loaded by the engine).
        eligible_a: Which side-A records take part in sync.
        eligible_b: Which side-B records take part in sync.
        direction: Which sides may be written to.
        resolver: Conflict strategy (or a strategy name).
        max_batch_size: Commands per submission.
        submit_limiter: Pacing between batch submissions.
        cancel_event: Shared cancellation flag (one is created if omitted).
        clock: Source of the current UTC time.
    """

    def __init__(
        self,
        remote_a: TaskRemote,
        remote_b: TaskRemote,
        store: MappingStore,
        *,
        eligible_a: EligibilityPredicate,
        eligible_b: EligibilityPredicate,
        direction: Direction | str = Direction.TWO_WAY,
        resolver: ConflictResolver | str = "latest-wins",
        max_batch_size: int = 100,
        submit_limiter: RateLimiter | None = None,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.remotes = {Side.A: remote_a, Side.B: remote_b}
        self.store = store
        self.eligibility = {Side.A: eligible_a, Side.B: eligible_b}
        self.direction = Direction(direction)
        self.resolver = (
            create_resolver(resolver) if isinstance(resolver, str) else resolver
        )
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock
        self.executors = {
            side: BatchCommandExecutor(
                remote,
                max_batch_size=max_batch_size,
                limiter=submit_limiter,
                cancel_event=self.cancel_event,
            )
            for side, remote in self.remotes.items()
        }
        self.deletions = DeletionReconciler(remote_a, eligible_a)
        self.phase: SyncPhase | None = None
        self.action_log: list[str] = []

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation at the next state or batch boundary."""
        self.cancel_event.set()

    def run(self, dry_run: bool = False) -> SyncReport:
        """Execute one pass (blocking wrapper around ``run_async``)."""
        return asyncio.run(self.run_async(dry_run=dry_run))

    async def run_async(self, dry_run: bool = False) -> SyncReport:
        """Execute one pass.

        Args:
            dry_run: If ``True``, compute actions but do not execute them.

        Returns:
            A ``SyncReport`` summarising what was (or would be) done.

        Raises:
            AuthError: Credentials were rejected by either side.
        """
        state = _PassState(dry_run=dry_run, started_at=utcnow().isoformat())
        self.action_log = []
        self.phase = None

        try:
            self._enter(SyncPhase.LOAD_MAPPINGS)
            self.store.load()
            state.loaded = True

            self._enter(SyncPhase.FETCH_BOTH_SIDES)
            try:
                await self._fetch_both_sides(state)
            except TransientNetworkError as exc:
                message = f"Remote unreachable, pass skipped: {exc.message}"
                logger.warning(message)
                state.warnings.append(message)
                return self._report(state)
            except (ValidationError, RemoteNotFoundError) as exc:
                logger.error(
                    "Listing rejected, check the configuration: %s",
                    exc.message,
                )
                raise

            self._enter(SyncPhase.RECONCILE)
            state.plan = self._reconcile(state)

            for target in (Side.B, Side.A):
                if not dry_run:
                    self._enter(_EXECUTE_PHASE[target])
                self._execute(state, target)
                self._checkpoint(state)

            self._enter(SyncPhase.RECONCILE_DELETIONS)
            candidates = self.deletions.find_removed(
                self.store, state.eligible, state.titles
            )

            if not dry_run:
                self._enter(SyncPhase.EXECUTE_DELETIONS)
            self._execute_deletions(state, candidates)

            self._enter(SyncPhase.PERSIST_MAPPINGS)
            if not dry_run:
                for side, fetched in state.fetched.items():
                    self.store.set_cursor(side, fetched.cursor)
                self.store.save(mark_synced=True)
            self._enter(SyncPhase.DONE)
        except SyncCancelled:
            state.cancelled = True
            state.warnings.append(f"Cancelled during {self._phase_name}")
            logger.warning("Sync pass cancelled during %s", self._phase_name)
            self._checkpoint(state)
        except AuthError:
            logger.error("Authentication failed during %s", self._phase_name)
            self._checkpoint(state)
            raise

        return self._report(state)

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _enter(self, phase: SyncPhase) -> None:
        if self.cancel_event.is_set():
            raise SyncCancelled(f"Cancelled before {phase.value}")
        self.phase = phase
        logger.debug("Sync phase: %s", phase.value)

    async def _fetch_both_sides(self, state: _PassState) -> None:
        remote_a, remote_b = self.remotes[Side.A], self.remotes[Side.B]
        fetched_a, fetched_b = await gather_limited(
            [
                run_sync(remote_a.list_records, self.store.get_cursor(Side.A)),
                run_sync(remote_b.list_records, self.store.get_cursor(Side.B)),
            ]
        )
        records_b = await self._backfill(remote_b, fetched_b.records)
        state.fetched = {
            Side.A: fetched_a,
            Side.B: fetched_b.model_copy(update={"records": records_b}),
        }

        for side, fetched in state.fetched.items():
            remote = self.remotes[side]
            eligible = self.eligibility[side]
            state.eligible[side] = set()
            for record in fetched.records:
                record_id = remote.record_id(record)
                state.titles[record_id] = remote.to_snapshot(record).title
                if eligible(record):
                    state.eligible[side].add(record_id)
        logger.info(
            "Fetched %d %s and %d %s records",
            len(state.fetched[Side.A].records),
            remote_a.name,
            len(state.fetched[Side.B].records),
            remote_b.name,
        )

    async def _backfill(
        self, remote: TaskRemote, records: list[RawRecord]
    ) -> list[RawRecord]:
        """Fetch mapped records the listing did not return (e.g. completed)."""
        listed = {remote.record_id(r) for r in records}
        missing = sorted(
            {
                m.id_for(remote.side)
                for m in self.store
                if m.id_for(remote.side)
                and m.id_for(remote.side) not in listed
            }
        )
        if not missing:
            return records

        fetched = await map_limited(remote.get_record_by_id, missing)
        extra = []
        for record_id, record in zip(missing, fetched):
            if record is None:
                logger.info(
                    "%s record %s no longer exists", remote.name, record_id
                )
            else:
                extra.append(record)
        logger.debug(
            "Backfilled %d of %d unlisted %s records",
            len(extra),
            len(missing),
            remote.name,
        )
        return records + extra

    def _reconcile(self, state: _PassState) -> ReconciliationPlan:
        plan = reconcile(
            state.fetched[Side.A].records,
            state.fetched[Side.B].records,
            self.store,
            remote_a=self.remotes[Side.A],
            remote_b=self.remotes[Side.B],
            eligible_a=self.eligibility[Side.A],
            eligible_b=self.eligibility[Side.B],
            resolver=self.resolver,
        )
        # Adoptions and hash refreshes need no remote write; in a dry run
        # they only live in memory since the store is never saved.
        for mapping in plan.adopted:
            self.store.upsert(mapping)
        return plan

    def _execute(self, state: _PassState, target: Side) -> None:
        decisions = state.plan.creates_for(target) + state.plan.updates_for(
            target
        )
        if not decisions:
            return
        if not self.direction.includes(target):
            logger.info(
                "Direction %s: skipping %d changes for %s",
                self.direction.value,
                len(decisions),
                self.remotes[target].name,
            )
            state.skipped += len(decisions)
            return

        pairs = [(self._command(d), d) for d in decisions]
        if state.dry_run:
            for command, decision in pairs:
                state.results.append(self._preview(command, decision))
            return

        results = self.executors[target].execute([c for c, _ in pairs])
        by_token = {r.token: r for r in results}
        failed_groups = {r.group for r in results if not r.ok}
        now = self.clock()

        for command, decision in pairs:
            result = by_token.get(command.token)
            if result is None:
                continue
            ok = result.ok and command.group not in failed_groups
            if ok:
                self.store.upsert(self._commit(decision, result, now))
                state.eligible[target].add(result.remote_id)
            state.results.append(
                self._sync_result(command, decision, result, ok)
            )

        if self.cancel_event.is_set():
            raise SyncCancelled("Cancelled during execution")

    def _execute_deletions(
        self, state: _PassState, candidates: list[RemovalCandidate]
    ) -> None:
        pending: dict[Side, list[tuple[Command, RemovalCandidate]]] = {
            Side.A: [],
            Side.B: [],
        }
        for candidate in candidates:
            side = candidate.side_to_delete_from
            if candidate.remote_id is None:
                if not state.dry_run:
                    self.store.delete(candidate.local_key)
                continue
            if not self.direction.includes(side):
                state.skipped += 1
                continue
            command = Command(
                kind=CommandKind.DELETE,
                token=uuid.uuid4().hex,
                group=candidate.local_key,
                remote_id=Confirmed(id=candidate.remote_id),
            )
            pending[side].append((command, candidate))

        for side, pairs in pending.items():
            if not pairs:
                continue
            if state.dry_run:
                for command, candidate in pairs:
                    self._log_action(
                        f"DELETE on {self.remotes[side].name}: "
                        f"{candidate.title or candidate.remote_id} "
                        f"({candidate.reason.value})"
                    )
                    state.results.append(
                        self._deletion_result(candidate, side, True)
                    )
                continue

            results = self.executors[side].execute([c for c, _ in pairs])
            by_token = {r.token: r for r in results}
            for command, candidate in pairs:
                result = by_token.get(command.token)
                if result is None:
                    continue
                if result.ok:
                    self.store.delete(candidate.local_key)
                state.results.append(
                    self._deletion_result(
                        candidate, side, result.ok, result.error
                    )
                )

        if self.cancel_event.is_set():
            raise SyncCancelled("Cancelled during deletions")

    @property
    def _phase_name(self) -> str:
        return self.phase.value if self.phase else "startup"

    def _checkpoint(self, state: _PassState) -> None:
        if state.loaded and not state.dry_run:
            self.store.save()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _command(self, decision: ReconciliationDecision) -> Command:
        token = uuid.uuid4().hex
        if decision.kind is DecisionKind.CREATE:
            return Command(
                kind=CommandKind.CREATE,
                token=token,
                group=decision.local_key,
                remote_id=new_temp_id(),
                snapshot=decision.snapshot,
                back_reference=decision.source_id,
            )

        kind = CommandKind.UPDATE
        current = decision.target_snapshot
        if current is not None and differs_only_in_completion(
            current, decision.snapshot
        ):
            kind = (
                CommandKind.COMPLETE
                if decision.snapshot.completed
                else CommandKind.UNCOMPLETE
            )
        return Command(
            kind=kind,
            token=token,
            group=decision.local_key,
            remote_id=Confirmed(id=decision.remote_id),
            snapshot=decision.snapshot,
            previous=current,
        )

    def _commit(
        self,
        decision: ReconciliationDecision,
        result: CommandResult,
        now: datetime,
    ) -> SyncMapping:
        """Mapping row after a successful write of *decision*.

        Both sides now hold the pushed content, so both hashes are set to
        its hash; the target's edit time is the time of the write.
        """
        target, source = decision.side, decision.side.other
        content_hash = compute_hash(decision.snapshot)
        mapping = self.store.get(decision.local_key) or SyncMapping(
            local_key=decision.local_key,
            **{f"{source.value}_id": decision.source_id},
        )
        mapping = mapping.with_side(
            source,
            remote_id=decision.source_id,
            content_hash=content_hash,
            last_edited=decision.snapshot.last_edited,
        )
        return mapping.with_side(
            target,
            remote_id=result.remote_id,
            content_hash=content_hash,
            last_edited=now,
        )

    def _preview(
        self, command: Command, decision: ReconciliationDecision
    ) -> SyncResult:
        snapshot = decision.snapshot
        target_name = self.remotes[decision.side].name
        self._log_action(
            f"{command.kind.value.upper()} on {target_name}: {snapshot.title}"
            f" (due {snapshot.due_date or '-'}, {snapshot.priority.value})"
        )
        return SyncResult(
            local_key=decision.local_key,
            title=snapshot.title,
            direction=Direction.towards(decision.side),
            action=_ACTION[command.kind],
            success=True,
            target_id=decision.remote_id,
            reason=decision.reason,
            details=_details(decision),
        )

    def _sync_result(
        self,
        command: Command,
        decision: ReconciliationDecision,
        result: CommandResult,
        ok: bool,
    ) -> SyncResult:
        error = result.error
        if not ok and error is None:
            error = "Another command for this record failed"
        return SyncResult(
            local_key=decision.local_key,
            title=decision.snapshot.title,
            direction=Direction.towards(decision.side),
            action=_ACTION[command.kind],
            success=ok,
            target_id=result.remote_id,
            reason=decision.reason,
            error=error,
            details=_details(decision),
        )

    def _deletion_result(
        self,
        candidate: RemovalCandidate,
        side: Side,
        ok: bool,
        error: str | None = None,
    ) -> SyncResult:
        return SyncResult(
            local_key=candidate.local_key,
            title=candidate.title or "",
            direction=Direction.towards(side),
            action=SyncAction.DELETE,
            success=ok,
            target_id=candidate.remote_id,
            reason=candidate.reason.value,
            error=error,
        )

    def _log_action(self, line: str) -> None:
        self.action_log.append(line)
        logger.info("[dry run] %s", line)

    def _report(self, state: _PassState) -> SyncReport:
        unchanged = state.plan.unchanged if state.plan else 0
        report = SyncReport(
            profile_name=self.store.profile_name,
            direction=self.direction,
            dry_run=state.dry_run,
            results=state.results,
            skipped=unchanged + state.skipped,
            warnings=state.warnings,
            cancelled=state.cancelled,
            started_at=state.started_at,
            completed_at=utcnow().isoformat(),
        )
        logger.info(
            "Sync pass finished: %s",
            ", ".join(f"{k}={v}" for k, v in report.counts().items()),
        )
        return report


def _details(decision: ReconciliationDecision) -> dict:
    snapshot = decision.snapshot
    return {
        "due": snapshot.due_date,
        "priority": snapshot.priority.value,
        "completed": snapshot.completed,
        "labels": sorted(snapshot.labels),
    }
