"""Reconciliation of both record sets against the mapping store.

``reconcile()`` classifies every record on each side as new, changed,
unchanged or removed relative to the stored mappings and returns a
``ReconciliationPlan``.  It performs no I/O and never mutates the store;
mapping rows that change without any remote write (back-reference
adoptions, refreshed hashes) are returned in ``plan.adopted`` for the
engine to upsert.

Rules, per mapping:

* Side A is authoritative for existence.  A mapping whose A record is
  missing or ineligible goes to ``removed_from_a`` for the deletion
  reconciler; it never produces an update.
* A eligible, B counterpart absent (never created, or confirmed gone):
  create on B, reusing the mapping key.
* Both present: each side's live hash is compared with its stored hash.
  One side changed -> push it to the other.  Both changed -> the resolver
  picks one winner.  A B record that lost eligibility while A is still
  eligible counts as changed on B: when B wins, its state (e.g. a cleared
  due date) is written to A, and A's own ineligibility then removes the
  pair through the deletion reconciler on the next pass.
* Live hashes already equal -> unchanged (stale stored hashes are
  refreshed through ``plan.adopted``).

Unmapped records are new and are created on the other side, except side-B
records carrying a back-reference to a side-A record, which are adopted
into that record's mapping instead.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from taskbridge.sync.adapters import EligibilityPredicate, RawRecord
from taskbridge.sync.detector import compute_hash
from taskbridge.sync.models import (
    DecisionKind,
    ReconciliationDecision,
    ReconciliationPlan,
    Side,
    SyncMapping,
    TaskSnapshot,
)
from taskbridge.sync.remotes import TaskRemote
from taskbridge.sync.resolver import ConflictResolver, LatestWinsResolver
from taskbridge.sync.state import MappingStore

logger = logging.getLogger(__name__)


@dataclass
class SideView:
    """Normalised view of one side's fetched records, keyed by remote id."""

    side: Side
    records: dict[str, RawRecord] = field(default_factory=dict)
    snapshots: dict[str, TaskSnapshot] = field(default_factory=dict)
    hashes: dict[str, str] = field(default_factory=dict)
    eligible: set[str] = field(default_factory=set)

    @classmethod
    def build(
        cls,
        side: Side,
        records: list[RawRecord],
        remote: TaskRemote,
        is_eligible: EligibilityPredicate,
    ) -> SideView:
        view = cls(side=side)
        for record in records:
            record_id = remote.record_id(record)
            snapshot = remote.to_snapshot(record)
            view.records[record_id] = record
            view.snapshots[record_id] = snapshot
            view.hashes[record_id] = compute_hash(snapshot)
            if is_eligible(record):
                view.eligible.add(record_id)
        return view

    def __contains__(self, record_id: object) -> bool:
        return record_id in self.records


def new_local_key() -> str:
    return uuid.uuid4().hex


class _PlanBuilder:
    def __init__(self) -> None:
        self.creates: dict[Side, list[ReconciliationDecision]] = {
            Side.A: [],
            Side.B: [],
        }
        self.updates: dict[Side, list[ReconciliationDecision]] = {
            Side.A: [],
            Side.B: [],
        }
        self.removed: dict[Side, list[str]] = {Side.A: [], Side.B: []}
        self.adopted: list[SyncMapping] = []
        self.unchanged = 0
        self.conflicts = 0

    def create(
        self,
        target: Side,
        local_key: str,
        snapshot: TaskSnapshot,
        source_id: str,
        reason: str,
    ) -> None:
        self.creates[target].append(
            ReconciliationDecision(
                kind=DecisionKind.CREATE,
                side=target,
                local_key=local_key,
                snapshot=snapshot,
                source_id=source_id,
                reason=reason,
            )
        )

    def update(
        self,
        target: Side,
        mapping: SyncMapping,
        snapshot: TaskSnapshot,
        target_snapshot: TaskSnapshot,
        reason: str,
    ) -> None:
        self.updates[target].append(
            ReconciliationDecision(
                kind=DecisionKind.UPDATE,
                side=target,
                local_key=mapping.local_key,
                snapshot=snapshot,
                remote_id=mapping.id_for(target),
                source_id=mapping.id_for(target.other),
                target_snapshot=target_snapshot,
                reason=reason,
            )
        )

    def build(self) -> ReconciliationPlan:
        return ReconciliationPlan(
            to_create_on_b=self.creates[Side.B],
            to_update_on_b=self.updates[Side.B],
            to_create_on_a=self.creates[Side.A],
            to_update_on_a=self.updates[Side.A],
            removed_from_a=self.removed[Side.A],
            removed_from_b=self.removed[Side.B],
            adopted=self.adopted,
            unchanged=self.unchanged,
            conflicts=self.conflicts,
        )


def _adopt_back_references(
    view_a: SideView,
    view_b: SideView,
    remote_b: TaskRemote,
    mappings: dict[str, SyncMapping],
    plan: _PlanBuilder,
) -> set[str]:
    """Attach unmapped B records pointing at an A record to its mapping.

    Returns the ids of B records that must not be treated as new (adopted
    ones, and duplicates or records pointing at a non-syncing A record).
    """
    mapped_b = {m.b_id for m in mappings.values() if m.b_id}
    a_to_key = {m.a_id: m.local_key for m in mappings.values() if m.a_id}
    claimed: set[str] = set()

    for b_id, record in view_b.records.items():
        if b_id in mapped_b:
            continue
        a_id = remote_b.back_reference(record)
        if a_id is None:
            continue
        claimed.add(b_id)
        key = a_to_key.get(a_id)
        existing = mappings.get(key) if key else None

        if existing is not None and existing.b_id in view_b:
            logger.warning(
                "Record %s references %s which is already mapped to %s; "
                "leaving it alone",
                b_id,
                a_id,
                existing.b_id,
            )
            continue
        if existing is None and a_id not in view_a.eligible:
            logger.debug(
                "Record %s references %s which is not syncing; skipping",
                b_id,
                a_id,
            )
            continue

        if existing is None:
            adopted = SyncMapping(
                local_key=new_local_key(), a_id=a_id, b_id=b_id
            )
        else:
            adopted = existing.model_copy(
                update={"b_id": b_id, "b_hash": existing.a_hash}
            )
        logger.info(
            "Adopting %s record %s into mapping %s via back-reference",
            view_b.side.value,
            b_id,
            adopted.local_key,
        )
        mappings[adopted.local_key] = adopted
        a_to_key[a_id] = adopted.local_key
        mapped_b.add(b_id)
        plan.adopted.append(adopted)

    return claimed


def _reconcile_pair(
    mapping: SyncMapping,
    view_a: SideView,
    view_b: SideView,
    resolver: ConflictResolver,
    plan: _PlanBuilder,
) -> None:
    a_id, b_id = mapping.a_id, mapping.b_id

    if a_id is None:
        # Mapped on B only: B drives existence of this row.
        if b_id in view_b.eligible:
            plan.create(
                Side.A,
                mapping.local_key,
                view_b.snapshots[b_id],
                b_id,
                "missing on A",
            )
        else:
            plan.removed[Side.B].append(mapping.local_key)
        return

    if a_id not in view_a.eligible:
        plan.removed[Side.A].append(mapping.local_key)
        return

    snap_a = view_a.snapshots[a_id]
    if b_id is None or b_id not in view_b:
        plan.create(
            Side.B,
            mapping.local_key,
            snap_a,
            a_id,
            "missing on B" if b_id is None else "recreate: gone from B",
        )
        return

    snap_b = view_b.snapshots[b_id]
    live_a, live_b = view_a.hashes[a_id], view_b.hashes[b_id]
    b_eligible = b_id in view_b.eligible

    if live_a == live_b and b_eligible:
        plan.unchanged += 1
        if mapping.a_hash != live_a or mapping.b_hash != live_b:
            plan.adopted.append(
                mapping.model_copy(
                    update={
                        "a_hash": live_a,
                        "b_hash": live_b,
                        "a_last_edited": snap_a.last_edited,
                        "b_last_edited": snap_b.last_edited,
                    }
                )
            )
        return

    changed_a = live_a != mapping.a_hash
    changed_b = live_b != mapping.b_hash or not b_eligible

    if changed_a and changed_b:
        plan.conflicts += 1
        winner = resolver.resolve(snap_a, snap_b)
        reason = f"conflict: {winner.value} wins"
        logger.info(
            "Conflict on %s (A edited %s, B edited %s): side %s wins",
            mapping.local_key,
            snap_a.last_edited,
            snap_b.last_edited,
            winner.value,
        )
    elif changed_b:
        winner = Side.B
        reason = "changed on B" if b_eligible else "ineligible on B"
    else:
        # changed_a, or neither: stale stored hashes resolve towards A
        winner, reason = Side.A, "changed on A"

    if winner is Side.A:
        plan.update(Side.B, mapping, snap_a, snap_b, reason)
    else:
        plan.update(Side.A, mapping, snap_b, snap_a, reason)


def reconcile(
    records_a: list[RawRecord],
    records_b: list[RawRecord],
    store: MappingStore,
    *,
    remote_a: TaskRemote,
    remote_b: TaskRemote,
    eligible_a: EligibilityPredicate,
    eligible_b: EligibilityPredicate,
    resolver: ConflictResolver | None = None,
) -> ReconciliationPlan:
    """Compare both sides against *store* and decide what to write.

    Args:
        records_a: Raw side-A records (as listed, plus any backfill).
        records_b: Raw side-B records (as listed, plus any backfill).
        store: Loaded mapping store (read only here).
        remote_a / remote_b: Providers used for normalisation.
        eligible_a / eligible_b: Sync-eligibility predicates per side.
        resolver: Conflict strategy (default: latest edit wins, A on ties).

    Returns:
        The plan for this pass.
    """
    resolver = resolver or LatestWinsResolver()
    view_a = SideView.build(Side.A, records_a, remote_a, eligible_a)
    view_b = SideView.build(Side.B, records_b, remote_b, eligible_b)
    plan = _PlanBuilder()

    mappings: dict[str, SyncMapping] = {m.local_key: m for m in store}
    claimed_b = _adopt_back_references(
        view_a, view_b, remote_b, mappings, plan
    )

    for mapping in mappings.values():
        _reconcile_pair(mapping, view_a, view_b, resolver, plan)

    mapped_a = {m.a_id for m in mappings.values() if m.a_id}
    mapped_b = {m.b_id for m in mappings.values() if m.b_id}

    for a_id in view_a.records:
        if a_id in mapped_a or a_id not in view_a.eligible:
            continue
        plan.create(
            Side.B, new_local_key(), view_a.snapshots[a_id], a_id, "new on A"
        )

    for b_id in view_b.records:
        if b_id in mapped_b or b_id in claimed_b:
            continue
        if b_id not in view_b.eligible:
            continue
        plan.create(
            Side.A, new_local_key(), view_b.snapshots[b_id], b_id, "new on B"
        )

    result = plan.build()
    logger.info(
        "Reconciled %d A / %d B records: %d+%d creates, %d+%d updates, "
        "%d unchanged, %d conflicts",
        len(view_a.records),
        len(view_b.records),
        len(result.to_create_on_b),
        len(result.to_create_on_a),
        len(result.to_update_on_b),
        len(result.to_update_on_a),
        result.unchanged,
        result.conflicts,
    )
    return result
