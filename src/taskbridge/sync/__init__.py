"""Bidirectional task sync engine.

Public API for keeping a side-A task store (a Notion database) and a side-B
task store (a Todoist project) consistent.

Architecture
------------
Each side's records are normalised into ``TaskSnapshot`` objects and hashed.
The mapping store keeps, per logical task, the id and last-synced hash on
each side; comparing live hashes against stored ones tells which side
changed since the last pass.  Side A is authoritative for existence.

Modules:

- ``engine``     -- ``SyncEngine``: the per-pass state machine.
- ``state``      -- ``MappingStore``: JSON mapping rows and fetch cursors.
- ``detector``   -- ``compute_hash``: canonical content hashing.
- ``adapters``   -- per-provider record <-> snapshot normalisation.
- ``remotes``    -- ``TaskRemote`` protocol, Notion and Todoist remotes.
- ``reconciler`` -- ``reconcile``: create/update/remove classification.
- ``resolver``   -- conflict winner strategies.
- ``executor``   -- ``BatchCommandExecutor``: batched writes, temp ids.
- ``deletion``   -- ``DeletionReconciler``: removal propagation.
- ``scheduler``  -- ``SyncScheduler``: periodic passes, no overlap.
- ``reporter``   -- human-readable and JSON report formatting.

Usage example
-------------
::

    from taskbridge.sync import SyncEngine, MappingStore, format_sync_report

    engine = SyncEngine(
        notion_remote,
        todoist_remote,
        MappingStore(Path(".taskbridge"), "default"),
        eligible_a=notion_adapter.is_eligible,
        eligible_b=todoist_adapter.is_eligible,
    )

    preview = engine.run(dry_run=True)
    print(format_dry_run_preview(preview))

    report = engine.run()
    print(format_sync_report(report))
"""

from .deletion import DeletionReconciler
from .detector import compute_hash
from .engine import SyncEngine, SyncPhase
from .executor import BatchCommandExecutor
from .models import (
    Command,
    CommandKind,
    CommandResult,
    Direction,
    Side,
    SyncAction,
    SyncMapping,
    SyncReport,
    SyncResult,
    TaskSnapshot,
)
from .reconciler import reconcile
from .reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .resolver import create_resolver
from .scheduler import SyncScheduler
from .state import MappingStore

__all__ = [
    "BatchCommandExecutor",
    "Command",
    "CommandKind",
    "CommandResult",
    "DeletionReconciler",
    "Direction",
    "MappingStore",
    "Side",
    "SyncAction",
    "SyncEngine",
    "SyncMapping",
    "SyncPhase",
    "SyncReport",
    "SyncResult",
    "SyncScheduler",
    "TaskSnapshot",
    "compute_hash",
    "create_resolver",
    "format_dry_run_preview",
    "format_sync_report",
    "reconcile",
    "report_to_json",
]
