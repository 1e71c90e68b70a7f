"""Shared pytest fixtures for taskbridge tests."""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from taskbridge.sync.adapters import parse_timestamp
from taskbridge.sync.engine import SyncEngine
from taskbridge.sync.models import (
    BatchResult,
    Command,
    CommandKind,
    CommandStatus,
    FetchResult,
    Priority,
    Side,
    SyncCursor,
    TaskSnapshot,
)
from taskbridge.sync.state import MappingStore

FIXED_NOW = "2025-06-01T12:00:00Z"


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require live Notion/Todoist credentials",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring live provider credentials"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# In-memory remote
# ---------------------------------------------------------------------------


class FakeRemote:
    """In-memory ``TaskRemote``.

    Raw records are plain dicts::

        {"id", "title", "due", "completed", "priority", "labels",
         "edited", "ref"}

    Knobs for failure injection:

    - ``fail_titles``: commands whose snapshot title is listed fail.
    - ``fail_ids``: commands targeting these ids fail.
    - ``drop_temp_id_titles``: creates succeed but the temp id is missing
      from the response mapping.
    - ``list_error`` / ``submit_error``: raised from the whole call.
    - ``hidden``: ids left out of listings but still fetchable by id.
    """

    def __init__(
        self,
        side: Side,
        name: str,
        records: Optional[List[Dict[str, Any]]] = None,
        now: str = FIXED_NOW,
    ) -> None:
        self.side = side
        self.name = name
        self.now = now
        self.records: Dict[str, Dict[str, Any]] = {}
        for record in records or []:
            self.add(**record)
        self._ids = itertools.count(1)
        self.batches: List[List[Command]] = []
        self.fetches: List[str] = []
        self.fail_titles: set[str] = set()
        self.fail_ids: set[str] = set()
        self.drop_temp_id_titles: set[str] = set()
        self.list_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None
        self.hidden: set[str] = set()
        self.on_submit = None

    # -- test helpers ----------------------------------------------------

    def add(self, id: str, title: str, **fields: Any) -> Dict[str, Any]:
        record = {
            "id": id,
            "title": title,
            "due": fields.get("due"),
            "completed": fields.get("completed", False),
            "priority": fields.get("priority", "low"),
            "labels": list(fields.get("labels", [])),
            "edited": fields.get("edited", "2025-01-01T00:00:00Z"),
            "ref": fields.get("ref"),
        }
        self.records[id] = record
        return record

    def edit(self, id: str, edited: str, **fields: Any) -> None:
        self.records[id].update(fields, edited=edited)

    @property
    def commands(self) -> List[Command]:
        return [c for batch in self.batches for c in batch]

    # -- TaskRemote ------------------------------------------------------

    def list_records(self, cursor: Optional[SyncCursor] = None) -> FetchResult:
        if self.list_error is not None:
            raise self.list_error
        return FetchResult(
            records=[
                dict(r)
                for rid, r in self.records.items()
                if rid not in self.hidden
            ]
        )

    def get_record_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        self.fetches.append(record_id)
        record = self.records.get(record_id)
        return dict(record) if record is not None else None

    def submit_batch(self, commands: List[Command]) -> BatchResult:
        self.batches.append(list(commands))
        if self.on_submit is not None:
            self.on_submit(commands)
        if self.submit_error is not None:
            raise self.submit_error
        temp_ids: Dict[str, str] = {}
        statuses: Dict[str, CommandStatus] = {}
        for command in commands:
            title = command.snapshot.title if command.snapshot else None
            target = command.remote_id.value
            if title in self.fail_titles or target in self.fail_ids:
                statuses[command.token] = CommandStatus(
                    ok=False, error="rejected", error_type="ValidationError"
                )
                continue
            if command.kind is CommandKind.CREATE:
                new_id = f"{self.side.value}{next(self._ids)}"
                self._write(new_id, command.snapshot)
                if command.back_reference and self.side is Side.B:
                    self.records[new_id]["ref"] = command.back_reference
                if title not in self.drop_temp_id_titles:
                    temp_ids[target] = new_id
            elif command.kind is CommandKind.UPDATE:
                self._write(target, command.snapshot)
            elif command.kind is CommandKind.COMPLETE:
                self.edit(target, self.now, completed=True)
            elif command.kind is CommandKind.UNCOMPLETE:
                self.edit(target, self.now, completed=False)
            elif command.kind is CommandKind.DELETE:
                self.records.pop(target, None)
            statuses[command.token] = CommandStatus(ok=True)
        return BatchResult(temp_id_mapping=temp_ids, statuses=statuses)

    def _write(self, record_id: str, snapshot: TaskSnapshot) -> None:
        existing = self.records.get(record_id, {"ref": None})
        self.records[record_id] = {
            "id": record_id,
            "title": snapshot.title,
            "due": snapshot.due_date,
            "completed": snapshot.completed,
            "priority": snapshot.priority.value,
            "labels": sorted(snapshot.labels),
            "edited": self.now,
            "ref": existing.get("ref"),
        }

    def to_snapshot(self, record: Dict[str, Any]) -> TaskSnapshot:
        return TaskSnapshot(
            title=record["title"],
            due_date=record.get("due"),
            completed=record.get("completed", False),
            priority=Priority(record.get("priority", "low")),
            labels=frozenset(record.get("labels", [])),
            last_edited=parse_timestamp(record.get("edited")),
        )

    def record_id(self, record: Dict[str, Any]) -> str:
        return record["id"]

    def back_reference(self, record: Dict[str, Any]) -> Optional[str]:
        return record.get("ref")


def has_due(record: Dict[str, Any]) -> bool:
    return record.get("due") is not None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def remote_a() -> FakeRemote:
    return FakeRemote(Side.A, "Notion")


@pytest.fixture
def remote_b() -> FakeRemote:
    return FakeRemote(Side.B, "Todoist")


@pytest.fixture
def store(tmp_path: Path) -> MappingStore:
    return MappingStore(tmp_path / ".taskbridge", "test")


@pytest.fixture
def make_engine(remote_a: FakeRemote, remote_b: FakeRemote, tmp_path: Path):
    """Factory building a ``SyncEngine`` over the fake remotes."""

    def _make(**kwargs: Any) -> SyncEngine:
        kwargs.setdefault("eligible_a", has_due)
        kwargs.setdefault("eligible_b", has_due)
        store = MappingStore(tmp_path / ".taskbridge", "test")
        return SyncEngine(remote_a, remote_b, store, **kwargs)

    return _make


@pytest.fixture
def eligible():
    return has_due
