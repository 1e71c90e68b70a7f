"""Tests for provider record normalisation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from taskbridge.config_schema import NotionConfig
from taskbridge.sync.adapters import (
    NotionAdapter,
    TodoistAdapter,
    due_to_iso,
    parse_timestamp,
    to_dashed_uuid,
)
from taskbridge.sync.detector import compute_hash
from taskbridge.sync.models import Priority, TaskSnapshot

PAGE_ID = "1a2b3c4d-5e6f-4a8b-9c0d-112233445566"


def _page(
    title: str = "Pay rent",
    due: str | None = "2025-01-01",
    status: str = "🚀 In Progress",
    priority: str | None = "🟠 High",
    tags: tuple[str, ...] = ("home",),
    **extra,
) -> dict:
    page = {
        "id": PAGE_ID,
        "last_edited_time": "2025-05-01T10:00:00.000Z",
        "properties": {
            "Name": {
                "type": "title",
                "title": [{"plain_text": part} for part in title.split("|")],
            },
            "Do Date": {
                "type": "date",
                "date": {"start": due} if due else None,
            },
            "Status": {"type": "status", "status": {"name": status}},
            "Priority": {
                "type": "select",
                "select": {"name": priority} if priority else None,
            },
            "Tags": {
                "type": "multi_select",
                "multi_select": [{"name": t} for t in tags],
            },
        },
    }
    page.update(extra)
    return page


def _item(**overrides) -> dict:
    item = {
        "id": "8001",
        "content": "Pay rent",
        "description": "",
        "due": {"date": "2025-01-01"},
        "checked": False,
        "priority": 3,
        "labels": ["home"],
        "updated_at": "2025-05-01T10:00:00Z",
    }
    item.update(overrides)
    return item


@pytest.fixture
def notion() -> NotionAdapter:
    return NotionAdapter(NotionConfig())


@pytest.fixture
def todoist() -> TodoistAdapter:
    return TodoistAdapter()


class TestHelpers:
    def test_parse_timestamp(self):
        assert parse_timestamp("2025-05-01T10:00:00.000Z") == datetime(
            2025, 5, 1, 10, tzinfo=timezone.utc
        )
        assert parse_timestamp(None) is None
        assert parse_timestamp("yesterday") is None

    def test_naive_timestamp_is_utc(self):
        parsed = parse_timestamp("2025-05-01T10:00:00")
        assert parsed.tzinfo is not None

    @pytest.mark.parametrize(
        "due, expected",
        [
            (None, None),
            ("2025-01-01", "2025-01-01"),
            ("2025-01-01T09:30Z", "2025-01-01T09:30:00Z"),
            ("2025-01-01T09:30", "2025-01-01T09:30:00"),
        ],
    )
    def test_due_to_iso(self, due, expected):
        assert due_to_iso(due) == expected

    def test_to_dashed_uuid(self):
        compact = PAGE_ID.replace("-", "")
        assert to_dashed_uuid(compact) == PAGE_ID
        assert to_dashed_uuid(PAGE_ID) == PAGE_ID
        assert to_dashed_uuid("short") == "short"


class TestNotionAdapter:
    def test_to_snapshot(self, notion):
        snapshot = notion.to_snapshot(_page(title="Pay |rent"))
        assert snapshot == TaskSnapshot(
            title="Pay rent",
            due_date="2025-01-01",
            completed=False,
            priority=Priority.HIGH,
            labels=frozenset({"home"}),
            last_edited=datetime(2025, 5, 1, 10, tzinfo=timezone.utc),
        )

    def test_done_status_is_completed(self, notion):
        assert notion.to_snapshot(_page(status="✅ Done")).completed

    def test_checkbox_completion(self):
        adapter = NotionAdapter(
            NotionConfig(status_type="checkbox", status_property="Done")
        )
        page = _page()
        page["properties"]["Done"] = {"type": "checkbox", "checkbox": True}
        assert adapter.extract_completed(page) is True
        assert adapter.completion_properties(False) == {
            "Done": {"checkbox": False}
        }

    def test_unknown_priority_is_low(self, notion, caplog):
        with caplog.at_level(logging.WARNING):
            for _ in range(2):
                priority = notion.extract_priority(_page(priority="Whenever"))
                assert priority is Priority.LOW
            assert notion.extract_priority(_page(priority=None)) is (
                Priority.LOW
            )

        warnings = [r for r in caplog.records if "Whenever" in r.getMessage()]
        assert len(warnings) == 1
        assert "priority_names" in warnings[0].getMessage()

    def test_missing_title_is_untitled(self, notion):
        page = _page()
        del page["properties"]["Name"]
        assert notion.extract_title(page) == "Untitled"

    def test_detect_title_property(self, notion):
        schema = {
            "properties": {
                "Due": {"type": "date"},
                "Task": {"type": "title"},
            }
        }
        assert notion.detect_title_property(schema) == "Task"
        assert notion.title_property == "Task"

    def test_datetime_due_is_normalised(self, notion):
        page = _page(due="2025-01-01T11:30:00.000+02:00")
        assert notion.extract_due(page) == "2025-01-01T09:30Z"

    @pytest.mark.parametrize(
        "page, expected",
        [
            (_page(), True),
            (_page(due=None), False),
            (_page(archived=True), False),
            (_page(in_trash=True), False),
        ],
    )
    def test_is_eligible(self, notion, page, expected):
        assert notion.is_eligible(page) is expected

    def test_to_properties(self, notion):
        snapshot = TaskSnapshot(
            title="Pay rent",
            due_date="2025-01-01T09:30Z",
            completed=True,
            priority=Priority.CRITICAL,
            labels=frozenset({"b", "a"}),
        )
        props = notion.to_properties(snapshot)

        assert props["Name"]["title"][0]["text"]["content"] == "Pay rent"
        assert props["Do Date"] == {"date": {"start": "2025-01-01T09:30:00Z"}}
        assert props["Priority"] == {"select": {"name": "🔴 Critical"}}
        assert props["Status"] == {"status": {"name": "✅ Done"}}
        assert props["Tags"] == {
            "multi_select": [{"name": "a"}, {"name": "b"}]
        }

    def test_properties_round_trip_hash(self, notion):
        original = notion.to_snapshot(_page())
        props = notion.to_properties(original)
        # Read payloads carry "plain_text" rather than the written "text".
        props["Name"] = _page()["properties"]["Name"]
        rebuilt = notion.to_snapshot({"id": PAGE_ID, "properties": props})
        assert compute_hash(rebuilt) == compute_hash(original)


class TestTodoistAdapter:
    def test_to_snapshot(self, todoist):
        snapshot = todoist.to_snapshot(_item())
        assert snapshot.title == "Pay rent"
        assert snapshot.due_date == "2025-01-01"
        assert snapshot.priority is Priority.HIGH
        assert snapshot.labels == frozenset({"home"})
        assert snapshot.completed is False

    def test_same_task_hashes_like_notion(self, notion, todoist):
        assert compute_hash(todoist.to_snapshot(_item())) == compute_hash(
            notion.to_snapshot(_page())
        )

    def test_completion_flags(self, todoist):
        assert todoist.to_snapshot(_item(checked=True)).completed
        assert todoist.to_snapshot(_item(is_completed=True)).completed

    def test_datetime_due(self, todoist):
        item = _item(due={"date": "2025-01-01T09:30:00Z"})
        assert todoist.extract_due(item) == "2025-01-01T09:30Z"

    def test_is_eligible(self, todoist):
        assert todoist.is_eligible(_item())
        assert not todoist.is_eligible(_item(due=None))
        assert not todoist.is_eligible(_item(is_deleted=True))

    def test_back_reference_from_id_line(self, todoist):
        item = _item(description=todoist.describe(PAGE_ID))
        assert todoist.back_reference(item) == PAGE_ID

    def test_back_reference_from_notion_url(self, todoist):
        compact = PAGE_ID.replace("-", "")
        item = _item(
            description=f"See https://www.notion.so/Pay-rent-{compact}"
        )
        assert todoist.back_reference(item) == PAGE_ID

    def test_no_back_reference(self, todoist):
        assert todoist.back_reference(_item()) is None
        assert todoist.back_reference(_item(description=None)) is None

    def test_describe(self, todoist):
        text = todoist.describe(PAGE_ID)
        assert "View in Notion" in text
        assert PAGE_ID.replace("-", "") in text
        assert text.endswith(f"ID: {PAGE_ID}")

    def test_to_args(self, todoist):
        snapshot = TaskSnapshot(
            title="Pay rent",
            due_date="2025-01-01",
            priority=Priority.MEDIUM,
            labels=frozenset({"z", "a"}),
        )
        assert todoist.to_args(snapshot) == {
            "content": "Pay rent",
            "due": {"date": "2025-01-01"},
            "priority": 2,
            "labels": ["a", "z"],
        }
        with_ref = todoist.to_args(snapshot, back_reference=PAGE_ID)
        assert with_ref["description"].endswith(PAGE_ID)

    def test_cleared_due(self, todoist):
        args = todoist.to_args(TaskSnapshot(title="No date"))
        assert args["due"] is None
