"""Per-provider normalisation between raw records and ``TaskSnapshot``.

Every provider record is converted into the shared snapshot shape before it
is hashed or compared; provider-native structures are never hashed directly.
Each adapter also knows how to render a snapshot back into its provider's
write payload, how to read the record id, and (for Todoist) how to find the
back-reference to the originating Notion page embedded in the description.

Default eligibility predicates live here too, but the engine never calls
them implicitly -- the caller injects whichever predicates it wants.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable

from taskbridge.config_schema import NotionConfig
from taskbridge.sync.detector import normalize_due_date, normalize_title
from taskbridge.sync.models import Priority, TaskSnapshot

logger = logging.getLogger(__name__)

RawRecord = dict[str, Any]
EligibilityPredicate = Callable[[RawRecord], bool]

_UUID_PATTERN = re.compile(r"ID:\s*([a-f0-9-]{36})", re.IGNORECASE)
_NOTION_URL_PATTERN = re.compile(
    r"notion\.so/(?:[^\s)]*-)?([a-f0-9]{32})", re.IGNORECASE
)

_TODOIST_PRIORITY = {
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
    Priority.CRITICAL: 4,
}
_TODOIST_PRIORITY_REVERSE = {v: k for k, v in _TODOIST_PRIORITY.items()}


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a provider ISO 8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def due_to_iso(due: str | None) -> str | None:
    """Render a canonical due value as a full ISO 8601 string for writes."""
    if due is None:
        return None
    if len(due) == 10:
        return due
    if due.endswith("Z"):
        return f"{due[:-1]}:00Z"
    return f"{due}:00"


def to_dashed_uuid(raw_id: str) -> str:
    """Convert a 32-hex-char id into dashed UUID form (no-op if dashed)."""
    compact = raw_id.replace("-", "").lower()
    if len(compact) != 32:
        return raw_id
    return "-".join(
        (
            compact[0:8],
            compact[8:12],
            compact[12:16],
            compact[16:20],
            compact[20:32],
        )
    )


def _safe_due(value: Any) -> str | None:
    try:
        return normalize_due_date(value)
    except ValueError:
        logger.warning("Ignoring unparseable due date %r", value)
        return None


# ---------------------------------------------------------------------------
# Notion (side A)
# ---------------------------------------------------------------------------


class NotionAdapter:
    """Normalise Notion database pages.

    Args:
        config: Notion section of the unified config (property names,
            status values, priority option names).
    """

    def __init__(self, config: NotionConfig) -> None:
        self.config = config
        self.title_property: str | None = config.title_property
        self._priority_by_name = {
            name: Priority(level)
            for level, name in config.priority_names.items()
        }
        self._unmapped_priorities: set[str] = set()

    def record_id(self, page: RawRecord) -> str:
        return str(page["id"])

    def record_url(self, page: RawRecord) -> str:
        return page.get("url") or notion_url(page["id"])

    def detect_title_property(self, schema: RawRecord) -> str | None:
        """Pick the title property from a database schema response."""
        for name, prop in schema.get("properties", {}).items():
            if prop.get("type") == "title":
                self.title_property = name
                return name
        return None

    # -- reading -------------------------------------------------------

    def extract_title(self, page: RawRecord) -> str:
        properties = page.get("properties", {})
        prop = properties.get(self.title_property or "")
        if prop is None:
            prop = next(
                (p for p in properties.values() if p.get("type") == "title"),
                None,
            )
        if not prop:
            return "Untitled"
        text = "".join(
            part.get("plain_text", "") for part in prop.get("title", [])
        )
        return normalize_title(text) or "Untitled"

    def extract_due(self, page: RawRecord) -> str | None:
        prop = page.get("properties", {}).get(self.config.due_property) or {}
        date_value = prop.get("date") or {}
        return _safe_due(date_value.get("start"))

    def extract_completed(self, page: RawRecord) -> bool:
        prop = (
            page.get("properties", {}).get(self.config.status_property) or {}
        )
        match self.config.status_type:
            case "checkbox":
                return bool(prop.get("checkbox"))
            case kind:
                option = prop.get(kind) or {}
                return option.get("name") == self.config.done_status

    def extract_priority(self, page: RawRecord) -> Priority:
        prop = (
            page.get("properties", {}).get(self.config.priority_property)
            or {}
        )
        name = (prop.get("select") or {}).get("name")
        if name is None:
            return Priority.LOW
        if name not in self._priority_by_name:
            # Read as low; a later push to Notion writes the low option back
            if name not in self._unmapped_priorities:
                self._unmapped_priorities.add(name)
                logger.warning(
                    "Priority option %r is not in notion.priority_names; "
                    "treating it as low",
                    name,
                )
            return Priority.LOW
        return self._priority_by_name[name]

    def extract_labels(self, page: RawRecord) -> frozenset[str]:
        if not self.config.tags_property:
            return frozenset()
        prop = page.get("properties", {}).get(self.config.tags_property) or {}
        return frozenset(
            option["name"]
            for option in prop.get("multi_select") or []
            if option.get("name")
        )

    def to_snapshot(self, page: RawRecord) -> TaskSnapshot:
        return TaskSnapshot(
            title=self.extract_title(page),
            due_date=self.extract_due(page),
            completed=self.extract_completed(page),
            priority=self.extract_priority(page),
            labels=self.extract_labels(page),
            last_edited=parse_timestamp(page.get("last_edited_time")),
        )

    def is_eligible(self, page: RawRecord) -> bool:
        """Default predicate: live page with a due date set."""
        if page.get("archived") or page.get("in_trash"):
            return False
        return self.extract_due(page) is not None

    # -- writing -------------------------------------------------------

    def completion_properties(self, completed: bool) -> RawRecord:
        name = self.config.status_property
        match self.config.status_type:
            case "checkbox":
                return {name: {"checkbox": completed}}
            case kind:
                value = (
                    self.config.done_status
                    if completed
                    else self.config.active_status
                )
                return {name: {kind: {"name": value}}}

    def to_properties(self, snapshot: TaskSnapshot) -> RawRecord:
        """Render *snapshot* as a Notion ``properties`` payload."""
        title_prop = self.title_property or "Name"
        due = due_to_iso(snapshot.due_date)
        properties: RawRecord = {
            title_prop: {"title": [{"text": {"content": snapshot.title}}]},
            self.config.due_property: {
                "date": {"start": due} if due else None
            },
            self.config.priority_property: {
                "select": {
                    "name": self.config.priority_names.get(
                        snapshot.priority.value,
                        self.config.priority_names["low"],
                    )
                }
            },
        }
        properties.update(self.completion_properties(snapshot.completed))
        if self.config.tags_property:
            properties[self.config.tags_property] = {
                "multi_select": [
                    {"name": label} for label in sorted(snapshot.labels)
                ]
            }
        return properties


def notion_url(page_id: str) -> str:
    return f"https://www.notion.so/{page_id.replace('-', '')}"


# ---------------------------------------------------------------------------
# Todoist (side B)
# ---------------------------------------------------------------------------


class TodoistAdapter:
    """Normalise Todoist items."""

    def record_id(self, item: RawRecord) -> str:
        return str(item["id"])

    def extract_due(self, item: RawRecord) -> str | None:
        due = item.get("due") or {}
        return _safe_due(due.get("date") or due.get("datetime"))

    def to_snapshot(self, item: RawRecord) -> TaskSnapshot:
        return TaskSnapshot(
            title=normalize_title(item.get("content", "")),
            due_date=self.extract_due(item),
            completed=bool(
                item.get("checked") or item.get("is_completed") or False
            ),
            priority=_TODOIST_PRIORITY_REVERSE.get(
                int(item.get("priority") or 1), Priority.LOW
            ),
            labels=frozenset(item.get("labels") or []),
            last_edited=parse_timestamp(
                item.get("updated_at") or item.get("added_at")
            ),
        )

    def is_eligible(self, item: RawRecord) -> bool:
        """Default predicate: live item with a due date set."""
        if item.get("is_deleted"):
            return False
        return self.extract_due(item) is not None

    def back_reference(self, item: RawRecord) -> str | None:
        """Return the Notion page id embedded in the description, if any."""
        description = item.get("description") or ""
        match = _UUID_PATTERN.search(description)
        if match:
            return match.group(1).lower()
        match = _NOTION_URL_PATTERN.search(description)
        if match:
            return to_dashed_uuid(match.group(1))
        return None

    @staticmethod
    def describe(source_id: str) -> str:
        """Build the description carrying the back-link to Notion."""
        return "\n".join(
            [
                f"📌 [View in Notion]({notion_url(source_id)})",
                "",
                f"ID: {source_id}",
            ]
        )

    def to_args(
        self, snapshot: TaskSnapshot, back_reference: str | None = None
    ) -> RawRecord:
        """Render *snapshot* as ``item_add`` / ``item_update`` arguments.

        Completion is not part of the payload; it is toggled with separate
        ``item_complete`` / ``item_uncomplete`` commands.
        """
        due = due_to_iso(snapshot.due_date)
        args: RawRecord = {
            "content": snapshot.title,
            "due": {"date": due} if due else None,
            "priority": _TODOIST_PRIORITY[snapshot.priority],
            "labels": sorted(snapshot.labels),
        }
        if back_reference:
            args["description"] = self.describe(back_reference)
        return args
