"""Remote system interface and the two concrete providers.

The sync engine only talks to ``TaskRemote``:

* ``list_records(cursor)`` -- current record set plus the advanced cursor.
* ``get_record_by_id(id)`` -- direct fetch; ``None`` means not found.
* ``submit_batch(commands)`` -- apply provider-neutral ``Command`` objects
  and report per-token status and the temp-id mapping.
* ``to_snapshot`` / ``record_id`` / ``back_reference`` -- per-provider
  normalisation, delegated to the adapters module.

``NotionRemote`` has no native batch endpoint, so commands are applied one by
one through the paced client.  ``TodoistRemote`` expands commands into the
sync API's command list and submits them in as few requests as possible.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Protocol

from taskbridge.core.errors import (
    AuthError,
    RemoteNotFoundError,
    TaskBridgeError,
)
from taskbridge.core.notion_client import NotionClient
from taskbridge.core.todoist_client import (
    MAX_COMMANDS_PER_REQUEST,
    TodoistClient,
)
from taskbridge.sync.adapters import NotionAdapter, RawRecord, TodoistAdapter
from taskbridge.sync.models import (
    BatchResult,
    Command,
    CommandKind,
    CommandStatus,
    FetchResult,
    Pending,
    Side,
    SyncCursor,
    TaskSnapshot,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class TaskRemote(Protocol):
    """Read/write interface the engine needs from one remote system."""

    side: Side
    name: str

    def list_records(self, cursor: SyncCursor | None) -> FetchResult:
        """Return the current record set (cursor may be ignored)."""
        ...  # pragma: no cover

    def get_record_by_id(self, record_id: str) -> RawRecord | None:
        """Fetch one record; ``None`` when it does not exist."""
        ...  # pragma: no cover

    def submit_batch(self, commands: list[Command]) -> BatchResult:
        """Apply *commands* and report status per correlation token."""
        ...  # pragma: no cover

    def to_snapshot(self, record: RawRecord) -> TaskSnapshot: ...

    def record_id(self, record: RawRecord) -> str: ...

    def back_reference(self, record: RawRecord) -> str | None: ...


def _failed(exc: TaskBridgeError) -> CommandStatus:
    return CommandStatus(
        ok=False, error=exc.message, error_type=type(exc).__name__
    )


# ---------------------------------------------------------------------------
# Notion (side A)
# ---------------------------------------------------------------------------


class NotionRemote:
    """Side A backed by a Notion database."""

    side = Side.A
    name = "Notion"

    def __init__(self, client: NotionClient, adapter: NotionAdapter) -> None:
        self.client = client
        self.adapter = adapter
        self.filter: dict[str, Any] | None = adapter.config.filter

    def _ensure_title_property(self) -> None:
        if self.adapter.title_property is None:
            schema = self.client.retrieve_database()
            detected = self.adapter.detect_title_property(schema)
            logger.debug("Detected Notion title property: %s", detected)

    def list_records(self, cursor: SyncCursor | None = None) -> FetchResult:
        self._ensure_title_property()
        return FetchResult(records=self.client.query_database(self.filter))

    def get_record_by_id(self, record_id: str) -> RawRecord | None:
        try:
            return self.client.retrieve_page(record_id)
        except RemoteNotFoundError:
            return None

    def submit_batch(self, commands: list[Command]) -> BatchResult:
        self._ensure_title_property()
        temp_ids: dict[str, str] = {}
        statuses: dict[str, CommandStatus] = {}
        for command in commands:
            try:
                created = self._apply(command)
            except AuthError:
                raise
            except RemoteNotFoundError as exc:
                if command.kind is CommandKind.DELETE:
                    statuses[command.token] = CommandStatus(ok=True)
                    continue
                statuses[command.token] = _failed(exc)
                continue
            except TaskBridgeError as exc:
                logger.warning(
                    "Notion %s failed for %s: %s",
                    command.kind.value,
                    command.group,
                    exc.message,
                )
                statuses[command.token] = _failed(exc)
                continue
            if created is not None:
                temp_ids[command.remote_id.value] = created
            statuses[command.token] = CommandStatus(ok=True)
        return BatchResult(temp_id_mapping=temp_ids, statuses=statuses)

    def _apply(self, command: Command) -> str | None:
        target = command.remote_id.value
        match command.kind:
            case CommandKind.CREATE:
                page = self.client.create_page(
                    self.adapter.to_properties(command.snapshot)
                )
                return page.get("id")
            case CommandKind.UPDATE:
                self.client.update_page(
                    target, self.adapter.to_properties(command.snapshot)
                )
            case CommandKind.COMPLETE | CommandKind.UNCOMPLETE:
                self.client.update_page(
                    target,
                    self.adapter.completion_properties(
                        command.kind is CommandKind.COMPLETE
                    ),
                )
            case CommandKind.DELETE:
                self.client.archive_page(target)
        return None

    def to_snapshot(self, record: RawRecord) -> TaskSnapshot:
        return self.adapter.to_snapshot(record)

    def record_id(self, record: RawRecord) -> str:
        return self.adapter.record_id(record)

    def back_reference(self, record: RawRecord) -> str | None:
        return None


# ---------------------------------------------------------------------------
# Todoist (side B)
# ---------------------------------------------------------------------------


class TodoistRemote:
    """Side B backed by one Todoist project.

    Args:
        client: Sync API client.
        adapter: Item normaliser.
        project_name: Project holding the synced tasks.
        create_project: Create the project when it does not exist.  When
            ``False`` (dry runs) a missing project just lists as empty.
    """

    side = Side.B
    name = "Todoist"

    def __init__(
        self,
        client: TodoistClient,
        adapter: TodoistAdapter,
        project_name: str,
        *,
        create_project: bool = True,
    ) -> None:
        self.client = client
        self.adapter = adapter
        self.project_name = project_name
        self.create_project = create_project
        self.project_id: str | None = None

    def ensure_project(self) -> str | None:
        """Resolve (and, if allowed, create) the target project id."""
        if self.project_id is not None:
            return self.project_id
        project = self.client.find_project(self.project_name)
        if project is not None:
            self.project_id = str(project["id"])
        elif self.create_project:
            self.project_id = self.client.create_project(self.project_name)
        else:
            logger.info(
                "Todoist project '%s' does not exist and would be created",
                self.project_name,
            )
        return self.project_id

    def list_records(self, cursor: SyncCursor | None = None) -> FetchResult:
        project_id = self.ensure_project()
        token = cursor.token if cursor else "*"
        data = self.client.sync(token, ["items"])
        full = data.get("full_sync", token == "*")
        records: dict[str, RawRecord] = (
            {} if full or cursor is None else dict(cursor.records)
        )
        for item in data.get("items", []):
            item_id = str(item["id"])
            if item.get("is_deleted") or str(item.get("project_id")) != str(
                project_id
            ):
                records.pop(item_id, None)
            else:
                records[item_id] = item
        new_cursor = SyncCursor(
            token=data.get("sync_token", token), records=records
        )
        logger.debug(
            "Todoist %s sync: %d items in project",
            "full" if full else "incremental",
            len(records),
        )
        return FetchResult(records=list(records.values()), cursor=new_cursor)

    def get_record_by_id(self, record_id: str) -> RawRecord | None:
        try:
            return self.client.get_item(record_id)
        except RemoteNotFoundError:
            return None

    # -- writes ----------------------------------------------------------

    def _expand(self, command: Command) -> list[dict[str, Any]]:
        """Translate one neutral command into sync API commands."""
        target = command.remote_id.value

        def op(kind: str, args: dict[str, Any], **extra) -> dict[str, Any]:
            return {
                "type": kind,
                "uuid": str(uuid.uuid4()),
                "args": args,
                **extra,
            }

        match command.kind:
            case CommandKind.CREATE:
                args = self.adapter.to_args(
                    command.snapshot, command.back_reference
                )
                args["project_id"] = self.project_id
                ops = [op("item_add", args, temp_id=target)]
                if command.snapshot.completed:
                    ops.append(op("item_complete", {"id": target}))
                return ops
            case CommandKind.UPDATE:
                args = self.adapter.to_args(command.snapshot)
                ops = [op("item_update", {"id": target, **args})]
                before = command.previous
                done = command.snapshot.completed
                if before is None or before.completed != done:
                    kind = "item_complete" if done else "item_uncomplete"
                    ops.append(op(kind, {"id": target}))
                return ops
            case CommandKind.COMPLETE:
                return [op("item_complete", {"id": target})]
            case CommandKind.UNCOMPLETE:
                return [op("item_uncomplete", {"id": target})]
            case CommandKind.DELETE:
                return [op("item_delete", {"id": target})]
        raise ValueError(f"Unsupported command kind: {command.kind}")

    def _requests(
        self, commands: list[Command]
    ) -> list[list[tuple[str, dict[str, Any]]]]:
        """Pack expanded commands into requests without splitting a token."""
        requests: list[list[tuple[str, dict[str, Any]]]] = [[]]
        for command in commands:
            ops = [(command.token, op) for op in self._expand(command)]
            if len(requests[-1]) + len(ops) > MAX_COMMANDS_PER_REQUEST:
                requests.append([])
            requests[-1].extend(ops)
        return [r for r in requests if r]

    def submit_batch(self, commands: list[Command]) -> BatchResult:
        if any(c.kind is CommandKind.CREATE for c in commands):
            self.ensure_project()
        temp_ids: dict[str, str] = {}
        statuses: dict[str, CommandStatus] = {}
        for request in self._requests(commands):
            response = self.client.submit_commands([op for _, op in request])
            temp_ids.update(response.get("temp_id_mapping") or {})
            sync_status = response.get("sync_status") or {}
            for token, op in request:
                status = sync_status.get(op["uuid"])
                if statuses.get(token, CommandStatus(ok=True)).ok is False:
                    continue
                if status == "ok":
                    statuses[token] = CommandStatus(ok=True)
                elif op["type"] == "item_delete" and _is_not_found(status):
                    statuses[token] = CommandStatus(ok=True)
                else:
                    statuses[token] = CommandStatus(
                        ok=False,
                        error=_describe_error(status),
                        error_type="ValidationError",
                    )
        return BatchResult(temp_id_mapping=temp_ids, statuses=statuses)

    def to_snapshot(self, record: RawRecord) -> TaskSnapshot:
        return self.adapter.to_snapshot(record)

    def record_id(self, record: RawRecord) -> str:
        return self.adapter.record_id(record)

    def back_reference(self, record: RawRecord) -> str | None:
        return self.adapter.back_reference(record)


def _is_not_found(status: Any) -> bool:
    return isinstance(status, dict) and status.get("http_code") == 404


def _describe_error(status: Any) -> str:
    if status is None:
        return "No status returned for command"
    if isinstance(status, dict):
        return str(status.get("error") or status)
    return str(status)


def new_temp_id() -> Pending:
    """Allocate a temporary identifier for a record about to be created."""
    return Pending(temp_id=str(uuid.uuid4()))
