"""Unified configuration schema for taskbridge.

Defines Pydantic models for the unified config structure with dedicated
sections for the Notion side, the Todoist side, sync behaviour and logging.
Includes an adapter function producing the flat ``Config`` dataclass used by
the CLI.

Usage:
    from taskbridge.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"direction": "a-to-b"})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


def _default_priority_names() -> dict[str, str]:
    return {
        "critical": "🔴 Critical",
        "high": "🟠 High",
        "medium": "🟡 Medium",
        "low": "⚪ Low",
    }


class NotionConfig(BaseModel):
    """Side A: Notion database settings.

    Property names describe the task database schema.  ``title_property``
    is detected from the database schema when left unset.
    """

    token: str | None = Field(default=None, description="Integration token")
    database_id: str | None = Field(
        default=None, description="Task database id"
    )
    api_url: str = Field(default="https://api.notion.com/v1")
    api_version: str = Field(default="2022-06-28")
    title_property: str | None = Field(default=None)
    due_property: str = Field(default="Do Date")
    status_property: str = Field(default="Status")
    status_type: Literal["status", "select", "checkbox"] = Field(
        default="status",
        description="Notion property type used for completion",
    )
    done_status: str = Field(default="✅ Done")
    active_status: str = Field(default="🚀 In Progress")
    priority_property: str = Field(default="Priority")
    priority_names: dict[str, str] = Field(
        default_factory=_default_priority_names,
        description="Shared priority level -> Notion select option",
    )
    tags_property: str | None = Field(default="Tags")
    filter: dict[str, Any] | None = Field(
        default=None,
        description="Raw Notion filter object applied to the database query",
    )
    requests_per_second: float = Field(default=3.0, ge=0)

    model_config = {"frozen": True}


class TodoistConfig(BaseModel):
    """Side B: Todoist project settings."""

    token: str | None = Field(default=None, description="API token")
    project: str = Field(
        default="Notion Tasks", description="Project holding synced tasks"
    )
    sync_url: str = Field(default="https://api.todoist.com/api/v1/sync")
    requests_per_second: float = Field(default=1.0, ge=0)

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync engine behaviour."""

    profile: str = Field(default="default", description="State profile name")
    state_dir: str = Field(default=".taskbridge")
    direction: Literal["two-way", "a-to-b", "b-to-a"] = Field(
        default="two-way"
    )
    conflict_strategy: Literal["latest-wins", "a-wins", "b-wins"] = Field(
        default="latest-wins"
    )
    max_attempts: int = Field(
        default=4,
        ge=1,
        le=20,
        description="Attempts per request for transient failures (1-20)",
    )
    max_batch_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Commands per batch request (provider ceiling is 100)",
    )
    interval_minutes: int = Field(
        default=15, ge=1, description="Scheduler interval"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    notion: NotionConfig = Field(default_factory=NotionConfig)
    todoist: TodoistConfig = Field(default_factory=TodoistConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get their defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the flat ``Config`` dataclass,
    applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > default

    CLI overrides dict keys: notion_token, database_id, todoist_token,
    project, direction, profile.

    Args:
        unified: The unified config produced by ``build_config()``.
        cli_overrides: Optional dict of CLI argument values.

    Returns:
        ``Config`` dataclass instance (NOT validated; the caller should run
        ``validate_config()`` separately if needed).
    """
    # Import here to avoid circular imports (config.py imports config_schema)
    from .config import Config

    overrides = cli_overrides or {}

    return Config(
        notion_token=overrides.get("notion_token")
        or unified.notion.token
        or "",
        database_id=overrides.get("database_id")
        or unified.notion.database_id
        or "",
        todoist_token=overrides.get("todoist_token")
        or unified.todoist.token
        or "",
        project=overrides.get("project") or unified.todoist.project,
        direction=overrides.get("direction") or unified.sync.direction,
        profile=overrides.get("profile") or unified.sync.profile,
        state_dir=unified.sync.state_dir,
        conflict_strategy=unified.sync.conflict_strategy,
        max_attempts=unified.sync.max_attempts,
        max_batch_size=unified.sync.max_batch_size,
        interval_minutes=unified.sync.interval_minutes,
    )
