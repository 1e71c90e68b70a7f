"""Effective runtime configuration.

Reads provider credentials and sync settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    NOTION_TOKEN: Notion integration token (required)
    NOTION_DATABASE_ID: Notion task database id (required)
    TODOIST_TOKEN: Todoist API token (required)
    TODOIST_PROJECT: Todoist project name (optional, default: Notion Tasks)
    TASKBRIDGE_DIRECTION: two-way | a-to-b | b-to-a (optional)
    TASKBRIDGE_MAX_ATTEMPTS: Attempts for transient failures (optional, default: 4)
    TASKBRIDGE_BATCH_SIZE: Commands per batch request (optional, default: 100)
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DIRECTIONS = ("two-way", "a-to-b", "b-to-a")


@dataclass
class Config:
    notion_token: str
    database_id: str
    todoist_token: str
    project: str = "Notion Tasks"
    direction: str = "two-way"
    profile: str = "default"
    state_dir: str = ".taskbridge"
    conflict_strategy: str = "latest-wins"
    max_attempts: int = 4
    max_batch_size: int = 100
    interval_minutes: int = 15


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If credentials are empty or a setting is out of range.
    """
    if not config.notion_token.strip():
        raise ValueError(
            "Notion token cannot be empty. Set NOTION_TOKEN environment variable."
        )

    # Accept both dashed UUIDs and the 32-char form Notion shows in URLs
    config.database_id = config.database_id.strip()
    if len(config.database_id.replace("-", "")) != 32:
        raise ValueError(
            f"Invalid Notion database id '{config.database_id}': "
            "expected 32 hex characters (dashes optional)"
        )

    if not config.todoist_token.strip():
        raise ValueError(
            "Todoist token cannot be empty. Set TODOIST_TOKEN environment variable."
        )

    if not config.project.strip():
        raise ValueError("Todoist project name cannot be empty.")

    if config.direction not in DIRECTIONS:
        raise ValueError(
            f"Invalid direction '{config.direction}': must be one of {', '.join(DIRECTIONS)}"
        )


def _int_setting(
    env_key: str, fallback: dict, fb_key: str, default: int, low: int, high: int
) -> int:
    """Resolve an integer setting: env > YAML > default, range-checked."""
    raw = os.getenv(env_key)
    if raw is None:
        return int(fallback.get(fb_key, default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {env_key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {env_key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    notion_token: str | None = None,
    database_id: str | None = None,
    todoist_token: str | None = None,
    project: str | None = None,
    direction: str | None = None,
    profile: str | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        notion_token: Override Notion token.
        database_id: Override Notion database id.
        todoist_token: Override Todoist token.
        project: Override Todoist project name.
        direction: Override sync direction.
        profile: Override state profile name.
        yaml_fallbacks: Flat dict of values from the YAML config (keys as
            in ``Config``).  Used when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required credentials are missing after checking all
            sources, or a value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- Credentials: CLI > env > YAML > error ---

    final_notion_token = (
        notion_token or os.getenv("NOTION_TOKEN") or fb.get("notion_token")
    )
    if not final_notion_token:
        raise ValueError(
            "Notion token not found. Set NOTION_TOKEN environment variable, "
            "pass --notion-token, or add 'notion.token' to config.yml."
        )

    final_database_id = (
        database_id
        or os.getenv("NOTION_DATABASE_ID")
        or fb.get("database_id")
    )
    if not final_database_id:
        raise ValueError(
            "Notion database id not found. Set NOTION_DATABASE_ID environment "
            "variable, pass --database-id, or add 'notion.database_id' to config.yml."
        )

    final_todoist_token = (
        todoist_token
        or os.getenv("TODOIST_TOKEN")
        or fb.get("todoist_token")
    )
    if not final_todoist_token:
        raise ValueError(
            "Todoist token not found. Set TODOIST_TOKEN environment variable, "
            "pass --todoist-token, or add 'todoist.token' to config.yml."
        )

    # --- Plain settings: CLI > env > YAML > default ---

    final_project = (
        project
        or os.getenv("TODOIST_PROJECT")
        or fb.get("project")
        or "Notion Tasks"
    )
    final_direction = (
        direction
        or os.getenv("TASKBRIDGE_DIRECTION")
        or fb.get("direction")
        or "two-way"
    )

    config = Config(
        notion_token=final_notion_token.strip(),
        database_id=final_database_id,
        todoist_token=final_todoist_token.strip(),
        project=final_project.strip(),
        direction=final_direction,
        profile=profile or fb.get("profile") or "default",
        state_dir=fb.get("state_dir") or ".taskbridge",
        conflict_strategy=fb.get("conflict_strategy") or "latest-wins",
        max_attempts=_int_setting(
            "TASKBRIDGE_MAX_ATTEMPTS", fb, "max_attempts", 4, 1, 20
        ),
        max_batch_size=_int_setting(
            "TASKBRIDGE_BATCH_SIZE", fb, "max_batch_size", 100, 1, 100
        ),
        interval_minutes=int(fb.get("interval_minutes", 15)),
    )

    validate_config(config)

    return config
