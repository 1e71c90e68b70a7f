"""
YAML settings discovery for taskbridge.

Settings files are found by convention, may pull in other files with
``!include``, may reference environment variables as ``${VAR}`` or
``${VAR:-default}``, and are merged so that the project-level file wins
over the user-level one.  A ``profiles:`` mapping can override sections per
sync profile, so one file can drive several Notion database / Todoist
project pairs.

Usage:
    from taskbridge.config_loader import load_hierarchical_config

    raw = load_hierarchical_config(profile="work")
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TASKBRIDGE_CONFIG"
CONFIG_DIR_NAME = ".taskbridge"
PROFILES_KEY = "profiles"

# ${VAR} or ${VAR:-fallback}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` / ``${VAR:-fallback}`` references in *value*.

    An unset or empty variable expands to its fallback, or to ``""`` when
    there is none.  An unterminated ``${`` is left as is.
    """

    def _expand(match: re.Match) -> str:
        name, fallback = match.group(1), match.group(2)
        current = os.environ.get(name)
        if current:
            return current
        return "" if fallback is None else fallback

    return _ENV_REF.sub(_expand, value)


def _expand_all(node: Any) -> Any:
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, dict):
        return {key: _expand_all(item) for key, item in node.items()}
    if isinstance(node, list):
        return [_expand_all(item) for item in node]
    return node


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` that understands ``!include other.yml``.

    Registered on this subclass only; plain ``yaml.safe_load`` is unaffected.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Load the referenced file, relative to the including file's directory."""
    parent = Path(loader.name).resolve()
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        target = parent.parent / target
    target = target.resolve()

    chain: list[Path] = getattr(loader, "_include_stack", [])
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {parent})"
        )
    return _read_yaml(target, _include_stack=[*chain, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def _read_yaml(path: Path, *, _include_stack: list[Path] | None = None) -> Any:
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery and bootstrap
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Existing settings files, highest precedence first.

    1. the file named by ``TASKBRIDGE_CONFIG``
    2. ``./.taskbridge/config.yml``
    3. ``./.taskbridge/config.yaml``
    4. ``~/.config/taskbridge/config.yml``
    """
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())

    project_dir = Path.cwd() / CONFIG_DIR_NAME
    candidates += [
        project_dir / "config.yml",
        project_dir / "config.yaml",
        Path.home() / ".config" / "taskbridge" / "config.yml",
    ]
    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# taskbridge configuration
#
# Credentials can also come from the environment (or a .env file):
#   NOTION_TOKEN, NOTION_DATABASE_ID, TODOIST_TOKEN, TODOIST_PROJECT
#
# notion:
#   token: ${NOTION_TOKEN}
#   database_id: 0123456789abcdef0123456789abcdef
#   due_property: Do Date
#   status_property: Status
#   done_status: "✅ Done"
#   active_status: "🚀 In Progress"
#   priority_property: Priority
#   tags_property: Tags
#
# todoist:
#   token: ${TODOIST_TOKEN}
#   project: Notion Tasks
#
# sync:
#   profile: default
#   direction: two-way          # two-way | a-to-b | b-to-a
#   conflict_strategy: latest-wins
#   interval_minutes: 15
#   max_attempts: 4
#
# logging:
#   level: INFO
#   file: null
#
# profiles:                     # per-profile overrides (--profile NAME)
#   work:
#     notion:
#       database_id: fedcba9876543210fedcba9876543210
#     todoist:
#       project: Work
"""


def resolve_config_path() -> Path:
    """Path of the settings file in use, or where ``init`` would write one."""
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / CONFIG_DIR_NAME / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the settings file, writing a commented starter if none exists."""
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def apply_profile(raw: dict[str, Any], profile: str | None) -> dict[str, Any]:
    """Overlay ``profiles.<profile>`` onto the top-level sections.

    Overrides merge one level deep: a profile's ``notion.database_id``
    replaces only that key of the ``notion`` section.  The ``profiles``
    mapping itself is removed from the result, and ``sync.profile`` is set
    to the selected name.

    Raises:
        ValueError: *profile* is named but not defined in the file, while
            other profiles are.
    """
    profiles = raw.get(PROFILES_KEY) or {}
    merged = {k: v for k, v in raw.items() if k != PROFILES_KEY}
    if not profile:
        return merged
    if profile not in profiles:
        if profiles:
            raise ValueError(
                f"Unknown profile '{profile}'. Defined profiles: "
                f"{', '.join(sorted(profiles))}"
            )
        return merged

    for section, overrides in (profiles[profile] or {}).items():
        base = merged.get(section)
        if isinstance(base, dict) and isinstance(overrides, dict):
            merged[section] = {**base, **overrides}
        else:
            merged[section] = overrides
    merged["sync"] = {**(merged.get("sync") or {}), "profile": profile}
    return merged


def load_hierarchical_config(profile: str | None = None) -> dict[str, Any]:
    """Load, merge and expand every discovered settings file.

    Files are applied lowest precedence first and each replaces whole
    top-level sections of the ones before it.  The selected *profile*'s
    overrides are applied next, then environment references are expanded.

    Returns an empty dict when no file exists (zero-config).
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return apply_profile({}, profile)

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _read_yaml(path)
        except (OSError, ValueError, yaml.YAMLError):
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has a %s at its root, expected a mapping; "
                "skipping",
                path,
                type(data).__name__,
            )

    return _expand_all(apply_profile(merged, profile))
