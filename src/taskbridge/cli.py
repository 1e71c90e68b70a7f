"""Command line entry point: ``taskbridge sync | status | schedule | init``."""

import argparse
import json
import logging
import sys
import threading
from dataclasses import asdict
from pathlib import Path

import yaml
from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, to_legacy_config
from .core.async_utils import init_semaphore
from .core.errors import AuthError, TaskBridgeError
from .core.notion_client import NotionClient
from .core.todoist_client import TodoistClient
from .logger import setup_logging
from .sync.adapters import NotionAdapter, TodoistAdapter
from .sync.engine import SyncEngine
from .sync.models import Side, SyncReport
from .sync.remotes import NotionRemote, TodoistRemote
from .sync.reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .sync.scheduler import SyncScheduler
from .sync.state import MappingStore

logger = logging.getLogger(__name__)

MAX_PARALLEL_REQUESTS = 4


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def load_unified(profile: str | None = None) -> UnifiedConfig:
    """Load .env, then the YAML settings (with *profile* overrides applied)."""
    load_dotenv()
    return build_config(load_hierarchical_config(profile))


def load_settings(
    unified: UnifiedConfig,
    direction: str | None = None,
    profile: str | None = None,
) -> Config:
    """Resolve connection settings: CLI > env vars > YAML > defaults.

    Raises:
        ValueError: Missing credentials or invalid values.
    """
    yaml_fallbacks = {
        k: v
        for k, v in asdict(to_legacy_config(unified)).items()
        if v not in (None, "")
    }
    return load_config(
        direction=direction, profile=profile, yaml_fallbacks=yaml_fallbacks
    )


def build_engine(
    config: Config,
    unified: UnifiedConfig,
    *,
    dry_run: bool = False,
    cancel_event: threading.Event | None = None,
) -> SyncEngine:
    """Assemble the Notion/Todoist engine for *config*."""
    notion_adapter = NotionAdapter(unified.notion)
    todoist_adapter = TodoistAdapter()
    remote_a = NotionRemote(
        NotionClient(
            config.notion_token,
            config.database_id,
            api_url=unified.notion.api_url,
            api_version=unified.notion.api_version,
            requests_per_second=unified.notion.requests_per_second,
            max_attempts=config.max_attempts,
        ),
        notion_adapter,
    )
    remote_b = TodoistRemote(
        TodoistClient(
            config.todoist_token,
            sync_url=unified.todoist.sync_url,
            requests_per_second=unified.todoist.requests_per_second,
            max_attempts=config.max_attempts,
        ),
        todoist_adapter,
        config.project,
        create_project=not dry_run,
    )
    store = MappingStore(Path(config.state_dir), config.profile)
    return SyncEngine(
        remote_a,
        remote_b,
        store,
        eligible_a=notion_adapter.is_eligible,
        eligible_b=todoist_adapter.is_eligible,
        direction=config.direction,
        resolver=config.conflict_strategy,
        max_batch_size=config.max_batch_size,
        cancel_event=cancel_event,
    )


def _run_pass(engine: SyncEngine, dry_run: bool) -> SyncReport:
    # Each pass gets its own event loop, so the semaphore is rebuilt per pass
    init_semaphore(MAX_PARALLEL_REQUESTS)
    return engine.run(dry_run=dry_run)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_sync(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    config = load_settings(unified, args.direction, args.profile)
    engine = build_engine(config, unified, dry_run=args.dry_run)
    report = _run_pass(engine, args.dry_run)

    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    elif report.dry_run:
        print(format_dry_run_preview(report))
    else:
        print(format_sync_report(report))
    return 0


def cmd_status(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    profile = args.profile or unified.sync.profile
    store = MappingStore(Path(unified.sync.state_dir), profile).load()

    print(f"Profile:    {profile}")
    print(f"State file: {store.path}")
    print(f"Mappings:   {len(store)}")
    print(f"Last sync:  {store.last_sync or 'never'}")
    for side in Side:
        cursor = store.get_cursor(side)
        if cursor is not None:
            print(
                f"Cursor {side.value}:   {len(cursor.records)} cached records"
                f" (token {'set' if cursor.token != '*' else 'full'})"
            )
    return 0


def cmd_schedule(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    config = load_settings(unified, profile=args.profile)
    interval = args.interval or config.interval_minutes

    def run_pass() -> SyncReport:
        return _run_pass(build_engine(config, unified), dry_run=False)

    scheduler = SyncScheduler(run_pass, interval_minutes=interval)
    if args.once:
        report = scheduler.run_once()
        if report is not None:
            print(format_sync_report(report))
        return 0
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop()
    return 0


def cmd_init(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    path = ensure_config()
    print(f"Config file: {path}")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskbridge",
        description="Two-way task sync between a Notion database and Todoist",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what a sync would do
  taskbridge sync --dry-run

  # Only push Notion changes to Todoist
  taskbridge sync --direction a-to-b

  # Run every 15 minutes, logging to /tmp/taskbridge.log
  taskbridge schedule --interval 15
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"taskbridge version {__version__}",
    )
    parser.add_argument(
        "--debug",
        nargs="?",
        const=True,
        default=False,
        metavar="LOGFILE",
        help="Enable debug logging, optionally also to LOGFILE",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Debug log format (default: text)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Run one sync pass")
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without writing anything",
    )
    sync.add_argument(
        "--direction",
        choices=["two-way", "a-to-b", "b-to-a"],
        help="Which sides may be written (default from config: two-way)",
    )
    sync.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )
    sync.add_argument("--profile", help="State profile name")
    sync.set_defaults(func=cmd_sync, mode="cli")

    status = sub.add_parser("status", help="Show mapping store state")
    status.add_argument("--profile", help="State profile name")
    status.set_defaults(func=cmd_status, mode="cli")

    schedule = sub.add_parser("schedule", help="Sync periodically")
    schedule.add_argument(
        "--interval", type=int, help="Minutes between passes"
    )
    schedule.add_argument(
        "--once", action="store_true", help="Run a single pass and exit"
    )
    schedule.add_argument("--profile", help="State profile name")
    schedule.set_defaults(func=cmd_schedule, mode="scheduler")

    init = sub.add_parser("init", help="Write a starter config file")
    init.set_defaults(func=cmd_init, mode="cli")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        unified = load_unified(getattr(args, "profile", None))
    except (ValueError, yaml.YAMLError) as e:
        _stderr_print(f"ERROR: Configuration error: {e}")
        return 1

    # --debug LOGFILE wins over the YAML logging.file setting
    log_file = args.debug if isinstance(args.debug, str) else None
    setup_logging(
        mode=args.mode,
        debug=bool(args.debug),
        log_file=log_file or unified.logging.file,
        debug_format=args.log_format,
        level=unified.logging.level,
    )

    try:
        return args.func(args, unified)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        return 1
    except AuthError as e:
        logger.error("Authentication failed: %s", e.message)
        _stderr_print(
            "ERROR: Authentication failed. Check NOTION_TOKEN and "
            f"TODOIST_TOKEN. ({e.message})"
        )
        return 1
    except TaskBridgeError as e:
        logger.error("Sync failed: %s", e.message)
        _stderr_print(f"ERROR: Sync failed: {e.message}")
        return 1
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
