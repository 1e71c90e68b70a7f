"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync passes:

- ``format_sync_report`` -- full post-sync summary.
- ``format_dry_run_preview`` -- creates/updates table per direction plus
  pending deletions.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import Direction, SyncAction

if TYPE_CHECKING:
    from .models import SyncReport, SyncResult

PREVIEW_LIMIT = 5

_DIRECTION_LABELS = {
    Direction.A_TO_B: "Notion -> Todoist",
    Direction.B_TO_A: "Todoist -> Notion",
}

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sync report for '{report.profile_name}'"
    if report.dry_run:
        header += " (DRY RUN)"
    if report.cancelled:
        header += " (CANCELLED)"
    lines.append(header)
    lines.append(f"Direction: {report.direction.value}")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    counts = report.counts()
    lines.append(
        f"{counts['created']} created, {counts['updated']} updated, "
        f"{counts['deleted']} deleted, {counts['skipped']} skipped, "
        f"{counts['errors']} errors"
    )
    lines.append("")

    for direction, label in _DIRECTION_LABELS.items():
        done = [r for r in report.for_direction(direction) if r.success]
        if not done:
            continue
        lines.append(f"{label}:")
        for r in done:
            lines.append(f"  {r.action.value:<10} {r.title}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.action.value} '{r.title}': {r.error}")
        lines.append("")

    if report.warnings:
        lines.append("Warnings:")
        for warning in report.warnings:
            lines.append(f"  {warning}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def _table(rows: list[SyncResult]) -> list[str]:
    lines = [f"  {'Title':<40} {'Due':<17} {'Priority':<9} Action"]
    for r in rows[:PREVIEW_LIMIT]:
        title = r.title if len(r.title) <= 40 else r.title[:37] + "..."
        due = r.details.get("due") or "-"
        priority = r.details.get("priority") or "-"
        lines.append(f"  {title:<40} {due:<17} {priority:<9} {r.action.value}")
    if len(rows) > PREVIEW_LIMIT:
        lines.append(f"  ... and {len(rows) - PREVIEW_LIMIT} more")
    return lines


def format_dry_run_preview(report: SyncReport) -> str:
    """Format a dry-run preview of creates, updates and deletions.

    Creates and updates are tabulated per direction (first five of each,
    then a count of the rest); deletions are listed with their reason.

    Args:
        report: A dry-run sync report (``dry_run=True``).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"Profile: {report.profile_name}")
    lines.append("")

    for direction, label in _DIRECTION_LABELS.items():
        results = report.for_direction(direction)
        creates = [r for r in results if r.action is SyncAction.CREATE]
        updates = [
            r
            for r in results
            if r.action
            in (SyncAction.UPDATE, SyncAction.COMPLETE, SyncAction.UNCOMPLETE)
        ]
        if creates:
            lines.append(f"[{label}] {len(creates)} to create")
            lines.extend(_table(creates))
            lines.append("")
        if updates:
            lines.append(f"[{label}] {len(updates)} to update")
            lines.extend(_table(updates))
            lines.append("")

    deletions = [r for r in report.results if r.action is SyncAction.DELETE]
    if deletions:
        lines.append(f"[DELETE] {len(deletions)} to delete")
        for r in deletions:
            lines.append(f"  {r.title or r.target_id} ({r.reason})")
        lines.append("")

    if report.skipped > 0:
        lines.append(f"Skipped: {report.skipped} records (unchanged)")
        lines.append("")

    if not report.results:
        lines.append("No changes needed.")
        lines.append("")

    for warning in report.warnings:
        lines.append(f"Warning: {warning}")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with profile info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "local_key": r.local_key,
            "title": r.title,
            "direction": r.direction.value,
            "action": r.action.value,
            "success": r.success,
        }
        if r.target_id:
            entry["target_id"] = r.target_id
        if r.reason:
            entry["reason"] = r.reason
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "profile_name": report.profile_name,
        "direction": report.direction.value,
        "dry_run": report.dry_run,
        "cancelled": report.cancelled,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": report.counts(),
        "warnings": list(report.warnings),
        "results": results_list,
    }
