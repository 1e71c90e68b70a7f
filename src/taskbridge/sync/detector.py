"""Change detection via canonical content hashes.

``compute_hash`` reduces a ``TaskSnapshot`` to the fields that matter for
sync (title, due date, completion, priority, labels) in a canonical form and
hashes it.  Two snapshots that mean the same thing hash identically no matter
which provider they came from:

* Titles are whitespace-collapsed and stripped.
* Due dates are normalised by ``normalize_due_date`` (date-only values stay
  ``YYYY-MM-DD``; datetimes are truncated to the minute, aware ones in UTC).
* Labels are stripped, de-duplicated and sorted.
* Priority is the shared enum value, never a provider scale.
* Ids, URLs and timestamps are excluded.

The digest is truncated: it gates re-sync decisions, it is not a security
boundary.
"""

from __future__ import annotations

import hashlib
import json
import re
from datetime import date, datetime, timezone

from .models import TaskSnapshot

HASH_LENGTH = 16

_WHITESPACE = re.compile(r"\s+")


def normalize_title(title: str) -> str:
    """Collapse internal whitespace runs and strip the ends."""
    return _WHITESPACE.sub(" ", title or "").strip()


def normalize_due_date(value: str | date | datetime | None) -> str | None:
    """Return a canonical due-date string, or ``None`` for empty input.

    Raises:
        ValueError: If *value* is a string that is not ISO 8601.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return value.isoformat()
    else:
        text = value.strip()
        if len(text) == 10:
            return date.fromisoformat(text).isoformat()
        # fromisoformat() rejects a trailing Z before Python 3.11
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
        return parsed.strftime("%Y-%m-%dT%H:%MZ")
    return parsed.strftime("%Y-%m-%dT%H:%M")


def canonical_fields(snapshot: TaskSnapshot) -> dict:
    """Return the hashed fields of *snapshot* in canonical form."""
    return {
        "title": normalize_title(snapshot.title),
        "due": normalize_due_date(snapshot.due_date),
        "completed": bool(snapshot.completed),
        "priority": snapshot.priority.value,
        "labels": sorted(
            {label.strip() for label in snapshot.labels if label.strip()}
        ),
    }


def compute_hash(snapshot: TaskSnapshot) -> str:
    """Compute the truncated SHA-256 content hash of *snapshot*."""
    payload = json.dumps(
        canonical_fields(snapshot),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return digest[:HASH_LENGTH]


def snapshots_equal(left: TaskSnapshot, right: TaskSnapshot) -> bool:
    """Content equality as the sync engine sees it."""
    return compute_hash(left) == compute_hash(right)


def differs_only_in_completion(
    current: TaskSnapshot, desired: TaskSnapshot
) -> bool:
    """True when *desired* equals *current* except for the completion flag."""
    if current.completed == desired.completed:
        return False
    flipped = current.model_copy(update={"completed": desired.completed})
    return snapshots_equal(flipped, desired)
