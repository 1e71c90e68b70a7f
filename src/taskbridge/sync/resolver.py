"""Conflict resolution strategies for the sync engine.

A conflict exists when both sides of a mapping changed since the last pass.
The engine picks a single winner per record; fields are never merged.

- ``LatestWinsResolver``: the strictly later ``last_edited`` wins; an exact
  tie goes to side A so repeated passes cannot oscillate.
- ``SideAWinsResolver``: always side A.
- ``SideBWinsResolver``: always side B.

The ``create_resolver()`` factory maps config strategy strings to resolver
instances.
"""

from __future__ import annotations

import logging
from typing import Protocol

from taskbridge.sync.models import Side, TaskSnapshot

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    def resolve(self, snapshot_a: TaskSnapshot, snapshot_b: TaskSnapshot) -> Side:
        """Pick the side whose content is pushed to the other.

        Args:
            snapshot_a: Live content on side A.
            snapshot_b: Live content on side B.

        Returns:
            The winning side.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class LatestWinsResolver:
    """Resolve in favour of the most recently edited side.

    Provider timestamps come from two independent clocks, so this is an
    approximation.  A missing timestamp counts as the oldest possible.
    """

    def __init__(self, tie_winner: Side = Side.A) -> None:
        self.tie_winner = tie_winner

    def resolve(self, snapshot_a: TaskSnapshot, snapshot_b: TaskSnapshot) -> Side:
        edited_a = snapshot_a.edited_or_epoch
        edited_b = snapshot_b.edited_or_epoch
        if edited_a > edited_b:
            return Side.A
        if edited_b > edited_a:
            return Side.B
        logger.debug("Equal edit times; %s wins the tie", self.tie_winner.value)
        return self.tie_winner


class SideAWinsResolver:
    """Always resolve conflicts in favour of side A."""

    def resolve(self, snapshot_a: TaskSnapshot, snapshot_b: TaskSnapshot) -> Side:
        return Side.A


class SideBWinsResolver:
    """Always resolve conflicts in favour of side B."""

    def resolve(self, snapshot_a: TaskSnapshot, snapshot_b: TaskSnapshot) -> Side:
        return Side.B


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "latest-wins": LatestWinsResolver,
    "a-wins": SideAWinsResolver,
    "b-wins": SideBWinsResolver,
}


def create_resolver(strategy: str) -> ConflictResolver:
    """Create a conflict resolver for the given strategy string.

    Args:
        strategy: One of ``"latest-wins"``, ``"a-wins"``, ``"b-wins"``.

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
