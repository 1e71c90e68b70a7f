"""Tests for sync conflict resolver strategies."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from taskbridge.sync.models import Side, TaskSnapshot
from taskbridge.sync.resolver import (
    LatestWinsResolver,
    SideAWinsResolver,
    SideBWinsResolver,
    create_resolver,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _snap(day: int | None, title: str = "Task") -> TaskSnapshot:
    """Snapshot edited on 2025-03-<day>, or never if *day* is None."""
    edited = (
        datetime(2025, 3, day, tzinfo=timezone.utc) if day is not None else None
    )
    return TaskSnapshot(title=title, due_date="2025-04-01", last_edited=edited)


# ---------------------------------------------------------------------------
# LatestWinsResolver
# ---------------------------------------------------------------------------


class TestLatestWinsResolver:
    def test_later_a_wins(self) -> None:
        assert LatestWinsResolver().resolve(_snap(5), _snap(4)) is Side.A

    def test_later_b_wins(self) -> None:
        assert LatestWinsResolver().resolve(_snap(4), _snap(5)) is Side.B

    def test_tie_goes_to_a(self) -> None:
        assert LatestWinsResolver().resolve(_snap(5), _snap(5)) is Side.A

    def test_tie_winner_is_configurable(self) -> None:
        resolver = LatestWinsResolver(tie_winner=Side.B)
        assert resolver.resolve(_snap(5), _snap(5)) is Side.B

    def test_missing_timestamp_is_oldest(self) -> None:
        resolver = LatestWinsResolver()
        assert resolver.resolve(_snap(None), _snap(1)) is Side.B
        assert resolver.resolve(_snap(1), _snap(None)) is Side.A
        assert resolver.resolve(_snap(None), _snap(None)) is Side.A

    def test_deterministic(self) -> None:
        resolver = LatestWinsResolver()
        outcomes = {resolver.resolve(_snap(7), _snap(7)) for _ in range(10)}
        assert outcomes == {Side.A}


# ---------------------------------------------------------------------------
# Fixed-side resolvers
# ---------------------------------------------------------------------------


class TestFixedResolvers:
    def test_a_wins_ignores_timestamps(self) -> None:
        assert SideAWinsResolver().resolve(_snap(1), _snap(9)) is Side.A

    def test_b_wins_ignores_timestamps(self) -> None:
        assert SideBWinsResolver().resolve(_snap(9), _snap(1)) is Side.B


# ---------------------------------------------------------------------------
# create_resolver factory
# ---------------------------------------------------------------------------


class TestCreateResolver:
    @pytest.mark.parametrize(
        "strategy, cls",
        [
            ("latest-wins", LatestWinsResolver),
            ("a-wins", SideAWinsResolver),
            ("b-wins", SideBWinsResolver),
        ],
    )
    def test_known_strategies(self, strategy, cls) -> None:
        assert isinstance(create_resolver(strategy), cls)

    def test_unknown_strategy_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown conflict strategy"):
            create_resolver("merge")
