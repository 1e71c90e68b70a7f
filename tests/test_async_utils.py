"""
Tests for async_utils module.

Covers run_sync, run_sync_limited, gather_limited, map_limited and
init_semaphore.
"""

import threading
import time

import pytest

import taskbridge.core.async_utils as mod
from taskbridge.core.async_utils import (
    gather_limited,
    init_semaphore,
    map_limited,
    run_sync,
    run_sync_limited,
)


@pytest.fixture(autouse=True)
def _restore_semaphore():
    original = mod._semaphore
    yield
    mod._semaphore = original


def _fetch(record_id: str) -> dict:
    """Stand-in for a blocking fetch-by-id call."""
    return {"id": record_id}


async def test_run_sync_forwards_arguments():
    def _lookup(record_id, *, side):
        return f"{side}:{record_id}"

    assert await run_sync(_lookup, "42", side="b") == "b:42"


async def test_run_sync_limited_with_semaphore():
    init_semaphore(2)
    assert await run_sync_limited(_fetch, "a-1") == {"id": "a-1"}


async def test_run_sync_limited_without_semaphore():
    mod._semaphore = None
    assert await run_sync_limited(_fetch, "a-1") == {"id": "a-1"}


async def test_gather_limited_keeps_order():
    coros = [run_sync_limited(_fetch, str(i)) for i in range(5)]
    results = await gather_limited(coros)
    assert [r["id"] for r in results] == ["0", "1", "2", "3", "4"]


async def test_gather_limited_empty_list():
    assert await gather_limited([]) == []


async def test_gather_limited_propagates_errors():
    def _boom(_):
        raise RuntimeError("listing failed")

    with pytest.raises(RuntimeError, match="listing failed"):
        await gather_limited([run_sync(_fetch, "1"), run_sync(_boom, "2")])


async def test_map_limited_respects_bound():
    init_semaphore(2)
    lock = threading.Lock()
    current = peak = 0

    def _slow_fetch(record_id):
        nonlocal current, peak
        with lock:
            current += 1
            peak = max(peak, current)
        time.sleep(0.05)
        with lock:
            current -= 1
        return record_id

    results = await map_limited(_slow_fetch, [f"b-{i}" for i in range(6)])

    assert results == [f"b-{i}" for i in range(6)]
    assert peak <= 2


async def test_map_limited_no_items():
    assert await map_limited(_fetch, []) == []
