"""Async helpers for running blocking provider calls concurrently.

The provider clients are synchronous (``requests``).  A sync pass fetches
both sides at the same time and backfills unlisted records by id in
parallel, so the orchestrator pushes blocking calls onto worker threads
through these helpers.  Fan-out calls share one module-level semaphore so a
large backfill cannot open more connections than the providers tolerate.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Iterable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")
logger = logging.getLogger(__name__)

# Module-level semaphore, rebuilt by the CLI before every pass
_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int = 2) -> None:
    """Create the semaphore bounding ``run_sync_limited`` calls.

    Each ``asyncio.run()`` starts a fresh event loop, so callers running
    one pass per loop re-initialise before every pass.
    """
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.debug(
        "Provider request semaphore initialized: max_parallel=%d",
        max_parallel,
    )


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a blocking provider call in a worker thread.

    Does NOT acquire the semaphore; used for the two top-level listings,
    which always run side by side.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a blocking call in a worker thread, bounded by the semaphore.

    Falls back to unbounded if the semaphore was never initialized.
    """
    if _semaphore is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with _semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run coroutines concurrently and return results in input order.

    Exceptions propagate from the first failure.
    """
    return list(await asyncio.gather(*coros))


async def map_limited(func: Callable[[T], R], items: Iterable[T]) -> list[R]:
    """Call blocking *func* once per item, bounded by the semaphore.

    Results come back in the order of *items*; the first exception raised
    by any call propagates.
    """
    return await gather_limited(
        [run_sync_limited(func, item) for item in items]
    )
