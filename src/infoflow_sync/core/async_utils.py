"""Async utilities for bridging the synchronous sync engine to async callers."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Serializes engine runs started from the event loop, initialized at startup
_run_lock: asyncio.Lock | None = None


def init_run_lock() -> None:
    """Initialize the run lock. Call once from inside the running loop."""
    global _run_lock
    _run_lock = asyncio.Lock()
    logger.info("Sync run lock initialized")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used by MCP tool handlers and the auto-sync scheduler to call the
    blocking engine and HTTP client.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        # In MCP tool handler:
        report = await run_sync(manager.run, auto=False)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_exclusive(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool, one call at a time.

    Falls back to unserialized execution if the run lock was not initialized.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    if _run_lock is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with _run_lock:
        return await asyncio.to_thread(func, *args, **kwargs)
