"""Asyncio helpers for the synchronous click entry points."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine


def run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run *coro* to completion from synchronous code.

    Ctrl+C cancels the coroutine; the resulting ``KeyboardInterrupt`` is
    left for the caller.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    import concurrent.futures

    with concurrent.futures.ThreadPoolExecutor() as pool:
        return pool.submit(asyncio.run, coro).result()
