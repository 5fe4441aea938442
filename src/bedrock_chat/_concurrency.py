"""Bounded offloading of blocking boto3 calls to worker threads.

A permit counts a worker thread, not an awaiting task: when the caller is
cancelled the blocking call keeps running in its thread, so the permit is held
until that thread returns. Callers that abandon a call and need its result
cleaned up (an opened event stream, say) use ``offload()`` and attach a done
callback to the returned future.
"""

from __future__ import annotations

import asyncio
import os
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

_P = ParamSpec("_P")
_T = TypeVar("_T")

_LIMIT_ENV_VAR = "BEDROCK_CHAT_TO_THREAD_LIMIT"


def _thread_limit() -> int:
    raw = os.getenv(_LIMIT_ENV_VAR, "").strip()
    if raw:
        return max(1, int(raw))
    # Each open stream pins one thread while it waits on the socket.
    return max(4, min(32, (os.cpu_count() or 4) * 4))


_THREAD_PERMITS = asyncio.Semaphore(_thread_limit())


def _consume_exception(fut: asyncio.Future[Any]) -> None:
    try:
        _ = fut.exception()
    except asyncio.CancelledError:
        return


async def offload(
    func: Callable[_P, _T], /, *args: _P.args, **kwargs: _P.kwargs
) -> asyncio.Future[_T]:
    """Start *func* in a worker thread once a permit is free.

    Returns the worker's future. The permit is released when the worker
    finishes, whether or not anyone still awaits the future.
    """
    permits = _THREAD_PERMITS
    await permits.acquire()
    try:
        worker = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
    except BaseException:
        permits.release()
        raise
    worker.add_done_callback(lambda _: permits.release())
    worker.add_done_callback(_consume_exception)
    return worker


async def to_thread_limited(
    func: Callable[_P, _T], /, *args: _P.args, **kwargs: _P.kwargs
) -> _T:
    """Run a blocking function in a thread with bounded concurrency."""
    worker = await offload(func, *args, **kwargs)
    return await asyncio.shield(worker)
