"""Cooperative cancellation token.

A token is created by the caller and passed through every layer that may
suspend. Transports register abort callbacks on it; the orchestrator and the
stream processor race their waits against it.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
import inspect
import logging
from typing import TYPE_CHECKING, TypeVar

from bedrock_chat.errors import InvocationCancelled

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal with abort callbacks."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], object]] = []
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Whether ``cancel()`` has been called."""
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Signal cancellation and run registered abort callbacks once.

        Repeated calls are no-ops. Callback failures are logged and do not stop
        the remaining callbacks from running.
        """
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.debug("Abort callback failed", exc_info=True)

    def add_callback(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Register *callback* to run on cancellation; return an unregister function.

        If the token is already cancelled the callback runs immediately.
        """
        if self._event.is_set():
            callback()
            return _noop
        self._callbacks.append(callback)

        def remove() -> None:
            with suppress(ValueError):
                self._callbacks.remove(callback)

        return remove

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless cancellation arrives first.

        Raises ``InvocationCancelled`` when the token wins; the losing
        operation is cancelled and awaited before returning.
        """
        if self._event.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise InvocationCancelled("operation cancelled", hint=self.reason)

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not waiter.done():
                waiter.cancel()
            if not task.done():
                await _cancel_and_wait(task)

        if task.cancelled():
            raise InvocationCancelled("operation cancelled", hint=self.reason)
        return task.result()


async def _cancel_and_wait(task: asyncio.Future[T]) -> None:
    task.cancel()
    with suppress(asyncio.CancelledError, Exception):
        await task


def _noop() -> None:
    return None
