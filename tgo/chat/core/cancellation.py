"""
Cancellation token for in-flight generations.

A token is level-triggered: once cancelled it stays cancelled. Each
generation gets a fresh token.
"""

import asyncio
import logging
import threading
from typing import Awaitable, Callable, List, Optional, TypeVar

from .exceptions import GenerationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """Cancellation flag with callbacks and an awaitable view.

    ``cancel()`` may be called from any thread; callbacks run on the calling
    thread, awaiting code is woken on its own event loop.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation. Idempotent; callbacks run once."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancel callback failed: {e}")

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelled()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it.

        If already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback()
        return lambda: None

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._cancelled:
            return
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future = loop.create_future()

        def _wake() -> None:
            loop.call_soon_threadsafe(_resolve)

        def _resolve() -> None:
            if not waiter.done():
                waiter.set_result(None)

        unregister = self.on_cancel(_wake)
        try:
            await waiter
        finally:
            unregister()

    async def race(self, awaitable: Awaitable[T], on_abandon: Optional[Callable[[], None]] = None) -> T:
        """Await ``awaitable`` unless the token fires first.

        The token is checked before and after the suspension. When the token
        wins, the pending work is cancelled (its eventual result discarded)
        and ``GenerationCancelled`` is raised.
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise GenerationCancelled()

        work = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(self.wait())
        try:
            await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            watcher.cancel()

        if self._cancelled:
            if not work.done():
                work.cancel()
                # Let the cancelled work unwind before the caller cleans up after it
                await asyncio.wait({work})
                if on_abandon is not None:
                    on_abandon()
            else:
                # Result arrived together with the cancel; it is discarded.
                if not work.cancelled():
                    work.exception()
            raise GenerationCancelled()
        return work.result()
