from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Callable, TypeVar

from llama_desk.shared.errors import OperationCancelled
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Cooperative cancellation handle shared between a caller and one
    long-running network operation.

    ``cancel()`` is synchronous: it flips the flag and runs every registered
    callback exactly once. Operations register a callback that tears down
    their connection (usually by cancelling the task that owns it).
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a teardown callback and return a function that unregisters it.
        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        callback()
        return lambda: None

    def _remove(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def raise_if_cancelled(self, exc_type: type[OperationCancelled] = OperationCancelled) -> None:
        if self._cancelled:
            raise exc_type()

    async def run(self, awaitable: Awaitable[T], exc_type: type[OperationCancelled] = OperationCancelled) -> T:
        """
        Run ``awaitable`` as its own task and cancel that task when the token
        fires. Token-triggered cancellation surfaces as ``exc_type``; a
        cancellation coming from outside (the caller's own task being
        cancelled) propagates unchanged.
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise exc_type()

        task = asyncio.ensure_future(awaitable)
        unregister = self.add_callback(task.cancel)
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancelled and task.cancelled():
                raise exc_type() from None
            raise
        finally:
            unregister()
