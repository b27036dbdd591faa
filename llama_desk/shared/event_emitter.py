import asyncio
import inspect
from collections import defaultdict
from typing import Any, Callable

from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)


class EventEmitter:
    """
    Minimal observer registry.

    Callbacks for an event run in registration order on the emitting call.
    Coroutine callbacks are scheduled as tasks instead of awaited, and an
    observer that raises is logged and skipped, so emitting never blocks or
    fails the caller.
    """

    def __init__(self):
        self._callbacks: dict[str, list[Callable]] = defaultdict(list)

    def on(self, event: str, callback: Callable) -> None:
        """Register event callback."""
        self._callbacks[event].append(callback)

    def off(self, event: str, callback: Callable) -> None:
        """Remove a previously registered callback. Unknown callbacks are ignored."""
        callbacks = self._callbacks.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def listener_count(self, event: str) -> int:
        return len(self._callbacks.get(event, []))

    def emit(self, event: str, payload: Any = None) -> None:
        """Emit an event."""
        for callback in list(self._callbacks.get(event, [])):
            try:
                if inspect.iscoroutinefunction(callback):
                    asyncio.get_running_loop().create_task(callback(payload))
                else:
                    callback(payload)
            except Exception as e:
                logger.warning(f"Listener for '{event}' failed: {e}")
