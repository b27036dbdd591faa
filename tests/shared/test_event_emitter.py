import asyncio
from unittest.mock import MagicMock

import pytest

from llama_desk.shared.event_emitter import EventEmitter


class TestEventEmitter:
    def test_callbacks_run_in_registration_order(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("progress", lambda payload: calls.append(("first", payload)))
        emitter.on("progress", lambda payload: calls.append(("second", payload)))

        emitter.emit("progress", 10)

        assert calls == [("first", 10), ("second", 10)]

    def test_raising_listener_does_not_interrupt_others(self):
        emitter = EventEmitter()
        after = MagicMock()
        emitter.on("error", MagicMock(side_effect=ValueError("bad listener")))
        emitter.on("error", after)

        emitter.emit("error", "message")

        after.assert_called_once_with("message")

    def test_off_removes_listener_and_ignores_unknown(self):
        emitter = EventEmitter()
        listener = MagicMock()
        emitter.on("log", listener)

        emitter.off("log", listener)
        emitter.off("log", listener)
        emitter.emit("log", "line")

        listener.assert_not_called()
        assert emitter.listener_count("log") == 0

    def test_emit_without_listeners_is_noop(self):
        EventEmitter().emit("nothing", None)

    @pytest.mark.asyncio
    async def test_coroutine_listener_is_scheduled(self):
        emitter = EventEmitter()
        received = asyncio.Event()
        payloads = []

        async def listener(payload):
            payloads.append(payload)
            received.set()

        emitter.on("status_changed", listener)
        emitter.emit("status_changed", "ready")

        await asyncio.wait_for(received.wait(), timeout=1.0)
        assert payloads == ["ready"]
