import asyncio
from unittest.mock import MagicMock

import pytest

from llama_desk.shared.cancellation import CancellationToken
from llama_desk.shared.errors import CompletionCancelled, DownloadCancelled


class TestCancellationToken:
    def test_cancel_runs_callbacks_once(self):
        token = CancellationToken()
        callback = MagicMock()
        token.add_callback(callback)

        token.cancel()
        token.cancel()

        assert token.is_cancelled is True
        callback.assert_called_once_with()

    def test_callback_added_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        callback = MagicMock()

        token.add_callback(callback)

        callback.assert_called_once_with()

    def test_removed_callback_is_not_called(self):
        token = CancellationToken()
        callback = MagicMock()
        remove = token.add_callback(callback)

        remove()
        token.cancel()

        callback.assert_not_called()

    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken()
        second = MagicMock()
        token.add_callback(MagicMock(side_effect=RuntimeError("boom")))
        token.add_callback(second)

        token.cancel()

        second.assert_called_once_with()

    def test_raise_if_cancelled_uses_given_type(self):
        token = CancellationToken()
        token.raise_if_cancelled(DownloadCancelled)

        token.cancel()

        with pytest.raises(DownloadCancelled, match="Download cancelled"):
            token.raise_if_cancelled(DownloadCancelled)

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        token = CancellationToken()

        async def work():
            await asyncio.sleep(0)
            return 42

        assert await token.run(work(), CompletionCancelled) == 42

    @pytest.mark.asyncio
    async def test_run_on_cancelled_token_never_starts_work(self):
        token = CancellationToken()
        token.cancel()
        started = False

        async def work():
            nonlocal started
            started = True

        with pytest.raises(CompletionCancelled):
            await token.run(work(), CompletionCancelled)
        assert started is False

    @pytest.mark.asyncio
    async def test_cancel_mid_run_raises_cancelled_type(self):
        token = CancellationToken()
        entered = asyncio.Event()

        async def work():
            entered.set()
            await asyncio.sleep(10)

        pending = asyncio.create_task(token.run(work(), CompletionCancelled))
        await entered.wait()
        token.cancel()

        with pytest.raises(CompletionCancelled):
            await asyncio.wait_for(pending, timeout=1.0)

    @pytest.mark.asyncio
    async def test_foreign_cancellation_propagates(self):
        token = CancellationToken()

        async def work():
            await asyncio.sleep(10)

        pending = asyncio.create_task(token.run(work(), CompletionCancelled))
        await asyncio.sleep(0)
        pending.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending
        assert token.is_cancelled is False
