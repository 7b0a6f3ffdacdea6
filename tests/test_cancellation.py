"""
Tests for the cancel token.
"""

import asyncio
import threading

import pytest

from tgo.chat.core.cancellation import CancelToken
from tgo.chat.core.exceptions import GenerationCancelled


class TestCancelToken:
    """Flag and callbacks."""

    def test_cancel_is_idempotent(self):
        token = CancelToken()
        calls = []
        token.on_cancel(lambda: calls.append(1))

        token.cancel()
        token.cancel()

        assert token.is_cancelled
        assert calls == [1]

    def test_late_callback_runs_immediately(self):
        token = CancelToken()
        token.cancel()
        calls = []

        token.on_cancel(lambda: calls.append(1))

        assert calls == [1]

    def test_unregister(self):
        token = CancelToken()
        calls = []
        unregister = token.on_cancel(lambda: calls.append(1))

        unregister()
        token.cancel()

        assert calls == []

    def test_failing_callback_does_not_stop_others(self):
        token = CancelToken()
        calls = []
        token.on_cancel(lambda: 1 / 0)
        token.on_cancel(lambda: calls.append(1))

        token.cancel()

        assert calls == [1]

    def test_raise_if_cancelled(self):
        token = CancelToken()
        token.raise_if_cancelled()
        token.cancel()

        with pytest.raises(GenerationCancelled):
            token.raise_if_cancelled()


class TestRace:
    """Racing work against the token."""

    @pytest.mark.asyncio
    async def test_result_when_not_cancelled(self):
        assert await CancelToken().race(asyncio.sleep(0, result="done")) == "done"

    @pytest.mark.asyncio
    async def test_cancel_wins(self):
        token = CancelToken()
        abandoned = []
        started = asyncio.Event()

        async def work():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(token.race(work(), on_abandon=lambda: abandoned.append(True)))
        await started.wait()
        token.cancel()

        with pytest.raises(GenerationCancelled):
            await task
        assert abandoned == [True]

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        token = CancelToken()
        token.cancel()
        work = asyncio.sleep(0)

        with pytest.raises(GenerationCancelled):
            await token.race(work)

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async def fail():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await CancelToken().race(fail())

    @pytest.mark.asyncio
    async def test_cancel_from_another_thread(self):
        token = CancelToken()
        thread = threading.Timer(0.01, token.cancel)
        thread.start()

        with pytest.raises(GenerationCancelled):
            await token.race(asyncio.sleep(10))
        thread.join()

    @pytest.mark.asyncio
    async def test_wait(self):
        token = CancelToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()

        await asyncio.wait_for(waiter, 1)
