"""Unit tests for CancelToken."""

import asyncio

import pytest

from lexicard.services.exceptions import EnrichmentCancelled
from lexicard.utils.cancellation import CancelToken


class TestCancelToken:
    """Test cooperative cancellation."""

    def test_initial_state(self):
        token = CancelToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_is_idempotent(self):
        token = CancelToken()
        token.cancel()
        token.cancel()
        assert token.cancelled
        with pytest.raises(EnrichmentCancelled):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_sleep_completes(self):
        """Test sleep returns normally when not cancelled."""
        token = CancelToken()
        await token.sleep(0.01)
        await token.sleep(0)

    @pytest.mark.asyncio
    async def test_sleep_interrupted(self):
        """Test cancel wakes a long sleep immediately."""
        token = CancelToken()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel()

        asyncio.create_task(cancel_soon())
        with pytest.raises(EnrichmentCancelled):
            await asyncio.wait_for(token.sleep(30), timeout=1.0)

    @pytest.mark.asyncio
    async def test_sleep_after_cancel_raises(self):
        token = CancelToken()
        token.cancel()
        with pytest.raises(EnrichmentCancelled):
            await token.sleep(0)

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        """Test run passes through the awaited value."""
        async def work():
            return 42

        assert await CancelToken().run(work()) == 42

    @pytest.mark.asyncio
    async def test_run_propagates_errors(self):
        async def work():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await CancelToken().run(work())

    @pytest.mark.asyncio
    async def test_run_abandons_work_on_cancel(self):
        """Test the in-flight call is cancelled when the token fires."""
        token = CancelToken()
        started = asyncio.Event()
        was_cancelled = False

        async def work():
            nonlocal was_cancelled
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                was_cancelled = True
                raise

        call = asyncio.create_task(token.run(work()))
        await started.wait()
        token.cancel()

        with pytest.raises(EnrichmentCancelled):
            await asyncio.wait_for(call, timeout=1.0)
        assert was_cancelled
