"""Cooperative cancellation token shared by a task's suspendable calls."""

import asyncio
from typing import Awaitable, TypeVar

from lexicard.services.exceptions import EnrichmentCancelled


T = TypeVar("T")


class CancelToken:
    """
    One-shot cancellation flag for a single background task.

    The token is passed into every suspendable call a task makes (network
    requests, retry backoff, inter-batch throttling). Once fired it stays
    fired; every wait made through the token returns early and raises
    EnrichmentCancelled.

    Example:
        >>> token = CancelToken()
        >>> await token.sleep(2.0)       # returns after 2s
        >>> token.cancel()
        >>> await token.sleep(2.0)       # raises EnrichmentCancelled at once
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Fire the token. Idempotent."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise EnrichmentCancelled if the token has fired."""
        if self._event.is_set():
            raise EnrichmentCancelled()

    async def sleep(self, delay: float) -> None:
        """
        Sleep for delay seconds unless the token fires first.

        Args:
            delay: Seconds to wait (values <= 0 only check the token)

        Raises:
            EnrichmentCancelled: If the token is or becomes cancelled
        """
        self.raise_if_cancelled()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise EnrichmentCancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await a coroutine, abandoning it if the token fires first.

        The abandoned coroutine's task is cancelled, which closes any
        in-flight httpx request it owns.

        Raises:
            EnrichmentCancelled: If the token fires before the call finishes
        """
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()

        work.cancel()
        try:
            await work
        except (asyncio.CancelledError, Exception):
            pass
        raise EnrichmentCancelled()
