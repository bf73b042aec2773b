"""BlockNotifier: New-block notifications obtained by polling the block height.

The notifier is a lazy, infinite, non-restartable async iterator of block
numbers. Only heights greater than the last one delivered are yielded; when
several blocks are produced between two polls, only the newest is reported.

.. code-block:: python

    notifier = BlockNotifier(ledger.current_block_height, poll_interval=4.0)
    async for block_number in notifier:
        ...
    # elsewhere, e.g. from a signal handler
    notifier.unsubscribe()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)


class BlockNotifier:
    """Polls a block-height source and yields each new height once.

    :ivar poll_interval: Seconds between polls.
    """

    DEFAULT_POLL_INTERVAL = 4.0

    def __init__(
        self,
        height_fn: Callable[[], Awaitable[int]],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the notifier.

        :param height_fn: Coroutine function returning the current block height.
        :param poll_interval: Seconds between polls (default: 4.0).
        :raises ValueError: If poll_interval is not positive.
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.height_fn = height_fn
        self.poll_interval = poll_interval
        self._stopped = asyncio.Event()
        self._started = False
        self._last_height: int | None = None

    @property
    def subscribed(self) -> bool:
        """Whether iteration has started and unsubscribe() was not called yet."""
        return self._started and not self._stopped.is_set()

    def unsubscribe(self) -> None:
        """Stop delivering notifications and end the iteration."""
        if not self._stopped.is_set():
            logger.info("Unsubscribing from block notifications")
        self._stopped.set()

    def __aiter__(self) -> AsyncIterator[int]:
        if self._started:
            raise RuntimeError("BlockNotifier cannot be iterated more than once")
        self._started = True
        return self._poll()

    async def _poll(self) -> AsyncIterator[int]:
        while not self._stopped.is_set():
            try:
                height = await self.height_fn()
            except Exception as e:
                logger.warning(f"Failed to poll block height: {e}")
            else:
                if self._last_height is None or height > self._last_height:
                    self._last_height = height
                    yield height

            await self._sleep()

    async def _sleep(self) -> None:
        # Returns early when unsubscribe() is called.
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stopped.wait(), timeout=self.poll_interval)
