"""UpdateGate: Decides whether a block should trigger an oracle update.

Rules, evaluated in order for every new block:
    1. Blocks at or below the last processed block are skipped untouched
    2. While a transaction is in flight, a changed price is captured as pending
    3. Updates are spaced by at least ``min_update_interval`` seconds
    4. A pending price is consumed before a fresh quote is fetched
    5. Unchanged prices are skipped
    6. Anything else is an update attempt

.. code-block:: python

    >>> gate = UpdateGate(UpdateState(), fetcher, min_update_interval=10.0)
    >>> await gate.evaluate(100, time.time())
    Attempt(price=Decimal('0.25'))
    >>> await gate.evaluate(100, time.time())
    Skip(reason=<SkipReason.DUPLICATE_OR_STALE_BLOCK: 'duplicate-or-stale-block'>)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Union

from .fetchers import SourceUnavailable

if TYPE_CHECKING:
    from .fetchers import BaseFetcher
    from .UpdateState import UpdateState

logger = logging.getLogger(__name__)


class SkipReason(enum.Enum):
    """Why a block did not lead to an update attempt."""

    DUPLICATE_OR_STALE_BLOCK = "duplicate-or-stale-block"
    TRANSACTION_IN_PROGRESS = "transaction-in-progress"
    INTERVAL_NOT_ELAPSED = "interval-not-elapsed"
    SOURCE_UNAVAILABLE = "source-unavailable"
    PRICE_UNCHANGED = "price-unchanged"


@dataclass(frozen=True)
class Skip:
    """No update this block.

    :ivar reason: Rule that stopped the update.
    """

    reason: SkipReason


@dataclass(frozen=True)
class Attempt:
    """Submit an update with the given price.

    :ivar price: Candidate price to push on-chain.
    """

    price: Decimal


Decision = Union[Skip, Attempt]


class UpdateGate:
    """Decision engine over a shared UpdateState.

    The gate mutates ``last_processed_block`` and ``pending_price`` only; the
    transaction flag belongs to whoever executes the attempt.

    :ivar state: Loop state, shared with the scheduler.
    :ivar price_source: Fetcher providing fresh quotes.
    :ivar min_update_interval: Minimum seconds between confirmed updates.
    """

    DEFAULT_MIN_UPDATE_INTERVAL = 10.0

    def __init__(
        self,
        state: UpdateState,
        price_source: BaseFetcher,
        min_update_interval: float = DEFAULT_MIN_UPDATE_INTERVAL,
    ) -> None:
        """Initialize the gate.

        :param state: Loop state to read and mutate.
        :param price_source: Fetcher used when no pending price is queued.
        :param min_update_interval: Minimum seconds between updates (default: 10).
        :raises ValueError: If min_update_interval is negative.
        """
        if min_update_interval < 0:
            raise ValueError("min_update_interval must not be negative")
        self.state = state
        self.price_source = price_source
        self.min_update_interval = min_update_interval

    async def evaluate(self, block_number: int, now: float) -> Decision:
        """Evaluate a new block.

        :param block_number: Number of the block that was just observed.
        :param now: Current unix time in seconds.
        :returns: Skip with a reason, or Attempt with the candidate price.
        """
        state = self.state

        if block_number <= state.last_processed_block:
            logger.debug(
                f"Block {block_number} <= last processed {state.last_processed_block}, skipping"
            )
            return Skip(SkipReason.DUPLICATE_OR_STALE_BLOCK)

        logger.info(f"New block detected: {block_number}")
        state.last_processed_block = block_number

        if state.transaction_in_progress:
            logger.info("Transaction already in progress, skipping this block")
            await self._capture_pending()
            return Skip(SkipReason.TRANSACTION_IN_PROGRESS)

        elapsed = now - state.last_update_timestamp
        if elapsed < self.min_update_interval:
            logger.info(
                f"Only {elapsed:.1f}s passed since last update "
                f"(minimum: {self.min_update_interval}s), skipping"
            )
            return Skip(SkipReason.INTERVAL_NOT_ELAPSED)

        if state.pending_price is not None:
            candidate = state.pending_price
            state.pending_price = None
            logger.info(f"Using pending price update: ${candidate}")
        else:
            try:
                quote = await self.price_source.fetch_price()
            except SourceUnavailable as e:
                logger.warning(f"Price fetch failed, skipping block {block_number}: {e}")
                return Skip(SkipReason.SOURCE_UNAVAILABLE)
            candidate = quote.value
            logger.info(f"Current price: ${candidate}")

        if candidate == state.last_price:
            logger.info(f"Price unchanged at ${candidate}, skipping update")
            return Skip(SkipReason.PRICE_UNCHANGED)

        logger.info(
            f"Update conditions met at block {block_number}: "
            f"{elapsed:.1f}s since last update, price ${state.last_price} -> ${candidate}"
        )
        return Attempt(candidate)

    async def _capture_pending(self) -> None:
        """Store a changed price for the cycle after the in-flight transaction."""
        try:
            quote = await self.price_source.fetch_price()
        except SourceUnavailable as e:
            logger.warning(f"Error fetching price for pending update: {e}")
            return

        if quote.value != self.state.last_price:
            self.state.pending_price = quote.value
            logger.info(f"Stored pending price update: ${quote.value}")
