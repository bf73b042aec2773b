"""Scheduler: Block-driven orchestration of the price feed updater.

Architecture:
    - One bootstrap pass seeds the loop state (price, oracle reading, height)
    - Every block notification runs in its own task so a pending
      confirmation never delays delivery of the next block
    - Gate evaluations are serialized; the transaction slot is taken right
      after an Attempt, before any other task can evaluate
    - Submissions run outside the evaluation lock and release the slot on
      every exit path
    - Shutdown stops intake of notifications without awaiting in-flight work
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable

from .TransactionPipeline import Confirmed
from .UpdateGate import Attempt, Decision

if TYPE_CHECKING:
    from .BlockNotifier import BlockNotifier
    from .fetchers import BaseFetcher
    from .LedgerClient import LedgerClient
    from .TransactionPipeline import TransactionPipeline
    from .UpdateGate import UpdateGate
    from .UpdateState import UpdateState

logger = logging.getLogger(__name__)


class BootstrapFailed(Exception):
    """Raised when the initial price, oracle or block height cannot be read."""

    pass


class Scheduler:
    """Feeds block notifications through the gate and the pipeline.

    :ivar state: Loop state owned by the scheduler.
    :ivar gate: Update decision engine.
    :ivar pipeline: Transaction pipeline.
    :ivar ledger: Ledger client, used for bootstrap and read-back.
    :ivar price_source: Fetcher used for the bootstrap price.
    :ivar notifier: Source of block notifications.
    """

    def __init__(
        self,
        state: UpdateState,
        gate: UpdateGate,
        pipeline: TransactionPipeline,
        ledger: LedgerClient,
        price_source: BaseFetcher,
        notifier: BlockNotifier,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the scheduler.

        :param state: Loop state shared with the gate.
        :param gate: Update gate bound to ``state``.
        :param pipeline: Transaction pipeline.
        :param ledger: Ledger client.
        :param price_source: Price fetcher.
        :param notifier: Block notifier.
        :param clock: Time source returning unix seconds (default: time.time).
        """
        self.state = state
        self.gate = gate
        self.pipeline = pipeline
        self.ledger = ledger
        self.price_source = price_source
        self.notifier = notifier
        self.clock = clock

        self._evaluation_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    async def bootstrap(self) -> None:
        """Seed the loop state from the price source and the ledger.

        :raises BootstrapFailed: If any of the initial reads fails.
        """
        try:
            quote = await self.price_source.fetch_price()
            self.state.last_price = quote.value
            logger.info(f"Current price from {self.price_source.name}: ${quote.value}")

            reading = await self.ledger.read_oracle_price()
            updated_at = time.strftime(
                "%Y-%m-%d %H:%M:%S", time.localtime(reading.updated_at)
            )
            logger.info(f"Current oracle price: ${reading.price} (updated at: {updated_at})")

            self.state.last_processed_block = await self.ledger.current_block_height()
            logger.info(f"Current block number: {self.state.last_processed_block}")
        except Exception as e:
            raise BootstrapFailed(f"Error during initial setup: {e}") from e

    async def process_block(self, block_number: int) -> Decision:
        """Run one evaluate-then-maybe-submit cycle.

        :param block_number: Newly observed block number.
        :returns: The gate's decision for this block.
        """
        async with self._evaluation_lock:
            decision = await self.gate.evaluate(block_number, self.clock())

        if not isinstance(decision, Attempt):
            return decision

        with self.state.transaction_slot():
            logger.info("Starting transaction...")
            await self._execute(decision)
            logger.info("Transaction flag reset")

        return decision

    async def _execute(self, attempt: Attempt) -> None:
        """Submit an attempt and fold the outcome back into the state."""
        try:
            outcome = await self.pipeline.submit(attempt.price)
        except Exception:
            logger.exception("Unexpected error in price update process")
            self.state.record_failure(attempt.price)
            logger.info(f"Set failed price ${attempt.price} as pending for retry")
            return

        if not isinstance(outcome, Confirmed):
            logger.error(f"Transaction failed: {outcome.error}")
            self.state.record_failure(attempt.price)
            logger.info(f"Set failed price ${attempt.price} as pending for retry")
            return

        self.state.record_success(attempt.price, self.clock())
        logger.info("Transaction completed successfully")
        await self._verify()

    async def _verify(self) -> None:
        """Read the oracle back after a confirmed update."""
        try:
            reading = await self.ledger.read_oracle_price()
        except Exception as e:
            logger.warning(f"Could not read back oracle price: {e}")
            return
        logger.info(f"Oracle price updated to ${reading.price}")

    def _spawn(self, block_number: int) -> None:
        task = asyncio.create_task(
            self.process_block(block_number), name=f"block-{block_number}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Block cycle {task.get_name()} failed: {exc!r}")

    @property
    def in_flight(self) -> int:
        """Number of block cycles still running."""
        return len(self._tasks)

    def stop(self) -> None:
        """Stop consuming block notifications."""
        logger.info("Stopping price feed updater...")
        self.notifier.unsubscribe()

    async def run(self) -> None:
        """Bootstrap, then process block notifications until stopped.

        :raises BootstrapFailed: If the bootstrap pass fails.
        """
        await self.bootstrap()

        logger.info("Will update prices when:")
        logger.info("1. New block is detected")
        logger.info(f"2. At least {self.gate.min_update_interval}s passed since last update")
        logger.info("3. The price has changed")
        logger.info("4. No transaction is currently in progress")

        async for block_number in self.notifier:
            self._spawn(block_number)

        if self._tasks:
            logger.info(f"Exiting with {len(self._tasks)} block cycle(s) still in flight")
