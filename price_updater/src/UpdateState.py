"""UpdateState: The single mutable record shared by the gate and the scheduler."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal


class TransactionInProgressError(RuntimeError):
    """Raised when the transaction slot is acquired while already held."""

    pass


@dataclass
class UpdateState:
    """Loop state of the updater.

    :ivar last_processed_block: Highest block number seen by the gate.
    :ivar last_price: Most recently confirmed price.
    :ivar last_update_timestamp: Unix time of the last confirmed update.
    :ivar transaction_in_progress: True while an update transaction runs.
    :ivar pending_price: Price waiting to be submitted by the next eligible cycle.
    """

    last_processed_block: int = 0
    last_price: Decimal = Decimal(0)
    last_update_timestamp: float = 0.0
    transaction_in_progress: bool = False
    pending_price: Decimal | None = None

    @contextmanager
    def transaction_slot(self) -> Iterator[None]:
        """Hold the single transaction slot for the duration of the block.

        The flag is cleared on every exit path, including exceptions.

        :raises TransactionInProgressError: If the slot is already held.
        """
        if self.transaction_in_progress:
            raise TransactionInProgressError("An update transaction is already in progress")
        self.transaction_in_progress = True
        try:
            yield
        finally:
            self.transaction_in_progress = False

    def record_success(self, price: Decimal, timestamp: float) -> None:
        """Record a confirmed update.

        :param price: Price that was confirmed on-chain.
        :param timestamp: Time of confirmation.
        """
        self.last_price = price
        self.last_update_timestamp = timestamp

    def record_failure(self, price: Decimal) -> None:
        """Queue a price whose update failed so the next cycle retries it.

        Replaces any price captured while the transaction was in flight.

        :param price: Price that was attempted.
        """
        self.pending_price = price
