"""LedgerClient: Abstract read/write access to the oracle contract."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


class LedgerError(Exception):
    """Base exception for ledger access errors."""

    pass


class EstimationFailed(LedgerError):
    """Raised when the node cannot estimate gas for the update call."""

    pass


class SubmissionFailed(LedgerError):
    """Raised when a transaction cannot be sent or its receipt not obtained."""

    pass


class ReceiptStatus(enum.Enum):
    """Execution status reported by a transaction receipt."""

    SUCCESS = "success"
    REVERTED = "reverted"


@dataclass(frozen=True)
class Receipt:
    """Confirmation of an included transaction.

    :ivar status: Execution status.
    :ivar block_number: Block the transaction was included in.
    """

    status: ReceiptStatus
    block_number: int


@dataclass(frozen=True)
class OracleReading:
    """Price currently stored in the oracle contract.

    :ivar price: Stored price, scaled back from fixed point.
    :ivar updated_at: Unix timestamp of the last on-chain update.
    """

    price: Decimal
    updated_at: int


class LedgerClient(ABC):
    """Abstract base class for ledger access.

    Provides the read side (block height, oracle state) and the write side
    (gas estimation, submission, confirmation) used by the updater. Prices
    cross this boundary in fixed-point integer form on the write side.
    """

    @abstractmethod
    async def current_block_height(self) -> int:
        """Fetch the latest block number.

        :returns: Current block height.
        """
        pass

    @abstractmethod
    async def read_oracle_price(self) -> OracleReading:
        """Read the price currently stored in the oracle.

        :returns: Oracle reading.
        """
        pass

    @abstractmethod
    async def estimate_gas(self, price_scaled: int) -> int:
        """Estimate gas for an update call.

        :param price_scaled: Fixed-point price argument.
        :returns: Estimated gas units.
        :raises EstimationFailed: If the node cannot produce an estimate.
        """
        pass

    @abstractmethod
    async def submit(self, price_scaled: int, gas_limit: int) -> str:
        """Sign and send an update transaction.

        :param price_scaled: Fixed-point price argument.
        :param gas_limit: Gas limit for the transaction.
        :returns: Transaction hash as a 0x-prefixed hex string.
        :raises SubmissionFailed: If the transaction could not be sent.
        """
        pass

    @abstractmethod
    async def await_confirmation(self, tx_hash: str) -> Receipt:
        """Wait until a transaction is included.

        :param tx_hash: Hash returned by submit().
        :returns: Receipt with execution status.
        :raises SubmissionFailed: If no receipt could be obtained.
        """
        pass

    def explorer_tx_url(self, tx_hash: str) -> str | None:
        """Return a block explorer link for a transaction, if known."""
        return None
