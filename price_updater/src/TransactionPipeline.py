"""TransactionPipeline: Executes one oracle update attempt.

Steps:
    1. Convert the price to the on-chain fixed-point integer
    2. Estimate gas and add a proportional safety margin
    3. Fall back to a fixed gas limit when estimation fails
    4. Submit and wait for the receipt
    5. Report Confirmed or Failed

The pipeline never retries on its own. A failed price is queued as pending by
the caller and picked up again by the next qualifying block.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, localcontext
from typing import TYPE_CHECKING, Union

from .LedgerClient import EstimationFailed, LedgerError, ReceiptStatus

if TYPE_CHECKING:
    from .LedgerClient import LedgerClient

logger = logging.getLogger(__name__)

# Number of decimals stored on-chain.
PRICE_DECIMALS = 8

DEFAULT_GAS_MARGIN = Decimal("0.2")

# Used when the node cannot estimate gas for the update call.
DEFAULT_FALLBACK_GAS_LIMIT = 300_000


def to_fixed_point(price: Decimal, decimals: int = PRICE_DECIMALS) -> int:
    """Convert a price to its on-chain fixed-point integer.

    The price is rounded half-up to ``decimals`` places first.

    :param price: Price to convert.
    :param decimals: Number of decimal places kept on-chain.
    :returns: ``round(price, decimals) * 10**decimals`` as an int.
    :raises ValueError: If the price is negative or not finite.

    .. code-block:: python

        >>> to_fixed_point(Decimal("0.25"))
        25000000
        >>> to_fixed_point(Decimal("0.123456789"))
        12345679
    """
    if not price.is_finite() or price < 0:
        raise ValueError(f"Cannot convert price {price} to fixed point")
    with localcontext() as ctx:
        # Every integer digit plus every kept decimal must fit the precision.
        ctx.prec = max(ctx.prec, price.adjusted() + decimals + 2)
        rounded = price.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)
        return int(rounded.scaleb(decimals))


def with_margin(gas_estimate: int, margin: Decimal) -> int:
    """Apply a proportional safety margin to a gas estimate, rounding down."""
    return int((Decimal(gas_estimate) * (1 + margin)).to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class Confirmed:
    """The update transaction was included and succeeded.

    :ivar tx_hash: Transaction hash.
    :ivar block_number: Inclusion block.
    """

    tx_hash: str
    block_number: int


@dataclass(frozen=True)
class Failed:
    """The update did not take effect.

    :ivar error: Description of the failure.
    :ivar tx_hash: Transaction hash, when the transaction was sent.
    """

    error: str
    tx_hash: str | None = None


Outcome = Union[Confirmed, Failed]


class TransactionPipeline:
    """Estimates, submits and confirms oracle update transactions.

    :ivar ledger: Ledger client used for all network calls.
    :ivar price_decimals: Fixed-point scale of on-chain prices.
    :ivar gas_margin: Proportional margin added to gas estimates.
    :ivar fallback_gas_limit: Gas limit used when estimation fails.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        price_decimals: int = PRICE_DECIMALS,
        gas_margin: Decimal = DEFAULT_GAS_MARGIN,
        fallback_gas_limit: int = DEFAULT_FALLBACK_GAS_LIMIT,
    ) -> None:
        """Initialize the pipeline.

        :param ledger: Ledger client.
        :param price_decimals: Fixed-point scale (default: 8).
        :param gas_margin: Margin added to estimates, 0.2 meaning +20% (default).
        :param fallback_gas_limit: Gas limit when estimation fails (default: 300000).
        :raises ValueError: If parameters are invalid.
        """
        if price_decimals < 0:
            raise ValueError("price_decimals must not be negative")
        if gas_margin < 0:
            raise ValueError("gas_margin must not be negative")
        if fallback_gas_limit <= 0:
            raise ValueError("fallback_gas_limit must be positive")

        self.ledger = ledger
        self.price_decimals = price_decimals
        self.gas_margin = Decimal(gas_margin)
        self.fallback_gas_limit = fallback_gas_limit

    async def resolve_gas_limit(self, price_scaled: int) -> int:
        """Estimate gas with margin, or return the fallback limit.

        :param price_scaled: Fixed-point price argument.
        :returns: Gas limit to submit with.
        """
        try:
            estimate = await self.ledger.estimate_gas(price_scaled)
        except EstimationFailed as e:
            logger.warning(
                f"Error estimating gas: {e}. "
                f"Using fallback gas limit {self.fallback_gas_limit}"
            )
            return self.fallback_gas_limit

        gas_limit = with_margin(estimate, self.gas_margin)
        logger.info(f"Estimated gas: {estimate}, with buffer: {gas_limit}")
        return gas_limit

    async def submit(self, price: Decimal) -> Outcome:
        """Push a price to the oracle and wait for the result.

        :param price: Price to submit.
        :returns: Confirmed on a successful receipt, Failed otherwise.
        """
        price_scaled = to_fixed_point(price, self.price_decimals)
        logger.info(f"Updating oracle price to: {price} ({price_scaled})")

        gas_limit = await self.resolve_gas_limit(price_scaled)

        try:
            tx_hash = await self.ledger.submit(price_scaled, gas_limit)
        except LedgerError as e:
            logger.error(f"Error sending update transaction: {e}")
            return Failed(str(e))

        tx_url = self.ledger.explorer_tx_url(tx_hash)
        logger.info(f"Transaction sent: {tx_hash}" + (f" ({tx_url})" if tx_url else ""))

        try:
            receipt = await self.ledger.await_confirmation(tx_hash)
        except LedgerError as e:
            logger.error(f"Error waiting for confirmation of {tx_hash}: {e}")
            return Failed(str(e), tx_hash=tx_hash)

        logger.info(f"Transaction confirmed in block {receipt.block_number}")

        if receipt.status is not ReceiptStatus.SUCCESS:
            logger.warning(f"Transaction {tx_hash} reverted in block {receipt.block_number}")
            return Failed(
                f"Transaction reverted in block {receipt.block_number}", tx_hash=tx_hash
            )

        return Confirmed(tx_hash=tx_hash, block_number=receipt.block_number)
