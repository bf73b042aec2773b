"""Web3LedgerClient: LedgerClient backed by an AsyncWeb3 JSON-RPC connection."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from web3 import Web3

from .LedgerClient import (
    EstimationFailed,
    LedgerClient,
    OracleReading,
    Receipt,
    ReceiptStatus,
    SubmissionFailed,
)

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount
    from web3 import AsyncWeb3

logger = logging.getLogger(__name__)


class Web3LedgerClient(LedgerClient):
    """Ledger client signing locally and submitting raw transactions.

    :cvar READ_FUNCTION: Oracle view returning ``(price, timestamp)``.
    :cvar WRITE_FUNCTION: Oracle mutator taking the fixed-point price.
    :ivar w3: AsyncWeb3 instance.
    :ivar account: Local signing account.
    :ivar contract: Oracle contract instance.
    :ivar price_decimals: Fixed-point scale of on-chain prices.
    :ivar confirmation_timeout: Seconds to wait for a receipt.
    """

    READ_FUNCTION = "getDogePrice"
    WRITE_FUNCTION = "updateDogePrice"

    def __init__(
        self,
        w3: AsyncWeb3,
        account: LocalAccount,
        oracle_address: str,
        oracle_abi: list,
        price_decimals: int = 8,
        confirmation_timeout: float = 120.0,
        explorer_url: str | None = None,
    ) -> None:
        """Initialize the ledger client.

        :param w3: Connected AsyncWeb3 instance.
        :param account: Account used to sign update transactions.
        :param oracle_address: Oracle contract address (any case).
        :param oracle_abi: Oracle contract ABI.
        :param price_decimals: Fixed-point scale of on-chain prices (default: 8).
        :param confirmation_timeout: Receipt wait timeout in seconds (default: 120).
        :param explorer_url: Optional block explorer base URL for log links.
        """
        self.w3 = w3
        self.account = account
        self.price_decimals = price_decimals
        self.confirmation_timeout = confirmation_timeout
        self.explorer_url = explorer_url.rstrip("/") if explorer_url else None
        self.contract = w3.eth.contract(
            address=Web3.to_checksum_address(oracle_address), abi=oracle_abi
        )

    async def current_block_height(self) -> int:
        """Read the latest block number from the node."""
        return int(await self.w3.eth.block_number)

    async def read_oracle_price(self) -> OracleReading:
        """Call the oracle view and scale the stored price back to a Decimal.

        :returns: Current on-chain price and its update timestamp.
        """
        price, timestamp = await self.contract.functions[self.READ_FUNCTION]().call()
        return OracleReading(
            price=Decimal(price).scaleb(-self.price_decimals),
            updated_at=int(timestamp),
        )

    async def estimate_gas(self, price_scaled: int) -> int:
        """Estimate gas for an update sent from the signer.

        :param price_scaled: Fixed-point price argument.
        :returns: Node gas estimate.
        :raises EstimationFailed: If the node rejects the estimate call.
        """
        fn = self.contract.functions[self.WRITE_FUNCTION](price_scaled)
        try:
            return int(await fn.estimate_gas({"from": self.account.address}))
        except Exception as e:
            raise EstimationFailed(f"Gas estimation failed: {e}") from e

    async def submit(self, price_scaled: int, gas_limit: int) -> str:
        """Build, sign and send the update transaction.

        :param price_scaled: Fixed-point price argument.
        :param gas_limit: Gas limit for the transaction.
        :returns: Transaction hash as 0x-prefixed hex.
        :raises SubmissionFailed: If building, signing or sending fails.
        """
        fn = self.contract.functions[self.WRITE_FUNCTION](price_scaled)
        try:
            nonce = await self.w3.eth.get_transaction_count(
                self.account.address, "pending"
            )
            tx_params = await fn.build_transaction(
                {"from": self.account.address, "gas": gas_limit, "nonce": nonce}
            )
            signed = self.account.sign_transaction(tx_params)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise SubmissionFailed(f"Transaction submission failed: {e}") from e

        logger.debug(f"Sent {self.WRITE_FUNCTION}({price_scaled}) nonce={nonce}")
        return Web3.to_hex(tx_hash)

    async def await_confirmation(self, tx_hash: str) -> Receipt:
        """Wait up to ``confirmation_timeout`` seconds for the receipt.

        :raises SubmissionFailed: If no receipt arrives in time.
        """
        try:
            tx_receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout
            )
        except Exception as e:
            raise SubmissionFailed(f"No receipt for {tx_hash}: {e}") from e

        status = (
            ReceiptStatus.SUCCESS if tx_receipt["status"] == 1 else ReceiptStatus.REVERTED
        )
        return Receipt(status=status, block_number=int(tx_receipt["blockNumber"]))

    def explorer_tx_url(self, tx_hash: str) -> str | None:
        """Explorer link for a transaction, or None without an explorer."""
        if not self.explorer_url:
            return None
        return f"{self.explorer_url}/tx/{tx_hash}"
