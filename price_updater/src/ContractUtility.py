"""ContractUtility: Web3 initialization, network table and contract ABI loading."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from web3 import AsyncHTTPProvider, AsyncWeb3


@dataclass(frozen=True)
class Network:
    """Static description of a supported network.

    :ivar rpc_url: Default JSON-RPC endpoint.
    :ivar chain_id: EIP-155 chain id.
    :ivar explorer_url: Block explorer base URL, if any.
    :ivar oracle_address: Predeployed oracle contract, if any.
    """

    rpc_url: str
    chain_id: int
    explorer_url: str | None = None
    oracle_address: str | None = None


NETWORKS: dict[str, Network] = {
    "hyperion-testnet": Network(
        rpc_url="https://hyperion-testnet.metisdevops.link",
        chain_id=133717,
        explorer_url="https://hyperion-testnet-explorer.metisdevops.link",
        oracle_address="0xd2c6c162a1aa2511e35c229da62e5084d6762942",
    ),
    "localnet": Network(
        rpc_url="http://localhost:8545",
        chain_id=31337,
    ),
}


class ContractUtility:
    """Utility for Web3 connection and contract ABI loading.

    :ivar network_name: Name of the selected network.
    :ivar network: Network entry, or None when a raw RPC URL was given.
    :ivar rpc_url: Resolved JSON-RPC endpoint.
    :ivar w3: AsyncWeb3 instance bound to ``rpc_url``.
    """

    def __init__(self, network_name: str, rpc_url: str | None = None) -> None:
        """Initialize the contract utility.

        Unknown network names are treated as an RPC URL.

        :param network_name: Name of the network to connect to.
        :param rpc_url: Optional RPC URL overriding the network default.
        """
        self.network_name = network_name
        self.network = NETWORKS.get(network_name)
        default_url = self.network.rpc_url if self.network else network_name
        self.rpc_url = rpc_url or default_url

        self.w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))

    @property
    def explorer_url(self) -> str | None:
        return self.network.explorer_url if self.network else None

    @property
    def default_oracle_address(self) -> str | None:
        return self.network.oracle_address if self.network else None

    @staticmethod
    def get_contract(contract_name: str) -> list:
        """Fetch the ABI of a contract from the contracts folder.

        :param contract_name: Name of the contract (e.g., "PriceOracle").
        :returns: Contract ABI.
        """
        output_path = (
            Path(__file__).parent.parent / "contracts" / f"{contract_name}.json"
        ).resolve()

        with open(output_path, "r") as file:
            contract_data = json.load(file)

        return contract_data["abi"]
