"""ChainUtility: Web3 connection, signing account and chain session setup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3

from .BroadcastChannel import BroadcastChannel
from .UpdateTransactionBuilder import UpdateTransactionBuilder
from .Web3BroadcastChannel import Web3BroadcastChannel

if TYPE_CHECKING:
    from .OracleConfig import OracleConfig

logger = logging.getLogger(__name__)

NETWORKS = {
    "sapphire": "https://sapphire.oasis.io",
    "sapphire-testnet": "https://testnet.sapphire.oasis.io",
    "sapphire-localnet": "http://localhost:8545",
}

# Well-known development account funded on localnets.
LOCALNET_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


class ChainUtility:
    """Utility for Web3 connection and signing account loading.

    :ivar network: Network RPC URL.
    :ivar w3: AsyncWeb3 instance.
    """

    def __init__(self, network_name: str, rpc_url: str | None = None) -> None:
        """Initialize the chain utility.

        :param network_name: Name of a network preset, or an RPC URL.
        :param rpc_url: Explicit RPC URL overriding the preset.
        """
        self.network = rpc_url or NETWORKS.get(network_name, network_name)
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.network))

    @staticmethod
    def load_account(network_name: str, private_key: str | None) -> LocalAccount:
        """Load the account signing oracle updates.

        :param network_name: Network name; localnet falls back to the
            development account.
        :param private_key: Hex-encoded private key.
        :returns: Local signing account.
        :raises ValueError: If no key is available for the network.
        """
        if not private_key:
            if network_name != "sapphire-localnet":
                raise ValueError(f"No private key configured for network {network_name}")
            private_key = LOCALNET_PRIVATE_KEY
        return Account.from_key(private_key)


@dataclass
class ChainSession:
    """Network handles acquired while connecting.

    :ivar channel: Channel used to deliver update transactions.
    :ivar builder: Builder signing update transactions.
    """

    channel: BroadcastChannel
    builder: UpdateTransactionBuilder

    async def close(self) -> None:
        """Close the connection shared by the channel and the builder."""
        await self.channel.close()


async def open_session(config: OracleConfig) -> ChainSession:
    """Connect to the configured network and prepare signing.

    :param config: Oracle configuration.
    :returns: Ready chain session.
    :raises ValueError: If no signing key is available.
    :raises Exception: Any connection error from the node.
    """
    chain = ChainUtility(config.network, config.rpc_url)
    account = ChainUtility.load_account(config.network, config.private_key)
    logger.info(f"Connecting to {chain.network}")

    builder = UpdateTransactionBuilder(
        w3=chain.w3,
        account=account,
        oracle_address=config.oracle_address,
        confidence=config.confidence,
        gas_limit=config.gas_limit,
    )
    await builder.connect()
    return ChainSession(channel=Web3BroadcastChannel(chain.w3), builder=builder)
