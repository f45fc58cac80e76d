"""Web3BroadcastChannel: Broadcast channel backed by an EVM JSON-RPC node."""

import logging
from typing import Any

from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from .BroadcastChannel import BroadcastChannel

logger = logging.getLogger(__name__)


class Web3BroadcastChannel(BroadcastChannel):
    """Broadcast channel using ``eth_sendRawTransaction`` and receipts.

    Requests go through the asynchronous web3 provider, so a status query
    abandoned by the sender cancels its HTTP request instead of leaving it
    running.

    :ivar w3: AsyncWeb3 instance connected to the target network.
    """

    def __init__(self, w3: AsyncWeb3) -> None:
        """Initialize the channel.

        :param w3: Connected AsyncWeb3 instance.
        """
        self.w3 = w3

    def transaction_id(self, raw_tx: bytes) -> str:
        """Return the keccak256 hash of the signed transaction."""
        return Web3.to_hex(Web3.keccak(raw_tx))

    async def broadcast(self, raw_tx: bytes) -> str:
        """Send the raw transaction.

        :param raw_tx: Signed, serialized transaction.
        :returns: Transaction hash returned by the node.
        """
        tx_hash = await self.w3.eth.send_raw_transaction(raw_tx)
        return Web3.to_hex(tx_hash)

    async def query_status(self, tx_id: str, confirmations: int = 1) -> Any:
        """Fetch the receipt if the transaction has enough confirmations.

        :param tx_id: Transaction hash.
        :param confirmations: Blocks required, counting the inclusion block.
        :returns: Transaction receipt or None.
        """
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_id)
        except TransactionNotFound:
            return None

        if confirmations > 1:
            head = await self.w3.eth.block_number
            depth = head - receipt["blockNumber"] + 1
            if depth < confirmations:
                logger.debug(f"{tx_id}: {depth}/{confirmations} confirmations")
                return None
        return receipt

    async def close(self) -> None:
        """Close the provider's HTTP session."""
        await self.w3.provider.disconnect()
