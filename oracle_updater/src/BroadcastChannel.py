"""BroadcastChannel: Abstract interface for sending signed transactions."""

from abc import ABC, abstractmethod
from typing import Any


class BroadcastChannel(ABC):
    """Abstract base class for transaction broadcast channels.

    Provides the two network operations the delivery protocol needs:
    sending raw signed bytes and probing a transaction for inclusion.
    Both may fail transiently; callers treat failures as "no result yet".
    """

    @abstractmethod
    def transaction_id(self, raw_tx: bytes) -> str:
        """Compute the identifier of a signed transaction.

        :param raw_tx: Signed, serialized transaction.
        :returns: Transaction identifier (same for every rebroadcast).
        """
        pass

    @abstractmethod
    async def broadcast(self, raw_tx: bytes) -> str:
        """Send a signed transaction to the network.

        :param raw_tx: Signed, serialized transaction.
        :returns: Transaction identifier reported by the network.
        """
        pass

    @abstractmethod
    async def query_status(self, tx_id: str, confirmations: int = 1) -> Any:
        """Query whether a transaction reached the confirmation level.

        :param tx_id: Transaction identifier.
        :param confirmations: Required number of confirmations.
        :returns: Network result (e.g. receipt) or None if not confirmed yet.
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the channel."""
