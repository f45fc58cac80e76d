"""TransactionSender: Resilient delivery of one signed transaction.

A signed transaction is broadcast once and then, until it is confirmed or
the deadline expires:

- probed for confirmation, racing the status query against a fixed wait
  shorter than ``poll_interval``;
- rebroadcast (same bytes, same id) every ``rebroadcast_interval`` seconds,
  up to ``max_rebroadcasts`` times, concurrently with that iteration's probe;
- paced so that each iteration lasts at least ``poll_interval``.

Broadcasts and probes are both cut off at the probe timeout or at the
deadline, whichever comes first, so a hanging node delays neither the next
probe nor the end of the delivery.

Broadcast and probe failures are treated as "no result yet". A timed out
delivery is not an error: the transaction may still land, the sender just
stops watching it.

.. code-block:: python

    sender = TransactionSender(channel, timeout=120.0)
    result = await sender.deliver(raw_tx)
    if not result.confirmed:
        logger.warning(f"{result.tx_id} not confirmed")
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .BroadcastChannel import BroadcastChannel

logger = logging.getLogger(__name__)

DEFAULT_TX_TIMEOUT = 120.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_REBROADCAST_INTERVAL = 5.0
DEFAULT_MAX_REBROADCASTS = 40

# Fraction of the poll interval a status query may take before it is dropped.
PROBE_TIMEOUT_RATIO = 0.75


@dataclass
class InFlightTransaction:
    """Bookkeeping of one delivery attempt.

    :ivar tx_id: Transaction identifier.
    :ivar raw_tx: Signed, serialized transaction.
    :ivar deadline: Monotonic time after which delivery is abandoned.
    :ivar last_broadcast_at: Monotonic time of the last (re)broadcast.
    :ivar broadcast_count: Broadcasts issued, including the first one.
    """

    tx_id: str
    raw_tx: bytes
    deadline: float
    last_broadcast_at: float = 0.0
    broadcast_count: int = 0


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of :meth:`TransactionSender.deliver`.

    :ivar tx_id: Transaction identifier.
    :ivar confirmed: True if a confirmation was observed before the deadline.
    :ivar result: Confirmation returned by the channel (e.g. a receipt).
    :ivar broadcasts: Number of broadcasts issued.
    :ivar polls: Number of status probes issued.
    :ivar elapsed: Seconds spent delivering.
    """

    tx_id: str
    confirmed: bool
    result: Any = None
    broadcasts: int = 0
    polls: int = 0
    elapsed: float = 0.0


class TransactionSender:
    """Drives broadcast, rebroadcast and confirmation polling.

    Each :meth:`deliver` call is independent; concurrent deliveries share
    nothing but the channel.

    :ivar channel: Channel used to broadcast and probe.
    :ivar timeout: Seconds before a delivery is abandoned.
    :ivar poll_interval: Minimum seconds between status probes.
    :ivar rebroadcast_interval: Seconds between rebroadcasts.
    :ivar max_rebroadcasts: Rebroadcasts allowed after the first broadcast.
    :ivar confirmations: Confirmation level passed to the channel.
    :ivar probe_timeout: Seconds a status probe may take.
    """

    def __init__(
        self,
        channel: BroadcastChannel,
        timeout: float = DEFAULT_TX_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        rebroadcast_interval: float = DEFAULT_REBROADCAST_INTERVAL,
        max_rebroadcasts: int = DEFAULT_MAX_REBROADCASTS,
        confirmations: int = 1,
        probe_timeout: float | None = None,
    ) -> None:
        """Initialize the sender.

        :param channel: Broadcast channel.
        :param timeout: Delivery deadline in seconds (default: 120).
        :param poll_interval: Seconds between probes (default: 1).
        :param rebroadcast_interval: Seconds between rebroadcasts (default: 5).
        :param max_rebroadcasts: Max rebroadcasts (default: 40).
        :param confirmations: Confirmation level (default: 1).
        :param probe_timeout: Max seconds per probe; defaults to 3/4 of the
            poll interval.
        :raises ValueError: If intervals are not positive.
        """
        if timeout <= 0 or poll_interval <= 0 or rebroadcast_interval <= 0:
            raise ValueError("timeout and intervals must be positive")
        if max_rebroadcasts < 0:
            raise ValueError("max_rebroadcasts must not be negative")

        self.channel = channel
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.rebroadcast_interval = rebroadcast_interval
        self.max_rebroadcasts = max_rebroadcasts
        self.confirmations = confirmations
        self.probe_timeout = (
            probe_timeout
            if probe_timeout is not None
            else poll_interval * PROBE_TIMEOUT_RATIO
        )

    async def deliver(self, raw_tx: bytes) -> DeliveryResult:
        """Deliver a signed transaction until confirmed or timed out.

        :param raw_tx: Signed, serialized transaction.
        :returns: Delivery outcome; never raises for network failures.
        """
        start = time.monotonic()
        tx = InFlightTransaction(
            tx_id=self.channel.transaction_id(raw_tx),
            raw_tx=raw_tx,
            deadline=start + self.timeout,
        )
        await self._broadcast(tx, self._call_timeout(tx), adopt_id=True)

        polls = 0
        while time.monotonic() < tx.deadline:
            iteration_start = time.monotonic()
            call_timeout = self._call_timeout(tx)

            # Rebroadcast runs alongside the probe, never ahead of it
            calls = [self._probe(tx, call_timeout)]
            if (
                tx.broadcast_count - 1 < self.max_rebroadcasts
                and iteration_start - tx.last_broadcast_at >= self.rebroadcast_interval
            ):
                calls.append(self._broadcast(tx, call_timeout))

            polls += 1
            result, *_ = await asyncio.gather(*calls)
            if result is not None:
                return DeliveryResult(
                    tx_id=tx.tx_id,
                    confirmed=True,
                    result=result,
                    broadcasts=tx.broadcast_count,
                    polls=polls,
                    elapsed=time.monotonic() - start,
                )

            now = time.monotonic()
            delay = min(
                self.poll_interval - (now - iteration_start), tx.deadline - now
            )
            if delay > 0:
                await asyncio.sleep(delay)

        return DeliveryResult(
            tx_id=tx.tx_id,
            confirmed=False,
            broadcasts=tx.broadcast_count,
            polls=polls,
            elapsed=time.monotonic() - start,
        )

    def _call_timeout(self, tx: InFlightTransaction) -> float:
        """Seconds a single network call may take."""
        return max(0.0, min(self.probe_timeout, tx.deadline - time.monotonic()))

    async def _broadcast(
        self, tx: InFlightTransaction, timeout: float, adopt_id: bool = False
    ) -> None:
        """Send the transaction; failures are logged and ignored."""
        tx.last_broadcast_at = time.monotonic()
        tx.broadcast_count += 1
        try:
            tx_id = await asyncio.wait_for(self.channel.broadcast(tx.raw_tx), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(f"{tx.tx_id}: broadcast #{tx.broadcast_count} timed out")
            return
        except Exception as e:
            logger.debug(f"{tx.tx_id}: broadcast #{tx.broadcast_count} failed: {e}")
            return

        if adopt_id and tx_id and tx_id != tx.tx_id:
            logger.warning(f"Network reported id {tx_id} for transaction {tx.tx_id}")
            tx.tx_id = tx_id

    async def _probe(self, tx: InFlightTransaction, timeout: float) -> Any:
        """Race a status query against ``timeout``; a late query is cancelled."""
        query = asyncio.ensure_future(
            self.channel.query_status(tx.tx_id, self.confirmations)
        )
        done, _ = await asyncio.wait({query}, timeout=timeout)
        if query not in done:
            query.cancel()
            return None

        try:
            return query.result()
        except Exception as e:
            logger.debug(f"{tx.tx_id}: status query failed: {e}")
            return None
