"""OracleUpdater: Main loop pushing observed prices to the oracle.

Architecture:
    - Connecting: network handles (channel, signer) are (re)built
    - Running: one tick per ``fetch_interval``; each tick observes a price,
      applies the update policy and publishes when needed
    - Stopped: entered once the stop event is set, checked before every
      blocking step

Publishing is fire-and-forget: the signed transaction is handed to a
background delivery task and the local oracle state is updated right away
with the submitted price. The tick cadence never waits for confirmations,
so the local state may run ahead of the chain until the next publish.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from .ChainUtility import ChainSession, open_session
from .TransactionSender import TransactionSender
from .UpdatePolicy import OracleState, PublishDecision, UpdatePolicy

if TYPE_CHECKING:
    from .ObservationSource import ObservationSource
    from .OracleConfig import OracleConfig

logger = logging.getLogger(__name__)

SessionFactory = Callable[["OracleConfig"], Awaitable[ChainSession]]


class UpdaterStatus(enum.Enum):
    """Lifecycle state of the updater."""

    CONNECTING = "connecting"
    RUNNING = "running"
    STOPPED = "stopped"


class OracleUpdater:
    """Periodic oracle publisher for one oracle account.

    :ivar config: Oracle configuration.
    :ivar source: Source of price observations.
    :ivar policy: Update decision rules.
    :ivar state: Locally tracked oracle state.
    :ivar status: Current lifecycle state.
    """

    def __init__(
        self,
        config: OracleConfig,
        source: ObservationSource,
        session_factory: SessionFactory = open_session,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the updater.

        :param config: Oracle configuration.
        :param source: Source of price observations.
        :param session_factory: Coroutine function building a
            :class:`ChainSession` (default: web3 session).
        :param clock: Wall clock returning Unix timestamps.
        """
        self.config = config
        self.source = source
        self.session_factory = session_factory
        self.clock = clock
        self.policy = UpdatePolicy.from_config(config)
        self.state = OracleState()
        self.status = UpdaterStatus.CONNECTING

        self.session: ChainSession | None = None
        self.sender: TransactionSender | None = None
        self._stop_event = asyncio.Event()
        self._deliveries: set[asyncio.Task] = set()

    @property
    def stopped(self) -> bool:
        """True once a stop was requested."""
        return self._stop_event.is_set()

    @property
    def pending_deliveries(self) -> int:
        """Number of delivery tasks still running."""
        return len(self._deliveries)

    def stop(self) -> None:
        """Request shutdown; safe to call from a signal handler."""
        if not self.stopped:
            logger.info("Stop requested")
        self._stop_event.set()

    async def _sleep(self, seconds: float) -> None:
        """Sleep unless a stop is requested first."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _connect(self) -> None:
        """Acquire network handles and build a fresh sender."""
        await self._close_session()
        self.session = await self.session_factory(self.config)
        self.sender = TransactionSender(
            self.session.channel,
            timeout=self.config.tx_timeout,
            poll_interval=self.config.poll_interval,
            rebroadcast_interval=self.config.rebroadcast_interval,
            max_rebroadcasts=self.config.max_rebroadcasts,
            confirmations=self.config.confirmations,
        )

    async def _close_session(self) -> None:
        """Release the current network handles, if any."""
        if self.session is None:
            return
        session, self.session = self.session, None
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"{self.config.pair}: failed to close chain session: {e!r}")

    async def tick(self) -> None:
        """Run one observation/decision/publish cycle."""
        now = self.clock()

        observation = await self.source.observe()
        if observation is not None:
            decision = self.policy.should_publish(observation, self.state, now)
            if decision.publish:
                await self.publish(decision, now)

        disable = self.policy.check_inactivity(self.state, now)
        if disable.publish:
            logger.warning(
                f"{self.config.pair}: disabling oracle: "
                f"no update for {self.config.inactive_duration}s"
            )
            await self.publish(disable, now)

    async def publish(self, decision: PublishDecision, now: float) -> None:
        """Sign an update, start its delivery and record it locally.

        :param decision: Price and status to publish.
        :param now: Unix timestamp recorded as the update time.
        """
        assert self.session is not None and self.sender is not None

        logger.info(
            f"{self.config.pair}: updating price={decision.price:.8f} "
            f"status={decision.status.name} ({decision.reason})"
        )
        raw_tx = await self.session.builder.build(decision.price, decision.status)

        task = asyncio.create_task(
            self._deliver(self.sender, self.session, raw_tx, decision)
        )
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

        self.state.record(decision.price, decision.status, now)

    async def _deliver(
        self,
        sender: TransactionSender,
        session: ChainSession,
        raw_tx: bytes,
        decision: PublishDecision,
    ) -> None:
        """Deliver one update and log its outcome."""
        try:
            result = await sender.deliver(raw_tx)
        except Exception as e:
            logger.error(f"{self.config.pair}: delivery failed: {e!r}")
            return

        if not result.confirmed:
            logger.warning(
                f"{self.config.pair}: update tx {result.tx_id} not confirmed after "
                f"{result.elapsed:.1f}s ({result.broadcasts} broadcasts)"
            )
            session.builder.reset_nonce()
            return

        receipt = result.result
        if hasattr(receipt, "get") and receipt.get("status") == 0:
            logger.warning(f"{self.config.pair}: update tx {result.tx_id} reverted")
            return

        logger.info(
            f"{self.config.pair}: executed update tx {result.tx_id} "
            f"(price={decision.price:.8f}, status={decision.status.name}, "
            f"{result.elapsed:.1f}s)"
        )

    async def run(self) -> None:
        """Run until :meth:`stop` is called.

        Any error raised while connecting or ticking triggers a full
        reconnection after ``reconnect_delay`` seconds.
        """
        try:
            while not self.stopped:
                self.status = UpdaterStatus.CONNECTING
                try:
                    await self._connect()
                    self.status = UpdaterStatus.RUNNING
                    logger.info(f"{self.config.pair}: connected, starting updates")

                    while not self.stopped:
                        await self.tick()
                        if not self.stopped:
                            await self._sleep(self.config.fetch_interval)
                except Exception as e:
                    logger.error(f"{self.config.pair}: error in main loop: {e!r}")

                if not self.stopped:
                    await self._sleep(self.config.reconnect_delay)
        finally:
            self.status = UpdaterStatus.STOPPED
            if self._deliveries:
                logger.info(
                    f"Abandoning {len(self._deliveries)} in-flight update deliveries"
                )
            await self.source.close()
            await self._close_session()
