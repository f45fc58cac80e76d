"""Unit tests for OracleUpdater."""

import asyncio

import pytest

from oracle_updater.src.BroadcastChannel import BroadcastChannel
from oracle_updater.src.ChainUtility import ChainSession
from oracle_updater.src.ObservationSource import ObservationSource
from oracle_updater.src.OracleConfig import OracleConfig
from oracle_updater.src.OracleInstruction import PriceStatus, decode_update, encode_update
from oracle_updater.src.OracleUpdater import OracleUpdater, UpdaterStatus
from oracle_updater.src.UpdatePolicy import OracleState, PriceObservation

T0 = 1_700_000_000.0


def make_config(**overrides) -> OracleConfig:
    data = {
        "oracle_address": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
        "source": "coinbase",
        "base": "sol",
        "quote": "usd",
        "fetch_interval": 0.01,
        "reconnect_delay": 0.01,
        "update_threshold": 1.0,
        "update_interval": 60.0,
        "tx_timeout": 0.05,
        "poll_interval": 0.01,
        "rebroadcast_interval": 0.02,
    }
    data.update(overrides)
    return OracleConfig.from_dict(data)


class FakeChannel(BroadcastChannel):
    """Channel confirming everything immediately, or nothing."""

    def __init__(self, confirm: bool = True, receipt_status: int = 1) -> None:
        self.confirm = confirm
        self.receipt_status = receipt_status
        self.sent: list[bytes] = []
        self.closes = 0

    def transaction_id(self, raw_tx: bytes) -> str:
        return "0x" + raw_tx.hex()

    async def broadcast(self, raw_tx: bytes) -> str:
        self.sent.append(raw_tx)
        return self.transaction_id(raw_tx)

    async def query_status(self, tx_id: str, confirmations: int = 1):
        if not self.confirm:
            return None
        return {"transactionHash": tx_id, "status": self.receipt_status}

    async def close(self) -> None:
        self.closes += 1


class FakeBuilder:
    """Builder returning the bare instruction as the "signed" transaction."""

    def __init__(self) -> None:
        self.built: list[tuple[float, PriceStatus]] = []
        self.nonce_resets = 0

    async def build(self, price: float, status: PriceStatus) -> bytes:
        self.built.append((price, status))
        return encode_update(price, 0.0, status)

    def reset_nonce(self) -> None:
        self.nonce_resets += 1


class FakeSessionFactory:
    """Session factory counting connections; may fail the first ones."""

    def __init__(self, channel: BroadcastChannel | None = None, failures: int = 0) -> None:
        self.channel = channel or FakeChannel()
        self.builder = FakeBuilder()
        self.failures = failures
        self.calls = 0

    async def __call__(self, config: OracleConfig) -> ChainSession:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("node unreachable")
        return ChainSession(channel=self.channel, builder=self.builder)


class ScriptedSource(ObservationSource):
    """Source replaying prices; None entries mean "no price"."""

    def __init__(self, prices: list[float | None]) -> None:
        self.prices = list(prices)
        self.closed = False

    async def observe(self) -> PriceObservation | None:
        price = self.prices.pop(0) if self.prices else None
        if price is None:
            return None
        return PriceObservation(value=price, observed_at=T0)

    async def close(self) -> None:
        self.closed = True


class Clock:
    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


async def wait_deliveries(updater: OracleUpdater) -> None:
    while updater.pending_deliveries:
        await asyncio.sleep(0.01)


class TestTick:
    """Test one observation/decision/publish cycle."""

    @pytest.mark.asyncio
    async def test_first_price_published(self) -> None:
        factory = FakeSessionFactory()
        updater = OracleUpdater(make_config(), ScriptedSource([150.0]), factory, Clock())
        await updater._connect()

        await updater.tick()
        await wait_deliveries(updater)

        assert factory.builder.built == [(150.0, PriceStatus.VALID)]
        assert len(factory.channel.sent) == 1
        assert decode_update(factory.channel.sent[0]).price_value == 150.0
        assert updater.state.last_price == 150.0
        assert updater.state.last_update == T0

    @pytest.mark.asyncio
    async def test_small_move_not_published(self) -> None:
        clock = Clock()
        factory = FakeSessionFactory()
        updater = OracleUpdater(make_config(), ScriptedSource([150.0, 150.5]), factory, clock)
        await updater._connect()

        await updater.tick()
        clock.now += 5.0
        await updater.tick()
        await wait_deliveries(updater)

        assert factory.builder.built == [(150.0, PriceStatus.VALID)]
        assert updater.state.last_update == T0

    @pytest.mark.asyncio
    async def test_interval_republishes(self) -> None:
        clock = Clock()
        factory = FakeSessionFactory()
        updater = OracleUpdater(make_config(), ScriptedSource([150.0, 150.0]), factory, clock)
        await updater._connect()

        await updater.tick()
        clock.now += 60.0
        await updater.tick()
        await wait_deliveries(updater)

        assert len(factory.builder.built) == 2
        assert updater.state.last_update == T0 + 60.0

    @pytest.mark.asyncio
    async def test_state_updated_before_confirmation(self) -> None:
        """Local state follows the submitted price, not the confirmed one."""
        factory = FakeSessionFactory(channel=FakeChannel(confirm=False))
        updater = OracleUpdater(make_config(), ScriptedSource([150.0]), factory, Clock())
        await updater._connect()

        await updater.tick()

        assert updater.pending_deliveries == 1
        assert updater.state.last_price == 150.0
        assert updater.state.last_status == PriceStatus.VALID

        await wait_deliveries(updater)
        # Unconfirmed delivery resyncs the nonce with the node
        assert factory.builder.nonce_resets == 1
        assert updater.state.last_price == 150.0

    @pytest.mark.asyncio
    async def test_reverted_update(self) -> None:
        factory = FakeSessionFactory(channel=FakeChannel(receipt_status=0))
        updater = OracleUpdater(make_config(), ScriptedSource([150.0]), factory, Clock())
        await updater._connect()

        await updater.tick()
        await wait_deliveries(updater)

        assert factory.builder.nonce_resets == 0
        assert updater.state.last_price == 150.0

    @pytest.mark.asyncio
    async def test_out_of_band_price_marked_invalid(self) -> None:
        factory = FakeSessionFactory()
        updater = OracleUpdater(
            make_config(max_threshold=100.0), ScriptedSource([150.0]), factory, Clock()
        )
        await updater._connect()

        await updater.tick()
        await wait_deliveries(updater)

        assert factory.builder.built == [(150.0, PriceStatus.INVALID)]

    @pytest.mark.asyncio
    async def test_inactivity_disables_oracle(self) -> None:
        factory = FakeSessionFactory()
        clock = Clock(T0 + 301.0)
        updater = OracleUpdater(
            make_config(inactive_duration=300.0), ScriptedSource([None]), factory, clock
        )
        updater.state = OracleState(
            last_price=150.0, last_status=PriceStatus.VALID, last_update=T0
        )
        await updater._connect()

        await updater.tick()
        await wait_deliveries(updater)

        assert factory.builder.built == [(150.0, PriceStatus.INVALID)]
        assert updater.state.last_status == PriceStatus.INVALID
        assert updater.state.last_update == T0 + 301.0

        # Already disabled: nothing more to publish
        clock.now += 1000.0
        await updater.tick()
        assert len(factory.builder.built) == 1

    @pytest.mark.asyncio
    async def test_no_observation_no_publish(self) -> None:
        factory = FakeSessionFactory()
        updater = OracleUpdater(make_config(), ScriptedSource([None]), factory, Clock())
        await updater._connect()

        await updater.tick()

        assert factory.builder.built == []
        assert updater.state.last_update is None


class TestRun:
    """Test the Connecting/Running/Stopped lifecycle."""

    @pytest.mark.asyncio
    async def test_stop_before_run(self) -> None:
        source = ScriptedSource([])
        factory = FakeSessionFactory()
        updater = OracleUpdater(make_config(), source, factory, Clock())

        updater.stop()
        await updater.run()

        assert factory.calls == 0
        assert updater.status == UpdaterStatus.STOPPED
        assert source.closed

    @pytest.mark.asyncio
    async def test_runs_until_stopped(self) -> None:
        factory = FakeSessionFactory()
        source = ScriptedSource([150.0, 155.0, 160.0])
        updater = OracleUpdater(make_config(), source, factory, Clock())

        async def stop_when_drained() -> None:
            while source.prices:
                await asyncio.sleep(0.005)
            assert updater.status == UpdaterStatus.RUNNING
            updater.stop()

        await asyncio.wait_for(
            asyncio.gather(updater.run(), stop_when_drained()), timeout=5.0
        )
        await wait_deliveries(updater)

        assert factory.calls == 1
        assert [p for p, _ in factory.builder.built] == [150.0, 155.0, 160.0]
        assert factory.channel.closes == 1
        assert updater.status == UpdaterStatus.STOPPED
        assert source.closed

    @pytest.mark.asyncio
    async def test_reconnects_after_connect_failure(self) -> None:
        factory = FakeSessionFactory(failures=2)
        source = ScriptedSource([150.0])
        updater = OracleUpdater(make_config(), source, factory, Clock())

        async def stop_after_publish() -> None:
            while not factory.builder.built:
                await asyncio.sleep(0.005)
            updater.stop()

        await asyncio.wait_for(
            asyncio.gather(updater.run(), stop_after_publish()), timeout=5.0
        )
        await wait_deliveries(updater)

        assert factory.calls == 3
        assert factory.builder.built == [(150.0, PriceStatus.VALID)]

    @pytest.mark.asyncio
    async def test_reconnects_after_tick_error(self) -> None:
        """An error during a tick drops the session and reconnects."""
        factory = FakeSessionFactory()

        class FlakySource(ScriptedSource):
            async def observe(self):
                if not self.prices:
                    raise RuntimeError("venue exploded")
                return await super().observe()

        source = FlakySource([150.0])
        updater = OracleUpdater(make_config(), source, factory, Clock())

        async def stop_after_reconnect() -> None:
            while factory.calls < 2:
                await asyncio.sleep(0.005)
            updater.stop()

        await asyncio.wait_for(
            asyncio.gather(updater.run(), stop_after_reconnect()), timeout=5.0
        )
        await wait_deliveries(updater)

        assert factory.calls >= 2
        # Replaced sessions are closed on reconnect, the last one on stop
        assert factory.channel.closes == factory.calls
        assert updater.state.last_price == 150.0
        assert updater.status == UpdaterStatus.STOPPED
        assert source.closed
