"""Unit tests for UpdatePolicy."""

import pytest

from oracle_updater.src.OracleInstruction import PriceStatus
from oracle_updater.src.UpdatePolicy import (
    NO_PUBLISH,
    OracleState,
    PriceObservation,
    UpdatePolicy,
)

T0 = 1_700_000_000.0


def make_state(
    price: float = 100.0,
    status: PriceStatus = PriceStatus.VALID,
    last_update: float | None = T0,
) -> OracleState:
    return OracleState(last_price=price, last_status=status, last_update=last_update)


class TestPublishRule:
    """Test the freshness floor and the deviation gate."""

    def test_deviation_above_threshold(self) -> None:
        """2% move with a 1% threshold publishes."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0)
        decision = policy.should_publish(
            PriceObservation(102.0, T0 + 1.0), make_state(), T0 + 1.0
        )
        assert decision.publish
        assert decision.price == 102.0
        assert decision.status == PriceStatus.VALID

    def test_deviation_below_threshold(self) -> None:
        """2% move with a 5% threshold does not publish."""
        policy = UpdatePolicy(update_threshold=5.0, update_interval=60.0)
        decision = policy.should_publish(
            PriceObservation(102.0, T0 + 1.0), make_state(), T0 + 1.0
        )
        assert decision == NO_PUBLISH

    def test_deviation_equal_to_threshold(self) -> None:
        """The gate is strict: exactly the threshold does not publish."""
        policy = UpdatePolicy(update_threshold=2.0, update_interval=60.0)
        assert not policy.needs_update(102.0, make_state(), T0 + 1.0)

    def test_downward_deviation(self) -> None:
        """Deviation is absolute."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0)
        assert policy.needs_update(98.0, make_state(), T0 + 1.0)

    def test_freshness_floor(self) -> None:
        """Unchanged price is republished once the interval elapsed."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0)
        state = make_state()
        assert not policy.needs_update(100.0, state, T0 + 59.9)
        assert policy.needs_update(100.0, state, T0 + 60.0)

        decision = policy.should_publish(PriceObservation(100.0, T0 + 60.0), state, T0 + 60.0)
        assert decision.publish
        assert decision.reason == "update interval elapsed"

    def test_first_observation_publishes(self) -> None:
        """Without a baseline, the first observation always publishes."""
        policy = UpdatePolicy(update_threshold=50.0, update_interval=3600.0)
        decision = policy.should_publish(PriceObservation(10.0, T0), OracleState(), T0)
        assert decision.publish
        assert decision.reason == "no baseline"

    def test_zero_baseline_publishes(self) -> None:
        """A zero last price does not divide by zero."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0)
        assert policy.needs_update(5.0, make_state(price=0.0), T0 + 1.0)

    @pytest.mark.parametrize("price", [95.0, 99.5, 100.0, 100.9, 101.1, 150.0])
    @pytest.mark.parametrize("elapsed", [0.0, 30.0, 60.0, 120.0])
    def test_publish_iff_interval_or_deviation(self, price, elapsed) -> None:
        """Publish exactly when the interval elapsed or deviation exceeds threshold."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0)
        expected = elapsed >= 60.0 or abs(price - 100.0) / 100.0 * 100 > 1.0
        assert policy.needs_update(price, make_state(), T0 + elapsed) == expected


class TestStatus:
    """Test status computation."""

    def test_valid_by_default(self) -> None:
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0)
        assert policy.compute_status(PriceObservation(1.0, T0, 0.99, 1.01)) == PriceStatus.VALID

    def test_negative_spread_invalid(self) -> None:
        """bid > ask invalidates the price."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0)
        observation = PriceObservation(1.0, T0, bid=1.02, ask=0.98)
        assert observation.negative_spread
        assert policy.compute_status(observation) == PriceStatus.INVALID

    def test_negative_spread_allowed(self) -> None:
        policy = UpdatePolicy(
            update_threshold=1.0, update_interval=60.0, allow_negative_spread=True
        )
        observation = PriceObservation(1.0, T0, bid=1.02, ask=0.98)
        assert policy.compute_status(observation) == PriceStatus.VALID

    def test_no_book_no_negative_spread(self) -> None:
        """Observations without bid/ask never have a negative spread."""
        assert not PriceObservation(1.0, T0).negative_spread

    def test_below_min_threshold(self) -> None:
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0, min_threshold=0.9)
        assert policy.compute_status(PriceObservation(0.89, T0)) == PriceStatus.INVALID
        assert policy.compute_status(PriceObservation(0.9, T0)) == PriceStatus.VALID

    def test_above_max_threshold(self) -> None:
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0, max_threshold=1.1)
        assert policy.compute_status(PriceObservation(1.11, T0)) == PriceStatus.INVALID
        assert policy.compute_status(PriceObservation(1.1, T0)) == PriceStatus.VALID

    def test_status_carried_in_decision(self) -> None:
        """An out-of-band price is still published, marked invalid."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0, max_threshold=150.0)
        decision = policy.should_publish(
            PriceObservation(200.0, T0 + 1.0), make_state(), T0 + 1.0
        )
        assert decision.publish
        assert decision.status == PriceStatus.INVALID


class TestInactivityRule:
    """Test forced disabling of a stale oracle."""

    def test_fires_after_inactive_duration(self) -> None:
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0, inactive_duration=300.0)
        state = make_state(price=123.0)
        assert not policy.inactivity_triggered(state, T0 + 300.0)

        decision = policy.check_inactivity(state, T0 + 300.1)
        assert decision.publish
        assert decision.price == 123.0
        assert decision.status == PriceStatus.INVALID

    def test_disabled_when_zero(self) -> None:
        """inactive_duration == 0 never fires."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0, inactive_duration=0.0)
        assert policy.check_inactivity(make_state(), T0 + 10**9) == NO_PUBLISH

    def test_not_when_already_invalid(self) -> None:
        """An oracle already marked invalid is not disabled again."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0, inactive_duration=300.0)
        state = make_state(status=PriceStatus.INVALID)
        assert not policy.inactivity_triggered(state, T0 + 1000.0)

    def test_not_before_first_publish(self) -> None:
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0, inactive_duration=300.0)
        assert not policy.inactivity_triggered(OracleState(), T0)

    def test_fires_once(self) -> None:
        """After the forced publish is recorded, the rule no longer fires."""
        policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0, inactive_duration=300.0)
        state = make_state()
        now = T0 + 301.0
        decision = policy.check_inactivity(state, now)
        state.record(decision.price, decision.status, now)
        assert not policy.inactivity_triggered(state, now + 1000.0)


class TestOracleState:
    """Test OracleState bookkeeping."""

    def test_initial(self) -> None:
        state = OracleState()
        assert state.last_price == 0.0
        assert state.last_status == PriceStatus.INVALID
        assert state.last_update is None

    def test_record(self) -> None:
        state = OracleState()
        state.record(1.5, PriceStatus.VALID, T0)
        assert (state.last_price, state.last_status, state.last_update) == (
            1.5,
            PriceStatus.VALID,
            T0,
        )
