"""UpdatePolicy: Decides when an observed price is written on-chain.

Two independent rules are evaluated on every tick:

- The publish rule: publish when the freshness floor (``update_interval``)
  has been reached, or when the observed price deviates from the last
  published one by more than ``update_threshold`` percent.
- The inactivity rule: when nothing was published for ``inactive_duration``
  seconds while the oracle is still marked valid, republish the last known
  price with status forced to invalid.

The status of a published price is computed separately from the publish
decision: it is invalid on a disallowed negative spread (bid > ask) or when
the price leaves the ``[min_threshold, max_threshold]`` band.

.. code-block:: python

    >>> policy = UpdatePolicy(update_threshold=1.0, update_interval=60.0)
    >>> state = OracleState(last_price=100.0, last_status=PriceStatus.VALID,
    ...                     last_update=1000.0)
    >>> policy.should_publish(PriceObservation(102.0, 1001.0), state, 1001.0).publish
    True
"""

from __future__ import annotations

from dataclasses import dataclass

from .OracleInstruction import PriceStatus


@dataclass
class OracleState:
    """Locally tracked view of the oracle account.

    Updated when an update transaction is submitted, not when it is
    confirmed. Lost on restart.

    :ivar last_price: Last submitted price (0 before the first publish).
    :ivar last_status: Last submitted status.
    :ivar last_update: Unix timestamp of the last submission, None if never.
    """

    last_price: float = 0.0
    last_status: PriceStatus = PriceStatus.INVALID
    last_update: float | None = None

    def record(self, price: float, status: PriceStatus, now: float) -> None:
        """Record a submitted update."""
        self.last_price = price
        self.last_status = status
        self.last_update = now


@dataclass(frozen=True)
class PriceObservation:
    """A price observed off-chain during one tick.

    :ivar value: Price to publish (mid-price, possibly inverted).
    :ivar observed_at: Unix timestamp of the observation.
    :ivar bid: Best bid, if the venue reports one.
    :ivar ask: Best ask, if the venue reports one.
    """

    value: float
    observed_at: float
    bid: float | None = None
    ask: float | None = None

    @property
    def negative_spread(self) -> bool:
        """True when the venue reports a crossed book (bid > ask)."""
        return self.bid is not None and self.ask is not None and self.bid > self.ask


@dataclass(frozen=True)
class PublishDecision:
    """Outcome of the update policy for one tick.

    :ivar publish: Whether an update transaction should be sent.
    :ivar price: Price to publish.
    :ivar status: Status to publish.
    :ivar reason: Short description for logging.
    """

    publish: bool
    price: float = 0.0
    status: PriceStatus = PriceStatus.INVALID
    reason: str = ""


NO_PUBLISH = PublishDecision(publish=False)


class UpdatePolicy:
    """Stateless update decision rules.

    :ivar update_threshold: Deviation (percent) that triggers a publish.
    :ivar update_interval: Max seconds between publishes (freshness floor).
    :ivar inactive_duration: Seconds without publish before the oracle is
        disabled; 0 disables the rule.
    :ivar min_threshold: Lowest valid price, None for no bound.
    :ivar max_threshold: Highest valid price, None for no bound.
    :ivar allow_negative_spread: Keep the status valid on bid > ask.
    """

    def __init__(
        self,
        update_threshold: float,
        update_interval: float,
        inactive_duration: float = 0.0,
        min_threshold: float | None = None,
        max_threshold: float | None = None,
        allow_negative_spread: bool = False,
    ) -> None:
        self.update_threshold = update_threshold
        self.update_interval = update_interval
        self.inactive_duration = inactive_duration
        self.min_threshold = min_threshold
        self.max_threshold = max_threshold
        self.allow_negative_spread = allow_negative_spread

    @classmethod
    def from_config(cls, config) -> UpdatePolicy:
        """Build the policy from an :class:`OracleConfig`."""
        return cls(
            update_threshold=config.update_threshold,
            update_interval=config.update_interval,
            inactive_duration=config.inactive_duration,
            min_threshold=config.min_threshold,
            max_threshold=config.max_threshold,
            allow_negative_spread=config.allow_negative_spread,
        )

    def deviation_percent(self, price: float, last_price: float) -> float:
        """Relative change of ``price`` against ``last_price`` in percent."""
        return abs(price - last_price) / abs(last_price) * 100

    def needs_update(self, price: float, state: OracleState, now: float) -> bool:
        """Check the freshness floor and the deviation gate.

        Without a baseline (nothing published yet, or a zero last price)
        an update is always needed.
        """
        if state.last_update is None or not state.last_price:
            return True
        if now >= state.last_update + self.update_interval:
            return True
        return self.deviation_percent(price, state.last_price) > self.update_threshold

    def compute_status(self, observation: PriceObservation) -> PriceStatus:
        """Compute the status of an observed price."""
        if observation.negative_spread and not self.allow_negative_spread:
            return PriceStatus.INVALID
        if self.min_threshold is not None and observation.value < self.min_threshold:
            return PriceStatus.INVALID
        if self.max_threshold is not None and observation.value > self.max_threshold:
            return PriceStatus.INVALID
        return PriceStatus.VALID

    def should_publish(
        self, observation: PriceObservation, state: OracleState, now: float
    ) -> PublishDecision:
        """Apply the publish rule to a fresh observation.

        :param observation: Price observed this tick.
        :param state: Current oracle state.
        :param now: Current Unix timestamp.
        :returns: Decision carrying the price and status to publish.
        """
        if not self.needs_update(observation.value, state, now):
            return NO_PUBLISH

        if state.last_update is None or not state.last_price:
            reason = "no baseline"
        elif now >= state.last_update + self.update_interval:
            reason = "update interval elapsed"
        else:
            deviation = self.deviation_percent(observation.value, state.last_price)
            reason = f"deviation {deviation:.4f}%"

        return PublishDecision(
            publish=True,
            price=observation.value,
            status=self.compute_status(observation),
            reason=reason,
        )

    def inactivity_triggered(self, state: OracleState, now: float) -> bool:
        """Check whether the oracle must be disabled for staleness."""
        if not self.inactive_duration or state.last_update is None:
            return False
        return (
            now > state.last_update + self.inactive_duration
            and state.last_status == PriceStatus.VALID
        )

    def check_inactivity(self, state: OracleState, now: float) -> PublishDecision:
        """Apply the inactivity rule.

        The last known price is republished with an invalid status; consumers
        are expected to honour the status flag.
        """
        if not self.inactivity_triggered(state, now):
            return NO_PUBLISH
        return PublishDecision(
            publish=True,
            price=state.last_price,
            status=PriceStatus.INVALID,
            reason=f"no update for {self.inactive_duration}s",
        )
