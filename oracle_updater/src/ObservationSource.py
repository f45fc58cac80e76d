"""ObservationSource: Produces the price observed off-chain on each tick."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .UpdatePolicy import PriceObservation

if TYPE_CHECKING:
    from .fetchers import BaseFetcher

logger = logging.getLogger(__name__)


class ObservationSource(ABC):
    """Abstract source of price observations."""

    @abstractmethod
    async def observe(self) -> PriceObservation | None:
        """Observe the current price.

        :returns: Observation, or None when no price is available this tick.
        """
        pass

    async def close(self) -> None:
        """Release resources held by the source."""


class VenueObservationSource(ObservationSource):
    """Observes the mid-price of a pair on a single venue.

    :ivar fetcher: Venue fetcher.
    :ivar base: Base currency symbol.
    :ivar quote: Quote currency symbol.
    :ivar invert: Publish ``1 / mid`` instead of ``mid``.
    """

    def __init__(
        self, fetcher: BaseFetcher, base: str, quote: str, invert: bool = False
    ) -> None:
        """Initialize the source.

        :param fetcher: Venue fetcher used for quotes.
        :param base: Base currency symbol (e.g., "sol").
        :param quote: Quote currency symbol (e.g., "usd").
        :param invert: Publish the inverse rate (default: False).
        """
        self.fetcher = fetcher
        self.base = base.lower()
        self.quote = quote.lower()
        self.invert = invert

    def __str__(self) -> str:
        pair = f"{self.quote}/{self.base}" if self.invert else f"{self.base}/{self.quote}"
        return f"{self.fetcher.name}:{pair}"

    async def observe(self) -> PriceObservation | None:
        """Fetch a quote and derive the observed price."""
        quote = await self.fetcher.fetch_quote(self.base, self.quote)
        if quote is None:
            logger.warning(f"[{self}] No quote available")
            return None

        mid = quote.mid
        logger.debug(f"[{self}] bid {quote.bid:.6f}, ask {quote.ask:.6f}, mark {mid:.6f}")

        if self.invert:
            # Inverting swaps the book sides.
            return PriceObservation(
                value=1.0 / mid if mid else 0.0,
                observed_at=time.time(),
                bid=1.0 / quote.ask if quote.ask else None,
                ask=1.0 / quote.bid if quote.bid else None,
            )
        return PriceObservation(
            value=mid, observed_at=time.time(), bid=quote.bid, ask=quote.ask
        )

    async def close(self) -> None:
        """Close the shared HTTP client of the fetchers."""
        await type(self.fetcher).close_shared_client()
