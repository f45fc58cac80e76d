"""Bitstamp fetcher.

Endpoint: https://www.bitstamp.net/api/v2/ticker/{base}{quote}/
Rate Limit: High (no key required)
"""

import logging

from .base import BaseFetcher, FetcherError, Quote, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class BitstampFetcher(BaseFetcher):
    """Fetcher for Bitstamp public API.

    No API key required.
    """

    name = "bitstamp"
    BASE_URL = "https://www.bitstamp.net/api/v2"

    async def fetch_quote(self, base: str, quote: str) -> Quote | None:
        """Fetch bid/ask from Bitstamp.

        :param base: Base currency (e.g., "btc", "eth").
        :param quote: Quote currency (e.g., "usd").
        :returns: Current quote or None on failure.
        """
        pair = f"{base.lower()}{quote.lower()}"
        url = f"{self.BASE_URL}/ticker/{pair}/"

        try:
            response = await self._get(url)
            data = response.json()
            return Quote(bid=float(data["bid"]), ask=float(data["ask"]))

        except FetcherError as e:
            logger.warning(f"[bitstamp] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[bitstamp] Failed to parse response for {pair}: {e}")
            return None
