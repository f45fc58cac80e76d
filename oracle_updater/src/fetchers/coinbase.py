"""Coinbase Exchange fetcher.

Endpoint: https://api.exchange.coinbase.com/products/{BASE}-{QUOTE}/ticker
Rate Limit: High (no key required)
"""

import logging

from .base import BaseFetcher, FetcherError, Quote, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class CoinbaseFetcher(BaseFetcher):
    """Fetcher for Coinbase Exchange API.

    The public ticker reports best bid and ask.
    No API key required.
    """

    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"

    async def fetch_quote(self, base: str, quote: str) -> Quote | None:
        """Fetch bid/ask from Coinbase Exchange.

        :param base: Base currency (e.g., "btc", "eth", "sol").
        :param quote: Quote currency (e.g., "usd").
        :returns: Current quote or None on failure.
        """
        symbol = f"{base.upper()}-{quote.upper()}"
        url = f"{self.BASE_URL}/products/{symbol}/ticker"

        try:
            response = await self._get(url)
            data = response.json()

            if "bid" not in data or "ask" not in data:
                logger.warning(f"[coinbase] No bid/ask in response for {symbol}: {data}")
                return None

            return Quote(bid=float(data["bid"]), ask=float(data["ask"]))

        except FetcherError as e:
            logger.warning(f"[coinbase] Failed to fetch {symbol}: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[coinbase] Failed to parse response for {symbol}: {e}")
            return None
