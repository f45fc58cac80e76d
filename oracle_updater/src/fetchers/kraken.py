"""Kraken fetcher.

Endpoint: https://api.kraken.com/0/public/Ticker?pair={BASE}{QUOTE}
Rate Limit: High (no key required)
"""

import logging

from .base import BaseFetcher, FetcherError, Quote, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class KrakenFetcher(BaseFetcher):
    """Fetcher for Kraken public API.

    No API key required.
    """

    name = "kraken"
    BASE_URL = "https://api.kraken.com/0/public"

    # Kraken uses non-standard ticker symbols
    SYMBOL_MAP = {
        "btc": "XBT",  # Kraken uses XBT instead of BTC
    }

    async def fetch_quote(self, base: str, quote: str) -> Quote | None:
        """Fetch bid/ask from Kraken.

        :param base: Base currency (e.g., "btc", "eth").
        :param quote: Quote currency (e.g., "usd").
        :returns: Current quote or None on failure.
        """
        kraken_base = self.SYMBOL_MAP.get(base.lower(), base.upper())
        pair = f"{kraken_base}{quote.upper()}"

        url = f"{self.BASE_URL}/Ticker"

        try:
            response = await self._get(url, params={"pair": pair})
            data = response.json()

            if data.get("error"):
                logger.warning(f"[kraken] API error for {pair}: {data['error']}")
                return None

            result = data.get("result", {})
            if not result:
                logger.warning(f"[kraken] No result for {pair}")
                return None

            # Result key may differ from the request (e.g. XXBTZUSD)
            pair_data = list(result.values())[0]

            # 'b' and 'a' are [price, whole lot volume, lot volume]
            return Quote(bid=float(pair_data["b"][0]), ask=float(pair_data["a"][0]))

        except FetcherError as e:
            logger.warning(f"[kraken] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError, IndexError) as e:
            logger.warning(f"[kraken] Failed to parse response for {pair}: {e}")
            return None
