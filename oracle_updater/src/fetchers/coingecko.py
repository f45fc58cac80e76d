"""CoinGecko fetcher.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={id}&vs_currencies={quote}
Rate Limit: 30 calls/min (free), higher with API key

CoinGecko reports a single reference price, returned as a quote with
identical bid and ask.
"""

import logging

from .base import BaseFetcher, FetcherError, Quote, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class CoinGeckoFetcher(BaseFetcher):
    """Fetcher for CoinGecko API.

    API tiers:
        - Free: api.coingecko.com (no key, 30 calls/min)
        - Demo: api.coingecko.com + x-cg-demo-api-key header
        - Pro: pro-api.coingecko.com + x-cg-pro-api-key header

    To use a demo key, prefix with "demo:": API_KEY_COINGECKO=demo:CG-xxxxx
    Pro keys need no prefix: API_KEY_COINGECKO=xxxxx
    """

    name = "coingecko"
    BASE_URL_FREE = "https://api.coingecko.com/api/v3"
    BASE_URL_PRO = "https://pro-api.coingecko.com/api/v3"

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        """Initialize with optional demo: prefix handling."""
        self._is_demo = False
        if api_key and api_key.lower().startswith("demo:"):
            self._is_demo = True
            api_key = api_key[5:]  # Strip "demo:" prefix
        super().__init__(api_key=api_key, timeout=timeout)

    @property
    def base_url(self) -> str:
        """Return appropriate base URL based on API key type."""
        if not self.has_api_key:
            return self.BASE_URL_FREE
        return self.BASE_URL_FREE if self._is_demo else self.BASE_URL_PRO

    @property
    def api_header(self) -> tuple[str, str] | None:
        """Return appropriate header name and value for API key."""
        if not self.api_key:
            return None
        header_name = "x-cg-demo-api-key" if self._is_demo else "x-cg-pro-api-key"
        return (header_name, self.api_key)

    # Map common symbols to CoinGecko IDs
    COIN_IDS = {
        "btc": "bitcoin",
        "eth": "ethereum",
        "sol": "solana",
        "msol": "msol",
        "usdt": "tether",
        "usdc": "usd-coin",
        "rose": "oasis-network",
        "avax": "avalanche-2",
        "dot": "polkadot",
        "atom": "cosmos",
        "link": "chainlink",
    }

    async def fetch_quote(self, base: str, quote: str) -> Quote | None:
        """Fetch the reference price from CoinGecko.

        :param base: Base currency (e.g., "btc", "sol") or a CoinGecko ID.
        :param quote: Quote currency (e.g., "usd").
        :returns: Quote with bid == ask, or None on failure.
        """
        coin_id = self.COIN_IDS.get(base.lower(), base.lower())
        quote_lower = quote.lower()
        url = f"{self.base_url}/simple/price"

        headers = {}
        if self.api_header:
            header_name, header_value = self.api_header
            headers[header_name] = header_value

        try:
            response = await self._get(
                url,
                params={"ids": coin_id, "vs_currencies": quote_lower},
                headers=headers if headers else None,
            )
            data = response.json()

            if coin_id not in data:
                logger.warning(f"[coingecko] Coin {coin_id} not in response: {data}")
                return None

            if quote_lower not in data[coin_id]:
                logger.warning(
                    f"[coingecko] Quote {quote_lower} not available for {coin_id}"
                )
                return None

            return Quote.single(float(data[coin_id][quote_lower]))

        except FetcherError as e:
            logger.warning(f"[coingecko] Failed to fetch {base}/{quote}: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[coingecko] Failed to parse response: {e}")
            return None
