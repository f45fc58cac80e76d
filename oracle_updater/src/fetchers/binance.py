"""Binance fetcher.

Binance lists most assets against USDT rather than USD. For /usd pairs the
fetcher uses the direct USD book when it exists and otherwise the USDT book,
converted with the USDT/USD mid in the same request. Conversion is refused
when USDT deviates more than 2% from 1.0.

Endpoint: https://api.binance.com/api/v3/ticker/bookTicker
Rate Limit: High (no key required for public endpoints)
"""

import json
import logging

from .base import BaseFetcher, FetcherError, Quote, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class BinanceFetcher(BaseFetcher):
    """Binance book ticker fetcher with USDT fallback for USD quotes."""

    name = "binance"
    BASE_URL = "https://api.binance.com/api/v3"

    # USDT depeg threshold (2%)
    USDT_DEPEG_THRESHOLD = 0.02

    async def fetch_quote(self, base: str, quote: str) -> Quote | None:
        """Fetch bid/ask from Binance.

        :param base: Base currency (e.g., "btc", "sol").
        :param quote: Quote currency (e.g., "usd", "usdt").
        :returns: Current quote or None on failure.
        """
        base_u = base.upper()
        quote_u = quote.upper()
        direct = f"{base_u}{quote_u}"

        if quote_u != "USD":
            books = await self._fetch_books([direct])
            return books.get(direct)

        usdt = f"{base_u}USDT"
        books = await self._fetch_books([direct, usdt, "USDTUSD"])
        if books.get(direct) is not None:
            return books[direct]

        usdt_book = books.get(usdt)
        usdt_rate = books.get("USDTUSD")
        if usdt_book is None or usdt_rate is None:
            logger.warning(f"[binance] No {direct} or {usdt}/USDTUSD book")
            return None

        if self._is_depeg(usdt_rate.mid):
            logger.warning(
                f"[binance] USDT depeg detected: rate={usdt_rate.mid:.4f}. "
                f"Not converting {usdt}."
            )
            return None

        return Quote(bid=usdt_book.bid * usdt_rate.mid, ask=usdt_book.ask * usdt_rate.mid)

    def _is_depeg(self, rate: float) -> bool:
        """Check if stablecoin has depegged (>2% from 1.0).

        :param rate: Stablecoin/USD rate.
        :returns: True if depegged beyond threshold.
        """
        return abs(rate - 1.0) > self.USDT_DEPEG_THRESHOLD

    async def _fetch_books(self, symbols: list[str]) -> dict[str, Quote | None]:
        """Fetch book tickers for multiple symbols in a single API call.

        Binance rejects the whole request when one symbol is unknown, so a
        failed multi-symbol request is retried symbol by symbol.

        :param symbols: List of Binance symbols.
        :returns: Dict mapping symbol to quote (or None if failed).
        """
        url = f"{self.BASE_URL}/ticker/bookTicker"
        result: dict[str, Quote | None] = {s: None for s in symbols}
        try:
            if len(symbols) == 1:
                response = await self._get(url, params={"symbol": symbols[0]})
                items = [response.json()]
            else:
                response = await self._get(
                    url, params={"symbols": json.dumps(symbols, separators=(",", ":"))}
                )
                items = response.json()

            for item in items:
                if item.get("symbol") in result:
                    result[item["symbol"]] = Quote(
                        bid=float(item["bidPrice"]), ask=float(item["askPrice"])
                    )
            return result
        except FetcherError as e:
            if len(symbols) > 1:
                logger.debug(f"[binance] Batch book request failed ({e}), retrying singly")
                for symbol in symbols:
                    result.update(await self._fetch_books([symbol]))
                return result
            logger.debug(f"[binance] Failed to fetch {symbols[0]}: {e}")
            return result
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"[binance] Failed to parse book response: {e}")
            return result
