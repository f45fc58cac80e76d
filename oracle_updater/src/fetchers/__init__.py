"""
Venue fetchers for observing bid/ask quotes.

This module provides a unified interface for fetching the top of book from
exchanges and reference-price APIs.

Usage:
    from oracle_updater.src.fetchers import get_fetcher, get_available_fetchers

    # Get list of available fetchers
    available = get_available_fetchers()
    # ['binance', 'bitstamp', 'coinbase', 'coingecko', 'kraken']

    # Create a fetcher instance
    fetcher = get_fetcher("coinbase")
    quote = await fetcher.fetch_quote("sol", "usd")
"""

# Import base classes and utilities
from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    FetcherError,
    FetcherHTTPError,
    Quote,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Import all fetcher implementations to trigger registration
from .binance import BinanceFetcher
from .bitstamp import BitstampFetcher
from .coinbase import CoinbaseFetcher
from .coingecko import CoinGeckoFetcher
from .kraken import KrakenFetcher

__all__ = [
    # Base classes
    "BaseFetcher",
    "FetcherError",
    "FetcherHTTPError",
    "Quote",
    # Registry functions
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "FETCHER_REGISTRY",
    # Fetcher implementations
    "BinanceFetcher",
    "BitstampFetcher",
    "CoinbaseFetcher",
    "CoinGeckoFetcher",
    "KrakenFetcher",
]
