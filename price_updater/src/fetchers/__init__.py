"""
Price sources for the feed updater.

Each fetcher performs one HTTP query for one market symbol and returns a
PriceQuote, raising SourceUnavailable when the endpoint cannot be used.

Usage:
    from price_updater.src.fetchers import get_fetcher, get_available_fetchers

    available = get_available_fetchers()
    # ['binance', 'coinbase']

    fetcher = get_fetcher("binance", "DOGEUSDT")
    quote = await fetcher.fetch_price()
"""

from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    PriceQuote,
    SourceHTTPError,
    SourceUnavailable,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Import all fetcher implementations to trigger registration
from .binance import BinanceFetcher
from .coinbase import CoinbaseFetcher

__all__ = [
    "BaseFetcher",
    "PriceQuote",
    "SourceUnavailable",
    "SourceHTTPError",
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "FETCHER_REGISTRY",
    "BinanceFetcher",
    "CoinbaseFetcher",
]
