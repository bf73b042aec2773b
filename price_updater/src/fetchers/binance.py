"""Binance spot ticker fetcher.

Endpoint: https://api.binance.com/api/v3/ticker/price?symbol={SYMBOL}
Rate Limit: High (no key required for public endpoints)
Symbol format: concatenated, upper case (e.g., "DOGEUSDT")
"""

import logging

from .base import BaseFetcher, PriceQuote, SourceUnavailable, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class BinanceFetcher(BaseFetcher):
    """Fetcher for the Binance public ticker price endpoint."""

    name = "binance"
    BASE_URL = "https://api.binance.com/api/v3"

    async def fetch_price(self) -> PriceQuote:
        """Fetch the last traded price from Binance.

        :returns: Current price quote.
        :raises SourceUnavailable: On request failure or malformed response.
        """
        symbol = self.symbol.upper()
        url = f"{self.BASE_URL}/ticker/price"

        response = await self._get(url, params={"symbol": symbol})
        data = self._json(response)

        if not isinstance(data, dict) or "price" not in data:
            raise SourceUnavailable(f"[binance] No price in response for {symbol}: {data}")

        quote = self._quote(data["price"])
        logger.debug(f"[binance] {symbol} = {quote.value}")
        return quote
