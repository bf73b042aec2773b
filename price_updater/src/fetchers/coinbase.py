"""Coinbase Exchange fetcher.

Endpoint: https://api.exchange.coinbase.com/products/{BASE}-{QUOTE}/ticker
Rate Limit: High (no key required)
Symbol format: dash separated (e.g., "DOGE-USD")
"""

import logging

from .base import BaseFetcher, PriceQuote, SourceUnavailable, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class CoinbaseFetcher(BaseFetcher):
    """Fetcher for the Coinbase Exchange product ticker.

    No API key required for the public ticker endpoint.
    """

    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"

    async def fetch_price(self) -> PriceQuote:
        """Fetch the last traded price from Coinbase Exchange.

        :returns: Current price quote.
        :raises SourceUnavailable: On request failure or malformed response.
        """
        symbol = self.symbol.upper()
        url = f"{self.BASE_URL}/products/{symbol}/ticker"

        response = await self._get(url)
        data = self._json(response)

        if not isinstance(data, dict) or "price" not in data:
            raise SourceUnavailable(f"[coinbase] No price in response for {symbol}: {data}")

        quote = self._quote(data["price"])
        logger.debug(f"[coinbase] {symbol} = {quote.value}")
        return quote
