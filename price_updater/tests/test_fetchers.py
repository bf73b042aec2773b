"""Unit tests for the HTTP price fetchers."""

from decimal import Decimal
from typing import Callable

import httpx
import pytest

from price_updater.src.fetchers import (
    BaseFetcher,
    BinanceFetcher,
    CoinbaseFetcher,
    SourceHTTPError,
    SourceUnavailable,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def transport(monkeypatch: pytest.MonkeyPatch) -> Callable[[Handler], list[httpx.Request]]:
    """Route the shared fetcher client through an httpx.MockTransport.

    Returns an installer taking a handler and returning the list of
    requests seen by it.
    """

    def install(handler: Handler) -> list[httpx.Request]:
        seen: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(record))
        monkeypatch.setattr(BaseFetcher, "_shared_client", client)
        return seen

    return install


class TestRegistry:
    """Test fetcher registration and lookup."""

    def test_available_fetchers(self) -> None:
        """Both built-in sources are registered."""
        assert get_available_fetchers() == ["binance", "coinbase"]

    def test_get_fetcher(self) -> None:
        """get_fetcher builds a configured instance."""
        fetcher = get_fetcher("binance", "DOGEUSDT", timeout=3.0)
        assert isinstance(fetcher, BinanceFetcher)
        assert fetcher.symbol == "DOGEUSDT"
        assert fetcher.timeout == 3.0

    def test_default_timeout(self) -> None:
        """Timeout falls back to DEFAULT_TIMEOUT."""
        assert get_fetcher("coinbase", "DOGE-USD").timeout == BaseFetcher.DEFAULT_TIMEOUT

    def test_unknown_fetcher(self) -> None:
        """Unknown names raise ValueError listing available sources."""
        with pytest.raises(ValueError, match="Unknown fetcher 'nope'"):
            get_fetcher("nope", "X")

    def test_register_without_name(self) -> None:
        """Fetchers must define a name."""

        class Nameless(BaseFetcher):
            async def fetch_price(self):
                raise NotImplementedError

        with pytest.raises(ValueError, match="must define a 'name'"):
            register_fetcher(Nameless)


class TestBinanceFetcher:
    """Test the Binance ticker fetcher."""

    @pytest.mark.asyncio
    async def test_fetch_price(self, transport) -> None:
        """Price string is parsed into a Decimal without float rounding."""
        seen = transport(
            lambda request: httpx.Response(
                200, json={"symbol": "DOGEUSDT", "price": "0.18234000"}
            )
        )

        quote = await BinanceFetcher("dogeusdt").fetch_price()

        assert quote.value == Decimal("0.18234")
        assert quote.observed_at > 0
        assert seen[0].url.path == "/api/v3/ticker/price"
        assert seen[0].url.params["symbol"] == "DOGEUSDT"

    @pytest.mark.asyncio
    async def test_http_error(self, transport) -> None:
        """Non-2xx responses raise SourceHTTPError."""
        transport(lambda request: httpx.Response(429, text="Too many requests"))

        with pytest.raises(SourceHTTPError) as exc_info:
            await BinanceFetcher("DOGEUSDT").fetch_price()

        assert exc_info.value.status_code == 429
        assert isinstance(exc_info.value, SourceUnavailable)

    @pytest.mark.asyncio
    async def test_missing_price(self, transport) -> None:
        """A body without a price raises SourceUnavailable."""
        transport(lambda request: httpx.Response(200, json={"code": -1121, "msg": "Invalid symbol."}))

        with pytest.raises(SourceUnavailable, match="No price"):
            await BinanceFetcher("NOPE").fetch_price()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["abc", "0", "-1", None])
    async def test_invalid_price(self, transport, raw) -> None:
        """Unparseable or non-positive prices raise SourceUnavailable."""
        transport(lambda request: httpx.Response(200, json={"price": raw}))

        with pytest.raises(SourceUnavailable):
            await BinanceFetcher("DOGEUSDT").fetch_price()

    @pytest.mark.asyncio
    async def test_invalid_json(self, transport) -> None:
        """A non-JSON body raises SourceUnavailable."""
        transport(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(SourceUnavailable, match="Invalid JSON"):
            await BinanceFetcher("DOGEUSDT").fetch_price()

    @pytest.mark.asyncio
    async def test_network_error(self, transport) -> None:
        """Connection errors raise SourceUnavailable."""

        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport(fail)

        with pytest.raises(SourceUnavailable, match="Request failed"):
            await BinanceFetcher("DOGEUSDT").fetch_price()

    @pytest.mark.asyncio
    async def test_timeout(self, transport) -> None:
        """Timeouts raise SourceUnavailable."""

        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        transport(slow)

        with pytest.raises(SourceUnavailable, match="Request timeout"):
            await BinanceFetcher("DOGEUSDT").fetch_price()


class TestCoinbaseFetcher:
    """Test the Coinbase ticker fetcher."""

    @pytest.mark.asyncio
    async def test_fetch_price(self, transport) -> None:
        """Product ticker price is parsed."""
        seen = transport(
            lambda request: httpx.Response(200, json={"price": "0.1823", "volume": "1"})
        )

        quote = await CoinbaseFetcher("doge-usd").fetch_price()

        assert quote.value == Decimal("0.1823")
        assert seen[0].url.path == "/products/DOGE-USD/ticker"

    @pytest.mark.asyncio
    async def test_not_found(self, transport) -> None:
        """Unknown products raise SourceHTTPError."""
        transport(lambda request: httpx.Response(404, json={"message": "NotFound"}))

        with pytest.raises(SourceHTTPError):
            await CoinbaseFetcher("NOPE-USD").fetch_price()


class TestSharedClient:
    """Test shared client lifecycle."""

    @pytest.mark.asyncio
    async def test_close_and_recreate(self) -> None:
        """Closing drops the client; the next call creates a fresh one."""
        first = BaseFetcher.get_shared_client()
        await BaseFetcher.close_shared_client()

        assert first.is_closed
        second = BaseFetcher.get_shared_client()
        assert second is not first
        await BaseFetcher.close_shared_client()
