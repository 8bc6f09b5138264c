"""HTTP client for the exchange's ticker price endpoint."""

import asyncio
import math
import re
from collections import Counter

import httpx
from pydantic import ValidationError

from pricebar.models.errors import (
    InvalidPrice,
    InvalidResponse,
    InvalidURL,
    NetworkError,
    PriceError,
    ServerError,
)
from pricebar.models.price import PriceQuote, TickerPriceResponse
from pricebar.utils.config import ProxySettings, TickerConfig
from pricebar.utils.logger import get_logger

structured_logger = get_logger("TickerClient")

# ASCII decimal notation with an optional exponent
_DECIMAL_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


class TickerClient:
    """Fetches one symbol's price per call. Never retries."""

    TICKER_PATH = "/ticker/price"

    def __init__(
        self,
        settings: TickerConfig | None = None,
        proxy: ProxySettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            settings: Endpoint and timeouts; defaults to ``TickerConfig()``
            proxy: Proxy to route requests through, if enabled
            transport: Replaces the network stack (used with ``httpx.MockTransport``)
        """
        self.settings = settings or TickerConfig()
        self.proxy = proxy or ProxySettings()
        self._transport = transport
        self._client = self._build_client(self.proxy, self.settings.request_timeout)
        self._leases: Counter = Counter()
        self._retired: list[httpx.AsyncClient] = []

    @property
    def ticker_url(self) -> str:
        return f"{self.settings.base_url.rstrip('/')}{self.TICKER_PATH}"

    def _build_client(self, proxy: ProxySettings, timeout: float) -> httpx.AsyncClient:
        kwargs = {"timeout": httpx.Timeout(timeout)}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        elif proxy.url:
            kwargs["proxy"] = proxy.url
        return httpx.AsyncClient(**kwargs)

    def configure_proxy(self, proxy: ProxySettings) -> None:
        """
        Route subsequent requests through ``proxy``.

        Requests already in flight finish on the previous client, which is
        closed once they are done.
        """
        old_client = self._client
        self.proxy = proxy
        self._client = self._build_client(proxy, self.settings.request_timeout)
        self._retired.append(old_client)
        structured_logger.info(
            "Ticker transport reconfigured",
            context={"proxy": proxy.describe()},
        )

    async def _close_idle_retired(self) -> None:
        idle = [client for client in self._retired if not self._leases[client]]
        for client in idle:
            self._retired.remove(client)
            self._leases.pop(client, None)
            await client.aclose()

    async def _request(
        self,
        client: httpx.AsyncClient,
        symbol: str,
        resource_timeout: float,
    ) -> PriceQuote:
        if not symbol or not symbol.strip():
            raise InvalidURL(f"{self.ticker_url}?symbol=")
        symbol = symbol.strip().upper()

        try:
            response = await asyncio.wait_for(
                client.get(self.ticker_url, params={"symbol": symbol}),
                timeout=resource_timeout,
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise InvalidURL(self.ticker_url) from e
        except (httpx.TransportError, asyncio.TimeoutError) as e:
            raise NetworkError(e) from e

        if response.status_code != 200:
            raise ServerError(response.status_code)

        try:
            body = TickerPriceResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise InvalidResponse(f"{e.error_count()} validation error(s)") from e

        if not _DECIMAL_PATTERN.fullmatch(body.price):
            raise InvalidPrice(body.price)
        price = float(body.price)
        if not math.isfinite(price):
            raise InvalidPrice(body.price)

        return PriceQuote(symbol=symbol, price=price)

    async def fetch(self, symbol: str) -> PriceQuote:
        """
        Fetch the latest price for an API pair string such as ``BTCUSDT``.

        Args:
            symbol: API pair string

        Returns:
            PriceQuote stamped with the current time

        Raises:
            InvalidURL: symbol is empty or the base URL is malformed
            NetworkError: DNS, connect, TLS, proxy or timeout failure
            ServerError: the endpoint returned a non-200 status
            InvalidResponse: the body is not ``{"symbol": ..., "price": ...}``
            InvalidPrice: ``price`` is not a finite decimal
        """
        await self._close_idle_retired()

        client = self._client
        self._leases[client] += 1
        try:
            return await self._request(client, symbol, self.settings.resource_timeout)
        finally:
            self._leases[client] -= 1
            if client is not self._client and not self._leases[client]:
                await self._close_idle_retired()

    async def check_connectivity(self, proxy: ProxySettings | None = None) -> bool:
        """
        Probe the endpoint once, optionally through candidate proxy settings.

        Used to validate proxy settings before they are saved. Returns True
        without a request when the proxy being checked is disabled.
        """
        candidate = proxy or self.proxy
        if not candidate.enabled:
            return True

        client = self._build_client(candidate, self.settings.probe_request_timeout)
        try:
            await self._request(client, self.settings.probe_symbol, self.settings.probe_resource_timeout)
        except PriceError as e:
            structured_logger.warning(
                "Connectivity check failed",
                context={"proxy": candidate.describe(), "error": str(e)},
            )
            return False
        finally:
            await client.aclose()

        structured_logger.info("Connectivity check passed", context={"proxy": candidate.describe()})
        return True

    async def aclose(self) -> None:
        """Close the current client and any retired ones."""
        for client in self._retired:
            await client.aclose()
        self._retired.clear()
        self._leases.clear()
        await self._client.aclose()
