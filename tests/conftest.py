"""Pytest configuration and shared test doubles."""

import asyncio

import httpx
import pytest

from pricebar.models.errors import ServerError
from pricebar.models.price import PriceQuote
from pricebar.services.ticker_client import TickerClient
from pricebar.utils.config import ProxySettings, TickerConfig

STUB_BASE_URL = "https://stub.exchange.test/api/v3"


def make_ticker_client(handler, **settings) -> TickerClient:
    """TickerClient whose requests are answered by ``handler`` via httpx.MockTransport."""
    return TickerClient(
        TickerConfig(base_url=STUB_BASE_URL, **settings),
        transport=httpx.MockTransport(handler),
    )


async def settle(rounds: int = 20) -> None:
    """Let spawned tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class VirtualSleep:
    """Records backoff delays and advances virtual time instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []
        self.elapsed = 0.0

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.elapsed += seconds
        await asyncio.sleep(0)


class FakeTickerClient:
    """
    Scripted stand-in for TickerClient.

    ``outcomes`` maps an API symbol to a list of prices or exceptions that
    successive calls return or raise; the last entry repeats. Symbols with
    no script fail with ``ServerError(400)``.
    """

    def __init__(self, outcomes=None, latency=None, clock=None):
        self.outcomes = {symbol: list(script) for symbol, script in (outcomes or {}).items()}
        self.latency = latency or {}
        self.clock = clock
        self.calls: list[str] = []
        self.call_times: list[float] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.proxy = ProxySettings()
        self.proxy_changes: list[ProxySettings] = []

    def hold(self, symbol: str) -> asyncio.Event:
        """Block the next call for ``symbol`` until the returned event is set."""
        gate = asyncio.Event()
        self.gates[symbol] = gate
        return gate

    def configure_proxy(self, proxy: ProxySettings) -> None:
        self.proxy = proxy
        self.proxy_changes.append(proxy)

    async def fetch(self, symbol: str) -> PriceQuote:
        self.calls.append(symbol)
        if self.clock is not None:
            self.call_times.append(self.clock.elapsed)

        gate = self.gates.pop(symbol, None)
        if gate is not None:
            await gate.wait()
        if symbol in self.latency:
            await asyncio.sleep(self.latency[symbol])

        script = self.outcomes.get(symbol)
        if not script:
            raise ServerError(400)
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return PriceQuote(symbol=symbol, price=outcome)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def virtual_sleep():
    return VirtualSleep()
