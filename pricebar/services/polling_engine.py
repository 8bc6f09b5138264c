"""Polling engine that keeps the active symbol's price fresh."""

import asyncio
import dataclasses
import time
from typing import Awaitable, Callable, Coroutine, Iterable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pricebar.models.errors import NetworkError, PriceError
from pricebar.models.price import FetchResult, FetchState, PriceQuote, RefreshInterval
from pricebar.models.symbol import BuiltinSymbol, Symbol, available_symbols
from pricebar.services.price_cache import PriceCache
from pricebar.services.settings_store import SettingField, SettingsStore
from pricebar.services.ticker_client import TickerClient
from pricebar.utils.config import Config
from pricebar.utils.logger import get_logger
from pricebar.utils.metrics import FetchMetrics
from pricebar.utils.operation_context import begin_operation, current_operation, end_operation

structured_logger = get_logger("PollingEngine")

StateListener = Callable[[FetchState], None]


class PollingEngine:
    """
    Drives recurring fetches for the active symbol and exposes their state.

    All state mutations happen on the event loop that called ``start()``, so
    the check that a finished fetch still targets the active symbol cannot
    interleave with a symbol switch.
    """

    JOB_ID = "active_symbol_poll"

    def __init__(
        self,
        client: TickerClient,
        cache: PriceCache,
        active_symbol: Symbol = BuiltinSymbol.BTC,
        refresh_interval: RefreshInterval = RefreshInterval.THIRTY_SECONDS,
        max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the engine.

        Args:
            client: Ticker client used for every request
            cache: Cache consulted by the cached fetch paths
            active_symbol: Symbol polled by the timer
            refresh_interval: Timer cadence
            max_attempts: Attempts per active-symbol fetch operation
            retry_base_delay: Backoff before attempt n+1 is n times this many seconds
            sleep: Awaitable sleep used for backoff, injectable for tests
        """
        self.client = client
        self.cache = cache
        self.refresh_interval = refresh_interval
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.scheduler = AsyncIOScheduler()
        self._sleep = sleep
        self._active_symbol = active_symbol
        self._state = FetchState()
        self._listeners: list[StateListener] = []
        self._tasks: set[asyncio.Task] = set()
        self._in_flight = 0
        self._metrics = FetchMetrics()
        self._settings: SettingsStore | None = None
        self._unsubscribe_settings: Callable[[], None] | None = None

    @classmethod
    def from_config(cls, client: TickerClient, cache: PriceCache, app_config: Config) -> "PollingEngine":
        return cls(
            client,
            cache,
            active_symbol=BuiltinSymbol.from_code(app_config.polling.default_symbol),
            refresh_interval=RefreshInterval.from_seconds(app_config.polling.refresh_interval),
            max_attempts=app_config.polling.max_attempts,
            retry_base_delay=app_config.polling.retry_base_delay,
        )

    @property
    def active_symbol(self) -> Symbol:
        return self._active_symbol

    @property
    def state(self) -> FetchState:
        """Snapshot of the current fetch state."""
        return dataclasses.replace(self._state)

    @property
    def is_running(self) -> bool:
        return self.scheduler.running and self.scheduler.get_job(self.JOB_ID) is not None

    def metrics(self) -> dict:
        return self._metrics.to_dict()

    # --- State publication ---

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register ``listener`` to receive a state snapshot on every transition.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                structured_logger.error("State listener failed", exception=e)

    def _spawn(self, coro: Coroutine[None, None, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until every fetch operation the engine started has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Timer lifecycle ---

    def start(self) -> None:
        """
        Fetch the active symbol now and poll it every ``refresh_interval``.

        Must be called from a running event loop. Calling it while running
        restarts the timer.
        """
        if self.is_running:
            self.stop()
        if not self.scheduler.running:
            self.scheduler.start()

        self._spawn(self._run_fetch_operation())
        self.scheduler.add_job(
            self._on_tick,
            IntervalTrigger(seconds=self.refresh_interval.seconds),
            id=self.JOB_ID,
            name="Active symbol price poll",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        structured_logger.info(
            "Price polling started",
            context={
                "symbol": self._active_symbol.api_symbol,
                "interval": self.refresh_interval.display_text,
            },
        )

    def stop(self) -> None:
        """Cancel future ticks. In-flight fetches run to completion."""
        try:
            self.scheduler.remove_job(self.JOB_ID)
        except JobLookupError:
            return
        structured_logger.info("Price polling stopped")

    async def shutdown(self) -> None:
        """Stop polling, release the scheduler and wait for in-flight fetches."""
        self.stop()
        self.detach_settings()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        # AsyncIOScheduler finishes shutting down on the next loop iteration
        await asyncio.sleep(0)
        await self.wait_idle()

    async def _on_tick(self) -> None:
        await self._spawn(self._run_fetch_operation())

    # --- Active symbol operations ---

    async def refresh(self) -> None:
        """Fetch the active symbol now without touching the timer."""
        await self._spawn(self._run_fetch_operation())

    def set_active_symbol(self, symbol: Symbol) -> None:
        """
        Switch the active symbol.

        Clears the price and error before the new fetch starts; the timer
        keeps its cadence. Without a running event loop only the state is
        switched and the next ``start()`` fetches the new symbol.
        """
        if symbol == self._active_symbol:
            return

        structured_logger.info(
            "Active symbol changed",
            context={"from": self._active_symbol.api_symbol, "to": symbol.api_symbol},
        )
        self._active_symbol = symbol
        self._state.price = 0.0
        self._state.last_error = None
        self._publish()

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._spawn(self._run_fetch_operation())

    def set_refresh_interval(self, interval: RefreshInterval) -> None:
        """Change the cadence; a running timer is restarted, which also fetches immediately."""
        self.refresh_interval = interval
        if self.is_running:
            self.stop()
            self.start()

    async def _fetch_once(self, symbol: Symbol) -> PriceQuote:
        """Single attempt; anything that is not a PriceError is reported as NetworkError."""
        try:
            return await self.client.fetch(symbol.api_symbol)
        except PriceError:
            raise
        except Exception as e:
            raise NetworkError(e) from e

    async def _fetch_with_retry(self, symbol: Symbol, context: dict) -> tuple[PriceQuote | None, PriceError | None]:
        last_error: PriceError | None = None
        for attempt in range(1, self.max_attempts + 1):
            self._metrics.record_attempt()
            try:
                return await self._fetch_once(symbol), None
            except PriceError as e:
                last_error = e

            structured_logger.warning(
                f"Price fetch attempt {attempt} failed",
                context={**context, "attempt": attempt, "error": str(last_error)},
            )
            if attempt < self.max_attempts:
                await self._sleep(attempt * self.retry_base_delay)

        return None, last_error

    async def _run_fetch_operation(self) -> None:
        symbol = self._active_symbol
        token = begin_operation()
        context = {"operation_id": current_operation(), "symbol": symbol.api_symbol}
        started = time.monotonic()
        outcome = "failed"

        self._in_flight += 1
        self._state.is_fetching = True
        self._state.last_error = None
        self._publish()
        structured_logger.debug("Starting price fetch", context=context)

        try:
            quote, error = await self._fetch_with_retry(symbol, context)

            if symbol != self._active_symbol:
                outcome = "discarded"
                structured_logger.info(
                    "Discarding result for inactive symbol",
                    context={**context, "active_symbol": self._active_symbol.api_symbol},
                )
            elif quote is not None:
                outcome = "success"
                self._state.price = quote.price
                self._state.last_error = None
                structured_logger.info("Price updated", context={**context, "price": quote.price})
            else:
                self._state.last_error = error
                structured_logger.error(
                    f"Price fetch failed after {self.max_attempts} attempts",
                    context={**context, "error_kind": error.kind if error else None},
                    exception=error,
                )
        except asyncio.CancelledError:
            outcome = "discarded"
            raise
        finally:
            self._in_flight -= 1
            self._state.is_fetching = self._in_flight > 0
            self._metrics.record_outcome(outcome, (time.monotonic() - started) * 1000)
            self._publish()
            end_operation(token)

    # --- One-shot fetches ---

    async def fetch_all(self, symbols: Iterable[Symbol] | None = None) -> dict[Symbol, FetchResult]:
        """
        Fetch every symbol concurrently, one attempt each, bypassing the cache.

        Args:
            symbols: Symbols to fetch; defaults to built-ins plus custom symbols

        Returns:
            One FetchResult per distinct symbol
        """
        if symbols is None:
            symbols = self._settings.available_symbols() if self._settings else available_symbols()
        targets = list(dict.fromkeys(symbols))

        async def fetch_single(symbol: Symbol) -> tuple[Symbol, FetchResult]:
            try:
                quote = await self._fetch_once(symbol)
            except PriceError as e:
                return symbol, FetchResult(error=str(e))
            return symbol, FetchResult(price=quote.price)

        results = await asyncio.gather(*(fetch_single(symbol) for symbol in targets))
        failed = [symbol.api_symbol for symbol, result in results if not result.ok]
        structured_logger.info(
            "Fetched all symbols",
            context={"requested": len(targets), "failed": failed},
        )
        return dict(results)

    async def fetch_one(self, symbol: Symbol) -> float | None:
        """Single best-effort fetch; None on any failure."""
        try:
            quote = await self._fetch_once(symbol)
        except PriceError as e:
            structured_logger.warning(
                "On-demand fetch failed",
                context={"symbol": symbol.api_symbol, "error": str(e)},
            )
            return None
        return quote.price

    async def fetch_with_cache(self, symbol: Symbol) -> float | None:
        """Serve from the cache when fresh, otherwise fetch once and write through."""
        cached = self.cache.get(symbol.api_symbol)
        if cached is not None:
            return cached.price

        try:
            quote = await self._fetch_once(symbol)
        except PriceError as e:
            structured_logger.warning(
                "Cached fetch failed",
                context={"symbol": symbol.api_symbol, "error": str(e)},
            )
            return None

        self.cache.put(symbol.api_symbol, quote)
        return quote.price

    async def fetch_many_with_cache(self, symbols: Iterable[Symbol]) -> dict[str, float]:
        """
        Prices keyed by API symbol, using cached values where fresh.

        Misses are fetched concurrently; symbols that fail are left out.
        """
        prices: dict[str, float] = {}
        misses: list[Symbol] = []
        for symbol in dict.fromkeys(symbols):
            cached = self.cache.get(symbol.api_symbol)
            if cached is not None:
                prices[symbol.api_symbol] = cached.price
            else:
                misses.append(symbol)

        fetched = await asyncio.gather(*(self.fetch_with_cache(symbol) for symbol in misses))
        for symbol, price in zip(misses, fetched):
            if price is not None:
                prices[symbol.api_symbol] = price
        return prices

    # --- Settings binding ---

    def attach_settings(self, store: SettingsStore) -> None:
        """
        Follow ``store``: interval, active symbol, proxy and reset changes are
        applied as they are published.
        """
        self.detach_settings()
        self._settings = store
        self._unsubscribe_settings = store.subscribe(self._on_settings_changed)

        if self.is_running:
            self._on_settings_changed(frozenset(SettingField))
        else:
            self._active_symbol = store.active_symbol()
            self.refresh_interval = store.refresh_interval
            if store.proxy != self.client.proxy:
                self.client.configure_proxy(store.proxy)

    def detach_settings(self) -> None:
        if self._unsubscribe_settings is not None:
            self._unsubscribe_settings()
        self._unsubscribe_settings = None
        self._settings = None

    def _on_settings_changed(self, fields: frozenset[SettingField]) -> None:
        store = self._settings
        if store is None:
            return

        if SettingField.RESET in fields:
            self.cache.clear()
        if SettingField.PROXY in fields and store.proxy != self.client.proxy:
            self.client.configure_proxy(store.proxy)
        if SettingField.REFRESH_INTERVAL in fields and store.refresh_interval != self.refresh_interval:
            self.set_refresh_interval(store.refresh_interval)
        if fields & {SettingField.ACTIVE_SYMBOL, SettingField.CUSTOM_SYMBOLS}:
            self.set_active_symbol(store.active_symbol())
