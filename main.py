"""Main application entry point."""

import asyncio

from pricebar.models.price import FetchState
from pricebar.services.polling_engine import PollingEngine
from pricebar.services.price_cache import PriceCache
from pricebar.services.settings_store import SettingsStore
from pricebar.services.ticker_client import TickerClient
from pricebar.utils.config import Config, config
from pricebar.utils.logger import get_logger

structured_logger = get_logger("PriceBar")


def format_price(price: float) -> str:
    """Thousands separators with two to four decimals, e.g. ``43,250.5`` -> ``43,250.50``."""
    text = f"{price:,.4f}"
    whole, decimals = text.split(".")
    decimals = decimals.rstrip("0").ljust(2, "0")
    return f"{whole}.{decimals}"


def render_status(display_name: str, state: FetchState) -> str:
    """Status line for the active symbol."""
    if state.has_price:
        return f"{display_name}: ${format_price(state.price)}"
    if state.is_fetching:
        return f"{display_name}: updating…"
    if state.last_error is not None:
        return f"{display_name}: error"
    return f"{display_name}: loading…"


def build_engine(app_config: Config) -> tuple[SettingsStore, TickerClient, PollingEngine]:
    """Wire the settings store, client, cache and engine from configuration."""
    store = SettingsStore(app_config)
    client = TickerClient(app_config.ticker, proxy=store.proxy)
    cache = PriceCache(ttl_seconds=app_config.cache.ttl_seconds)
    engine = PollingEngine.from_config(client, cache, app_config)
    engine.attach_settings(store)
    return store, client, engine


async def run(app_config: Config = config) -> None:
    """Poll the active symbol and log its status line until cancelled."""
    try:
        app_config.validate()
    except ValueError as e:
        structured_logger.critical("Configuration error", exception=e)
        raise

    _, client, engine = build_engine(app_config)
    last_line = None

    def on_state(state: FetchState) -> None:
        nonlocal last_line
        line = render_status(engine.active_symbol.display_name, state)
        if line != last_line:
            last_line = line
            structured_logger.info(line, context={"symbol": engine.active_symbol.api_symbol})

    engine.subscribe(on_state)
    engine.start()
    try:
        await asyncio.Event().wait()
    finally:
        await engine.shutdown()
        await client.aclose()
        structured_logger.info("Price polling shut down", context=engine.metrics())


if __name__ == "__main__":
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
