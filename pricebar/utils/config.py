"""Configuration management for the price poller."""

import os
from dataclasses import dataclass
from urllib.parse import quote

from dotenv import load_dotenv

from pricebar.models.symbol import BuiltinSymbol

# Load environment variables from .env file
load_dotenv()

ALLOWED_REFRESH_INTERVALS = (5, 10, 30, 60)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class TickerConfig:
    """Ticker endpoint and transport timeouts."""

    base_url: str = "https://api.binance.com/api/v3"
    request_timeout: float = 15.0  # connect/read, per attempt
    resource_timeout: float = 30.0  # whole request, per attempt
    probe_symbol: str = "BTCUSDT"
    probe_request_timeout: float = 10.0
    probe_resource_timeout: float = 15.0


@dataclass
class CacheConfig:
    """Price cache configuration."""

    ttl_seconds: float = 30.0


@dataclass
class PollingConfig:
    """Polling cadence and retry policy."""

    refresh_interval: int = 30
    max_attempts: int = 3
    retry_base_delay: float = 1.0  # backoff before attempt n+1 is n * base
    default_symbol: str = "BTC"


@dataclass(frozen=True)
class ProxySettings:
    """HTTP proxy used for ticker requests."""

    enabled: bool = False
    host: str = ""
    port: int = 3128
    username: str = ""
    password: str = ""

    @property
    def has_credentials(self) -> bool:
        return bool(self.username) and bool(self.password)

    @property
    def url(self) -> str | None:
        """Proxy URL for the HTTP client, or None when proxying is off."""
        if not self.enabled or not self.host:
            return None
        auth = ""
        if self.has_credentials:
            auth = f"{quote(self.username, safe='')}:{quote(self.password, safe='')}@"
        return f"http://{auth}{self.host}:{self.port}"

    def describe(self) -> str:
        """Loggable description without the password."""
        if not self.enabled:
            return "disabled"
        user = f" (user: {self.username})" if self.username else ""
        return f"{self.host}:{self.port}{user}"


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: str = "INFO"
    file_path: str | None = None


class Config:
    """Main application configuration."""

    def __init__(self):
        self.ticker = TickerConfig(
            base_url=os.getenv("TICKER_BASE_URL", "https://api.binance.com/api/v3"),
            request_timeout=float(os.getenv("TICKER_REQUEST_TIMEOUT", "15")),
            resource_timeout=float(os.getenv("TICKER_RESOURCE_TIMEOUT", "30")),
            probe_symbol=os.getenv("TICKER_PROBE_SYMBOL", "BTCUSDT"),
        )

        self.cache = CacheConfig(
            ttl_seconds=float(os.getenv("PRICE_CACHE_TTL", "30")),
        )

        self.polling = PollingConfig(
            refresh_interval=int(os.getenv("REFRESH_INTERVAL", "30")),
            max_attempts=int(os.getenv("FETCH_MAX_ATTEMPTS", "3")),
            retry_base_delay=float(os.getenv("RETRY_BASE_DELAY", "1.0")),
            default_symbol=os.getenv("DEFAULT_SYMBOL", "BTC"),
        )

        self.proxy = ProxySettings(
            enabled=_env_bool("PROXY_ENABLED"),
            host=os.getenv("PROXY_HOST", "").strip(),
            port=int(os.getenv("PROXY_PORT", "3128")),
            username=os.getenv("PROXY_USERNAME", "").strip(),
            password=os.getenv("PROXY_PASSWORD", ""),
        )

        self.logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            file_path=os.getenv("LOG_FILE") or None,
        )

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError if configuration is invalid
        """
        if not self.ticker.base_url.startswith(("http://", "https://")):
            raise ValueError("TICKER_BASE_URL must be an http(s) URL")
        if self.ticker.request_timeout <= 0:
            raise ValueError("TICKER_REQUEST_TIMEOUT must be positive")
        if self.ticker.resource_timeout < self.ticker.request_timeout:
            raise ValueError("TICKER_RESOURCE_TIMEOUT must not be shorter than TICKER_REQUEST_TIMEOUT")
        if self.cache.ttl_seconds <= 0:
            raise ValueError("PRICE_CACHE_TTL must be positive")
        if self.polling.refresh_interval not in ALLOWED_REFRESH_INTERVALS:
            raise ValueError(
                f"REFRESH_INTERVAL must be one of {', '.join(map(str, ALLOWED_REFRESH_INTERVALS))}"
            )
        if self.polling.max_attempts < 1:
            raise ValueError("FETCH_MAX_ATTEMPTS must be at least 1")
        if self.polling.retry_base_delay < 0:
            raise ValueError("RETRY_BASE_DELAY must not be negative")

        try:
            BuiltinSymbol.from_code(self.polling.default_symbol)
        except ValueError as e:
            raise ValueError(f"DEFAULT_SYMBOL is invalid: {e}") from e

        if self.logging.level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL is invalid: {self.logging.level}")

        return True


# Global config instance
config = Config()
