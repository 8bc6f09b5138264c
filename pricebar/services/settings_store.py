"""In-memory user settings that notify subscribers when they change."""

import re
from enum import Enum
from typing import Callable

from pricebar.models.price import RefreshInterval
from pricebar.models.symbol import (
    BuiltinSymbol,
    CustomSymbol,
    Symbol,
    available_symbols,
)
from pricebar.utils.config import Config, ProxySettings
from pricebar.utils.logger import get_logger

structured_logger = get_logger("SettingsStore")

MAX_CUSTOM_SYMBOLS = 5

_IPV4_PATTERN = re.compile(
    r"^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$"
)
_HOSTNAME_PATTERN = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)*$"
)


class SettingField(Enum):
    """Groups of settings a subscriber can react to."""

    REFRESH_INTERVAL = "refresh_interval"
    ACTIVE_SYMBOL = "active_symbol"
    CUSTOM_SYMBOLS = "custom_symbols"
    PROXY = "proxy"
    RESET = "reset"


SettingsListener = Callable[[frozenset[SettingField]], None]


def is_valid_host(host: str) -> bool:
    """True for a dotted IPv4 address or a DNS host name."""
    return bool(_IPV4_PATTERN.match(host) or _HOSTNAME_PATTERN.match(host))


class SettingsStore:
    """
    The user-facing configuration surface consumed by the polling engine.

    Every mutator that actually changes something notifies subscribers with
    the set of fields it touched.
    """

    def __init__(self, app_config: Config | None = None):
        """
        Initialize settings from configuration defaults.

        Args:
            app_config: Source of the initial values; a fresh ``Config()`` if omitted
        """
        self._config = app_config or Config()
        self._listeners: list[SettingsListener] = []
        self._load_defaults()

    def _load_defaults(self) -> None:
        self.refresh_interval = RefreshInterval.from_seconds(self._config.polling.refresh_interval)
        self.selected_symbol = BuiltinSymbol.from_code(self._config.polling.default_symbol)
        self.custom_symbols: list[CustomSymbol] = []
        self.selected_custom_index: int | None = None
        self.use_custom_symbol = False
        self.proxy = self._config.proxy

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        """
        Register ``listener`` for change notifications.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, *fields: SettingField) -> None:
        changed = frozenset(fields)
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception as e:
                structured_logger.error(
                    "Settings listener failed",
                    context={"fields": sorted(f.value for f in changed)},
                    exception=e,
                )

    def active_symbol(self) -> Symbol:
        """The symbol currently driving the price display."""
        custom = self.selected_custom_symbol()
        if self.use_custom_symbol and custom is not None:
            return custom
        return self.selected_symbol

    def selected_custom_symbol(self) -> CustomSymbol | None:
        index = self.selected_custom_index
        if index is None or not 0 <= index < len(self.custom_symbols):
            return None
        return self.custom_symbols[index]

    def available_symbols(self) -> list[Symbol]:
        return available_symbols(self.custom_symbols)

    def set_refresh_interval(self, interval: RefreshInterval) -> None:
        if interval == self.refresh_interval:
            return
        self.refresh_interval = interval
        self._notify(SettingField.REFRESH_INTERVAL)

    def select_symbol(self, symbol: BuiltinSymbol) -> None:
        """Select a built-in symbol, leaving custom mode but keeping the custom list."""
        before = self.active_symbol()
        self.selected_symbol = symbol
        if self.use_custom_symbol:
            self.use_custom_symbol = False
            self.selected_custom_index = None
        if self.active_symbol() != before:
            self._notify(SettingField.ACTIVE_SYMBOL)

    def add_custom_symbol(self, symbol: CustomSymbol) -> bool:
        """
        Append a custom symbol.

        The first custom symbol added becomes the active one.

        Returns:
            False if the list is full or already holds ``symbol``
        """
        if len(self.custom_symbols) >= MAX_CUSTOM_SYMBOLS:
            structured_logger.warning(
                "Custom symbol limit reached",
                context={"symbol": symbol.code, "limit": MAX_CUSTOM_SYMBOLS},
            )
            return False
        if symbol in self.custom_symbols:
            return False

        self.custom_symbols.append(symbol)
        fields = [SettingField.CUSTOM_SYMBOLS]
        if len(self.custom_symbols) == 1:
            self.selected_custom_index = 0
            self.use_custom_symbol = True
            fields.append(SettingField.ACTIVE_SYMBOL)
        self._notify(*fields)
        return True

    def remove_custom_symbol(self, index: int) -> None:
        """Remove the custom symbol at ``index``, re-targeting the selection."""
        if not 0 <= index < len(self.custom_symbols):
            return

        before = self.active_symbol()
        del self.custom_symbols[index]

        if self.selected_custom_index == index:
            if self.custom_symbols:
                self.selected_custom_index = 0
            else:
                self.selected_custom_index = None
                self.use_custom_symbol = False
        elif self.selected_custom_index is not None and self.selected_custom_index > index:
            self.selected_custom_index -= 1

        fields = [SettingField.CUSTOM_SYMBOLS]
        if self.active_symbol() != before:
            fields.append(SettingField.ACTIVE_SYMBOL)
        self._notify(*fields)

    def select_custom_symbol(self, index: int) -> None:
        if not 0 <= index < len(self.custom_symbols):
            return
        before = self.active_symbol()
        self.selected_custom_index = index
        self.use_custom_symbol = True
        if self.active_symbol() != before:
            self._notify(SettingField.ACTIVE_SYMBOL)

    def save_proxy_settings(
        self,
        enabled: bool,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
    ) -> None:
        proxy = ProxySettings(
            enabled=enabled,
            host=host.strip(),
            port=port,
            username=username.strip(),
            password=password,
        )
        if proxy == self.proxy:
            return
        self.proxy = proxy
        structured_logger.info("Proxy settings saved", context={"proxy": proxy.describe()})
        self._notify(SettingField.PROXY)

    def validate_proxy_settings(self, proxy: ProxySettings | None = None) -> tuple[bool, str | None]:
        """
        Check host and port of ``proxy`` (the saved settings by default).

        Returns:
            (is_valid, error_message); disabled proxies are always valid
        """
        proxy = proxy or self.proxy
        if not proxy.enabled:
            return True, None

        host = proxy.host.strip()
        if not host:
            return False, "Proxy host must not be empty"
        if not is_valid_host(host):
            return False, "Proxy host is not a valid IP address or host name"
        if not 1 <= proxy.port <= 65535:
            return False, "Proxy port must be between 1 and 65535"
        return True, None

    def reset_to_defaults(self) -> None:
        """Restore configured defaults and notify every field."""
        self._load_defaults()
        structured_logger.info("Settings reset to defaults")
        self._notify(*SettingField)
