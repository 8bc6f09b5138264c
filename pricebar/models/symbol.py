"""Tradable symbol models: the built-in set and user-defined symbols."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol, Union

QUOTE_ASSET = "USDT"
CUSTOM_ICON = "bitcoinsign.circle.fill"


class SymbolValidationError(ValueError):
    """Raised when a user-defined symbol fails validation."""

    INVALID_LENGTH = "invalid_length"
    INVALID_FORMAT = "invalid_format"
    DUPLICATE_WITH_DEFAULT = "duplicate_with_default"

    _MESSAGES = {
        INVALID_LENGTH: "Symbol must be 3-5 letters",
        INVALID_FORMAT: "Symbol may only contain letters",
        DUPLICATE_WITH_DEFAULT: "Symbol is already in the default list",
    }

    def __init__(self, reason: str):
        super().__init__(self._MESSAGES.get(reason, reason))
        self.reason = reason


class CryptoSymbol(Protocol):
    """Capabilities shared by built-in and custom symbols."""

    @property
    def display_name(self) -> str: ...

    @property
    def api_symbol(self) -> str: ...

    @property
    def pair_display_name(self) -> str: ...

    @property
    def icon_name(self) -> str: ...

    @property
    def is_custom(self) -> bool: ...


class BuiltinSymbol(Enum):
    """Symbols that ship with the application."""

    BTC = ("BTC", "bitcoinsign.circle.fill")
    ETH = ("ETH", "hexagon.fill")
    DOGE = ("DOGE", "pawprint.circle.fill")

    def __init__(self, code: str, icon: str):
        self.code = code
        self.icon = icon

    @property
    def display_name(self) -> str:
        return self.code

    @property
    def api_symbol(self) -> str:
        return f"{self.code}{QUOTE_ASSET}"

    @property
    def pair_display_name(self) -> str:
        return f"{self.code}/{QUOTE_ASSET}"

    @property
    def icon_name(self) -> str:
        return self.icon

    @property
    def is_custom(self) -> bool:
        return False

    @classmethod
    def from_code(cls, code: str) -> "BuiltinSymbol":
        """Look up a built-in symbol by base code, ignoring case."""
        wanted = code.strip().upper()
        for member in cls:
            if member.code == wanted:
                return member
        raise ValueError(f"Unknown built-in symbol: {code}")


@dataclass(frozen=True)
class CustomSymbol:
    """A user-defined 3-5 letter base asset quoted in USDT.

    Instances are only built through ``create`` so the code is always
    upper-cased; equality and hashing are therefore case-insensitive.
    """

    code: str

    @classmethod
    def create(cls, raw: str) -> "CustomSymbol":
        """Validate and normalise ``raw``.

        Raises:
            SymbolValidationError: if the code is the wrong length, contains
                anything but ASCII letters, or names a built-in symbol.
        """
        code = raw.strip().upper()
        if not 3 <= len(code) <= 5:
            raise SymbolValidationError(SymbolValidationError.INVALID_LENGTH)
        if not (code.isascii() and code.isalpha()):
            raise SymbolValidationError(SymbolValidationError.INVALID_FORMAT)
        if code in {member.code for member in BuiltinSymbol}:
            raise SymbolValidationError(SymbolValidationError.DUPLICATE_WITH_DEFAULT)
        return cls(code)

    @classmethod
    def check(cls, raw: str) -> tuple[bool, str | None]:
        """Validate without constructing, for form feedback."""
        try:
            cls.create(raw)
        except SymbolValidationError as e:
            return False, str(e)
        return True, None

    @property
    def display_name(self) -> str:
        return self.code

    @property
    def api_symbol(self) -> str:
        return f"{self.code}{QUOTE_ASSET}"

    @property
    def pair_display_name(self) -> str:
        return f"{self.code}/{QUOTE_ASSET}"

    @property
    def icon_name(self) -> str:
        return CUSTOM_ICON

    @property
    def is_custom(self) -> bool:
        return True


Symbol = Union[BuiltinSymbol, CustomSymbol]


def available_symbols(custom: Iterable[CustomSymbol] = ()) -> list[Symbol]:
    """Built-in symbols followed by the user's custom symbols."""
    symbols: list[Symbol] = list(BuiltinSymbol)
    for symbol in custom:
        if symbol not in symbols:
            symbols.append(symbol)
    return symbols


def symbol_for_api_symbol(api_symbol: str, custom: Iterable[CustomSymbol] = ()) -> Symbol | None:
    """Resolve an API pair string such as ``ETHUSDT`` to a known symbol."""
    wanted = api_symbol.strip().upper()
    for symbol in available_symbols(custom):
        if symbol.api_symbol == wanted:
            return symbol
    return None


def display_name_for_api_symbol(api_symbol: str, custom: Iterable[CustomSymbol] = ()) -> str:
    """Display name for a pair string, falling back to the bare base asset."""
    symbol = symbol_for_api_symbol(api_symbol, custom)
    if symbol is not None:
        return symbol.display_name
    if api_symbol.endswith(QUOTE_ASSET):
        return api_symbol[: -len(QUOTE_ASSET)]
    return api_symbol
