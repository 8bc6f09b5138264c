"""Price data models for quotes, polling state and fan-out results."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel

from pricebar.models.errors import PriceError


class TickerPriceResponse(BaseModel):
    """Body of ``GET /ticker/price?symbol=<PAIR>``."""

    symbol: str
    price: str


@dataclass(frozen=True)
class PriceQuote:
    """A single fetched price and the instant it was obtained."""

    symbol: str
    price: float
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class RefreshInterval(Enum):
    """Refresh cadences offered to the user."""

    FIVE_SECONDS = 5
    TEN_SECONDS = 10
    THIRTY_SECONDS = 30
    SIXTY_SECONDS = 60

    @property
    def seconds(self) -> int:
        return self.value

    @property
    def display_text(self) -> str:
        return f"{self.value}s"

    @classmethod
    def from_seconds(cls, seconds: float) -> "RefreshInterval":
        """Map a number of seconds onto one of the offered cadences.

        Raises:
            ValueError: if ``seconds`` is not one of 5, 10, 30 or 60
        """
        for member in cls:
            if member.value == seconds:
                return member
        allowed = ", ".join(str(member.value) for member in cls)
        raise ValueError(f"Invalid refresh interval: {seconds}. Use one of {allowed}")


@dataclass
class FetchState:
    """Observable state of the active symbol's polling.

    ``price`` of 0.0 means no value has been fetched yet for the active symbol.
    """

    price: float = 0.0
    is_fetching: bool = False
    last_error: PriceError | None = None

    @property
    def has_price(self) -> bool:
        return self.price != 0.0


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one symbol in a fan-out fetch: a price or an error message."""

    price: float | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.price is not None
