"""Short-lived price cache for secondary symbols."""

import threading
import time
from dataclasses import dataclass
from typing import Callable

from pricebar.models.price import PriceQuote
from pricebar.utils.logger import get_logger

structured_logger = get_logger("PriceCache")


@dataclass(frozen=True)
class CacheEntry:
    """A cached quote and the clock reading when it was stored."""

    quote: PriceQuote
    stored_at: float


class PriceCache:
    """
    Time-boxed memoization of quotes keyed by API symbol.

    An entry is served while its age is at most ``ttl_seconds``. Stale
    entries are dropped when looked up and swept on every write.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Maximum age of a servable entry
            clock: Monotonic time source, injectable for tests
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def _key(self, symbol: str) -> str:
        return symbol.strip().upper()

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at > self.ttl_seconds

    def get(self, symbol: str) -> PriceQuote | None:
        """Return the cached quote for ``symbol`` if it is still fresh."""
        key = self._key(symbol)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                structured_logger.debug("Cache entry expired", context={"symbol": key})
                return None
            return entry.quote

    def put(self, symbol: str, quote: PriceQuote) -> None:
        """Store ``quote``, replacing any previous entry, then sweep stale ones."""
        key = self._key(symbol)
        with self._lock:
            self._entries[key] = CacheEntry(quote=quote, stored_at=self._clock())
            self.purge_expired()

    def purge_expired(self) -> int:
        """Remove every stale entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            structured_logger.debug(
                f"Purged {len(expired)} expired cache entries",
                context={"symbols": expired},
            )
        return len(expired)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
        structured_logger.debug("Price cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, symbol: str) -> bool:
        return self.get(symbol) is not None
