"""Counters describing the polling engine's fetch activity."""

import threading
from dataclasses import dataclass, field
from typing import Any


@dataclass
class FetchMetrics:
    """Running totals for active-symbol fetch operations."""

    operations: int = 0
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    discarded: int = 0
    total_duration_ms: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_attempt(self) -> None:
        with self._lock:
            self.attempts += 1

    def record_outcome(self, outcome: str, duration_ms: float) -> None:
        """
        Record the end of one operation.

        Args:
            outcome: "success", "failed" or "discarded"
            duration_ms: Wall time of the whole operation including backoff
        """
        with self._lock:
            self.operations += 1
            self.total_duration_ms += duration_ms
            if outcome == "success":
                self.successes += 1
            elif outcome == "failed":
                self.failures += 1
            elif outcome == "discarded":
                self.discarded += 1
            else:
                raise ValueError(f"Unknown fetch outcome: {outcome}")

    @property
    def average_duration_ms(self) -> float:
        return self.total_duration_ms / self.operations if self.operations else 0.0

    @property
    def success_rate(self) -> float:
        return self.successes / self.operations * 100 if self.operations else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "operations": self.operations,
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "discarded": self.discarded,
            "success_rate": self.success_rate,
            "average_duration_ms": self.average_duration_ms,
        }
