from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import threading
from typing import Callable

from ciaociao.services.price_engine.schemas import ConsensusQuote, PriceKey


DEFAULT_HISTORY_SIZE = 20


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CacheEntry:
    key: PriceKey
    value: ConsensusQuote
    expires_at: datetime
    history: tuple[ConsensusQuote, ...]


class PriceCache:
    """Last accepted quote per key plus a bounded history of accepted quotes.

    Entries are immutable and replaced wholesale, so a reader holding an
    entry never observes a half-applied ``put``.
    """

    def __init__(
        self,
        *,
        history_size: int = DEFAULT_HISTORY_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if history_size < 1:
            raise ValueError("history_size must be at least 1")
        self.history_size = history_size
        self._clock = clock
        self._entries: dict[PriceKey, CacheEntry] = {}
        self._write_lock = threading.Lock()

    def get(self, key: PriceKey) -> CacheEntry | None:
        return self._entries.get(key)

    def put(self, key: PriceKey, quote: ConsensusQuote, ttl: timedelta) -> CacheEntry:
        with self._write_lock:
            previous = self._entries.get(key)
            history = (previous.history if previous is not None else ()) + (quote,)
            entry = CacheEntry(
                key=key,
                value=quote,
                expires_at=self._clock() + ttl,
                history=history[-self.history_size :],
            )
            self._entries[key] = entry
        return entry

    def is_fresh(self, entry: CacheEntry, *, now: datetime | None = None) -> bool:
        now_value = self._clock() if now is None else now
        return now_value < entry.expires_at

    def history(self, key: PriceKey) -> tuple[ConsensusQuote, ...]:
        entry = self._entries.get(key)
        return entry.history if entry is not None else ()

    def clear(self) -> None:
        with self._write_lock:
            self._entries = {}
