"""In-memory response cache keyed by request URL."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60


@dataclass
class CacheEntry:
    url: str
    body: str
    fetched_at: float


class ResponseCache:
    """Time-bounded URL -> body store.

    Entries are never swept; an entry aged ``ttl`` seconds or more is simply
    ignored by ``get`` and replaced on the next ``put``.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, url: str) -> Optional[str]:
        entry = self._entries.get(url)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl:
            logger.debug(f"Cache entry expired for {url}")
            return None
        return entry.body

    def put(self, url: str, body: str) -> None:
        self._entries[url] = CacheEntry(url=url, body=body, fetched_at=self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: str) -> bool:
        return self.get(url) is not None
