"""Response cache for forwarded upstream answers with a fixed freshness horizon."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from cachetools import TTLCache

from .models import CacheKey, Response

logger = logging.getLogger(__name__)

# TTLCache drops an item once timer() >= expires; the slack keeps an entry
# aged exactly the horizon so the stored_at check decides freshness.
_EXPIRY_SLACK = 1.0


@dataclass(frozen=True)
class CacheEntry:
    """One cached upstream Response and the time it was stored."""

    key: CacheKey
    value: Response
    stored_at: float


class _Shard:
    __slots__ = ("lock", "data")

    def __init__(self, maxsize: int, horizon: float, timer: Callable[[], float]) -> None:
        self.lock = threading.Lock()
        self.data: TTLCache = TTLCache(maxsize=maxsize, ttl=horizon + _EXPIRY_SLACK, timer=timer)


class ResponseCache:
    """
    Thread-safe cache of upstream Responses keyed by (name, qtype).

    Inputs:
        horizon: Freshness horizon in seconds; entries older than this are
            never returned.
        maxsize: Maximum number of entries per shard.
        shards: Number of independently locked shards.
        clock: Monotonic time source (injectable for tests).
    Outputs:
        ResponseCache instance

    Notes:
        Keys are spread over shards, each a cachetools.TTLCache guarded by its
        own lock, so a store never blocks lookups of keys in other shards.
        Freshness is checked against stored_at at read time.

    Example use:
        >>> from bdixdns.models import Response, ResponseStatus
        >>> now = [0.0]
        >>> cache = ResponseCache(horizon=300, clock=lambda: now[0])
        >>> key = ("example.com", 1)
        >>> cache.store(key, Response(ResponseStatus.OK))
        >>> now[0] = 120.0
        >>> cache.lookup_with_meta(key)[1]
        180.0
        >>> now[0] = 301.0
        >>> cache.lookup(key) is None
        True
    """

    def __init__(
        self,
        horizon: float = 300,
        *,
        maxsize: int = 10000,
        shards: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if horizon <= 0:
            raise ValueError("cache horizon must be positive")
        self.horizon = float(horizon)
        self._clock = clock
        self._shards: List[_Shard] = [
            _Shard(maxsize, self.horizon, clock) for _ in range(max(1, int(shards)))
        ]

    def _shard(self, key: CacheKey) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    def lookup(self, key: CacheKey) -> Optional[Response]:
        """
        Return the cached Response for key, or None when absent or stale.

        Inputs:
            key: (lowercased name, qtype) tuple.
        Outputs:
            Response or None.
        """
        return self.lookup_with_meta(key)[0]

    def lookup_with_meta(self, key: CacheKey) -> Tuple[Optional[Response], Optional[float]]:
        """Brief: Return cached Response plus seconds remaining on its horizon.

        Inputs:
            key: Cache key tuple (name, qtype).

        Outputs:
            (response_or_None, seconds_remaining_or_None)
        """
        shard = self._shard(key)
        with shard.lock:
            entry: Optional[CacheEntry] = shard.data.get(key)
        if entry is None:
            return None, None
        age = self._clock() - entry.stored_at
        if age > self.horizon:
            return None, None
        return entry.value, self.horizon - age

    def store(self, key: CacheKey, response: Response) -> None:
        """
        Store (or replace) the Response for key, stamped with the current time.

        Inputs:
            key: Cache key tuple (name, qtype).
            response: Upstream-fetched Response.
        Outputs:
            None
        """
        entry = CacheEntry(key=key, value=response, stored_at=self._clock())
        shard = self._shard(key)
        with shard.lock:
            shard.data[key] = entry
        logger.debug("Cached %s type %d", key[0], key[1])

    def purge(self) -> int:
        """Remove expired entries from every shard.

        Outputs:
            Number of entries removed.
        """
        removed = 0
        now = self._clock()
        for shard in self._shards:
            with shard.lock:
                removed += len(shard.data.expire())
                stale = [k for k, e in shard.data.items() if now - e.stored_at > self.horizon]
                for k in stale:
                    del shard.data[k]
                removed += len(stale)
        return removed

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.data.clear()

    def __len__(self) -> int:
        total = 0
        now = self._clock()
        for shard in self._shards:
            with shard.lock:
                shard.data.expire()
                total += sum(1 for e in shard.data.values() if now - e.stored_at <= self.horizon)
        return total

    def __contains__(self, key: object) -> bool:
        return isinstance(key, tuple) and self.lookup(key) is not None  # type: ignore[arg-type]
