"""Query-resolution pipeline: block-list, overrides, cache, upstream.

Brief:
  Resolver composes the Matcher, UpstreamSelector, ResponseCache and
  UpstreamClient into the single public operation resolve(). Every call
  returns a well-formed Response; upstream transport/parse failures are
  converted into UPSTREAM_ERROR responses here and never escape.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Tuple

from .cache import ResponseCache
from .config.config_parser import ProxyConfig
from .matcher import Matcher
from .models import Query, Response, ResponseStatus, answers_for
from .transports.doh import UpstreamClient, UpstreamFailure
from .upstream_selector import UpstreamSelector
from .utils.background import BackgroundTasks

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    def fetch(self, endpoint: str, name: str, record_type: str) -> Response: ...


class Resolver:
    """Resolve DNS-JSON queries from block-list, overrides, cache or upstream.

    Inputs (constructor):
      - matcher: Matcher for block-list and override lookups.
      - selector: UpstreamSelector for region -> endpoint.
      - cache: ResponseCache in front of the upstream fetch.
      - client: Object with fetch(endpoint, name, record_type) -> Response.
      - override_ttl: TTL placed on synthesized override answers.
      - tasks: BackgroundTasks used for write-back; a private one is created
        when omitted.

    Outputs:
      - Resolver with resolve(), resolve_with_meta() and close().

    Notes:
      - Only successful upstream fetches are cached; blocked and override
        answers are recomputed on every call.
      - Concurrent misses for the same key may each reach the upstream.
    """

    def __init__(
        self,
        matcher: Matcher,
        selector: UpstreamSelector,
        cache: ResponseCache,
        client: Fetcher,
        *,
        override_ttl: int = 3600,
        tasks: Optional[BackgroundTasks] = None,
    ) -> None:
        self.matcher = matcher
        self.selector = selector
        self.cache = cache
        self.client = client
        self.override_ttl = max(0, int(override_ttl))
        self.tasks = tasks or BackgroundTasks()

    @classmethod
    def from_config(cls, config: ProxyConfig, **overrides) -> "Resolver":
        """Brief: Build a Resolver and its collaborators from ProxyConfig.

        Inputs:
          - config: Immutable ProxyConfig.
          - **overrides: Optional replacements for cache/client/tasks
            (used by tests and embedders).

        Outputs:
          - Resolver
        """

        cache = overrides.pop("cache", None)
        client = overrides.pop("client", None)
        tasks = overrides.pop("tasks", None)
        if overrides:
            raise TypeError(f"unexpected arguments: {', '.join(sorted(overrides))}")

        matcher = Matcher(config.blocklist, config.overrides)
        selector = UpstreamSelector(config.upstream.default, config.upstream.regions)
        if cache is None:
            cache = ResponseCache(
                config.cache.horizon_seconds,
                maxsize=config.cache.maxsize,
                shards=config.cache.shards,
            )
        if client is None:
            client = UpstreamClient(config.upstream.timeout_ms)
        if tasks is None:
            tasks = BackgroundTasks(config.background_workers)
        return cls(
            matcher,
            selector,
            cache,
            client,
            override_ttl=config.override_ttl,
            tasks=tasks,
        )

    def resolve(self, query: Query) -> Response:
        """Brief: Resolve a Query to a Response (total; never raises for upstream failures)."""

        return self.resolve_with_meta(query)[0]

    def resolve_with_meta(self, query: Query) -> Tuple[Response, int]:
        """Brief: Resolve a Query and report how long clients may cache it.

        Inputs:
          - query: Query (name already normalized).

        Outputs:
          - (response, max_age): max_age is the remaining freshness horizon
            in whole seconds for successful upstream answers, else 0.
        """

        name = query.name

        if self.matcher.is_blocked(name):
            logger.debug("Blocked %s", name)
            return Response.blocked(), 0

        addresses = self.matcher.override_for(name)
        if addresses:
            logger.debug("Override for %s -> %s", name, ", ".join(addresses))
            answers = answers_for(name, self.override_ttl, addresses)
            return Response(ResponseStatus.OK, answers, note="override"), 0

        key = query.cache_key
        cached, remaining = self.cache.lookup_with_meta(key)
        if cached is not None:
            logger.debug("Cache hit for %s/%s", name, query.record_type)
            return cached, self._max_age(cached, remaining)

        endpoint = self.selector.select_upstream(query.origin_region)
        try:
            response = self.client.fetch(endpoint, name, query.record_type)
        except UpstreamFailure as exc:
            note = f"{exc.__class__.__name__}: {exc}"
            logger.warning("Upstream %s failed for %s/%s: %s", endpoint, name, query.record_type, note)
            return Response.upstream_error(note), 0

        try:
            self.tasks.submit(self.cache.store, key, response)
        except RuntimeError:
            # Shutting down: write inline instead of dropping the entry.
            self.cache.store(key, response)
        return response, self._max_age(response, self.cache.horizon)

    @staticmethod
    def _max_age(response: Response, remaining: Optional[float]) -> int:
        # Upstream-reported errors (SERVFAIL, NXDOMAIN, ...) are not client-cacheable.
        if response.status is not ResponseStatus.OK:
            return 0
        return int(remaining or 0)

    def close(self, timeout: Optional[float] = 5.0) -> bool:
        """Brief: Wait (bounded) for pending cache writes, then release the client.

        Outputs:
          - bool: True when every pending write finished in time.
        """

        finished = self.tasks.shutdown(timeout)
        close = getattr(self.client, "close", None)
        if callable(close):
            close()
        return finished
