"""Brief: Region code to upstream DoH endpoint selection."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class UpstreamSelector:
    """Maps a coarse origin region code to one upstream DoH endpoint.

    Inputs (constructor):
      - default: Endpoint used when the region is missing, empty or unmapped.
      - regions: Case-sensitive region code -> endpoint mapping.

    Example:
      >>> sel = UpstreamSelector("https://cloudflare-dns.com/dns-query",
      ...                        {"BD": "https://dns.google/resolve"})
      >>> sel.select_upstream("BD")
      'https://dns.google/resolve'
      >>> sel.select_upstream("bd") == sel.select_upstream("ZZ") == sel.default
      True
    """

    def __init__(self, default: str, regions: Optional[Mapping[str, str]] = None) -> None:
        if not default:
            raise ValueError("UpstreamSelector requires a default endpoint")
        self.default = default
        self._regions: Dict[str, str] = dict(regions or {})

    def select_upstream(self, origin_region: Optional[str]) -> str:
        if not origin_region:
            return self.default
        endpoint = self._regions.get(origin_region)
        if endpoint is None:
            return self.default
        logger.debug("Region %s routed to %s", origin_region, endpoint)
        return endpoint
