"""Block-list and override-table matching for query names.

Brief:
  Matcher evaluates literal substring and `*` glob block patterns and the
  exact-name override table built from ProxyConfig.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import normalize_name

logger = logging.getLogger(__name__)


def compile_glob(pattern: str) -> re.Pattern:
    """Brief: Compile a `*` glob into an anchored, case-insensitive regex.

    Inputs:
      - pattern: Glob where `*` matches any run of characters (including none).
        No other character is special.

    Outputs:
      - re.Pattern to be used with fullmatch().

    Example:
      >>> bool(compile_glob("*.adnxs.com").fullmatch("secure.adnxs.com"))
      True
      >>> bool(compile_glob("ad?.example").fullmatch("ads.example"))
      False
    """

    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(regex, re.IGNORECASE | re.DOTALL)


class Matcher:
    """Block-list and override-table evaluation for query names.

    Inputs (constructor):
      - block_patterns: Literal substrings or `*` globs.
      - overrides: Exact domain -> non-empty sequence of addresses.

    Outputs:
      - Matcher with is_blocked() and override_for().

    Notes:
      - Literal patterns match anywhere in the name, not only as a DNS suffix.
      - Both lookups are total: any string is accepted and unrecognized names
        fall through.

    Example:
      >>> m = Matcher(["tracking.", "*.adnxs.com"], {"prothomalo.com": ["103.101.91.10"]})
      >>> m.is_blocked("tracking.ads.example.com"), m.is_blocked("example.com")
      (True, False)
      >>> m.override_for("ProthomAlo.com.")
      ('103.101.91.10',)
      >>> m.override_for("www.prothomalo.com") is None
      True
    """

    def __init__(
        self,
        block_patterns: Iterable[str] = (),
        overrides: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> None:
        self.blocked_keywords: List[str] = []
        self.blocked_patterns: List[re.Pattern] = []
        for raw in block_patterns:
            pattern = str(raw).strip().lower()
            if not pattern:
                continue
            if "*" in pattern:
                self.blocked_patterns.append(compile_glob(pattern))
            else:
                self.blocked_keywords.append(pattern)

        self._overrides: Dict[str, Tuple[str, ...]] = {}
        for name, addrs in (overrides or {}).items():
            self._overrides[normalize_name(name)] = tuple(addrs)

        logger.debug(
            "Matcher loaded %d keywords, %d globs, %d overrides",
            len(self.blocked_keywords),
            len(self.blocked_patterns),
            len(self._overrides),
        )

    def is_blocked(self, name: str) -> bool:
        """Brief: Return True when any block pattern matches the name."""

        qname = normalize_name(name)
        for keyword in self.blocked_keywords:
            if keyword in qname:
                return True
        for pattern in self.blocked_patterns:
            if pattern.fullmatch(qname):
                return True
        return False

    def override_for(self, name: str) -> Optional[Tuple[str, ...]]:
        """Brief: Return preferred addresses for an exact name, else None."""

        return self._overrides.get(normalize_name(name))
