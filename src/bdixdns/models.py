"""Query and response value types shared by the resolution pipeline.

Brief:
  Immutable dataclasses describing one inbound query, the answers produced for
  it and the Response unit returned by Resolver.resolve() and stored in the
  ResponseCache.
"""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from dnslib import QTYPE, RCODE

CacheKey = Tuple[str, int]


class ResponseStatus(str, enum.Enum):
    """Outcome of a single resolution."""

    OK = "ok"
    BLOCKED = "blocked"
    UPSTREAM_ERROR = "upstream_error"


def normalize_name(name: str) -> str:
    """Brief: Lowercase a domain name and drop a single trailing dot.

    Inputs:
      - name: Domain name as received.

    Outputs:
      - str: Normalized name.

    Example:
      >>> normalize_name("Example.COM.")
      'example.com'
    """

    return str(name or "").strip().rstrip(".").lower()


def parse_record_type(value: Union[str, int, None]) -> str:
    """Brief: Normalize a DNS record type mnemonic or numeric code.

    Inputs:
      - value: "A", "aaaa", "28", 28 or None (None means "A").

    Outputs:
      - str: Canonical upper-case mnemonic known to dnslib.

    Raises:
      - ValueError: When the value is not a known record type.

    Example:
      >>> parse_record_type("aaaa")
      'AAAA'
      >>> parse_record_type(15)
      'MX'
    """

    if value is None or value == "":
        return "A"
    if isinstance(value, int) or str(value).strip().isdigit():
        code = int(value)
        if code in QTYPE.forward:
            return QTYPE.forward[code]
        raise ValueError(f"unknown record type code: {code}")
    text = str(value).strip().upper()
    if text in QTYPE.reverse:
        return text
    raise ValueError(f"unknown record type: {value!r}")


def qtype_code(record_type: str) -> int:
    """Brief: Return the numeric QTYPE for a mnemonic or generic TYPEnnn name."""

    if record_type in QTYPE.reverse:
        return int(QTYPE.reverse[record_type])
    return int(record_type[4:])


def rcode_name(rcode: int) -> str:
    """Brief: Return the RCODE mnemonic (e.g. NXDOMAIN) or RCODE<n>."""

    return str(RCODE.forward.get(int(rcode), f"RCODE{rcode}"))


@dataclass(frozen=True)
class Query:
    """A single inbound DNS question.

    Inputs:
      - name: Domain name; normalized to lowercase without trailing dot.
      - record_type: Record type mnemonic or code; normalized to mnemonic.
      - origin_region: Optional coarse geo code supplied by the network edge.

    Example:
      >>> q = Query("Example.com.", "aaaa", "BD")
      >>> (q.name, q.record_type, q.cache_key)
      ('example.com', 'AAAA', ('example.com', 28))
    """

    name: str
    record_type: str = "A"
    origin_region: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_name(self.name))
        object.__setattr__(self, "record_type", parse_record_type(self.record_type))

    @property
    def qtype(self) -> int:
        return qtype_code(self.record_type)

    @property
    def cache_key(self) -> CacheKey:
        return (self.name, self.qtype)


@dataclass(frozen=True)
class Answer:
    """One resource record in a Response."""

    name: str
    record_type: str
    ttl: int
    data: str

    def __post_init__(self) -> None:
        # TTLs are never negative on the wire.
        object.__setattr__(self, "ttl", max(0, int(self.ttl)))

    def to_json(self) -> Dict[str, Any]:
        """Brief: Render as a DNS-JSON answer object with a numeric type."""

        return {
            "name": self.name,
            "type": qtype_code(self.record_type),
            "TTL": self.ttl,
            "data": self.data,
        }


@dataclass(frozen=True)
class Response:
    """Result of resolving one Query.

    Inputs:
      - status: ResponseStatus for the resolution.
      - answers: Ordered tuple of Answer records.
      - note: Optional human-readable annotation (rendered as Comment).
      - rcode: DNS RCODE rendered as the JSON Status field.

    Notes:
      - A BLOCKED response never carries answers; construction enforces it.
    """

    status: ResponseStatus
    answers: Tuple[Answer, ...] = field(default_factory=tuple)
    note: Optional[str] = None
    rcode: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "answers", tuple(self.answers))
        if self.status is ResponseStatus.BLOCKED and self.answers:
            raise ValueError("blocked responses cannot carry answers")

    @classmethod
    def blocked(cls, note: str = "blocked") -> "Response":
        return cls(ResponseStatus.BLOCKED, (), note=note, rcode=0)

    @classmethod
    def upstream_error(cls, note: str, rcode: int = 2) -> "Response":
        return cls(ResponseStatus.UPSTREAM_ERROR, (), note=note, rcode=rcode)

    def to_json(self) -> Dict[str, Any]:
        """Brief: Render the DNS-JSON body served by /dns-query.

        Outputs:
          - dict with Status, Answer and optional Comment (plus error for
            locally generated failures).

        Example:
          >>> Response.blocked().to_json()
          {'Status': 0, 'Answer': [], 'Comment': 'blocked'}
        """

        body: Dict[str, Any] = {
            "Status": int(self.rcode),
            "Answer": [a.to_json() for a in self.answers],
        }
        if self.note:
            body["Comment"] = self.note
        if self.status is ResponseStatus.UPSTREAM_ERROR and self.rcode == 2:
            body["error"] = self.note or "upstream error"
        return body


def answers_for(name: str, ttl: int, addresses: Sequence[str]) -> Tuple[Answer, ...]:
    """Brief: Build one Answer per address, typed A or AAAA by address family.

    Example:
      >>> [a.record_type for a in answers_for("x.test", 60, ["192.0.2.1", "2001:db8::1"])]
      ['A', 'AAAA']
    """

    out = []
    for addr in addresses:
        try:
            rtype = "AAAA" if ipaddress.ip_address(addr).version == 6 else "A"
        except ValueError:
            rtype = "A"
        out.append(Answer(name, rtype, ttl, addr))
    return tuple(out)
