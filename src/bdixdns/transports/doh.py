import importlib.metadata
import logging
from typing import Any, Dict, Optional

import requests

from ..models import Answer, Response, ResponseStatus, parse_record_type, rcode_name

try:
    BDIXDNS_VERSION = importlib.metadata.version("bdixdns")
except importlib.metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    BDIXDNS_VERSION = "unknown"

logger = logging.getLogger(__name__)

_DNS_JSON_CT = "application/dns-json"


class UpstreamFailure(Exception):
    """
    Brief: Base class for failures talking to an upstream DoH resolver.

    Inputs:
    - message: Description of the error

    Outputs:
    - Exception instance
    """


class UpstreamUnreachable(UpstreamFailure):
    """Brief: Connect, TLS, timeout or non-200 HTTP failure."""


class UpstreamMalformed(UpstreamFailure):
    """Brief: Upstream body is not a DNS-JSON document of the expected shape."""


def _parse_answer(record: Any) -> Answer:
    """
    Brief: Convert one DNS-JSON answer object into an Answer.

    Inputs:
    - record: dict like {"name": "example.com.", "type": 1, "TTL": 300, "data": "..."}

    Outputs:
    - Answer

    Raises:
    - UpstreamMalformed for missing fields or non-numeric types/TTLs.

    Example:
        >>> _parse_answer({"name": "example.com.", "type": 1, "TTL": 60, "data": "192.0.2.1"})
        Answer(name='example.com', record_type='A', ttl=60, data='192.0.2.1')
    """
    if not isinstance(record, dict):
        raise UpstreamMalformed("answer entry is not an object")
    try:
        name = str(record["name"]).rstrip(".").lower()
        rtype = record["type"]
        data = record["data"]
        ttl = int(record.get("TTL", 0))
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamMalformed(f"answer entry missing or invalid field: {e}")
    if isinstance(rtype, bool) or not isinstance(rtype, int):
        raise UpstreamMalformed(f"answer type must be numeric, got {rtype!r}")
    try:
        record_type = parse_record_type(rtype)
    except ValueError:
        # Types dnslib does not know are kept under their generic name.
        record_type = f"TYPE{rtype}"
    return Answer(name=name, record_type=record_type, ttl=ttl, data=str(data))


def parse_dns_json(payload: Any) -> Response:
    """
    Brief: Normalize a decoded DNS-JSON document into a Response.

    Inputs:
    - payload: decoded JSON body from the upstream

    Outputs:
    - Response with status OK when Status == 0, otherwise UPSTREAM_ERROR
      carrying the upstream rcode and any answers it did return.

    Example:
        >>> r = parse_dns_json({"Status": 3, "Answer": []})
        >>> r.status.value, r.rcode, r.note
        ('upstream_error', 3, 'upstream returned NXDOMAIN')
    """
    if not isinstance(payload, dict):
        raise UpstreamMalformed("upstream body is not a JSON object")
    status = payload.get("Status")
    if isinstance(status, bool) or not isinstance(status, int):
        raise UpstreamMalformed(f"upstream Status must be an integer, got {status!r}")
    raw_answers = payload.get("Answer") or []
    if not isinstance(raw_answers, list):
        raise UpstreamMalformed("upstream Answer must be a list")
    answers = [_parse_answer(rec) for rec in raw_answers]

    comment = payload.get("Comment")
    if isinstance(comment, list):
        comment = "; ".join(str(c) for c in comment)
    note: Optional[str] = str(comment) if comment else None

    if status == 0:
        return Response(ResponseStatus.OK, tuple(answers), note=note, rcode=0)
    return Response(
        ResponseStatus.UPSTREAM_ERROR,
        tuple(answers),
        note=note or f"upstream returned {rcode_name(status)}",
        rcode=status,
    )


class UpstreamClient:
    """
    Brief: Fetches DNS-JSON answers from an upstream DoH resolver.

    Inputs (constructor):
    - timeout_ms: per-request deadline covering connect and read
    - session: optional requests.Session (a private one is created otherwise)
    - headers: optional extra request headers

    Outputs:
    - UpstreamClient with fetch() and close()

    Notes:
    - One outbound GET per fetch(); no retries.
    - Upstream DNS errors are Responses, only transport/parse problems raise.
    """

    def __init__(
        self,
        timeout_ms: int = 2000,
        *,
        session: Optional[requests.Session] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.timeout = max(1, int(timeout_ms)) / 1000.0
        self._session = session or requests.Session()
        self._headers: Dict[str, str] = {
            "Accept": _DNS_JSON_CT,
            "User-Agent": f"bdixdns v{BDIXDNS_VERSION}",
        }
        self._headers.update(headers or {})

    def fetch(self, endpoint: str, name: str, record_type: str) -> Response:
        """
        Brief: Query endpoint for (name, record_type) and normalize the reply.

        Inputs:
        - endpoint: DoH JSON URL, e.g. https://cloudflare-dns.com/dns-query
        - name: normalized query name
        - record_type: record type mnemonic, e.g. "AAAA"

        Outputs:
        - Response

        Raises:
        - UpstreamUnreachable for network/TLS/timeout errors and non-200 HTTP.
        - UpstreamMalformed when the body is not DNS-JSON.
        """
        params = {"name": name, "type": record_type}
        try:
            resp = self._session.get(
                endpoint, params=params, headers=self._headers, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise UpstreamUnreachable(f"timeout after {self.timeout:.1f}s contacting {endpoint}: {e}")
        except requests.RequestException as e:
            raise UpstreamUnreachable(f"network error contacting {endpoint}: {e}")

        if resp.status_code != 200:
            raise UpstreamUnreachable(f"HTTP {resp.status_code} from {endpoint}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise UpstreamMalformed(f"invalid JSON from {endpoint}: {e}")
        response = parse_dns_json(payload)
        logger.debug(
            "Upstream %s answered %s/%s with rcode %d (%d answers)",
            endpoint,
            name,
            record_type,
            response.rcode,
            len(response.answers),
        )
        return response

    def close(self) -> None:
        self._session.close()

