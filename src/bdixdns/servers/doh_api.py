from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..config.config_parser import ProxyConfig
from ..models import Query, Response as DNSResponse, normalize_name, parse_record_type
from ..resolver import Resolver

logger = logging.getLogger(__name__)

_DNS_JSON_CT = "application/dns-json"

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

_BANNER = """bdixdns DNS-over-HTTPS proxy
DNS query: /dns-query?name=google.com&type=A
CORS: enabled for all origins
"""


def _headers(max_age: int) -> Dict[str, str]:
    """
    Brief: Build the CORS + Cache-Control headers for a /dns-query response.

    Inputs:
    - max_age: seconds clients may cache the body (0 disables caching)

    Outputs:
    - dict of header name -> value

    Example:
        >>> _headers(0)["Cache-Control"]
        'public, max-age=0'
    """
    return {**CORS_HEADERS, "Cache-Control": f"public, max-age={max(0, int(max_age))}"}


def _json(body: Dict[str, Any], *, status_code: int = 200, max_age: int = 0) -> JSONResponse:
    return JSONResponse(
        content=body,
        status_code=status_code,
        media_type=_DNS_JSON_CT,
        headers=_headers(max_age),
    )


def origin_region(request: Request, param: Optional[str], header: Optional[str]) -> Optional[str]:
    """
    Brief: Pick the origin region from the query string or the edge header.

    Inputs:
    - request: incoming request
    - param: value of the `region` query parameter, if any
    - header: name of the edge-supplied geo header, or None to disable

    Outputs:
    - region code string, or None when neither source provides one
    """
    if param:
        return param.strip() or None
    if header:
        value = request.headers.get(header)
        if value:
            return value.strip() or None
    return None


def create_doh_app(resolver: Resolver, config: Optional[ProxyConfig] = None) -> FastAPI:
    """
    Brief: Create the FastAPI app serving DNS-JSON queries on /dns-query.

    Inputs:
    - resolver: Resolver used for every query
    - config: ProxyConfig (defaults apply when omitted)

    Outputs:
    - FastAPI application with GET/OPTIONS /dns-query, GET / and GET /health.

    Example:
      >>> from bdixdns.resolver import Resolver
      >>> app = create_doh_app(Resolver.from_config(ProxyConfig()))
    """
    cfg = config or ProxyConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Pending cache writes finish (bounded) before the process exits.
        if not resolver.close(timeout=cfg.shutdown_timeout):
            logger.warning("Shutdown timed out with cache writes still pending")

    app = FastAPI(
        title="bdixdns",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.resolver = resolver
    app.state.config = cfg

    @app.get("/dns-query")
    def dns_query(
        request: Request,
        name: Optional[str] = None,
        type: Optional[str] = None,  # noqa: A002 (query parameter name)
        region: Optional[str] = None,
    ) -> Response:
        """
        Brief: Handle GET /dns-query?name=<domain>&type=<TYPE>[&region=<code>].

        Inputs:
        - request: FastAPI Request (for the edge geo header)
        - name: domain to resolve (default_name when omitted)
        - type: record type mnemonic or code (A when omitted)
        - region: optional origin region code

        Outputs:
        - application/dns-json Response with CORS and Cache-Control headers.
        """
        qname = normalize_name(name or "") or cfg.default_name
        try:
            record_type = parse_record_type(type)
        except ValueError as exc:
            return _json({"Status": 2, "error": str(exc)}, status_code=400)

        query = Query(qname, record_type, origin_region(request, region, cfg.region_header))
        try:
            result, max_age = resolver.resolve_with_meta(query)
        except Exception:
            logger.exception("resolver raised for %s/%s", query.name, query.record_type)
            body = DNSResponse.upstream_error("internal resolver error").to_json()
            return _json(body, status_code=500)

        return _json(result.to_json(), max_age=max_age)

    @app.options("/dns-query")
    def dns_query_preflight() -> Response:
        """Brief: CORS preflight; 204 with no body."""
        return Response(status_code=204, headers=_headers(0))

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return _BANNER

    return app
