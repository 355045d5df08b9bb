from __future__ import annotations

import argparse
import logging
import sys
from typing import List

import uvicorn

from .config.config_parser import ConfigInvalid, load_config
from .config.logging_config import init_logging
from .resolver import Resolver
from .servers.doh_api import create_doh_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DNS-over-HTTPS resolving proxy")
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    parser.add_argument(
        "-v",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Set a config variable (overrides environment and config-file vars).",
    )
    parser.add_argument("--host", default=None, help="Override server.host")
    parser.add_argument("--port", type=int, default=None, help="Override server.port")
    return parser


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the DoH proxy.
    Parses arguments, loads configuration, builds the resolver and serves it.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code (1 when the configuration is invalid).

    Example use:
        CLI:
            bdixdns --config config.yaml -v UPSTREAM=https://dns.google/resolve
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config, cli_vars=args.var)
    except ConfigInvalid as exc:
        print(str(exc), file=sys.stderr)
        return 1

    init_logging(config.logging)
    logger = logging.getLogger("bdixdns.main")
    logger.info("Loaded config from %s", args.config)
    logger.info(
        "Tables: %d overrides, %d block patterns, %d regional upstreams (default %s)",
        len(config.overrides),
        len(config.blocklist),
        len(config.upstream.regions),
        config.upstream.default,
    )

    resolver = Resolver.from_config(config)
    app = create_doh_app(resolver, config)

    host = args.host or config.server.host
    port = args.port or config.server.port
    server = uvicorn.Server(
        uvicorn.Config(app, host=host, port=port, log_config=None, log_level=None)
    )
    logger.info("Serving DNS-JSON on http://%s:%d/dns-query", host, port)
    server.run()
    logger.info("Stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
