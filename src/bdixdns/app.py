"""Compatibility module exposing a FastAPI app instance for uvicorn.

This module builds the DoH application from configuration so that tools like
uvicorn can run "bdixdns.app:app" directly in addition to the `bdixdns` CLI.
The configuration path is taken from BDIXDNS_CONFIG; built-in defaults are
used when it is unset.
"""

from __future__ import annotations

import os

from .config.config_parser import ProxyConfig, load_config
from .resolver import Resolver
from .servers.doh_api import create_doh_app

_config_path = os.environ.get("BDIXDNS_CONFIG")
_config = load_config(_config_path) if _config_path else ProxyConfig()
app = create_doh_app(Resolver.from_config(_config), _config)
