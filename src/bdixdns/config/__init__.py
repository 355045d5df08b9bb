"""Configuration loading for bdixdns."""

from .config_parser import ConfigInvalid, ProxyConfig, load_config

__all__ = ["ConfigInvalid", "ProxyConfig", "load_config"]
