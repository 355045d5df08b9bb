"""Configuration parsing and typed models for bdixdns.

Brief:
  This module turns a YAML configuration file into the immutable ProxyConfig
  object that is handed to the Matcher, UpstreamSelector and Resolver at
  startup. It centralizes:
    - reading YAML config files
    - merging variables from config/env/CLI
    - JSON Schema validation (via config_schema.validate_config)
    - typed validation and normalization of the static tables (pydantic)

Inputs:
  - YAML config paths or already-parsed mappings

Outputs:
  - ProxyConfig instances, or ConfigInvalid on any malformed table
"""

from __future__ import annotations

import ipaddress
import os
import re
import urllib.parse
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, validator

from .config_schema import validate_config

DEFAULT_UPSTREAM = "https://cloudflare-dns.com/dns-query"


class ConfigInvalid(ValueError):
    """Brief: Raised when configuration cannot be loaded unambiguously.

    Notes:
      - Fatal at startup; the server must not start with partial tables.
    """


def normalize_endpoint(value: str) -> str:
    """Brief: Normalize an upstream endpoint identifier to a DoH JSON URL.

    Inputs:
      - value: Full http(s) URL, or a bare resolver host name.

    Outputs:
      - str: URL; bare hosts become https://<host>/dns-query.

    Raises:
      - ValueError: For empty values or unsupported URL schemes.

    Example:
      >>> normalize_endpoint("dns.google")
      'https://dns.google/dns-query'
      >>> normalize_endpoint("https://dns.google/resolve")
      'https://dns.google/resolve'
    """

    text = str(value or "").strip()
    if not text:
        raise ValueError("upstream endpoint must be a non-empty string")
    if "://" not in text:
        text = f"https://{text.strip('/')}/dns-query"
    parsed = urllib.parse.urlparse(text)
    if parsed.scheme not in ("https", "http"):
        raise ValueError(f"unsupported upstream URL scheme: {parsed.scheme!r}")
    if not parsed.hostname:
        raise ValueError(f"upstream URL has no host: {text!r}")
    return text


class ServerSettings(BaseModel):
    """Brief: Listen address for the HTTP front end."""

    host: str = "127.0.0.1"
    port: int = Field(default=8053, ge=1, le=65535)

    class Config:
        frozen = True


class CacheSettings(BaseModel):
    """Brief: ResponseCache tuning.

    Inputs:
      - horizon_seconds: Freshness horizon for cached upstream answers.
      - maxsize: Maximum number of entries held per shard.
      - shards: Number of independently locked shards.
    """

    horizon_seconds: int = Field(default=300, ge=1)
    maxsize: int = Field(default=10000, ge=1)
    shards: int = Field(default=16, ge=1)

    class Config:
        frozen = True


class UpstreamSettings(BaseModel):
    """Brief: Region to upstream DoH endpoint table plus its mandatory default.

    Inputs:
      - timeout_ms: Per-request deadline for one upstream fetch.
      - default: Endpoint used for missing, empty or unmapped region codes.
      - regions: Case-sensitive region code -> endpoint mapping.
    """

    timeout_ms: int = Field(default=2000, ge=1)
    default: str = DEFAULT_UPSTREAM
    regions: Dict[str, str] = Field(default_factory=dict)

    class Config:
        frozen = True

    @validator("default")
    def _normalize_default(cls, v):  # type: ignore[no-untyped-def]
        return normalize_endpoint(v)

    @validator("regions")
    def _normalize_regions(cls, v):  # type: ignore[no-untyped-def]
        out: Dict[str, str] = {}
        for code, endpoint in (v or {}).items():
            key = str(code).strip()
            if not key:
                raise ValueError("region codes must be non-empty")
            out[key] = normalize_endpoint(endpoint)
        return out


class ProxyConfig(BaseModel):
    """Brief: Process-wide immutable configuration for the resolving proxy.

    Inputs:
      - logging: Mapping passed to init_logging().
      - server: ServerSettings for the HTTP listener.
      - cache: CacheSettings for the ResponseCache.
      - upstream: UpstreamSettings (region table and timeout).
      - overrides: Exact domain -> non-empty list of preferred addresses.
      - blocklist: Substring or `*` glob patterns.
      - override_ttl: TTL in seconds placed on override answers.
      - default_name: Name queried when a request omits `name`.
      - region_header: Edge header carrying the origin region, or None.
      - background_workers: Threads used for background cache writes.
      - shutdown_timeout: Seconds to wait for pending cache writes at exit.

    Outputs:
      - Frozen ProxyConfig instance.

    Example:
      >>> cfg = ProxyConfig(overrides={"Example.COM.": ["192.0.2.1"]})
      >>> cfg.overrides["example.com"]
      ('192.0.2.1',)
    """

    logging: Dict[str, Any] = Field(default_factory=dict)
    server: ServerSettings = Field(default_factory=ServerSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)
    overrides: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)
    blocklist: Tuple[str, ...] = ()
    override_ttl: int = Field(default=3600, ge=0)
    default_name: str = "google.com"
    region_header: Optional[str] = "CF-IPCountry"
    background_workers: int = Field(default=4, ge=1)
    shutdown_timeout: float = Field(default=5.0, ge=0)

    class Config:
        frozen = True

    @validator("overrides", pre=True)
    def _normalize_overrides(cls, v):  # type: ignore[no-untyped-def]
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("overrides must be a mapping of domain -> addresses")
        out: Dict[str, Tuple[str, ...]] = {}
        for raw_name, raw_addrs in v.items():
            name = str(raw_name or "").strip().rstrip(".").lower()
            if not name:
                raise ValueError("override names must be non-empty")
            if isinstance(raw_addrs, str):
                raw_addrs = [raw_addrs]
            if not isinstance(raw_addrs, (list, tuple)) or not raw_addrs:
                raise ValueError(f"override for {name!r} must list at least one address")
            addrs: List[str] = []
            for addr in raw_addrs:
                try:
                    addrs.append(str(ipaddress.ip_address(str(addr).strip())))
                except ValueError:
                    raise ValueError(f"override for {name!r} has invalid address {addr!r}")
            if name in out and out[name] != tuple(addrs):
                raise ValueError(f"override for {name!r} is defined more than once")
            out[name] = tuple(addrs)
        return out

    @validator("blocklist", pre=True)
    def _normalize_blocklist(cls, v):  # type: ignore[no-untyped-def]
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        patterns: List[str] = []
        for item in v:
            text = str(item or "").strip().lower()
            if not text or not text.strip("*"):
                raise ValueError(f"block pattern {item!r} would match every name")
            patterns.append(text)
        return tuple(patterns)

    @validator("default_name")
    def _normalize_default_name(cls, v):  # type: ignore[no-untyped-def]
        name = str(v).strip().rstrip(".").lower()
        if not name:
            raise ValueError("default_name must be non-empty")
        return name

    @validator("region_header", pre=True)
    def _normalize_region_header(cls, v):  # type: ignore[no-untyped-def]
        if v is None:
            return None
        text = str(v).strip()
        return text or None


def _is_var_key(key: str) -> bool:
    """Brief: True when key is ALL_UPPERCASE and matches [A-Z_][A-Z0-9_]*."""

    return bool(key) and bool(re.fullmatch(r"[A-Z_][A-Z0-9_]*", key))


def _parse_yaml_value(text: str) -> Any:
    """Brief: Parse a CLI/environment variable value as YAML, else keep text."""

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['vars'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['vars'].

    Precedence:
      - CLI (-v/--var) overrides environment overrides config-file vars.

    Example:
      >>> cfg = {'vars': {'TTL': 100}}
      >>> parse_config_variables(cfg, cli_vars=['TTL=300'], environ={})['TTL']
      300
    """

    base = cfg.get("vars")
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ValueError("config.vars must be a mapping when present")

    env = os.environ if environ is None else environ
    for k, v in env.items():
        if isinstance(k, str) and _is_var_key(k):
            merged[k] = _parse_yaml_value(str(v))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ValueError(
                "Invalid -v/--var value (expected KEY=YAML), got: %r" % assignment
            )
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not _is_var_key(k):
            raise ValueError(
                "Invalid variable name %r (must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*)"
                % k
            )
        merged[k] = _parse_yaml_value(raw)

    cfg["vars"] = merged
    return merged


def build_proxy_config(cfg: Dict[str, Any]) -> ProxyConfig:
    """Brief: Build a ProxyConfig from an already-validated mapping.

    Inputs:
      - cfg: Mapping with variables already expanded.

    Outputs:
      - ProxyConfig.

    Raises:
      - ConfigInvalid: When any table fails typed validation.
    """

    try:
        return ProxyConfig(**cfg)
    except ValidationError as exc:
        raise ConfigInvalid(f"Invalid configuration: {exc}") from exc
    except TypeError as exc:
        raise ConfigInvalid(f"Invalid configuration: {exc}") from exc


def load_config(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> ProxyConfig:
    """Brief: Read, variable-merge, schema-validate and type a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - cli_vars: Optional list of CLI `KEY=YAML` assignments (from -v/--var).
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - ProxyConfig.

    Raises:
      - ConfigInvalid: For unreadable files, YAML errors, schema violations or
        malformed tables.
    """

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigInvalid(f"Cannot read configuration {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigInvalid(f"Cannot parse configuration {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ConfigInvalid("Configuration root must be a mapping")

    try:
        parse_config_variables(cfg, cli_vars=cli_vars, environ=environ)
        validate_config(cfg, config_path=config_path)
    except ConfigInvalid:
        raise
    except ValueError as exc:
        raise ConfigInvalid(str(exc)) from exc

    return build_proxy_config(cfg)
