"""
Brief: Tests for bdixdns.config.config_parser (YAML loading and typed tables).

Inputs:
  - None

Outputs:
  - None
"""

import textwrap

import pytest

from bdixdns.config.config_parser import (
    ConfigInvalid,
    ProxyConfig,
    load_config,
    normalize_endpoint,
    parse_config_variables,
)


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return str(path)


def test_load_full_config(tmp_path):
    path = _write(
        tmp_path,
        """
        server:
          host: 0.0.0.0
          port: 8080
        cache:
          horizon_seconds: 120
        upstream:
          timeout_ms: 1500
          default: https://cloudflare-dns.com/dns-query
          regions:
            BD: dns.google
        overrides:
          Prothomalo.COM.: [103.101.91.10]
        blocklist:
          - Tracking.
          - "*.adnxs.com"
        """,
    )
    cfg = load_config(path, environ={})

    assert cfg.server.host == "0.0.0.0"
    assert cfg.server.port == 8080
    assert cfg.cache.horizon_seconds == 120
    assert cfg.upstream.timeout_ms == 1500
    assert cfg.upstream.regions == {"BD": "https://dns.google/dns-query"}
    assert cfg.overrides == {"prothomalo.com": ("103.101.91.10",)}
    assert cfg.blocklist == ("tracking.", "*.adnxs.com")
    assert cfg.override_ttl == 3600
    assert cfg.default_name == "google.com"


def test_vars_from_file_env_and_cli(tmp_path):
    """
    Brief: CLI vars beat environment vars, which beat config-file vars.

    Inputs:
      - tmp_path: pytest temp directory

    Outputs:
      - None: Asserts expanded values
    """
    path = _write(
        tmp_path,
        """
        vars:
          UPSTREAM: https://one.example/dns-query
          TTL: 60
          ADS: ["ads.", "*.doubleclick.net"]
        upstream:
          default: ${UPSTREAM}
        override_ttl: ${TTL}
        blocklist: [$ADS, tracker.]
        """,
    )
    cfg = load_config(
        path,
        cli_vars=["TTL=900"],
        environ={"UPSTREAM": "https://two.example/resolve", "lowercase": "ignored"},
    )
    assert cfg.upstream.default == "https://two.example/resolve"
    assert cfg.override_ttl == 900
    assert cfg.blocklist == ("ads.", "*.doubleclick.net", "tracker.")


@pytest.mark.parametrize(
    "body",
    [
        "upstream: {default: ftp://x.example}\n",
        "upstream: {default: https://x.example}\noverrides: {a.example: []}\n",
        "upstream: {default: https://x.example}\noverrides: {a.example: [not-an-ip]}\n",
        "upstream: {default: https://x.example}\nblocklist: ['*']\n",
        "upstream: {default: https://x.example}\ncache: {horizon_seconds: 0}\n",
        "server: {port: 8053}\n",
        "- just\n- a list\n",
        "upstream: {default: [unclosed\n",
    ],
)
def test_malformed_config_raises(tmp_path, body):
    with pytest.raises(ConfigInvalid):
        load_config(_write(tmp_path, body), environ={})


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigInvalid):
        load_config(str(tmp_path / "nope.yaml"), environ={})


def test_bad_cli_var_raises(tmp_path):
    path = _write(tmp_path, "upstream: {default: https://x.example}\n")
    with pytest.raises(ConfigInvalid):
        load_config(path, cli_vars=["lower=1"], environ={})
    with pytest.raises(ConfigInvalid):
        load_config(path, cli_vars=["NOEQUALS"], environ={})


def test_unknown_top_level_key_only_warns(tmp_path, caplog):
    path = _write(tmp_path, "upstream: {default: https://x.example}\nextra_thing: 1\n")
    with caplog.at_level("WARNING"):
        cfg = load_config(path, environ={})
    assert cfg.upstream.default == "https://x.example"
    assert "extra_thing" in caplog.text


def test_duplicate_override_with_conflicting_addresses():
    with pytest.raises(ValueError):
        ProxyConfig(overrides={"a.example": ["192.0.2.1"], "A.example.": ["192.0.2.2"]})


def test_override_addresses_are_canonicalized():
    cfg = ProxyConfig(overrides={"v6.example": ["2001:DB8::0001", "192.0.2.1"]})
    assert cfg.overrides["v6.example"] == ("2001:db8::1", "192.0.2.1")


def test_region_header_can_be_disabled():
    assert ProxyConfig(region_header="").region_header is None
    assert ProxyConfig(region_header=None).region_header is None


def test_config_is_immutable():
    cfg = ProxyConfig()
    with pytest.raises((TypeError, ValueError)):
        cfg.default_name = "other.example"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("dns.google", "https://dns.google/dns-query"),
        ("https://dns.google/resolve", "https://dns.google/resolve"),
        ("http://127.0.0.1:8053/dns-query", "http://127.0.0.1:8053/dns-query"),
    ],
)
def test_normalize_endpoint(raw, expected):
    assert normalize_endpoint(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "tls://dns.google", "https://"])
def test_normalize_endpoint_rejects(raw):
    with pytest.raises(ValueError):
        normalize_endpoint(raw)


def test_parse_config_variables_yaml_values():
    cfg = {}
    merged = parse_config_variables(cfg, cli_vars=["LIST=[a, b]", "FLAG=true"], environ={})
    assert merged == {"LIST": ["a", "b"], "FLAG": True}
    assert cfg["vars"] is merged
