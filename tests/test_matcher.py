"""
Brief: Tests for bdixdns.matcher.Matcher block-list and override lookups.

Inputs:
  - None

Outputs:
  - None
"""

import pytest

from bdixdns.matcher import Matcher, compile_glob


@pytest.fixture
def matcher():
    return Matcher(
        ["tracking.", "*.adnxs.com", "Doubleclick"],
        {"prothomalo.com": ["103.101.91.10"], "YouTube.com.": ["180.87.36.25"]},
    )


def test_literal_pattern_matches_anywhere(matcher):
    """
    Brief: Literal patterns are substring matches, not DNS-suffix matches.

    Inputs:
      - name containing the literal in the middle

    Outputs:
      - None: Asserts blocked
    """
    assert matcher.is_blocked("tracking.ads.example.com")
    assert matcher.is_blocked("metrics.tracking.example.net")
    assert matcher.is_blocked("ad.doubleclick.net")


def test_glob_pattern_is_anchored(matcher):
    """
    Brief: Glob patterns must match the whole name.

    Inputs:
      - names with and without the glob suffix

    Outputs:
      - None: Asserts anchored semantics
    """
    assert matcher.is_blocked("secure.adnxs.com")
    assert not matcher.is_blocked("adnxs.com")
    assert not matcher.is_blocked("secure.adnxs.com.evil.example")


def test_block_check_is_case_and_trailing_dot_insensitive(matcher):
    assert matcher.is_blocked("SECURE.ADNXS.COM.")
    assert matcher.is_blocked("Tracking.Example.")


def test_unmatched_and_odd_names_fall_through(matcher):
    """
    Brief: Block and override lookups are total over arbitrary strings.

    Inputs:
      - empty, whitespace and non-DNS strings

    Outputs:
      - None: Asserts no exception and no match
    """
    for name in ("", " ", ".", "example.com", "[weird]*name", "a" * 300):
        assert matcher.is_blocked(name) is False
        assert matcher.override_for(name) is None


def test_glob_star_matches_empty_run():
    assert compile_glob("ads*.example").fullmatch("ads.example")
    assert compile_glob("*").fullmatch("")


def test_glob_treats_other_metacharacters_literally():
    pattern = compile_glob("ad?.ex[a]mple.*")
    assert pattern.fullmatch("ad?.ex[a]mple.com")
    assert not pattern.fullmatch("ads.example.com")


def test_override_exact_case_insensitive(matcher):
    assert matcher.override_for("prothomalo.com") == ("103.101.91.10",)
    assert matcher.override_for("PROTHOMALO.COM.") == ("103.101.91.10",)
    assert matcher.override_for("youtube.com") == ("180.87.36.25",)


def test_override_does_not_apply_to_subdomains(matcher):
    assert matcher.override_for("www.prothomalo.com") is None
    assert matcher.override_for("prothomalo.com.bd") is None


def test_empty_tables():
    m = Matcher()
    assert m.is_blocked("anything.example") is False
    assert m.override_for("anything.example") is None
