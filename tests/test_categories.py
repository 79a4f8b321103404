"""
Unit tests for domain categorization.

Tests label-boundary matching, rule ordering and URL parsing.
"""

import pytest

from grace_meter.core.categories import (
    Category,
    DomainCategorizer,
    categorize,
    host_from_url,
    normalize_host,
    parse_category
)


class TestCategorize:
    """Test the built-in categorizer."""

    def test_exact_seed_domain(self):
        """A seed with a TLD matches its category."""
        assert categorize("pornhub.com") == Category.PORN
        assert categorize("stake.com") == Category.GAMBLING

    def test_www_prefix_is_stripped(self):
        """Leading www. does not affect matching."""
        assert categorize("www.pornhub.com") == Category.PORN

    def test_subdomain_matches(self):
        """Subdomains of a seed domain match."""
        assert categorize("sub.pornhub.com") == Category.PORN
        assert categorize("sports.draftkings.com") == Category.GAMBLING

    def test_substring_does_not_match(self):
        """A seed must start at a label boundary."""
        assert categorize("notpornhub.com") is None
        assert categorize("mistake.com") is None

    def test_country_code_suffix(self):
        """Two-part TLD suffixes match."""
        assert categorize("bet365.co.uk") == Category.GAMBLING

    def test_seed_followed_by_more_labels(self):
        """A seed must be followed by the TLD only."""
        assert categorize("pornhub.com.example.org") is None
        assert categorize("stake.example.io") is None
        assert categorize("pornhub.evil.de") is None

    def test_unrelated_domain(self):
        """Untracked domains return None."""
        assert categorize("example.com") is None

    def test_malformed_input_returns_none(self):
        """Garbage never raises."""
        assert categorize("") is None
        assert categorize("not a host") is None
        assert categorize(None) is None

    def test_uppercase_and_trailing_dot(self):
        """Hostnames are normalized before matching."""
        assert categorize("WWW.PornHub.COM.") == Category.PORN


class TestDomainCategorizer:
    """Test configurable categorizers."""

    def test_custom_seeds(self):
        """Seeds can be replaced per category."""
        categorizer = DomainCategorizer.from_seeds({
            Category.PORN: ["adultsite"],
            Category.GAMBLING: ["casino"],
        })
        assert categorizer.categorize("adultsite.net") == Category.PORN
        assert categorizer.categorize("casino.io") == Category.GAMBLING
        assert categorizer.categorize("pornhub.com") is None

    def test_full_domain_seed(self):
        """Seeds with a dot match that domain and its subdomains only."""
        categorizer = DomainCategorizer.from_seeds({Category.GAMBLING: ["caesars.com"]})
        assert categorizer.categorize("caesars.com") == Category.GAMBLING
        assert categorizer.categorize("sportsbook.caesars.com") == Category.GAMBLING
        assert categorizer.categorize("caesars.net") is None
        assert categorizer.categorize("notcaesars.com") is None

    def test_first_matching_category_wins(self):
        """Rules are checked in category declaration order."""
        categorizer = DomainCategorizer.from_seeds({
            Category.PORN: ["shared"],
            Category.GAMBLING: ["shared"],
        })
        assert categorizer.categorize("shared.com") == Category.PORN
        assert [category for category, _ in categorizer.rules] == [Category.PORN, Category.GAMBLING]

    def test_empty_seed_list_has_no_rule(self):
        """A category without seeds never matches."""
        categorizer = DomainCategorizer.from_seeds({Category.PORN: ["pornhub"]})
        assert len(categorizer.rules) == 1
        assert categorizer.categorize("stake.com") is None


class TestHelpers:
    """Test hostname and category helpers."""

    @pytest.mark.parametrize("url,expected", [
        ("https://www.pornhub.com/view?x=1", "pornhub.com"),
        ("http://Sub.Stake.com:8080/", "sub.stake.com"),
        ("stake.com/path", "stake.com"),
        ("", ""),
        ("http://[invalid", ""),
    ])
    def test_host_from_url(self, url, expected):
        """URLs and bare domains reduce to a normalized host."""
        assert host_from_url(url) == expected

    def test_normalize_host(self):
        """Lowercases and strips www. and trailing dots."""
        assert normalize_host(" WWW.Example.COM. ") == "example.com"
        assert normalize_host(None) == ""

    def test_parse_category(self):
        """Category names parse case-insensitively; unknown names give None."""
        assert parse_category("Porn") == Category.PORN
        assert parse_category(Category.GAMBLING) == Category.GAMBLING
        assert parse_category("crypto") is None
        assert parse_category(None) is None
