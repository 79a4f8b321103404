"""
Domain categorization.

Classifies hostnames into billing categories using suffix-anchored
pattern matching over ordered seed lists.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple
from urllib.parse import urlsplit


class Category(Enum):
    """Closed set of billing categories. Declaration order is match priority."""
    PORN = "porn"
    GAMBLING = "gambling"


# Minimum dollars per minute, enforced regardless of what a user configures
CATEGORY_FLOORS: Dict[Category, Decimal] = {
    Category.PORN: Decimal("0.05"),
    Category.GAMBLING: Decimal("0.25"),
}

DEFAULT_SEEDS: Dict[Category, Tuple[str, ...]] = {
    Category.PORN: (
        "pornhub",
        "xvideos",
        "xnxx",
        "xhamster",
        "redtube",
        "youporn",
        "onlyfans",
        "chaturbate",
    ),
    Category.GAMBLING: (
        "stake",
        "draftkings",
        "fanduel",
        "bet365",
        "betmgm",
        "pokerstars",
        "williamhill",
        "caesars.com",
    ),
}

# One TLD label, or a common second-level label plus a country code (e.g. "co.uk")
_TLD_SUFFIX = r"(?:(?:co|com|net|org|ac|gov|edu)\.[a-z]{2}|[a-z0-9-]{2,})"


def parse_category(value: str) -> Optional[Category]:
    """Return the Category named by value, or None if it is not one."""
    if isinstance(value, Category):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Category(value.strip().lower())
    except ValueError:
        return None


def normalize_host(hostname: str) -> str:
    """Lowercase a hostname and strip a trailing dot and leading "www."."""
    if not isinstance(hostname, str):
        return ""
    host = hostname.strip().lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def host_from_url(url: str) -> str:
    """Extract a normalized hostname from a URL or bare domain.

    Returns an empty string when nothing usable can be parsed.
    """
    if not isinstance(url, str) or not url.strip():
        return ""
    candidate = url.strip()
    if "://" not in candidate:
        candidate = "//" + candidate
    try:
        host = urlsplit(candidate).hostname or ""
    except ValueError:
        return ""
    return normalize_host(host)


def _seed_pattern(seeds: Iterable[str]) -> Optional[Pattern]:
    """Compile one category's seeds into a single label-anchored regex."""
    brands = []
    domains = []
    for seed in seeds:
        seed = normalize_host(seed)
        if not seed:
            continue
        if "." in seed:
            domains.append(re.escape(seed))
        else:
            brands.append(re.escape(seed))

    alternatives = []
    if brands:
        alternatives.append(rf"(?:{'|'.join(brands)})\.{_TLD_SUFFIX}")
    if domains:
        alternatives.append(rf"(?:{'|'.join(domains)})")
    if not alternatives:
        return None
    return re.compile(rf"(?:^|\.)(?:{'|'.join(alternatives)})$")


@dataclass(frozen=True)
class DomainCategorizer:
    """Ordered (category, matcher) rules. The first matching rule wins."""
    rules: Tuple[Tuple[Category, Pattern], ...]

    @classmethod
    def from_seeds(
        cls,
        seeds: Optional[Dict[Category, Sequence[str]]] = None
    ) -> "DomainCategorizer":
        """Build rules in category declaration order from seed lists."""
        seeds = DEFAULT_SEEDS if seeds is None else seeds
        rules: List[Tuple[Category, Pattern]] = []
        for category in Category:
            pattern = _seed_pattern(seeds.get(category, ()))
            if pattern is not None:
                rules.append((category, pattern))
        return cls(rules=tuple(rules))

    def categorize(self, hostname: str) -> Optional[Category]:
        """Classify a hostname, returning None when no seed matches."""
        host = normalize_host(hostname)
        if not host or " " in host:
            return None
        for category, pattern in self.rules:
            if pattern.search(host):
                return category
        return None


_default_categorizer = DomainCategorizer.from_seeds()


def categorize(hostname: str) -> Optional[Category]:
    """Classify a hostname with the built-in seed lists."""
    return _default_categorizer.categorize(hostname)
