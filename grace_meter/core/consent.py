"""
Consent and billing-rule resolution.

Turns a stored consent snapshot into the grace, rates and toggles used for
billing. Every field falls back to its default independently.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .categories import CATEGORY_FLOORS, Category
from grace_meter.storage.models import ConsentSnapshot
from grace_meter.storage.repository import ConsentRepository


@dataclass(frozen=True)
class ConsentRules:
    """Resolved per-category billing rules."""
    grace: Dict[Category, int]
    rates: Dict[Category, Decimal]
    categories_on: Dict[Category, bool]
    floors: Dict[Category, Decimal] = field(default_factory=lambda: dict(CATEGORY_FLOORS))

    def effective_rate(self, category: Category) -> Decimal:
        """Configured rate raised to the category floor."""
        floor = self.floors.get(category, Decimal("0"))
        return max(self.rates[category], floor)


DEFAULT_RULES = ConsentRules(
    grace={Category.PORN: 1, Category.GAMBLING: 0},
    rates={Category.PORN: Decimal("0.05"), Category.GAMBLING: Decimal("0.50")},
    categories_on={Category.PORN: True, Category.GAMBLING: True},
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def normalize_grace(grace: Any) -> Any:
    """Broadcast a legacy scalar grace to every category.

    Maps and missing values pass through unchanged; defaults are applied
    later by resolve_with_defaults().
    """
    if _is_number(grace):
        return {category.value: grace for category in Category}
    return grace


def _resolve_grace(raw: Any, defaults: Dict[Category, int]) -> Dict[Category, int]:
    raw = normalize_grace(raw)
    if not isinstance(raw, dict):
        return dict(defaults)
    resolved = {}
    for category in Category:
        value = raw.get(category.value)
        if _is_number(value):
            resolved[category] = max(0, int(value))
        else:
            resolved[category] = defaults[category]
    return resolved


def _resolve_rates(raw: Any, defaults: Dict[Category, Decimal]) -> Dict[Category, Decimal]:
    if not isinstance(raw, dict):
        return dict(defaults)
    resolved = {}
    for category in Category:
        value = raw.get(category.value)
        rate = None
        if _is_number(value) or isinstance(value, str):
            try:
                rate = Decimal(str(value))
            except InvalidOperation:
                rate = None
        if rate is None or not rate.is_finite() or rate < 0:
            rate = defaults[category]
        resolved[category] = rate
    return resolved


def _resolve_toggles(raw: Any, defaults: Dict[Category, bool]) -> Dict[Category, bool]:
    if not isinstance(raw, dict):
        return dict(defaults)
    resolved = {}
    for category in Category:
        value = raw.get(category.value)
        resolved[category] = value if isinstance(value, bool) else defaults[category]
    return resolved


def resolve_with_defaults(
    snapshot: Optional[ConsentSnapshot],
    defaults: ConsentRules = DEFAULT_RULES
) -> ConsentRules:
    """Resolve a snapshot field by field against defaults.

    Pure function: the snapshot is never mutated. A missing snapshot,
    a missing field, or a missing category inside a field each fall back
    to the matching default on their own.

    Args:
        snapshot: Stored consent, or None if the user never consented
        defaults: Rules to fall back to

    Returns:
        Fully populated ConsentRules
    """
    if snapshot is None:
        return ConsentRules(
            grace=dict(defaults.grace),
            rates=dict(defaults.rates),
            categories_on=dict(defaults.categories_on),
            floors=dict(defaults.floors),
        )
    return ConsentRules(
        grace=_resolve_grace(snapshot.grace, defaults.grace),
        rates=_resolve_rates(snapshot.rates, defaults.rates),
        categories_on=_resolve_toggles(snapshot.categories_on, defaults.categories_on),
        floors=dict(defaults.floors),
    )


class ConsentResolver:
    """Resolves a user's billing rules from the consent store."""

    def __init__(self, repository: ConsentRepository, defaults: ConsentRules = DEFAULT_RULES):
        self.repository = repository
        self.defaults = defaults

    def resolve(self, user_id: str) -> ConsentRules:
        return resolve_with_defaults(self.repository.get(user_id), self.defaults)
