"""
Unit tests for consent resolution.

Tests field-by-field defaulting and legacy grace normalization.
"""

from decimal import Decimal

from grace_meter.core.categories import Category
from grace_meter.core.consent import (
    DEFAULT_RULES,
    ConsentResolver,
    normalize_grace,
    resolve_with_defaults
)
from grace_meter.storage.models import ConsentSnapshot
from grace_meter.storage.repository import ConsentRepository


class TestNormalizeGrace:
    """Test legacy scalar grace handling."""

    def test_scalar_broadcast(self):
        """A bare number applies to every category."""
        assert normalize_grace(3) == {"porn": 3, "gambling": 3}

    def test_map_unchanged(self):
        """Maps and None pass through."""
        assert normalize_grace({"porn": 2}) == {"porn": 2}
        assert normalize_grace(None) is None

    def test_bool_is_not_a_number(self):
        """Booleans are not broadcast."""
        assert normalize_grace(True) is True


class TestResolveWithDefaults:
    """Test field-by-field resolution."""

    def test_no_snapshot_gives_defaults(self):
        """Absent consent yields the documented defaults."""
        rules = resolve_with_defaults(None)
        assert rules.grace == {Category.PORN: 1, Category.GAMBLING: 0}
        assert rules.rates == {Category.PORN: Decimal("0.05"), Category.GAMBLING: Decimal("0.50")}
        assert rules.categories_on == {Category.PORN: True, Category.GAMBLING: True}

    def test_missing_fields_default_independently(self):
        """A snapshot with only grace still gets default rates and toggles."""
        rules = resolve_with_defaults(ConsentSnapshot(user_id="u1", grace={"porn": 5, "gambling": 2}))
        assert rules.grace == {Category.PORN: 5, Category.GAMBLING: 2}
        assert rules.rates == DEFAULT_RULES.rates
        assert rules.categories_on == DEFAULT_RULES.categories_on

    def test_missing_category_in_map_defaults(self):
        """A category absent from a map falls back on its own."""
        rules = resolve_with_defaults(ConsentSnapshot(
            user_id="u1",
            rates={"gambling": 1.25},
            categories_on={"porn": False},
        ))
        assert rules.rates[Category.PORN] == Decimal("0.05")
        assert rules.rates[Category.GAMBLING] == Decimal("1.25")
        assert rules.categories_on == {Category.PORN: False, Category.GAMBLING: True}

    def test_scalar_grace_in_stored_snapshot(self):
        """Legacy scalar grace is still understood on read."""
        rules = resolve_with_defaults(ConsentSnapshot(user_id="u1", grace=4))
        assert rules.grace == {Category.PORN: 4, Category.GAMBLING: 4}

    def test_invalid_values_fall_back(self):
        """Non-numeric or negative values use defaults or clamp."""
        rules = resolve_with_defaults(ConsentSnapshot(
            user_id="u1",
            grace={"porn": "lots", "gambling": -3},
            rates={"porn": "abc", "gambling": -1},
            categories_on={"porn": "yes"},
        ))
        assert rules.grace == {Category.PORN: 1, Category.GAMBLING: 0}
        assert rules.rates == DEFAULT_RULES.rates
        assert rules.categories_on[Category.PORN] is True

    def test_effective_rate_uses_floor(self):
        """Rates below a category floor are raised to it."""
        rules = resolve_with_defaults(ConsentSnapshot(user_id="u1", rates={"porn": 0.01, "gambling": 0.10}))
        assert rules.effective_rate(Category.PORN) == Decimal("0.05")
        assert rules.effective_rate(Category.GAMBLING) == Decimal("0.25")

    def test_snapshot_not_mutated(self):
        """Resolution never touches the stored values."""
        grace = {"porn": 2}
        snapshot = ConsentSnapshot(user_id="u1", grace=grace)
        resolve_with_defaults(snapshot)
        assert snapshot.grace == {"porn": 2}


class TestConsentResolver:
    """Test resolution through the repository."""

    def test_resolve_is_idempotent(self):
        """Repeated resolution gives the same rules and leaves storage alone."""
        repo = ConsentRepository()
        repo.save(ConsentSnapshot(user_id="u1", grace={"porn": 2}))
        resolver = ConsentResolver(repo)
        assert resolver.resolve("u1") == resolver.resolve("u1")
        assert repo.get("u1").grace == {"porn": 2}

    def test_unknown_user_gets_defaults(self):
        """Users without consent resolve to the defaults."""
        resolver = ConsentResolver(ConsentRepository())
        assert resolver.resolve("nobody").grace == DEFAULT_RULES.grace
