"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for billing configs.
"""

import os
import tempfile
from decimal import Decimal

import pytest
import yaml

from grace_meter.config.loader import (
    BillingConfig,
    default_config,
    load_billing_config
)
from grace_meter.core.categories import Category


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data: dict, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_data = {
            "min_charge_cents": 100,
            "currency": "EUR",
            "streak_lookback_days": 30,
            "processor": {"timeout_seconds": 10},
            "categories": {
                "porn": {"default_rate": 0.10, "default_grace": 2, "seeds": ["example.com"]},
                "gambling": {"default_rate": 0.75},
            }
        }

        config = load_billing_config(self._write_config(config_data))

        assert config.min_charge_cents == 100
        assert config.currency == "eur"
        assert config.streak_lookback_days == 30
        assert config.processor.timeout_seconds == 10.0
        assert config.categories[Category.PORN].default_rate == Decimal("0.1")
        assert config.categories[Category.PORN].default_grace == 2
        assert config.categories[Category.PORN].seeds == ("example.com",)
        assert config.categories[Category.GAMBLING].default_rate == Decimal("0.75")
        # Omitted keys keep built-in values
        assert config.categories[Category.GAMBLING].default_grace == 0

    def test_defaults_rules(self):
        """Test default rules are built from category settings."""
        rules = default_config().default_rules()
        assert rules.grace == {Category.PORN: 1, Category.GAMBLING: 0}
        assert rules.rates[Category.GAMBLING] == Decimal("0.50")
        assert all(rules.categories_on.values())

    def test_missing_file(self):
        """Test missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Billing config file not found"):
            load_billing_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_empty_file(self):
        """Test empty config file is rejected."""
        path = os.path.join(self.temp_dir, "empty.yaml")
        open(path, 'w').close()
        with pytest.raises(ValueError, match="Configuration file is empty"):
            load_billing_config(path)

    def test_invalid_yaml(self):
        """Test invalid YAML raises YAMLError."""
        path = os.path.join(self.temp_dir, "bad.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            f.write("categories: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_billing_config(path)

    def test_unknown_top_level_key(self):
        """Test unknown keys are rejected."""
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_billing_config(self._write_config({"min_charge": 50}))

    def test_unknown_category(self):
        """Test unknown categories are rejected."""
        config_data = {"categories": {"crypto": {"default_rate": 1.0}}}
        with pytest.raises(ValueError, match="Unknown category 'crypto'"):
            load_billing_config(self._write_config(config_data))

    def test_rate_below_floor(self):
        """Test a default rate under the category floor is rejected."""
        config_data = {"categories": {"gambling": {"default_rate": 0.10}}}
        with pytest.raises(ValueError, match="must be >= floor"):
            load_billing_config(self._write_config(config_data))

    @pytest.mark.parametrize("config_data", [
        {"min_charge_cents": 0},
        {"min_charge_cents": True},
        {"currency": "dollars"},
        {"streak_lookback_days": -1},
        {"processor": {"timeout_seconds": 0}},
        {"processor": {"retries": 3}},
        {"categories": {"porn": {"default_grace": -1}}},
        {"categories": {"porn": {"seeds": []}}},
        {"categories": {"porn": {"colour": "red"}}},
    ])
    def test_invalid_values(self, config_data):
        """Test invalid values are rejected."""
        with pytest.raises(ValueError):
            load_billing_config(self._write_config(config_data))

    def test_config_is_frozen(self):
        """Test loaded configuration cannot be modified."""
        config = BillingConfig()
        with pytest.raises(AttributeError):
            config.min_charge_cents = 1
