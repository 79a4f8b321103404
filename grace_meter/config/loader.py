"""
Configuration management and loading.

Handles billing settings from YAML files and environment variables.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from grace_meter.core.categories import CATEGORY_FLOORS, DEFAULT_SEEDS, Category
from grace_meter.core.consent import DEFAULT_RULES, ConsentRules
from grace_meter.core.settlement import DEFAULT_CURRENCY, MIN_CHARGE_CENTS
from grace_meter.core.streak import DEFAULT_LOOKBACK_DAYS


@dataclass(frozen=True)
class CategoryConfig:
    """Defaults and seed list for one category."""
    default_rate: Decimal
    default_grace: int
    seeds: Tuple[str, ...]

    def __post_init__(self):
        """Validate category values."""
        if self.default_rate < 0:
            raise ValueError("default_rate cannot be negative")
        if self.default_grace < 0:
            raise ValueError("default_grace cannot be negative")


@dataclass(frozen=True)
class ProcessorConfig:
    """Payment processor settings. api_key falls back to STRIPE_SECRET_KEY."""
    timeout_seconds: float = 20.0
    api_key: Optional[str] = None

    def __post_init__(self):
        """Validate processor values."""
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")


def _builtin_categories() -> Dict[Category, CategoryConfig]:
    return {
        category: CategoryConfig(
            default_rate=DEFAULT_RULES.rates[category],
            default_grace=DEFAULT_RULES.grace[category],
            seeds=DEFAULT_SEEDS[category],
        )
        for category in Category
    }


@dataclass(frozen=True)
class BillingConfig:
    """Complete billing configuration."""
    min_charge_cents: int = MIN_CHARGE_CENTS
    currency: str = DEFAULT_CURRENCY
    streak_lookback_days: int = DEFAULT_LOOKBACK_DAYS
    processor: ProcessorConfig = field(default_factory=ProcessorConfig)
    categories: Dict[Category, CategoryConfig] = field(default_factory=_builtin_categories)

    def default_rules(self) -> ConsentRules:
        """Rules applied to users (or fields) with no consent on record."""
        return ConsentRules(
            grace={c: cfg.default_grace for c, cfg in self.categories.items()},
            rates={c: cfg.default_rate for c, cfg in self.categories.items()},
            categories_on={c: True for c in self.categories},
            floors=dict(CATEGORY_FLOORS),
        )

    def seeds(self) -> Dict[Category, Tuple[str, ...]]:
        """Seed lists in category declaration order."""
        return {c: self.categories[c].seeds for c in Category}


def default_config() -> BillingConfig:
    """Built-in configuration used when no file is given."""
    return BillingConfig()


def load_billing_config(path: str) -> BillingConfig:
    """Load and validate billing configuration from YAML file.

    Strict validation ensures a typo can never silently change what a
    user is charged. Omitted sections keep their built-in values.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated BillingConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Billing config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    allowed_top_keys = {'min_charge_cents', 'currency', 'streak_lookback_days', 'processor', 'categories'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    defaults = default_config()

    min_charge = raw_config.get('min_charge_cents', defaults.min_charge_cents)
    if not _is_int(min_charge) or min_charge < 1:
        raise ValueError("'min_charge_cents' must be a positive integer")

    currency = raw_config.get('currency', defaults.currency)
    if not isinstance(currency, str) or len(currency.strip()) != 3:
        raise ValueError("'currency' must be a 3-letter currency code")

    lookback = raw_config.get('streak_lookback_days', defaults.streak_lookback_days)
    if not _is_int(lookback) or lookback < 1:
        raise ValueError("'streak_lookback_days' must be a positive integer")

    processor = _parse_processor_config(raw_config.get('processor', {}))

    categories_data = raw_config.get('categories', {})
    if not isinstance(categories_data, dict):
        raise ValueError("'categories' must be a dictionary")

    categories = dict(defaults.categories)
    for name, category_data in categories_data.items():
        try:
            category = Category(name)
        except ValueError:
            valid = [c.value for c in Category]
            raise ValueError(f"Unknown category '{name}', must be one of: {valid}")
        if not isinstance(category_data, dict):
            raise ValueError(f"Category '{name}' must be a dictionary")
        categories[category] = _parse_category_config(
            category, category_data, categories[category], f"categories.{name}"
        )

    return BillingConfig(
        min_charge_cents=int(min_charge),
        currency=currency.strip().lower(),
        streak_lookback_days=int(lookback),
        processor=processor,
        categories=categories
    )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_processor_config(data: Any) -> ProcessorConfig:
    """Parse and validate the processor section."""
    if not isinstance(data, dict):
        raise ValueError("'processor' must be a dictionary")

    allowed_keys = {'timeout_seconds', 'api_key'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in processor: {unknown_keys}")

    timeout = data.get('timeout_seconds', 20.0)
    if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
        raise ValueError("'timeout_seconds' in processor must be > 0")

    api_key = data.get('api_key')
    if api_key is not None and not isinstance(api_key, str):
        raise ValueError("'api_key' in processor must be a string")

    return ProcessorConfig(timeout_seconds=float(timeout), api_key=api_key or None)


def _parse_category_config(
    category: Category,
    data: Dict,
    base: CategoryConfig,
    path: str
) -> CategoryConfig:
    """Parse and validate one category section on top of its built-in values.

    Args:
        category: Category being configured
        data: Category configuration data
        base: Built-in values for omitted keys
        path: Path for error messages

    Returns:
        Validated CategoryConfig

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'default_rate', 'default_grace', 'seeds'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    default_rate = base.default_rate
    if 'default_rate' in data:
        rate = data['default_rate']
        if not isinstance(rate, (int, float)) or isinstance(rate, bool) or rate < 0:
            raise ValueError(f"'default_rate' in {path} must be a non-negative number")
        default_rate = Decimal(str(rate))
    if default_rate < CATEGORY_FLOORS[category]:
        raise ValueError(
            f"'default_rate' in {path} must be >= floor {CATEGORY_FLOORS[category]}"
        )

    default_grace = base.default_grace
    if 'default_grace' in data:
        grace = data['default_grace']
        if not _is_int(grace) or grace < 0:
            raise ValueError(f"'default_grace' in {path} must be a non-negative integer")
        default_grace = grace

    seeds = base.seeds
    if 'seeds' in data:
        raw_seeds = data['seeds']
        if not isinstance(raw_seeds, list) or not raw_seeds:
            raise ValueError(f"'seeds' in {path} must be a non-empty list")
        if not all(isinstance(s, str) and s.strip() for s in raw_seeds):
            raise ValueError(f"'seeds' in {path} must contain non-empty strings")
        seeds = tuple(s.strip().lower() for s in raw_seeds)

    return CategoryConfig(
        default_rate=default_rate,
        default_grace=default_grace,
        seeds=seeds
    )
