"""
Weekly aggregation of billable usage.

Applies each day's grace per category, sums billable minutes across the
week and prices them. Read-only: nothing here mutates stored state.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Mapping

from .categories import Category
from .consent import ConsentResolver, ConsentRules
from .pricing import cents_per_minute
from .week import is_day_in_range
from grace_meter.storage.models import UsageBucket
from grace_meter.storage.repository import UsageRepository


@dataclass(frozen=True)
class CategoryBill:
    """Billable minutes and their price for one category."""
    minutes: int
    cents_per_minute: int
    cents_total: int


@dataclass(frozen=True)
class WeeklyBillable:
    """A week's billable usage across categories."""
    per_category: Dict[Category, CategoryBill]
    total_cents: int


def billable_minutes(bucket: UsageBucket, category: Category, rules: ConsentRules) -> int:
    """Minutes of a category beyond that day's grace. Disabled categories bill 0."""
    if not rules.categories_on.get(category, False):
        return 0
    return max(0, bucket.minutes_for(category.value) - rules.grace[category])


def price_minutes(minutes_by_category: Mapping[Category, int], rules: ConsentRules) -> WeeklyBillable:
    """Price accumulated billable minutes with each category's effective rate."""
    per_category = {}
    for category, minutes in minutes_by_category.items():
        rate_cents = cents_per_minute(rules.effective_rate(category))
        per_category[category] = CategoryBill(
            minutes=minutes,
            cents_per_minute=rate_cents,
            cents_total=minutes * rate_cents,
        )
    total = sum(bill.cents_total for bill in per_category.values())
    return WeeklyBillable(per_category=per_category, total_cents=total)


def aggregate_buckets(
    buckets: Mapping[str, UsageBucket],
    rules: ConsentRules,
    start_utc: datetime,
    end_utc: datetime,
    tz_offset_minutes: int = 0
) -> WeeklyBillable:
    """Sum per-day billable minutes for buckets inside the window.

    Grace is subtracted per day, so every calendar day gets a fresh
    allowance. Only whole minutes count; leftover seconds never bill.
    """
    minutes: Dict[Category, int] = {
        category: 0 for category in Category if rules.categories_on.get(category, False)
    }
    for day, bucket in buckets.items():
        if not is_day_in_range(day, start_utc, end_utc, tz_offset_minutes):
            continue
        for category in minutes:
            minutes[category] += billable_minutes(bucket, category, rules)
    return price_minutes(minutes, rules)


class WeeklyAggregator:
    """Collects a user's weekly billable total from the usage store."""

    def __init__(self, usage: UsageRepository, resolver: ConsentResolver):
        self.usage = usage
        self.resolver = resolver

    def collect_weekly_billable(
        self,
        user_id: str,
        start_utc: datetime,
        end_utc: datetime,
        tz_offset_minutes: int = 0
    ) -> WeeklyBillable:
        """Grace-adjusted billable total for a user's days in the window.

        Args:
            user_id: User to aggregate
            start_utc: Inclusive window start
            end_utc: Inclusive window end
            tz_offset_minutes: Offset used to place each day in the window

        Returns:
            WeeklyBillable with per-category bills and total cents
        """
        rules = self.resolver.resolve(user_id)
        buckets = self.usage.buckets_for_user(user_id)
        return aggregate_buckets(buckets, rules, start_utc, end_utc, tz_offset_minutes)
