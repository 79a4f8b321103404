"""
Clean-day streak analytics.

Read-only and not billing-critical. A day without a stored bucket is
unknown and breaks a streak; missing data is never credited as clean.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Mapping, Optional

from .aggregator import billable_minutes, price_minutes
from .categories import Category
from .consent import ConsentRules
from grace_meter.storage.models import UsageBucket

DEFAULT_LOOKBACK_DAYS = 90


@dataclass(frozen=True)
class StreakSummary:
    """Current and previous runs of clean days."""
    current_streak_days: int
    last_streak_days: int
    last_break_day: Optional[str]


def is_clean_day(bucket: Optional[UsageBucket], rules: ConsentRules) -> bool:
    """True when a bucket exists and bills zero cents after grace."""
    if bucket is None:
        return False
    minutes = {
        category: billable_minutes(bucket, category, rules)
        for category in Category
        if rules.categories_on.get(category, False)
    }
    return price_minutes(minutes, rules).total_cents == 0


def compute_streak(
    buckets: Mapping[str, UsageBucket],
    rules: ConsentRules,
    today: date,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
) -> StreakSummary:
    """Derive streaks by walking back from today.

    Args:
        buckets: User's buckets keyed by YYYY-MM-DD
        rules: Resolved billing rules
        today: Last day considered (inclusive)
        lookback_days: How many days back to inspect

    Returns:
        StreakSummary; last_break_day is the first non-clean day that
        followed the previous run, or None if there was no previous run
    """
    # Newest first
    clean: List[bool] = [
        is_clean_day(buckets.get((today - timedelta(days=i)).isoformat()), rules)
        for i in range(lookback_days)
    ]

    i = 0
    while i < len(clean) and clean[i]:
        i += 1
    current = i

    while i < len(clean) and not clean[i]:
        i += 1
    # clean[i - 1] is the oldest non-clean day after the previous run
    break_index = i - 1

    run_start = i
    while i < len(clean) and clean[i]:
        i += 1
    previous = i - run_start

    last_break_day = None
    if previous > 0:
        last_break_day = (today - timedelta(days=break_index)).isoformat()

    return StreakSummary(
        current_streak_days=current,
        last_streak_days=previous,
        last_break_day=last_break_day,
    )
