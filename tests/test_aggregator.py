"""
Unit tests for weekly aggregation.

Tests per-day grace, window filtering and pricing of billable minutes.
"""

from datetime import datetime, timezone

from grace_meter.core.aggregator import WeeklyAggregator
from grace_meter.core.categories import Category
from grace_meter.core.consent import ConsentResolver
from grace_meter.core.week import week_bounds
from grace_meter.storage.models import ConsentSnapshot
from grace_meter.storage.repository import ConsentRepository, UsageRepository

WEEK_END = "2024-06-09"


def _at(day: int, hour: int = 12) -> datetime:
    return datetime(2024, 6, day, hour, 0, tzinfo=timezone.utc)


class TestWeeklyAggregator:
    """Test collect_weekly_billable()."""

    def setup_method(self):
        """Set up repositories with the standard consent."""
        self.usage = UsageRepository()
        self.consents = ConsentRepository()
        self.consents.save(ConsentSnapshot(
            user_id="u1",
            grace={"porn": 1, "gambling": 0},
            rates={"porn": 0.05, "gambling": 0.50},
            categories_on={"porn": True, "gambling": True},
        ))
        self.aggregator = WeeklyAggregator(self.usage, ConsentResolver(self.consents))

    def _collect(self, user_id="u1", tz_offset=0):
        bounds = week_bounds(WEEK_END, tz_offset)
        return self.aggregator.collect_weekly_billable(user_id, bounds.start_utc, bounds.end_utc, tz_offset)

    def test_three_day_scenario(self):
        """40, 30 and 50 minutes with 1 minute grace bill 117 minutes at 5 cents."""
        for day, minutes in ((3, 40), (4, 30), (5, 50)):
            self.usage.add_usage("u1", "pornhub.com", "porn", minutes * 60, _at(day))
        result = self._collect()
        assert result.per_category[Category.PORN].minutes == 117
        assert result.per_category[Category.PORN].cents_per_minute == 5
        assert result.total_cents == 585

    def test_grace_is_per_day_not_pooled(self):
        """Exactly grace minutes on three days bills nothing."""
        for day in (3, 4, 5):
            self.usage.add_usage("u1", "pornhub.com", "porn", 60, _at(day))
        assert self._collect().per_category[Category.PORN].minutes == 0

        self.usage.add_usage("u1", "pornhub.com", "porn", 60, _at(6))
        self.usage.add_usage("u1", "pornhub.com", "porn", 60, _at(6))
        assert self._collect().per_category[Category.PORN].minutes == 1

    def test_leftover_seconds_never_bill(self):
        """Partial minutes are not billable."""
        self.usage.add_usage("u1", "pornhub.com", "porn", 2 * 60 + 59, _at(3))
        assert self._collect().per_category[Category.PORN].minutes == 1

    def test_days_outside_window_skipped(self):
        """Usage from neighbouring weeks is ignored."""
        self.usage.add_usage("u1", "pornhub.com", "porn", 10 * 60, _at(2))
        self.usage.add_usage("u1", "pornhub.com", "porn", 10 * 60, _at(10))
        assert self._collect().total_cents == 0

    def test_disabled_category_not_billed(self):
        """Categories switched off contribute nothing."""
        self.consents.save(ConsentSnapshot(user_id="u1", categories_on={"gambling": False}))
        self.usage.add_usage("u1", "stake.com", "gambling", 10 * 60, _at(3))
        result = self._collect()
        assert Category.GAMBLING not in result.per_category
        assert result.total_cents == 0

    def test_gambling_rate(self):
        """Gambling with zero grace bills every minute at 50 cents."""
        self.usage.add_usage("u1", "stake.com", "gambling", 3 * 60, _at(4))
        result = self._collect()
        assert result.per_category[Category.GAMBLING].cents_total == 150
        assert result.total_cents == 150

    def test_floor_raises_low_rate(self):
        """A configured rate below the floor is billed at the floor."""
        self.consents.save(ConsentSnapshot(user_id="u1", rates={"gambling": 0.10}))
        self.usage.add_usage("u1", "stake.com", "gambling", 2 * 60, _at(4))
        assert self._collect().per_category[Category.GAMBLING].cents_per_minute == 25

    def test_defaults_without_consent(self):
        """Users without consent are billed with default rules."""
        self.usage.add_usage("u2", "pornhub.com", "porn", 3 * 60, _at(3))
        result = self._collect(user_id="u2")
        assert result.per_category[Category.PORN].minutes == 2
        assert result.total_cents == 10

    def test_read_is_pure(self):
        """Aggregation does not change stored buckets."""
        self.usage.add_usage("u1", "pornhub.com", "porn", 5 * 60, _at(3))
        before = self.usage.buckets_for_user("u1")
        first = self._collect()
        second = self._collect()
        assert first == second
        assert self.usage.buckets_for_user("u1") == before
