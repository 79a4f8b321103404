"""
Billing engine facade.

Wires the categorizer, usage store, consent resolver, aggregator and
settlement issuer together behind the operations callers use: tick
ingestion, consent recording, weekly preview and settlement, and the
read-only today/dashboard views.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .aggregator import CategoryBill, WeeklyAggregator
from .categories import Category, DomainCategorizer, host_from_url, normalize_host, parse_category
from .consent import ConsentResolver, normalize_grace
from .errors import ValidationError
from .settlement import SettlementIssuer, SettlementResult
from .streak import StreakSummary, compute_streak
from .week import week_bounds
from grace_meter.config.loader import BillingConfig, default_config
from grace_meter.processor.base import PaymentProcessor
from grace_meter.storage.models import CategoryCounter, ConsentSnapshot
from grace_meter.storage.repository import (
    ConsentRepository,
    RolloverRepository,
    UsageRepository,
    sqlite_repositories,
    utc_day,
)

logger = logging.getLogger(__name__)

TOP_DOMAINS_LIMIT = 10


@dataclass(frozen=True)
class IngestResult:
    """Outcome of a tick batch: accepted count and (index, reason) rejections."""
    accepted: int
    rejected: List[Tuple[int, str]] = field(default_factory=list)


@dataclass(frozen=True)
class WeekPreview:
    """What settling the week would do, without doing it.

    rollover_cents is the balance carried from other weeks.
    """
    week_start: str
    week_end: str
    per_category: Dict[Category, CategoryBill]
    total_cents: int
    rollover_cents: int
    would_charge_cents: int
    would_carry_cents: int


@dataclass(frozen=True)
class WeekSettlement:
    """A week's billable total and the settlement it produced."""
    week_start: str
    week_end: str
    per_category: Dict[Category, CategoryBill]
    total_cents: int
    settlement: SettlementResult


@dataclass(frozen=True)
class DomainUsage:
    domain: str
    seconds: int
    category: Optional[str]


@dataclass(frozen=True)
class TodaySnapshot:
    """Today's counters for a user."""
    day: str
    by_category: Dict[str, CategoryCounter]
    top_domains: List[DomainUsage]


@dataclass(frozen=True)
class Dashboard:
    wallet: WeekPreview
    streak: StreakSummary


def _require_user(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id is required")
    return user_id


def _parse_timestamp(value: Any, now: datetime) -> datetime:
    """Accept epoch milliseconds, ISO-8601 strings or datetimes."""
    if value is None:
        return now
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError):
            raise ValueError(f"timestamp {value!r} is out of range")
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"unsupported timestamp {value!r}")


def _parse_seconds(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("seconds must be a number")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ValueError("seconds must be a whole number")
    if value <= 0:
        raise ValueError("seconds must be > 0")
    return value


class BillingEngine:
    """Entry point for everything that reads or mutates billing state."""

    def __init__(
        self,
        usage: Optional[UsageRepository] = None,
        consents: Optional[ConsentRepository] = None,
        rollovers: Optional[RolloverRepository] = None,
        processor: Optional[PaymentProcessor] = None,
        config: Optional[BillingConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """Initialize the engine.

        Args:
            usage: Usage counter store (in-memory if omitted)
            consents: Consent store (in-memory if omitted)
            rollovers: Rollover store (in-memory if omitted)
            processor: Payment processor; settlement charges fail without one
            config: Billing configuration (built-ins if omitted)
            clock: Returns the current UTC instant
        """
        self.config = config or default_config()
        self.usage = usage or UsageRepository()
        self.consents = consents or ConsentRepository()
        self.rollovers = rollovers or RolloverRepository()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.categorizer = DomainCategorizer.from_seeds(self.config.seeds())
        self.resolver = ConsentResolver(self.consents, self.config.default_rules())
        self.aggregator = WeeklyAggregator(self.usage, self.resolver)
        self.issuer = SettlementIssuer(
            rollovers=self.rollovers,
            processor=processor,
            consents=self.consents,
            min_charge_cents=self.config.min_charge_cents,
            currency=self.config.currency,
        )

    @classmethod
    def from_sqlite(
        cls,
        db_path: str,
        processor: Optional[PaymentProcessor] = None,
        config: Optional[BillingConfig] = None
    ) -> "BillingEngine":
        """Build an engine over an initialized SQLite database."""
        usage, consents, rollovers = sqlite_repositories(db_path)
        return cls(usage, consents, rollovers, processor=processor, config=config)

    # -- ingestion -------------------------------------------------------

    def add_usage(
        self,
        user_id: str,
        domain: str,
        category: Any,
        seconds: int,
        timestamp: Optional[datetime] = None
    ) -> None:
        """Record usage directly; invalid input is a silent no-op."""
        self.usage.add_usage(user_id, domain, category, seconds, timestamp or self.clock())

    def ingest_events(self, user_id: str, events: Iterable[Mapping[str, Any]]) -> IngestResult:
        """Record a batch of tick events for a user.

        Each event is resolved to (domain, category, seconds, timestamp) on
        its own. A bad event is reported and skipped; the rest still count.

        Args:
            user_id: Owner of the session, validated upstream
            events: Dicts with url or domain, seconds, optional category and ts

        Returns:
            IngestResult with accepted count and rejected (index, reason) pairs

        Raises:
            ValidationError: If user_id is missing
        """
        _require_user(user_id)
        now = self.clock()
        accepted = 0
        rejected = []
        for index, event in enumerate(events or []):
            try:
                domain, category, seconds, timestamp = self._resolve_event(event, now)
            except ValueError as e:
                logger.debug("Skipping tick %d for %s: %s", index, user_id, e)
                rejected.append((index, str(e)))
                continue
            self.usage.add_usage(user_id, domain, category.value, seconds, timestamp)
            accepted += 1
        return IngestResult(accepted=accepted, rejected=rejected)

    def _resolve_event(self, event: Any, now: datetime):
        if not isinstance(event, Mapping):
            raise ValueError("event must be an object")
        domain = normalize_host(event.get("domain") or "") or host_from_url(event.get("url") or "")
        if not domain:
            raise ValueError("event has no usable domain or url")
        category = parse_category(event.get("category")) or self.categorizer.categorize(domain)
        if category is None:
            raise ValueError(f"domain '{domain}' is not in a tracked category")
        seconds = _parse_seconds(event.get("seconds"))
        timestamp = _parse_timestamp(event.get("ts"), now)
        return domain, category, seconds, timestamp

    # -- consent ---------------------------------------------------------

    def record_consent(
        self,
        user_id: str,
        grace: Any = None,
        rates: Any = None,
        categories_on: Any = None,
        tos_hash: Optional[str] = None,
        extension_version: Optional[str] = None
    ) -> ConsentSnapshot:
        """Replace a user's consent snapshot.

        Only user_id is required. A scalar grace is broadcast to every
        category here, once, at ingestion.
        """
        _require_user(user_id)
        snapshot = ConsentSnapshot(
            user_id=user_id,
            grace=normalize_grace(grace),
            rates=rates,
            categories_on=categories_on,
            tos_hash=tos_hash,
            timestamp=self.clock(),
            extension_version=extension_version,
        )
        return self.consents.save(snapshot)

    def attach_customer(self, user_id: str, customer_ref: str) -> ConsentSnapshot:
        """Attach a processor customer without displacing other consent fields."""
        _require_user(user_id)
        if not customer_ref:
            raise ValidationError("customer_ref is required")
        return self.consents.attach_customer(user_id, customer_ref)

    # -- weekly billing --------------------------------------------------

    def preview_week(
        self,
        user_id: str,
        week_end: Optional[str] = None,
        tz_offset_minutes: int = 0
    ) -> WeekPreview:
        """Compute what settling the week would charge or carry. No mutation."""
        _require_user(user_id)
        bounds = week_bounds(week_end, tz_offset_minutes, now=self.clock())
        billable = self.aggregator.collect_weekly_billable(
            user_id, bounds.start_utc, bounds.end_utc, tz_offset_minutes
        )
        rollover = self.rollovers.get_record(user_id).owed_before(bounds.start_str, bounds.end_str)
        grand_total = billable.total_cents + rollover
        below_minimum = grand_total < self.config.min_charge_cents
        return WeekPreview(
            week_start=bounds.start_str,
            week_end=bounds.end_str,
            per_category=billable.per_category,
            total_cents=billable.total_cents,
            rollover_cents=rollover,
            would_charge_cents=0 if below_minimum else grand_total,
            would_carry_cents=grand_total if below_minimum else 0,
        )

    def settle_week(
        self,
        user_id: str,
        week_end: Optional[str] = None,
        tz_offset_minutes: int = 0,
        payment_method_ref: Optional[str] = None
    ) -> WeekSettlement:
        """Settle the week: carry below the minimum, otherwise charge once.

        Raises:
            ValidationError: If user_id, week_end or the offset is invalid
            UnconfiguredDependency: If a charge is due and no processor is set
            ProcessorError: If the charge fails; the rollover is unchanged
        """
        _require_user(user_id)
        bounds = week_bounds(week_end, tz_offset_minutes, now=self.clock())
        billable = self.aggregator.collect_weekly_billable(
            user_id, bounds.start_utc, bounds.end_utc, tz_offset_minutes
        )
        settlement = self.issuer.settle(
            user_id,
            bounds.start_str,
            bounds.end_str,
            billable.per_category,
            billable.total_cents,
            payment_method_ref,
        )
        return WeekSettlement(
            week_start=bounds.start_str,
            week_end=bounds.end_str,
            per_category=billable.per_category,
            total_cents=billable.total_cents,
            settlement=settlement,
        )

    # -- read-only views -------------------------------------------------

    def today_snapshot(self, user_id: str) -> TodaySnapshot:
        """Today's (UTC) counters and the busiest domains."""
        _require_user(user_id)
        day = utc_day(self.clock())
        bucket = self.usage.get_bucket(user_id, day)
        if bucket is None:
            return TodaySnapshot(day=day, by_category={}, top_domains=[])
        top = sorted(bucket.by_domain.items(), key=lambda item: (-item[1].seconds, item[0]))
        return TodaySnapshot(
            day=day,
            by_category=bucket.by_category,
            top_domains=[
                DomainUsage(domain=name, seconds=counter.seconds, category=counter.category)
                for name, counter in top[:TOP_DOMAINS_LIMIT]
            ],
        )

    def dashboard(self, user_id: str, tz_offset_minutes: int = 0) -> Dashboard:
        """Current week's wallet preview plus clean-day streaks."""
        wallet = self.preview_week(user_id, None, tz_offset_minutes)
        streak = compute_streak(
            self.usage.buckets_for_user(user_id),
            self.resolver.resolve(user_id),
            today=self.clock().astimezone(timezone.utc).date(),
            lookback_days=self.config.streak_lookback_days,
        )
        return Dashboard(wallet=wallet, streak=streak)
