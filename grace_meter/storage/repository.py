"""
Repository pattern for data access.

Wraps the key-value stores behind typed operations. All writes are
single-key read-modify-write calls through KeyValueStore.update().
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from grace_meter.core.errors import InvariantViolation
from .kv import InMemoryStore, KeyValueStore, SqliteStore
from .models import CategoryCounter, ConsentSnapshot, DomainCounter, RolloverRecord, UsageBucket

KEY_SEPARATOR = "::"


def bucket_key(user_id: str, day: str) -> str:
    """Storage key for a user's bucket on a day, e.g. "u1::2024-06-03"."""
    return f"{user_id}{KEY_SEPARATOR}{day}"


def utc_day(timestamp: datetime) -> str:
    """UTC calendar day of a timestamp. Naive timestamps are taken as UTC."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).date().isoformat()


class UsageRepository:
    """Per-user, per-day usage counters. The system of record for usage."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store if store is not None else InMemoryStore()

    def add_usage(
        self,
        user_id: str,
        domain: str,
        category: str,
        seconds: int,
        timestamp: Optional[datetime] = None
    ) -> None:
        """Accumulate seconds for a domain and category on the timestamp's day.

        Silently ignores calls with a missing user, domain or category, or
        with non-positive seconds. Whole minutes are carried out of the
        leftover seconds with integer arithmetic.
        """
        if not user_id or not domain or not category:
            return
        if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds <= 0:
            return

        category = getattr(category, "value", category)
        timestamp = timestamp or datetime.now(timezone.utc)
        day = utc_day(timestamp)

        def apply(raw: Optional[dict]) -> dict:
            bucket = UsageBucket.from_dict(raw) if raw else UsageBucket(user_id=user_id, day=day)
            bucket.updated_at = timestamp

            domain_counter = bucket.by_domain.setdefault(domain, DomainCounter())
            domain_counter.seconds += seconds
            domain_counter.category = category

            counter = bucket.by_category.setdefault(category, CategoryCounter())
            if not 0 <= counter.leftover_seconds < 60:
                raise InvariantViolation(
                    f"stored leftover_seconds={counter.leftover_seconds} "
                    f"for {user_id}/{day}/{category}"
                )
            total = counter.leftover_seconds + seconds
            counter.minutes += total // 60
            counter.leftover_seconds = total % 60
            return bucket.to_dict()

        self.store.update(bucket_key(user_id, day), apply)

    def get_bucket(self, user_id: str, day: str) -> Optional[UsageBucket]:
        """Look up a bucket without creating it."""
        raw = self.store.get(bucket_key(user_id, day))
        return UsageBucket.from_dict(raw) if raw else None

    def buckets_for_user(self, user_id: str) -> Dict[str, UsageBucket]:
        """Detached copies of every stored bucket for a user, keyed by day."""
        prefix = f"{user_id}{KEY_SEPARATOR}"
        buckets = {}
        for _key, raw in self.store.scan(prefix):
            bucket = UsageBucket.from_dict(raw)
            # Guard against ids that themselves contain the separator
            if bucket.user_id == user_id:
                buckets[bucket.day] = bucket
        return buckets


class ConsentRepository:
    """Latest consent snapshot per user."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store if store is not None else InMemoryStore()

    def get(self, user_id: str) -> Optional[ConsentSnapshot]:
        raw = self.store.get(user_id)
        return ConsentSnapshot.from_dict(raw) if raw else None

    def save(self, snapshot: ConsentSnapshot) -> ConsentSnapshot:
        """Replace the user's snapshot wholesale, keeping an attached customer."""
        def apply(raw: Optional[dict]) -> dict:
            data = snapshot.to_dict()
            if not data["customer_ref"] and raw and raw.get("customer_ref"):
                data["customer_ref"] = raw["customer_ref"]
            return data

        return ConsentSnapshot.from_dict(self.store.update(snapshot.user_id, apply))

    def attach_customer(self, user_id: str, customer_ref: str) -> ConsentSnapshot:
        """Set the processor customer reference without touching other fields."""
        def apply(raw: Optional[dict]) -> dict:
            data = raw or ConsentSnapshot(user_id=user_id).to_dict()
            data["customer_ref"] = customer_ref
            return data

        return ConsentSnapshot.from_dict(self.store.update(user_id, apply))


class RolloverRepository:
    """Cents owed but not yet charged, per user, with the week that carried them."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store if store is not None else InMemoryStore()

    def get(self, user_id: str) -> int:
        return self.get_record(user_id).cents

    def get_record(self, user_id: str) -> RolloverRecord:
        return RolloverRecord.from_value(self.store.get(user_id))

    def set(self, user_id: str, cents: int) -> None:
        if cents < 0:
            raise ValueError("rollover cents cannot be negative")
        self.store.set(user_id, RolloverRecord(cents=int(cents)).to_dict())

    def update(
        self,
        user_id: str,
        fn: Callable[[RolloverRecord], RolloverRecord]
    ) -> RolloverRecord:
        """Atomically replace the user's record with fn(current)."""
        def apply(raw: Any) -> dict:
            record = fn(RolloverRecord.from_value(raw))
            if record.cents < 0:
                raise ValueError("rollover cents cannot be negative")
            return record.to_dict()

        return RolloverRecord.from_value(self.store.update(user_id, apply))


def sqlite_repositories(db_path: str):
    """Build the three repositories over one SQLite database file.

    Args:
        db_path: Path to SQLite database file (schema must be initialized)

    Returns:
        Tuple of (UsageRepository, ConsentRepository, RolloverRepository)
    """
    return (
        UsageRepository(SqliteStore(db_path, "usage_buckets")),
        ConsentRepository(SqliteStore(db_path, "consents")),
        RolloverRepository(SqliteStore(db_path, "rollovers")),
    )
