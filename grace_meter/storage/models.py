"""
Data models for storage layer.

Defines stored entities and their JSON-compatible representations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class CategoryCounter:
    """Whole minutes plus the sub-minute remainder for one category."""
    minutes: int = 0
    leftover_seconds: int = 0


@dataclass
class DomainCounter:
    """Seconds observed on one domain."""
    seconds: int = 0
    category: Optional[str] = None


@dataclass
class UsageBucket:
    """Usage for one user on one UTC calendar day.

    Created lazily on the first recorded usage for the day and never deleted.
    Minutes only grow; leftover seconds stay below 60.
    """
    user_id: str
    day: str
    updated_at: Optional[datetime] = None
    by_category: Dict[str, CategoryCounter] = field(default_factory=dict)
    by_domain: Dict[str, DomainCounter] = field(default_factory=dict)

    def minutes_for(self, category: str) -> int:
        """Whole minutes recorded for a category, 0 if none."""
        counter = self.by_category.get(category)
        return counter.minutes if counter else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "day": self.day,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "by_category": {
                name: {"minutes": c.minutes, "leftover_seconds": c.leftover_seconds}
                for name, c in self.by_category.items()
            },
            "by_domain": {
                name: {"seconds": d.seconds, "category": d.category}
                for name, d in self.by_domain.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageBucket":
        updated_at = data.get("updated_at")
        return cls(
            user_id=data["user_id"],
            day=data["day"],
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
            by_category={
                name: CategoryCounter(
                    minutes=int(c.get("minutes", 0)),
                    leftover_seconds=int(c.get("leftover_seconds", 0))
                )
                for name, c in (data.get("by_category") or {}).items()
            },
            by_domain={
                name: DomainCounter(
                    seconds=int(d.get("seconds", 0)),
                    category=d.get("category")
                )
                for name, d in (data.get("by_domain") or {}).items()
            },
        )


@dataclass(frozen=True)
class ConsentSnapshot:
    """Consent submitted by a user, kept for dispute evidence.

    grace, rates and categories_on are stored as submitted (after the scalar
    grace normalization done at ingestion). Defaults are applied on read.
    """
    user_id: str
    grace: Any = None
    rates: Any = None
    categories_on: Any = None
    tos_hash: Optional[str] = None
    timestamp: Optional[datetime] = None
    extension_version: Optional[str] = None
    customer_ref: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "grace": self.grace,
            "rates": self.rates,
            "categories_on": self.categories_on,
            "tos_hash": self.tos_hash,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "extension_version": self.extension_version,
            "customer_ref": self.customer_ref,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsentSnapshot":
        timestamp = data.get("timestamp")
        return cls(
            user_id=data["user_id"],
            grace=data.get("grace"),
            rates=data.get("rates"),
            categories_on=data.get("categories_on"),
            tos_hash=data.get("tos_hash"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
            extension_version=data.get("extension_version"),
            customer_ref=data.get("customer_ref"),
        )


@dataclass(frozen=True)
class RolloverRecord:
    """Cents owed but not yet charged, tagged with the week that last carried.

    week_cents is that week's own share of cents, so settling the same week
    again replaces its share instead of adding to it.
    """
    cents: int = 0
    week_start: Optional[str] = None
    week_end: Optional[str] = None
    week_cents: int = 0

    def owed_before(self, week_start: str, week_end: str) -> int:
        """Cents owed from other weeks when settling the given week."""
        if self.week_start == week_start and self.week_end == week_end:
            return max(0, self.cents - self.week_cents)
        return self.cents

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cents": self.cents,
            "week_start": self.week_start,
            "week_end": self.week_end,
            "week_cents": self.week_cents,
        }

    @classmethod
    def from_value(cls, value: Any) -> "RolloverRecord":
        """Build from a stored value; bare integers carry no week tag."""
        if not value:
            return cls()
        if isinstance(value, dict):
            return cls(
                cents=int(value.get("cents", 0)),
                week_start=value.get("week_start"),
                week_end=value.get("week_end"),
                week_cents=int(value.get("week_cents", 0)),
            )
        return cls(cents=int(value))
