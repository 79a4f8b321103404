"""
Weekly settlement issuance.

Combines a week's total with the carried rollover and either carries the
balance forward (below the minimum charge) or charges it exactly once.

Rollover rules:
1. Below the minimum, the rollover is replaced by the full amount owed;
   re-settling the same week replaces that week's own share
2. A successful charge clears the rollover to zero
3. A failed or timed-out charge leaves the rollover untouched
"""

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .aggregator import CategoryBill
from .categories import Category
from .errors import UnconfiguredDependency
from grace_meter.processor.base import PaymentProcessor
from grace_meter.storage.models import RolloverRecord
from grace_meter.storage.repository import ConsentRepository, RolloverRepository

logger = logging.getLogger(__name__)

MIN_CHARGE_CENTS = 50
DEFAULT_CURRENCY = "usd"


class SettlementReason(Enum):
    """Why a settlement ended the way it did."""
    BELOW_MINIMUM = "below_minimum"
    CHARGED = "charged"


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of one settlement attempt."""
    charged: int
    reason: SettlementReason
    carried_cents: int = 0
    external_charge_id: Optional[str] = None
    status: Optional[str] = None
    idempotency_key: Optional[str] = None


def settlement_idempotency_key(user_id: str, start_str: str, end_str: str, grand_total: int) -> str:
    """Deterministic key for a settlement attempt.

    Identical inputs always give the same key; any change in the grand total
    gives a new one.
    """
    raw = f"{user_id}|{start_str}|{end_str}|{grand_total}".encode("utf-8")
    return "gm_week_" + hashlib.sha256(raw).hexdigest()[:48]


def _charge_metadata(
    user_id: str,
    start_str: str,
    end_str: str,
    per_category: Dict[Category, CategoryBill],
    total_cents: int,
    rollover_cents: int
) -> Dict[str, str]:
    metadata = {
        "user_id": user_id,
        "week_start": start_str,
        "week_end": end_str,
        "week_cents": str(total_cents),
        "rollover_cents": str(rollover_cents),
        "reason": "weekly usage settlement",
    }
    for category, bill in per_category.items():
        metadata[f"{category.value}_minutes"] = str(bill.minutes)
        metadata[f"{category.value}_cents_per_minute"] = str(bill.cents_per_minute)
    return metadata


class SettlementIssuer:
    """Decides charge-vs-carry and issues idempotent charges."""

    def __init__(
        self,
        rollovers: RolloverRepository,
        processor: Optional[PaymentProcessor] = None,
        consents: Optional[ConsentRepository] = None,
        min_charge_cents: int = MIN_CHARGE_CENTS,
        currency: str = DEFAULT_CURRENCY
    ):
        self.rollovers = rollovers
        self.processor = processor
        self.consents = consents
        self.min_charge_cents = min_charge_cents
        self.currency = currency

    def settle(
        self,
        user_id: str,
        start_str: str,
        end_str: str,
        per_category: Dict[Category, CategoryBill],
        total_cents: int,
        payment_method_ref: Optional[str] = None
    ) -> SettlementResult:
        """Settle a week's total plus any carried rollover.

        The carry decision is a single atomic rollover update. Settling the
        same week again replaces that week's earlier carry rather than
        adding to it.

        Args:
            user_id: User being settled
            start_str: Week start date string
            end_str: Week end date string
            per_category: Billable breakdown, attached as charge metadata
            total_cents: The week's own billable total
            payment_method_ref: Optional processor payment method

        Returns:
            SettlementResult describing the carry or the charge

        Raises:
            UnconfiguredDependency: If a charge is due but no processor is set
            ProcessorError: If the processor fails or times out
        """
        seen = {}

        def carry_if_below_minimum(current: RolloverRecord) -> RolloverRecord:
            owed = current.owed_before(start_str, end_str)
            seen.update(record=current, owed=owed, grand_total=total_cents + owed)
            if seen["grand_total"] >= self.min_charge_cents:
                return current
            return RolloverRecord(
                cents=seen["grand_total"],
                week_start=start_str,
                week_end=end_str,
                week_cents=total_cents,
            )

        self.rollovers.update(user_id, carry_if_below_minimum)
        snapshot, rollover_cents, grand_total = seen["record"], seen["owed"], seen["grand_total"]

        if grand_total < self.min_charge_cents:
            logger.info(
                "Carrying %d cents for %s (%s..%s): below minimum of %d",
                grand_total, user_id, start_str, end_str, self.min_charge_cents
            )
            return SettlementResult(
                charged=0,
                reason=SettlementReason.BELOW_MINIMUM,
                carried_cents=grand_total,
            )

        if self.processor is None:
            raise UnconfiguredDependency(
                "Payment processor is not configured; cannot charge "
                f"{grand_total} cents for {user_id}"
            )

        key = settlement_idempotency_key(user_id, start_str, end_str, grand_total)
        customer = None
        if self.consents is not None:
            consent = self.consents.get(user_id)
            customer = consent.customer_ref if consent else None

        # A ProcessorError propagates before the rollover is touched
        outcome = self.processor.create_and_confirm_charge(
            amount_cents=grand_total,
            currency=self.currency,
            idempotency_key=key,
            metadata=_charge_metadata(
                user_id, start_str, end_str, per_category, total_cents, rollover_cents
            ),
            payment_method=payment_method_ref,
            customer=customer,
        )

        def clear_charged(current: RolloverRecord) -> RolloverRecord:
            if current == snapshot:
                return RolloverRecord()
            # Another settlement carried in the meantime; keep only what it added
            logger.warning(
                "Rollover for %s changed during charge %s; keeping the difference",
                user_id, outcome.external_id
            )
            remaining = max(0, current.cents - snapshot.cents)
            return RolloverRecord(
                cents=remaining,
                week_start=current.week_start,
                week_end=current.week_end,
                week_cents=min(current.week_cents, remaining),
            )

        self.rollovers.update(user_id, clear_charged)
        logger.info(
            "Charged %d cents for %s (%s..%s): %s %s",
            grand_total, user_id, start_str, end_str, outcome.external_id, outcome.status
        )
        return SettlementResult(
            charged=grand_total,
            reason=SettlementReason.CHARGED,
            external_charge_id=outcome.external_id,
            status=outcome.status,
            idempotency_key=key,
        )
