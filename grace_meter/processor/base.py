"""
Payment processor contract.

The engine only ever sees an external id and a status.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Protocol


@dataclass(frozen=True)
class ChargeOutcome:
    """Result of a successful create-and-confirm call."""
    external_id: str
    status: str


class PaymentProcessor(Protocol):
    """Anything able to create and confirm a charge in one call."""

    def create_and_confirm_charge(
        self,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: Dict[str, str],
        payment_method: Optional[str] = None,
        customer: Optional[str] = None
    ) -> ChargeOutcome:
        """Charge amount_cents; raise ProcessorError on any failure."""
        ...
