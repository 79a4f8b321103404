"""
Stripe payment processor.

Creates and confirms a PaymentIntent in one call, bounded by a timeout.
"""

import concurrent.futures
import logging
import os
from typing import Dict, Optional

import stripe

from .base import ChargeOutcome
from grace_meter.core.errors import ProcessorError, UnconfiguredDependency

logger = logging.getLogger(__name__)

API_KEY_ENV = "STRIPE_SECRET_KEY"


class StripeProcessor:
    """Stripe-backed processor for weekly settlement charges.

    Every call carries the caller's idempotency key, so Stripe collapses
    retries of the same settlement into one PaymentIntent.
    """

    def __init__(self, api_key: str, timeout_seconds: float = 20.0):
        """Initialize the processor.

        Args:
            api_key: Stripe secret key (required)
            timeout_seconds: Upper bound on one charge call

        Raises:
            UnconfiguredDependency: If api_key is missing/empty
        """
        if not api_key or not api_key.strip():
            raise UnconfiguredDependency("Stripe API key is not configured")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="stripe-charge"
        )

    def create_and_confirm_charge(
        self,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: Dict[str, str],
        payment_method: Optional[str] = None,
        customer: Optional[str] = None
    ) -> ChargeOutcome:
        """Create and confirm a PaymentIntent.

        Args:
            amount_cents: Amount to charge, in cents
            currency: ISO currency code
            idempotency_key: Deterministic key for this settlement attempt
            metadata: Auditable string metadata attached to the charge
            payment_method: Optional payment method id
            customer: Optional Stripe customer id

        Returns:
            ChargeOutcome with the PaymentIntent id and status

        Raises:
            ProcessorError: On any Stripe error or when the call times out
        """
        params = {
            "amount": amount_cents,
            "currency": currency,
            "confirm": True,
            "metadata": {key: str(value) for key, value in metadata.items()},
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
        }
        if payment_method:
            params["payment_method"] = payment_method
        if customer:
            params["customer"] = customer
            params["off_session"] = True

        future = self._executor.submit(self._create_intent, params, idempotency_key)
        try:
            intent = future.result(timeout=self.timeout_seconds)
        except concurrent.futures.TimeoutError:
            # Stripe may still complete this intent; the key makes a retry safe
            logger.warning(
                "Stripe charge timed out after %.1fs (idempotency_key=%s)",
                self.timeout_seconds, idempotency_key
            )
            raise ProcessorError(
                f"Stripe charge timed out after {self.timeout_seconds}s; outcome unknown",
                timed_out=True
            )
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            logger.warning("Stripe charge failed (idempotency_key=%s): %s", idempotency_key, message)
            raise ProcessorError(message) from e

        return ChargeOutcome(external_id=intent.id, status=intent.status)

    def _create_intent(self, params: dict, idempotency_key: str):
        return stripe.PaymentIntent.create(
            api_key=self.api_key,
            idempotency_key=idempotency_key,
            **params
        )


def build_processor(
    api_key: Optional[str] = None,
    timeout_seconds: float = 20.0
) -> Optional[StripeProcessor]:
    """Build a StripeProcessor from an explicit key or STRIPE_SECRET_KEY.

    Returns None when no key is available; settlement then raises
    UnconfiguredDependency while previews keep working.
    """
    key = api_key or os.getenv(API_KEY_ENV)
    if not key:
        logger.info("No Stripe API key configured; settlement charges are disabled")
        return None
    return StripeProcessor(api_key=key, timeout_seconds=timeout_seconds)
