"""
Payment processor adapters.

Provides the create-and-confirm charge call used by settlement.
"""

from .base import ChargeOutcome, PaymentProcessor
from .stripe_client import StripeProcessor, build_processor

__all__ = ["ChargeOutcome", "PaymentProcessor", "StripeProcessor", "build_processor"]
