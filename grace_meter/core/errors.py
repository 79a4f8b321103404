"""
Error taxonomy for the settlement engine.

Every engine failure is scoped to a single user and never corrupts
another user's state.
"""


class GraceMeterError(Exception):
    """Base class for all engine errors."""


class ValidationError(GraceMeterError, ValueError):
    """A required field is missing or invalid. Raised before any mutation."""


class UnconfiguredDependency(GraceMeterError):
    """The payment processor is not configured, so settlement cannot charge."""


class ProcessorError(GraceMeterError):
    """Raised when an external charge attempt fails or times out.

    The rollover is left untouched, so a retry with unchanged inputs reuses
    the same idempotency key.
    """
    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class InvariantViolation(GraceMeterError):
    """Internal defect, e.g. leftover seconds >= 60 after a carry."""
