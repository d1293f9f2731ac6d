"""Exceptions raised by the billing eligibility engine."""


class BillingError(Exception):
    """Base exception for billing engine errors."""

    pass


class ValidationError(BillingError):
    """Request or record failed validation (bad period, unknown enum value)."""

    pass


class InvalidAggregateError(BillingError):
    """Negative minutes or days reached the evaluator.

    Indicates an upstream data bug; values are never clamped.
    """

    pass


class AuthorizationError(BillingError):
    """Caller lacks the clinic role required for the requested report."""

    pass


class NotFoundError(BillingError):
    """Referenced enrollment does not exist."""

    pass
