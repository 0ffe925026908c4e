"""Subscription reconciliation core: run context, state machine and commit step."""

from .committer import save_subscriptions
from .context import ActiveSubscriptionIndex, ReconciliationContext
from .validation import ValidationAction, ValidationResult, validate_subscription

__all__ = [
    "ActiveSubscriptionIndex",
    "ReconciliationContext",
    "ValidationAction",
    "ValidationResult",
    "save_subscriptions",
    "validate_subscription",
]
