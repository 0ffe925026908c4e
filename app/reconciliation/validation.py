"""
Subscription / entitlement state machine.

Every routine runs each subscription it touches through
``validate_subscription`` before doing anything provider specific. Rules are
evaluated in order and the first match wins:

1. the owning user no longer exists: delete long-idle subscriptions, expire
   the rest;
2. the expiry date has passed but the status still looks alive: expire it and
   take PRO away from the user unless another active subscription covers them;
3. the subscription is ACTIVE but the user is not PRO: trust the subscription
   and set the user to PRO.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional

from app.core.clock import as_utc, start_of_day
from app.reconciliation.context import ReconciliationContext
from app.schemas.subscription import Subscription, SubscriptionStatus
from app.schemas.user import UserData

logger = logging.getLogger(__name__)


class ValidationAction(str, Enum):
    DELETED = "deleted"
    EXPIRED_ORPHAN = "expired_orphan"
    EXPIRED = "expired"
    HEALED = "healed"
    UNCHANGED = "unchanged"


@dataclass
class ValidationResult:
    action: ValidationAction
    subscription: Subscription
    user_downgraded: bool = False

    @property
    def deleted(self) -> bool:
        return self.action == ValidationAction.DELETED


def validate_subscription(
    context: ReconciliationContext,
    subscription: Subscription,
    user: Optional[UserData],
) -> ValidationResult:
    now = context.now

    if user is None:
        return _handle_missing_user(context, subscription)

    if (
        not subscription.is_terminal
        and subscription.date_expiry is not None
        and now > start_of_day(subscription.date_expiry)
    ):
        logger.info("%s: expired on %s", subscription.describe(), subscription.date_expiry.date())
        subscription.status = SubscriptionStatus.EXPIRED
        subscription.pending_update = True

        downgraded = False
        if user.is_pro and not context.active_index.has_other_active(user.id, subscription.id):
            context.users.switch_to_free(user, subscription)
            downgraded = True
        return ValidationResult(ValidationAction.EXPIRED, subscription, user_downgraded=downgraded)

    if subscription.status == SubscriptionStatus.ACTIVE and not user.is_pro:
        logger.warning("%s: active but user is not PRO, setting to PRO now", subscription.describe())
        context.users.update(
            {
                "id": user.id,
                "display_name": user.display_name,
                "is_pro": True,
                "subscription_id": subscription.id,
            }
        )
        user.is_pro = True
        user.subscription_id = subscription.id
        return ValidationResult(ValidationAction.HEALED, subscription)

    return ValidationResult(ValidationAction.UNCHANGED, subscription)


def _handle_missing_user(context: ReconciliationContext, subscription: Subscription) -> ValidationResult:
    logger.info("%s: user not found", subscription.describe())

    last_touched = as_utc(subscription.date_updated or subscription.date_created)
    idle_cutoff = context.now - timedelta(days=context.settings.users_idle_days)
    if last_touched is not None and last_touched < idle_cutoff:
        context.subscriptions.delete(subscription)
        subscription.pending_update = False
        return ValidationResult(ValidationAction.DELETED, subscription)

    if subscription.status != SubscriptionStatus.EXPIRED:
        subscription.status = SubscriptionStatus.EXPIRED
        subscription.date_expiry = context.now
        subscription.pending_update = True
        return ValidationResult(ValidationAction.EXPIRED_ORPHAN, subscription)

    return ValidationResult(ValidationAction.UNCHANGED, subscription)
