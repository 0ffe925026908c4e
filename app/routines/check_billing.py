"""
Billing provider sync
Keeps PayPal subscriptions in line with the live PayPal state: payment
metadata, status changes and the end of the grace period after a subscription
stops being paid.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from app.core.clock import add_months, as_utc, start_of_day
from app.core.exceptions import IntegrationError, ValidationError
from app.reconciliation import ReconciliationContext, save_subscriptions, validate_subscription
from app.routines.base import BaseRoutine
from app.schemas.provider import LiveBillingSubscription
from app.schemas.subscription import BillingSubscription, Frequency, SubscriptionSource, SubscriptionStatus

logger = logging.getLogger(__name__)


class CheckBillingRoutine(BaseRoutine):
    name = "check_billing"
    description = "Sync PayPal subscriptions with live PayPal data"

    async def execute(self, context: ReconciliationContext) -> Dict[str, Any]:
        if context.billing is None:
            raise IntegrationError("paypal", "PayPal client is not configured")

        context.active_index.get()
        subscriptions = context.shuffled(context.subscriptions.get_all(SubscriptionSource.PAYPAL))
        outcomes: Counter = Counter()

        for subscription in subscriptions:
            try:
                outcomes[await self._sync_subscription(context, subscription)] += 1
            except Exception as exc:
                outcomes["errors"] += 1
                logger.error("%s: billing sync failed: %s", subscription.describe(), exc, exc_info=True)

        saved = save_subscriptions(context.subscriptions, subscriptions)
        return {
            "success": True,
            "data": {"checked": len(subscriptions), "saved": saved, **outcomes},
        }

    async def _sync_subscription(self, context: ReconciliationContext, subscription: BillingSubscription) -> str:
        if not isinstance(subscription, BillingSubscription):
            raise ValidationError(f"{subscription.describe()} is not a billing subscription")

        user = self._resolve_user(context, subscription)
        result = validate_subscription(context, subscription, user)
        if result.deleted or user is None:
            return "orphaned"
        if not user.is_pro:
            return "not_pro"

        age_days = self._age_days(context, subscription)
        if age_days is not None and age_days < context.settings.billing_min_age_weeks * 7:
            logger.info("%s: skipped (too recent)", subscription.describe())
            return "too_recent"

        live = await context.billing.get_subscription(subscription.id)
        self._sync_payment(subscription, live)

        if subscription.frequency == Frequency.LIFETIME:
            return "synced"

        if subscription.status != live.status:
            logger.info(
                "%s: status %s -> %s",
                subscription.describe(),
                subscription.status.value,
                live.status.value,
            )
            subscription.status = live.status
            subscription.pending_update = True

        # A live ACTIVE subscription renews on PayPal's side, a past local expiry is stale.
        if (
            subscription.status == SubscriptionStatus.ACTIVE
            and subscription.date_expiry is not None
            and context.now > start_of_day(subscription.date_expiry)
        ):
            logger.info("%s: clearing stale expiry date %s", subscription.describe(), subscription.date_expiry.date())
            subscription.date_expiry = None
            subscription.pending_update = True

        if subscription.is_terminal:
            grace_expiry = self._grace_expiry(context, subscription, live)
            if grace_expiry is None:
                logger.warning("%s: no payment date to compute the grace period", subscription.describe())
            elif context.now > grace_expiry and not context.active_index.has_other_active(user.id, subscription.id):
                logger.info("%s: unpaid since %s", subscription.describe(), grace_expiry.date())
                context.users.switch_to_free(user, subscription)
                return "downgraded"

        return "synced"

    @staticmethod
    def _sync_payment(subscription: BillingSubscription, live: LiveBillingSubscription) -> None:
        if live.last_payment is None:
            return
        local = subscription.last_payment
        if local is not None and as_utc(local.date).date() == as_utc(live.last_payment.date).date():
            return

        subscription.last_payment = live.last_payment
        subscription.price = live.last_payment.amount
        subscription.currency = live.last_payment.currency
        subscription.pending_update = True

    @staticmethod
    def _grace_expiry(
        context: ReconciliationContext,
        subscription: BillingSubscription,
        live: LiveBillingSubscription,
    ) -> Optional[datetime]:
        payment = live.last_payment or subscription.last_payment
        base = as_utc(payment.date if payment else live.date_updated)
        if base is None:
            return None
        if subscription.frequency == Frequency.MONTHLY:
            return base + timedelta(weeks=context.settings.monthly_grace_weeks)
        return add_months(base, context.settings.yearly_grace_months)
