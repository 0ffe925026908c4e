"""
Sponsorship provider sync
Makes sure PRO users backed by a GitHub sponsorship are still active sponsors.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, Set

from app.core.exceptions import IntegrationError
from app.reconciliation import ReconciliationContext, save_subscriptions, validate_subscription
from app.routines.base import BaseRoutine
from app.schemas.subscription import Subscription, SubscriptionSource, SubscriptionStatus

logger = logging.getLogger(__name__)


class CheckSponsorshipRoutine(BaseRoutine):
    name = "check_sponsorship"
    description = "Sync GitHub subscriptions with the live sponsors list"

    async def execute(self, context: ReconciliationContext) -> Dict[str, Any]:
        if context.sponsorship is None:
            raise IntegrationError("github", "GitHub Sponsors client is not configured")

        context.active_index.get()
        live_ids = {sponsor.id for sponsor in await context.sponsorship.get_active_sponsors()}

        subscriptions = context.shuffled(context.subscriptions.get_all(SubscriptionSource.GITHUB))
        outcomes: Counter = Counter()

        for subscription in subscriptions:
            try:
                outcomes[self._check_subscription(context, subscription, live_ids)] += 1
            except Exception as exc:
                outcomes["errors"] += 1
                logger.error("%s: sponsorship check failed: %s", subscription.describe(), exc, exc_info=True)

        saved = save_subscriptions(context.subscriptions, subscriptions)
        return {
            "success": True,
            "data": {
                "checked": len(subscriptions),
                "live_sponsors": len(live_ids),
                "saved": saved,
                **outcomes,
            },
        }

    def _check_subscription(
        self,
        context: ReconciliationContext,
        subscription: Subscription,
        live_ids: Set[str],
    ) -> str:
        user = self._resolve_user(context, subscription)
        result = validate_subscription(context, subscription, user)
        if result.deleted or user is None:
            return "orphaned"
        if not user.is_pro:
            return "not_pro"

        age_days = self._age_days(context, subscription)
        if age_days is not None and age_days < context.settings.sponsorship_min_age_days:
            logger.info("%s: new subscription skipped", subscription.describe())
            return "too_recent"

        if subscription.id in live_ids:
            return "live"
        if context.active_index.has_other_active(user.id, subscription.id):
            return "covered"

        logger.info("%s: not found or not active on GitHub", subscription.describe())
        if subscription.status != SubscriptionStatus.EXPIRED:
            subscription.status = SubscriptionStatus.EXPIRED
            subscription.pending_update = True
        context.users.switch_to_free(user, subscription)
        return "downgraded"
