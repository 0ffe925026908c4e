"""
Expiring subscriptions
Closes subscriptions whose expiry date is today or already behind us.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict

from app.reconciliation import ReconciliationContext, save_subscriptions, validate_subscription
from app.routines.base import BaseRoutine

logger = logging.getLogger(__name__)


class CheckExpiringRoutine(BaseRoutine):
    name = "check_expiring"
    description = "Validate subscriptions expiring today"

    async def execute(self, context: ReconciliationContext) -> Dict[str, Any]:
        context.active_index.get()
        subscriptions = context.shuffled(context.subscriptions.get_expiring_on(context.now))
        logger.info("Will check %s expiring subscriptions", len(subscriptions))
        outcomes: Counter = Counter()

        for subscription in subscriptions:
            try:
                user = self._resolve_user(context, subscription)
                outcomes[validate_subscription(context, subscription, user).action.value] += 1
            except Exception as exc:
                outcomes["errors"] += 1
                logger.error("%s: expiry check failed: %s", subscription.describe(), exc, exc_info=True)

        saved = save_subscriptions(context.subscriptions, subscriptions)
        return {
            "success": True,
            "data": {"checked": len(subscriptions), "saved": saved, **outcomes},
        }
