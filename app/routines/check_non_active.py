"""
Non-active subscriptions cleanup
Deletes dangling and malformed subscriptions and validates the non-active
ones of users that have no active subscription left.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, Optional, Set

from app.reconciliation import ReconciliationContext, save_subscriptions, validate_subscription
from app.routines.base import BaseRoutine

logger = logging.getLogger(__name__)


class CheckNonActiveRoutine(BaseRoutine):
    name = "check_non_active"
    description = "Remove dangling subscriptions and validate non-active ones"

    async def execute(self, context: ReconciliationContext) -> Dict[str, Any]:
        context.active_index.get()

        deleted_ids = self._delete_dangling(context)

        users_with_active = context.active_index.user_ids()
        candidates = [
            s
            for s in context.subscriptions.get_non_active()
            if s.id not in deleted_ids and s.user_id not in users_with_active
        ]
        subscriptions = context.shuffled(candidates)
        outcomes: Counter = Counter()

        for subscription in subscriptions:
            try:
                user = self._resolve_user(context, subscription)
                result = validate_subscription(context, subscription, user)
                outcomes[result.action.value] += 1
            except Exception as exc:
                outcomes["errors"] += 1
                logger.error("%s: validation failed: %s", subscription.describe(), exc, exc_info=True)

        saved = save_subscriptions(context.subscriptions, subscriptions)
        return {
            "success": True,
            "data": {
                "dangling_deleted": len(deleted_ids),
                "checked": len(subscriptions),
                "saved": saved,
                **outcomes,
            },
        }

    def _delete_dangling(self, context: ReconciliationContext) -> Set[str]:
        deleted: Set[str] = set()
        for subscription_id, user_id in context.subscriptions.delete_malformed():
            deleted.add(subscription_id)
            try:
                self._release_user(context, user_id, subscription_id)
            except Exception as exc:
                logger.error("Subscription %s: dangling cleanup failed: %s", subscription_id, exc, exc_info=True)

        for subscription in context.subscriptions.get_dangling(context.now):
            try:
                context.subscriptions.delete(subscription)
                deleted.add(subscription.id)
                self._release_user(context, subscription.user_id, subscription.id)
            except Exception as exc:
                logger.error("%s: dangling cleanup failed: %s", subscription.describe(), exc, exc_info=True)
        return deleted

    @staticmethod
    def _release_user(context: ReconciliationContext, user_id: Optional[str], subscription_id: str) -> None:
        """Clear the user's pointer only while it still references the deleted subscription."""
        user = context.users.get_by_id(user_id)
        if user is None or user.subscription_id != subscription_id:
            return
        context.users.update({"id": user.id, "display_name": user.display_name, "subscription_id": None})
        logger.info("%s: cleared subscription reference to %s", user.describe(), subscription_id)
