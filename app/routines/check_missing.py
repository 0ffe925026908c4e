"""
PRO users without a subscription
Final safety net: a PRO user whose subscription reference does not resolve is
switched to free.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from app.reconciliation import ReconciliationContext
from app.routines.base import BaseRoutine

logger = logging.getLogger(__name__)


class CheckMissingRoutine(BaseRoutine):
    name = "check_missing"
    description = "Switch PRO users without a valid subscription reference to free"

    async def execute(self, context: ReconciliationContext) -> Dict[str, Any]:
        users = context.users.get_pro()
        downgraded = 0
        errors = 0

        for user in users:
            try:
                subscription = (
                    context.subscriptions.get_by_id(user.subscription_id) if user.subscription_id else None
                )
                if subscription is None:
                    logger.info("%s: subscription %s not found", user.describe(), user.subscription_id)
                    context.users.switch_to_free(user)
                    downgraded += 1
            except Exception as exc:
                errors += 1
                logger.error("%s: missing subscription check failed: %s", user.describe(), exc, exc_info=True)

        return {
            "success": True,
            "data": {"checked": len(users), "downgraded": downgraded, "errors": errors},
        }
