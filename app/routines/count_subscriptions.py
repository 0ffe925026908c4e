from __future__ import annotations

import logging
from typing import Any, Dict

from app.reconciliation import ReconciliationContext
from app.routines.base import BaseRoutine

logger = logging.getLogger(__name__)


class CountSubscriptionsRoutine(BaseRoutine):
    name = "count_subscriptions"
    description = "Count total and active subscriptions"

    async def execute(self, context: ReconciliationContext) -> Dict[str, Any]:
        stats = context.subscriptions.stats()
        logger.info("Subscriptions total: %s, active: %s", stats.total, stats.active)
        return {"success": True, "data": stats.model_dump()}
