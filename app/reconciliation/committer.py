from __future__ import annotations

import logging
from typing import Iterable

from app.schemas.subscription import Subscription
from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


def save_subscriptions(store: SubscriptionStore, subscriptions: Iterable[Subscription]) -> int:
    """Persist subscriptions flagged with pending_update, one at a time, in the given order."""
    saved = 0
    for subscription in subscriptions:
        if not subscription.pending_update:
            continue
        store.update(subscription)
        subscription.pending_update = False
        saved += 1

    if saved:
        logger.info("Saved %s subscription updates", saved)
    return saved
