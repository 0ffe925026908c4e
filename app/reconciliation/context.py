"""
Run-scoped state shared by every routine of one reconciliation run.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Set, Tuple, TypeVar

from app.config import Settings
from app.core.clock import now_utc
from app.integrations.github import GitHubSponsorsClient
from app.integrations.paypal import PayPalClient
from app.schemas.subscription import Subscription
from app.services.subscription_store import SubscriptionStore
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ActiveSubscriptionIndex:
    """
    Snapshot of all ACTIVE subscriptions, loaded on first use and kept for the
    rest of the run. Changes made during the run are deliberately not
    reflected; the next run builds a fresh index.
    """

    def __init__(self, store: SubscriptionStore):
        self._store = store
        self._items: Optional[Tuple[Subscription, ...]] = None

    @property
    def loaded(self) -> bool:
        return self._items is not None

    def get(self) -> Tuple[Subscription, ...]:
        if self._items is None:
            self._items = tuple(self._store.get_active())
            logger.info("Loaded %s active subscriptions", len(self._items))
        return self._items

    def user_ids(self) -> Set[str]:
        return {s.user_id for s in self.get() if s.user_id}

    def has_other_active(self, user_id: Optional[str], exclude_id: Optional[str] = None) -> bool:
        """True when the user owns an ACTIVE subscription other than ``exclude_id``."""
        if not user_id:
            return False
        return any(s.user_id == user_id and s.id != exclude_id for s in self.get())


@dataclass
class ReconciliationContext:
    subscriptions: SubscriptionStore
    users: UserStore
    settings: Settings
    billing: Optional[PayPalClient] = None
    sponsorship: Optional[GitHubSponsorsClient] = None
    now: datetime = field(default_factory=now_utc)
    rng: random.Random = field(default_factory=random.Random)
    job_name: Optional[str] = None
    active_index: ActiveSubscriptionIndex = field(init=False)

    def __post_init__(self) -> None:
        self.active_index = ActiveSubscriptionIndex(self.subscriptions)

    def shuffled(self, items: Iterable[T]) -> List[T]:
        """Randomized processing order, so truncated runs do not always starve the same records."""
        result = list(items)
        self.rng.shuffle(result)
        return result
