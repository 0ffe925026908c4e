"""
In-memory stand-ins for the stores and provider clients.

They follow the same contracts as the SQLAlchemy stores (copies in, copies
out, ``update`` stamps ``date_updated``) and record every write so tests can
assert on what a run persisted.
"""
from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple, Union

from app.config import Settings
from app.core.clock import end_of_day, now_utc
from app.core.exceptions import IntegrationError, NotFoundError
from app.reconciliation import ReconciliationContext
from app.schemas.provider import LiveBillingSubscription, LiveSponsor
from app.schemas.subscription import (
    TERMINAL_STATUSES,
    Subscription,
    SubscriptionStats,
    SubscriptionStatus,
)
from app.schemas.user import UserData

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


class FakeSubscriptionStore:
    def __init__(self, subscriptions: Iterable[Subscription] = (), dangling_pending_days: int = 2, clock=lambda: NOW):
        self.records: Dict[str, Subscription] = {s.id: s.model_copy(deep=True) for s in subscriptions}
        self.dangling_pending_days = dangling_pending_days
        self.clock = clock
        self.updated: List[str] = []
        self.deleted: List[str] = []
        self.active_queries = 0
        # Rows that would fail to parse, keyed by id with their user_id.
        self.malformed: Dict[str, Optional[str]] = {}

    def _copies(self, items: Iterable[Subscription]) -> List[Subscription]:
        return [s.model_copy(deep=True) for s in items]

    def get_all(self, source) -> List[Subscription]:
        value = getattr(source, "value", source)
        return self._copies(s for s in self.records.values() if s.source == value)

    def get_active(self) -> List[Subscription]:
        self.active_queries += 1
        return self._copies(s for s in self.records.values() if s.status == SubscriptionStatus.ACTIVE)

    def get_non_active(self) -> List[Subscription]:
        return self._copies(s for s in self.records.values() if s.status != SubscriptionStatus.ACTIVE)

    def get_dangling(self, now: Optional[datetime] = None) -> List[Subscription]:
        cutoff = (now or now_utc()) - timedelta(days=self.dangling_pending_days)
        result = []
        for s in self.records.values():
            touched = s.date_updated or s.date_created
            if not s.user_id:
                result.append(s)
            elif s.status == SubscriptionStatus.PENDING and touched is not None and touched < cutoff:
                result.append(s)
        return self._copies(result)

    def get_expiring_on(self, date: datetime) -> List[Subscription]:
        limit = end_of_day(date)
        return self._copies(
            s
            for s in self.records.values()
            if s.status not in TERMINAL_STATUSES and s.date_expiry is not None and s.date_expiry <= limit
        )

    def get_by_id(self, subscription_id: str) -> Optional[Subscription]:
        record = self.records.get(subscription_id)
        return record.model_copy(deep=True) if record else None

    def count(self, status: Optional[SubscriptionStatus] = None) -> int:
        return sum(1 for s in self.records.values() if status is None or s.status == status)

    def stats(self) -> SubscriptionStats:
        by_source: Dict[str, int] = {}
        for s in self.records.values():
            by_source[s.source] = by_source.get(s.source, 0) + 1
        return SubscriptionStats(
            total=self.count(),
            active=self.count(SubscriptionStatus.ACTIVE),
            by_source=by_source,
        )

    def update(self, subscription: Subscription) -> Subscription:
        subscription.date_updated = self.clock()
        stored = subscription.model_copy(deep=True)
        stored.pending_update = False
        self.records[subscription.id] = stored
        self.updated.append(subscription.id)
        return subscription

    def delete(self, subscription: Subscription) -> bool:
        self.deleted.append(subscription.id)
        return self.records.pop(subscription.id, None) is not None

    def delete_malformed(self) -> List[Tuple[str, Optional[str]]]:
        removed = list(self.malformed.items())
        self.malformed.clear()
        self.deleted.extend(subscription_id for subscription_id, _ in removed)
        return removed


class FakeUserStore:
    def __init__(self, users: Iterable[UserData] = ()):
        self.records: Dict[str, UserData] = {u.id: u.model_copy() for u in users}
        self.updated: List[dict] = []

    def get_by_id(self, user_id: Optional[str]) -> Optional[UserData]:
        if not user_id:
            return None
        record = self.records.get(user_id)
        return record.model_copy() if record else None

    def get_pro(self) -> List[UserData]:
        return [u.model_copy() for u in self.records.values() if u.is_pro]

    def update(self, changes: dict) -> UserData:
        record = self.records.get(changes.get("id"))
        if record is None:
            raise NotFoundError(f"User {changes.get('id')} not found")
        for key in ("display_name", "is_pro", "subscription_id"):
            if key in changes:
                setattr(record, key, changes[key])
        self.updated.append(dict(changes))
        return record.model_copy()

    def switch_to_free(self, user: UserData, subscription: Optional[Subscription] = None) -> UserData:
        stored = self.records.get(user.id)
        if stored is None:
            raise NotFoundError(f"User {user.id} not found")
        changes = {"id": user.id, "is_pro": False}
        if subscription is None or stored.subscription_id == subscription.id:
            changes["subscription_id"] = None
        updated = self.update(changes)
        user.is_pro = updated.is_pro
        user.subscription_id = updated.subscription_id
        return updated


class FakeBillingClient:
    def __init__(self, live: Dict[str, Union[LiveBillingSubscription, Exception]] | None = None):
        self.live = live or {}
        self.calls: List[str] = []

    async def get_subscription(self, subscription_id: str) -> LiveBillingSubscription:
        self.calls.append(subscription_id)
        value = self.live.get(subscription_id)
        if value is None:
            raise IntegrationError("paypal", f"subscription {subscription_id} lookup failed", 404)
        if isinstance(value, Exception):
            raise value
        return value

    async def close(self):
        pass


class FakeSponsorshipClient:
    def __init__(self, sponsor_ids: Iterable[str] = (), error: Optional[Exception] = None):
        self.sponsor_ids = list(sponsor_ids)
        self.error = error
        self.calls = 0

    async def get_active_sponsors(self) -> List[LiveSponsor]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [LiveSponsor(id=sponsor_id) for sponsor_id in self.sponsor_ids]

    async def close(self):
        pass


def make_context(
    subscriptions: Iterable[Subscription] = (),
    users: Iterable[UserData] = (),
    billing: Optional[FakeBillingClient] = None,
    sponsorship: Optional[FakeSponsorshipClient] = None,
    now: datetime = NOW,
    seed: int = 7,
    subscription_store: Optional[FakeSubscriptionStore] = None,
    user_store: Optional[FakeUserStore] = None,
) -> ReconciliationContext:
    """Fresh run context; pass existing stores to simulate a follow-up run."""
    return ReconciliationContext(
        subscriptions=subscription_store or FakeSubscriptionStore(subscriptions),
        users=user_store or FakeUserStore(users),
        settings=Settings(),
        billing=billing,
        sponsorship=sponsorship,
        now=now,
        rng=random.Random(seed),
        job_name="test",
    )


def write_count(context: ReconciliationContext) -> int:
    return len(context.subscriptions.updated) + len(context.subscriptions.deleted) + len(context.users.updated)
