"""
Subscription domain types.

A subscription is a tagged union keyed by ``source``. Only the billing
provider variant carries payment metadata (``frequency``, ``last_payment``,
``price``, ``currency``); sponsorship, trial and manual subscriptions are
plain status records.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class SubscriptionSource(str, Enum):
    PAYPAL = "paypal"
    GITHUB = "github"
    TRIAL = "trial"
    MANUAL = "manual"


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES = frozenset(
    {SubscriptionStatus.SUSPENDED, SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED}
)


class Frequency(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"


class Payment(BaseModel):
    date: datetime
    amount: float
    currency: str


class BaseSubscription(BaseModel):
    id: str
    user_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.PENDING
    date_created: Optional[datetime] = None
    date_updated: Optional[datetime] = None
    date_expiry: Optional[datetime] = None

    # Set during a run when the record must be persisted; never stored.
    pending_update: bool = Field(default=False, exclude=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def describe(self) -> str:
        return f"Subscription {self.id} ({self.source}) - User {self.user_id or '-'}"


class BillingSubscription(BaseSubscription):
    source: Literal["paypal"] = "paypal"
    frequency: Frequency = Frequency.MONTHLY
    last_payment: Optional[Payment] = None
    price: Optional[float] = None
    currency: Optional[str] = None


class SponsorshipSubscription(BaseSubscription):
    source: Literal["github"] = "github"


class TrialSubscription(BaseSubscription):
    source: Literal["trial"] = "trial"


class ManualSubscription(BaseSubscription):
    source: Literal["manual"] = "manual"


Subscription = Annotated[
    Union[BillingSubscription, SponsorshipSubscription, TrialSubscription, ManualSubscription],
    Field(discriminator="source"),
]

subscription_adapter: TypeAdapter[Subscription] = TypeAdapter(Subscription)


class SubscriptionStats(BaseModel):
    total: int
    active: int
    by_source: dict[str, int] = Field(default_factory=dict)
