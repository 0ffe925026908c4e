"""Normalized views of provider-side state."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.schemas.subscription import Payment, SubscriptionStatus


class LiveBillingSubscription(BaseModel):
    id: str
    status: SubscriptionStatus
    last_payment: Optional[Payment] = None
    date_updated: Optional[datetime] = None


class LiveSponsor(BaseModel):
    id: str
    login: Optional[str] = None
