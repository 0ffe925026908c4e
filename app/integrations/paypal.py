from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.core.exceptions import IntegrationError
from app.schemas.provider import LiveBillingSubscription
from app.schemas.subscription import Payment, SubscriptionStatus

logger = logging.getLogger(__name__)

# PayPal reports approval states that never granted anything locally.
STATUS_MAP = {
    "APPROVAL_PENDING": SubscriptionStatus.PENDING,
    "APPROVED": SubscriptionStatus.PENDING,
    "ACTIVE": SubscriptionStatus.ACTIVE,
    "SUSPENDED": SubscriptionStatus.SUSPENDED,
    "CANCELLED": SubscriptionStatus.CANCELLED,
    "EXPIRED": SubscriptionStatus.EXPIRED,
}


def _parse_datetime(value: Any) -> Optional[datetime]:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class PayPalClient:
    """Read-only PayPal subscriptions API client."""

    PROVIDER = "paypal"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id or (
            settings.paypal_client_id.get_secret_value() if settings.paypal_client_id else None
        )
        self.client_secret = client_secret or (
            settings.paypal_client_secret.get_secret_value() if settings.paypal_client_secret else None
        )
        if not self.client_id or not self.client_secret:
            raise IntegrationError(self.PROVIDER, "PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET are not configured")

        self.client = httpx.AsyncClient(
            base_url=(base_url or str(settings.paypal_api_url)).rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=settings.provider_timeout_seconds,
            transport=transport,
        )
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    async def _get_access_token(self) -> str:
        now = datetime.now(timezone.utc)
        if self._access_token and self._token_expires_at and now < self._token_expires_at:
            return self._access_token

        response = await self.client.post(
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.status_code != 200:
            raise IntegrationError(self.PROVIDER, f"token request failed: {response.text}", response.status_code)

        body = response.json()
        self._access_token = body["access_token"]
        # Renew a minute early to avoid using a token that expires mid-request.
        expires_in = int(body.get("expires_in", 3600))
        self._token_expires_at = now + timedelta(seconds=max(expires_in - 60, 0))
        return self._access_token

    async def get_subscription(self, subscription_id: str) -> LiveBillingSubscription:
        token = await self._get_access_token()
        response = await self.client.get(
            f"/v1/billing/subscriptions/{subscription_id}",
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code != 200:
            raise IntegrationError(
                self.PROVIDER,
                f"subscription {subscription_id} lookup failed: {response.text}",
                response.status_code,
            )
        return self._normalize_subscription(response.json())

    def _normalize_subscription(self, data: Dict[str, Any]) -> LiveBillingSubscription:
        raw_status = str(data.get("status") or "").upper()
        status = STATUS_MAP.get(raw_status)
        if status is None:
            raise IntegrationError(self.PROVIDER, f"unknown subscription status {raw_status!r}")

        last_payment = None
        raw_payment = (data.get("billing_info") or {}).get("last_payment") or {}
        payment_date = _parse_datetime(raw_payment.get("time"))
        amount = raw_payment.get("amount") or {}
        if payment_date and amount.get("value") is not None:
            last_payment = Payment(
                date=payment_date,
                amount=float(amount["value"]),
                currency=str(amount.get("currency_code") or ""),
            )

        return LiveBillingSubscription(
            id=str(data.get("id") or ""),
            status=status,
            last_payment=last_payment,
            date_updated=_parse_datetime(data.get("update_time")),
        )

    async def close(self):
        await self.client.aclose()
