"""
SQLAlchemy-backed persistence for subscriptions.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import as_utc, end_of_day, now_utc
from app.models import SubscriptionRecord
from app.schemas.subscription import (
    TERMINAL_STATUSES,
    BillingSubscription,
    Subscription,
    SubscriptionSource,
    SubscriptionStats,
    SubscriptionStatus,
    subscription_adapter,
)

logger = logging.getLogger(__name__)

BILLING_FIELDS = ("frequency", "price", "currency", "last_payment")


class SubscriptionStore:
    """Reads and writes subscription rows, returning typed subscription models."""

    def __init__(self, db: Session, dangling_pending_days: int = 2):
        self.db = db
        self.dangling_pending_days = dangling_pending_days

    # ---------------------------------------------------------
    # Mapping
    # ---------------------------------------------------------
    @staticmethod
    def _to_model(row: SubscriptionRecord) -> Subscription:
        data: dict[str, Any] = {
            "id": row.id,
            "user_id": row.user_id,
            "source": row.source,
            "status": row.status,
            "date_created": as_utc(row.date_created),
            "date_updated": as_utc(row.date_updated),
            "date_expiry": as_utc(row.date_expiry),
        }
        if row.source == SubscriptionSource.PAYPAL.value:
            data["price"] = row.price
            data["currency"] = row.currency
            data["last_payment"] = row.last_payment
            if row.frequency:
                data["frequency"] = row.frequency
        return subscription_adapter.validate_python(data)

    def _to_models(self, rows: Iterable[SubscriptionRecord]) -> List[Subscription]:
        result: List[Subscription] = []
        for row in rows:
            try:
                result.append(self._to_model(row))
            except PydanticValidationError as exc:
                logger.warning("Skipping malformed subscription %s: %s", row.id, exc)
        return result

    # ---------------------------------------------------------
    # GET
    # ---------------------------------------------------------
    def get_all(self, source: SubscriptionSource | str) -> List[Subscription]:
        source_value = getattr(source, "value", source)
        rows = self.db.query(SubscriptionRecord).filter(SubscriptionRecord.source == source_value).all()
        return self._to_models(rows)

    def get_active(self) -> List[Subscription]:
        rows = (
            self.db.query(SubscriptionRecord)
            .filter(SubscriptionRecord.status == SubscriptionStatus.ACTIVE.value)
            .all()
        )
        return self._to_models(rows)

    def get_non_active(self) -> List[Subscription]:
        rows = (
            self.db.query(SubscriptionRecord)
            .filter(SubscriptionRecord.status != SubscriptionStatus.ACTIVE.value)
            .all()
        )
        return self._to_models(rows)

    def get_dangling(self, now: Optional[datetime] = None) -> List[Subscription]:
        """Subscriptions without a user reference, or stuck in PENDING past the cutoff."""
        cutoff = (now or now_utc()) - timedelta(days=self.dangling_pending_days)
        last_touched = func.coalesce(SubscriptionRecord.date_updated, SubscriptionRecord.date_created)
        rows = (
            self.db.query(SubscriptionRecord)
            .filter(
                or_(
                    SubscriptionRecord.user_id.is_(None),
                    SubscriptionRecord.user_id == "",
                    and_(
                        SubscriptionRecord.status == SubscriptionStatus.PENDING.value,
                        last_touched < cutoff,
                    ),
                )
            )
            .all()
        )
        return self._to_models(rows)

    def get_expiring_on(self, date: datetime) -> List[Subscription]:
        """Non-terminal subscriptions with an expiry date up to the end of the given day."""
        rows = (
            self.db.query(SubscriptionRecord)
            .filter(
                SubscriptionRecord.status.notin_([s.value for s in TERMINAL_STATUSES]),
                SubscriptionRecord.date_expiry.isnot(None),
                SubscriptionRecord.date_expiry <= end_of_day(date),
            )
            .all()
        )
        return self._to_models(rows)

    def get_by_id(self, subscription_id: str) -> Optional[Subscription]:
        row = self.db.get(SubscriptionRecord, subscription_id)
        if row is None:
            return None
        return self._to_model(row)

    def count(self, status: SubscriptionStatus | None = None) -> int:
        query = self.db.query(SubscriptionRecord)
        if status is not None:
            query = query.filter(SubscriptionRecord.status == status.value)
        return query.count()

    def stats(self) -> SubscriptionStats:
        by_source = dict(
            self.db.query(SubscriptionRecord.source, func.count(SubscriptionRecord.id))
            .group_by(SubscriptionRecord.source)
            .all()
        )
        return SubscriptionStats(
            total=self.count(),
            active=self.count(SubscriptionStatus.ACTIVE),
            by_source=by_source,
        )

    # ---------------------------------------------------------
    # UPDATE / DELETE
    # ---------------------------------------------------------
    def update(self, subscription: Subscription) -> Subscription:
        """Merge the subscription into its row (creating it if missing) and stamp date_updated."""
        subscription.date_updated = now_utc()
        data = subscription.model_dump(mode="json", exclude={"pending_update"})
        data["date_created"] = subscription.date_created
        data["date_updated"] = subscription.date_updated
        data["date_expiry"] = subscription.date_expiry

        try:
            row = self.db.get(SubscriptionRecord, subscription.id)
            if row is None:
                row = SubscriptionRecord(id=subscription.id)
                self.db.add(row)
            for key in ("user_id", "source", "status", "date_created", "date_updated", "date_expiry"):
                setattr(row, key, data[key])
            if isinstance(subscription, BillingSubscription):
                for key in BILLING_FIELDS:
                    setattr(row, key, data[key])
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.debug("Saved %s: %s", subscription.describe(), subscription.status.value)
        return subscription

    def delete(self, subscription: Subscription) -> bool:
        try:
            row = self.db.get(SubscriptionRecord, subscription.id)
            if row is None:
                return False
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info("Deleted %s", subscription.describe())
        return True

    def delete_malformed(self) -> List[Tuple[str, Optional[str]]]:
        """Delete rows that no longer parse as a subscription, returning their (id, user_id) pairs."""
        removed: List[Tuple[str, Optional[str]]] = []
        try:
            for row in self.db.query(SubscriptionRecord).all():
                try:
                    self._to_model(row)
                except PydanticValidationError as exc:
                    logger.warning("Deleting malformed subscription %s: %s", row.id, exc)
                    removed.append((row.id, row.user_id))
                    self.db.delete(row)
            if removed:
                self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return removed
