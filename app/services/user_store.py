"""
SQLAlchemy-backed persistence for the entitlement fields of users.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models import UserRecord
from app.schemas.subscription import Subscription
from app.schemas.user import UserData

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("display_name", "is_pro", "subscription_id")


class UserStore:
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _to_model(row: UserRecord) -> UserData:
        return UserData(
            id=row.id,
            display_name=row.display_name,
            is_pro=bool(row.is_pro),
            subscription_id=row.subscription_id,
        )

    def get_by_id(self, user_id: Optional[str]) -> Optional[UserData]:
        if not user_id:
            return None
        row = self.db.get(UserRecord, user_id)
        return self._to_model(row) if row else None

    def get_pro(self) -> List[UserData]:
        rows = self.db.query(UserRecord).filter(UserRecord.is_pro.is_(True)).all()
        return [self._to_model(row) for row in rows]

    def update(self, changes: Dict[str, Any]) -> UserData:
        """Apply a partial update; keys other than the entitlement fields are ignored."""
        user_id = changes.get("id")
        try:
            row = self.db.get(UserRecord, user_id) if user_id else None
            if row is None:
                raise NotFoundError(f"User {user_id} not found")
            for key in UPDATABLE_FIELDS:
                if key in changes:
                    setattr(row, key, changes[key])
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return self._to_model(row)

    def switch_to_free(self, user: UserData, subscription: Optional[Subscription] = None) -> UserData:
        """
        Remove the PRO entitlement from the user.

        When a subscription is given, ``subscription_id`` is cleared only if the
        stored user still points at it, so a newer subscription written in the
        meantime is left alone. Without a subscription the pointer is cleared.
        """
        row = self.db.get(UserRecord, user.id)
        if row is None:
            raise NotFoundError(f"User {user.id} not found")

        changes: Dict[str, Any] = {"id": user.id, "is_pro": False}
        if subscription is None or row.subscription_id == subscription.id:
            changes["subscription_id"] = None

        updated = self.update(changes)
        user.is_pro = updated.is_pro
        user.subscription_id = updated.subscription_id

        reason = subscription.describe() if subscription else "no subscription"
        logger.info("%s switched to free (%s)", user.describe(), reason)
        return updated
