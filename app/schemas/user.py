from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class UserData(BaseModel):
    """Entitlement-relevant subset of a user."""

    id: str
    display_name: Optional[str] = None
    is_pro: bool = False
    subscription_id: Optional[str] = None

    def describe(self) -> str:
        return f"User {self.id} {self.display_name or ''}".rstrip()
