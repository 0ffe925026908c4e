"""Operator authentication for the reconciliation control endpoints."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings

ALGORITHM = "HS256"
TOKEN_TTL_MINUTES = 60 * 12
OPERATOR_ROLE = "operator"
AUTH_SCHEME = HTTPBearer(auto_error=False)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _secret_key() -> str:
    return settings.secret_key.get_secret_value()


def create_access_token(
    subject: str,
    extra: Dict[str, Any] | None = None,
    ttl_minutes: int = TOKEN_TTL_MINUTES,
) -> str:
    payload: Dict[str, Any] = {
        "sub": subject,
        "role": OPERATOR_ROLE,
        "iat": int(now_utc().timestamp()),
        "exp": int((now_utc() + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, _secret_key(), algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, _secret_key(), algorithms=[ALGORITHM])


def require_operator(
    creds: HTTPAuthorizationCredentials | None = Depends(AUTH_SCHEME),
) -> Dict[str, Any]:
    if creds is None or not creds.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
        )
    try:
        payload = decode_token(creds.credentials)
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token"
        )

    if payload.get("role") != OPERATOR_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Operator role required"
        )
    return {"id": str(payload.get("sub", "")), "role": OPERATOR_ROLE}
