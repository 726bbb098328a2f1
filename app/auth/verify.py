"""
verify.py
---------
Purpose:
    Shared-secret verification for scheduler-triggered endpoints.

Notes:
    - The cron caller sends `Authorization: Bearer <CRON_SECRET>`.
    - When CRON_SECRET is not configured the check is skipped (local dev).
    - Provides `cron_auth_dependency` for protected routes.
"""

import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings

_security = HTTPBearer(auto_error=False)


def verify_cron_secret(token: str | None) -> bool:
    expected = settings.CRON_SECRET
    if not expected:
        return True
    if not token:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())


def cron_auth_dependency(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
) -> None:
    token = credentials.credentials if credentials else None
    if not verify_cron_secret(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
