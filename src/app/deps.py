# src/app/deps.py
from __future__ import annotations

import hmac
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from supabase import Client, create_client

from src.app.config import settings

logger = logging.getLogger(__name__)

_client: Client | None = None


def get_supabase() -> Client:
    """Process-wide Supabase client using the service-role key."""
    global _client
    if _client is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
        _client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


auth_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: str
    email: str | None = None


def _bearer_token(cred: HTTPAuthorizationCredentials | None) -> str | None:
    if cred is None or cred.scheme.lower() != "bearer" or not cred.credentials:
        return None
    return cred.credentials


async def get_current_user(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    supa: Client = Depends(get_supabase),
) -> CurrentUser:
    """
    Resolves the Supabase access token in `Authorization: Bearer` to a user.
    Every route that touches jobs, recipes or usage depends on this.
    """
    token = _bearer_token(cred)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        user = supa.auth.get_user(token).user
    except Exception as error:
        logger.info("Token rejected by GoTrue: error=%s", type(error).__name__)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    return CurrentUser(id=str(user.id), email=user.email)


def require_internal_token(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
) -> None:
    """Guards internal endpoints. No token configured means the guard is open."""
    expected = settings.INTERNAL_API_TOKEN
    if not expected:
        return
    token = _bearer_token(cred)
    if token is None or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
