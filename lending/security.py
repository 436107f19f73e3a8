"""Bearer-token guard for the API routes."""

from __future__ import annotations

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lending.config import settings

bearer_scheme = HTTPBearer()


def require_token(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
) -> str:
    """Dependency that accepts only tokens listed in the settings."""
    if credentials.credentials not in settings.api_tokens:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid token",
        )
    return credentials.credentials
