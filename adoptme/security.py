"""Request authentication for the HTTP routers."""
from __future__ import annotations

from typing import Optional

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import UnauthenticatedError
from .models import Subject
from .sessions import COOKIE_NAME, SessionTokens


class TokenAuth:
    """Resolve the session token from an ``Authorization`` header or the cookie."""

    def __init__(self, tokens: SessionTokens, *, cookie_name: str = COOKIE_NAME) -> None:
        self._tokens = tokens
        self._cookie_name = cookie_name
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> Subject:
        token = await self._extract(request)
        if not token:
            raise UnauthenticatedError("Authentication required")
        subject = self._tokens.decode(token)
        request.state.subject = subject
        return subject

    async def _extract(self, request: Request) -> Optional[str]:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is not None and credentials.scheme.lower() == "bearer":
            return credentials.credentials
        return request.cookies.get(self._cookie_name)


__all__ = ["TokenAuth"]
