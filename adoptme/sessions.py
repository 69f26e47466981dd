"""Signed session tokens carried in the ``adoptme_token`` cookie."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from .errors import UnauthenticatedError
from .models import Role, Subject, User

COOKIE_NAME = "adoptme_token"


class SessionTokens:
    """Mint and verify the HS256 tokens that identify a request's subject."""

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = timedelta(hours=1),
        algorithm: str = "HS256",
    ) -> None:
        if not secret:
            raise ValueError("A token signing secret must be provided")
        self._secret = secret
        self._ttl = ttl
        self._algorithm = algorithm

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def cookie_max_age(self) -> int:
        return int(self._ttl.total_seconds())

    def issue(self, user: User) -> str:
        now = self._now()
        claims: Dict[str, Any] = {
            "id": user.id,
            "name": user.full_name,
            "email": user.email,
            "role": user.role.value,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def claims(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "id", "role"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise UnauthenticatedError("Session expired") from exc
        except jwt.InvalidTokenError as exc:
            raise UnauthenticatedError("Invalid token") from exc

    def decode(self, token: str) -> Subject:
        claims = self.claims(token)
        try:
            role = Role(claims["role"])
        except ValueError:
            raise UnauthenticatedError("Invalid token") from None
        return Subject(
            id=str(claims["id"]),
            role=role,
            email=claims.get("email"),
            name=claims.get("name"),
        )

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["COOKIE_NAME", "SessionTokens"]
