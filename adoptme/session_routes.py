"""Registration, login and logout endpoints."""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response, status

from .errors import UnauthenticatedError
from .models import Subject, User
from .schemas import LoginRequest, RegisterRequest
from .security import TokenAuth
from .sessions import COOKIE_NAME, SessionTokens
from .users import UserService
from .views import success, user_to_profile

logger = logging.getLogger("adoptme.sessions")


def subject_to_claims(subject: Subject) -> Dict[str, Any]:
    return {
        "id": subject.id,
        "name": subject.name,
        "email": subject.email,
        "role": subject.role.value,
    }


def build_session_router(
    users: UserService,
    tokens: SessionTokens,
    auth: TokenAuth,
    *,
    secure_cookies: bool = True,
) -> APIRouter:
    router = APIRouter(prefix="/sessions", tags=["sessions"])

    def _issue_session_cookie(response: Response, user: User) -> str:
        token = tokens.issue(user)
        response.set_cookie(
            COOKIE_NAME,
            token,
            max_age=tokens.cookie_max_age,
            secure=secure_cookies,
            httponly=True,
            samesite="lax",
        )
        return token

    @router.post("/register", status_code=status.HTTP_201_CREATED)
    async def register(payload: RegisterRequest, response: Response) -> Dict[str, Any]:
        user = await users.register(
            payload.first_name, payload.last_name, payload.email, payload.password
        )
        token = _issue_session_cookie(response, user)
        return success(
            {"user": user_to_profile(user), "token": token},
            message="User registered successfully",
        )

    @router.post("/login")
    async def login(payload: LoginRequest, response: Response) -> Dict[str, Any]:
        user = await users.authenticate(payload.email, payload.password)
        token = _issue_session_cookie(response, user)
        logger.info("User %s signed in", user.id)
        return success(
            {"user": user_to_profile(user), "token": token},
            message="Login successful",
        )

    @router.get("/current")
    async def current(subject: Subject = Depends(auth)) -> Dict[str, Any]:
        await users.touch(subject.id)
        return success(subject_to_claims(subject))

    @router.post("/logout")
    async def logout(request: Request, response: Response) -> Dict[str, Any]:
        token = request.cookies.get(COOKIE_NAME)
        if token:
            try:
                subject = tokens.decode(token)
            except UnauthenticatedError:
                subject = None
            if subject is not None:
                await users.touch(subject.id)
                logger.info("User %s signed out", subject.id)
        response.delete_cookie(COOKIE_NAME, path="/")
        return success(None, message="Logged out")

    return router


__all__ = ["build_session_router", "subject_to_claims"]
