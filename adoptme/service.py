"""FastAPI application wiring for the adoption service."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .adoption_routes import build_adoption_router
from .adoptions import AdoptionService
from .config import Settings, load_settings
from .database import Database
from .errors import AdoptMeError, ErrorKind, StoreError
from .middleware import install_request_logging, request_id, subject_id
from .pet_routes import build_pet_router
from .pets import PetService
from .schemas import summarize_errors
from .security import TokenAuth
from .session_routes import build_session_router
from .sessions import SessionTokens
from .user_routes import build_user_router
from .users import UserService
from .views import error_body

logger = logging.getLogger("adoptme.service")

_HTTP_KINDS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.UNAUTHENTICATED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
}


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AdoptMeError)
    async def handle_adoptme_error(request: Request, exc: AdoptMeError) -> JSONResponse:
        if exc.kind is ErrorKind.INTERNAL:
            logger.error(
                "%s %s failed for subject %s (request %s): %s",
                request.method,
                request.url.path,
                subject_id(request),
                request_id(request),
                exc.message,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.kind.value, exc.fields),
        )

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.exception(
            "Storage failure on %s %s for subject %s (request %s)",
            request.method,
            request.url.path,
            subject_id(request),
            request_id(request),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", ErrorKind.INTERNAL.value),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        message, fields = summarize_errors(exc.errors())
        return JSONResponse(
            status_code=400,
            content=error_body(message, ErrorKind.VALIDATION.value, fields),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        kind = _HTTP_KINDS.get(exc.status_code)
        code = kind.value if kind is not None else f"HTTP_{exc.status_code}"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail), code),
            headers=getattr(exc, "headers", None),
        )


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Build the HTTP application around an explicit database and settings."""

    if settings is None:
        settings = load_settings()
    if database is None:
        database = Database(settings.database_path, store_timeout=settings.store_timeout)
    if initialize_database:
        database.initialize()

    tokens = SessionTokens(settings.token_secret, ttl=settings.token_ttl)
    auth = TokenAuth(tokens)
    adoptions = AdoptionService(database)
    users = UserService(database)
    pets = PetService(database)

    app = FastAPI(
        title="AdoptMe",
        description="Pet adoption requests, approvals and ownership records",
        version="1.0.0",
    )
    app.state.database = database
    app.state.settings = settings
    app.state.tokens = tokens
    app.state.adoptions = adoptions
    app.state.users = users
    app.state.pets = pets

    install_request_logging(app)
    _install_error_handlers(app)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    app.include_router(build_session_router(users, tokens, auth, secure_cookies=settings.secure_cookies))
    app.include_router(build_user_router(users, auth))
    app.include_router(build_pet_router(pets, auth))
    app.include_router(build_adoption_router(adoptions, auth))

    return app


__all__ = ["create_app"]
