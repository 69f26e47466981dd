"""Request logging with correlation identifiers."""
from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request

logger = logging.getLogger("adoptme.http")

REQUEST_ID_HEADER = "X-Request-ID"


def request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "-"


def subject_id(request: Request) -> str:
    subject = getattr(request.state, "subject", None)
    return subject.id if subject is not None else "anonymous"


def install_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        correlation_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = correlation_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            "%s %s - %s (%.1fms) request=%s subject=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            correlation_id,
            subject_id(request),
        )
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response


__all__ = ["REQUEST_ID_HEADER", "install_request_logging", "request_id", "subject_id"]
