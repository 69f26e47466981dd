"""Application factory used by ``uvicorn --factory``."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from .config import load_settings
from .database import Database
from .service import create_app


def create_application(*, config_path: Optional[str] = None) -> FastAPI:
    """Create the ASGI application from the process environment."""

    raw_path = config_path or os.getenv("ADOPTME_CONFIG")
    settings = load_settings(Path(raw_path).expanduser() if raw_path else None)
    database = Database(settings.database_path, store_timeout=settings.store_timeout)
    return create_app(database=database, settings=settings)


__all__ = ["create_application"]
