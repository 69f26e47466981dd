"""Identifier and paging checks shared by the services before any store call is made.

Request bodies are validated by the models in :mod:`adoptme.schemas`.
"""
from __future__ import annotations

import re
from typing import Any, Tuple

from .errors import InvalidIdError, ValidationError

_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")
_DOCUMENT_ID = re.compile(r"^[1-9][0-9]{0,17}$")

MAX_PAGE_SIZE = 100


def ensure_object_id(value: Any, field: str = "id") -> str:
    """Return ``value`` lowercased when it is a 24 character hex id."""

    if not isinstance(value, str) or not _OBJECT_ID.match(value):
        raise InvalidIdError(f"Invalid {field} format", fields=(field,))
    return value.lower()


def ensure_document_id(value: Any, field: str = "document id") -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    if not isinstance(value, str) or not _DOCUMENT_ID.match(value):
        raise InvalidIdError(f"Invalid {field} format", fields=(field,))
    return int(value)


def check_pagination(page: Any, limit: Any) -> Tuple[int, int]:
    try:
        page_number = int(page)
        page_size = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers", fields=("page", "limit")) from None
    if page_number < 1:
        raise ValidationError("page must be at least 1", fields=("page",))
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValidationError(
            f"limit must be between 1 and {MAX_PAGE_SIZE}", fields=("limit",)
        )
    return page_number, page_size


__all__ = [
    "MAX_PAGE_SIZE",
    "check_pagination",
    "ensure_document_id",
    "ensure_object_id",
]
