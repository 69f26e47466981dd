"""Typed errors raised by the adoption core and its collaborators."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Tuple


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    INVALID_ID = "INVALID_ID"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CONFLICT_IN_FLIGHT = "CONFLICT_IN_FLIGHT"
    PET_ALREADY_ADOPTED = "PET_ALREADY_ADOPTED"
    INTERNAL = "INTERNAL"


HTTP_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_ID: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.INVALID_TRANSITION: 400,
    ErrorKind.CONFLICT_IN_FLIGHT: 409,
    ErrorKind.PET_ALREADY_ADOPTED: 400,
    ErrorKind.INTERNAL: 500,
}


class AdoptMeError(Exception):
    """Base class for errors surfaced to API callers."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, fields: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.fields: Tuple[str, ...] = tuple(fields)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]


class ValidationError(AdoptMeError):
    kind = ErrorKind.VALIDATION


class InvalidIdError(AdoptMeError):
    kind = ErrorKind.INVALID_ID


class NotFoundError(AdoptMeError):
    kind = ErrorKind.NOT_FOUND


class ForbiddenError(AdoptMeError):
    kind = ErrorKind.FORBIDDEN


class UnauthenticatedError(AdoptMeError):
    kind = ErrorKind.UNAUTHENTICATED


class InvalidTransitionError(AdoptMeError):
    kind = ErrorKind.INVALID_TRANSITION


class InFlightConflictError(AdoptMeError):
    kind = ErrorKind.CONFLICT_IN_FLIGHT


class PetAlreadyAdoptedError(AdoptMeError):
    kind = ErrorKind.PET_ALREADY_ADOPTED


class InternalError(AdoptMeError):
    kind = ErrorKind.INTERNAL


class StoreError(Exception):
    """Raised when the persistence layer fails."""


class DuplicateKeyError(StoreError):
    """A unique index rejected a write."""

    def __init__(self, message: str, *, fields: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.fields: Tuple[str, ...] = tuple(fields)


__all__ = [
    "AdoptMeError",
    "DuplicateKeyError",
    "ErrorKind",
    "ForbiddenError",
    "HTTP_STATUS",
    "InFlightConflictError",
    "InternalError",
    "InvalidIdError",
    "InvalidTransitionError",
    "NotFoundError",
    "PetAlreadyAdoptedError",
    "StoreError",
    "UnauthenticatedError",
    "ValidationError",
]
