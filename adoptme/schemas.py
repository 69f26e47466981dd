"""Request bodies accepted by the HTTP routers and the services behind them."""
from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import AdoptionStatus, PetStatus, Role, Species

M = TypeVar("M", bound=BaseModel)

MAX_NOTES_LENGTH = 500
MIN_PASSWORD_LENGTH = 8

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_IMAGE_PREFIXES = ("http://", "https://", "/uploads/")
_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}
# Only the adoption workflow may move a pet to or from ``adopted``.
PATCHABLE_PET_STATUSES = frozenset({PetStatus.AVAILABLE, PetStatus.RESERVED, PetStatus.PENDING})


def summarize_errors(errors: Sequence[Dict[str, Any]]) -> Tuple[str, List[str]]:
    """Collapse pydantic error entries into a message and the offending fields."""

    unknown: List[str] = []
    invalid: List[str] = []
    details: List[str] = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in _REQUEST_LOCATIONS]
        name = ".".join(location) or "body"
        if error.get("type") == "extra_forbidden":
            unknown.append(name)
        else:
            invalid.append(name)
            details.append(f"{name}: {error.get('msg', 'invalid value')}")
    if unknown:
        return f"Unknown fields: {', '.join(unknown)}", unknown + invalid
    return "Invalid request: " + "; ".join(details), invalid


def parse_model(model: Type[M], payload: Any) -> M:
    """Validate ``payload`` against ``model`` unless it already is one."""

    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        message, fields = summarize_errors(exc.errors())
        raise ValidationError(message, fields=fields) from None


class _Body(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email: str = Field(..., max_length=254)
    # Passwords are taken verbatim; only the profile fields are trimmed.
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)

    @field_validator("first_name", "last_name")
    @classmethod
    def _clean_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("must not be blank")
        return name

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        email = value.strip().lower()
        if not _EMAIL_PATTERN.match(email):
            raise ValueError("A valid email is required")
        return email


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str
    password: str


class UpdateUserRequest(_Body):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=254)
    role: Optional[Role] = None

    @field_validator("first_name", "last_name", "email", "role")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        email = value.lower()
        if not _EMAIL_PATTERN.match(email):
            raise ValueError("A valid email is required")
        return email


class DocumentRequest(_Body):
    name: str = Field(..., min_length=1, max_length=200)
    reference: str = Field(..., min_length=1, max_length=500)


class TransitionRequest(_Body):
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)

    @field_validator("notes")
    @classmethod
    def _blank_notes(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class CreateAdoptionRequest(TransitionRequest):
    adoptionFee: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


class UpdateAdoptionRequest(CreateAdoptionRequest):
    status: Optional[AdoptionStatus] = None

    @field_validator("status")
    @classmethod
    def _not_null(cls, value: Optional[AdoptionStatus]) -> AdoptionStatus:
        if value is None:
            raise ValueError("must not be null")
        return value


class LocationRequest(_Body):
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)


class _PetDetails(_Body):
    breed: Optional[str] = Field(default=None, max_length=100)
    birthDate: Optional[date] = None
    image: Optional[str] = Field(default=None, max_length=1024)
    description: Optional[str] = Field(default=None, max_length=500)
    location: Optional[LocationRequest] = None

    @field_validator("breed", "description")
    @classmethod
    def _blank_text(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @field_validator("birthDate")
    @classmethod
    def _not_in_future(cls, value: Optional[date]) -> Optional[date]:
        if value is not None and value > date.today():
            raise ValueError("birthDate cannot be in the future")
        return value

    @field_validator("image")
    @classmethod
    def _image_reference(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if not value.startswith(_IMAGE_PREFIXES):
            raise ValueError("image must be an http(s) URL or an /uploads/ path")
        return value


class CreatePetRequest(_PetDetails):
    name: str = Field(..., min_length=2, max_length=50)
    specie: Species


class UpdatePetRequest(_PetDetails):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    specie: Optional[Species] = None
    status: Optional[PetStatus] = None

    @field_validator("name", "specie", "status")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value

    @field_validator("status")
    @classmethod
    def _patchable_status(cls, value: PetStatus) -> PetStatus:
        if value not in PATCHABLE_PET_STATUSES:
            raise ValueError("Pets are marked adopted only through an approved adoption")
        return value


__all__ = [
    "CreateAdoptionRequest",
    "CreatePetRequest",
    "DocumentRequest",
    "LocationRequest",
    "LoginRequest",
    "MAX_NOTES_LENGTH",
    "MIN_PASSWORD_LENGTH",
    "PATCHABLE_PET_STATUSES",
    "RegisterRequest",
    "TransitionRequest",
    "UpdateAdoptionRequest",
    "UpdatePetRequest",
    "UpdateUserRequest",
    "parse_model",
    "summarize_errors",
]
