"""Domain models shared by the store, the policy engine and the HTTP layer."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Generic, List, Optional, Tuple, TypeVar


class Role(str, Enum):
    """Roles carried by users and by their session tokens."""

    USER = "user"
    ADMIN = "admin"
    PREMIUM = "premium"


class Species(str, Enum):
    DOG = "perro"
    CAT = "gato"
    RABBIT = "conejo"
    BIRD = "ave"
    RODENT = "roedor"
    OTHER = "otro"


class PetStatus(str, Enum):
    AVAILABLE = "available"
    ADOPTED = "adopted"
    RESERVED = "reserved"
    PENDING = "pending"


class AdoptionStatus(str, Enum):
    """Lifecycle state of an adoption request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


IN_FLIGHT_STATUSES = frozenset({AdoptionStatus.PENDING, AdoptionStatus.APPROVED})
OWNERSHIP_STATUSES = frozenset({AdoptionStatus.APPROVED, AdoptionStatus.COMPLETED})
TERMINAL_STATUSES = frozenset(
    {AdoptionStatus.REJECTED, AdoptionStatus.CANCELLED, AdoptionStatus.COMPLETED}
)
DELETABLE_STATUSES = frozenset({AdoptionStatus.PENDING, AdoptionStatus.REJECTED})


@dataclass(frozen=True)
class Document:
    """Reference to a document a user attached to their profile."""

    name: str
    reference: str
    uploaded_at: datetime
    id: Optional[int] = None

    @property
    def kind(self) -> str:
        """Document type taken from its file name, e.g. ``identificacion``."""

        stem, dot, extension = self.name.lower().rpartition(".")
        return stem if dot and stem and extension and "/" not in extension else self.name.lower()


@dataclass(frozen=True)
class DocumentRequirement:
    """Which documents of one requirement set a user has uploaded."""

    kind: str
    required: Tuple[str, ...]
    missing: Tuple[str, ...]

    @property
    def complete(self) -> bool:
        return not self.missing

    @property
    def uploaded_count(self) -> int:
        return len(self.required) - len(self.missing)


@dataclass(frozen=True)
class Location:
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class User:
    """Represents a registered account."""

    id: str
    first_name: str
    last_name: str
    email: str
    role: Role
    created_at: datetime
    updated_at: datetime
    password_hash: Optional[str] = field(default=None, repr=False)
    pets: Tuple[str, ...] = ()
    documents: Tuple[Document, ...] = ()
    last_connection: Optional[datetime] = None
    failed_login_attempts: int = 0
    lock_until: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class Pet:
    """A pet listed for adoption."""

    id: str
    name: str
    specie: Species
    created_at: datetime
    updated_at: datetime
    breed: Optional[str] = None
    birth_date: Optional[date] = None
    adopted: bool = False
    status: PetStatus = PetStatus.AVAILABLE
    owner_id: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None
    location: Optional[Location] = None

    def age_years(self, today: Optional[date] = None) -> Optional[int]:
        if self.birth_date is None:
            return None
        today = today or date.today()
        years = today.year - self.birth_date.year
        if (today.month, today.day) < (self.birth_date.month, self.birth_date.day):
            years -= 1
        return max(years, 0)


@dataclass(frozen=True)
class Adoption:
    """An adoption request linking a user to a pet."""

    id: str
    owner_id: str
    pet_id: str
    status: AdoptionStatus
    created_at: datetime
    updated_at: datetime
    notes: Optional[str] = None
    adoption_fee: Optional[float] = None

    @property
    def in_flight(self) -> bool:
        return self.status in IN_FLIGHT_STATUSES

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class AdoptionEvent:
    """One entry of an adoption's audit trail."""

    id: int
    adoption_id: str
    from_status: Optional[AdoptionStatus]
    to_status: AdoptionStatus
    actor_id: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class Subject:
    """The authenticated principal behind a request."""

    id: str
    role: Role
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """A slice of a paginated query."""

    results: List[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total / self.limit)


__all__ = [
    "Adoption",
    "AdoptionEvent",
    "AdoptionStatus",
    "DELETABLE_STATUSES",
    "Document",
    "DocumentRequirement",
    "IN_FLIGHT_STATUSES",
    "Location",
    "OWNERSHIP_STATUSES",
    "Page",
    "Pet",
    "PetStatus",
    "Role",
    "Species",
    "Subject",
    "TERMINAL_STATUSES",
    "User",
]
