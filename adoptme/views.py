"""JSON shapes returned by the HTTP routers."""
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .models import Adoption, AdoptionEvent, Document, DocumentRequirement, Page, Pet, User


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def adoption_to_view(adoption: Adoption) -> Dict[str, Any]:
    return {
        "id": adoption.id,
        "owner": adoption.owner_id,
        "pet": adoption.pet_id,
        "status": adoption.status.value,
        "notes": adoption.notes,
        "adoptionFee": adoption.adoption_fee,
        "createdAt": _timestamp(adoption.created_at),
        "updatedAt": _timestamp(adoption.updated_at),
    }


def event_to_view(event: AdoptionEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "adoption": event.adoption_id,
        "from": event.from_status.value if event.from_status is not None else None,
        "to": event.to_status.value,
        "actor": event.actor_id,
        "createdAt": _timestamp(event.created_at),
    }


def pet_to_view(pet: Pet) -> Dict[str, Any]:
    return {
        "id": pet.id,
        "name": pet.name,
        "specie": pet.specie.value,
        "breed": pet.breed,
        "birthDate": pet.birth_date.isoformat() if pet.birth_date else None,
        "age": pet.age_years(),
        "adopted": pet.adopted,
        "status": pet.status.value,
        "owner": pet.owner_id,
        "image": pet.image,
        "description": pet.description,
        "location": asdict(pet.location) if pet.location is not None else None,
        "createdAt": _timestamp(pet.created_at),
        "updatedAt": _timestamp(pet.updated_at),
    }


def document_to_view(document: Document) -> Dict[str, Any]:
    return {
        "id": document.id,
        "name": document.name,
        "reference": document.reference,
        "uploadedAt": _timestamp(document.uploaded_at),
    }


def document_check_to_view(
    user: User, requirements: Mapping[str, DocumentRequirement]
) -> Dict[str, Any]:
    """Per requirement set progress plus the eligibility summary."""

    def _status(requirement: DocumentRequirement) -> Dict[str, Any]:
        return {
            "hasAllRequired": requirement.complete,
            "missingDocuments": list(requirement.missing),
            "uploadedCount": requirement.uploaded_count,
            "requiredCount": len(requirement.required),
        }

    return {
        "userId": user.id,
        "documentStatus": {kind: _status(item) for kind, item in requirements.items()},
        "summary": {
            "isEligibleForPremium": requirements["premium"].complete,
            "isEligibleForAdoption": requirements["adoption"].complete,
            "totalUploaded": len(user.documents),
        },
    }


def user_to_profile(user: User) -> Dict[str, Any]:
    """Public profile of a user; never includes credentials."""

    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "email": user.email,
        "role": user.role.value,
        "pets": list(user.pets),
        "pets_count": len(user.pets),
        "documents_count": len(user.documents),
        "last_connection": _timestamp(user.last_connection),
        "createdAt": _timestamp(user.created_at),
        "updatedAt": _timestamp(user.updated_at),
    }


def pagination_to_view(page: Page[Any]) -> Dict[str, int]:
    return {"total": page.total, "page": page.page, "limit": page.limit, "pages": page.pages}


def success(data: Any, *, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"status": "success", "data": data}
    if message:
        body["message"] = message
    return body


def paginated(page: Page[Any], render) -> Dict[str, Any]:
    return {
        "status": "success",
        "data": [render(item) for item in page.results],
        "pagination": pagination_to_view(page),
    }


def many(items: Iterable[Any], render) -> List[Dict[str, Any]]:
    return [render(item) for item in items]


def error_body(
    message: str, code: str, fields: Sequence[str] = ()
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"status": "error", "error": message, "code": code}
    if fields:
        body["fields"] = list(fields)
    return body


__all__ = [
    "adoption_to_view",
    "document_check_to_view",
    "document_to_view",
    "error_body",
    "event_to_view",
    "many",
    "paginated",
    "pagination_to_view",
    "pet_to_view",
    "success",
    "user_to_profile",
]
